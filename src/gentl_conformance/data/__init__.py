"""Hardware specification model and cache."""

from gentl_conformance.data.hwspec import (
    RUNTIME_DEFINED_SESSION_PROPERTIES,
    Boolean,
    CallbackRef,
    Empty,
    EnumList,
    HardwareSpec,
    NestedRecord,
    NumericArray,
    NumericScalar,
    OpaqueRef,
    PropertyRecord,
    PropertyValue,
    Text,
    classify_value,
    value_from_tree,
)
from gentl_conformance.data.spec_cache import HardwareSpecCache

__all__ = [
    "RUNTIME_DEFINED_SESSION_PROPERTIES",
    "Boolean",
    "CallbackRef",
    "Empty",
    "EnumList",
    "HardwareSpec",
    "HardwareSpecCache",
    "NestedRecord",
    "NumericArray",
    "NumericScalar",
    "OpaqueRef",
    "PropertyRecord",
    "PropertyValue",
    "Text",
    "classify_value",
    "value_from_tree",
]
