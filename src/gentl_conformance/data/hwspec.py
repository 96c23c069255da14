"""Hardware specification model.

A HardwareSpec is the golden record of a device's property surface: every
session-level and source-level property with its type, constraint and
default, captured once from real hardware and then reused by every run.

Property values are resolved into a closed set of variants at generation
time so serialization never has to guess at runtime types:

    NumericScalar   a single int or float
    NumericArray    a flat sequence of numbers
    Text            a string
    EnumList        an ordered list of allowed strings
    Boolean         True / False
    CallbackRef     a function reference, stored by name
    NestedRecord    a struct of named values
    OpaqueRef       an object handle that cannot be persisted
    Empty           no value

Each variant has a single ``to_tree()`` serializer; value_from_tree() is
the single loader.
"""

from __future__ import annotations

import numbers
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, ClassVar, Union

import numpy as np

from gentl_conformance.drivers.subsystem import SHARED_PROPERTY_NAMES

if TYPE_CHECKING:
    from gentl_conformance.drivers.subsystem import DeviceSession, PropertyHolder

__all__ = [
    "RUNTIME_DEFINED_SESSION_PROPERTIES",
    "Boolean",
    "CallbackRef",
    "Empty",
    "EnumList",
    "HardwareSpec",
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

#: Session-level properties whose values depend on how the session was
#: opened rather than on the device; never compared against live values.
RUNTIME_DEFINED_SESSION_PROPERTIES = frozenset(
    {
        "Name",
        "NumberOfBands",
        "Parent",
        "Selected",
        "ROIPosition",
        "SelectedSourceName",
        "Source",
        "SourceName",
        "VideoFormat",
        "VideoResolution",
    }
)


# =============================================================================
# Property value variants
# =============================================================================


@dataclass(frozen=True)
class NumericScalar:
    value: int | float
    kind: ClassVar[str] = "numeric"

    def to_tree(self) -> dict[str, Any]:
        return {"kind": self.kind, "value": self.value}


@dataclass(frozen=True)
class NumericArray:
    values: tuple[int | float, ...]
    kind: ClassVar[str] = "array"

    def to_tree(self) -> dict[str, Any]:
        return {"kind": self.kind, "values": list(self.values)}


@dataclass(frozen=True)
class Text:
    value: str
    kind: ClassVar[str] = "text"

    def to_tree(self) -> dict[str, Any]:
        return {"kind": self.kind, "value": self.value}


@dataclass(frozen=True)
class EnumList:
    """Allowed values of an enumerated property, in device order."""

    values: tuple[str, ...]
    kind: ClassVar[str] = "enum"

    def to_tree(self) -> dict[str, Any]:
        return {"kind": self.kind, "values": list(self.values)}


@dataclass(frozen=True)
class Boolean:
    value: bool
    kind: ClassVar[str] = "boolean"

    def to_tree(self) -> dict[str, Any]:
        return {"kind": self.kind, "value": self.value}


@dataclass(frozen=True)
class CallbackRef:
    """A callback property value, persisted as the function's name."""

    name: str
    kind: ClassVar[str] = "callback"

    def to_tree(self) -> dict[str, Any]:
        return {"kind": self.kind, "name": self.name}


@dataclass(frozen=True)
class NestedRecord:
    """A struct value; field order is preserved."""

    fields: tuple[tuple[str, PropertyValue], ...]
    kind: ClassVar[str] = "struct"

    def to_tree(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "fields": [{"name": name, "value": value.to_tree()} for name, value in self.fields],
        }

    def get(self, name: str) -> PropertyValue | None:
        for field_name, value in self.fields:
            if field_name == name:
                return value
        return None


@dataclass(frozen=True)
class OpaqueRef:
    """An object handle; only a description of it can be stored."""

    description: str
    kind: ClassVar[str] = "opaque"

    def to_tree(self) -> dict[str, Any]:
        return {"kind": self.kind, "description": self.description}


@dataclass(frozen=True)
class Empty:
    kind: ClassVar[str] = "empty"

    def to_tree(self) -> dict[str, Any]:
        return {"kind": self.kind}


PropertyValue = Union[
    NumericScalar,
    NumericArray,
    Text,
    EnumList,
    Boolean,
    CallbackRef,
    NestedRecord,
    OpaqueRef,
    Empty,
]


def classify_value(value: Any) -> PropertyValue:
    """Resolve a live property value into its PropertyValue variant.

    Numpy scalars and arrays are converted to plain Python numbers first so
    the stored tree holds no numpy types. Anything that is not data (session
    handles, source lists, arbitrary objects) becomes an OpaqueRef.

    Example:
        >>> classify_value(1.0000000000000002)
        NumericScalar(value=1.0000000000000002)
        >>> classify_value(["off", "on"])
        EnumList(values=('off', 'on'))
    """
    if isinstance(value, np.generic) or (isinstance(value, np.ndarray) and value.ndim == 0):
        value = value.item()
    if isinstance(value, np.ndarray):
        if value.size == 0:
            return Empty()
        if value.dtype.kind == "U":
            return EnumList(tuple(str(v) for v in value.ravel()))
        if value.dtype.kind in "iuf":
            return NumericArray(tuple(value.ravel().tolist()))
        return OpaqueRef(f"[{'x'.join(str(n) for n in value.shape)} ndarray]")

    if isinstance(value, str):
        return Text(value)
    if value is None:
        return Empty()
    if isinstance(value, (list, tuple)) and len(value) == 0:
        return Empty()
    if isinstance(value, bool):
        return Boolean(value)
    if isinstance(value, Mapping):
        return NestedRecord(tuple((str(k), classify_value(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        items = [v.item() if isinstance(v, np.generic) else v for v in value]
        if all(isinstance(v, str) for v in items):
            return EnumList(tuple(items))
        if all(_is_real(v) for v in items):
            return NumericArray(tuple(items))
        return OpaqueRef(f"[1x{len(items)} {type(items[0]).__name__}]")
    if callable(value):
        return CallbackRef(getattr(value, "__name__", type(value).__name__))
    if _is_real(value):
        return NumericScalar(value)
    return OpaqueRef(f"[1x1 {type(value).__name__}]")


def _is_real(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def value_from_tree(tree: Mapping[str, Any]) -> PropertyValue:
    """Load a PropertyValue from its stored tree.

    Raises:
        ValueError: If the tree carries an unknown kind.
    """
    kind = tree.get("kind")
    if kind == NumericScalar.kind:
        return NumericScalar(tree["value"])
    if kind == NumericArray.kind:
        return NumericArray(tuple(tree["values"]))
    if kind == Text.kind:
        return Text(tree["value"])
    if kind == EnumList.kind:
        return EnumList(tuple(tree["values"]))
    if kind == Boolean.kind:
        return Boolean(bool(tree["value"]))
    if kind == CallbackRef.kind:
        return CallbackRef(tree["name"])
    if kind == NestedRecord.kind:
        return NestedRecord(
            tuple((f["name"], value_from_tree(f["value"])) for f in tree["fields"])
        )
    if kind == OpaqueRef.kind:
        return OpaqueRef(tree["description"])
    if kind == Empty.kind:
        return Empty()
    raise ValueError(f"Unknown property value kind {kind!r}")


# =============================================================================
# Records and specs
# =============================================================================


@dataclass(frozen=True)
class PropertyRecord:
    """Metadata of one property as captured from the device.

    Attributes:
        name: Property name.
        type: Value type reported by the subsystem.
        constraint: 'none', 'bounded', 'enum' or 'callback'.
        constraint_value: Allowed values or bounds.
        default_value: Default value.
        read_only: 'always', 'whileRunning' or 'notCurrently'.
        device_specific: True for device node-map properties.
        runtime_defined: True if the value depends on the session rather
            than the device.
        index: 1-based position; session properties come first.
    """

    name: str
    type: str
    constraint: str
    constraint_value: PropertyValue
    default_value: PropertyValue
    read_only: str
    device_specific: bool
    runtime_defined: bool
    index: int

    def to_tree(self) -> dict[str, Any]:
        return {
            "Name": self.name,
            "Type": self.type,
            "Constraint": self.constraint,
            "ConstraintValue": self.constraint_value.to_tree(),
            "DefaultValue": self.default_value.to_tree(),
            "ReadOnly": self.read_only,
            "DeviceSpecific": self.device_specific,
            "RuntimeDefined": self.runtime_defined,
            "Index": self.index,
        }

    @classmethod
    def from_tree(cls, tree: Mapping[str, Any]) -> PropertyRecord:
        return cls(
            name=tree["Name"],
            type=tree["Type"],
            constraint=tree["Constraint"],
            constraint_value=value_from_tree(tree["ConstraintValue"]),
            default_value=value_from_tree(tree["DefaultValue"]),
            read_only=tree["ReadOnly"],
            device_specific=bool(tree["DeviceSpecific"]),
            runtime_defined=bool(tree["RuntimeDefined"]),
            index=int(tree["Index"]),
        )


def _record(holder: PropertyHolder, name: str, index: int, source_level: bool) -> PropertyRecord:
    info = holder.property_info(name)
    constraint_value = classify_value(info["ConstraintValue"])
    default_value = classify_value(info["DefaultValue"])
    runtime_defined = (
        source_level
        or name in RUNTIME_DEFINED_SESSION_PROPERTIES
        or isinstance(constraint_value, OpaqueRef)
        or isinstance(default_value, OpaqueRef)
    )
    return PropertyRecord(
        name=name,
        type=str(info["Type"]),
        constraint=str(info["Constraint"]),
        constraint_value=constraint_value,
        default_value=default_value,
        read_only=str(info["ReadOnly"]),
        device_specific=bool(info["DeviceSpecific"]),
        runtime_defined=runtime_defined,
        index=index,
    )


@dataclass(frozen=True)
class HardwareSpec:
    """Cached property surface of one device at its default format.

    Calling the spec returns one of its views, matching how test points
    query it::

        spec("property")   # ordered PropertyRecords
        spec("formats")    # supported video formats

    Attributes:
        key: Cache key (see DeviceDescriptor.spec_file_key).
        device_name: Device the spec was captured from.
        default_format: Format the capture session was opened with.
        formats: Video formats the device supports.
        properties: Session-level records followed by source-level ones.
        source_offset: Number of session-level records; source-level
            record k sits at index source_offset + k.
        created: ISO 8601 capture time (UTC).
    """

    key: str
    device_name: str
    default_format: str
    formats: tuple[str, ...]
    properties: tuple[PropertyRecord, ...]
    source_offset: int
    created: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def __call__(self, mode: str = "property") -> tuple[Any, ...]:
        if mode == "property":
            return self.properties
        if mode == "formats":
            return self.formats
        raise ValueError(f"Unknown hardware spec mode {mode!r}; use 'property' or 'formats'")

    def has_property(self, name: str) -> bool:
        return any(record.name == name for record in self.properties)

    def record(self, name: str) -> PropertyRecord:
        """Return the first record with this name.

        Raises:
            KeyError: If the device has no such property.
        """
        for record in self.properties:
            if record.name == name:
                return record
        raise KeyError(f"Hardware spec '{self.key}' has no property '{name}'")

    @property
    def session_properties(self) -> tuple[PropertyRecord, ...]:
        return self.properties[: self.source_offset]

    @property
    def source_properties(self) -> tuple[PropertyRecord, ...]:
        return self.properties[self.source_offset :]

    @classmethod
    def capture(
        cls,
        key: str,
        session: DeviceSession,
        device_name: str,
        formats: Sequence[str],
    ) -> HardwareSpec:
        """Capture the property surface of an open session.

        Session-level properties are recorded first; the selected source's
        properties follow, minus the ones the session already owns (Tag and
        Type).

        Args:
            key: Cache key to store the spec under.
            session: Open session at the device default format.
            device_name: Name of the device.
            formats: Formats the device supports.

        Returns:
            The captured spec.
        """
        session_names = session.property_names()
        records = [
            _record(session, name, index, source_level=False)
            for index, name in enumerate(session_names, start=1)
        ]
        offset = len(records)
        source = session.source
        source_names = [n for n in source.property_names() if n not in SHARED_PROPERTY_NAMES]
        records.extend(
            _record(source, name, offset + k, source_level=True)
            for k, name in enumerate(source_names, start=1)
        )
        return cls(
            key=key,
            device_name=device_name,
            default_format=session.video_format,
            formats=tuple(formats),
            properties=tuple(records),
            source_offset=offset,
        )

    def to_tree(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "device_name": self.device_name,
            "default_format": self.default_format,
            "created": self.created,
            "formats": list(self.formats),
            "source_offset": self.source_offset,
            "properties": [record.to_tree() for record in self.properties],
        }

    @classmethod
    def from_tree(cls, tree: Mapping[str, Any]) -> HardwareSpec:
        return cls(
            key=tree["key"],
            device_name=tree["device_name"],
            default_format=tree["default_format"],
            formats=tuple(tree["formats"]),
            properties=tuple(PropertyRecord.from_tree(r) for r in tree["properties"]),
            source_offset=int(tree["source_offset"]),
            created=tree["created"],
        )
