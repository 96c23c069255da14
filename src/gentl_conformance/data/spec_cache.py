"""Persistent hardware specification cache.

Specs are golden files: captured from hardware the first time a device is
seen, then read back on every later run without opening the device again.
The cache never decides on its own that a spec is stale; invalidate() or
regenerate() must be called explicitly (the CLI exposes invalidate-spec).

One ASDF file per key::

    <spec_dir>/<key>.asdf   tree root: hwspec
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import asdf

from gentl_conformance.data.hwspec import HardwareSpec
from gentl_conformance.errors import SpecNotFoundError, SpecWriteError
from gentl_conformance.observability import get_logger

if TYPE_CHECKING:
    from gentl_conformance.devices.session import DeviceHandle

logger = get_logger(__name__)

__all__ = ["SPEC_FILE_SUFFIX", "SPEC_TREE_ROOT", "HardwareSpecCache"]

SPEC_FILE_SUFFIX = ".asdf"
SPEC_TREE_ROOT = "hwspec"


class HardwareSpecCache:
    """Keyed store of HardwareSpec golden files.

    Example:
        cache = HardwareSpecCache(Path("hwspec"))
        spec = cache.get_or_create(descriptor.spec_file_key, handle)
        if "TestPattern" in [r.name for r in spec("property")]:
            ...
    """

    def __init__(self, spec_dir: Path | str) -> None:
        self.spec_dir = Path(spec_dir)

    def path_for(self, key: str) -> Path:
        """Location of the spec file for a key (may not exist)."""
        return self.spec_dir / f"{key}{SPEC_FILE_SUFFIX}"

    def contains(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def keys(self) -> list[str]:
        """Keys of every cached spec, sorted."""
        if not self.spec_dir.is_dir():
            return []
        return sorted(p.stem for p in self.spec_dir.glob(f"*{SPEC_FILE_SUFFIX}"))

    def lookup(self, key: str) -> HardwareSpec | None:
        """Load a cached spec without touching hardware.

        Returns:
            The spec, or None on a cache miss.
        """
        path = self.path_for(key)
        if not path.is_file():
            return None
        with asdf.open(path) as af:
            spec = HardwareSpec.from_tree(af.tree[SPEC_TREE_ROOT])
        logger.debug("Hardware spec cache hit", key=key, path=str(path))
        return spec

    def load(self, key: str) -> HardwareSpec:
        """Load a spec that must already exist.

        Raises:
            SpecNotFoundError: If no spec is cached under key.
        """
        spec = self.lookup(key)
        if spec is None:
            raise SpecNotFoundError(key)
        return spec

    def get_or_create(self, key: str, device: DeviceHandle) -> HardwareSpec:
        """Return the cached spec, capturing it from hardware on a miss.

        On a miss the device is opened at its default format, its session
        and source properties are captured, the session is closed and the
        spec is written before being returned. A hit never opens the
        device.

        Args:
            key: Cache key.
            device: Handle able to open the device under the active producer.

        Returns:
            The cached or freshly captured spec.

        Raises:
            SpecWriteError: If the captured spec cannot be persisted.
        """
        cached = self.lookup(key)
        if cached is not None:
            return cached

        logger.info("Hardware spec not cached, capturing from device", key=key)
        descriptor = device.descriptor
        session = device.open()
        try:
            spec = HardwareSpec.capture(
                key, session, descriptor.device_name, descriptor.supported_formats
            )
        finally:
            session.close()
        self.store(spec)
        return spec

    def store(self, spec: HardwareSpec) -> Path:
        """Write a spec atomically.

        The tree is written to a temporary file in the cache directory and
        then moved over the target, so readers never see a partial file.

        Returns:
            Path of the written spec.

        Raises:
            SpecWriteError: On any filesystem or serialization failure.
        """
        path = self.path_for(spec.key)
        tmp_path: Path | None = None
        try:
            self.spec_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{spec.key}.", suffix=SPEC_FILE_SUFFIX, dir=self.spec_dir
            )
            os.close(fd)
            tmp_path = Path(tmp_name)
            af = asdf.AsdfFile({SPEC_TREE_ROOT: spec.to_tree()})
            af.write_to(tmp_path)
            os.replace(tmp_path, path)
        except Exception as exc:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            logger.error("Hardware spec write failed", key=spec.key, error=str(exc))
            raise SpecWriteError(spec.key, exc) from exc
        logger.info("Hardware spec written", key=spec.key, path=str(path))
        return path

    def invalidate(self, key: str) -> bool:
        """Delete a cached spec.

        Returns:
            True if a file was removed, False if nothing was cached.
        """
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Hardware spec invalidated", key=key)
        return True

    def regenerate(self, key: str, device: DeviceHandle) -> HardwareSpec:
        """Delete and re-capture a spec from hardware."""
        self.invalidate(key)
        return self.get_or_create(key, device)
