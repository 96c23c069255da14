"""GenTL producer discovery.

A producer is a directory holding at least one producer descriptor library
(``*.cti``). The producer search path is an OS path-list (``os.pathsep``
separated), normally taken from GENICAM_GENTL64_PATH. Discovery turns it
into the canonical ordered list of producers every other component treats
as ground truth.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from gentl_conformance.drivers.config import (
    DEFAULT_DESCRIPTOR_PATTERN,
    DEFAULT_PRODUCER_ENV_VAR,
)
from gentl_conformance.errors import NoProducersFoundError
from gentl_conformance.observability import get_logger

logger = get_logger(__name__)

__all__ = ["ProducerDiscovery", "ProducerRef", "normalize_directory"]


@dataclass(frozen=True)
class ProducerRef:
    """A directory containing at least one producer descriptor file.

    Attributes:
        directory: Directory path exactly as given on the search path, minus
            trailing separators. Compared as a plain string.
    """

    directory: str

    def descriptors(self, pattern: str = DEFAULT_DESCRIPTOR_PATTERN) -> list[Path]:
        """Descriptor files in this directory, sorted by name."""
        return sorted(Path(self.directory).glob(pattern))

    def __str__(self) -> str:
        return self.directory


def normalize_directory(segment: str) -> str:
    """Strip trailing path separators, keeping a bare root intact.

    Example:
        >>> normalize_directory("/opt/gentl/vendor/")
        '/opt/gentl/vendor'
    """
    stripped = segment.rstrip(os.sep)
    if os.altsep:
        stripped = stripped.rstrip(os.altsep)
    return stripped or segment


class ProducerDiscovery:
    """Discovers producer directories on a search path.

    Discovery is deterministic and side-effect free apart from logging, so
    calling it twice on the same path yields the same ordered list.

    Args:
        env_var: Environment variable read when no search path is given.
        pattern: Glob that identifies descriptor files.
    """

    def __init__(
        self,
        env_var: str = DEFAULT_PRODUCER_ENV_VAR,
        pattern: str = DEFAULT_DESCRIPTOR_PATTERN,
    ) -> None:
        self.env_var = env_var
        self.pattern = pattern

    def discover(self, search_path: str | None = None) -> list[ProducerRef]:
        """Return the producers on a search path, in path order.

        Empty segments are dropped, trailing separators are normalized,
        segments without a descriptor file are logged and skipped, and
        duplicates are removed keeping the first occurrence (exact string
        comparison, no symlink resolution).

        Args:
            search_path: os.pathsep-separated directory list. None reads
                the configured environment variable.

        Returns:
            Ordered, de-duplicated producer list (never empty).

        Raises:
            NoProducersFoundError: If the search path is empty or no
                segment holds a descriptor file.

        Example:
            >>> ProducerDiscovery().discover("/opt/a:/opt/b/:/opt/a")
            [ProducerRef(directory='/opt/a'), ProducerRef(directory='/opt/b')]
        """
        if search_path is None:
            search_path = os.environ.get(self.env_var, "")
        if not search_path.strip(os.pathsep):
            raise NoProducersFoundError(
                search_path, f"{self.env_var} is empty or not set"
            )

        producers = self._qualifying(search_path.split(os.pathsep))
        if not producers:
            raise NoProducersFoundError(
                search_path, f"no directory on the search path contains {self.pattern}"
            )
        logger.info(
            "Producers discovered",
            count=len(producers),
            producers=[p.directory for p in producers],
        )
        return producers

    def filter(self, directories: Iterable[str | os.PathLike[str]]) -> list[ProducerRef]:
        """Apply the descriptor check to an explicit producer list.

        Directories without a descriptor file are logged and excluded; the
        result may be empty.

        Args:
            directories: User-supplied producer directories.

        Returns:
            Qualifying producers in input order, de-duplicated.
        """
        return self._qualifying(os.fspath(d) for d in directories)

    def _qualifying(self, segments: Iterable[str]) -> list[ProducerRef]:
        seen: set[str] = set()
        producers: list[ProducerRef] = []
        for segment in segments:
            if not segment:
                logger.debug("Skipping empty producer path segment")
                continue
            directory = normalize_directory(segment)
            if directory in seen:
                continue
            if not self._has_descriptor(directory):
                logger.info(
                    "Producer path does not contain descriptor files and will "
                    "not be included in testing",
                    producer=directory,
                    pattern=self.pattern,
                )
                continue
            seen.add(directory)
            producers.append(ProducerRef(directory))
        return producers

    def _has_descriptor(self, directory: str) -> bool:
        path = Path(directory)
        if not path.is_dir():
            return False
        return any(path.glob(self.pattern))
