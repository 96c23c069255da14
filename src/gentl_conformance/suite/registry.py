"""Fixed registry of conformance test files and selection resolution.

The suite always consists of the same ordered set of test files, each with
a fixed default list of test points and a static declaration of which
parameter categories it honors. A selection such as
``["tVideoinput", "tAcquisition/verifySnapshot"]`` resolves against this
registry to the points that will run.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from enum import Flag, auto

from gentl_conformance.observability import get_logger

logger = get_logger(__name__)

__all__ = ["ALL_SELECTIONS", "ParameterCategory", "TestFileEntry", "TestRegistry"]

#: Selection tokens that mean "run every registered file".
ALL_SELECTIONS = frozenset({"all", "."})


class ParameterCategory(Flag):
    """Parameter categories a test file can honor."""

    NONE = 0
    PRODUCER = auto()
    DEVICE = auto()
    FORMAT = auto()

    @property
    def names(self) -> list[str]:
        """Member names in declaration order, e.g. ['PRODUCER', 'DEVICE']."""
        return [
            member.name
            for member in (ParameterCategory.PRODUCER, ParameterCategory.DEVICE, ParameterCategory.FORMAT)
            if member in self and member.name
        ]


@dataclass(frozen=True)
class TestFileEntry:
    """Registration of one test file.

    Attributes:
        name: Canonical file name, e.g. 'tAcquisition'.
        points: Default test points in execution order.
        honors: Parameter categories the file accepts.
    """

    __test__ = False  # not a pytest test class

    name: str
    points: tuple[str, ...]
    honors: ParameterCategory

    def point(self, token: str) -> str | None:
        """Canonical spelling of a point name, matched case-insensitively."""
        wanted = token.casefold()
        for point in self.points:
            if point.casefold() == wanted:
                return point
        return None


class TestRegistry:
    """Ordered, case-insensitive collection of test file entries."""

    __test__ = False  # not a pytest test class

    def __init__(self, entries: Iterable[TestFileEntry]) -> None:
        self._entries = list(entries)
        self._by_name = {entry.name.casefold(): entry for entry in self._entries}

    def __iter__(self) -> Iterator[TestFileEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def names(self) -> list[str]:
        return [entry.name for entry in self._entries]

    def entry(self, name: str) -> TestFileEntry | None:
        return self._by_name.get(name.casefold())

    def resolve(self, selection: str | Sequence[str] | None = None) -> dict[str, list[str]]:
        """Resolve a selection into file name → selected points.

        None, 'all' and '.' select everything. Otherwise each token is a
        file name or ``file/point``; matching is case-insensitive and the
        result uses canonical spelling in registry order. Several tokens
        naming the same file are merged.

        Unknown file or point tokens are dropped with a warning; they never
        raise, so a typo in one token does not abort the others.

        Args:
            selection: Token, token list, or None.

        Returns:
            Mapping in registry order; empty if nothing matched.

        Example:
            >>> registry.resolve("tAcquisition/verifySnapshot")
            {'tAcquisition': ['verifySnapshot']}
        """
        if selection is None:
            return self._everything()
        tokens = [selection] if isinstance(selection, str) else list(selection)
        if any(token.strip().casefold() in ALL_SELECTIONS for token in tokens):
            return self._everything()

        chosen: dict[str, set[str]] = {}
        for raw in tokens:
            token = raw.strip()
            file_token, _, point_token = token.partition("/")
            entry = self.entry(file_token)
            if entry is None:
                logger.warning("Unknown test file in selection, ignoring", token=token)
                continue
            points = chosen.setdefault(entry.name, set())
            if not point_token:
                points.update(entry.points)
                continue
            point = entry.point(point_token)
            if point is None:
                logger.warning("Unknown test point in selection, ignoring", token=token)
                if not points:
                    del chosen[entry.name]
                continue
            points.add(point)

        return {
            entry.name: [p for p in entry.points if p in chosen[entry.name]]
            for entry in self._entries
            if entry.name in chosen
        }

    def _everything(self) -> dict[str, list[str]]:
        return {entry.name: list(entry.points) for entry in self._entries}
