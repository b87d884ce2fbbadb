"""
structdiff.comparative — matching elements by key instead of position.

Both sides of a collection are poured into one ``ComparativeList``
keyed by identity (a declared identifier, a map key, or a mismatched
index).  Each key then holds a pair:

    (a, ABSENT)   only on the left   → DELETE of the whole element
    (ABSENT, b)   only on the right  → CREATE of the whole element
    (a, b)        on both sides      → recurse

Keys iterate in order of first insertion, so identical inputs always
produce identical changelogs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterator

from .changelog import Changelog, ChangeType
from .model import ABSENT, path_segment


@dataclass(slots=True)
class Comparative:
    """The left and right values reconciled under one key."""
    a: Any = ABSENT
    b: Any = ABSENT

    @property
    def only_a(self) -> bool:
        return self.a is not ABSENT and self.b is ABSENT

    @property
    def only_b(self) -> bool:
        return self.a is ABSENT and self.b is not ABSENT


class ComparativeList:
    """Insertion-ordered mapping of key → ``Comparative``."""

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[Any, Comparative] = {}

    def add_a(self, key: Any, value: Any) -> None:
        self._entries.setdefault(key, Comparative()).a = value

    def add_b(self, key: Any, value: Any) -> None:
        self._entries.setdefault(key, Comparative()).b = value

    def keys(self) -> list[Any]:
        return list(self._entries)

    def items(self) -> Iterator[tuple[Any, Comparative]]:
        return iter(self._entries.items())

    def __getitem__(self, key: Any) -> Comparative:
        return self._entries[key]

    def __contains__(self, key: Any) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"ComparativeList({self._entries!r})"


Descend = Callable[[tuple[str, ...], Any, Any, Any], None]


def reconcile(
    path: tuple[str, ...],
    comparatives: ComparativeList,
    changelog: Changelog,
    descend: Descend,
    parent: Any = None,
) -> None:
    """
    Turn a filled ``ComparativeList`` into changes under ``path``.

    An element held by one side only becomes a single CREATE or DELETE
    at ``path + (key,)``.  Elements held by both sides are handed to
    ``descend``, so for identifier keys a reorder alone produces
    nothing and an edit shows up as field-level changes.
    """
    for key, pair in comparatives.items():
        fpath = path + (path_segment(key),)
        if pair.only_a:
            changelog.add(ChangeType.DELETE, fpath, pair.a, None, parent)
        elif pair.only_b:
            changelog.add(ChangeType.CREATE, fpath, None, pair.b, parent)
        else:
            descend(fpath, pair.a, pair.b, parent)
