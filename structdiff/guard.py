"""
structdiff.guard — termination on cyclic object graphs.

Every composite pair the differ descends into is recorded here.  Seeing
the same pair again, in either orientation, means the walk has looped
back on itself; the pair is then treated as unchanged, the way a deep
equality check would.
"""

from __future__ import annotations

from typing import Any


class CycleGuard:
    """Pairs of object identities visited during one diff call."""

    __slots__ = ("_seen", "_pinned")

    def __init__(self) -> None:
        self._seen: set[tuple[int, int]] = set()
        # ids are only unique among live objects, so hold on to everything
        # we have recorded until the guard is reset.
        self._pinned: list[Any] = []

    def enter(self, a: Any, b: Any) -> bool:
        """
        Record the pair ``(a, b)``.

        Returns False if it (or ``(b, a)``) was already recorded, in which
        case the caller must not descend.
        """
        key = (id(a), id(b))
        if key in self._seen or (key[1], key[0]) in self._seen:
            return False
        self._seen.add(key)
        self._seen.add((key[1], key[0]))
        self._pinned.append(a)
        self._pinned.append(b)
        return True

    def copy(self) -> "CycleGuard":
        """An independent guard that starts out knowing every recorded pair."""
        clone = CycleGuard()
        clone._seen = set(self._seen)
        clone._pinned = list(self._pinned)
        return clone

    def reset(self) -> None:
        self._seen.clear()
        self._pinned.clear()

    def __len__(self) -> int:
        return len(self._pinned) // 2
