"""
structdiff.changelog — the change model shared by diff and patch.

A ``Change`` is one atomic mutation at a path.  A ``Changelog`` is an
ordered list of changes: insertion order is meaningful because patch
replays the log in that order, so nothing here ever sorts or dedups.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, Sequence, Union


class ChangeType(str, Enum):
    """The three kinds of atomic change."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    def __str__(self) -> str:
        return self.value


CREATE = ChangeType.CREATE
UPDATE = ChangeType.UPDATE
DELETE = ChangeType.DELETE


@dataclass(frozen=True, slots=True)
class Change:
    """
    One atomic create/update/delete at ``path``.

    ``parent`` is the record that enclosed the changed value on the side
    the change was computed from.  It lets patch allocate a complete new
    element instead of a half-filled one, and is left out of equality and
    of the wire format.
    """
    type: ChangeType
    path: tuple[str, ...]
    from_: Any = None
    to: Any = None
    parent: Any = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", ChangeType(self.type))
        object.__setattr__(self, "path", tuple(self.path))

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "path": list(self.path),
            "from": self.from_,
            "to": self.to,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Change":
        return cls(
            type=ChangeType(data["type"]),
            path=tuple(str(p) for p in data.get("path") or ()),
            from_=data.get("from"),
            to=data.get("to"),
        )

    def __repr__(self) -> str:
        path_str = "/".join(self.path) or "(root)"
        if self.type is ChangeType.CREATE:
            return f"CREATE at {path_str}: {self.to!r}"
        if self.type is ChangeType.DELETE:
            return f"DELETE at {path_str}: {self.from_!r}"
        return f"UPDATE at {path_str}: {self.from_!r} → {self.to!r}"


PathPattern = Sequence[Union[str, "re.Pattern[str]"]]


class Changelog(list):
    """An ordered list of ``Change`` records."""

    def add(
        self,
        change_type: ChangeType,
        path: Iterable[str],
        from_: Any = None,
        to: Any = None,
        parent: Any = None,
    ) -> Change:
        change = Change(ChangeType(change_type), tuple(path), from_, to, parent)
        self.append(change)
        return change

    def filter(self, pattern: PathPattern) -> "Changelog":
        """Changes whose path matches ``pattern``, as a new changelog."""
        compiled = _compile(pattern)
        return Changelog(c for c in self if _path_matches(compiled, c.path))

    def filter_out(self, pattern: PathPattern) -> "Changelog":
        """Changes whose path does not match ``pattern``, as a new changelog."""
        compiled = _compile(pattern)
        return Changelog(c for c in self if not _path_matches(compiled, c.path))

    def paths(self) -> list[tuple[str, ...]]:
        return [c.path for c in self]

    def of_type(self, change_type: ChangeType) -> "Changelog":
        change_type = ChangeType(change_type)
        return Changelog(c for c in self if c.type is change_type)

    def __repr__(self) -> str:
        return f"Changelog({list.__repr__(self)})"


# ═══════════════════════════════════════════════════════════════════
#  PATH MATCHING
# ═══════════════════════════════════════════════════════════════════

def _compile(pattern: PathPattern) -> list[tuple[str, Optional["re.Pattern[str]"]]]:
    """
    Compile each pattern segment.

    A segment that is not a valid regular expression is matched
    literally.
    """
    out = []
    for seg in pattern:
        if isinstance(seg, re.Pattern):
            out.append((seg.pattern, seg))
            continue
        seg = str(seg)
        try:
            out.append((seg, re.compile(seg)))
        except re.error:
            out.append((seg, None))
    return out


def _path_matches(
    compiled: list[tuple[str, Optional["re.Pattern[str]"]]],
    path: tuple[str, ...],
) -> bool:
    # A shorter pattern matches as a prefix; a longer one never matches.
    if len(compiled) > len(path):
        return False
    for (literal, regex), seg in zip(compiled, path):
        if seg == literal:
            continue
        if regex is None or regex.search(seg) is None:
            return False
    return True
