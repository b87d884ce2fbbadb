"""
structdiff.patch — replaying a changelog onto a live target
===========================================================

``patch(changelog, target)`` applies every change to ``target`` in
place and returns a ``PatchLog`` with one entry per change.  Patching is
best effort: a change that cannot be applied is flagged and carries an
error, and the remaining changes are still applied.  Nothing is raised
out of ``patch``.

WALKING THE PATH
════════════════

The target must be mutable (a list, a mutable mapping, or a record that
is not a frozen dataclass).  Each path segment then moves a cursor:

    record     the field whose external name (or attribute name) is the
               segment.  Excluded and immutable fields are IGNORED.
               The field's ``nocreate`` / ``omitunequal`` options apply
               to everything below it.
    sequence   a numeric index, or for identifier-bearing elements the
               element whose identifier renders as the segment.
    map        an existing key that renders as the segment, else the
               segment converted to the key type.

A missing intermediate value is allocated for CREATE (and for UPDATE
into a nil record field or map) when creation is allowed, from the
change's ``parent`` where that is the record being rebuilt, or from the
declared type otherwise.

APPLYING
════════

    sequence  The element at the recorded index must still equal
              ``from``.  If it does not, the sequence is scanned for an
              equal element and the change is retargeted (a notice is
              attached to the entry).  DELETE removes by swapping in the
              last element, or in order with ``stable_delete``.  CREATE
              appends when nothing matches, so it is not idempotent.
    map       set or remove the key.  ``omitunequal`` skips the change
              when the current value is not ``from``.
    field     overwrite, or reset to the zero value on DELETE.

Values written into the target are deep copies of the change's ``to``,
so the patched target never shares containers with the diff's input.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Flag, auto
from typing import Any, Iterable, Optional

from .changelog import Change, ChangeType
from .config import DiffConfig
from .errors import ErrorCode, PatchError
from .logging import get_logger
from .model import (
    ABSENT,
    FieldSpec,
    Kind,
    classify,
    container_origin,
    convert_to,
    declared_type,
    deep_equal,
    element_type,
    find_field,
    identifier_of,
    is_mutable_target,
    is_record,
    key_type,
    path_segment,
    record_fields,
    unwrap_optional,
    zero_like,
    zero_of_type,
)

log = get_logger("structdiff.patch")


# ═══════════════════════════════════════════════════════════════════
#  FLAGS AND LOG
# ═══════════════════════════════════════════════════════════════════

class PatchFlags(Flag):
    """Outcome flags of one patch entry, plus the field options in force."""
    NONE = 0
    OPTION_CREATE = auto()
    OPTION_OMIT_UNEQUAL = auto()
    OPTION_IMMUTABLE = auto()
    INVALID_TARGET = auto()
    APPLIED = auto()
    FAILED = auto()
    CREATED = auto()
    IGNORED = auto()
    DELETED = auto()
    UPDATED = auto()


@dataclass
class PatchLogEntry:
    """How one change was applied."""
    path: tuple[str, ...]
    from_: Any = None
    to: Any = None
    flags: PatchFlags = PatchFlags.NONE
    error: Optional[PatchError] = None

    def set_flag(self, flag: PatchFlags) -> None:
        self.flags |= flag

    def has_flag(self, flag: PatchFlags) -> bool:
        return bool(self.flags & flag)

    def add_error(self, error: PatchError) -> None:
        """Attach ``error``, chained after any error already recorded."""
        self.error = error if self.error is None else self.error.with_cause(error)

    @property
    def applied(self) -> bool:
        return self.has_flag(PatchFlags.APPLIED)

    @property
    def failed(self) -> bool:
        return self.has_flag(PatchFlags.FAILED | PatchFlags.IGNORED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": list(self.path),
            "from": self.from_,
            "to": self.to,
            "flags": [f.name for f in PatchFlags if f.value and f in self.flags],
            "error": self.error.to_dict() if self.error is not None else None,
        }

    def __repr__(self) -> str:
        path_str = "/".join(self.path) or "(root)"
        names = "|".join(f.name for f in PatchFlags if f.value and f in self.flags)
        if self.error is None:
            return f"PatchLogEntry({path_str}: {names})"
        return f"PatchLogEntry({path_str}: {names}, error={str(self.error)!r})"


class PatchLog(list):
    """One ``PatchLogEntry`` per input change, in changelog order."""

    def has_errors(self) -> bool:
        """True if any entry failed or was ignored."""
        return any(entry.failed for entry in self)

    def applied(self) -> "PatchLog":
        return PatchLog(entry for entry in self if entry.applied)

    def errors(self) -> "PatchLog":
        return PatchLog(entry for entry in self if entry.failed)

    def __repr__(self) -> str:
        return f"PatchLog({list.__repr__(self)})"


# ═══════════════════════════════════════════════════════════════════
#  SLOTS: writable locations inside the target
# ═══════════════════════════════════════════════════════════════════

class _Slot:
    """A location in the target that can be read and written."""
    declared: Any = None

    def get(self) -> Any:
        raise NotImplementedError

    def set(self, value: Any) -> None:
        raise NotImplementedError


class _RootSlot(_Slot):
    def __init__(self, target: Any) -> None:
        self.target = target

    def get(self) -> Any:
        return self.target

    def set(self, value: Any) -> None:
        # The caller holds the only reference to the root.
        raise PatchError.invalid_target()


class _FieldSlot(_Slot):
    def __init__(self, record: Any, spec: FieldSpec) -> None:
        self.record = record
        self.spec = spec
        self.declared = declared_type(type(record), spec.attr)

    def get(self) -> Any:
        return getattr(self.record, self.spec.attr, ABSENT)

    def set(self, value: Any) -> None:
        setattr(self.record, self.spec.attr, value)


class _KeySlot(_Slot):
    def __init__(self, mapping: Any, key: Any, declared: Any) -> None:
        self.mapping = mapping
        self.key = key
        self.declared = declared

    def get(self) -> Any:
        return self.mapping.get(self.key, ABSENT)

    def set(self, value: Any) -> None:
        self.mapping[self.key] = value

    def delete(self) -> None:
        self.mapping.pop(self.key, None)


class _SequenceView:
    """
    A list, or a tuple held in a writable slot.

    Tuples are edited as a list copy and written back, rebuilt with
    their own type, through the slot that holds them.
    """

    def __init__(self, value: Any, holder: _Slot) -> None:
        self.value = value
        self.holder = holder
        self.items: list[Any] = value if isinstance(value, list) else list(value)

    def _commit(self) -> None:
        if self.items is self.value:
            return
        if hasattr(self.value, "_fields"):
            rebuilt = type(self.value)(*self.items)
        else:
            rebuilt = type(self.value)(self.items)
        self.holder.set(rebuilt)
        self.value = rebuilt

    def write(self, index: int, value: Any) -> None:
        self.items[index] = value
        self._commit()

    def append(self, value: Any) -> None:
        self.items.append(value)
        self._commit()

    def remove(self, index: int, stable: bool) -> None:
        if stable:
            del self.items[index]
        else:
            self.items[index] = self.items[-1]
            del self.items[-1]
        self._commit()


class _IndexSlot(_Slot):
    def __init__(self, view: _SequenceView, index: Optional[int], declared: Any) -> None:
        self.view = view
        self.index = index
        self.declared = declared

    def get(self) -> Any:
        if self.index is None or self.index >= len(self.view.items):
            return ABSENT
        return self.view.items[self.index]

    def set(self, value: Any) -> None:
        if self.index is None or self.index >= len(self.view.items):
            self.index = len(self.view.items)
            self.view.append(value)
        else:
            self.view.write(self.index, value)


# ═══════════════════════════════════════════════════════════════════
#  PATCHER
# ═══════════════════════════════════════════════════════════════════

_WRITE_FAULTS = (AttributeError, TypeError, IndexError, KeyError, ValueError)


class _Patcher:
    """Applies single changes under one ``DiffConfig``."""

    def __init__(self, config: DiffConfig) -> None:
        self.config = config
        self.tag_name = config.tag_name

    def apply(self, change: Change, target: Any) -> PatchLogEntry:
        entry = PatchLogEntry(change.path, change.from_, change.to)
        try:
            if not is_mutable_target(target):
                raise PatchError.invalid_target()
            self._walk(change, target, entry)
        except PatchError as err:
            entry.set_flag(PatchFlags.FAILED)
            if err.code is ErrorCode.PATCH_INVALID_TARGET:
                entry.set_flag(PatchFlags.INVALID_TARGET)
            entry.add_error(err)
        except _WRITE_FAULTS as exc:
            entry.set_flag(PatchFlags.INVALID_TARGET | PatchFlags.FAILED)
            entry.add_error(PatchError.invalid_target().with_cause(exc))
        return entry

    # ── walk ───────────────────────────────────────────────────────

    def _walk(self, change: Change, target: Any, entry: PatchLogEntry) -> None:
        path = change.path
        if not path:
            raise PatchError.new(
                "cannot replace the patch target itself",
                code=ErrorCode.PATCH_INVALID_TARGET,
            )

        node = target
        slot: _Slot = _RootSlot(target)
        options = PatchFlags.OPTION_CREATE

        for depth, segment in enumerate(path):
            last = depth == len(path) - 1
            kind = classify(node)

            if kind is Kind.RECORD:
                resolved = self._field(node, segment)
                if resolved is None:
                    raise PatchError.new(
                        f"Unable to access path value {segment}. Target field is invalid",
                        code=ErrorCode.PATCH_PATH_UNRESOLVED,
                        segment=segment,
                    )
                holder, spec = resolved
                if spec.excluded or spec.immutable:
                    entry.set_flag(PatchFlags.OPTION_IMMUTABLE)
                    self._ignore(
                        entry,
                        f"field {segment} is immutable",
                        ErrorCode.PATCH_INVALID_TARGET,
                    )
                    return
                options = _field_options(spec)
                slot = _FieldSlot(holder, spec)

            elif kind in (Kind.SEQUENCE, Kind.ARRAY):
                view = _SequenceView(node, slot)
                if last:
                    hint = change.to if change.to is not None else change.from_
                else:
                    hint = change.parent
                index = _sequence_index(view.items, segment, self.tag_name, hint)
                if last:
                    self._apply_sequence(change, entry, view, index, segment, options)
                    return
                slot = _IndexSlot(view, index, element_type(slot.declared))

            elif kind is Kind.MAP:
                key = _map_key(node, segment, slot.declared)
                slot = _KeySlot(node, key, element_type(slot.declared))
                if last:
                    self._apply_map(change, entry, slot, options)
                    return

            else:
                raise PatchError.new(
                    f"Unable to access path value {segment}. "
                    f"Target is a {type(node).__name__}",
                    code=ErrorCode.PATCH_PATH_UNRESOLVED,
                    segment=segment,
                )

            if last:
                self._apply_field(change, entry, slot, options)
                return

            node = slot.get()
            if node is ABSENT or node is None:
                node = self._allocate(change, entry, slot, depth, options)
                if node is None:
                    return

    def _field(self, record: Any, segment: str) -> Optional[tuple[Any, FieldSpec]]:
        """The field ``segment`` names, searching embedded records when flattened."""
        spec = find_field(type(record), segment, self.tag_name)
        if spec is not None:
            return record, spec
        if self.config.flatten_embedded:
            for candidate in record_fields(type(record), self.tag_name):
                inner = getattr(record, candidate.attr, None)
                if candidate.embedded and is_record(inner):
                    found = self._field(inner, segment)
                    if found is not None:
                        return found
        return None

    def _allocate(
        self,
        change: Change,
        entry: PatchLogEntry,
        slot: _Slot,
        depth: int,
        options: PatchFlags,
    ) -> Any:
        """Fill an empty intermediate slot, or record why it stays empty."""
        is_map = _is_map_type(slot.declared)
        if change.type is ChangeType.DELETE:
            message = (
                "target has nil map nothing to delete" if is_map
                else f"target has no value at {change.path[depth]} nothing to delete"
            )
            self._ignore(entry, message, ErrorCode.PATCH_NIL_COLLECTION)
            return None
        if isinstance(slot, _IndexSlot) and change.type is not ChangeType.CREATE:
            self._ignore(entry, "Unable to find matching slice index entry", ErrorCode.PATCH_NOT_FOUND)
            return None
        if PatchFlags.OPTION_CREATE not in options:
            message = (
                "target has nil map and create not set" if is_map
                else "target has nil value and create not set"
            )
            self._ignore(entry, message, ErrorCode.PATCH_NIL_COLLECTION)
            return None

        value = self._new_value(change, slot, depth)
        if value is None:
            raise PatchError.new(
                f"unable to allocate a value at {change.path[depth]}",
                code=ErrorCode.PATCH_PATH_UNRESOLVED,
                segment=change.path[depth],
            )
        slot.set(value)
        entry.set_flag(PatchFlags.CREATED)
        return value

    def _new_value(self, change: Change, slot: _Slot, depth: int) -> Any:
        path = change.path
        parent = change.parent
        # The parent is the record enclosing the final field: rebuild it whole.
        if (
            depth == len(path) - 2
            and is_record(parent)
            and find_field(type(parent), path[-1], self.tag_name) is not None
        ):
            expected = container_origin(slot.declared)
            if expected is None or isinstance(parent, expected):
                return copy.deepcopy(parent)

        if slot.declared is not None:
            value = zero_of_type(unwrap_optional(slot.declared))
            if value is not None:
                return value
        if isinstance(slot, _IndexSlot) and slot.view.items:
            return zero_like(slot.view.items[0])
        return [] if path[depth + 1].isdigit() else {}

    # ── apply ──────────────────────────────────────────────────────

    def _apply_sequence(
        self,
        change: Change,
        entry: PatchLogEntry,
        view: _SequenceView,
        index: Optional[int],
        segment: str,
        options: PatchFlags,
    ) -> None:
        entry.set_flag(options)
        items = view.items
        current = items[index] if index is not None and index < len(items) else ABSENT
        found = current is not ABSENT and deep_equal(current, change.from_)

        # CREATE has nothing to look for; it lands at the index or is appended.
        if (
            not found
            and change.type is not ChangeType.CREATE
            and PatchFlags.OPTION_OMIT_UNEQUAL not in options
        ):
            entry.add_error(
                PatchError.new(f"value index {segment} is invalid", code=ErrorCode.PATCH_NOT_FOUND)
                .with_cause(PatchError.new("scanning for value index"))
            )
            for i, element in enumerate(items):
                if deep_equal(element, change.from_):
                    entry.add_error(PatchError.new(f"value changed index to {i}"))
                    log.info(
                        "patch.index_retargeted",
                        path=list(change.path),
                        index=i,
                    )
                    index, found = i, True
                    break

        if change.type is ChangeType.DELETE:
            if found:
                view.remove(index, self.config.stable_delete)
                entry.set_flag(PatchFlags.DELETED | PatchFlags.APPLIED)
            else:
                self._ignore(entry, "Unable to find matching slice index entry", ErrorCode.PATCH_NOT_FOUND)
            return

        value = self._converted(_owned(change.to), element_type(view.holder.declared))
        if found:
            view.write(index, value)
            entry.set_flag(PatchFlags.UPDATED | PatchFlags.APPLIED)
        elif change.type is ChangeType.CREATE and PatchFlags.OPTION_CREATE in options:
            view.append(value)
            entry.set_flag(PatchFlags.CREATED | PatchFlags.APPLIED)
        else:
            self._ignore(entry, "Unable to find matching slice index entry", ErrorCode.PATCH_NOT_FOUND)

    def _apply_map(
        self,
        change: Change,
        entry: PatchLogEntry,
        slot: _KeySlot,
        options: PatchFlags,
    ) -> None:
        entry.set_flag(options)
        if PatchFlags.OPTION_OMIT_UNEQUAL in options and not _matches_from(slot.get(), change):
            self._ignore(entry, "target change doesn't match original", ErrorCode.PATCH_VALUE_MISMATCH)
            return
        if change.type is ChangeType.DELETE:
            slot.delete()
            entry.set_flag(PatchFlags.DELETED | PatchFlags.APPLIED)
            return
        slot.set(self._converted(_owned(change.to), slot.declared))
        entry.set_flag(PatchFlags.UPDATED | PatchFlags.APPLIED)

    def _apply_field(
        self,
        change: Change,
        entry: PatchLogEntry,
        slot: _Slot,
        options: PatchFlags,
    ) -> None:
        entry.set_flag(options)
        current = slot.get()
        if PatchFlags.OPTION_OMIT_UNEQUAL in options and not _matches_from(current, change):
            self._ignore(entry, "target change doesn't match original", ErrorCode.PATCH_VALUE_MISMATCH)
            return
        if change.type is ChangeType.DELETE:
            slot.set(_zero_for(current))
            entry.set_flag(PatchFlags.DELETED | PatchFlags.APPLIED)
            return
        slot.set(self._converted(_owned(change.to), slot.declared))
        entry.set_flag(PatchFlags.UPDATED | PatchFlags.APPLIED)

    # ── helpers ────────────────────────────────────────────────────

    def _converted(self, value: Any, declared: Any) -> Any:
        if not self.config.convert_compatible_types or declared is None:
            return value
        return convert_to(value, declared)

    @staticmethod
    def _ignore(entry: PatchLogEntry, message: str, code: ErrorCode) -> None:
        entry.set_flag(PatchFlags.IGNORED)
        entry.add_error(PatchError.new(message, code=code))


def _field_options(spec: FieldSpec) -> PatchFlags:
    options = PatchFlags.NONE
    if spec.allows_create:
        options |= PatchFlags.OPTION_CREATE
    if spec.omit_unequal:
        options |= PatchFlags.OPTION_OMIT_UNEQUAL
    return options


def _sequence_index(items: list[Any], segment: str, tag_name: str, hint: Any) -> Optional[int]:
    """
    Resolve a path segment to a list index, or None when nothing matches.

    Identifier-bearing elements are addressed by identifier, everything
    else by position.
    """
    probe = items[0] if items else hint
    if identifier_of(probe, tag_name) is not None:
        for i, element in enumerate(items):
            key = identifier_of(element, tag_name)
            if key is not None and path_segment(key) == segment:
                return i
        return None
    try:
        index = int(segment)
    except ValueError:
        return None
    return index if index >= 0 else None


def _map_key(mapping: Mapping, segment: str, declared: Any) -> Any:
    """The key of ``mapping`` that ``segment`` stands for."""
    for key in mapping:
        if path_segment(key) == segment:
            return key
    kt = key_type(declared)
    if kt is None and mapping:
        kt = type(next(iter(mapping)))
    kt = container_origin(kt) if kt is not None else None
    if kt is None or kt is str:
        return segment
    if kt is bool:
        return segment == "True"
    # Enums are converted from their value's rendering.
    members = getattr(kt, "__members__", None)
    if members is not None:
        for member in members.values():
            if path_segment(member) == segment:
                return member
        return segment
    try:
        return kt(segment)
    except (TypeError, ValueError):
        return segment


def _is_map_type(declared: Any) -> bool:
    origin = container_origin(declared)
    return isinstance(origin, type) and issubclass(origin, Mapping)


def _matches_from(current: Any, change: Change) -> bool:
    return deep_equal(None if current is ABSENT else current, change.from_)


def _owned(value: Any) -> Any:
    if classify(value).is_composite:
        return copy.deepcopy(value)
    return value


def _zero_for(current: Any) -> Any:
    if current is ABSENT or current is None or is_record(current):
        return None
    return zero_like(current)


def _as_change(change: Any) -> Change:
    if isinstance(change, Change):
        return change
    return Change.from_dict(change)


# ═══════════════════════════════════════════════════════════════════
#  ENTRY POINTS
# ═══════════════════════════════════════════════════════════════════

def apply_changelog(changelog: Iterable[Any], target: Any, config: DiffConfig) -> PatchLog:
    """Apply every change in order; see the module docstring."""
    patcher = _Patcher(config)
    result = PatchLog()
    for raw in changelog:
        entry = patcher.apply(_as_change(raw), target)
        if entry.has_flag(PatchFlags.FAILED):
            log.warning("patch.entry_failed", path=list(entry.path), error=str(entry.error))
        elif entry.has_flag(PatchFlags.IGNORED):
            log.warning("patch.entry_ignored", path=list(entry.path), error=str(entry.error))
        result.append(entry)
    log.debug(
        "patch.done",
        entries=len(result),
        applied=sum(1 for e in result if e.applied),
        failed=sum(1 for e in result if e.failed),
    )
    return result


def patch(changelog: Iterable[Any], target: Any, **options: Any) -> PatchLog:
    """Apply ``changelog`` to ``target`` in place."""
    return apply_changelog(changelog, target, DiffConfig.from_options(**options))
