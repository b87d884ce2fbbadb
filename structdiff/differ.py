"""
structdiff.differ — the diff engine
===================================

``Differ.diff(a, b)`` walks two values in lock-step and records every
difference as an atomic ``Change`` in a ``Changelog``.

DISPATCH
════════

Each pair of values is classified (see ``structdiff.model``) and handled
by the first rule that applies:

    1. both ABSENT                       → nothing
    2. kinds disagree (None aside)       → TypeMismatchError, or one UPDATE
                                           when ``allow_type_mismatch``
    3. a custom ``ValueDiffer`` matches  → it owns the node
    4. the very same object on both sides→ nothing
    5. None on either side               → optional-reference rule
    6. the kind's comparator             → see below

Numbers (int and float) form one family, as do lists and tuples, so
``1`` vs ``1.5`` is an UPDATE rather than a mismatch.

COMPARATORS
═══════════

    primitive   UPDATE when unequal; CREATE/DELETE against ABSENT.
                Times are compared at ``time_precision`` granularity.

    record      field by field, skipping excluded and immutable fields
                and those the ``filter`` rejects.  A record against
                ABSENT is itemized: each field becomes its own
                CREATE/DELETE ("whole-record materialization"), unless
                ``disable_struct_values``.

    sequence    identifier-bearing elements are matched by identifier.
                Otherwise by membership (default): an element of ``a``
                with no equal, still-unclaimed element in ``b`` is
                DELETEd at its index in ``a``, and the reverse for
                CREATE.  A DELETE and CREATE landing on the same index
                collapse into a recursive diff.  With ``slice_ordering``
                elements are compared index by index and the tail of the
                longer side is created or deleted.

    map         matched by key.

Every pair of composite values passes the ``CycleGuard`` first, so
self-referential graphs terminate.

PARENT
══════

Each change remembers the record that encloses it on the modified side
(``Change.parent``).  Patch uses it to allocate a complete record when
the target lacks one.  Non-record parents are dropped, and
``discard_parent`` drops all of them.
"""

from __future__ import annotations

import datetime as dt
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional

from .changelog import Changelog, ChangeType
from .comparative import ComparativeList, reconcile
from .config import DiffConfig
from .errors import (
    InvalidChangeTypeError,
    StructDiffError,
    TypeMismatchError,
    UnsupportedKindError,
)
from .guard import CycleGuard
from .logging import get_logger
from .model import (
    ABSENT,
    FieldSpec,
    Kind,
    classify,
    identifier_of,
    is_record,
    record_fields,
    zero_like,
)
from .patch import PatchLog, apply_changelog

log = get_logger("structdiff.differ")

Descend = Callable[[tuple[str, ...], Any, Any, Any], None]


# ═══════════════════════════════════════════════════════════════════
#  CUSTOM COMPARATORS
# ═══════════════════════════════════════════════════════════════════

class ValueDiffer(ABC):
    """
    A user-supplied comparator consulted before the built-in dispatch.

    The first differ whose ``match`` returns True owns the node.  It
    writes whatever changes it sees fit into ``changelog`` and may call
    ``descend(path, a, b, parent)`` to hand children back to the engine
    (custom differs included), which is how recursive types such as
    trees get diffed with shortcuts of their own.
    """

    @abstractmethod
    def match(self, a: Any, b: Any) -> bool:
        ...

    @abstractmethod
    def diff(
        self,
        changelog: Changelog,
        path: tuple[str, ...],
        a: Any,
        b: Any,
        parent: Any,
        descend: Descend,
    ) -> None:
        ...


# ═══════════════════════════════════════════════════════════════════
#  KIND FAMILIES
# ═══════════════════════════════════════════════════════════════════

_FAMILY = {
    Kind.INT: Kind.FLOAT,
    Kind.ARRAY: Kind.SEQUENCE,
}


def _mismatched(ka: Kind, kb: Kind) -> bool:
    if ka in (Kind.ABSENT, Kind.NIL) or kb in (Kind.ABSENT, Kind.NIL):
        return False
    return _FAMILY.get(ka, ka) is not _FAMILY.get(kb, kb)


_NAIVE_EPOCH = dt.datetime(1970, 1, 1)
_AWARE_EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)


# ═══════════════════════════════════════════════════════════════════
#  DIFFER
# ═══════════════════════════════════════════════════════════════════

class Differ:
    """
    A configured diff engine.

    One Differ may be reused for any number of sequential calls: the
    changelog buffer and cycle guard are reset at the start of each
    ``diff``.  It is not safe to share one Differ between threads.
    """

    def __init__(self, config: Optional[DiffConfig] = None, **options: Any) -> None:
        self.config = DiffConfig.from_options(config, **options)
        self._changelog = Changelog()
        self._guard = CycleGuard()
        self._handlers: dict[Kind, Callable[[tuple[str, ...], Any, Any, Any], None]] = {
            Kind.RECORD: self._diff_record,
            Kind.SEQUENCE: self._diff_sequence,
            Kind.ARRAY: self._diff_sequence,
            Kind.MAP: self._diff_map,
            Kind.STRING: self._diff_primitive,
            Kind.BOOL: self._diff_primitive,
            Kind.INT: self._diff_primitive,
            Kind.FLOAT: self._diff_primitive,
            Kind.ENUM: self._diff_primitive,
            Kind.TIME: self._diff_primitive,
        }

    def __repr__(self) -> str:
        return f"Differ({self.config!r})"

    # ── public API ─────────────────────────────────────────────────

    def diff(self, a: Any, b: Any) -> Changelog:
        """
        The changes that turn ``a`` into ``b``.

        Raises ``TypeMismatchError`` or ``UnsupportedKindError``; nothing
        is returned from a failed call.
        """
        log.debug("diff.start", left=type(a).__name__, right=type(b).__name__)
        changelog = self._run(a, b)
        log.debug("diff.done", changes=len(changelog))
        return changelog

    def changed(self, a: Any, b: Any) -> bool:
        return len(self._run(a, b)) > 0

    def struct_values(
        self,
        change_type: ChangeType | str,
        path: Iterable[str],
        value: Any,
    ) -> Changelog:
        """
        Itemize every field of the record ``value`` as created or deleted.

        Honors the same field metadata and filter as ``diff``.
        """
        self._reset()
        self._struct_values(change_type, tuple(path), value)
        return self._changelog

    def patch(self, changelog: Iterable[Any], target: Any) -> PatchLog:
        return apply_changelog(changelog, target, self.config)

    def merge(self, original: Any, modified: Any, target: Any) -> PatchLog:
        """``diff(original, modified)`` replayed onto ``target``."""
        return self.patch(self.diff(original, modified), target)

    # ── engine ─────────────────────────────────────────────────────

    def _reset(self) -> None:
        self._changelog = Changelog()
        self._guard.reset()

    def _run(self, a: Any, b: Any) -> Changelog:
        self._reset()
        try:
            self._diff((), a, b, None)
        finally:
            self._guard.reset()
        return self._changelog

    def _diff(self, path: tuple[str, ...], a: Any, b: Any, parent: Any = None) -> None:
        if parent is not None and (self.config.discard_parent or not is_record(parent)):
            parent = None

        ka, kb = classify(a), classify(b)
        if ka is Kind.ABSENT and kb is Kind.ABSENT:
            return

        if _mismatched(ka, kb):
            if not self.config.allow_type_mismatch:
                raise TypeMismatchError.between(path, a, b)
            log.debug(
                "diff.type_mismatch",
                path=list(path),
                left=type(a).__name__,
                right=type(b).__name__,
            )
            self._changelog.add(ChangeType.UPDATE, path, a, b, parent)
            return

        for differ in self.config.custom_differs:
            if differ.match(a, b):
                differ.diff(self._changelog, path, a, b, parent, self._diff)
                return

        if a is b:
            return

        if ka is Kind.NIL or kb is Kind.NIL:
            self._diff_nil(path, a, b, parent)
            return

        kind = kb if ka is Kind.ABSENT else ka
        handler = self._handlers.get(kind)
        if handler is None:
            raise UnsupportedKindError.for_value(path, b if a is ABSENT else a)
        handler(path, a, b, parent)

    def _diff_nil(self, path: tuple[str, ...], a: Any, b: Any, parent: Any) -> None:
        """An optional reference that is None on at least one side."""
        if a is None and b is None:
            return
        if a is ABSENT:
            self._changelog.add(ChangeType.CREATE, path, None, b, parent)
        elif b is ABSENT:
            self._changelog.add(ChangeType.DELETE, path, a, None, parent)
        else:
            self._changelog.add(ChangeType.UPDATE, path, a, b, parent)

    # ── primitives ─────────────────────────────────────────────────

    def _diff_primitive(self, path: tuple[str, ...], a: Any, b: Any, parent: Any) -> None:
        if a is ABSENT:
            self._changelog.add(ChangeType.CREATE, path, None, b, parent)
        elif b is ABSENT:
            self._changelog.add(ChangeType.DELETE, path, a, None, parent)
        elif not self._primitive_equal(a, b):
            self._changelog.add(ChangeType.UPDATE, path, a, b, parent)

    def _primitive_equal(self, a: Any, b: Any) -> bool:
        if isinstance(a, (dt.datetime, dt.timedelta)) and type(a) is type(b):
            return self._time_equal(a, b)
        try:
            if a == b:
                return True
            # NaN is the one value unequal to itself.
            return a != a and b != b
        except (TypeError, ValueError):
            return False

    def _time_equal(self, a: Any, b: Any) -> bool:
        """Compare at ``time_precision`` granularity (truncating, not rounding)."""
        precision = self.config.time_precision
        if isinstance(a, dt.timedelta):
            return a // precision == b // precision
        if (a.utcoffset() is None) != (b.utcoffset() is None):
            return False
        epoch = _NAIVE_EPOCH if a.utcoffset() is None else _AWARE_EPOCH
        return (a - epoch) // precision == (b - epoch) // precision

    # ── records ────────────────────────────────────────────────────

    def _diff_record(self, path: tuple[str, ...], a: Any, b: Any, parent: Any) -> None:
        if a is ABSENT or b is ABSENT:
            self._record_against_absent(path, a, b, parent)
            return
        if not self._guard.enter(a, b):
            return
        self._diff_fields(path, a, b)

    def _record_against_absent(self, path: tuple[str, ...], a: Any, b: Any, parent: Any) -> None:
        if a is ABSENT:
            if self.config.disable_struct_values:
                self._changelog.add(ChangeType.CREATE, path, None, b, parent)
            else:
                self._struct_values(ChangeType.CREATE, path, b)
        elif self.config.disable_struct_values:
            self._changelog.add(ChangeType.DELETE, path, a, None, parent)
        else:
            self._struct_values(ChangeType.DELETE, path, a)

    def _diff_fields(self, path: tuple[str, ...], a: Any, b: Any) -> None:
        tag_name = self.config.tag_name
        cls_a, cls_b = type(a), type(b)
        specs = record_fields(cls_a, tag_name)
        for spec in specs:
            self._diff_field(
                path, cls_a, spec,
                getattr(a, spec.attr, ABSENT), getattr(b, spec.attr, ABSENT), b,
            )
        if cls_b is cls_a:
            return
        # Fields only b's class declares.
        known = {spec.attr for spec in specs}
        for spec in record_fields(cls_b, tag_name):
            if spec.attr not in known:
                self._diff_field(path, cls_b, spec, ABSENT, getattr(b, spec.attr, ABSENT), b)

    def _diff_field(
        self,
        path: tuple[str, ...],
        owner: type,
        spec: FieldSpec,
        av: Any,
        bv: Any,
        record: Any,
    ) -> None:
        if spec.excluded or spec.immutable:
            return
        flatten = (
            self.config.flatten_embedded
            and spec.embedded
            and (is_record(av) or is_record(bv))
        )
        fpath = path if flatten else path + (spec.name,)
        if self.config.filter is not None and not self.config.filter(fpath, owner, spec):
            return
        self._diff(fpath, av, bv, record)

    def _struct_values(self, change_type: Any, path: tuple[str, ...], value: Any) -> None:
        try:
            change_type = ChangeType(change_type)
        except ValueError:
            raise InvalidChangeTypeError.for_type(change_type) from None
        if change_type is ChangeType.UPDATE:
            raise InvalidChangeTypeError.for_type(change_type)
        if not is_record(value):
            raise TypeMismatchError.not_a_record(path, value)

        # Diff against the zero record, then relabel what came out.
        inner = Differ(self.config)
        inner._reset()
        inner._diff_fields(path, zero_like(value), value)
        for change in inner._changelog:
            if change_type is ChangeType.CREATE:
                self._changelog.add(ChangeType.CREATE, change.path, None, change.to, change.parent)
            else:
                self._changelog.add(ChangeType.DELETE, change.path, change.to, None, change.parent)

    # ── sequences ──────────────────────────────────────────────────

    def _diff_sequence(self, path: tuple[str, ...], a: Any, b: Any, parent: Any) -> None:
        if a is ABSENT:
            self._changelog.add(ChangeType.CREATE, path, None, b, parent)
            return
        if b is ABSENT:
            self._changelog.add(ChangeType.DELETE, path, a, None, parent)
            return
        if not self._guard.enter(a, b):
            return

        if self._identified(a) or self._identified(b):
            self._diff_identified(path, a, b, parent)
        elif self.config.slice_ordering:
            self._diff_ordered(path, a, b, parent)
        else:
            self._diff_unordered(path, a, b, parent)

    def _identified(self, seq: Any) -> bool:
        """Whether the first element declares a (non-None) identifier."""
        return len(seq) > 0 and identifier_of(seq[0], self.config.tag_name) is not None

    def _diff_identified(self, path: tuple[str, ...], a: Any, b: Any, parent: Any) -> None:
        tag_name = self.config.tag_name
        comparatives = ComparativeList()
        # Elements without an identifier cannot be matched and are skipped.
        for element in a:
            key = identifier_of(element, tag_name)
            if key is not None:
                comparatives.add_a(_hashable(key), element)
        for element in b:
            key = identifier_of(element, tag_name)
            if key is not None:
                comparatives.add_b(_hashable(key), element)
        reconcile(path, comparatives, self._changelog, self._diff, parent)

    def _diff_ordered(self, path: tuple[str, ...], a: Any, b: Any, parent: Any) -> None:
        shared = min(len(a), len(b))
        for i in range(shared):
            self._diff(path + (str(i),), a[i], b[i], parent)
        for i in range(shared, len(a)):
            self._changelog.add(ChangeType.DELETE, path + (str(i),), a[i], None, parent)
        for i in range(shared, len(b)):
            self._changelog.add(ChangeType.CREATE, path + (str(i),), None, b[i], parent)

    def _diff_unordered(self, path: tuple[str, ...], a: Any, b: Any, parent: Any) -> None:
        """
        Membership comparison with duplicates matched once each.

        Every element of ``a`` claims the first equal element of ``b``
        not yet claimed; whatever stays unclaimed on either side is keyed
        by its own index.
        """
        claimed = [False] * len(b)
        comparatives = ComparativeList()
        for i, element in enumerate(a):
            match = self._claim(element, b, claimed)
            if match is None:
                comparatives.add_a(i, element)
        for j, element in enumerate(b):
            if not claimed[j]:
                comparatives.add_b(j, element)
        reconcile(path, comparatives, self._changelog, self._diff, parent)

    def _claim(self, element: Any, candidates: Any, claimed: list[bool]) -> Optional[int]:
        for j, candidate in enumerate(candidates):
            if not claimed[j] and self._equivalent(element, candidate):
                claimed[j] = True
                return j
        return None

    def _equivalent(self, x: Any, y: Any) -> bool:
        """Whether a diff of ``x`` against ``y`` would come out empty."""
        if x is y:
            return True
        kx, ky = classify(x), classify(y)
        if _mismatched(kx, ky):
            return False
        if kx.is_primitive and ky.is_primitive and not self.config.custom_differs:
            return self._primitive_equal(x, y)
        # The probe inherits the pairs being walked right now, so a list that
        # contains itself compares equal instead of recursing forever.  Its
        # own entries stay private to it.
        probe = Differ(self.config)
        probe._guard = self._guard.copy()
        try:
            probe._diff((), x, y, None)
        except StructDiffError:
            return False
        return not probe._changelog

    # ── maps ───────────────────────────────────────────────────────

    def _diff_map(self, path: tuple[str, ...], a: Any, b: Any, parent: Any) -> None:
        if a is not ABSENT and b is not ABSENT and not self._guard.enter(a, b):
            return
        comparatives = ComparativeList()
        if a is not ABSENT:
            for key, value in a.items():
                comparatives.add_a(key, value)
        if b is not ABSENT:
            for key, value in b.items():
                comparatives.add_b(key, value)
        reconcile(path, comparatives, self._changelog, self._diff, parent)


def _hashable(key: Any) -> Any:
    try:
        hash(key)
    except TypeError:
        return repr(key)
    return key


# ═══════════════════════════════════════════════════════════════════
#  MODULE-LEVEL CONVENIENCE
# ═══════════════════════════════════════════════════════════════════

def diff(a: Any, b: Any, **options: Any) -> Changelog:
    """Diff ``a`` against ``b`` with a one-off ``Differ``."""
    return Differ(**options).diff(a, b)


def changed(a: Any, b: Any, **options: Any) -> bool:
    """True if ``diff(a, b)`` would report anything."""
    return Differ(**options).changed(a, b)


def struct_values(
    change_type: ChangeType | str,
    path: Iterable[str],
    value: Any,
    **options: Any,
) -> Changelog:
    return Differ(**options).struct_values(change_type, path, value)
