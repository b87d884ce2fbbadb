"""
structdiff.model — the value model
==================================

Everything the diff and patch engines know about a Python value goes
through this module.  A value is classified into a ``Kind``:

    Kind.RECORD     dataclass instance, or a class registered with
                    ``register_record``                 (named fields)
    Kind.SEQUENCE   list                                (index-addressed)
    Kind.ARRAY      tuple                               (fixed-size)
    Kind.MAP        dict / Mapping                      (key-addressed)
    Kind.NIL        None                                (nil optional reference)
    Kind.STRING     str, bytes
    Kind.BOOL       bool            (never conflated with int)
    Kind.INT        int
    Kind.FLOAT      float, Decimal, Fraction, complex
    Kind.TIME       datetime, date, time, timedelta
    Kind.ENUM       Enum members
    Kind.ABSENT     the ABSENT sentinel: no value present at all

ABSENT vs None
──────────────
``None`` is a value: an optional reference that currently points
nowhere.  ``ABSENT`` means the slot itself does not exist on that side,
e.g. a map key only one side holds, or an identifier-keyed element that
was added.  Diffing a record against ABSENT itemizes the record field by
field (whole-record materialization); diffing a record against None is a
single UPDATE of the reference.

Field metadata
──────────────
Fields carry a tag string under a configurable metadata key (``"diff"``
by default):

    @dataclass
    class Tag:
        name: str = field(metadata={"diff": "name,identifier"})
        value: str = field(metadata={"diff": "value,omitunequal"})
        cache: dict = field(metadata={"diff": "-"})

The first token is the external name (``-`` excludes the field), the
rest are options: ``identifier``, ``immutable``, ``create``,
``nocreate``, ``omitunequal``, ``embedded``.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import numbers
import types
import typing
import collections.abc
from collections.abc import Mapping, MutableMapping
from decimal import Decimal
from enum import Enum, auto
from functools import lru_cache
from typing import Any, Optional


# ═══════════════════════════════════════════════════════════════════
#  SENTINEL AND KINDS
# ═══════════════════════════════════════════════════════════════════

class _Absent:
    """Marker for a side that holds no value at all."""
    __slots__ = ()
    _instance: Optional["_Absent"] = None

    def __new__(cls) -> "_Absent":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"

    def __reduce__(self) -> str:
        return "ABSENT"


ABSENT: Any = _Absent()


class Kind(Enum):
    """Fundamental kind of a runtime value."""
    ABSENT = auto()
    NIL = auto()
    RECORD = auto()
    SEQUENCE = auto()
    ARRAY = auto()
    MAP = auto()
    STRING = auto()
    BOOL = auto()
    INT = auto()
    FLOAT = auto()
    TIME = auto()
    ENUM = auto()
    UNSUPPORTED = auto()

    @property
    def is_composite(self) -> bool:
        return self in (Kind.RECORD, Kind.SEQUENCE, Kind.ARRAY, Kind.MAP)

    @property
    def is_primitive(self) -> bool:
        return self in _PRIMITIVES


_PRIMITIVES = frozenset({
    Kind.STRING, Kind.BOOL, Kind.INT, Kind.FLOAT, Kind.TIME, Kind.ENUM,
})

_TIME_TYPES = (dt.datetime, dt.date, dt.time, dt.timedelta)


def classify(value: Any) -> Kind:
    """Return the ``Kind`` of a runtime value."""
    if value is ABSENT:
        return Kind.ABSENT
    if value is None:
        return Kind.NIL
    # bool before int: bool is a subclass of int.
    if isinstance(value, bool):
        return Kind.BOOL
    # Enum before int/str: IntEnum and StrEnum members are both.
    if isinstance(value, Enum):
        return Kind.ENUM
    if isinstance(value, int):
        return Kind.INT
    if isinstance(value, (float, Decimal)) or isinstance(value, numbers.Number):
        return Kind.FLOAT
    if isinstance(value, (str, bytes, bytearray)):
        return Kind.STRING
    if isinstance(value, _TIME_TYPES):
        return Kind.TIME
    if is_record(value):
        return Kind.RECORD
    if isinstance(value, Mapping):
        return Kind.MAP
    if isinstance(value, list):
        return Kind.SEQUENCE
    if isinstance(value, tuple):
        return Kind.ARRAY
    return Kind.UNSUPPORTED


# ═══════════════════════════════════════════════════════════════════
#  FIELD METADATA
# ═══════════════════════════════════════════════════════════════════

@dataclasses.dataclass(frozen=True, slots=True)
class FieldSpec:
    """Resolved metadata for one record field."""
    attr: str
    name: str
    excluded: bool = False
    identifier: bool = False
    immutable: bool = False
    create: Optional[bool] = None
    omit_unequal: bool = False
    embedded: bool = False

    @property
    def allows_create(self) -> bool:
        """Creation is allowed unless the field says ``nocreate``."""
        return self.create is not False

    def __repr__(self) -> str:
        return f"FieldSpec({self.attr!r} as {self.name!r})"


def parse_tag(attr: str, tag: Optional[str]) -> FieldSpec:
    """
    Parse a ``"name,option,option"`` tag into a ``FieldSpec``.

    A missing or empty name falls back to the attribute name.
    """
    if not tag:
        return FieldSpec(attr=attr, name=attr)

    parts = [p.strip() for p in tag.split(",")]
    name = parts[0] or attr
    options = set(parts[1:])

    create: Optional[bool] = None
    if "create" in options:
        create = True
    if "nocreate" in options:
        create = False

    return FieldSpec(
        attr=attr,
        name=name,
        excluded=name == "-",
        identifier="identifier" in options,
        immutable="immutable" in options,
        create=create,
        omit_unequal="omitunequal" in options,
        embedded="embedded" in options,
    )


# Explicit schema registry for classes that are not dataclasses.
_REGISTRY: dict[type, dict[str, dict[str, Optional[str]]]] = {}


def register_record(
    cls: type,
    fields: Mapping[str, Optional[str]] | typing.Iterable[str],
    *,
    tag_name: str = "diff",
) -> type:
    """
    Declare ``cls`` as a record with the given attributes.

    ``fields`` maps attribute name → tag string (or None for the default
    external name), or is a plain iterable of attribute names.  Returns
    ``cls`` so it can be used as a decorator helper.
    """
    if not isinstance(fields, Mapping):
        fields = {attr: None for attr in fields}
    entry = _REGISTRY.setdefault(cls, {})
    for attr, tag in fields.items():
        entry.setdefault(attr, {})[tag_name] = tag
    record_fields.cache_clear()
    _record_attrs.cache_clear()
    return cls


def unregister_record(cls: type) -> None:
    _REGISTRY.pop(cls, None)
    record_fields.cache_clear()
    _record_attrs.cache_clear()


def is_record(value: Any) -> bool:
    """True for dataclass instances and instances of registered classes."""
    if isinstance(value, type):
        return False
    if dataclasses.is_dataclass(value):
        return True
    return _registered_base(type(value)) is not None


def is_record_type(cls: Any) -> bool:
    return isinstance(cls, type) and (
        dataclasses.is_dataclass(cls) or _registered_base(cls) is not None
    )


def _registered_base(cls: type) -> Optional[type]:
    for base in cls.__mro__:
        if base in _REGISTRY:
            return base
    return None


@lru_cache(maxsize=None)
def _record_attrs(cls: type) -> tuple[str, ...]:
    if dataclasses.is_dataclass(cls):
        return tuple(f.name for f in dataclasses.fields(cls))
    attrs: list[str] = []
    for base in reversed(cls.__mro__):
        for attr in _REGISTRY.get(base, {}):
            if attr not in attrs:
                attrs.append(attr)
    return tuple(attrs)


@lru_cache(maxsize=None)
def record_fields(cls: type, tag_name: str = "diff") -> tuple[FieldSpec, ...]:
    """All fields of a record class, in declaration order, with metadata."""
    if dataclasses.is_dataclass(cls):
        return tuple(
            parse_tag(f.name, f.metadata.get(tag_name))
            for f in dataclasses.fields(cls)
        )
    specs = []
    for attr in _record_attrs(cls):
        tag = None
        for base in cls.__mro__:
            tags = _REGISTRY.get(base, {}).get(attr)
            if tags is not None:
                tag = tags.get(tag_name)
                break
        specs.append(parse_tag(attr, tag))
    return tuple(specs)


def find_field(cls: type, segment: str, tag_name: str = "diff") -> Optional[FieldSpec]:
    """Locate a field by external name, falling back to the attribute name."""
    specs = record_fields(cls, tag_name)
    for spec in specs:
        if spec.name == segment:
            return spec
    for spec in specs:
        if spec.attr == segment:
            return spec
    return None


def identifier_field(cls: type, tag_name: str = "diff") -> Optional[FieldSpec]:
    for spec in record_fields(cls, tag_name):
        if spec.identifier:
            return spec
    return None


def identifier_of(value: Any, tag_name: str = "diff") -> Any:
    """
    The identity key of a record, or None if it declares no identifier.

    A declared identifier whose value is None counts as no identifier.
    """
    if not is_record(value):
        return None
    spec = identifier_field(type(value), tag_name)
    if spec is None:
        return None
    return getattr(value, spec.attr, None)


def path_segment(key: Any) -> str:
    """Render a map key or identity key as a path segment."""
    if isinstance(key, Enum):
        return path_segment(key.value)
    if isinstance(key, str):
        return key
    if isinstance(key, bytes):
        return key.decode("utf-8", errors="backslashreplace")
    return str(key)


# ═══════════════════════════════════════════════════════════════════
#  DECLARED TYPES
# ═══════════════════════════════════════════════════════════════════

@lru_cache(maxsize=None)
def _type_hints(cls: type) -> dict[str, Any]:
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError, AttributeError):
        # Unresolvable forward references: fall back to raw annotations.
        hints: dict[str, Any] = {}
        for base in reversed(cls.__mro__):
            hints.update(getattr(base, "__annotations__", {}))
        return hints


def declared_type(cls: type, attr: str) -> Any:
    """The annotated type of ``cls.attr`` or None when unknown."""
    hint = _type_hints(cls).get(attr)
    return None if isinstance(hint, str) else hint


def unwrap_optional(tp: Any) -> Any:
    """``Optional[X]`` → ``X``; other unions and plain types unchanged."""
    args = typing.get_args(tp)
    if typing.get_origin(tp) in (typing.Union, types.UnionType) and type(None) in args:
        rest = [a for a in args if a is not type(None)]
        if len(rest) == 1:
            return rest[0]
    return tp


def container_origin(tp: Any) -> Any:
    """The runtime class behind a (possibly parametrized) annotation."""
    tp = unwrap_optional(tp)
    origin = typing.get_origin(tp)
    if origin is not None:
        return origin
    return tp if isinstance(tp, type) else None


def element_type(tp: Any) -> Any:
    """Element type of ``list[X]`` / value type of ``dict[K, X]``."""
    tp = unwrap_optional(tp)
    args = typing.get_args(tp)
    origin = typing.get_origin(tp)
    if not args:
        return None
    if origin is not None and isinstance(origin, type) and issubclass(origin, Mapping):
        return args[1] if len(args) == 2 else None
    return args[0]


def key_type(tp: Any) -> Any:
    tp = unwrap_optional(tp)
    args = typing.get_args(tp)
    origin = typing.get_origin(tp)
    if origin is not None and isinstance(origin, type) and issubclass(origin, Mapping) and args:
        return args[0]
    return None


# ═══════════════════════════════════════════════════════════════════
#  ZERO VALUES
# ═══════════════════════════════════════════════════════════════════

def zero_like(value: Any) -> Any:
    """
    The zero value of a runtime value's kind.

    Records are zeroed field by field on a fresh instance created without
    running ``__init__`` so frozen and slotted dataclasses work too.  A
    field holding another record is a reference, and its zero is None.
    """
    kind = classify(value)
    if kind in (Kind.ABSENT, Kind.NIL, Kind.ENUM, Kind.UNSUPPORTED):
        return None
    if kind is Kind.RECORD:
        cls = type(value)
        clone = object.__new__(cls)
        for attr in _record_attrs(cls):
            member = getattr(value, attr, None)
            object.__setattr__(clone, attr, None if is_record(member) else zero_like(member))
        return clone
    if isinstance(value, dt.datetime):
        return dt.datetime.min.replace(tzinfo=value.tzinfo)
    if isinstance(value, dt.date):
        return dt.date.min
    try:
        return type(value)()
    except TypeError:
        if kind is Kind.MAP:
            return {}
        return None


def zero_of_type(tp: Any) -> Any:
    """Zero value for a declared type; None when it cannot be built."""
    if tp is None:
        return None
    if unwrap_optional(tp) is not tp:
        return None
    origin = container_origin(tp)
    if not isinstance(origin, type):
        return None
    if is_record_type(origin):
        return new_record(origin)
    if issubclass(origin, Enum):
        return None
    if issubclass(origin, dt.datetime):
        return dt.datetime.min
    if issubclass(origin, dt.date):
        return dt.date.min
    if origin is object:
        return None
    try:
        return origin()
    except TypeError:
        # Abstract collection annotations (Mapping, Sequence, ...).
        if issubclass(origin, Mapping):
            return {}
        if issubclass(origin, collections.abc.Sequence):
            return []
        return None


def field_default(cls: type, attr: str) -> Any:
    """The dataclass default for ``cls.attr``, or ABSENT if it has none."""
    if dataclasses.is_dataclass(cls):
        for f in dataclasses.fields(cls):
            if f.name != attr:
                continue
            if f.default is not dataclasses.MISSING:
                return f.default
            if f.default_factory is not dataclasses.MISSING:
                return f.default_factory()
    return ABSENT


def new_record(cls: type) -> Any:
    """Build a zero-valued instance of a record class."""
    if dataclasses.is_dataclass(cls):
        kwargs = {}
        for f in dataclasses.fields(cls):
            if not f.init:
                continue
            default = field_default(cls, f.name)
            if default is ABSENT:
                default = zero_of_type(declared_type(cls, f.name))
            kwargs[f.name] = default
        return cls(**kwargs)
    try:
        return cls()
    except TypeError:
        obj = object.__new__(cls)
        for attr in _record_attrs(cls):
            object.__setattr__(obj, attr, None)
        return obj


# ═══════════════════════════════════════════════════════════════════
#  EQUALITY, MUTABILITY, CONVERSION
# ═══════════════════════════════════════════════════════════════════

def deep_equal(a: Any, b: Any) -> bool:
    """
    Structural equality used by the patch engine.

    Like ``==`` but keeps bool and int apart, compares records field by
    field, and terminates on cyclic graphs.
    """
    return _deep_equal(a, b, set())


def _deep_equal(a: Any, b: Any, seen: set[tuple[int, int]]) -> bool:
    if a is b:
        return True
    ka, kb = classify(a), classify(b)
    if ka is not kb:
        return False

    if ka.is_composite:
        pair = (id(a), id(b))
        if pair in seen:
            return True
        seen.add(pair)

    if ka in (Kind.SEQUENCE, Kind.ARRAY):
        return len(a) == len(b) and all(
            _deep_equal(x, y, seen) for x, y in zip(a, b)
        )
    if ka is Kind.MAP:
        if a.keys() != b.keys():
            return False
        return all(_deep_equal(a[k], b[k], seen) for k in a)
    if ka is Kind.RECORD:
        if type(a) is not type(b):
            return False
        return all(
            _deep_equal(getattr(a, attr, None), getattr(b, attr, None), seen)
            for attr in _record_attrs(type(a))
        )
    try:
        return bool(a == b)
    except (TypeError, ValueError):
        return False


def is_frozen_record(value: Any) -> bool:
    params = getattr(type(value), "__dataclass_params__", None)
    return bool(params is not None and params.frozen)


def is_mutable_target(value: Any) -> bool:
    """Whether patch can mutate ``value`` in place."""
    kind = classify(value)
    if kind is Kind.SEQUENCE:
        return True
    if kind is Kind.MAP:
        return isinstance(value, MutableMapping)
    if kind is Kind.RECORD:
        return not is_frozen_record(value)
    return False


def convert_to(value: Any, target_type: Any) -> Any:
    """
    Convert ``value`` to ``target_type`` when they share a representation.

    ``CustomStr("a")`` for a plain ``"a"``, ``Color(1)`` for ``1`` on an
    IntEnum field.  Anything else is returned unchanged.
    """
    cls = container_origin(target_type)
    if cls is None or value is None or isinstance(value, cls):
        return value
    if typing.get_origin(unwrap_optional(target_type)) is not None:
        return value
    if issubclass(cls, Enum):
        try:
            return cls(value)
        except (ValueError, TypeError):
            return value
    bases = tuple(b for b in cls.__mro__[1:] if b is not object)
    if bases and isinstance(value, bases):
        try:
            return cls(value)
        except (ValueError, TypeError):
            return value
    return value

