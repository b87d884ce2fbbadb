"""
Test suite for the structdiff value model and its supporting pieces.

    §1  Kind classification
    §2  Field tags and the record registry
    §3  Identifiers and path segments
    §4  Declared types and zero values
    §5  Deep equality, mutability, conversion
    §6  Cycle guard and comparative lists
    §7  Configuration
"""

import dataclasses
import datetime as dt
import sys
import os
import types
import typing
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, IntEnum
from fractions import Fraction
from typing import Optional

import pytest

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from structdiff import (
    ABSENT, CREATE, DELETE, UPDATE,
    Change, Changelog, Comparative, ComparativeList, ConfigError, CycleGuard,
    DiffConfig, Kind, classify, diff, register_record, unregister_record,
)
from structdiff.comparative import reconcile
from structdiff.model import (
    convert_to,
    deep_equal,
    find_field,
    identifier_of,
    is_mutable_target,
    new_record,
    parse_tag,
    path_segment,
    record_fields,
    zero_like,
    zero_of_type,
)


class Color(Enum):
    RED = "red"
    BLUE = "blue"


class Level(IntEnum):
    LOW = 1
    HIGH = 2


class Label(str):
    pass


@dataclass
class Tag:
    name: str = field(default="", metadata={"diff": "name,identifier"})
    value: str = ""


@dataclass
class Profile:
    bio: str = ""


@dataclass
class Owner:
    name: str = ""
    profile: Optional[Profile] = None
    tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Point:
    x: int = 0


class Plain:
    def __init__(self, name="", size=0):
        self.name = name
        self.size = size


@pytest.fixture
def plain_record():
    register_record(Plain, {"name": "name,identifier", "size": None})
    yield Plain
    unregister_record(Plain)


# ═══════════════════════════════════════════════════════════════════
#  §1  KIND CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════

class TestClassify:

    @pytest.mark.parametrize("value,kind", [
        (ABSENT, Kind.ABSENT),
        (None, Kind.NIL),
        (True, Kind.BOOL),
        (1, Kind.INT),
        (1.5, Kind.FLOAT),
        (Decimal("1"), Kind.FLOAT),
        (Fraction(1, 3), Kind.FLOAT),
        ("s", Kind.STRING),
        (b"s", Kind.STRING),
        (dt.datetime(2020, 1, 1), Kind.TIME),
        (dt.date(2020, 1, 1), Kind.TIME),
        (dt.timedelta(1), Kind.TIME),
        (Color.RED, Kind.ENUM),
        (Level.LOW, Kind.ENUM),
        ([1], Kind.SEQUENCE),
        ((1,), Kind.ARRAY),
        ({}, Kind.MAP),
        (types.MappingProxyType({}), Kind.MAP),
        (Tag(), Kind.RECORD),
        (object(), Kind.UNSUPPORTED),
        ({1}, Kind.UNSUPPORTED),
    ])
    def test_kinds(self, value, kind):
        assert classify(value) is kind

    def test_record_class_is_not_a_record(self):
        assert classify(Tag) is Kind.UNSUPPORTED

    def test_absent_is_falsy_singleton(self):
        assert not ABSENT
        assert repr(ABSENT) == "ABSENT"
        assert type(ABSENT)() is ABSENT

    def test_composite_and_primitive(self):
        assert Kind.MAP.is_composite
        assert not Kind.MAP.is_primitive
        assert Kind.TIME.is_primitive
        assert not Kind.NIL.is_primitive


# ═══════════════════════════════════════════════════════════════════
#  §2  FIELD TAGS AND THE REGISTRY
# ═══════════════════════════════════════════════════════════════════

class TestTags:

    @pytest.mark.parametrize("tag,name,attrs", [
        (None, "f", {}),
        ("", "f", {}),
        ("-", "-", {"excluded": True}),
        ("name,identifier", "name", {"identifier": True}),
        (",omitunequal", "f", {"omit_unequal": True}),
        ("x,immutable", "x", {"immutable": True}),
        ("x,embedded", "x", {"embedded": True}),
        ("x,create", "x", {"create": True}),
        ("x,nocreate", "x", {"create": False}),
        ("x, identifier , omitunequal", "x", {"identifier": True, "omit_unequal": True}),
    ])
    def test_parse_tag(self, tag, name, attrs):
        spec = parse_tag("f", tag)
        assert spec.attr == "f"
        assert spec.name == name
        for key, expected in attrs.items():
            assert getattr(spec, key) == expected

    def test_allows_create(self):
        assert parse_tag("f", None).allows_create
        assert parse_tag("f", "f,create").allows_create
        assert not parse_tag("f", "f,nocreate").allows_create

    def test_record_fields_in_declaration_order(self):
        assert [s.attr for s in record_fields(Owner)] == ["name", "profile", "tags"]

    def test_find_field_by_name_then_attr(self):
        @dataclass
        class Renamed:
            internal: int = field(default=0, metadata={"diff": "external"})

        assert find_field(Renamed, "external").attr == "internal"
        assert find_field(Renamed, "internal").attr == "internal"
        assert find_field(Renamed, "missing") is None

    def test_registered_class_is_record(self, plain_record):
        assert classify(Plain()) is Kind.RECORD
        assert diff(Plain("a", 1), Plain("a", 2)) == [Change(UPDATE, ("size",), 1, 2)]

    def test_registered_class_identifier(self, plain_record):
        assert identifier_of(Plain("a")) == "a"
        a = [Plain("a", 1), Plain("b", 1)]
        b = [Plain("b", 1), Plain("a", 1)]
        assert diff(a, b) == []

    def test_registered_subclass_inherits(self, plain_record):
        class Sub(Plain):
            pass

        assert classify(Sub()) is Kind.RECORD

    def test_unregister(self):
        register_record(Plain, ["name"])
        unregister_record(Plain)
        assert classify(Plain()) is Kind.UNSUPPORTED

    def test_registered_zero_like(self, plain_record):
        zero = zero_like(Plain("a", 3))
        assert type(zero) is Plain
        assert (zero.name, zero.size) == ("", 0)

    def test_registered_new_record(self, plain_record):
        rec = new_record(Plain)
        assert (rec.name, rec.size) == ("", 0)


# ═══════════════════════════════════════════════════════════════════
#  §3  IDENTIFIERS AND PATH SEGMENTS
# ═══════════════════════════════════════════════════════════════════

class TestIdentifiers:

    def test_identifier_of(self):
        assert identifier_of(Tag("a")) == "a"
        assert identifier_of(Tag(None)) is None
        assert identifier_of(Profile("x")) is None
        assert identifier_of("a") is None

    def test_identifier_under_other_tag_name(self):
        @dataclass
        class Keyed:
            key: str = field(default="", metadata={"json": "key,identifier"})

        assert identifier_of(Keyed("k")) is None
        assert identifier_of(Keyed("k"), "json") == "k"

    @pytest.mark.parametrize("key,segment", [
        ("a", "a"),
        (3, "3"),
        (b"ab", "ab"),
        (Color.RED, "red"),
        (Level.HIGH, "2"),
        (True, "True"),
    ])
    def test_path_segment(self, key, segment):
        assert path_segment(key) == segment


# ═══════════════════════════════════════════════════════════════════
#  §4  DECLARED TYPES AND ZERO VALUES
# ═══════════════════════════════════════════════════════════════════

class TestZeroValues:

    @pytest.mark.parametrize("value,zero", [
        (5, 0),
        (1.5, 0.0),
        ("x", ""),
        (b"x", b""),
        ([1], []),
        ((1,), ()),
        ({"a": 1}, {}),
        (None, None),
        (Color.RED, None),
        (dt.datetime(2020, 1, 1), dt.datetime.min),
        (dt.date(2020, 1, 1), dt.date.min),
        (dt.timedelta(3), dt.timedelta(0)),
        (Tag("a", "b"), Tag("", "")),
    ])
    def test_zero_like(self, value, zero):
        assert zero_like(value) == zero

    def test_zero_like_nested_record_is_none(self):
        assert zero_like(Owner("a", Profile("x"), ["t"])) == Owner("", None, [])

    def test_zero_like_frozen_record(self):
        assert zero_like(Point(3)) == Point(0)

    @pytest.mark.parametrize("tp,zero", [
        (list[int], []),
        (dict[str, int], {}),
        (typing.Mapping[str, int], {}),
        (typing.Sequence[int], []),
        (int, 0),
        (str, ""),
        (Optional[int], None),
        (Color, None),
        (typing.Union[int, str], None),
        (None, None),
    ])
    def test_zero_of_type(self, tp, zero):
        assert zero_of_type(tp) == zero

    def test_zero_of_record_type(self):
        assert zero_of_type(Owner) == Owner()

    def test_new_record_without_defaults(self):
        @dataclass
        class Required:
            name: str
            items: list[int]

        assert new_record(Required) == Required("", [])


# ═══════════════════════════════════════════════════════════════════
#  §5  DEEP EQUALITY, MUTABILITY, CONVERSION
# ═══════════════════════════════════════════════════════════════════

class TestEqualityAndConversion:

    @pytest.mark.parametrize("a,b,expected", [
        (1, 1, True),
        (1, True, False),
        (1, 1.0, False),
        ([1, [2]], [1, [2]], True),
        ([1, 2], [2, 1], False),
        ({"a": [1]}, {"a": [1]}, True),
        ({"a": 1}, {"b": 1}, False),
        (Tag("a"), Tag("a"), True),
        (Tag("a"), Tag("b"), False),
        (Tag("a"), Profile("a"), False),
        (None, None, True),
    ])
    def test_deep_equal(self, a, b, expected):
        assert deep_equal(a, b) is expected

    def test_deep_equal_cyclic(self):
        x = [1]
        x.append(x)
        y = [1]
        y.append(y)
        assert deep_equal(x, y)

    @pytest.mark.parametrize("value,expected", [
        ([], True),
        ({}, True),
        (Tag(), True),
        ((1,), False),
        (Point(), False),
        (types.MappingProxyType({}), False),
        ("s", False),
        (None, False),
    ])
    def test_is_mutable_target(self, value, expected):
        assert is_mutable_target(value) is expected

    def test_convert_to(self):
        assert convert_to(1, Level) is Level.LOW
        assert type(convert_to("a", Label)) is Label
        assert convert_to(1, str) == 1
        assert convert_to(9, Level) == 9
        assert convert_to(None, Label) is None
        assert convert_to([1], list[int]) == [1]
        assert convert_to(2, Optional[Level]) is Level.HIGH


# ═══════════════════════════════════════════════════════════════════
#  §6  CYCLE GUARD AND COMPARATIVE LISTS
# ═══════════════════════════════════════════════════════════════════

class TestGuardAndComparatives:

    def test_guard_enter_once(self):
        g = CycleGuard()
        a, b = [], []
        assert g.enter(a, b)
        assert not g.enter(a, b)
        assert not g.enter(b, a)
        assert len(g) == 1

    def test_guard_reset(self):
        g = CycleGuard()
        a, b = [], []
        g.enter(a, b)
        g.reset()
        assert len(g) == 0
        assert g.enter(a, b)

    def test_guard_copy_is_independent(self):
        g = CycleGuard()
        a, b, c, d = [], [], [], []
        g.enter(a, b)
        clone = g.copy()
        assert not clone.enter(a, b)
        assert clone.enter(c, d)
        assert g.enter(c, d)

    def test_comparative_list_keeps_first_insertion_order(self):
        cl = ComparativeList()
        cl.add_a("x", 1)
        cl.add_b("y", 2)
        cl.add_b("x", 3)
        assert cl.keys() == ["x", "y"]
        assert cl["x"] == Comparative(1, 3)
        assert cl["y"].only_b
        assert "x" in cl and "z" not in cl
        assert len(cl) == 2

    def test_reconcile(self):
        comparatives = ComparativeList()
        comparatives.add_a("gone", 1)
        comparatives.add_b("new", 2)
        comparatives.add_a("both", 3)
        comparatives.add_b("both", 4)
        descended = []
        changelog = Changelog()
        reconcile(("root",), comparatives, changelog,
                  lambda path, a, b, parent: descended.append((path, a, b)))
        assert changelog == [
            Change(DELETE, ("root", "gone"), 1, None),
            Change(CREATE, ("root", "new"), None, 2),
        ]
        assert descended == [(("root", "both"), 3, 4)]


# ═══════════════════════════════════════════════════════════════════
#  §7  CONFIGURATION
# ═══════════════════════════════════════════════════════════════════

class TestConfig:

    def test_defaults(self):
        config = DiffConfig()
        assert config.tag_name == "diff"
        assert not config.slice_ordering
        assert config.time_precision == dt.timedelta(microseconds=1)

    def test_from_options(self):
        base = DiffConfig(tag_name="json")
        derived = DiffConfig.from_options(base, slice_ordering=True)
        assert derived.tag_name == "json"
        assert derived.slice_ordering
        assert DiffConfig.from_options(base) is base

    def test_unknown_option(self):
        with pytest.raises(ConfigError) as exc_info:
            DiffConfig.from_options(sliceordering=True)
        assert "tag_name" in exc_info.value.details["known"]
        assert exc_info.value.to_dict()["error"] == "CONFIG_INVALID_OPTION"

    def test_custom_differs_become_tuple(self):
        assert DiffConfig(custom_differs=[]).custom_differs == ()

    def test_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DiffConfig().tag_name = "x"

    def test_negative_precision(self):
        with pytest.raises(ConfigError):
            DiffConfig(time_precision=dt.timedelta(seconds=-1))
