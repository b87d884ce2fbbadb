"""
structdiff.config — the options a Differ is built with.

A ``DiffConfig`` is fixed when the Differ is constructed and read-only
for the lifetime of every diff and patch call made through it.  The
keyword form used everywhere in the public API:

    diff(a, b, slice_ordering=True, tag_name="json")

is validated here: an unknown keyword raises ``ConfigError`` rather than
being silently ignored.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, fields, replace
from typing import TYPE_CHECKING, Any, Callable, Optional

from .errors import ConfigError, ErrorCode
from .model import FieldSpec

if TYPE_CHECKING:
    from .differ import ValueDiffer


# (path including the field, declaring record class, field metadata) → descend?
FilterFunc = Callable[[tuple[str, ...], type, FieldSpec], bool]


@dataclass(frozen=True, slots=True)
class DiffConfig:
    """Read-only options shared by diff and patch."""

    # Metadata key under which field tags are looked up.
    tag_name: str = "diff"
    # Compare sequences index by index instead of by membership.
    slice_ordering: bool = False
    # Report a record added or removed as one change instead of per field.
    disable_struct_values: bool = False
    # Report a kind mismatch as one UPDATE instead of raising.
    allow_type_mismatch: bool = False
    # Leave ``Change.parent`` empty.
    discard_parent: bool = False
    # Fields tagged ``embedded`` share the enclosing record's path.
    flatten_embedded: bool = False
    custom_differs: tuple["ValueDiffer", ...] = ()
    filter: Optional[FilterFunc] = None
    # Patch: convert values to the declared field type when compatible.
    convert_compatible_types: bool = False
    # Patch: remove sequence elements in order instead of swap-with-last.
    stable_delete: bool = False
    time_precision: dt.timedelta = dt.timedelta(microseconds=1)

    def __post_init__(self) -> None:
        object.__setattr__(self, "custom_differs", tuple(self.custom_differs))
        if self.time_precision <= dt.timedelta(0):
            raise ConfigError(
                code=ErrorCode.CONFIG_INVALID_OPTION,
                message="time_precision must be a positive timedelta",
                details={"option": "time_precision", "value": str(self.time_precision)},
            )

    @classmethod
    def option_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_options(cls, base: Optional["DiffConfig"] = None, **options: Any) -> "DiffConfig":
        """Build a config from ``base`` (or the defaults) plus keyword overrides."""
        known = cls.option_names()
        for name in options:
            if name not in known:
                raise ConfigError.invalid_option(name, known)
        base = base or cls()
        return replace(base, **options) if options else base
