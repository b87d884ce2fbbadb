"""
structdiff.formats — the changelog wire format.

A change travels as a plain object:

    {"type": "create" | "update" | "delete",
     "path": ["tags", "popularity"],
     "from": <value or null>,
     "to":   <value or null>}

Supported conversions:
    • Changelog ↔ list of plain dicts (``to_python`` / ``from_python``)
    • Changelog ↔ JSON text           (``to_json`` / ``from_json``)
    • PatchLog  → list of plain dicts (``patch_log_to_python``)

Values are flattened to JSON-compatible data on the way out; on the way
back in they stay plain (dicts, lists, strings, numbers).  Path order is
preserved exactly.  ``Change.parent`` is never serialized.
"""

import datetime as dt
import json
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable

from .changelog import Change, Changelog
from .model import ABSENT, is_record, record_fields


# ═══════════════════════════════════════════════════════════════════
#  VALUES → PLAIN DATA
# ═══════════════════════════════════════════════════════════════════

def plain(value: Any) -> Any:
    """
    Convert a value to JSON-compatible data.

    Mapping:
        record          → dict keyed by external field name
        datetime/date   → ISO 8601 string
        timedelta       → total seconds
        Enum            → its value
        Decimal         → string
        bytes           → UTF-8 text
        set/tuple/list  → list
        dict            → dict with string keys

    Nested structures are converted recursively.
    """
    if value is None or value is ABSENT:
        return None
    if isinstance(value, Enum):
        return plain(value.value)
    if isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, dt.timedelta):
        return value.total_seconds()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="backslashreplace")
    if is_record(value):
        # Keyed by external name; excluded fields are not written.
        return {
            spec.name: plain(getattr(value, spec.attr, None))
            for spec in record_fields(type(value))
            if not spec.excluded
        }
    if isinstance(value, dict):
        return {str(plain(k)): plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [plain(item) for item in value]

    # Fallback: string representation
    return str(value)


def encode_value(value: Any) -> Any:
    """``default=`` hook for ``json.dumps``."""
    return plain(value)


# ═══════════════════════════════════════════════════════════════════
#  CHANGELOG ↔ PYTHON OBJECTS
# ═══════════════════════════════════════════════════════════════════

def to_python(changelog: Iterable[Change]) -> list[dict[str, Any]]:
    """
    Convert a changelog to a list of plain dicts.

    Inverse of from_python, up to value flattening:
        from_python(to_python(cl)) == cl
    whenever every from/to value is already plain data.
    """
    out = []
    for change in changelog:
        data = change.to_dict()
        data["from"] = plain(data["from"])
        data["to"] = plain(data["to"])
        out.append(data)
    return out


def from_python(data: Iterable[dict[str, Any]]) -> Changelog:
    """Build a changelog from plain dicts; ``from``/``to`` may be missing."""
    return Changelog(Change.from_dict(item) for item in data)


def patch_log_to_python(patch_log: Iterable[Any]) -> list[dict[str, Any]]:
    out = []
    for entry in patch_log:
        data = entry.to_dict()
        data["from"] = plain(data["from"])
        data["to"] = plain(data["to"])
        out.append(data)
    return out


# ═══════════════════════════════════════════════════════════════════
#  CHANGELOG ↔ JSON STRINGS
# ═══════════════════════════════════════════════════════════════════

def from_json(text: str) -> Changelog:
    """Parse JSON text into a changelog."""
    return from_python(json.loads(text))


def to_json(changelog: Iterable[Change], **kwargs) -> str:
    """Serialize a changelog to JSON text."""
    kwargs.setdefault("default", encode_value)
    return json.dumps(to_python(changelog), **kwargs)
