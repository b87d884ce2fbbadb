"""
structdiff
==========

Structural diff and best-effort patch for Python objects.

    diff([1, 2, 3], [1, 2, 3, 4])
        → [CREATE at 3: 4]
    diff({"id": "1", "items": [1, 2, 3, 4]}, {"id": "1", "items": [1, 2, 4]})
        → [DELETE at items/2: 3]

``diff`` walks two values of the same shape (dataclasses and registered
records, lists and tuples, dicts, optional references, primitives) and
returns an ordered ``Changelog`` of atomic CREATE / UPDATE / DELETE
changes.  ``patch`` replays a changelog onto a live target, mutating it
in place, and reports per change what happened in a ``PatchLog``.

Field behavior is declared with dataclass metadata:

    @dataclass
    class Tag:
        name: str = field(metadata={"diff": "name,identifier"})
        value: str = field(metadata={"diff": "value"})

Lists of ``Tag`` are then matched by ``name`` rather than by position,
so reordering them is not a change.
"""

from structdiff.changelog import (
    CREATE,
    DELETE,
    UPDATE,
    Change,
    Changelog,
    ChangeType,
)
from structdiff.comparative import Comparative, ComparativeList
from structdiff.config import DiffConfig, FilterFunc
from structdiff.differ import (
    Differ,
    ValueDiffer,
    changed,
    diff,
    struct_values,
)
from structdiff.errors import (
    ConfigError,
    ErrorCode,
    InvalidChangeTypeError,
    PatchError,
    StructDiffError,
    TypeMismatchError,
    UnsupportedKindError,
)
from structdiff.formats import from_json, from_python, to_json, to_python
from structdiff.guard import CycleGuard
from structdiff.logging import configure_logging
from structdiff.merge import merge
from structdiff.model import (
    ABSENT,
    FieldSpec,
    Kind,
    classify,
    register_record,
    unregister_record,
)
from structdiff.patch import PatchFlags, PatchLog, PatchLogEntry, patch

__version__ = "0.1.0"
__all__ = [
    "CREATE", "UPDATE", "DELETE", "ChangeType", "Change", "Changelog",
    "Comparative", "ComparativeList", "CycleGuard",
    "DiffConfig", "FilterFunc",
    "Differ", "ValueDiffer", "diff", "changed", "struct_values",
    "patch", "merge", "PatchFlags", "PatchLog", "PatchLogEntry",
    "ABSENT", "Kind", "FieldSpec", "classify", "register_record", "unregister_record",
    "StructDiffError", "ErrorCode", "TypeMismatchError", "UnsupportedKindError",
    "InvalidChangeTypeError", "ConfigError", "PatchError",
    "from_json", "to_json", "from_python", "to_python",
    "configure_logging",
]
