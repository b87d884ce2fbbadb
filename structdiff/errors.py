"""structdiff error types with typed error codes.

Error code ranges:
- 1xxx: Diff
- 2xxx: Config
- 3xxx: Patch

Diff-time errors are raised and abort the whole diff call.  Patch-time
errors are never raised out of ``patch``; they are recorded on the
``PatchLogEntry`` of the change that produced them, chained with
``with_cause`` so the root cause survives wrapping.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Diff (1xxx)
    TYPE_MISMATCH = 1001
    UNSUPPORTED_KIND = 1002
    INVALID_CHANGE_TYPE = 1003

    # Config (2xxx)
    CONFIG_INVALID_OPTION = 2001

    # Patch (3xxx)
    PATCH_INVALID_TARGET = 3001
    PATCH_PATH_UNRESOLVED = 3002
    PATCH_VALUE_MISMATCH = 3003
    PATCH_NOT_FOUND = 3004
    PATCH_NIL_COLLECTION = 3005
    PATCH_NOTICE = 3006


@dataclass(eq=False)
class StructDiffError(Exception):
    """Base error with structured context and an optional chained cause."""

    code: ErrorCode
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    cause: BaseException | None = None

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'TYPE_MISMATCH')."""
        return self.code.name

    def with_cause(self, cause: BaseException) -> StructDiffError:
        """Return a copy of this error with ``cause`` appended to the chain."""
        if self.cause is None:
            return replace(self, cause=cause)
        if isinstance(self.cause, StructDiffError):
            return replace(self, cause=self.cause.with_cause(cause))
        return replace(self, cause=_wrap(self.cause).with_cause(cause))

    def chain(self) -> list[BaseException]:
        """This error followed by every error in its cause chain."""
        out: list[BaseException] = [self]
        cur = self.cause
        while cur is not None:
            out.append(cur)
            cur = cur.cause if isinstance(cur, StructDiffError) else None
        return out

    def root_cause(self) -> BaseException:
        return self.chain()[-1]

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "details": self.details,
            "cause": _cause_dict(self.cause),
        }

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message}: {self.cause}"


def _wrap(exc: BaseException) -> StructDiffError:
    return StructDiffError(code=ErrorCode.PATCH_NOTICE, message=str(exc))


def _cause_dict(cause: BaseException | None) -> dict[str, Any] | None:
    if cause is None:
        return None
    if isinstance(cause, StructDiffError):
        return cause.to_dict()
    return {"error": type(cause).__name__, "message": str(cause)}


class TypeMismatchError(StructDiffError):
    """Two present values of different fundamental kinds were compared."""

    @classmethod
    def between(cls, path: tuple[str, ...], left: Any, right: Any) -> TypeMismatchError:
        return cls(
            code=ErrorCode.TYPE_MISMATCH,
            message=(
                f"type mismatch at {_render_path(path)}: "
                f"{type(left).__name__} vs {type(right).__name__}"
            ),
            details={
                "path": list(path),
                "left": type(left).__name__,
                "right": type(right).__name__,
            },
        )

    @classmethod
    def not_a_record(cls, path: tuple[str, ...], value: Any) -> TypeMismatchError:
        return cls(
            code=ErrorCode.TYPE_MISMATCH,
            message=f"type mismatch at {_render_path(path)}: {type(value).__name__} is not a record",
            details={"path": list(path), "left": type(value).__name__},
        )


class UnsupportedKindError(StructDiffError):
    """A value kind has no built-in or custom comparator."""

    @classmethod
    def for_value(cls, path: tuple[str, ...], value: Any) -> UnsupportedKindError:
        return cls(
            code=ErrorCode.UNSUPPORTED_KIND,
            message=f"unsupported type: {type(value).__name__}",
            details={"path": list(path), "type": type(value).__name__},
        )


class InvalidChangeTypeError(StructDiffError):
    """struct_values was asked for something other than create or delete."""

    @classmethod
    def for_type(cls, change_type: Any) -> InvalidChangeTypeError:
        return cls(
            code=ErrorCode.INVALID_CHANGE_TYPE,
            message=f"invalid change type: {change_type}",
            details={"change_type": str(change_type)},
        )


class ConfigError(StructDiffError):
    """Configuration-related errors."""

    @classmethod
    def invalid_option(cls, name: str, known: list[str]) -> ConfigError:
        return cls(
            code=ErrorCode.CONFIG_INVALID_OPTION,
            message=f"Unknown differ option '{name}'",
            details={"option": name, "known": known},
        )


class PatchError(StructDiffError):
    """An outcome recorded against a single patch log entry."""

    @classmethod
    def new(cls, message: str, code: ErrorCode = ErrorCode.PATCH_NOTICE, **details: Any) -> PatchError:
        return cls(code=code, message=message, details=details)

    @classmethod
    def invalid_target(cls) -> PatchError:
        return cls(
            code=ErrorCode.PATCH_INVALID_TARGET,
            message="cannot set values on target",
            cause=cls.new("passed by value not reference"),
        )


def _render_path(path: tuple[str, ...]) -> str:
    return "/".join(path) or "(root)"
