"""
structdiff.merge — propagate the edits between two values onto a third.

Given an original value and a modified copy of it, replay the changes
between them onto a separate live target:

    1. Compute diff(original, modified) → changelog
    2. Apply the changelog to target     → patch log

This is NOT a conflict-resolving three-way merge.  The target is not
compared with the original; every change is applied best effort and
its outcome recorded, exactly as ``patch`` does.  A typical use is
pushing an edit made on a reference object out to other instances that
are similar but not identical to it.

Diff-time errors (``TypeMismatchError``, ``UnsupportedKindError``)
propagate; patch-time problems only ever show up in the returned log.
"""

from __future__ import annotations

from typing import Any, Optional

from .config import DiffConfig
from .differ import Differ
from .patch import PatchLog


def merge(
    original: Any,
    modified: Any,
    target: Any,
    config: Optional[DiffConfig] = None,
    **options: Any,
) -> PatchLog:
    """
    Apply the difference between ``original`` and ``modified`` to ``target``.

    Arguments:
        original: The value before the edit
        modified: The value after the edit
        target:   The live value to mutate in place

    Returns the PatchLog of applying diff(original, modified) to target.
    """
    return Differ(config, **options).merge(original, modified, target)
