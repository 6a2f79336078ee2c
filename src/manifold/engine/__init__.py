"""The patch/rollback engine.

Every operation takes an explicit :class:`PatchEngine` context and reports
failures as values rather than raising.
"""

from __future__ import annotations

from manifold.engine.applier import apply_patch_set, revert_all
from manifold.engine.context import PatchEngine
from manifold.engine.differ import generate_patch_from_snapshot
from manifold.engine.resolver import resolve_target
from manifold.engine.snapshots import get_snapshot, take_snapshot

__all__ = [
    "PatchEngine",
    "apply_patch_set",
    "generate_patch_from_snapshot",
    "get_snapshot",
    "resolve_target",
    "revert_all",
    "take_snapshot",
]
