"""Generate a convergent patch set from a snapshot and the current state."""

from __future__ import annotations

import logging

from manifold.core.errors import PatchError, ResolutionError
from manifold.core.fingerprint import build_fingerprint
from manifold.core.ids import format_auto_patch_id
from manifold.core.patches import OP_SET, Patch, PatchSet, make_patch_set
from manifold.core.schema import KIND_OPTIONS, SCHEMA, normalize_options, values_equal
from manifold.engine.snapshots import get_snapshot, read_record_state, snapshot_fields

logger = logging.getLogger(__name__)


def generate_patch_from_snapshot(
    engine,
    name: str = "default",
    *,
    target_version: str | None = None,
) -> tuple[PatchSet | None, PatchError | None]:
    """Diff the snapshot *name* against the current store.

    Every current record is matched to its captured state by id, falling
    back to description.  Each captured field whose value differs yields one
    ``set`` patch targeting the record's *current* index, id and
    description.  Records absent from the snapshot are skipped.

    Applying the result to a store in the snapshot's field state reproduces
    the current captured fields exactly.

    Returns ``(patch_set, None)``, or ``(None, ResolutionError)`` when no
    snapshot has that name.
    """
    snapshot = get_snapshot(engine, name)
    if snapshot is None:
        return None, ResolutionError(f"Snapshot not found: {name}")

    fields = snapshot_fields(snapshot)
    by_id = snapshot["records_by_id"]
    by_desc = snapshot["records_by_description"]
    patches: list[Patch] = []

    for record in engine.store.iter_records():
        current = read_record_state(engine, record, fields)
        target = current["Target"]
        old = by_id.get(target["ID"]) if target["ID"] is not None else None
        if old is None and target["Description"]:
            old = by_desc.get(target["Description"])
        if old is None:
            logger.debug("Record %s not in snapshot '%s'; skipped", target["ID"], name)
            continue

        for field in fields:
            kind = SCHEMA[field]["kind"]
            new_value = current[field]
            if values_equal(kind, old.get(field), new_value):
                continue
            if kind == KIND_OPTIONS:
                new_value = normalize_options(new_value)
            patches.append(
                {
                    "ID": format_auto_patch_id(len(patches) + 1),
                    "Target": dict(target),
                    "Op": OP_SET,
                    "Path": field,
                    "Value": new_value,
                }
            )

    patch_set = make_patch_set(
        patches,
        required_hash=snapshot["required_fingerprint"],
        new_hash=build_fingerprint(engine.store),
        target_version=target_version if target_version is not None else engine.version,
    )
    logger.info("Generated %d patch(es) from snapshot '%s'", len(patches), name)
    return patch_set, None
