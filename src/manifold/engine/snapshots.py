"""Named snapshots of per-record field state."""

from __future__ import annotations

import json
import logging
from typing import TypedDict

from manifold.core.events import utc_now
from manifold.core.fingerprint import build_fingerprint
from manifold.core.schema import SCHEMA, captured_fields, normalize_read_value

logger = logging.getLogger(__name__)


class SnapshotInclude(TypedDict):
    script: bool
    value: bool
    custom_type_name: bool


class Snapshot(TypedDict):
    name: str
    created_at: str
    version: str
    required_fingerprint: str
    include: SnapshotInclude
    records: list[dict]
    records_by_id: dict[int, dict]
    records_by_description: dict[str, dict]


def read_record_state(engine, record, fields: list[str]) -> dict:
    """Read *fields* of *record* through the store accessor.

    The result carries a ``Target`` locator (current index, id and
    description) plus one entry per field, canonicalized per kind.
    """
    store = engine.store
    description = store.read_field(record, "Description")
    state: dict = {
        "Target": {
            "Index": store.record_index(record),
            "ID": store.record_id(record),
            "Description": description if description is not None else "",
        }
    }
    for field in fields:
        spec = SCHEMA[field]
        state[field] = normalize_read_value(spec["kind"], store.read_field(record, spec["path"]))
    return state


def snapshot_fields(snapshot: Snapshot) -> list[str]:
    """Return the fields *snapshot* captured, in canonical order."""
    include = snapshot["include"]
    return captured_fields(
        include_script=include["script"],
        include_value=include["value"],
        include_custom_type_name=include["custom_type_name"],
    )


def take_snapshot(
    engine,
    name: str = "default",
    *,
    include_script: bool = False,
    include_value: bool = False,
    include_custom_type_name: bool = False,
) -> str:
    """Capture every record's state under *name* and return the fingerprint.

    Retaking an existing name overwrites it.  ``Script``, ``Value`` and
    ``CustomTypeName`` are skipped unless requested; skipped fields are
    also skipped when diffing against this snapshot.
    """
    name = str(name or "default")
    snapshot: Snapshot = {
        "name": name,
        "created_at": utc_now(),
        "version": engine.version,
        "required_fingerprint": build_fingerprint(engine.store),
        "include": {
            "script": include_script,
            "value": include_value,
            "custom_type_name": include_custom_type_name,
        },
        "records": [],
        "records_by_id": {},
        "records_by_description": {},
    }
    fields = snapshot_fields(snapshot)
    for record in engine.store.iter_records():
        snapshot["records"].append(read_record_state(engine, record, fields))
    _index_records(snapshot)

    engine.snapshots[name] = snapshot
    logger.info(
        "Snapshot '%s' stored (records=%d, hash=%s)",
        name,
        len(snapshot["records"]),
        snapshot["required_fingerprint"],
    )
    return snapshot["required_fingerprint"]


def get_snapshot(engine, name: str = "default") -> Snapshot | None:
    """Return the snapshot stored under *name*, or ``None``."""
    return engine.snapshots.get(str(name or "default"))


def _index_records(snapshot: Snapshot) -> None:
    by_id: dict[int, dict] = {}
    by_desc: dict[str, dict] = {}
    for state in snapshot["records"]:
        target = state["Target"]
        if target.get("ID") is not None:
            by_id[target["ID"]] = state
        if target.get("Description"):
            by_desc.setdefault(target["Description"], state)
    snapshot["records_by_id"] = by_id
    snapshot["records_by_description"] = by_desc


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def export_snapshot(snapshot: Snapshot) -> dict:
    """Return a JSON-ready copy of *snapshot* without the derived indexes."""
    return {
        "name": snapshot["name"],
        "created_at": snapshot["created_at"],
        "version": snapshot["version"],
        "required_fingerprint": snapshot["required_fingerprint"],
        "include": dict(snapshot["include"]),
        "records": snapshot["records"],
    }


def serialize_snapshot(snapshot: Snapshot) -> str:
    """Pretty-print a snapshot as sorted JSON with trailing newline."""
    return json.dumps(export_snapshot(snapshot), sort_keys=True, indent=2) + "\n"


def load_snapshot(engine, data: dict) -> Snapshot:
    """Register an exported snapshot on *engine*, rebuilding its indexes."""
    include = data.get("include") or {}
    snapshot: Snapshot = {
        "name": str(data.get("name") or "default"),
        "created_at": data.get("created_at", ""),
        "version": data.get("version", ""),
        "required_fingerprint": data.get("required_fingerprint", ""),
        "include": {
            "script": bool(include.get("script")),
            "value": bool(include.get("value")),
            "custom_type_name": bool(include.get("custom_type_name")),
        },
        "records": list(data.get("records") or []),
        "records_by_id": {},
        "records_by_description": {},
    }
    _index_records(snapshot)
    engine.snapshots[snapshot["name"]] = snapshot
    return snapshot
