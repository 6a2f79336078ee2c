"""Journal event creation, schema, and types."""

from __future__ import annotations

import json
from datetime import datetime, timezone

from manifold.core.ids import generate_event_id

# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

EVENT_TYPES: frozenset[str] = frozenset(
    {
        "snapshot_taken",
        "patch_set_applied",
        "patch_set_failed",
        "patch_set_reverted",
        "sync_checked",
    }
)


# ---------------------------------------------------------------------------
# Event construction
# ---------------------------------------------------------------------------


def create_event(
    type: str,
    data: dict,
    *,
    fingerprint: str | None = None,
    event_id: str | None = None,
    ts: str | None = None,
) -> dict:
    """Build a complete journal event dict.

    *fingerprint* is the store fingerprint after the operation; it is only
    included when given.
    """
    if type not in EVENT_TYPES:
        raise ValueError(f"Unknown event type: {type!r}")
    event: dict = {
        "schema_version": 1,
        "id": event_id if event_id is not None else generate_event_id(),
        "ts": ts if ts is not None else utc_now(),
        "type": type,
        "data": data,
    }
    if fingerprint is not None:
        event["fingerprint"] = fingerprint
    return event


def apply_outcome_event(
    ok: bool,
    error: object,
    applied: list[str],
    *,
    source: str,
    fingerprint: str | None = None,
) -> dict:
    """Build the journal event describing one patch-set application."""
    data: dict = {"source": source, "applied": list(applied)}
    if ok:
        return create_event("patch_set_applied", data, fingerprint=fingerprint)
    if error is not None:
        data["error"] = error.to_dict() if hasattr(error, "to_dict") else str(error)
    return create_event("patch_set_failed", data, fingerprint=fingerprint)


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def serialize_event(event: dict) -> str:
    """Serialize an event to compact JSONL (one line, trailing newline)."""
    return json.dumps(event, sort_keys=True, separators=(",", ":"), default=str) + "\n"


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def utc_now() -> str:
    """Return the current UTC time as an RFC 3339 string with ``Z`` suffix."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
