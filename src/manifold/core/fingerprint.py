"""Deterministic fingerprint of a record store's observable field state."""

from __future__ import annotations

import hashlib
import json

from manifold.core.schema import SCHEMA, normalize_read_value


def serialize_record(store, record) -> str:
    """Serialize one record's schema fields into a single line.

    The line is a compact JSON array of the field values in registry order.
    JSON quoting fences any separator characters inside values and escapes
    newlines, so distinct field tuples never produce the same line.  The
    record's id and index are left out: the fingerprint describes content,
    not identity or position.
    """
    values = [
        normalize_read_value(spec["kind"], store.read_field(record, spec["path"]))
        for spec in SCHEMA.values()
    ]
    return json.dumps(values, separators=(",", ":"), ensure_ascii=True, default=str)


def build_fingerprint_text(store) -> str:
    """Return the sorted, newline-joined record lines that get hashed."""
    lines = [serialize_record(store, record) for record in store.iter_records()]
    lines.sort()
    return "\n".join(lines)


def hash_text(text: str) -> str:
    """Return the 32-character MD5 hex digest of *text*."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def build_fingerprint(store) -> str:
    """Return the fingerprint (MD5 hex) of every record in *store*.

    Independent of record order: reordering records or creating them in a
    different order yields the same value.
    """
    return hash_text(build_fingerprint_text(store))
