"""Target resolution: index, then id, then description."""

from __future__ import annotations

import logging

from manifold.core.errors import ResolutionError
from manifold.core.patches import PatchTarget, normalize_target

logger = logging.getLogger(__name__)


def resolve_target(engine, target: PatchTarget | dict | None):
    """Return the record a target spec points at, or ``None``.

    Locators are tried strictly in order and the first hit wins:

    1. ``Index``, bounds-checked against the current record count;
    2. ``ID``, a direct store lookup;
    3. ``Description``, exact match when ``strict_target_resolution`` is on,
       otherwise case-insensitive.

    *target* may be a raw wire ``Target`` object; locator values are
    normalized the same way the applier normalizes them.
    """
    if not target:
        return None
    spec = normalize_target({"Target": target})
    store = engine.store

    index = spec.get("Index")
    if index is not None and 0 <= index < store.count():
        record = store.get_by_index(index)
        if record is not None:
            return record

    record_id = spec.get("ID")
    if record_id is not None:
        record = store.get_by_id(record_id)
        if record is not None:
            return record

    description = spec.get("Description")
    if description:
        return store.get_by_description(description, exact=engine.strict_target_resolution)
    return None


def require_target(engine, target: PatchTarget, patch_id: str | None = None):
    """Like :func:`resolve_target`, but raise when nothing matches.

    Raises:
        ResolutionError: If no record matches *target*.
    """
    record = resolve_target(engine, target)
    if record is None:
        raise ResolutionError(f"Target not found: {_describe(target)}", patch_id=patch_id)
    logger.debug(
        "Resolved %s -> record %s", _describe(target), engine.store.record_id(record)
    )
    return record


def _describe(target: PatchTarget | dict) -> str:
    parts = [f"{key}={target[key]!r}" for key in ("Index", "ID", "Description") if key in target]
    return ", ".join(parts) if parts else "<empty target>"
