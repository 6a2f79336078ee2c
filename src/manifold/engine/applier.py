"""Transactional patch application and rollback."""

from __future__ import annotations

import logging

from manifold.core.errors import (
    PatchError,
    ResolutionError,
    SchemaError,
    VerificationError,
    WriteError,
)
from manifold.core.fingerprint import build_fingerprint
from manifold.core.patches import Patch, PatchSet, normalize_patch, patch_label
from manifold.core.schema import (
    KIND_DROPDOWN,
    KIND_OFFSETS,
    KIND_SCRIPT,
    apply_script_replace,
    coerce_script_payload,
    coerce_value,
    lookup_field,
    normalize_read_value,
    values_equal,
)
from manifold.engine.context import MISSING
from manifold.engine.resolver import require_target

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


def apply_patch_set(
    engine,
    patch_set: PatchSet | list | None,
    *,
    expected_new_fingerprint: str | None = None,
    required_fingerprint: str | None = None,
) -> tuple[bool, PatchError | None]:
    """Apply a patch set (or a bare list of patches) to the engine's store.

    Patches are applied in order.  Each mutated (record, field) pair has its
    prior value captured once, on first touch.  A patch whose coerced value
    already equals the stored value is a no-op and captures nothing.

    *required_fingerprint*, when given, must match the store before anything
    is written.  *expected_new_fingerprint*, when given, must match the store
    after the last patch.

    On any failure with ``safe_mode`` on, every captured field is restored
    before returning.  With ``safe_mode`` off the partial state is left in
    place and the rollback log stays available to :func:`revert_all`.

    Returns ``(True, None)`` or ``(False, error)``.  Never raises.
    """
    engine.clear_transaction()
    if isinstance(patch_set, dict):
        patches = patch_set.get("patches") or []
    else:
        patches = list(patch_set or [])

    if required_fingerprint is not None:
        try:
            current = _fingerprint(engine)
        except PatchError as err:
            return False, err
        if current != required_fingerprint:
            return False, VerificationError(
                f"Store fingerprint {current} does not match required {required_fingerprint}"
            )

    logger.info("Applying %d patch(es)", len(patches))
    for raw in patches:
        try:
            _apply_one(engine, raw)
        except PatchError as err:
            return _fail(engine, err.with_patch(patch_label(raw)))
        except Exception as exc:  # store implementations raise their own types
            err = WriteError(f"Store failed while applying patch: {exc}")
            return _fail(engine, err.with_patch(patch_label(raw)))

    if expected_new_fingerprint is not None:
        try:
            actual = _fingerprint(engine)
        except PatchError as err:
            return _fail(engine, err)
        if actual != expected_new_fingerprint:
            logger.warning(
                "Hash mismatch after patch: expected %s, got %s",
                expected_new_fingerprint,
                actual,
            )
            return _fail(
                engine,
                VerificationError(
                    f"Hash mismatch after patch: expected {expected_new_fingerprint}, got {actual}"
                ),
            )
        logger.info("Post-patch hash verified")

    logger.info("Applied %d patch(es)", len(engine.applied_patches))
    return True, None


def _fingerprint(engine) -> str:
    try:
        return build_fingerprint(engine.store)
    except PatchError:
        raise
    except Exception as exc:  # store implementations raise their own types
        raise WriteError(f"Store could not be fingerprinted: {exc}") from exc


def _fail(engine, error: PatchError) -> tuple[bool, PatchError]:
    """Report *error*, reverting first when safe mode is on.

    A revert that could not restore everything is attached to *error* as
    ``revert_error``; the store is then in neither the old nor the new state.
    """
    logger.warning("Patch failed: %s", error)
    if engine.safe_mode:
        logger.info("SafeMode: reverting %d captured field(s)", len(engine.rollback_log))
        reverted, revert_error = revert_all(engine)
        error.reverted = True
        if not reverted:
            logger.error("SafeMode revert incomplete: %s", revert_error)
            error.revert_error = revert_error
    return False, error


def _apply_one(engine, raw: object) -> None:
    patch: Patch = normalize_patch(raw)
    patch_id = patch["ID"]
    path = patch["Path"]
    store = engine.store

    try:
        record = require_target(engine, patch["Target"], patch_id)
    except PatchError:
        raise
    except Exception as exc:  # store implementations raise their own types
        raise ResolutionError(f"Store lookup failed: {exc}", patch_id=patch_id) from exc
    kind = lookup_field(path)["kind"]
    try:
        current = store.read_field(record, path)
    except PatchError:
        raise
    except Exception as exc:  # store implementations raise their own types
        raise WriteError(f"Store could not read {path}: {exc}", patch_id=patch_id) from exc

    if kind == KIND_SCRIPT:
        payload = coerce_script_payload(patch["Value"], engine.default_script_replace_mode)
        if payload is None or isinstance(payload, str):
            value: object = payload
        else:
            if not isinstance(current, str):
                raise SchemaError("Record has no script", patch_id=patch_id)
            value = apply_script_replace(current, payload)
    else:
        value = coerce_value(kind, patch["Value"])

    if values_equal(kind, normalize_read_value(kind, current), value):
        logger.debug("Patch %s: %s already up to date", patch_id, path)
        return

    engine.capture(record, path)
    _write(store, record, path, kind, value)
    engine.applied_patches.append(patch_id)
    logger.debug("Patch %s: set %s on record %s", patch_id, path, store.record_id(record))


def _write(store, record, path: str, kind: str, value: object) -> None:
    """Write *value* through the store, mapping store failures to WriteError."""
    try:
        if kind == KIND_OFFSETS:
            store.set_offset_list(record, value)
        elif kind == KIND_DROPDOWN:
            store.clear_entry_list(record)
            for entry in value:
                store.add_entry(record, entry)
        else:
            store.write_field(record, path, value)
    except PatchError:
        raise
    except Exception as exc:  # store implementations raise their own types
        raise WriteError(f"Store rejected write to {path}: {exc}") from exc


def _remove(store, record, path: str) -> None:
    try:
        store.remove_field(record, path)
    except PatchError:
        raise
    except Exception as exc:  # store implementations raise their own types
        raise WriteError(f"Store could not remove {path}: {exc}") from exc


# ---------------------------------------------------------------------------
# Revert
# ---------------------------------------------------------------------------


def revert_all(engine) -> tuple[bool, PatchError | None]:
    """Restore every captured field, most recent capture first, then clear the log.

    Entries whose record no longer exists are skipped with a warning.  Paths
    that did not exist before the transaction are removed again.  Every
    remaining entry is attempted even if one fails; the first failure is
    returned.
    """
    store = engine.store
    first_error: PatchError | None = None
    entries = list(engine.rollback_log.items())

    for (record_id, path), old_value in reversed(entries):
        try:
            record = store.get_by_id(record_id)
        except Exception as exc:  # store implementations raise their own types
            logger.warning("Rollback lookup of record %s failed: %s", record_id, exc)
            if first_error is None:
                first_error = ResolutionError(f"Record {record_id} lookup failed: {exc}")
            continue
        if record is None:
            logger.warning("Rollback skipped: record %s no longer exists", record_id)
            if first_error is None:
                first_error = ResolutionError(f"Record {record_id} no longer exists")
            continue
        kind = lookup_field(path)["kind"]
        try:
            if old_value is MISSING:
                _remove(store, record, path)
            else:
                _write(store, record, path, kind, old_value)
        except PatchError as err:
            logger.warning("Rollback of %s on record %s failed: %s", path, record_id, err)
            if first_error is None:
                first_error = err

    engine.clear_transaction()
    logger.info("Rollback completed (%d field(s))", len(entries))
    return first_error is None, first_error
