"""Patch and patch-set wire format: parsing, normalization, serialization."""

from __future__ import annotations

import json
from typing import TypedDict

from manifold.core.errors import SchemaError


class PatchTarget(TypedDict, total=False):
    Index: int
    ID: int
    Description: str


class Patch(TypedDict, total=False):
    ID: str
    Target: PatchTarget
    Op: str
    Path: str
    Value: object


class PatchSet(TypedDict, total=False):
    status: str
    targetVersion: str
    requiredHash: str
    newHash: str
    patches: list[Patch]


OP_SET = "set"
SUPPORTED_OPS: frozenset[str] = frozenset({OP_SET})

STATUS_OK = "ok"
STATUS_UP_TO_DATE = "up-to-date"
STATUS_HASH_MISMATCH = "hash-mismatch"


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------


def _as_int(value: object) -> int | None:
    """Best-effort integer conversion for locator fields; ``None`` on failure."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip(), 0)
        except ValueError:
            return None
    return None


def normalize_target(raw: dict) -> PatchTarget:
    """Extract a target spec from a patch.

    Accepts the nested ``Target`` object, or the legacy flat form with
    ``Index``, ``IDTarget`` and ``TargetDescription`` on the patch itself.
    A legacy patch carrying none of those addresses the record whose id
    equals the patch ``ID``.
    """
    target: PatchTarget = {}
    if isinstance(raw.get("Target"), dict):
        src = raw["Target"]
        index, rid, desc = src.get("Index"), src.get("ID"), src.get("Description")
    else:
        index, rid, desc = raw.get("Index"), raw.get("IDTarget"), raw.get("TargetDescription")
        if index is None and rid is None and desc is None:
            rid = raw.get("ID")

    index = _as_int(index)
    if index is not None:
        target["Index"] = index
    rid = _as_int(rid)
    if rid is not None:
        target["ID"] = rid
    if desc is not None and desc != "":
        target["Description"] = str(desc)
    return target


# ---------------------------------------------------------------------------
# Patches
# ---------------------------------------------------------------------------


def patch_label(raw: object) -> str | None:
    """Return a patch's ``ID`` as a string for error reporting, if it has one."""
    if isinstance(raw, dict) and raw.get("ID") is not None:
        return str(raw["ID"])
    return None


def normalize_patch(raw: object) -> Patch:
    """Validate a wire patch and return it in canonical form.

    ``Op`` defaults to ``"set"``.

    Raises:
        SchemaError: If *raw* is not an object, the op is unsupported, or
            ``Path`` is missing.
    """
    if not isinstance(raw, dict):
        raise SchemaError("Invalid patch object")
    label = patch_label(raw)
    op = raw.get("Op") or OP_SET
    if op not in SUPPORTED_OPS:
        raise SchemaError(f"Unsupported op: {op}", patch_id=label)
    path = str(raw.get("Path") or "")
    if not path:
        raise SchemaError("Missing Path", patch_id=label)
    patch: Patch = {
        "ID": label if label is not None else "?",
        "Target": normalize_target(raw),
        "Op": op,
        "Path": path,
        "Value": raw.get("Value"),
    }
    return patch


# ---------------------------------------------------------------------------
# Patch sets
# ---------------------------------------------------------------------------


def parse_patch_set(data: object) -> PatchSet:
    """Accept a patch-set object (or a bare list of patches) and return a PatchSet.

    A response without ``status`` but with a ``patches`` list is ``ok``.
    Individual patches are left as received; the applier normalizes each one
    as it goes so a bad patch fails inside the transaction.

    Raises:
        SchemaError: If *data* has no usable patch list.
    """
    if isinstance(data, list):
        data = {"patches": data}
    if not isinstance(data, dict):
        raise SchemaError("Patch set must be an object or a list of patches")
    patches = data.get("patches", [])
    if patches is None:
        patches = []
    if not isinstance(patches, list):
        raise SchemaError("Patch set 'patches' must be a list")

    status = data.get("status")
    if not status:
        status = STATUS_OK
    result: PatchSet = {"status": str(status), "patches": patches}
    for key in ("targetVersion", "requiredHash", "newHash"):
        if data.get(key) is not None:
            result[key] = str(data[key])
    return result


def make_patch_set(
    patches: list[Patch],
    *,
    required_hash: str,
    new_hash: str,
    target_version: str = "",
    status: str = STATUS_OK,
) -> PatchSet:
    return {
        "status": status,
        "targetVersion": target_version,
        "requiredHash": required_hash,
        "newHash": new_hash,
        "patches": patches,
    }


def serialize_patch_set(patch_set: PatchSet) -> str:
    """Serialize a patch set as sorted, indented JSON with a trailing newline."""
    return json.dumps(patch_set, sort_keys=True, indent=2) + "\n"
