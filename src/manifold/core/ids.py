"""ULID generation and validation, plus sequential patch ids."""

from __future__ import annotations

import re

from ulid import ULID

# Crockford Base32 alphabet: 0-9 A-Z excluding I, L, O, U
_CROCKFORD_B32_RE = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$", re.IGNORECASE)

AUTO_PATCH_ID_RE = re.compile(r"^AUTO_\d{4,}$")


def generate_event_id() -> str:
    """Generate a new journal event ID with the ev_ prefix."""
    return f"ev_{ULID()}"


def generate_install_id() -> str:
    """Generate a new installation ID with the inst_ prefix."""
    return f"inst_{ULID()}"


def validate_id(id_str: str, expected_prefix: str) -> bool:
    """Validate a ``<prefix>_<ulid>`` identifier.

    The ULID portion must be exactly 26 characters of valid Crockford
    Base32 (0-9, A-Z excluding I, L, O, U -- case insensitive).
    """
    if not isinstance(id_str, str) or not isinstance(expected_prefix, str):
        return False

    parts = id_str.split("_", maxsplit=1)
    if len(parts) != 2:
        return False

    prefix, ulid_part = parts
    if prefix != expected_prefix:
        return False

    return bool(_CROCKFORD_B32_RE.match(ulid_part))


def format_auto_patch_id(seq: int) -> str:
    """Return the id of the *seq*-th generated patch (``AUTO_0001``, ...)."""
    return f"AUTO_{seq:04d}"


def is_auto_patch_id(patch_id: str) -> bool:
    """Return ``True`` if *patch_id* was produced by :func:`format_auto_patch_id`."""
    return isinstance(patch_id, str) and bool(AUTO_PATCH_ID_RE.match(patch_id))
