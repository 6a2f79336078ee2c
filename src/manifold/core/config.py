"""Default config generation and validation."""

from __future__ import annotations

import json
from typing import TypedDict

from manifold.core.schema import SCRIPT_REPLACE_MODES


class ManifoldConfig(TypedDict, total=False):
    schema_version: int
    install_id: str
    client_version: str
    safe_mode: bool
    strict_target_resolution: bool
    debug: bool
    default_script_replace_mode: str


DEFAULT_CLIENT_VERSION = "1.0.0"


def default_config() -> ManifoldConfig:
    """Return the default Manifold configuration.

    The returned dict, when serialized with
    ``json.dumps(data, sort_keys=True, indent=2) + "\\n"``,
    produces the canonical default config.json.
    """
    return {
        "schema_version": 1,
        "client_version": DEFAULT_CLIENT_VERSION,
        "safe_mode": True,
        "strict_target_resolution": True,
        "debug": False,
        "default_script_replace_mode": "plain",
    }


def serialize_config(config: ManifoldConfig | dict[str, object]) -> str:
    """Serialize a config dict to the canonical JSON format."""
    return json.dumps(config, sort_keys=True, indent=2) + "\n"


def load_config(raw: str) -> dict:
    """Parse a JSON config string and return the config dict.

    Missing keys are filled from :func:`default_config`.  This is a pure
    function (no I/O): the CLI layer reads the file and passes the raw
    string here.
    """
    config: dict = dict(default_config())
    config.update(json.loads(raw))
    return config


def validate_config(config: dict) -> tuple[bool, list[str]]:
    """Check value types of a loaded config.

    Returns ``(True, [])`` when valid, otherwise ``(False, [reason, ...])``.
    """
    failures: list[str] = []
    for key in ("safe_mode", "strict_target_resolution", "debug"):
        if key in config and not isinstance(config[key], bool):
            failures.append(f"'{key}' must be true or false")
    mode = config.get("default_script_replace_mode", "plain")
    if mode not in SCRIPT_REPLACE_MODES:
        failures.append(
            f"'default_script_replace_mode' must be one of {', '.join(SCRIPT_REPLACE_MODES)}"
        )
    if not isinstance(config.get("client_version", ""), str):
        failures.append("'client_version' must be a string")
    return (len(failures) == 0, failures)
