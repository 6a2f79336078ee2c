"""Shared CLI helpers and output utilities."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import NoReturn

import click

from manifold.core.config import load_config, validate_config
from manifold.core.errors import PatchError
from manifold.core.events import serialize_event
from manifold.engine.context import PatchEngine
from manifold.engine.snapshots import load_snapshot
from manifold.storage.fs import (
    CONFIG_FILE,
    EVENTS_FILE,
    MANIFOLD_DIR,
    TABLE_FILE,
    ManifoldRootError,
    atomic_write,
    find_root,
    jsonl_append,
    snapshot_path,
)
from manifold.storage.table import RecordTable, load_table, serialize_table

LOG_FORMAT = "%(levelname)s: %(message)s"


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def configure_logging(verbose: bool = False, debug: bool = False, quiet: bool = False) -> None:
    """Send engine logs to stderr.

    WARNING by default, INFO with --verbose, DEBUG when config debug is on.
    *quiet* (used with --json) raises the floor to ERROR so stdout stays parseable.
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)


# ---------------------------------------------------------------------------
# Root, config & table
# ---------------------------------------------------------------------------


def require_root(is_json: bool = False) -> Path:
    """Find the .manifold/ directory or exit with error."""
    try:
        root = find_root()
    except ManifoldRootError as e:
        output_error(str(e), "NOT_INITIALIZED", is_json)
    if root is None:
        output_error(
            "Not a Manifold project (no .manifold/ found). Run 'manifold init' first.",
            "NOT_INITIALIZED",
            is_json,
        )
    return root / MANIFOLD_DIR


def load_project_config(manifold_dir: Path, is_json: bool = False) -> dict:
    """Load config.json, exiting if it is unreadable or invalid."""
    try:
        config = load_config((manifold_dir / CONFIG_FILE).read_text())
    except (OSError, json.JSONDecodeError) as e:
        output_error(f"Cannot read {CONFIG_FILE}: {e}", "CONFIG_ERROR", is_json)
    valid, failures = validate_config(config)
    if not valid:
        output_error("Invalid config: " + "; ".join(failures), "CONFIG_ERROR", is_json)
    return config


def load_project_table(manifold_dir: Path, is_json: bool = False) -> RecordTable:
    """Load table.json, or return an empty table if none was written yet."""
    path = manifold_dir / TABLE_FILE
    if not path.exists():
        return RecordTable()
    try:
        return load_table(path.read_text())
    except (OSError, ValueError, KeyError, TypeError) as e:
        output_error(f"Cannot read {TABLE_FILE}: {e}", "TABLE_ERROR", is_json)


def save_project_table(manifold_dir: Path, table: RecordTable) -> None:
    atomic_write(manifold_dir / TABLE_FILE, serialize_table(table))


def open_engine(manifold_dir: Path, is_json: bool = False) -> PatchEngine:
    """Build a PatchEngine over the project's table and configure logging from config."""
    config = load_project_config(manifold_dir, is_json)
    ctx = click.get_current_context(silent=True)
    verbose = bool(ctx and ctx.find_root().obj and ctx.find_root().obj.get("verbose"))
    configure_logging(verbose=verbose, debug=bool(config.get("debug")), quiet=is_json)
    return PatchEngine(load_project_table(manifold_dir, is_json), config)


def load_named_snapshot(engine: PatchEngine, manifold_dir: Path, name: str, is_json: bool) -> dict:
    """Register the exported snapshot *name* on *engine* or exit with NOT_FOUND."""
    try:
        path = snapshot_path(manifold_dir, name)
    except ValueError as e:
        output_error(str(e), "INVALID_NAME", is_json)
    if not path.exists():
        output_error(f"Snapshot not found: {name}", "NOT_FOUND", is_json)
    return load_snapshot(engine, json.loads(path.read_text()))


def record_event(manifold_dir: Path, event: dict) -> None:
    """Append an event to the project journal."""
    jsonl_append(manifold_dir / EVENTS_FILE, serialize_event(event))


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def json_envelope(ok: bool, *, data: object = None, error: object = None) -> str:
    """Build a structured JSON output envelope."""
    result: dict = {"ok": ok}
    if data is not None:
        result["data"] = data
    if error is not None:
        result["error"] = error
    return json.dumps(result, sort_keys=True, indent=2) + "\n"


def json_error_obj(code: str, message: str) -> dict:
    """Build an error object for the JSON envelope."""
    return {"code": code, "message": message}


def output_error(message: str, code: str, is_json: bool, exit_code: int = 1) -> NoReturn:
    """Print error and exit. JSON errors go to stdout; human errors to stderr."""
    if is_json:
        click.echo(json_envelope(False, error=json_error_obj(code, message)))
    else:
        click.echo(f"Error: {message}", err=True)
    raise SystemExit(exit_code)


def output_patch_error(error: PatchError, is_json: bool, exit_code: int = 1) -> NoReturn:
    """Report an engine error, keeping the failing patch id in JSON output."""
    if is_json:
        click.echo(json_envelope(False, error=error.to_dict()))
    else:
        click.echo(f"Error: {error}", err=True)
        if error.revert_error is not None:
            click.echo(f"Error: revert incomplete: {error.revert_error}", err=True)
    raise SystemExit(exit_code)


def output_result(*, data: object, human_message: str, is_json: bool) -> None:
    """Print success result in the appropriate format."""
    if is_json:
        click.echo(json_envelope(True, data=data))
    else:
        click.echo(human_message)
