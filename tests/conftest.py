"""Shared test fixtures."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from click.testing import CliRunner

from manifold.engine.context import PatchEngine
from manifold.storage.table import RecordTable


@pytest.fixture(autouse=True)
def _restore_logging():
    """Undo the CLI's logging.basicConfig(force=True) after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture()
def table() -> RecordTable:
    """Return a small table: two top-level records and one child.

    Index order: 0 ``Health`` (#1), 1 ``Ammo`` (#2), 2 ``Ammo Max`` (#3, child of #2).
    """
    t = RecordTable()
    t.add_record(
        {
            "Description": "Health",
            "Address": "game.exe+1234",
            "Offset": [0],
            "Script": "[ENABLE]\nmov eax,1\n[DISABLE]\nmov eax,0\n",
        }
    )
    ammo = t.add_record({"Description": "Ammo", "Address": "game.exe+2000", "Type": 4})
    t.add_record(
        {"Description": "Ammo Max", "DropDownList": ["0:Off", "1:On"]},
        parent_id=ammo["ID"],
    )
    return t


@pytest.fixture()
def engine(table: RecordTable) -> PatchEngine:
    """Return a PatchEngine over :func:`table` with default config."""
    return PatchEngine(table)


@pytest.fixture()
def unsafe_engine(table: RecordTable) -> PatchEngine:
    """Return a PatchEngine with safe mode turned off."""
    return PatchEngine(table, {"safe_mode": False})


# ---------------------------------------------------------------------------
# CLI fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def manifold_root(tmp_path: Path) -> Path:
    """Return a temporary directory suitable for initializing .manifold/ in."""
    return tmp_path


@pytest.fixture()
def initialized_root(manifold_root: Path) -> Path:
    """Return a temporary directory with .manifold/ already initialized."""
    from manifold.core.config import default_config, serialize_config
    from manifold.storage.fs import MANIFOLD_DIR, atomic_write, ensure_manifold_dirs
    from manifold.storage.table import serialize_table

    ensure_manifold_dirs(manifold_root)
    manifold_dir = manifold_root / MANIFOLD_DIR
    atomic_write(manifold_dir / "config.json", serialize_config(default_config()))
    atomic_write(manifold_dir / "table.json", serialize_table(RecordTable()))
    return manifold_root


@pytest.fixture()
def cli_runner() -> CliRunner:
    """Return a Click CliRunner for invoking CLI commands."""
    return CliRunner()


@pytest.fixture()
def cli_env(initialized_root: Path) -> dict[str, str]:
    """Return env dict with MANIFOLD_ROOT pointing to initialized_root."""
    return {"MANIFOLD_ROOT": str(initialized_root)}


@pytest.fixture()
def invoke(cli_runner: CliRunner, cli_env: dict[str, str]):
    """Return a helper that invokes CLI commands with the right environment.

    Usage::

        result = invoke("records", "add", "--description", "Health")
    """
    from manifold.cli.main import cli

    def _invoke(*args: str, **kwargs):
        return cli_runner.invoke(cli, list(args), env=cli_env, **kwargs)

    return _invoke


@pytest.fixture()
def invoke_json(invoke):
    """Like invoke, but appends --json and parses the response.

    Returns (parsed_dict, exit_code) tuple.
    """

    def _invoke_json(*args: str) -> tuple[dict, int]:
        result = invoke(*args, "--json")
        parsed = json.loads(result.output)
        return parsed, result.exit_code

    return _invoke_json


@pytest.fixture()
def add_record(invoke_json):
    """Factory fixture: create a record through the CLI and return its ID.

    Usage::

        rid = add_record("Health", "Offset=[0]")
    """

    def _add(description: str = "Record", *assignments: str) -> int:
        args = ["records", "add", "--description", description]
        for item in assignments:
            args += ["--field", item]
        parsed, code = invoke_json(*args)
        assert code == 0, f"records add failed: {parsed}"
        return parsed["data"]["ID"]

    return _add
