"""CLI commands for fingerprints, snapshots, diffs and patch application."""

from __future__ import annotations

import json
from pathlib import Path

import click

from manifold.cli.helpers import (
    load_named_snapshot,
    open_engine,
    output_error,
    output_patch_error,
    output_result,
    record_event,
    require_root,
    save_project_table,
)
from manifold.cli.main import cli
from manifold.cli.record_cmds import parse_cli_value
from manifold.core.errors import PatchError
from manifold.core.events import apply_outcome_event, create_event
from manifold.core.fingerprint import build_fingerprint, build_fingerprint_text
from manifold.core.patches import parse_patch_set, serialize_patch_set
from manifold.engine.applier import apply_patch_set
from manifold.engine.differ import generate_patch_from_snapshot
from manifold.engine.snapshots import serialize_snapshot, take_snapshot
from manifold.storage.fs import atomic_write, list_snapshot_names, snapshot_path
from manifold.storage.locks import LockTimeout, manifold_lock

# ---------------------------------------------------------------------------
# manifold fingerprint
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--text", "show_text", is_flag=True, help="Print the hashed text instead of the hash.")
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def fingerprint(show_text: bool, output_json: bool) -> None:
    """Print the content fingerprint of the record table."""
    manifold_dir = require_root(output_json)
    engine = open_engine(manifold_dir, output_json)
    if show_text:
        click.echo(build_fingerprint_text(engine.store))
        return
    digest = build_fingerprint(engine.store)
    output_result(
        data={"fingerprint": digest, "records": engine.store.count()},
        human_message=digest,
        is_json=output_json,
    )


# ---------------------------------------------------------------------------
# manifold snapshot
# ---------------------------------------------------------------------------


@cli.group()
def snapshot() -> None:
    """Capture and list named snapshots."""


@snapshot.command("take")
@click.argument("name", default="default")
@click.option("--include-script", is_flag=True, help="Capture script bodies.")
@click.option("--include-value", is_flag=True, help="Capture record values.")
@click.option("--include-custom-type-name", is_flag=True, help="Capture custom type names.")
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def snapshot_take(
    name: str,
    include_script: bool,
    include_value: bool,
    include_custom_type_name: bool,
    output_json: bool,
) -> None:
    """Capture the current state of every record under NAME."""
    manifold_dir = require_root(output_json)
    try:
        path = snapshot_path(manifold_dir, name)
    except ValueError as e:
        output_error(str(e), "INVALID_NAME", output_json)

    try:
        with manifold_lock(manifold_dir / "locks"):
            engine = open_engine(manifold_dir, output_json)
            digest = take_snapshot(
                engine,
                name,
                include_script=include_script,
                include_value=include_value,
                include_custom_type_name=include_custom_type_name,
            )
            atomic_write(path, serialize_snapshot(engine.snapshots[name]))
            record_event(
                manifold_dir,
                create_event(
                    "snapshot_taken",
                    {"name": name, "records": engine.store.count()},
                    fingerprint=digest,
                ),
            )
    except LockTimeout as e:
        output_error(str(e), "LOCK_TIMEOUT", output_json)

    output_result(
        data={"name": name, "fingerprint": digest},
        human_message=f"Snapshot '{name}' taken ({digest})",
        is_json=output_json,
    )


@snapshot.command("list")
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def snapshot_list(output_json: bool) -> None:
    """List saved snapshots."""
    manifold_dir = require_root(output_json)
    rows = []
    for name in list_snapshot_names(manifold_dir):
        data = json.loads(snapshot_path(manifold_dir, name).read_text())
        rows.append(
            {
                "name": name,
                "created_at": data.get("created_at", ""),
                "fingerprint": data.get("required_fingerprint", ""),
                "records": len(data.get("records") or []),
            }
        )
    if output_json:
        output_result(data=rows, human_message="", is_json=True)
        return
    if not rows:
        click.echo("No snapshots.")
        return
    for row in rows:
        click.echo(f"{row['name']}  {row['created_at']}  {row['fingerprint']}  ({row['records']} records)")


# ---------------------------------------------------------------------------
# manifold diff
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", default="default")
@click.option(
    "-o",
    "--output",
    "output_path",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Write the patch set to this file instead of stdout.",
)
@click.option("--target-version", default=None, help="targetVersion to stamp on the patch set.")
def diff(name: str, output_path: str | None, target_version: str | None) -> None:
    """Generate a patch set turning snapshot NAME into the current table."""
    manifold_dir = require_root(False)
    engine = open_engine(manifold_dir)
    load_named_snapshot(engine, manifold_dir, name, False)

    patch_set, err = generate_patch_from_snapshot(engine, name, target_version=target_version)
    if err is not None:
        output_patch_error(err, False)

    content = serialize_patch_set(patch_set)
    if output_path is None:
        click.echo(content, nl=False)
        return
    Path(output_path).write_text(content)
    click.echo(f"Wrote {len(patch_set['patches'])} patch(es) to {output_path}", err=True)


# ---------------------------------------------------------------------------
# manifold apply / set
# ---------------------------------------------------------------------------


def _run_apply(
    manifold_dir: Path,
    patch_set: dict,
    *,
    source: str,
    verify: bool,
    require_base: bool,
    output_json: bool,
) -> None:
    """Apply *patch_set* under the table lock, persist, journal, and report."""
    try:
        with manifold_lock(manifold_dir / "locks"):
            engine = open_engine(manifold_dir, output_json)
            ok, err = apply_patch_set(
                engine,
                patch_set,
                expected_new_fingerprint=patch_set.get("newHash") if verify else None,
                required_fingerprint=patch_set.get("requiredHash") if require_base else None,
            )
            applied = list(engine.applied_patches)
            # A failed apply under safe mode already restored the table in memory.
            if ok or not engine.safe_mode:
                save_project_table(manifold_dir, engine.store)
            digest = build_fingerprint(engine.store)
            record_event(
                manifold_dir,
                apply_outcome_event(ok, err, applied, source=source, fingerprint=digest),
            )
            if not ok and engine.safe_mode:
                record_event(
                    manifold_dir,
                    create_event("patch_set_reverted", {"source": source}, fingerprint=digest),
                )
    except LockTimeout as e:
        output_error(str(e), "LOCK_TIMEOUT", output_json)

    if not ok:
        output_patch_error(err, output_json)
    output_result(
        data={"applied": applied, "fingerprint": digest},
        human_message=f"Applied {len(applied)} patch(es); fingerprint {digest}",
        is_json=output_json,
    )


@cli.command()
@click.argument("patch_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--verify/--no-verify",
    default=True,
    help="Check the table against the patch set's newHash after applying.",
)
@click.option(
    "--require-base",
    is_flag=True,
    help="Refuse to apply unless the table matches the patch set's requiredHash.",
)
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def apply(patch_file: str, verify: bool, require_base: bool, output_json: bool) -> None:
    """Apply a patch set file to the record table."""
    manifold_dir = require_root(output_json)
    try:
        patch_set = parse_patch_set(json.loads(Path(patch_file).read_text()))
    except json.JSONDecodeError as e:
        output_error(f"Invalid patch file: {e}", "INVALID_PATCH_SET", output_json)
    except PatchError as e:
        output_patch_error(e, output_json)

    _run_apply(
        manifold_dir,
        patch_set,
        source=str(patch_file),
        verify=verify,
        require_base=require_base,
        output_json=output_json,
    )


@cli.command("set")
@click.argument("path")
@click.argument("value")
@click.option("--index", type=int, default=None, help="Target record by index.")
@click.option("--id", "record_id", type=int, default=None, help="Target record by ID.")
@click.option("--description", default=None, help="Target record by description.")
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def set_field(
    path: str,
    value: str,
    index: int | None,
    record_id: int | None,
    description: str | None,
    output_json: bool,
) -> None:
    """Set field PATH to VALUE on one record, as a single-patch transaction.

    VALUE is parsed as JSON when possible, so ``4`` is a number and
    ``[4,8]`` a list; anything else is taken as a string.
    """
    target: dict = {}
    if index is not None:
        target["Index"] = index
    if record_id is not None:
        target["ID"] = record_id
    if description is not None:
        target["Description"] = description
    if not target:
        output_error(
            "One of --index, --id or --description is required.",
            "MISSING_TARGET",
            output_json,
        )

    manifold_dir = require_root(output_json)
    patch = {"ID": "CLI_SET", "Target": target, "Op": "set", "Path": path, "Value": parse_cli_value(value)}
    _run_apply(
        manifold_dir,
        {"status": "ok", "patches": [patch]},
        source="cli:set",
        verify=False,
        require_base=False,
        output_json=output_json,
    )
