"""CLI commands for inspecting and editing the record table directly."""

from __future__ import annotations

import json

import click

from manifold.cli.helpers import (
    load_project_table,
    output_error,
    output_result,
    require_root,
    save_project_table,
)
from manifold.cli.main import cli
from manifold.core.fingerprint import build_fingerprint
from manifold.storage.locks import LockTimeout, manifold_lock


def parse_cli_value(raw: str) -> object:
    """Decode a command-line value as JSON, falling back to the raw string.

    ``4`` -> ``4``, ``true`` -> ``True``, ``[4,8]`` -> ``[4, 8]``,
    ``Gold`` -> ``"Gold"``.
    """
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _parse_assignments(assignments: tuple[str, ...], is_json: bool) -> dict:
    fields: dict = {}
    for item in assignments:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            output_error(f"Expected FIELD=VALUE, got '{item}'", "INVALID_ARGUMENT", is_json)
        fields[key] = parse_cli_value(raw)
    return fields


@cli.group()
def records() -> None:
    """Inspect and edit records in the project table."""


@records.command("list")
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def records_list(output_json: bool) -> None:
    """List records in index order."""
    manifold_dir = require_root(output_json)
    table = load_project_table(manifold_dir, output_json)

    rows = [
        {
            "Index": table.record_index(record),
            "ID": record["ID"],
            "Description": record["Description"],
        }
        for record in table.iter_records()
    ]
    if output_json:
        output_result(data=rows, human_message="", is_json=True)
        return
    if not rows:
        click.echo("No records.")
        return
    for row in rows:
        click.echo(f"{row['Index']:>4}  #{row['ID']:<6} {row['Description']}")


@records.command("show")
@click.argument("record_id", type=int)
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def records_show(record_id: int, output_json: bool) -> None:
    """Show every field of one record."""
    manifold_dir = require_root(output_json)
    table = load_project_table(manifold_dir, output_json)
    record = table.get_by_id(record_id)
    if record is None:
        output_error(f"Record {record_id} not found.", "NOT_FOUND", output_json)

    data = {k: v for k, v in record.items() if k != "Children"}
    data["Index"] = table.record_index(record)
    if output_json:
        output_result(data=data, human_message="", is_json=True)
        return
    for key in sorted(data):
        click.echo(f"{key}: {json.dumps(data[key])}")


@records.command("add")
@click.option("--description", default="", help="Record description.")
@click.option("--parent", "parent_id", type=int, default=None, help="Parent record ID.")
@click.option(
    "--field",
    "assignments",
    multiple=True,
    help="FIELD=VALUE to set on the new record (VALUE is parsed as JSON when possible).",
)
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def records_add(
    description: str,
    parent_id: int | None,
    assignments: tuple[str, ...],
    output_json: bool,
) -> None:
    """Create a record."""
    manifold_dir = require_root(output_json)
    fields = _parse_assignments(assignments, output_json)
    fields.setdefault("Description", description)

    try:
        with manifold_lock(manifold_dir / "locks"):
            table = load_project_table(manifold_dir, output_json)
            try:
                record = table.add_record(fields, parent_id=parent_id)
            except ValueError as e:
                output_error(str(e), "NOT_FOUND", output_json)
            save_project_table(manifold_dir, table)
    except LockTimeout as e:
        output_error(str(e), "LOCK_TIMEOUT", output_json)

    output_result(
        data={"ID": record["ID"], "fingerprint": build_fingerprint(table)},
        human_message=f"Created record #{record['ID']}",
        is_json=output_json,
    )


@records.command("delete")
@click.argument("record_id", type=int)
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def records_delete(record_id: int, output_json: bool) -> None:
    """Delete a record and its whole subtree."""
    manifold_dir = require_root(output_json)
    try:
        with manifold_lock(manifold_dir / "locks"):
            table = load_project_table(manifold_dir, output_json)
            try:
                table.delete_record(record_id)
            except ValueError as e:
                output_error(str(e), "NOT_FOUND", output_json)
            save_project_table(manifold_dir, table)
    except LockTimeout as e:
        output_error(str(e), "LOCK_TIMEOUT", output_json)

    output_result(
        data={"ID": record_id},
        human_message=f"Deleted record #{record_id}",
        is_json=output_json,
    )
