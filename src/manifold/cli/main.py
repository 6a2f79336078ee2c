"""CLI entry point and commands."""

from __future__ import annotations

from pathlib import Path

import click

from manifold.core.config import default_config, serialize_config
from manifold.core.ids import generate_install_id
from manifold.storage.fs import CONFIG_FILE, MANIFOLD_DIR, TABLE_FILE, atomic_write, ensure_manifold_dirs
from manifold.storage.table import RecordTable, serialize_table
from manifold.sync.config import default_sync_config, save_sync_config


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log engine activity to stderr.")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """Manifold: snapshot, diff, patch and roll back structured record tables."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@cli.command()
@click.option(
    "--path",
    "target_path",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    default=".",
    help="Directory to initialize Manifold in (defaults to current directory).",
)
@click.option("--client-version", default=None, help="Version reported to patch sources.")
@click.option("--endpoint", default=None, help="Patch source URL used by 'manifold sync check'.")
@click.option(
    "--no-safe-mode",
    is_flag=True,
    help="Leave partially applied patch sets in place instead of reverting.",
)
def init(
    target_path: str,
    client_version: str | None,
    endpoint: str | None,
    no_safe_mode: bool,
) -> None:
    """Initialize a new Manifold project."""
    root = Path(target_path)
    manifold_dir = root / MANIFOLD_DIR

    if manifold_dir.is_dir():
        click.echo(f"Manifold already initialized in {MANIFOLD_DIR}/")
        return

    if manifold_dir.exists():
        raise click.ClickException(
            f"Cannot initialize: '{MANIFOLD_DIR}' exists but is not a directory. "
            "Remove it and try again."
        )

    try:
        ensure_manifold_dirs(root)

        config: dict = dict(default_config())
        config["install_id"] = generate_install_id()
        if client_version:
            config["client_version"] = client_version
        if no_safe_mode:
            config["safe_mode"] = False
        atomic_write(manifold_dir / CONFIG_FILE, serialize_config(config))
        atomic_write(manifold_dir / TABLE_FILE, serialize_table(RecordTable()))

        sync_config = default_sync_config()
        if endpoint:
            sync_config["endpoint"] = endpoint
        save_sync_config(manifold_dir, sync_config)
    except PermissionError:
        raise click.ClickException(f"Permission denied: cannot create {MANIFOLD_DIR}/ in {root}")
    except OSError as e:
        raise click.ClickException(f"Failed to initialize Manifold: {e}")

    click.echo(f"Manifold initialized in {MANIFOLD_DIR}/")
    if client_version:
        click.echo(f"Client version: {client_version}")
    if endpoint:
        click.echo(f"Patch endpoint: {endpoint}")


# ---------------------------------------------------------------------------
# Register command modules (must be after cli is defined)
# ---------------------------------------------------------------------------

import manifold.cli.patch_cmds  # noqa: E402, F401
import manifold.cli.record_cmds  # noqa: E402, F401
import manifold.cli.sync_cmds  # noqa: E402, F401


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
