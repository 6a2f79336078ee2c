"""CLI commands for pulling patch sets from a remote patch source."""

from __future__ import annotations

import click

from manifold.cli.helpers import (
    open_engine,
    output_error,
    output_patch_error,
    output_result,
    record_event,
    require_root,
    save_project_table,
)
from manifold.cli.main import cli
from manifold.core.events import create_event
from manifold.core.fingerprint import build_fingerprint
from manifold.storage.locks import LockTimeout, manifold_lock
from manifold.sync.client import VERIFIED, PatchSyncClient
from manifold.sync.config import load_sync_config, save_sync_config
from manifold.sync.transport import HttpTransport


@cli.group()
def sync() -> None:
    """Request and apply patch sets from a remote patch source."""


@sync.command("check")
@click.option("--endpoint", default=None, help="Patch source URL (overrides sync config).")
@click.option("--yes", "assume_yes", is_flag=True, help="Apply offered patches without asking.")
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def sync_check(endpoint: str | None, assume_yes: bool, output_json: bool) -> None:
    """Ask the patch source for patches matching this table and apply them."""
    manifold_dir = require_root(output_json)
    sync_config = load_sync_config(manifold_dir)
    url = endpoint or sync_config.get("endpoint")
    if not url:
        output_error(
            "No patch endpoint configured. Pass --endpoint or run 'manifold sync config --endpoint URL'.",
            "NO_ENDPOINT",
            output_json,
        )

    if assume_yes:
        confirm = lambda _message: True  # noqa: E731
    elif output_json:
        confirm = lambda _message: False  # noqa: E731
    else:
        confirm = lambda message: click.confirm(message, default=False)  # noqa: E731

    try:
        with manifold_lock(manifold_dir / "locks"):
            engine = open_engine(manifold_dir, output_json)
            client = PatchSyncClient(
                engine,
                url,
                transport=HttpTransport(timeout=float(sync_config.get("timeout", 10))),
                confirm=confirm,
                should_check_for_patches=bool(sync_config.get("should_check_for_patches", True)),
            )
            ok, err = client.start()
            if ok or not engine.safe_mode:
                save_project_table(manifold_dir, engine.store)
            digest = build_fingerprint(engine.store)
            record_event(
                manifold_dir,
                create_event(
                    "sync_checked",
                    {
                        "endpoint": url,
                        "state": client.last_state,
                        "applied": ok,
                        "error": err.to_dict() if err is not None else None,
                    },
                    fingerprint=digest,
                ),
            )
    except LockTimeout as e:
        output_error(str(e), "LOCK_TIMEOUT", output_json)

    if err is not None:
        output_patch_error(err, output_json)
    if client.last_state == VERIFIED:
        message = f"Patches applied and verified; fingerprint {digest}"
    elif not client.should_check_for_patches:
        message = "Patch check disabled."
    else:
        message = "Up to date."
    output_result(
        data={"applied": ok, "state": client.last_state, "fingerprint": digest},
        human_message=message,
        is_json=output_json,
    )


@sync.command("config")
@click.option("--endpoint", default=None, help="Patch source URL.")
@click.option(
    "--check/--no-check",
    "should_check",
    default=None,
    help="Enable or disable patch checks.",
)
@click.option("--timeout", type=float, default=None, help="Request timeout in seconds.")
@click.option("--json", "output_json", is_flag=True, help="Output structured JSON.")
def sync_config_cmd(
    endpoint: str | None,
    should_check: bool | None,
    timeout: float | None,
    output_json: bool,
) -> None:
    """Show or update the sync configuration."""
    manifold_dir = require_root(output_json)
    config = load_sync_config(manifold_dir)
    changed = False
    if endpoint is not None:
        config["endpoint"] = endpoint
        changed = True
    if should_check is not None:
        config["should_check_for_patches"] = should_check
        changed = True
    if timeout is not None:
        config["timeout"] = timeout
        changed = True
    if changed:
        save_sync_config(manifold_dir, config)

    lines = [f"{key}: {config[key]}" for key in sorted(config)]
    output_result(data=config, human_message="\n".join(lines), is_json=output_json)
