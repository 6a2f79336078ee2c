"""Sync configuration management.

Stored in ``.manifold/sync/config.json``.
"""

from __future__ import annotations

import json
from pathlib import Path

from manifold.storage.fs import atomic_write
from manifold.sync.transport import DEFAULT_TIMEOUT


def default_sync_config() -> dict:
    """Return default sync configuration."""
    return {
        "endpoint": "",
        "should_check_for_patches": True,
        "timeout": DEFAULT_TIMEOUT,
    }


def load_sync_config(manifold_dir: Path) -> dict:
    """Load sync configuration, filling defaults for anything missing."""
    config = default_sync_config()
    config_path = manifold_dir / "sync" / "config.json"
    if config_path.exists():
        config.update(json.loads(config_path.read_text()))
    return config


def save_sync_config(manifold_dir: Path, config: dict) -> None:
    """Save sync configuration to disk."""
    sync_dir = manifold_dir / "sync"
    sync_dir.mkdir(parents=True, exist_ok=True)
    atomic_write(
        sync_dir / "config.json",
        json.dumps(config, sort_keys=True, indent=2) + "\n",
    )
