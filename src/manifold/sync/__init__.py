"""Remote patch sync: request a patch set keyed by version and fingerprint."""

from __future__ import annotations

from manifold.sync.client import PatchSyncClient
from manifold.sync.config import default_sync_config, load_sync_config, save_sync_config
from manifold.sync.transport import HttpTransport

__all__ = [
    "HttpTransport",
    "PatchSyncClient",
    "default_sync_config",
    "load_sync_config",
    "save_sync_config",
]
