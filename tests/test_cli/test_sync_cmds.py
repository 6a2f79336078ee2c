"""Tests for `manifold sync` commands (the HTTP transport is patched out)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from manifold.sync.transport import HttpTransport

ENDPOINT = "https://patches.example/check"


@pytest.fixture()
def remote(monkeypatch: pytest.MonkeyPatch) -> dict:
    """Replace the HTTP transport; set ``remote["response"]`` to control the answer."""
    state: dict = {"response": {"status": "up-to-date"}, "requests": []}

    def fake_call(self, url: str, payload: dict):
        state["requests"].append({"url": url, "payload": payload, "timeout": self.timeout})
        return state["response"]

    monkeypatch.setattr(HttpTransport, "__call__", fake_call)
    return state


@pytest.fixture()
def ammo(add_record) -> int:
    return add_record("Ammo", "Type=4")


def _read_events(root: Path) -> list[dict]:
    path = root / ".manifold" / "events.jsonl"
    return [json.loads(line) for line in path.read_text().splitlines() if line.strip()]


def _active_flag(root: Path) -> bool:
    data = json.loads((root / ".manifold" / "table.json").read_text())
    return data["records"][0]["Active"]


def _offer(ammo_id: int, **extra) -> dict:
    return {
        "status": "ok",
        "patches": [{"ID": "R1", "Target": {"ID": ammo_id}, "Path": "Active", "Value": True}],
        **extra,
    }


class TestSyncCheck:
    def test_requires_endpoint(self, invoke_json, remote) -> None:
        parsed, code = invoke_json("sync", "check")
        assert code == 1
        assert parsed["error"]["code"] == "NO_ENDPOINT"
        assert remote["requests"] == []

    def test_up_to_date(self, invoke_json, remote, ammo, initialized_root) -> None:
        parsed, code = invoke_json("sync", "check", "--endpoint", ENDPOINT)
        assert code == 0
        assert parsed["data"]["state"] == "up_to_date"
        assert parsed["data"]["applied"] is False

        request = remote["requests"][0]
        assert request["url"] == ENDPOINT
        assert request["payload"]["clientVersion"] == "1.0.0"
        assert request["payload"]["fingerprint"] == parsed["data"]["fingerprint"]
        assert request["timeout"] == 10

        event = _read_events(initialized_root)[-1]
        assert event["type"] == "sync_checked"
        assert event["data"]["state"] == "up_to_date"

    def test_uses_configured_endpoint(self, invoke, invoke_json, remote, ammo) -> None:
        invoke("sync", "config", "--endpoint", ENDPOINT, "--timeout", "3")
        parsed, code = invoke_json("sync", "check")
        assert code == 0
        assert remote["requests"][0]["url"] == ENDPOINT
        assert remote["requests"][0]["timeout"] == 3

    def test_applies_with_yes(self, invoke_json, remote, ammo, initialized_root) -> None:
        remote["response"] = _offer(ammo)
        parsed, code = invoke_json("sync", "check", "--endpoint", ENDPOINT, "--yes")
        assert code == 0, parsed
        assert parsed["data"]["state"] == "verified"
        assert parsed["data"]["applied"] is True
        assert _active_flag(initialized_root) is True

    def test_json_without_yes_declines(self, invoke_json, remote, ammo, initialized_root) -> None:
        remote["response"] = _offer(ammo)
        parsed, code = invoke_json("sync", "check", "--endpoint", ENDPOINT)
        assert code == 1
        assert parsed["error"]["code"] == "USER_DECLINED"
        assert _active_flag(initialized_root) is False

    def test_interactive_confirm(self, invoke, remote, ammo, initialized_root) -> None:
        remote["response"] = _offer(ammo)
        result = invoke("sync", "check", "--endpoint", ENDPOINT, input="y\n")
        assert result.exit_code == 0, result.output
        assert "1 patch(es) available" in result.output
        assert "Patches applied and verified" in result.output
        assert _active_flag(initialized_root) is True

    def test_hash_mismatch(self, invoke_json, remote, ammo, initialized_root) -> None:
        remote["response"] = {"status": "hash-mismatch"}
        before = (initialized_root / ".manifold" / "table.json").read_text()
        parsed, code = invoke_json("sync", "check", "--endpoint", ENDPOINT, "--yes")
        assert code == 1
        assert parsed["error"]["code"] == "VERIFICATION_ERROR"
        assert (initialized_root / ".manifold" / "table.json").read_text() == before
        assert _read_events(initialized_root)[-1]["data"]["state"] == "hash_mismatch"

    def test_post_apply_mismatch_is_reverted(
        self, invoke_json, remote, ammo, initialized_root
    ) -> None:
        remote["response"] = _offer(ammo, newHash="0" * 32)
        parsed, code = invoke_json("sync", "check", "--endpoint", ENDPOINT, "--yes")
        assert code == 1
        assert parsed["error"]["code"] == "VERIFICATION_ERROR"
        assert _active_flag(initialized_root) is False
        assert _read_events(initialized_root)[-1]["data"]["state"] == "reverted_on_mismatch"

    def test_transport_failure(self, invoke_json, remote, ammo) -> None:
        remote["response"] = None
        parsed, code = invoke_json("sync", "check", "--endpoint", ENDPOINT)
        assert code == 1
        assert parsed["error"]["code"] == "TRANSPORT_ERROR"

    def test_disabled(self, invoke, invoke_json, remote, ammo) -> None:
        invoke("sync", "config", "--no-check")
        result = invoke("sync", "check", "--endpoint", ENDPOINT)
        assert result.exit_code == 0
        assert "Patch check disabled." in result.output
        assert remote["requests"] == []


class TestSyncConfig:
    def test_show_defaults(self, invoke_json) -> None:
        parsed, code = invoke_json("sync", "config")
        assert code == 0
        assert parsed["data"] == {"endpoint": "", "should_check_for_patches": True, "timeout": 10}

    def test_update(self, invoke_json, initialized_root) -> None:
        parsed, code = invoke_json("sync", "config", "--endpoint", ENDPOINT, "--no-check")
        assert code == 0
        saved = json.loads((initialized_root / ".manifold" / "sync" / "config.json").read_text())
        assert saved["endpoint"] == ENDPOINT
        assert saved["should_check_for_patches"] is False

    def test_human_output(self, invoke) -> None:
        result = invoke("sync", "config")
        assert "endpoint: " in result.output
        assert "timeout: 10" in result.output
