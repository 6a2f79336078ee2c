"""Tests for the patch sync client state machine."""

from __future__ import annotations

import pytest

from manifold.core.errors import TransportError, UserDeclined, VerificationError
from manifold.sync import client as client_mod
from manifold.core.fingerprint import build_fingerprint
from manifold.engine.context import PatchEngine
from manifold.storage.table import RecordTable
from manifold.sync.client import (
    APPLY_READY,
    APPLYING,
    FAILED,
    HASH_MISMATCH,
    IDLE,
    REQUESTING,
    REVERTED_ON_FAILURE,
    REVERTED_ON_MISMATCH,
    UP_TO_DATE,
    VERIFIED,
    InvalidTransition,
    PatchSyncClient,
)

URL = "https://patches.example/check"


class FakeTransport:
    """Record requests and answer with a canned response (or raise)."""

    def __init__(self, response: object = None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.requests: list[tuple[str, dict]] = []

    def __call__(self, url: str, payload: dict) -> object:
        self.requests.append((url, payload))
        if self.error is not None:
            raise self.error
        return self.response


class Gate:
    """Confirmation gate that remembers whether it was asked."""

    def __init__(self, answer: bool = True) -> None:
        self.answer = answer
        self.messages: list[str] = []

    def __call__(self, message: str) -> bool:
        self.messages.append(message)
        return self.answer


def _active_patch(value: object = True) -> dict:
    return {"ID": "S1", "Target": {"ID": 2}, "Op": "set", "Path": "Active", "Value": value}


def _expected_after_active(table: RecordTable) -> str:
    preview = table.copy()
    preview.write_field(preview.get_by_id(2), "Active", True)
    return build_fingerprint(preview)


class TestRequest:
    def test_sends_version_and_fingerprint(self, engine: PatchEngine, table: RecordTable) -> None:
        transport = FakeTransport({"status": "up-to-date"})
        PatchSyncClient(engine, URL, transport=transport).start()
        assert transport.requests == [
            (URL, {"clientVersion": engine.version, "fingerprint": build_fingerprint(table)})
        ]

    def test_disabled_check_does_not_contact_remote(self, engine: PatchEngine) -> None:
        transport = FakeTransport({"status": "ok", "patches": [_active_patch()]})
        client = PatchSyncClient(engine, URL, transport=transport, should_check_for_patches=False)
        assert client.start() == (False, None)
        assert transport.requests == []
        assert client.history == [IDLE]


class TestStatuses:
    def test_hash_mismatch_mutates_nothing_and_skips_gate(
        self, engine: PatchEngine, table: RecordTable
    ) -> None:
        before = table.to_dict()
        gate = Gate()
        client = PatchSyncClient(
            engine, URL, transport=FakeTransport({"status": "hash-mismatch"}), confirm=gate
        )
        ok, err = client.start()
        assert not ok
        assert isinstance(err, VerificationError)
        assert gate.messages == []
        assert table.to_dict() == before
        assert client.last_state == HASH_MISMATCH
        assert client.history == [IDLE, REQUESTING, HASH_MISMATCH, IDLE]

    def test_up_to_date(self, engine: PatchEngine) -> None:
        gate = Gate()
        client = PatchSyncClient(
            engine, URL, transport=FakeTransport({"status": "up-to-date"}), confirm=gate
        )
        assert client.start() == (False, None)
        assert client.last_state == UP_TO_DATE
        assert gate.messages == []

    def test_unexpected_status(self, engine: PatchEngine) -> None:
        client = PatchSyncClient(engine, URL, transport=FakeTransport({"status": "banned"}))
        ok, err = client.start()
        assert not ok
        assert isinstance(err, TransportError)
        assert "banned" in err.message
        assert client.last_state == FAILED

    def test_empty_patch_list(self, engine: PatchEngine) -> None:
        gate = Gate()
        client = PatchSyncClient(
            engine, URL, transport=FakeTransport({"status": "ok", "patches": []}), confirm=gate
        )
        assert client.start() == (False, None)
        assert gate.messages == []

    def test_transport_failure(self, engine: PatchEngine) -> None:
        client = PatchSyncClient(
            engine, URL, transport=FakeTransport(error=TransportError("connection refused"))
        )
        ok, err = client.start()
        assert not ok
        assert isinstance(err, TransportError)
        assert client.last_state == FAILED

    def test_no_response(self, engine: PatchEngine) -> None:
        ok, err = PatchSyncClient(engine, URL, transport=FakeTransport(None)).start()
        assert not ok
        assert isinstance(err, TransportError)

    def test_malformed_response(self, engine: PatchEngine) -> None:
        ok, err = PatchSyncClient(engine, URL, transport=FakeTransport("ok")).start()
        assert not ok
        assert isinstance(err, TransportError)
        assert "Invalid response" in err.message


class TestApply:
    def test_confirmed_and_verified(self, engine: PatchEngine, table: RecordTable) -> None:
        response = {"patches": [_active_patch()], "newHash": _expected_after_active(table)}
        gate = Gate(True)
        client = PatchSyncClient(engine, URL, transport=FakeTransport(response), confirm=gate)

        assert client.start() == (True, None)
        assert table.get_by_id(2)["Active"] is True
        assert gate.messages and "1 patch(es)" in gate.messages[0]
        assert client.history == [IDLE, REQUESTING, APPLY_READY, APPLYING, VERIFIED, IDLE]
        assert client.last_state == VERIFIED

    def test_declined(self, engine: PatchEngine, table: RecordTable) -> None:
        response = {"status": "ok", "patches": [_active_patch()]}
        client = PatchSyncClient(engine, URL, transport=FakeTransport(response), confirm=Gate(False))
        ok, err = client.start()
        assert not ok
        assert isinstance(err, UserDeclined)
        assert table.get_by_id(2)["Active"] is False

    def test_default_gate_declines(self, engine: PatchEngine, table: RecordTable) -> None:
        response = {"status": "ok", "patches": [_active_patch()]}
        ok, err = PatchSyncClient(engine, URL, transport=FakeTransport(response)).start()
        assert isinstance(err, UserDeclined)
        assert table.get_by_id(2)["Active"] is False

    def test_post_apply_mismatch_reverts(self, engine: PatchEngine, table: RecordTable) -> None:
        response = {"status": "ok", "patches": [_active_patch()], "newHash": "0" * 32}
        client = PatchSyncClient(engine, URL, transport=FakeTransport(response), confirm=Gate())
        ok, err = client.start()
        assert not ok
        assert isinstance(err, VerificationError)
        assert table.get_by_id(2)["Active"] is False
        assert client.last_state == REVERTED_ON_MISMATCH

    def test_patch_failure_reverts(self, engine: PatchEngine, table: RecordTable) -> None:
        patches = [
            _active_patch(),
            {"ID": "S2", "Target": {"ID": 404}, "Path": "Active", "Value": True},
        ]
        client = PatchSyncClient(
            engine, URL, transport=FakeTransport({"status": "ok", "patches": patches}), confirm=Gate()
        )
        ok, err = client.start()
        assert not ok
        assert err.patch_id == "S2"
        assert table.get_by_id(2)["Active"] is False
        assert client.last_state == REVERTED_ON_FAILURE

    def test_failure_without_safe_mode(self, unsafe_engine: PatchEngine, table: RecordTable) -> None:
        response = {"status": "ok", "patches": [_active_patch()], "newHash": "0" * 32}
        client = PatchSyncClient(
            unsafe_engine, URL, transport=FakeTransport(response), confirm=Gate()
        )
        ok, _ = client.start()
        assert not ok
        assert table.get_by_id(2)["Active"] is True
        assert client.last_state == FAILED

    def test_client_is_reusable(self, engine: PatchEngine) -> None:
        client = PatchSyncClient(engine, URL, transport=FakeTransport({"status": "up-to-date"}))
        client.start()
        client.start()
        assert client.state == IDLE
        assert client.history == [IDLE, REQUESTING, UP_TO_DATE, IDLE]

    def test_unreverted_verification_failure_is_plain_failure(
        self, engine: PatchEngine, table: RecordTable, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def refuse(engine, patch_set, **_kwargs):
            return False, VerificationError("Fingerprint mismatch before apply")

        monkeypatch.setattr(client_mod, "apply_patch_set", refuse)
        response = {"status": "ok", "patches": [_active_patch()]}
        client = PatchSyncClient(engine, URL, transport=FakeTransport(response), confirm=Gate())
        ok, err = client.start()
        assert not ok
        assert isinstance(err, VerificationError)
        assert client.last_state == FAILED

    def test_raising_gate_fails_cleanly(self, engine: PatchEngine, table: RecordTable) -> None:
        def broken_gate(_message: str) -> bool:
            raise EOFError("stdin closed")

        response = {"status": "ok", "patches": [_active_patch()]}
        client = PatchSyncClient(
            engine, URL, transport=FakeTransport(response), confirm=broken_gate
        )
        ok, err = client.start()
        assert not ok
        assert isinstance(err, UserDeclined)
        assert "stdin closed" in err.message
        assert client.last_state == FAILED
        assert client.state == IDLE
        assert table.get_by_id(2)["Active"] is False


class TestRecovery:
    def test_foreign_transport_error_is_translated(self, engine: PatchEngine) -> None:
        client = PatchSyncClient(
            engine, URL, transport=FakeTransport(error=RuntimeError("socket reset"))
        )
        ok, err = client.start()
        assert not ok
        assert isinstance(err, TransportError)
        assert "socket reset" in err.message
        assert client.last_state == FAILED
        assert client.state == IDLE

        client.transport = FakeTransport({"status": "up-to-date"})
        assert client.start() == (False, None)
        assert client.last_state == UP_TO_DATE

    def test_interrupted_cycle_does_not_wedge_the_next(self, engine: PatchEngine) -> None:
        client = PatchSyncClient(engine, URL, transport=FakeTransport({"status": "up-to-date"}))
        client.state = APPLYING
        assert client.start() == (False, None)
        assert client.history == [IDLE, REQUESTING, UP_TO_DATE, IDLE]

    def test_fingerprint_failure(self, table: RecordTable) -> None:
        class Unhashable(RecordTable):
            def iter_records(self):
                raise OSError("table locked")

        engine = PatchEngine(Unhashable.from_dict(table.to_dict()))
        transport = FakeTransport({"status": "up-to-date"})
        ok, err = PatchSyncClient(engine, URL, transport=transport).start()
        assert not ok
        assert "table locked" in err.message
        assert transport.requests == []


def test_invalid_transition(engine: PatchEngine) -> None:
    client = PatchSyncClient(engine, URL, transport=FakeTransport({}))
    with pytest.raises(InvalidTransition):
        client._enter(APPLYING)
