"""Patch sync client: ask a remote source for patches and apply them."""

from __future__ import annotations

import logging
from collections.abc import Callable

from manifold.core.errors import (
    PatchError,
    SchemaError,
    TransportError,
    UserDeclined,
    VerificationError,
    WriteError,
)
from manifold.core.fingerprint import build_fingerprint
from manifold.core.patches import (
    STATUS_HASH_MISMATCH,
    STATUS_OK,
    STATUS_UP_TO_DATE,
    PatchSet,
    parse_patch_set,
)
from manifold.engine.applier import apply_patch_set
from manifold.sync.transport import HttpTransport

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# States
# ---------------------------------------------------------------------------

IDLE = "idle"
REQUESTING = "requesting"
UP_TO_DATE = "up_to_date"
HASH_MISMATCH = "hash_mismatch"
APPLY_READY = "apply_ready"
APPLYING = "applying"
VERIFIED = "verified"
REVERTED_ON_MISMATCH = "reverted_on_mismatch"
REVERTED_ON_FAILURE = "reverted_on_failure"
FAILED = "failed"

TRANSITIONS: dict[str, frozenset[str]] = {
    IDLE: frozenset({REQUESTING}),
    REQUESTING: frozenset({UP_TO_DATE, HASH_MISMATCH, APPLY_READY, FAILED}),
    UP_TO_DATE: frozenset({IDLE}),
    HASH_MISMATCH: frozenset({IDLE}),
    APPLY_READY: frozenset({APPLYING, FAILED}),
    APPLYING: frozenset({VERIFIED, REVERTED_ON_MISMATCH, REVERTED_ON_FAILURE, FAILED}),
    VERIFIED: frozenset({IDLE}),
    REVERTED_ON_MISMATCH: frozenset({IDLE}),
    REVERTED_ON_FAILURE: frozenset({IDLE}),
    FAILED: frozenset({IDLE}),
}

Transport = Callable[[str, dict], object]
Confirm = Callable[[str], bool]


def _decline(_message: str) -> bool:
    return False


class InvalidTransition(RuntimeError):
    """Raised when the client is driven into a state not reachable from the current one."""


class PatchSyncClient:
    """Drive one request/confirm/apply/verify cycle against a remote source.

    The remote receives ``{"clientVersion", "fingerprint"}`` and answers
    with a patch set.  Nothing is written unless the answer is ``ok`` with a
    non-empty patch list and *confirm* agrees.  *confirm* defaults to
    declining, so a client built without one never mutates the store.
    """

    def __init__(
        self,
        engine,
        endpoint: str,
        *,
        transport: Transport | None = None,
        confirm: Confirm | None = None,
        should_check_for_patches: bool = True,
    ) -> None:
        self.engine = engine
        self.endpoint = endpoint
        self.transport: Transport = transport if transport is not None else HttpTransport()
        self.confirm: Confirm = confirm if confirm is not None else _decline
        self.should_check_for_patches = should_check_for_patches

        self.state = IDLE
        self.last_state = IDLE
        self.history: list[str] = [IDLE]
        self.last_response: PatchSet | None = None

    def _enter(self, state: str) -> None:
        if state not in TRANSITIONS[self.state]:
            raise InvalidTransition(f"Cannot move from {self.state} to {state}")
        self.state = state
        self.history.append(state)
        logger.debug("Sync state -> %s", state)

    def _finish(
        self, state: str, ok: bool, error: PatchError | None
    ) -> tuple[bool, PatchError | None]:
        if self.state != state:
            self._enter(state)
        self.last_state = state
        self._enter(IDLE)
        return ok, error

    def start(self) -> tuple[bool, PatchError | None]:
        """Run one sync cycle.

        Returns ``(True, None)`` only when patches were applied and verified.
        ``(False, None)`` means there was nothing to do (disabled, up to
        date, or an empty patch list); ``(False, error)`` is a failure.
        """
        if not self.should_check_for_patches:
            logger.info("Patch check disabled. Skipping")
            return False, None

        # A cycle interrupted by an exception must not wedge the next one.
        self.state = IDLE
        self.history = [IDLE]
        self._enter(REQUESTING)
        try:
            fingerprint = build_fingerprint(self.engine.store)
        except Exception as exc:  # store implementations raise their own types
            logger.warning("Could not fingerprint the store: %s", exc)
            err = WriteError(f"Store could not be fingerprinted: {exc}")
            return self._finish(FAILED, False, err)
        payload = {"clientVersion": self.engine.version, "fingerprint": fingerprint}
        logger.info("Checking for patches at %s", self.endpoint)

        try:
            raw = self.transport(self.endpoint, payload)
            if raw is None:
                raise TransportError("No response from patch source")
            patch_set = parse_patch_set(raw)
        except TransportError as err:
            logger.warning("No response or invalid response: %s", err)
            return self._finish(FAILED, False, err)
        except SchemaError as err:
            logger.warning("Invalid response: %s", err)
            return self._finish(FAILED, False, TransportError(f"Invalid response: {err.message}"))
        except Exception as exc:  # custom transports raise their own types
            logger.warning("Transport failed: %s", exc)
            return self._finish(FAILED, False, TransportError(f"Transport failed: {exc}"))
        self.last_response = patch_set

        status = patch_set["status"]
        if status == STATUS_UP_TO_DATE:
            logger.info("Up to date")
            return self._finish(UP_TO_DATE, False, None)
        if status == STATUS_HASH_MISMATCH:
            logger.warning("Hash mismatch: local fingerprint %s is not recognized", fingerprint)
            return self._finish(
                HASH_MISMATCH,
                False,
                VerificationError(f"Remote does not recognize fingerprint {fingerprint}"),
            )
        if status != STATUS_OK:
            logger.warning("Unexpected server status: %s", status)
            err = TransportError(f"Unexpected server status: {status}")
            return self._finish(FAILED, False, err)

        patches = patch_set["patches"]
        if not patches:
            logger.warning("No valid patches")
            return self._finish(UP_TO_DATE, False, None)

        self._enter(APPLY_READY)
        message = (
            f"There are {len(patches)} patch(es) available for your version. "
            "Do you want to apply them?"
        )
        try:
            confirmed = self.confirm(message)
        except Exception as exc:  # the gate is an external collaborator
            logger.warning("Confirmation failed: %s", exc)
            return self._finish(FAILED, False, UserDeclined(f"Confirmation failed: {exc}"))
        if not confirmed:
            logger.info("User declined patch application")
            return self._finish(FAILED, False, UserDeclined("User declined patch application"))

        self._enter(APPLYING)
        ok, err = apply_patch_set(
            self.engine,
            patch_set,
            expected_new_fingerprint=patch_set.get("newHash"),
        )
        if ok:
            logger.info("All patches applied successfully")
            return self._finish(VERIFIED, True, None)
        if not err.reverted:
            return self._finish(FAILED, False, err)
        if isinstance(err, VerificationError):
            return self._finish(REVERTED_ON_MISMATCH, False, err)
        return self._finish(REVERTED_ON_FAILURE, False, err)
