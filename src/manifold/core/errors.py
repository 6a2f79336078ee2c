"""Patch engine error taxonomy.

Engine internals raise these; every public engine operation catches them and
hands them back as the second element of an ``(ok, error)`` tuple.
"""

from __future__ import annotations


class PatchError(Exception):
    """Base class for every failure the patch engine reports."""

    code = "PATCH_ERROR"

    def __init__(self, message: str, *, patch_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.patch_id = patch_id
        # Set by the applier when safe mode ran the reverter for this failure.
        self.reverted = False
        self.revert_error: PatchError | None = None

    def with_patch(self, patch_id: str | None) -> PatchError:
        """Attach *patch_id* if none is set yet and return self."""
        if self.patch_id is None:
            self.patch_id = patch_id
        return self

    def to_dict(self) -> dict:
        """Return ``{"code", "message"}`` plus ``patch_id`` and ``revert_error`` when set."""
        result: dict = {"code": self.code, "message": self.message}
        if self.patch_id is not None:
            result["patch_id"] = self.patch_id
        if self.revert_error is not None:
            result["revert_error"] = self.revert_error.to_dict()
        return result

    def __str__(self) -> str:
        if self.patch_id is not None:
            return f"{self.message} (patch {self.patch_id})"
        return self.message


class ResolutionError(PatchError):
    """No record matches a target spec (or a named snapshot is missing)."""

    code = "RESOLUTION_ERROR"


class SchemaError(PatchError):
    """The field's kind does not accept the supplied value shape or op."""

    code = "SCHEMA_ERROR"


class CoercionError(PatchError):
    """A value cannot be converted to the field's kind."""

    code = "COERCION_ERROR"


class WriteError(PatchError):
    """The record store rejected a write."""

    code = "WRITE_ERROR"


class VerificationError(PatchError):
    """A fingerprint did not match what was expected."""

    code = "VERIFICATION_ERROR"


class TransportError(PatchError):
    """The remote patch source gave no usable response."""

    code = "TRANSPORT_ERROR"


class UserDeclined(PatchError):
    """The confirmation gate refused to apply remote patches."""

    code = "USER_DECLINED"


# Errors that abort an in-flight apply and trigger the reverter.
APPLY_ERRORS: tuple[type[PatchError], ...] = (
    ResolutionError,
    SchemaError,
    CoercionError,
    WriteError,
    VerificationError,
)
