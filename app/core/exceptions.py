"""
Error taxonomy for SkillBadge Backend.

Adapters raise the infrastructure errors, workflows wrap them in
RegistrationFailed / IssuanceFailed, and the API layer maps everything
to an HTTP status.
"""

from typing import Optional


class SkillBadgeError(Exception):
    """Base class for all service errors."""

    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    @property
    def details(self) -> str:
        if self.cause is not None:
            return str(self.cause)
        return self.message


class InvalidRequest(SkillBadgeError):
    """Missing or malformed input."""
    status_code = 400


class IssuanceRefused(InvalidRequest):
    """Badge issuance is not allowed for this request (practice mode, inactive test, no passing attempt)."""


class NotFound(SkillBadgeError):
    status_code = 404


class Conflict(SkillBadgeError):
    """A record or object already exists under the same key."""
    status_code = 409


class StorageError(SkillBadgeError):
    """Object store failure."""


class TransientStorageError(StorageError):
    """Network or 5xx failure from the object store; safe to retry."""


class InvalidInput(StorageError):
    """Content rejected by the object store (type or size); not retryable."""


class ChainError(SkillBadgeError):
    """Ledger call failed (simulation error, rejected or reverted transaction, RPC failure)."""


class LedgerTimeout(ChainError):
    """Transaction did not reach a terminal status within the poll budget."""

    def __init__(self, tx_hash: str, attempts: int):
        super().__init__(f"Transaction {tx_hash} not final after {attempts} polls")
        self.tx_hash = tx_hash
        self.attempts = attempts


class RegistrationFailed(SkillBadgeError):
    """On-chain test registration failed; nothing was persisted."""


class IssuanceFailed(SkillBadgeError):
    """Badge issuance failed; the badge row (if any) stays retriable."""

    @property
    def cause_kind(self) -> str:
        if isinstance(self.cause, LedgerTimeout):
            return "Timeout"
        if isinstance(self.cause, ChainError):
            return "ChainError"
        if isinstance(self.cause, StorageError):
            return "StorageError"
        return "Unknown"
