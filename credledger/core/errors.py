# credledger/core/errors.py
"""Credential ledger error hierarchy.

Every error carries a short machine-readable ``reason`` (e.g. ``"DuplicateHash"``)
next to the human-readable message.
"""


class LedgerError(Exception):
    """Base exception for all ledger errors."""

    def __init__(self, reason: str, message: str = ""):
        self.reason = reason
        super().__init__(f"{reason}: {message}" if message else reason)


class AuthorizationError(LedgerError):
    """Caller lacks the required role, or is not the record's issuer."""


class ValidationError(LedgerError):
    """Bad input: role NONE, unknown holder, malformed hash, duplicate registration."""


class StateConflictError(LedgerError):
    """Requested lifecycle transition is not allowed from the current state."""


class StorageError(LedgerError):
    """Persistent storage operation failed."""
