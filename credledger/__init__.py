# credledger/__init__.py
"""
Credential Ledger — permissioned role registry + credential ledger.

A university issues (and may later revoke) attestations about a student, keyed
by a SHA-256 content commitment. Any third party can recompute the commitment
and check it against the ledger without trusting the issuer at verification time.
Every mutation and every verification lands in a hash-chained, append-only audit log.
"""

__version__ = "0.1.0"

from credledger.core.types import (
    Role,
    CredentialState,
    Identity,
    CredentialRecord,
    AuditRecord,
    EventKind,
)
from credledger.core.errors import (
    LedgerError,
    AuthorizationError,
    ValidationError,
    StateConflictError,
    StorageError,
)
from credledger.crypto.hashing import commitment
from credledger.env import Environment, MonotonicClock
from credledger.identity.registry import RoleRegistry
from credledger.credentials.ledger import CredentialLedger
from credledger.deploy import Deployment, deploy

__all__ = [
    "Role",
    "CredentialState",
    "Identity",
    "CredentialRecord",
    "AuditRecord",
    "EventKind",
    "LedgerError",
    "AuthorizationError",
    "ValidationError",
    "StateConflictError",
    "StorageError",
    "commitment",
    "Environment",
    "MonotonicClock",
    "RoleRegistry",
    "CredentialLedger",
    "Deployment",
    "deploy",
]
