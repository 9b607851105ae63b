# credledger/core/types.py
from dataclasses import dataclass, field, asdict
from enum import Enum, IntEnum
from typing import Any, Dict

from credledger.core.encoding import b64url_encode


class Role(IntEnum):
    """Capability class of a principal. NONE means "not registered"."""
    NONE = 0
    STUDENT = 1
    UNIVERSITY = 2
    EMPLOYER = 3


class CredentialState(IntEnum):
    """Lifecycle of one credential hash: NONE -> VALID -> REVOKED."""
    NONE = 0
    VALID = 1
    REVOKED = 2


class EventKind(str, Enum):
    IDENTITY_REGISTERED = "IdentityRegistered"
    CREDENTIAL_ISSUED = "CredentialIssued"
    CREDENTIAL_REVOKED = "CredentialRevoked"
    CREDENTIAL_VERIFIED = "CredentialVerified"


@dataclass(frozen=True)
class Identity:
    principal: str
    role: Role = Role.NONE
    registered: bool = False


@dataclass(frozen=True)
class CredentialRecord:
    """On-ledger record for one content commitment.

    The default instance (all fields empty, state NONE) is what queries
    return for a hash that was never issued.
    """
    hash: str = ""                  # hex(sha256) content commitment, primary key
    external_ref: str = ""          # e.g. IPFS CID of the full payload
    schema: bytes = b""             # opaque schema/metadata bytes
    issuer: str = ""
    holder: str = ""
    issued_at: str = ""             # ISO 8601 UTC with millis
    state: CredentialState = CredentialState.NONE

    @property
    def exists(self) -> bool:
        return self.state is not CredentialState.NONE

    def to_dict(self) -> dict:
        d = asdict(self)
        d["schema"] = b64url_encode(self.schema)
        d["state"] = self.state.name
        return d


@dataclass(frozen=True)
class AuditRecord:
    """Single entry in the hash-chained, append-only audit log."""
    sequence: int
    timestamp: str
    kind: EventKind
    payload: Dict[str, Any] = field(default_factory=dict)
    prev_hash: str = ""             # hex(sha256) of previous record, empty for the first

    def to_dict(self) -> dict:
        """Helper for canonicalization / hashing."""
        return {
            "sequence": self.sequence,
            "timestamp": self.timestamp,
            "kind": self.kind.value,
            "payload": dict(self.payload),
            "prev_hash": self.prev_hash,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "AuditRecord":
        return cls(
            sequence=d["sequence"],
            timestamp=d["timestamp"],
            kind=EventKind(d["kind"]),
            payload=dict(d.get("payload") or {}),
            prev_hash=d.get("prev_hash", ""),
        )
