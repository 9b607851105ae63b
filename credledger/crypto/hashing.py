# credledger/crypto/hashing.py
import hashlib
from typing import Any, Mapping, Union

from credledger.core.canon import canonical_json
from credledger.core.types import AuditRecord

Payload = Union[str, bytes, bytearray, Mapping[str, Any], list]


def payload_bytes(data: Payload) -> bytes:
    """
    Bytes the commitment is computed over.
    Text is UTF-8 encoded as-is, bytes pass through, JSON objects/arrays are
    canonicalized with JCS so key order never changes the commitment.
    """
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode("utf-8")
    if isinstance(data, (Mapping, list)):
        try:
            return canonical_json(data)
        except (ValueError, AttributeError) as e:
            # jcs: NaN/Infinity -> ValueError, non-string keys -> AttributeError
            raise TypeError(f"Cannot canonicalize payload: {e}") from e
    raise TypeError(f"Cannot commit to payload of type {type(data).__name__}")


def commitment(data: Payload) -> str:
    """Content commitment used at issuance and at verification: hex(sha256)."""
    return hashlib.sha256(payload_bytes(data)).hexdigest()


def record_hash(record: AuditRecord) -> str:
    """hex(sha256) over the canonical JSON of an audit record (links the chain)."""
    return hashlib.sha256(canonical_json(record.to_dict())).hexdigest()
