# credledger/audit/log.py
import logging
from typing import Any, Dict, List, Optional

from credledger.core.types import AuditRecord, EventKind
from credledger.crypto.hashing import record_hash
from credledger.storage import StorageBackend

logger = logging.getLogger(__name__)


class AuditLog:
    """
    Append-only sink for audit records, hash-chained like a flight recorder:
    every record carries the hash of the one before it, so rewriting history
    breaks the chain.

    Appends go through the storage backend, so an append made inside a storage
    transaction is rolled back together with the state change it describes.
    """

    def __init__(self, storage: StorageBackend):
        self.storage = storage

    @property
    def length(self) -> int:
        last = self.storage.last_audit()
        return 0 if last is None else last.sequence + 1

    def append(self, kind: EventKind, payload: Dict[str, Any], timestamp: str) -> AuditRecord:
        """Chain a new record onto the log and persist it. Returns the stored record."""
        last = self.storage.last_audit()
        record = AuditRecord(
            sequence=0 if last is None else last.sequence + 1,
            timestamp=timestamp,
            kind=kind,
            payload=dict(payload),
            prev_hash="" if last is None else record_hash(last),
        )
        self.storage.append_audit(record)
        logger.debug("Audit #%d %s", record.sequence, kind.value)
        return record

    def records(self, limit: Optional[int] = None) -> List[AuditRecord]:
        return self.storage.load_audit(limit=limit)

    def get_last_hash(self) -> Optional[str]:
        """Hash of the last record — the value the next record will point to."""
        last = self.storage.last_audit()
        return None if last is None else record_hash(last)
