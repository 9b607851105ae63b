# credledger/storage/memory.py
import logging
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Dict, Iterator, List, Optional

from credledger.core.errors import StorageError
from credledger.core.types import AuditRecord, CredentialRecord, CredentialState, Identity
from . import StorageBackend

logger = logging.getLogger(__name__)


class MemoryStorage(StorageBackend):
    """Process-local storage. Nothing survives ``close()``.

    Transactions keep an undo journal; on error the journal is replayed
    backwards so a failed call leaves no partial writes.
    """

    def __init__(self):
        self._identities: Dict[str, Identity] = {}
        self._credentials: Dict[str, CredentialRecord] = {}
        self._audit: List[AuditRecord] = []
        self._undo: List[Callable[[], None]] = []
        self._depth = 0
        self._closed = False

    def _check_open(self):
        if self._closed:
            raise RuntimeError("Storage connection is closed")

    def _journal(self, undo: Callable[[], None]) -> None:
        if self._depth:
            self._undo.append(undo)

    # identities

    def get_identity(self, principal: str) -> Optional[Identity]:
        self._check_open()
        return self._identities.get(principal)

    def put_identity(self, identity: Identity) -> None:
        self._check_open()
        if identity.principal in self._identities:
            raise StorageError("DuplicateKey", f"identity {identity.principal!r} already stored")
        self._identities[identity.principal] = identity
        self._journal(lambda: self._identities.pop(identity.principal, None))

    def list_identities(self) -> List[Identity]:
        self._check_open()
        return sorted(self._identities.values(), key=lambda i: i.principal)

    # credentials

    def get_credential(self, credential_hash: str) -> Optional[CredentialRecord]:
        self._check_open()
        return self._credentials.get(credential_hash)

    def put_credential(self, record: CredentialRecord) -> None:
        self._check_open()
        if record.hash in self._credentials:
            raise StorageError("DuplicateKey", f"credential {record.hash} already stored")
        self._credentials[record.hash] = record
        self._journal(lambda: self._credentials.pop(record.hash, None))

    def set_credential_state(self, credential_hash: str, state: CredentialState) -> None:
        self._check_open()
        old = self._credentials.get(credential_hash)
        if old is None:
            raise StorageError("MissingKey", f"credential {credential_hash} not stored")
        self._credentials[credential_hash] = replace(old, state=state)
        self._journal(lambda: self._credentials.__setitem__(credential_hash, old))

    def list_credentials(self) -> List[CredentialRecord]:
        self._check_open()
        return sorted(self._credentials.values(), key=lambda r: (r.issued_at, r.hash))

    # audit log

    def append_audit(self, record: AuditRecord) -> None:
        self._check_open()
        if record.sequence != len(self._audit):
            raise StorageError("SequenceGap", f"expected sequence {len(self._audit)}, got {record.sequence}")
        self._audit.append(record)
        self._journal(self._audit.pop)

    def load_audit(self, limit: Optional[int] = None) -> List[AuditRecord]:
        self._check_open()
        if limit is None:
            return list(self._audit)
        return self._audit[-limit:] if limit > 0 else []

    def last_audit(self) -> Optional[AuditRecord]:
        self._check_open()
        return self._audit[-1] if self._audit else None

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self._check_open()
        outer = self._depth == 0
        mark = len(self._undo)
        self._depth += 1
        try:
            yield
        except BaseException:
            while len(self._undo) > mark:
                self._undo.pop()()
            logger.debug("Rolled back in-memory transaction")
            raise
        finally:
            self._depth -= 1
            if outer:
                self._undo.clear()

    def close(self) -> None:
        self._closed = True
