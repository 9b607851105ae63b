"""
Storage backends for the identity map, the credential map and the audit log.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Iterator, List, Optional
from pathlib import Path

from credledger.core.types import AuditRecord, CredentialRecord, CredentialState, Identity


class StorageBackend(ABC):
    """Abstract base for all storage implementations.

    Three independent keyed stores: identities by principal, credentials by
    hash, audit records by sequence. Writes made inside ``transaction()``
    become visible together or not at all.
    """

    # identities

    @abstractmethod
    def get_identity(self, principal: str) -> Optional[Identity]:
        pass

    @abstractmethod
    def put_identity(self, identity: Identity) -> None:
        pass

    @abstractmethod
    def list_identities(self) -> List[Identity]:
        pass

    # credentials

    @abstractmethod
    def get_credential(self, credential_hash: str) -> Optional[CredentialRecord]:
        pass

    @abstractmethod
    def put_credential(self, record: CredentialRecord) -> None:
        pass

    @abstractmethod
    def set_credential_state(self, credential_hash: str, state: CredentialState) -> None:
        pass

    @abstractmethod
    def list_credentials(self) -> List[CredentialRecord]:
        pass

    # audit log

    @abstractmethod
    def append_audit(self, record: AuditRecord) -> None:
        pass

    @abstractmethod
    def load_audit(self, limit: Optional[int] = None) -> List[AuditRecord]:
        """All audit records in sequence order, or only the latest ``limit``."""
        pass

    @abstractmethod
    def last_audit(self) -> Optional[AuditRecord]:
        pass

    @abstractmethod
    @contextmanager
    def transaction(self) -> Iterator[None]:
        yield

    @abstractmethod
    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def create_storage(uri: str) -> StorageBackend:
    if uri.startswith("sqlite://"):
        from .sqlite import SQLiteStorage
        # Extract everything after sqlite://
        raw_path = uri[len("sqlite://"):]
        if not raw_path:
            raise ValueError(f"Missing database path in storage URI: {uri}")
        return SQLiteStorage(Path(raw_path).resolve())

    elif uri.startswith("memory:"):
        from .memory import MemoryStorage
        return MemoryStorage()
    else:
        raise ValueError(f"Unsupported storage URI: {uri}")


from .memory import MemoryStorage
from .sqlite import SQLiteStorage

__all__ = ["StorageBackend", "create_storage", "MemoryStorage", "SQLiteStorage"]
