# credledger/deploy.py
import logging
from dataclasses import dataclass
from typing import Optional, Union

from credledger.credentials.ledger import CredentialLedger
from credledger.env import Environment, MonotonicClock
from credledger.identity.registry import RoleRegistry
from credledger.storage import StorageBackend, create_storage

logger = logging.getLogger(__name__)


@dataclass
class Deployment:
    """A registry and the ledger bound to it, over one storage backend."""
    storage: StorageBackend
    env: Environment
    registry: RoleRegistry
    ledger: CredentialLedger

    @property
    def audit(self):
        return self.env.audit

    def close(self) -> None:
        self.storage.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def deploy(
    storage: Optional[Union[StorageBackend, str]] = None,
    clock: Optional[MonotonicClock] = None,
) -> Deployment:
    """
    Wire up storage → environment → RoleRegistry → CredentialLedger.

    ``storage`` may be a backend instance, a URI ("sqlite://path", "memory://"),
    a plain file path (treated as SQLite) or None for in-memory.
    """
    if isinstance(storage, str):
        stripped = storage.strip()
        if stripped.startswith(("sqlite://", "memory:")):
            storage = create_storage(stripped)
        elif stripped:
            # plain file path → SQLite
            storage = create_storage(f"sqlite://{stripped}")
        else:
            storage = None
    if storage is None:
        storage = create_storage("memory://")

    env = Environment.for_storage(storage, clock=clock)
    registry = RoleRegistry(storage, env)
    ledger = CredentialLedger(registry)
    logger.debug("Deployed registry + ledger on %s", type(storage).__name__)
    return Deployment(storage=storage, env=env, registry=registry, ledger=ledger)
