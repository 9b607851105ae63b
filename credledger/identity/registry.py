# credledger/identity/registry.py
import logging
from typing import List, Optional

from credledger.core.errors import ValidationError
from credledger.core.types import EventKind, Identity, Role
from credledger.env import Environment
from credledger.storage import StorageBackend, MemoryStorage

logger = logging.getLogger(__name__)


class RoleRegistry:
    """
    Maps each principal to exactly one role, assigned once and never changed.
    Owns the identity store; nothing else writes to it.
    """

    def __init__(self, storage: Optional[StorageBackend] = None, env: Optional[Environment] = None):
        self.storage = storage if storage is not None else MemoryStorage()
        self.env = env if env is not None else Environment.for_storage(self.storage)

    def register(self, principal: str, role: Role) -> Identity:
        """
        Register ``principal`` (the authenticated caller) under ``role``.
        Fails with ValidationError for role NONE or a principal already registered.
        """
        if not isinstance(principal, str) or not principal.strip():
            raise ValidationError("InvalidPrincipal", "principal must be a non-empty string")
        if isinstance(role, bool):
            raise ValidationError("UnknownRole", f"{role!r} is not a role")
        try:
            role = Role(role)
        except (TypeError, ValueError):
            raise ValidationError("UnknownRole", f"{role!r} is not a role") from None
        if role is Role.NONE:
            raise ValidationError("RoleIsNone", "cannot register with role NONE")

        with self.env.lock, self.storage.transaction():
            if self.storage.get_identity(principal) is not None:
                logger.warning("Rejected registration of %s: already registered", principal)
                raise ValidationError("AlreadyRegistered", f"{principal!r} is already registered")

            identity = Identity(principal=principal, role=role, registered=True)
            self.storage.put_identity(identity)
            self.env.audit.append(
                EventKind.IDENTITY_REGISTERED,
                {"principal": principal, "role": role.name},
                self.env.clock.timestamp(),
            )

        logger.info("Registered %s as %s", principal, role.name)
        return identity

    def get_identity(self, principal: str) -> Identity:
        """Stored identity, or an unregistered placeholder (role NONE)."""
        if not isinstance(principal, str):
            return Identity(principal=str(principal))
        with self.env.lock:
            identity = self.storage.get_identity(principal)
        return identity if identity is not None else Identity(principal=principal)

    def get_role(self, principal: str) -> Role:
        return self.get_identity(principal).role

    def has_role(self, principal: str, role: Role) -> bool:
        # NONE is never "held": an unknown principal has no role at all
        return role != Role.NONE and self.get_role(principal) == role

    def identities(self) -> List[Identity]:
        with self.env.lock:
            return self.storage.list_identities()
