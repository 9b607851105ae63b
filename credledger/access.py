# credledger/access.py
"""
Authorization checks, called at the top of each mutating operation before any
state is read for writing. Each check either returns quietly or raises.
"""

from typing import TYPE_CHECKING

from credledger.core.errors import AuthorizationError, ValidationError
from credledger.core.types import CredentialRecord, Role

if TYPE_CHECKING:
    from credledger.identity.registry import RoleRegistry


def require_role(registry: "RoleRegistry", caller: str, role: Role) -> None:
    """Caller must currently hold ``role``."""
    if not registry.has_role(caller, role):
        reason = "NotUniversity" if role is Role.UNIVERSITY else "MissingRole"
        raise AuthorizationError(reason, f"{caller!r} is not a registered {role.name.lower()}")


def require_holder_role(registry: "RoleRegistry", holder: str, role: Role = Role.STUDENT) -> None:
    """The subject of a credential must be registered with ``role``."""
    if not registry.has_role(holder, role):
        raise ValidationError("InvalidHolder", f"{holder!r} is not a registered {role.name.lower()}")


def require_issuer(record: CredentialRecord, caller: str) -> None:
    """Only the principal that issued a credential may act on it."""
    if record.issuer != caller:
        raise AuthorizationError("NotIssuer", f"{caller!r} did not issue credential {record.hash}")
