# credledger/core/lifecycle.py
"""
Credential lifecycle: the one place that decides which state changes are legal.

    NONE --issue--> VALID --revoke--> REVOKED   (terminal)

Nothing else in the package compares states to decide whether a mutation may
proceed; it asks ``transition()`` and lets the StateConflictError propagate.
"""

from enum import Enum
from typing import Dict, Tuple

from credledger.core.types import CredentialState
from credledger.core.errors import StateConflictError


class Action(str, Enum):
    ISSUE = "issue"
    REVOKE = "revoke"


_TRANSITIONS: Dict[Tuple[CredentialState, Action], CredentialState] = {
    (CredentialState.NONE, Action.ISSUE): CredentialState.VALID,
    (CredentialState.VALID, Action.REVOKE): CredentialState.REVOKED,
}

# reason code reported when an action is attempted from the wrong state
_CONFLICT_REASON = {
    Action.ISSUE: "DuplicateHash",
    Action.REVOKE: "NotValidOrMissing",
}


def transition(current: CredentialState, action: Action) -> CredentialState:
    """Return the state reached by applying ``action`` to ``current``.

    Raises StateConflictError when no such edge exists.
    """
    nxt = _TRANSITIONS.get((current, action))
    if nxt is None:
        raise StateConflictError(
            _CONFLICT_REASON[action],
            f"cannot {action.value} a credential in state {current.name}",
        )
    return nxt


def can_transition(current: CredentialState, action: Action) -> bool:
    return (current, action) in _TRANSITIONS
