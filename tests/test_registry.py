# tests/test_registry.py
import pytest

from credledger.core.errors import ValidationError
from credledger.core.types import EventKind, Role
from credledger.identity.registry import RoleRegistry
from credledger.storage import SQLiteStorage


@pytest.fixture
def registry() -> RoleRegistry:
    return RoleRegistry()


def test_unknown_principal_has_no_role(registry):
    assert registry.get_role("did:nobody") is Role.NONE
    identity = registry.get_identity("did:nobody")
    assert identity.registered is False


@pytest.mark.parametrize("role", [Role.STUDENT, Role.UNIVERSITY, Role.EMPLOYER])
def test_register_once(registry, role):
    identity = registry.register("did:p", role)
    assert identity.registered
    assert registry.get_role("did:p") is role
    assert registry.has_role("did:p", role)

    for other in (Role.STUDENT, Role.UNIVERSITY, Role.EMPLOYER):
        with pytest.raises(ValidationError) as exc:
            registry.register("did:p", other)
        assert exc.value.reason == "AlreadyRegistered"
    assert registry.get_role("did:p") is role


def test_register_role_none_rejected(registry):
    with pytest.raises(ValidationError) as exc:
        registry.register("did:p", Role.NONE)
    assert exc.value.reason == "RoleIsNone"
    # rejected call does not consume the one-time registration
    registry.register("did:p", Role.STUDENT)
    assert registry.get_role("did:p") is Role.STUDENT


def test_register_accepts_int_roles(registry):
    registry.register("did:uni", 2)
    assert registry.get_role("did:uni") is Role.UNIVERSITY


@pytest.mark.parametrize("bad", ["", "   "])
def test_register_empty_principal_rejected(registry, bad):
    with pytest.raises(ValidationError) as exc:
        registry.register(bad, Role.STUDENT)
    assert exc.value.reason == "InvalidPrincipal"


@pytest.mark.parametrize("bad", [42, "STUDENT", True, False, None])
def test_register_unknown_role_rejected(registry, bad):
    with pytest.raises(ValidationError) as exc:
        registry.register("did:p", bad)
    assert exc.value.reason == "UnknownRole"
    assert registry.get_role("did:p") is Role.NONE


def test_has_role_none_is_always_false(registry):
    assert registry.has_role("did:nobody", Role.NONE) is False
    registry.register("did:p", Role.EMPLOYER)
    assert registry.has_role("did:p", Role.NONE) is False
    assert registry.has_role("did:p", Role.STUDENT) is False


def test_register_emits_one_audit_record(registry):
    registry.register("did:uni", Role.UNIVERSITY)
    with pytest.raises(ValidationError):
        registry.register("did:uni", Role.STUDENT)

    records = registry.env.audit.records()
    assert len(records) == 1
    assert records[0].kind is EventKind.IDENTITY_REGISTERED
    assert records[0].payload == {"principal": "did:uni", "role": "UNIVERSITY"}


def test_identities_listing(registry):
    registry.register("b", Role.STUDENT)
    registry.register("a", Role.UNIVERSITY)
    assert [(i.principal, i.role) for i in registry.identities()] == [
        ("a", Role.UNIVERSITY),
        ("b", Role.STUDENT),
    ]


def test_duplicate_check_runs_inside_transaction(tmp_path):
    storage = SQLiteStorage(db_path=tmp_path / "registry.db")
    registry = RoleRegistry(storage)
    seen = []
    real_get = storage.get_identity

    def tracking_get(principal):
        seen.append(storage.conn.in_transaction)
        return real_get(principal)

    storage.get_identity = tracking_get
    registry.register("did:uni", Role.UNIVERSITY)
    with pytest.raises(ValidationError):
        registry.register("did:uni", Role.UNIVERSITY)
    storage.close()
    assert seen == [True, True]


def test_second_connection_sees_registration(tmp_path):
    db = tmp_path / "shared.db"
    first = RoleRegistry(SQLiteStorage(db_path=db))
    second = RoleRegistry(SQLiteStorage(db_path=db))
    first.register("did:uni", Role.UNIVERSITY)

    with pytest.raises(ValidationError) as exc:
        second.register("did:uni", Role.STUDENT)
    assert exc.value.reason == "AlreadyRegistered"
    assert second.get_role("did:uni") is Role.UNIVERSITY
    first.storage.close()
    second.storage.close()
