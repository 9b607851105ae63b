# tests/test_storage.py
import os
import pytest
import sqlite3
from pathlib import Path
from tempfile import TemporaryDirectory

from credledger.storage import MemoryStorage, SQLiteStorage, StorageBackend, create_storage
from credledger.core.errors import StorageError
from credledger.core.types import (
    AuditRecord, CredentialRecord, CredentialState, EventKind, Identity, Role,
)
from credledger.crypto.hashing import commitment
from credledger.deploy import deploy

H = commitment("degree-record")


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture(params=["memory", "sqlite"])
def storage(request, temp_db_path: Path) -> StorageBackend:
    backend = MemoryStorage() if request.param == "memory" else SQLiteStorage(db_path=temp_db_path)
    yield backend
    backend.close()


def make_record(h: str = H, state: CredentialState = CredentialState.VALID) -> CredentialRecord:
    return CredentialRecord(
        hash=h,
        external_ref="QmXyZ123",
        schema=b"DegreeSchemaV1",
        issuer="did:uni",
        holder="did:student",
        issued_at="2026-02-13T12:00:00.000Z",
        state=state,
    )


def make_audit(seq: int, prev: str = "") -> AuditRecord:
    return AuditRecord(
        sequence=seq,
        timestamp=f"2026-02-13T12:00:{seq:02d}.000Z",
        kind=EventKind.CREDENTIAL_VERIFIED,
        payload={"hash": H, "verifier": "did:emp", "result": True},
        prev_hash=prev,
    )


def test_create_storage_dynamic_routing(temp_db_path: Path):
    storage = create_storage(f"sqlite://{temp_db_path}")
    assert isinstance(storage, SQLiteStorage)
    assert str(storage.db_path.resolve()) == str(temp_db_path.resolve())
    storage.close()

    assert isinstance(create_storage("memory://"), MemoryStorage)
    with pytest.raises(ValueError):
        create_storage("jsonl:whatever")


def test_sqlite_init_default_and_env(monkeypatch):
    with TemporaryDirectory() as tmpdir:
        monkeypatch.chdir(tmpdir)
        monkeypatch.delenv("CREDLEDGER_DB_PATH", raising=False)
        default_storage = SQLiteStorage()
        assert default_storage.db_path.name == "credentials.db"
        default_storage.close()

        env_db = Path(tmpdir) / "env-test.db"
        monkeypatch.setenv("CREDLEDGER_DB_PATH", str(env_db))
        env_storage = SQLiteStorage()
        assert env_storage.db_path == env_db.resolve()
        env_storage.close()


def test_sqlite_schema_creation(temp_db_path: Path):
    with SQLiteStorage(temp_db_path) as storage:
        cursor = storage.conn.cursor()
        tables = {row[0] for row in cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert {"identities", "credentials", "audit_log"} <= tables

        cursor.execute("PRAGMA table_info(credentials)")
        columns = {row[1] for row in cursor.fetchall()}
        assert columns == {
            "credential_hash", "external_ref", "schema_bytes", "issuer", "holder", "issued_at", "state"
        }


def test_identity_roundtrip(storage: StorageBackend):
    assert storage.get_identity("did:uni") is None
    storage.put_identity(Identity("did:uni", Role.UNIVERSITY, True))
    assert storage.get_identity("did:uni") == Identity("did:uni", Role.UNIVERSITY, True)
    with pytest.raises(StorageError):
        storage.put_identity(Identity("did:uni", Role.STUDENT, True))
    assert storage.list_identities() == [Identity("did:uni", Role.UNIVERSITY, True)]


def test_credential_roundtrip(storage: StorageBackend):
    assert storage.get_credential(H) is None
    storage.put_credential(make_record())
    assert storage.get_credential(H) == make_record()
    with pytest.raises(StorageError):
        storage.put_credential(make_record())

    storage.set_credential_state(H, CredentialState.REVOKED)
    assert storage.get_credential(H).state is CredentialState.REVOKED
    assert storage.list_credentials() == [make_record(state=CredentialState.REVOKED)]


def test_set_state_of_missing_credential(storage: StorageBackend):
    with pytest.raises(StorageError):
        storage.set_credential_state(H, CredentialState.REVOKED)


def test_audit_append_and_load(storage: StorageBackend):
    assert storage.last_audit() is None
    assert storage.load_audit() == []
    for i in range(3):
        storage.append_audit(make_audit(i))
    assert [r.sequence for r in storage.load_audit()] == [0, 1, 2]
    assert [r.sequence for r in storage.load_audit(limit=2)] == [1, 2]
    assert storage.last_audit() == make_audit(2)


def test_transaction_rolls_back(storage: StorageBackend):
    with pytest.raises(RuntimeError):
        with storage.transaction():
            storage.put_identity(Identity("did:uni", Role.UNIVERSITY, True))
            storage.put_credential(make_record())
            storage.append_audit(make_audit(0))
            raise RuntimeError("boom")

    assert storage.get_identity("did:uni") is None
    assert storage.get_credential(H) is None
    assert storage.load_audit() == []


def test_transaction_commits(storage: StorageBackend):
    with storage.transaction():
        storage.put_credential(make_record())
        storage.append_audit(make_audit(0))
    assert storage.get_credential(H) is not None
    assert len(storage.load_audit()) == 1


def test_close_releases_resources(storage: StorageBackend):
    storage.close()
    with pytest.raises(RuntimeError, match="closed"):
        storage.get_credential(H)


def test_context_manager(temp_db_path: Path):
    with SQLiteStorage(temp_db_path) as storage:
        assert storage._conn is not None
    with pytest.raises(RuntimeError, match="closed"):
        storage.load_audit()


def test_sqlite_persists_across_reopen(temp_db_path: Path):
    with deploy(f"sqlite://{temp_db_path}") as d:
        d.registry.register("did:uni", Role.UNIVERSITY)
        d.registry.register("did:student", Role.STUDENT)
        d.ledger.issue("did:uni", "did:student", H, "QmXyZ123", b"DegreeSchemaV1")

    with deploy(str(temp_db_path)) as d:
        assert d.registry.get_role("did:uni") is Role.UNIVERSITY
        assert d.ledger.is_valid(H)
        assert d.ledger.get_metadata(H).schema == b"DegreeSchemaV1"
        assert len(d.audit.records()) == 3
        d.ledger.revoke("did:uni", H)

    with deploy(str(temp_db_path)) as d:
        assert d.ledger.get_status(H) is CredentialState.REVOKED
        assert d.audit.length == 4


def test_sqlite_triggers_block_tampering(temp_db_path: Path):
    with deploy(f"sqlite://{temp_db_path}") as d:
        d.registry.register("did:uni", Role.UNIVERSITY)
        d.registry.register("did:student", Role.STUDENT)
        d.ledger.issue("did:uni", "did:student", H, "QmXyZ123")
        d.ledger.revoke("did:uni", H)

    conn = sqlite3.connect(temp_db_path)
    tampering = [
        "UPDATE identities SET role = 2 WHERE principal = 'did:student'",
        "DELETE FROM identities",
        "UPDATE credentials SET state = 1",
        "UPDATE credentials SET holder = 'did:mallory'",
        "DELETE FROM credentials",
        "UPDATE audit_log SET payload_json = '{}' WHERE sequence = 0",
        "DELETE FROM audit_log",
    ]
    for sql in tampering:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(sql)
    conn.close()

    with deploy(str(temp_db_path)) as d:
        assert d.registry.get_role("did:student") is Role.STUDENT
        assert d.ledger.get_status(H) is CredentialState.REVOKED
        assert d.audit.length == 4
