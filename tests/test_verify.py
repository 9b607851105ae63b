# tests/test_verify.py
import sqlite3
import pytest
from dataclasses import replace
from pathlib import Path

from credledger.core.types import AuditRecord, EventKind, Role
from credledger.crypto.hashing import commitment, record_hash
from credledger.deploy import deploy
from credledger.verify.verifier import AuditVerifier, VerificationResult


def populate(d, n_credentials=3):
    d.registry.register("did:uni", Role.UNIVERSITY)
    d.registry.register("did:student", Role.STUDENT)
    hashes = []
    for i in range(n_credentials):
        h = commitment(f"Credential #{i}")
        d.ledger.issue("did:uni", "did:student", h, f"Qm{i:04d}")
        hashes.append(h)
    d.ledger.verify_data("did:emp", "Credential #0", hashes[0])
    d.ledger.revoke("did:uni", hashes[1])
    return hashes


def create_test_log(n_credentials=3):
    with deploy() as d:
        populate(d, n_credentials)
        return d.audit.records()


def test_valid_log():
    records = create_test_log(4)
    result = AuditVerifier().verify(records)
    assert result.is_valid is True
    assert len(result.failures) == 0
    assert "valid" in str(result).lower()


def test_empty_log_is_valid():
    assert AuditVerifier().verify([]).is_valid


def test_chain_links_hashes():
    with deploy() as d:
        populate(d, 2)
        records = d.audit.records()
        assert d.audit.get_last_hash() == record_hash(records[-1])
        assert d.audit.length == len(records)
    assert records[0].prev_hash == ""
    for prev, rec in zip(records, records[1:]):
        assert rec.prev_hash == record_hash(prev)


def test_tamper_payload():
    records = create_test_log(3)
    tampered = records.copy()
    tampered[2] = replace(tampered[2], payload={**tampered[2].payload, "holder": "did:mallory"})

    result = AuditVerifier().verify(tampered)
    assert result.is_valid is False
    assert any("hash_chain" in f.category for f in result.failures)


def test_broken_hash_link():
    records = create_test_log(3)
    tampered = records.copy()
    tampered[3] = replace(tampered[3], prev_hash="deadbeef" * 8)

    result = AuditVerifier().verify(tampered)
    assert result.is_valid is False
    assert any(f.category == "hash_chain" and f.index == 3 for f in result.failures)


def test_wrong_sequence():
    records = create_test_log(3)
    tampered = records.copy()
    tampered[2] = replace(tampered[2], sequence=99)

    result = AuditVerifier().verify(tampered)
    assert result.is_valid is False
    assert any("sequence" in f.category for f in result.failures)


def test_dropped_record():
    records = create_test_log(3)
    result = AuditVerifier().verify(records[:2] + records[3:])
    assert result.is_valid is False


def _chain(events):
    """Build a correctly linked log from (kind, payload) pairs."""
    records, prev = [], ""
    for i, (kind, payload) in enumerate(events):
        rec = AuditRecord(i, f"2026-02-13T12:00:{i:02d}.000Z", kind, payload, prev)
        records.append(rec)
        prev = record_hash(rec)
    return records


def test_replay_rejects_illegal_lifecycle():
    h = commitment("x")
    records = _chain([
        (EventKind.IDENTITY_REGISTERED, {"principal": "u", "role": "UNIVERSITY"}),
        (EventKind.IDENTITY_REGISTERED, {"principal": "s", "role": "STUDENT"}),
        (EventKind.CREDENTIAL_REVOKED, {"hash": h, "issuer": "u"}),
        (EventKind.CREDENTIAL_ISSUED, {"hash": h, "issuer": "u", "holder": "s", "external_ref": ""}),
        (EventKind.CREDENTIAL_ISSUED, {"hash": h, "issuer": "u", "holder": "s", "external_ref": ""}),
    ])
    result = AuditVerifier().verify(records)
    assert result.is_valid is False
    assert [f.index for f in result.failures if f.category == "replay"] == [2, 4]


def test_replay_rejects_unauthorized_actors():
    h = commitment("x")
    records = _chain([
        (EventKind.IDENTITY_REGISTERED, {"principal": "u", "role": "UNIVERSITY"}),
        (EventKind.IDENTITY_REGISTERED, {"principal": "s", "role": "STUDENT"}),
        (EventKind.IDENTITY_REGISTERED, {"principal": "u", "role": "STUDENT"}),
        (EventKind.CREDENTIAL_ISSUED, {"hash": h, "issuer": "s", "holder": "u", "external_ref": ""}),
        (EventKind.CREDENTIAL_REVOKED, {"hash": h, "issuer": "u"}),
    ])
    result = AuditVerifier().verify(records)
    messages = " ".join(f.message for f in result.failures)
    assert not result.is_valid
    assert "registered twice" in messages
    assert "not a university" in messages
    assert "not a student" in messages
    assert "issued by" in messages


def test_replay_state():
    with deploy() as d:
        hashes = populate(d, 2)
        state = AuditVerifier().replay(d.audit.records())
    assert state.roles == {"did:uni": Role.UNIVERSITY, "did:student": Role.STUDENT}
    assert state.credentials[hashes[0]][0].name == "VALID"
    assert state.credentials[hashes[1]][0].name == "REVOKED"


def test_verifier_with_storage(tmp_path: Path):
    """
    End-to-end: write to persistent storage, reload, verify chain + replay
    against the stored identities and credentials.
    """
    db = tmp_path / "verify.db"
    with deploy(f"sqlite://{db}") as d:
        hashes = populate(d)
        result = AuditVerifier().verify_from_storage(d.storage)
        assert result.is_valid, f"Verification failed: {result}"

    # Tamper behind the ledger's back: drop the guard trigger and un-revoke
    conn = sqlite3.connect(db)
    conn.execute("DROP TRIGGER credentials_revoke_only")
    conn.execute("UPDATE credentials SET state = 1 WHERE credential_hash = ?", (hashes[1],))
    conn.commit()
    conn.close()

    with deploy(f"sqlite://{db}") as d:
        result_tampered = AuditVerifier().verify_from_storage(d.storage)
    assert not result_tampered.is_valid, "Tampered state should fail verification"
    assert any(f.category == "state" for f in result_tampered.failures)


def test_rewritten_audit_row_detected(tmp_path: Path):
    db = tmp_path / "verify.db"
    with deploy(f"sqlite://{db}") as d:
        populate(d)

    conn = sqlite3.connect(db)
    conn.execute("DROP TRIGGER audit_log_append_only")
    conn.execute("""
        UPDATE audit_log
        SET payload_json = REPLACE(payload_json, 'did:emp', 'did:someone-else')
        WHERE kind = 'CredentialVerified'
    """)
    conn.commit()
    conn.close()

    with deploy(f"sqlite://{db}") as d:
        result = AuditVerifier().verify_from_storage(d.storage)
    assert not result.is_valid
    assert any(f.category == "hash_chain" for f in result.failures)


def test_verify_from_closed_storage():
    d = deploy()
    d.close()
    result = AuditVerifier().verify_from_storage(d.storage)
    assert isinstance(result, VerificationResult)
    assert not result.is_valid
    assert result.first_failure.category == "storage"
