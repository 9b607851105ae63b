# examples/university_demo.py
# Run with: python examples/university_demo.py [path/to/db.sqlite]
#
# Walks the full lifecycle: register identities → issue → third-party verify →
# revoke → rejected operations → audit log check.

import sys

from credledger import (
    AuthorizationError,
    Role,
    StateConflictError,
    commitment,
    deploy,
)
from credledger.verify.verifier import AuditVerifier


def banner(title: str):
    print("\n" + "=" * 70)
    print(title)
    print("=" * 70)


if __name__ == "__main__":
    storage = sys.argv[1] if len(sys.argv) > 1 else None
    university, student, employer = "did:uni:mit", "did:student:alice", "did:employer:acme"

    with deploy(storage) as d:
        banner("STEP 1: Register identities")
        d.registry.register(university, Role.UNIVERSITY)
        d.registry.register(student, Role.STUDENT)
        print(f"✓ {university} → {d.registry.get_role(university).name}")
        print(f"✓ {student} → {d.registry.get_role(student).name}")
        print(f"  {employer} stays unregistered → {d.registry.get_role(employer).name}")

        banner("STEP 2: Create and hash credential data")
        credential_data = {
            "degree": "Bachelor of Science in Computer Science",
            "university": "MIT",
            "year": 2024,
            "gpa": 3.8,
            "honors": "Magna Cum Laude",
        }
        credential_hash = commitment(credential_data)
        ipfs_ref = "QmX8eVbU5xVvvHn4Y2CqKu8R8e1cZuJ5VjD8mK3aNd9pZz"  # simulated CID
        print(f"Commitment (sha256 over JCS): {credential_hash}")

        banner("STEP 3: University issues credential to student")
        record = d.ledger.issue(university, student, credential_hash, ipfs_ref, b"university-credential-v1")
        print(f"✓ Issued at {record.issued_at}, state {record.state.name}")

        banner("STEP 4: Read metadata")
        meta = d.ledger.get_metadata(credential_hash)
        print(f"  Issuer:   {meta.issuer}")
        print(f"  Holder:   {meta.holder}")
        print(f"  IPFS ref: {d.ledger.get_ipfs_ref(credential_hash)}")
        print(f"  Valid:    {d.ledger.is_valid(credential_hash)}")

        banner("STEP 5: Employer verifies the data it was shown")
        print(f"  genuine data  → {d.ledger.verify_data(employer, credential_data, credential_hash)}")
        forged = dict(credential_data, gpa=4.0)
        print(f"  forged data   → {d.ledger.verify_data(employer, forged, credential_hash)}")

        banner("STEP 6: University revokes")
        d.ledger.revoke(university, credential_hash)
        print(f"✓ Valid after revoke: {d.ledger.is_valid(credential_hash)}")
        print(f"  genuine data now → {d.ledger.verify_data(employer, credential_data, credential_hash)}")

        banner("STEP 7: Rejected operations")
        for label, attempt, expected in [
            ("second revoke", lambda: d.ledger.revoke(university, credential_hash), StateConflictError),
            ("re-issue same hash", lambda: d.ledger.issue(university, student, credential_hash, ipfs_ref), StateConflictError),
            ("employer issues", lambda: d.ledger.issue(employer, student, commitment("x")), AuthorizationError),
        ]:
            try:
                attempt()
                print(f"✗ {label}: should have failed!")
            except expected as e:
                print(f"✓ {label}: rejected ({e.reason})")

        banner("STEP 8: Audit log")
        for rec in d.audit.records():
            print(f"  {rec.sequence:3d} {rec.kind.value:20} {rec.payload}")
        result = AuditVerifier().verify_from_storage(d.storage)
        print(f"\n{result}")
