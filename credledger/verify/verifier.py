# credledger/verify/verifier.py
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass

from credledger.core.errors import StateConflictError
from credledger.core.lifecycle import Action, transition
from credledger.core.types import AuditRecord, CredentialState, EventKind, Role
from credledger.crypto.hashing import record_hash
from credledger.storage import StorageBackend


@dataclass
class VerificationFailure:
    index: int
    message: str
    category: str = "general"  # e.g. "hash_chain", "sequence", "replay", "state", "storage"


@dataclass
class VerificationResult:
    is_valid: bool
    message: str = ""
    failures: List[VerificationFailure] = None

    def __post_init__(self):
        if self.failures is None:
            self.failures = []

    @property
    def first_failure(self) -> Optional[VerificationFailure]:
        return self.failures[0] if self.failures else None

    def fail(self, index: int, message: str, category: str) -> None:
        self.failures.append(VerificationFailure(index, message, category))
        self.is_valid = False

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return "Audit log is valid ✓"
        lines = [f"Verification FAILED ({len(self.failures)} issues):"]
        for f in self.failures:
            lines.append(f"  • [{f.index}] {f.category}: {f.message}")
        return "\n".join(lines)


@dataclass
class ReplayState:
    """Identities and credentials as implied by the audit log alone."""
    roles: Dict[str, Role]
    credentials: Dict[str, Tuple[CredentialState, str, str, str]]  # hash → (state, issuer, holder, ref)


class AuditVerifier:
    """
    Offline verifier for the audit log.

    1. sequence numbers run 0..n-1 without gaps
    2. every prev_hash matches the hash of the record before it
    3. replaying the events reproduces legal lifecycles only
    4. (from storage) the stored identities/credentials equal the replayed ones
    """

    def verify(self, records: List[AuditRecord]) -> VerificationResult:
        """Core verification logic over a loaded log."""
        if not records:
            return VerificationResult(True, "Empty audit log is valid")

        result = VerificationResult(True)

        # 1. Sequence consistency
        for i, rec in enumerate(records):
            if rec.sequence != i:
                result.fail(i, f"Sequence mismatch: expected {i}, got {rec.sequence}", "sequence")

        # 2. Hash chain
        if records[0].prev_hash != "":
            result.fail(0, "First record must not point to a predecessor", "hash_chain")
        for i in range(1, len(records)):
            if records[i].prev_hash != record_hash(records[i - 1]):
                result.fail(i, "prev_hash does not match previous record hash", "hash_chain")

        # 3. Replay
        self._replay(records, result)

        result.message = "Valid audit log" if result.is_valid else f"Failed with {len(result.failures)} issues"
        return result

    def replay(self, records: List[AuditRecord]) -> ReplayState:
        """Rebuild state from events, ignoring illegal ones."""
        return self._replay(records, VerificationResult(True))

    def _replay(self, records: List[AuditRecord], result: VerificationResult) -> ReplayState:
        roles: Dict[str, Role] = {}
        creds: Dict[str, Tuple[CredentialState, str, str, str]] = {}

        for i, rec in enumerate(records):
            p = rec.payload
            try:
                if rec.kind is EventKind.IDENTITY_REGISTERED:
                    principal, role = p["principal"], Role[p["role"]]
                    if role is Role.NONE:
                        result.fail(i, f"{principal!r} registered with role NONE", "replay")
                    elif principal in roles:
                        result.fail(i, f"{principal!r} registered twice", "replay")
                    else:
                        roles[principal] = role

                elif rec.kind is EventKind.CREDENTIAL_ISSUED:
                    h, issuer, holder = p["hash"], p["issuer"], p["holder"]
                    current = creds.get(h, (CredentialState.NONE,))[0]
                    new_state = transition(current, Action.ISSUE)
                    if roles.get(issuer) is not Role.UNIVERSITY:
                        result.fail(i, f"issuer {issuer!r} was not a university", "replay")
                    if roles.get(holder) is not Role.STUDENT:
                        result.fail(i, f"holder {holder!r} was not a student", "replay")
                    creds[h] = (new_state, issuer, holder, p.get("external_ref", ""))

                elif rec.kind is EventKind.CREDENTIAL_REVOKED:
                    h, issuer = p["hash"], p["issuer"]
                    state, orig_issuer, holder, ref = creds.get(h, (CredentialState.NONE, "", "", ""))
                    new_state = transition(state, Action.REVOKE)
                    if issuer != orig_issuer:
                        result.fail(i, f"revoked by {issuer!r}, issued by {orig_issuer!r}", "replay")
                    creds[h] = (new_state, orig_issuer, holder, ref)

                elif rec.kind is EventKind.CREDENTIAL_VERIFIED:
                    if not isinstance(p.get("result"), bool) or "verifier" not in p or "hash" not in p:
                        result.fail(i, "malformed verification record", "replay")

            except StateConflictError as e:
                result.fail(i, f"illegal transition: {e}", "replay")
            except KeyError as e:
                result.fail(i, f"missing or unknown field {e}", "replay")

        return ReplayState(roles=roles, credentials=creds)

    def verify_from_storage(self, storage: StorageBackend) -> VerificationResult:
        """
        Load the audit log from storage, verify it, and cross-check the stored
        identities and credentials against the replayed state.
        """
        try:
            records = storage.load_audit()
            identities = storage.list_identities()
            credentials = storage.list_credentials()
        except Exception as e:
            return VerificationResult(
                False,
                f"Failed to load audit log from storage: {str(e)}",
                [VerificationFailure(-1, str(e), "storage")]
            )

        result = self.verify(records)
        replayed = self.replay(records)

        stored_roles = {i.principal: i.role for i in identities}
        if stored_roles != replayed.roles:
            for principal in sorted(set(stored_roles) | set(replayed.roles)):
                if stored_roles.get(principal) != replayed.roles.get(principal):
                    result.fail(-1, f"identity {principal!r}: stored {stored_roles.get(principal)}, "
                                    f"log says {replayed.roles.get(principal)}", "state")

        stored_creds = {
            c.hash: (c.state, c.issuer, c.holder, c.external_ref) for c in credentials
        }
        for h in sorted(set(stored_creds) | set(replayed.credentials)):
            if stored_creds.get(h) != replayed.credentials.get(h):
                result.fail(-1, f"credential {h}: stored record differs from audit log", "state")

        # records whose stored hash column no longer matches their content
        stored_hash = getattr(storage, "stored_record_hash", None)
        if stored_hash is not None:
            for i, rec in enumerate(records):
                if stored_hash(rec.sequence) != record_hash(rec):
                    result.fail(i, "record content does not match hash written at append time", "hash_chain")

        result.message = "Valid audit log" if result.is_valid else f"Failed with {len(result.failures)} issues"
        return result
