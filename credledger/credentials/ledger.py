# credledger/credentials/ledger.py
import logging
from dataclasses import replace
from typing import List, Optional

from credledger import access
from credledger.audit.log import AuditLog
from credledger.core.encoding import normalize_hex_hash
from credledger.core.errors import LedgerError, ValidationError
from credledger.core.lifecycle import Action, transition
from credledger.core.types import CredentialRecord, CredentialState, EventKind, Role
from credledger.crypto.hashing import Payload, commitment
from credledger.env import Environment
from credledger.identity.registry import RoleRegistry
from credledger.storage import StorageBackend

logger = logging.getLogger(__name__)


class CredentialLedger:
    """
    Issue / verify / revoke lifecycle of credentials keyed by content commitment.

    Bound to one RoleRegistry, which it only reads: universities issue,
    students hold, anyone verifies, and only the original issuer revokes.

    By default the ledger shares the registry's storage backend (separate
    tables / maps) and environment, so both components sit behind the same
    lock and write to the same audit log. Given its own storage backend, the
    ledger keeps its audit records there, under the registry's lock and clock.
    """

    def __init__(
        self,
        registry: RoleRegistry,
        storage: Optional[StorageBackend] = None,
        env: Optional[Environment] = None,
    ):
        if not isinstance(registry, RoleRegistry):
            raise ValidationError("MissingRegistry", "a RoleRegistry instance is required")
        self._registry = registry
        self.storage = storage if storage is not None else registry.storage
        if env is None:
            env = registry.env
            if self.storage is not registry.storage:
                # own store gets its own audit chain, still serialized with the registry
                env = Environment(audit=AuditLog(self.storage), clock=env.clock, lock=env.lock)
        self.env = env

    @property
    def registry(self) -> RoleRegistry:
        return self._registry

    # ── mutations ──────────────────────────────────────────────────────────

    def issue(
        self,
        caller: str,
        holder: str,
        credential_hash: str,
        external_ref: str = "",
        schema: bytes = b"",
    ) -> CredentialRecord:
        """
        Record a new credential for ``holder`` under ``credential_hash``.
        Caller must be a university, holder a student, and the hash unused.
        """
        # guard reads run in the same transaction as the writes
        with self.env.lock, self.storage.transaction():
            try:
                access.require_role(self._registry, caller, Role.UNIVERSITY)
                key = normalize_hex_hash(credential_hash)
                if key is None:
                    raise ValidationError("InvalidHash", f"{credential_hash!r} is not a 32-byte hex digest")
                access.require_holder_role(self._registry, holder, Role.STUDENT)
                new_state = transition(self._current_state(key), Action.ISSUE)
            except LedgerError as e:
                logger.warning("Rejected issue of %s by %s: %s", credential_hash, caller, e)
                raise

            record = CredentialRecord(
                hash=key,
                external_ref=external_ref or "",
                schema=bytes(schema or b""),
                issuer=caller,
                holder=holder,
                issued_at=self.env.clock.timestamp(),
                state=new_state,
            )
            self.storage.put_credential(record)
            self.env.audit.append(
                EventKind.CREDENTIAL_ISSUED,
                {
                    "hash": key,
                    "issuer": caller,
                    "holder": holder,
                    "external_ref": record.external_ref,
                },
                record.issued_at,
            )

        logger.info("Issued credential %s to %s by %s", key, holder, caller)
        return record

    def revoke(self, caller: str, credential_hash: str) -> CredentialRecord:
        """Mark a VALID credential REVOKED. Only its issuer may do this, and only once."""
        with self.env.lock, self.storage.transaction():
            key = normalize_hex_hash(credential_hash) or ""
            record = self.storage.get_credential(key) if key else None
            try:
                new_state = transition(
                    record.state if record else CredentialState.NONE, Action.REVOKE
                )
                access.require_issuer(record, caller)
            except LedgerError as e:
                logger.warning("Rejected revoke of %s by %s: %s", credential_hash, caller, e)
                raise

            self.storage.set_credential_state(key, new_state)
            self.env.audit.append(
                EventKind.CREDENTIAL_REVOKED,
                {"hash": key, "issuer": record.issuer},
                self.env.clock.timestamp(),
            )

        logger.info("Revoked credential %s by %s", key, caller)
        return replace(record, state=new_state)

    def verify_data(self, caller: str, data: Payload, credential_hash: str) -> bool:
        """
        Recompute the commitment of ``data`` and check it against ``credential_hash``
        and the credential's current state.

        Every call is written to the audit log, including failed checks. The
        record holds the hash, the verifier and the outcome, never ``data``.
        Observers of the log can therefore see who checked which hash and
        whether it passed.
        """
        key = normalize_hex_hash(credential_hash)
        try:
            matches = key is not None and commitment(data) == key
        except TypeError:
            # not a committable payload; the check fails but is still audited
            matches = False
        with self.env.lock, self.storage.transaction():
            result = matches and self._current_state(key) is CredentialState.VALID
            self.env.audit.append(
                EventKind.CREDENTIAL_VERIFIED,
                {"hash": key or str(credential_hash), "verifier": caller, "result": result},
                self.env.clock.timestamp(),
            )

        logger.info("Verification of %s by %s: %s", key or credential_hash, caller, "PASSED" if result else "FAILED")
        return result

    # ── queries (never raise) ──────────────────────────────────────────────

    def _current_state(self, key: str) -> CredentialState:
        record = self.storage.get_credential(key)
        return record.state if record else CredentialState.NONE

    def get_metadata(self, credential_hash: str) -> CredentialRecord:
        """Full record, or an empty CredentialRecord for an unknown hash."""
        key = normalize_hex_hash(credential_hash)
        if key is None:
            return CredentialRecord()
        with self.env.lock:
            record = self.storage.get_credential(key)
        return record if record is not None else CredentialRecord()

    def get_status(self, credential_hash: str) -> CredentialState:
        return self.get_metadata(credential_hash).state

    def is_valid(self, credential_hash: str) -> bool:
        return self.get_status(credential_hash) is CredentialState.VALID

    def get_ipfs_ref(self, credential_hash: str) -> str:
        """Off-chain reference stored at issuance ("" if unknown)."""
        return self.get_metadata(credential_hash).external_ref

    def credentials(self) -> List[CredentialRecord]:
        with self.env.lock:
            return self.storage.list_credentials()
