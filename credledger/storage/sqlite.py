# credledger/storage/sqlite.py
import os
import sqlite3
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from credledger.config import DB_PATH_ENV, DEFAULT_DB_FILENAME
from credledger.core.errors import StorageError
from credledger.core.types import (
    AuditRecord, CredentialRecord, CredentialState, EventKind, Identity, Role,
)
from credledger.core.canon import canonical_json_str
from credledger.crypto.hashing import record_hash
from . import StorageBackend

logger = logging.getLogger(__name__)


class SQLiteStorage(StorageBackend):
    """SQLite persistent storage for identities, credentials and the audit log."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            env_path = os.environ.get(DB_PATH_ENV)
            db_path = env_path if env_path else Path.cwd() / DEFAULT_DB_FILENAME

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = self.db_path.resolve()

        self._conn: Optional[sqlite3.Connection] = None
        self._depth = 0
        self._connect()

    def _connect(self):
        self._conn = sqlite3.connect(str(self.db_path), isolation_level=None, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_schema()
        logger.debug("Opened SQLite storage at %s", self.db_path)

    def _create_schema(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS identities (
                principal       TEXT    PRIMARY KEY,
                role            INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS credentials (
                credential_hash TEXT    PRIMARY KEY,
                external_ref    TEXT    NOT NULL,
                schema_bytes    BLOB    NOT NULL,
                issuer          TEXT    NOT NULL,
                holder          TEXT    NOT NULL,
                issued_at       TEXT    NOT NULL,
                state           INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS audit_log (
                sequence        INTEGER PRIMARY KEY,
                timestamp       TEXT    NOT NULL,
                kind            TEXT    NOT NULL,
                prev_hash       TEXT    NOT NULL,
                record_hash     TEXT    NOT NULL,
                payload_json    TEXT    NOT NULL
            );

            CREATE TRIGGER IF NOT EXISTS identities_immutable
            BEFORE UPDATE ON identities
            BEGIN SELECT RAISE(ABORT, 'identities are immutable'); END;

            CREATE TRIGGER IF NOT EXISTS identities_permanent
            BEFORE DELETE ON identities
            BEGIN SELECT RAISE(ABORT, 'identities cannot be deleted'); END;

            CREATE TRIGGER IF NOT EXISTS credentials_permanent
            BEFORE DELETE ON credentials
            BEGIN SELECT RAISE(ABORT, 'credentials cannot be deleted'); END;

            CREATE TRIGGER IF NOT EXISTS credentials_revoke_only
            BEFORE UPDATE ON credentials
            WHEN NOT (
                OLD.state = 1 AND NEW.state = 2
                AND NEW.credential_hash = OLD.credential_hash
                AND NEW.external_ref = OLD.external_ref
                AND NEW.schema_bytes = OLD.schema_bytes
                AND NEW.issuer = OLD.issuer
                AND NEW.holder = OLD.holder
                AND NEW.issued_at = OLD.issued_at
            )
            BEGIN SELECT RAISE(ABORT, 'credentials only move from VALID to REVOKED'); END;

            CREATE TRIGGER IF NOT EXISTS audit_log_append_only
            BEFORE UPDATE ON audit_log
            BEGIN SELECT RAISE(ABORT, 'audit log is append-only'); END;

            CREATE TRIGGER IF NOT EXISTS audit_log_no_delete
            BEFORE DELETE ON audit_log
            BEGIN SELECT RAISE(ABORT, 'audit log is append-only'); END;
        """)

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Storage connection is closed")
        return self._conn

    def _write(self, sql: str, params: tuple) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, params)
        except sqlite3.IntegrityError as e:
            raise StorageError("IntegrityError", str(e)) from e

    # identities

    def get_identity(self, principal: str) -> Optional[Identity]:
        row = self.conn.execute(
            "SELECT principal, role FROM identities WHERE principal = ?", (principal,)
        ).fetchone()
        if row is None:
            return None
        return Identity(principal=row[0], role=Role(row[1]), registered=True)

    def put_identity(self, identity: Identity) -> None:
        self._write(
            "INSERT INTO identities (principal, role) VALUES (?, ?)",
            (identity.principal, int(identity.role)),
        )

    def list_identities(self) -> List[Identity]:
        cursor = self.conn.execute("SELECT principal, role FROM identities ORDER BY principal")
        return [Identity(principal=p, role=Role(r), registered=True) for p, r in cursor]

    # credentials

    _CREDENTIAL_COLUMNS = """credential_hash, external_ref, schema_bytes, issuer, holder,
                             issued_at, state"""

    @staticmethod
    def _row_to_credential(row) -> CredentialRecord:
        h, ref, schema, issuer, holder, issued_at, state = row
        return CredentialRecord(
            hash=h,
            external_ref=ref,
            schema=bytes(schema),
            issuer=issuer,
            holder=holder,
            issued_at=issued_at,
            state=CredentialState(state),
        )

    def get_credential(self, credential_hash: str) -> Optional[CredentialRecord]:
        row = self.conn.execute(
            f"SELECT {self._CREDENTIAL_COLUMNS} FROM credentials WHERE credential_hash = ?",
            (credential_hash,),
        ).fetchone()
        return self._row_to_credential(row) if row else None

    def put_credential(self, record: CredentialRecord) -> None:
        self._write(f"""
            INSERT INTO credentials ({self._CREDENTIAL_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            record.hash, record.external_ref, sqlite3.Binary(record.schema),
            record.issuer, record.holder, record.issued_at, int(record.state),
        ))

    def set_credential_state(self, credential_hash: str, state: CredentialState) -> None:
        cursor = self._write(
            "UPDATE credentials SET state = ? WHERE credential_hash = ?",
            (int(state), credential_hash),
        )
        if cursor.rowcount == 0:
            raise StorageError("MissingKey", f"credential {credential_hash} not stored")

    def list_credentials(self) -> List[CredentialRecord]:
        cursor = self.conn.execute(
            f"SELECT {self._CREDENTIAL_COLUMNS} FROM credentials ORDER BY issued_at, credential_hash"
        )
        return [self._row_to_credential(row) for row in cursor]

    # audit log

    def append_audit(self, record: AuditRecord) -> None:
        self._write("""
            INSERT INTO audit_log
            (sequence, timestamp, kind, prev_hash, record_hash, payload_json)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            record.sequence, record.timestamp, record.kind.value, record.prev_hash,
            record_hash(record), canonical_json_str(record.payload),
        ))

    @staticmethod
    def _row_to_audit(row) -> AuditRecord:
        seq, ts, kind, prev, pjson = row
        return AuditRecord(
            sequence=seq,
            timestamp=ts,
            kind=EventKind(kind),
            payload=json.loads(pjson),
            prev_hash=prev,
        )

    def load_audit(self, limit: Optional[int] = None) -> List[AuditRecord]:
        if limit is None:
            cursor = self.conn.execute("""
                SELECT sequence, timestamp, kind, prev_hash, payload_json
                FROM audit_log ORDER BY sequence ASC
            """)
            return [self._row_to_audit(row) for row in cursor]

        cursor = self.conn.execute("""
            SELECT sequence, timestamp, kind, prev_hash, payload_json
            FROM audit_log ORDER BY sequence DESC LIMIT ?
        """, (max(limit, 0),))
        loaded = [self._row_to_audit(row) for row in cursor]
        loaded.reverse()  # oldest first
        return loaded

    def last_audit(self) -> Optional[AuditRecord]:
        latest = self.load_audit(limit=1)
        return latest[0] if latest else None

    def stored_record_hash(self, sequence: int) -> Optional[str]:
        """Hash written alongside the record at append time."""
        row = self.conn.execute(
            "SELECT record_hash FROM audit_log WHERE sequence = ?", (sequence,)
        ).fetchone()
        return row[0] if row else None

    @contextmanager
    def transaction(self) -> Iterator[None]:
        conn = self.conn
        outer = self._depth == 0
        if outer:
            conn.execute("BEGIN IMMEDIATE")
        self._depth += 1
        try:
            yield
        except BaseException:
            self._depth -= 1
            if outer:
                conn.execute("ROLLBACK")
                logger.debug("Rolled back SQLite transaction")
            raise
        else:
            self._depth -= 1
            if outer:
                conn.execute("COMMIT")

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.debug("Closed SQLite storage at %s", self.db_path)
