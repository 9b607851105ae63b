# credledger/env.py
"""
Execution environment for the registry and the ledger.

A hosted ledger gets three things for free from the chain it runs on: calls
are applied one at a time, each call has a trustworthy timestamp, and events
land in a public append-only log. Outside such a host those guarantees are
supplied here, explicitly:

- ``lock``:  one logical writer at a time across both components
- ``clock``: timestamps that never go backwards
- ``audit``: the append-only, hash-chained audit log

The calling principal is not ambient state; every mutating operation takes it
as an explicit ``caller`` argument, which the hosting layer must derive from an
authenticated session.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from credledger.audit.log import AuditLog
from credledger.storage import StorageBackend


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(ts: datetime) -> str:
    return ts.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


class MonotonicClock:
    """Wraps a wall-clock source and never returns a time earlier than the last one."""

    def __init__(self, source: Callable[[], datetime] = utc_now):
        self._source = source
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = self._source()
            if current.tzinfo is None:
                current = current.replace(tzinfo=timezone.utc)
            if self._last is not None and current < self._last:
                current = self._last
            self._last = current
            return current

    def timestamp(self) -> str:
        """ISO 8601 UTC with millis, e.g. 2026-02-13T12:00:00.000Z"""
        return format_timestamp(self.now())


@dataclass
class Environment:
    audit: AuditLog
    clock: MonotonicClock = field(default_factory=MonotonicClock)
    lock: threading.RLock = field(default_factory=threading.RLock)

    @classmethod
    def for_storage(cls, storage: StorageBackend, clock: Optional[MonotonicClock] = None) -> "Environment":
        return cls(audit=AuditLog(storage), clock=clock or MonotonicClock())
