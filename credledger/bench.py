# credledger/bench.py
"""
Performance harness in two parts.

1. Operation cost: time each public mutation on its own (register, issue,
   verify_data, revoke), averaged over a number of samples.
2. Growth: register one university and one student, then issue batches of
   fresh credentials and time each batch. With a keyed store the
   per-operation cost should stay flat as the credential count grows.
"""

import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

from credledger.core.types import Role
from credledger.crypto.hashing import commitment
from credledger.deploy import deploy
from credledger.storage import StorageBackend

DEFAULT_BATCHES = (10, 50, 100)
DEFAULT_SAMPLES = 10
OPERATIONS = ("register", "issue", "verify_data", "revoke")


@dataclass
class OperationResult:
    operation: str
    runs: int
    seconds: float

    @property
    def ms_per_op(self) -> float:
        return 1000.0 * self.seconds / self.runs if self.runs else 0.0

    @property
    def ops_per_second(self) -> float:
        return self.runs / self.seconds if self.seconds > 0 else float("inf")


@dataclass
class BatchResult:
    batch_size: int
    seconds: float
    total_credentials: int

    @property
    def ops_per_second(self) -> float:
        return self.batch_size / self.seconds if self.seconds > 0 else float("inf")

    @property
    def ms_per_op(self) -> float:
        return 1000.0 * self.seconds / self.batch_size if self.batch_size else 0.0


def run_operation_benchmark(
    samples: int = DEFAULT_SAMPLES,
    storage: Optional[Union[StorageBackend, str]] = None,
) -> List[OperationResult]:
    """Time ``samples`` runs of each operation, in lifecycle order."""
    if samples < 1:
        raise ValueError("samples must be at least 1")

    tag = time.time_ns()
    university = f"bench:university:{tag}"
    students = [f"bench:student:{tag}:{i}" for i in range(samples)]
    payloads = [f"Bachelor of Computer Science - {tag}-{i}" for i in range(samples)]
    hashes = [commitment(p) for p in payloads]
    timings: Dict[str, float] = {}

    with deploy(storage) as d:
        d.registry.register(university, Role.UNIVERSITY)

        start = time.perf_counter()
        for student in students:
            d.registry.register(student, Role.STUDENT)
        timings["register"] = time.perf_counter() - start

        start = time.perf_counter()
        for student, h in zip(students, hashes):
            d.ledger.issue(university, student, h, "QmXyZ123", b"DegreeSchemaV1")
        timings["issue"] = time.perf_counter() - start

        start = time.perf_counter()
        for payload, h in zip(payloads, hashes):
            d.ledger.verify_data("bench:employer", payload, h)
        timings["verify_data"] = time.perf_counter() - start

        start = time.perf_counter()
        for h in hashes:
            d.ledger.revoke(university, h)
        timings["revoke"] = time.perf_counter() - start

    return [OperationResult(op, samples, timings[op]) for op in OPERATIONS]


def run_benchmark(
    batch_sizes: Sequence[int] = DEFAULT_BATCHES,
    storage: Optional[Union[StorageBackend, str]] = None,
    verify: bool = False,
) -> List[BatchResult]:
    """Issue (and optionally verify) each batch; return one timing per batch."""
    results: List[BatchResult] = []
    with deploy(storage) as d:
        university, student = "bench:university", "bench:student"
        if not d.registry.has_role(university, Role.UNIVERSITY):
            d.registry.register(university, Role.UNIVERSITY)
        if not d.registry.has_role(student, Role.STUDENT):
            d.registry.register(student, Role.STUDENT)

        issued = len(d.ledger.credentials())
        for batch in batch_sizes:
            start = time.perf_counter()
            for i in range(batch):
                payload = f"Batch{batch}-Student{i}-{time.time_ns()}"
                h = commitment(payload)
                d.ledger.issue(university, student, h, "QmStressTestHash", b"StressTest")
                if verify:
                    d.ledger.verify_data("bench:employer", payload, h)
            elapsed = time.perf_counter() - start
            issued += batch
            results.append(BatchResult(batch_size=batch, seconds=elapsed, total_credentials=issued))
    return results
