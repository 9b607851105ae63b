"""
CLI for registering identities and issuing, verifying, revoking and auditing credentials.
"""

import sqlite3
from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from credledger.bench import DEFAULT_BATCHES, DEFAULT_SAMPLES, run_benchmark, run_operation_benchmark
from credledger.config import configure_logging, get_db_path
from credledger.core.canon import canonical_json_str
from credledger.core.errors import LedgerError
from credledger.core.types import CredentialState, Role
from credledger.crypto.hashing import commitment
from credledger.deploy import Deployment, deploy
from credledger.verify.verifier import AuditVerifier

app = typer.Typer(
    name="credledger",
    help="Issue, verify and revoke credentials on a permissioned ledger",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

_STATE_STYLE = {
    CredentialState.NONE: "yellow",
    CredentialState.VALID: "green",
    CredentialState.REVOKED: "red",
}


class RoleChoice(str, Enum):
    student = "student"
    university = "university"
    employer = "employer"


def _open(db: Optional[Path], must_exist: bool = False) -> Deployment:
    db_path = get_db_path(db)

    if must_exist and not db_path.exists():
        console.print(f"[red]Database file not found: {escape(str(db_path))}[/]")
        console.print("[yellow]To get started:[/]")
        console.print("  • Register an identity first (creates the DB): credledger register ...")
        console.print("  • Set env var: export CREDLEDGER_DB_PATH=/path/to/your.db")
        console.print("  • Or use --db: credledger status <hash> --db /custom/path.db")
        raise typer.Exit(1)

    try:
        return deploy(f"sqlite://{db_path}")
    except (sqlite3.Error, LedgerError) as e:
        console.print(f"[red]Failed to open database: {escape(str(e))}[/]")
        console.print("[yellow]The file may be corrupted or not a valid SQLite DB.[/]")
        raise typer.Exit(1)


def _fail(e: LedgerError) -> None:
    console.print(f"[red]✗ {type(e).__name__}: {escape(str(e))}[/]", soft_wrap=True)
    raise typer.Exit(1)


def _read_payload(data: Optional[str], file: Optional[Path]):
    if data is not None and file is not None:
        console.print("[red]Use either --data or --file, not both[/]")
        raise typer.Exit(2)
    if file is not None:
        try:
            return file.read_bytes()
        except OSError as e:
            console.print(f"[red]Cannot read {escape(str(file))}: {escape(str(e))}[/]")
            raise typer.Exit(1)
    return data


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """Manage university credentials: identities, issuance, verification, revocation."""
    configure_logging(verbose)


@app.command("hash")
def hash_(
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Credential data as text"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Read credential data from file"),
):
    """Print the content commitment of some credential data."""
    payload = _read_payload(data, file)
    if payload is None:
        console.print("[red]Provide --data or --file[/]")
        raise typer.Exit(2)
    console.print(commitment(payload), soft_wrap=True, highlight=False)


@app.command()
def register(
    principal: str = typer.Argument(..., help="Principal to register (the authenticated caller)"),
    role: RoleChoice = typer.Argument(..., help="Role to assign (one time only)"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Register a principal with a role. A principal can be registered once."""
    with _open(db) as d:
        try:
            identity = d.registry.register(principal, Role[role.value.upper()])
        except LedgerError as e:
            _fail(e)
        console.print(f"[green]✓ Registered {escape(identity.principal)} as {identity.role.name}[/]")


@app.command()
def whois(
    principal: str = typer.Argument(..., help="Principal to look up"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Show the role of a principal (NONE if unregistered)."""
    with _open(db, must_exist=True) as d:
        identity = d.registry.get_identity(principal)
        console.print(f"{escape(principal)}: {identity.role.name}"
                      + ("" if identity.registered else " (not registered)"))


@app.command()
def identities(
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """List all registered identities."""
    with _open(db, must_exist=True) as d:
        rows = d.registry.identities()
        if not rows:
            console.print("[yellow]No identities registered yet.[/]")
            return

        table = Table(title="Registered Identities")
        table.add_column("Principal")
        table.add_column("Role")
        for identity in rows:
            table.add_row(escape(identity.principal), identity.role.name)
        console.print(table)


@app.command()
def issue(
    holder: str = typer.Argument(..., help="Student receiving the credential"),
    caller: str = typer.Option(..., "--as", help="Issuing university (authenticated caller)"),
    credential_hash: Optional[str] = typer.Option(None, "--hash", help="Precomputed content commitment"),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Credential data as text"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Read credential data from file"),
    ref: str = typer.Option("", "--ref", help="Off-chain reference (e.g. IPFS CID)"),
    schema: str = typer.Option("", "--schema", help="Schema identifier stored with the record"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Issue a credential to a student (universities only)."""
    payload = _read_payload(data, file)
    if credential_hash is None:
        if payload is None:
            console.print("[red]Provide --hash, --data or --file[/]")
            raise typer.Exit(2)
        credential_hash = commitment(payload)

    with _open(db) as d:
        try:
            record = d.ledger.issue(caller, holder, credential_hash, ref, schema.encode("utf-8"))
        except LedgerError as e:
            _fail(e)
        console.print("[green]✓ Credential issued[/]")
        console.print(f"  Hash:      {record.hash}", soft_wrap=True, highlight=False)
        console.print(f"  Holder:    {escape(record.holder)}")
        console.print(f"  Issued at: {record.issued_at}")


@app.command()
def revoke(
    credential_hash: str = typer.Argument(..., help="Credential hash to revoke"),
    caller: str = typer.Option(..., "--as", help="Original issuer (authenticated caller)"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Revoke a credential. Only the issuing university can revoke, and only once."""
    with _open(db, must_exist=True) as d:
        try:
            record = d.ledger.revoke(caller, credential_hash)
        except LedgerError as e:
            _fail(e)
        console.print(f"[green]✓ Credential revoked:[/] {record.hash}", soft_wrap=True, highlight=False)


@app.command()
def status(
    credential_hash: str = typer.Argument(..., help="Credential hash"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Show the lifecycle state of a credential (NONE if never issued)."""
    with _open(db, must_exist=True) as d:
        state = d.ledger.get_status(credential_hash)
        style = _STATE_STYLE[state]
        console.print(f"{escape(credential_hash)}: [{style}]{state.name}[/]", soft_wrap=True, highlight=False)


@app.command()
def show(
    credential_hash: str = typer.Argument(..., help="Credential hash"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Show the full on-ledger record of a credential."""
    with _open(db, must_exist=True) as d:
        record = d.ledger.get_metadata(credential_hash)
        if not record.exists:
            console.print(f"[yellow]No credential recorded for {escape(credential_hash)}[/]", soft_wrap=True)
            return

        console.print(f"[bold cyan]Credential {record.hash}[/]", soft_wrap=True, highlight=False)
        console.print(f"  Issuer:     {escape(record.issuer)}")
        console.print(f"  Holder:     {escape(record.holder)}")
        console.print(f"  IPFS ref:   {escape(record.external_ref) or '—'}")
        console.print(f"  Schema:     {escape(record.schema.decode('utf-8', errors='replace')) or '—'}")
        console.print(f"  Issued at:  {record.issued_at}")
        console.print(f"  State:      [{_STATE_STYLE[record.state]}]{record.state.name}[/]")


@app.command()
def verify(
    credential_hash: str = typer.Argument(..., help="Credential hash to check against"),
    caller: str = typer.Option(..., "--as", help="Verifier identity recorded in the audit log"),
    data: Optional[str] = typer.Option(None, "--data", "-d", help="Credential data as text"),
    file: Optional[Path] = typer.Option(None, "--file", "-f", help="Read credential data from file"),
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Recompute the commitment of some data and check it against a valid credential."""
    payload = _read_payload(data, file)
    if payload is None:
        console.print("[red]Provide --data or --file[/]")
        raise typer.Exit(2)

    with _open(db, must_exist=True) as d:
        ok = d.ledger.verify_data(caller, payload, credential_hash)
        if ok:
            console.print("[green]✓ PASSED: data matches a valid credential[/]")
            return

        state = d.ledger.get_status(credential_hash)
        console.print("[red]✗ FAILED[/]")
        if state is not CredentialState.VALID:
            console.print(f"  Credential state is {state.name}")
        else:
            console.print("  Data does not match the recorded commitment")
        raise typer.Exit(1)


@app.command()
def credentials(
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """List all credentials on the ledger."""
    with _open(db, must_exist=True) as d:
        records = d.ledger.credentials()
        if not records:
            console.print("[yellow]No credentials issued yet.[/]")
            return

        table = Table(title="Credentials")
        table.add_column("Hash", no_wrap=True)
        table.add_column("Holder")
        table.add_column("Issuer")
        table.add_column("State")
        table.add_column("Issued At")
        for r in records:
            table.add_row(
                r.hash[:12] + "…",
                escape(r.holder),
                escape(r.issuer),
                f"[{_STATE_STYLE[r.state]}]{r.state.name}[/]",
                r.issued_at,
            )
        console.print(table)


@app.command()
def audit(
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of recent records to show"),
):
    """Show the most recent audit records."""
    with _open(db, must_exist=True) as d:
        records = d.audit.records(limit=limit)
        if not records:
            console.print("[yellow]Audit log is empty.[/]")
            return

        for rec in records:
            console.print(f"[bold cyan]{rec.sequence:4d} | {rec.timestamp} | {rec.kind.value}[/]")
            details = ", ".join(f"{k}={v}" for k, v in sorted(rec.payload.items()))
            console.print(f"  {escape(details)}", soft_wrap=True, highlight=False)


@app.command()
def check(
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """Verify the audit log (sequence + hash chain + replay against stored state)."""
    with _open(db, must_exist=True) as d:
        result = AuditVerifier().verify_from_storage(d.storage)
        count = d.audit.length

    if result.is_valid:
        console.print(f"[green]✓ Audit log is valid ({count} records)[/]")
        console.print(f"  {result.message}")
    else:
        console.print("[red]✗ Audit log verification failed[/]")
        for failure in result.failures:
            console.print(f"  • [{failure.index}] {failure.category}: {escape(failure.message)}", soft_wrap=True)
        raise typer.Exit(1)


@app.command()
def export(
    db: Optional[Path] = typer.Option(None, "--db", help="Path to SQLite database"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file (default: audit-log.jsonl)"),
):
    """Export the audit log as JSONL (one canonical JSON record per line)."""
    with _open(db, must_exist=True) as d:
        records = d.audit.records()

    if not records:
        console.print("[yellow]Audit log is empty — nothing to export.[/]")
        raise typer.Exit(0)

    out_path = output or Path("audit-log.jsonl")
    with open(out_path, "w", encoding="utf-8") as f:
        for rec in records:
            f.write(canonical_json_str(rec.to_dict()))
            f.write("\n")

    console.print(f"[green]Exported {len(records)} records to {escape(str(out_path))}[/]", soft_wrap=True)
    console.print("Format: JSONL — one hash-chained audit record per line")


@app.command()
def bench(
    batch: Optional[List[int]] = typer.Option(None, "--batch", "-b", help="Batch size (repeatable)"),
    with_verify: bool = typer.Option(False, "--verify", help="Also verify every issued credential"),
    samples: int = typer.Option(DEFAULT_SAMPLES, "--samples", "-n", min=1, help="Runs per operation in the cost table"),
    db: Optional[Path] = typer.Option(None, "--db", help="Benchmark against this SQLite file (default: in-memory)"),
):
    """Measure the cost of each operation and issuance throughput as the ledger grows."""
    sizes = batch or list(DEFAULT_BATCHES)
    storage = f"sqlite://{db.resolve()}" if db else None
    try:
        costs = run_operation_benchmark(samples, storage=storage)
        results = run_benchmark(sizes, storage=storage, verify=with_verify)
    except LedgerError as e:
        _fail(e)

    cost_table = Table(title=f"Operation Cost ({samples} runs each)")
    cost_table.add_column("Operation")
    cost_table.add_column("Seconds")
    cost_table.add_column("ms/op")
    cost_table.add_column("ops/s")
    for c in costs:
        cost_table.add_row(c.operation, f"{c.seconds:.3f}", f"{c.ms_per_op:.2f}", f"{c.ops_per_second:.1f}")
    console.print(cost_table)

    table = Table(title="Issuance Throughput")
    table.add_column("Batch")
    table.add_column("Seconds")
    table.add_column("ms/op")
    table.add_column("ops/s")
    table.add_column("Total")
    for r in results:
        table.add_row(
            str(r.batch_size), f"{r.seconds:.3f}", f"{r.ms_per_op:.2f}",
            f"{r.ops_per_second:.1f}", str(r.total_credentials),
        )
    console.print(table)


if __name__ == "__main__":
    app()
