import asyncio
import dataclasses
import inspect
import json
import logging
from typing import Any, Awaitable, Optional

import typer
from dotenv import load_dotenv
from InquirerPy import inquirer

from interaction_ledger.app.domain.errors import LedgerError
from interaction_ledger.app.domain.models import (
    ChainSummary,
    IngestOutcome,
    IngestReport,
    InteractionPage,
    InteractionRevision,
)
from interaction_ledger.app.interface.tasks import TASKS
from interaction_ledger.app.interface.tasks.ledger.create_tables_task import (
    create_ledger_tables_task,
)
from interaction_ledger.app.interface.tasks.ledger.ingest_interactions_task import (
    ingest_interactions_task,
)
from interaction_ledger.app.interface.tasks.ledger.query_interactions_task import (
    chain_summary_task,
    query_interactions_task,
)
from interaction_ledger.app.interface.tasks.ledger.revisions_task import (
    list_revisions_task,
    supersede_interaction_task,
)


load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)

app = typer.Typer()
ledger_app = typer.Typer(help="cli for the contract interaction ledger.")
app.add_typer(ledger_app, name="ledger")

# Interactive prompts, by task parameter name
_PROMPTS: dict[str, str] = {
    "path": "JSON-lines file with interaction events ('-' = stdin):",
    "chain": "Chain (e.g. eth):",
    "contract": "Contract address (optional):",
    "address": "Caller address (optional):",
    "hash": "Transaction hash:",
    "block": "Block number:",
    "from_block": "From block (inclusive):",
    "to_block": "To block (inclusive):",
    "limit": "Limit (optional, empty = default):",
    "cursor": "Cursor (optional):",
    "batch_size": "Batch size (optional, empty = default):",
    "conflict_policy": "Conflict policy (reject / accept_trusted, empty = default):",
    "source": "Source name (optional):",
    "kind": "Revision kind (conflict / supersede, optional):",
    "after_id": "After revision id (optional):",
}
_INT_PARAMS = frozenset({"block", "limit", "batch_size", "after_id"})
_NOT_PROMPTED = frozenset({"backend", "database_url"})

DatabaseUrlOption = typer.Option(
    None,
    "--database-url",
    help="Override DATABASE_URL (e.g. sqlite+aiosqlite:///ledger.db).",
)


def _echo_json(payload: Any, *, err: bool = False) -> None:
    typer.echo(json.dumps(payload, default=str), err=err)


def _outcome_dict(outcome: IngestOutcome) -> dict[str, Any]:
    return {
        "status": outcome.status.value,
        "hash": outcome.hash,
        "error_code": outcome.error_code,
        "reason": outcome.reason,
    }


def _revision_dict(revision: InteractionRevision) -> dict[str, Any]:
    return {
        "id": revision.id,
        "hash": revision.hash,
        "kind": revision.kind.value,
        "previous": revision.previous.as_dict(),
        "proposed": revision.proposed.as_dict(),
        "source": revision.source,
        "recorded_at": revision.recorded_at.isoformat(),
    }


def _echo_result(result: Any) -> int:
    """Print a task result as JSON lines; returns the process exit code."""
    if result is None:
        return 0
    if isinstance(result, InteractionPage):
        for record in result:
            _echo_json(record.as_dict())
        _echo_json({"next_cursor": result.next_cursor})
        return 0
    if isinstance(result, IngestReport):
        for outcome in result.failures:
            _echo_json(_outcome_dict(outcome), err=True)
        _echo_json(result.as_dict())
        return 1 if result.failures else 0
    if isinstance(result, IngestOutcome):
        _echo_json(_outcome_dict(result))
        return 0 if result.ok else 1
    if isinstance(result, ChainSummary):
        _echo_json(dataclasses.asdict(result))
        return 0
    if isinstance(result, list):
        for item in result:
            _echo_json(_revision_dict(item) if isinstance(item, InteractionRevision) else item)
        return 0
    _echo_json(result)
    return 0


def _run(coro: Awaitable[Any]) -> None:
    try:
        result = asyncio.run(coro)
    except LedgerError as e:
        typer.echo(f"error[{e.code}]: {e}", err=True)
        raise typer.Exit(code=2)
    except ValueError as e:
        typer.echo(f"error[invalid_argument]: {e}", err=True)
        raise typer.Exit(code=2)
    code = _echo_result(result)
    if code:
        raise typer.Exit(code=code)


@ledger_app.command("run")
def run() -> None:
    """Pick a task and answer its prompts."""
    task_name = inquirer.select(
        message="Select task:",
        choices=list(TASKS.keys()),
        pointer="❯",
        instruction="Use ↑/↓ to move, Enter to select",
    ).execute()

    task = TASKS[task_name]

    kwargs: dict[str, object] = {}
    for name, param in inspect.signature(task).parameters.items():
        if name in _NOT_PROMPTED:
            continue

        required = param.default is inspect.Parameter.empty
        default = "" if required or param.default is None else str(param.default)
        value = inquirer.text(
            message=_PROMPTS.get(name, f"{name}:"),
            default=default,
        ).execute().strip()

        if not value:
            if required:
                raise typer.BadParameter(f"{name} is required")
            continue
        kwargs[name] = int(value) if name in _INT_PARAMS else value

    _run(task(**kwargs))  # type: ignore


@ledger_app.command("init-db")
def init_db(database_url: Optional[str] = DatabaseUrlOption) -> None:
    """Create the ledger tables and indexes."""
    _run(create_ledger_tables_task(database_url=database_url))


@ledger_app.command("ingest")
def ingest(
    path: str = typer.Argument(..., help="JSON-lines file, '-' for stdin."),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", min=1),
    conflict_policy: Optional[str] = typer.Option(
        None, "--conflict-policy", help="reject | accept_trusted"
    ),
    database_url: Optional[str] = DatabaseUrlOption,
) -> None:
    """Ingest interaction events; exits 1 if any event failed."""
    _run(
        ingest_interactions_task(
            path=path,
            batch_size=batch_size,
            conflict_policy=conflict_policy,
            database_url=database_url,
        )
    )


def _query(**kwargs: Any) -> None:
    _run(query_interactions_task(**kwargs))


@ledger_app.command("query-contract")
def query_contract(
    chain: str = typer.Argument(...),
    contract: str = typer.Argument(...),
    from_block: str = typer.Option("earliest", "--from-block"),
    to_block: str = typer.Option("latest", "--to-block"),
    limit: Optional[int] = typer.Option(None, "--limit"),
    cursor: Optional[str] = typer.Option(None, "--cursor"),
    database_url: Optional[str] = DatabaseUrlOption,
) -> None:
    """Interactions with a contract, ordered by block."""
    _query(
        chain=chain,
        contract=contract,
        from_block=from_block,
        to_block=to_block,
        limit=limit,
        cursor=cursor,
        database_url=database_url,
    )


@ledger_app.command("query-address")
def query_address(
    chain: str = typer.Argument(...),
    address: str = typer.Argument(...),
    from_block: str = typer.Option("earliest", "--from-block"),
    to_block: str = typer.Option("latest", "--to-block"),
    limit: Optional[int] = typer.Option(None, "--limit"),
    cursor: Optional[str] = typer.Option(None, "--cursor"),
    database_url: Optional[str] = DatabaseUrlOption,
) -> None:
    """Interactions initiated by an address, ordered by block."""
    _query(
        chain=chain,
        address=address,
        from_block=from_block,
        to_block=to_block,
        limit=limit,
        cursor=cursor,
        database_url=database_url,
    )


@ledger_app.command("summary")
def summary(
    chain: str = typer.Argument(...),
    database_url: Optional[str] = DatabaseUrlOption,
) -> None:
    """Record count and block bounds for a chain."""
    _run(chain_summary_task(chain=chain, database_url=database_url))


@ledger_app.command("supersede")
def supersede(
    hash: str = typer.Argument(...),
    block: int = typer.Option(..., "--block", min=0),
    address: str = typer.Option(..., "--address"),
    contract: str = typer.Option(..., "--contract"),
    chain: str = typer.Option(..., "--chain"),
    source: Optional[str] = typer.Option(None, "--source"),
    database_url: Optional[str] = DatabaseUrlOption,
) -> None:
    """Replace the committed facts of a transaction hash."""
    _run(
        supersede_interaction_task(
            hash=hash,
            block=block,
            address=address,
            contract=contract,
            chain=chain,
            source=source,
            database_url=database_url,
        )
    )


@ledger_app.command("revisions")
def revisions(
    hash: Optional[str] = typer.Option(None, "--hash"),
    kind: Optional[str] = typer.Option(None, "--kind", help="conflict | supersede"),
    after_id: Optional[int] = typer.Option(None, "--after-id"),
    limit: int = typer.Option(100, "--limit", min=1),
    database_url: Optional[str] = DatabaseUrlOption,
) -> None:
    """Conflicts and supersedes recorded by the revision handler."""
    _run(
        list_revisions_task(
            hash=hash,
            kind=kind,
            after_id=after_id,
            limit=limit,
            database_url=database_url,
        )
    )


if __name__ == "__main__":
    LOGO = r"""

    /$$$$$$$  /$$                     /$$       /$$$$$$$$                                        /$$
    | $$__  $$| $$                    | $$      | $$_____/                                       | $$
    | $$  \ $$| $$  /$$$$$$   /$$$$$$$| $$   /$$| $$     /$$$$$$   /$$$$$$   /$$$$$$   /$$$$$$$ /$$$$$$
    | $$$$$$$ | $$ /$$__  $$ /$$_____/| $$  /$$/| $$$$$ /$$__  $$ /$$__  $$ /$$__  $$ /$$_____/|_  $$_/
    | $$__  $$| $$| $$  \ $$| $$      | $$$$$$/ | $$__/| $$  \ $$| $$  \__/| $$$$$$$$|  $$$$$$   | $$
    | $$  \ $$| $$| $$  | $$| $$      | $$_  $$ | $$   | $$  | $$| $$      | $$_____/ \____  $$  | $$ /$$
    | $$$$$$$/| $$|  $$$$$$/|  $$$$$$$| $$ \  $$| $$   |  $$$$$$/| $$      |  $$$$$$$ /$$$$$$$/  |  $$$$/
    |_______/ |__/ \______/  \_______/|__/  \__/|__/    \______/ |__/       \_______/|_______/    \___/

    Tailor-made Web3 tools studio

      --- Interaction Ledger CLI ---
    """
    typer.echo(LOGO)
    app()
