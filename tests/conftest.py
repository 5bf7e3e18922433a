"""Pytest configuration and fixtures."""

import functools
import os
from contextlib import asynccontextmanager
from pathlib import Path

import pytest

# Settings are instantiated at import time; give them a complete environment.
os.environ.setdefault("PROJECT_NAME", "interaction-ledger-tests")
os.environ.setdefault("POSTGRES_USER", "ledger")
os.environ.setdefault("POSTGRES_PASSWORD", "ledger")
os.environ.setdefault("POSTGRES_SERVER", "localhost")
os.environ.setdefault("POSTGRES_PORT", "5432")
os.environ.setdefault("POSTGRES_DB", "ledger")

from interaction_ledger.app.domain.models import InteractionEvent  # noqa: E402
from interaction_ledger.app.infrastructure.db.engine import (  # noqa: E402
    create_app_async_engine,
    create_ledger_tables,
)
from interaction_ledger.app.infrastructure.factories.ledger.interaction_ledger_factory import (  # noqa: E402
    build_interaction_ledger,
)


@asynccontextmanager
async def _open_ledger(database_url: str, **kwargs):
    engine = create_app_async_engine(url=database_url)
    try:
        await create_ledger_tables(engine)
        yield build_interaction_ledger(engine=engine, **kwargs)
    finally:
        await engine.dispose()


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """Throw-away SQLite ledger database."""
    return f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture
def open_ledger(database_url: str):
    """
    Async context manager factory yielding a fully wired InteractionLedger.

    Usage inside a test coroutine:
        async with open_ledger() as ledger: ...
        async with open_ledger(conflict_policy="accept_trusted") as ledger: ...
    """
    return functools.partial(_open_ledger, database_url)


@pytest.fixture
def make_event():
    """Build an InteractionEvent with sensible defaults."""

    def _make(
        hash: str = "0xabc",
        block: int = 100,
        address: str = "0xaaa",
        contract: str = "0xccc",
        chain: str = "eth",
        **kwargs,
    ) -> InteractionEvent:
        return InteractionEvent(
            hash=hash,
            block=block,
            address=address,
            contract=contract,
            chain=chain,
            **kwargs,
        )

    return _make
