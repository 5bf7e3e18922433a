import importlib.util
import io
from pathlib import Path

from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext

from interaction_ledger.app.infrastructure.db.db_base import BaseDB
from interaction_ledger.app.infrastructure.db.models.ledger import (  # noqa: F401
    contract_interaction_revisions,
    contract_interactions,
)

_VERSIONS = Path(__file__).resolve().parents[1] / "interaction_ledger" / "alembic" / "versions"


def _load(path: Path):
    spec = importlib.util.spec_from_file_location(path.stem, path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _render(step: str) -> str:
    buf = io.StringIO()
    ctx = MigrationContext.configure(
        dialect_name="postgresql",
        opts={"as_sql": True, "output_buffer": buf},
    )
    with Operations.context(ctx):
        for path in sorted(_VERSIONS.glob("*.py")):
            getattr(_load(path), step)()
    return buf.getvalue()


def test_upgrade_creates_every_ledger_table_and_index():
    sql = _render("upgrade")

    assert "CREATE SCHEMA IF NOT EXISTS ledger" in sql
    for table in BaseDB.metadata.sorted_tables:
        assert f"CREATE TABLE ledger.{table.name}" in sql
        for index in table.indexes:
            assert index.name in sql


def test_downgrade_drops_the_ledger_tables():
    sql = _render("downgrade")

    assert "DROP TABLE ledger.contract_interactions" in sql
    assert "DROP TABLE ledger.contract_interaction_revisions" in sql
