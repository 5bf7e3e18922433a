import pydantic
import pytest

from interaction_ledger.app.config import Settings

_BASE = {
    "PROJECT_NAME": "ledger",
    "POSTGRES_USER": "ledger",
    "POSTGRES_PASSWORD": "p@ss word",
    "POSTGRES_SERVER": "db",
    "POSTGRES_PORT": 5433,
    "POSTGRES_DB": "interactions",
}


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("DATABASE_URL", "SYNC_DATABASE_URL", "LEDGER_CONFLICT_POLICY", "LEDGER_TRUSTED_SOURCES"):
        monkeypatch.delenv(name, raising=False)


def test_database_urls_are_assembled_from_postgres_settings():
    config = Settings(_env_file=None, **_BASE)
    assert config.database_url == "postgresql+asyncpg://ledger:p%40ss+word@db:5433/interactions"
    assert config.sync_database_url == "postgresql://ledger:p%40ss+word@db:5433/interactions"


def test_explicit_database_url_wins():
    config = Settings(_env_file=None, DATABASE_URL="sqlite+aiosqlite:///ledger.db", **_BASE)
    assert config.database_url == "sqlite+aiosqlite:///ledger.db"


def test_ledger_defaults():
    config = Settings(_env_file=None, **_BASE)
    assert config.conflict_policy == "reject"
    assert config.trusted_source_names == frozenset()
    assert config.ingest_batch_size == 1000
    assert (config.query_default_limit, config.query_max_limit) == (100, 1000)


def test_trusted_sources_from_environment(monkeypatch):
    monkeypatch.setenv("LEDGER_CONFLICT_POLICY", "accept_trusted")
    monkeypatch.setenv("LEDGER_TRUSTED_SOURCES", " reorg-watcher, ,backfill ")
    config = Settings(_env_file=None, **_BASE)
    assert config.conflict_policy == "accept_trusted"
    assert config.trusted_source_names == frozenset({"reorg-watcher", "backfill"})


@pytest.mark.parametrize(
    "overrides",
    [
        {"LEDGER_CONFLICT_POLICY": "overwrite"},
        {"LEDGER_QUERY_DEFAULT_LIMIT": 500, "LEDGER_QUERY_MAX_LIMIT": 100},
        {"LEDGER_INGEST_BATCH_SIZE": 0},
    ],
)
def test_invalid_ledger_settings(overrides):
    with pytest.raises(pydantic.ValidationError):
        Settings(_env_file=None, **_BASE, **overrides)
