from __future__ import annotations

from typing import Final

from sqlalchemy.orm import DeclarativeBase

# PostgreSQL schema holding the ledger tables; translated away on SQLite.
LEDGER_SCHEMA: Final[str] = "ledger"


class BaseDB(DeclarativeBase):
    pass
