from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    Index,
    Integer,
    PrimaryKeyConstraint,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from interaction_ledger.app.infrastructure.db.db_base import LEDGER_SCHEMA, BaseDB


class ContractInteractionRevisionsDB(BaseDB):
    """
    Append-only revision log for contract_interactions.

    kind = 'conflict'  -> proposed facts were refused, previous facts still committed
    kind = 'supersede' -> proposed facts replaced previous facts (same transaction
                          as the row update)
    """

    __tablename__ = "contract_interaction_revisions"
    __table_args__ = (
        PrimaryKeyConstraint("id", name="pk_contract_interaction_revisions"),
        Index("ix_contract_interaction_revisions_hash", "hash", "id"),
        Index("ix_contract_interaction_revisions_kind", "kind", "id"),
        {"schema": LEDGER_SCHEMA},
    )

    # SQLite only autoincrements INTEGER primary keys
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        autoincrement=True,
    )
    hash: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(Text, nullable=False)

    # -------------------------------------------------------------------------
    # Facts committed before the revision
    # -------------------------------------------------------------------------
    previous_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    previous_address: Mapped[str] = mapped_column(Text, nullable=False)
    previous_contract: Mapped[str] = mapped_column(Text, nullable=False)
    previous_chain: Mapped[str] = mapped_column(Text, nullable=False)

    # -------------------------------------------------------------------------
    # Facts carried by the revising event
    # -------------------------------------------------------------------------
    block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    contract: Mapped[str] = mapped_column(Text, nullable=False)
    chain: Mapped[str] = mapped_column(Text, nullable=False)

    source: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
