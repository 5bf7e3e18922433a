from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Index,
    PrimaryKeyConstraint,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from interaction_ledger.app.infrastructure.db.db_base import LEDGER_SCHEMA, BaseDB


class ContractInteractionsDB(BaseDB):
    """
    Contract-interaction ledger.

    One row = one transaction (hash) that invoked `contract` from `address`
    at height `block` on `chain`. The hash is globally unique: re-observing
    it never creates a second row.

    Identifiers are stored as canonical text (see domain.identity), not BYTEA,
    because chains outside the EVM family use non-hex encodings.

    Every index ends with `hash` so that range scans return rows in the
    deterministic (block, hash) order used by cursor pagination.
    """

    __tablename__ = "contract_interactions"
    __table_args__ = (
        PrimaryKeyConstraint("hash", name="pk_contract_interactions"),
        # Contract timeline on a chain
        Index(
            "ix_contract_interactions_chain_contract_block",
            "chain",
            "contract",
            "block",
            "hash",
        ),
        # Caller timeline on a chain
        Index(
            "ix_contract_interactions_chain_address_block",
            "chain",
            "address",
            "block",
            "hash",
        ),
        # Whole-chain block range scans / MIN / MAX
        Index(
            "ix_contract_interactions_chain_block",
            "chain",
            "block",
            "hash",
        ),
        {"schema": LEDGER_SCHEMA},
    )

    hash: Mapped[str] = mapped_column(Text, nullable=False)
    block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    contract: Mapped[str] = mapped_column(Text, nullable=False)
    chain: Mapped[str] = mapped_column(Text, nullable=False)
