from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Final

from interaction_ledger.app.domain.errors import (
    ConflictError,
    LedgerError,
    StorageUnavailable,
    ValidationError,
)

# BIGINT upper bound of the block column
MAX_BLOCK: Final[int] = 2**63 - 1


@dataclass(frozen=True)
class InteractionRecord:
    """
    A committed fact: transaction `hash` at height `block` on `chain` invoked
    `contract` from caller `address`.

    Values are expected to be in canonical form (see domain.identity), so
    equality of two records means equality of the facts.
    """

    hash: str
    block: int
    address: str
    contract: str
    chain: str

    def as_dict(self) -> dict[str, object]:
        return {
            "hash": self.hash,
            "block": self.block,
            "address": self.address,
            "contract": self.contract,
            "chain": self.chain,
        }

    def diff(self, other: InteractionRecord) -> tuple[str, ...]:
        """Names of the fields whose values differ from `other`."""
        return tuple(
            name
            for name in ("hash", "block", "address", "contract", "chain")
            if getattr(self, name) != getattr(other, name)
        )


@dataclass(frozen=True)
class InteractionEvent:
    """
    Interaction fact as delivered by an upstream pipeline.

    `authoritative` marks a correction emitted by a reorg-aware source;
    `source` names the producing pipeline.
    """

    hash: str
    block: int
    address: str
    contract: str
    chain: str
    authoritative: bool = False
    source: str | None = None


@dataclass(frozen=True)
class BlockRange:
    from_block: int
    to_block: int

    def validate(self) -> None:
        if self.from_block < 0 or self.to_block < 0:
            raise ValidationError("Block numbers must be non-negative", field="block_range")
        if self.from_block > MAX_BLOCK or self.to_block > MAX_BLOCK:
            raise ValidationError(
                f"Block numbers must be <= {MAX_BLOCK}", field="block_range"
            )
        if self.from_block > self.to_block:
            raise ValidationError("from_block must be <= to_block", field="block_range")


@dataclass(frozen=True)
class ScanFilter:
    """Grouping used by range scans. Set at most one of contract / address."""

    chain: str
    contract: str | None = None
    address: str | None = None

    def __post_init__(self) -> None:
        if self.contract is not None and self.address is not None:
            raise ValueError("ScanFilter accepts contract or address, not both")


@dataclass(frozen=True)
class SortKey:
    """Position of a record in (block, hash) order; what a cursor encodes."""

    block: int
    hash: str

    @classmethod
    def of(cls, record: InteractionRecord) -> SortKey:
        return cls(block=record.block, hash=record.hash)


# -----------------------------------------------------------------------------
# Store results
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Inserted:
    record: InteractionRecord


@dataclass(frozen=True)
class AlreadyExists:
    existing: InteractionRecord


PutResult = Inserted | AlreadyExists


@dataclass(frozen=True)
class InteractionPage:
    records: tuple[InteractionRecord, ...]
    next_cursor: str | None = None

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)


@dataclass(frozen=True)
class ChainSummary:
    chain: str
    records: int
    min_block: int | None
    max_block: int | None


class RevisionKind(str, Enum):
    CONFLICT = "conflict"
    SUPERSEDE = "supersede"


@dataclass(frozen=True)
class InteractionRevision:
    """
    Entry of the revision log.

    For CONFLICT, `proposed` was refused and `previous` is still committed.
    For SUPERSEDE, `proposed` replaced `previous`.
    """

    id: int
    hash: str
    kind: RevisionKind
    previous: InteractionRecord
    proposed: InteractionRecord
    source: str | None
    recorded_at: datetime


# -----------------------------------------------------------------------------
# Ingestion outcomes
# -----------------------------------------------------------------------------


class IngestStatus(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"
    CONFLICT = "conflict"
    SUPERSEDED = "superseded"
    # only produced by batch / stream ingestion
    UNAVAILABLE = "unavailable"


_ERROR_CODES: dict[IngestStatus, str] = {
    IngestStatus.DUPLICATE: "duplicate",
    IngestStatus.REJECTED: ValidationError.code,
    IngestStatus.CONFLICT: ConflictError.code,
    IngestStatus.UNAVAILABLE: StorageUnavailable.code,
}

_FAILURES = frozenset(
    {IngestStatus.REJECTED, IngestStatus.CONFLICT, IngestStatus.UNAVAILABLE}
)


@dataclass(frozen=True)
class IngestOutcome:
    """
    Tagged result of applying one event to the ledger.

    - record:   the normalized candidate (None when rejected before normalization)
    - existing: the record that was committed before this event, when relevant
    """

    status: IngestStatus
    hash: str | None
    record: InteractionRecord | None = None
    existing: InteractionRecord | None = None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status not in _FAILURES

    @property
    def retryable(self) -> bool:
        return self.status is IngestStatus.UNAVAILABLE

    @property
    def error_code(self) -> str | None:
        return _ERROR_CODES.get(self.status)

    def raise_for_status(self) -> None:
        """Raise the LedgerError matching a failed outcome; no-op otherwise."""
        if self.status is IngestStatus.REJECTED:
            raise ValidationError(self.reason or "rejected")
        if self.status is IngestStatus.CONFLICT:
            raise ConflictError(
                self.reason or f"conflicting facts for hash {self.hash!r}",
                existing=self.existing,
                proposed=self.record,
            )
        if self.status is IngestStatus.UNAVAILABLE:
            raise StorageUnavailable(self.reason or "storage unavailable")

    @classmethod
    def rejected(cls, hash: str | None, error: LedgerError) -> IngestOutcome:
        return cls(status=IngestStatus.REJECTED, hash=hash, reason=str(error))

    @classmethod
    def unavailable(
        cls, record: InteractionRecord, error: StorageUnavailable
    ) -> IngestOutcome:
        return cls(
            status=IngestStatus.UNAVAILABLE,
            hash=record.hash,
            record=record,
            reason=str(error),
        )


@dataclass
class IngestReport:
    """Aggregate of a stream ingestion; keeps failed outcomes for retry."""

    counts: Counter[IngestStatus] = field(default_factory=Counter)
    failures: list[IngestOutcome] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def add(self, outcome: IngestOutcome) -> None:
        self.counts[outcome.status] += 1
        if not outcome.ok:
            self.failures.append(outcome)

    def extend(self, outcomes: list[IngestOutcome]) -> None:
        for outcome in outcomes:
            self.add(outcome)

    def as_dict(self) -> dict[str, int]:
        out = {status.value: self.counts.get(status, 0) for status in IngestStatus}
        out["total"] = self.total
        return out
