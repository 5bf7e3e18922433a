from __future__ import annotations

import logging
from collections.abc import AsyncIterable, Iterable, Sequence
from typing import Any, Final

from interaction_ledger.app.application.services.revise_interactions import (
    InteractionRevisionHandler,
)
from interaction_ledger.app.domain.errors import StorageUnavailable, ValidationError
from interaction_ledger.app.domain.identity import (
    RawEvent,
    coerce_event,
    normalize_event,
    peek_hash,
)
from interaction_ledger.app.domain.models import (
    AlreadyExists,
    IngestOutcome,
    IngestReport,
    IngestStatus,
    Inserted,
    InteractionEvent,
    InteractionRecord,
    PutResult,
)
from interaction_ledger.app.domain.ports.out import InteractionLedgerStore

logger = logging.getLogger(__name__)

_DEFAULT_BATCH_SIZE: Final[int] = 1_000

_Pending = tuple[int, InteractionEvent, InteractionRecord]


def _chunks(seq: list[Any], size: int) -> Iterable[list[Any]]:
    for i in range(0, len(seq), size):
        yield seq[i : i + size]


class InteractionIngestor:
    """
    Ingestion path of the ledger.

    - validates every event before touching the store (Rejected, no mutation),
    - inserts new hashes (Accepted),
    - treats identical re-observations as no-ops (Duplicate),
    - hands divergent re-observations to the revision handler (Conflict / Superseded).

    It never overwrites a committed record itself.
    """

    def __init__(
        self,
        store: InteractionLedgerStore,
        revisions: InteractionRevisionHandler,
        *,
        batch_size: int = _DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._store = store
        self._revisions = revisions
        self._batch_size = batch_size

    # -------------------------------------------------------------------------
    # Single event
    # -------------------------------------------------------------------------

    async def ingest(self, raw: RawEvent) -> IngestOutcome:
        """
        Apply one event.

        Raises StorageUnavailable if the store stays unreachable through its
        retries; every other failure is reported in the returned outcome.
        """
        try:
            event, record = self._validate(raw)
        except ValidationError as e:
            return self._reject(raw, e)

        result = await self._store.put_if_absent(record)
        return await self._settle(event, record, result)

    @staticmethod
    def _validate(raw: RawEvent) -> tuple[InteractionEvent, InteractionRecord]:
        event = coerce_event(raw)
        return event, normalize_event(event)

    @staticmethod
    def _reject(raw: RawEvent, error: ValidationError) -> IngestOutcome:
        hash_ = peek_hash(raw)
        logger.info("Rejected interaction event (hash=%s): %s", hash_, error)
        return IngestOutcome.rejected(hash_, error)

    async def _settle(
        self,
        event: InteractionEvent,
        record: InteractionRecord,
        result: PutResult,
    ) -> IngestOutcome:
        if isinstance(result, Inserted):
            return IngestOutcome(
                status=IngestStatus.ACCEPTED,
                hash=record.hash,
                record=record,
            )

        if not isinstance(result, AlreadyExists):
            raise TypeError(f"Unexpected put result: {type(result).__name__}")
        if result.existing == record:
            return IngestOutcome(
                status=IngestStatus.DUPLICATE,
                hash=record.hash,
                record=record,
                existing=result.existing,
            )

        return await self._revisions.resolve(
            event=event,
            candidate=record,
            existing=result.existing,
        )

    # -------------------------------------------------------------------------
    # Batches
    # -------------------------------------------------------------------------

    async def ingest_batch(self, raws: Sequence[RawEvent]) -> list[IngestOutcome]:
        """
        Apply an ordered batch with per-event independence.

        Returns one outcome per input, in input order. New hashes are written
        with chunked bulk inserts; events the store could not write are
        retried one by one, so a storage failure only marks the events it
        actually affected as `unavailable`. An event repeating
        a hash seen earlier in the same batch is applied after the first one.
        """
        outcomes: list[IngestOutcome | None] = [None] * len(raws)
        firsts: dict[str, _Pending] = {}
        repeats: list[_Pending] = []

        for i, raw in enumerate(raws):
            try:
                event, record = self._validate(raw)
            except ValidationError as e:
                outcomes[i] = self._reject(raw, e)
                continue

            if record.hash in firsts:
                repeats.append((i, event, record))
            else:
                firsts[record.hash] = (i, event, record)

        for chunk in _chunks(list(firsts.values()), self._batch_size):
            try:
                results = await self._store.put_many_if_absent([r for _, _, r in chunk])
            except StorageUnavailable as e:
                logger.warning(
                    "Bulk insert of %s interactions failed, falling back to single writes: %s",
                    len(chunk),
                    e,
                )
                for i, event, record in chunk:
                    outcomes[i] = await self._apply_isolated(event, record)
                continue

            for (i, event, record), result in zip(chunk, results):
                if result is None:
                    outcomes[i] = await self._apply_isolated(event, record)
                else:
                    outcomes[i] = await self._settle_isolated(event, record, result)

        for i, event, record in repeats:
            outcomes[i] = await self._apply_isolated(event, record)

        return outcomes  # type: ignore[return-value]

    async def _apply_isolated(
        self,
        event: InteractionEvent,
        record: InteractionRecord,
    ) -> IngestOutcome:
        try:
            result = await self._store.put_if_absent(record)
            return await self._settle(event, record, result)
        except StorageUnavailable as e:
            return IngestOutcome.unavailable(record, e)

    async def _settle_isolated(
        self,
        event: InteractionEvent,
        record: InteractionRecord,
        result: PutResult,
    ) -> IngestOutcome:
        try:
            return await self._settle(event, record, result)
        except StorageUnavailable as e:
            return IngestOutcome.unavailable(record, e)

    # -------------------------------------------------------------------------
    # Streams
    # -------------------------------------------------------------------------

    async def ingest_stream(
        self,
        events: Iterable[RawEvent] | AsyncIterable[RawEvent],
        *,
        batch_size: int | None = None,
    ) -> IngestReport:
        """Consume an upstream stream in batches and aggregate the outcomes."""
        size = batch_size or self._batch_size
        if size <= 0:
            raise ValueError("batch_size must be positive")

        report = IngestReport()
        batch: list[RawEvent] = []
        batch_idx = 0

        async def _flush() -> None:
            nonlocal batch_idx
            batch_idx += 1
            report.extend(await self.ingest_batch(batch))
            logger.info(
                "Processed interaction batch %s (%s events so far, %s failed)",
                batch_idx,
                report.total,
                len(report.failures),
            )
            batch.clear()

        if isinstance(events, AsyncIterable):
            async for raw in events:
                batch.append(raw)
                if len(batch) >= size:
                    await _flush()
        else:
            for raw in events:
                batch.append(raw)
                if len(batch) >= size:
                    await _flush()

        if batch:
            await _flush()

        logger.info("Finished interaction ingestion", extra={"report": report.as_dict()})
        return report
