from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import Enum

from interaction_ledger.app.domain.errors import ConflictError, RecordNotFoundError
from interaction_ledger.app.domain.identity import (
    RawEvent,
    coerce_event,
    normalize_event,
    normalize_hash,
)
from interaction_ledger.app.domain.models import (
    IngestOutcome,
    IngestStatus,
    InteractionEvent,
    InteractionRecord,
    InteractionRevision,
    RevisionKind,
)
from interaction_ledger.app.domain.ports.out import InteractionLedgerStore

logger = logging.getLogger(__name__)

_DEFAULT_MAX_ATTEMPTS = 3


class ConflictPolicy(str, Enum):
    # surface every divergent re-observation to the operator
    REJECT = "reject"
    # let authoritative corrections from trusted sources supersede the record
    ACCEPT_TRUSTED = "accept_trusted"


class InteractionRevisionHandler:
    """
    Reconciles conflicting observations of an already committed hash.

    Per hash: Unseen -> Committed -> {Committed (same facts) | Superseded}.

    - resolve() is called by the ingestion path for every conflicting event
      and applies the configured ConflictPolicy.
    - supersede() is the explicit operator correction; it bypasses the policy.

    A supersede is atomic in the store (row + indexes + revision log). If the
    record changes between our read and the compare-and-set, the current facts
    are re-read and the supersede is retried up to `max_attempts` times.
    """

    def __init__(
        self,
        store: InteractionLedgerStore,
        *,
        policy: ConflictPolicy = ConflictPolicy.REJECT,
        trusted_sources: Iterable[str] = (),
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        if max_attempts <= 0:
            raise ValueError("max_attempts must be positive")
        self._store = store
        self._policy = ConflictPolicy(policy)
        self._trusted_sources = frozenset(trusted_sources)
        self._max_attempts = max_attempts

    @property
    def policy(self) -> ConflictPolicy:
        return self._policy

    def accepts_correction(self, event: InteractionEvent) -> bool:
        """True if `event` may supersede a committed record under the current policy."""
        if self._policy is not ConflictPolicy.ACCEPT_TRUSTED or not event.authoritative:
            return False
        if not self._trusted_sources:
            return True
        return event.source in self._trusted_sources

    async def resolve(
        self,
        *,
        event: InteractionEvent,
        candidate: InteractionRecord,
        existing: InteractionRecord,
    ) -> IngestOutcome:
        if candidate == existing:
            return IngestOutcome(
                status=IngestStatus.DUPLICATE,
                hash=candidate.hash,
                record=candidate,
                existing=existing,
            )

        if self.accepts_correction(event):
            try:
                return await self._supersede(
                    candidate=candidate,
                    expected=existing,
                    source=event.source,
                )
            except ConflictError as e:
                return IngestOutcome(
                    status=IngestStatus.CONFLICT,
                    hash=candidate.hash,
                    record=candidate,
                    existing=e.existing or existing,
                    reason=str(e),
                )

        revision = await self._store.record_conflict(
            existing=existing,
            proposed=candidate,
            source=event.source,
        )
        changed = ",".join(existing.diff(candidate))
        logger.warning(
            "Conflicting interaction for %s (changed=%s, source=%s, authoritative=%s, revision_id=%s)",
            candidate.hash,
            changed,
            event.source,
            event.authoritative,
            revision.id,
        )
        return IngestOutcome(
            status=IngestStatus.CONFLICT,
            hash=candidate.hash,
            record=candidate,
            existing=existing,
            reason=f"hash {candidate.hash!r} already committed with different {changed}",
        )

    async def supersede(self, raw: RawEvent) -> IngestOutcome:
        """
        Operator correction: replace the committed facts of the event's hash.

        Raises ValidationError for malformed events and RecordNotFoundError when
        the hash was never committed.
        """
        event = coerce_event(raw)
        candidate = normalize_event(event)

        existing = await self._store.get(candidate.hash)
        if existing is None:
            raise RecordNotFoundError(candidate.hash)
        if existing == candidate:
            return IngestOutcome(
                status=IngestStatus.DUPLICATE,
                hash=candidate.hash,
                record=candidate,
                existing=existing,
            )

        return await self._supersede(
            candidate=candidate,
            expected=existing,
            source=event.source,
        )

    async def _supersede(
        self,
        *,
        candidate: InteractionRecord,
        expected: InteractionRecord,
        source: str | None,
    ) -> IngestOutcome:
        for _ in range(self._max_attempts):
            try:
                await self._store.supersede(
                    expected=expected,
                    replacement=candidate,
                    source=source,
                )
            except ConflictError as e:
                current = e.existing or await self._store.get(candidate.hash)
                if current is None:
                    raise RecordNotFoundError(candidate.hash) from e
                if current == candidate:
                    return IngestOutcome(
                        status=IngestStatus.DUPLICATE,
                        hash=candidate.hash,
                        record=candidate,
                        existing=current,
                    )
                expected = current
                continue

            return IngestOutcome(
                status=IngestStatus.SUPERSEDED,
                hash=candidate.hash,
                record=candidate,
                existing=expected,
            )

        raise ConflictError(
            f"Record {candidate.hash!r} kept changing during supersede",
            existing=expected,
            proposed=candidate,
        )

    async def list_revisions(
        self,
        *,
        hash: str | None = None,
        kind: RevisionKind | None = None,
        after_id: int | None = None,
        limit: int = 100,
    ) -> list[InteractionRevision]:
        return await self._store.list_revisions(
            hash=None if hash is None else normalize_hash(hash),
            kind=kind,
            after_id=after_id,
            limit=limit,
        )
