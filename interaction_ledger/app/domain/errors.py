from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from interaction_ledger.app.domain.models import InteractionRecord


class LedgerError(Exception):
    """Base class for every error raised by the interaction ledger."""

    code: ClassVar[str] = "ledger_error"


class ValidationError(LedgerError, ValueError):
    """
    Malformed or missing field in an interaction event.

    Raised before any store mutation; the caller can correct the input and retry.
    """

    code = "validation_error"

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class InvalidCursorError(ValidationError):
    code = "invalid_cursor"


class ConflictError(LedgerError):
    """Same hash, divergent facts. Never resolved silently."""

    code = "conflict"

    def __init__(
        self,
        message: str,
        *,
        existing: InteractionRecord | None = None,
        proposed: InteractionRecord | None = None,
    ) -> None:
        super().__init__(message)
        self.existing = existing
        self.proposed = proposed


class RecordNotFoundError(LedgerError):
    code = "not_found"

    def __init__(self, hash: str) -> None:
        super().__init__(f"No interaction recorded for hash {hash!r}")
        self.hash = hash


class StorageUnavailable(LedgerError):
    """
    Transient infrastructure failure that persisted through the internal retries.

    Writes are all-or-nothing per record, so nothing partial is visible when
    this is raised. Callers are expected to retry with backoff.
    """

    code = "storage_unavailable"
