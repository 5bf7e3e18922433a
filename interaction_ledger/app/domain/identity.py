"""
Identity & key model.

Canonical forms used for storage and comparison:

- hash:     0x-prefixed hex is lower-cased; any other encoding is opaque and kept verbatim
            (base58 signatures are case-sensitive).
- address / contract:
            0x + 40 hex must be a valid EVM address (all-lowercase, all-uppercase or a
            correct EIP-55 checksum) and is lower-cased; other 0x-prefixed values must be
            hex and are lower-cased; anything else is opaque.
- chain:    lower-cased.
- block:    int in [0, 2**63 - 1] (BIGINT).

Two events describe the same fact iff their normalized records are equal.
"""
from __future__ import annotations

import base64
import binascii
import json
import string
from collections.abc import Mapping
from typing import Any, Final

import pydantic
from pydantic import BaseModel, ConfigDict
from web3 import Web3

from interaction_ledger.app.domain.errors import InvalidCursorError, ValidationError
from interaction_ledger.app.domain.models import (
    MAX_BLOCK,
    InteractionEvent,
    InteractionRecord,
    SortKey,
)

_HEX_DIGITS = frozenset(string.hexdigits)
_EVM_ADDRESS_HEX_LEN: Final[int] = 40
_CURSOR_VERSION: Final[int] = 1

RawEvent = InteractionEvent | Mapping[str, Any] | str | bytes


class InteractionEventPayload(BaseModel):
    """Wire shape of an upstream message; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    hash: str
    block: int
    address: str
    contract: str
    chain: str
    authoritative: bool = False
    source: str | None = None

    def to_event(self) -> InteractionEvent:
        return InteractionEvent(
            hash=self.hash,
            block=self.block,
            address=self.address,
            contract=self.contract,
            chain=self.chain,
            authoritative=self.authoritative,
            source=self.source,
        )


def _is_hex(body: str) -> bool:
    return bool(body) and all(c in _HEX_DIGITS for c in body)


def _require_text(value: Any, field: str) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string, got {type(value).__name__}", field=field)
    stripped = value.strip()
    if not stripped:
        raise ValidationError(f"{field} must be a non-empty string", field=field)
    return stripped


def normalize_hash(value: Any) -> str:
    text = _require_text(value, "hash")
    if text[:2].lower() == "0x":
        if not _is_hex(text[2:]):
            raise ValidationError(f"hash {text!r} is not valid hex", field="hash")
        return text.lower()
    return text


def _normalize_account(value: Any, field: str) -> str:
    text = _require_text(value, field)
    if text[:2].lower() != "0x":
        return text

    body = text[2:]
    if not _is_hex(body):
        raise ValidationError(f"{field} {text!r} is not valid hex", field=field)
    if len(body) == _EVM_ADDRESS_HEX_LEN and not Web3.is_address("0x" + body):
        # mixed case that is not a valid EIP-55 checksum
        raise ValidationError(f"{field} {text!r} has an invalid checksum", field=field)
    return "0x" + body.lower()


def normalize_address(value: Any) -> str:
    return _normalize_account(value, "address")


def normalize_contract(value: Any) -> str:
    return _normalize_account(value, "contract")


def normalize_chain(value: Any) -> str:
    return _require_text(value, "chain").lower()


def normalize_block(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"block must be an integer, got {type(value).__name__}", field="block")
    if value < 0:
        raise ValidationError(f"block must be non-negative, got {value}", field="block")
    if value > MAX_BLOCK:
        raise ValidationError(f"block {value} exceeds the 64-bit range", field="block")
    return value


def coerce_event(raw: RawEvent) -> InteractionEvent:
    """Turn an upstream message (event, mapping or JSON document) into an InteractionEvent."""
    if isinstance(raw, InteractionEvent):
        return raw
    try:
        if isinstance(raw, (str, bytes)):
            payload = InteractionEventPayload.model_validate_json(raw)
        elif isinstance(raw, Mapping):
            payload = InteractionEventPayload.model_validate(dict(raw))
        else:
            raise ValidationError(f"Unsupported event type: {type(raw).__name__}")
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(
            f"{loc or 'event'}: {first.get('msg', 'invalid value')}", field=loc
        ) from exc
    return payload.to_event()


def normalize_event(event: InteractionEvent) -> InteractionRecord:
    """Validate every field and build the canonical record. Raises ValidationError."""
    return InteractionRecord(
        hash=normalize_hash(event.hash),
        block=normalize_block(event.block),
        address=normalize_address(event.address),
        contract=normalize_contract(event.contract),
        chain=normalize_chain(event.chain),
    )


def peek_hash(raw: RawEvent) -> str | None:
    """Best-effort hash of a possibly malformed message, for outcome reporting."""
    value: Any = None
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            return None
    if isinstance(raw, InteractionEvent):
        value = raw.hash
    elif isinstance(raw, Mapping):
        value = raw.get("hash")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


# -----------------------------------------------------------------------------
# Cursor codec
# -----------------------------------------------------------------------------


def encode_cursor(key: SortKey) -> str:
    payload = {"v": _CURSOR_VERSION, "b": key.block, "h": key.hash}
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_cursor(token: str) -> SortKey:
    if not isinstance(token, str) or not token:
        raise InvalidCursorError("Cursor must be a non-empty string", field="cursor")
    padded = token + "=" * ((4 - len(token) % 4) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        payload = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise InvalidCursorError("Malformed cursor", field="cursor") from exc

    if not isinstance(payload, dict) or payload.get("v") != _CURSOR_VERSION:
        raise InvalidCursorError("Unsupported cursor version", field="cursor")

    block = payload.get("b")
    hash_ = payload.get("h")
    if isinstance(block, bool) or not isinstance(block, int) or not 0 <= block <= MAX_BLOCK:
        raise InvalidCursorError(
            f"Cursor block must be an integer in [0, {MAX_BLOCK}]", field="cursor"
        )
    if not isinstance(hash_, str) or not hash_:
        raise InvalidCursorError("Cursor hash must be a non-empty string", field="cursor")
    return SortKey(block=block, hash=hash_)
