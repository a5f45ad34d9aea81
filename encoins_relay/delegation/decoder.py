"""Decoding of delegation declarations from transaction outputs.

A declaration is an output that
- sits at an address with a stake key,
- carries a datum (inline, in the transaction body, or by hash) of the
  shape ``["ENCOINS", "Delegate", <signer key>, <utf-8 endpoint>]``,
- and, with signature checks on, is signed by that key and names a
  usable endpoint.

Anything else is skipped, never raised: a ``Skipped`` result says why.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

import bittensor as bt

from .credentials import key_fingerprint, payment_credential, stake_key
from .errors import DatumUnavailable
from .models import (
    DELEGATION_ACTION_TAG,
    DELEGATION_PROTOCOL_TAG,
    Delegation,
    TransactionRecord,
    TxOutput,
)
from .source.interface import LedgerEventSource

DECLARATION_ARITY = 4

# RFC 3986 absolute URI: scheme ":" followed by URI characters
_URI_RE = re.compile(
    r"^[A-Za-z][A-Za-z0-9+.\-]*:"
    r"(?:[A-Za-z0-9\-._~:/?#\[\]@!$&'()*+,;=]|%[0-9A-Fa-f]{2})*$"
)


class SkipReason(str, Enum):
    """Why an output did not yield a delegation."""

    NO_STAKE_KEY = "no_stake_key"
    NO_DATUM = "no_datum"
    DATUM_UNAVAILABLE = "datum_unavailable"
    BAD_SHAPE = "bad_shape"
    BAD_TAG = "bad_tag"
    BAD_ENDPOINT_ENCODING = "bad_endpoint_encoding"
    NOT_SIGNED = "not_signed"
    INVALID_ENDPOINT = "invalid_endpoint"


@dataclass(frozen=True)
class Decoded:
    delegation: Delegation


@dataclass(frozen=True)
class Skipped:
    reason: SkipReason
    detail: str = ""


DecodeResult = Union[Decoded, Skipped]


def is_valid_endpoint(text: str) -> bool:
    """True for a bare ``host.tld`` name, an absolute URI, or an IPv4 literal."""
    if not text:
        return False
    return _is_simple_host(text) or _URI_RE.match(text) is not None or _is_ipv4(text)


def _is_simple_host(text: str) -> bool:
    parts = text.split(".")
    return len(parts) == 2 and all(parts) and "://" not in text


def _is_ipv4(text: str) -> bool:
    try:
        ipaddress.IPv4Address(text)
    except ValueError:
        return False
    return True


def parse_declaration(datum: Any) -> tuple[bytes, str] | SkipReason:
    """Parse a detailed-schema datum into (signer key bytes, endpoint).

    The datum must be a list of exactly four byte strings whose first two
    are the protocol tags.
    """
    if not isinstance(datum, dict) or not isinstance(datum.get("list"), list):
        return SkipReason.BAD_SHAPE
    items = datum["list"]
    if len(items) != DECLARATION_ARITY:
        return SkipReason.BAD_SHAPE

    fields: list[bytes] = []
    for item in items:
        if not isinstance(item, dict) or not isinstance(item.get("bytes"), str):
            return SkipReason.BAD_SHAPE
        try:
            fields.append(bytes.fromhex(item["bytes"]))
        except ValueError:
            return SkipReason.BAD_SHAPE

    protocol, action, signer, endpoint_raw = fields
    if protocol != DELEGATION_PROTOCOL_TAG or action != DELEGATION_ACTION_TAG:
        return SkipReason.BAD_TAG
    try:
        endpoint = endpoint_raw.decode("utf-8")
    except UnicodeDecodeError:
        return SkipReason.BAD_ENDPOINT_ENCODING
    return signer, endpoint


class DatumDecoder:
    """Turns transaction outputs into Delegation records."""

    def __init__(self, source: LedgerEventSource, check_signature: bool = True):
        self.source = source
        self.check_signature = check_signature

    async def decode(self, output: TxOutput, tx: TransactionRecord) -> DecodeResult:
        credential = payment_credential(output.address)
        if credential is None or stake_key(output.address) is None:
            return Skipped(SkipReason.NO_STAKE_KEY)

        datum = output.datum
        if datum is None:
            return Skipped(SkipReason.NO_DATUM)

        value = datum.json_value
        if datum.kind == "hash" and value is None:
            if not datum.hash:
                return Skipped(SkipReason.NO_DATUM)
            try:
                value = await self.source.fetch_datum_by_hash(datum.hash)
            except DatumUnavailable as e:
                return Skipped(SkipReason.DATUM_UNAVAILABLE, str(e))
            if value is None:
                return Skipped(SkipReason.DATUM_UNAVAILABLE, f"datum {datum.hash} not found")

        parsed = parse_declaration(value)
        if isinstance(parsed, SkipReason):
            return Skipped(parsed)
        signer, endpoint = parsed

        if self.check_signature:
            signers = {s.lower() for s in tx.additional_signers}
            if key_fingerprint(signer) not in signers:
                return Skipped(SkipReason.NOT_SIGNED)
            if not is_valid_endpoint(endpoint):
                return Skipped(SkipReason.INVALID_ENDPOINT, endpoint)

        return Decoded(Delegation(
            credential=credential,
            stake_key=key_fingerprint(signer),
            tx_out_ref=output.tx_out_ref,
            created=tx.slot,
            endpoint=endpoint,
        ))

    async def decode_transaction(self, tx: TransactionRecord) -> list[Delegation]:
        """Decode every output of a transaction, keeping the successful ones."""
        found: list[Delegation] = []
        for output in tx.outputs:
            result = await self.decode(output, tx)
            if isinstance(result, Decoded):
                found.append(result.delegation)
            elif result.reason is SkipReason.DATUM_UNAVAILABLE:
                bt.logging.warning({"delegation_decode": {"tx": tx.tx_id, "skip": result.reason.value, "detail": result.detail}})
            elif output.datum is not None:
                bt.logging.debug({"delegation_decode": {"tx": tx.tx_id, "index": output.tx_out_ref.index, "skip": result.reason.value}})
        return found


__all__ = [
    "DECLARATION_ARITY",
    "DatumDecoder",
    "DecodeResult",
    "Decoded",
    "SkipReason",
    "Skipped",
    "is_valid_endpoint",
    "parse_declaration",
]
