"""Pydantic models for the delegation tracker.

Three groups:
- ledger view: TxOutput / TransactionRecord as returned by the indexer
- registry: Delegation records and the Progress checkpoint built from them
- published state: the Snapshot handed to readers each cycle
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Protocol constants - fixed tags of a delegation declaration datum
# ---------------------------------------------------------------------------

DELEGATION_PROTOCOL_TAG = b"ENCOINS"
DELEGATION_ACTION_TAG = b"Delegate"

AggregateResult = dict[str, int]
BalanceSnapshot = dict[str, int]


# ---------------------------------------------------------------------------
# Ledger view
# ---------------------------------------------------------------------------


class Credential(BaseModel):
    """Payment credential of an address (key hash or script hash)."""

    model_config = ConfigDict(frozen=True)

    kind: str = Field(pattern=r"^(pubkey|script)$")
    hash: str


class TxOutRef(BaseModel):
    """Reference to a transaction output."""

    model_config = ConfigDict(frozen=True)

    tx_id: str
    index: int = Field(ge=0)

    def sort_key(self) -> tuple[str, int]:
        return (self.tx_id, self.index)


class DatumContent(BaseModel):
    """Datum attached to an output.

    ``json_value`` holds the datum in the Plutus detailed JSON schema. It is
    missing for hash-only references that the indexer could not resolve
    from the transaction body.
    """

    kind: str = Field(pattern=r"^(inline|in_body|hash)$")
    hash: str | None = None
    json_value: Any = None


class TxOutput(BaseModel):
    tx_out_ref: TxOutRef
    address: str
    datum: DatumContent | None = None


class TransactionRecord(BaseModel):
    """Transaction details needed to decode delegations."""

    tx_id: str
    slot: int
    outputs: list[TxOutput] = Field(default_factory=list)
    additional_signers: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class Delegation(BaseModel):
    """One signer's currently effective endpoint declaration.

    A newer declaration from the same ``stake_key`` supersedes this one;
    records are never mutated.
    """

    model_config = ConfigDict(frozen=True)

    credential: Credential
    stake_key: str
    tx_out_ref: TxOutRef
    created: int = Field(description="slot of the declaring transaction")
    endpoint: str


class Progress(BaseModel):
    """Scan checkpoint: newest processed transaction + the registry built so far."""

    model_config = ConfigDict(frozen=True)

    last_tx_id: str | None = None
    delegations: tuple[Delegation, ...] = ()


# ---------------------------------------------------------------------------
# Published state
# ---------------------------------------------------------------------------


class Snapshot(BaseModel):
    """Fully computed cycle output handed to readers as one unit."""

    model_config = ConfigDict(frozen=True)

    progress: Progress
    balances: BalanceSnapshot = Field(default_factory=dict)
    endpoints: AggregateResult = Field(default_factory=dict)
    progress_at: datetime
    published_at: datetime


__all__ = [
    "DELEGATION_ACTION_TAG",
    "DELEGATION_PROTOCOL_TAG",
    "AggregateResult",
    "BalanceSnapshot",
    "Credential",
    "DatumContent",
    "Delegation",
    "Progress",
    "Snapshot",
    "TransactionRecord",
    "TxOutRef",
    "TxOutput",
]
