"""LedgerEventSource protocol - what the scanner needs from an indexer.

Implementations: IndexerEventSource (Blockfrost + Maestro over HTTP);
tests use AsyncMock stand-ins.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from encoins_relay.delegation.models import TransactionRecord


@runtime_checkable
class LedgerEventSource(Protocol):
    """Read-only view of the ledger scoped to the governing token."""

    async def fetch_new_transactions(self, after: str | None) -> list[str]:
        """Transactions touching the token newer than ``after``, newest first.

        Raises NetworkFailure.
        """
        ...

    async def fetch_transaction_details(self, tx_id: str) -> TransactionRecord | None:
        """Outputs, slot and additional signers of a transaction, or None if unknown."""
        ...

    async def fetch_datum_by_hash(self, datum_hash: str) -> Any | None:
        """Datum in detailed JSON schema, or None. Raises DatumUnavailable."""
        ...

    async def fetch_token_holder_balances(self, policy_id: str, token_name: str) -> dict[str, int]:
        """Current holders of a token: stake key hash -> amount. Raises NetworkFailure."""
        ...


__all__ = ["LedgerEventSource"]
