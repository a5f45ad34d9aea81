"""HTTP indexer clients backing the LedgerEventSource protocol.

Blockfrost serves the token's transaction history and hash-referenced
datums; Maestro serves transaction details and the token holder list.
Both clients retry transport errors, rate limiting and server errors with
exponential backoff and surface exhausted retries as NetworkFailure.
"""

from __future__ import annotations

import asyncio
from typing import Any

import bittensor as bt
import httpx

from encoins_relay.delegation.credentials import stake_key
from encoins_relay.delegation.errors import DatumUnavailable, NetworkFailure
from encoins_relay.delegation.models import DatumContent, TransactionRecord, TxOutput, TxOutRef

BLOCKFROST_URLS = {
    "mainnet": "https://cardano-mainnet.blockfrost.io/api/v0",
    "preprod": "https://cardano-preprod.blockfrost.io/api/v0",
    "preview": "https://cardano-preview.blockfrost.io/api/v0",
}

MAESTRO_URLS = {
    "mainnet": "https://mainnet.gomaestro-api.org/v1",
    "preprod": "https://preprod.gomaestro-api.org/v1",
    "preview": "https://preview.gomaestro-api.org/v1",
}

PAGE_SIZE = 100

_RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


def asset_unit(policy_id: str, token_name: str) -> str:
    """Concatenated policy id + hex asset name, as both indexers expect."""
    return policy_id + token_name.encode().hex()


class _IndexerHTTP:
    """Shared GET-with-retry plumbing."""

    name = "indexer"

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str],
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers, transport=transport)
        self._max_retries = max_retries
        self._backoff = backoff

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response | None:
        """GET with retry. Returns None on 404."""
        last_error = ""
        for attempt in range(self._max_retries):
            try:
                resp = await self._client.get(f"{self.base_url}{path}", params=params)
            except httpx.TransportError as e:
                last_error = str(e) or type(e).__name__
            else:
                if resp.status_code == 404:
                    return None
                if resp.status_code not in _RETRY_STATUSES:
                    if resp.is_error:
                        raise NetworkFailure(f"{self.name} {path}: HTTP {resp.status_code} {resp.text[:200]}")
                    return resp
                last_error = f"HTTP {resp.status_code}"

            if attempt < self._max_retries - 1:
                wait = self._backoff * 2 ** attempt
                bt.logging.warning({
                    "indexer_http_client": {
                        "indexer": self.name,
                        "path": path,
                        "retry": attempt,
                        "wait": wait,
                        "error": last_error,
                    }
                })
                await asyncio.sleep(wait)

        raise NetworkFailure(f"{self.name} {path}: max retries exceeded ({last_error})")

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise NetworkFailure(f"malformed indexer response: {e}") from e


class BlockfrostClient(_IndexerHTTP):
    """Token transaction history and datum lookups."""

    name = "blockfrost"

    def __init__(self, network: str, project_id: str, **kwargs: Any):
        super().__init__(BLOCKFROST_URLS[network], headers={"project_id": project_id}, **kwargs)

    async def get_asset_txs_after(self, asset: str, after: str | None) -> list[str]:
        """Transaction ids touching ``asset`` newer than ``after``, newest first."""
        tx_ids: list[str] = []
        page = 1
        while True:
            resp = await self._get(
                f"/assets/{asset}/transactions",
                params={"order": "desc", "count": PAGE_SIZE, "page": page},
            )
            items = self._json(resp) if resp is not None else []
            if not items:
                break
            for item in items:
                tx_hash = item["tx_hash"]
                if tx_hash == after:
                    return list(dict.fromkeys(tx_ids))
                tx_ids.append(tx_hash)
            if len(items) < PAGE_SIZE:
                break
            page += 1

        if after is not None:
            bt.logging.warning({"blockfrost_client": {"last_tx_not_found": after, "rescanned": len(tx_ids)}})
        return list(dict.fromkeys(tx_ids))

    async def get_datum_by_hash(self, datum_hash: str) -> Any | None:
        try:
            resp = await self._get(f"/scripts/datum/{datum_hash}")
            if resp is None:
                return None
            body = self._json(resp)
        except NetworkFailure as e:
            raise DatumUnavailable(datum_hash, str(e)) from e
        return body.get("json_value") if isinstance(body, dict) else None


class MaestroClient(_IndexerHTTP):
    """Transaction details and token holders."""

    name = "maestro"

    def __init__(self, network: str, api_key: str, **kwargs: Any):
        super().__init__(MAESTRO_URLS[network], headers={"api-key": api_key}, **kwargs)

    async def get_tx_details(self, tx_id: str) -> TransactionRecord | None:
        resp = await self._get(f"/transactions/{tx_id}")
        if resp is None:
            return None
        body = self._json(resp)
        data = body.get("data", body)
        try:
            return TransactionRecord(
                tx_id=data.get("tx_hash", tx_id),
                slot=data["block_absolute_slot"],
                outputs=[
                    TxOutput(
                        tx_out_ref=TxOutRef(tx_id=o.get("tx_hash", tx_id), index=o["index"]),
                        address=o["address"],
                        datum=_parse_datum(o.get("datum")),
                    )
                    for o in data.get("outputs", [])
                ],
                additional_signers=data.get("additional_signers") or [],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise NetworkFailure(f"maestro /transactions/{tx_id}: unexpected payload: {e}") from e

    async def get_asset_holders(self, asset: str) -> dict[str, int]:
        """Stake key hash -> amount of ``asset`` held under that stake key."""
        balances: dict[str, int] = {}
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {"count": PAGE_SIZE}
            if cursor:
                params["cursor"] = cursor
            resp = await self._get(f"/assets/{asset}/accounts", params=params)
            if resp is None:
                break
            body = self._json(resp)
            for item in body.get("data", []):
                key = stake_key(item["account"])
                if key is None:
                    continue  # Script stake credential
                balances[key] = balances.get(key, 0) + int(item["amount"])
            cursor = body.get("next_cursor")
            if not cursor:
                break
        return balances


def _parse_datum(raw: dict[str, Any] | None) -> DatumContent | None:
    """Map a Maestro output datum onto DatumContent."""
    if not raw:
        return None
    value = raw.get("json")
    if raw.get("type") == "inline":
        return DatumContent(kind="inline", hash=raw.get("hash"), json_value=value)
    if value is not None:
        return DatumContent(kind="in_body", hash=raw.get("hash"), json_value=value)
    return DatumContent(kind="hash", hash=raw.get("hash"))


class IndexerEventSource:
    """LedgerEventSource over Blockfrost + Maestro for one governing token."""

    def __init__(
        self,
        blockfrost: BlockfrostClient,
        maestro: MaestroClient,
        policy_id: str,
        token_name: str,
    ):
        self.blockfrost = blockfrost
        self.maestro = maestro
        self.asset = asset_unit(policy_id, token_name)

    async def close(self) -> None:
        await self.blockfrost.close()
        await self.maestro.close()

    async def fetch_new_transactions(self, after: str | None) -> list[str]:
        return await self.blockfrost.get_asset_txs_after(self.asset, after)

    async def fetch_transaction_details(self, tx_id: str) -> TransactionRecord | None:
        return await self.maestro.get_tx_details(tx_id)

    async def fetch_datum_by_hash(self, datum_hash: str) -> Any | None:
        return await self.blockfrost.get_datum_by_hash(datum_hash)

    async def fetch_token_holder_balances(self, policy_id: str, token_name: str) -> dict[str, int]:
        return await self.maestro.get_asset_holders(asset_unit(policy_id, token_name))


__all__ = [
    "BLOCKFROST_URLS",
    "MAESTRO_URLS",
    "BlockfrostClient",
    "IndexerEventSource",
    "MaestroClient",
    "asset_unit",
]
