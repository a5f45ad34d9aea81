"""Delegation scan loop.

One cycle: fetch new token transactions -> decode declarations -> merge
into the registry -> join with holder balances -> persist -> publish.

The registry advances only when a cycle completes. A cycle that fails
part way (indexer down, disk write error) leaves both the in-memory
checkpoint and the published snapshot untouched; the next scheduled cycle
retries from the same point.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

import bittensor as bt

from .aggregator import aggregate
from .cache import StateCache
from .decoder import DatumDecoder
from .errors import NetworkFailure, StorageCorruption
from .merger import merge
from .models import AggregateResult, Delegation, Progress, Snapshot
from .source.interface import LedgerEventSource
from .store.interface import ProgressStore


class ScanState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DECODING = "decoding"
    MERGING = "merging"
    AGGREGATING = "aggregating"
    PERSISTING = "persisting"
    ERRORED = "errored"


@dataclass
class CycleResult:
    """Outcome of one scan cycle."""

    status: str  # "published", "skipped"
    new_transactions: int = 0
    discovered: int = 0
    delegations: int = 0
    endpoints: AggregateResult = field(default_factory=dict)


class DelegationScanner:
    """Drives scan cycles and owns the registry between them."""

    def __init__(
        self,
        source: LedgerEventSource,
        store: ProgressStore,
        cache: StateCache,
        policy_id: str,
        token_name: str,
        frequency: float = 60.0,
        check_signature: bool = True,
        max_concurrent_fetches: int = 4,
        max_consecutive_errors: int = 10,
    ):
        self.source = source
        self.store = store
        self.cache = cache
        self.policy_id = policy_id
        self.token_name = token_name
        self.frequency = frequency
        self.max_concurrent_fetches = max(1, max_concurrent_fetches)
        self.max_consecutive_errors = max_consecutive_errors
        self.decoder = DatumDecoder(source, check_signature=check_signature)

        self.state = ScanState.IDLE
        self.progress: Progress | None = None
        self._cycle_lock = asyncio.Lock()
        self._running = False

    # -- Startup --

    async def startup(self) -> Progress:
        """Recover the registry from the newest checkpoint.

        A checkpoint that exists but cannot be parsed is fatal.
        """
        try:
            loaded = await self.store.load_progress()
        except StorageCorruption as e:
            self.state = ScanState.ERRORED
            bt.logging.error({"delegation_scan": {"status": "checkpoint_corrupt", "path": e.path, "reason": e.reason}})
            raise

        self.progress = loaded[1] if loaded is not None else Progress()
        bt.logging.info({
            "delegation_scan": {
                "status": "recovered" if loaded is not None else "fresh",
                "last_tx_id": self.progress.last_tx_id,
                "delegations": len(self.progress.delegations),
            }
        })
        return self.progress

    # -- Cycle --

    async def scan_cycle(self) -> CycleResult:
        """Run one cycle unless another one is already in flight."""
        if self._cycle_lock.locked():
            bt.logging.debug({"delegation_scan": "cycle_in_flight, skipping"})
            return CycleResult(status="skipped")

        async with self._cycle_lock:
            if self.state is ScanState.ERRORED:
                raise RuntimeError("scanner is in errored state")
            try:
                return await self._cycle()
            finally:
                if self.state is not ScanState.ERRORED:
                    self.state = ScanState.IDLE

    async def _cycle(self) -> CycleResult:
        if self.progress is None:
            await self.startup()
        progress = self.progress

        self.state = ScanState.FETCHING
        tx_ids = await self.source.fetch_new_transactions(progress.last_tx_id)

        self.state = ScanState.DECODING
        discovered = await self._discover(tx_ids)

        self.state = ScanState.MERGING
        merged = Progress(
            last_tx_id=tx_ids[0] if tx_ids else progress.last_tx_id,
            delegations=tuple(merge(progress.delegations, discovered)),
        )

        self.state = ScanState.AGGREGATING
        balances = await self.source.fetch_token_holder_balances(self.policy_id, self.token_name)
        result = aggregate(merged.delegations, balances)

        self.state = ScanState.PERSISTING
        now = datetime.now(timezone.utc)
        await self.store.save_progress(merged, now)
        await self.store.save_result(result, now)

        self.cache.publish(Snapshot(
            progress=merged,
            balances=balances,
            endpoints=result,
            progress_at=now,
            published_at=datetime.now(timezone.utc),
        ))
        self.progress = merged

        bt.logging.info({
            "delegation_scan": {
                "new_transactions": len(tx_ids),
                "discovered": len(discovered),
                "delegations": len(merged.delegations),
                "endpoints": len(result),
            }
        })
        return CycleResult(
            status="published",
            new_transactions=len(tx_ids),
            discovered=len(discovered),
            delegations=len(merged.delegations),
            endpoints=result,
        )

    async def _discover(self, tx_ids: list[str]) -> list[Delegation]:
        """Fetch and decode transactions with bounded concurrency."""
        semaphore = asyncio.Semaphore(self.max_concurrent_fetches)

        async def _fetch_and_decode(tx_id: str) -> list[Delegation]:
            async with semaphore:
                tx = await self.source.fetch_transaction_details(tx_id)
                if tx is None:
                    bt.logging.warning({"delegation_scan": {"tx_not_found": tx_id}})
                    return []
                return await self.decoder.decode_transaction(tx)

        tasks = [asyncio.ensure_future(_fetch_and_decode(tx_id)) for tx_id in tx_ids]
        try:
            batches = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        found = [d for batch in batches for d in batch]
        if found:
            bt.logging.info({"delegation_scan": {"new_delegations": [f"{d.stake_key[:16]}->{d.endpoint}" for d in found]}})
        return found

    # -- Loop --

    async def run(self) -> None:
        """Scan on schedule until stopped.

        Indexer failures abort only the cycle they hit and are retried on the
        next schedule for as long as they last. Any other cycle error counts
        towards ``max_consecutive_errors``; reaching it re-raises the last one.
        """
        self._running = True
        await self.startup()
        bt.logging.info({
            "delegation_scan": {
                "status": "starting",
                "frequency": self.frequency,
                "max_delay": self.cache.max_delay,
            }
        })

        consecutive_errors = 0
        while self._running:
            started = time.monotonic()
            try:
                await self.scan_cycle()
                consecutive_errors = 0
            except asyncio.CancelledError:
                break
            except NetworkFailure as e:
                bt.logging.warning({"delegation_scan": {"status": "cycle_aborted", "error": str(e)}})
            except Exception as e:
                consecutive_errors += 1
                bt.logging.error({
                    "delegation_scan_cycle_error": str(e),
                    "type": type(e).__name__,
                    "consecutive": consecutive_errors,
                })
                if consecutive_errors >= self.max_consecutive_errors:
                    bt.logging.error({"delegation_scan": "too_many_errors, stopping"})
                    self._running = False
                    raise

            read = self.cache.get()
            if read.stale:
                bt.logging.warning({
                    "delegation_scan": {
                        "status": "degraded",
                        "age": round(read.age, 1) if read.age is not None else None,
                        "max_delay": self.cache.max_delay,
                    }
                })

            delay = max(0.0, self.frequency - (time.monotonic() - started))
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                break

        self._running = False
        bt.logging.info({"delegation_scan": "stopped"})

    def stop(self) -> None:
        """Signal the loop to stop after the current cycle."""
        self._running = False


__all__ = ["CycleResult", "DelegationScanner", "ScanState"]
