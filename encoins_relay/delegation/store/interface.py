"""ProgressStore protocol - durable checkpoint persistence.

Implementations: FilesystemProgressStore (append-only JSON files).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from encoins_relay.delegation.models import AggregateResult, Progress


@runtime_checkable
class ProgressStore(Protocol):
    """Append-only store of scan checkpoints and aggregate results."""

    async def save_progress(self, progress: Progress, timestamp: datetime) -> str:
        """Persist a checkpoint. Returns its identifier."""
        ...

    async def save_result(self, result: AggregateResult, timestamp: datetime) -> str:
        """Persist an aggregate result. Returns its identifier."""
        ...

    async def load_most_recent(self, prefix: str) -> tuple[datetime, Any] | None:
        """Newest record under ``prefix``. Raises StorageCorruption if unreadable."""
        ...

    async def load_progress(self) -> tuple[datetime, Progress] | None:
        """Newest checkpoint, or None when no prior state exists."""
        ...


__all__ = ["ProgressStore"]
