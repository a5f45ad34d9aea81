"""Filesystem-based ProgressStore implementation.

Every save creates a new JSON file in the delegation folder:
  {folder}/delegatorsV2_{YYYYMMDDTHHMMSSffffffZ}.json   - Progress checkpoints
  {folder}/result_{YYYYMMDDTHHMMSSffffffZ}.json         - endpoint totals

Files are never overwritten or pruned; they double as an audit trail.
Recovery reads only the newest checkpoint, and refuses to fall back to an
older one when the newest does not parse.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import bittensor as bt
from pydantic import ValidationError

from encoins_relay.delegation.errors import StorageCorruption
from encoins_relay.delegation.models import AggregateResult, Progress

PROGRESS_PREFIX = "delegatorsV2_"
RESULT_PREFIX = "result_"

_TS_FORMAT = "%Y%m%dT%H%M%S%fZ"
_SUFFIX = ".json"


def format_timestamp(ts: datetime) -> str:
    """UTC timestamp whose lexicographic order is chronological."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).strftime(_TS_FORMAT)


def parse_timestamp(text: str) -> datetime | None:
    try:
        return datetime.strptime(text, _TS_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _write_json_exclusive(path: Path, data: Any) -> None:
    """Write JSON to ``path`` atomically, failing if it already exists."""
    tmp_fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=".", suffix=".tmp")
    try:
        with os.fdopen(tmp_fd, "w") as f:
            json.dump(data, f, sort_keys=True)
            f.flush()
            os.fsync(f.fileno())
        os.link(tmp_path, path)
    finally:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass


class FilesystemProgressStore:
    """Local filesystem ProgressStore implementation."""

    def __init__(self, folder: str | Path):
        self.folder = Path(folder)
        self.folder.mkdir(parents=True, exist_ok=True)

    def _path(self, prefix: str, timestamp: datetime) -> Path:
        return self.folder / f"{prefix}{format_timestamp(timestamp)}{_SUFFIX}"

    async def save_progress(self, progress: Progress, timestamp: datetime) -> str:
        path = self._path(PROGRESS_PREFIX, timestamp)
        _write_json_exclusive(path, progress.model_dump(mode="json"))
        return path.name

    async def save_result(self, result: AggregateResult, timestamp: datetime) -> str:
        path = self._path(RESULT_PREFIX, timestamp)
        _write_json_exclusive(path, dict(result))
        return path.name

    def _most_recent_path(self, prefix: str) -> tuple[datetime, Path] | None:
        newest: tuple[datetime, Path] | None = None
        for path in self.folder.iterdir():
            name = path.name
            if not (name.startswith(prefix) and name.endswith(_SUFFIX)):
                continue
            ts = parse_timestamp(name[len(prefix):-len(_SUFFIX)])
            if ts is None:
                continue
            if newest is None or ts > newest[0]:
                newest = (ts, path)
        return newest

    def _load_most_recent(self, prefix: str) -> tuple[datetime, Path, Any] | None:
        found = self._most_recent_path(prefix)
        if found is None:
            return None
        ts, path = found
        try:
            with open(path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageCorruption(str(path), str(e)) from e
        return ts, path, data

    async def load_most_recent(self, prefix: str) -> tuple[datetime, Any] | None:
        loaded = self._load_most_recent(prefix)
        if loaded is None:
            return None
        ts, _, data = loaded
        return ts, data

    async def load_progress(self) -> tuple[datetime, Progress] | None:
        loaded = self._load_most_recent(PROGRESS_PREFIX)
        if loaded is None:
            bt.logging.info({"progress_store": "no_checkpoint, starting fresh", "folder": str(self.folder)})
            return None
        ts, path, data = loaded
        try:
            progress = Progress.model_validate(data)
        except ValidationError as e:
            raise StorageCorruption(str(path), str(e)) from e
        bt.logging.info({
            "progress_store": "checkpoint_loaded",
            "timestamp": ts.isoformat(),
            "delegations": len(progress.delegations),
        })
        return ts, progress


__all__ = [
    "PROGRESS_PREFIX",
    "RESULT_PREFIX",
    "FilesystemProgressStore",
    "format_timestamp",
    "parse_timestamp",
]
