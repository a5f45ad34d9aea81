"""Tests for FilesystemProgressStore."""

import json
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from encoins_relay.delegation.errors import StorageCorruption
from encoins_relay.delegation.models import Credential, Delegation, Progress, TxOutRef
from encoins_relay.delegation.store.filesystem import (
    PROGRESS_PREFIX,
    RESULT_PREFIX,
    FilesystemProgressStore,
    format_timestamp,
    parse_timestamp,
)
from encoins_relay.delegation.store.interface import ProgressStore

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _progress(last_tx_id: str = "ab" * 32, endpoint: str = "a.com") -> Progress:
    return Progress(
        last_tx_id=last_tx_id,
        delegations=(
            Delegation(
                credential=Credential(kind="pubkey", hash="01" * 28),
                stake_key="02" * 28,
                tx_out_ref=TxOutRef(tx_id=last_tx_id, index=1),
                created=4242,
                endpoint=endpoint,
            ),
        ),
    )


@pytest.fixture
def tmp_dir():
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def store(tmp_dir):
    return FilesystemProgressStore(tmp_dir)


class TestTimestamps:

    def test_round_trip(self):
        ts = T0 + timedelta(microseconds=123)
        assert parse_timestamp(format_timestamp(ts)) == ts

    def test_lexicographic_order_is_chronological(self):
        earlier = format_timestamp(T0)
        later = format_timestamp(T0 + timedelta(seconds=1))
        assert earlier < later

    def test_naive_timestamp_treated_as_utc(self):
        assert format_timestamp(T0.replace(tzinfo=None)) == format_timestamp(T0)

    def test_garbage_not_parsed(self):
        assert parse_timestamp("yesterday") is None


class TestFilesystemProgressStore:

    def test_satisfies_protocol(self, store):
        assert isinstance(store, ProgressStore)

    def test_creates_folder(self, tmp_dir):
        folder = os.path.join(tmp_dir, "nested", "delegation")
        FilesystemProgressStore(folder)
        assert os.path.isdir(folder)

    @pytest.mark.asyncio
    async def test_empty_folder(self, store):
        assert await store.load_progress() is None
        assert await store.load_most_recent(RESULT_PREFIX) is None

    @pytest.mark.asyncio
    async def test_progress_round_trip(self, store):
        progress = _progress()

        name = await store.save_progress(progress, T0)
        loaded = await store.load_progress()

        assert name.startswith(PROGRESS_PREFIX)
        assert loaded == (T0, progress)

    @pytest.mark.asyncio
    async def test_result_persisted_as_json(self, store, tmp_dir):
        name = await store.save_result({"a.com": 12, "b.com": 0}, T0)

        with open(os.path.join(tmp_dir, name)) as f:
            assert json.load(f) == {"a.com": 12, "b.com": 0}
        assert await store.load_most_recent(RESULT_PREFIX) == (T0, {"a.com": 12, "b.com": 0})

    @pytest.mark.asyncio
    async def test_newest_checkpoint_selected(self, store):
        await store.save_progress(_progress(endpoint="old.com"), T0)
        await store.save_progress(_progress(endpoint="new.com"), T0 + timedelta(minutes=5))
        await store.save_progress(_progress(endpoint="mid.com"), T0 + timedelta(minutes=1))

        ts, progress = await store.load_progress()

        assert ts == T0 + timedelta(minutes=5)
        assert progress.delegations[0].endpoint == "new.com"

    @pytest.mark.asyncio
    async def test_prefixes_do_not_mix(self, store):
        await store.save_progress(_progress(), T0)
        await store.save_result({"a.com": 1}, T0 + timedelta(minutes=1))

        ts, _ = await store.load_progress()

        assert ts == T0

    @pytest.mark.asyncio
    async def test_unrelated_files_ignored(self, store, tmp_dir):
        await store.save_progress(_progress(), T0)
        for name in (f"{PROGRESS_PREFIX}latest.json", "notes.txt", f"{PROGRESS_PREFIX}20990101T000000000000Z.bak"):
            with open(os.path.join(tmp_dir, name), "w") as f:
                f.write("junk")

        ts, _ = await store.load_progress()

        assert ts == T0

    @pytest.mark.asyncio
    async def test_never_overwrites(self, store, tmp_dir):
        await store.save_progress(_progress(endpoint="a.com"), T0)

        with pytest.raises(FileExistsError):
            await store.save_progress(_progress(endpoint="b.com"), T0)

        _, progress = await store.load_progress()
        assert progress.delegations[0].endpoint == "a.com"
        assert [n for n in os.listdir(tmp_dir) if n.endswith(".tmp")] == []

    @pytest.mark.asyncio
    async def test_corrupt_newest_checkpoint_raises(self, store, tmp_dir):
        await store.save_progress(_progress(), T0)
        bad = os.path.join(tmp_dir, f"{PROGRESS_PREFIX}{format_timestamp(T0 + timedelta(hours=1))}.json")
        with open(bad, "w") as f:
            f.write("{not json")

        with pytest.raises(StorageCorruption) as exc_info:
            await store.load_progress()

        assert exc_info.value.path == bad

    @pytest.mark.asyncio
    async def test_wrong_shape_checkpoint_raises(self, store, tmp_dir):
        bad = os.path.join(tmp_dir, f"{PROGRESS_PREFIX}{format_timestamp(T0)}.json")
        with open(bad, "w") as f:
            json.dump({"delegations": [{"endpoint": "a.com"}]}, f)

        with pytest.raises(StorageCorruption):
            await store.load_progress()
