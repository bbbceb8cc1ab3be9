"""Tests for the offline memory store."""

import json
import re

import pytest

from offline_store import OfflineMemoryStore
from shared_types import FactType


@pytest.fixture
def store(project_dir):
    return OfflineMemoryStore(project_dir)


class TestRetain:
    @pytest.mark.asyncio
    async def test_retain_returns_offline_id(self, store):
        memory_id = await store.retain("Use pnpm, not npm", context="tooling")

        assert re.fullmatch(r"offline-\d+-[0-9a-z]{7}", memory_id)
        assert store.storage_path.name == "offline-memories.json"
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_fact_type_kept(self, store):
        await store.retain("I prefer tabs", fact_type=FactType.OPINION, confidence=0.7)
        [memory] = await store.get_recent()
        assert memory.fact_type == FactType.OPINION
        assert memory.confidence == 0.7
        assert memory.synced is False


class TestRecall:
    @pytest.mark.asyncio
    async def test_substring_match_case_insensitive(self, store):
        await store.retain("Deploys go through GitHub Actions")
        await store.retain("Unrelated note", context="about DEPLOYS")
        await store.retain("Nothing here")

        matches = await store.recall("deploys")
        assert {m.text for m in matches} == {"Deploys go through GitHub Actions", "Unrelated note"}

    @pytest.mark.asyncio
    async def test_filter_and_limit(self, store):
        for i in range(3):
            await store.retain(f"auth note {i}", fact_type=FactType.EXPERIENCE)
        await store.retain("auth world fact")

        assert len(await store.recall("auth", fact_type="experience")) == 3
        assert len(await store.recall("auth", limit=2)) == 2

    @pytest.mark.asyncio
    async def test_empty_store(self, store):
        assert await store.recall("anything") == []
        assert await store.get_recent() == []


class TestSyncBookkeeping:
    @pytest.mark.asyncio
    async def test_mark_and_clear(self, store):
        first = await store.retain("one")
        await store.retain("two")

        await store.mark_synced([first])
        assert [m.text for m in await store.get_unsynced()] == ["two"]

        assert await store.clear_synced() == 1
        assert await store.count() == 1

    @pytest.mark.asyncio
    async def test_corrupt_file_moved_aside(self, store):
        store.storage_path.parent.mkdir(parents=True)
        store.storage_path.write_text("not json")

        assert await store.count() == 0
        assert list(store.storage_path.parent.glob("offline-memories.json.corrupt-*"))

    @pytest.mark.asyncio
    async def test_malformed_entry_skipped(self, store):
        store.storage_path.parent.mkdir(parents=True)
        store.storage_path.write_text(
            json.dumps(
                {
                    "version": 1,
                    "memories": [
                        {"text": "missing id"},
                        {"id": "offline-1-abcdefg", "text": "kept", "createdAt": "2026-01-01T00:00:00Z"},
                    ],
                }
            )
        )

        assert [m.id for m in await store.get_unsynced()] == ["offline-1-abcdefg"]
        assert [m.text for m in await store.recall("kept")] == ["kept"]
