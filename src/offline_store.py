"""Offline memory store: keeps retained content locally while the memory service is down.

Stored at ``<project>/.claude/offline-memories.json``. Recall here is a plain
case-insensitive substring search, newest first.
"""

import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import structlog

from feedback.persistence import move_aside, now_ms, read_json, write_json_atomic
from shared_types import FactType

logger = structlog.get_logger()

_ID_ALPHABET = string.digits + string.ascii_lowercase


@dataclass
class OfflineMemory:
    id: str
    text: str
    fact_type: FactType
    created_at: str
    context: Optional[str] = None
    confidence: Optional[float] = None
    synced: bool = False

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "text": self.text,
            "factType": self.fact_type.value,
            "createdAt": self.created_at,
            "synced": self.synced,
        }
        if self.context:
            d["context"] = self.context
        if self.confidence is not None:
            d["confidence"] = self.confidence
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "OfflineMemory":
        return cls(
            id=data["id"],
            text=data.get("text", ""),
            fact_type=FactType(data.get("factType", FactType.WORLD)),
            created_at=data.get("createdAt", ""),
            context=data.get("context"),
            confidence=data.get("confidence"),
            synced=bool(data.get("synced", False)),
        )


class OfflineMemoryStore:
    """JSON-file memory store used in degraded mode."""

    def __init__(self, project_dir: str | Path, storage_path: str | Path | None = None):
        self.storage_path = (
            Path(storage_path).expanduser()
            if storage_path
            else Path(project_dir).expanduser() / ".claude" / "offline-memories.json"
        )

    def _load(self) -> dict:
        try:
            doc = read_json(self.storage_path)
        except ValueError as e:
            move_aside(self.storage_path, f"invalid JSON: {e}")
            doc = None
        if doc is not None and not (isinstance(doc, dict) and isinstance(doc.get("memories"), list)):
            move_aside(self.storage_path, "unexpected document shape")
            doc = None
        return doc or {"version": 1, "memories": []}

    def _memories(self, doc: dict) -> list[OfflineMemory]:
        memories = []
        for raw in doc["memories"]:
            try:
                memories.append(OfflineMemory.from_dict(raw))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("offline_store.entry_skipped", error=str(e))
        return memories

    async def retain(
        self,
        text: str,
        fact_type: FactType = FactType.WORLD,
        context: Optional[str] = None,
        confidence: Optional[float] = None,
    ) -> str:
        suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
        memory = OfflineMemory(
            id=f"offline-{now_ms()}-{suffix}",
            text=text,
            fact_type=FactType(fact_type),
            created_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            context=context,
            confidence=confidence,
        )
        doc = self._load()
        doc["memories"].append(memory.to_dict())
        write_json_atomic(self.storage_path, doc)
        logger.info("offline_store.retained", memory_id=memory.id)
        return memory.id

    async def recall(self, query: str, fact_type: str = "all", limit: int = 10) -> list[OfflineMemory]:
        needle = query.lower()
        memories = self._memories(self._load())
        if fact_type != "all":
            memories = [m for m in memories if m.fact_type == fact_type]
        matches = [
            m
            for m in memories
            if needle in m.text.lower() or (m.context and needle in m.context.lower())
        ]
        matches.sort(key=lambda m: m.created_at, reverse=True)
        return matches[:limit]

    async def get_recent(self, limit: int = 5) -> list[OfflineMemory]:
        memories = sorted(self._memories(self._load()), key=lambda m: m.created_at, reverse=True)
        return memories[:limit]

    async def get_unsynced(self) -> list[OfflineMemory]:
        return [m for m in self._memories(self._load()) if not m.synced]

    async def mark_synced(self, ids: list[str]) -> None:
        id_set = set(ids)
        doc = self._load()
        for raw in doc["memories"]:
            if raw.get("id") in id_set:
                raw["synced"] = True
        doc["lastSyncSuccess"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        write_json_atomic(self.storage_path, doc)

    async def record_sync_attempt(self) -> None:
        doc = self._load()
        doc["lastSyncAttempt"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        write_json_atomic(self.storage_path, doc)

    async def clear_synced(self) -> int:
        doc = self._load()
        before = len(doc["memories"])
        doc["memories"] = [raw for raw in doc["memories"] if not raw.get("synced")]
        write_json_atomic(self.storage_path, doc)
        return before - len(doc["memories"])

    async def count(self) -> int:
        return len(self._load()["memories"])
