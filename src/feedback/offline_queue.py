"""Local queue for feedback signals that could not reach the memory service.

Document layout (``<project>/.claude/offline-feedback.json``)::

    {"version": 1, "signals": [...], "lastSyncAttempt": "...", "lastSyncSuccess": "..."}

Every mutation re-reads the document from disk and writes it back atomically,
so an enqueue never loses signals written by an earlier call and compaction
only ever drops entries already marked synced.
"""

import secrets
import string
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

import structlog

from .models import OfflineSignal, QueueStats, SignalItem
from .persistence import move_aside, now_ms, read_json, write_json_atomic

logger = structlog.get_logger()

QUEUE_VERSION = 1
_ID_ALPHABET = string.digits + string.ascii_lowercase


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def generate_signal_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"signal-{now_ms()}-{suffix}"


class OfflineSignalQueue:
    """File-backed FIFO of feedback signals awaiting delivery."""

    def __init__(self, project_dir: str | Path, storage_path: str | Path | None = None):
        self.storage_path = (
            Path(storage_path).expanduser()
            if storage_path
            else Path(project_dir).expanduser() / ".claude" / "offline-feedback.json"
        )

    def _empty(self) -> dict:
        return {"version": QUEUE_VERSION, "signals": []}

    def _load(self) -> dict:
        try:
            doc = read_json(self.storage_path)
        except ValueError as e:
            move_aside(self.storage_path, f"invalid JSON: {e}")
            return self._empty()
        if doc is None:
            return self._empty()
        if not isinstance(doc, dict) or not isinstance(doc.get("signals"), list):
            move_aside(self.storage_path, "unexpected document shape")
            return self._empty()
        return doc

    def _save(self, doc: dict) -> None:
        write_json_atomic(self.storage_path, doc)

    def _signals(self, doc: dict) -> list[OfflineSignal]:
        signals = []
        for raw in doc["signals"]:
            try:
                signals.append(OfflineSignal.from_dict(raw))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning("offline_queue.entry_skipped", error=str(e))
        return signals

    @staticmethod
    def _wrap(signal: SignalItem) -> OfflineSignal:
        return OfflineSignal(
            fact_id=signal.fact_id,
            signal_type=signal.signal_type,
            confidence=signal.confidence,
            query=signal.query,
            context=signal.context,
            session_id=signal.session_id,
            id=generate_signal_id(),
            queued_at=_utc_now(),
        )

    async def enqueue(self, signal: SignalItem) -> str:
        ids = await self.enqueue_batch([signal])
        return ids[0]

    async def enqueue_batch(self, signals: Iterable[SignalItem]) -> list[str]:
        """Append all signals in one write; returns their queue ids in order."""
        wrapped = [self._wrap(s) for s in signals]
        if not wrapped:
            return []

        doc = self._load()
        doc["signals"].extend(s.to_dict() for s in wrapped)
        self._save(doc)
        logger.info("offline_queue.enqueued", count=len(wrapped), path=str(self.storage_path))
        return [s.id for s in wrapped]

    async def get_unsynced(self) -> list[OfflineSignal]:
        """Pending signals in the order they were queued."""
        return [s for s in self._signals(self._load()) if not s.synced]

    async def mark_synced(self, ids: Iterable[str]) -> None:
        id_set = set(ids)
        doc = self._load()
        for raw in doc["signals"]:
            if raw.get("id") in id_set:
                raw["synced"] = True
        doc["lastSyncSuccess"] = _utc_now()
        self._save(doc)

    async def record_sync_attempt(self) -> None:
        doc = self._load()
        doc["lastSyncAttempt"] = _utc_now()
        self._save(doc)

    async def clear_synced(self) -> int:
        """Drop delivered signals; returns how many were removed."""
        doc = self._load()
        before = len(doc["signals"])
        doc["signals"] = [raw for raw in doc["signals"] if not raw.get("synced")]
        removed = before - len(doc["signals"])
        self._save(doc)
        if removed:
            logger.debug("offline_queue.compacted", removed=removed)
        return removed

    async def count(self) -> int:
        return len(self._load()["signals"])

    async def get_stats(self) -> QueueStats:
        doc = self._load()
        signals = doc["signals"]
        synced = sum(1 for raw in signals if raw.get("synced"))
        return QueueStats(
            total=len(signals),
            pending=len(signals) - synced,
            synced=synced,
            last_sync_attempt=doc.get("lastSyncAttempt"),
            last_sync_success=doc.get("lastSyncSuccess"),
        )

    async def clear(self) -> None:
        """Discard every signal, delivered or not."""
        self._save(self._empty())
        logger.info("offline_queue.cleared", path=str(self.storage_path))

    @staticmethod
    def to_signal_item(offline: OfflineSignal) -> SignalItem:
        return offline.to_signal_item()

    def __repr__(self) -> str:
        return f"OfflineSignalQueue({self.storage_path})"
