"""FeedbackService: the entry points a host calls around each assistant session.

    service = FeedbackService.from_config(config, project_dir)
    await service.track_recall(session_id, query, facts)      # at recall time
    result = await service.process_feedback(session_id, text, activity)
    await service.submit_signals(result.prepared_signals)      # sent or queued
    await service.sync_pending()                               # drain the queue
"""

from pathlib import Path
from typing import Any, Iterable, Optional

import httpx
import structlog

from cli.config_models import RecallFeedbackConfig
from degradation import DegradationController
from events import EventEmitter
from hindsight.client import HindsightClient, Memory
from hindsight.errors import HindsightError, HindsightErrorCode
from observability import Metrics
from observability import metrics as default_metrics
from offline_store import OfflineMemoryStore
from shared_types import FactType

from .detector import run_detection_pipeline
from .models import FeedbackResult, RecallSession, SessionActivity, SignalItem, SyncResult
from .offline_queue import OfflineSignalQueue
from .scorer import aggregate_detections, prepare_feedback, summarize_feedback
from .tracker import SessionStore

logger = structlog.get_logger()

DISABLED_REASON = "Feedback loop disabled"
NO_SESSION_REASON = "No recall session found for this session ID"


class FeedbackService:
    """Ties session tracking, detection, scoring and delivery together."""

    def __init__(
        self,
        config: RecallFeedbackConfig,
        sessions: SessionStore,
        queue: OfflineSignalQueue,
        controller: Optional[DegradationController] = None,
        client: Optional[HindsightClient] = None,
        bank_id: Optional[str] = None,
        offline_store: Optional[OfflineMemoryStore] = None,
        metrics: Optional[Metrics] = None,
    ):
        self.config = config
        self.sessions = sessions
        self.queue = queue
        self.metrics = metrics or default_metrics
        self.controller = controller or DegradationController(
            metrics=self.metrics,
            probe_timeout=config.hindsight.timeouts.health,
            delivery_timeout=config.hindsight.timeouts.signal,
        )
        self.client = client
        self.bank_id = bank_id or config.hindsight.bank_id or sessions.project_dir.resolve().name
        self.offline_store = offline_store

    @classmethod
    def from_config(
        cls,
        config: RecallFeedbackConfig,
        project_dir: str | Path | None = None,
        emitter: Optional[EventEmitter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "FeedbackService":
        project = Path(project_dir or config.paths.project_dir).expanduser()
        controller = DegradationController(
            emitter=emitter,
            probe_timeout=config.hindsight.timeouts.health,
            delivery_timeout=config.hindsight.timeouts.signal,
        )
        return cls(
            config=config,
            sessions=SessionStore(project),
            queue=OfflineSignalQueue(project),
            controller=controller,
            client=HindsightClient.from_config(
                config.hindsight, retry_config=config.retry, transport=transport
            ),
            offline_store=OfflineMemoryStore(project),
        )

    @property
    def enabled(self) -> bool:
        return self.config.feedback.enabled

    @property
    def emitter(self) -> EventEmitter:
        return self.controller.emitter

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()

    # --- Recall ---

    async def track_recall(
        self, session_id: str, query: str, facts: Iterable[Any]
    ) -> Optional[RecallSession]:
        """Record what a recall returned. Returns None when feedback is disabled."""
        if not self.enabled:
            logger.debug("feedback.track_skipped", reason=DISABLED_REASON)
            return None
        session = await self.sessions.track_recall(session_id, query, list(facts))
        logger.info("feedback.recall_tracked", session_id=session_id, facts=session.total_facts)
        return session

    async def recall(
        self,
        query: str,
        session_id: Optional[str] = None,
        budget: str = "mid",
        fact_type: str = "all",
        max_tokens: Optional[int] = None,
    ) -> list[Memory]:
        """Recall from the memory service; empty while it is unavailable."""
        if self.client is None or self.controller.is_degraded:
            return []
        try:
            memories = await self.client.recall(
                self.bank_id, query, budget=budget, fact_type=fact_type, max_tokens=max_tokens
            )
        except HindsightError as e:
            self.controller.handle_error(e, "recall")
            if e.is_unavailable:
                return []
            raise

        self.emitter.emit("memory:recalled", memories)
        if session_id:
            await self.track_recall(session_id, query, memories)
        return memories

    async def retain(
        self,
        content: str,
        context: Optional[str] = None,
        fact_type: FactType = FactType.WORLD,
    ) -> list[str]:
        """Store content remotely, or in the offline store while the service is down."""
        if self.client is not None and not self.controller.is_degraded:
            try:
                return await self.client.retain(self.bank_id, content, context)
            except HindsightError as e:
                self.controller.handle_error(e, "retain")
                if not e.is_unavailable:
                    raise

        if self.offline_store is None:
            return []
        memory_id = await self.offline_store.retain(content, fact_type=fact_type, context=context)
        self.emitter.emit("offline:stored", {"content": content})
        return [memory_id]

    # --- Feedback ---

    async def process_feedback(
        self,
        session_id: str,
        conversation_text: Optional[str] = None,
        session_activity: SessionActivity | dict | None = None,
    ) -> FeedbackResult:
        """Score every fact recalled for ``session_id`` and prepare signals.

        Nothing is sent here; pass ``prepared_signals`` to ``submit_signals``.
        """
        if not self.enabled:
            return FeedbackResult(success=False, session_id=session_id, reason=DISABLED_REASON)

        if isinstance(session_activity, dict):
            session_activity = SessionActivity.from_dict(session_activity)

        try:
            session = await self.sessions.load(session_id)
        except OSError as e:
            logger.error("feedback.session_load_failed", session_id=session_id, error=str(e))
            return FeedbackResult(success=False, session_id=session_id, error=str(e))
        if session is None:
            return FeedbackResult(success=False, session_id=session_id, reason=NO_SESSION_REASON)

        with self.metrics.timer("feedback.process"):
            detections = run_detection_pipeline(
                conversation_text,
                session_activity,
                session.facts_recalled,
                self.config.feedback.detection,
            )
            scores = aggregate_detections(detections)
            summary = summarize_feedback(scores)

        signals = []
        if self.config.feedback.hindsight.send_feedback:
            signals = prepare_feedback(scores, session.recall.query, session_id)

        logger.info(
            "feedback.processed",
            session_id=session_id,
            facts=summary.total,
            used=summary.used,
            ignored=summary.ignored,
            signals=len(signals),
        )
        return FeedbackResult(
            success=True,
            session_id=session_id,
            summary=summary,
            fact_scores=scores,
            prepared_signals=signals,
        )

    async def submit_signals(self, signals: list[SignalItem]) -> dict[str, int]:
        """Send signals now, or queue them while the service is unreachable.

        Validation errors propagate; nothing is queued for them.
        """
        if not signals:
            return {"sent": 0, "queued": 0}

        if self.client is None or self.controller.is_degraded:
            return await self._queue(signals)

        try:
            result = await self.client.signal(self.bank_id, signals)
        except HindsightError as e:
            self.controller.handle_error(e, "signal")
            if e.is_unavailable or e.is_retryable:
                return await self._queue(signals)
            raise

        self.metrics.counter("feedback.signals_sent", result.signals_processed)
        logger.info("feedback.signals_sent", count=result.signals_processed)
        return {"sent": result.signals_processed, "queued": 0}

    async def _queue(self, signals: list[SignalItem]) -> dict[str, int]:
        ids = await self.queue.enqueue_batch(signals)
        self.metrics.counter("feedback.signals_queued", len(ids))
        self.emitter.emit("feedback:queued", {"count": len(ids)})
        return {"sent": 0, "queued": len(ids)}

    # --- Sync ---

    async def _ensure_bank(self) -> None:
        await self.client.ensure_bank(self.bank_id)

    async def sync_pending(self, clear: bool = False) -> SyncResult:
        """Recover if needed, then deliver queued signals and offline memories."""
        if self.client is None:
            return SyncResult(
                degraded=self.controller.is_degraded, error="No memory service configured"
            )

        if not self.controller.is_degraded:
            status = await self.client.health()
            if not status.healthy:
                self.controller.handle_error(
                    HindsightError(
                        status.error or "Health check failed",
                        HindsightErrorCode.HINDSIGHT_UNAVAILABLE,
                    ),
                    "health",
                )

        if self.controller.is_degraded:
            recovered = await self.controller.attempt_recovery(
                self.client, self._ensure_bank, None, self.bank_id
            )
            if not recovered:
                return SyncResult(degraded=True, error="Hindsight is unavailable")
        else:
            try:
                await self._ensure_bank()
            except HindsightError as e:
                self.controller.handle_error(e, "ensure_bank")
                if not e.is_unavailable:
                    raise
                return SyncResult(degraded=True, error="Hindsight is unavailable")

        synced = await self.controller.sync_offline_signals(self.client, self.queue, self.bank_id)
        memories = 0
        if self.offline_store is not None:
            memories = await self.controller.sync_offline_memories(
                self.client, self.offline_store, self.bank_id
            )
        cleared = await self.queue.clear_synced() if clear else 0

        remaining = len(await self.queue.get_unsynced())
        error = f"{remaining} signal(s) still pending" if remaining else None
        return SyncResult(
            signals_synced=synced,
            signals_cleared=cleared,
            memories_synced=memories,
            degraded=self.controller.is_degraded,
            error=error,
        )

    # --- Stats ---

    async def get_stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "degraded": self.controller.is_degraded,
            "sessions": await self.sessions.get_stats(),
            "queue": await self.queue.get_stats(),
        }
