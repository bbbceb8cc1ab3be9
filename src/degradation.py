"""Degradation controller: tracks whether the memory service is reachable.

Two states, nominal and degraded. Only connectivity failures (connection
refused, timeouts) move the controller into degraded mode; validation and
bank errors are caller bugs and never do. Leaving degraded mode happens only
through ``attempt_recovery``, which probes health and then drains everything
that was stored locally while the service was down.
"""

import asyncio
from typing import Awaitable, Callable, Optional, Protocol

import structlog

from events import EventEmitter
from feedback.offline_queue import OfflineSignalQueue
from hindsight.client import HealthStatus, SignalResult
from hindsight.errors import HindsightError, HindsightErrorCode
from observability import Metrics
from observability import metrics as default_metrics
from offline_store import OfflineMemoryStore

logger = structlog.get_logger()


class DegradedModeError(Exception):
    """Raised (or emitted) when the memory service is unavailable."""

    def __init__(self, reason: str):
        super().__init__(f"Degraded mode: {reason}")
        self.reason = reason


class RemoteClient(Protocol):
    async def health(self) -> HealthStatus: ...

    async def signal(self, bank_id: str, signals: list) -> SignalResult: ...

    async def retain(self, bank_id: str, content: str, context: Optional[str] = None) -> list[str]: ...


class DegradationController:
    """Owns the degraded flag; everything else reads it through ``is_degraded``."""

    def __init__(
        self,
        emitter: Optional[EventEmitter] = None,
        metrics: Optional[Metrics] = None,
        probe_timeout: float = 3.0,
        delivery_timeout: float = 10.0,
    ):
        self.emitter = emitter or EventEmitter()
        self.metrics = metrics or default_metrics
        self.probe_timeout = probe_timeout
        self.delivery_timeout = delivery_timeout
        self._degraded = False

    @property
    def is_degraded(self) -> bool:
        return self._degraded

    def enter_degraded_mode(self, reason: str) -> None:
        if self._degraded:
            return
        self._degraded = True
        self.metrics.counter("degradation.entered")
        logger.warning("degradation.entered", reason=reason)
        self.emitter.emit("degraded:change", True)
        self.emitter.emit("error", DegradedModeError(reason))

    def exit_degraded_mode(self) -> None:
        if not self._degraded:
            return
        self._degraded = False
        self.metrics.counter("degradation.recovered")
        logger.info("degradation.recovered")
        self.emitter.emit("degraded:change", False)

    def handle_error(self, error: Exception, operation: str) -> None:
        """Report a failed remote operation; degrade only on unavailability."""
        if isinstance(error, HindsightError) and error.is_unavailable:
            self.enter_degraded_mode(f"{operation}: {error.message}")
        self.emitter.emit("error", error)

    async def _probe(self, client: RemoteClient) -> bool:
        try:
            status = await asyncio.wait_for(client.health(), timeout=self.probe_timeout)
        except asyncio.TimeoutError:
            logger.info("degradation.probe_timeout", timeout=self.probe_timeout)
            return False
        except Exception as e:
            logger.info("degradation.probe_failed", error=str(e))
            return False
        return bool(status.healthy)

    async def attempt_recovery(
        self,
        client: Optional[RemoteClient],
        ensure_bank: Callable[[], Awaitable[None]],
        queue: Optional[OfflineSignalQueue],
        bank_id: str,
        offline_store: Optional[OfflineMemoryStore] = None,
    ) -> bool:
        """Probe the service and, if healthy, leave degraded mode and drain local stores.

        Returns True when the controller ends up nominal.
        """
        if not self._degraded or client is None:
            return not self._degraded

        if not await self._probe(client):
            return False

        self.exit_degraded_mode()
        try:
            await ensure_bank()
        except HindsightError as e:
            self.handle_error(e, "ensure_bank")
            if e.is_unavailable:
                return False
            raise
        if queue is not None:
            await self.sync_offline_signals(client, queue, bank_id)
        if offline_store is not None:
            await self.sync_offline_memories(client, offline_store, bank_id)
        return True

    async def sync_offline_signals(
        self, client: Optional[RemoteClient], queue: OfflineSignalQueue, bank_id: str
    ) -> int:
        """Deliver queued signals one at a time, stopping at the first failure.

        Delivered signals are marked synced even when a later one fails, so
        they are not sent again. Returns the number delivered.
        """
        if client is None or self._degraded:
            return 0

        pending = await queue.get_unsynced()
        if not pending:
            return 0
        await queue.record_sync_attempt()

        delivered: list[str] = []
        failure: Optional[Exception] = None
        for item in pending:
            try:
                await asyncio.wait_for(
                    client.signal(bank_id, [queue.to_signal_item(item)]),
                    timeout=self.delivery_timeout,
                )
            except asyncio.TimeoutError:
                failure = HindsightError(
                    f"Signal delivery timed out after {self.delivery_timeout}s",
                    code=HindsightErrorCode.CONNECTION_TIMEOUT,
                    is_retryable=True,
                )
                break
            except Exception as e:
                failure = e
                break
            delivered.append(item.id)

        if delivered:
            await queue.mark_synced(delivered)
            self.metrics.counter("offline.signals_synced", len(delivered))

        if failure is not None:
            logger.warning(
                "degradation.signal_sync_stopped",
                delivered=len(delivered),
                remaining=len(pending) - len(delivered),
                error=str(failure),
            )
            self.emitter.emit("error", failure)
            return len(delivered)

        self.emitter.emit("offline:synced", {"count": len(delivered)})
        await queue.clear_synced()
        logger.info("degradation.signals_synced", count=len(delivered))
        return len(delivered)

    async def sync_offline_memories(
        self, client: Optional[RemoteClient], store: OfflineMemoryStore, bank_id: str
    ) -> int:
        """Retain offline memories one at a time with the same stop-at-first-failure rule."""
        if client is None or self._degraded:
            return 0

        pending = await store.get_unsynced()
        if not pending:
            return 0
        await store.record_sync_attempt()

        delivered: list[str] = []
        for memory in pending:
            try:
                await asyncio.wait_for(
                    client.retain(bank_id, memory.text, memory.context),
                    timeout=self.delivery_timeout,
                )
            except Exception as e:
                self.emitter.emit("error", e)
                break
            delivered.append(memory.id)

        if delivered:
            await store.mark_synced(delivered)
            self.metrics.counter("offline.memories_synced", len(delivered))
        if len(delivered) == len(pending):
            self.emitter.emit("offline:synced", {"count": len(delivered)})
            await store.clear_synced()
        return len(delivered)

    def reset(self) -> None:
        self._degraded = False
