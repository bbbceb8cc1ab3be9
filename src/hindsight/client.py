"""Async HTTP client for the Hindsight memory service."""

from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import quote

import httpx
import structlog

from cli.config_models import HindsightConfig, RetryConfig, TimeoutsConfig
from cli.retry import retry_from_config
from feedback.models import SignalItem

from .errors import HindsightError, error_from_network_failure, error_from_response

logger = structlog.get_logger()


@dataclass
class HealthStatus:
    healthy: bool
    version: Optional[str] = None
    banks: int = 0
    error: Optional[str] = None


@dataclass
class SignalResult:
    success: bool
    signals_processed: int = 0
    updated_facts: list[str] = field(default_factory=list)


@dataclass
class Memory:
    """A fact returned by recall."""

    id: str
    text: str
    fact_type: str = "unknown"
    created_at: Optional[str] = None
    context: Optional[str] = None
    confidence: Optional[float] = None

    @classmethod
    def from_api(cls, raw: dict) -> "Memory":
        return cls(
            id=raw.get("id", ""),
            text=raw.get("text", ""),
            fact_type=raw.get("fact_type") or "unknown",
            created_at=raw.get("created_at"),
            context=raw.get("context"),
            confidence=raw.get("confidence"),
        )


def _signal_payload(item: SignalItem) -> dict:
    payload = {
        "fact_id": item.fact_id,
        "signal_type": item.signal_type.value,
        "confidence": item.confidence,
        "query": item.query,
    }
    if item.context is not None:
        payload["context"] = item.context
    if item.session_id is not None:
        payload["session_id"] = item.session_id
    return payload


class HindsightClient:
    """Thin wrapper over the memory service REST API.

    Every failure surfaces as a ``HindsightError``; ``health()`` is the one
    call that reports failure in its return value instead.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8888/api/v1",
        api_key: Optional[str] = None,
        timeouts: Optional[TimeoutsConfig] = None,
        retry_config: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeouts = timeouts or TimeoutsConfig()
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeouts.default,
            transport=transport,
        )
        self._retry = retry_from_config(retry_config)

    @classmethod
    def from_config(
        cls,
        config: HindsightConfig,
        retry_config: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "HindsightClient":
        return cls(
            base_url=config.base_url,
            api_key=config.api_key,
            timeouts=config.timeouts,
            retry_config=retry_config,
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        try:
            response = await self.client.request(
                method,
                path,
                json=body,
                timeout=timeout or self.timeouts.default,
            )
        except httpx.HTTPError as e:
            raise error_from_network_failure(e) from e

        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            raise error_from_response(response.status_code, payload, path, response.reason_phrase)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def _call(self, method: str, path: str, body=None, timeout=None) -> Any:
        """Request with backoff on transient server errors."""
        return await self._retry(self._request)(method, path, body, timeout)

    # --- Banks ---

    async def create_bank(self, bank_id: str, background: Optional[str] = None) -> None:
        body: dict = {"bank_id": bank_id}
        if background:
            body["background"] = background
        await self._call("POST", "/banks", body)
        logger.info("hindsight.bank_created", bank_id=bank_id)

    async def get_bank(self, bank_id: str) -> dict:
        return await self._call("GET", f"/banks/{quote(bank_id, safe='')}")

    async def ensure_bank(self, bank_id: str) -> None:
        """Create the bank if it does not exist yet."""
        try:
            await self.get_bank(bank_id)
        except HindsightError as e:
            if not e.is_bank_not_found:
                raise
            await self.create_bank(bank_id)

    # --- Memory operations ---

    async def retain(self, bank_id: str, content: str, context: Optional[str] = None) -> list[str]:
        """Store content; returns the ids of the memories created."""
        data = await self._call(
            "POST",
            f"/banks/{quote(bank_id, safe='')}/retain",
            {"content": content, "context": context},
            timeout=self.timeouts.retain,
        )
        return list((data or {}).get("memory_ids", []))

    async def recall(
        self,
        bank_id: str,
        query: str,
        budget: str = "mid",
        fact_type: str = "all",
        max_tokens: Optional[int] = None,
    ) -> list[Memory]:
        """Search the bank; results are ranked best first."""
        body = {
            "query": query,
            "budget": budget,
            "fact_type": fact_type,
            "include_entities": False,
        }
        if max_tokens is not None:
            body["max_tokens"] = max_tokens
        data = await self._call(
            "POST",
            f"/banks/{quote(bank_id, safe='')}/recall",
            body,
            timeout=self.timeouts.recall,
        )
        return [Memory.from_api(m) for m in (data or {}).get("memories", [])]

    async def signal(self, bank_id: str, signals: list[SignalItem]) -> SignalResult:
        """Submit usefulness feedback for recalled facts."""
        data = await self._call(
            "POST",
            f"/banks/{quote(bank_id, safe='')}/signal",
            {"signals": [_signal_payload(s) for s in signals]},
            timeout=self.timeouts.signal,
        )
        data = data or {}
        return SignalResult(
            success=bool(data.get("success", True)),
            signals_processed=int(data.get("signals_processed", len(signals))),
            updated_facts=list(data.get("updated_facts", [])),
        )

    async def health(self) -> HealthStatus:
        """Probe the server. Never raises."""
        try:
            data = await self._request("GET", "/health", timeout=self.timeouts.health)
        except HindsightError as e:
            return HealthStatus(healthy=False, banks=0, error=e.message)
        data = data or {}
        return HealthStatus(
            healthy=bool(data.get("healthy", False)),
            version=data.get("version"),
            banks=int(data.get("bank_count", 0)),
        )

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
