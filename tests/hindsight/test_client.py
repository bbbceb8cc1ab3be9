"""Tests for the memory service HTTP client, against httpx.MockTransport."""

import json

import httpx
import pytest

from cli.config_models import HindsightConfig, RetryConfig
from feedback.models import SignalItem
from hindsight.client import HindsightClient
from hindsight.errors import HindsightError, HindsightErrorCode
from shared_types import SignalType

NO_WAIT = RetryConfig(max_attempts=3, min_wait=0, max_wait=0)


def _client(handler, **kwargs):
    return HindsightClient(
        base_url="http://hindsight.test/api/v1",
        retry_config=NO_WAIT,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestHealth:
    @pytest.mark.asyncio
    async def test_healthy(self):
        def handler(request):
            assert request.url.path == "/api/v1/health"
            return httpx.Response(200, json={"healthy": True, "version": "0.3.1", "bank_count": 4})

        async with _client(handler) as client:
            status = await client.health()

        assert status.healthy is True
        assert status.version == "0.3.1"
        assert status.banks == 4

    @pytest.mark.asyncio
    async def test_connection_refused_never_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            status = await client.health()

        assert status.healthy is False
        assert "refused" in status.error

    @pytest.mark.asyncio
    async def test_server_error_never_raises(self):
        async with _client(lambda r: httpx.Response(503)) as client:
            status = await client.health()
        assert status.healthy is False


class TestSignal:
    @pytest.mark.asyncio
    async def test_wire_format(self):
        captured = {}

        def handler(request):
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            captured["auth"] = request.headers.get("authorization")
            return httpx.Response(
                200, json={"success": True, "signals_processed": 1, "updated_facts": ["f-1"]}
            )

        signal = SignalItem(
            fact_id="f-1",
            signal_type=SignalType.IGNORED,
            confidence=0.6,
            query="auth",
            session_id="s1",
        )
        async with _client(handler, api_key="hs-test-key") as client:
            result = await client.signal("proj", [signal])

        assert captured["path"] == "/api/v1/banks/proj/signal"
        assert captured["body"] == {
            "signals": [
                {
                    "fact_id": "f-1",
                    "signal_type": "ignored",
                    "confidence": 0.6,
                    "query": "auth",
                    "session_id": "s1",
                }
            ]
        }
        assert captured["auth"] == "Bearer hs-test-key"
        assert result.success is True
        assert result.updated_facts == ["f-1"]

    @pytest.mark.asyncio
    async def test_validation_error_raised(self):
        def handler(request):
            return httpx.Response(422, json={"detail": "unknown disposition value"})

        async with _client(handler) as client:
            with pytest.raises(HindsightError) as exc_info:
                await client.signal("b", [])

        assert exc_info.value.code == HindsightErrorCode.INVALID_DISPOSITION


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503, json={"detail": "warming up"})
            return httpx.Response(200, json={"memories": []})

        async with _client(handler) as client:
            assert await client.recall("b", "q") == []

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        async with _client(handler) as client:
            with pytest.raises(HindsightError) as exc_info:
                await client.recall("b", "q")

        assert exc_info.value.code == HindsightErrorCode.SERVER_ERROR
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_unavailable_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(HindsightError) as exc_info:
                await client.recall("b", "q")

        assert exc_info.value.is_unavailable
        assert len(calls) == 1


class TestBanksAndMemories:
    @pytest.mark.asyncio
    async def test_ensure_bank_creates_missing(self):
        requests = []

        def handler(request):
            requests.append((request.method, request.url.path))
            if request.method == "GET":
                return httpx.Response(404, json={"detail": "not found"})
            return httpx.Response(201, json={"bank_id": "proj"})

        async with _client(handler) as client:
            await client.ensure_bank("proj")

        assert requests == [("GET", "/api/v1/banks/proj"), ("POST", "/api/v1/banks")]

    @pytest.mark.asyncio
    async def test_ensure_bank_existing(self):
        requests = []

        def handler(request):
            requests.append(request.method)
            return httpx.Response(200, json={"bank_id": "proj"})

        async with _client(handler) as client:
            await client.ensure_bank("proj")

        assert requests == ["GET"]

    @pytest.mark.asyncio
    async def test_recall_parses_memories(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["query"] == "auth"
            assert body["max_tokens"] == 500
            return httpx.Response(
                200,
                json={
                    "memories": [
                        {"id": "m-1", "text": "Uses JWT", "fact_type": "world"},
                        {"id": "m-2", "text": "Prefers hooks"},
                    ]
                },
            )

        async with _client(handler) as client:
            memories = await client.recall("b", "auth", max_tokens=500)

        assert [m.id for m in memories] == ["m-1", "m-2"]
        assert memories[1].fact_type == "unknown"

    @pytest.mark.asyncio
    async def test_retain_returns_ids(self):
        def handler(request):
            assert json.loads(request.content) == {"content": "note", "context": None}
            return httpx.Response(200, json={"memory_ids": ["m-9"]})

        async with _client(handler) as client:
            assert await client.retain("b", "note") == ["m-9"]


def test_from_config():
    config = HindsightConfig(host="memory.local", port=9000, api_key="k" * 12)
    client = HindsightClient.from_config(config)
    assert client.base_url == "http://memory.local:9000/api/v1"
    assert client.client.headers["authorization"] == "Bearer " + "k" * 12
