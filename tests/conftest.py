"""Shared test fixtures for recall-feedback."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cli.config_models import RecallFeedbackConfig  # noqa: E402
from feedback.models import RecalledFact, SignalItem  # noqa: E402
from hindsight.client import HealthStatus, SignalResult  # noqa: E402
from observability import Metrics  # noqa: E402
from shared_types import SignalType  # noqa: E402


@pytest.fixture
def project_dir(tmp_path):
    """Empty project directory."""
    project = tmp_path / "my-project"
    project.mkdir()
    return project


@pytest.fixture
def sample_facts():
    """Recalled facts in retrieval order."""
    texts = [
        "The authentication service uses JWT tokens stored in auth.ts",
        "Database migrations run with prisma migrate deploy",
        "The team prefers functional React components with hooks",
        "Deployment pipeline builds docker images on every merge to main",
    ]
    return [
        RecalledFact(fact_id=f"fact-{i}", text=text, fact_type="world", position=i)
        for i, text in enumerate(texts, start=1)
    ]


@pytest.fixture
def make_signal():
    """Factory for wire-shape signals."""

    def _make(fact_id="fact-1", signal_type=SignalType.USED, confidence=0.9, query="auth"):
        return SignalItem(
            fact_id=fact_id, signal_type=signal_type, confidence=confidence, query=query
        )

    return _make


@pytest.fixture
def fake_client():
    """Remote memory client double: healthy, accepts every signal."""
    client = MagicMock()
    client.health = AsyncMock(return_value=HealthStatus(healthy=True, version="1.0", banks=1))
    client.signal = AsyncMock(
        side_effect=lambda bank_id, signals: SignalResult(
            success=True, signals_processed=len(signals)
        )
    )
    client.retain = AsyncMock(return_value=["mem-1"])
    client.recall = AsyncMock(return_value=[])
    client.ensure_bank = AsyncMock(return_value=None)
    client.close = AsyncMock(return_value=None)
    return client


@pytest.fixture
def metrics():
    return Metrics()


@pytest.fixture
def enabled_config(project_dir):
    return RecallFeedbackConfig.from_dict(
        {"feedback": {"enabled": True}, "paths": {"project_dir": str(project_dir)}}
    )
