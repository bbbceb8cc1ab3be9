"""Data models for the recall feedback loop.

Records convert to and from the camelCase JSON shape used on disk and on the
wire via ``to_dict()`` / ``from_dict()``.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Union

from shared_types import DetectionType, NegativeSignalType, QueryType, SignalType, Verdict


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_timestamp(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


# --- Recalled facts ---


@dataclass(frozen=True)
class RecalledFact:
    """Snapshot of one fact returned by a recall, ordered by retrieval rank."""

    fact_id: str
    text: str
    fact_type: str = "unknown"
    score: float = 0.0
    position: int = 0  # 1-based rank

    def to_dict(self) -> dict:
        return {
            "factId": self.fact_id,
            "text": self.text,
            "factType": self.fact_type,
            "score": self.score,
            "position": self.position,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecalledFact":
        if not isinstance(data.get("factId"), str):
            raise ValueError("factId must be a string")
        return cls(
            fact_id=data["factId"],
            text=data.get("text") or "",
            fact_type=data.get("factType") or "unknown",
            score=float(data.get("score") or 0.0),
            position=int(data.get("position") or 0),
        )


# --- Detection evidence (tagged by Detection.detection_type) ---


@dataclass(frozen=True)
class ExplicitEvidence:
    trigger: str
    match: str
    context: str

    def to_dict(self) -> dict:
        return {"trigger": self.trigger, "match": self.match, "context": self.context}


@dataclass(frozen=True)
class SemanticEvidence:
    chunk: str
    fact_text: str
    similarity: float

    def to_dict(self) -> dict:
        return {"chunk": self.chunk, "factText": self.fact_text, "similarity": self.similarity}


@dataclass(frozen=True)
class FileAccessEvidence:
    files_in_fact: tuple[str, ...]
    files_accessed: tuple[str, ...]

    def to_dict(self) -> dict:
        return {
            "filesInFact": list(self.files_in_fact),
            "filesAccessed": list(self.files_accessed),
        }


@dataclass(frozen=True)
class TaskTopicEvidence:
    task: str
    fact_topics: tuple[str, ...]
    task_topics: tuple[str, ...]
    overlap: float

    def to_dict(self) -> dict:
        return {
            "task": self.task,
            "factTopics": list(self.fact_topics),
            "taskTopics": list(self.task_topics),
            "overlap": self.overlap,
        }


@dataclass(frozen=True)
class NegativeSignalDetail:
    type: NegativeSignalType
    weight: float
    detail: str

    def to_dict(self) -> dict:
        return {"type": self.type.value, "weight": self.weight, "detail": self.detail}


@dataclass(frozen=True)
class NegativeEvidence:
    signals: tuple[NegativeSignalDetail, ...]

    def to_dict(self) -> dict:
        return {"signals": [s.to_dict() for s in self.signals]}


Evidence = Union[
    ExplicitEvidence,
    SemanticEvidence,
    FileAccessEvidence,
    TaskTopicEvidence,
    NegativeEvidence,
]


@dataclass(frozen=True)
class Detection:
    fact_id: str
    detection_type: DetectionType
    confidence: float
    evidence: Evidence

    def to_dict(self) -> dict:
        return {
            "factId": self.fact_id,
            "detectionType": self.detection_type.value,
            "confidence": self.confidence,
            "evidence": self.evidence.to_dict(),
        }


@dataclass(frozen=True)
class NegativeSignal:
    fact_id: str
    signals: tuple[NegativeSignalDetail, ...]
    ignore_confidence: float

    def to_dict(self) -> dict:
        return {
            "factId": self.fact_id,
            "signals": [s.to_dict() for s in self.signals],
            "ignoreConfidence": self.ignore_confidence,
        }


@dataclass
class DetectionResults:
    explicit: list[Detection] = field(default_factory=list)
    semantic: list[Detection] = field(default_factory=list)
    behavioral: list[Detection] = field(default_factory=list)
    negative: list[NegativeSignal] = field(default_factory=list)

    def positive(self) -> list[Detection]:
        """All positive detections, explicit first."""
        return [*self.explicit, *self.semantic, *self.behavioral]

    def used_fact_ids(self) -> set[str]:
        return {d.fact_id for d in self.positive()}


# --- Session activity (host supplied) ---


@dataclass(frozen=True)
class TaskRecord:
    description: str | None = None
    title: str | None = None

    @property
    def text(self) -> str:
        return self.description or self.title or ""

    @classmethod
    def from_value(cls, value) -> "TaskRecord":
        if isinstance(value, TaskRecord):
            return value
        if isinstance(value, dict):
            return cls(description=value.get("description"), title=value.get("title"))
        return cls(description=str(value))


@dataclass
class SessionActivity:
    files_accessed: list[str] = field(default_factory=list)
    tasks_completed: list[TaskRecord] = field(default_factory=list)
    summary: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "SessionActivity":
        return cls(
            files_accessed=[str(f) for f in data.get("filesAccessed") or []],
            tasks_completed=[TaskRecord.from_value(t) for t in data.get("tasksCompleted") or []],
            summary=data.get("summary"),
        )


# --- Scoring ---


@dataclass
class FactScore:
    fact_id: str
    verdict: Verdict
    confidence: float
    used_score: float
    ignored_score: float
    detections: list[Detection] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "factId": self.fact_id,
            "verdict": self.verdict.value,
            "confidence": self.confidence,
            "scores": {"used": self.used_score, "ignored": self.ignored_score},
            "detections": [d.to_dict() for d in self.detections],
        }


@dataclass
class FactSummaryEntry:
    fact_id: str
    confidence: float
    detection_types: list[str] | None = None

    def to_dict(self) -> dict:
        d = {"factId": self.fact_id, "confidence": self.confidence}
        if self.detection_types is not None:
            d["detectionTypes"] = list(self.detection_types)
        return d


@dataclass
class FeedbackSummary:
    total: int = 0
    used: int = 0
    ignored: int = 0
    uncertain: int = 0
    usage_rate: float = 0.0
    avg_used_confidence: float = 0.0
    avg_ignored_confidence: float = 0.0
    top_used: list[FactSummaryEntry] = field(default_factory=list)
    top_ignored: list[FactSummaryEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "used": self.used,
            "ignored": self.ignored,
            "uncertain": self.uncertain,
            "usageRate": self.usage_rate,
            "avgUsedConfidence": self.avg_used_confidence,
            "avgIgnoredConfidence": self.avg_ignored_confidence,
            "topUsed": [e.to_dict() for e in self.top_used],
            "topIgnored": [e.to_dict() for e in self.top_ignored],
        }


# --- Signals ---


@dataclass
class SignalItem:
    """Wire shape sent to, or queued for, the remote memory store."""

    fact_id: str
    signal_type: SignalType
    confidence: float
    query: str
    context: str | None = None
    session_id: str | None = None

    def to_dict(self) -> dict:
        d = {
            "factId": self.fact_id,
            "signalType": self.signal_type.value,
            "confidence": self.confidence,
            "query": self.query,
        }
        if self.context is not None:
            d["context"] = self.context
        if self.session_id is not None:
            d["sessionId"] = self.session_id
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "SignalItem":
        return cls(
            fact_id=data["factId"],
            signal_type=SignalType(data["signalType"]),
            confidence=float(data["confidence"]),
            query=data.get("query", ""),
            context=data.get("context"),
            session_id=data.get("sessionId"),
        )


@dataclass
class OfflineSignal(SignalItem):
    """A signal held in the offline queue, with queue metadata."""

    id: str = ""
    queued_at: str = ""
    synced: bool = False

    def to_dict(self) -> dict:
        d = super().to_dict()
        d.update({"id": self.id, "queuedAt": self.queued_at, "synced": self.synced})
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "OfflineSignal":
        return cls(
            fact_id=data["factId"],
            signal_type=SignalType(data["signalType"]),
            confidence=float(data["confidence"]),
            query=data.get("query", ""),
            context=data.get("context"),
            session_id=data.get("sessionId"),
            id=data["id"],
            queued_at=data.get("queuedAt", ""),
            synced=bool(data.get("synced", False)),
        )

    def to_signal_item(self) -> SignalItem:
        return SignalItem(
            fact_id=self.fact_id,
            signal_type=self.signal_type,
            confidence=self.confidence,
            query=self.query,
            context=self.context,
            session_id=self.session_id,
        )


@dataclass
class QueueStats:
    total: int
    pending: int
    synced: int
    last_sync_attempt: str | None = None
    last_sync_success: str | None = None

    def to_dict(self) -> dict:
        d = {"total": self.total, "pending": self.pending, "synced": self.synced}
        # Timestamps are omitted, not null, when never recorded
        if self.last_sync_attempt is not None:
            d["lastSyncAttempt"] = self.last_sync_attempt
        if self.last_sync_success is not None:
            d["lastSyncSuccess"] = self.last_sync_success
        return d


# --- Recall sessions ---


@dataclass
class SessionContext:
    branch: str | None = None
    recent_files: list[str] = field(default_factory=list)
    project_type: str | None = None

    def to_dict(self) -> dict:
        return {
            "branch": self.branch,
            "recentFiles": list(self.recent_files),
            "projectType": self.project_type,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "SessionContext":
        data = data or {}
        return cls(
            branch=data.get("branch"),
            recent_files=list(data.get("recentFiles") or []),
            project_type=data.get("projectType"),
        )


@dataclass
class RecallParameters:
    limit: int = 20
    budget: str = "high"
    fact_types: list[str] = field(default_factory=lambda: ["world", "experience"])
    time_window: str | None = None

    def to_dict(self) -> dict:
        return {
            "limit": self.limit,
            "budget": self.budget,
            "factTypes": list(self.fact_types),
            "timeWindow": self.time_window,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "RecallParameters":
        data = data or {}
        return cls(
            limit=int(data.get("limit") or 20),
            budget=data.get("budget") or "high",
            fact_types=list(data.get("factTypes") or ["world", "experience"]),
            time_window=data.get("timeWindow"),
        )


@dataclass
class RecallParams:
    query: str = ""
    query_type: QueryType = QueryType.FIXED
    parameters: RecallParameters = field(default_factory=RecallParameters)
    context: SessionContext = field(default_factory=SessionContext)

    def to_dict(self) -> dict:
        return {
            "query": self.query,
            "queryType": self.query_type.value,
            "parameters": self.parameters.to_dict(),
            "context": self.context.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "RecallParams":
        data = data or {}
        return cls(
            query=data.get("query") or "",
            query_type=QueryType(data.get("queryType") or QueryType.FIXED),
            parameters=RecallParameters.from_dict(data.get("parameters")),
            context=SessionContext.from_dict(data.get("context")),
        )


@dataclass
class RecallSession:
    session_id: str
    started_at: datetime
    project: str
    recall: RecallParams = field(default_factory=RecallParams)
    facts_recalled: list[RecalledFact] = field(default_factory=list)
    total_facts: int = 0
    total_tokens: int = 0

    def to_dict(self) -> dict:
        return {
            "sessionId": self.session_id,
            "startedAt": _format_timestamp(self.started_at),
            "project": self.project,
            "recall": self.recall.to_dict(),
            "factsRecalled": [f.to_dict() for f in self.facts_recalled],
            "totalFacts": self.total_facts,
            "totalTokens": self.total_tokens,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RecallSession":
        """Build a session from its persisted form.

        Raises:
            ValueError: if required fields are missing or malformed.
        """
        if not isinstance(data, dict):
            raise ValueError("session document must be an object")
        if not isinstance(data.get("sessionId"), str) or not data["sessionId"]:
            raise ValueError("sessionId must be a non-empty string")
        if not isinstance(data.get("startedAt"), str):
            raise ValueError("startedAt must be a string")
        if not isinstance(data.get("project"), str):
            raise ValueError("project must be a string")
        facts = data.get("factsRecalled")
        if not isinstance(facts, list):
            raise ValueError("factsRecalled must be a list")
        for fact in facts:
            if not isinstance(fact, dict):
                raise ValueError("factsRecalled entries must be objects")

        recalled = [RecalledFact.from_dict(f) for f in facts]
        return cls(
            session_id=data["sessionId"],
            started_at=_parse_timestamp(data["startedAt"]),
            project=data["project"],
            recall=RecallParams.from_dict(data.get("recall")),
            facts_recalled=recalled,
            total_facts=int(data.get("totalFacts") or len(recalled)),
            total_tokens=int(data.get("totalTokens") or 0),
        )


@dataclass
class SessionStats:
    current_session: RecallSession | None = None
    archived_sessions: int = 0
    total_facts_tracked: int = 0
    oldest_session: datetime | None = None
    newest_session: datetime | None = None


# --- Service results ---


@dataclass
class FeedbackResult:
    success: bool
    session_id: str
    summary: FeedbackSummary = field(default_factory=FeedbackSummary)
    fact_scores: list[FactScore] = field(default_factory=list)
    prepared_signals: list[SignalItem] = field(default_factory=list)
    reason: str | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        d = {
            "success": self.success,
            "sessionId": self.session_id,
            "summary": self.summary.to_dict(),
            "factScores": [s.to_dict() for s in self.fact_scores],
            "preparedSignals": [s.to_dict() for s in self.prepared_signals],
        }
        if self.reason is not None:
            d["reason"] = self.reason
        if self.error is not None:
            d["error"] = self.error
        return d


@dataclass
class SyncResult:
    signals_synced: int = 0
    signals_cleared: int = 0
    memories_synced: int = 0
    degraded: bool = False
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and not self.degraded
