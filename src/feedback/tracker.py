"""Recall session tracking.

One current session document per project, under
``.claude/feedback-sessions/.recall-session.json``. Saving a session with a
different id archives the previous document alongside it as
``.recall-session-<id8>-<epoch_ms>.json``.
"""

import json
import math
import os
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

import structlog

from shared_types import QueryType

from .constants import SESSION_DATA_RETENTION_DAYS
from .models import (
    RecalledFact,
    RecallParameters,
    RecallParams,
    RecallSession,
    SessionContext,
    SessionStats,
)
from .persistence import now_ms, read_json, write_json_atomic

logger = structlog.get_logger()

CURRENT_SESSION_FILE = ".recall-session.json"
ARCHIVE_PREFIX = ".recall-session-"
_GIT_HEAD_RE = re.compile(r"ref: refs/heads/(.+)")

# Checked in order; first match wins
_JS_PROJECT_TYPES = (
    (("expo", "expo-cli"), "expo-mobile"),
    (("next",), "nextjs"),
    (("react",), "react"),
    (("express",), "express-api"),
    (("fastify",), "fastify-api"),
)


def detect_git_branch(project_dir: Path) -> Optional[str]:
    head = project_dir / ".git" / "HEAD"
    try:
        match = _GIT_HEAD_RE.search(head.read_text(encoding="utf-8").strip())
    except OSError:
        return None
    return match.group(1) if match else None


def detect_project_type(project_dir: Path) -> Optional[str]:
    project_type = None
    package_json = project_dir / "package.json"
    if package_json.exists():
        try:
            package = json.loads(package_json.read_text(encoding="utf-8"))
            deps = {**(package.get("dependencies") or {}), **(package.get("devDependencies") or {})}
        except (OSError, ValueError, AttributeError, TypeError):
            deps = {}
        project_type = "nodejs"
        for names, label in _JS_PROJECT_TYPES:
            if any(name in deps for name in names):
                project_type = label
                break

    if (project_dir / "requirements.txt").exists() or (project_dir / "pyproject.toml").exists():
        project_type = "python"
    return project_type


def gather_session_context(project_dir: Path) -> SessionContext:
    """Best-effort branch and project type; missing markers leave fields None."""
    return SessionContext(
        branch=detect_git_branch(project_dir),
        project_type=detect_project_type(project_dir),
    )


def _fact_field(fact: Any, *names: str) -> Any:
    for name in names:
        value = fact.get(name) if isinstance(fact, dict) else getattr(fact, name, None)
        if value:
            return value
    return None


class SessionStore:
    """File-backed store for recall sessions of one project."""

    def __init__(self, project_dir: str | Path, sessions_dir: str | Path | None = None):
        self.project_dir = Path(project_dir).expanduser()
        self.sessions_dir = (
            Path(sessions_dir).expanduser()
            if sessions_dir
            else self.project_dir / ".claude" / "feedback-sessions"
        )
        self.session_path = self.sessions_dir / CURRENT_SESSION_FILE

    def create_session(
        self,
        session_id: str,
        query: str = "",
        query_type: QueryType = QueryType.FIXED,
        parameters: Optional[RecallParameters] = None,
    ) -> RecallSession:
        return RecallSession(
            session_id=session_id,
            started_at=datetime.now(timezone.utc),
            project=self.project_dir.resolve().name,
            recall=RecallParams(
                query=query,
                query_type=query_type,
                parameters=parameters or RecallParameters(),
                context=gather_session_context(self.project_dir),
            ),
        )

    @staticmethod
    def add_recalled_facts(session: RecallSession, facts: Iterable[Any]) -> RecallSession:
        """Record facts in retrieval order.

        Accepts memory objects or dicts. Positions are 1-based; a fact with no
        id becomes ``unknown-<index>``. Tokens are estimated at 4 chars each.
        """
        recalled = []
        for index, fact in enumerate(facts or []):
            recalled.append(
                RecalledFact(
                    fact_id=_fact_field(fact, "id", "fact_id", "factId") or f"unknown-{index}",
                    text=_fact_field(fact, "text") or "",
                    fact_type=_fact_field(fact, "fact_type", "factType") or "unknown",
                    score=float(_fact_field(fact, "score") or 0.0),
                    position=index + 1,
                )
            )
        session.facts_recalled = recalled
        session.total_facts = len(recalled)
        session.total_tokens = math.ceil(sum(len(f.text) for f in recalled) / 4)
        return session

    async def save(self, session: RecallSession) -> None:
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self._archive_current(session.session_id)
        write_json_atomic(self.session_path, session.to_dict())
        logger.debug(
            "feedback.session_saved",
            session_id=session.session_id,
            facts=session.total_facts,
        )

    def _archive_current(self, incoming_id: str) -> None:
        try:
            existing = read_json(self.session_path)
        except ValueError:
            existing = None
            logger.warning("feedback.session_unreadable", path=str(self.session_path))
        if not isinstance(existing, dict):
            return
        existing_id = existing.get("sessionId")
        if existing_id and existing_id != incoming_id:
            stamp = now_ms()
            archive = self.sessions_dir / f"{ARCHIVE_PREFIX}{existing_id[:8]}-{stamp}.json"
            while archive.exists():
                stamp += 1
                archive = self.sessions_dir / f"{ARCHIVE_PREFIX}{existing_id[:8]}-{stamp}.json"
            os.replace(self.session_path, archive)
            logger.debug("feedback.session_archived", session_id=existing_id, path=archive.name)

    def _archived_files(self) -> list[Path]:
        if not self.sessions_dir.exists():
            return []
        return sorted(
            p
            for p in self.sessions_dir.iterdir()
            if p.name.startswith(ARCHIVE_PREFIX) and p.name.endswith(".json")
        )

    def _read_session(self, path: Path) -> Optional[RecallSession]:
        try:
            data = read_json(path)
            if data is None:
                return None
            return RecallSession.from_dict(data)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("feedback.session_invalid", path=path.name, error=str(e))
            return None

    async def load(self, session_id: Optional[str] = None) -> Optional[RecallSession]:
        """Current session, or the archived one matching ``session_id``."""
        current = self._read_session(self.session_path)
        if not session_id or (current and current.session_id == session_id):
            return current

        prefix = f"{ARCHIVE_PREFIX}{session_id[:8]}-"
        # Newest first; distinct ids can share the 8-character prefix
        for path in reversed(self._archived_files()):
            if not path.name.startswith(prefix):
                continue
            session = self._read_session(path)
            if session and session.session_id == session_id:
                return session
        return None

    async def track_recall(
        self,
        session_id: str,
        query: str,
        facts: Iterable[Any],
        query_type: QueryType = QueryType.FIXED,
        parameters: Optional[RecallParameters] = None,
    ) -> RecallSession:
        session = self.create_session(session_id, query, query_type, parameters)
        self.add_recalled_facts(session, facts)
        await self.save(session)
        return session

    async def cleanup_old_sessions(self, retention_days: int = SESSION_DATA_RETENTION_DAYS) -> int:
        """Delete archived sessions last modified before the retention cutoff."""
        cutoff = time.time() - retention_days * 86400
        removed = 0
        for path in self._archived_files():
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        if removed:
            logger.info("feedback.sessions_cleaned", removed=removed, retention_days=retention_days)
        return removed

    async def get_stats(self) -> SessionStats:
        stats = SessionStats()
        if not self.sessions_dir.exists():
            return stats

        started: list[datetime] = []
        stats.current_session = self._read_session(self.session_path)
        if stats.current_session:
            stats.total_facts_tracked += stats.current_session.total_facts
            started.append(stats.current_session.started_at)

        for path in self._archived_files():
            stats.archived_sessions += 1
            session = self._read_session(path)
            if session:
                stats.total_facts_tracked += session.total_facts
                started.append(session.started_at)

        if started:
            stats.oldest_session = min(started)
            stats.newest_session = max(started)
        return stats
