"""Usage detection - infer which recalled facts the assistant actually used.

Four strategies, from strongest to weakest evidence:

1. Explicit reference: the response cites its context ("I recall that ...").
2. Semantic match: a chunk of the response overlaps heavily with a fact.
3. Behavioral: files named in a fact were accessed, or a completed task
   shares its topic.
4. Negative: facts with no positive evidence that also look irrelevant.

Every function here is pure: inputs are never mutated and the same inputs
always produce the same output.
"""

import re

from cli.config_models import DetectionConfig
from shared_types import DetectionType, NegativeSignalType

from .constants import CHUNK_MAX_WORDS, CHUNK_OVERLAP_WORDS, DEFAULT_TABLES, SEMANTIC_THRESHOLD, DetectionTables
from .models import (
    Detection,
    DetectionResults,
    ExplicitEvidence,
    FileAccessEvidence,
    NegativeSignal,
    NegativeSignalDetail,
    RecalledFact,
    SemanticEvidence,
    SessionActivity,
    TaskTopicEvidence,
)
from .similarity import calculate_similarity, jaccard_similarity

_SENTENCE_BREAKS = {".", "\n"}
_NON_WORD_RE = re.compile(r"[^\w\s]")


# --- Text helpers ---


def extract_file_references(text: str, tables: DetectionTables = DEFAULT_TABLES) -> list[str]:
    """Return normalized file names (last path segment, lowercase) mentioned in text."""
    if not text:
        return []

    files: dict[str, None] = {}
    for pattern in tables.file_reference_patterns:
        for match in pattern.finditer(text):
            raw = match.group(1) if match.lastindex else match.group(0)
            if raw and len(raw) > 2:
                normalized = _normalize_file_name(raw)
                if normalized:
                    files[normalized] = None
    return list(files)


def _normalize_file_name(name: str) -> str:
    normalized = name.lower().strip().strip("'\"").strip()
    parts = [p for p in normalized.split("/") if p]
    return parts[-1] if parts else ""


def extract_topics(text: str, tables: DetectionTables = DEFAULT_TABLES) -> set[str]:
    """Lowercase keyword set: punctuation dropped, stop words and short words removed."""
    if not text:
        return set()
    words = _NON_WORD_RE.sub(" ", text.lower()).split()
    return {w for w in words if len(w) > 2 and w not in tables.stop_words}


def split_into_chunks(
    text: str,
    max_words: int = CHUNK_MAX_WORDS,
    overlap: int = CHUNK_OVERLAP_WORDS,
) -> list[str]:
    """Split text into overlapping word windows.

    Text no longer than ``max_words`` is returned as a single chunk. Trailing
    windows shorter than ``overlap`` words are dropped since the previous
    window already covers them.
    """
    words = text.split()
    if len(words) <= max_words:
        return [text]

    step = max(max_words - overlap, 1)
    chunks = []
    for start in range(0, len(words), step):
        window = words[start : start + max_words]
        if len(window) >= overlap:
            chunks.append(" ".join(window))
    return chunks


def _intersection(accessed: list[str], mentioned: list[str]) -> list[str]:
    """Accessed paths whose file name appears in ``mentioned``."""
    mentioned_lower = {m.lower() for m in mentioned}
    return [f for f in accessed if _normalize_file_name(f) in mentioned_lower]


# --- Strategy 1: explicit references ---


def _context_window(response: str, start: int, end: int, tables: DetectionTables) -> str:
    context_start = start
    for i in range(start - 1, max(0, start - tables.context_lookbehind) - 1, -1):
        if response[i] in _SENTENCE_BREAKS:
            context_start = i + 1
            break
        context_start = i

    context_end = end
    for i in range(end, min(len(response), end + tables.context_lookahead)):
        context_end = i + 1
        if response[i] in _SENTENCE_BREAKS:
            break

    return response[context_start:context_end].strip()


def _best_matching_fact(
    context: str, facts: list[RecalledFact], min_similarity: float
) -> RecalledFact | None:
    best = None
    best_score = 0.0
    for fact in facts:
        similarity = calculate_similarity(context, fact.text)
        if similarity > best_score and similarity > min_similarity:
            best_score = similarity
            best = fact
    return best


def detect_explicit_references(
    response: str,
    facts: list[RecalledFact],
    tables: DetectionTables = DEFAULT_TABLES,
) -> list[Detection]:
    """Find trigger phrases and attribute each to the fact closest to its sentence."""
    if not response or not facts:
        return []

    detections: list[Detection] = []
    seen: set[str] = set()

    for pattern in tables.explicit_triggers:
        match = pattern.search(response)
        if not match:
            continue

        context = _context_window(response, match.start(), match.end(), tables)
        fact = _best_matching_fact(context, facts, tables.explicit_min_similarity)
        if fact is None or fact.fact_id in seen:
            continue

        seen.add(fact.fact_id)
        detections.append(
            Detection(
                fact_id=fact.fact_id,
                detection_type=DetectionType.EXPLICIT_REFERENCE,
                confidence=tables.explicit_confidence,
                evidence=ExplicitEvidence(
                    trigger=pattern.pattern,
                    match=match.group(0),
                    context=context[:200],
                ),
            )
        )

    return detections


# --- Strategy 2: semantic similarity ---


def detect_semantic_matches(
    response: str,
    facts: list[RecalledFact],
    threshold: float = SEMANTIC_THRESHOLD,
    tables: DetectionTables = DEFAULT_TABLES,
    max_words: int = CHUNK_MAX_WORDS,
    overlap: int = CHUNK_OVERLAP_WORDS,
) -> list[Detection]:
    """Best-scoring response chunk per fact, when its word overlap clears ``threshold``."""
    if not response or not facts:
        return []

    best: dict[str, Detection] = {}
    for chunk in split_into_chunks(response, max_words, overlap):
        for fact in facts:
            similarity = calculate_similarity(chunk, fact.text)
            if similarity < threshold:
                continue

            # Always below explicit-reference confidence
            confidence = min(
                similarity * tables.semantic_max_confidence, tables.semantic_max_confidence
            )
            existing = best.get(fact.fact_id)
            if existing is None or confidence > existing.confidence:
                best[fact.fact_id] = Detection(
                    fact_id=fact.fact_id,
                    detection_type=DetectionType.SEMANTIC_MATCH,
                    confidence=confidence,
                    evidence=SemanticEvidence(
                        chunk=chunk[:200],
                        fact_text=fact.text[:200],
                        similarity=similarity,
                    ),
                )

    return list(best.values())


# --- Strategy 3: behavioral signals ---


def detect_behavioral_signals(
    activity: SessionActivity | None,
    facts: list[RecalledFact],
    tables: DetectionTables = DEFAULT_TABLES,
) -> list[Detection]:
    """Correlate facts with files accessed and tasks completed during the session."""
    if activity is None or not facts:
        return []

    detections: list[Detection] = []
    detected: set[str] = set()

    if activity.files_accessed:
        for fact in facts:
            mentioned = extract_file_references(fact.text, tables)
            if not mentioned:
                continue
            overlap = _intersection(activity.files_accessed, mentioned)
            if overlap and fact.fact_id not in detected:
                detected.add(fact.fact_id)
                detections.append(
                    Detection(
                        fact_id=fact.fact_id,
                        detection_type=DetectionType.FILE_ACCESS_CORRELATION,
                        confidence=tables.file_access_confidence,
                        evidence=FileAccessEvidence(
                            files_in_fact=tuple(mentioned),
                            files_accessed=tuple(overlap),
                        ),
                    )
                )

    if activity.tasks_completed:
        for fact in facts:
            if fact.fact_id in detected:
                continue
            fact_topics = extract_topics(fact.text, tables)

            for task in activity.tasks_completed:
                task_text = task.text
                task_topics = extract_topics(task_text, tables)
                ratio = jaccard_similarity(fact_topics, task_topics)
                if ratio <= tables.task_topic_min_overlap:
                    continue

                detected.add(fact.fact_id)
                detections.append(
                    Detection(
                        fact_id=fact.fact_id,
                        detection_type=DetectionType.TASK_TOPIC_CORRELATION,
                        confidence=tables.task_topic_confidence * ratio,
                        evidence=TaskTopicEvidence(
                            task=task_text[:100],
                            fact_topics=tuple(sorted(fact_topics))[:5],
                            task_topics=tuple(sorted(task_topics))[:5],
                            overlap=ratio,
                        ),
                    )
                )
                break

    return detections


# --- Strategy 4: negative signals ---


def detect_negative_signals(
    activity: SessionActivity | None,
    facts: list[RecalledFact],
    used_fact_ids: set[str],
    tables: DetectionTables = DEFAULT_TABLES,
) -> list[NegativeSignal]:
    """Flag facts with no positive evidence that also look irrelevant to the session."""
    if not facts:
        return []

    summary = activity.summary if activity else None
    session_topics = extract_topics(summary, tables) if summary else set()
    accessed = {_normalize_file_name(f) for f in (activity.files_accessed if activity else [])}

    results: list[NegativeSignal] = []
    for fact in facts:
        if fact.fact_id in used_fact_ids:
            continue

        flags: list[NegativeSignalDetail] = []

        if fact.position > tables.low_position_threshold:
            flags.append(
                NegativeSignalDetail(
                    type=NegativeSignalType.LOW_POSITION,
                    weight=tables.low_position_weight,
                    detail=f"Position {fact.position} > {tables.low_position_threshold}",
                )
            )

        if session_topics:
            overlap = jaccard_similarity(session_topics, extract_topics(fact.text, tables))
            if overlap < tables.topic_mismatch_threshold:
                flags.append(
                    NegativeSignalDetail(
                        type=NegativeSignalType.TOPIC_MISMATCH,
                        weight=tables.topic_mismatch_weight,
                        detail=(
                            f"Topic overlap {overlap * 100:.1f}% < "
                            f"{tables.topic_mismatch_threshold * 100:g}%"
                        ),
                    )
                )

        fact_files = extract_file_references(fact.text, tables)
        if fact_files and not any(f in accessed for f in fact_files):
            flags.append(
                NegativeSignalDetail(
                    type=NegativeSignalType.FILES_NOT_ACCESSED,
                    weight=tables.files_not_accessed_weight,
                    detail=f"Fact mentions {len(fact_files)} files, none accessed",
                )
            )

        if flags:
            total = sum(f.weight for f in flags)
            results.append(
                NegativeSignal(
                    fact_id=fact.fact_id,
                    signals=tuple(flags),
                    ignore_confidence=min(total, tables.max_ignore_confidence),
                )
            )

    return results


# --- Pipeline ---


def run_detection_pipeline(
    conversation_text: str | None,
    activity: SessionActivity | None,
    facts: list[RecalledFact],
    config: DetectionConfig | None = None,
    tables: DetectionTables = DEFAULT_TABLES,
) -> DetectionResults:
    """Run every enabled strategy and return all four result lists."""
    config = config or DetectionConfig()
    results = DetectionResults()

    if conversation_text:
        if config.explicit:
            results.explicit = detect_explicit_references(conversation_text, facts, tables)
        if config.semantic:
            results.semantic = detect_semantic_matches(
                conversation_text,
                facts,
                threshold=config.semantic_threshold,
                tables=tables,
                max_words=config.chunk_max_words,
                overlap=config.chunk_overlap_words,
            )

    if activity is not None and config.behavioral:
        results.behavioral = detect_behavioral_signals(activity, facts, tables)

    results.negative = detect_negative_signals(
        activity, facts, results.used_fact_ids(), tables
    )
    return results
