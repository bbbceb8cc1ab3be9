"""Feedback scorer - turn raw detections into per-fact verdicts and signals."""

from shared_types import DetectionType, SignalType, Verdict

from .constants import IGNORED_THRESHOLD, NEGATIVE_SIGNAL_WEIGHT, USED_THRESHOLD
from .models import (
    Detection,
    DetectionResults,
    FactScore,
    FactSummaryEntry,
    FeedbackSummary,
    NegativeEvidence,
    SignalItem,
)

_VERDICT_SIGNALS = {
    Verdict.USED: SignalType.USED,
    Verdict.IGNORED: SignalType.IGNORED,
}


def calculate_verdict(used_score: float, ignored_score: float) -> tuple[Verdict, float]:
    """Classify a fact from its aggregated scores.

    Negative evidence is indirect, so it counts at half strength:
    ``net = used - ignored * 0.5``. Above +0.2 is used, below -0.2 is
    ignored, anything in between is uncertain.

    Returns:
        (verdict, confidence) where confidence is the stronger of the two scores.
    """
    net = used_score - ignored_score * NEGATIVE_SIGNAL_WEIGHT
    if net > USED_THRESHOLD:
        verdict = Verdict.USED
    elif net < IGNORED_THRESHOLD:
        verdict = Verdict.IGNORED
    else:
        verdict = Verdict.UNCERTAIN
    return verdict, max(used_score, ignored_score)


def aggregate_detections(results: DetectionResults) -> list[FactScore]:
    """Group detections by fact and compute a verdict for each.

    Output is sorted by confidence (highest first); ties keep the order in
    which facts first appeared in the detections.
    """
    used: dict[str, float] = {}
    ignored: dict[str, float] = {}
    evidence: dict[str, list[Detection]] = {}

    for detection in results.positive():
        fid = detection.fact_id
        used[fid] = min(used.get(fid, 0.0) + detection.confidence, 1.0)
        ignored.setdefault(fid, 0.0)
        evidence.setdefault(fid, []).append(detection)

    for signal in results.negative:
        fid = signal.fact_id
        ignored[fid] = min(ignored.get(fid, 0.0) + signal.ignore_confidence, 1.0)
        used.setdefault(fid, 0.0)
        evidence.setdefault(fid, []).append(
            Detection(
                fact_id=fid,
                detection_type=DetectionType.NEGATIVE_SIGNALS,
                confidence=signal.ignore_confidence,
                evidence=NegativeEvidence(signals=signal.signals),
            )
        )

    scores = []
    for fid, detections in evidence.items():
        verdict, confidence = calculate_verdict(used[fid], ignored[fid])
        scores.append(
            FactScore(
                fact_id=fid,
                verdict=verdict,
                confidence=confidence,
                used_score=used[fid],
                ignored_score=ignored[fid],
                detections=detections,
            )
        )

    return sorted(scores, key=lambda s: -s.confidence)


def prepare_feedback(
    scores: list[FactScore], query: str, session_id: str | None = None
) -> list[SignalItem]:
    """Build signals for the remote store. Uncertain verdicts are never sent."""
    return [
        SignalItem(
            fact_id=s.fact_id,
            signal_type=_VERDICT_SIGNALS[s.verdict],
            confidence=s.confidence,
            query=query,
            session_id=session_id,
        )
        for s in scores
        if s.verdict in _VERDICT_SIGNALS
    ]


def _top_entries(scores: list[FactScore], limit: int = 5) -> list[FactSummaryEntry]:
    return [
        FactSummaryEntry(
            fact_id=s.fact_id,
            confidence=s.confidence,
            detection_types=list(dict.fromkeys(d.detection_type.value for d in s.detections)),
        )
        for s in sorted(scores, key=lambda s: -s.confidence)[:limit]
    ]


def summarize_feedback(scores: list[FactScore]) -> FeedbackSummary:
    """Counts, usage rate, average confidences and the top used/ignored facts."""
    summary = FeedbackSummary(total=len(scores))
    used = [s for s in scores if s.verdict == Verdict.USED]
    ignored = [s for s in scores if s.verdict == Verdict.IGNORED]

    summary.used = len(used)
    summary.ignored = len(ignored)
    summary.uncertain = summary.total - summary.used - summary.ignored

    if summary.total:
        summary.usage_rate = summary.used / summary.total
    if used:
        summary.avg_used_confidence = sum(s.confidence for s in used) / len(used)
    if ignored:
        summary.avg_ignored_confidence = sum(s.confidence for s in ignored) / len(ignored)

    summary.top_used = _top_entries(used)
    summary.top_ignored = _top_entries(ignored)
    return summary


def filter_high_confidence(scores: list[FactScore], min_confidence: float = 0.5) -> list[FactScore]:
    """Keep decided verdicts at or above ``min_confidence``."""
    return [
        s for s in scores if s.verdict != Verdict.UNCERTAIN and s.confidence >= min_confidence
    ]


def get_detection_breakdown(scores: list[FactScore]) -> dict[str, int]:
    """Count contributing detections per detection type."""
    breakdown = {t.value: 0 for t in DetectionType}
    for score in scores:
        for detection in score.detections:
            breakdown[detection.detection_type.value] += 1
    return breakdown
