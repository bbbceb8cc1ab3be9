"""Tests for verdict scoring and signal preparation."""

import pytest

from feedback.models import (
    Detection,
    DetectionResults,
    ExplicitEvidence,
    FileAccessEvidence,
    NegativeSignal,
    NegativeSignalDetail,
    SemanticEvidence,
)
from feedback.scorer import (
    aggregate_detections,
    calculate_verdict,
    filter_high_confidence,
    get_detection_breakdown,
    prepare_feedback,
    summarize_feedback,
)
from shared_types import DetectionType, NegativeSignalType, SignalType, Verdict


def _explicit(fact_id, confidence=0.95):
    return Detection(
        fact_id=fact_id,
        detection_type=DetectionType.EXPLICIT_REFERENCE,
        confidence=confidence,
        evidence=ExplicitEvidence(trigger="I recall that", match="I recall that", context="..."),
    )


def _semantic(fact_id, confidence):
    return Detection(
        fact_id=fact_id,
        detection_type=DetectionType.SEMANTIC_MATCH,
        confidence=confidence,
        evidence=SemanticEvidence(chunk="chunk", fact_text="fact", similarity=confidence / 0.85),
    )


def _negative(fact_id, confidence):
    return NegativeSignal(
        fact_id=fact_id,
        signals=(NegativeSignalDetail(NegativeSignalType.LOW_POSITION, confidence, "Position 20 > 15"),),
        ignore_confidence=confidence,
    )


class TestCalculateVerdict:
    @pytest.mark.parametrize(
        "used,ignored,expected",
        [
            (0.95, 0.0, Verdict.USED),
            (0.21, 0.0, Verdict.USED),
            (0.2, 0.0, Verdict.UNCERTAIN),
            (0.0, 0.8, Verdict.IGNORED),
            (0.0, 0.9, Verdict.IGNORED),
            (0.3, 0.2, Verdict.UNCERTAIN),  # net 0.2 is not above the threshold
            (0.0, 0.4, Verdict.UNCERTAIN),  # net -0.2 is not below the threshold
            (0.0, 0.0, Verdict.UNCERTAIN),
        ],
    )
    def test_thresholds(self, used, ignored, expected):
        verdict, _ = calculate_verdict(used, ignored)
        assert verdict == expected

    def test_confidence_is_stronger_score(self):
        assert calculate_verdict(0.3, 0.8)[1] == 0.8
        assert calculate_verdict(0.6, 0.1)[1] == 0.6

    def test_negative_evidence_counts_half(self):
        # net = 0.5 - 0.5 * 0.5 = 0.25
        verdict, confidence = calculate_verdict(0.5, 0.5)
        assert verdict == Verdict.USED
        assert confidence == 0.5


class TestAggregateDetections:
    def test_scores_sum_and_cap_at_one(self):
        results = DetectionResults(
            explicit=[_explicit("fact-1")],
            semantic=[_semantic("fact-1", 0.85)],
        )
        scores = aggregate_detections(results)
        assert len(scores) == 1
        assert scores[0].used_score == 1.0
        assert scores[0].verdict == Verdict.USED
        assert len(scores[0].detections) == 2

    def test_three_positives_cap_at_exactly_one(self):
        file_access = Detection(
            fact_id="fact-1",
            detection_type=DetectionType.FILE_ACCESS_CORRELATION,
            confidence=0.5,
            evidence=FileAccessEvidence(files_in_fact=("auth.ts",), files_accessed=("auth.ts",)),
        )
        results = DetectionResults(
            explicit=[_explicit("fact-1", 0.95)],
            semantic=[_semantic("fact-1", 0.7)],
            behavioral=[file_access],
        )
        [score] = aggregate_detections(results)
        assert score.used_score == 1.0
        assert score.confidence == 1.0

    def test_negative_only_fact_is_ignored(self):
        results = DetectionResults(negative=[_negative("fact-9", 0.5)])
        scores = aggregate_detections(results)

        assert scores[0].verdict == Verdict.IGNORED
        assert scores[0].confidence == 0.5
        assert scores[0].used_score == 0.0
        assert scores[0].detections[0].detection_type == DetectionType.NEGATIVE_SIGNALS

    def test_sorted_by_confidence_descending(self):
        results = DetectionResults(
            semantic=[_semantic("low", 0.55), _semantic("high", 0.8)],
            negative=[_negative("mid", 0.7)],
        )
        scores = aggregate_detections(results)
        assert [s.fact_id for s in scores] == ["high", "mid", "low"]

    def test_deterministic(self):
        results = DetectionResults(
            explicit=[_explicit("a")],
            semantic=[_semantic("b", 0.6)],
            negative=[_negative("c", 0.9)],
        )
        first = [s.to_dict() for s in aggregate_detections(results)]
        second = [s.to_dict() for s in aggregate_detections(results)]
        assert first == second

    def test_empty(self):
        assert aggregate_detections(DetectionResults()) == []


class TestPrepareFeedback:
    def test_uncertain_never_sent(self):
        results = DetectionResults(
            explicit=[_explicit("used")],
            semantic=[_semantic("maybe", 0.1)],
            negative=[_negative("ignored", 0.9)],
        )
        signals = prepare_feedback(aggregate_detections(results), query="auth flow", session_id="s1")

        by_fact = {s.fact_id: s for s in signals}
        assert set(by_fact) == {"used", "ignored"}
        assert by_fact["used"].signal_type == SignalType.USED
        assert by_fact["ignored"].signal_type == SignalType.IGNORED
        assert all(s.query == "auth flow" and s.session_id == "s1" for s in signals)

    def test_no_scores(self):
        assert prepare_feedback([], query="q") == []


class TestSummarize:
    def test_counts_and_rates(self):
        results = DetectionResults(
            explicit=[_explicit("a"), _explicit("b", 0.6)],
            semantic=[_semantic("c", 0.1)],
            negative=[_negative("d", 0.9)],
        )
        summary = summarize_feedback(aggregate_detections(results))

        assert summary.total == 4
        assert summary.used == 2
        assert summary.ignored == 1
        assert summary.uncertain == 1
        assert summary.usage_rate == pytest.approx(0.5)
        assert summary.avg_used_confidence == pytest.approx((0.95 + 0.6) / 2)
        assert summary.avg_ignored_confidence == pytest.approx(0.9)
        assert [e.fact_id for e in summary.top_used] == ["a", "b"]
        assert summary.top_used[0].detection_types == ["explicit_reference"]
        assert summary.top_ignored[0].fact_id == "d"
        assert summary.top_ignored[0].detection_types == ["negative_signals"]

    def test_empty_summary(self):
        summary = summarize_feedback([])
        assert summary.total == 0
        assert summary.usage_rate == 0.0
        assert summary.to_dict()["topUsed"] == []


class TestHelpers:
    def test_filter_high_confidence(self):
        results = DetectionResults(
            explicit=[_explicit("a")],
            semantic=[_semantic("b", 0.3), _semantic("c", 0.1)],
        )
        kept = filter_high_confidence(aggregate_detections(results), min_confidence=0.5)
        assert [s.fact_id for s in kept] == ["a"]

    def test_detection_breakdown(self):
        results = DetectionResults(
            explicit=[_explicit("a")],
            semantic=[_semantic("a", 0.6), _semantic("b", 0.6)],
            negative=[_negative("c", 0.5)],
        )
        breakdown = get_detection_breakdown(aggregate_detections(results))
        assert breakdown["explicit_reference"] == 1
        assert breakdown["semantic_match"] == 2
        assert breakdown["negative_signals"] == 1
        assert breakdown["file_access_correlation"] == 0
