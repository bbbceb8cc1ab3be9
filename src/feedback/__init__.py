"""Recall feedback loop: detect which recalled facts were used and report it.

``FeedbackService`` lives in ``feedback.service``.
"""

from .detector import (
    detect_behavioral_signals,
    detect_explicit_references,
    detect_negative_signals,
    detect_semantic_matches,
    extract_file_references,
    extract_topics,
    run_detection_pipeline,
)
from .models import (
    Detection,
    DetectionResults,
    FactScore,
    FeedbackResult,
    FeedbackSummary,
    NegativeSignal,
    OfflineSignal,
    RecalledFact,
    RecallSession,
    SessionActivity,
    SignalItem,
    SyncResult,
)
from .offline_queue import OfflineSignalQueue
from .scorer import (
    aggregate_detections,
    calculate_verdict,
    filter_high_confidence,
    get_detection_breakdown,
    prepare_feedback,
    summarize_feedback,
)
from .similarity import calculate_similarity, jaccard_similarity
from .tracker import SessionStore

__all__ = [
    "Detection",
    "DetectionResults",
    "FactScore",
    "FeedbackResult",
    "FeedbackSummary",
    "NegativeSignal",
    "OfflineSignal",
    "OfflineSignalQueue",
    "RecalledFact",
    "RecallSession",
    "SessionActivity",
    "SessionStore",
    "SignalItem",
    "SyncResult",
    "aggregate_detections",
    "calculate_similarity",
    "calculate_verdict",
    "detect_behavioral_signals",
    "detect_explicit_references",
    "detect_negative_signals",
    "detect_semantic_matches",
    "extract_file_references",
    "extract_topics",
    "filter_high_confidence",
    "get_detection_breakdown",
    "jaccard_similarity",
    "prepare_feedback",
    "run_detection_pipeline",
    "summarize_feedback",
]
