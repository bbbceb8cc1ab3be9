"""Shared enums and types for recall-feedback."""

from enum import StrEnum


class DetectionType(StrEnum):
    EXPLICIT_REFERENCE = "explicit_reference"
    SEMANTIC_MATCH = "semantic_match"
    FILE_ACCESS_CORRELATION = "file_access_correlation"
    TASK_TOPIC_CORRELATION = "task_topic_correlation"
    NEGATIVE_SIGNALS = "negative_signals"


class NegativeSignalType(StrEnum):
    LOW_POSITION = "low_position"
    TOPIC_MISMATCH = "topic_mismatch"
    FILES_NOT_ACCESSED = "files_not_accessed"


class Verdict(StrEnum):
    USED = "used"
    IGNORED = "ignored"
    UNCERTAIN = "uncertain"


class SignalType(StrEnum):
    USED = "used"
    IGNORED = "ignored"
    HELPFUL = "helpful"
    NOT_HELPFUL = "not_helpful"


class QueryType(StrEnum):
    FIXED = "fixed"
    ADAPTIVE = "adaptive"


class FactType(StrEnum):
    WORLD = "world"
    EXPERIENCE = "experience"
    OPINION = "opinion"
    OBSERVATION = "observation"
