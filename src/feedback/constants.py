"""Detection thresholds, trigger patterns and scoring weights.

Defaults live in ``DEFAULT_TABLES``; detectors take a ``DetectionTables`` value
so callers and tests can override any threshold without touching module state.
"""

import re
from dataclasses import dataclass, field

# Detection confidence
EXPLICIT_CONFIDENCE = 0.95
SEMANTIC_THRESHOLD = 0.5  # lower than the 0.85 dedup threshold to catch paraphrases
SEMANTIC_MAX_CONFIDENCE = 0.85
FILE_ACCESS_CONFIDENCE = 0.5
TASK_TOPIC_CONFIDENCE = 0.4
TASK_TOPIC_MIN_OVERLAP = 0.3
EXPLICIT_MIN_SIMILARITY = 0.1

# Verdicts
USED_THRESHOLD = 0.2
IGNORED_THRESHOLD = -0.2
NEGATIVE_SIGNAL_WEIGHT = 0.5

# Negative signals
LOW_POSITION_WEIGHT = 0.3
LOW_POSITION_THRESHOLD = 15
TOPIC_MISMATCH_WEIGHT = 0.5
TOPIC_MISMATCH_THRESHOLD = 0.1
FILES_NOT_ACCESSED_WEIGHT = 0.3
MAX_IGNORE_CONFIDENCE = 0.9

# Explicit reference context window
CONTEXT_LOOKBEHIND_CHARS = 50
CONTEXT_LOOKAHEAD_CHARS = 100

# Semantic chunking
CHUNK_MAX_WORDS = 50
CHUNK_OVERLAP_WORDS = 10

SESSION_DATA_RETENTION_DAYS = 7

EXPLICIT_TRIGGERS: tuple[re.Pattern, ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        # Direct context references
        r"based on the (recalled |session |)context",
        r"according to (the |my )?(recalled )?memory",
        r"from the session context",
        r"from the (recalled |)context",
        r"as (mentioned|noted|stated|indicated) (in|from) (the )?(recalled )?context",
        r"the (recalled |session )?(fact|memory|context) (shows|indicates|mentions|states)",
        r"referring to the (recalled |session )?context",
        # Bracketed markers
        r"\[from context\]",
        r"\[context\]",
        r"\[recalled\]",
        r"\[memory\]",
        r"\(from context\)",
        r"\(from memory\)",
        # Header style
        r"context reference:",
        r"recalled context:",
        r"from previous sessions?:",
        # Knowledge acknowledgment
        r"I recall that",
        r"I remember that",
        r"from what I've learned",
        r"based on prior knowledge",
        r"drawing from (the |)context",
        r"the context (tells|shows|indicates|mentions) (me |us |)",
    )
)

# Length limits keep the patterns linear on pathological input
FILE_REFERENCE_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"(?:^|[\s(,])([a-zA-Z0-9_-]{1,100}\.[a-zA-Z]{2,4})(?=[\s),.;:]|$)"),
    re.compile(
        r"(?:in |at |from |to |file |path )['\"]?([a-zA-Z0-9_/-]{1,200}\.[a-zA-Z]{2,4})['\"]?",
        re.IGNORECASE,
    ),
    re.compile(
        r"(?:src|lib|app|components|pages|utils|hooks|services|api)/[a-zA-Z0-9_/-]{1,200}\.[a-zA-Z]{2,4}",
        re.IGNORECASE,
    ),
)

STOP_WORDS = frozenset(
    """
    the a an and or but in on at to for of with by from as is was are were be
    been being have has had do does did will would could should may might must
    shall can this that these those it its they them their we us our you your
    i me my he she him her his
    """.split()
)


@dataclass(frozen=True)
class DetectionTables:
    """Pattern tables and thresholds used by the detection strategies."""

    explicit_triggers: tuple[re.Pattern, ...] = EXPLICIT_TRIGGERS
    file_reference_patterns: tuple[re.Pattern, ...] = FILE_REFERENCE_PATTERNS
    stop_words: frozenset[str] = field(default=STOP_WORDS)

    explicit_confidence: float = EXPLICIT_CONFIDENCE
    explicit_min_similarity: float = EXPLICIT_MIN_SIMILARITY
    context_lookbehind: int = CONTEXT_LOOKBEHIND_CHARS
    context_lookahead: int = CONTEXT_LOOKAHEAD_CHARS

    semantic_max_confidence: float = SEMANTIC_MAX_CONFIDENCE

    file_access_confidence: float = FILE_ACCESS_CONFIDENCE
    task_topic_confidence: float = TASK_TOPIC_CONFIDENCE
    task_topic_min_overlap: float = TASK_TOPIC_MIN_OVERLAP

    low_position_threshold: int = LOW_POSITION_THRESHOLD
    low_position_weight: float = LOW_POSITION_WEIGHT
    topic_mismatch_threshold: float = TOPIC_MISMATCH_THRESHOLD
    topic_mismatch_weight: float = TOPIC_MISMATCH_WEIGHT
    files_not_accessed_weight: float = FILES_NOT_ACCESSED_WEIGHT
    max_ignore_confidence: float = MAX_IGNORE_CONFIDENCE


DEFAULT_TABLES = DetectionTables()
