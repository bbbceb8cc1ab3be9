"""Pydantic configuration models for recall-feedback."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class TimeoutsConfig(BaseModel):
    """Per-operation request timeouts for the memory service (seconds)."""

    default: float = 10.0
    health: float = 3.0  # quick check
    recall: float = 15.0
    retain: float = 10.0
    signal: float = 10.0

    @model_validator(mode="after")
    def validate_positive(self):
        for name, value in self.model_dump().items():
            if value <= 0:
                raise ValueError(f"Timeout {name} must be positive, got {value}")
        return self


class HindsightConfig(BaseModel):
    """Remote memory service connection."""

    host: str = "localhost"
    port: int = 8888
    api_key: Optional[str] = None
    bank_id: Optional[str] = None  # None = derive from project directory
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError(f"Invalid port: {v}")
        return v

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}/api/v1"


class DetectionConfig(BaseModel):
    """Which detection strategies run, and the semantic matching knobs."""

    explicit: bool = True
    semantic: bool = True
    behavioral: bool = True
    semantic_threshold: float = 0.5
    chunk_max_words: int = 50
    chunk_overlap_words: int = 10

    @field_validator("semantic_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"semantic_threshold must be 0-1, got {v}")
        return v

    @model_validator(mode="after")
    def validate_chunking(self):
        if self.chunk_max_words < 1:
            raise ValueError("chunk_max_words must be at least 1")
        if not 0 <= self.chunk_overlap_words < self.chunk_max_words:
            raise ValueError(
                f"chunk_overlap_words must be in [0, {self.chunk_max_words}), "
                f"got {self.chunk_overlap_words}"
            )
        return self


class FeedbackDeliveryConfig(BaseModel):
    """How feedback reaches the memory service."""

    send_feedback: bool = True
    boost_by_usefulness: bool = True
    boost_weight: float = 0.3

    @field_validator("boost_weight")
    @classmethod
    def validate_weight(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError(f"boost_weight must be 0-1, got {v}")
        return v


class FeedbackConfig(BaseModel):
    """Feedback loop configuration."""

    enabled: bool = False
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    hindsight: FeedbackDeliveryConfig = Field(default_factory=FeedbackDeliveryConfig)
    retention_days: int = 7
    debug: bool = False

    @field_validator("retention_days")
    @classmethod
    def validate_retention(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"retention_days must be >= 0, got {v}")
        return v


class PathsConfig(BaseModel):
    """File paths configuration."""

    project_dir: Path = Path(".")
    log_file: Optional[Path] = None  # e.g. ~/.recall-feedback/feedback.log

    @model_validator(mode="after")
    def expand_paths(self):
        """Expand ~ in all paths."""
        self.project_dir = self.project_dir.expanduser()
        if self.log_file is not None:
            self.log_file = self.log_file.expanduser()
        return self


class RetryConfig(BaseModel):
    """Retry/backoff configuration for transient remote errors."""

    max_attempts: int = 3
    min_wait: float = 0.5
    max_wait: float = 5.0


VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file_level: str = "DEBUG"
    json_mode: bool = False

    @field_validator("level", "file_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v_upper


class RecallFeedbackConfig(BaseModel):
    """Main configuration model."""

    hindsight: HindsightConfig = Field(default_factory=HindsightConfig)
    feedback: FeedbackConfig = Field(default_factory=FeedbackConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def expand_env_vars(self):
        """Expand ${VAR} patterns in API keys."""
        key = self.hindsight.api_key
        if key and key.startswith("${") and key.endswith("}"):
            self.hindsight.api_key = os.getenv(key[2:-1], "")
        return self

    @classmethod
    def from_dict(cls, data: dict) -> "RecallFeedbackConfig":
        """Create config from dict, accepting camelCase keys in the feedback section."""
        data = dict(data)
        feedback = data.get("feedback")
        if isinstance(feedback, dict):
            data["feedback"] = _snake_keys(feedback)
        return cls.model_validate(data)

    def to_dict(self) -> dict:
        """Convert to dict for backwards compatibility."""
        return self.model_dump(mode="python")


def _snake_keys(data: dict) -> dict:
    result = {}
    for key, value in data.items():
        snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in key)
        result[snake] = _snake_keys(value) if isinstance(value, dict) else value
    return result
