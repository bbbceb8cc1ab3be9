"""Configuration loading and management."""

from pathlib import Path
from typing import Optional

import yaml

from .config_models import RecallFeedbackConfig
from .logging_config import setup_logging as configure_structlog


def find_config() -> Optional[Path]:
    """Find config file in standard locations."""
    locations = [
        Path.cwd() / ".recallfeedback.yaml",
        Path.home() / ".recall-feedback" / "config.yaml",
    ]
    for loc in locations:
        if loc.exists():
            return loc
    return None


def load_config_model(config_path: Optional[Path] = None) -> RecallFeedbackConfig:
    """Load configuration as Pydantic model with validation."""
    base_config = {}

    path = config_path or find_config()
    if path and path.exists():
        try:
            with open(path) as f:
                base_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file: {e}")

    if not isinstance(base_config, dict):
        raise ValueError(f"Config file must contain a mapping, got {type(base_config).__name__}")

    try:
        return RecallFeedbackConfig.from_dict(base_config)
    except Exception as e:
        raise ValueError(f"Config validation failed: {e}")


def get_paths(config: dict) -> dict:
    """Get expanded paths from config."""
    paths = config.get("paths") or {}
    project_dir = Path(paths.get("project_dir") or ".").expanduser()
    log_file = paths.get("log_file")
    return {
        "project_dir": project_dir,
        "sessions_dir": project_dir / ".claude" / "feedback-sessions",
        "offline_queue": project_dir / ".claude" / "offline-feedback.json",
        "offline_memories": project_dir / ".claude" / "offline-memories.json",
        "log_file": Path(log_file).expanduser() if log_file else None,
    }


def setup_logging(config: RecallFeedbackConfig, verbose: bool = False, json_mode: bool = False) -> None:
    """Configure structlog from the logging section of the config."""
    level = "DEBUG" if verbose else config.logging.level
    configure_structlog(
        json_mode=json_mode or config.logging.json_mode,
        level=level,
        log_file=config.paths.log_file,
        file_level=config.logging.file_level,
    )
