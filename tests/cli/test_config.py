"""Tests for config loading and validation."""

from pathlib import Path

import pytest
import yaml

from cli.config import get_paths, load_config_model
from cli.config_models import DetectionConfig, RecallFeedbackConfig, TimeoutsConfig


def _write(tmp_path, data) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(data if isinstance(data, str) else yaml.safe_dump(data))
    return path


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        config = load_config_model(tmp_path / "missing.yaml")
        assert config.feedback.enabled is False
        assert config.hindsight.base_url == "http://localhost:8888/api/v1"
        assert config.feedback.detection.semantic_threshold == 0.5

    def test_yaml_values(self, tmp_path):
        path = _write(
            tmp_path,
            {
                "hindsight": {"host": "memory.internal", "port": 9999, "bank_id": "team"},
                "feedback": {"enabled": True, "retention_days": 3},
                "logging": {"level": "warning"},
            },
        )
        config = load_config_model(path)
        assert config.hindsight.base_url == "http://memory.internal:9999/api/v1"
        assert config.hindsight.bank_id == "team"
        assert config.feedback.retention_days == 3
        assert config.logging.level == "WARNING"

    def test_camel_case_feedback_keys(self, tmp_path):
        path = _write(
            tmp_path,
            {
                "feedback": {
                    "enabled": True,
                    "detection": {"semanticThreshold": 0.7, "behavioral": False},
                    "hindsight": {"sendFeedback": False},
                }
            },
        )
        config = load_config_model(path)
        assert config.feedback.detection.semantic_threshold == 0.7
        assert config.feedback.detection.behavioral is False
        assert config.feedback.hindsight.send_feedback is False

    def test_env_var_api_key(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HINDSIGHT_TEST_KEY", "secret-value")
        path = _write(tmp_path, {"hindsight": {"api_key": "${HINDSIGHT_TEST_KEY}"}})
        assert load_config_model(path).hindsight.api_key == "secret-value"

    def test_invalid_yaml(self, tmp_path):
        path = _write(tmp_path, "feedback: [unclosed")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config_model(path)

    def test_not_a_mapping(self, tmp_path):
        path = _write(tmp_path, "- just\n- a list\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config_model(path)

    def test_validation_failure(self, tmp_path):
        path = _write(tmp_path, {"hindsight": {"port": 70000}})
        with pytest.raises(ValueError, match="validation failed"):
            load_config_model(path)


class TestModels:
    def test_timeouts_must_be_positive(self):
        with pytest.raises(ValueError):
            TimeoutsConfig(health=0)

    def test_threshold_range(self):
        with pytest.raises(ValueError):
            DetectionConfig(semantic_threshold=1.5)

    def test_overlap_below_window(self):
        with pytest.raises(ValueError):
            DetectionConfig(chunk_max_words=10, chunk_overlap_words=10)

    def test_negative_retention(self):
        with pytest.raises(ValueError):
            RecallFeedbackConfig.from_dict({"feedback": {"retentionDays": -1}})


def test_get_paths(tmp_path):
    config = RecallFeedbackConfig.from_dict(
        {"paths": {"project_dir": str(tmp_path), "log_file": str(tmp_path / "fb.log")}}
    )
    paths = get_paths(config.to_dict())
    assert paths["sessions_dir"] == tmp_path / ".claude" / "feedback-sessions"
    assert paths["offline_queue"] == tmp_path / ".claude" / "offline-feedback.json"
    assert paths["offline_memories"] == tmp_path / ".claude" / "offline-memories.json"
    assert paths["log_file"] == tmp_path / "fb.log"


def test_get_paths_without_paths_section():
    paths = get_paths({})
    assert paths["project_dir"] == Path(".")
    assert paths["log_file"] is None
