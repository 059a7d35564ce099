"""
Tests for YAML + environment configuration loading.
"""

import pytest
import yaml

from mnemograph.core.config import (
    MnemoGraphConfig,
    get_config,
    load_config,
    reset_config,
)
from mnemograph.core.exceptions import ConfigurationError


def _write(tmp_path, data):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"mnemograph": data}))
    return path


class TestDefaults:

    def test_dataclass_defaults(self):
        cfg = MnemoGraphConfig()
        assert cfg.dimensionality == 768
        assert cfg.knowledge.relation_threshold == 0.7
        assert cfg.knowledge.cluster_threshold == 0.6
        assert cfg.knowledge.bidirectional_relations is False
        assert cfg.memory.capacity == 100
        assert cfg.memory.attention_focus == 0.5
        assert cfg.memory.context_boost == 1.2
        assert cfg.memory.retention_threshold == 0.3
        assert cfg.memory.consolidation_min_retrievals == 2
        assert cfg.memory.consolidation_min_age_seconds == 3600

    def test_missing_file_gives_defaults(self, tmp_path):
        cfg = load_config(tmp_path / "absent.yaml")
        assert cfg == MnemoGraphConfig()

    def test_config_is_frozen(self):
        cfg = MnemoGraphConfig()
        with pytest.raises(Exception):
            cfg.dimensionality = 3


class TestYamlLoading:

    def test_values_from_yaml(self, tmp_path):
        path = _write(tmp_path, {
            "dimensionality": 128,
            "knowledge": {"bidirectional_relations": True, "default_max_results": 5},
            "memory": {"capacity": 7, "decay_rate_per_hour": 0.5},
            "workers": {"max_pending": 4},
        })
        cfg = load_config(path)
        assert cfg.dimensionality == 128
        assert cfg.knowledge.bidirectional_relations is True
        assert cfg.knowledge.default_max_results == 5
        assert cfg.memory.capacity == 7
        assert cfg.memory.decay_rate_per_hour == 0.5
        assert cfg.workers.max_pending == 4
        # Untouched sections keep defaults
        assert cfg.predictors.timeout_seconds == 2.0

    def test_accepts_string_path(self, tmp_path):
        path = _write(tmp_path, {"dimensionality": 32})
        assert load_config(str(path)).dimensionality == 32

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == MnemoGraphConfig()


class TestEnvOverrides:

    def test_env_beats_yaml(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"memory": {"capacity": 7}})
        monkeypatch.setenv("MNEMOGRAPH_MEMORY_CAPACITY", "11")
        monkeypatch.setenv("MNEMOGRAPH_KNOWLEDGE_BIDIRECTIONAL_RELATIONS", "yes")
        monkeypatch.setenv("MNEMOGRAPH_PREDICTORS_TIMEOUT_SECONDS", "0.25")
        cfg = load_config(path)
        assert cfg.memory.capacity == 11
        assert cfg.knowledge.bidirectional_relations is True
        assert cfg.predictors.timeout_seconds == 0.25

    def test_env_float_over_integer_yaml(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"memory": {"decay_rate_per_hour": 1}})
        monkeypatch.setenv("MNEMOGRAPH_MEMORY_DECAY_RATE_PER_HOUR", "0.5")
        cfg = load_config(path)
        assert cfg.memory.decay_rate_per_hour == 0.5

    def test_integer_yaml_for_float_field_becomes_float(self, tmp_path):
        cfg = load_config(_write(tmp_path, {"memory": {"decay_rate_per_hour": 1}}))
        assert isinstance(cfg.memory.decay_rate_per_hour, float)

    def test_observability_env_names_follow_section(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MNEMOGRAPH_OBSERVABILITY_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("MNEMOGRAPH_OBSERVABILITY_JSON_LOGS", "true")
        cfg = load_config(tmp_path / "absent.yaml")
        assert cfg.observability.log_level == "DEBUG"
        assert cfg.observability.json_logs is True

    @pytest.mark.parametrize("env_key, value", [
        ("MNEMOGRAPH_MEMORY_DECAY_RATE_PER_HOUR", "fast"),
        ("MNEMOGRAPH_MEMORY_CAPACITY", "0.5"),
        ("MNEMOGRAPH_DIMENSIONALITY", "wide"),
    ])
    def test_unparseable_env_raises_configuration_error(self, tmp_path, monkeypatch, env_key, value):
        monkeypatch.setenv(env_key, value)
        with pytest.raises(ConfigurationError):
            load_config(tmp_path / "absent.yaml")

    def test_unparseable_yaml_raises_configuration_error(self, tmp_path):
        path = _write(tmp_path, {"workers": {"max_pending": "lots"}})
        with pytest.raises(ConfigurationError):
            load_config(path)


class TestValidation:

    @pytest.mark.parametrize("data", [
        {"dimensionality": 0},
        {"knowledge": {"relation_threshold": 1.5}},
        {"memory": {"capacity": 0}},
        {"memory": {"attention_focus": -0.1}},
        {"memory": {"decay_rate_per_hour": -1.0}},
        {"workers": {"max_concurrency": 0}},
    ])
    def test_invalid_values_raise(self, tmp_path, data):
        with pytest.raises(ConfigurationError):
            load_config(_write(tmp_path, data))


class TestSingleton:

    def test_get_config_caches_until_reset(self, monkeypatch):
        monkeypatch.setenv("MNEMOGRAPH_DIMENSIONALITY", "48")
        first = get_config()
        assert first.dimensionality == 48
        assert get_config() is first
        reset_config()
        monkeypatch.setenv("MNEMOGRAPH_DIMENSIONALITY", "96")
        assert get_config().dimensionality == 96
