"""
MnemoGraph Configuration System
===============================
Centralized, validated configuration with environment variable overrides.
"""

import os
from pathlib import Path
from typing import Optional, Union
from dataclasses import dataclass, field, fields

import yaml

from mnemograph.core.exceptions import ConfigurationError


@dataclass(frozen=True)
class KnowledgeConfig:
    relation_threshold: float = 0.7
    cluster_threshold: float = 0.6
    bidirectional_relations: bool = False
    default_max_results: int = 10


@dataclass(frozen=True)
class MemoryConfig:
    """Working / short-term memory tuning."""
    capacity: int = 100
    attention_focus: float = 0.5
    context_boost: float = 1.2
    decay_rate_per_hour: float = 0.1
    retention_threshold: float = 0.3
    consolidation_activation: float = 0.7
    consolidation_min_retrievals: int = 2
    consolidation_min_age_seconds: int = 3600


@dataclass(frozen=True)
class PredictorConfig:
    timeout_seconds: float = 2.0


@dataclass(frozen=True)
class WorkerConfig:
    max_concurrency: int = 8
    max_pending: int = 256


@dataclass(frozen=True)
class ConsolidationConfig:
    """Configuration for the periodic short-term → graph consolidation pass."""
    enabled: bool = True
    interval_seconds: int = 300


@dataclass(frozen=True)
class ObservabilityConfig:
    log_level: str = "INFO"
    json_logs: bool = False


@dataclass(frozen=True)
class MnemoGraphConfig:
    """Root configuration for the MnemoGraph system."""

    version: str = "1.0"
    dimensionality: int = 768
    knowledge: KnowledgeConfig = field(default_factory=KnowledgeConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    predictors: PredictorConfig = field(default_factory=PredictorConfig)
    workers: WorkerConfig = field(default_factory=WorkerConfig)
    consolidation: ConsolidationConfig = field(default_factory=ConsolidationConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)


def _coerce(key: str, value, default):
    """Convert a YAML or environment value to the type of the field's default."""
    try:
        if isinstance(default, bool):
            if isinstance(value, str):
                return value.strip().lower() in ("true", "1", "yes")
            return bool(value)
        if isinstance(default, int):
            if isinstance(value, float) and not value.is_integer():
                raise ValueError(f"{value} is not an integer")
            return int(value)
        if isinstance(default, float):
            return float(value)
        return str(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(config_key=key, reason=f"cannot parse {value!r}: {exc}")


def _env_override(key: str, value, default):
    """Check for MNEMOGRAPH_<KEY> environment variable override."""
    env_key = f"MNEMOGRAPH_{key.replace('.', '_').upper()}"
    env_val = os.environ.get(env_key)
    if env_val is not None:
        value = env_val
    return _coerce(key, value, default)


def _build_section(section: str, cls, raw: dict):
    """Build one config section: ENV > YAML > dataclass default, per field."""
    values = {}
    for f in fields(cls):
        key = f"{section}.{f.name}"
        values[f.name] = _env_override(key, raw.get(f.name, f.default), f.default)
    return cls(**values)


def _require_unit_interval(key: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ConfigurationError(config_key=key, reason=f"must be within [0, 1], got {value}")


def _require_positive(key: str, value) -> None:
    if value <= 0:
        raise ConfigurationError(config_key=key, reason=f"must be positive, got {value}")


def _validate(config: MnemoGraphConfig) -> None:
    _require_positive("dimensionality", config.dimensionality)

    kn = config.knowledge
    _require_unit_interval("knowledge.relation_threshold", kn.relation_threshold)
    _require_unit_interval("knowledge.cluster_threshold", kn.cluster_threshold)
    _require_positive("knowledge.default_max_results", kn.default_max_results)

    mem = config.memory
    _require_positive("memory.capacity", mem.capacity)
    _require_unit_interval("memory.attention_focus", mem.attention_focus)
    _require_unit_interval("memory.retention_threshold", mem.retention_threshold)
    _require_unit_interval("memory.consolidation_activation", mem.consolidation_activation)
    if mem.decay_rate_per_hour < 0:
        raise ConfigurationError(
            config_key="memory.decay_rate_per_hour",
            reason=f"must be non-negative, got {mem.decay_rate_per_hour}",
        )
    if mem.context_boost < 0:
        raise ConfigurationError(
            config_key="memory.context_boost",
            reason=f"must be non-negative, got {mem.context_boost}",
        )

    _require_positive("predictors.timeout_seconds", config.predictors.timeout_seconds)
    _require_positive("workers.max_concurrency", config.workers.max_concurrency)
    _require_positive("workers.max_pending", config.workers.max_pending)
    _require_positive("consolidation.interval_seconds", config.consolidation.interval_seconds)


def load_config(path: Optional[Union[str, Path]] = None) -> MnemoGraphConfig:
    """
    Load configuration from YAML file with environment variable overrides.

    Priority: ENV > YAML > defaults.

    Args:
        path: Path to config.yaml. If None, searches ./config.yaml and the project root.

    Returns:
        Validated MnemoGraphConfig instance.

    Raises:
        ConfigurationError: If any value is out of range.
    """
    if path is None:
        # Search common locations
        candidates = [
            Path("config.yaml"),
            Path(__file__).parent.parent.parent.parent / "config.yaml",
        ]
        for candidate in candidates:
            if candidate.exists():
                path = candidate
                break
    else:
        path = Path(path)

    raw = {}
    if path is not None and path.exists():
        with open(path) as f:
            loaded = yaml.safe_load(f) or {}
            raw = loaded.get("mnemograph") or {}

    config = MnemoGraphConfig(
        version=_env_override("version", raw.get("version", "1.0"), "1.0"),
        dimensionality=_env_override("dimensionality", raw.get("dimensionality", 768), 768),
        knowledge=_build_section("knowledge", KnowledgeConfig, raw.get("knowledge") or {}),
        memory=_build_section("memory", MemoryConfig, raw.get("memory") or {}),
        predictors=_build_section("predictors", PredictorConfig, raw.get("predictors") or {}),
        workers=_build_section("workers", WorkerConfig, raw.get("workers") or {}),
        consolidation=_build_section("consolidation", ConsolidationConfig, raw.get("consolidation") or {}),
        observability=_build_section("observability", ObservabilityConfig, raw.get("observability") or {}),
    )
    _validate(config)
    return config


# Module-level singleton (lazy-loaded)
_CONFIG: Optional[MnemoGraphConfig] = None


def get_config() -> MnemoGraphConfig:
    """Get or initialize the global config singleton."""
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config()
    return _CONFIG


def reset_config():
    """Reset the global config singleton (useful for testing)."""
    global _CONFIG
    _CONFIG = None
