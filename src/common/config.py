# ABOUTME: Holds the immutable weight and threshold tables used by the CCIS engines.
# ABOUTME: Loads YAML overrides on top of the defaults and validates weight tables.

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping

import yaml

from .errors import CCISValidationError


@dataclass(frozen=True)
class SignalWeights:
    """Contribution of each behavioral signal to the raw CCIS score."""

    hint_frequency: float = 0.35
    error_recovery: float = 0.25
    transfer_success: float = 0.20
    metacognitive: float = 0.10
    efficiency: float = 0.05
    help_seeking: float = 0.03
    self_assessment: float = 0.02

    def total(self) -> float:
        return math.fsum(getattr(self, f.name) for f in fields(self))


@dataclass(frozen=True)
class LevelThresholds:
    """Inclusive upper bounds of levels 1-3; anything above level_3_max is level 4."""

    level_1_max: float = 0.25
    level_2_max: float = 0.50
    level_3_max: float = 0.85


@dataclass(frozen=True)
class ConfidenceWeights:
    evidence: float = 0.4
    duration: float = 0.3
    consistency: float = 0.3
    full_evidence_tasks: int = 10
    full_duration_minutes: float = 60.0


@dataclass(frozen=True)
class GamingRuleThresholds:
    """Lightweight gaming checks embedded in the calculation engine."""

    hint_abuse: float = 0.05
    perfect_pattern: float = 0.95
    perfect_pattern_count: int = 2
    rapid_efficiency: float = 0.95
    rapid_duration_minutes: float = 15.0
    low_variance: float = 0.10
    is_gaming: float = 0.5
    flag_review: float = 0.7
    extend_assessment: float = 0.5
    adjust_scaffolding: float = 0.3


@dataclass(frozen=True)
class InterventionThresholds:
    hint_dependency_high: float = 0.8
    error_recovery_poor: float = 0.2
    transfer_failure_high: float = 0.3
    efficiency_very_low: float = 0.15


@dataclass(frozen=True)
class DetectionThresholds:
    """Session-level thresholds for the five gaming detectors."""

    low_variance: float = 0.05
    high_variance: float = 0.4
    perfect_score: float = 0.98
    perfect_score_count: int = 3
    min_task_seconds: float = 10.0
    max_task_seconds: float = 1800.0
    too_fast_ratio: float = 0.3
    min_timing_cv: float = 0.15
    min_tasks_for_regularity: int = 2
    low_average_hints: float = 0.5
    hint_abuse_min: float = 0.02
    high_average_hints: float = 5.0
    high_hint_success: float = 0.9
    error_free_ratio: float = 0.8
    pattern_repetition: float = 0.9
    impossible_improvement: float = 0.3
    session_similarity: float = 0.95
    similarity_window: int = 3
    off_hours_start: int = 6
    off_hours_end: int = 23
    poor_network_score: float = 0.9


@dataclass(frozen=True)
class RiskWeights:
    variance_anomaly: float = 0.25
    timing_irregularity: float = 0.20
    performance_pattern: float = 0.20
    historical_consistency: float = 0.15
    metadata_analysis: float = 0.10

    def total(self) -> float:
        return math.fsum(getattr(self, f.name) for f in fields(self))


@dataclass(frozen=True)
class RiskLevelThresholds:
    critical: float = 0.8
    high: float = 0.6
    medium: float = 0.4
    low: float = 0.2


@dataclass(frozen=True)
class CulturalWeights:
    authority_structure: float
    collaborative: float
    detailed_feedback: float
    formal_communication: float


@dataclass(frozen=True)
class CulturalThresholds:
    authority_structure: float = 0.7
    collaborative: float = 0.6
    formal_communication: float = 0.7


@dataclass(frozen=True)
class PerformanceThresholds:
    """Triggers for performance-driven scaffolding overrides and priorities."""

    high_frustration: float = 0.7
    low_confidence: float = 0.4
    low_engagement: float = 0.5
    immediate_frustration: float = 0.8
    immediate_engagement: float = 0.3
    slow_velocity: float = 0.5


@dataclass(frozen=True)
class AdvancementWeights:
    transfer_success: float = 0.3
    confidence: float = 0.2
    learning_velocity: float = 0.2
    error_recovery: float = 0.15
    engagement: float = 0.15
    high_readiness: float = 0.8
    moderate_readiness: float = 0.6


@dataclass(frozen=True)
class TrajectorySettings:
    hours_per_level: float = 2.0
    min_velocity: float = 0.5
    probability_step: float = 0.2
    probability_floor: float = 0.3


DEFAULT_INDUSTRY_WEIGHTS: Mapping[str, float] = MappingProxyType(
    {
        "communication": 0.20,
        "problem_solving": 0.18,
        "teamwork": 0.16,
        "adaptability": 0.15,
        "technical_skills": 0.14,
        "time_management": 0.12,
        "leadership": 0.05,
    }
)

DEFAULT_CULTURAL_WEIGHTS: Mapping[str, CulturalWeights] = MappingProxyType(
    {
        "INDIA": CulturalWeights(
            authority_structure=0.8, collaborative=0.7, detailed_feedback=0.8, formal_communication=0.7
        ),
        "UAE": CulturalWeights(
            authority_structure=0.7, collaborative=0.6, detailed_feedback=0.6, formal_communication=0.8
        ),
        "GLOBAL": CulturalWeights(
            authority_structure=0.5, collaborative=0.5, detailed_feedback=0.5, formal_communication=0.5
        ),
    }
)


@dataclass(frozen=True)
class EngineConfig:
    signal_weights: SignalWeights = field(default_factory=SignalWeights)
    level_thresholds: LevelThresholds = field(default_factory=LevelThresholds)
    confidence: ConfidenceWeights = field(default_factory=ConfidenceWeights)
    gaming_rules: GamingRuleThresholds = field(default_factory=GamingRuleThresholds)
    intervention: InterventionThresholds = field(default_factory=InterventionThresholds)
    detection: DetectionThresholds = field(default_factory=DetectionThresholds)
    risk_weights: RiskWeights = field(default_factory=RiskWeights)
    risk_levels: RiskLevelThresholds = field(default_factory=RiskLevelThresholds)
    cultural_thresholds: CulturalThresholds = field(default_factory=CulturalThresholds)
    performance: PerformanceThresholds = field(default_factory=PerformanceThresholds)
    advancement: AdvancementWeights = field(default_factory=AdvancementWeights)
    trajectory: TrajectorySettings = field(default_factory=TrajectorySettings)
    industry_weights: Mapping[str, float] = field(default_factory=lambda: DEFAULT_INDUSTRY_WEIGHTS)
    default_industry_weight: float = 0.10
    cultural_weights: Mapping[str, CulturalWeights] = field(default_factory=lambda: DEFAULT_CULTURAL_WEIGHTS)

    def industry_weight(self, competency_key: str) -> float:
        return self.industry_weights.get(competency_key, self.default_industry_weight)


DEFAULT_CONFIG = EngineConfig()

_SECTIONS = {
    "signal_weights": SignalWeights,
    "level_thresholds": LevelThresholds,
    "confidence": ConfidenceWeights,
    "gaming_rules": GamingRuleThresholds,
    "intervention": InterventionThresholds,
    "detection": DetectionThresholds,
    "risk_weights": RiskWeights,
    "risk_levels": RiskLevelThresholds,
    "cultural_thresholds": CulturalThresholds,
    "performance": PerformanceThresholds,
    "advancement": AdvancementWeights,
    "trajectory": TrajectorySettings,
}
_WEIGHT_TOLERANCE = 1e-6


def load_engine_config(config_path: Path) -> EngineConfig:
    """
    Read a YAML file and overlay the sections it names on top of DEFAULT_CONFIG.
    """

    with open(config_path) as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise CCISValidationError(f"Config at {config_path} must be a mapping.", "config")
    return build_engine_config(cfg)


def build_engine_config(overrides: Mapping[str, Any], base: EngineConfig = DEFAULT_CONFIG) -> EngineConfig:
    changes: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key in _SECTIONS:
            changes[key] = _overlay_section(getattr(base, key), key, value)
        elif key == "industry_weights":
            merged = dict(base.industry_weights)
            for competency, weight in _section_items(value, key):
                merged[str(competency)] = _coerce_number(weight, float, f"{key}.{competency}")
            changes[key] = MappingProxyType(merged)
        elif key == "default_industry_weight":
            changes[key] = _coerce_number(value, float, key)
        elif key == "cultural_weights":
            merged = dict(base.cultural_weights)
            for region, weights in _section_items(value, key):
                region_weights = {
                    name: _coerce_number(w, float, f"{key}.{region}.{name}")
                    for name, w in _section_items(weights, f"{key}.{region}")
                }
                try:
                    merged[str(region).upper()] = CulturalWeights(**region_weights)
                except TypeError as exc:
                    raise CCISValidationError(f"Invalid cultural weights for {region}: {exc}", key) from exc
            changes[key] = MappingProxyType(merged)
        else:
            raise CCISValidationError(f"Unknown config section '{key}'.", key)

    config = replace(base, **changes)
    validate_engine_config(config)
    return config


def validate_engine_config(config: EngineConfig) -> None:
    signal_total = config.signal_weights.total()
    if abs(signal_total - 1.0) > _WEIGHT_TOLERANCE:
        raise CCISValidationError(f"Signal weights must sum to 1.0, got {signal_total:.6f}.", "signal_weights")

    industry_total = math.fsum(config.industry_weights.values())
    if abs(industry_total - 1.0) > _WEIGHT_TOLERANCE:
        raise CCISValidationError(
            f"Industry weights must sum to 1.0, got {industry_total:.6f}.", "industry_weights"
        )

    # Risk weights leave headroom: five detectors, total at most 1.0.
    if config.risk_weights.total() > 1.0 + _WEIGHT_TOLERANCE:
        raise CCISValidationError("Risk weights must not sum above 1.0.", "risk_weights")

    bounds = config.level_thresholds
    if not 0.0 < bounds.level_1_max < bounds.level_2_max < bounds.level_3_max < 1.0:
        raise CCISValidationError("Level thresholds must be strictly increasing inside (0, 1).", "level_thresholds")


def _overlay_section(current: Any, name: str, values: Any) -> Any:
    if values is None:
        return current
    if not isinstance(values, Mapping):
        raise CCISValidationError(f"Config section '{name}' must be a mapping.", name)
    known = {f.name for f in fields(current)}
    unknown = set(values) - known
    if unknown:
        raise CCISValidationError(f"Unknown keys in '{name}': {sorted(unknown)}.", name)
    # Every section field is an int or a float; the default's type says which.
    coerced = {
        key: _coerce_number(value, type(getattr(current, key)), f"{name}.{key}") for key, value in values.items()
    }
    return replace(current, **coerced)


def _section_items(values: Any, name: str):
    if values is None:
        return []
    if not isinstance(values, Mapping):
        raise CCISValidationError(f"Config section '{name}' must be a mapping.", name)
    return list(values.items())


def _coerce_number(value: Any, kind: type, name: str) -> Any:
    if isinstance(value, bool) or value is None:
        raise CCISValidationError(f"{name} must be a number, got {value!r}.", name)
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise CCISValidationError(f"{name} must be a number, got {value!r}.", name) from exc
    if not math.isfinite(number):
        raise CCISValidationError(f"{name} must be finite, got {value!r}.", name)
    if kind is int:
        if not number.is_integer():
            raise CCISValidationError(f"{name} must be a whole number, got {value!r}.", name)
        return int(number)
    return number
