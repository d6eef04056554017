# ABOUTME: Defines the immutable value objects and input records shared by the CCIS engines.
# ABOUTME: Centralizes behavioral signals, CCIS levels, confidence, competencies, and session inputs.

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

from .config import DEFAULT_INDUSTRY_WEIGHTS
from .errors import BusinessRuleError, CCISValidationError

SIGNAL_NAMES: Tuple[str, ...] = (
    "hint_request_frequency",
    "error_recovery_speed",
    "transfer_success_rate",
    "metacognitive_accuracy",
    "task_completion_efficiency",
    "help_seeking_quality",
    "self_assessment_alignment",
)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _require_unit_interval(name: str, value) -> None:
    if not _is_number(value) or not math.isfinite(value):
        raise CCISValidationError(f"{name} must be a finite number, got {value!r}", name)
    if value < 0.0 or value > 1.0:
        raise CCISValidationError(f"{name} must be between 0 and 1, got {value}", name)


def _require_non_negative(name: str, value) -> None:
    if not _is_number(value) or not math.isfinite(value):
        raise CCISValidationError(f"{name} must be a finite number, got {value!r}", name)
    if value < 0:
        raise CCISValidationError(f"{name} must be non-negative, got {value}", name)


@dataclass(frozen=True)
class BehavioralSignals:
    """Seven normalized [0, 1] interaction metrics plus the evidence they rest on."""

    hint_request_frequency: float
    error_recovery_speed: float
    transfer_success_rate: float
    metacognitive_accuracy: float
    task_completion_efficiency: float
    help_seeking_quality: float
    self_assessment_alignment: float
    task_count: int = 0
    assessment_duration: float = 0.0  # minutes

    def __post_init__(self) -> None:
        for name in SIGNAL_NAMES:
            _require_unit_interval(name, getattr(self, name))
        if not isinstance(self.task_count, int) or isinstance(self.task_count, bool) or self.task_count < 0:
            raise CCISValidationError(f"task_count must be a non-negative integer, got {self.task_count!r}", "task_count")
        _require_non_negative("assessment_duration", self.assessment_duration)

    @classmethod
    def from_raw_data(
        cls,
        hints_requested: int,
        total_available_hints: int,
        error_recovery_time_ms: float,
        max_recovery_time_ms: float,
        transfer_tasks_successful: int,
        total_transfer_tasks: int,
        self_assessment_score: float,
        actual_performance_score: float,
        task_completion_time_ms: float,
        optimal_completion_time_ms: float,
        strategic_help_requests: int,
        total_help_requests: int,
        self_prediction_accuracy: float,
        assessment_duration_minutes: float,
        task_count: int,
    ) -> "BehavioralSignals":
        """Normalize raw counts and timings collected during a session into signals."""
        for name, denominator in (
            ("total_available_hints", total_available_hints),
            ("max_recovery_time_ms", max_recovery_time_ms),
            ("total_transfer_tasks", total_transfer_tasks),
            ("task_completion_time_ms", task_completion_time_ms),
        ):
            if not _is_number(denominator) or denominator <= 0:
                raise CCISValidationError(f"{name} must be positive, got {denominator!r}", name)

        return cls(
            hint_request_frequency=min(hints_requested / total_available_hints, 1.0),
            # Faster recovery scores higher.
            error_recovery_speed=1.0 - min(error_recovery_time_ms / max_recovery_time_ms, 1.0),
            transfer_success_rate=transfer_tasks_successful / total_transfer_tasks,
            metacognitive_accuracy=1.0 - abs(self_assessment_score - actual_performance_score),
            task_completion_efficiency=min(optimal_completion_time_ms / task_completion_time_ms, 1.0),
            help_seeking_quality=(strategic_help_requests / total_help_requests) if total_help_requests > 0 else 1.0,
            self_assessment_alignment=self_prediction_accuracy,
            task_count=task_count,
            assessment_duration=assessment_duration_minutes,
        )

    @classmethod
    def from_mapping(cls, data: Mapping) -> "BehavioralSignals":
        if not isinstance(data, Mapping):
            raise CCISValidationError(f"Signals must be a mapping, got {type(data).__name__}", "signals")
        known = set(SIGNAL_NAMES) | {"task_count", "assessment_duration"}
        unknown = set(data) - known
        if unknown:
            raise CCISValidationError(f"Unknown signal fields: {sorted(unknown)}", "signals")
        missing = [name for name in SIGNAL_NAMES if name not in data]
        if missing:
            raise CCISValidationError(f"Missing signal fields: {missing}", "signals")
        return cls(**dict(data))

    def as_vector(self) -> Tuple[float, ...]:
        return tuple(getattr(self, name) for name in SIGNAL_NAMES)

    def as_dict(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in SIGNAL_NAMES}

    def strongest_signal(self) -> Tuple[str, float]:
        return max(self.as_dict().items(), key=lambda item: item[1])

    def weakest_signal(self) -> Tuple[str, float]:
        return min(self.as_dict().items(), key=lambda item: item[1])


_LEVEL_NAMES = {
    1: "Dependent Learner",
    2: "Guided Practitioner",
    3: "Self-directed Performer",
    4: "Autonomous Expert",
}
_LEVEL_DESCRIPTIONS = {
    1: "0-25% mastery with high scaffolding needed",
    2: "25-50% mastery with moderate scaffolding needed",
    3: "50-85% mastery with minimal scaffolding needed",
    4: "85-100% mastery with no scaffolding needed",
}
_LEVEL_RANGES = {1: (0, 25), 2: (25, 50), 3: (50, 85), 4: (85, 100)}


@dataclass(frozen=True, order=True)
class CCISLevel:
    """Ordinal 1-4 mastery level. Progression must move one level at a time."""

    level: int

    MIN_LEVEL = 1
    MAX_LEVEL = 4

    def __post_init__(self) -> None:
        if not isinstance(self.level, int) or isinstance(self.level, bool):
            raise CCISValidationError(f"CCIS level must be an integer, got {self.level!r}", "ccis_level")
        if not self.MIN_LEVEL <= self.level <= self.MAX_LEVEL:
            raise CCISValidationError(
                f"CCIS level must be between {self.MIN_LEVEL} and {self.MAX_LEVEL}, got {self.level}", "ccis_level"
            )

    @property
    def display_name(self) -> str:
        return _LEVEL_NAMES[self.level]

    @property
    def description(self) -> str:
        return _LEVEL_DESCRIPTIONS[self.level]

    @property
    def percentage_range(self) -> Tuple[int, int]:
        return _LEVEL_RANGES[self.level]

    def can_advance_to(self, other: "CCISLevel") -> bool:
        return other.level == self.level + 1

    def next_level(self) -> "CCISLevel":
        if self.is_max_level():
            raise BusinessRuleError(f"Level {self.level} is the highest CCIS level", "level_progression")
        return CCISLevel(self.level + 1)

    def is_max_level(self) -> bool:
        return self.level == self.MAX_LEVEL

    def is_min_level(self) -> bool:
        return self.level == self.MIN_LEVEL

    def __int__(self) -> int:
        return self.level

    def __str__(self) -> str:
        return f"Level {self.level}: {self.display_name}"


@dataclass(frozen=True)
class ConfidenceScore:
    """Reliability of a level determination, expressed as a percentage."""

    percentage: float

    LOW_THRESHOLD = 0.4
    MODERATE_THRESHOLD = 0.7
    HIGH_THRESHOLD = 0.9
    GAMING_THRESHOLD = 0.2

    def __post_init__(self) -> None:
        if not _is_number(self.percentage) or not math.isfinite(self.percentage):
            raise CCISValidationError(f"Confidence must be a finite number, got {self.percentage!r}", "confidence")
        if not 0.0 <= self.percentage <= 100.0:
            raise CCISValidationError(f"Confidence must be between 0 and 100, got {self.percentage}", "confidence")

    @classmethod
    def from_percentage(cls, percentage: float) -> "ConfidenceScore":
        return cls(percentage)

    @classmethod
    def from_value(cls, value: float) -> "ConfidenceScore":
        _require_unit_interval("confidence", value)
        return cls(value * 100.0)

    @property
    def value(self) -> float:
        return self.percentage / 100.0

    @property
    def band(self) -> str:
        if self.value < self.LOW_THRESHOLD:
            return "low"
        if self.value < self.MODERATE_THRESHOLD:
            return "moderate"
        if self.value < self.HIGH_THRESHOLD:
            return "high"
        return "veryHigh"

    def allows_progression(self) -> bool:
        return self.value >= self.LOW_THRESHOLD

    def is_reliable(self) -> bool:
        return self.value >= self.MODERATE_THRESHOLD

    def suggests_gaming(self) -> bool:
        return self.value < self.GAMING_THRESHOLD

    @staticmethod
    def weighted_average(scores: Sequence["ConfidenceScore"], weights: Sequence[float]) -> "ConfidenceScore":
        if len(scores) != len(weights):
            raise CCISValidationError("Scores and weights must have the same length", "weights")
        total_weight = math.fsum(weights)
        if not scores or total_weight <= 0:
            raise CCISValidationError("Weighted average needs at least one positive weight", "weights")
        weighted = math.fsum(s.percentage * w for s, w in zip(scores, weights)) / total_weight
        return ConfidenceScore(min(100.0, max(0.0, weighted)))

    def __str__(self) -> str:
        return f"{self.percentage:.0f}% ({self.band})"


class CompetencyType(str, Enum):
    COMMUNICATION = "communication"
    PROBLEM_SOLVING = "problem_solving"
    TEAMWORK = "teamwork"
    ADAPTABILITY = "adaptability"
    TIME_MANAGEMENT = "time_management"
    TECHNICAL_SKILLS = "technical_skills"
    LEADERSHIP = "leadership"

    @property
    def industry_weight(self) -> float:
        return DEFAULT_INDUSTRY_WEIGHTS[self.value]

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def entry_level_criticality(self) -> str:
        return _ENTRY_LEVEL_CRITICALITY[self]

    @classmethod
    def from_string(cls, text: str) -> "CompetencyType":
        key = _normalize_key(text)
        try:
            return _COMPETENCY_ALIASES[key]
        except KeyError:
            raise CCISValidationError(f"Unknown competency '{text}'", "competency") from None


_ENTRY_LEVEL_CRITICALITY = {
    CompetencyType.COMMUNICATION: "critical",
    CompetencyType.PROBLEM_SOLVING: "critical",
    CompetencyType.TEAMWORK: "critical",
    CompetencyType.ADAPTABILITY: "important",
    CompetencyType.TIME_MANAGEMENT: "important",
    CompetencyType.TECHNICAL_SKILLS: "critical",
    CompetencyType.LEADERSHIP: "developing",
}

_COMPETENCY_ALIASES: Mapping[str, CompetencyType] = MappingProxyType(
    {
        **{c.value: c for c in CompetencyType},
        "communication_skills": CompetencyType.COMMUNICATION,
        "problemsolving": CompetencyType.PROBLEM_SOLVING,
        "analytical_thinking": CompetencyType.PROBLEM_SOLVING,
        "critical_thinking": CompetencyType.PROBLEM_SOLVING,
        "data_analysis": CompetencyType.PROBLEM_SOLVING,
        "collaboration": CompetencyType.TEAMWORK,
        "team_work": CompetencyType.TEAMWORK,
        "learning_agility": CompetencyType.ADAPTABILITY,
        "flexibility": CompetencyType.ADAPTABILITY,
        "innovation": CompetencyType.ADAPTABILITY,
        "timemanagement": CompetencyType.TIME_MANAGEMENT,
        "time_planning": CompetencyType.TIME_MANAGEMENT,
        "project_management": CompetencyType.TIME_MANAGEMENT,
        "technical": CompetencyType.TECHNICAL_SKILLS,
        "tech_skills": CompetencyType.TECHNICAL_SKILLS,
        "technical_knowledge": CompetencyType.TECHNICAL_SKILLS,
        "leading": CompetencyType.LEADERSHIP,
        "initiative": CompetencyType.LEADERSHIP,
    }
)


def _normalize_key(text: str) -> str:
    return re.sub(r"[^a-z]+", "_", str(text).strip().lower()).strip("_")


Competency = Union[CompetencyType, str]


def competency_key(competency: Competency) -> str:
    """Canonical key for a competency; unrecognized identifiers pass through normalized."""
    if isinstance(competency, CompetencyType):
        return competency.value
    key = _normalize_key(competency)
    if not key:
        raise CCISValidationError("Competency identifier must not be empty", "competency")
    matched = _COMPETENCY_ALIASES.get(key)
    return matched.value if matched else key


class Region(str, Enum):
    INDIA = "INDIA"
    UAE = "UAE"
    GLOBAL = "GLOBAL"

    @classmethod
    def parse(cls, value: Union["Region", str]) -> "Region":
        if isinstance(value, Region):
            return value
        text = str(value).strip().upper()
        if text == "INTERNATIONAL":
            return cls.GLOBAL
        try:
            return cls(text)
        except ValueError:
            raise CCISValidationError(f"Unknown region '{value}'", "region") from None


class Priority(str, Enum):
    IMMEDIATE = "IMMEDIATE"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


def _require_choice(name: str, value: str, choices: Sequence[str]) -> None:
    if value not in choices:
        raise CCISValidationError(f"{name} must be one of {list(choices)}, got {value!r}", name)


@dataclass(frozen=True)
class CulturalContext:
    region: Region = Region.GLOBAL
    language_preference: str = "en"
    educational_background: str = "mixed"
    technical_familiarity: str = "medium"
    learning_style: str = "individual"
    communication_preference: str = "adaptive"

    def __post_init__(self) -> None:
        object.__setattr__(self, "region", Region.parse(self.region))
        _require_choice("educational_background", self.educational_background, ("traditional", "progressive", "mixed"))
        _require_choice("technical_familiarity", self.technical_familiarity, ("low", "medium", "high"))
        _require_choice("learning_style", self.learning_style, ("individual", "collaborative", "competitive"))
        _require_choice("communication_preference", self.communication_preference, ("formal", "informal", "adaptive"))


PERFORMANCE_TRENDS = ("improving", "stable", "declining")


@dataclass(frozen=True)
class PerformanceIndicators:
    """Learner state that drives scaffolding selection for the next task."""

    current_level: CCISLevel
    target_level: CCISLevel
    competency: Competency
    signals: BehavioralSignals
    recent_trend: str = "stable"
    frustration_level: float = 0.0
    confidence_level: float = 0.5
    engagement_level: float = 0.5
    learning_velocity: float = 1.0  # tasks per hour, relative to the cohort norm
    error_recovery_rate: float = 0.5
    help_seeking_efficiency: float = 0.5
    time_pressure: float = 0.0

    def __post_init__(self) -> None:
        for name in ("current_level", "target_level"):
            value = getattr(self, name)
            if isinstance(value, int) and not isinstance(value, bool):
                object.__setattr__(self, name, CCISLevel(value))
            elif not isinstance(value, CCISLevel):
                raise CCISValidationError(f"{name} must be a CCISLevel, got {value!r}", name)
        _require_choice("recent_trend", self.recent_trend, PERFORMANCE_TRENDS)
        for name in (
            "frustration_level",
            "confidence_level",
            "engagement_level",
            "error_recovery_rate",
            "help_seeking_efficiency",
            "time_pressure",
        ):
            _require_unit_interval(name, getattr(self, name))
        _require_non_negative("learning_velocity", self.learning_velocity)


DEVICE_TYPES = ("desktop", "tablet", "mobile")
NETWORK_STABILITY = ("excellent", "good", "fair", "poor")


@dataclass(frozen=True)
class EnvironmentMetadata:
    device_type: str = "desktop"
    network_stability: str = "good"
    time_of_day: int = 12
    browser_fingerprint: Optional[str] = None
    screen_resolution: Optional[str] = None
    user_agent: Optional[str] = None

    def __post_init__(self) -> None:
        _require_choice("device_type", self.device_type, DEVICE_TYPES)
        _require_choice("network_stability", self.network_stability, NETWORK_STABILITY)
        if not isinstance(self.time_of_day, int) or isinstance(self.time_of_day, bool) or not 0 <= self.time_of_day <= 23:
            raise CCISValidationError(f"time_of_day must be an hour 0-23, got {self.time_of_day!r}", "time_of_day")


@dataclass(frozen=True)
class HistoricalSession:
    session_id: str
    competency: Competency
    final_score: float
    session_duration: float  # minutes
    flagged_for_gaming: bool = False
    completed_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        _require_unit_interval("final_score", self.final_score)
        _require_non_negative("session_duration", self.session_duration)


@dataclass(frozen=True)
class NoHistory:
    """Marks a learner with no prior assessment sessions."""


NO_HISTORY = NoHistory()


@dataclass(frozen=True)
class HistoricalData:
    previous_sessions: Tuple[HistoricalSession, ...] = ()
    average_performance: Mapping[str, float] = field(default_factory=dict)
    typical_session_duration: float = 0.0
    account_age_days: int = 0
    total_assessments: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "previous_sessions", tuple(self.previous_sessions))
        averages = {}
        for key, value in dict(self.average_performance).items():
            _require_unit_interval(f"average_performance[{key}]", value)
            averages[competency_key(key)] = value
        object.__setattr__(self, "average_performance", MappingProxyType(averages))
        _require_non_negative("typical_session_duration", self.typical_session_duration)

    def average_for(self, competency: Competency) -> Optional[float]:
        return self.average_performance.get(competency_key(competency))

    def recent_sessions_for(self, competency: Competency, window: int) -> Tuple[HistoricalSession, ...]:
        key = competency_key(competency)
        matching = [s for s in self.previous_sessions if competency_key(s.competency) == key]
        return tuple(matching[-window:]) if window > 0 else ()


SessionHistory = Union[NoHistory, HistoricalData]


def _as_trace(name: str, values: Sequence[float]) -> Tuple[float, ...]:
    trace = tuple(values)
    for value in trace:
        _require_non_negative(name, value)
    return trace


@dataclass(frozen=True)
class GamingDetectionInput:
    """Everything the session-level gaming analysis looks at."""

    session_id: str
    person_id: str
    competency: Competency
    signals: BehavioralSignals
    timing_pattern: Tuple[float, ...] = ()  # seconds per task
    hint_usage_pattern: Tuple[float, ...] = ()  # hints per task
    error_pattern: Tuple[float, ...] = ()  # errors per task
    environment: EnvironmentMetadata = field(default_factory=EnvironmentMetadata)
    history: SessionHistory = NO_HISTORY

    def __post_init__(self) -> None:
        object.__setattr__(self, "timing_pattern", _as_trace("timing_pattern", self.timing_pattern))
        object.__setattr__(self, "hint_usage_pattern", _as_trace("hint_usage_pattern", self.hint_usage_pattern))
        object.__setattr__(self, "error_pattern", _as_trace("error_pattern", self.error_pattern))
        if self.history is None:
            object.__setattr__(self, "history", NO_HISTORY)
        elif not isinstance(self.history, (NoHistory, HistoricalData)):
            raise CCISValidationError("history must be NoHistory or HistoricalData", "history")
