# ABOUTME: Chooses the scaffolding (hints, complexity, feedback, timing) for a learner's next task.
# ABOUTME: Layers level baselines, cultural and performance overrides, gaming restrictions, and trajectories.

from __future__ import annotations

import logging
import uuid
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .ccis_calculation import calculate_raw_score
from .config import DEFAULT_CONFIG, EngineConfig
from .errors import BusinessRuleError, CCISValidationError
from .gaming_detection import GamingAnalysisResult, GamingRiskLevel
from .schemas import CCISLevel, CulturalContext, PerformanceIndicators, Priority, Region

logger = logging.getLogger(__name__)

_CHOICES = {
    "frequency": ("unlimited", "limited", "strategic", "none"),
    "quality": ("basic", "detailed", "adaptive", "minimal"),
    "timing": ("immediate", "delayed", "request_only"),
    "level": ("basic", "intermediate", "advanced", "expert"),
    "abstraction_level": ("concrete", "semi_abstract", "abstract"),
    "feedback_frequency": ("continuous", "milestone", "completion", "none"),
    "detail": ("minimal", "standard", "comprehensive"),
    "error_correction": ("immediate", "guided", "self_discovery"),
    "reinforcement": ("positive", "constructive", "neutral"),
    "pressure": ("none", "light", "moderate", "high"),
    "pacing": ("self_paced", "guided", "fixed"),
    "communication_style": ("direct", "indirect", "contextual"),
    "authority_structure": ("hierarchical", "collaborative", "individual"),
    "learning_preference": ("visual", "auditory", "kinesthetic", "mixed"),
}


def _check(name: str, value: str, choice_key: Optional[str] = None) -> None:
    choices = _CHOICES[choice_key or name]
    if value not in choices:
        raise CCISValidationError(f"{name} must be one of {list(choices)}, got {value!r}", name)


@dataclass(frozen=True)
class HintAvailability:
    enabled: bool
    frequency: str
    quality: str
    timing: str

    def __post_init__(self) -> None:
        _check("frequency", self.frequency)
        _check("quality", self.quality)
        _check("timing", self.timing)


@dataclass(frozen=True)
class TaskComplexity:
    level: str
    adaptive_difficulty: bool
    multi_step: bool
    abstraction_level: str

    def __post_init__(self) -> None:
        _check("level", self.level)
        _check("abstraction_level", self.abstraction_level)


@dataclass(frozen=True)
class FeedbackSettings:
    frequency: str
    detail: str
    error_correction: str
    reinforcement: str

    def __post_init__(self) -> None:
        _check("frequency", self.frequency, "feedback_frequency")
        _check("detail", self.detail)
        _check("error_correction", self.error_correction)
        _check("reinforcement", self.reinforcement)


@dataclass(frozen=True)
class TimeManagement:
    pressure: str
    extensions: bool
    warnings: bool
    pacing: str

    def __post_init__(self) -> None:
        _check("pressure", self.pressure)
        _check("pacing", self.pacing)


@dataclass(frozen=True)
class CulturalAdaptations:
    communication_style: str
    authority_structure: str
    learning_preference: str

    def __post_init__(self) -> None:
        _check("communication_style", self.communication_style)
        _check("authority_structure", self.authority_structure)
        _check("learning_preference", self.learning_preference)


_SECTION_TYPES = {
    "hint_availability": HintAvailability,
    "task_complexity": TaskComplexity,
    "feedback_settings": FeedbackSettings,
    "time_management": TimeManagement,
    "cultural_adaptations": CulturalAdaptations,
}


@dataclass(frozen=True)
class ScaffoldingConfiguration:
    """Support policy for one task. Immutable; derive variants with `dataclasses.replace`."""

    hint_availability: HintAvailability
    task_complexity: TaskComplexity
    feedback_settings: FeedbackSettings
    time_management: TimeManagement
    cultural_adaptations: CulturalAdaptations

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Mapping[str, Any]]) -> "ScaffoldingConfiguration":
        missing = [name for name in _SECTION_TYPES if name not in data]
        if missing:
            raise CCISValidationError(f"Scaffolding configuration missing sections: {missing}", missing[0])
        sections = {}
        for name, section_type in _SECTION_TYPES.items():
            try:
                sections[name] = section_type(**data[name])
            except TypeError as exc:
                raise CCISValidationError(f"Invalid scaffolding section '{name}': {exc}", name) from exc
        return cls(**sections)


def _baseline(
    hints: Tuple[bool, str, str, str],
    complexity: Tuple[str, bool, bool, str],
    feedback: Tuple[str, str, str, str],
    timing: Tuple[str, bool, bool, str],
    culture: Tuple[str, str, str],
) -> ScaffoldingConfiguration:
    return ScaffoldingConfiguration(
        hint_availability=HintAvailability(*hints),
        task_complexity=TaskComplexity(*complexity),
        feedback_settings=FeedbackSettings(*feedback),
        time_management=TimeManagement(*timing),
        cultural_adaptations=CulturalAdaptations(*culture),
    )


# Level 1 gives the most support, level 4 none.
BASELINE_SCAFFOLDING: Mapping[int, ScaffoldingConfiguration] = MappingProxyType(
    {
        1: _baseline(
            (True, "unlimited", "detailed", "immediate"),
            ("basic", True, False, "concrete"),
            ("continuous", "comprehensive", "immediate", "positive"),
            ("none", True, True, "self_paced"),
            ("contextual", "collaborative", "mixed"),
        ),
        2: _baseline(
            (True, "limited", "adaptive", "delayed"),
            ("intermediate", True, True, "semi_abstract"),
            ("milestone", "standard", "guided", "constructive"),
            ("light", True, True, "guided"),
            ("direct", "collaborative", "visual"),
        ),
        3: _baseline(
            (True, "strategic", "minimal", "request_only"),
            ("advanced", False, True, "abstract"),
            ("completion", "minimal", "self_discovery", "neutral"),
            ("moderate", False, False, "fixed"),
            ("direct", "individual", "mixed"),
        ),
        4: _baseline(
            (False, "none", "minimal", "request_only"),
            ("expert", False, True, "abstract"),
            ("completion", "minimal", "self_discovery", "neutral"),
            ("high", False, False, "fixed"),
            ("direct", "individual", "mixed"),
        ),
    }
)


class ScaffoldingIntensity(str, Enum):
    NONE = "NONE"
    MINIMAL = "MINIMAL"
    MODERATE = "MODERATE"
    EXTENSIVE = "EXTENSIVE"
    EMERGENCY = "EMERGENCY"


_INTENSITY_BY_LEVEL = {
    1: ScaffoldingIntensity.EXTENSIVE,
    2: ScaffoldingIntensity.MODERATE,
    3: ScaffoldingIntensity.MINIMAL,
    4: ScaffoldingIntensity.NONE,
}


class AdjustmentReason(str, Enum):
    CCIS_LEVEL_CHANGE = "CCIS_LEVEL_CHANGE"
    RAPID_ADVANCEMENT = "RAPID_ADVANCEMENT"
    GAMING_DETECTION = "GAMING_DETECTION"
    FRUSTRATION_INDICATORS = "FRUSTRATION_INDICATORS"
    CULTURAL_ADAPTATION = "CULTURAL_ADAPTATION"
    CONFIDENCE_FLUCTUATION = "CONFIDENCE_FLUCTUATION"


@dataclass(frozen=True)
class PredictedImpact:
    learning_velocity: float
    competency_growth: float
    engagement_level: float
    frustration_reduction: float


@dataclass(frozen=True)
class TrajectoryMilestone:
    milestone: str
    estimated_minutes: float
    required_scaffolding: ScaffoldingIntensity
    success_probability: float


@dataclass(frozen=True)
class LearningTrajectory:
    current_level: CCISLevel
    current_score: float
    mastery_indicators: Tuple[str, ...]
    target_level: CCISLevel
    estimated_hours: float
    required_interventions: Tuple[str, ...]
    milestones: Tuple[TrajectoryMilestone, ...]
    risk_factors: Tuple[str, ...]
    acceleration_opportunities: Tuple[str, ...]


@dataclass(frozen=True)
class ScaffoldingAdjustment:
    adjustment_id: str
    reason: AdjustmentReason
    previous_configuration: ScaffoldingConfiguration
    new_configuration: ScaffoldingConfiguration
    expected_outcome: str
    confidence_level: float
    implemented_at: datetime
    estimated_effect_minutes: int
    monitoring_metrics: Tuple[str, ...]
    rollback_criteria: Tuple[str, ...]


@dataclass(frozen=True)
class OptimizationResult:
    recommended_configuration: ScaffoldingConfiguration
    adjustment_reasoning: Tuple[str, ...]
    predicted_impact: PredictedImpact
    implementation_priority: Priority
    cultural_sensitivity: float
    adaptation_confidence: float
    gaming_adjustment: Optional[ScaffoldingAdjustment] = None
    trajectory: Optional[LearningTrajectory] = None


GAMING_MONITORING_METRICS = (
    "task_completion_time",
    "hint_usage_pattern",
    "error_recovery_speed",
    "performance_consistency",
)

GAMING_ROLLBACK_CRITERIA = (
    "Gaming risk drops below MEDIUM",
    "Performance deteriorates beyond acceptable range",
    "User frustration exceeds threshold",
)

# Fixed estimate; not derived from the configuration delta.
_OPTIMAL_IMPACT = PredictedImpact(
    learning_velocity=0.15, competency_growth=0.20, engagement_level=0.10, frustration_reduction=0.25
)


def baseline_configuration(level) -> ScaffoldingConfiguration:
    number = level.level if isinstance(level, CCISLevel) else CCISLevel(level).level
    return BASELINE_SCAFFOLDING[number]


def apply_cultural_adaptations(
    configuration: ScaffoldingConfiguration, cultural: CulturalContext, config: EngineConfig = DEFAULT_CONFIG
) -> ScaffoldingConfiguration:
    weights = config.cultural_weights[Region.parse(cultural.region).value]
    limits = config.cultural_thresholds
    culture = configuration.cultural_adaptations
    feedback = configuration.feedback_settings

    if weights.authority_structure > limits.authority_structure:
        culture = replace(culture, authority_structure="hierarchical")
        feedback = replace(feedback, detail="comprehensive")
    if weights.collaborative > limits.collaborative:
        culture = replace(culture, learning_preference="mixed")
    if weights.formal_communication > limits.formal_communication:
        culture = replace(culture, communication_style="direct")

    return replace(configuration, cultural_adaptations=culture, feedback_settings=feedback)


def apply_performance_adjustments(
    configuration: ScaffoldingConfiguration,
    performance: PerformanceIndicators,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ScaffoldingConfiguration:
    limits = config.performance
    hints = configuration.hint_availability
    complexity = configuration.task_complexity
    feedback = configuration.feedback_settings
    timing = configuration.time_management

    if performance.frustration_level > limits.high_frustration:
        hints = replace(hints, enabled=True, frequency="unlimited")
        timing = replace(timing, pressure="none")
        feedback = replace(feedback, reinforcement="positive")
    if performance.confidence_level < limits.low_confidence:
        feedback = replace(feedback, frequency="continuous", detail="comprehensive")
        complexity = replace(complexity, level="basic")
    if performance.engagement_level < limits.low_engagement:
        complexity = replace(complexity, adaptive_difficulty=True)
        timing = replace(timing, pacing="self_paced")

    return replace(
        configuration,
        hint_availability=hints,
        task_complexity=complexity,
        feedback_settings=feedback,
        time_management=timing,
    )


def determine_implementation_priority(
    performance: PerformanceIndicators, config: EngineConfig = DEFAULT_CONFIG
) -> Priority:
    limits = config.performance
    if performance.frustration_level > limits.immediate_frustration or performance.engagement_level < limits.immediate_engagement:
        return Priority.IMMEDIATE
    if performance.confidence_level < limits.low_confidence or performance.recent_trend == "declining":
        return Priority.HIGH
    if performance.learning_velocity < limits.slow_velocity:
        return Priority.MEDIUM
    return Priority.LOW


def calculate_cultural_sensitivity(cultural: CulturalContext) -> float:
    region_specificity = 0.8 if cultural.region != Region.GLOBAL else 0.5
    style_specificity = 0.7 if cultural.learning_style != "collaborative" else 0.5
    return (region_specificity + style_specificity) / 2


def calculate_adaptation_confidence(performance: PerformanceIndicators, cultural: CulturalContext) -> float:
    confidence = 0.7
    if performance.recent_trend != "stable":
        confidence += 0.1
    if cultural.region != Region.GLOBAL:
        confidence += 0.1
    return min(1.0, confidence)


def _adjustment_reasoning(
    performance: PerformanceIndicators, cultural: CulturalContext
) -> List[str]:
    reasoning = [
        f"Base configuration determined by CCIS Level {performance.current_level.level}",
        f"Cultural adaptations applied for {Region.parse(cultural.region).value} context",
    ]
    if performance.frustration_level > 0.6:
        reasoning.append("Increased support due to elevated frustration levels")
    if performance.confidence_level < 0.5:
        reasoning.append("Enhanced feedback and guidance for confidence building")
    return reasoning


def calculate_optimal_scaffolding(
    performance: PerformanceIndicators,
    cultural: CulturalContext,
    previous_configuration: Optional[ScaffoldingConfiguration] = None,
    *,
    gaming_result: Optional[GamingAnalysisResult] = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> OptimizationResult:
    """
    Build the next-task configuration in stages; each stage overrides the fields it touches.

    1. Baseline for the learner's current level.
    2. Regional cultural adaptations.
    3. Performance overrides (frustration, confidence, engagement).
    4. Gaming restrictions, when a gaming analysis is supplied.

    `previous_configuration` is accepted for callers that track the last applied
    configuration; the impact estimate does not depend on it.
    """

    configuration = baseline_configuration(performance.current_level)
    configuration = apply_cultural_adaptations(configuration, cultural, config)
    configuration = apply_performance_adjustments(configuration, performance, config)

    reasoning = _adjustment_reasoning(performance, cultural)
    gaming_adjustment = None
    if gaming_result is not None:
        gaming_adjustment = adjust_for_gaming(configuration, gaming_result)
        configuration = gaming_adjustment.new_configuration
        if gaming_result.risk_level in _GAMING_OVERRIDES:
            reasoning.append(f"Gaming restrictions applied for {gaming_result.risk_level.value} risk")

    priority = determine_implementation_priority(performance, config)
    logger.info(
        "Scaffolding for level %d (%s): hints=%s/%s complexity=%s priority=%s",
        performance.current_level.level,
        Region.parse(cultural.region).value,
        configuration.hint_availability.enabled,
        configuration.hint_availability.frequency,
        configuration.task_complexity.level,
        priority.value,
    )
    return OptimizationResult(
        recommended_configuration=configuration,
        adjustment_reasoning=tuple(reasoning),
        predicted_impact=_OPTIMAL_IMPACT,
        implementation_priority=priority,
        cultural_sensitivity=calculate_cultural_sensitivity(cultural),
        adaptation_confidence=calculate_adaptation_confidence(performance, cultural),
        gaming_adjustment=gaming_adjustment,
    )


def _critical_restrictions(configuration: ScaffoldingConfiguration) -> ScaffoldingConfiguration:
    return replace(
        configuration,
        hint_availability=replace(configuration.hint_availability, enabled=False),
        task_complexity=replace(configuration.task_complexity, level="expert", adaptive_difficulty=False),
        feedback_settings=replace(configuration.feedback_settings, frequency="completion"),
        time_management=replace(configuration.time_management, pressure="high", extensions=False),
    )


def _high_restrictions(configuration: ScaffoldingConfiguration) -> ScaffoldingConfiguration:
    return replace(
        configuration,
        hint_availability=replace(configuration.hint_availability, frequency="strategic", quality="minimal"),
        task_complexity=replace(configuration.task_complexity, level="advanced"),
        feedback_settings=replace(configuration.feedback_settings, frequency="milestone"),
        time_management=replace(configuration.time_management, pressure="moderate"),
    )


def _medium_restrictions(configuration: ScaffoldingConfiguration) -> ScaffoldingConfiguration:
    return replace(
        configuration,
        hint_availability=replace(configuration.hint_availability, frequency="limited", timing="delayed"),
        task_complexity=replace(configuration.task_complexity, adaptive_difficulty=False),
        time_management=replace(configuration.time_management, pressure="light"),
    )


_GAMING_OVERRIDES = {
    GamingRiskLevel.CRITICAL: _critical_restrictions,
    GamingRiskLevel.HIGH: _high_restrictions,
    GamingRiskLevel.MEDIUM: _medium_restrictions,
}


def adjust_for_gaming(
    current_configuration: ScaffoldingConfiguration, gaming_result: GamingAnalysisResult
) -> ScaffoldingAdjustment:
    """Restrict support according to gaming risk; LOW and NONE leave the configuration as is."""
    override = _GAMING_OVERRIDES.get(gaming_result.risk_level)
    new_configuration = override(current_configuration) if override else current_configuration
    if override:
        logger.info(
            "Gaming restrictions (%s) applied for session %s", gaming_result.risk_level.value, gaming_result.session_id
        )

    return ScaffoldingAdjustment(
        adjustment_id=f"gaming_adjustment_{uuid.uuid4().hex}",
        reason=AdjustmentReason.GAMING_DETECTION,
        previous_configuration=current_configuration,
        new_configuration=new_configuration,
        expected_outcome=f"Mitigate gaming risk level: {gaming_result.risk_level.value}",
        confidence_level=0.9,
        implemented_at=datetime.now(timezone.utc),
        estimated_effect_minutes=30,
        monitoring_metrics=GAMING_MONITORING_METRICS,
        rollback_criteria=GAMING_ROLLBACK_CRITERIA,
    )


def assess_advancement_readiness(
    performance: PerformanceIndicators, config: EngineConfig = DEFAULT_CONFIG
) -> float:
    weights = config.advancement
    signals = performance.signals
    readiness = (
        signals.transfer_success_rate * weights.transfer_success
        + performance.confidence_level * weights.confidence
        + performance.learning_velocity * weights.learning_velocity
        + signals.error_recovery_speed * weights.error_recovery
        + performance.engagement_level * weights.engagement
    )
    return min(1.0, max(0.0, readiness))


def optimize_for_advancement(
    performance: PerformanceIndicators,
    current_configuration: ScaffoldingConfiguration,
    target_level,
    config: EngineConfig = DEFAULT_CONFIG,
) -> OptimizationResult:
    """
    Tune support toward a target level based on how ready the learner is to advance.

    Readiness above 0.8 removes support to raise the challenge, 0.6-0.8 keeps a balanced
    setup, and anything lower keeps hints on with continuous feedback.
    """

    target_level = target_level if isinstance(target_level, CCISLevel) else CCISLevel(target_level)
    weights = config.advancement
    readiness = assess_advancement_readiness(performance, config)
    hints = current_configuration.hint_availability
    complexity = current_configuration.task_complexity
    feedback = current_configuration.feedback_settings
    timing = current_configuration.time_management

    if readiness > weights.high_readiness:
        hints = replace(hints, frequency="strategic")
        complexity = replace(complexity, level="advanced")
        timing = replace(timing, pressure="moderate")
        reasoning = "High advancement readiness detected - reducing scaffolding for optimal challenge"
    elif readiness > weights.moderate_readiness:
        hints = replace(hints, frequency="limited")
        complexity = replace(complexity, adaptive_difficulty=True)
        reasoning = "Moderate advancement readiness - maintaining balanced scaffolding"
    else:
        # Enabled hints with a 'none' frequency would be contradictory.
        frequency = "limited" if hints.frequency == "none" else hints.frequency
        hints = replace(hints, enabled=True, frequency=frequency)
        feedback = replace(feedback, frequency="continuous")
        reasoning = "Low advancement readiness - maintaining supportive scaffolding"

    configuration = replace(
        current_configuration,
        hint_availability=hints,
        task_complexity=complexity,
        feedback_settings=feedback,
        time_management=timing,
    )
    trajectory = calculate_learning_trajectory(performance, target_level, config)
    logger.info("Advancement readiness %.2f toward level %d", readiness, target_level.level)

    return OptimizationResult(
        recommended_configuration=configuration,
        adjustment_reasoning=(reasoning,),
        predicted_impact=PredictedImpact(
            learning_velocity=readiness * 0.3,
            competency_growth=readiness * 0.25,
            engagement_level=readiness * 0.2,
            frustration_reduction=readiness * 0.15,
        ),
        implementation_priority=Priority.HIGH if readiness > weights.high_readiness else Priority.MEDIUM,
        cultural_sensitivity=0.7,
        adaptation_confidence=readiness,
        trajectory=trajectory,
    )


def calculate_learning_trajectory(
    performance: PerformanceIndicators, target_level, config: EngineConfig = DEFAULT_CONFIG
) -> LearningTrajectory:
    target_level = target_level if isinstance(target_level, CCISLevel) else CCISLevel(target_level)
    current_level = performance.current_level
    difference = target_level.level - current_level.level
    if difference < 0:
        raise BusinessRuleError(
            f"Target level {target_level.level} is below current level {current_level.level}",
            "trajectory_target",
        )

    settings = config.trajectory
    estimated_hours = difference * settings.hours_per_level / max(settings.min_velocity, performance.learning_velocity)

    milestones = []
    for step in range(1, difference + 1):
        level_number = current_level.level + step
        milestones.append(
            TrajectoryMilestone(
                milestone=f"Reach CCIS Level {level_number}",
                estimated_minutes=(step / difference) * estimated_hours * 60,
                required_scaffolding=_INTENSITY_BY_LEVEL.get(level_number, ScaffoldingIntensity.MODERATE),
                success_probability=max(settings.probability_floor, 1 - step * settings.probability_step),
            )
        )

    risk_factors = []
    if performance.frustration_level > 0.7:
        risk_factors.append("High frustration level may impede progress")
    if performance.confidence_level < 0.4:
        risk_factors.append("Low confidence may require additional support")
    if performance.engagement_level < 0.5:
        risk_factors.append("Low engagement may slow advancement")

    opportunities = []
    if performance.learning_velocity > 1.2:
        opportunities.append("High learning velocity - potential for accelerated progression")
    if performance.help_seeking_efficiency > 0.8:
        opportunities.append("Efficient help-seeking - optimize hint strategies")
    if performance.error_recovery_rate > 0.9:
        opportunities.append("Excellent error recovery - increase task complexity")

    signals = performance.signals
    mastery = []
    if signals.transfer_success_rate > 0.8:
        mastery.append("High transfer success rate")
    if signals.error_recovery_speed > 0.8:
        mastery.append("Excellent error recovery")
    if performance.help_seeking_efficiency > 0.8:
        mastery.append("Efficient help-seeking behavior")

    interventions = []
    if performance.frustration_level > 0.6:
        interventions.append("Frustration management support")
    if performance.confidence_level < 0.5:
        interventions.append("Confidence building activities")
    if performance.engagement_level < 0.6:
        interventions.append("Engagement enhancement strategies")

    return LearningTrajectory(
        current_level=current_level,
        current_score=calculate_raw_score(signals, config),
        mastery_indicators=tuple(mastery),
        target_level=target_level,
        estimated_hours=estimated_hours,
        required_interventions=tuple(interventions),
        milestones=tuple(milestones),
        risk_factors=tuple(risk_factors),
        acceleration_opportunities=tuple(opportunities),
    )
