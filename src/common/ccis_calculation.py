# ABOUTME: Maps behavioral signals to a weighted CCIS score, a 1-4 level, and a confidence estimate.
# ABOUTME: Carries the lightweight gaming checks and intervention rules that ride along with each result.

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Mapping, Tuple

from .config import DEFAULT_CONFIG, EngineConfig
from .errors import CCISValidationError
from .features import population_variance
from .schemas import BehavioralSignals, CCISLevel, ConfidenceScore

logger = logging.getLogger(__name__)

# Breakdown key -> signal attribute, in weight order.
BREAKDOWN_SIGNALS: Tuple[Tuple[str, str], ...] = (
    ("hint_frequency", "hint_request_frequency"),
    ("error_recovery", "error_recovery_speed"),
    ("transfer_success", "transfer_success_rate"),
    ("metacognitive", "metacognitive_accuracy"),
    ("efficiency", "task_completion_efficiency"),
    ("help_seeking", "help_seeking_quality"),
    ("self_assessment", "self_assessment_alignment"),
)


@dataclass(frozen=True)
class SignalContribution:
    score: float
    weight: float
    contribution: float


@dataclass(frozen=True)
class CCISCalculationResult:
    level: CCISLevel
    raw_score: float
    confidence: ConfidenceScore
    breakdown: Mapping[str, SignalContribution]
    gaming_detected: bool
    intervention_needed: bool
    calculated_at: datetime


class GamingType(str, Enum):
    HINT_ABUSE = "HINT_ABUSE"
    PERFECT_PATTERNS = "PERFECT_PATTERNS"
    RAPID_COMPLETION = "RAPID_COMPLETION"
    INCONSISTENT_PERFORMANCE = "INCONSISTENT_PERFORMANCE"
    NONE = "NONE"


class GamingAction(str, Enum):
    FLAG_REVIEW = "FLAG_REVIEW"
    EXTEND_ASSESSMENT = "EXTEND_ASSESSMENT"
    ADJUST_SCAFFOLDING = "ADJUST_SCAFFOLDING"
    NONE = "NONE"


@dataclass(frozen=True)
class GamingCheckResult:
    is_gaming: bool
    gaming_type: GamingType
    confidence: float
    patterns: Tuple[str, ...]
    recommended_action: GamingAction


class InterventionType(str, Enum):
    SCAFFOLDING_INCREASE = "SCAFFOLDING_INCREASE"
    SCAFFOLDING_DECREASE = "SCAFFOLDING_DECREASE"
    EXPERT_GUIDANCE = "EXPERT_GUIDANCE"
    BREAK_RECOMMENDED = "BREAK_RECOMMENDED"
    NONE = "NONE"


class Urgency(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


@dataclass(frozen=True)
class InterventionRecommendation:
    intervention_type: InterventionType
    urgency: Urgency
    reason: str
    suggested_actions: Tuple[str, ...]
    estimated_effectiveness: float


def signal_breakdown(
    signals: BehavioralSignals, config: EngineConfig = DEFAULT_CONFIG
) -> Dict[str, SignalContribution]:
    breakdown = {}
    for key, attribute in BREAKDOWN_SIGNALS:
        score = getattr(signals, attribute)
        weight = getattr(config.signal_weights, key)
        breakdown[key] = SignalContribution(score=score, weight=weight, contribution=score * weight)
    return breakdown


def calculate_raw_score(signals: BehavioralSignals, config: EngineConfig = DEFAULT_CONFIG) -> float:
    """Weighted sum of the seven signals, in [0, 1]."""
    return _score_from_breakdown(signal_breakdown(signals, config))


def map_score_to_level(score: float, config: EngineConfig = DEFAULT_CONFIG) -> CCISLevel:
    if not isinstance(score, (int, float)) or not math.isfinite(score) or not 0.0 <= score <= 1.0:
        raise CCISValidationError(f"CCIS score must be within [0, 1], got {score!r}", "raw_score")
    bounds = config.level_thresholds
    if score <= bounds.level_1_max:
        return CCISLevel(1)
    if score <= bounds.level_2_max:
        return CCISLevel(2)
    if score <= bounds.level_3_max:
        return CCISLevel(3)
    return CCISLevel(4)


def calculate_confidence_score(
    signals: BehavioralSignals, config: EngineConfig = DEFAULT_CONFIG
) -> ConfidenceScore:
    """
    Blend evidence volume, assessment length, and signal consistency.

    consistency = max(0, 1 - variance) over all seven signals, so a learner whose
    signals disagree wildly earns less confidence than one with a coherent profile.
    """

    weights = config.confidence
    evidence_amount = min(1.0, signals.task_count / weights.full_evidence_tasks)
    duration_amount = min(1.0, signals.assessment_duration / weights.full_duration_minutes)
    consistency = max(0.0, 1.0 - population_variance(signals.as_vector()))

    confidence = (
        evidence_amount * weights.evidence
        + duration_amount * weights.duration
        + consistency * weights.consistency
    )
    percentage = _round_half_up(confidence * 100)
    return ConfidenceScore(float(min(100, max(0, percentage))))


def detect_gaming_patterns(signals: BehavioralSignals, config: EngineConfig = DEFAULT_CONFIG) -> GamingCheckResult:
    rules = config.gaming_rules
    fired: List[Tuple[GamingType, float, str]] = []

    if signals.hint_request_frequency < rules.hint_abuse:
        fired.append((GamingType.HINT_ABUSE, 0.7, "Unusually low hint usage"))

    perfect = [
        value
        for value in (signals.error_recovery_speed, signals.transfer_success_rate, signals.metacognitive_accuracy)
        if value > rules.perfect_pattern
    ]
    if len(perfect) >= rules.perfect_pattern_count:
        fired.append((GamingType.PERFECT_PATTERNS, 0.8, "Suspiciously perfect performance patterns"))

    if (
        signals.task_completion_efficiency > rules.rapid_efficiency
        and signals.assessment_duration < rules.rapid_duration_minutes
    ):
        fired.append((GamingType.RAPID_COMPLETION, 0.6, "Unusually rapid task completion"))

    consistency_signals = (
        signals.hint_request_frequency,
        signals.error_recovery_speed,
        signals.transfer_success_rate,
        signals.metacognitive_accuracy,
    )
    if population_variance(consistency_signals) < rules.low_variance:
        fired.append((GamingType.INCONSISTENT_PERFORMANCE, 0.5, "Unusually consistent signal patterns"))

    if fired:
        # max() keeps the first of equally confident rules.
        gaming_type, confidence, _ = max(fired, key=lambda rule: rule[1])
    else:
        gaming_type, confidence = GamingType.NONE, 0.0

    if confidence > rules.flag_review:
        action = GamingAction.FLAG_REVIEW
    elif confidence > rules.extend_assessment:
        action = GamingAction.EXTEND_ASSESSMENT
    elif confidence > rules.adjust_scaffolding:
        action = GamingAction.ADJUST_SCAFFOLDING
    else:
        action = GamingAction.NONE

    return GamingCheckResult(
        is_gaming=confidence > rules.is_gaming,
        gaming_type=gaming_type,
        confidence=confidence,
        patterns=tuple(description for _, _, description in fired),
        recommended_action=action,
    )


def needs_intervention(signals: BehavioralSignals, config: EngineConfig = DEFAULT_CONFIG) -> bool:
    limits = config.intervention
    return (
        signals.hint_request_frequency > limits.hint_dependency_high
        or signals.error_recovery_speed < limits.error_recovery_poor
        or signals.transfer_success_rate < limits.transfer_failure_high
        or signals.task_completion_efficiency < limits.efficiency_very_low
    )


def generate_intervention_recommendation(
    signals: BehavioralSignals, config: EngineConfig = DEFAULT_CONFIG
) -> InterventionRecommendation:
    """Return the single highest-priority intervention that applies to these signals."""
    limits = config.intervention

    if signals.hint_request_frequency > limits.hint_dependency_high:
        return InterventionRecommendation(
            intervention_type=InterventionType.SCAFFOLDING_DECREASE,
            urgency=Urgency.MEDIUM,
            reason="High hint dependency detected - learner may be over-relying on support",
            suggested_actions=(
                "Gradually reduce hint availability",
                "Encourage independent problem-solving",
                "Provide reflection prompts before hints",
            ),
            estimated_effectiveness=0.75,
        )

    if signals.error_recovery_speed < limits.error_recovery_poor:
        return InterventionRecommendation(
            intervention_type=InterventionType.EXPERT_GUIDANCE,
            urgency=Urgency.HIGH,
            reason="Poor error recovery indicates conceptual gaps",
            suggested_actions=(
                "Schedule one-on-one mentoring session",
                "Provide targeted concept review",
                "Use worked examples and guided practice",
            ),
            estimated_effectiveness=0.85,
        )

    if signals.transfer_success_rate < limits.transfer_failure_high:
        return InterventionRecommendation(
            intervention_type=InterventionType.SCAFFOLDING_INCREASE,
            urgency=Urgency.MEDIUM,
            reason="Low transfer success suggests need for more structured support",
            suggested_actions=(
                "Provide more concrete examples",
                "Break tasks into smaller steps",
                "Use analogical reasoning exercises",
            ),
            estimated_effectiveness=0.7,
        )

    if signals.task_completion_efficiency < limits.efficiency_very_low:
        return InterventionRecommendation(
            intervention_type=InterventionType.BREAK_RECOMMENDED,
            urgency=Urgency.LOW,
            reason="Learning plateau detected - break may improve performance",
            suggested_actions=(
                "Take a 15-minute break",
                "Switch to a different competency",
                "Engage in physical activity",
            ),
            estimated_effectiveness=0.6,
        )

    return InterventionRecommendation(
        intervention_type=InterventionType.NONE,
        urgency=Urgency.LOW,
        reason="Performance within acceptable range",
        suggested_actions=("Continue current learning approach",),
        estimated_effectiveness=0.5,
    )


def calculate_ccis_level(signals: BehavioralSignals, config: EngineConfig = DEFAULT_CONFIG) -> CCISCalculationResult:
    """
    Score one competency: weighted raw score, level, confidence, and the gaming and
    intervention flags derived from the same signals.
    """

    breakdown = signal_breakdown(signals, config)
    raw_score = _score_from_breakdown(breakdown)
    level = map_score_to_level(raw_score, config)
    confidence = calculate_confidence_score(signals, config)
    gaming = detect_gaming_patterns(signals, config)
    intervention = needs_intervention(signals, config)

    logger.debug(
        "CCIS score %.4f -> level %d (confidence %.0f%%, gaming=%s, intervention=%s)",
        raw_score,
        level.level,
        confidence.percentage,
        gaming.gaming_type.value,
        intervention,
    )
    return CCISCalculationResult(
        level=level,
        raw_score=raw_score,
        confidence=confidence,
        breakdown=breakdown,
        gaming_detected=gaming.is_gaming,
        intervention_needed=intervention,
        calculated_at=datetime.now(timezone.utc),
    )


def _score_from_breakdown(breakdown: Mapping[str, SignalContribution]) -> float:
    return min(1.0, max(0.0, math.fsum(c.contribution for c in breakdown.values())))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
