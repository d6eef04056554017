# ABOUTME: Detects assessment gaming from a session's signals, timing, hint, and error traces.
# ABOUTME: Combines five weighted detectors into a risk level, response action, and batch report.

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .ccis_calculation import calculate_raw_score
from .config import DEFAULT_CONFIG, EngineConfig
from .features import coefficient_of_variation, population_variance
from .schemas import (
    Competency,
    GamingDetectionInput,
    HistoricalData,
    HistoricalSession,
    Priority,
    competency_key,
)

logger = logging.getLogger(__name__)

REPORT_COLUMNS = [
    "session_id",
    "person_id",
    "competency",
    "risk_level",
    "overall_risk_score",
    "pattern_type",
    "pattern_confidence",
    "recommended_action",
    "human_review_required",
]


class GamingPatternType(str, Enum):
    HINT_ABUSE = "HINT_ABUSE"
    PERFECT_PERFORMANCE = "PERFECT_PERFORMANCE"
    SPEED_GAMING = "SPEED_GAMING"
    PATTERN_REPETITION = "PATTERN_REPETITION"
    VARIANCE_ANOMALY = "VARIANCE_ANOMALY"
    TIME_MANIPULATION = "TIME_MANIPULATION"
    EXTERNAL_ASSISTANCE = "EXTERNAL_ASSISTANCE"
    IMPOSSIBLE_IMPROVEMENT = "IMPOSSIBLE_IMPROVEMENT"


class GamingRiskLevel(str, Enum):
    NONE = "NONE"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class GamingResponseAction(str, Enum):
    NO_ACTION = "NO_ACTION"
    MONITOR_CLOSELY = "MONITOR_CLOSELY"
    EXTEND_ASSESSMENT = "EXTEND_ASSESSMENT"
    FLAG_FOR_REVIEW = "FLAG_FOR_REVIEW"
    INVALIDATE_SESSION = "INVALIDATE_SESSION"


_RESPONSE_BY_RISK = {
    GamingRiskLevel.CRITICAL: GamingResponseAction.INVALIDATE_SESSION,
    GamingRiskLevel.HIGH: GamingResponseAction.FLAG_FOR_REVIEW,
    GamingRiskLevel.MEDIUM: GamingResponseAction.EXTEND_ASSESSMENT,
    GamingRiskLevel.LOW: GamingResponseAction.MONITOR_CLOSELY,
    GamingRiskLevel.NONE: GamingResponseAction.NO_ACTION,
}

_PRIORITY_BY_RISK = {
    GamingRiskLevel.CRITICAL: Priority.IMMEDIATE,
    GamingRiskLevel.HIGH: Priority.HIGH,
    GamingRiskLevel.MEDIUM: Priority.MEDIUM,
    GamingRiskLevel.LOW: Priority.LOW,
    GamingRiskLevel.NONE: Priority.LOW,
}


@dataclass(frozen=True)
class DetectorFinding:
    is_anomalous: bool
    confidence: float
    description: str
    evidence: Tuple[str, ...]
    pattern_type: GamingPatternType


@dataclass(frozen=True)
class DetectedPattern:
    pattern_type: GamingPatternType
    confidence: float
    description: str
    evidence: Tuple[str, ...]


@dataclass(frozen=True)
class GamingAnalysisResult:
    session_id: str
    risk_level: GamingRiskLevel
    overall_risk_score: float
    detected_patterns: Tuple[DetectedPattern, ...]
    recommended_action: GamingResponseAction
    intervention_priority: Priority
    human_review_required: bool
    analysis_timestamp: datetime


class _TriggerLog:
    """Collects the triggers one detector fires; the strongest trigger names the finding."""

    def __init__(self, default_pattern: GamingPatternType):
        self.default_pattern = default_pattern
        self.triggers: List[Tuple[GamingPatternType, float, str]] = []
        self.evidence: List[str] = []

    def fire(
        self,
        confidence: float,
        description: str,
        *evidence: str,
        pattern_type: Optional[GamingPatternType] = None,
    ) -> None:
        self.triggers.append((pattern_type or self.default_pattern, confidence, description))
        self.evidence.extend(evidence)

    def finding(self) -> DetectorFinding:
        if not self.triggers:
            return DetectorFinding(False, 0.0, "", (), self.default_pattern)
        pattern_type, confidence, description = max(self.triggers, key=lambda t: t[1])
        return DetectorFinding(True, confidence, description, tuple(self.evidence), pattern_type)


def analyze_variance_patterns(
    detection_input: GamingDetectionInput, config: EngineConfig = DEFAULT_CONFIG
) -> DetectorFinding:
    limits = config.detection
    log = _TriggerLog(GamingPatternType.VARIANCE_ANOMALY)
    values = detection_input.signals.as_vector()
    variance = population_variance(values)

    if variance < limits.low_variance:
        log.fire(
            0.8,
            "Suspiciously consistent performance across all competency areas",
            f"Variance: {variance:.4f} (threshold: {limits.low_variance})",
            "Natural learning shows more variation in performance",
        )
    if variance > limits.high_variance:
        log.fire(
            0.6,
            "Extremely inconsistent performance suggests external interference",
            f"Variance: {variance:.4f} (threshold: {limits.high_variance})",
            "Such high inconsistency may indicate external assistance or gaming",
        )

    perfect = [v for v in values if v > limits.perfect_score]
    if len(perfect) >= limits.perfect_score_count:
        log.fire(
            0.9,
            "Multiple near-perfect scores indicate possible gaming",
            f"{len(perfect)} signals above {limits.perfect_score}",
            "Natural assessment rarely produces multiple perfect scores",
        )
    return log.finding()


def analyze_timing_patterns(
    detection_input: GamingDetectionInput, config: EngineConfig = DEFAULT_CONFIG
) -> DetectorFinding:
    limits = config.detection
    log = _TriggerLog(GamingPatternType.TIME_MANIPULATION)
    timings = detection_input.timing_pattern
    if not timings:
        return log.finding()

    too_fast = sum(1 for t in timings if t < limits.min_task_seconds)
    if too_fast > len(timings) * limits.too_fast_ratio:
        log.fire(
            0.8,
            "Multiple tasks completed suspiciously quickly",
            f"{too_fast}/{len(timings)} tasks under {limits.min_task_seconds:g} seconds",
            "Suggests possible answer sheet or external assistance",
        )

    too_slow = sum(1 for t in timings if t > limits.max_task_seconds)
    if too_slow > 0:
        log.fire(
            0.6,
            "Some tasks took unusually long",
            f"{too_slow} tasks over {limits.max_task_seconds / 60:g} minutes",
            "May indicate external research or consultation",
        )

    if len(timings) >= limits.min_tasks_for_regularity:
        cv = coefficient_of_variation(timings)
        if cv < limits.min_timing_cv:
            log.fire(
                0.7,
                "Suspiciously regular timing pattern",
                f"Coefficient of variation: {cv:.3f} (expected: >{limits.min_timing_cv})",
                "Natural human timing shows more variation",
            )
    return log.finding()


def calculate_performance_consistency(detection_input: GamingDetectionInput) -> float:
    """Inverted four-signal variance; 1.0 means the core signals are identical."""
    signals = detection_input.signals
    variance = population_variance(
        (
            signals.hint_request_frequency,
            signals.error_recovery_speed,
            signals.transfer_success_rate,
            signals.metacognitive_accuracy,
        )
    )
    return max(0.0, 1.0 - variance * 4)


def analyze_performance_patterns(
    detection_input: GamingDetectionInput, config: EngineConfig = DEFAULT_CONFIG
) -> DetectorFinding:
    limits = config.detection
    signals = detection_input.signals
    log = _TriggerLog(GamingPatternType.PERFECT_PERFORMANCE)

    hints = detection_input.hint_usage_pattern
    if hints:
        avg_hints = float(np.mean(hints))
        if avg_hints < limits.low_average_hints and signals.hint_request_frequency < limits.hint_abuse_min:
            log.fire(
                0.7,
                "Unusually low hint usage despite task complexity",
                f"Average hints per task: {avg_hints:.2f}",
                "May indicate prior knowledge of assessment content",
                pattern_type=GamingPatternType.HINT_ABUSE,
            )
        if avg_hints > limits.high_average_hints and signals.transfer_success_rate > limits.high_hint_success:
            log.fire(
                0.6,
                "High hint usage with perfect performance",
                f"Average hints per task: {avg_hints:.2f} with 90%+ success rate",
                "Inconsistent pattern suggests gaming",
                pattern_type=GamingPatternType.HINT_ABUSE,
            )

    errors = detection_input.error_pattern
    if errors:
        error_free = sum(1 for e in errors if e == 0)
        if error_free > len(errors) * limits.error_free_ratio:
            log.fire(
                0.8,
                "Unusually high number of error-free task completions",
                f"{error_free}/{len(errors)} tasks completed without errors",
                "Natural learning includes trial and error",
                pattern_type=GamingPatternType.PERFECT_PERFORMANCE,
            )

    consistency = calculate_performance_consistency(detection_input)
    if consistency > limits.pattern_repetition:
        log.fire(
            0.7,
            "Mechanical consistency in response patterns",
            f"Performance consistency: {consistency * 100:.1f}%",
            "Suggests automated or memorized responses",
            pattern_type=GamingPatternType.PATTERN_REPETITION,
        )
    return log.finding()


def calculate_session_similarity(
    current_score: float, current_duration: float, previous_sessions: Sequence[HistoricalSession]
) -> float:
    """
    Mean similarity between this session and earlier ones.

    Each earlier session is compared on final score (absolute difference) and on
    duration (difference relative to the longer of the two); both parts are equally
    weighted. Returns 0.0 when there is nothing to compare against.
    """

    if not previous_sessions:
        return 0.0
    similarities = []
    for session in previous_sessions:
        score_similarity = 1.0 - abs(current_score - session.final_score)
        longest = max(current_duration, session.session_duration)
        duration_similarity = 1.0 if longest == 0 else 1.0 - abs(current_duration - session.session_duration) / longest
        similarities.append((score_similarity + duration_similarity) / 2)
    return math.fsum(similarities) / len(similarities)


def analyze_historical_consistency(
    detection_input: GamingDetectionInput, config: EngineConfig = DEFAULT_CONFIG
) -> DetectorFinding:
    limits = config.detection
    log = _TriggerLog(GamingPatternType.IMPOSSIBLE_IMPROVEMENT)
    history = detection_input.history
    if not isinstance(history, HistoricalData):
        return log.finding()

    current_score = calculate_raw_score(detection_input.signals, config)
    historical_average = history.average_for(detection_input.competency)
    if historical_average is not None:
        improvement = current_score - historical_average
        if improvement > limits.impossible_improvement:
            log.fire(
                0.8,
                "Dramatic improvement beyond natural learning curve",
                f"Current score: {current_score * 100:.1f}%",
                f"Historical average: {historical_average * 100:.1f}%",
                f"Improvement: {improvement * 100:.1f}% (threshold: {limits.impossible_improvement * 100:g}%)",
                "Such rapid improvement suggests external assistance",
            )

    recent = history.recent_sessions_for(detection_input.competency, limits.similarity_window)
    if recent:
        similarity = calculate_session_similarity(
            current_score, detection_input.signals.assessment_duration, recent
        )
        if similarity > limits.session_similarity:
            log.fire(
                0.9,
                "Current session extremely similar to previous sessions",
                f"Session similarity: {similarity * 100:.1f}%",
                "Suggests copy-paste or memorized responses",
                pattern_type=GamingPatternType.PATTERN_REPETITION,
            )
    return log.finding()


def analyze_metadata_patterns(
    detection_input: GamingDetectionInput, config: EngineConfig = DEFAULT_CONFIG
) -> DetectorFinding:
    limits = config.detection
    log = _TriggerLog(GamingPatternType.EXTERNAL_ASSISTANCE)
    metadata = detection_input.environment

    hour = metadata.time_of_day
    if hour < limits.off_hours_start or hour > limits.off_hours_end:
        log.fire(
            0.3,
            "Assessment taken at unusual hours",
            f"Assessment time: {hour}:00",
            "Off-hours assessment may indicate gaming preparation",
        )

    if metadata.network_stability == "poor":
        score = calculate_raw_score(detection_input.signals, config)
        if score > limits.poor_network_score:
            log.fire(
                0.4,
                "High performance despite poor network conditions",
                "Poor network with excellent performance is unusual",
                "May indicate offline preparation or external tools",
            )
    return log.finding()


def calculate_risk_level(risk_score: float, config: EngineConfig = DEFAULT_CONFIG) -> GamingRiskLevel:
    bounds = config.risk_levels
    if risk_score >= bounds.critical:
        return GamingRiskLevel.CRITICAL
    if risk_score >= bounds.high:
        return GamingRiskLevel.HIGH
    if risk_score >= bounds.medium:
        return GamingRiskLevel.MEDIUM
    if risk_score >= bounds.low:
        return GamingRiskLevel.LOW
    return GamingRiskLevel.NONE


def analyze_session(
    detection_input: GamingDetectionInput, config: EngineConfig = DEFAULT_CONFIG
) -> GamingAnalysisResult:
    """
    Run the five detectors over one session and fold them into a weighted risk score.

    Each anomalous detector contributes confidence x weight; the historical detector
    only runs when the learner has prior sessions.
    """

    weights = config.risk_weights
    detectors = (
        (analyze_variance_patterns, weights.variance_anomaly),
        (analyze_timing_patterns, weights.timing_irregularity),
        (analyze_performance_patterns, weights.performance_pattern),
        (analyze_historical_consistency, weights.historical_consistency),
        (analyze_metadata_patterns, weights.metadata_analysis),
    )

    patterns: List[DetectedPattern] = []
    contributions: List[float] = []
    for detector, weight in detectors:
        finding = detector(detection_input, config)
        logger.debug(
            "%s: anomalous=%s confidence=%.2f", detector.__name__, finding.is_anomalous, finding.confidence
        )
        if not finding.is_anomalous:
            continue
        patterns.append(
            DetectedPattern(
                pattern_type=finding.pattern_type,
                confidence=finding.confidence,
                description=finding.description,
                evidence=finding.evidence,
            )
        )
        contributions.append(finding.confidence * weight)

    risk_score = min(1.0, max(0.0, math.fsum(contributions)))
    risk_level = calculate_risk_level(risk_score, config)
    human_review = risk_level in (GamingRiskLevel.HIGH, GamingRiskLevel.CRITICAL)

    if human_review:
        logger.warning(
            "Session %s flagged %s (risk %.2f): %s",
            detection_input.session_id,
            risk_level.value,
            risk_score,
            ", ".join(p.pattern_type.value for p in patterns),
        )
    else:
        logger.info("Session %s gaming risk %s (%.2f)", detection_input.session_id, risk_level.value, risk_score)

    return GamingAnalysisResult(
        session_id=detection_input.session_id,
        risk_level=risk_level,
        overall_risk_score=risk_score,
        detected_patterns=tuple(patterns),
        recommended_action=_RESPONSE_BY_RISK[risk_level],
        intervention_priority=_PRIORITY_BY_RISK[risk_level],
        human_review_required=human_review,
        analysis_timestamp=datetime.now(timezone.utc),
    )


@dataclass(frozen=True)
class UserGamingProfile:
    person_id: str
    gaming_risk_score: float
    primary_gaming_patterns: Tuple[GamingPatternType, ...]
    suspicious_session_count: int
    last_gaming_detection: Optional[datetime]
    account_status: str  # NORMAL | MONITORED | RESTRICTED | SUSPENDED


def build_user_gaming_profile(person_id: str, analyses: Iterable[GamingAnalysisResult]) -> UserGamingProfile:
    """Summarize a learner's past session analyses into a gaming profile."""
    analyses = list(analyses)
    if not analyses:
        return UserGamingProfile(person_id, 0.0, (), 0, None, "NORMAL")

    risk_score = math.fsum(a.overall_risk_score for a in analyses) / len(analyses)
    pattern_counts = Counter(p.pattern_type for a in analyses for p in a.detected_patterns)
    suspicious = [a for a in analyses if a.risk_level not in (GamingRiskLevel.NONE, GamingRiskLevel.LOW)]
    critical_count = sum(1 for a in analyses if a.risk_level == GamingRiskLevel.CRITICAL)

    if critical_count >= 2:
        status = "SUSPENDED"
    elif risk_score >= 0.6 or len(suspicious) >= 3:
        status = "RESTRICTED"
    elif suspicious:
        status = "MONITORED"
    else:
        status = "NORMAL"

    return UserGamingProfile(
        person_id=person_id,
        gaming_risk_score=risk_score,
        primary_gaming_patterns=tuple(pattern for pattern, _ in pattern_counts.most_common()),
        suspicious_session_count=len(suspicious),
        last_gaming_detection=max((a.analysis_timestamp for a in suspicious), default=None),
        account_status=status,
    )


@dataclass(frozen=True)
class PreventionMeasure:
    measure: str
    effectiveness: float
    implementation_cost: str  # LOW | MEDIUM | HIGH
    description: str


@dataclass(frozen=True)
class DynamicAdjustment:
    trigger: str
    adjustment: str
    expected_impact: str


@dataclass(frozen=True)
class GamingPreventionStrategy:
    competency: str
    risk_factors: Tuple[str, ...]
    prevention_measures: Tuple[PreventionMeasure, ...]
    dynamic_adjustments: Tuple[DynamicAdjustment, ...]
    monitoring_points: Tuple[str, ...]


_DYNAMIC_ADJUSTMENTS = (
    DynamicAdjustment("Rapid completion detected", "Increase task complexity", "Reduce gaming effectiveness"),
    DynamicAdjustment("Perfect performance pattern", "Introduce novel question types", "Test genuine understanding"),
)

_MONITORING_POINTS = (
    "Task completion timing",
    "Hint usage patterns",
    "Error recovery behavior",
    "Cross-session consistency",
)


def generate_prevention_strategy(profile: UserGamingProfile, competency: Competency) -> GamingPreventionStrategy:
    risk_factors: List[str] = []
    measures: List[PreventionMeasure] = []
    patterns = set(profile.primary_gaming_patterns)

    if profile.gaming_risk_score > 0.7:
        risk_factors.append("High historical gaming risk")

    if GamingPatternType.HINT_ABUSE in patterns:
        risk_factors.append("Previous hint system abuse")
        measures.append(
            PreventionMeasure(
                "Dynamic hint availability", 0.8, "MEDIUM", "Adjust hint availability based on performance"
            )
        )

    if patterns & {GamingPatternType.SPEED_GAMING, GamingPatternType.TIME_MANIPULATION}:
        risk_factors.append("Tendency for rapid completion")
        measures.append(
            PreventionMeasure(
                "Minimum task time enforcement", 0.7, "LOW", "Require minimum time before task submission"
            )
        )

    measures.append(
        PreventionMeasure("Randomized question ordering", 0.6, "LOW", "Prevent memorization of question sequences")
    )
    measures.append(
        PreventionMeasure("Real-time behavior monitoring", 0.9, "HIGH", "Continuous analysis of assessment behavior")
    )

    return GamingPreventionStrategy(
        competency=competency_key(competency),
        risk_factors=tuple(risk_factors),
        prevention_measures=tuple(measures),
        dynamic_adjustments=_DYNAMIC_ADJUSTMENTS,
        monitoring_points=_MONITORING_POINTS,
    )


def generate_gaming_report(
    detection_inputs: Iterable[GamingDetectionInput], config: EngineConfig = DEFAULT_CONFIG
) -> pd.DataFrame:
    """One row per detected pattern; sessions with no pattern still get a single row."""
    rows: List[Dict] = []
    for detection_input in detection_inputs:
        analysis = analyze_session(detection_input, config)
        base = {
            "session_id": analysis.session_id,
            "person_id": detection_input.person_id,
            "competency": competency_key(detection_input.competency),
            "risk_level": analysis.risk_level.value,
            "overall_risk_score": round(analysis.overall_risk_score, 4),
            "recommended_action": analysis.recommended_action.value,
            "human_review_required": analysis.human_review_required,
        }
        if not analysis.detected_patterns:
            rows.append({**base, "pattern_type": None, "pattern_confidence": 0.0})
        for pattern in analysis.detected_patterns:
            rows.append({**base, "pattern_type": pattern.pattern_type.value, "pattern_confidence": pattern.confidence})
    return pd.DataFrame(rows, columns=REPORT_COLUMNS)
