# ABOUTME: Tests session-level gaming detection: detectors, risk scoring, profiles, and reports.
# ABOUTME: Uses synthetic sessions built to trip (or avoid) each detector.

from dataclasses import replace
from datetime import datetime, timezone

import pandas as pd
import pytest

from src.common.gaming_detection import (
    REPORT_COLUMNS,
    GamingAnalysisResult,
    GamingPatternType,
    GamingResponseAction,
    GamingRiskLevel,
    analyze_historical_consistency,
    analyze_metadata_patterns,
    analyze_performance_patterns,
    analyze_session,
    analyze_timing_patterns,
    analyze_variance_patterns,
    build_user_gaming_profile,
    calculate_risk_level,
    calculate_session_similarity,
    generate_gaming_report,
    generate_prevention_strategy,
)
from src.common.schemas import (
    NO_HISTORY,
    BehavioralSignals,
    EnvironmentMetadata,
    GamingDetectionInput,
    HistoricalData,
    HistoricalSession,
    Priority,
)


def _signals(values, duration=30.0):
    names = (
        "hint_request_frequency",
        "error_recovery_speed",
        "transfer_success_rate",
        "metacognitive_accuracy",
        "task_completion_efficiency",
        "help_seeking_quality",
        "self_assessment_alignment",
    )
    return BehavioralSignals(**dict(zip(names, values)), task_count=5, assessment_duration=duration)


def _clean_input(**overrides):
    values = dict(
        session_id="clean",
        person_id="p1",
        competency="teamwork",
        signals=_signals((0.1, 0.9, 0.3, 0.8, 0.2, 0.7, 0.5)),
        timing_pattern=(120, 300, 45, 600, 200),
        hint_usage_pattern=(1, 2, 0, 3, 1),
        error_pattern=(1, 0, 2, 1, 0),
        environment=EnvironmentMetadata(time_of_day=14),
    )
    values.update(overrides)
    return GamingDetectionInput(**values)


def _gamed_input():
    history = HistoricalData(
        previous_sessions=(
            HistoricalSession("old-1", "teamwork", final_score=0.99, session_duration=10.0),
            HistoricalSession("old-2", "teamwork", final_score=0.99, session_duration=10.0),
        ),
        average_performance={"teamwork": 0.5},
    )
    return GamingDetectionInput(
        session_id="gamed",
        person_id="p2",
        competency="teamwork",
        signals=_signals((0.99,) * 7, duration=10.0),
        timing_pattern=(5, 5, 5, 5, 5),
        hint_usage_pattern=(0, 0, 0, 0, 0),
        error_pattern=(0, 0, 0, 0, 0),
        environment=EnvironmentMetadata(time_of_day=3, network_stability="poor"),
        history=history,
    )


def _analysis(risk_level, score, patterns=()):
    return GamingAnalysisResult(
        session_id="s",
        risk_level=risk_level,
        overall_risk_score=score,
        detected_patterns=patterns,
        recommended_action=GamingResponseAction.NO_ACTION,
        intervention_priority=Priority.LOW,
        human_review_required=False,
        analysis_timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_clean_session_has_no_risk():
    result = analyze_session(_clean_input())

    assert result.risk_level == GamingRiskLevel.NONE
    assert result.overall_risk_score == 0.0
    assert result.detected_patterns == ()
    assert result.recommended_action == GamingResponseAction.NO_ACTION
    assert result.intervention_priority == Priority.LOW
    assert result.human_review_required is False


def test_gamed_session_combines_all_detectors():
    result = analyze_session(_gamed_input())

    # 0.9*0.25 + 0.8*0.20 + 0.8*0.20 + 0.9*0.15 + 0.4*0.10
    assert result.overall_risk_score == pytest.approx(0.72)
    assert result.risk_level == GamingRiskLevel.HIGH
    assert result.recommended_action == GamingResponseAction.FLAG_FOR_REVIEW
    assert result.intervention_priority == Priority.HIGH
    assert result.human_review_required is True
    assert [p.pattern_type for p in result.detected_patterns] == [
        GamingPatternType.VARIANCE_ANOMALY,
        GamingPatternType.TIME_MANIPULATION,
        GamingPatternType.PERFECT_PERFORMANCE,
        GamingPatternType.PATTERN_REPETITION,
        GamingPatternType.EXTERNAL_ASSISTANCE,
    ]


@pytest.mark.parametrize(
    "score, level",
    [
        (0.8, GamingRiskLevel.CRITICAL),
        (0.79, GamingRiskLevel.HIGH),
        (0.6, GamingRiskLevel.HIGH),
        (0.4, GamingRiskLevel.MEDIUM),
        (0.2, GamingRiskLevel.LOW),
        (0.19, GamingRiskLevel.NONE),
    ],
)
def test_risk_level_thresholds(score, level):
    assert calculate_risk_level(score) == level


def test_variance_detector_flags_uniform_signals():
    finding = analyze_variance_patterns(_clean_input(signals=_signals((0.5,) * 7)))
    assert finding.is_anomalous
    assert finding.confidence == 0.8
    assert finding.description == "Suspiciously consistent performance across all competency areas"
    assert finding.pattern_type == GamingPatternType.VARIANCE_ANOMALY


def test_timing_detector_flags_slow_task_only():
    finding = analyze_timing_patterns(_clean_input(timing_pattern=(100, 2000, 150)))
    assert finding.is_anomalous
    assert finding.confidence == 0.6
    assert "1 tasks over 30 minutes" in finding.evidence


def test_timing_regularity_needs_two_tasks():
    assert not analyze_timing_patterns(_clean_input(timing_pattern=(60,))).is_anomalous
    assert not analyze_timing_patterns(_clean_input(timing_pattern=(60, 120))).is_anomalous

    regular = analyze_timing_patterns(_clean_input(timing_pattern=(60, 60)))
    assert regular.is_anomalous
    assert regular.confidence == 0.7
    assert regular.description == "Suspiciously regular timing pattern"


def test_timing_detector_ignores_empty_trace():
    assert not analyze_timing_patterns(_clean_input(timing_pattern=())).is_anomalous


def test_performance_detector_names_hint_abuse():
    finding = analyze_performance_patterns(
        _clean_input(signals=_signals((0.01, 0.9, 0.2, 0.8, 0.5, 0.5, 0.5)), hint_usage_pattern=(0, 0, 0, 1))
    )
    assert finding.is_anomalous
    assert finding.pattern_type == GamingPatternType.HINT_ABUSE
    assert finding.confidence == 0.7


def test_historical_detector_requires_history():
    assert not analyze_historical_consistency(_clean_input(history=NO_HISTORY)).is_anomalous


def test_historical_detector_flags_impossible_improvement():
    history = HistoricalData(average_performance={"teamwork": 0.1})
    finding = analyze_historical_consistency(_clean_input(history=history))
    assert finding.is_anomalous
    assert finding.pattern_type == GamingPatternType.IMPOSSIBLE_IMPROVEMENT
    assert finding.confidence == 0.8


def test_session_similarity():
    same = HistoricalSession("s", "teamwork", final_score=0.5, session_duration=30.0)
    other = HistoricalSession("t", "teamwork", final_score=0.7, session_duration=60.0)

    assert calculate_session_similarity(0.5, 30.0, [same]) == pytest.approx(1.0)
    assert calculate_session_similarity(0.5, 30.0, [other]) == pytest.approx(0.65)
    assert calculate_session_similarity(0.5, 30.0, []) == 0.0


def test_metadata_detector_hours():
    assert not analyze_metadata_patterns(_clean_input(environment=EnvironmentMetadata(time_of_day=23))).is_anomalous
    early = analyze_metadata_patterns(_clean_input(environment=EnvironmentMetadata(time_of_day=5)))
    assert early.is_anomalous
    assert early.confidence == 0.3
    assert early.pattern_type == GamingPatternType.EXTERNAL_ASSISTANCE


def test_gaming_report_rows():
    report = generate_gaming_report([_clean_input(), _gamed_input()])

    assert list(report.columns) == REPORT_COLUMNS
    assert len(report) == 6
    clean = report[report["session_id"] == "clean"].iloc[0]
    assert pd.isna(clean["pattern_type"])
    assert clean["risk_level"] == "NONE"
    assert set(report[report["session_id"] == "gamed"]["recommended_action"]) == {"FLAG_FOR_REVIEW"}


def test_user_profile_statuses():
    assert build_user_gaming_profile("p", []).account_status == "NORMAL"

    flagged = analyze_session(_gamed_input())
    profile = build_user_gaming_profile("p2", [flagged, flagged])
    assert profile.account_status == "RESTRICTED"
    assert profile.suspicious_session_count == 2
    assert profile.primary_gaming_patterns[0] == GamingPatternType.VARIANCE_ANOMALY
    assert profile.last_gaming_detection == flagged.analysis_timestamp

    critical = _analysis(GamingRiskLevel.CRITICAL, 0.9)
    assert build_user_gaming_profile("p3", [critical, critical]).account_status == "SUSPENDED"
    assert build_user_gaming_profile("p4", [_analysis(GamingRiskLevel.MEDIUM, 0.45)]).account_status == "MONITORED"


def test_prevention_strategy_catalog():
    profile = build_user_gaming_profile("p", [_analysis(GamingRiskLevel.HIGH, 0.75)])
    profile = replace(profile, primary_gaming_patterns=(GamingPatternType.HINT_ABUSE,))

    strategy = generate_prevention_strategy(profile, "Problem Solving")

    assert strategy.competency == "problem_solving"
    assert strategy.risk_factors == ("High historical gaming risk", "Previous hint system abuse")
    assert [m.measure for m in strategy.prevention_measures] == [
        "Dynamic hint availability",
        "Randomized question ordering",
        "Real-time behavior monitoring",
    ]
    assert len(strategy.dynamic_adjustments) == 2
    assert "Cross-session consistency" in strategy.monitoring_points
