# ABOUTME: Tests the CCIS value objects: signals, levels, confidence, competencies, and inputs.
# ABOUTME: Focuses on validation failures and the derived helpers used by the engines.

import pytest

from src.common.errors import BusinessRuleError, CCISValidationError
from src.common.schemas import (
    NO_HISTORY,
    BehavioralSignals,
    CCISLevel,
    CompetencyType,
    ConfidenceScore,
    CulturalContext,
    EnvironmentMetadata,
    GamingDetectionInput,
    HistoricalData,
    HistoricalSession,
    PerformanceIndicators,
    Region,
    competency_key,
)


def _signals(**overrides):
    values = dict(
        hint_request_frequency=0.3,
        error_recovery_speed=0.4,
        transfer_success_rate=0.5,
        metacognitive_accuracy=0.6,
        task_completion_efficiency=0.7,
        help_seeking_quality=0.8,
        self_assessment_alignment=0.9,
    )
    values.update(overrides)
    return BehavioralSignals(**values)


@pytest.mark.parametrize("bad", [-0.1, 1.5, float("nan"), "0.5", True])
def test_signals_reject_out_of_range(bad):
    with pytest.raises(CCISValidationError) as excinfo:
        _signals(transfer_success_rate=bad)
    assert excinfo.value.field == "transfer_success_rate"


def test_signals_reject_negative_task_count():
    with pytest.raises(CCISValidationError):
        _signals(task_count=-1)


def test_signals_from_raw_data():
    signals = BehavioralSignals.from_raw_data(
        hints_requested=2,
        total_available_hints=10,
        error_recovery_time_ms=3000,
        max_recovery_time_ms=10000,
        transfer_tasks_successful=3,
        total_transfer_tasks=4,
        self_assessment_score=0.6,
        actual_performance_score=0.7,
        task_completion_time_ms=80000,
        optimal_completion_time_ms=60000,
        strategic_help_requests=3,
        total_help_requests=4,
        self_prediction_accuracy=0.8,
        assessment_duration_minutes=25.0,
        task_count=4,
    )

    assert signals.hint_request_frequency == pytest.approx(0.2)
    assert signals.error_recovery_speed == pytest.approx(0.7)
    assert signals.transfer_success_rate == pytest.approx(0.75)
    assert signals.metacognitive_accuracy == pytest.approx(0.9)
    assert signals.task_completion_efficiency == pytest.approx(0.75)
    assert signals.help_seeking_quality == pytest.approx(0.75)
    assert signals.task_count == 4


def test_signals_from_raw_data_rejects_zero_denominator():
    with pytest.raises(CCISValidationError):
        BehavioralSignals.from_raw_data(0, 0, 0, 1, 0, 1, 0.5, 0.5, 1, 1, 0, 0, 0.5, 10.0, 1)


def test_signals_from_mapping_checks_fields():
    with pytest.raises(CCISValidationError):
        BehavioralSignals.from_mapping({"hint_request_frequency": 0.2})
    with pytest.raises(CCISValidationError):
        BehavioralSignals.from_mapping({**_signals().as_dict(), "mystery": 0.1})


def test_strongest_and_weakest_signal():
    signals = _signals()
    assert signals.strongest_signal() == ("self_assessment_alignment", 0.9)
    assert signals.weakest_signal() == ("hint_request_frequency", 0.3)


def test_ccis_level_progression():
    level = CCISLevel(2)
    assert level.can_advance_to(CCISLevel(3))
    assert not level.can_advance_to(CCISLevel(4))
    assert level.next_level() == CCISLevel(3)
    assert CCISLevel(1) < CCISLevel(4)
    assert int(CCISLevel(3)) == 3

    with pytest.raises(BusinessRuleError):
        CCISLevel(4).next_level()
    with pytest.raises(CCISValidationError):
        CCISLevel(5)


@pytest.mark.parametrize("percentage, band", [(30, "low"), (40, "moderate"), (75, "high"), (95, "veryHigh")])
def test_confidence_bands(percentage, band):
    assert ConfidenceScore(percentage).band == band


def test_confidence_helpers():
    assert ConfidenceScore.from_value(0.45).percentage == pytest.approx(45.0)
    assert ConfidenceScore(15).suggests_gaming()
    assert not ConfidenceScore(35).allows_progression()
    assert ConfidenceScore(70).is_reliable()
    with pytest.raises(CCISValidationError):
        ConfidenceScore(101)


def test_competency_keys_and_aliases():
    assert competency_key(CompetencyType.TEAMWORK) == "teamwork"
    assert competency_key("Problem Solving") == "problem_solving"
    assert competency_key("collaboration") == "teamwork"
    assert competency_key("Negotiation") == "negotiation"
    assert CompetencyType.from_string("technical") == CompetencyType.TECHNICAL_SKILLS
    assert CompetencyType.COMMUNICATION.industry_weight == 0.20
    with pytest.raises(CCISValidationError):
        CompetencyType.from_string("juggling")
    with pytest.raises(CCISValidationError):
        competency_key("  ")


def test_region_parse():
    assert Region.parse("international") == Region.GLOBAL
    assert CulturalContext(region="india").region == Region.INDIA
    with pytest.raises(CCISValidationError):
        Region.parse("mars")


def test_performance_indicators_coerce_levels():
    performance = PerformanceIndicators(current_level=1, target_level=2, competency="teamwork", signals=_signals())
    assert performance.current_level == CCISLevel(1)
    with pytest.raises(CCISValidationError):
        PerformanceIndicators(
            current_level=1, target_level=2, competency="teamwork", signals=_signals(), recent_trend="sideways"
        )


def test_environment_validates_hour():
    with pytest.raises(CCISValidationError):
        EnvironmentMetadata(time_of_day=24)


def test_history_lookups():
    sessions = tuple(HistoricalSession(f"s{i}", "teamwork", 0.5, 30.0) for i in range(5)) + (
        HistoricalSession("x", "leadership", 0.4, 20.0),
    )
    history = HistoricalData(previous_sessions=sessions, average_performance={"Team Work": 0.55})

    assert history.average_for("teamwork") == 0.55
    assert history.average_for("leadership") is None
    assert [s.session_id for s in history.recent_sessions_for("teamwork", 3)] == ["s2", "s3", "s4"]


def test_detection_input_defaults_and_traces():
    detection = GamingDetectionInput("s", "p", "teamwork", _signals(), timing_pattern=[10, 20])
    assert detection.timing_pattern == (10, 20)
    assert detection.history is NO_HISTORY

    with pytest.raises(CCISValidationError):
        GamingDetectionInput("s", "p", "teamwork", _signals(), error_pattern=[-1])
