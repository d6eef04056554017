# ABOUTME: Tests overall CCIS aggregation across competencies.
# ABOUTME: Ensures industry weighting, ranking ties, readiness rounding, and empty-input failure.

import pytest

from src.common.errors import CCISValidationError
from src.common.mastery_aggregation import (
    SUMMARY_COLUMNS,
    CompetencySignalData,
    calculate_overall_ccis_level,
    summarize_overall_result,
)
from src.common.schemas import BehavioralSignals, CompetencyType


def _uniform(value, task_count=10, duration=60.0):
    return BehavioralSignals(
        hint_request_frequency=value,
        error_recovery_speed=value,
        transfer_success_rate=value,
        metacognitive_accuracy=value,
        task_completion_efficiency=value,
        help_seeking_quality=value,
        self_assessment_alignment=value,
        task_count=task_count,
        assessment_duration=duration,
    )


def test_overall_level_weights_by_industry_importance():
    data = [
        CompetencySignalData(CompetencyType.COMMUNICATION, _uniform(0.8)),
        CompetencySignalData("leadership", _uniform(0.2)),
    ]

    result = calculate_overall_ccis_level(data)

    # (0.8 * 0.20 + 0.2 * 0.05) / 0.25
    assert result.raw_score == pytest.approx(0.68)
    assert result.overall_level.level == 3
    assert result.readiness_percentage == 68
    assert result.strongest_competencies == ("communication", "leadership")
    assert result.development_areas == ("leadership", "communication")
    assert [c.weight for c in result.competency_levels] == [0.20, 0.05]


def test_unknown_competency_uses_default_weight():
    result = calculate_overall_ccis_level([CompetencySignalData("negotiation", _uniform(0.4))])
    assert result.competency_levels[0].weight == 0.10
    assert result.competency_levels[0].competency == "negotiation"


def test_ties_keep_input_order():
    data = [
        CompetencySignalData("teamwork", _uniform(0.5)),
        CompetencySignalData("adaptability", _uniform(0.5)),
        CompetencySignalData("problem_solving", _uniform(0.5)),
    ]

    result = calculate_overall_ccis_level(data)

    assert result.strongest_competencies == ("teamwork", "adaptability")
    assert result.development_areas == ("teamwork", "adaptability")


def test_overall_confidence_is_weighted():
    data = [
        CompetencySignalData("communication", _uniform(0.5, task_count=10, duration=60.0)),
        CompetencySignalData("leadership", _uniform(0.5, task_count=0, duration=0.0)),
    ]

    result = calculate_overall_ccis_level(data)

    # 100% at weight 0.20 and 30% at weight 0.05
    assert result.confidence.percentage == pytest.approx(86.0)


def test_empty_input_raises():
    with pytest.raises(CCISValidationError):
        calculate_overall_ccis_level([])


def test_summary_sorted_by_score():
    data = [
        CompetencySignalData("leadership", _uniform(0.2)),
        CompetencySignalData("communication", _uniform(0.8)),
    ]

    summary = summarize_overall_result(calculate_overall_ccis_level(data))

    assert list(summary.columns) == SUMMARY_COLUMNS
    assert summary["competency"].tolist() == ["communication", "leadership"]
    assert summary["level"].tolist() == [3, 1]
