# ABOUTME: Tests reading assessment session files into engine inputs.
# ABOUTME: Covers the shipped YAML sample, JSON input, and malformed sections.

import json
from pathlib import Path

import pytest

from src.common.errors import CCISValidationError
from src.common.schemas import CCISLevel, HistoricalData, NoHistory, Region
from src.common.session_loader import load_session, parse_session

SAMPLE_SESSION = Path(__file__).resolve().parents[1] / "configs" / "sample_session.yaml"

_SIGNALS = {
    "hint_request_frequency": 0.4,
    "error_recovery_speed": 0.5,
    "transfer_success_rate": 0.5,
    "metacognitive_accuracy": 0.5,
    "task_completion_efficiency": 0.5,
    "help_seeking_quality": 0.5,
    "self_assessment_alignment": 0.5,
}


def test_load_sample_session():
    session = load_session(SAMPLE_SESSION)
    detection = session.detection_input

    assert detection.session_id == "session-0001"
    assert len(detection.timing_pattern) == 8
    assert detection.timing_pattern[0] == 240.0
    assert detection.hint_usage_pattern[:3] == (1, 0, 2)
    assert isinstance(detection.history, HistoricalData)
    assert session.performance.current_level == CCISLevel(2)
    assert session.performance.target_level == CCISLevel(3)
    assert session.cultural.region == Region.INDIA
    assert [c.competency for c in session.competencies] == ["problem_solving", "communication", "teamwork"]


def test_json_session_with_explicit_traces(tmp_path):
    path = tmp_path / "session.json"
    path.write_text(
        json.dumps(
            {
                "session_id": 7,
                "person_id": "p",
                "competency": "leadership",
                "signals": _SIGNALS,
                "timing_pattern": [30, 40, 50],
                "performance": {"current_level": 3},
            }
        )
    )

    session = load_session(path)

    assert session.detection_input.session_id == "7"
    assert session.detection_input.timing_pattern == (30, 40, 50)
    assert isinstance(session.detection_input.history, NoHistory)
    assert session.performance.target_level == CCISLevel(3)
    assert session.cultural.region == Region.GLOBAL


def test_missing_required_key():
    with pytest.raises(CCISValidationError) as excinfo:
        parse_session({"session_id": "s", "person_id": "p", "signals": _SIGNALS})
    assert excinfo.value.field == "competency"


def test_unknown_environment_key():
    with pytest.raises(CCISValidationError):
        parse_session(
            {
                "session_id": "s",
                "person_id": "p",
                "competency": "teamwork",
                "signals": _SIGNALS,
                "environment": {"time_zone": "UTC"},
            }
        )


def test_missing_file(tmp_path):
    with pytest.raises(CCISValidationError):
        load_session(tmp_path / "absent.yaml")


def _session(**extra):
    data = {"session_id": "s", "person_id": "p", "competency": "teamwork", "signals": _SIGNALS}
    data.update(extra)
    return data


def test_interactions_without_duration_rejected():
    with pytest.raises(CCISValidationError) as excinfo:
        parse_session(_session(interactions=[{"hints": 1, "errors": 1}] * 5))
    assert excinfo.value.field == "duration_s"


def test_interactions_with_non_numeric_duration_rejected():
    with pytest.raises(CCISValidationError):
        parse_session(_session(interactions=[{"duration_s": 30}, {"duration_s": "n/a"}]))


@pytest.mark.parametrize(
    "extra, field",
    [
        (dict(competencies=[{"signals": _SIGNALS}]), "competency"),
        (dict(competencies=[{"competency": "leadership"}]), "signals"),
        (dict(competencies=["leadership"]), "competencies"),
        (dict(competencies={"leadership": _SIGNALS}), "competencies"),
        (dict(history=[1, 2]), "history"),
        (dict(history={"previous_sessions": "s1"}), "previous_sessions"),
        (dict(history={"previous_sessions": [7]}), "previous_sessions"),
        (dict(performance=[2, 3]), "performance"),
        (dict(environment="desktop"), "environment"),
        (dict(cultural=["INDIA"]), "cultural"),
        (dict(interactions=[30, 40]), "interactions"),
        (dict(timing_pattern=30), "timing_pattern"),
        (dict(signals=[0.5] * 7), "signals"),
    ],
)
def test_malformed_sections_rejected(extra, field):
    with pytest.raises(CCISValidationError) as excinfo:
        parse_session(_session(**extra))
    assert excinfo.value.field == field
