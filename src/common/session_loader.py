# ABOUTME: Reads an assessment session file (YAML or JSON) into the typed inputs of the CCIS engines.
# ABOUTME: Per-task interaction rows are collapsed into timing, hint, and error traces.

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd
import yaml

from .errors import CCISValidationError
from .features import build_session_traces
from .mastery_aggregation import CompetencySignalData
from .schemas import (
    NO_HISTORY,
    BehavioralSignals,
    CulturalContext,
    EnvironmentMetadata,
    GamingDetectionInput,
    HistoricalData,
    HistoricalSession,
    PerformanceIndicators,
    SessionHistory,
)


@dataclass(frozen=True)
class AssessmentSession:
    detection_input: GamingDetectionInput
    performance: Optional[PerformanceIndicators]
    cultural: CulturalContext
    competencies: Tuple[CompetencySignalData, ...]

    @property
    def signals(self) -> BehavioralSignals:
        return self.detection_input.signals


def read_session_file(path: Path) -> Dict[str, Any]:
    path = Path(path)
    if not path.exists():
        raise CCISValidationError(f"Session file not found: {path}", "session_path")
    with open(path) as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)
    if not isinstance(data, dict):
        raise CCISValidationError(f"Session file {path} must contain a mapping.", "session")
    return data


def load_session(path: Path) -> AssessmentSession:
    return parse_session(read_session_file(path))


def parse_session(data: Mapping[str, Any]) -> AssessmentSession:
    """
    Build the engine inputs from a parsed session document.

    Required keys: session_id, person_id, competency, signals. Optional keys:
    interactions (per-task rows with duration_s/hints/errors) or explicit
    timing_pattern/hint_usage_pattern/error_pattern lists, environment, history,
    performance, cultural, and competencies (extra per-competency signals for the
    overall readiness score).
    """

    _require_keys(data, ("session_id", "person_id", "competency", "signals"), "session")

    signals = BehavioralSignals.from_mapping(_mapping(data["signals"], "signals"))
    timing, hints, errors = _parse_traces(data)

    detection_input = GamingDetectionInput(
        session_id=str(data["session_id"]),
        person_id=str(data["person_id"]),
        competency=data["competency"],
        signals=signals,
        timing_pattern=timing,
        hint_usage_pattern=hints,
        error_pattern=errors,
        environment=_build(EnvironmentMetadata, data.get("environment"), "environment"),
        history=_parse_history(data.get("history")),
    )

    performance = None
    if data.get("performance"):
        values = _with_defaults(data["performance"])
        values.update(competency=data["competency"], signals=signals)
        performance = _build(PerformanceIndicators, values, "performance")

    competencies = [CompetencySignalData(data["competency"], signals)]
    for entry in _sequence(data.get("competencies"), "competencies"):
        entry = _mapping(entry, "competencies")
        _require_keys(entry, ("competency", "signals"), "competencies")
        extra_signals = BehavioralSignals.from_mapping(_mapping(entry["signals"], "competencies.signals"))
        competencies.append(CompetencySignalData(entry["competency"], extra_signals))

    return AssessmentSession(
        detection_input=detection_input,
        performance=performance,
        cultural=_build(CulturalContext, data.get("cultural"), "cultural"),
        competencies=tuple(competencies),
    )


def _mapping(value: Any, section: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise CCISValidationError(f"'{section}' must be a mapping, got {type(value).__name__}", section)
    return value


def _sequence(value: Any, section: str) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Sequence):
        raise CCISValidationError(f"'{section}' must be a list, got {type(value).__name__}", section)
    return list(value)


def _require_keys(values: Mapping[str, Any], keys: Sequence[str], section: str) -> None:
    for key in keys:
        if key not in values:
            raise CCISValidationError(f"'{section}' is missing '{key}'", key)


def _build(record_type, values: Optional[Mapping[str, Any]], section: str):
    if values is None:
        values = {}
    try:
        return record_type(**dict(_mapping(values, section)))
    except TypeError as exc:
        raise CCISValidationError(f"Invalid '{section}' section: {exc}", section) from exc


def _with_defaults(performance: Any) -> Dict[str, Any]:
    values = dict(_mapping(performance, "performance"))
    if "current_level" not in values:
        raise CCISValidationError("performance.current_level is required", "current_level")
    values.setdefault("target_level", values["current_level"])
    return values


def _parse_traces(data: Mapping[str, Any]) -> Tuple[Tuple[float, ...], ...]:
    interactions = _sequence(data.get("interactions"), "interactions")
    if interactions:
        rows = pd.DataFrame([_mapping(row, "interactions") for row in interactions])
        rows["session_id"] = data["session_id"]
        traces = build_session_traces(rows)
        trace = traces.iloc[0]
        return tuple(trace["timing_pattern"]), tuple(trace["hint_usage_pattern"]), tuple(trace["error_pattern"])
    return (
        tuple(_sequence(data.get("timing_pattern"), "timing_pattern")),
        tuple(_sequence(data.get("hint_usage_pattern"), "hint_usage_pattern")),
        tuple(_sequence(data.get("error_pattern"), "error_pattern")),
    )


def _parse_history(history: Any) -> SessionHistory:
    if not history:
        return NO_HISTORY
    history = _mapping(history, "history")
    sessions = tuple(
        _build(HistoricalSession, s, "previous_sessions")
        for s in _sequence(history.get("previous_sessions"), "previous_sessions")
    )
    return HistoricalData(
        previous_sessions=sessions,
        average_performance=dict(_mapping(history.get("average_performance") or {}, "average_performance")),
        typical_session_duration=history.get("typical_session_duration", 0.0),
        account_age_days=history.get("account_age_days", 0),
        total_assessments=history.get("total_assessments", len(sessions)),
    )
