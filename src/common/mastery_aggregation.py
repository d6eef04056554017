# ABOUTME: Aggregates per-competency CCIS results into an overall career-readiness result.
# ABOUTME: Weights competencies by industry importance and exposes a tabular summary.

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Sequence, Tuple

import pandas as pd

from .ccis_calculation import calculate_ccis_level, map_score_to_level
from .config import DEFAULT_CONFIG, EngineConfig
from .errors import CCISValidationError
from .schemas import BehavioralSignals, CCISLevel, Competency, ConfidenceScore, competency_key

logger = logging.getLogger(__name__)

SUMMARY_COLUMNS = ["competency", "level", "score", "confidence", "weight"]


@dataclass(frozen=True)
class CompetencySignalData:
    competency: Competency
    signals: BehavioralSignals


@dataclass(frozen=True)
class CompetencyLevel:
    competency: str
    level: CCISLevel
    score: float
    confidence: ConfidenceScore
    weight: float


@dataclass(frozen=True)
class OverallCCISResult:
    overall_level: CCISLevel
    competency_levels: Tuple[CompetencyLevel, ...]
    raw_score: float
    confidence: ConfidenceScore
    readiness_percentage: int
    strongest_competencies: Tuple[str, ...]
    development_areas: Tuple[str, ...]
    calculated_at: datetime


def calculate_overall_ccis_level(
    competency_data: Sequence[CompetencySignalData], config: EngineConfig = DEFAULT_CONFIG
) -> OverallCCISResult:
    """
    Combine several competency assessments into one readiness result.

    Steps:
    - Score each competency on its own signals.
    - Weight each by its industry importance (unknown competencies get the default weight).
    - Average scores and confidences by those weights.
    - Rank competencies to surface the two strongest and the two weakest.
    """

    if not competency_data:
        raise CCISValidationError(
            "Cannot calculate overall CCIS level with no competency data", "competency_data"
        )

    levels: List[CompetencyLevel] = []
    for data in competency_data:
        key = competency_key(data.competency)
        result = calculate_ccis_level(data.signals, config)
        levels.append(
            CompetencyLevel(
                competency=key,
                level=result.level,
                score=result.raw_score,
                confidence=result.confidence,
                weight=config.industry_weight(key),
            )
        )

    total_weight = math.fsum(c.weight for c in levels)
    if total_weight <= 0:
        raise CCISValidationError("Competency weights must sum to a positive value", "industry_weights")
    weighted_score = math.fsum(c.score * c.weight for c in levels) / total_weight
    weighted_score = min(1.0, max(0.0, weighted_score))
    overall_confidence = ConfidenceScore.weighted_average(
        [c.confidence for c in levels], [c.weight for c in levels]
    )

    # sorted() is stable, so tied scores keep their input order.
    strongest = sorted(levels, key=lambda c: c.score, reverse=True)[:2]
    weakest = sorted(levels, key=lambda c: c.score)[:2]

    overall_level = map_score_to_level(weighted_score, config)
    logger.debug(
        "Overall CCIS across %d competencies: score %.4f -> level %d", len(levels), weighted_score, overall_level.level
    )
    return OverallCCISResult(
        overall_level=overall_level,
        competency_levels=tuple(levels),
        raw_score=weighted_score,
        confidence=overall_confidence,
        readiness_percentage=int(math.floor(weighted_score * 100 + 0.5)),
        strongest_competencies=tuple(c.competency for c in strongest),
        development_areas=tuple(c.competency for c in weakest),
        calculated_at=datetime.now(timezone.utc),
    )


def summarize_overall_result(result: OverallCCISResult) -> pd.DataFrame:
    """One row per competency, sorted by score, for reports and the CLI."""
    rows = [
        {
            "competency": c.competency,
            "level": c.level.level,
            "score": round(c.score, 4),
            "confidence": c.confidence.percentage,
            "weight": c.weight,
        }
        for c in result.competency_levels
    ]
    if not rows:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)
    return pd.DataFrame(rows, columns=SUMMARY_COLUMNS).sort_values("score", ascending=False, kind="mergesort")
