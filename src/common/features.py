# ABOUTME: Numeric helpers shared by the CCIS engines (variance, timing regularity).
# ABOUTME: Groups per-task interaction rows into the traces consumed by gaming detection.

from __future__ import annotations

from typing import Dict, List, Sequence

import numpy as np
import pandas as pd

from .errors import CCISValidationError

TRACE_COLUMNS = ["session_id", "task_count", "timing_pattern", "hint_usage_pattern", "error_pattern"]


def population_variance(values: Sequence[float]) -> float:
    """Variance with ddof=0; an empty sequence has zero variance."""
    if len(values) == 0:
        return 0.0
    return float(np.var(np.asarray(values, dtype=float)))


def coefficient_of_variation(values: Sequence[float]) -> float:
    """
    Standard deviation divided by the mean.

    A zero mean is reported as 0.0 so that a trace of all-zero timings reads as
    perfectly regular rather than undefined.
    """

    if len(values) == 0:
        return 0.0
    arr = np.asarray(values, dtype=float)
    mean = float(arr.mean())
    if mean == 0.0:
        return 0.0
    return float(arr.std()) / mean


def build_session_traces(interactions_df: pd.DataFrame) -> pd.DataFrame:
    """
    Collapse per-task interaction rows into one row of traces per session.

    Expected columns: session_id, duration_s, hints, errors. Absent hints or errors
    columns count as zero; duration_s is required. An optional task_order (or
    timestamp) column fixes the order of tasks within a session; otherwise rows
    keep their input order.
    """

    if interactions_df is None or interactions_df.empty:
        return pd.DataFrame(columns=TRACE_COLUMNS)

    df = interactions_df.copy()
    if "duration_s" not in df.columns:
        raise CCISValidationError("Interaction rows need a duration_s column.", "duration_s")
    for column in ("hints", "errors"):
        if column not in df.columns:
            df[column] = 0
    for column in ("duration_s", "hints", "errors"):
        numeric = pd.to_numeric(df[column], errors="coerce")
        bad = numeric.isna()
        if bad.any():
            raise CCISValidationError(
                f"{column} must be numeric in every interaction row, got {df.loc[bad, column].iloc[0]!r}.", column
            )
        df[column] = numeric

    sort_key = "task_order" if "task_order" in df.columns else ("timestamp" if "timestamp" in df.columns else None)
    if sort_key == "timestamp" and not pd.api.types.is_datetime64_any_dtype(df["timestamp"]):
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, errors="coerce")
    if sort_key:
        df = df.sort_values(["session_id", sort_key], kind="mergesort")

    rows: List[Dict] = []
    for session_id, session_df in df.groupby("session_id", sort=False):
        rows.append(
            {
                "session_id": session_id,
                "task_count": int(len(session_df)),
                "timing_pattern": [float(v) for v in session_df["duration_s"]],
                "hint_usage_pattern": [int(v) for v in session_df["hints"]],
                "error_pattern": [int(v) for v in session_df["errors"]],
            }
        )
    return pd.DataFrame(rows, columns=TRACE_COLUMNS)
