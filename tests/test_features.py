# ABOUTME: Validates shared numeric helpers and per-session trace building.
# ABOUTME: Ensures interaction rows collapse into ordered timing, hint, and error traces.

import unittest

import pandas as pd
import pytest

from src.common.errors import CCISValidationError
from src.common.features import (
    TRACE_COLUMNS,
    build_session_traces,
    coefficient_of_variation,
    population_variance,
)


def test_population_variance():
    assert population_variance([]) == 0.0
    assert population_variance([1.0, 3.0]) == pytest.approx(1.0)
    assert population_variance((0.5,) * 7) == 0.0


def test_coefficient_of_variation():
    assert coefficient_of_variation([]) == 0.0
    assert coefficient_of_variation([0, 0, 0]) == 0.0
    assert coefficient_of_variation([10, 30]) == pytest.approx(0.5)


def test_build_session_traces_orders_tasks():
    interactions = pd.DataFrame(
        {
            "session_id": ["a", "a", "b", "a"],
            "task_order": [2, 1, 1, 3],
            "duration_s": [30, 12.5, 40, "45"],
            "hints": [1, 0, 2, 1],
            "errors": [0, 1, 0, 2],
        }
    )

    traces = build_session_traces(interactions)

    assert list(traces.columns) == TRACE_COLUMNS
    first = traces[traces["session_id"] == "a"].iloc[0]
    assert first["task_count"] == 3
    assert first["timing_pattern"] == [12.5, 30.0, 45.0]
    assert first["hint_usage_pattern"] == [0, 1, 1]
    assert first["error_pattern"] == [1, 0, 2]


def test_build_session_traces_fills_missing_columns():
    traces = build_session_traces(pd.DataFrame({"session_id": ["s"], "duration_s": [20]}))
    assert traces.iloc[0]["hint_usage_pattern"] == [0]
    assert traces.iloc[0]["error_pattern"] == [0]


def test_build_session_traces_empty():
    assert build_session_traces(pd.DataFrame()).empty


def test_build_session_traces_requires_duration():
    with pytest.raises(CCISValidationError) as excinfo:
        build_session_traces(pd.DataFrame({"session_id": ["s"] * 5, "hints": [1] * 5, "errors": [1] * 5}))
    assert excinfo.value.field == "duration_s"


@pytest.mark.parametrize("column, bad", [("duration_s", "n/a"), ("duration_s", None), ("hints", "some")])
def test_build_session_traces_rejects_non_numeric(column, bad):
    rows = {"session_id": ["s", "s"], "duration_s": [30, 40], "hints": [0, 1], "errors": [0, 0]}
    rows[column] = [rows[column][0], bad]

    with pytest.raises(CCISValidationError) as excinfo:
        build_session_traces(pd.DataFrame(rows))
    assert excinfo.value.field == column


class TimestampOrderingTests(unittest.TestCase):
    def test_orders_by_timestamp_when_no_task_order(self) -> None:
        interactions = pd.DataFrame(
            {
                "session_id": ["s", "s", "s"],
                "timestamp": ["2024-03-01T10:05:00Z", "2024-03-01T10:00:00Z", "2024-03-01T10:10:00Z"],
                "duration_s": [50, 20, 80],
                "hints": [1, 0, 2],
                "errors": [0, 0, 1],
            }
        )

        traces = build_session_traces(interactions)

        self.assertEqual(len(traces), 1)
        self.assertEqual(traces.iloc[0]["timing_pattern"], [20.0, 50.0, 80.0])
        self.assertEqual(traces.iloc[0]["hint_usage_pattern"], [0, 1, 2])

    def test_keeps_input_order_without_ordering_column(self) -> None:
        interactions = pd.DataFrame({"session_id": ["s", "s"], "duration_s": [9, 3]})
        traces = build_session_traces(interactions)
        self.assertEqual(traces.iloc[0]["timing_pattern"], [9.0, 3.0])


if __name__ == "__main__":
    unittest.main()
