"""Tests for series analytics."""

import pytest

from batterylens.pipeline.stats import (
    assess_current_state,
    available_metrics,
    hourly_statistics,
    range_averages,
    summarize_series,
)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS
BASE_TS = 1705276800000  # 2024-01-15T00:00:00Z (midnight UTC)


class TestAvailableMetrics:
    """Tests for available_metrics."""

    def test_core_metrics_first(self):
        series = [{"timestamp": 0, "v_diff": 0.01, "soc": 50.0}, {"timestamp": 1, "cycles": 3.0}]
        assert available_metrics(series) == ["soc", "voltage", "current", "capacity", "temperature", "cycles", "v_diff"]

    def test_empty_series_lists_core_metrics(self):
        assert available_metrics([]) == ["soc", "voltage", "current", "capacity", "temperature"]


class TestRangeAverages:
    """Tests for range_averages."""

    @pytest.fixture
    def series(self):
        return [
            {"timestamp": BASE_TS, "soc": 10.0},
            {"timestamp": BASE_TS + HOUR_MS, "soc": 20.0, "voltage": 51.0},
            {"timestamp": BASE_TS + 2 * HOUR_MS, "voltage": 53.0},
        ]

    def test_missing_values_are_skipped(self, series):
        summary = range_averages(series, 0, 2)
        assert summary is not None
        assert summary.stats["soc"].sum == 30.0
        assert summary.stats["soc"].count == 2
        assert summary.stats["soc"].average == 15.0
        assert summary.stats["voltage"].average == 52.0
        assert summary.start_timestamp == BASE_TS
        assert summary.end_timestamp == BASE_TS + 2 * HOUR_MS

    def test_selected_metrics_only(self, series):
        summary = range_averages(series, 1, 1, metrics=["voltage"])
        assert list(summary.stats) == ["voltage"]
        assert summary.stats["voltage"].count == 1

    def test_invalid_ranges(self, series):
        assert range_averages(series, 2, 1) is None
        assert range_averages(series, -1, 1) is None
        assert range_averages(series, 5, 6) is None


class TestHourlyStatistics:
    """Tests for hourly_statistics."""

    def test_buckets_by_hour_of_day(self):
        series = [
            {"timestamp": BASE_TS + HOUR_MS, "soc": 10.0},
            {"timestamp": BASE_TS + DAY_MS + HOUR_MS, "soc": 20.0},
            {"timestamp": BASE_TS + 2 * HOUR_MS, "soc": 30.0},
            {"timestamp": BASE_TS + 3 * HOUR_MS, "voltage": 50.0},
        ]
        stats = hourly_statistics(series, "soc")

        assert [s.hour for s in stats] == [1, 2]
        first = stats[0]
        assert first.label == "1 AM"
        assert first.count == 2
        assert first.min == 10.0
        assert first.max == 20.0
        assert first.mean == 15.0
        assert first.median == 15.0
        assert first.std == pytest.approx(5.0)
        assert first.q1 == pytest.approx(12.5)
        assert first.q3 == pytest.approx(17.5)
        assert stats[1].std == 0.0

    def test_missing_metric(self):
        assert hourly_statistics([{"timestamp": BASE_TS, "soc": 1.0}], "temperature") == []


class TestAssessCurrentState:
    """Tests for assess_current_state."""

    def test_stale_reading(self):
        point = {"timestamp": BASE_TS, "soc": 10.0}
        result = assess_current_state(point, now_ms=BASE_TS + 7 * HOUR_MS)
        assert result.is_stale
        assert result.recommendation == ""

    def test_high_voltage_difference(self):
        point = {"timestamp": BASE_TS + 12 * HOUR_MS, "v_diff": 0.2}
        result = assess_current_state(point, now_ms=BASE_TS + 12 * HOUR_MS)
        assert result.requires_attention
        assert not result.voltage_difference_ok

    def test_runtime_estimate_when_discharging(self):
        point = {"timestamp": BASE_TS + 12 * HOUR_MS, "capacity": 100.0, "current": -8.0}
        result = assess_current_state(point, now_ms=BASE_TS + 12 * HOUR_MS)
        assert result.estimated_runtime_hours == 12.5
        assert "12h 30m" in result.recommendation

    def test_charging_marks_runtime_unknown(self):
        point = {"timestamp": BASE_TS + 12 * HOUR_MS, "capacity": 100.0, "current": 5.0}
        result = assess_current_state(point, now_ms=BASE_TS + 12 * HOUR_MS)
        assert result.estimated_runtime_hours == -1.0

    def test_low_soc_at_night(self):
        point = {"timestamp": BASE_TS + 2 * HOUR_MS, "soc": 25.0}
        result = assess_current_state(point, now_ms=BASE_TS + 2 * HOUR_MS)
        assert result.requires_attention
        assert "one charger" in result.generator_suggestion

    def test_critical_soc_at_night(self):
        point = {"timestamp": BASE_TS + 2 * HOUR_MS, "soc": 10.0}
        result = assess_current_state(point, now_ms=BASE_TS + 2 * HOUR_MS)
        assert "both chargers" in result.generator_suggestion

    def test_low_soc_during_the_day_is_not_flagged(self):
        point = {"timestamp": BASE_TS + 12 * HOUR_MS, "soc": 10.0}
        result = assess_current_state(point, now_ms=BASE_TS + 12 * HOUR_MS)
        assert not result.requires_attention
        assert result.generator_suggestion is None
        assert result.recommendation == "System operating within normal parameters."


class TestSummarizeSeries:
    """Tests for summarize_series."""

    def test_summary_mentions_metrics(self):
        series = [{"timestamp": BASE_TS, "soc": 80.0}, {"timestamp": BASE_TS + HOUR_MS, "soc": 70.0}]
        summary = summarize_series(series)
        assert summary.startswith("2 readings from 2024-01-15 00:00 to 2024-01-15 01:00 UTC.")
        assert "soc: first 80.000, last 70.000" in summary
        assert "voltage" not in summary

    def test_empty_series(self):
        assert summarize_series([]) == "No readings."
