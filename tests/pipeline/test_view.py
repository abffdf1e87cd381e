"""Tests for range-filtered, gap-padded views and index reconciliation."""

from datetime import datetime, timezone

import pytest

from batterylens.pipeline.view import (
    RangeFilter,
    build_view,
    range_start,
    resolve_brush,
    resolve_selection,
    resolve_view_indices,
)

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS
BASE_TS = 1705276800000  # 2024-01-15T00:00:00Z


@pytest.fixture
def gapped_series():
    """Four points with a 3 hour gap between the second and third."""
    return [
        {"timestamp": BASE_TS, "soc": 80.0, "voltage": 52.0},
        {"timestamp": BASE_TS + 30 * MINUTE_MS, "soc": 78.0, "voltage": 51.9},
        {"timestamp": BASE_TS + 3 * HOUR_MS + 30 * MINUTE_MS, "soc": 60.0, "voltage": 51.0},
        {"timestamp": BASE_TS + 4 * HOUR_MS, "soc": 58.0, "voltage": 50.9},
    ]


class TestBuildView:
    """Tests for build_view."""

    def test_three_hour_gap_inserts_exactly_one_point(self, gapped_series):
        view = build_view(gapped_series, RangeFilter.ALL, now_ms=BASE_TS + DAY_MS)

        assert len(view.points) == 5
        assert view.gap_count == 1
        assert view.canonical_index == [0, 1, None, 2, 3]

        gap = view.points[2]
        assert gap["timestamp"] == BASE_TS + 30 * MINUTE_MS + 30 * MINUTE_MS
        assert gap["soc"] is None
        assert gap["voltage"] is None

    def test_no_gap_below_threshold(self):
        series = [{"timestamp": BASE_TS + i * HOUR_MS, "soc": 50.0} for i in range(4)]
        view = build_view(series, now_ms=BASE_TS + DAY_MS)
        assert view.gap_count == 0
        assert view.canonical_index == [0, 1, 2, 3]

    def test_brush_points_have_no_gaps(self, gapped_series):
        view = build_view(gapped_series, now_ms=BASE_TS + DAY_MS)
        assert [p["timestamp"] for p in view.brush_points] == [p["timestamp"] for p in gapped_series]
        assert view.brush_index == [0, 1, 2, 3]

    def test_day_range_filters_old_points(self):
        now = BASE_TS + 10 * DAY_MS
        series = [
            {"timestamp": now - 2 * DAY_MS, "soc": 1.0},
            {"timestamp": now - 12 * HOUR_MS, "soc": 2.0},
        ]
        view = build_view(series, RangeFilter.DAY, now_ms=now)
        assert [p["soc"] for p in view.points] == [2.0]
        assert view.canonical_index == [1]

    def test_metrics_lists_keys_in_first_seen_order(self, gapped_series):
        view = build_view(gapped_series, now_ms=BASE_TS + DAY_MS)
        assert view.metrics == ["soc", "voltage"]

    def test_empty_series(self):
        view = build_view([], RangeFilter.WEEK, now_ms=BASE_TS)
        assert view.points == []
        assert view.canonical_index == []

    def test_custom_gap_threshold(self, gapped_series):
        view = build_view(gapped_series, now_ms=BASE_TS + DAY_MS, gap_threshold_ms=20 * MINUTE_MS)
        assert view.gap_count == 3


class TestRangeStart:
    """Tests for range_start."""

    def test_all_has_no_start(self):
        assert range_start(RangeFilter.ALL, BASE_TS) is None

    def test_week(self):
        assert range_start(RangeFilter.WEEK, BASE_TS) == BASE_TS - 7 * DAY_MS

    def test_month_is_calendar_month(self):
        now = int(datetime(2024, 3, 31, 12, tzinfo=timezone.utc).timestamp() * 1000)
        expected = int(datetime(2024, 2, 29, 12, tzinfo=timezone.utc).timestamp() * 1000)
        assert range_start(RangeFilter.MONTH, now) == expected


class TestResolveSelection:
    """Tests for resolve_selection."""

    @pytest.fixture
    def series(self):
        return [{"timestamp": t} for t in (0, 10, 20)]

    def test_inner_selection(self, series):
        assert resolve_selection(series, 5, 15) == (1, 1)

    def test_full_selection(self, series):
        assert resolve_selection(series, 0, 20) == (0, 2)

    def test_selection_outside_series(self, series):
        assert resolve_selection(series, 21, 30) is None
        assert resolve_selection(series, -10, -1) is None

    def test_crossed_selection(self, series):
        assert resolve_selection(series, 15, 5) is None

    def test_empty_series(self):
        assert resolve_selection([], 0, 10) is None


class TestResolveIndices:
    """Tests for brush and zoom index reconciliation across gaps."""

    def test_brush_across_gap(self, gapped_series):
        view = build_view(gapped_series, now_ms=BASE_TS + DAY_MS)
        assert resolve_brush(view, gapped_series, 0, 3) == (0, 3)
        assert resolve_brush(view, gapped_series, 1, 2) == (1, 2)

    def test_brush_after_range_filter(self, gapped_series):
        now = BASE_TS + 4 * HOUR_MS + 30 * MINUTE_MS
        series = [{"timestamp": BASE_TS - 2 * DAY_MS, "soc": 90.0}, *gapped_series]
        view = build_view(series, RangeFilter.DAY, now_ms=now)
        # The old point is filtered out, brush index 0 is canonical index 1
        assert resolve_brush(view, series, 0, 1) == (1, 2)

    def test_brush_out_of_range(self, gapped_series):
        view = build_view(gapped_series, now_ms=BASE_TS + DAY_MS)
        assert resolve_brush(view, gapped_series, 0, 10) is None

    def test_reversed_brush_indices(self, gapped_series):
        view = build_view(gapped_series, now_ms=BASE_TS + DAY_MS)
        assert resolve_brush(view, gapped_series, 3, 0) == (0, 3)

    def test_start_on_gap_moves_forward(self, gapped_series):
        view = build_view(gapped_series, now_ms=BASE_TS + DAY_MS)
        assert resolve_view_indices(view, gapped_series, 2, 4) == (2, 3)

    def test_end_on_gap_moves_backward(self, gapped_series):
        view = build_view(gapped_series, now_ms=BASE_TS + DAY_MS)
        assert resolve_view_indices(view, gapped_series, 0, 2) == (0, 1)

    def test_selection_of_only_a_gap(self, gapped_series):
        view = build_view(gapped_series, now_ms=BASE_TS + DAY_MS)
        assert resolve_view_indices(view, gapped_series, 2, 2) is None
