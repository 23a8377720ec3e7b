"""
Tests for month range validation and time horizon resolution.
"""
import pytest
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.data.models import MonthInfo
from src.data.time_horizon import (
    MAX_MONTH_INDEX,
    MonthRange,
    build_time_horizon,
    month_index,
    month_label,
    parse_month_key,
    resolve_months,
    validate_month_range,
)


def _months(*keys):
    return tuple(MonthInfo(key=k, label=month_label(k)) for k in keys)


class TestValidateMonthRange:
    """Clamping into [0, total - 1]."""

    def test_clamps_both_bounds(self):
        assert validate_month_range({"start": -1, "end": 10}, 5) == MonthRange(0, 4)

    def test_valid_range_unchanged(self):
        assert validate_month_range(MonthRange(1, 3), 5) == MonthRange(1, 3)

    def test_inverted_range_raises_end(self):
        assert validate_month_range((3, 1), 5) == MonthRange(3, 3)

    def test_no_months(self):
        assert validate_month_range(MonthRange(2, 8), 0) == MonthRange(0, 0)

    def test_non_integer_bounds(self):
        assert validate_month_range({"start": "x", "end": None}, 4) == MonthRange(0, 3)

    def test_infinite_bounds_clamped(self):
        assert validate_month_range({"start": 0, "end": float("inf")}, 5) == MonthRange(0, 4)
        assert validate_month_range((float("-inf"), float("inf")), 5) == MonthRange(0, 4)
        assert validate_month_range((float("inf"), 2), 5) == MonthRange(4, 4)

    def test_nan_bound_uses_default(self):
        assert validate_month_range((float("nan"), 1), 5) == MonthRange(0, 1)

    def test_result_always_in_bounds(self):
        for start in range(-3, 8):
            for end in range(-3, 8):
                safe = validate_month_range((start, end), 5)
                assert 0 <= safe.start <= safe.end <= 4


class TestResolveMonths:
    def test_slice(self):
        months = _months("2025-01", "2025-02", "2025-03")

        assert resolve_months(months, MonthRange(1, 2)) == months[1:]

    def test_empty_axis(self):
        assert resolve_months((), MonthRange(0, 3)) == ()


class TestMonthKeys:
    def test_parse(self):
        assert parse_month_key("2025-03") == datetime(2025, 3, 1)

    def test_parse_invalid(self):
        with pytest.raises(ValueError):
            parse_month_key("2025-13")

    def test_label(self):
        assert month_label("2025-01") == "Jan 2025"
        assert month_label("garbage") == "garbage"


class TestBuildTimeHorizon:
    """Calendar bounds for selected months."""

    def test_spans_first_to_last_month(self):
        horizon = build_time_horizon(_months("2025-01", "2025-02", "2025-03"))

        assert horizon.start == datetime(2025, 1, 1)
        assert horizon.end.date() == datetime(2025, 3, 31).date()

    def test_single_month_is_full_month(self):
        horizon = build_time_horizon(_months("2024-02"))

        assert horizon.start == datetime(2024, 2, 1)
        assert horizon.end.date() == datetime(2024, 2, 29).date()

    def test_empty_falls_back_to_current_month(self):
        today = datetime(2025, 6, 15)

        horizon = build_time_horizon((), today=today)

        assert horizon.start == datetime(2025, 6, 1)
        assert horizon.end == datetime(2025, 6, 30, 23, 59, 59, 999999)

    def test_unparsable_falls_back(self):
        today = datetime(2025, 6, 15)

        horizon = build_time_horizon((MonthInfo("bad", "bad"),), today=today)

        assert horizon.start == datetime(2025, 6, 1)

    def test_out_of_order_is_swapped(self):
        horizon = build_time_horizon(_months("2025-03", "2025-01"))

        assert horizon.start == datetime(2025, 1, 1)
        assert horizon.end.date() == datetime(2025, 3, 31).date()
        assert horizon.start <= horizon.end


class TestMonthIndex:
    def test_values(self):
        assert month_index(3) == 3
        assert month_index("2") == 2
        assert month_index(2.9) == 2
        assert month_index(None) is None
        assert month_index("x") is None
        assert month_index(float("nan")) is None

    def test_infinity_saturates(self):
        assert month_index(float("inf")) == MAX_MONTH_INDEX
        assert month_index(float("-inf")) == -MAX_MONTH_INDEX
