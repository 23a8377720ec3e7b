"""
Month-range validation and time horizon resolution for the demand matrix.
"""
import calendar
import logging
import re
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional, Sequence, Tuple

from src.config import FORMAT_MONTH_LABEL
from src.data.models import MonthInfo

logger = logging.getLogger(__name__)


MONTH_KEY_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

# Saturation bound for infinite month-range input
MAX_MONTH_INDEX = sys.maxsize


@dataclass(frozen=True)
class MonthRange:
    """Inclusive index range into a dataset's month axis."""
    start: int = 0
    end: int = 0

    @property
    def span(self) -> int:
        return self.end - self.start + 1


@dataclass(frozen=True)
class TimeHorizon:
    """Calendar window covered by a month selection."""
    start: datetime
    end: datetime

# =============================================================================
# MONTH KEYS
# =============================================================================

def parse_month_key(key: str) -> datetime:
    """First day of the month named by a ``YYYY-MM`` key. Raises ValueError."""
    if not isinstance(key, str) or not MONTH_KEY_PATTERN.match(key.strip()):
        raise ValueError(f"Invalid month key: {key!r}")
    return datetime.strptime(key.strip(), "%Y-%m")


def start_of_month(moment: datetime) -> datetime:
    return datetime(moment.year, moment.month, 1)


def end_of_month(moment: datetime) -> datetime:
    """Last microsecond of the month containing ``moment``."""
    last_day = calendar.monthrange(moment.year, moment.month)[1]
    return datetime(moment.year, moment.month, last_day) + timedelta(days=1) - timedelta(microseconds=1)


def month_label(key: str) -> str:
    """Display label for a month key: ``2025-01`` -> ``Jan 2025``."""
    try:
        return parse_month_key(key).strftime(FORMAT_MONTH_LABEL)
    except ValueError:
        return str(key)


def current_month_horizon(today: Optional[datetime] = None) -> TimeHorizon:
    if today is None:
        today = datetime.now()
    return TimeHorizon(start=start_of_month(today), end=end_of_month(today))


# =============================================================================
# RANGE VALIDATION
# =============================================================================

def month_index(value: Any) -> Optional[int]:
    """
    Integer month index, or None when ``value`` is unusable.

    Infinite bounds saturate at ``+/-MAX_MONTH_INDEX`` so range clamping can
    still pull them back onto the axis.
    """
    try:
        return int(value)
    except OverflowError:
        return MAX_MONTH_INDEX if value > 0 else -MAX_MONTH_INDEX
    except (TypeError, ValueError):
        return None


def _coerce_bounds(month_range: Any, total_months: int) -> Tuple[int, int]:
    if isinstance(month_range, MonthRange):
        return month_range.start, month_range.end
    if isinstance(month_range, Mapping):
        raw_start, raw_end = month_range.get("start"), month_range.get("end")
    elif isinstance(month_range, (tuple, list)) and len(month_range) == 2:
        raw_start, raw_end = month_range
    else:
        logger.warning("Unrecognised month range %r; using the full range", month_range)
        return 0, total_months - 1

    start = month_index(raw_start)
    if start is None:
        logger.warning("Month range start %r is not an integer; using 0", raw_start)
        start = 0
    end = month_index(raw_end)
    if end is None:
        logger.warning("Month range end %r is not an integer; using the last month", raw_end)
        end = total_months - 1
    return start, end


def validate_month_range(month_range: Any, total_months: int) -> MonthRange:
    """
    Clamp a month range into ``[0, total_months - 1]`` with ``start <= end``.

    Both bounds are clamped first; an inverted range then has its end raised
    to its start. Adjustments are logged, never raised.
    """
    if total_months <= 0:
        logger.warning("No months available; month range %r collapsed to [0, 0]", month_range)
        return MonthRange(0, 0)

    start, end = _coerce_bounds(month_range, total_months)
    last = total_months - 1

    safe_start = max(0, min(start, last))
    safe_end = max(safe_start, min(end, last))

    if (safe_start, safe_end) != (start, end):
        logger.warning("Month range adjusted from [%s, %s] to [%s, %s] (%s months available)",
                       start, end, safe_start, safe_end, total_months)

    return MonthRange(safe_start, safe_end)


def resolve_months(months: Sequence[MonthInfo], month_range: Any) -> Tuple[MonthInfo, ...]:
    """Months selected by a (validated) index range."""
    if not months:
        return ()
    safe = validate_month_range(month_range, len(months))
    return tuple(months[safe.start:safe.end + 1])


# =============================================================================
# TIME HORIZON
# =============================================================================

def build_time_horizon(months: Sequence[MonthInfo], today: Optional[datetime] = None) -> TimeHorizon:
    """
    Calendar bounds from the first to the last selected month.

    Falls back to the current calendar month when no months are given or a
    key cannot be parsed. The window always spans at least one full month.
    """
    if not months:
        logger.warning("No months selected; time horizon falls back to the current month")
        return current_month_horizon(today)

    first_key, last_key = months[0].key, months[-1].key
    try:
        start = start_of_month(parse_month_key(first_key))
        end = end_of_month(parse_month_key(last_key))
    except ValueError:
        logger.warning("Unparsable month key in [%r, %r]; time horizon falls back to the current month",
                       first_key, last_key)
        return current_month_horizon(today)

    if end < start:
        logger.warning("Month keys out of order (%s after %s); swapping horizon bounds", first_key, last_key)
        start, end = start_of_month(end), end_of_month(start)

    minimum_end = end_of_month(start)
    if end < minimum_end:
        end = minimum_end

    return TimeHorizon(start=start, end=end)
