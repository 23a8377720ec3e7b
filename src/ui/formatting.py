"""
Consistent number and display formatting.
"""
import pandas as pd
from typing import Union

from src.config import FORMAT_COUNT, FORMAT_HOURS, FORMAT_PERCENT


# =============================================================================
# NUMBER FORMATTERS
# =============================================================================

def _missing(value) -> bool:
    return value is None or pd.isna(value)


def fmt_hours(value: Union[float, int, None]) -> str:
    """Format hours: 1,234.5"""
    if _missing(value):
        return "—"
    return FORMAT_HOURS.format(value)


def fmt_percent(value: Union[float, int, None], decimals: int = 1) -> str:
    """Format percentage: 12.3%"""
    if _missing(value):
        return "—"
    if decimals == 1:
        return FORMAT_PERCENT.format(value)
    return f"{value:,.{decimals}f}%"


def fmt_count(value: Union[float, int, None]) -> str:
    """Format count: 1,234"""
    if _missing(value):
        return "—"
    return FORMAT_COUNT.format(int(value))


def fmt_gap(value: Union[float, int, None]) -> str:
    """Format a capacity gap with +/- sign; negative is a shortage."""
    if _missing(value):
        return "—"
    sign = "+" if value > 0 else ""
    return f"{sign}{value:,.1f}"


# =============================================================================
# DATAFRAME FORMATTERS
# =============================================================================

HOURS_COLS = ["demand_hours", "monthly_hours", "Demand", "Capacity"]
COUNT_COLS = ["task_count", "client_count"]
PERCENT_COLS = ["Utilization"]
GAP_COLS = ["Gap"]


def format_metric_df(df: pd.DataFrame) -> pd.DataFrame:
    """
    Format a metrics dataframe for display.

    Applies appropriate formatting to known column types.
    """
    df = df.copy()

    for col in df.columns:
        if col in HOURS_COLS:
            df[col] = df[col].apply(fmt_hours)
        elif col in COUNT_COLS:
            df[col] = df[col].apply(fmt_count)
        elif col in PERCENT_COLS:
            df[col] = df[col].apply(lambda v: fmt_percent(v, decimals=0))
        elif col in GAP_COLS:
            df[col] = df[col].apply(fmt_gap)

    return df
