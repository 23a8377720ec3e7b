"""
Data loading utilities with Streamlit caching.

The demand extract is one row per (skill, month, task); ``build_demand_dataset``
groups it into the ``DemandDataset`` consumed by the demand matrix.
"""
import logging
import pandas as pd
import streamlit as st
from pathlib import Path
from typing import Optional, Dict, Any, List, Sequence

from src.config import config, TABLE_FILES
from src.data.models import (
    ClientOption,
    DataPoint,
    DemandDataset,
    MonthInfo,
    StaffOption,
    TaskAssignment,
    breakdown_totals,
    dataset_totals,
)
from src.data.schema import ensure_column_types, validate_schema
from src.data.time_horizon import month_label
from src.staffing.identity import normalize

logger = logging.getLogger(__name__)


def _normalise_column_selection(columns: Optional[Sequence[str]]) -> Optional[list]:
    """Deduplicate and normalise a requested column list."""
    if not columns:
        return None
    return list(dict.fromkeys(str(col) for col in columns))


def _load_file(filepath: Path, columns: Optional[Sequence[str]] = None) -> Optional[pd.DataFrame]:
    """Load a single file (parquet or csv), optionally selecting columns."""
    selected_cols = _normalise_column_selection(columns)
    parquet_path = filepath.with_suffix(".parquet")
    csv_path = filepath.with_suffix(".csv")

    if parquet_path.exists():
        if selected_cols:
            try:
                return pd.read_parquet(parquet_path, columns=selected_cols)
            except (KeyError, ValueError):
                df = pd.read_parquet(parquet_path)
                return df[[col for col in selected_cols if col in df.columns]]
        return pd.read_parquet(parquet_path)
    elif csv_path.exists():
        if selected_cols:
            try:
                return pd.read_csv(csv_path, usecols=selected_cols, dtype=str)
            except ValueError:
                df = pd.read_csv(csv_path, dtype=str)
                return df[[col for col in selected_cols if col in df.columns]]
        return pd.read_csv(csv_path, dtype=str)
    return None


@st.cache_data(ttl=config.cache_ttl_seconds)
def load_demand_tasks(columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Load the demand_task_month extract with coerced column types."""
    filepath = config.processed_dir / TABLE_FILES["demand_task_month"]
    df = _load_file(filepath, columns=columns)
    if df is None:
        st.error(f"Could not find {TABLE_FILES['demand_task_month']} in {config.processed_dir}")
        st.stop()

    validate_schema(df, "demand_task_month", strict=True)
    return ensure_column_types(df)


def get_data_status() -> Dict[str, Any]:
    """Get status of all data files."""
    status = {"processed": {}}

    for key, filename in TABLE_FILES.items():
        parquet_path = config.processed_dir / f"{filename}.parquet"
        csv_path = config.processed_dir / f"{filename}.csv"
        status["processed"][key] = {
            "parquet_exists": parquet_path.exists(),
            "csv_exists": csv_path.exists(),
        }

    return status


# =============================================================================
# FRAME -> DATASET
# =============================================================================

def _value(value: Any) -> Any:
    """None for pandas missing markers."""
    if value is None or value is pd.NA:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return value


def _staff_ref(staff_id: Any, staff_name: Any) -> Optional[Dict[str, Any]]:
    staff_id, staff_name = _value(staff_id), _value(staff_name)
    if staff_id is None and staff_name is None:
        return None
    return {"staffId": staff_id, "fullName": staff_name}


def build_demand_dataset(df: pd.DataFrame) -> DemandDataset:
    """
    Group a task-level extract into a ``DemandDataset``.

    Rows without a skill, a parsable month or numeric hours are dropped with
    a warning. Aggregates are computed from the grouped tasks.
    """
    if df is None or len(df) == 0:
        return DemandDataset()

    df = ensure_column_types(df)
    usable = df["skill_type"].notna() & df["month_key"].notna() & df["monthly_hours"].notna()
    dropped = int((~usable).sum())
    if dropped:
        logger.warning("Dropped %s demand rows with missing skill, month or hours", dropped)
    df = df[usable]

    months = tuple(MonthInfo(key=str(key), label=month_label(str(key)))
                   for key in sorted(df["month_key"].unique()))

    has_task_name = "task_name" in df.columns
    has_staff_id = "preferred_staff_id" in df.columns
    has_staff_name = "preferred_staff_name" in df.columns

    points: List[DataPoint] = []
    for (skill, month), group in df.groupby(["skill_type", "month_key"], sort=True):
        tasks = []
        for row in group.itertuples(index=False):
            tasks.append(TaskAssignment(
                task_id=str(row.task_id),
                client_id=str(row.client_id),
                client_name=str(_value(row.client_name) or ""),
                monthly_hours=float(row.monthly_hours),
                preferred_staff=_staff_ref(
                    row.preferred_staff_id if has_staff_id else None,
                    row.preferred_staff_name if has_staff_name else None,
                ),
                task_name=str(_value(row.task_name) or "") if has_task_name else "",
            ))

        hours, task_count, client_count = breakdown_totals(tasks)
        points.append(DataPoint(
            skill_type=str(skill),
            month=str(month),
            demand_hours=hours,
            task_count=task_count,
            client_count=client_count,
            task_breakdown=tuple(tasks),
        ))

    total_demand, total_tasks, total_clients = dataset_totals(points)
    return DemandDataset(
        months=months,
        skills=tuple(sorted(df["skill_type"].unique())),
        data_points=tuple(points),
        total_demand=total_demand,
        total_tasks=total_tasks,
        total_clients=total_clients,
    )


def available_clients(df: pd.DataFrame) -> List[ClientOption]:
    """Client reference list for the selection UI, sorted by name."""
    if df is None or len(df) == 0 or "client_id" not in df.columns:
        return []

    clients = (
        df[["client_id", "client_name"]]
        .dropna(subset=["client_id"])
        .drop_duplicates(subset=["client_id"])
        .sort_values("client_name", na_position="last")
    )
    return [
        ClientOption(id=str(row.client_id), name=str(_value(row.client_name) or row.client_id))
        for row in clients.itertuples(index=False)
    ]


def available_preferred_staff(df: pd.DataFrame) -> List[StaffOption]:
    """Preferred staff reference list, one entry per normalized identity."""
    if df is None or len(df) == 0 or "preferred_staff_id" not in df.columns:
        return []

    names = df["preferred_staff_name"] if "preferred_staff_name" in df.columns else pd.Series(pd.NA, index=df.index)
    seen: Dict[str, str] = {}
    for staff_id, name in zip(df["preferred_staff_id"], names):
        key = normalize(_value(staff_id)) or normalize(_value(name))
        if key and key not in seen:
            seen[key] = str(_value(name) or _value(staff_id))

    return sorted((StaffOption(id=key, name=name) for key, name in seen.items()), key=lambda s: s.name.lower())
