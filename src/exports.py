"""
Export utilities for the filtered demand matrix.
"""
import pandas as pd
import numpy as np
from typing import Optional, Dict, Any
from datetime import datetime
from io import BytesIO

from src.config import EXPORT_COLUMNS
from src.data.models import DemandDataset


def export_dataframe_csv(df: pd.DataFrame, filename: Optional[str] = None) -> tuple:
    """
    Export dataframe to CSV bytes.

    Returns: (csv_bytes, filename)
    """
    if filename is None:
        filename = f"demand_matrix_{datetime.now().strftime('%Y%m%d_%H%M%S')}.csv"

    csv_bytes = df.to_csv(index=False).encode('utf-8')

    return csv_bytes, filename


def export_dataframe_excel(df: pd.DataFrame, filename: Optional[str] = None,
                           sheet_name: str = "Demand Matrix") -> tuple:
    """
    Export dataframe to Excel bytes.

    Returns: (excel_bytes, filename)
    """
    if filename is None:
        filename = f"demand_matrix_{datetime.now().strftime('%Y%m%d_%H%M%S')}.xlsx"

    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)

    return buffer.getvalue(), filename


def _capacity_for(capacity: Optional[Dict[Any, Any]], skill: str, month: str) -> float:
    """
    Look up capacity hours. Accepts ``{(skill, month): hours}`` or
    ``{skill: {month: hours}}``; missing entries are 0.
    """
    if not capacity:
        return 0.0
    if (skill, month) in capacity:
        value = capacity[(skill, month)]
    else:
        nested = capacity.get(skill)
        value = nested.get(month, 0.0) if isinstance(nested, dict) else 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def build_matrix_export(dataset: DemandDataset, capacity: Optional[Dict[Any, Any]] = None) -> pd.DataFrame:
    """
    Tabular form of a filtered dataset: one row per (skill, month) cell.

    Gap is capacity minus demand (negative means a shortage); Utilization is
    demand as a percentage of capacity, 0 where no capacity is known.
    """
    labels = {m.key: m.label for m in dataset.months}
    rows = []
    for point in dataset.data_points:
        cap = _capacity_for(capacity, point.skill_type, point.month)
        rows.append({
            "Skill": point.skill_type,
            "Month": labels.get(point.month, point.month),
            "Demand": round(float(point.demand_hours), 1),
            "Capacity": round(cap, 1),
            "Gap": round(cap - float(point.demand_hours), 1),
            "Utilization": round(float(point.demand_hours) / cap * 100) if cap > 0 else 0,
        })

    df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)
    if len(df) > 0:
        df["Utilization"] = df["Utilization"].astype(np.int64)
    return df
