"""
Schema validation and type coercion for demand task extracts.
"""
import pandas as pd
import streamlit as st
from typing import List, Tuple, Dict

from src.config import REQUIRED_COLUMNS, OPTIONAL_COLUMNS


class SchemaValidationError(Exception):
    """Raised when required columns are missing."""
    pass


def validate_required_columns(df: pd.DataFrame, table_name: str) -> Tuple[bool, List[str]]:
    """
    Validate that required columns exist in dataframe.
    Returns (is_valid, missing_columns).
    """
    if table_name not in REQUIRED_COLUMNS:
        return True, []

    missing = [col for col in REQUIRED_COLUMNS[table_name] if col not in df.columns]
    return len(missing) == 0, missing


def check_optional_columns(df: pd.DataFrame, table_name: str) -> List[str]:
    """Return the optional columns missing from ``df``."""
    return [col for col in OPTIONAL_COLUMNS.get(table_name, []) if col not in df.columns]


def validate_schema(df: pd.DataFrame, table_name: str, strict: bool = True) -> Dict:
    """
    Full schema validation.

    Args:
        df: DataFrame to validate
        table_name: Name of table for column requirements lookup
        strict: If True, raise error on missing required columns

    Returns:
        Dict with validation results
    """
    is_valid, missing_required = validate_required_columns(df, table_name)
    missing_optional = check_optional_columns(df, table_name)

    result = {
        "is_valid": is_valid,
        "missing_required": missing_required,
        "missing_optional": missing_optional,
        "total_columns": len(df.columns),
        "total_rows": len(df),
    }

    if strict and not is_valid:
        raise SchemaValidationError(
            f"Missing required columns in {table_name}: {missing_required}"
        )

    return result


def display_validation_result(result: Dict, table_name: str):
    """Display validation result in Streamlit."""
    if result["is_valid"]:
        st.success(f"{table_name}: Schema valid ({result['total_rows']:,} rows, {result['total_columns']} columns)")
    else:
        st.error(f"{table_name}: Missing required columns: {result['missing_required']}")

    if result["missing_optional"]:
        st.warning(f"{table_name}: Missing optional columns (will degrade gracefully): {result['missing_optional']}")


def ensure_column_types(df: pd.DataFrame) -> pd.DataFrame:
    """
    Coerce a demand task extract to consistent types.

    ``month_key`` may arrive as dates or strings and is normalised to
    ``YYYY-MM``; unparsable values become NA. Ids are strings; missing
    preferred staff stays NA.
    """
    df = df.copy()

    if "monthly_hours" in df.columns:
        df["monthly_hours"] = pd.to_numeric(df["monthly_hours"], errors="coerce")

    if "month_key" in df.columns:
        parsed = pd.to_datetime(df["month_key"].astype("string"), errors="coerce", format="mixed")
        df["month_key"] = parsed.dt.strftime("%Y-%m").astype("string")

    for col in ["skill_type", "task_id", "task_name", "client_id", "client_name"]:
        if col in df.columns:
            df[col] = df[col].astype("string").str.strip()

    for col in ["preferred_staff_id", "preferred_staff_name"]:
        if col in df.columns:
            df[col] = df[col].astype("string").str.strip().replace("", pd.NA)

    return df
