#!/usr/bin/env python
"""
Validate the demand extract against schema requirements and report
structural diagnostics for the dataset built from it.

Usage:
    python scripts/validate_inputs.py
    python scripts/validate_inputs.py --data-dir /path/to/data
"""
import argparse
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pandas as pd
from src.config import config, TABLE_FILES
from src.data.diagnostics import validate_structure
from src.data.loader import build_demand_dataset
from src.data.schema import validate_schema
from src.logging_config import configure_logging


def validate_file(filepath: Path, table_name: str) -> dict:
    """Validate a single file."""
    result = {
        "exists": False,
        "format": None,
        "rows": 0,
        "columns": 0,
        "valid": False,
        "missing_required": [],
        "missing_optional": [],
        "errors": [],
        "df": None,
    }

    parquet_path = filepath.with_suffix(".parquet")
    csv_path = filepath.with_suffix(".csv")

    if parquet_path.exists():
        result["exists"] = True
        result["format"] = "parquet"
        load_path = parquet_path
    elif csv_path.exists():
        result["exists"] = True
        result["format"] = "csv"
        load_path = csv_path
    else:
        result["errors"].append(f"File not found: {filepath}.(parquet|csv)")
        return result

    try:
        if result["format"] == "parquet":
            df = pd.read_parquet(load_path)
        else:
            df = pd.read_csv(load_path, dtype=str)

        result["rows"] = len(df)
        result["columns"] = len(df.columns)
    except Exception as e:
        result["errors"].append(f"Failed to load: {e}")
        return result

    schema_result = validate_schema(df, table_name, strict=False)
    result["valid"] = schema_result["is_valid"]
    result["missing_required"] = schema_result["missing_required"]
    result["missing_optional"] = schema_result["missing_optional"]
    result["df"] = df

    return result


def print_structure_report(df: pd.DataFrame) -> None:
    """Build the dataset and print what the structural checks find."""
    dataset = build_demand_dataset(df)
    report = validate_structure(dataset)

    print(f"    Skills: {len(dataset.skills)}  Months: {len(dataset.months)}  "
          f"Cells: {len(dataset.data_points)}")
    print(f"    Demand hours: {dataset.total_demand:,.1f}  Tasks: {dataset.total_tasks:,}  "
          f"Clients: {dataset.total_clients:,}")

    if report.is_valid and not report.warnings:
        print("  ✓ Structure valid")
    for issue in report.issues:
        print(f"  ✗ {issue}")
    for warning in report.warnings:
        print(f"  ⚠ {warning}")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Validate input data files")
    parser.add_argument(
        "--data-dir",
        type=str,
        default=None,
        help="Override data directory"
    )

    args = parser.parse_args(argv)
    configure_logging(level="ERROR")

    data_dir = Path(args.data_dir) if args.data_dir else config.data_dir
    processed_dir = data_dir / "processed"

    print("=" * 60)
    print("Data Input Validation")
    print("=" * 60)
    print(f"Source directory: {processed_dir}")
    print()

    all_valid = True

    for table_key, filename in TABLE_FILES.items():
        filepath = processed_dir / filename

        print(f"Validating: {table_key}")
        print("-" * 40)

        result = validate_file(filepath, table_key)

        if result["exists"]:
            print(f"  ✓ Found: {filename}.{result['format']}")
            print(f"    Rows: {result['rows']:,}")
            print(f"    Columns: {result['columns']}")

            if result["valid"]:
                print("  ✓ Schema valid")
                print_structure_report(result["df"])
            else:
                print("  ✗ Schema invalid")
                print(f"    Missing required: {result['missing_required']}")
                all_valid = False

            if result["missing_optional"]:
                print(f"  ⚠ Missing optional: {result['missing_optional']}")
        else:
            print(f"  ✗ Not found: {filename} (REQUIRED)")
            all_valid = False

        for err in result["errors"]:
            print(f"  ✗ Error: {err}")
            all_valid = False

        print()

    print("=" * 60)
    if all_valid:
        print("✓ All validations passed")
        return 0
    print("✗ Validation failed - see errors above")
    return 1


if __name__ == "__main__":
    sys.exit(main())
