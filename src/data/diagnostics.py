"""
Structural diagnostics and empty-result fallback for demand datasets.

Nothing here blocks filtering: reports are informational, and the fallback
exists so the filter pipeline always hands back a usable dataset.
"""
import logging
import numbers
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from src.data.models import (
    DataPoint,
    DemandDataset,
    MonthInfo,
    TaskAssignment,
    breakdown_totals,
    dataset_totals,
)
from src.data.selection import FilterSelection
from src.data.time_horizon import parse_month_key
from src.staffing.identity import find_matches

logger = logging.getLogger(__name__)


# Tolerance when comparing supplied aggregates with recomputed ones
AGGREGATE_TOLERANCE = 1e-6


@dataclass
class DiagnosticsReport:
    """Result of a structural check. ``issues`` make a dataset invalid."""
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.issues) == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "issues": list(self.issues),
            "warnings": list(self.warnings),
        }


def is_number(value: Any) -> bool:
    """Finite real number (bools excluded)."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    try:
        return bool(np.isfinite(float(value)))
    except (OverflowError, ValueError):
        return False


# =============================================================================
# STRUCTURE VALIDATION
# =============================================================================

def _check_months(dataset: DemandDataset, report: DiagnosticsReport) -> None:
    keys = [m.key for m in dataset.months]
    duplicates = [key for key, count in Counter(keys).items() if count > 1]
    if duplicates:
        report.issues.append(f"Duplicate month keys: {duplicates}")

    parsed = []
    for key in keys:
        try:
            parsed.append(parse_month_key(key))
        except ValueError:
            report.warnings.append(f"Unparsable month key: {key!r}")

    if parsed != sorted(parsed):
        report.warnings.append("Months are not in chronological order")


def _check_data_points(dataset: DemandDataset, report: DiagnosticsReport) -> None:
    month_keys = {m.key for m in dataset.all_months}
    unresolved_staff = 0

    for index, point in enumerate(dataset.data_points):
        if not isinstance(point, DataPoint):
            report.issues.append(f"data point {index}: not a data point record ({type(point).__name__})")
            continue

        label = f"data point {index} ({point.skill_type}/{point.month})"

        for name in ("demand_hours", "task_count", "client_count"):
            if not is_number(getattr(point, name)):
                report.issues.append(f"{label}: non-numeric {name} {getattr(point, name)!r}")

        if month_keys and point.month not in month_keys:
            report.warnings.append(f"{label}: month not present in month axis")

        breakdown = point.task_breakdown
        if not isinstance(breakdown, tuple):
            report.issues.append(f"{label}: missing or invalid task breakdown")
            continue

        invalid = [entry for entry in breakdown if not isinstance(entry, TaskAssignment)]
        if invalid:
            report.issues.append(f"{label}: {len(invalid)} invalid task entries")
            continue

        bad_hours = [t.task_id for t in breakdown if not is_number(t.monthly_hours)]
        if bad_hours:
            report.issues.append(f"{label}: non-numeric monthly hours on tasks {bad_hours}")
            continue

        for task in breakdown:
            if task.preferred_staff is not None and task.preferred_staff_key is None:
                unresolved_staff += 1

        hours, tasks, clients = breakdown_totals(breakdown)
        supplied = (point.demand_hours, point.task_count, point.client_count)
        if all(is_number(v) for v in supplied):
            if (abs(hours - point.demand_hours) > AGGREGATE_TOLERANCE
                    or tasks != point.task_count or clients != point.client_count):
                report.warnings.append(
                    f"{label}: stored aggregates {supplied} differ from task breakdown "
                    f"({hours}, {tasks}, {clients}); they will be recomputed"
                )

    if unresolved_staff:
        report.warnings.append(f"{unresolved_staff} tasks have unresolvable preferred staff references")


def validate_structure(dataset: Optional[DemandDataset]) -> DiagnosticsReport:
    """
    Check a dataset's structural quality.

    Flags missing/invalid breakdowns, non-numeric aggregates and task hours,
    unresolvable staff references, month-axis problems, and stale totals.
    """
    report = DiagnosticsReport()

    if dataset is None:
        report.issues.append("No dataset supplied")
        return report

    _check_months(dataset, report)
    _check_data_points(dataset, report)

    if report.is_valid:
        demand, tasks, clients = dataset_totals(dataset.data_points)
        supplied = (dataset.total_demand, dataset.total_tasks, dataset.total_clients)
        if not all(is_number(v) for v in supplied):
            report.warnings.append(f"Dataset totals are not numeric: {supplied}")
        elif (abs(demand - dataset.total_demand) > AGGREGATE_TOLERANCE
              or tasks != dataset.total_tasks or clients != dataset.total_clients):
            report.warnings.append(
                f"Dataset totals {supplied} differ from data points ({demand}, {tasks}, {clients})"
            )

    for issue in report.issues:
        logger.warning("Demand dataset issue: %s", issue)
    for warning in report.warnings:
        logger.info("Demand dataset warning: %s", warning)

    return report


# =============================================================================
# EMPTY-RESULT HANDLING
# =============================================================================

def build_fallback(dataset: DemandDataset, resolved_months: Sequence[MonthInfo]) -> DemandDataset:
    """
    Empty but structurally valid dataset for a fully filtered-out result.

    Keeps the resolved months (or the first original month when none
    resolved) so the matrix still renders its axis.
    """
    months = tuple(resolved_months) if resolved_months else tuple(dataset.months[:1])
    logger.info("Returning empty fallback dataset over %s months", len(months))

    return DemandDataset(
        months=months,
        skills=(),
        data_points=(),
        total_demand=0.0,
        total_tasks=0,
        total_clients=0,
        all_months=dataset.all_months,
        is_fallback=True,
    )


def run_filtering_diagnostics(dataset: DemandDataset,
                              selection: FilterSelection,
                              resolved_months: Sequence[MonthInfo],
                              stage_counts: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    """
    Explain why a selection removed every data point.

    ``stage_counts`` maps stage name to surviving data points, in pipeline
    order; the first stage reaching zero is reported as ``emptied_by``.
    """
    staff_in_data = [
        task.preferred_staff_key
        for point in dataset.data_points if isinstance(point, DataPoint)
        for task in (point.task_breakdown or ())
        if isinstance(task, TaskAssignment) and task.preferred_staff_key
    ]
    staff_matches = find_matches(selection.selected_preferred_staff, staff_in_data)

    emptied_by = None
    for stage, count in (stage_counts or {}).items():
        if count == 0:
            emptied_by = stage
            break

    summary = {
        "original_data_points": len(dataset.data_points),
        "available_months": [m.key for m in dataset.months],
        "resolved_months": [m.key for m in resolved_months],
        "available_skills": list(dataset.skills),
        "selected_skills": sorted(selection.selected_skills),
        "selected_clients": len(selection.selected_clients),
        "preferred_staff_filter_mode": selection.preferred_staff_filter_mode.value,
        "selected_preferred_staff": sorted(selection.selected_preferred_staff),
        "tasks_with_preferred_staff": len(staff_in_data),
        "unique_staff_in_data": sorted(set(staff_in_data)),
        "staff_potential_matches": staff_matches.matches,
        "stage_counts": dict(stage_counts or {}),
        "emptied_by": emptied_by,
    }

    logger.warning(
        "All %s data points filtered out (emptied by %s stage; mode=%s, %s staff selected, %s staff matches)",
        summary["original_data_points"], emptied_by or "unknown",
        summary["preferred_staff_filter_mode"], len(summary["selected_preferred_staff"]),
        len(staff_matches.matches),
    )
    return summary
