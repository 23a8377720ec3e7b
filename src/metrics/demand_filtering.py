"""
Demand matrix filter pipeline.

Stages run in a fixed order over the previous stage's data points:

    skills -> clients -> preferred staff -> time horizon

Every stage rebuilds the surviving data points' aggregates from their task
breakdown, and dataset totals are rebuilt from the final points. Input
datasets are never mutated. Client grouping, when requested, re-keys the
final rows by client after the time horizon stage.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from src.config import config
from src.data.cache import ResultCache
from src.data.diagnostics import build_fallback, is_number, run_filtering_diagnostics
from src.data.models import (
    DataPoint,
    DemandDataset,
    MonthInfo,
    TaskAssignment,
    breakdown_totals,
    dataset_totals,
    iter_tasks,
    unique_skills,
)
from src.data.selection import (
    FilterSelection,
    GroupingMode,
    PreferredStaffFilterMode,
    SelectionFlags,
    covers_all,
)
from src.data.time_horizon import TimeHorizon, build_time_horizon, resolve_months
from src.staffing.identity import normalize_all

logger = logging.getLogger(__name__)


# =============================================================================
# AGGREGATES
# =============================================================================

def recompute_data_point(point: DataPoint) -> DataPoint:
    """Copy of ``point`` with aggregates derived from its task breakdown."""
    hours, tasks, clients = breakdown_totals(point.task_breakdown or ())
    return replace(point, demand_hours=hours, task_count=tasks, client_count=clients)


def _with_tasks(point: DataPoint, tasks: Sequence) -> DataPoint:
    return recompute_data_point(replace(point, task_breakdown=tuple(tasks)))


# =============================================================================
# STAGES
# =============================================================================

def sanitize_data_points(points: Iterable[DataPoint]) -> List[DataPoint]:
    """
    Drop data points without a usable breakdown and tasks without numeric
    hours, logging each skip. Survivors get fresh aggregates.
    """
    clean = []
    for point in points:
        if not isinstance(point, DataPoint) or not isinstance(point.task_breakdown, tuple):
            logger.warning("Skipping data point %s/%s: missing or invalid task breakdown",
                           getattr(point, "skill_type", "?"), getattr(point, "month", "?"))
            continue

        tasks = [
            task for task in point.task_breakdown
            if isinstance(task, TaskAssignment) and is_number(task.monthly_hours)
        ]
        if len(tasks) != len(point.task_breakdown):
            logger.warning("Skipping %s tasks with non-numeric hours in %s/%s",
                           len(point.task_breakdown) - len(tasks), point.skill_type, point.month)

        clean.append(_with_tasks(point, tasks))
    return clean


def filter_by_skills(points: Sequence[DataPoint], selection: FilterSelection,
                     flags: SelectionFlags) -> List[DataPoint]:
    if flags.all_skills:
        return [recompute_data_point(p) for p in points]
    return [recompute_data_point(p) for p in points if p.skill_type in selection.selected_skills]


def filter_by_clients(points: Sequence[DataPoint], selection: FilterSelection,
                      flags: SelectionFlags) -> List[DataPoint]:
    if flags.all_clients:
        return [recompute_data_point(p) for p in points]

    filtered = []
    for point in points:
        tasks = [t for t in point.task_breakdown if t.client_id in selection.selected_clients]
        if tasks:
            filtered.append(_with_tasks(point, tasks))
    return filtered


def filter_by_preferred_staff(points: Sequence[DataPoint],
                              selection: FilterSelection) -> List[DataPoint]:
    """
    ALL passes every task through. SPECIFIC keeps tasks whose preferred staff
    is selected; an empty selection keeps nothing. NONE keeps tasks with no
    preferred staff.
    """
    mode = selection.preferred_staff_filter_mode

    if mode is PreferredStaffFilterMode.ALL:
        return [recompute_data_point(p) for p in points]

    if mode is PreferredStaffFilterMode.SPECIFIC:
        wanted = normalize_all(selection.selected_preferred_staff)
        if not wanted:
            logger.info("Specific preferred staff mode with no staff selected; no tasks match")
            return []

        def keep(task):
            return task.preferred_staff_key in wanted
    else:
        def keep(task):
            return task.preferred_staff_key is None

    filtered = []
    for point in points:
        tasks = [t for t in point.task_breakdown if keep(t)]
        if tasks:
            filtered.append(_with_tasks(point, tasks))
    return filtered


def filter_by_months(points: Sequence[DataPoint], months: Sequence[MonthInfo]) -> List[DataPoint]:
    keys = {m.key for m in months}
    return [recompute_data_point(p) for p in points if p.month in keys]


# =============================================================================
# CLIENT GROUPING
# =============================================================================

def client_label(task: TaskAssignment) -> Optional[str]:
    """Row label for a task under client grouping; None for placeholder names."""
    label = (task.client_name or "").strip() or (task.client_id or "").strip()
    if not label or "..." in label:
        return None
    return label


def group_by_client(dataset: DemandDataset) -> DemandDataset:
    """
    Re-key a filtered dataset by client instead of skill.

    Each (client, month) cell collects that client's tasks from every skill.
    Rows follow first appearance and aggregates are rebuilt from the regrouped
    tasks. A fallback dataset is returned unchanged.
    """
    if dataset.is_fallback:
        return dataset

    buckets: Dict[Tuple[str, str], List[TaskAssignment]] = {}
    for point in dataset.data_points:
        for task in point.task_breakdown or ():
            label = client_label(task)
            if label is None:
                continue
            buckets.setdefault((label, point.month), []).append(task)

    month_order = {m.key: i for i, m in enumerate(dataset.all_months or dataset.months)}
    clients = list(dict.fromkeys(label for label, _ in buckets))
    client_order = {label: i for i, label in enumerate(clients)}
    keys = sorted(buckets, key=lambda k: (client_order[k[0]], month_order.get(k[1], len(month_order))))
    points = [
        recompute_data_point(DataPoint(skill_type=label, month=month, task_breakdown=tuple(buckets[(label, month)])))
        for label, month in keys
    ]

    logger.debug("Client grouping: %s clients over %s data points", len(clients), len(points))

    total_demand, total_tasks, total_clients = dataset_totals(points)
    return replace(
        dataset,
        skills=tuple(clients),
        data_points=tuple(points),
        total_demand=total_demand,
        total_tasks=total_tasks,
        total_clients=total_clients,
    )


# =============================================================================
# SELECTION FLAGS
# =============================================================================

def derive_flags(dataset: DemandDataset, selection: FilterSelection) -> SelectionFlags:
    """"All selected" flags computed against what the dataset itself contains."""
    skills = dataset.skills or unique_skills(dataset.data_points)
    clients = set()
    staff = set()
    for task in iter_tasks(dataset.data_points):
        if task.client_id:
            clients.add(task.client_id)
        if task.preferred_staff_key:
            staff.add(task.preferred_staff_key)

    return SelectionFlags(
        all_skills=covers_all(selection.selected_skills, skills),
        all_clients=covers_all(selection.selected_clients, clients),
        all_preferred_staff=covers_all(normalize_all(selection.selected_preferred_staff), staff),
    )


# =============================================================================
# PIPELINE
# =============================================================================

@dataclass(frozen=True)
class FilterRun:
    """A filtered dataset plus the bookkeeping of the run that produced it."""
    result: DemandDataset
    stage_counts: Dict[str, int] = field(default_factory=dict)
    time_horizon: Optional[TimeHorizon] = None
    diagnostics: Optional[Dict] = None


class FilterPipeline:
    """
    Applies a ``FilterSelection`` to a ``DemandDataset``.

    ``apply`` never raises and never returns None. Runs are memoized in a
    cache owned by this instance, keyed on dataset identity and the
    selection snapshot; a cache hit restores the ``last_*`` attributes of
    the run it came from.
    """

    def __init__(self, cache: Optional[ResultCache] = None, today: Optional[datetime] = None):
        if cache is None:
            cache = ResultCache(
                ttl_seconds=config.filter_cache_ttl_seconds,
                max_entries=config.filter_cache_max_entries,
            )
        self.cache = cache
        self.today = today
        self.runs = 0
        self.last_stage_counts: Dict[str, int] = {}
        self.last_time_horizon: Optional[TimeHorizon] = None
        self.last_diagnostics: Optional[Dict] = None

    def apply(self, dataset: Optional[DemandDataset], selection: FilterSelection,
              flags: Optional[SelectionFlags] = None,
              grouping_mode: Any = GroupingMode.SKILL) -> DemandDataset:
        if dataset is None:
            logger.info("No demand dataset available for filtering")
            return DemandDataset()

        try:
            grouping = GroupingMode.coerce(grouping_mode)
        except ValueError:
            logger.warning("Unknown grouping mode %r; grouping by skill", grouping_mode)
            grouping = GroupingMode.SKILL

        try:
            if flags is None:
                flags = derive_flags(dataset, selection)
            snapshot = (selection, flags, grouping)
            run = self.cache.get(dataset, snapshot)
            if run is None:
                run = self._run(dataset, selection, flags, grouping)
                self.cache.put(dataset, snapshot, run)
        except Exception:
            logger.exception("Demand filtering failed; returning empty fallback dataset")
            run = FilterRun(build_fallback(dataset, resolve_months(dataset.all_months, selection.month_range)))

        self.last_stage_counts = dict(run.stage_counts)
        self.last_time_horizon = run.time_horizon
        self.last_diagnostics = run.diagnostics
        return run.result

    def _run(self, dataset: DemandDataset, selection: FilterSelection,
             flags: SelectionFlags, grouping: GroupingMode) -> FilterRun:
        self.runs += 1
        counts: Dict[str, int] = {}

        points = sanitize_data_points(dataset.data_points)
        logger.debug("Filtering %s data points (mode=%s)", len(points), selection.preferred_staff_filter_mode.value)

        points = filter_by_skills(points, selection, flags)
        counts["skills"] = len(points)

        points = filter_by_clients(points, selection, flags)
        counts["clients"] = len(points)

        points = filter_by_preferred_staff(points, selection)
        counts["preferred_staff"] = len(points)

        resolved = resolve_months(dataset.all_months, selection.month_range)
        horizon = build_time_horizon(resolved, today=self.today)
        if dataset.all_months:
            points = filter_by_months(points, resolved)
        else:
            logger.warning("Dataset has no month axis; time horizon filter skipped")
        counts["time_horizon"] = len(points)

        logger.debug("Stage counts: %s", counts)

        if not points and dataset.data_points:
            diagnostics = run_filtering_diagnostics(dataset, selection, resolved, counts)
            return FilterRun(build_fallback(dataset, resolved), counts, horizon, diagnostics)

        surviving = set(p.skill_type for p in points)
        skills = [s for s in dataset.skills if s in surviving]
        skills.extend(s for s in unique_skills(points) if s not in skills)

        total_demand, total_tasks, total_clients = dataset_totals(points)
        result = DemandDataset(
            months=resolved,
            skills=tuple(skills),
            data_points=tuple(points),
            total_demand=total_demand,
            total_tasks=total_tasks,
            total_clients=total_clients,
            all_months=dataset.all_months,
        )

        if grouping is GroupingMode.CLIENT:
            result = group_by_client(result)
            if not result.data_points and points:
                logger.warning("No named clients among %s filtered data points", len(points))
                return FilterRun(build_fallback(dataset, resolved), counts, horizon)

        return FilterRun(result, counts, horizon)
