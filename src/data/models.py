"""
Demand matrix data model.

A ``DemandDataset`` is scheduled work aggregated by (skill, month). Each
``DataPoint`` carries its underlying ``TaskAssignment`` list; the aggregate
fields on points and on the dataset are always derivable from those tasks.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from src.staffing.identity import StaffRef, StructuredStaffRef, normalize, parse_staff_ref

logger = logging.getLogger(__name__)


# =============================================================================
# RECORDS
# =============================================================================

@dataclass(frozen=True)
class MonthInfo:
    """One month on the matrix axis."""
    key: str  # YYYY-MM
    label: str


@dataclass(frozen=True)
class TaskAssignment:
    """A single recurring task's demand within a (skill, month) cell."""
    task_id: str
    client_id: str
    client_name: str
    monthly_hours: float
    preferred_staff: Optional[StaffRef] = None
    task_name: str = ""
    preferred_staff_key: Optional[str] = field(default=None, init=False)

    def __post_init__(self):
        # Raw shapes are resolved here so later stages only see StaffRef / key.
        ref = parse_staff_ref(self.preferred_staff)
        object.__setattr__(self, "preferred_staff", ref)
        object.__setattr__(self, "preferred_staff_key", normalize(ref))

    @property
    def preferred_staff_name(self) -> Optional[str]:
        if isinstance(self.preferred_staff, StructuredStaffRef):
            return self.preferred_staff.full_name
        return None


@dataclass(frozen=True)
class DataPoint:
    """One (skill, month) cell of the demand matrix."""
    skill_type: str
    month: str
    demand_hours: float = 0.0
    task_count: int = 0
    client_count: int = 0
    task_breakdown: Optional[Tuple[TaskAssignment, ...]] = ()

    def __post_init__(self):
        if isinstance(self.task_breakdown, list):
            object.__setattr__(self, "task_breakdown", tuple(self.task_breakdown))


@dataclass(frozen=True)
class DemandDataset:
    """
    Demand matrix payload.

    ``all_months`` is the full month axis that month-range indices refer to.
    It defaults to ``months`` and is carried through filtering unchanged, so
    a filtered dataset can be filtered again with the same selection.
    """
    months: Tuple[MonthInfo, ...] = ()
    skills: Tuple[str, ...] = ()
    data_points: Tuple[DataPoint, ...] = ()
    total_demand: float = 0.0
    total_tasks: int = 0
    total_clients: int = 0
    all_months: Tuple[MonthInfo, ...] = ()
    is_fallback: bool = field(default=False, compare=False)

    def __post_init__(self):
        for name in ("months", "skills", "data_points", "all_months"):
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value or ()))
        if not self.all_months:
            object.__setattr__(self, "all_months", self.months)

    @property
    def is_empty(self) -> bool:
        return len(self.data_points) == 0

    @property
    def month_keys(self) -> List[str]:
        return [m.key for m in self.months]


@dataclass(frozen=True)
class ClientOption:
    """Reference list entry for client selection."""
    id: str
    name: str


@dataclass(frozen=True)
class StaffOption:
    """Reference list entry for preferred-staff selection."""
    id: str
    name: str


# =============================================================================
# AGGREGATES
# =============================================================================

def breakdown_totals(tasks: Sequence[TaskAssignment]) -> Tuple[float, int, int]:
    """(demand_hours, task_count, client_count) for a task list."""
    hours = float(sum(task.monthly_hours for task in tasks))
    clients = {task.client_id for task in tasks if task.client_id}
    return hours, len(tasks), len(clients)


def dataset_totals(points: Iterable[DataPoint]) -> Tuple[float, int, int]:
    """(total_demand, total_tasks, total_clients) across data points."""
    total_demand = 0.0
    total_tasks = 0
    clients = set()
    for point in points:
        total_demand += point.demand_hours
        total_tasks += point.task_count
        for task in point.task_breakdown or ():
            if task.client_id:
                clients.add(task.client_id)
    return total_demand, total_tasks, len(clients)


def iter_tasks(points: Iterable[Any]) -> Iterator[TaskAssignment]:
    """Tasks of every data point, skipping entries that are not records."""
    for point in points:
        if not isinstance(point, DataPoint):
            continue
        for task in point.task_breakdown or ():
            if isinstance(task, TaskAssignment):
                yield task


def unique_skills(points: Iterable[DataPoint]) -> Tuple[str, ...]:
    """Skill names in first-seen order."""
    return tuple(dict.fromkeys(point.skill_type for point in points if isinstance(point, DataPoint)))


def unique_clients(dataset: DemandDataset) -> List[ClientOption]:
    """Clients referenced anywhere in the dataset, first-seen order."""
    seen: Dict[str, str] = {}
    for task in iter_tasks(dataset.data_points):
        if task.client_id and task.client_id not in seen:
            seen[task.client_id] = task.client_name or task.client_id
    return [ClientOption(id=cid, name=name) for cid, name in seen.items()]


def unique_preferred_staff(dataset: DemandDataset) -> List[StaffOption]:
    """Preferred staff referenced anywhere in the dataset, keyed by identity."""
    seen: Dict[str, str] = {}
    for task in iter_tasks(dataset.data_points):
        key = task.preferred_staff_key
        if key and key not in seen:
            seen[key] = task.preferred_staff_name or key
    return [StaffOption(id=key, name=name) for key, name in seen.items()]


# =============================================================================
# INGESTION
# =============================================================================

def _get(raw: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def task_from_dict(raw: Mapping[str, Any]) -> TaskAssignment:
    """Build a task from a camelCase or snake_case record."""
    staff = _get(raw, "preferredStaff", "preferred_staff")
    if staff is None:
        staff_id = _get(raw, "preferredStaffId", "preferred_staff_id")
        staff_name = _get(raw, "preferredStaffName", "preferred_staff_name")
        if staff_id is not None or staff_name is not None:
            staff = {"staffId": staff_id, "fullName": staff_name}

    return TaskAssignment(
        task_id=str(_get(raw, "taskId", "task_id", "recurringTaskId", default="")),
        client_id=str(_get(raw, "clientId", "client_id", default="")),
        client_name=str(_get(raw, "clientName", "client_name", default="")),
        monthly_hours=_get(raw, "monthlyHours", "monthly_hours", default=0.0),
        preferred_staff=staff,
        task_name=str(_get(raw, "taskName", "task_name", default="")),
    )


def data_point_from_dict(raw: Mapping[str, Any]) -> DataPoint:
    """
    Build a data point. A missing or non-list breakdown is kept as None so
    diagnostics can report it; malformed task entries are dropped here.
    """
    breakdown_raw = _get(raw, "taskBreakdown", "task_breakdown")
    breakdown: Optional[Tuple[TaskAssignment, ...]]

    if isinstance(breakdown_raw, (list, tuple)):
        tasks = []
        for entry in breakdown_raw:
            if isinstance(entry, TaskAssignment):
                tasks.append(entry)
            elif isinstance(entry, Mapping):
                tasks.append(task_from_dict(entry))
            else:
                logger.warning("Skipping malformed task entry of type %s in %s/%s",
                               type(entry).__name__, raw.get("skillType"), raw.get("month"))
        breakdown = tuple(tasks)
    else:
        breakdown = None

    return DataPoint(
        skill_type=str(_get(raw, "skillType", "skill_type", default="")),
        month=str(_get(raw, "month", "month_key", default="")),
        demand_hours=_get(raw, "demandHours", "demand_hours", default=0.0),
        task_count=_get(raw, "taskCount", "task_count", default=0),
        client_count=_get(raw, "clientCount", "client_count", default=0),
        task_breakdown=breakdown,
    )


def dataset_from_dict(raw: Mapping[str, Any]) -> DemandDataset:
    """Build a dataset from the backend's JSON payload."""
    months = []
    for month in _get(raw, "months", default=[]) or []:
        if isinstance(month, Mapping) and month.get("key"):
            months.append(MonthInfo(key=str(month["key"]), label=str(month.get("label") or month["key"])))
        elif isinstance(month, str):
            months.append(MonthInfo(key=month, label=month))

    points = []
    for entry in _get(raw, "dataPoints", "data_points", default=[]) or []:
        if isinstance(entry, Mapping):
            points.append(data_point_from_dict(entry))
        else:
            logger.warning("Skipping malformed data point of type %s", type(entry).__name__)

    skills = _get(raw, "skills", default=None)
    if skills is None:
        skills = unique_skills(points)

    return DemandDataset(
        months=tuple(months),
        skills=tuple(dict.fromkeys(str(s) for s in skills)),
        data_points=tuple(points),
        total_demand=_get(raw, "totalDemand", "total_demand", default=0.0),
        total_tasks=_get(raw, "totalTasks", "total_tasks", default=0),
        total_clients=_get(raw, "totalClients", "total_clients", default=0),
    )


def dataset_to_frame(dataset: DemandDataset) -> pd.DataFrame:
    """Flatten a dataset to one row per (skill, month, task)."""
    rows = []
    for point in dataset.data_points:
        for task in point.task_breakdown or ():
            rows.append({
                "skill_type": point.skill_type,
                "month_key": point.month,
                "task_id": task.task_id,
                "task_name": task.task_name,
                "client_id": task.client_id,
                "client_name": task.client_name,
                "monthly_hours": task.monthly_hours,
                "preferred_staff": task.preferred_staff_key,
                "preferred_staff_name": task.preferred_staff_name,
            })

    columns = [
        "skill_type", "month_key", "task_id", "task_name", "client_id",
        "client_name", "monthly_hours", "preferred_staff", "preferred_staff_name",
    ]
    return pd.DataFrame(rows, columns=columns)
