"""
Filter selection value types shared by the controls and the filter pipeline.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, FrozenSet, Iterable, Mapping

from src.data.time_horizon import MonthRange, month_index


def coerce_month_range(value: Any) -> MonthRange:
    """
    MonthRange from a MonthRange, ``{"start", "end"}`` mapping or pair.

    Values are kept as given (no clamping; infinite bounds saturate); unusable
    input becomes ``(0, 0)``.
    """
    if isinstance(value, MonthRange):
        return value
    if isinstance(value, Mapping):
        start, end = value.get("start", 0), value.get("end", 0)
    elif isinstance(value, (tuple, list)) and len(value) == 2:
        start, end = value
    else:
        return MonthRange()
    start, end = month_index(start), month_index(end)
    if start is None or end is None:
        return MonthRange()
    return MonthRange(start, end)


class PreferredStaffFilterMode(str, Enum):
    """How the preferred-staff dimension is interpreted."""
    ALL = "all"            # ignore preferred staff entirely
    SPECIFIC = "specific"  # only tasks preferring one of the selected staff
    NONE = "none"          # only tasks with no preferred staff

    @classmethod
    def coerce(cls, value: Any) -> "PreferredStaffFilterMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown preferred staff filter mode: {value!r}") from None


class GroupingMode(str, Enum):
    """Row axis of the matrix."""
    SKILL = "skill"
    CLIENT = "client"

    @classmethod
    def coerce(cls, value: Any) -> "GroupingMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown grouping mode: {value!r}") from None


class Dimension(str, Enum):
    """Toggleable selection dimensions."""
    SKILL = "skill"
    CLIENT = "client"
    PREFERRED_STAFF = "preferred_staff"


@dataclass(frozen=True)
class FilterSelection:
    """Snapshot of the user's filter choices. Hashable; used as a cache key."""
    selected_skills: FrozenSet[str] = field(default_factory=frozenset)
    selected_clients: FrozenSet[str] = field(default_factory=frozenset)
    selected_preferred_staff: FrozenSet[str] = field(default_factory=frozenset)
    preferred_staff_filter_mode: PreferredStaffFilterMode = PreferredStaffFilterMode.ALL
    month_range: MonthRange = field(default_factory=MonthRange)

    def __post_init__(self):
        for name in ("selected_skills", "selected_clients", "selected_preferred_staff"):
            value = getattr(self, name)
            if not isinstance(value, frozenset):
                object.__setattr__(self, name, frozenset(value or ()))
        object.__setattr__(self, "preferred_staff_filter_mode",
                           PreferredStaffFilterMode.coerce(self.preferred_staff_filter_mode))
        object.__setattr__(self, "month_range", coerce_month_range(self.month_range))


@dataclass(frozen=True)
class SelectionFlags:
    """Derived "everything selected" flags for each dimension."""
    all_skills: bool = False
    all_clients: bool = False
    all_preferred_staff: bool = False


def covers_all(selected: Iterable[Any], available: Iterable[Any]) -> bool:
    """
    True when ``selected`` holds exactly the ``available`` ids, ignoring order
    and duplicates.
    """
    selected_set = set(selected)
    available_set = set(available)
    return len(selected_set) == len(available_set) and all(a in selected_set for a in available_set)
