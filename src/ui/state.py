"""
Session state management for Streamlit app, and the demand matrix controls.
"""
import logging
from enum import Enum
from typing import Any, Iterable, Optional, Sequence, Tuple

import streamlit as st

from src.config import config
from src.data.models import (
    ClientOption,
    DemandDataset,
    StaffOption,
    unique_clients,
    unique_preferred_staff,
    unique_skills,
)
from src.data.selection import (
    Dimension,
    FilterSelection,
    PreferredStaffFilterMode,
    SelectionFlags,
    coerce_month_range,
    covers_all,
)
from src.data.time_horizon import MonthRange
from src.staffing.identity import normalize, normalize_all

logger = logging.getLogger(__name__)


# =============================================================================
# STATE KEYS
# =============================================================================

STATE_KEYS = {
    "demand_controller": "demand_controller",
    "show_diagnostics": "show_diagnostics",
    "matrix_metric": "matrix_metric",  # demand_hours | task_count | client_count
}


# =============================================================================
# DEFAULT VALUES
# =============================================================================

DEFAULTS = {
    "demand_controller": None,
    "show_diagnostics": False,
    "matrix_metric": "demand_hours",
}


# =============================================================================
# STATE HELPERS
# =============================================================================

def init_state():
    """Initialize all session state keys with defaults."""
    for key, default in DEFAULTS.items():
        if key not in st.session_state:
            st.session_state[key] = default


def get_state(key: str) -> Any:
    """Get state value with default fallback."""
    init_state()
    return st.session_state.get(key, DEFAULTS.get(key))


def set_state(key: str, value: Any):
    """Set state value."""
    st.session_state[key] = value


# =============================================================================
# DEMAND MATRIX CONTROLS
# =============================================================================

class ControlsPhase(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    USER_MODIFIED = "user_modified"


class ControlsState:
    """
    Owns the demand matrix ``FilterSelection``.

    Selections default to "everything available" the first time a non-empty
    dataset is observed; after that, dataset reloads only refresh the
    available lists and never overwrite what the user picked.
    """

    def __init__(self, default_month_span: Optional[int] = None):
        span = default_month_span or config.default_month_span
        self.available_skills: Tuple[str, ...] = ()
        self.available_clients: Tuple[ClientOption, ...] = ()
        self.available_preferred_staff: Tuple[StaffOption, ...] = ()
        self.total_months = 0
        self.selection = FilterSelection(month_range=MonthRange(0, max(span, 1) - 1))
        self.phase = ControlsPhase.UNINITIALIZED

    # -------------------------------------------------------------------------
    # Dataset observation
    # -------------------------------------------------------------------------

    def observe_dataset(self, dataset: Optional[DemandDataset],
                        available_clients: Optional[Sequence[ClientOption]] = None,
                        available_preferred_staff: Optional[Sequence[StaffOption]] = None) -> bool:
        """
        Refresh available options from a newly fetched dataset.

        Returns True when this call performed the one-time default selection.
        """
        if dataset is None:
            return False

        self.available_skills = tuple(dataset.skills or unique_skills(dataset.data_points))
        self.available_clients = tuple(
            available_clients if available_clients is not None else unique_clients(dataset)
        )
        self.available_preferred_staff = tuple(
            available_preferred_staff if available_preferred_staff is not None
            else unique_preferred_staff(dataset)
        )
        self.total_months = len(dataset.all_months)

        selections_empty = not self.selection.selected_skills and not self.selection.selected_clients
        if self.phase is ControlsPhase.UNINITIALIZED and not dataset.is_empty and selections_empty:
            self.selection = self._everything()
            self.phase = ControlsPhase.INITIALIZED
            logger.info("Demand matrix controls initialized: %s skills, %s clients, %s staff, %s months",
                        len(self.available_skills), len(self.available_clients),
                        len(self.available_preferred_staff), self.total_months)
            return True

        return False

    def _full_month_range(self) -> MonthRange:
        if self.total_months > 0:
            return MonthRange(0, self.total_months - 1)
        return MonthRange(0, max(config.default_month_span, 1) - 1)

    def _everything(self) -> FilterSelection:
        return FilterSelection(
            selected_skills=frozenset(self.available_skills),
            selected_clients=frozenset(c.id for c in self.available_clients),
            selected_preferred_staff=normalize_all(s.id for s in self.available_preferred_staff),
            preferred_staff_filter_mode=PreferredStaffFilterMode.ALL,
            month_range=self._full_month_range(),
        )

    # -------------------------------------------------------------------------
    # Derived flags
    # -------------------------------------------------------------------------

    @property
    def is_all_skills_selected(self) -> bool:
        return covers_all(self.selection.selected_skills, self.available_skills)

    @property
    def is_all_clients_selected(self) -> bool:
        return covers_all(self.selection.selected_clients, (c.id for c in self.available_clients))

    @property
    def is_all_preferred_staff_selected(self) -> bool:
        available = normalize_all(s.id for s in self.available_preferred_staff)
        return covers_all(normalize_all(self.selection.selected_preferred_staff), available)

    def flags(self) -> SelectionFlags:
        return SelectionFlags(
            all_skills=self.is_all_skills_selected,
            all_clients=self.is_all_clients_selected,
            all_preferred_staff=self.is_all_preferred_staff_selected,
        )

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def _replace(self, **changes) -> None:
        values = {
            "selected_skills": self.selection.selected_skills,
            "selected_clients": self.selection.selected_clients,
            "selected_preferred_staff": self.selection.selected_preferred_staff,
            "preferred_staff_filter_mode": self.selection.preferred_staff_filter_mode,
            "month_range": self.selection.month_range,
        }
        values.update(changes)
        self.selection = FilterSelection(**values)
        self.phase = ControlsPhase.USER_MODIFIED

    def toggle(self, dimension: Any, item_id: Any) -> bool:
        """Add ``item_id`` to the dimension's selection, or remove it if present."""
        dimension = Dimension(dimension)

        if dimension is Dimension.PREFERRED_STAFF:
            key = normalize(item_id)
            if key is None:
                logger.warning("Ignoring toggle of invalid preferred staff id %r", item_id)
                return False
            if key not in normalize_all(s.id for s in self.available_preferred_staff):
                logger.warning("Preferred staff %r is not in the available staff list", item_id)
            current = normalize_all(self.selection.selected_preferred_staff)
            updated = current - {key} if key in current else current | {key}
            self._replace(selected_preferred_staff=updated)
            return True

        if item_id is None or str(item_id).strip() == "":
            logger.warning("Ignoring toggle of empty %s id", dimension.value)
            return False

        item_id = str(item_id)
        if dimension is Dimension.SKILL:
            field_name, available = "selected_skills", self.available_skills
        else:
            field_name, available = "selected_clients", tuple(c.id for c in self.available_clients)

        if item_id not in available:
            logger.warning("%s %r is not in the available list", dimension.value, item_id)

        current = getattr(self.selection, field_name)
        updated = current - {item_id} if item_id in current else current | {item_id}
        self._replace(**{field_name: updated})
        return True

    def set_selected(self, dimension: Any, item_ids: Iterable[Any]) -> None:
        """Replace a dimension's selection wholesale (select all / clear buttons)."""
        dimension = Dimension(dimension)
        if dimension is Dimension.PREFERRED_STAFF:
            self._replace(selected_preferred_staff=normalize_all(item_ids))
        elif dimension is Dimension.SKILL:
            self._replace(selected_skills=frozenset(str(i) for i in item_ids))
        else:
            self._replace(selected_clients=frozenset(str(i) for i in item_ids))

    def set_month_range(self, month_range: Any) -> None:
        """Store the range as given; it is clamped at filter time."""
        self._replace(month_range=coerce_month_range(month_range))

    def set_preferred_staff_filter_mode(self, mode: Any) -> None:
        """Switch mode. ALL and NONE clear the preferred staff selection."""
        mode = PreferredStaffFilterMode.coerce(mode)
        if mode is PreferredStaffFilterMode.SPECIFIC:
            self._replace(preferred_staff_filter_mode=mode)
        else:
            self._replace(preferred_staff_filter_mode=mode, selected_preferred_staff=frozenset())

    def reset(self) -> None:
        """Select everything available, mode ALL, full month range."""
        self.selection = self._everything()
        self.phase = ControlsPhase.INITIALIZED
