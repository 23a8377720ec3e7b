"""
Demand matrix controller: the surface pages and exports talk to.

Wires ``ControlsState``, the ``FilterPipeline`` and a ``Debouncer`` so that a
burst of toggles is applied as one selection change and filtered once.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence

import pandas as pd

from src.config import config
from src.data.diagnostics import DiagnosticsReport, validate_structure
from src.data.models import ClientOption, DemandDataset, StaffOption
from src.data.selection import Dimension, GroupingMode
from src.exports import build_matrix_export, export_dataframe_csv
from src.metrics.demand_filtering import FilterPipeline
from src.ui.debounce import Debouncer
from src.ui.state import ControlsState, get_state, set_state

logger = logging.getLogger(__name__)


class DemandMatrixController:
    """One per open matrix view; owns its pipeline, cache and debouncer."""

    def __init__(self, pipeline: Optional[FilterPipeline] = None,
                 controls: Optional[ControlsState] = None,
                 debounce_seconds: Optional[float] = None,
                 clock: Optional[Callable[[], float]] = None):
        if debounce_seconds is None:
            debounce_seconds = config.toggle_debounce_seconds
        self.pipeline = pipeline or FilterPipeline()
        self.controls = controls or ControlsState()
        self.debouncer = Debouncer(wait_seconds=debounce_seconds, clock=clock or time.monotonic)
        self.dataset: Optional[DemandDataset] = None
        self.report: Optional[DiagnosticsReport] = None
        self.grouping_mode = GroupingMode.SKILL
        self._last_result: Optional[DemandDataset] = None

    # -------------------------------------------------------------------------
    # Data
    # -------------------------------------------------------------------------

    def load_dataset(self, dataset: Optional[DemandDataset],
                     available_clients: Optional[Sequence[ClientOption]] = None,
                     available_preferred_staff: Optional[Sequence[StaffOption]] = None) -> DiagnosticsReport:
        """Accept a freshly fetched dataset. User selections survive the refresh."""
        if self.dataset is not None and self.dataset is not dataset:
            self.pipeline.cache.invalidate(self.dataset)

        self.dataset = dataset
        self._last_result = None
        self.report = validate_structure(dataset)
        self.controls.observe_dataset(dataset, available_clients, available_preferred_staff)
        return self.report

    def get_filtered_data(self) -> DemandDataset:
        """
        Filtered dataset for the current selection. Never None.

        While a toggle burst is still inside its debounce window the previous
        result is returned unchanged.
        """
        if self.debouncer.has_pending and not self.debouncer.ready() and self._last_result is not None:
            return self._last_result

        self.debouncer.flush()
        result = self.pipeline.apply(self.dataset, self.controls.selection, self.controls.flags(),
                                     grouping_mode=self.grouping_mode)
        self._last_result = result
        return result

    def flush(self) -> int:
        """Apply pending toggles immediately."""
        return self.debouncer.flush(force=True)

    @property
    def has_pending_changes(self) -> bool:
        return self.debouncer.has_pending

    def pending_wait(self) -> float:
        return self.debouncer.remaining()

    # -------------------------------------------------------------------------
    # Control events
    # -------------------------------------------------------------------------

    def on_skill_toggle(self, skill: str) -> None:
        self.debouncer.submit(self.controls.toggle, Dimension.SKILL, skill)

    def on_client_toggle(self, client_id: str) -> None:
        self.debouncer.submit(self.controls.toggle, Dimension.CLIENT, client_id)

    def on_preferred_staff_toggle(self, staff_id: Any) -> None:
        self.debouncer.submit(self.controls.toggle, Dimension.PREFERRED_STAFF, staff_id)

    def on_select_all(self, dimension: Any, selected: bool = True) -> None:
        self.flush()
        dimension = Dimension(dimension)
        if not selected:
            self.controls.set_selected(dimension, ())
        elif dimension is Dimension.SKILL:
            self.controls.set_selected(dimension, self.controls.available_skills)
        elif dimension is Dimension.CLIENT:
            self.controls.set_selected(dimension, [c.id for c in self.controls.available_clients])
        else:
            self.controls.set_selected(dimension, [s.id for s in self.controls.available_preferred_staff])

    def on_preferred_staff_filter_mode_change(self, mode: Any) -> None:
        self.flush()
        self.controls.set_preferred_staff_filter_mode(mode)

    def on_month_range_change(self, month_range: Any) -> None:
        self.flush()
        self.controls.set_month_range(month_range)

    def on_grouping_mode_change(self, mode: Any) -> None:
        """Switch matrix rows between skills and clients. Filters are untouched."""
        self.flush()
        self.grouping_mode = GroupingMode.coerce(mode)

    def on_reset(self) -> None:
        dropped = self.debouncer.cancel()
        if dropped:
            logger.debug("Reset discarded %s pending toggles", dropped)
        self.controls.reset()

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def export_rows(self, capacity: Optional[Dict] = None) -> pd.DataFrame:
        """Filtered matrix as Skill/Month/Demand/Capacity/Gap/Utilization rows."""
        return build_matrix_export(self.get_filtered_data(), capacity)

    def export_csv(self, capacity: Optional[Dict] = None, filename: Optional[str] = None) -> tuple:
        """(csv_bytes, filename) for the filtered matrix."""
        return export_dataframe_csv(self.export_rows(capacity), filename)


def get_session_controller() -> DemandMatrixController:
    """The current browser session's controller, created on first use."""
    controller = get_state("demand_controller")
    if controller is None:
        controller = DemandMatrixController()
        set_state("demand_controller", controller)
    return controller
