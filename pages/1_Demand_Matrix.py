"""
Demand Matrix

Recurring-task demand by skill and month, filtered by skill, client,
preferred staff and month range.
"""
import time
from pathlib import Path
import sys

import streamlit as st

st.set_page_config(page_title="Demand Matrix", page_icon="🧮", layout="wide")

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import config
from src.data.loader import (
    available_clients,
    available_preferred_staff,
    build_demand_dataset,
    load_demand_tasks,
)
from src.data.models import dataset_to_frame
from src.data.selection import Dimension, GroupingMode, PreferredStaffFilterMode
from src.exports import export_dataframe_excel
from src.logging_config import configure_logging
from src.ui.charts import demand_heatmap, monthly_demand_bar
from src.ui.controller import get_session_controller
from src.ui.formatting import format_metric_df
from src.ui.layout import info_box, render_kpi_strip, section_header
from src.ui.state import get_state, init_state, set_state

configure_logging()
init_state()

WIDGET_PREFIX = {
    Dimension.SKILL: "dm_skill__",
    Dimension.CLIENT: "dm_client__",
    Dimension.PREFERRED_STAFF: "dm_staff__",
}

MODE_LABELS = {
    PreferredStaffFilterMode.ALL: "All tasks",
    PreferredStaffFilterMode.SPECIFIC: "Selected staff only",
    PreferredStaffFilterMode.NONE: "Unassigned only",
}

GROUPING_LABELS = {
    GroupingMode.SKILL: "Skill",
    GroupingMode.CLIENT: "Client",
}


def _clear_widgets(*dimensions):
    """Drop checkbox widget state so the next run redraws from the selection."""
    prefixes = tuple(WIDGET_PREFIX[d] for d in (dimensions or WIDGET_PREFIX))
    for key in [k for k in st.session_state.keys() if str(k).startswith(prefixes)]:
        del st.session_state[key]


@st.cache_data(ttl=config.cache_ttl_seconds)
def _load():
    df = load_demand_tasks()
    return build_demand_dataset(df), available_clients(df), available_preferred_staff(df)


# =============================================================================
# SIDEBAR CONTROLS
# =============================================================================

def _checkbox_group(controller, dimension, options, toggle):
    """One checkbox per option plus select all / clear buttons."""
    selected = controller.controls.selection
    if dimension is Dimension.SKILL:
        current = selected.selected_skills
    elif dimension is Dimension.CLIENT:
        current = selected.selected_clients
    else:
        current = selected.selected_preferred_staff

    def _select(value):
        controller.on_select_all(dimension, value)
        _clear_widgets(dimension)

    c1, c2 = st.columns(2)
    c1.button("Select all", key=f"{WIDGET_PREFIX[dimension]}all_btn", on_click=_select, args=(True,))
    c2.button("Clear", key=f"{WIDGET_PREFIX[dimension]}clear_btn", on_click=_select, args=(False,))

    for option_id, label in options:
        st.checkbox(
            label,
            value=option_id in current,
            key=f"{WIDGET_PREFIX[dimension]}{option_id}",
            on_change=toggle,
            args=(option_id,),
        )


def render_controls(controller):
    controls = controller.controls
    dataset = controller.dataset

    with st.sidebar:
        st.header("Filters")

        def _reset():
            controller.on_reset()
            _clear_widgets()
            st.session_state.pop("dm_month_range", None)
            st.session_state.pop("dm_staff_mode", None)

        st.button("Reset filters", on_click=_reset, use_container_width=True)

        total_months = len(dataset.all_months)
        if total_months > 0:
            labels = [m.label for m in dataset.all_months]
            month_range = controls.selection.month_range
            start = min(max(month_range.start, 0), total_months - 1)
            end = min(max(month_range.end, start), total_months - 1)

            def _on_range():
                lo, hi = st.session_state["dm_month_range"]
                controller.on_month_range_change({"start": lo, "end": hi})

            if total_months > 1:
                st.select_slider(
                    "Month Range",
                    options=list(range(total_months)),
                    value=(start, end),
                    format_func=lambda i: labels[i],
                    key="dm_month_range",
                    on_change=_on_range,
                )
            else:
                st.caption(f"Month: {labels[0]}")

        with st.expander(f"Skills ({len(controls.selection.selected_skills)}/{len(controls.available_skills)})",
                         expanded=True):
            _checkbox_group(controller, Dimension.SKILL,
                            [(s, s) for s in controls.available_skills],
                            controller.on_skill_toggle)

        with st.expander(f"Clients ({len(controls.selection.selected_clients)}/{len(controls.available_clients)})"):
            _checkbox_group(controller, Dimension.CLIENT,
                            [(c.id, c.name) for c in controls.available_clients],
                            controller.on_client_toggle)

        with st.expander("Preferred Staff"):
            modes = list(PreferredStaffFilterMode)

            def _on_mode():
                controller.on_preferred_staff_filter_mode_change(st.session_state["dm_staff_mode"])
                _clear_widgets(Dimension.PREFERRED_STAFF)

            st.radio(
                "Show",
                options=modes,
                index=modes.index(controls.selection.preferred_staff_filter_mode),
                format_func=lambda m: MODE_LABELS[m],
                key="dm_staff_mode",
                on_change=_on_mode,
            )
            if controls.selection.preferred_staff_filter_mode is PreferredStaffFilterMode.SPECIFIC:
                _checkbox_group(controller, Dimension.PREFERRED_STAFF,
                                [(s.id, s.name) for s in controls.available_preferred_staff],
                                controller.on_preferred_staff_toggle)
            elif not controls.available_preferred_staff:
                st.caption("No preferred staff in the data.")

        st.divider()
        st.number_input(
            "Capacity per skill-month (hours)",
            min_value=0.0,
            value=0.0,
            step=10.0,
            key="dm_capacity",
            help="Used for the Gap and Utilization columns of the export.",
        )
        st.checkbox("Show diagnostics", key="show_diagnostics")


# =============================================================================
# MAIN
# =============================================================================

def main():
    st.title("🧮 Demand Matrix")
    st.caption("*Which skills are needed, when, and for whom?*")

    with st.spinner("Loading data..."):
        try:
            dataset, clients, staff = _load()
        except Exception as e:
            st.error(f"Error loading data: {e}")
            return

    controller = get_session_controller()
    if controller.dataset is None or controller.dataset != dataset:
        controller.load_dataset(dataset, clients, staff)

    render_controls(controller)

    filtered = controller.get_filtered_data()
    if controller.has_pending_changes:
        st.caption("Applying filter changes...")

    if filtered.is_fallback:
        info_box("No matching demand",
                 "The current filters exclude every task. Widen the selection or reset the filters.",
                 type="warning")

    render_kpi_strip({
        "total_demand": filtered.total_demand,
        "total_tasks": filtered.total_tasks,
        "total_clients": filtered.total_clients,
        "skills": len(filtered.skills),
        "months": len(filtered.months),
    })

    st.divider()

    metric_options = ["demand_hours", "task_count", "client_count"]
    metric = st.radio(
        "Metric",
        options=metric_options,
        index=metric_options.index(get_state("matrix_metric")),
        format_func=lambda m: m.replace("_", " ").title(),
        horizontal=True,
    )
    set_state("matrix_metric", metric)

    groupings = list(GroupingMode)
    st.radio(
        "Rows",
        options=groupings,
        index=groupings.index(controller.grouping_mode),
        format_func=lambda g: GROUPING_LABELS[g],
        horizontal=True,
        key="dm_grouping",
        on_change=lambda: controller.on_grouping_mode_change(st.session_state["dm_grouping"]),
    )
    row_label = GROUPING_LABELS[controller.grouping_mode]

    if not filtered.is_empty:
        st.plotly_chart(demand_heatmap(filtered, metric, row_label=row_label), use_container_width=True)
        st.plotly_chart(monthly_demand_bar(filtered), use_container_width=True)

    st.divider()
    section_header("Drill-down", f"Tasks behind a single {row_label.lower()} and month.")

    if filtered.is_empty:
        st.info("Nothing to drill into.")
    else:
        labels = {m.key: m.label for m in filtered.months}
        c1, c2 = st.columns(2)
        skill = c1.selectbox(row_label, list(filtered.skills))
        month = c2.selectbox("Month", list(labels), format_func=lambda k: labels[k])
        tasks = dataset_to_frame(filtered)
        tasks = tasks[(tasks["skill_type"] == skill) & (tasks["month_key"] == month)]
        if len(tasks) == 0:
            st.caption("No tasks for this cell.")
        else:
            st.dataframe(
                format_metric_df(tasks.drop(columns=["skill_type", "month_key"])),
                use_container_width=True,
                hide_index=True,
            )

    st.divider()
    section_header("Export")

    cap = st.session_state.get("dm_capacity", 0.0) or 0.0
    capacity = None
    if cap > 0:
        capacity = {(s, m.key): cap for s in filtered.skills for m in filtered.months}

    export_df = controller.export_rows(capacity)
    st.dataframe(format_metric_df(export_df), use_container_width=True, hide_index=True)

    c1, c2 = st.columns(2)
    csv_bytes, csv_name = controller.export_csv(capacity)
    c1.download_button("Download CSV", csv_bytes, file_name=csv_name, mime="text/csv")
    xlsx_bytes, xlsx_name = export_dataframe_excel(export_df)
    c2.download_button(
        "Download Excel", xlsx_bytes, file_name=xlsx_name,
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )

    if get_state("show_diagnostics"):
        with st.expander("Diagnostics", expanded=True):
            report = controller.report
            if report is not None:
                if report.is_valid:
                    st.success("Dataset structure valid")
                for issue in report.issues:
                    st.error(issue)
                for warning in report.warnings:
                    st.warning(warning)
            pipeline = controller.pipeline
            st.json({
                "stage_counts": pipeline.last_stage_counts,
                "runs": pipeline.runs,
                "cache": pipeline.cache.stats.__dict__,
                "filter_diagnostics": pipeline.last_diagnostics,
            })

    # Toggle bursts settle inside the debounce window; poll until applied.
    if controller.has_pending_changes:
        time.sleep(controller.pending_wait())
        st.rerun()


if __name__ == "__main__":
    main()
