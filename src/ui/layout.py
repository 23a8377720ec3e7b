"""
Layout components: KPI strip, section headers, info boxes.
"""
import streamlit as st
from typing import Optional

from src.ui.formatting import fmt_count, fmt_hours, fmt_percent


# =============================================================================
# KPI CARDS
# =============================================================================

def render_kpi_strip(metrics: dict):
    """
    Render horizontal strip of KPI cards.

    metrics: dict with keys like 'total_demand', 'total_tasks', etc.
    """
    if not metrics:
        return

    cols = st.columns(len(metrics))

    format_map = {
        "total_demand": ("Demand Hours", fmt_hours),
        "total_tasks": ("Tasks", fmt_count),
        "total_clients": ("Clients", fmt_count),
        "skills": ("Skills", fmt_count),
        "months": ("Months", fmt_count),
        "utilization": ("Utilization", lambda x: fmt_percent(x, decimals=0)),
    }

    for i, (key, value) in enumerate(metrics.items()):
        with cols[i]:
            if key in format_map:
                label, formatter = format_map[key]
                formatted_value = formatter(value)
            else:
                label = key.replace("_", " ").title()
                formatted_value = str(value)

            st.metric(label=label, value=formatted_value)


# =============================================================================
# SECTION HEADERS
# =============================================================================

def section_header(title: str, description: Optional[str] = None):
    """Render section header with optional description."""
    st.subheader(title)
    if description:
        st.caption(description)


def info_box(title: str, content: str, type: str = "info"):
    """Render info/warning/error box."""
    if type == "info":
        st.info(f"**{title}**: {content}")
    elif type == "warning":
        st.warning(f"**{title}**: {content}")
    elif type == "error":
        st.error(f"**{title}**: {content}")
    elif type == "success":
        st.success(f"**{title}**: {content}")
