"""
Standard chart wrappers using Plotly.
"""
import plotly.graph_objects as go
import pandas as pd
from typing import Optional

from src.data.models import DemandDataset


# =============================================================================
# CHART THEME
# =============================================================================

CHART_COLORS = {
    "primary": "#1f77b4",
    "secondary": "#ff7f0e",
    "success": "#28a745",
    "warning": "#ffc107",
    "danger": "#dc3545",
    "neutral": "#6c757d",
    "light": "#f8f9fa",
}

CHART_TEMPLATE = "plotly_white"

DEFAULT_LAYOUT = {
    "template": CHART_TEMPLATE,
    "font": {"family": "Arial, sans-serif", "size": 12},
    "margin": {"l": 50, "r": 30, "t": 40, "b": 50},
    "hoverlabel": {"bgcolor": "white"},
}

METRIC_LABELS = {
    "demand_hours": "Demand (hours)",
    "task_count": "Tasks",
    "client_count": "Clients",
}


def apply_layout(fig: go.Figure, **kwargs) -> go.Figure:
    """Apply standard layout to figure."""
    layout = {**DEFAULT_LAYOUT, **kwargs}
    fig.update_layout(**layout)
    return fig


# =============================================================================
# DEMAND MATRIX
# =============================================================================

def demand_matrix_frame(dataset: DemandDataset, metric: str = "demand_hours") -> pd.DataFrame:
    """
    Pivot a dataset into skills (rows) x month labels (columns).

    Months with no data for a skill are 0 so the grid stays rectangular.
    """
    labels = [m.label for m in dataset.months]
    keys = [m.key for m in dataset.months]
    matrix = pd.DataFrame(0.0, index=list(dataset.skills), columns=labels)

    label_for = dict(zip(keys, labels))
    for point in dataset.data_points:
        if point.skill_type in matrix.index and point.month in label_for:
            matrix.loc[point.skill_type, label_for[point.month]] = float(getattr(point, metric))

    return matrix


def demand_heatmap(dataset: DemandDataset, metric: str = "demand_hours",
                   row_label: str = "Skill", title: Optional[str] = None) -> go.Figure:
    """
    Heatmap of the filtered demand matrix. ``row_label`` names the row axis
    (Skill, or Client when the dataset is grouped by client).
    """
    if title is None:
        title = f"Demand Matrix ({row_label} × Month)"
    matrix = demand_matrix_frame(dataset, metric)
    metric_label = METRIC_LABELS.get(metric, metric)

    fig = go.Figure(data=go.Heatmap(
        z=matrix.values,
        x=matrix.columns,
        y=matrix.index,
        colorscale="Blues",
        colorbar={"title": metric_label},
        hovertemplate=row_label + ": %{y}<br>Month: %{x}<br>" + metric_label + ": %{z:,.1f}<extra></extra>",
    ))

    fig.update_layout(
        title=title,
        xaxis_title="Month",
        yaxis_title=row_label,
        height=max(320, 40 * len(matrix.index) + 120),
    )

    return apply_layout(fig)


def monthly_demand_bar(dataset: DemandDataset) -> go.Figure:
    """Total demand hours per month, stacked by skill."""
    matrix = demand_matrix_frame(dataset, "demand_hours")
    colors = list(CHART_COLORS.values())

    fig = go.Figure()
    for i, skill in enumerate(matrix.index):
        fig.add_trace(go.Bar(
            name=skill,
            x=list(matrix.columns),
            y=matrix.loc[skill].values,
            marker_color=colors[i % len(colors)],
        ))

    fig.update_layout(
        barmode="stack",
        title="Monthly Demand by Skill",
        xaxis_title="Month",
        yaxis_title="Hours",
        height=360,
        hovermode="x unified",
    )

    return apply_layout(fig)
