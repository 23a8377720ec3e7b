"""
Practice Demand Matrix

Main entry point for Streamlit app.
"""
import streamlit as st
from pathlib import Path
from datetime import datetime, timezone

# Page config must be first Streamlit command
st.set_page_config(
    page_title="Demand Matrix",
    page_icon="🧮",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Add src to path
import sys
sys.path.insert(0, str(Path(__file__).parent))

from src.ui.state import init_state
from src.data.loader import load_demand_tasks, get_data_status
from src.data.schema import validate_schema, display_validation_result
from src.logging_config import configure_logging
from src.config import config, TABLE_FILES


def main():
    """Main app entry point."""
    configure_logging()
    init_state()

    st.title("Practice Demand Matrix")
    st.caption("Skill → Month → Client → Task")

    # Check data availability
    status = get_data_status()
    demand_info = status["processed"]["demand_task_month"]

    if not (demand_info["parquet_exists"] or demand_info["csv_exists"]):
        st.error("No data found!")
        st.markdown(f"""
        ### Setup Required

        Please place your data file in: `{config.processed_dir}`

        Required file:
        - `{TABLE_FILES['demand_task_month']}.parquet` (or .csv), one row per skill, month and recurring task

        Check it with `python scripts/validate_inputs.py`.
        """)

        st.info("Once data is in place, refresh this page.")
        return

    with st.expander("Data fingerprint", expanded=False):
        rows = []
        for filename in TABLE_FILES.values():
            for ext in ("parquet", "csv"):
                path = config.processed_dir / f"{filename}.{ext}"
                if path.exists():
                    mtime = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
                    rows.append({
                        "file": path.name,
                        "size_mb": round(path.stat().st_size / (1024 * 1024), 2),
                        "modified_utc": mtime.strftime("%Y-%m-%d %H:%M"),
                    })
        st.dataframe(rows, use_container_width=True)

    # Load and validate data
    with st.spinner("Loading data..."):
        try:
            df = load_demand_tasks()
            result = validate_schema(df, "demand_task_month", strict=False)
        except Exception as e:
            st.error(f"Error loading data: {e}")
            return

    display_validation_result(result, "demand_task_month")

    st.markdown("---")

    col1, col2 = st.columns([1, 4])

    with col1:
        st.markdown("### Quick Links")
        st.page_link("pages/1_Demand_Matrix.py", label="Demand Matrix", icon="🧮")

    with col2:
        st.markdown("### Data Overview")

        c1, c2, c3, c4 = st.columns(4)

        with c1:
            st.metric("Task Rows", f"{len(df):,}")

        with c2:
            st.metric("Skills", f"{df['skill_type'].nunique():,}")

        with c3:
            st.metric("Clients", f"{df['client_id'].nunique():,}")

        with c4:
            months = df["month_key"].dropna()
            if len(months) > 0:
                start = datetime.strptime(months.min(), "%Y-%m")
                end = datetime.strptime(months.max(), "%Y-%m")
                st.metric("Date Range", f"{start.strftime('%b %Y')} - {end.strftime('%b %Y')}")

        st.markdown("#### Key Metrics")

        m1, m2 = st.columns(2)

        with m1:
            st.metric("Total Demand Hours", f"{df['monthly_hours'].sum():,.0f}")

        with m2:
            if "preferred_staff_id" in df.columns:
                assigned = df["preferred_staff_id"].notna().mean() * 100 if len(df) > 0 else 0
                st.metric("Tasks With Preferred Staff", f"{assigned:.0f}%")

    # Data status
    st.markdown("---")
    with st.expander("Data Status"):
        st.markdown("**Processed Tables**")
        for key, info in status["processed"].items():
            icon = "✅" if info["parquet_exists"] or info["csv_exists"] else "❌"
            format_used = "parquet" if info["parquet_exists"] else "csv" if info["csv_exists"] else "missing"
            st.markdown(f"{icon} `{key}` ({format_used})")


if __name__ == "__main__":
    main()
