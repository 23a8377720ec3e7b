"""
Application configuration management.
"""
import os
from pathlib import Path
from dataclasses import dataclass, field


def _default_data_dir() -> Path:
    env_dir = os.getenv("DATA_DIR")
    if env_dir:
        return Path(env_dir)
    if Path("./src/data").exists() and Path("./src/data/processed").exists():
        return Path("./src/data")
    return Path("./data")


@dataclass
class AppConfig:
    """Application configuration with environment overrides."""

    # Paths
    data_dir: Path = field(default_factory=_default_data_dir)

    # Environment
    app_env: str = field(default_factory=lambda: os.getenv("APP_ENV", "dev"))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    # Loader cache (st.cache_data)
    cache_ttl_seconds: int = field(default_factory=lambda: int(os.getenv("CACHE_TTL_SECONDS", "3600")))

    # Filter result cache, owned per pipeline instance
    filter_cache_ttl_seconds: float = field(
        default_factory=lambda: float(os.getenv("FILTER_CACHE_TTL_SECONDS", "60"))
    )
    filter_cache_max_entries: int = field(
        default_factory=lambda: int(os.getenv("FILTER_CACHE_MAX_ENTRIES", "32"))
    )

    # Controls
    toggle_debounce_ms: int = field(default_factory=lambda: int(os.getenv("TOGGLE_DEBOUNCE_MS", "200")))
    default_month_span: int = field(default_factory=lambda: int(os.getenv("DEFAULT_MONTH_SPAN", "12")))

    @property
    def processed_dir(self) -> Path:
        return self.data_dir / "processed"

    @property
    def toggle_debounce_seconds(self) -> float:
        return self.toggle_debounce_ms / 1000.0


# Global config instance
config = AppConfig()


# Table file names
TABLE_FILES = {
    "demand_task_month": "demand_task_month",
}

# Required columns (hard fail if missing)
REQUIRED_COLUMNS = {
    "demand_task_month": [
        "skill_type",
        "month_key",
        "task_id",
        "client_id",
        "client_name",
        "monthly_hours",
    ],
}

# Optional columns (soft warn if missing)
OPTIONAL_COLUMNS = {
    "demand_task_month": [
        "task_name",
        "preferred_staff_id",
        "preferred_staff_name",
    ],
}

# Export layout
EXPORT_COLUMNS = ["Skill", "Month", "Demand", "Capacity", "Gap", "Utilization"]

# Formatting constants
FORMAT_HOURS = "{:,.1f}"
FORMAT_PERCENT = "{:.1f}%"
FORMAT_COUNT = "{:,}"
FORMAT_MONTH_LABEL = "%b %Y"
