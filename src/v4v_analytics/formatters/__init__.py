"""Report formatters: terminal text, JSON and CSV."""

from v4v_analytics.formatters.csv_report import export_csv, format_csv
from v4v_analytics.formatters.json_report import build_json_report
from v4v_analytics.formatters.text import (
    render_by_essay,
    render_comparison,
    render_summary,
    render_time_series,
)

__all__ = [
    "build_json_report",
    "export_csv",
    "format_csv",
    "render_by_essay",
    "render_comparison",
    "render_summary",
    "render_time_series",
]
