"""Rich terminal output plus Markdown and CSV export of report tables."""

from __future__ import annotations

import csv
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from lifecycle_report.models import (
    CellKind,
    CellValue,
    Diagnostic,
    EventTrace,
    Milliseconds,
    TableData,
)

# ============================================================
# FORMATTING
# ============================================================


def format_timestamp(ms: Milliseconds) -> str:
    """Render an epoch millisecond timestamp as ``yyyy-MM-dd HH:mm:ss.SSS+0000``."""
    moment = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    return f"{moment:%Y-%m-%d %H:%M:%S}.{ms % 1000:03d}{moment:%z}"


def format_duration(ms: Milliseconds) -> str:
    """Render a millisecond span as ``[Nd ]HH:MM:SS.mmm``."""
    sign = "-" if ms < 0 else ""
    ms = abs(ms)
    seconds, millis = divmod(ms, 1000)
    minutes, seconds = divmod(seconds, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)
    prefix = f"{days}d " if days else ""
    return f"{sign}{prefix}{hours:02d}:{minutes:02d}:{seconds:02d}.{millis:03d}"


def format_cell(value: CellValue, kind: CellKind) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if kind == "timestamp":
        return format_timestamp(value)
    if kind == "duration":
        return format_duration(value)
    if kind == "percent":
        return f"{value}%"
    return str(value)


def build_time_window_rows(trace: EventTrace) -> list[tuple[str, str]]:
    """Build rows describing the observation window."""
    return [
        ("First event timestamp", format_timestamp(trace.first_ts)),
        ("Last event timestamp", format_timestamp(trace.last_ts)),
        ("Duration", f"{trace.duration}ms = {format_duration(trace.duration)}"),
        ("Events", str(len(trace.events))),
    ]


def determine_overall_status(diagnostics: Sequence[Diagnostic]) -> tuple[str, str]:
    """Determine overall status text and style token."""
    if any(d.severity == "critical" for d in diagnostics):
        return "INCOMPLETE - MALFORMED INPUT", "critical"
    if any(d.kind == "lifecycle_anomaly" for d in diagnostics):
        return "DEGRADED - LOG INCONSISTENCIES FOUND", "warning"
    if any(d.severity == "warning" for d in diagnostics):
        return "PARTIAL - SOME SOURCES MISSING", "warning"
    return "OK", "success"


# ============================================================
# RICH OUTPUT RENDERING
# ============================================================

LIFECYCLE_REPORT_THEME = Theme(
    {
        "critical": "bold red",
        "warning": "bold yellow",
        "success": "bold green",
        "info": "cyan",
        "metric": "white",
        "label": "dim white",
        "header": "bold magenta",
    }
)

ROW_STYLES = {"flagged": "critical"}

console = Console(theme=LIFECYCLE_REPORT_THEME)


def create_key_value_table(title: str, rows: list[tuple[str, str]]) -> Table:
    """Create a simple two-column key/value table."""
    table = Table(title=title, show_header=False, box=None, padding=(0, 2))
    table.add_column("Metric", style="label")
    table.add_column("Value", style="metric")
    for label, value in rows:
        table.add_row(label, value)
    return table


def create_report_table(data: TableData) -> Table:
    """Turn typed table data into a Rich table; flagged rows are highlighted."""
    table = Table(title=data.title, show_header=True, header_style="header")
    for column in data.columns:
        table.add_column(
            column.name,
            justify="right" if column.align == "right" else "left",
            style="info" if column.kind == "str" else "metric",
        )
    for row in data.rows:
        table.add_row(
            *(format_cell(cell, column.kind) for cell, column in zip(row.cells, data.columns)),
            style=ROW_STYLES.get(row.style or "") or None,
        )
    return table


def render_diagnostics_panel(diagnostics: Sequence[Diagnostic]) -> Panel:
    """Render diagnostics in a banner colored by the worst severity."""
    if not diagnostics:
        return Panel(
            Text("No data issues found", style="success"), title="Status", border_style="green"
        )

    if any(d.severity == "critical" for d in diagnostics):
        title_text, border_style = "[critical]Input Errors[/critical]", "red"
    elif any(d.severity == "warning" for d in diagnostics):
        title_text, border_style = "[warning]Data Notes[/warning]", "yellow"
    else:
        title_text, border_style = "[info]Data Notes[/info]", "cyan"

    text = Text()
    for index, diagnostic in enumerate(diagnostics):
        line_ending = "\n" if index < len(diagnostics) - 1 else ""
        text.append(f"[{diagnostic.source}] ", style="label")
        text.append(diagnostic.message + line_ending, style=diagnostic.severity)
    return Panel(text, title=title_text, border_style=border_style, expand=True)


def render_rich_output(
    title: str,
    tables: Sequence[TableData],
    diagnostics: Sequence[Diagnostic],
    *,
    trace: EventTrace | None = None,
) -> None:
    """Render the report sections that could be built, then the overall status."""
    console.print()
    console.print(Panel(title, style="header", expand=True))
    console.print()

    if trace is not None:
        console.print(create_key_value_table("Observation Window", build_time_window_rows(trace)))
        console.print()

    if diagnostics:
        console.print(render_diagnostics_panel(diagnostics))
        console.print()

    for data in tables:
        if data.rows:
            console.print(create_report_table(data))
            console.print()

    status, status_style = determine_overall_status(diagnostics)
    console.print(Panel(status, title="Overall Status", border_style=status_style))


# ============================================================
# EXPORT
# ============================================================


def _markdown_cell(text: str) -> str:
    return text.replace("|", "\\|")


def build_markdown_table(data: TableData) -> list[str]:
    lines = [
        "| " + " | ".join(_markdown_cell(column.name) for column in data.columns) + " |\n",
        "|"
        + "|".join("---:" if column.align == "right" else "---" for column in data.columns)
        + "|\n",
    ]
    for row in data.rows:
        cells = [
            _markdown_cell(format_cell(cell, column.kind))
            for cell, column in zip(row.cells, data.columns)
        ]
        if row.style == "flagged":
            cells[0] = f"**{cells[0]}** (!)"
        lines.append("| " + " | ".join(cells) + " |\n")
    return lines


def export_markdown_report(
    title: str,
    tables: Sequence[TableData],
    diagnostics: Sequence[Diagnostic],
    output_path: Path,
    *,
    trace: EventTrace | None = None,
) -> None:
    """Export the report to Markdown format."""
    md_content: list[str] = []

    md_content.append(f"# {title}\n\n")
    md_content.append(f"**Generated:** {datetime.now().isoformat()}\n\n")

    if trace is not None:
        md_content.append("## Observation Window\n\n")
        for label, value in build_time_window_rows(trace):
            md_content.append(f"- **{label}:** {value}\n")
        md_content.append("\n")

    if diagnostics:
        md_content.append("## Data Notes\n\n")
        for diagnostic in diagnostics:
            md_content.append(
                f"- **{diagnostic.severity.upper()}** ({diagnostic.source}): "
                f"{diagnostic.message}\n"
            )
        md_content.append("\n")

    for data in tables:
        md_content.append(f"## {data.title}\n\n")
        if not data.rows:
            md_content.append("_No rows._\n\n")
            continue
        md_content.extend(build_markdown_table(data))
        md_content.append("\n")

    status, _ = determine_overall_status(diagnostics)
    md_content.append(f"**Overall status:** {status}\n")

    output_path.write_text("".join(md_content), encoding="utf-8")


def export_csv(data: TableData, output_path: Path) -> None:
    """Write raw cell values, keyed by each column's export key."""
    with output_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(column.export_key or column.name for column in data.columns)
        for row in data.rows:
            writer.writerow("" if cell is None else cell for cell in row.cells)
