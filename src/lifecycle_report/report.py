"""Per-component lifecycle report and the usage-history / lifecycle join.

Both builders only consume already-built indexes and return plain rows plus
diagnostics. Missing sources degrade to an empty section with a single
diagnostic; they never raise.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

from pydantic import BaseModel

from lifecycle_report.lifecycle import ComponentStat, LifecycleIndex
from lifecycle_report.models import (
    MS_PER_DAY,
    ColumnSpec,
    ComponentReport,
    ComponentReportRow,
    Diagnostic,
    Milliseconds,
    PackageInventoryEntry,
    TableData,
    TableRow,
    UsageReport,
    UsageReportRow,
)
from lifecycle_report.usage import UsageHistoryIndex

RowT = TypeVar("RowT", bound=BaseModel)

FLAGGED_ROW_STYLE = "flagged"

# ============================================================
# COLUMN SCHEMAS
# ============================================================

COMPONENT_COLUMNS: list[ColumnSpec] = [
    ColumnSpec(name="Proc", field="component", export_key="proc"),
    ColumnSpec(
        name="Created count", field="count", export_key="created_count", align="right", kind="int"
    ),
    ColumnSpec(name="Total created time", field="total_time", align="right", kind="duration"),
    ColumnSpec(
        name="Total created time(ms)",
        field="total_time",
        export_key="created_time_ms",
        align="right",
        kind="int",
    ),
    ColumnSpec(
        name="Total created time(%)",
        field="total_time_percent",
        export_key="created_time_p",
        align="right",
        kind="percent",
    ),
    ColumnSpec(
        name="Max created time(ms)",
        field="max_time",
        export_key="created_time_max_ms",
        align="right",
        kind="int",
    ),
    ColumnSpec(
        name="Avg created time(ms)",
        field="avg_time",
        export_key="created_time_avg_ms",
        align="right",
        kind="int",
    ),
    ColumnSpec(
        name="Restart count",
        field="restart_count",
        export_key="restart_count",
        align="right",
        kind="int",
    ),
    ColumnSpec(
        name="Min restart time(ms)",
        field="min_restart_time",
        export_key="restart_time_min_ms",
        align="right",
        kind="int",
    ),
    ColumnSpec(
        name="Avg restart time(ms)",
        field="avg_restart_time",
        export_key="restart_time_avg_ms",
        align="right",
        kind="int",
    ),
    ColumnSpec(
        name="Restart after kill count",
        field="bg_kill_restart_count",
        export_key="kill_restart_count",
        align="right",
        kind="int",
    ),
    ColumnSpec(
        name="Min restart after kill time(ms)",
        field="min_bg_kill_restart_time",
        export_key="kill_restart_time_min_ms",
        align="right",
        kind="int",
    ),
    ColumnSpec(
        name="Avg restart after kill time(ms)",
        field="avg_bg_kill_restart_time",
        export_key="kill_restart_time_avg_ms",
        align="right",
        kind="int",
    ),
    ColumnSpec(name="Errors", field="errors", export_key="errors", align="right", kind="int"),
]

USAGE_COLUMNS: list[ColumnSpec] = [
    ColumnSpec(name="Package", field="package", export_key="pkg"),
    ColumnSpec(name="Type", field="package_type", export_key="type"),
    ColumnSpec(name="Last used", field="last_used", export_key="last_used", kind="timestamp"),
    ColumnSpec(name="Age", field="age_days", export_key="age", align="right", kind="int"),
    ColumnSpec(
        name="Services started",
        field="services_started",
        export_key="services_started",
        align="right",
        kind="int",
    ),
    ColumnSpec(
        name="Max created time(ms)",
        field="max_created_time",
        export_key="created_time_max_ms",
        align="right",
        kind="int",
    ),
    ColumnSpec(
        name="Max created time(%)",
        field="created_time_percent",
        export_key="created_time_max_p",
        align="right",
        kind="percent",
    ),
]

# ============================================================
# DERIVED VALUES
# ============================================================


def compute_age_days(now_ms: Milliseconds, last_referenced_time: Milliseconds) -> int:
    """Whole days elapsed since the last reference."""
    return (now_ms - last_referenced_time) // MS_PER_DAY


def percent_of_duration(value: Milliseconds, duration: Milliseconds) -> int | None:
    """Integer percentage of the observed window; not clamped, so bad input stays visible."""
    if duration <= 0:
        return None
    return value * 100 // duration


def build_component_row(stat: ComponentStat, duration: Milliseconds) -> ComponentReportRow:
    return ComponentReportRow(
        component=stat.component,
        count=stat.count,
        total_time=stat.total_time,
        total_time_percent=percent_of_duration(stat.total_time, duration),
        max_time=stat.max_time,
        avg_time=stat.avg_time,
        restart_count=stat.restart_count,
        min_restart_time=stat.min_restart_time,
        avg_restart_time=stat.avg_restart_time,
        bg_kill_restart_count=stat.bg_kill_restart_count,
        min_bg_kill_restart_time=stat.min_bg_kill_restart_time,
        avg_bg_kill_restart_time=stat.avg_bg_kill_restart_time,
        errors=stat.errors,
    )


# ============================================================
# REPORT BUILDERS
# ============================================================


def build_component_report(lifecycle_index: LifecycleIndex | None) -> ComponentReport:
    """Build one row per component seen in the trace."""
    if lifecycle_index is None or lifecycle_index.is_empty:
        return ComponentReport(
            duration=lifecycle_index.observed_duration if lifecycle_index else 0,
            diagnostics=[
                Diagnostic(
                    kind="missing_input",
                    severity="info",
                    source="event_trace",
                    message="No lifecycle events found in the event trace",
                )
            ],
        )

    duration = lifecycle_index.observed_duration
    if duration <= 0:
        return ComponentReport(
            duration=duration,
            diagnostics=[
                Diagnostic(
                    kind="missing_input",
                    severity="warning",
                    source="event_trace",
                    message=f"Event log too short (observed duration {duration}ms)",
                )
            ],
        )

    rows = [build_component_row(stat, duration) for stat in lifecycle_index.components.values()]
    total_errors = sum(row.errors for row in rows)
    diagnostics: list[Diagnostic] = []
    if total_errors > 0:
        flagged = sum(1 for row in rows if row.flagged)
        diagnostics.append(
            Diagnostic(
                kind="lifecycle_anomaly",
                severity="warning",
                source="event_trace",
                message=(
                    f"{total_errors} errors/inconsistencies found in the log across "
                    f"{flagged} components, statistics might not be correct; "
                    "affected components are highlighted"
                ),
            )
        )
    return ComponentReport(
        duration=duration, rows=rows, total_errors=total_errors, diagnostics=diagnostics
    )


def _missing(source: str, message: str) -> Diagnostic:
    return Diagnostic(kind="missing_input", severity="warning", source=source, message=message)


def build_usage_report(
    inventory: Sequence[PackageInventoryEntry] | None,
    usage_index: UsageHistoryIndex | None,
    lifecycle_index: LifecycleIndex | None,
    *,
    now_ms: Milliseconds,
) -> UsageReport:
    """Join the package inventory with usage history and per-package lifecycle stats.

    Rows follow inventory order; callers sort them for presentation.
    """
    duration = lifecycle_index.observed_duration if lifecycle_index is not None else 0
    report = UsageReport(duration=duration, now_ms=now_ms)

    if usage_index is None:
        report.diagnostics.append(_missing("usage_history", "Cannot find usage history"))
        return report
    if lifecycle_index is None or lifecycle_index.is_empty:
        report.diagnostics.append(_missing("event_trace", "Cannot find lifecycle statistics"))
        return report
    if not inventory:
        report.diagnostics.append(_missing("package_inventory", "Cannot find package list"))
        return report

    for entry in inventory:
        row = UsageReportRow(package=entry.name, package_type=entry.package_type)

        usage = usage_index.get(entry.name)
        if usage is not None:
            row.last_used = usage.last_referenced_time
            row.age_days = compute_age_days(now_ms, usage.last_referenced_time)

        stats = lifecycle_index.package_stats(entry.name)
        if stats:
            row.services_started = sum(stat.count for stat in stats)
            row.max_created_time = max(stat.max_time for stat in stats)
            row.created_time_percent = percent_of_duration(row.max_created_time, duration)

        report.rows.append(row)

    return report


# ============================================================
# SORTING AND TABLE DATA
# ============================================================


def resolve_sort_field(columns: Sequence[ColumnSpec], key: str) -> str:
    """Map a column name, export key or field name to a row field."""
    for column in columns:
        if key in (column.field, column.export_key, column.name):
            return column.field
    valid = sorted({column.export_key or column.field for column in columns})
    raise ValueError(f"Unknown sort column '{key}'. Valid columns: {', '.join(valid)}")


def sort_rows(rows: Sequence[RowT], field: str, *, descending: bool = False) -> list[RowT]:
    """Stable sort on one field; rows without a value always go last."""
    present = [row for row in rows if getattr(row, field) is not None]
    absent = [row for row in rows if getattr(row, field) is None]
    present.sort(key=lambda row: getattr(row, field), reverse=descending)
    return present + absent


def component_table(report: ComponentReport) -> TableData:
    table = TableData(
        title="AM Proc Stats", csv_name="eventlog_amdata_proc", columns=COMPONENT_COLUMNS
    )
    for row in report.rows:
        table.rows.append(
            TableRow(
                cells=[getattr(row, column.field) for column in COMPONENT_COLUMNS],
                style=FLAGGED_ROW_STYLE if row.flagged else None,
            )
        )
    return table


def usage_table(report: UsageReport) -> TableData:
    table = TableData(
        title="Usage history", csv_name="usage_history_vs_log", columns=USAGE_COLUMNS
    )
    for row in report.rows:
        table.rows.append(TableRow(cells=[getattr(row, column.field) for column in USAGE_COLUMNS]))
    return table
