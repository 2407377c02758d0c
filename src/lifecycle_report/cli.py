#!/usr/bin/env python3
"""Lifecycle Report - component lifecycle and usage statistics from device traces.

Commands:
- components: per-component running time, restarts and restarts after
  low-memory kills, with inconsistent components flagged
- usage: installed packages joined with usage history and per-package
  service statistics
"""

from __future__ import annotations

import sys
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, TypeVar

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from lifecycle_report import __version__
from lifecycle_report.lifecycle import LifecycleIndex
from lifecycle_report.loaders import (
    MalformedInputError,
    load_event_trace,
    load_inventory,
    load_usage_history,
)
from lifecycle_report.models import (
    ComponentCategory,
    Diagnostic,
    EventTrace,
    Milliseconds,
    ReportConfig,
    TableData,
)
from lifecycle_report.render import (
    console,
    export_csv,
    export_markdown_report,
    render_rich_output,
)
from lifecycle_report.report import (
    COMPONENT_COLUMNS,
    USAGE_COLUMNS,
    build_component_report,
    build_usage_report,
    component_table,
    resolve_sort_field,
    sort_rows,
    usage_table,
)
from lifecycle_report.usage import UsageHistoryIndex

T = TypeVar("T")

# ============================================================
# INPUT HANDLING
# ============================================================


def current_time_ms() -> Milliseconds:
    return int(datetime.now(tz=timezone.utc).timestamp() * 1000)


def load_source(
    path: Path | None,
    source: str,
    loader: Callable[[Path], T],
    diagnostics: list[Diagnostic],
) -> T | None:
    """Run a loader, turning a missing or malformed source into a diagnostic."""
    if path is None or not path.is_file():
        where = f" at {path}" if path is not None else ""
        diagnostics.append(
            Diagnostic(
                kind="missing_input",
                severity="warning",
                source=source,
                message=f"Cannot find {source.replace('_', ' ')}{where}",
            )
        )
        return None
    try:
        return loader(path)
    except MalformedInputError as e:
        diagnostics.append(
            Diagnostic(kind="malformed_input", severity="critical", source=source, message=str(e))
        )
        return None


def build_lifecycle_index(
    trace: EventTrace, category: ComponentCategory | None
) -> LifecycleIndex:
    """Replay the trace through per-component accumulators behind a spinner."""
    with Progress(
        SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console
    ) as progress:
        task = progress.add_task(
            f"[cyan]Replaying {len(trace.events)} lifecycle events...", total=None
        )
        index = LifecycleIndex.build(trace, category=category)
        progress.update(task, completed=100)
    return index


def merge_diagnostics(diagnostics: list[Diagnostic], section: list[Diagnostic]) -> None:
    """Add section diagnostics, skipping sources whose loading problem is already reported."""
    reported = {d.source for d in diagnostics}
    diagnostics.extend(d for d in section if d.source not in reported)


def determine_exit_code(diagnostics: list[Diagnostic], config: ReportConfig) -> int:
    """0 = clean, 1 = warnings or anomalies, 2 = malformed input."""
    if any(d.severity == "critical" for d in diagnostics):
        return 2
    for diagnostic in diagnostics:
        if diagnostic.kind == "lifecycle_anomaly" and not config.fail_on_anomaly:
            continue
        if diagnostic.severity == "warning":
            return 1
    return 0


def emit_report(
    title: str,
    table: TableData,
    diagnostics: list[Diagnostic],
    *,
    trace: EventTrace | None,
    output: Path | None,
    csv_output: Path | None,
) -> None:
    render_rich_output(title, [table], diagnostics, trace=trace)

    if output:
        export_markdown_report(title, [table], diagnostics, output, trace=trace)
        console.print(f"\n[success]Report exported to {output}[/success]")
    if csv_output:
        export_csv(table, csv_output)
        console.print(f"[success]CSV exported to {csv_output}[/success]")


# ============================================================
# TYPER CLI INTERFACE
# ============================================================

app = typer.Typer(
    name="lifecycle-report",
    help="Component lifecycle and package usage statistics from device diagnostic traces",
    add_completion=False,
    rich_markup_mode="rich",
)

TraceArgument = Annotated[
    Path,
    typer.Argument(
        help="Path to the event trace JSON file",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
]
OutputOption = Annotated[
    Path | None,
    typer.Option(
        "--output",
        "-o",
        help="Export the report to a Markdown file (e.g., report.md)",
        file_okay=True,
        dir_okay=False,
    ),
]
CsvOption = Annotated[
    Path | None,
    typer.Option("--csv", help="Export the table as CSV", file_okay=True, dir_okay=False),
]
SortOption = Annotated[
    str | None,
    typer.Option("--sort-by", help="Column to sort by (column name or export key)"),
]
DescendingOption = Annotated[
    bool, typer.Option("--descending", help="Sort in descending order")
]
VerboseOption = Annotated[
    bool, typer.Option("--verbose", "-v", help="Enable verbose output")
]


@app.command()
def components(
    trace_file: TraceArgument,
    category: Annotated[
        str,
        typer.Option(
            "--category", help="Only count events of this category (proc, service, activity)"
        ),
    ] = "proc",
    sort_by: SortOption = None,
    descending: DescendingOption = False,
    allow_anomalies: Annotated[
        bool,
        typer.Option(
            "--allow-anomalies",
            help="Exit with 0 even when lifecycle inconsistencies were found",
        ),
    ] = False,
    output: OutputOption = None,
    csv_output: CsvOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Per-component lifecycle statistics from an event trace.

    Exit codes: 0 = clean, 1 = warnings, 2 = malformed input.
    """
    diagnostics: list[Diagnostic] = []

    try:
        config = ReportConfig(
            sort_by=sort_by,
            descending=descending,
            category=category,
            fail_on_anomaly=not allow_anomalies,
        )
        trace = load_source(trace_file, "event_trace", load_event_trace, diagnostics)
        index = None
        if trace is not None:
            if verbose:
                console.print(f"[info]Read {len(trace.events)} events from {trace_file}[/info]")
            index = build_lifecycle_index(trace, config.category)
            if verbose:
                console.print(f"[info]Tracked {len(index)} components[/info]")

        report = build_component_report(index)
        merge_diagnostics(diagnostics, report.diagnostics)
        field = resolve_sort_field(COMPONENT_COLUMNS, config.sort_by or "component")
        report.rows = sort_rows(report.rows, field, descending=config.descending)

        emit_report(
            "AM Proc Stats",
            component_table(report),
            diagnostics,
            trace=trace,
            output=output,
            csv_output=csv_output,
        )
    except ValueError as e:
        console.print(f"[critical]ERROR: {e}[/critical]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[critical]ERROR: {e}[/critical]")
        if verbose:
            console.print_exception()
        sys.exit(1)

    sys.exit(determine_exit_code(diagnostics, config))


@app.command()
def usage(
    trace_file: TraceArgument,
    usage_history: Annotated[
        Path | None,
        typer.Option("--usage-history", "-u", help="Path to the usage-history XML section"),
    ] = None,
    inventory: Annotated[
        Path | None,
        typer.Option("--inventory", "-i", help="Path to the package inventory JSON file"),
    ] = None,
    now: Annotated[
        int | None,
        typer.Option("--now", help="Reference time for ages, epoch ms (default: current time)"),
    ] = None,
    category: Annotated[
        str,
        typer.Option(
            "--category", help="Only aggregate this component category (proc, service, activity)"
        ),
    ] = "service",
    sort_by: SortOption = None,
    descending: DescendingOption = False,
    output: OutputOption = None,
    csv_output: CsvOption = None,
    verbose: VerboseOption = False,
) -> None:
    """Installed packages joined with usage history and lifecycle statistics.

    Exit codes: 0 = clean, 1 = warnings, 2 = malformed input.
    """
    diagnostics: list[Diagnostic] = []

    try:
        config = ReportConfig(now_ms=now, sort_by=sort_by, descending=descending, category=category)
        trace = load_source(trace_file, "event_trace", load_event_trace, diagnostics)
        records = load_source(usage_history, "usage_history", load_usage_history, diagnostics)
        packages = load_source(inventory, "package_inventory", load_inventory, diagnostics)

        lifecycle_index = (
            build_lifecycle_index(trace, config.category) if trace is not None else None
        )
        usage_index = UsageHistoryIndex.from_records(records) if records is not None else None
        if verbose:
            console.print(
                f"[info]Loaded {len(lifecycle_index or [])} components, "
                f"{len(usage_index or [])} packages with usage history, "
                f"{len(packages or [])} installed packages[/info]"
            )

        report = build_usage_report(
            packages,
            usage_index,
            lifecycle_index,
            now_ms=config.now_ms if config.now_ms is not None else current_time_ms(),
        )
        merge_diagnostics(diagnostics, report.diagnostics)

        field = resolve_sort_field(USAGE_COLUMNS, config.sort_by or "package")
        report.rows = sort_rows(report.rows, field, descending=config.descending)

        emit_report(
            "Usage history",
            usage_table(report),
            diagnostics,
            trace=trace,
            output=output,
            csv_output=csv_output,
        )
    except ValueError as e:
        console.print(f"[critical]ERROR: {e}[/critical]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[critical]ERROR: {e}[/critical]")
        if verbose:
            console.print_exception()
        sys.exit(1)

    sys.exit(determine_exit_code(diagnostics, config))


@app.command()
def version() -> None:
    """Display version."""
    console.print(f"lifecycle-report {__version__}")


if __name__ == "__main__":
    app()
