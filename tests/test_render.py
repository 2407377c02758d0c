"""Tests for cell formatting and report export."""

import csv

from conftest import build_index, create, destroy
from lifecycle_report.models import Diagnostic, EventTrace
from lifecycle_report.render import (
    build_markdown_table,
    create_report_table,
    determine_overall_status,
    export_csv,
    export_markdown_report,
    format_cell,
    format_duration,
    format_timestamp,
)
from lifecycle_report.report import build_component_report, component_table


def anomalous_table():
    index = build_index(
        [
            create(0, "app.foo/A"),
            create(10, "app.foo/A"),
            destroy(20, "app.foo/A"),
            create(0, "app.foo/B"),
        ]
    )
    return component_table(build_component_report(index))


class TestFormatting:
    def test_timestamp(self):
        assert format_timestamp(0) == "1970-01-01 00:00:00.000+0000"
        assert format_timestamp(1_700_000_000_123) == "2023-11-14 22:13:20.123+0000"

    def test_duration(self):
        assert format_duration(5) == "00:00:00.005"
        assert format_duration(61_000) == "00:01:01.000"
        assert format_duration(90_061_005) == "1d 01:01:01.005"
        assert format_duration(-1500) == "-00:00:01.500"

    def test_cells(self):
        assert format_cell(None, "int") == ""
        assert format_cell(25, "percent") == "25%"
        assert format_cell(12, "int") == "12"
        assert format_cell("app.foo", "str") == "app.foo"
        assert format_cell(1000, "duration") == "00:00:01.000"


class TestStatus:
    def test_clean(self):
        assert determine_overall_status([]) == ("OK", "success")

    def test_anomaly(self):
        diagnostic = Diagnostic(
            kind="lifecycle_anomaly", severity="warning", source="event_trace", message="x"
        )
        assert determine_overall_status([diagnostic])[1] == "warning"

    def test_malformed_wins(self):
        diagnostics = [
            Diagnostic(kind="missing_input", severity="warning", source="a", message="x"),
            Diagnostic(kind="malformed_input", severity="critical", source="b", message="y"),
        ]
        assert determine_overall_status(diagnostics)[1] == "critical"


class TestRichTable:
    def test_columns_and_rows(self):
        table = create_report_table(anomalous_table())
        assert table.row_count == 2
        assert len(table.columns) == 14
        assert table.columns[1].justify == "right"


class TestExport:
    def test_csv(self, tmp_path):
        path = tmp_path / "proc.csv"
        export_csv(anomalous_table(), path)

        with path.open(newline="", encoding="utf-8") as f:
            rows = list(csv.reader(f))
        assert rows[0][:3] == ["proc", "created_count", "Total created time"]
        assert rows[1][0] == "app.foo/A"
        assert rows[1][1] == "2"
        assert rows[1][-1] == "1"
        # Unset cells stay empty rather than zero
        assert rows[2][8] == ""

    def test_markdown_table_marks_flagged_rows(self):
        lines = build_markdown_table(anomalous_table())
        assert lines[0].startswith("| Proc | Created count |")
        assert lines[1].startswith("|---|---:|")
        assert "**app.foo/A** (!)" in lines[2]
        assert "(!)" not in lines[3]

    def test_markdown_report(self, tmp_path):
        path = tmp_path / "report.md"
        diagnostics = [
            Diagnostic(
                kind="lifecycle_anomaly",
                severity="warning",
                source="event_trace",
                message="1 error",
            )
        ]
        export_markdown_report(
            "AM Proc Stats",
            [anomalous_table()],
            diagnostics,
            path,
            trace=EventTrace(first_ts=0, last_ts=1000),
        )

        content = path.read_text(encoding="utf-8")
        assert content.startswith("# AM Proc Stats\n")
        assert "## Observation Window" in content
        assert "- **WARNING** (event_trace): 1 error" in content
        assert "| Proc |" in content
        assert "DEGRADED" in content
