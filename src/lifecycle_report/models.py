"""Pydantic models shared by the lifecycle, usage and report layers."""

from __future__ import annotations

from typing import Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

# ============================================================
# TYPE ALIASES
# ============================================================

EventKind: TypeAlias = Literal["CREATE", "DESTROY", "DESTROY_LOW_MEMORY_KILL"]
ComponentCategory: TypeAlias = Literal["proc", "service", "activity"]
LifecycleState: TypeAlias = Literal["IDLE", "RUNNING"]
Milliseconds: TypeAlias = int
PercentageValue: TypeAlias = int

DiagnosticKind: TypeAlias = Literal["missing_input", "malformed_input", "lifecycle_anomaly"]
Severity: TypeAlias = Literal["info", "warning", "critical"]

CellKind: TypeAlias = Literal["str", "int", "percent", "timestamp", "duration"]
CellValue: TypeAlias = str | int | None
Alignment: TypeAlias = Literal["left", "right"]

COMPONENT_SEPARATOR = "/"
MS_PER_DAY = 86_400_000

# ============================================================
# INPUT RECORDS
# ============================================================


class LifecycleEvent(BaseModel):
    """One CREATE/DESTROY occurrence for a component."""

    model_config = ConfigDict(frozen=True)

    timestamp: Milliseconds
    kind: EventKind
    component: str = Field(min_length=1)
    category: ComponentCategory = "proc"


class EventTrace(BaseModel):
    """A bounded observation window and the events seen inside it."""

    model_config = ConfigDict(frozen=True)

    first_ts: Milliseconds
    last_ts: Milliseconds
    events: tuple[LifecycleEvent, ...] = ()

    @property
    def duration(self) -> Milliseconds:
        return self.last_ts - self.first_ts


class ComponentRef(BaseModel):
    """Component identifier split once into its owning package and class name."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    package: str | None
    name: str

    @classmethod
    def parse(cls, identifier: str) -> ComponentRef:
        """Split ``package/class``; bare process names own no package."""
        package, sep, name = identifier.partition(COMPONENT_SEPARATOR)
        if not sep:
            return cls(identifier=identifier, package=None, name=identifier)
        return cls(identifier=identifier, package=package, name=name)


class UsageRecord(BaseModel):
    """Last time a single component of a package was referenced."""

    model_config = ConfigDict(frozen=True)

    package: str
    component: str
    last_referenced_time: Milliseconds


class PackageUsage(BaseModel):
    """Usage history folded per package."""

    package: str
    last_referenced_time: Milliseconds
    components: list[UsageRecord] = Field(default_factory=list)


class PackageInventoryEntry(BaseModel):
    """An installed package as listed by the package manager."""

    model_config = ConfigDict(frozen=True)

    name: str
    is_system: bool = False

    @property
    def package_type(self) -> str:
        return "System" if self.is_system else "Installed"


# ============================================================
# DIAGNOSTICS
# ============================================================


class Diagnostic(BaseModel):
    """A non-fatal condition reported while building a report section."""

    model_config = ConfigDict(frozen=True)

    kind: DiagnosticKind
    severity: Severity
    source: str
    message: str


# ============================================================
# REPORT OUTPUT
# ============================================================


class ComponentReportRow(BaseModel):
    """Lifecycle statistics of one component."""

    component: str
    count: int
    total_time: Milliseconds
    total_time_percent: PercentageValue | None = None
    max_time: Milliseconds
    avg_time: Milliseconds | None = None
    restart_count: int
    min_restart_time: Milliseconds | None = None
    avg_restart_time: Milliseconds | None = None
    bg_kill_restart_count: int
    min_bg_kill_restart_time: Milliseconds | None = None
    avg_bg_kill_restart_time: Milliseconds | None = None
    errors: int = 0

    @property
    def flagged(self) -> bool:
        return self.errors > 0


class UsageReportRow(BaseModel):
    """One inventory package joined with usage history and lifecycle statistics.

    Optional fields stay ``None`` when the corresponding source has no entry
    for the package, so "no data" never reads as zero.
    """

    package: str
    package_type: str
    last_used: Milliseconds | None = None
    age_days: int | None = None
    services_started: int | None = None
    max_created_time: Milliseconds | None = None
    created_time_percent: PercentageValue | None = None


class ColumnSpec(BaseModel):
    """Column schema handed to the presentation sink."""

    model_config = ConfigDict(frozen=True)

    name: str
    field: str
    export_key: str | None = None
    align: Alignment = "left"
    kind: CellKind = "str"


class TableRow(BaseModel):
    cells: list[CellValue]
    style: str | None = None


class TableData(BaseModel):
    """Plain, typed table data; formatting is left to the renderer."""

    title: str
    csv_name: str
    columns: list[ColumnSpec]
    rows: list[TableRow] = Field(default_factory=list)


class ComponentReport(BaseModel):
    duration: Milliseconds
    rows: list[ComponentReportRow] = Field(default_factory=list)
    total_errors: int = 0
    diagnostics: list[Diagnostic] = Field(default_factory=list)


class UsageReport(BaseModel):
    duration: Milliseconds
    now_ms: Milliseconds
    rows: list[UsageReportRow] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)


# ============================================================
# CONFIGURATION
# ============================================================


class ReportConfig(BaseModel):
    """Knobs shared by the report commands."""

    now_ms: Milliseconds | None = None
    sort_by: str | None = None
    descending: bool = False
    category: ComponentCategory | None = None
    fail_on_anomaly: bool = True
