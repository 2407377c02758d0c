"""Lifecycle accumulators and the per-component / per-package index built from them."""

from __future__ import annotations

from collections.abc import Iterable

from pydantic import BaseModel, PrivateAttr

from lifecycle_report.models import (
    ComponentCategory,
    ComponentRef,
    EventTrace,
    LifecycleEvent,
    LifecycleState,
    Milliseconds,
)

# ============================================================
# LIFECYCLE ACCUMULATOR
# ============================================================


class ComponentStat(BaseModel):
    """Create/destroy state machine and running statistics for one component.

    States are ``IDLE`` (no open create) and ``RUNNING`` (one open create).
    Sequence inconsistencies are counted in ``errors`` and recovered from
    locally, so accumulation never stops on bad input.
    """

    component: str
    count: int = 0
    total_time: Milliseconds = 0
    max_time: Milliseconds = 0

    restart_count: int = 0
    min_restart_time: Milliseconds | None = None
    total_restart_time: Milliseconds = 0

    bg_kill_restart_count: int = 0
    min_bg_kill_restart_time: Milliseconds | None = None
    total_bg_kill_restart_time: Milliseconds = 0

    errors: int = 0

    _pending_create_ts: Milliseconds | None = PrivateAttr(default=None)
    _prior_destroy_ts: Milliseconds | None = PrivateAttr(default=None)
    _last_destroy_was_kill: bool = PrivateAttr(default=False)
    _last_ts: Milliseconds | None = PrivateAttr(default=None)
    _finished: bool = PrivateAttr(default=False)
    _ref: ComponentRef | None = PrivateAttr(default=None)

    @property
    def state(self) -> LifecycleState:
        return "IDLE" if self._pending_create_ts is None else "RUNNING"

    @property
    def pending_create_ts(self) -> Milliseconds | None:
        return self._pending_create_ts

    @property
    def last_destroy_was_kill(self) -> bool:
        return self._last_destroy_was_kill

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def ref(self) -> ComponentRef:
        if self._ref is None:
            self._ref = ComponentRef.parse(self.component)
        return self._ref

    @property
    def flagged(self) -> bool:
        return self.errors > 0

    @property
    def avg_time(self) -> Milliseconds | None:
        return self.total_time // self.count if self.count else None

    @property
    def avg_restart_time(self) -> Milliseconds | None:
        return self.total_restart_time // self.restart_count if self.restart_count else None

    @property
    def avg_bg_kill_restart_time(self) -> Milliseconds | None:
        if not self.bg_kill_restart_count:
            return None
        return self.total_bg_kill_restart_time // self.bg_kill_restart_count

    def add_event(self, event: LifecycleEvent) -> None:
        """Feed the next event of this component, in non-decreasing timestamp order."""
        if self._finished:
            raise RuntimeError(f"Component {self.component} already finished")
        if event.component != self.component:
            raise ValueError(
                f"Event for {event.component} routed to accumulator of {self.component}"
            )
        if self._last_ts is not None and event.timestamp < self._last_ts:
            raise ValueError(
                f"Out-of-order event for {self.component}: "
                f"{event.timestamp} after {self._last_ts}"
            )
        self._last_ts = event.timestamp

        if event.kind == "CREATE":
            if self.state == "RUNNING":
                self._on_overlapping_create(event.timestamp)
            self._on_create(event.timestamp)
        elif self.state == "RUNNING":
            self._on_destroy(event.timestamp, killed=event.kind == "DESTROY_LOW_MEMORY_KILL")
        else:
            self._on_orphan_destroy(event.timestamp, killed=event.kind == "DESTROY_LOW_MEMORY_KILL")

    def finish(self, end_ts: Milliseconds) -> None:
        """Close a still-open interval at the end of the observation window."""
        if self._finished:
            raise RuntimeError(f"Component {self.component} already finished")
        if self._pending_create_ts is not None:
            if end_ts < self._pending_create_ts:
                # Window ends before the open interval began
                self.errors += 1
                end_ts = self._pending_create_ts
            self._close_interval(end_ts)
        self._finished = True

    # IDLE + CREATE -> RUNNING
    def _on_create(self, ts: Milliseconds) -> None:
        self.count += 1
        if self._prior_destroy_ts is not None:
            self._record_restart(ts - self._prior_destroy_ts)
            self._prior_destroy_ts = None
        self._pending_create_ts = ts

    # RUNNING + CREATE: missing destroy, close the open interval at the new create
    def _on_overlapping_create(self, ts: Milliseconds) -> None:
        self.errors += 1
        self._close_interval(ts)
        self._prior_destroy_ts = None

    # RUNNING + DESTROY* -> IDLE
    def _on_destroy(self, ts: Milliseconds, *, killed: bool) -> None:
        self._close_interval(ts)
        self._prior_destroy_ts = ts
        self._last_destroy_was_kill = killed

    # IDLE + DESTROY*: nothing to close, but a following create can still restart from it
    def _on_orphan_destroy(self, ts: Milliseconds, *, killed: bool) -> None:
        self.errors += 1
        self._prior_destroy_ts = ts
        self._last_destroy_was_kill = killed

    def _close_interval(self, ts: Milliseconds) -> None:
        if self._pending_create_ts is None:
            raise RuntimeError(f"Component {self.component} has no open interval to close")
        interval = ts - self._pending_create_ts
        self.total_time += interval
        self.max_time = max(self.max_time, interval)
        self._pending_create_ts = None

    def _record_restart(self, interval: Milliseconds) -> None:
        if self._last_destroy_was_kill:
            self.bg_kill_restart_count += 1
            self.total_bg_kill_restart_time += interval
            self.min_bg_kill_restart_time = _min_or_first(self.min_bg_kill_restart_time, interval)
        else:
            self.restart_count += 1
            self.total_restart_time += interval
            self.min_restart_time = _min_or_first(self.min_restart_time, interval)


def _min_or_first(current: Milliseconds | None, value: Milliseconds) -> Milliseconds:
    return value if current is None else min(current, value)


# ============================================================
# LIFECYCLE INDEX
# ============================================================


class LifecycleIndex:
    """One accumulator per component seen in a trace, plus a package-grouped view."""

    def __init__(
        self,
        first_ts: Milliseconds,
        last_ts: Milliseconds,
        *,
        category: ComponentCategory | None = None,
    ) -> None:
        self.first_ts = first_ts
        self.last_ts = last_ts
        self.category = category
        self.event_count = 0
        self._stats: dict[str, ComponentStat] = {}
        self._by_package: dict[str, list[ComponentStat]] | None = None
        self._finished = False

    @classmethod
    def build(
        cls, trace: EventTrace, *, category: ComponentCategory | None = None
    ) -> LifecycleIndex:
        """Consume a whole trace and finalize every accumulator."""
        index = cls(trace.first_ts, trace.last_ts, category=category)
        index.consume(trace.events)
        index.finish()
        return index

    @property
    def observed_duration(self) -> Milliseconds:
        return self.last_ts - self.first_ts

    @property
    def components(self) -> dict[str, ComponentStat]:
        return self._stats

    @property
    def total_errors(self) -> int:
        return sum(stat.errors for stat in self._stats.values())

    @property
    def is_empty(self) -> bool:
        return not self._stats

    @property
    def finished(self) -> bool:
        return self._finished

    def __len__(self) -> int:
        return len(self._stats)

    def __contains__(self, component: object) -> bool:
        return component in self._stats

    def add_event(self, event: LifecycleEvent) -> None:
        if self._finished:
            raise RuntimeError("Lifecycle index already finished")
        if self.category is not None and event.category != self.category:
            return
        stat = self._stats.get(event.component)
        if stat is None:
            stat = ComponentStat(component=event.component)
            self._stats[event.component] = stat
        stat.add_event(event)
        self.event_count += 1

    def consume(self, events: Iterable[LifecycleEvent]) -> None:
        """Route events to their accumulators after a stable sort by timestamp."""
        for event in sorted(events, key=lambda e: e.timestamp):
            self.add_event(event)

    def finish(self) -> None:
        if self._finished:
            raise RuntimeError("Lifecycle index already finished")
        for stat in self._stats.values():
            stat.finish(self.last_ts)
        self._finished = True

    def by_package(self) -> dict[str, list[ComponentStat]]:
        """Group finalized stats by owning package; bare process names are left out."""
        if not self._finished:
            raise RuntimeError("Lifecycle index must be finished before grouping")
        if self._by_package is None:
            groups: dict[str, list[ComponentStat]] = {}
            for stat in self._stats.values():
                package = stat.ref.package
                if package is None:
                    continue
                groups.setdefault(package, []).append(stat)
            self._by_package = groups
        return self._by_package

    def package_stats(self, package: str) -> list[ComponentStat] | None:
        return self.by_package().get(package)
