"""Shared builders for lifecycle-report tests."""

import json
from pathlib import Path

import pytest

from lifecycle_report.lifecycle import LifecycleIndex
from lifecycle_report.models import EventTrace, LifecycleEvent

DAY_MS = 86_400_000
SYNC_SERVICE = "com.example.mail/.SyncService"


def create(ts, component="app.foo/.MainService", category="proc"):
    return LifecycleEvent(timestamp=ts, kind="CREATE", component=component, category=category)


def destroy(ts, component="app.foo/.MainService", category="proc"):
    return LifecycleEvent(timestamp=ts, kind="DESTROY", component=component, category=category)


def kill(ts, component="app.foo/.MainService", category="proc"):
    return LifecycleEvent(
        timestamp=ts, kind="DESTROY_LOW_MEMORY_KILL", component=component, category=category
    )


def build_index(events, first_ts=0, last_ts=1000, category=None):
    trace = EventTrace(first_ts=first_ts, last_ts=last_ts, events=tuple(events))
    return LifecycleIndex.build(trace, category=category)


USAGE_HISTORY_XML = """<?xml version="1.0" encoding="utf-8"?>
<usage-history>
  <pkg name="com.example.mail">
    <comp name="com.example.mail/.Inbox" lrt="1000" />
    <comp name="com.example.mail/.Compose" lrt="5000" />
  </pkg>
  <pkg name="com.example.music">
    <comp name="com.example.music/.Player" lrt="2000" />
  </pkg>
</usage-history>
"""


@pytest.fixture
def trace_document():
    return {
        "first_ts": 0,
        "last_ts": 10_000,
        "events": [
            {"timestamp": 100, "kind": "CREATE", "component": "com.example.mail"},
            {"timestamp": 2600, "kind": "DESTROY", "component": "com.example.mail"},
            {"timestamp": 3000, "kind": "CREATE", "component": "com.example.mail"},
            {"timestamp": 500, "kind": "CREATE", "component": "system_server"},
            *(
                {"timestamp": ts, "kind": kind, "component": SYNC_SERVICE, "category": "service"}
                for ts, kind in [(100, "CREATE"), (2600, "DESTROY"), (3000, "CREATE")]
            ),
        ],
    }


@pytest.fixture
def trace_file(tmp_path, trace_document) -> Path:
    path = tmp_path / "trace.json"
    path.write_text(json.dumps(trace_document), encoding="utf-8")
    return path


@pytest.fixture
def usage_history_file(tmp_path) -> Path:
    path = tmp_path / "usage-history.xml"
    path.write_text(USAGE_HISTORY_XML, encoding="utf-8")
    return path


@pytest.fixture
def inventory_file(tmp_path) -> Path:
    path = tmp_path / "packages.json"
    path.write_text(
        json.dumps(
            [
                {"name": "com.example.music", "is_system": False},
                {"name": "com.example.mail", "is_system": True},
                {"name": "com.example.unused"},
            ]
        ),
        encoding="utf-8",
    )
    return path
