"""Input adapters: event trace JSON, usage-history XML and package inventory JSON.

Every loader either returns a complete, validated list or raises
``MalformedInputError``; a partially parsed source is never handed on.
"""

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError

from lifecycle_report.models import (
    EventTrace,
    LifecycleEvent,
    Milliseconds,
    PackageInventoryEntry,
    UsageRecord,
)

USAGE_HISTORY_ROOT_TAG = "usage-history"
USAGE_HISTORY_PACKAGE_TAG = "pkg"
USAGE_HISTORY_COMPONENT_TAG = "comp"


class MalformedInputError(ValueError):
    """A source failed structural validation and must be treated as unavailable."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"Cannot parse {source}: {message}")
        self.source = source


class _RawEventTrace(BaseModel):
    first_ts: Milliseconds | None = None
    last_ts: Milliseconds | None = None
    events: list[LifecycleEvent]


_INVENTORY_ADAPTER = TypeAdapter(list[PackageInventoryEntry])


def _read_json(path: Path, source: str) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except UnicodeDecodeError as e:
        raise MalformedInputError(source, f"not valid UTF-8 ({e})") from e
    except json.JSONDecodeError as e:
        raise MalformedInputError(source, f"invalid JSON ({e})") from e


# ============================================================
# EVENT TRACE
# ============================================================


def parse_event_trace(data: Any) -> EventTrace:
    """Validate a decoded event trace document.

    The observation window defaults to the first and last event timestamps
    when the document does not state it. Events outside an explicit window
    are rejected.
    """
    try:
        raw = _RawEventTrace.model_validate(data)
    except ValidationError as e:
        raise MalformedInputError("event trace", str(e)) from e

    timestamps = [event.timestamp for event in raw.events]
    first_ts = raw.first_ts if raw.first_ts is not None else min(timestamps, default=0)
    last_ts = raw.last_ts if raw.last_ts is not None else max(timestamps, default=first_ts)
    if last_ts < first_ts:
        raise MalformedInputError(
            "event trace", f"window ends ({last_ts}) before it starts ({first_ts})"
        )
    outside = [ts for ts in timestamps if not first_ts <= ts <= last_ts]
    if outside:
        raise MalformedInputError(
            "event trace",
            f"{len(outside)} event(s) outside the window [{first_ts}, {last_ts}], "
            f"first at {outside[0]}",
        )
    return EventTrace(first_ts=first_ts, last_ts=last_ts, events=tuple(raw.events))


def load_event_trace(path: Path) -> EventTrace:
    return parse_event_trace(_read_json(path, "event trace"))


# ============================================================
# USAGE HISTORY
# ============================================================


def _required_attr(node: ET.Element, name: str) -> str:
    value = node.get(name)
    if value is None:
        raise MalformedInputError(
            "usage history", f"<{node.tag}> is missing the '{name}' attribute"
        )
    return value


def parse_usage_history_xml(text: str) -> list[UsageRecord]:
    """Parse ``<usage-history><pkg name><comp name lrt/></pkg></usage-history>``."""
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise MalformedInputError("usage history", f"invalid XML ({e})") from e

    if root.tag != USAGE_HISTORY_ROOT_TAG:
        raise MalformedInputError("usage history", f"root tag invalid: {root.tag}")

    records: list[UsageRecord] = []
    for pkg in root:
        if pkg.tag != USAGE_HISTORY_PACKAGE_TAG:
            raise MalformedInputError("usage history", f"package tag invalid: {pkg.tag}")
        package = _required_attr(pkg, "name")
        for comp in pkg:
            if comp.tag != USAGE_HISTORY_COMPONENT_TAG:
                raise MalformedInputError("usage history", f"component tag invalid: {comp.tag}")
            lrt_text = _required_attr(comp, "lrt")
            try:
                lrt = int(lrt_text)
            except ValueError as e:
                raise MalformedInputError(
                    "usage history", f"invalid lrt '{lrt_text}' for package {package}"
                ) from e
            records.append(
                UsageRecord(
                    package=package,
                    component=_required_attr(comp, "name"),
                    last_referenced_time=lrt,
                )
            )
    return records


def load_usage_history(path: Path) -> list[UsageRecord]:
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MalformedInputError("usage history", f"not valid UTF-8 ({e})") from e
    return parse_usage_history_xml(text)


# ============================================================
# PACKAGE INVENTORY
# ============================================================


def parse_inventory(data: Any) -> list[PackageInventoryEntry]:
    """Validate a package list given either as a bare list or under ``packages``."""
    if isinstance(data, dict):
        if "packages" not in data:
            raise MalformedInputError("package inventory", "missing 'packages' key")
        data = data["packages"]
    try:
        return _INVENTORY_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise MalformedInputError("package inventory", str(e)) from e


def load_inventory(path: Path) -> list[PackageInventoryEntry]:
    return parse_inventory(_read_json(path, "package inventory"))
