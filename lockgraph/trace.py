"""
JSON event traces produced by a lock-extraction front end.

A trace lists threads, each with a flat ordered ``events`` list and/or
nested ``regions``::

    {"threads": [
        {"id": "T1", "events": [
            {"op": "acquire", "resource": "lockA", "kind": "SYNCHRONIZED"},
            {"op": "release", "resource": "lockA"}]},
        {"id": "T2", "regions": [
            {"resource": "lockB", "body": [{"resource": "lockA"}]}]}
    ]}

Only a file that cannot be used at all raises TraceFormatError; single
malformed entries are skipped and reported through ``Trace.warnings``.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Union

from lockgraph.builder import EventKind, LockEvent, LockRegion, monitor_lock
from lockgraph.model import LockKind

logger = logging.getLogger(__name__)

OPERATIONS = {
    "acquire": EventKind.ACQUIRE,
    "lock": EventKind.ACQUIRE,
    "try_acquire": EventKind.TRY_ACQUIRE,
    "try_lock": EventKind.TRY_ACQUIRE,
    "release": EventKind.RELEASE,
    "unlock": EventKind.RELEASE,
    "park": EventKind.PARK,
    "unpark": EventKind.UNPARK,
}

ACQUIRE_OPERATIONS = {EventKind.ACQUIRE, EventKind.TRY_ACQUIRE}
RESOURCE_OPERATIONS = ACQUIRE_OPERATIONS | {EventKind.RELEASE}


class TraceFormatError(ValueError):
    """Raised when a trace file cannot be read or has the wrong shape"""


@dataclass
class ThreadTrace:
    thread_id: str
    events: List[LockEvent] = field(default_factory=list)
    regions: List[Union[LockRegion, LockEvent]] = field(default_factory=list)

    @property
    def event_count(self) -> int:
        return len(self.events) + sum(_count_region(r) for r in self.regions)


@dataclass
class Trace:
    threads: List[ThreadTrace] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    source: str = ""

    @property
    def event_count(self) -> int:
        return sum(thread.event_count for thread in self.threads)


def load_trace(path: Union[str, Path]) -> Trace:
    """
    Read and parse a trace file.

    Args:
        path: Location of the JSON trace

    Returns:
        The parsed Trace

    Raises:
        TraceFormatError: If the file is unreadable or not a trace
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise TraceFormatError(f"Cannot read trace {path}: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise TraceFormatError(
            f"Invalid JSON in {path} (line {e.lineno}, column {e.colno}): {e.msg}"
        ) from e

    trace = parse_trace(data)
    trace.source = str(path)
    return trace


def parse_trace(data: Any) -> Trace:
    if isinstance(data, list):
        data = {"threads": data}
    if not isinstance(data, dict) or not isinstance(data.get("threads"), list):
        raise TraceFormatError("Trace must be an object with a 'threads' list")

    trace = Trace()
    for position, entry in enumerate(data["threads"]):
        thread = _parse_thread(entry, position, trace.warnings)
        if thread is not None:
            trace.threads.append(thread)
    logger.debug(
        "Parsed trace: %d threads, %d events", len(trace.threads), trace.event_count
    )
    return trace


def _parse_thread(entry: Any, position: int, warnings: List[str]) -> Optional[ThreadTrace]:
    if not isinstance(entry, dict) or not entry.get("id"):
        warnings.append(f"Thread #{position} skipped: missing 'id'")
        return None

    thread = ThreadTrace(thread_id=str(entry["id"]))
    for index, raw in enumerate(_entries(entry, "events", warnings, thread.thread_id)):
        event = _parse_event(raw, thread.thread_id, warnings, f"{thread.thread_id}[{index}]")
        if event is not None:
            thread.events.append(event)
    for index, raw in enumerate(_entries(entry, "regions", warnings, thread.thread_id)):
        region = _parse_region(raw, thread.thread_id, warnings, f"{thread.thread_id}/{index}")
        if region is not None:
            thread.regions.append(region)
    return thread


def _parse_event(
    raw: Any, thread_id: str, warnings: List[str], where: str
) -> Optional[LockEvent]:
    if not isinstance(raw, dict):
        warnings.append(f"Event {where} skipped: not an object")
        return None

    kind = OPERATIONS.get(str(raw.get("op", "")).strip().lower())
    if kind is None:
        warnings.append(f"Event {where} skipped: unknown op {raw.get('op')!r}")
        return None

    resource = raw.get("resource")
    if kind in RESOURCE_OPERATIONS and not resource:
        warnings.append(f"Event {where} skipped: '{raw['op']}' needs a resource")
        return None

    resource = str(resource).strip() if resource else None
    if raw.get("kind") is None and kind in ACQUIRE_OPERATIONS:
        # Same monitor classification as a region on the same expression
        resource, lock_kind = monitor_lock(resource)
    else:
        lock_kind = _lock_kind(raw.get("kind"), warnings, where)
    return LockEvent(
        kind=kind,
        thread_id=thread_id,
        resource=resource,
        lock_kind=lock_kind,
        timed=bool(raw.get("timed", False)),
        target=str(raw["target"]) if raw.get("target") else None,
    )


def _parse_region(
    raw: Any, thread_id: str, warnings: List[str], where: str
) -> Optional[Union[LockRegion, LockEvent]]:
    if not isinstance(raw, dict):
        warnings.append(f"Region {where} skipped: not an object")
        return None
    if "op" in raw:
        return _parse_event(raw, thread_id, warnings, where)
    if not raw.get("resource"):
        warnings.append(f"Region {where} skipped: missing 'resource'")
        return None

    resource, lock_kind = monitor_lock(str(raw["resource"]))
    if raw.get("kind") is not None:
        lock_kind = _lock_kind(raw["kind"], warnings, where)
    region = LockRegion(resource=resource, lock_kind=lock_kind)
    for index, inner in enumerate(_entries(raw, "body", warnings, where)):
        parsed = _parse_region(inner, thread_id, warnings, f"{where}/{index}")
        if parsed is not None:
            region.body.append(parsed)
    return region


def _entries(container: dict, name: str, warnings: List[str], where: str) -> list:
    value = container.get(name)
    if value is None:
        return []
    if not isinstance(value, list):
        warnings.append(f"{where}: '{name}' is not a list, ignored")
        return []
    return value


def _lock_kind(value: Any, warnings: List[str], where: str) -> Optional[LockKind]:
    if value is None:
        return None
    kind = LockKind.parse(str(value))
    if kind is None:
        warnings.append(f"{where}: unknown lock kind {value!r} ignored")
    return kind


def _count_region(region: Union[LockRegion, LockEvent]) -> int:
    if isinstance(region, LockEvent):
        return 1
    # acquire + release of the region itself
    return 2 + sum(_count_region(inner) for inner in region.body)
