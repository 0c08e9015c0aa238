"""Run information and the lock-guarded counters shared by every worker of a run."""

from __future__ import annotations

import os
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from threading import Lock
from typing import Any, DefaultDict

DEFAULT_EVENT_SCOPES = ("requests_errors", "drop_items_errors", "custom")


class RunStatus(str, Enum):
    """Lifecycle states of a spider run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


def _event_table() -> DefaultDict[str, DefaultDict[str, int]]:
    table: DefaultDict[str, DefaultDict[str, int]] = defaultdict(lambda: defaultdict(int))
    for scope in DEFAULT_EVENT_SCOPES:
        table[scope] = defaultdict(int)
    return table


@dataclass
class RunInfo:
    """Mutable record describing one run; mutate only through :class:`EventLedger`."""

    spider_name: str
    status: RunStatus = RunStatus.RUNNING
    error: str | None = None
    environment: str = field(default_factory=lambda: os.environ.get("SPIDER_RUNNER_ENV", "development"))
    start_time: datetime = field(default_factory=datetime.now)
    stop_time: datetime | None = None
    running_time: float | None = None
    visits: dict[str, int] = field(default_factory=lambda: {"requests": 0, "responses": 0})
    items: dict[str, int] = field(default_factory=lambda: {"sent": 0, "processed": 0})
    events: DefaultDict[str, DefaultDict[str, int]] = field(default_factory=_event_table)

    @property
    def dropped(self) -> int:
        return self.items["sent"] - self.items["processed"]

    def as_dict(self) -> dict[str, Any]:
        return {
            "spider_name": self.spider_name,
            "status": self.status.value,
            "error": self.error,
            "environment": self.environment,
            "start_time": self.start_time.isoformat(),
            "stop_time": self.stop_time.isoformat() if self.stop_time else None,
            "running_time": self.running_time,
            "visits": dict(self.visits),
            "items": dict(self.items),
            "events": {scope: dict(events) for scope, events in self.events.items()},
        }


class EventLedger:
    """Serialize counter and event updates of one run behind a single lock."""

    def __init__(self, info: RunInfo) -> None:
        self.info = info
        self._lock = Lock()

    def update(self, kind: str, subtype: str) -> int:
        """Increment ``visits`` or ``items`` counter and return the new value."""

        counters = getattr(self.info, kind)
        with self._lock:
            counters[subtype] = counters.get(subtype, 0) + 1
            return counters[subtype]

    def add_event(self, scope: str, event: str) -> int:
        with self._lock:
            self.info.events[scope][event] += 1
            return self.info.events[scope][event]

    def counters(self, kind: str) -> dict[str, int]:
        with self._lock:
            return dict(getattr(self.info, kind))

    def event_count(self, scope: str, event: str | None = None) -> int:
        with self._lock:
            events = self.info.events.get(scope, {})
            if event is None:
                return sum(events.values())
            return events.get(event, 0)

    def mark_completed(self) -> None:
        with self._lock:
            self.info.status = RunStatus.COMPLETED

    def mark_failed(self, error: BaseException) -> None:
        with self._lock:
            self.info.status = RunStatus.FAILED
            self.info.error = repr(error)

    def finish(self) -> None:
        with self._lock:
            stop_time = datetime.now()
            self.info.stop_time = stop_time
            self.info.running_time = round((stop_time - self.info.start_time).total_seconds(), 3)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return self.info.as_dict()


__all__ = ["DEFAULT_EVENT_SCOPES", "EventLedger", "RunInfo", "RunStatus"]
