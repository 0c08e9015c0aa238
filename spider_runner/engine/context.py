"""Run-scoped context handed explicitly to every spider taking part in a run."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Callable

import structlog

from .dedup import DeduplicationStore, UniquenessStore
from .exporter import BaseExporter
from .ledger import EventLedger, RunInfo
from .session import ResourceHandle


@dataclass
class RunContext:
    """Everything shared for writing between the workers of one run."""

    spider_name: str
    ledger: EventLedger
    store: UniquenessStore
    tracked: bool = True
    savers: dict[str, BaseExporter] = field(default_factory=dict)
    handles: list[ResourceHandle] = field(default_factory=list)
    _lock: Lock = field(default_factory=Lock, repr=False)

    @classmethod
    def open(cls, spider_name: str, store: UniquenessStore | None = None) -> "RunContext":
        return cls(
            spider_name=spider_name,
            ledger=EventLedger(RunInfo(spider_name=spider_name)),
            store=store if store is not None else DeduplicationStore(),
        )

    @classmethod
    def private(cls, spider_name: str) -> "RunContext":
        """Unshared accumulator for spiders living outside a tracked run."""

        context = cls.open(spider_name)
        context.tracked = False
        return context

    @property
    def info(self) -> RunInfo:
        return self.ledger.info

    def saver(self, path: Path, factory: Callable[[], BaseExporter]) -> BaseExporter:
        key = str(path)
        with self._lock:
            if key not in self.savers:
                self.savers[key] = factory()
            return self.savers[key]

    def register_handle(self, handle: ResourceHandle) -> None:
        with self._lock:
            self.handles.append(handle)

    def forget_handle(self, handle: ResourceHandle) -> None:
        with self._lock:
            if handle in self.handles:
                self.handles.remove(handle)

    def release_handles(self, logger: structlog.BoundLogger | None = None) -> int:
        """Release every session handle still open under this run.

        A failing release is logged and does not stop the remaining ones.
        """

        with self._lock:
            handles, self.handles = self.handles, []
        released = 0
        for handle in handles:
            try:
                if handle.release():
                    released += 1
            except Exception as exc:  # noqa: BLE001
                (logger or structlog.get_logger("spider_runner.session")).error(
                    "session_release_failed", error=repr(exc), exc_info=True
                )
        return released

    def close_savers(self, logger: structlog.BoundLogger | None = None) -> None:
        with self._lock:
            savers, self.savers = self.savers, {}
        for path, saver in savers.items():
            saver.flush()
            saver.close()
            if logger is not None:
                logger.debug("saver_closed", path=path)


__all__ = ["RunContext"]
