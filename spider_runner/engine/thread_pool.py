"""Fan a work list out over worker threads, one spider (and session) per worker."""

from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Sequence, TypeVar

import structlog

from .fetcher import Delay

if TYPE_CHECKING:
    from ..spider import Spider

T = TypeVar("T")

DEFAULT_STAGGER = 0.5


def partition(items: Sequence[T], groups: int) -> list[list[T]]:
    """Split ``items`` into at most ``groups`` contiguous chunks.

    Leading chunks take one extra item when the split is uneven; empty chunks
    are omitted, so fewer groups come back when ``groups > len(items)``.
    """

    if groups < 1:
        raise ValueError("groups must be >= 1")
    size, extra = divmod(len(items), groups)
    parts: list[list[T]] = []
    start = 0
    for index in range(groups):
        end = start + size + (1 if index < extra else 0)
        if end > start:
            parts.append(list(items[start:end]))
        start = end
    return parts


@dataclass(slots=True)
class WorkerOutcome:
    """Result reported by one worker once it has stopped."""

    index: int
    assigned: int
    processed: int = 0
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ParallelExecutor:
    """Run a handler over work items with ``workers`` threads.

    Fail-fast by default: after a worker fails no further workers are
    launched, the running ones are joined and the first error is raised.
    With ``isolate_failures`` every outcome is returned instead.
    """

    def __init__(
        self,
        spider_factory: Callable[[], "Spider"],
        logger: structlog.BoundLogger | None = None,
        stagger: float = DEFAULT_STAGGER,
        isolate_failures: bool = False,
    ) -> None:
        self.spider_factory = spider_factory
        self.logger = logger or structlog.get_logger("spider_runner.parallel")
        self.stagger = stagger
        self.isolate_failures = isolate_failures

    def run(
        self,
        handler: str,
        work_items: Iterable[Any],
        workers: int,
        delay: Delay = None,
        data: dict[str, Any] | None = None,
        response_type: str = "html",
    ) -> list[WorkerOutcome]:
        items = list(work_items)
        if not items:
            return []
        parts = partition(items, workers)
        started = time.monotonic()
        self.logger.info("in_parallel_started", urls=len(items), threads=len(parts))

        futures: list[Future[WorkerOutcome]] = []
        with ThreadPoolExecutor(max_workers=len(parts), thread_name_prefix="spider-worker") as executor:
            for index, part in enumerate(parts):
                if not self.isolate_failures and self._any_failed(futures):
                    self.logger.warning("in_parallel_aborted", launched=index, threads=len(parts))
                    break
                futures.append(
                    executor.submit(self._work, index, part, handler, delay, data, response_type)
                )
                if self.stagger and index < len(parts) - 1:
                    time.sleep(self.stagger)

        outcomes = [future.result() for future in futures]
        self.logger.info(
            "in_parallel_stopped",
            urls=len(items),
            threads=len(parts),
            failed_workers=sum(1 for outcome in outcomes if not outcome.ok),
            total_time=round(time.monotonic() - started, 3),
        )
        if not self.isolate_failures:
            for outcome in outcomes:
                if outcome.error is not None:
                    raise outcome.error
        return outcomes

    @staticmethod
    def _any_failed(futures: list[Future[WorkerOutcome]]) -> bool:
        return any(future.done() and not future.result().ok for future in futures)

    def _work(
        self,
        index: int,
        part: list[Any],
        handler: str,
        delay: Delay,
        data: dict[str, Any] | None,
        response_type: str,
    ) -> WorkerOutcome:
        outcome = WorkerOutcome(index=index, assigned=len(part))
        spider = None
        try:
            spider = self.spider_factory()
            for work in part:
                self._process(spider, work, handler, delay, data, response_type)
                outcome.processed += 1
        except Exception as exc:  # noqa: BLE001
            self.logger.error(
                "in_parallel_worker_failed",
                worker=index,
                processed=outcome.processed,
                error=repr(exc),
                exc_info=True,
            )
            outcome.error = exc
        finally:
            if spider is not None:
                try:
                    spider.close()
                except Exception as exc:  # noqa: BLE001
                    self.logger.error(
                        "session_release_failed", worker=index, error=repr(exc), exc_info=True
                    )
                    if outcome.error is None:
                        outcome.error = exc
        return outcome

    @staticmethod
    def _process(
        spider: "Spider",
        work: Any,
        handler: str,
        delay: Delay,
        data: dict[str, Any] | None,
        response_type: str,
    ) -> None:
        if isinstance(work, Mapping):
            if work.get("url") and work.get("data"):
                spider.request_to(
                    handler, delay, url=work["url"], data=work["data"], response_type=response_type
                )
            else:
                spider.invoke_handler(handler, **work)
        else:
            spider.request_to(handler, delay, url=work, data=data, response_type=response_type)


__all__ = ["DEFAULT_STAGGER", "ParallelExecutor", "WorkerOutcome", "partition"]
