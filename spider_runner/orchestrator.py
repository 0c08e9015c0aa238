"""Run controller: start, seed, finish and clean up one spider run."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import TYPE_CHECKING, Any, Callable, Mapping

from .config import SpiderConfig, deep_merge
from .engine.context import RunContext
from .engine.dedup import DeduplicationStore, SQLiteDeduplicationStore, UniquenessStore
from .engine.ledger import RunInfo, RunStatus
from .infra import SQLiteManager
from .logging_conf import spider_logger

if TYPE_CHECKING:
    from .spider import Spider

DEFAULT_HANDLER = "parse"

# spider name -> context of its active run (None while the run is being set up)
_ACTIVE_RUNS: dict[str, RunContext | None] = {}
_ACTIVE_LOCK = Lock()


def _claim(spider_name: str) -> bool:
    with _ACTIVE_LOCK:
        if spider_name in _ACTIVE_RUNS:
            return False
        _ACTIVE_RUNS[spider_name] = None
        return True


def _attach(spider_name: str, context: RunContext) -> None:
    with _ACTIVE_LOCK:
        _ACTIVE_RUNS[spider_name] = context


def _release(spider_name: str) -> None:
    with _ACTIVE_LOCK:
        _ACTIVE_RUNS.pop(spider_name, None)


@dataclass(slots=True)
class RunResult:
    """Final value of :meth:`RunController.crawl`."""

    spider_name: str
    info: RunInfo | None
    error: BaseException | None = None
    already_running: bool = False

    @property
    def status(self) -> RunStatus | None:
        return self.info.status if self.info else None

    @property
    def completed(self) -> bool:
        return self.status is RunStatus.COMPLETED

    @property
    def failed(self) -> bool:
        return self.status is RunStatus.FAILED

    def summary(self) -> dict[str, Any]:
        if self.info is None:
            return {"spider_name": self.spider_name, "status": None, "already_running": self.already_running}
        return self.info.as_dict()


class RunController:
    """Central coordinator managing the lifecycle of one spider's runs."""

    def __init__(self, spider_cls: type["Spider"], storage: SQLiteManager | None = None) -> None:
        self.spider_cls = spider_cls
        self.spider_name = spider_cls.spider_name()
        self.storage = storage or SQLiteManager()
        self.logger = spider_logger(self.spider_name).bind(component="run_controller")

    # ------------------------------------------------------------------
    # Status queries
    # ------------------------------------------------------------------
    @staticmethod
    def current(spider_name: str) -> RunContext | None:
        with _ACTIVE_LOCK:
            return _ACTIVE_RUNS.get(spider_name)

    @classmethod
    def _status(cls, spider_name: str) -> RunStatus | None:
        context = cls.current(spider_name)
        return context.info.status if context else None

    @classmethod
    def is_running(cls, spider_name: str) -> bool:
        return cls._status(spider_name) is RunStatus.RUNNING

    @classmethod
    def is_completed(cls, spider_name: str) -> bool:
        return cls._status(spider_name) is RunStatus.COMPLETED

    @classmethod
    def is_failed(cls, spider_name: str) -> bool:
        return cls._status(spider_name) is RunStatus.FAILED

    @classmethod
    def visits(cls, spider_name: str) -> dict[str, int] | None:
        context = cls.current(spider_name)
        return context.ledger.counters("visits") if context else None

    @classmethod
    def items(cls, spider_name: str) -> dict[str, int] | None:
        context = cls.current(spider_name)
        return context.ledger.counters("items") if context else None

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def crawl(
        self,
        data: dict[str, Any] | None = None,
        exception_on_fail: bool = True,
        config: Mapping[str, Any] | None = None,
    ) -> RunResult:
        if not _claim(self.spider_name):
            self.logger.error("spider_already_running", spider=self.spider_name)
            return RunResult(self.spider_name, None, already_running=True)

        try:
            settings = SpiderConfig.model_validate(deep_merge(self.spider_cls.class_config(), config))
            context = RunContext.open(self.spider_name, store=self._build_store(settings))
        except BaseException:
            _release(self.spider_name)
            raise
        _attach(self.spider_name, context)

        data = {} if data is None else data
        spider = None
        try:
            self.logger.info("spider_started", spider=self.spider_name)
            before_run = getattr(self.spider_cls, "before_run", None)
            if callable(before_run):
                before_run(context.info)
            spider = self.spider_cls(config=config, run=context)
            self._seed(spider, data)
        except BaseException as exc:  # noqa: BLE001
            context.ledger.mark_failed(exc)
            if exception_on_fail:
                raise
            return RunResult(self.spider_name, context.info, error=exc)
        else:
            context.ledger.mark_completed()
            return RunResult(self.spider_name, context.info)
        finally:
            self._finish(context, spider)

    def invoke(
        self,
        handler: str,
        *args: Any,
        url: str | None = None,
        data: dict[str, Any] | None = None,
        config: Mapping[str, Any] | None = None,
    ) -> Any:
        spider = self.spider_cls(config=config)
        try:
            if args:
                return spider.invoke_handler(handler, *args)
            if url is not None:
                return spider.request_to(handler, url=url, data=data)
            if data is not None:
                return spider.invoke_handler(handler, data=data)
            return spider.invoke_handler(handler)
        finally:
            spider.close()

    # ------------------------------------------------------------------
    def _build_store(self, settings: SpiderConfig) -> UniquenessStore:
        if settings.dedup_store_path is None:
            return DeduplicationStore()
        path = settings.dedup_store_path
        if not path.is_absolute():
            path = (Path.cwd() / path).resolve()
        return SQLiteDeduplicationStore(self.storage, path)

    def _seed(self, spider: "Spider", data: dict[str, Any]) -> None:
        seeds = spider.seed_urls()
        if not seeds:
            spider.invoke_handler(DEFAULT_HANDLER, None, url=None, data=data)
            return
        for seed in seeds:
            if isinstance(seed, Mapping):
                spider.request_to(DEFAULT_HANDLER, url=seed.get("url"), data=seed.get("data") or data)
            else:
                spider.request_to(DEFAULT_HANDLER, url=seed, data=data)

    def _cleanup_step(self, event: str, step: Callable[[], Any]) -> None:
        """Run one teardown step; a failure is logged so later steps still run."""

        try:
            step()
        except Exception as exc:  # noqa: BLE001
            self.logger.error(event, error=repr(exc), exc_info=True)

    def _finish(self, context: RunContext, spider: "Spider | None") -> None:
        try:
            if spider is not None:
                self._cleanup_step("session_release_failed", spider.close)
            leftovers = context.release_handles(self.logger)
            if leftovers:
                self.logger.warning("sessions_released_at_cleanup", count=leftovers)
            context.ledger.finish()

            after_run = getattr(self.spider_cls, "after_run", None)
            if callable(after_run):
                self._cleanup_step("after_run_failed", lambda: after_run(context.info))

            self._cleanup_step("saver_close_failed", lambda: context.close_savers(self.logger))
            close_store = getattr(context.store, "close", None)
            if callable(close_store):
                self._cleanup_step("store_close_failed", close_store)
            summary = context.ledger.snapshot()
            if context.info.status is RunStatus.FAILED:
                self.logger.critical("spider_stopped", **summary)
            else:
                self.logger.info("spider_stopped", **summary)
        finally:
            _release(self.spider_name)


__all__ = ["DEFAULT_HANDLER", "RunController", "RunResult"]
