"""Spider base class: the per-worker context user spiders build on."""

from __future__ import annotations

from pathlib import Path
from typing import Any, ClassVar, Iterable, Mapping

from .config import SpiderConfig, deep_merge
from .engine.context import RunContext
from .engine.dedup import DeduplicationGate
from .engine.dispatcher import RequestDispatcher
from .engine.exporter import BaseExporter, FileExporter
from .engine.fetcher import Delay
from .engine.pipeline import PipelineRef, PipelineRunner, build_stages
from .engine.session import ResourceHandle, Session, build_session
from .engine.thread_pool import DEFAULT_STAGGER, ParallelExecutor, WorkerOutcome
from .errors import UnknownHandlerError
from .logging_conf import spider_logger
from .orchestrator import RunController, RunResult


class Spider:
    """Base class for spiders.

    Class attributes describe the spider; ``config`` dictionaries are merged
    down the class hierarchy (``headers`` is replaced, not merged). Handlers
    are plain methods called as ``handler(response, url=..., data=...)``.

    Each instance owns one session, one writer cache and its pipeline stages,
    and must only be used from a single thread. Spiders created by
    :meth:`crawl` or by :meth:`in_parallel` inside a run share that run's
    :class:`RunContext`; any other instance gets a private one.
    """

    name: ClassVar[str | None] = None
    engine: ClassVar[str] = "httpx"
    start_urls: ClassVar[list[str | dict[str, Any]] | None] = None
    pipelines: ClassVar[list[PipelineRef]] = []
    config: ClassVar[dict[str, Any]] = {}
    parallel_stagger: ClassVar[float] = DEFAULT_STAGGER

    def __init__(
        self,
        engine: str | None = None,
        config: Mapping[str, Any] | None = None,
        run: RunContext | None = None,
    ) -> None:
        self.raw_config = deep_merge(self.class_config(), config)
        self.settings = SpiderConfig.model_validate(self.raw_config)
        self.engine = engine or self.settings.engine or type(self).engine
        self.run = run if run is not None else RunContext.private(self.spider_name())
        self.logger = spider_logger(self.spider_name())

        self._handle = ResourceHandle(self._build_session, logger=self.logger)
        if self.run.tracked:
            self.run.register_handle(self._handle)
        self._savers: dict[str, BaseExporter] = {}

        refs = self.settings.pipelines if self.settings.pipelines is not None else type(self).pipelines
        self._pipeline = PipelineRunner(build_stages(refs, self), self.run, self.logger)
        self.gate = DeduplicationGate.from_setting(self.run.store, self.settings.skip_duplicate_requests)
        self._dispatcher = RequestDispatcher(
            self.invoke_handler, self.gate, self._handle, self.run, self.logger
        )

    # ------------------------------------------------------------------
    # Class level: identity, configuration and run lifecycle
    # ------------------------------------------------------------------
    @classmethod
    def spider_name(cls) -> str:
        return cls.name or cls.__name__

    @classmethod
    def class_config(cls) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for klass in reversed(cls.__mro__):
            own = klass.__dict__.get("config")
            if isinstance(own, Mapping):
                merged = deep_merge(merged, own)
        return merged

    @classmethod
    def crawl(
        cls,
        data: dict[str, Any] | None = None,
        exception_on_fail: bool = True,
        config: Mapping[str, Any] | None = None,
    ) -> RunResult:
        return RunController(cls).crawl(data=data, exception_on_fail=exception_on_fail, config=config)

    @classmethod
    def run_handler(
        cls,
        handler: str,
        *args: Any,
        url: str | None = None,
        data: dict[str, Any] | None = None,
        config: Mapping[str, Any] | None = None,
    ) -> Any:
        """Call one handler outside a tracked run, e.g. from a shell."""

        return RunController(cls).invoke(handler, *args, url=url, data=data, config=config)

    @classmethod
    def running(cls) -> bool:
        return RunController.is_running(cls.spider_name())

    @classmethod
    def completed(cls) -> bool:
        return RunController.is_completed(cls.spider_name())

    @classmethod
    def failed(cls) -> bool:
        return RunController.is_failed(cls.spider_name())

    @classmethod
    def visits(cls) -> dict[str, int] | None:
        return RunController.visits(cls.spider_name())

    @classmethod
    def items(cls) -> dict[str, int] | None:
        return RunController.items(cls.spider_name())

    # ------------------------------------------------------------------
    # Instance level
    # ------------------------------------------------------------------
    def seed_urls(self) -> list[str | dict[str, Any]]:
        if self.settings.start_urls is not None:
            return list(self.settings.start_urls)
        return list(type(self).start_urls or [])

    @property
    def session(self) -> Session:
        return self._handle.session

    def _build_session(self) -> Session:
        return build_session(self.engine, self.settings, self.run.ledger, self.logger)

    def parse(self, response: Any = None, url: str | None = None, data: dict[str, Any] | None = None) -> Any:
        raise NotImplementedError(f"{type(self).__name__} must implement parse()")

    def invoke_handler(self, handler: str, *args: Any, **kwargs: Any) -> Any:
        method = getattr(self, handler, None)
        if handler.startswith("_") or not callable(method):
            raise UnknownHandlerError(f"{type(self).__name__} has no handler named {handler!r}")
        return method(*args, **kwargs)

    def request_to(
        self,
        handler: str,
        delay: Delay = None,
        *,
        url: str,
        data: dict[str, Any] | None = None,
        response_type: str = "html",
    ) -> Any:
        return self._dispatcher.dispatch(handler, url, delay=delay, data=data, response_type=response_type)

    def in_parallel(
        self,
        handler: str,
        urls: Iterable[Any],
        threads: int,
        data: dict[str, Any] | None = None,
        delay: Delay = None,
        engine: str | None = None,
        config: Mapping[str, Any] | None = None,
        response_type: str = "html",
        isolate_failures: bool = False,
    ) -> list[WorkerOutcome]:
        worker_engine = engine or self.engine
        worker_config = deep_merge(self.raw_config, config)
        run = self.run if self.run.tracked else None

        def _factory() -> Spider:
            return type(self)(worker_engine, config=worker_config, run=run)

        executor = ParallelExecutor(
            _factory,
            logger=self.logger,
            stagger=type(self).parallel_stagger,
            isolate_failures=isolate_failures,
        )
        return executor.run(handler, urls, threads, delay=delay, data=data, response_type=response_type)

    def send_item(self, item: Any, options: Mapping[str, Any] | None = None) -> bool:
        return self._pipeline.run(item, options)

    def save_to(
        self,
        path: str | Path,
        item: dict[str, Any],
        fmt: str,
        position: bool = True,
        append: bool = False,
    ) -> None:
        key = str(path)
        saver = self._savers.get(key)
        if saver is None:
            def _factory() -> BaseExporter:
                return FileExporter(Path(path), fmt, append=append, position=position)

            saver = self.run.saver(Path(path), _factory) if self.run.tracked else _factory()
            self._savers[key] = saver
        saver.write(item)

    def unique(self, scope: str, value: str) -> bool:
        return self.run.store.test_and_insert(scope, value)

    def add_event(self, event: str, scope: str = "custom") -> None:
        self.run.ledger.add_event(scope, event)
        if scope == "custom":
            self.logger.info("custom_event", scope=scope, event=event)

    def close(self) -> None:
        """Release the session and, outside a tracked run, the writers.

        A session that fails to tear down still counts as released; the
        error propagates once the writers are closed.
        """

        try:
            self._handle.release()
        finally:
            self.run.forget_handle(self._handle)
            if not self.run.tracked:
                for saver in self._savers.values():
                    saver.flush()
                    saver.close()
            self._savers.clear()


__all__ = ["Spider"]
