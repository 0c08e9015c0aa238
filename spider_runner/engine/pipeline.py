"""Item pipeline: ordered stages with per-item failure isolation."""

from __future__ import annotations

import json
from threading import Lock
from typing import TYPE_CHECKING, Any, ClassVar, Iterable, Mapping, Union

import structlog

from ..errors import UnknownPipelineError
from .context import RunContext

if TYPE_CHECKING:
    from ..spider import Spider

_REGISTRY: dict[str, type["Pipeline"]] = {}
_REGISTRY_LOCK = Lock()


class Pipeline:
    """One processing stage.

    Subclasses are registered by ``name`` (the class name unless set) so a
    spider can list them by name in its ``pipelines`` setting. Returning the
    item, or a replacement, passes it on; raising drops it.
    """

    name: ClassVar[str] = ""

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if not cls.__dict__.get("name"):
            cls.name = cls.__name__
        with _REGISTRY_LOCK:
            _REGISTRY[cls.name] = cls

    def __init__(self, spider: "Spider | None" = None) -> None:
        self.spider = spider
        self.logger = spider.logger if spider is not None else structlog.get_logger("spider_runner.pipeline")

    def process_item(self, item: Any, options: Mapping[str, Any] | None = None) -> Any:
        return item


PipelineRef = Union[str, type[Pipeline]]


def resolve_pipeline(ref: PipelineRef) -> type[Pipeline]:
    if isinstance(ref, type) and issubclass(ref, Pipeline):
        return ref
    with _REGISTRY_LOCK:
        klass = _REGISTRY.get(str(ref))
    if klass is None:
        raise UnknownPipelineError(f"Pipeline not registered: {ref}")
    return klass


def build_stages(refs: Iterable[PipelineRef], spider: "Spider | None" = None) -> list[tuple[str, Pipeline]]:
    """Instantiate the ordered stage list once for a spider instance."""

    stages: list[tuple[str, Pipeline]] = []
    for ref in refs:
        klass = resolve_pipeline(ref)
        stages.append((klass.name, klass(spider)))
    return stages


def _describe(item: Any) -> str:
    try:
        return json.dumps(item, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return repr(item)


class PipelineRunner:
    """Thread one item through the stages and account for the outcome."""

    def __init__(
        self,
        stages: list[tuple[str, Pipeline]],
        context: RunContext,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.stages = stages
        self.context = context
        self.logger = logger or structlog.get_logger("spider_runner.pipeline")

    def run(self, item: Any, options: Mapping[str, Any] | None = None) -> bool:
        ledger = self.context.ledger
        options = options or {}
        self.logger.debug("pipeline_started", stages=len(self.stages))
        ledger.update("items", "sent")
        name = None
        try:
            for name, stage in self.stages:
                stage_options = options.get(name)
                if stage_options is not None:
                    item = stage.process_item(item, options=stage_options)
                else:
                    item = stage.process_item(item)
        except Exception as exc:  # noqa: BLE001
            self.logger.error(
                "pipeline_dropped",
                error=repr(exc),
                stage=name,
                item=_describe(item),
            )
            ledger.add_event("drop_items_errors", repr(exc))
            return False
        else:
            ledger.update("items", "processed")
            self.logger.info("pipeline_processed", item=_describe(item))
            return True
        finally:
            if self.context.tracked:
                items = ledger.counters("items")
                self.logger.info("items_info", sent=items["sent"], processed=items["processed"])


__all__ = ["Pipeline", "PipelineRef", "PipelineRunner", "build_stages", "resolve_pipeline"]
