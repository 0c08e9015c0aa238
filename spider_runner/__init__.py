"""spider-runner: run spiders with parallel workers, item pipelines and run statistics."""

from .engine.pipeline import Pipeline
from .engine.session import register_engine
from .errors import DropItem, InvalidUrlError, SpiderError
from .orchestrator import RunController, RunResult
from .spider import Spider

__all__ = [
    "DropItem",
    "InvalidUrlError",
    "Pipeline",
    "RunController",
    "RunResult",
    "Spider",
    "SpiderError",
    "register_engine",
]
