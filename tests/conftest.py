"""Pytest configuration providing an offline session engine and shared fixtures."""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Iterable

import pytest

from spider_runner.config import SpiderConfig
from spider_runner.engine.fetcher import BaseSession, FetchResponse
from spider_runner.engine.ledger import EventLedger, RunInfo
from spider_runner.engine.session import register_engine, unregister_engine


def pytest_configure(config: pytest.Config) -> None:  # pragma: no cover
    os.environ.setdefault("SPIDER_RUNNER_LOG_DIR", tempfile.mkdtemp(prefix="spider-runner-logs-"))


@dataclass
class FakeWeb:
    """In-memory web: canned pages, unreachable URLs and a visit journal."""

    pages: dict[str, str] = field(default_factory=dict)
    unreachable: set[str] = field(default_factory=set)
    visits: list[str] = field(default_factory=list)
    created: int = 0
    destroyed: int = 0
    lock: Lock = field(default_factory=Lock)

    def visit_count(self, url: str) -> int:
        with self.lock:
            return self.visits.count(url)


class FakeSession(BaseSession):
    recoverable_errors = (ConnectionError,)

    def __init__(self, web: FakeWeb, config, ledger, logger=None) -> None:
        super().__init__(config, ledger, logger)
        self.web = web
        with web.lock:
            web.created += 1

    def _load(self, url: str) -> FetchResponse:
        with self.web.lock:
            self.web.visits.append(url)
        if url in self.web.unreachable:
            raise ConnectionError(f"unreachable: {url}")
        text = self.web.pages.get(url, f"<html><body><h1>{url}</h1></body></html>")
        return FetchResponse(url=url, status_code=200, text=text)

    def destroy(self) -> None:
        with self.web.lock:
            self.web.destroyed += 1


@pytest.fixture
def fake_web() -> Iterable[FakeWeb]:
    web = FakeWeb()
    register_engine("fake", lambda config, ledger, logger=None: FakeSession(web, config, ledger, logger))
    yield web
    unregister_engine("fake")


@pytest.fixture
def ledger() -> EventLedger:
    return EventLedger(RunInfo(spider_name="ledger-test"))


@pytest.fixture
def spider_config() -> Callable[..., SpiderConfig]:
    def _builder(**overrides: Any) -> SpiderConfig:
        return SpiderConfig.model_validate(overrides)

    return _builder


class BrittleSession(FakeSession):
    """Session whose teardown fails after it has been counted."""

    def destroy(self) -> None:
        super().destroy()
        raise RuntimeError("browser already gone")


@pytest.fixture
def brittle_web() -> Iterable[FakeWeb]:
    web = FakeWeb()
    register_engine("brittle", lambda config, ledger, logger=None: BrittleSession(web, config, ledger, logger))
    yield web
    unregister_engine("brittle")
