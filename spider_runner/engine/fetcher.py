"""Fetch sessions: one exclusively owned HTTP client or browser per spider."""

from __future__ import annotations

import json
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict

import httpx
import structlog
from selectolax.parser import HTMLParser

from ..config import SpiderConfig
from .ledger import EventLedger

RESPONSE_TYPES = ("html", "json", "text")

Delay = float | tuple[float, float] | None


@dataclass(slots=True)
class FetchResponse:
    """Standardised snapshot of the last loaded page."""

    url: str
    status_code: int
    text: str
    headers: Dict[str, str] = field(default_factory=dict)


def shape_response(response: FetchResponse, response_type: str) -> Any:
    """Convert a fetched page into the object handed to spider handlers."""

    if response_type == "html":
        return HTMLParser(response.text)
    if response_type == "json":
        return json.loads(response.text)
    if response_type == "text":
        return response.text
    raise ValueError(f"Unsupported response type: {response_type} (expected one of {RESPONSE_TYPES})")


def resolve_delay(delay: Delay) -> float:
    if delay is None:
        return 0.0
    if isinstance(delay, (list, tuple)):
        low, high = float(delay[0]), float(delay[1])
        return random.uniform(low, high)
    return float(delay)


class BaseSession(ABC):
    """Shared ``visit`` logic: delays, retries, visit counters and error events.

    Subclasses implement :meth:`_load` and raise one of ``recoverable_errors``
    when a page cannot be fetched; anything else propagates to the caller.
    """

    recoverable_errors: tuple[type[BaseException], ...] = (OSError,)

    def __init__(
        self,
        config: SpiderConfig,
        ledger: EventLedger,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self.ledger = ledger
        self.logger = logger or structlog.get_logger("spider_runner.fetcher")
        self.response: FetchResponse | None = None

    def visit(self, url: str, delay: Delay = None) -> bool:
        pause = resolve_delay(delay if delay is not None else self.config.before_request_delay)
        if pause > 0:
            self.logger.debug("visit_delay", url=url, seconds=round(pause, 3))
            time.sleep(pause)

        attempts = self.config.request_retries + 1
        for attempt in range(1, attempts + 1):
            self.ledger.update("visits", "requests")
            self.logger.info("visit_started", url=url, attempt=attempt)
            try:
                self.response = self._load(url)
            except self.recoverable_errors as exc:
                self.response = None
                self.ledger.add_event("requests_errors", repr(exc))
                if attempt < attempts:
                    self.logger.warning("visit_retry", url=url, attempt=attempt, error=repr(exc))
                    continue
                self.logger.error("visit_failed", url=url, attempt=attempt, error=repr(exc))
                return False
            self.ledger.update("visits", "responses")
            self.logger.info(
                "visit_finished", url=url, status=self.response.status_code, attempt=attempt
            )
            return True
        return False

    def current_response(self, response_type: str = "html") -> Any:
        if self.response is None:
            raise RuntimeError("No page has been loaded by this session")
        return shape_response(self.response, response_type)

    @property
    def current_url(self) -> str | None:
        return self.response.url if self.response else None

    @abstractmethod
    def _load(self, url: str) -> FetchResponse:
        """Fetch ``url`` and return the loaded page."""

    @abstractmethod
    def destroy(self) -> None:
        """Release the underlying client or browser."""


class HttpxSession(BaseSession):
    """Plain HTTP session backed by one ``httpx.Client``."""

    recoverable_errors = (httpx.HTTPError,)

    def __init__(
        self,
        config: SpiderConfig,
        ledger: EventLedger,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        super().__init__(config, ledger, logger)
        headers = dict(config.headers)
        if config.user_agent:
            headers["User-Agent"] = config.user_agent
        self._client = httpx.Client(
            follow_redirects=config.follow_redirects,
            timeout=config.timeout,
            headers=headers or None,
        )

    def _load(self, url: str) -> FetchResponse:
        response = self._client.get(url)
        return FetchResponse(
            url=str(response.url),
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers),
        )

    def destroy(self) -> None:
        self._client.close()


class PlaywrightSession(BaseSession):
    """Chromium page driven by Playwright, started on first visit."""

    def __init__(
        self,
        config: SpiderConfig,
        ledger: EventLedger,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        super().__init__(config, ledger, logger)
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    def _ensure_started(self) -> None:
        if self._playwright is not None:
            return
        try:
            from playwright.sync_api import Error as PlaywrightError
            from playwright.sync_api import sync_playwright
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "Playwright engine requires installing the 'playwright' package."
            ) from exc

        self.recoverable_errors = (PlaywrightError,)
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(headless=self.config.headless)
        self._context = self._browser.new_context(
            user_agent=self.config.user_agent,
            ignore_https_errors=True,
        )
        if self.config.headers:
            self._context.set_extra_http_headers(self.config.headers)
        self._page = self._context.new_page()

    def visit(self, url: str, delay: Delay = None) -> bool:
        self._ensure_started()
        return super().visit(url, delay)

    def _load(self, url: str) -> FetchResponse:
        timeout_ms = int(self.config.timeout * 1000)
        response = self._page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        return FetchResponse(
            url=self._page.url,
            status_code=response.status if response else 200,
            text=self._page.content(),
            headers=dict(response.headers) if response else {},
        )

    def destroy(self) -> None:
        if self._page is not None:
            self._page.close()
            self._page = None
        if self._context is not None:
            self._context.close()
            self._context = None
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None


__all__ = [
    "BaseSession",
    "FetchResponse",
    "HttpxSession",
    "PlaywrightSession",
    "RESPONSE_TYPES",
    "resolve_delay",
    "shape_response",
]
