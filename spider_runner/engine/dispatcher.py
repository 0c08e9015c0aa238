"""Validate, deduplicate, fetch, then hand the response to a spider handler."""

from __future__ import annotations

from typing import Any, Callable
from urllib.parse import urlparse

import structlog

from ..errors import InvalidUrlError
from .context import RunContext
from .dedup import DeduplicationGate
from .fetcher import Delay
from .session import ResourceHandle

HandlerInvoker = Callable[..., Any]


def validate_url(url: Any) -> str:
    """Return ``url`` if it is an absolute http(s) URL, else raise InvalidUrlError."""

    if not isinstance(url, str) or not url or any(char.isspace() for char in url):
        raise InvalidUrlError(f"Requested url is invalid: {url!r}")
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError as exc:
        raise InvalidUrlError(f"Requested url is invalid: {url!r}") from exc
    if parsed.scheme not in ("http", "https") or not hostname:
        raise InvalidUrlError(f"Requested url is invalid: {url!r}")
    return url


class RequestDispatcher:
    def __init__(
        self,
        invoke: HandlerInvoker,
        gate: DeduplicationGate,
        handle: ResourceHandle,
        context: RunContext,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self._invoke = invoke
        self.gate = gate
        self.handle = handle
        self.context = context
        self.logger = logger or structlog.get_logger("spider_runner.dispatcher")

    def dispatch(
        self,
        handler: str,
        url: str,
        delay: Delay = None,
        data: dict[str, Any] | None = None,
        response_type: str = "html",
    ) -> Any:
        validate_url(url)
        data = {} if data is None else data

        if self.gate.enabled and not self.gate.admit(url):
            self.context.ledger.add_event("duplicate_requests", url)
            self.logger.warning("request_skipped_duplicate", url=url, scope=self.gate.scope)
            return None

        session = self.handle.session
        if not session.visit(url, delay):
            self.logger.debug("request_skipped_fetch_failed", url=url, handler=handler)
            return None

        response = session.current_response(response_type)
        return self._invoke(handler, response, url=url, data=data)


__all__ = ["HandlerInvoker", "RequestDispatcher", "validate_url"]
