"""Session engine registry and the lazily created, exclusively owned session handle."""

from __future__ import annotations

from threading import Lock
from typing import Any, Callable, Protocol

import structlog

from ..config import SpiderConfig
from ..errors import UnknownEngineError
from .fetcher import HttpxSession, PlaywrightSession
from .ledger import EventLedger


class Session(Protocol):
    """Fetch layer contract consumed by the dispatcher."""

    def visit(self, url: str, delay: Any = None) -> bool:
        """Load ``url``; False means the page could not be fetched."""

    def current_response(self, response_type: str = "html") -> Any:
        """Return the last loaded page shaped per ``response_type``."""

    def destroy(self) -> None:
        """Release the client or browser behind the session."""


SessionFactory = Callable[..., Session]

_ENGINES: dict[str, SessionFactory] = {
    "httpx": HttpxSession,
    "playwright": PlaywrightSession,
}
_ENGINES_LOCK = Lock()


def register_engine(name: str, factory: SessionFactory) -> None:
    """Register a session class under ``name``; it is built as ``factory(config, ledger, logger)``."""

    with _ENGINES_LOCK:
        _ENGINES[name] = factory


def unregister_engine(name: str) -> None:
    with _ENGINES_LOCK:
        _ENGINES.pop(name, None)


def available_engines() -> list[str]:
    with _ENGINES_LOCK:
        return sorted(_ENGINES)


def build_session(
    engine: str,
    config: SpiderConfig,
    ledger: EventLedger,
    logger: structlog.BoundLogger | None = None,
) -> Session:
    with _ENGINES_LOCK:
        factory = _ENGINES.get(engine)
    if factory is None:
        raise UnknownEngineError(f"Unknown session engine: {engine} (available: {available_engines()})")
    return factory(config, ledger, logger)


class ResourceHandle:
    """Create a session on first use and destroy it exactly once.

    A handle belongs to a single spider, so to a single thread; ``release``
    is still guarded because the run controller may release leftovers
    during cleanup.
    """

    def __init__(
        self,
        factory: Callable[[], Session],
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self._factory = factory
        self._session: Session | None = None
        self._released = False
        self._lock = Lock()
        self.logger = logger or structlog.get_logger("spider_runner.session")

    @property
    def created(self) -> bool:
        return self._session is not None

    @property
    def released(self) -> bool:
        return self._released

    @property
    def session(self) -> Session:
        if self._released:
            raise RuntimeError("Session handle already released")
        if self._session is None:
            self._session = self._factory()
            self.logger.debug("session_created", session=type(self._session).__name__)
        return self._session

    def release(self) -> bool:
        """Destroy the session if one was created; return True when this call did it."""

        with self._lock:
            if self._released:
                return False
            self._released = True
            session, self._session = self._session, None
        if session is None:
            return False
        session.destroy()
        self.logger.debug("session_destroyed", session=type(session).__name__)
        return True

    def __enter__(self) -> "ResourceHandle":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.release()


__all__ = [
    "ResourceHandle",
    "Session",
    "SessionFactory",
    "available_engines",
    "build_session",
    "register_engine",
    "unregister_engine",
]
