"""Exception taxonomy shared by the run core."""

from __future__ import annotations


class SpiderError(Exception):
    """Base class for errors raised by spider-runner itself."""


class InvalidUrlError(SpiderError, ValueError):
    """Requested URL is not an absolute http(s) URL."""


class UnknownHandlerError(SpiderError, AttributeError):
    """Spider has no callable handler with the requested name."""


class UnknownPipelineError(SpiderError, LookupError):
    """Pipeline name does not resolve to a registered stage."""


class UnknownEngineError(SpiderError, LookupError):
    """Session engine name is not registered."""


class DropItem(SpiderError):
    """Raised by a pipeline stage to drop the current item."""


__all__ = [
    "DropItem",
    "InvalidUrlError",
    "SpiderError",
    "UnknownEngineError",
    "UnknownHandlerError",
    "UnknownPipelineError",
]
