"""Pydantic models describing spider configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_DUPLICATE_SCOPE = "requests_urls"


class DuplicateRequestsPolicy(BaseModel):
    """Scope and mode used when skipping duplicate requests."""

    scope: str = DEFAULT_DUPLICATE_SCOPE
    # Membership test only; the URL is not recorded as seen.
    check_only: bool = False

    @field_validator("scope", mode="before")
    @classmethod
    def _coerce_scope(cls, value: Any) -> str:
        if value in (None, ""):
            return DEFAULT_DUPLICATE_SCOPE
        return str(value)


def _coerce_delay_range(value: Any, name: str) -> tuple[float, float] | None:
    if value in (None, ""):
        return None
    if isinstance(value, (int, float)):
        value = (value, value)
    if isinstance(value, (list, tuple)) and len(value) == 2:
        low, high = float(value[0]), float(value[1])
        if low < 0 or high < 0:
            raise ValueError(f"{name} values must be non-negative")
        if high < low:
            raise ValueError(f"{name} upper bound must be >= lower bound")
        return (low, high)
    raise ValueError(f"{name} expects a number or a two-item list")


class SpiderConfig(BaseModel):
    """Merged configuration snapshot owned by one spider instance.

    Unknown keys are kept so spiders can carry their own settings and read
    them back through :meth:`option`.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    engine: str | None = None
    start_urls: list[Union[str, dict[str, Any]]] | None = None
    pipelines: list[str] | None = None
    skip_duplicate_requests: Union[bool, DuplicateRequestsPolicy] = False
    headers: dict[str, str] = Field(default_factory=dict)
    user_agent: str | None = None
    timeout: float = 20.0
    follow_redirects: bool = True
    request_retries: int = 0
    before_request_delay: tuple[float, float] | None = None
    dedup_store_path: Path | None = None
    headless: bool = True

    @field_validator("before_request_delay", mode="before")
    @classmethod
    def _coerce_delay(cls, value: Any) -> tuple[float, float] | None:
        return _coerce_delay_range(value, "before_request_delay")

    @field_validator("request_retries")
    @classmethod
    def _check_retries(cls, value: int) -> int:
        if value < 0:
            raise ValueError("request_retries must be >= 0")
        return value

    @field_validator("dedup_store_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path | None:
        if value in (None, ""):
            return None
        return Path(value)

    def option(self, key: str, default: Any = None) -> Any:
        """Return a declared field or an extra key passed through by the spider."""

        if key in type(self).model_fields:
            return getattr(self, key)
        return (self.model_extra or {}).get(key, default)


__all__ = ["DEFAULT_DUPLICATE_SCOPE", "DuplicateRequestsPolicy", "SpiderConfig"]
