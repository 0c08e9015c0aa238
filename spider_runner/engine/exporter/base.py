"""Item writer interface behind ``Spider.save_to``."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterable


class BaseExporter(ABC):
    """Writes items to one destination; may be shared by the workers of a run."""

    @abstractmethod
    def write(self, item: dict[str, Any]) -> None:
        ...

    def write_many(self, items: Iterable[dict[str, Any]]) -> int:
        count = 0
        for item in items:
            self.write(item)
            count += 1
        return count

    @abstractmethod
    def flush(self) -> None:
        ...

    @abstractmethod
    def close(self) -> None:
        """Flush and release the destination. Safe to call twice."""

    def __enter__(self) -> "BaseExporter":
        return self

    def __exit__(self, *_exc: object) -> None:
        self.flush()
        self.close()


__all__ = ["BaseExporter"]
