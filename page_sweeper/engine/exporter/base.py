"""Exporter contract for the aggregated result set."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable


class BaseExporter(ABC):
    """Write records once a sweep has produced its result set.

    Exporters are context managers so a failed write still releases the
    destination.
    """

    @abstractmethod
    def export(self, record: dict) -> None:
        """Write a single record."""

    def export_many(self, records: Iterable[dict]) -> int:
        count = 0
        for record in records:
            self.export(record)
            count += 1
        return count

    @abstractmethod
    def flush(self) -> None:
        """Push buffered output to the destination."""

    @abstractmethod
    def close(self) -> None:
        """Finalise output and release the destination."""

    def __enter__(self) -> "BaseExporter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = ["BaseExporter"]
