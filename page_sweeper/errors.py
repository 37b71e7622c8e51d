"""Exception hierarchy shared by workers, the coordinator and the CLI."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .coordinator import SweepResult


class SweepError(Exception):
    """Base class for every error raised by page-sweeper."""


class FetchError(SweepError):
    """A single fetch attempt did not produce content."""


class TransientTimeout(FetchError):
    """Content did not appear within the current patience budget."""

    def __init__(self, url: str, patience_ms: int) -> None:
        super().__init__(f"No content from {url} within {patience_ms}ms")
        self.url = url
        self.patience_ms = patience_ms


class HardFetchError(FetchError):
    """Unrecoverable fetch condition; fatal to the worker that hit it."""


class RecordParseError(HardFetchError):
    """A table line did not match the expected record layout."""

    def __init__(self, line: str, line_number: int) -> None:
        super().__init__(f"Malformed record on line {line_number}: {line!r}")
        self.line = line
        self.line_number = line_number


class RetryBudgetExhausted(HardFetchError):
    """An offset kept timing out past the configured attempt limit."""

    def __init__(self, offset: int, attempts: int) -> None:
        super().__init__(f"Offset {offset} still timing out after {attempts} attempts")
        self.offset = offset
        self.attempts = attempts


class WorkerStartupError(SweepError):
    """A worker could not acquire its page fetcher."""


class WorkerStopped(SweepError):
    """Raised inside a worker once the pool asked it to stop."""


class SweepFailedError(SweepError):
    """A worker reported a hard failure, so the sweep cannot be trusted."""

    def __init__(self, worker_id: int, offset: int | None, reason: str) -> None:
        where = f"offset {offset}" if offset is not None else "startup"
        super().__init__(f"Worker {worker_id} failed at {where}: {reason}")
        self.worker_id = worker_id
        self.offset = offset


class WorkerLostError(SweepError):
    """A worker lane ended without reporting that its pages ran out."""

    def __init__(self, worker_id: int, offset: int | None, reason: str | None = None) -> None:
        message = f"Worker {worker_id} lost"
        if offset is not None:
            message += f" while fetching offset {offset}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.worker_id = worker_id
        self.offset = offset


class SweepDeadlineExceeded(SweepError):
    """The overall deadline expired; ``partial`` holds what was collected."""

    def __init__(self, deadline_seconds: float, partial: "SweepResult") -> None:
        super().__init__(
            f"Sweep did not finish within {deadline_seconds:g}s "
            f"({len(partial.records)} records collected so far)"
        )
        self.deadline_seconds = deadline_seconds
        self.partial = partial


__all__ = [
    "FetchError",
    "HardFetchError",
    "RecordParseError",
    "RetryBudgetExhausted",
    "SweepDeadlineExceeded",
    "SweepError",
    "SweepFailedError",
    "TransientTimeout",
    "WorkerLostError",
    "WorkerStartupError",
    "WorkerStopped",
]
