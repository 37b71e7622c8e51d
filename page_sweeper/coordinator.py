"""Sweep coordinator: hands out page offsets and detects completion."""

from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from queue import Empty, Queue
from threading import Event
from typing import Callable

import structlog

from .config import SweepConfig
from .engine import (
    PageFetcher,
    PatienceBudget,
    Record,
    RecordParser,
    TransactionParser,
    Worker,
    WorkerPool,
    build_fetcher,
)
from .engine.messages import (
    Assign,
    Data,
    Failed,
    Finished,
    LaneExited,
    Ready,
    Stop,
    WorkerMessage,
)
from .errors import (
    SweepDeadlineExceeded,
    SweepError,
    SweepFailedError,
    WorkerLostError,
    WorkerStartupError,
)
from .logging_conf import configure_logging, worker_logger
from .ui import SweepProgress

FetcherFactory = Callable[[int], PageFetcher]


class WorkerState(str, Enum):
    INITIALIZING = "initializing"
    IDLE = "idle"
    FETCHING = "fetching"
    RETIRING = "retiring"
    DEAD = "dead"


@dataclass
class LaneSummary:
    """What one worker did over the sweep."""

    worker_id: int
    state: WorkerState = WorkerState.INITIALIZING
    offsets: list[int] = field(default_factory=list)
    records: int = 0
    patience_ms: int | None = None


@dataclass
class SweepResult:
    """Aggregated records, in order of arrival, plus sweep bookkeeping."""

    records: list[Record]
    assigned_offsets: list[int]
    pages: int
    lanes: dict[int, LaneSummary]
    elapsed: float

    def as_dicts(self) -> list[dict[str, str]]:
        return [record.as_dict() for record in self.records]


@dataclass
class _Lane:
    worker: Worker
    summary: LaneSummary
    outstanding: int | None = None

    @property
    def state(self) -> WorkerState:
        return self.summary.state

    @state.setter
    def state(self, value: WorkerState) -> None:
        self.summary.state = value


class Coordinator:
    """Feed a fixed pool of workers a monotonic stream of page offsets.

    Every piece of shared state (the offset cursor, the result buffer and the
    lane bookkeeping) is owned by a single coordinating thread and only
    mutated while it handles a mailbox message.
    """

    def __init__(
        self,
        config: SweepConfig,
        fetcher_factory: FetcherFactory | None = None,
        parser: RecordParser | None = None,
        progress: SweepProgress | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self.fetcher_factory = fetcher_factory or self._default_fetcher_factory
        self.parser = parser or TransactionParser()
        self.progress = progress or SweepProgress(enabled=False)
        self.logger = logger or configure_logging().bind(component="coordinator")

    def _default_fetcher_factory(self, worker_id: int) -> PageFetcher:
        return build_fetcher(self.config, logger=worker_logger(worker_id))

    # ------------------------------------------------------------------
    def start(self, pool_size: int | None = None, page_size: int | None = None) -> "Future[SweepResult]":
        """Spawn the workers and return a future resolved with the sweep result.

        Failing to create a worker aborts startup and propagates immediately.
        """

        if pool_size is None:
            pool_size = self.config.pool_size
        if page_size is None:
            page_size = self.config.page_size
        if pool_size < 1:
            raise ValueError("pool_size must be >= 1")
        if page_size < 1:
            raise ValueError("page_size must be >= 1")

        mailbox: Queue[WorkerMessage] = Queue()
        pool = WorkerPool(pool_size, mailbox)
        try:
            workers = [self._create_worker(worker_id, pool.stop_event) for worker_id in range(pool_size)]
            for worker in workers:
                pool.spawn(worker)
        except Exception:
            pool.stop_all("startup_failed")
            pool.shutdown(wait=False)
            raise

        sweep = _Sweep(
            pool=pool,
            mailbox=mailbox,
            workers=workers,
            page_size=page_size,
            deadline_seconds=self.config.deadline_seconds,
            progress=self.progress,
            logger=self.logger,
        )
        self.logger.info("sweep_started", pool_size=pool_size, page_size=page_size)
        runner = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sweep-coordinator")
        future = runner.submit(sweep.run)
        runner.shutdown(wait=False)
        return future

    def run(self, pool_size: int | None = None, page_size: int | None = None) -> SweepResult:
        return self.start(pool_size, page_size).result()

    def _create_worker(self, worker_id: int, stop_event: Event) -> Worker:
        try:
            fetcher = self.fetcher_factory(worker_id)
        except Exception as exc:
            raise WorkerStartupError(f"Could not create worker {worker_id}: {exc}") from exc
        return Worker(
            worker_id,
            fetcher,
            self.parser,
            self.config.page_url,
            PatienceBudget.from_config(self.config.patience),
            max_attempts=self.config.patience.max_attempts,
            stop_event=stop_event,
            logger=worker_logger(worker_id),
        )


class _Sweep:
    """State of one running sweep; only touched by the coordinator thread."""

    def __init__(
        self,
        pool: WorkerPool,
        mailbox: "Queue[WorkerMessage]",
        workers: list[Worker],
        page_size: int,
        deadline_seconds: float | None,
        progress: SweepProgress,
        logger: structlog.BoundLogger,
    ) -> None:
        self.pool = pool
        self.mailbox = mailbox
        self.page_size = page_size
        self.deadline_seconds = deadline_seconds
        self.progress = progress
        self.logger = logger
        self.lanes = {
            worker.worker_id: _Lane(worker, LaneSummary(worker.worker_id)) for worker in workers
        }
        self.next_offset = 0
        self.assigned: list[int] = []
        self.records: list[Record] = []
        self.pages = 0
        self.dead = 0
        self.started_at = time.monotonic()

    def run(self) -> SweepResult:
        try:
            self.progress.start(len(self.lanes))
            while self.dead < len(self.lanes):
                self._handle(self._next_message())
        except BaseException as exc:
            self.logger.error("sweep_aborted", error=str(exc), records=len(self.records))
            self.pool.stop_all("sweep_aborted")
            self.pool.shutdown(wait=False)
            raise
        finally:
            self.progress.close()
        self.pool.shutdown(wait=True)
        result = self.result()
        self.logger.info(
            "sweep_finished",
            records=len(result.records),
            pages=result.pages,
            offsets=len(result.assigned_offsets),
            elapsed=round(result.elapsed, 3),
        )
        return result

    def result(self) -> SweepResult:
        for lane in self.lanes.values():
            lane.summary.patience_ms = lane.worker.patience.current
        return SweepResult(
            records=list(self.records),
            assigned_offsets=list(self.assigned),
            pages=self.pages,
            lanes={worker_id: lane.summary for worker_id, lane in self.lanes.items()},
            elapsed=time.monotonic() - self.started_at,
        )

    def _next_message(self) -> WorkerMessage:
        if self.deadline_seconds is None:
            return self.mailbox.get()
        remaining = self.started_at + self.deadline_seconds - time.monotonic()
        try:
            if remaining <= 0:
                raise Empty
            return self.mailbox.get(timeout=remaining)
        except Empty:
            raise SweepDeadlineExceeded(self.deadline_seconds, self.result()) from None

    # ------------------------------------------------------------------
    def _handle(self, message: WorkerMessage) -> None:
        lane = self.lanes[message.worker_id]
        if isinstance(message, Ready):
            self._expect(lane, message, WorkerState.INITIALIZING)
            lane.state = WorkerState.IDLE
            self._assign(lane)
        elif isinstance(message, Data):
            self._expect(lane, message, WorkerState.FETCHING)
            if message.offset != lane.outstanding:
                raise SweepError(
                    f"Worker {message.worker_id} answered offset {message.offset}, "
                    f"expected {lane.outstanding}"
                )
            if not message.records:
                self._retire(lane)
                return
            self.records.extend(message.records)
            self.pages += 1
            lane.summary.records += len(message.records)
            self.progress.page_done(message.worker_id, message.offset, len(message.records))
            lane.state = WorkerState.IDLE
            self._assign(lane)
        elif isinstance(message, Finished):
            self._expect(lane, message, WorkerState.FETCHING)
            self._retire(lane)
        elif isinstance(message, Failed):
            if message.offset is None:
                raise WorkerStartupError(
                    f"Worker {message.worker_id} could not start: {message.error}"
                ) from message.error
            raise SweepFailedError(
                message.worker_id, message.offset, str(message.error)
            ) from message.error
        elif isinstance(message, LaneExited):
            if lane.state is not WorkerState.RETIRING:
                reason = str(message.error) if message.error else "exited without finishing"
                raise WorkerLostError(message.worker_id, lane.outstanding, reason) from message.error
            if message.error is not None:
                self.logger.warning(
                    "lane_cleanup_failed", worker_id=message.worker_id, error=str(message.error)
                )
            lane.state = WorkerState.DEAD
            self.dead += 1
            self.progress.worker_retired(message.worker_id)
            self.logger.info("worker_dead", worker_id=message.worker_id, dead=self.dead)
        else:
            raise SweepError(f"Unexpected message: {message!r}")

    def _expect(self, lane: _Lane, message: WorkerMessage, state: WorkerState) -> None:
        if lane.state is not state:
            raise SweepError(
                f"Worker {lane.summary.worker_id} sent {type(message).__name__} "
                f"while {lane.state.value}"
            )

    def _issue_offset(self) -> int:
        offset = self.next_offset
        self.next_offset += self.page_size
        self.assigned.append(offset)
        return offset

    def _assign(self, lane: _Lane) -> None:
        offset = self._issue_offset()
        lane.outstanding = offset
        lane.summary.offsets.append(offset)
        lane.state = WorkerState.FETCHING
        self.pool.send(lane.summary.worker_id, Assign(offset))
        self.progress.assigned(lane.summary.worker_id, offset)
        self.logger.debug("offset_assigned", worker_id=lane.summary.worker_id, offset=offset)

    def _retire(self, lane: _Lane) -> None:
        self.logger.info(
            "worker_retiring", worker_id=lane.summary.worker_id, last_offset=lane.outstanding
        )
        lane.state = WorkerState.RETIRING
        lane.outstanding = None
        self.pool.send(lane.summary.worker_id, Stop("retired"))


__all__ = ["Coordinator", "LaneSummary", "SweepResult", "WorkerState"]
