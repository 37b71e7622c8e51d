"""Worker lane: fetch one offset at a time with adaptive retries."""

from __future__ import annotations

from queue import Queue
from threading import Event
from typing import Callable

import structlog

from ..errors import (
    HardFetchError,
    RetryBudgetExhausted,
    TransientTimeout,
    WorkerStartupError,
    WorkerStopped,
)
from .backoff import PatienceBudget
from .fetcher import PageFetcher
from .messages import Assign, ControlMessage, Data, Failed, Finished, Ready, Stop, WorkerMessage
from .parser import Record, RecordParser


class Worker:
    """Own one page fetcher and turn assigned offsets into record batches.

    A worker keeps its patience budget for its whole life. Transient timeouts
    retry the same offset with a longer budget; hard errors propagate.
    """

    def __init__(
        self,
        worker_id: int,
        fetcher: PageFetcher,
        parser: RecordParser,
        url_for: Callable[[int], str],
        patience: PatienceBudget,
        *,
        max_attempts: int | None = None,
        stop_event: Event | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.worker_id = worker_id
        self.fetcher = fetcher
        self.parser = parser
        self.url_for = url_for
        self.patience = patience
        self.max_attempts = max_attempts
        self.stop_event = stop_event or Event()
        self.logger = logger or structlog.get_logger("page_sweeper.worker").bind(
            worker_id=worker_id
        )

    def process(self, offset: int) -> list[Record]:
        """Fetch and parse ``offset``; an empty list means this lane is done."""

        url = self.url_for(offset)
        attempts = 0
        while True:
            if self.stop_event.is_set():
                raise WorkerStopped(f"worker {self.worker_id} stopped at offset {offset}")
            attempts += 1
            patience_ms = self.patience.record_attempt()
            try:
                raw_text = self.fetcher.fetch(url, patience_ms)
            except TransientTimeout:
                self.logger.info(
                    "transient_timeout",
                    offset=offset,
                    attempt=attempts,
                    patience_ms=patience_ms,
                    capped=self.patience.exhausted,
                )
                if self.max_attempts is not None and attempts >= self.max_attempts:
                    raise RetryBudgetExhausted(offset, attempts)
                self.patience.escalate()
                continue
            records = self.parser.parse(raw_text)
            self.logger.debug(
                "page_parsed", offset=offset, records=len(records), attempts=attempts
            )
            return records

    def run_lane(
        self, inbox: "Queue[ControlMessage]", outbox: "Queue[WorkerMessage]"
    ) -> None:
        """Speak the lane protocol until the pages run out or a stop arrives.

        Sends ``Ready`` once, then one ``Data`` or ``Finished`` per ``Assign``.
        ``Failed`` replaces them when startup or a fetch hits a hard error.
        """

        try:
            self.fetcher.start()
        except Exception as exc:  # noqa: BLE001
            error = exc if isinstance(exc, WorkerStartupError) else WorkerStartupError(str(exc))
            self.logger.error("worker_startup_failed", error=str(exc))
            outbox.put(Failed(self.worker_id, None, error))
            self.fetcher.close()
            return

        try:
            outbox.put(Ready(self.worker_id))
            while True:
                message = inbox.get()
                if isinstance(message, Stop):
                    self.logger.debug("worker_stop_received", reason=message.reason)
                    return
                if not isinstance(message, Assign):
                    raise TypeError(f"Unexpected control message: {message!r}")
                try:
                    records = self.process(message.offset)
                except WorkerStopped:
                    self.logger.debug("worker_stopped", offset=message.offset)
                    return
                except HardFetchError as exc:
                    self.logger.error(
                        "worker_failed", offset=message.offset, error=str(exc)
                    )
                    outbox.put(Failed(self.worker_id, message.offset, exc))
                    return
                if records:
                    outbox.put(Data(self.worker_id, message.offset, tuple(records)))
                else:
                    self.logger.info("lane_finished", offset=message.offset)
                    outbox.put(Finished(self.worker_id, message.offset))
                    return
        finally:
            self.fetcher.close()


__all__ = ["Worker"]
