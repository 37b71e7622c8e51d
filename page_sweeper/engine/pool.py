"""Thread pool hosting worker lanes, one thread per worker."""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from queue import Queue
from threading import Event, Lock
from typing import Dict

from .messages import ControlMessage, LaneExited, Stop, WorkerMessage
from .worker import Worker


class WorkerPool:
    """Run worker lanes and report every lane exit back to the mailbox."""

    def __init__(
        self,
        size: int,
        mailbox: "Queue[WorkerMessage]",
        thread_name_prefix: str = "sweep-worker",
    ) -> None:
        self.size = size
        self.mailbox = mailbox
        self.stop_event = Event()
        self._executor = ThreadPoolExecutor(max_workers=size, thread_name_prefix=thread_name_prefix)
        self._inboxes: Dict[int, Queue[ControlMessage]] = {}
        self._futures: Dict[int, Future[None]] = {}
        self._lock = Lock()

    def spawn(self, worker: Worker) -> None:
        inbox: Queue[ControlMessage] = Queue()
        with self._lock:
            if worker.worker_id in self._inboxes:
                raise ValueError(f"Worker {worker.worker_id} already spawned")
            self._inboxes[worker.worker_id] = inbox
            future = self._executor.submit(worker.run_lane, inbox, self.mailbox)
            self._futures[worker.worker_id] = future
        future.add_done_callback(partial(self._lane_done, worker.worker_id))

    def _lane_done(self, worker_id: int, future: Future[None]) -> None:
        error = None if future.cancelled() else future.exception()
        self.mailbox.put(LaneExited(worker_id, error))

    def send(self, worker_id: int, message: ControlMessage) -> None:
        with self._lock:
            inbox = self._inboxes[worker_id]
        inbox.put(message)

    def stop_all(self, reason: str) -> None:
        """Ask every lane to stop, including ones stuck retrying an offset."""

        self.stop_event.set()
        with self._lock:
            inboxes = list(self._inboxes.values())
        for inbox in inboxes:
            inbox.put(Stop(reason))

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


__all__ = ["WorkerPool"]
