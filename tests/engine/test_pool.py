from __future__ import annotations

from queue import Queue

from page_sweeper.engine import PatienceBudget, TransactionParser, Worker, WorkerPool
from page_sweeper.engine.messages import Assign, LaneExited, Ready


class CrashingFetcher:
    def start(self) -> None:
        return

    def fetch(self, url: str, patience_ms: int) -> str:
        raise RuntimeError("renderer crashed")

    def close(self) -> None:
        return


def test_pool_reports_lane_exit_after_stop(page_backend, fetcher_factory) -> None:
    mailbox: Queue = Queue()
    pool = WorkerPool(2, mailbox)
    factory = fetcher_factory(page_backend())
    for worker_id in range(2):
        pool.spawn(
            Worker(
                worker_id,
                factory(worker_id),
                TransactionParser(),
                str,
                PatienceBudget(),
                stop_event=pool.stop_event,
            )
        )
    ready = {mailbox.get(timeout=5).worker_id for _ in range(2)}
    assert ready == {0, 1}

    pool.stop_all("test")
    exits = [mailbox.get(timeout=5) for _ in range(2)]
    pool.shutdown()

    assert all(isinstance(message, LaneExited) and message.error is None for message in exits)
    assert pool.stop_event.is_set()
    assert all(fetcher.closed for fetcher in factory.fetchers.values())


def test_pool_reports_crashed_lane() -> None:
    mailbox: Queue = Queue()
    pool = WorkerPool(1, mailbox)
    pool.spawn(Worker(7, CrashingFetcher(), TransactionParser(), str, PatienceBudget()))
    assert isinstance(mailbox.get(timeout=5), Ready)
    pool.send(7, Assign(0))
    exited = mailbox.get(timeout=5)
    pool.shutdown()
    assert isinstance(exited, LaneExited)
    assert exited.worker_id == 7
    assert isinstance(exited.error, RuntimeError)
