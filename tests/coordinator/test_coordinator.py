from __future__ import annotations

import pytest

from page_sweeper import Coordinator, WorkerState
from page_sweeper.config import PatienceConfig
from page_sweeper.errors import (
    RecordParseError,
    SweepDeadlineExceeded,
    SweepFailedError,
    WorkerLostError,
    WorkerStartupError,
)


def _assert_contiguous(offsets: list[int], page_size: int) -> None:
    assert len(offsets) == len(set(offsets))
    assert sorted(offsets) == list(range(0, page_size * len(offsets), page_size))


def test_three_workers_sweep_four_full_pages(sweep_config, page_backend, fetcher_factory, full_pages) -> None:
    backend = page_backend(pages=full_pages(4))
    factory = fetcher_factory(backend)
    coordinator = Coordinator(sweep_config(pool_size=3), fetcher_factory=factory)

    result = coordinator.run()

    assert len(result.records) == 200
    assert result.pages == 4
    assert {record.transaction for record in result.records} == {str(n) for n in range(1, 201)}
    _assert_contiguous(result.assigned_offsets, 50)
    assert set(result.assigned_offsets) >= {0, 50, 100, 150}
    assert len(result.lanes) == 3
    for lane in result.lanes.values():
        assert lane.state is WorkerState.DEAD
        # each lane ended on a page that turned out empty
        assert lane.offsets[-1] >= 200
    assert sum(lane.records for lane in result.lanes.values()) == 200
    assert all(fetcher.closed for fetcher in factory.fetchers.values())


def test_no_offset_is_fetched_twice_without_timeouts(sweep_config, page_backend, fetcher_factory, full_pages) -> None:
    backend = page_backend(pages=full_pages(9))
    result = Coordinator(sweep_config(pool_size=4), fetcher_factory=fetcher_factory(backend)).run()
    fetched = [offset for offset, _patience in backend.calls]
    assert sorted(fetched) == sorted(result.assigned_offsets)
    assert len(result.records) == 9 * 50


def test_retries_do_not_advance_cursor_or_duplicate(sweep_config, page_backend, fetcher_factory, full_pages) -> None:
    backend = page_backend(pages=full_pages(3), timeouts={0: 2, 50: 4})
    result = Coordinator(sweep_config(pool_size=2), fetcher_factory=fetcher_factory(backend)).run()

    assert len(result.records) == 150
    assert len({record.transaction for record in result.records}) == 150
    _assert_contiguous(result.assigned_offsets, 50)
    assert backend.attempts_for(0) == [20, 30, 40]
    assert backend.attempts_for(50) == [20, 30, 40, 50, 60]


def test_empty_source_finishes_immediately(sweep_config, page_backend, fetcher_factory) -> None:
    result = Coordinator(sweep_config(pool_size=2), fetcher_factory=fetcher_factory(page_backend())).run()
    assert result.records == []
    assert result.pages == 0
    assert sorted(result.assigned_offsets) == [0, 50]


def test_custom_page_size(sweep_config, page_backend, fetcher_factory) -> None:
    backend = page_backend(pages={0: 10, 10: 10, 20: 5})
    coordinator = Coordinator(sweep_config(pool_size=2), fetcher_factory=fetcher_factory(backend))
    result = coordinator.start(pool_size=2, page_size=10).result(timeout=10)
    assert len(result.records) == 25
    _assert_contiguous(result.assigned_offsets, 10)


def test_hard_error_fails_the_sweep(sweep_config, page_backend, fetcher_factory, full_pages) -> None:
    backend = page_backend(pages=full_pages(6), hard={100})
    future = Coordinator(sweep_config(pool_size=2), fetcher_factory=fetcher_factory(backend)).start()
    with pytest.raises(SweepFailedError) as excinfo:
        future.result(timeout=10)
    assert excinfo.value.offset == 100


def test_parse_error_fails_the_sweep(sweep_config, fetcher_factory, page_backend) -> None:
    class GarbageParser:
        def parse(self, raw_text: str):
            raise RecordParseError("garbage", 2)

    coordinator = Coordinator(
        sweep_config(pool_size=2),
        fetcher_factory=fetcher_factory(page_backend(pages={0: 50})),
        parser=GarbageParser(),
    )
    with pytest.raises(SweepFailedError):
        coordinator.run()


def test_crashed_worker_is_reported_as_lost(sweep_config, page_backend, fetcher_factory) -> None:
    class CrashingFetcher:
        def start(self) -> None:
            return

        def fetch(self, url: str, patience_ms: int) -> str:
            raise RuntimeError("renderer crashed")

        def close(self) -> None:
            return

    healthy = fetcher_factory(page_backend())

    def factory(worker_id: int):
        return CrashingFetcher() if worker_id == 1 else healthy(worker_id)

    with pytest.raises(WorkerLostError) as excinfo:
        Coordinator(sweep_config(pool_size=2), fetcher_factory=factory).run()
    assert excinfo.value.worker_id == 1


def test_worker_that_cannot_start_aborts(sweep_config, page_backend, fetcher_factory) -> None:
    class NoBrowser:
        def start(self) -> None:
            raise OSError("chromium missing")

        def fetch(self, url: str, patience_ms: int) -> str:
            return ""

        def close(self) -> None:
            return

    with pytest.raises(WorkerStartupError):
        Coordinator(sweep_config(pool_size=2), fetcher_factory=lambda worker_id: NoBrowser()).run()


def test_fetcher_factory_failure_propagates_from_start(sweep_config) -> None:
    def factory(worker_id: int):
        raise OSError("cannot spawn")

    with pytest.raises(WorkerStartupError):
        Coordinator(sweep_config(pool_size=2), fetcher_factory=factory).start()


@pytest.mark.parametrize("arguments", [{"page_size": -5}, {"page_size": 0}, {"pool_size": 0}])
def test_invalid_pool_arguments(sweep_config, fetcher_factory, page_backend, arguments) -> None:
    factory = fetcher_factory(page_backend())
    coordinator = Coordinator(sweep_config(), fetcher_factory=factory)
    with pytest.raises(ValueError):
        coordinator.start(**arguments)
    # 参数校验先于创建 worker
    assert factory.fetchers == {}


def test_deadline_returns_partial_result_with_error(sweep_config, page_backend, fetcher_factory) -> None:
    backend = page_backend(pages={0: 50}, stall_from=50)
    coordinator = Coordinator(
        sweep_config(pool_size=2, deadline_seconds=0.5),
        fetcher_factory=fetcher_factory(backend),
    )
    with pytest.raises(SweepDeadlineExceeded) as excinfo:
        coordinator.run()
    partial = excinfo.value.partial
    assert len(partial.records) == 50
    assert partial.pages == 1
    _assert_contiguous(partial.assigned_offsets, 50)


def test_retry_limit_turns_stalled_offset_into_failure(sweep_config, page_backend, fetcher_factory) -> None:
    config = sweep_config(pool_size=2, patience=PatienceConfig(initial=20, step=10, maximum=40, max_attempts=2))
    backend = page_backend(stall_from=0)
    with pytest.raises(SweepFailedError) as excinfo:
        Coordinator(config, fetcher_factory=fetcher_factory(backend)).run()
    assert "after 2 attempts" in str(excinfo.value)
