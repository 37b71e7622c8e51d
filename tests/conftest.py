"""Shared fixtures: isolated home directory, sweep configs and a scripted backend."""

from __future__ import annotations

import time
from collections import defaultdict
from pathlib import Path
from threading import Lock
from typing import Any, Callable

import pytest

from page_sweeper.config import PatienceConfig, SweepConfig
from page_sweeper.errors import HardFetchError, TransientTimeout

BASE_URL = "https://bank.example/challenge?start={offset}"
HEADER = "Account\tTransaction\tAmount"


def render_page(offset: int, count: int) -> str:
    rows = [f"Checking\tTransaction {offset + index + 1}\t{10 + index}€" for index in range(count)]
    return "\n".join([HEADER, *rows])


def offset_from_url(url: str) -> int:
    return int(url.rsplit("=", 1)[1])


class PageBackend:
    """Thread-safe scripted remote source shared by fake fetchers.

    ``pages`` maps an offset to the number of rows it returns; missing offsets
    are empty. ``timeouts`` maps an offset to how many attempts time out
    before it answers. Offsets in ``hard`` fail hard, offsets at or beyond
    ``stall_from`` time out forever.
    """

    def __init__(
        self,
        pages: dict[int, int] | None = None,
        timeouts: dict[int, int] | None = None,
        hard: set[int] | None = None,
        stall_from: int | None = None,
    ) -> None:
        self.pages = dict(pages or {})
        self.remaining_timeouts = defaultdict(int, timeouts or {})
        self.hard = set(hard or ())
        self.stall_from = stall_from
        self.calls: list[tuple[int, int]] = []
        self._lock = Lock()

    def answer(self, url: str, patience_ms: int) -> str:
        offset = offset_from_url(url)
        with self._lock:
            self.calls.append((offset, patience_ms))
            if self.remaining_timeouts[offset] > 0:
                self.remaining_timeouts[offset] -= 1
                raise TransientTimeout(url, patience_ms)
        if self.stall_from is not None and offset >= self.stall_from:
            time.sleep(patience_ms / 1000)
            raise TransientTimeout(url, patience_ms)
        if offset in self.hard:
            raise HardFetchError(f"backend refused offset {offset}")
        return render_page(offset, self.pages.get(offset, 0))

    def attempts_for(self, offset: int) -> list[int]:
        with self._lock:
            return [patience for called, patience in self.calls if called == offset]


class FakeFetcher:
    """PageFetcher answering from a PageBackend."""

    def __init__(self, backend: PageBackend) -> None:
        self.backend = backend
        self.started = False
        self.closed = False

    def start(self) -> None:
        self.started = True

    def fetch(self, url: str, patience_ms: int) -> str:
        return self.backend.answer(url, patience_ms)

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("PAGE_SWEEPER_HOME", str(tmp_path))
    return tmp_path


@pytest.fixture
def sweep_config() -> Callable[..., SweepConfig]:
    def _builder(**overrides: Any) -> SweepConfig:
        base: dict[str, Any] = {
            "base_url": BASE_URL,
            "pool_size": 3,
            "page_size": 50,
            "patience": PatienceConfig(initial=20, step=10, maximum=100),
            "enable_progress_bar": False,
        }
        base.update(overrides)
        return SweepConfig(**base)

    return _builder


@pytest.fixture
def full_pages() -> Callable[[int], dict[int, int]]:
    """Pages 0, 50, ... each holding 50 rows, ``count`` of them."""

    def _builder(count: int, page_size: int = 50) -> dict[int, int]:
        return {index * page_size: page_size for index in range(count)}

    return _builder


@pytest.fixture
def page_backend() -> type[PageBackend]:
    return PageBackend


@pytest.fixture
def fetcher_factory() -> Callable[[PageBackend], Callable[[int], FakeFetcher]]:
    """Build a coordinator fetcher factory; created fetchers land in ``.fetchers``."""

    def _builder(backend: PageBackend) -> Callable[[int], FakeFetcher]:
        fetchers: dict[int, FakeFetcher] = {}

        def factory(worker_id: int) -> FakeFetcher:
            fetcher = FakeFetcher(backend)
            fetchers[worker_id] = fetcher
            return fetcher

        factory.fetchers = fetchers  # type: ignore[attr-defined]
        return factory

    return _builder


@pytest.fixture
def page_text() -> Callable[[int, int], str]:
    return render_page
