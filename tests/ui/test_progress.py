from __future__ import annotations

import io

import pytest
from rich.console import Console

from page_sweeper.ui import SweepProgress


def test_disabled_progress_still_counts() -> None:
    progress = SweepProgress(enabled=False)
    progress.start(3)
    progress.assigned(0, 0)
    progress.assigned(1, 50)
    progress.page_done(0, 0, 50)
    progress.page_done(1, 50, 12)
    progress.worker_retired(2)
    progress.close()

    state = progress.state
    assert state is not None
    assert (state.pages, state.records, state.retired) == (2, 62, 1)
    assert state.active == 2


def test_non_terminal_console_falls_back_to_silent() -> None:
    console = Console(file=io.StringIO(), force_terminal=False)
    progress = SweepProgress(enabled=True, console=console)
    progress.start(2)
    progress.page_done(0, 0, 50)
    progress.close()

    assert progress.enabled is False
    assert progress.state is not None
    assert progress.state.records == 50
    assert console.file.getvalue() == ""


def test_updates_before_start_are_rejected() -> None:
    progress = SweepProgress(enabled=False)
    assert progress.state is None
    with pytest.raises(RuntimeError):
        progress.page_done(0, 0, 1)
