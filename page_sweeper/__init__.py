"""Parallel paginated sweep with adaptive per-worker retries."""

from .coordinator import Coordinator, SweepResult, WorkerState

__all__ = ["Coordinator", "SweepResult", "WorkerState"]

__version__ = "0.1.0"
