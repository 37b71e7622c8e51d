"""Messages exchanged between the coordinator and worker lanes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from .parser import Record


# worker -> coordinator
@dataclass(frozen=True, slots=True)
class Ready:
    worker_id: int


@dataclass(frozen=True, slots=True)
class Data:
    worker_id: int
    offset: int
    records: tuple[Record, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class Finished:
    worker_id: int
    offset: int | None = None


@dataclass(frozen=True, slots=True)
class Failed:
    worker_id: int
    offset: int | None
    error: BaseException


@dataclass(frozen=True, slots=True)
class LaneExited:
    """Posted by the pool once a lane's thread has returned or crashed."""

    worker_id: int
    error: BaseException | None = None


# coordinator -> worker
@dataclass(frozen=True, slots=True)
class Assign:
    offset: int


@dataclass(frozen=True, slots=True)
class Stop:
    reason: str = "retired"


WorkerMessage = Union[Ready, Data, Finished, Failed, LaneExited]
ControlMessage = Union[Assign, Stop]

__all__ = [
    "Assign",
    "ControlMessage",
    "Data",
    "Failed",
    "Finished",
    "LaneExited",
    "Ready",
    "Stop",
    "WorkerMessage",
]
