"""Adaptive patience budget used by workers when the source is slow."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..config import PatienceConfig


@dataclass
class PatienceBudget:
    """Current per-attempt wait, grown after each transient timeout.

    The budget lives as long as its worker: it is never reset between
    offsets, so a worker that found the source slow stays patient.
    """

    initial: int = 20
    step: int = 10
    maximum: int = 100
    current: int = field(init=False)
    history: list[int] = field(init=False, default_factory=list)

    def __post_init__(self) -> None:
        if self.maximum < self.initial:
            raise ValueError("maximum patience must be >= initial patience")
        self.current = self.initial

    @classmethod
    def from_config(cls, config: PatienceConfig) -> "PatienceBudget":
        return cls(initial=config.initial, step=config.step, maximum=config.maximum)

    def record_attempt(self) -> int:
        """Note that an attempt is about to use the current budget."""

        self.history.append(self.current)
        return self.current

    def escalate(self) -> int:
        self.current = min(self.current + self.step, self.maximum)
        return self.current

    @property
    def exhausted(self) -> bool:
        return self.current >= self.maximum


__all__ = ["PatienceBudget"]
