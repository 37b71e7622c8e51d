"""User interaction helpers."""

from .progress import SweepProgress

__all__ = ["SweepProgress"]
