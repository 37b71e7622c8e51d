"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    BrowserConfig,
    FetcherKind,
    OutputConfig,
    PatienceConfig,
    SweepConfig,
    default_pool_size,
)

__all__ = [
    "BrowserConfig",
    "ConfigLocator",
    "ConfigRepository",
    "FetcherKind",
    "OutputConfig",
    "PatienceConfig",
    "SweepConfig",
    "default_pool_size",
]
