"""Pydantic models describing a sweep and its collaborators."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_BASE_URL = "https://web.bankin.com/challenge/index.html?start={offset}"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_12_6) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/63.0.3239.132 Safari/537.36"
)


def default_pool_size() -> int:
    """Twice the CPU count minus one; two workers on a single core."""

    cpus = os.cpu_count() or 1
    return cpus * 2 - 1 if cpus > 1 else 2


class FetcherKind(str, Enum):
    """Available page fetcher implementations."""

    BROWSER = "browser"
    HTTP = "http"


class PatienceConfig(BaseModel):
    """Adaptive patience budget, expressed in milliseconds."""

    initial: int = 20
    step: int = 10
    maximum: int = 100
    # None keeps retrying a timing-out offset until the sweep is stopped
    max_attempts: int | None = None

    @model_validator(mode="after")
    def _validate_budget(self) -> "PatienceConfig":
        if self.initial <= 0:
            raise ValueError("initial patience must be > 0")
        if self.step < 0:
            raise ValueError("patience step must be >= 0")
        if self.maximum < self.initial:
            raise ValueError("maximum patience must be >= initial patience")
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1 when set")
        return self


class BrowserConfig(BaseModel):
    """Options for the Playwright backed fetcher."""

    headless: bool = True
    user_agent: str | None = DEFAULT_USER_AGENT
    table_selector: str = "#dvTable table"
    container_selector: str = "#dvTable"
    frame_selector: str = "#fm"
    frame_name: str = "fm"
    regenerate_selector: str = "#btnGenerate"
    navigation_timeout: int = 30000  # 导航超时（毫秒）


class OutputConfig(BaseModel):
    """Where and how the aggregated records are written."""

    format: Literal["json", "jsonl", "csv"] = "json"
    path: Path | None = None

    @field_validator("path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path | None:
        if value in (None, ""):
            return None
        return Path(value)


class SweepConfig(BaseModel):
    """Full definition of a pagination sweep."""

    base_url: str = DEFAULT_BASE_URL
    pool_size: int = Field(default_factory=default_pool_size)
    page_size: int = 50
    fetcher: FetcherKind = FetcherKind.BROWSER
    patience: PatienceConfig = Field(default_factory=PatienceConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    deadline_seconds: float | None = None
    enable_progress_bar: bool = True

    @field_validator("pool_size")
    @classmethod
    def _validate_pool_size(cls, value: int) -> int:
        if value < 2:
            raise ValueError("pool_size must be >= 2")
        return value

    @field_validator("page_size")
    @classmethod
    def _validate_page_size(cls, value: int) -> int:
        if value < 1:
            raise ValueError("page_size must be >= 1")
        return value

    @field_validator("deadline_seconds")
    @classmethod
    def _validate_deadline(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            raise ValueError("deadline_seconds must be > 0 when set")
        return value

    @field_validator("base_url")
    @classmethod
    def _validate_base_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL: {value}")
        return value

    def page_url(self, offset: int) -> str:
        """Return the URL of the page starting at ``offset``."""

        if "{offset}" in self.base_url:
            return self.base_url.format(offset=offset)
        return f"{self.base_url}{offset}"


__all__ = [
    "BrowserConfig",
    "DEFAULT_BASE_URL",
    "DEFAULT_USER_AGENT",
    "FetcherKind",
    "OutputConfig",
    "PatienceConfig",
    "SweepConfig",
    "default_pool_size",
]
