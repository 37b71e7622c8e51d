"""Configuration loading helpers for page-sweeper."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .models import SweepConfig

CONFIG_EXTENSIONS = (".yaml", ".yml", ".json")
SWEEP_CONFIG_FILENAME = "sweep_config.yaml"


def _read_file(path: Path) -> dict:
    text = path.read_text(encoding="utf-8")
    if path.suffix in (".yaml", ".yml"):
        data = yaml.safe_load(text) or {}
    else:
        data = json.loads(text)
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file must contain a mapping: {path}")
    return data


def _write_file(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as stream:
        if path.suffix in (".yaml", ".yml"):
            yaml.safe_dump(payload, stream, allow_unicode=True, sort_keys=False)
        else:
            json.dump(payload, stream, indent=2, ensure_ascii=False)


@dataclass(slots=True)
class ConfigLocator:
    """Resolve important paths from project root."""

    project_root: Path | None = None
    data_dir: Path | None = None
    outputs_dir: Path | None = None
    logs_dir: Path | None = None

    def __post_init__(self) -> None:
        env_root = os.environ.get("PAGE_SWEEPER_HOME")
        if env_root:
            root = Path(env_root).expanduser().resolve()
        else:
            root = (self.project_root or Path(__file__).resolve().parents[2]).resolve()
        self.project_root = root
        self.data_dir = (root / "data").resolve()
        self.outputs_dir = (self.data_dir / "outputs").resolve()
        self.logs_dir = (root / "logs").resolve()
        self.ensure_directories()

    def ensure_directories(self) -> None:
        for directory in (self.data_dir, self.outputs_dir, self.logs_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def sweep_config_path(self) -> Path:
        return self.data_dir / SWEEP_CONFIG_FILENAME


class ConfigRepository:
    """Repository encapsulating config IO and schema validation."""

    def __init__(self, locator: ConfigLocator | None = None) -> None:
        self.locator = locator or ConfigLocator()
        self._cache: SweepConfig | None = None

    def load(self, path: Path | None = None) -> SweepConfig:
        """Load a sweep config; an absent default file yields the defaults."""

        if path is not None:
            if not path.exists():
                raise FileNotFoundError(f"Sweep configuration not found: {path}")
            if path.suffix not in CONFIG_EXTENSIONS:
                raise ValueError(f"Unsupported configuration format: {path.suffix}")
            return SweepConfig.model_validate(_read_file(path))
        if self._cache is not None:
            return self._cache
        default_path = self.locator.sweep_config_path()
        if default_path.exists():
            config = SweepConfig.model_validate(_read_file(default_path))
        else:
            config = SweepConfig()
        self._cache = config
        return config

    def save(self, config: SweepConfig, path: Path | None = None) -> Path:
        target = path or self.locator.sweep_config_path()
        _write_file(target, config.model_dump(mode="json"))
        if path is None:
            self._cache = config
        return target

    @staticmethod
    def apply_overrides(config: SweepConfig, overrides: dict[str, Any]) -> SweepConfig:
        """Return a validated copy of ``config`` with non-None overrides applied."""

        payload = config.model_dump(mode="json")
        for dotted, value in overrides.items():
            if value is None:
                continue
            target = payload
            *parents, leaf = dotted.split(".")
            for key in parents:
                target = target.setdefault(key, {})
            target[leaf] = value
        return SweepConfig.model_validate(payload)


__all__ = ["ConfigLocator", "ConfigRepository", "CONFIG_EXTENSIONS", "SWEEP_CONFIG_FILENAME"]
