# src/geobatch/config/settings.py
"""
Application settings (Pydantic).

Settings are loaded from `src/geobatch/config/defaults.yaml`, then optionally overridden by:
- an external YAML file via `GEOBATCH_CONFIG_PATH`
- a small whitelist of environment variables (e.g., `GEOBATCH_WORKER_COUNT`)

Design rule:
- Tuning knobs (grid resolution, chunk sizes, search limits) live in YAML, not in the core.
"""

from __future__ import annotations

import os
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from geobatch.core.env import load_dotenv_if_present


def _read_package_yaml(filename: str) -> dict[str, Any]:
    """Read a YAML file packaged inside `geobatch.config`."""
    text = resources.files("geobatch.config").joinpath(filename).read_text(encoding="utf-8")
    data = yaml.safe_load(text) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {filename}; expected a mapping.")
    return data


def _read_yaml_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML file from disk and return its mapping root."""
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid YAML root object for {path}; expected a mapping.")
    return data


class AppSettings(BaseModel):
    name: str = "GeoBatch"
    timezone: str = "UTC"
    log_level: str = "INFO"


class IngestionSettings(BaseModel):
    latitude_field: str = "latitude"
    longitude_field: str = "longitude"
    latitude_aliases: list[str] = Field(default_factory=lambda: ["lat"])
    longitude_aliases: list[str] = Field(default_factory=lambda: ["lon", "lng", "long"])


class ProcessingSettings(BaseModel):
    chunk_size: int = Field(1000, ge=1)
    # None means one worker per logical CPU.
    worker_count: int | None = Field(default=None, ge=1)
    # Batches smaller than this run sequentially (and keep input order).
    parallel_threshold: int = Field(10_000, ge=0)


class GridSettings(BaseModel):
    grid_size: int = Field(10, ge=1)
    padding_deg: float = Field(0.0, ge=0)


class SearchSettings(BaseModel):
    max_distance_km: float = Field(1000.0, ge=0)
    max_neighbors: int = Field(10, ge=0)
    use_grid: bool = False


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    grid: GridSettings = Field(default_factory=GridSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Overlay selected environment variables onto raw settings payload.

    Note: the whitelist is kept small on purpose; everything else goes through YAML.
    """
    load_dotenv_if_present()
    data = dict(data)

    log_level = os.getenv("GEOBATCH_LOG_LEVEL")
    if log_level:
        data.setdefault("app", {})["log_level"] = log_level

    # Numeric values stay strings here; model validation coerces them or rejects junk.
    worker_count = os.getenv("GEOBATCH_WORKER_COUNT")
    if worker_count:
        data.setdefault("processing", {})["worker_count"] = worker_count

    chunk_size = os.getenv("GEOBATCH_CHUNK_SIZE")
    if chunk_size:
        data.setdefault("processing", {})["chunk_size"] = chunk_size

    return data


@lru_cache
def get_settings() -> Settings:
    """Load and validate settings (cached)."""
    load_dotenv_if_present()
    config_path = os.getenv("GEOBATCH_CONFIG_PATH")
    raw = _read_yaml_file(config_path) if config_path else _read_package_yaml("defaults.yaml")
    raw = _apply_env_overrides(raw)
    return Settings.model_validate(raw)


@lru_cache
def get_logging_config() -> dict[str, Any]:
    """Load logging configuration (cached)."""
    return _read_package_yaml("logging.yaml")
