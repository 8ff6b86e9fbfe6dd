from __future__ import annotations

import logging
import math
from datetime import timedelta
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

logger = logging.getLogger(__name__)


class BackoffConfig(BaseModel):
    """Immutable parameter set for one backoff sequence.

    Durations accept ``timedelta`` values, plain numbers of seconds or
    ISO-8601 duration strings. Values are deliberately not range-checked:
    a zero or negative factor, or a ``max_delay`` below ``initial_delay``,
    is accepted and handled by the calculator.

    Numbers of seconds beyond the range of ``timedelta`` saturate at
    ``timedelta.max`` or ``timedelta.min``, so ``float("inf")`` means no cap.
    NaN is read as zero.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", ser_json_timedelta="float")

    initial_delay: timedelta = timedelta(milliseconds=500)
    factor: float = 2.0
    max_delay: timedelta = timedelta(seconds=10)
    jitter: bool = True

    @field_validator("initial_delay", "max_delay", mode="before")
    @classmethod
    def _saturate_seconds(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return value
        if math.isnan(value):
            return timedelta(0)
        try:
            return timedelta(seconds=value)
        except OverflowError:
            return timedelta.max if value > 0 else timedelta.min


class ConfigError(RuntimeError):
    pass


def with_options(config: BackoffConfig, **options: Any) -> BackoffConfig:
    data = config.model_dump()
    data.update(options)
    try:
        return BackoffConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid backoff options {sorted(options)}: {exc}") from exc


def discover_config_path(config_override: Path | None = None) -> Path | None:
    if config_override is not None:
        return config_override.resolve()

    candidates = [
        Path("./backoff.yaml"),
        Path("~/.config/jitterbackoff/backoff.yaml").expanduser(),
    ]

    for candidate in candidates:
        if candidate.exists():
            return candidate.resolve()
    return None


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Malformed YAML in {path}: {exc}") from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")
    return raw


def load_config(
    config_override: Path | None = None, section: str | None = None
) -> BackoffConfig:
    """Load a ``BackoffConfig`` from YAML, falling back to defaults.

    ``section`` selects a nested mapping so a backoff policy can live inside a
    larger application config file.
    """
    path = discover_config_path(config_override)
    if path is None:
        return BackoffConfig()
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("loading backoff config from %s", path)
    data = _load_yaml(path)
    if section is not None:
        if section not in data:
            raise ConfigError(f"Section {section!r} not found in {path}")
        data = data[section]
        if not isinstance(data, dict):
            raise ConfigError(f"Section {section!r} must be a mapping: {path}")

    try:
        return BackoffConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def write_default_config(path: Path, overwrite: bool = False) -> None:
    if path.exists() and not overwrite:
        raise ConfigError(f"Config file already exists: {path}")

    config = BackoffConfig()
    serialized = yaml.safe_dump(config.model_dump(mode="json"), sort_keys=False)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialized, encoding="utf-8")
