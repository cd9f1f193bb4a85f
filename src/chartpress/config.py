"""Immutable renderer configuration and its loading from files and environment."""
from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

BACKENDS = ("cli", "library", "canvas")
IMAGE_FORMATS = ("svg", "png")
DEFAULT_THEME = "default"
DEFAULT_TIMEOUT = 60.0

ENV_PREFIX = "CHARTPRESS_"
_ENV_FIELDS = {
    "BACKEND": "backend",
    "FORMAT": "image_format",
    "QUALITY": "quality",
    "THEME": "theme",
    "TIMEOUT": "timeout",
    "ENGINE": "engine",
}


class ConfigError(ValueError):
    """Raised when renderer configuration is invalid."""


class Quality(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def scale(self) -> float:
        return _QUALITY_SCALES[self]

    @classmethod
    def parse(cls, value: Any) -> "Quality":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(q.value for q in cls)
            raise ConfigError(f"unknown quality {value!r} (expected one of: {choices})") from None


_QUALITY_SCALES = {Quality.LOW: 1.0, Quality.MEDIUM: 1.5, Quality.HIGH: 2.0}


@dataclass(frozen=True)
class RenderConfig:
    backend: str = "cli"
    image_format: str = "svg"
    quality: Quality = Quality.HIGH
    theme: str = DEFAULT_THEME
    theme_variables: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    command: Optional[Tuple[str, ...]] = None
    timeout: float = DEFAULT_TIMEOUT
    workers: int = 1
    engine: Optional[str] = None

    def __post_init__(self) -> None:
        if self.backend not in BACKENDS:
            raise ConfigError(f"unknown backend {self.backend!r} (expected one of: {', '.join(BACKENDS)})")
        if self.image_format not in IMAGE_FORMATS:
            raise ConfigError(
                f"unknown image format {self.image_format!r} (expected one of: {', '.join(IMAGE_FORMATS)})"
            )
        object.__setattr__(self, "quality", Quality.parse(self.quality))
        object.__setattr__(self, "theme_variables", MappingProxyType(dict(self.theme_variables)))
        if self.command is not None:
            if isinstance(self.command, str):
                raise ConfigError("command must be a list of arguments, not a string")
            object.__setattr__(self, "command", tuple(self.command))
        if self.timeout <= 0:
            raise ConfigError("timeout must be > 0")
        if self.workers < 1:
            raise ConfigError("workers must be >= 1")

    @property
    def has_custom_theme(self) -> bool:
        return self.theme != DEFAULT_THEME or bool(self.theme_variables)

    def mermaid_config(self) -> Dict[str, Any]:
        """Configuration handed to an in-process Mermaid engine."""
        return {
            "startOnLoad": False,
            "theme": self.theme,
            "themeVariables": dict(self.theme_variables),
            "flowchart": {"htmlLabels": False},
        }


def _coerce(name: str, value: Any) -> Any:
    try:
        if name == "timeout":
            return float(value)
        if name == "workers":
            return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"invalid value for {name}: {value!r}") from None
    if name == "command" and isinstance(value, str):
        return tuple(value.split())
    return value


def config_from_mapping(data: Mapping[str, Any], base: Optional[RenderConfig] = None) -> RenderConfig:
    known = {f.name for f in fields(RenderConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"unknown configuration keys: {', '.join(unknown)}")
    values = {name: _coerce(name, value) for name, value in data.items()}
    return replace(base or RenderConfig(), **values)


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for suffix, name in _ENV_FIELDS.items():
        raw = environ.get(ENV_PREFIX + suffix)
        if raw:
            values[name] = _coerce(name, raw)
    return values


def load_config(
    path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> RenderConfig:
    """Build the run configuration: defaults, then file, then environment, then overrides."""
    config = RenderConfig()
    if path is not None:
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except OSError as exc:
            raise ConfigError(f"failed to read config file {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"config file {path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError(f"config file {path} must contain a JSON object")
        config = config_from_mapping(data, config)
    config = config_from_mapping(config_from_env(environ), config)
    overrides = {k: _coerce(k, v) for k, v in overrides.items() if v is not None}
    return config_from_mapping(overrides, config)


__all__ = ["ConfigError", "Quality", "RenderConfig", "load_config"]
