"""
Configuration

Nested dataclass configuration for overzoom runs, logging, metrics and the
tile server. Values are layered: dataclass defaults, then an optional JSON
file, then environment variables named
``BASEMAP_TILES_<SECTION>_<FIELD>`` (e.g. ``BASEMAP_TILES_OVERZOOM_BUFFER``).
"""

import json
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union, get_type_hints

ENV_PREFIX = "BASEMAP_TILES"

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


@dataclass
class OverzoomConfig:
    """Overzoom engine settings."""
    buffer: int = 0
    target_extent: Optional[int] = None
    max_workers: int = 4
    compression: Optional[str] = None
    row_origin: str = "tms"
    copy_source_tiles: bool = True
    commit_interval: int = 10000

    def validate(self) -> None:
        if self.buffer < 0:
            raise ValueError(f"overzoom.buffer must be non-negative, got {self.buffer}")
        if self.target_extent is not None and self.target_extent <= 0:
            raise ValueError(f"overzoom.target_extent must be positive, got {self.target_extent}")
        if self.max_workers < 1:
            raise ValueError(f"overzoom.max_workers must be at least 1, got {self.max_workers}")
        if self.compression is not None and self.compression not in ("gzip", "zlib", "none"):
            raise ValueError(f"overzoom.compression must be gzip, zlib or none, got {self.compression!r}")
        if self.row_origin not in ("tms", "xyz"):
            raise ValueError(f"overzoom.row_origin must be tms or xyz, got {self.row_origin!r}")
        if self.commit_interval < 1:
            raise ValueError(f"overzoom.commit_interval must be positive, got {self.commit_interval}")


@dataclass
class LoggingConfig:
    """Structured logging settings."""
    level: str = "INFO"
    json_logs: bool = False

    def validate(self) -> None:
        if self.level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"logging.level is not a log level: {self.level!r}")


@dataclass
class MetricsConfig:
    """Prometheus settings."""
    enable_prometheus: bool = True
    pushgateway: Optional[str] = None
    job_name: str = "basemap_tiles"

    def validate(self) -> None:
        if not self.job_name.strip():
            raise ValueError("metrics.job_name must not be empty")
        if self.pushgateway is not None and not self.pushgateway.strip():
            raise ValueError("metrics.pushgateway must be a host:port or URL when set")


@dataclass
class ServerConfig:
    """Tile server settings."""
    host: str = "0.0.0.0"
    port: int = 8000
    max_overzoom: int = 22

    def validate(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"server.port out of range: {self.port}")
        if not 0 <= self.max_overzoom <= 30:
            raise ValueError(f"server.max_overzoom must be between 0 and 30, got {self.max_overzoom}")


@dataclass
class Config:
    """Top-level configuration object."""
    environment: str = "development"
    overzoom: OverzoomConfig = field(default_factory=OverzoomConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    SECTIONS = ("overzoom", "logging", "metrics", "server")

    def validate(self) -> "Config":
        for section in self.SECTIONS:
            getattr(self, section).validate()
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base: Optional["Config"] = None) -> "Config":
        """
        Overlay a (possibly partial) nested mapping onto ``base``.

        Raises:
            ValueError: on unknown sections or fields
        """
        config = base or cls()
        updates: Dict[str, Any] = {}
        for key, value in data.items():
            if key == "environment":
                updates[key] = str(value)
            elif key in cls.SECTIONS:
                if not isinstance(value, Mapping):
                    raise ValueError(f"Config section {key!r} must be a mapping")
                section = getattr(config, key)
                updates[key] = _overlay_section(section, value, key)
            else:
                raise ValueError(f"Unknown config section: {key!r}")
        return replace(config, **updates).validate()

    @classmethod
    def from_file(cls, path: Union[str, Path], base: Optional["Config"] = None) -> "Config":
        with open(path, "r") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a JSON object")
        return cls.from_dict(data, base)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        base: Optional["Config"] = None
    ) -> "Config":
        """Overlay ``BASEMAP_TILES_*`` environment variables onto ``base``."""
        environ = os.environ if environ is None else environ
        data: Dict[str, Any] = {}
        if f"{ENV_PREFIX}_ENVIRONMENT" in environ:
            data["environment"] = environ[f"{ENV_PREFIX}_ENVIRONMENT"]
        for section in cls.SECTIONS:
            section_cls = type(getattr(base or cls(), section))
            for f in fields(section_cls):
                name = f"{ENV_PREFIX}_{section.upper()}_{f.name.upper()}"
                if name in environ:
                    data.setdefault(section, {})[f.name] = environ[name]
        return cls.from_dict(data, base)

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "Config":
        """Defaults, then the optional JSON file, then the environment."""
        config = cls.from_file(path) if path else cls()
        return cls.from_env(base=config)


def _overlay_section(section: Any, values: Mapping[str, Any], section_name: str) -> Any:
    hints = get_type_hints(type(section))
    known = {f.name for f in fields(section)}
    updates = {}
    for name, value in values.items():
        if name not in known:
            raise ValueError(f"Unknown config field: {section_name}.{name}")
        updates[name] = _coerce(value, hints[name], f"{section_name}.{name}")
    return replace(section, **updates)


def _coerce(value: Any, hint: Any, name: str) -> Any:
    """Convert file or environment values to the field's declared type."""
    optional = getattr(hint, "__origin__", None) is Union and type(None) in hint.__args__
    if optional:
        if value is None or (isinstance(value, str) and value.strip().lower() in ("", "none", "null")):
            return None
        hint = next(arg for arg in hint.__args__ if arg is not type(None))

    if hint is bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        raise ValueError(f"{name} must be a boolean, got {value!r}")
    if hint is int:
        if isinstance(value, bool):
            raise ValueError(f"{name} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"{name} must be an integer, got {value!r}") from None
    return str(value)
