"""Library configuration.

Settings come from defaults, an optional YAML file, and ``DATLIB_*``
environment variables, in that order of precedence (lowest first).
"""

from __future__ import annotations

import importlib
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import yaml

from datlib.errors import ConfigError

DEFAULT_LIBRARY_DIR = Path.home() / ".datlib"
DEFAULT_ARCHIVE_DIR = "dat2"
DEFAULT_METADATA_DIR = ".metadata"
DEFAULT_READY_TIMEOUT = 30.0

ENV_LIBRARY_DIR = "DATLIB_DIR"
ENV_ENGINE = "DATLIB_ENGINE"
ENV_READY_TIMEOUT = "DATLIB_READY_TIMEOUT"


@dataclass
class EngineOptions:
    """Options handed to the archive engine for every open/create/fork."""

    persist: bool = True
    auto_swarm: bool = True
    sparse: bool = True

    def as_dict(self) -> dict[str, bool]:
        return {"persist": self.persist, "auto_swarm": self.auto_swarm, "sparse": self.sparse}


@dataclass
class LibraryConfig:
    library_dir: Path = field(default_factory=lambda: DEFAULT_LIBRARY_DIR)
    archive_dir: str = DEFAULT_ARCHIVE_DIR
    metadata_dir: str = DEFAULT_METADATA_DIR
    ready_timeout: Optional[float] = DEFAULT_READY_TIMEOUT
    engine: str = ""
    engine_options: EngineOptions = field(default_factory=EngineOptions)

    def __post_init__(self) -> None:
        self.library_dir = Path(self.library_dir).expanduser()
        if self.ready_timeout is not None and self.ready_timeout <= 0:
            raise ConfigError(f"ready_timeout must be positive, got {self.ready_timeout}")

    @property
    def archive_root(self) -> Path:
        """Directory holding per-archive storage, keyed by canonical address."""
        return self.library_dir / self.archive_dir

    @property
    def metadata_root(self) -> Path:
        return self.library_dir / self.metadata_dir


_SIMPLE_KEYS = {f.name for f in fields(LibraryConfig)} - {"engine_options"}
_ENGINE_KEYS = {f.name for f in fields(EngineOptions)}


def load_config(path: str | Path | None = None, env: dict[str, str] | None = None) -> LibraryConfig:
    """Build a :class:`LibraryConfig` from an optional YAML file and the environment."""
    env = os.environ if env is None else env
    values: dict[str, Any] = {}

    if path is not None:
        values.update(_read_yaml(Path(path)))

    if env.get(ENV_LIBRARY_DIR):
        values["library_dir"] = env[ENV_LIBRARY_DIR]
    if env.get(ENV_ENGINE):
        values["engine"] = env[ENV_ENGINE]
    if env.get(ENV_READY_TIMEOUT):
        timeout = env[ENV_READY_TIMEOUT]
        # "none" lifts the bound, like ``ready_timeout: null`` in YAML
        values["ready_timeout"] = None if timeout.strip().lower() == "none" else timeout

    return _build_config(values)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    # Allow the settings to live under a top-level "library:" key
    if isinstance(data.get("library"), dict):
        data = data["library"]
    return data


def _build_config(values: dict[str, Any]) -> LibraryConfig:
    kwargs: dict[str, Any] = {}
    engine_kwargs: dict[str, bool] = {}

    for key, value in values.items():
        if key in _SIMPLE_KEYS:
            kwargs[key] = value
        elif key in _ENGINE_KEYS:
            engine_kwargs[key] = bool(value)
        elif key == "engine_options" and isinstance(value, dict):
            for opt, flag in value.items():
                if opt not in _ENGINE_KEYS:
                    raise ConfigError(f"Unknown engine option: {opt}")
                engine_kwargs[opt] = bool(flag)
        else:
            raise ConfigError(f"Unknown config key: {key}")

    if kwargs.get("ready_timeout") is not None:
        try:
            kwargs["ready_timeout"] = float(kwargs["ready_timeout"])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"ready_timeout must be a number: {kwargs['ready_timeout']!r}") from e

    return LibraryConfig(engine_options=EngineOptions(**engine_kwargs), **kwargs)


def load_engine_factory(path: str):
    """Import an engine factory given as ``"package.module:attribute"``."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ConfigError(f"Engine must be given as 'module:attribute', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import engine module {module_name!r}: {e}") from e
    try:
        return getattr(module, attr)
    except AttributeError as e:
        raise ConfigError(f"Engine module {module_name!r} has no attribute {attr!r}") from e
