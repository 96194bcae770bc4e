"""
Reader configuration.

Values come from an optional JSON file next to where the reader is started,
then from MDREADER_* environment variables. Configuration is read-only:
the reader never writes it back.
"""

import json
import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "mdreader.json"
ENV_PREFIX = "MDREADER_"


@dataclass(frozen=True)
class ReaderConfig:
    """Settings for rendering, navigation and the viewer host.

    Attributes:
        threshold_offset: Distance below the top of the scroll container at
            which a heading becomes the active TOC entry.
        bottom_epsilon: How close to the maximum scroll position counts as
            "scrolled to the bottom".
        max_file_size: Largest document, in bytes, that will be read.
        render_cache_size: Number of render results kept for reuse.
        log_dir: Directory for the rotating log file.
        debug: Verbose logging and Flask debug mode.
        host: Interface the viewer binds to.
        port: Port the viewer binds to.
    """

    threshold_offset: float = 120.0
    bottom_epsilon: float = 4.0
    max_file_size: int = 20 * 1024 * 1024  # 20 MB
    render_cache_size: int = 16
    log_dir: str = "logs"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8000


def _coerce(name: str, raw: Any, target: type) -> Any:
    if target is bool:
        if isinstance(raw, bool):
            return raw
        value = str(raw).strip().lower()
        if value in ("1", "true", "yes", "on"):
            return True
        if value in ("0", "false", "no", "off"):
            return False
        raise ConfigError(f"Invalid boolean for {name}: {raw!r}")
    try:
        return target(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {raw!r} (expected {target.__name__})") from e


def _validate(config: ReaderConfig) -> ReaderConfig:
    if config.threshold_offset < 0:
        raise ConfigError("threshold_offset must not be negative")
    if config.bottom_epsilon < 0:
        raise ConfigError("bottom_epsilon must not be negative")
    if config.max_file_size <= 0:
        raise ConfigError(f"max_file_size must be a positive integer, got {config.max_file_size}")
    if config.render_cache_size < 0:
        raise ConfigError("render_cache_size must not be negative")
    if not 0 < config.port < 65536:
        raise ConfigError(f"port out of range: {config.port}")
    return config


def load_config(path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> ReaderConfig:
    """
    Build the reader configuration.

    :param path: JSON file to read. Defaults to ``mdreader.json`` in the
        current directory; a missing file is not an error.
    :param environ: Environment mapping, ``os.environ`` by default.
    :raises ConfigError: if the file is malformed or a value is invalid.
    """
    environ = os.environ if environ is None else environ
    path = path if path is not None else Path.cwd() / CONFIG_FILE_NAME
    types = {f.name: type(f.default) for f in fields(ReaderConfig)}
    overrides: Dict[str, Any] = {}

    if path.exists():
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"Failed to load config {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a JSON object")
        for key, value in data.items():
            if key not in types:
                logger.warning(f"Ignoring unknown config key '{key}' in {path}")
                continue
            overrides[key] = _coerce(key, value, types[key])
        logger.debug(f"Loaded config from {path}: {sorted(overrides)}")

    for name, target in types.items():
        env_name = ENV_PREFIX + name.upper()
        if env_name in environ:
            overrides[name] = _coerce(env_name, environ[env_name], target)

    return _validate(replace(ReaderConfig(), **overrides))
