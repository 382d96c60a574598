# flowsmith/config.py
"""
Build configuration.

Defaults live on BuildConfig; a YAML/JSON file and FLOWSMITH_* environment
variables can override them (env wins over file).

Example flowsmith.yaml:

    max_input_chars: 50000
    row_tolerance: 150
    layout:
      start_x: 250
      start_y: 300
    post_processor: relocate_code_fields
"""

from __future__ import annotations
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional, Union
import os

import yaml

from flowsmith.errors import ConfigError
from flowsmith.utils.io import load_any
from flowsmith.utils.logger import get_logger

logger = get_logger("config")

ENV_PREFIX = "FLOWSMITH_"


@dataclass(frozen=True)
class BuildConfig:
    # input bound applied before any regex parsing
    max_input_chars: int = 100_000

    # layout
    start_x: int = 250
    start_y: int = 300
    spacing_x: int = 200
    sibling_spacing: int = 200
    branch_gap: int = 400

    # row-proximity heuristic used by validation and repair
    row_tolerance: int = 150
    row_min_dx: int = 50

    # node-type resolution
    min_confidence: float = 0.5
    default_node_type: str = "n8n-nodes-base.function"

    # name of a registered provider post-processor ("identity" = no-op)
    post_processor: str = "identity"

    def with_overrides(self, **kwargs: Any) -> "BuildConfig":
        return replace(self, **kwargs)


DEFAULT_CONFIG = BuildConfig()


def _coerce(name: str, raw: Any, target_type: Any) -> Any:
    # dataclass annotations are strings under `from __future__ import annotations`
    t = target_type if isinstance(target_type, str) else getattr(target_type, "__name__", "")
    try:
        if t == "int":
            return int(raw)
        if t == "float":
            return float(raw)
        return str(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for '{name}': {raw!r} ({e})") from e


def _flatten(data: Dict[str, Any]) -> Dict[str, Any]:
    """Allow a nested `layout:` section next to flat keys."""
    flat: Dict[str, Any] = {}
    for k, v in data.items():
        if k == "layout" and isinstance(v, dict):
            flat.update(v)
        else:
            flat[k] = v
    return flat


def config_from_mapping(data: Dict[str, Any], base: BuildConfig = DEFAULT_CONFIG) -> BuildConfig:
    known = {f.name: f.type for f in fields(BuildConfig)}
    updates: Dict[str, Any] = {}
    for key, raw in _flatten(data).items():
        if key not in known:
            raise ConfigError(f"Unknown config key '{key}'")
        updates[key] = _coerce(key, raw, known[key])
    return replace(base, **updates)


def _env_overrides() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for f in fields(BuildConfig):
        val = os.environ.get(ENV_PREFIX + f.name.upper())
        if val is not None:
            out[f.name] = val
    return out


def load_config(path: Optional[Union[str, Path]] = None) -> BuildConfig:
    """
    Build a BuildConfig from defaults, an optional YAML/JSON file, and the
    environment. Raises ConfigError on unreadable files or bad values.
    """
    cfg = DEFAULT_CONFIG
    if path is not None:
        try:
            data = load_any(path)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        cfg = config_from_mapping(data, cfg)
        logger.debug("Loaded config from %s", path)

    env = _env_overrides()
    if env:
        cfg = config_from_mapping(env, cfg)
        logger.debug("Applied env overrides: %s", sorted(env))
    return cfg
