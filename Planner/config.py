"""Load, validate and save planner configuration from DefaultPlannerConfig.yaml."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError
from .planner_logging import LogLevel
from .resources import get_resource_path
from .tree import DEFAULT_MAX_DEPTH

DEFAULT_CONFIG_PATH = get_resource_path("DefaultPlannerConfig.yaml")
DEFAULT_CATALOG_PATH = get_resource_path("data/sample_catalog.yaml")

CACHE_BACKENDS = ("memory", "sqlite")
VIEWS = ("step", "profession", "tier", "combined")


@dataclass
class PlannerConfig:
    max_depth: int = DEFAULT_MAX_DEPTH  # recursion ceiling for tree expansion
    log_level: str = "SUMMARY"
    log_file: Optional[Path] = None
    catalog_path: Path = DEFAULT_CATALOG_PATH
    data_dir: Optional[Path] = None  # None = per-user data directory
    cache_backend: str = "memory"  # "memory" or "sqlite"
    cache_path: Optional[Path] = None  # sqlite file; defaults to <data_dir>/tree_cache.db
    default_view: str = "step"

    def resolved_cache_path(self, data_dir: Path) -> Path:
        return self.cache_path or (data_dir / "tree_cache.db")


def _resolve_path(raw: Any, base: Path, key: str) -> Optional[Path]:
    if raw is None:
        return None
    if not isinstance(raw, str) or not raw.strip():
        raise ConfigError(f"Expected a non-empty path for '{key}', got {raw!r}")
    path = Path(raw).expanduser()
    return path if path.is_absolute() else (base / path).resolve()


def _coerce_int(raw: Any, key: str) -> int:
    if isinstance(raw, bool):
        raise ConfigError(f"Invalid integer for '{key}': {raw!r}")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid integer for '{key}': {raw!r}") from exc


def validate_config(config: PlannerConfig) -> PlannerConfig:
    """Bounds and enum checks; raises ConfigError."""
    if config.max_depth < 1:
        raise ConfigError(f"maxDepth must be >= 1, got {config.max_depth}")
    if config.log_level.upper() not in LogLevel.__members__:
        raise ConfigError(
            f"Unknown logLevel {config.log_level!r}, expected one of {list(LogLevel.__members__)}"
        )
    if config.cache_backend not in CACHE_BACKENDS:
        raise ConfigError(f"Unknown cacheBackend {config.cache_backend!r}")
    if config.default_view not in VIEWS:
        raise ConfigError(f"Unknown defaultView {config.default_view!r}")
    return config


def load_config(path: Optional[Path] = None) -> PlannerConfig:
    """Load and validate configuration YAML into a PlannerConfig dataclass."""
    cfg_path = path or DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        return PlannerConfig()

    try:
        with cfg_path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {cfg_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Top-level configuration in {cfg_path} must be a mapping")

    base = cfg_path.resolve().parent
    engine = raw.get("engine", {}) or {}
    logging_raw = raw.get("logging", {}) or {}
    storage = raw.get("storage", {}) or {}
    display = raw.get("display", {}) or {}

    config = PlannerConfig(
        max_depth=_coerce_int(engine.get("maxDepth", DEFAULT_MAX_DEPTH), "maxDepth"),
        log_level=str(logging_raw.get("level", "SUMMARY")).upper(),
        log_file=_resolve_path(logging_raw.get("file"), base, "logging.file"),
        catalog_path=_resolve_path(engine.get("catalogPath"), base, "catalogPath")
        or DEFAULT_CATALOG_PATH,
        data_dir=_resolve_path(storage.get("dataDir"), base, "dataDir"),
        cache_backend=str(storage.get("cacheBackend", "memory")).lower(),
        cache_path=_resolve_path(storage.get("cachePath"), base, "cachePath"),
        default_view=str(display.get("defaultView", "step")),
    )
    return validate_config(config)


def save_config(config: PlannerConfig, path: Optional[Path] = None) -> None:
    """
    Save PlannerConfig back to a YAML file.

    Parameters
    ----------
    config : PlannerConfig
        The configuration to save
    path : Path, optional
        Path to save to. Defaults to DefaultPlannerConfig.yaml
    """
    cfg_path = path or DEFAULT_CONFIG_PATH

    data: Dict[str, Any] = {
        "engine": {
            "maxDepth": config.max_depth,
            "catalogPath": str(config.catalog_path),
        },
        "logging": {"level": config.log_level},
        "storage": {"cacheBackend": config.cache_backend},
        "display": {"defaultView": config.default_view},
    }
    if config.log_file is not None:
        data["logging"]["file"] = str(config.log_file)
    if config.data_dir is not None:
        data["storage"]["dataDir"] = str(config.data_dir)
    if config.cache_path is not None:
        data["storage"]["cachePath"] = str(config.cache_path)

    with cfg_path.open("w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, allow_unicode=True, sort_keys=False)
