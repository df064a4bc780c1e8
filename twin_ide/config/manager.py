from __future__ import annotations

"""Configuration loading and access helpers.

This module centralises all declarative settings (server ports, resource
folders, simulation feed parameters, logging).  It loads YAML files packaged
with *twin_ide* and merges them with user overrides and, last, with the
environment variables the IDE has always honoured (``PORT``, ``HOST``,
``API_PORT``, ``DEBUG_MODE`` ...).

User overrides are read from ``$TWIN_IDE_CONFIG_DIR`` when set, otherwise
from ``~/.twin_ide/*.yml``.
"""

import copy
import importlib.resources as pkg_resources
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

__all__ = ["ConfigManager"]

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _get_user_config_dir() -> Path:
    """Get the user configuration directory."""
    override = os.environ.get("TWIN_IDE_CONFIG_DIR")
    if override:
        return Path(override)
    return Path.home() / ".twin_ide"


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Merge *overrides* into *base* recursively and return *base*."""
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


class _Singleton(type):
    _instance: "ConfigManager" | None = None

    def __call__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super().__call__(*args, **kwargs)
        return cls._instance


class ConfigManager(metaclass=_Singleton):
    """Lazy-loads and exposes configuration sections as dictionaries."""

    _DEFAULT_FILENAMES = {
        "server": "server.yml",
        "simulation": "simulation.yml",
        "logging": "logging.yml",
    }

    # (environment variable, section, key, converter)
    _ENV_OVERRIDES = (
        ("PORT", "server", "port", int),
        ("HOST", "server", "host", str),
        ("API_PORT", "server", "api_port", int),
        ("APP_NAME", "server", "app_name", str),
        ("NODE_ENV", "server", "environment", str),
        ("TWIN_IDE_ENV", "server", "environment", str),
        ("DEBUG_MODE", "server", "debug", lambda v: v.strip().lower() in _TRUE_VALUES),
        ("RESOURCES_DIR", "server", "resources_dir", str),
        ("OUTPUT_DIR", "server", "output_dir", str),
        ("SIMULATION_API_URL", "simulation", "api_url", str),
        ("SIMULATION_SOURCE", "simulation", "source", str),
    )

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}
        self._ensure_loaded()

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------
    def get_server_config(self) -> Dict[str, Any]:
        return self._data.get("server", {})

    def get_simulation_config(self) -> Dict[str, Any]:
        return self._data.get("simulation", {})

    def get_logging_config(self) -> Dict[str, Any]:
        # dictConfig mutates handler entries, hand out a copy
        return copy.deepcopy(self._data.get("logging", {}))

    def get(self, section: str, key: str, default: Any = None) -> Any:
        return self._data.get(section, {}).get(key, default)

    @classmethod
    def reset(cls) -> None:
        """Forget the cached instance so the next call reloads from disk."""
        cls._instance = None

    # ------------------------------------------------------------------
    # Internal loading logic
    # ------------------------------------------------------------------
    def _ensure_loaded(self) -> None:
        if self._data:
            return  # already loaded

        startup_summary = []
        user_config_dir = _get_user_config_dir()
        defaults = self._builtin_defaults()

        for key, filename in self._DEFAULT_FILENAMES.items():
            merged_cfg: Dict[str, Any] = copy.deepcopy(defaults.get(key, {}))
            status = "builtin"

            # 1. load packaged default
            try:
                text = pkg_resources.files(__package__).joinpath(filename).read_text(encoding="utf-8")
                packaged_data = yaml.safe_load(text) or {}
                _deep_merge(merged_cfg, packaged_data)
                status = "loaded"
            except (FileNotFoundError, OSError):
                logger.error("Missing packaged config for %s (%s)", key, filename)
            except yaml.YAMLError as exc:
                logger.error("Invalid packaged config for %s (%s): %s", key, filename, exc)
                status = "invalid"

            # 2. load user overrides
            user_path = user_config_dir / filename
            if user_path.exists():
                try:
                    user_data = yaml.safe_load(user_path.read_text(encoding="utf-8")) or {}
                    _deep_merge(merged_cfg, user_data)
                    status = f"{status}+overrides"
                except (OSError, yaml.YAMLError) as exc:
                    logger.error("Could not parse user config %s: %s", user_path, exc)

            self._data[key] = merged_cfg
            startup_summary.append(f"{key}: {status}")

        self._apply_env_overrides()
        logger.info("Config startup: %s", " | ".join(startup_summary))

    def _apply_env_overrides(self) -> None:
        for env_name, section, key, convert in self._ENV_OVERRIDES:
            raw: Optional[str] = os.environ.get(env_name)
            if raw is None or raw == "":
                continue
            try:
                self._data.setdefault(section, {})[key] = convert(raw)
            except ValueError:
                logger.warning("Ignoring invalid value for %s: %r", env_name, raw)

    @staticmethod
    def _builtin_defaults() -> Dict[str, Dict[str, Any]]:
        """Return the values the IDE runs with when no file is available."""
        return {
            "server": {
                "app_name": "Digital Twin Interactions IDE",
                "host": "localhost",
                "port": 6000,
                "api_port": 5011,
                "environment": "development",
                "debug": False,
                "resources_dir": "resources",
                "output_dir": "generated",
                "max_upload_bytes": 5 * 1024 * 1024,
            },
            "simulation": {
                "api_url": "http://localhost:5011",
                "timeout": 5,
                "poll_interval_ms": 3000,
                "max_cascade": 10,
                "source": "http",
            },
            "logging": {},
        }
