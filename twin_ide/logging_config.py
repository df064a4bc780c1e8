from __future__ import annotations

"""Logging set-up for the IDE server and the mock sensor API.

``run.py`` and ``run_api.py`` call :func:`setup_logging` before building
their Flask application. The ``logging`` section of the configuration is a
plain ``dictConfig`` mapping; its ``file`` handler is redirected into
``$TWIN_IDE_LOG_DIR`` (``logs/`` by default).
"""

import copy
import logging
import logging.config
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from twin_ide.config import ConfigManager

__all__ = ["setup_logging", "debug_targets", "LOG_FORMAT"]

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_NAME = "twin_ide.log"

# Loggers raised to DEBUG by DEBUG_MODE=true
DEBUG_MODE_LOGGERS = ("twin_ide.core.protocol", "twin_ide.web")

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _log_file() -> Path:
    log_dir = Path(os.environ.get("TWIN_IDE_LOG_DIR", "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / LOG_FILE_NAME


def _with_log_file(config: Mapping[str, Any]) -> Dict[str, Any]:
    prepared = copy.deepcopy(dict(config))
    file_handler = prepared.get("handlers", {}).get("file")
    if isinstance(file_handler, dict):
        file_handler["filename"] = str(_log_file())
    return prepared


def _console_only() -> Dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"simple": {"format": LOG_FORMAT}},
        "handlers": {
            "console": {"class": "logging.StreamHandler", "formatter": "simple", "level": "INFO"},
        },
        "root": {"level": "INFO", "handlers": ["console"]},
    }


def setup_logging(config: Optional[Mapping[str, Any]] = None) -> None:
    """Configure the root logger and the per-module debug overrides.

    Parameters
    ----------
    config
        A ``dictConfig`` mapping. Defaults to the ``logging`` section held
        by :class:`~twin_ide.config.ConfigManager`.
    """
    if config is None:
        config = ConfigManager().get_logging_config()

    if isinstance(config, Mapping) and config.get("version"):
        try:
            logging.config.dictConfig(_with_log_file(config))
            logging.getLogger(__name__).info("Logging configured from %s handler(s)",
                                             len(config.get("handlers", {})))
        except (ValueError, TypeError, AttributeError, ImportError, OSError) as exc:
            logging.config.dictConfig(_console_only())
            logging.getLogger(__name__).error("Invalid logging configuration, console only: %s", exc)
    else:
        logging.config.dictConfig(_console_only())
        logging.getLogger(__name__).warning("No logging configuration found, console only")

    for name in debug_targets():
        _enable_debug(name)


def debug_targets(environ: Optional[Mapping[str, str]] = None) -> List[str]:
    """Logger names to raise to DEBUG.

    ``DEBUG_MODE=true`` selects the protocol core and the web layer;
    ``TWIN_IDE_DEBUG_MODULES=a,b`` adds arbitrary logger names.
    """
    env = os.environ if environ is None else environ
    targets: List[str] = []
    if env.get("DEBUG_MODE", "").strip().lower() in _TRUE_VALUES:
        targets.extend(DEBUG_MODE_LOGGERS)
    for name in env.get("TWIN_IDE_DEBUG_MODULES", "").split(","):
        name = name.strip()
        if name and name not in targets:
            targets.append(name)
    return targets


def _enable_debug(name: str) -> None:
    target = logging.getLogger(name)
    target.setLevel(logging.DEBUG)
    # Root handlers are usually INFO, so DEBUG records need their own output
    if not any(h.level <= logging.DEBUG for h in target.handlers):
        handler = logging.StreamHandler()
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        target.addHandler(handler)
    target.debug("Debug output enabled for %s", name)
