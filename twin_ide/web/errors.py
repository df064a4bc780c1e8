from __future__ import annotations

"""Translate IDE exceptions into JSON error responses."""

import logging
from typing import Tuple, Type

from flask import Flask, jsonify

from twin_ide.core.exceptions import (
    BindingError,
    ElementNotFoundError,
    GenerationError,
    InvalidFilenameError,
    InvalidResourceTypeError,
    InvalidSvgError,
    MetadataError,
    ResourceNotFoundError,
    SnapshotFetchError,
    TwinIdeError,
    UnknownComponentError,
)

logger = logging.getLogger(__name__)

__all__ = ["register_error_handlers", "status_for"]

# most specific first
_STATUS: Tuple[Tuple[Type[TwinIdeError], int], ...] = (
    (InvalidResourceTypeError, 400),
    (InvalidFilenameError, 400),
    (InvalidSvgError, 400),
    (ResourceNotFoundError, 404),
    (ElementNotFoundError, 404),
    (UnknownComponentError, 404),
    (MetadataError, 400),
    (BindingError, 400),
    (GenerationError, 400),
    (SnapshotFetchError, 502),
)


def status_for(exc: TwinIdeError) -> int:
    for exc_type, status in _STATUS:
        if isinstance(exc, exc_type):
            return status
    return 500


def _message(exc: TwinIdeError) -> str:
    return exc.args[0] if exc.args else type(exc).__name__


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(TwinIdeError)
    def _handle_twin_error(exc: TwinIdeError):
        status = status_for(exc)
        if status >= 500:
            logger.error("Request failed: %s", exc, exc_info=exc.cause or exc)
        else:
            logger.info("Request rejected (%d): %s", status, exc)
        body = {"success": False, "error": _message(exc)}
        if exc.resource:
            body["resource"] = exc.resource
        return jsonify(body), status
