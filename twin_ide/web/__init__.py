from __future__ import annotations

"""Flask application factories.

``create_app`` builds the IDE server (resources, generation, editing
session); ``create_api_app`` builds the mock sensor API.  Both take their
settings from :class:`~twin_ide.config.ConfigManager`, optionally overridden
by the caller (tests pass temporary directories this way).
"""

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from flask import Flask

from twin_ide.config import ConfigManager
from twin_ide.core.protocol.feed import SnapshotSource
from twin_ide.core.services import DocumentGenerator, EditorSession, ResourceStore, SensorSimulation
from twin_ide.web.api_routes import api_bp
from twin_ide.web.errors import register_error_handlers
from twin_ide.web.ide_routes import ide_bp
from twin_ide.web.session_routes import session_bp

logger = logging.getLogger(__name__)

__all__ = ["create_app", "create_api_app"]


def _merged(section: Dict[str, Any], overrides: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    merged = dict(section)
    merged.update(overrides or {})
    return merged


def create_app(server_overrides: Optional[Mapping[str, Any]] = None,
               simulation_overrides: Optional[Mapping[str, Any]] = None,
               snapshot_source: Optional[SnapshotSource] = None) -> Flask:
    """Create the IDE server application with one editing session."""
    config = ConfigManager()
    server = _merged(config.get_server_config(), server_overrides)
    simulation = _merged(config.get_simulation_config(), simulation_overrides)

    resources = ResourceStore(Path(server["resources_dir"]), Path(server["output_dir"]))
    generator = DocumentGenerator(resources, simulation, app_name=server.get("app_name"))
    session = EditorSession(resources, generator, simulation_config=simulation, source=snapshot_source)

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = server.get("max_upload_bytes")
    app.config["DEBUG"] = bool(server.get("debug"))
    app.extensions["twin_ide"] = {
        "config": server,
        "simulation_config": simulation,
        "resources": resources,
        "generator": generator,
        "session": session,
    }
    app.register_blueprint(ide_bp)
    app.register_blueprint(session_bp)
    register_error_handlers(app)

    logger.info("%s ready (resources=%s, output=%s, environment=%s)",
                server.get("app_name"), resources.base_dir, resources.output_dir,
                server.get("environment"))
    return app


def create_api_app(simulation: Optional[SensorSimulation] = None) -> Flask:
    """Create the mock sensor API application."""
    app = Flask(__name__)
    app.extensions["twin_ide_api"] = {"simulation": simulation or SensorSimulation()}
    app.register_blueprint(api_bp)
    register_error_handlers(app)

    @app.after_request
    def _allow_cross_origin(response):
        # generated documents poll this API from file:// or another port
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    return app
