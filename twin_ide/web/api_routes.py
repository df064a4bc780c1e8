from __future__ import annotations

"""Mock sensor API endpoints backed by :class:`SensorSimulation`."""

import logging

from flask import Blueprint, current_app, jsonify, request

from twin_ide.core.services.sensor_simulation import SensorSimulation

logger = logging.getLogger(__name__)

api_bp = Blueprint("sensor_api", __name__, url_prefix="/api")


def _simulation() -> SensorSimulation:
    return current_app.extensions["twin_ide_api"]["simulation"]


@api_bp.get("/data")
def all_data():
    return jsonify(_simulation().snapshot())


@api_bp.get("/data/<component>")
def component_data(component: str):
    return jsonify(_simulation().component(component))


@api_bp.post("/control/<component>")
def control(component: str):
    updates = request.get_json(silent=True)
    if not isinstance(updates, dict):
        return jsonify({"error": "Control body must be a JSON object"}), 400
    return jsonify(_simulation().apply_control(component, updates))
