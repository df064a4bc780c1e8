from __future__ import annotations

"""Editing session endpoints.

Thin JSON surface over :class:`~twin_ide.core.services.editor_session.EditorSession`:
canvas contents, selection, metadata edits, bindings, synthetic events and
the simulation toggle.
"""

import logging
from typing import Any, Dict

from flask import Blueprint, jsonify, request

from twin_ide.core.exceptions import MetadataFormatError
from twin_ide.core.services.editor_session import EditorSession
from twin_ide.web.ide_routes import generation_response, services

logger = logging.getLogger(__name__)

session_bp = Blueprint("session", __name__, url_prefix="/session")

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _session() -> EditorSession:
    return services()["session"]


def _body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


@session_bp.get("")
def get_session():
    markup = (request.args.get("markup") or "").lower() in _TRUE_VALUES
    return jsonify(_session().to_dict(include_markup=markup))


@session_bp.post("/canvas")
def add_canvas_file():
    filename = _body().get("filename")
    if not filename:
        return jsonify({"success": False, "error": "Missing filename"}), 400
    root = _session().add_svg(filename)
    return jsonify({"success": True, "file": filename, "rootId": root.get("id"),
                    "svgFiles": _session().svg_files})


@session_bp.delete("/canvas/<filename>")
def remove_canvas_file(filename: str):
    _session().remove_svg(filename)
    return jsonify({"success": True, "svgFiles": _session().svg_files})


@session_bp.post("/scripts")
def add_script():
    filename = _body().get("filename")
    if not filename:
        return jsonify({"success": False, "error": "Missing filename"}), 400
    return jsonify({"success": True, "scriptFiles": _session().add_script(filename)})


@session_bp.post("/select/<element_id>")
def select_element(element_id: str):
    return jsonify({"success": True, "element": _session().select_element(element_id)})


@session_bp.put("/metadata")
def apply_metadata():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise MetadataFormatError("Metadata must be a JSON object")
    session = _session()
    if set(payload) == {"json"} and isinstance(payload["json"], str):
        record = session.apply_metadata_json(payload["json"])
    else:
        record = session.apply_metadata(payload)
    return jsonify({"success": True, "elementId": session.selected_element_id, "metadata": record})


@session_bp.post("/metadata/field")
def add_metadata_field():
    body = _body()
    session = _session()
    record = session.add_metadata_field(body.get("key", ""), body.get("value", ""))
    return jsonify({"success": True, "elementId": session.selected_element_id, "metadata": record})


@session_bp.post("/binding")
def apply_binding():
    body = _body()
    binding = _session().apply_binding(body.get("script"), body.get("event"))
    return jsonify({"success": True, "binding": binding})


@session_bp.post("/dispatch/<element_id>")
def dispatch_event(element_id: str):
    body = _body()
    detail = body.get("detail") if isinstance(body.get("detail"), dict) else None
    invoked = _session().dispatch(element_id, body.get("event") or "click", detail)
    return jsonify({"success": True, "invoked": invoked})


@session_bp.post("/simulation/<action>")
def simulation(action: str):
    session = _session()
    handlers = {
        "start": session.start_simulation,
        "stop": session.stop_simulation,
        "toggle": session.toggle_simulation,
    }
    handler = handlers.get(action)
    if handler is None:
        return jsonify({"success": False, "error": f"Unknown simulation action: {action}"}), 404
    status = handler()
    return jsonify({"success": status["lastError"] is None, **status})


@session_bp.post("/generate")
def generate():
    return generation_response(_session().generate(_body().get("title")))
