from __future__ import annotations

"""IDE resource, generation and download endpoints."""

import json
import logging
from typing import Any, Dict, List

from flask import Blueprint, Response, current_app, jsonify, request, send_file

from twin_ide.core.exceptions import ResourceNotFoundError
from twin_ide.core.services.document_service import GenerationRequest, GenerationResult
from twin_ide.version import get_app_version

logger = logging.getLogger(__name__)

ide_bp = Blueprint("ide", __name__)

MIMETYPES = {"svg": "image/svg+xml", "script": "application/javascript"}


def services() -> Dict[str, Any]:
    return current_app.extensions["twin_ide"]


def request_payload() -> Dict[str, Any]:
    """JSON body, or form fields with JSON-encoded values (multipart clients)."""
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    data: Dict[str, Any] = {}
    for key, value in request.form.items():
        try:
            data[key] = json.loads(value)
        except ValueError:
            data[key] = value
    return data


def generation_response(result: GenerationResult):
    if not result.success:
        status = 400 if (result.details or {}).get("error") == "GenerationError" else 500
        return jsonify({"success": False, "error": result.message}), status
    details = result.details or {}
    return jsonify({
        "success": True,
        "file": result.content,
        "downloadUrl": details.get("downloadUrl"),
        "missing": details.get("missing", {}),
    })


@ide_bp.get("/")
def index():
    resources = services()["resources"]
    server = services()["config"]
    listing = resources.list_all()
    return jsonify({
        "app": server.get("app_name"),
        "version": get_app_version(),
        "environment": server.get("environment"),
        "svgFiles": listing["svg"],
        "scriptFiles": listing["script"],
    })


@ide_bp.get("/resources")
def list_resources():
    return jsonify(services()["resources"].list_all())


def _store_uploads(files: List[Any], resource_type: str | None = None):
    resources = services()["resources"]
    stored = []
    detected = resource_type
    for upload in files:
        name, detected = resources.store_upload(upload.filename, upload.read(),
                                                upload.mimetype, resource_type)
        stored.append(name)
    return stored, detected


@ide_bp.post("/upload")
def upload():
    upload_file = request.files.get("file")
    if upload_file is None or not upload_file.filename:
        return jsonify({"success": False, "error": "No file uploaded"}), 400
    stored, resource_type = _store_uploads([upload_file])
    return jsonify({"success": True, "file": stored[0], "files": stored, "type": resource_type})


@ide_bp.post("/upload/<resource_type>")
def upload_typed(resource_type: str):
    services()["resources"].folder_for(resource_type)
    files = [f for f in request.files.getlist("files") if f.filename]
    if not files:
        return jsonify({"success": False, "error": "No files uploaded"}), 400
    stored, _ = _store_uploads(files, resource_type)
    return jsonify({"success": True, "files": stored, "type": resource_type})


@ide_bp.get("/resource/<resource_type>/<filename>")
def get_resource(resource_type: str, filename: str):
    content = services()["resources"].read(resource_type, filename)
    return Response(content, mimetype=MIMETYPES.get(resource_type, "text/plain"))


@ide_bp.post("/save/<resource_type>/<filename>")
def save_resource(resource_type: str, filename: str):
    payload = request.get_json(silent=True)
    if isinstance(payload, dict) and "content" in payload:
        content = payload["content"]
    else:
        content = request.get_data(as_text=True)
    if not isinstance(content, str):
        return jsonify({"success": False, "error": "Content must be text"}), 400
    path = services()["resources"].save(resource_type, filename, content)
    return jsonify({"success": True, "file": path.name})


@ide_bp.get("/examples")
def list_examples():
    return jsonify({"examples": services()["resources"].list_examples()})


@ide_bp.get("/examples/<filename>")
def get_example(filename: str):
    content = services()["resources"].read_example(filename)
    return Response(content, mimetype=MIMETYPES["script"])


@ide_bp.post("/generate")
def generate():
    generation = GenerationRequest.from_payload(request_payload())
    if not generation.svg_files:
        return jsonify({"success": False, "error": "No SVG files selected"}), 400
    return generation_response(services()["generator"].generate(generation))


@ide_bp.get("/download/<filename>")
def download(filename: str):
    path = services()["resources"].output_path(filename)
    if not path.is_file():
        raise ResourceNotFoundError(filename, "output")
    return send_file(path, as_attachment=True, download_name=filename, mimetype="text/html")
