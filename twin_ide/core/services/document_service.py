from __future__ import annotations

"""Standalone interactive document generation.

Turns a selection of SVG and script resources, plus the bindings and
metadata edited in the IDE, into one self-contained HTML file.  The
bindings (``data-script``/``data-event``) and metadata records are written
into each SVG before it is embedded, so the browser runtime finds exactly
what the editor canvas showed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

from lxml import etree as ET

from twin_ide.core.exceptions import GenerationError, ResourceError, TwinIdeError
from twin_ide.core.generators import render_interactive_document
from twin_ide.core.protocol.bindings import BindingRegistry, HandlerRegistry
from twin_ide.core.protocol.metadata_store import MetadataStore
from twin_ide.core.services.resource_service import ResourceStore
from twin_ide.core.utils import find_by_id, parse_svg, serialize_svg, slugify

logger = logging.getLogger(__name__)

__all__ = ["GenerationRequest", "GenerationResult", "DocumentGenerator", "output_filename"]

DEFAULT_TITLE = "Interactive SVG"


def output_filename(now: Optional[datetime] = None) -> str:
    """``interactive-2024-05-01T10-20-30-123Z.html`` style names."""
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"
    return f"interactive-{stamp}.html"


@dataclass
class GenerationRequest:
    """What to put in a generated document.

    ``bindings`` maps element ids to ``{"script": ..., "event": ...}``;
    ``metadata`` maps element ids to the full record for that element.
    """

    svg_files: List[str] = field(default_factory=list)
    script_files: List[str] = field(default_factory=list)
    title: str = DEFAULT_TITLE
    bindings: Dict[str, Dict[str, str]] = field(default_factory=dict)
    metadata: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GenerationRequest":
        """Build a request from the JSON body of ``POST /generate``."""
        bindings = payload.get("bindings") or payload.get("scriptBindings") or {}
        metadata = payload.get("metadata") or {}
        return cls(
            svg_files=list(payload.get("svgFiles") or []),
            script_files=list(payload.get("scriptFiles") or []),
            title=payload.get("title") or DEFAULT_TITLE,
            bindings=dict(bindings) if isinstance(bindings, Mapping) else {},
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )


@dataclass
class GenerationResult:
    """Structured result of a generation run.

    Attributes
    ----------
    success : bool
        Whether the document was written.
    content : Optional[str]
        File name of the generated document.
    message : str
        Human-readable outcome message.
    details : Optional[Dict[str, Any]]
        ``path``, ``downloadUrl`` and the resources skipped as missing.
    """
    success: bool
    content: Optional[str]
    message: str
    details: Optional[Dict[str, Any]] = None


class DocumentGenerator:
    """Assemble standalone HTML documents from stored resources.

    Parameters
    ----------
    resources : ResourceStore
        Source of SVG/script text and destination of the output file.
    simulation_config : dict, optional
        ``simulation`` config section; supplies poll interval, mock ranges
        and field map to the embedded runtime.
    app_name : str, optional
        Name written into the generator meta tag.
    """

    def __init__(self, resources: ResourceStore, simulation_config: Optional[Dict[str, Any]] = None,
                 app_name: str = "Digital Twin Interactions IDE") -> None:
        self.resources = resources
        self.simulation_config = dict(simulation_config or {})
        self.app_name = app_name

    # -------------------------------------------------------------------------
    # SVG preparation
    # -------------------------------------------------------------------------

    def prepare_svg(self, filename: str, content: str,
                    bindings: Mapping[str, Mapping[str, str]],
                    metadata: Mapping[str, Mapping[str, Any]]) -> ET._Element:
        """Parse one SVG and apply the editor's bindings and metadata to it."""
        root = parse_svg(content)
        if not root.get("id"):
            root.set("id", slugify(Path(filename).stem) or "svg")

        store = MetadataStore()
        registry = BindingRegistry(HandlerRegistry())

        for element_id, binding in bindings.items():
            element = find_by_id([root], element_id)
            if element is None or not isinstance(binding, Mapping):
                continue
            script = (binding.get("script") or "").strip()
            if not script:
                logger.debug("Skipping binding without script for %s", element_id)
                continue
            registry.bind(element, binding.get("event"), script)

        for element_id, record in metadata.items():
            element = find_by_id([root], element_id)
            if element is None or not isinstance(record, Mapping):
                continue
            store.write(element, record, replace=True, scope=MetadataStore.SCOPE_ELEMENT)
        return root

    def _runtime_config(self) -> Dict[str, Any]:
        cfg = self.simulation_config
        return {
            "pollIntervalMs": int(cfg.get("poll_interval_ms", 3000)),
            "maxCascade": int(cfg.get("max_cascade", 10)),
            "mockRanges": cfg.get("mock_ranges", {}),
            "fieldMap": cfg.get("field_map", {}),
            # generated documents run offline with the mock generator unless configured
            "apiUrl": cfg.get("document_api_url") or None,
            "autoStart": bool(cfg.get("document_autostart", False)),
        }

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def build(self, request: GenerationRequest) -> Tuple[str, Dict[str, List[str]]]:
        """Return ``(html, missing)`` for *request* without writing anything.

        Raises
        ------
        GenerationError
            If no SVG file is selected or an SVG cannot be parsed.
        """
        if not request.svg_files:
            raise GenerationError("No SVG files selected")

        missing: Dict[str, List[str]] = {"svg": [], "script": []}
        svgs: List[Tuple[str, str]] = []
        for filename in request.svg_files:
            try:
                content = self.resources.read("svg", filename)
            except ResourceError as exc:
                logger.warning("Skipping SVG %s: %s", filename, exc)
                missing["svg"].append(filename)
                continue
            try:
                root = self.prepare_svg(filename, content, request.bindings, request.metadata)
            except (ET.XMLSyntaxError, ValueError) as exc:
                raise GenerationError(f"Invalid SVG: {exc}", resource=filename, cause=exc)
            svgs.append((Path(filename).stem, serialize_svg(root)))

        scripts: List[Tuple[str, str]] = []
        for filename in request.script_files:
            try:
                scripts.append((filename, self.resources.read("script", filename)))
            except ResourceError as exc:
                logger.warning("Skipping script %s: %s", filename, exc)
                missing["script"].append(filename)

        html = render_interactive_document(request.title, svgs, scripts,
                                           self._runtime_config(), app_name=self.app_name)
        return html, missing

    def generate(self, request: GenerationRequest) -> GenerationResult:
        """Build the document and write it to the output directory.

        Returns a failed :class:`GenerationResult` on any :class:`TwinIdeError`.
        """
        try:
            html, missing = self.build(request)
            filename = output_filename()
            path = self.resources.write_output(filename, html)
        except TwinIdeError as exc:
            logger.error("Document generation failed: %s", exc)
            return GenerationResult(False, None, str(exc), {"error": type(exc).__name__})
        except OSError as exc:
            logger.error("Could not write generated document: %s", exc)
            return GenerationResult(False, None, f"Could not write document: {exc}",
                                    {"error": "OSError"})

        logger.info("Generated %s (%d SVG, %d script)", filename,
                    len(request.svg_files) - len(missing["svg"]),
                    len(request.script_files) - len(missing["script"]))
        return GenerationResult(
            True,
            filename,
            "Document generated",
            {"path": str(path), "downloadUrl": f"/download/{filename}", "missing": missing},
        )
