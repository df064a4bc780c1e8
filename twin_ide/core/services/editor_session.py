from __future__ import annotations

"""Editing session: the canvas, selection and pending edits of one user.

An :class:`EditorSession` owns one instance of the protocol stack (metadata
store, handler and binding registries, update coordinator, simulation feed)
and the SVG trees loaded on its canvas.  It is created once per application
and handed to the HTTP layer; nothing in the core reaches for it globally.

Session operations that touch the trees run inside ``store.batch()``, which
holds the store lock, so they never interleave with a feed write.
"""

import json
import logging
from pathlib import Path
from threading import RLock
from typing import Any, Dict, List, Mapping, Optional

from lxml import etree as ET

from twin_ide.components import register_builtin_components
from twin_ide.core.exceptions import (
    BindingError,
    ElementNotFoundError,
    InvalidSvgError,
    MetadataError,
    MetadataFormatError,
    ResourceNotFoundError,
)
from twin_ide.core.models import DEFAULT_EVENT
from twin_ide.core.protocol.bindings import BindingRegistry, HandlerRegistry
from twin_ide.core.protocol.coordinator import UpdateCoordinator
from twin_ide.core.protocol.feed import (
    HttpSnapshotSource,
    MockSnapshotSource,
    SimulationFeedAdapter,
    SnapshotSource,
)
from twin_ide.core.protocol.metadata_store import MetadataStore
from twin_ide.core.services.document_service import DocumentGenerator, GenerationRequest, GenerationResult
from twin_ide.core.services.resource_service import ResourceStore
from twin_ide.core.utils import find_by_id, generate_component_id, local_name, parse_svg, serialize_svg, slugify

logger = logging.getLogger(__name__)

__all__ = ["EditorSession", "snapshot_source_from_config"]

FILENAME_ATTRIBUTE = "data-filename"


def snapshot_source_from_config(simulation_config: Mapping[str, Any]) -> SnapshotSource:
    """Pick the editor's snapshot source from the ``simulation`` config section."""
    if simulation_config.get("source", "http") == "mock":
        return MockSnapshotSource(simulation_config.get("mock_ranges"))
    return HttpSnapshotSource(
        simulation_config.get("api_url", "http://localhost:5011"),
        timeout=float(simulation_config.get("timeout", 5)),
        field_map=simulation_config.get("field_map"),
    )


class EditorSession:
    """Application editing state plus the live protocol stack behind it.

    Parameters
    ----------
    resources : ResourceStore
        Where SVG and script files are read from.
    generator : DocumentGenerator
        Used by :meth:`generate`.
    simulation_config : dict, optional
        ``simulation`` config section (poll interval, cascade cap, source).
    handlers : HandlerRegistry, optional
        Pre-populated registry; the built-in components are registered when
        omitted.
    source : SnapshotSource, optional
        Overrides the source chosen from *simulation_config*.
    """

    def __init__(self, resources: ResourceStore, generator: DocumentGenerator, *,
                 simulation_config: Optional[Mapping[str, Any]] = None,
                 handlers: Optional[HandlerRegistry] = None,
                 source: Optional[SnapshotSource] = None) -> None:
        cfg = dict(simulation_config or {})
        self.resources = resources
        self.generator = generator

        self.store = MetadataStore(max_cascade=int(cfg.get("max_cascade", 10)))
        if handlers is None:
            handlers = HandlerRegistry()
            register_builtin_components(handlers, self.store)
        self.handlers = handlers
        self.feed = SimulationFeedAdapter(
            source or snapshot_source_from_config(cfg),
            self.store,
            self.roots,
            interval_ms=int(cfg.get("poll_interval_ms", 3000)),
        )
        self.bindings = BindingRegistry(self.handlers, data_provider=self.feed.current_data)
        self.coordinator = UpdateCoordinator(self.store, self.handlers)

        self._lock = RLock()
        self._canvas: Dict[str, ET._Element] = {}
        self.selected_scripts: List[str] = []
        self.file_cache: Dict[str, str] = {}
        self.selected_element_id: Optional[str] = None
        self.metadata_fields: Dict[str, Dict[str, str]] = {}
        self.script_bindings: Dict[str, Dict[str, str]] = {}

    # ------------------------------------------------------------------
    # Canvas
    # ------------------------------------------------------------------
    def roots(self) -> List[ET._Element]:
        with self._lock:
            return list(self._canvas.values())

    @property
    def svg_files(self) -> List[str]:
        with self._lock:
            return list(self._canvas)

    def _read_cached(self, resource_type: str, filename: str) -> str:
        key = f"{resource_type}/{filename}"
        if key not in self.file_cache:
            self.file_cache[key] = self.resources.read(resource_type, filename)
        return self.file_cache[key]

    def _unique_root_id(self, filename: str) -> str:
        candidate = slugify(Path(filename).stem) or generate_component_id()
        if find_by_id(self.roots(), candidate) is not None:
            candidate = generate_component_id(candidate)
        return candidate

    def add_svg(self, filename: str) -> ET._Element:
        """Load an SVG resource onto the canvas (no-op if already there).

        The root is attached to the coordinator (running its init handler)
        and listeners are installed for elements already carrying
        ``data-script``.
        """
        with self._lock:
            existing = self._canvas.get(filename)
            if existing is not None:
                return existing
            content = self._read_cached("svg", filename)
            try:
                root = parse_svg(content)
            except (ET.XMLSyntaxError, ValueError) as exc:
                self.file_cache.pop(f"svg/{filename}", None)
                raise InvalidSvgError(f"Invalid SVG: {exc}", resource=filename, cause=exc)
            root.set(FILENAME_ATTRIBUTE, filename)
            if not root.get("id"):
                root.set("id", self._unique_root_id(filename))
            self._canvas[filename] = root

        with self.store.batch():
            self.coordinator.attach(root)
            self.bindings.install_listeners(root)
        logger.info("Canvas: added %s as #%s", filename, root.get("id"))
        return root

    def remove_svg(self, filename: str) -> None:
        with self._lock:
            root = self._canvas.pop(filename, None)
            if root is None:
                raise ResourceNotFoundError(filename, "svg")
            self.file_cache.pop(f"svg/{filename}", None)
            if self.selected_element_id and find_by_id([root], self.selected_element_id) is not None:
                self.selected_element_id = None

        with self.store.batch():
            self.bindings.uninstall_listeners(root)
            self.coordinator.detach(root)
        logger.info("Canvas: removed %s", filename)

    def add_script(self, filename: str) -> List[str]:
        """Select a script resource for binding and generation."""
        self._read_cached("script", filename)
        with self._lock:
            if filename not in self.selected_scripts:
                self.selected_scripts.append(filename)
            return list(self.selected_scripts)

    def remove_script(self, filename: str) -> List[str]:
        with self._lock:
            if filename in self.selected_scripts:
                self.selected_scripts.remove(filename)
            self.file_cache.pop(f"script/{filename}", None)
            return list(self.selected_scripts)

    def canvas_markup(self) -> Dict[str, str]:
        with self.store.batch():
            return {name: serialize_svg(root) for name, root in self._canvas.items()}

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    def element(self, element_id: str) -> ET._Element:
        found = find_by_id(self.roots(), element_id)
        if found is None:
            raise ElementNotFoundError(element_id)
        return found

    def select_element(self, element_id: str) -> Dict[str, Any]:
        element = self.element(element_id)
        self.selected_element_id = element_id
        return self.element_properties(element)

    def element_properties(self, element: ET._Element) -> Dict[str, Any]:
        """Describe an element the way the properties panel shows it."""
        binding = self.bindings.binding_for(element)
        with self.store.batch():
            record = self.store.read(element)
        return {
            "id": element.get("id"),
            "tag": local_name(element),
            "attributes": {k: v for k, v in element.attrib.items() if k.startswith("data-")},
            "metadata": record,
            "binding": binding.to_dict() if binding else None,
        }

    def _selected(self) -> ET._Element:
        if not self.selected_element_id:
            raise MetadataError("No element selected")
        return self.element(self.selected_element_id)

    # ------------------------------------------------------------------
    # Metadata editing
    # ------------------------------------------------------------------
    def apply_metadata(self, mapping: Mapping[str, Any]) -> Dict[str, str]:
        """Replace the selected element's record with *mapping*."""
        element = self._selected()
        record = self.store.write(element, mapping, replace=True, scope=MetadataStore.SCOPE_ELEMENT)
        self.metadata_fields[element.get("id")] = dict(record)
        return record

    def apply_metadata_json(self, text: str) -> Dict[str, str]:
        """Parse JSON text from the metadata editor and apply it as a full record."""
        try:
            data = json.loads(text)
        except (TypeError, ValueError) as exc:
            raise MetadataFormatError(f"Invalid JSON: {exc}", cause=exc)
        if not isinstance(data, dict):
            raise MetadataFormatError("Metadata JSON must be an object")
        return self.apply_metadata(data)

    def add_metadata_field(self, key: str, value: Any = "") -> Dict[str, str]:
        key = (key or "").strip()
        if not key:
            raise MetadataFormatError("Metadata key must not be empty")
        element = self._selected()
        record = self.store.write(element, {key: value}, scope=MetadataStore.SCOPE_ELEMENT)
        self.metadata_fields[element.get("id")] = dict(record)
        return record

    # ------------------------------------------------------------------
    # Bindings
    # ------------------------------------------------------------------
    def apply_binding(self, script: Optional[str], event: Optional[str] = DEFAULT_EVENT) -> Dict[str, Any]:
        if not self.selected_element_id:
            raise BindingError("No element selected")
        if not script or not event:
            raise BindingError("Script and event must be selected", resource=self.selected_element_id)
        element = self.element(self.selected_element_id)
        with self.store.batch():
            binding = self.bindings.bind(element, event, script)
            self.bindings.install_listeners(element)
        self.script_bindings[element.get("id")] = {"script": script, "event": binding.event_type}
        logger.info("Binding applied: %s on %s for %s", script, binding.event_type, element.get("id"))
        return binding.to_dict()

    def dispatch(self, element_id: str, event_type: str = DEFAULT_EVENT,
                 detail: Optional[Dict[str, Any]] = None) -> int:
        element = self.element(element_id)
        with self.store.batch():
            return self.bindings.dispatch(element, event_type or DEFAULT_EVENT, detail)

    # ------------------------------------------------------------------
    # Simulation
    # ------------------------------------------------------------------
    def start_simulation(self) -> Dict[str, Any]:
        self.feed.start()
        return self.simulation_status()

    def stop_simulation(self) -> Dict[str, Any]:
        self.feed.stop()
        return self.simulation_status()

    def toggle_simulation(self) -> Dict[str, Any]:
        self.feed.toggle()
        return self.simulation_status()

    def simulation_status(self) -> Dict[str, Any]:
        snapshot = self.feed.last_snapshot
        return {
            "running": self.feed.is_running,
            "intervalMs": self.feed.interval_ms,
            "lastSnapshot": snapshot.to_dict() if snapshot else None,
            "lastError": self.feed.last_error,
        }

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    def generation_request(self, title: Optional[str] = None) -> GenerationRequest:
        request = GenerationRequest(
            svg_files=self.svg_files,
            script_files=list(self.selected_scripts),
            bindings={k: dict(v) for k, v in self.script_bindings.items()},
            metadata={k: dict(v) for k, v in self.metadata_fields.items()},
        )
        if title:
            request.title = title
        return request

    def generate(self, title: Optional[str] = None) -> GenerationResult:
        return self.generator.generate(self.generation_request(title))

    # ------------------------------------------------------------------
    # Lifecycle / serialisation
    # ------------------------------------------------------------------
    def close(self) -> None:
        self.feed.stop()
        self.coordinator.shutdown()

    def to_dict(self, include_markup: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "svgFiles": self.svg_files,
            "scriptFiles": list(self.selected_scripts),
            "selectedElementId": self.selected_element_id,
            "metadataFields": {k: dict(v) for k, v in self.metadata_fields.items()},
            "scriptBindings": {k: dict(v) for k, v in self.script_bindings.items()},
            "simulation": self.simulation_status(),
        }
        if include_markup:
            data["canvas"] = self.canvas_markup()
        return data
