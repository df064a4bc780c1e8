from __future__ import annotations

"""Valve components (``valve-*`` elements).

Each valve carries its state in ``data-state``.  Clicking toggles it and
records the new position in the SVG's metadata under ``valve-<name>``, so
the update coordinator re-renders the rest of the drawing.
"""

import logging
from typing import Dict, Optional

from lxml import etree as ET

from twin_ide.components.common import elements_with_id_prefix
from twin_ide.core.models import DomEvent
from twin_ide.core.protocol.bindings import HandlerRegistry
from twin_ide.core.protocol.metadata_store import MetadataStore
from twin_ide.core.utils import local_name, svg_root_of

logger = logging.getLogger(__name__)

__all__ = ["register", "render", "present", "valve_name", "toggle"]

PREFIX = "valve-"
STATE_ATTRIBUTE = "data-state"


def valve_name(valve: ET._Element) -> str:
    """``valve-input`` -> ``input``."""
    return (valve.get("id") or "").split("-", 1)[-1]


def _position(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return "open" if value.strip().lower() == "open" else "closed"


def update_appearance(valve: ET._Element) -> None:
    if (valve.get(STATE_ATTRIBUTE) or "closed") == "open":
        valve.set("fill", "#4CAF50")
        valve.set("stroke", "#2E7D32")
    else:
        valve.set("fill", "#9E9E9E")
        valve.set("stroke", "#333")


def _label_for(valve: ET._Element) -> Optional[ET._Element]:
    sibling = valve.getnext()
    while sibling is not None and not isinstance(sibling.tag, str):
        sibling = sibling.getnext()
    if sibling is not None and local_name(sibling) == "text":
        return sibling
    return None


def set_state(valve: ET._Element, state: str) -> None:
    valve.set(STATE_ATTRIBUTE, state)
    update_appearance(valve)
    label = _label_for(valve)
    if label is not None:
        label.text = f"{valve_name(valve).upper()}: {state.upper()}"


def present(svg: ET._Element) -> bool:
    return bool(elements_with_id_prefix(svg, PREFIX))


def render(svg: ET._Element, record: Dict[str, str]) -> None:
    """Apply ``valve-<name>`` (or the shared ``valvePosition``) to every valve."""
    shared = _position(record.get("valvePosition"))
    for valve in elements_with_id_prefix(svg, PREFIX):
        state = _position(record.get(valve.get("id"))) or shared
        if state is not None and state != valve.get(STATE_ATTRIBUTE):
            set_state(valve, state)


def toggle(valve: ET._Element) -> str:
    new_state = "open" if (valve.get(STATE_ATTRIBUTE) or "closed") == "closed" else "closed"
    set_state(valve, new_state)
    return new_state


def register(handlers: HandlerRegistry, store: MetadataStore, key: str = "valve") -> None:
    """Register the valve init/update pair and the ``valve`` click script."""

    def init_valve(svg: ET._Element, record: Dict[str, str]) -> None:
        for valve in elements_with_id_prefix(svg, PREFIX):
            if valve.get(STATE_ATTRIBUTE) is None:
                valve.set(STATE_ATTRIBUTE, "closed")
                update_appearance(valve)
        render(svg, record)

    def update_valve(element: ET._Element, record: Dict[str, str]) -> None:
        render(svg_root_of(element), record)

    def on_click(element: ET._Element, event: DomEvent, data: Dict[str, str]) -> None:
        new_state = toggle(element)
        logger.info("Valve %s %s", element.get("id"), new_state)
        if element.get("id"):
            store.write(svg_root_of(element), {element.get("id"): new_state})

    handlers.register_component(key, init=init_valve, update=update_valve)
    handlers.register_script("valve", on_click)
