from __future__ import annotations

"""Pump component.

The pump keeps its own record on the pump element (``state``, ``flowRate``,
``pressure``, ``temperature``, ``alerts``).  A status light reflects the
state and an ``animateTransform`` spins the impeller while the pump is on.
"""

import logging
from typing import Dict, List, Optional

from lxml import etree as ET

from twin_ide.components.common import child_named, find_part
from twin_ide.core.models import DomEvent
from twin_ide.core.protocol.bindings import HandlerRegistry
from twin_ide.core.protocol.metadata_store import METADATA_TAG, MetadataStore
from twin_ide.core.utils import iter_elements, make_svg_element, svg_root_of

logger = logging.getLogger(__name__)

__all__ = ["register", "render", "present", "pumps_in", "pump_element", "DEFAULT_RECORD"]

DEFAULT_RECORD = {
    "state": "off",
    "flowRate": "0",
    "pressure": "0",
    "temperature": "25",
    "alerts": "",
}

LIGHT_ALERT = "#ff0000"
LIGHT_ON = "#00ff00"
LIGHT_OFF = "#888888"


def _is_pump(element: ET._Element) -> bool:
    element_id = element.get("id") or ""
    return element_id == "pump" or element_id.startswith("pump-") or element.get("data-component") == "pump"


def pumps_in(svg: ET._Element) -> List[ET._Element]:
    """Pump elements of an SVG: the root itself, or its ``pump-*`` parts."""
    if _is_pump(svg):
        return [svg]
    return [el for el in iter_elements(svg) if _is_pump(el)] or [svg]


def present(svg: ET._Element) -> bool:
    return any(_is_pump(el) for el in iter_elements(svg))


def pump_element(element: ET._Element) -> ET._Element:
    """Return the element owning the pump record for a clicked *element*."""
    root = svg_root_of(element)
    node: Optional[ET._Element] = element
    while node is not None and node is not root:
        if _is_pump(node) or child_named(node, METADATA_TAG) is not None:
            return node
        node = node.getparent()
    return root


def _start_animation(impeller: ET._Element) -> None:
    if child_named(impeller, "animateTransform") is not None:
        return
    cx = impeller.get("cx", "0")
    cy = impeller.get("cy", "0")
    animation = make_svg_element(impeller, "animateTransform")
    animation.set("attributeName", "transform")
    animation.set("type", "rotate")
    animation.set("dur", "1s")
    animation.set("repeatCount", "indefinite")
    animation.set("from", f"0 {cx} {cy}")
    animation.set("to", f"360 {cx} {cy}")


def _stop_animation(impeller: ET._Element) -> None:
    animation = child_named(impeller, "animateTransform")
    if animation is not None:
        impeller.remove(animation)


def render(pump: ET._Element, record: Dict[str, str]) -> None:
    state = record.get("state") or "off"
    alerts = record.get("alerts") or ""

    light = find_part(pump, "statusLight", "status-light")
    if light is not None:
        if alerts:
            light.set("fill", LIGHT_ALERT)
        elif state == "on":
            light.set("fill", LIGHT_ON)
        else:
            light.set("fill", LIGHT_OFF)

    impeller = find_part(pump, "impeller")
    if impeller is not None:
        if state == "on":
            _start_animation(impeller)
        else:
            _stop_animation(impeller)


def register(handlers: HandlerRegistry, store: MetadataStore, key: str = "pump") -> None:
    """Register the pump init/update pair and the ``pump`` click script."""

    def init_pump(element: ET._Element, record: Dict[str, str]) -> None:
        for pump in pumps_in(element):
            if child_named(pump, METADATA_TAG) is None:
                store.write(pump, DEFAULT_RECORD, scope=MetadataStore.SCOPE_ELEMENT)
            render(pump, store.read(pump))
            logger.debug("Initialized pump component %s", pump.get("id") or "unnamed")

    def update_pump(element: ET._Element, record: Dict[str, str]) -> None:
        if _is_pump(element):
            render(element, record)
            return
        for pump in pumps_in(element):
            render(pump, store.read(pump))

    def on_click(element: ET._Element, event: DomEvent, data: Dict[str, str]) -> None:
        pump = pump_element(element)
        current = store.get(pump, "state")
        new_state = "off" if current == "on" else "on"
        store.write(pump, {"state": new_state}, scope=MetadataStore.SCOPE_ELEMENT)
        logger.info("Pump %s state changed to: %s", pump.get("id") or "unnamed", new_state)

    handlers.register_component(key, init=init_pump, update=update_pump)
    handlers.register_script("pump", on_click)
