from __future__ import annotations

"""Storage tank component.

Expected SVG parts (all optional): ``#tank-level`` (a rect whose height
follows the level), ``#tank-temp`` and ``#tank-press`` (text), ``#tank-body``
(outline) and ``#tank-title``.  Record keys read: ``level`` (or
``tankLevel``), ``temperature``, ``pressure``, ``status``.
"""

import logging
from typing import Dict

from lxml import etree as ET

from twin_ide.components.common import find_part, format_number, parse_number, set_style
from twin_ide.core.models import DomEvent
from twin_ide.core.protocol.bindings import HandlerRegistry
from twin_ide.core.protocol.metadata_store import MetadataStore
from twin_ide.core.utils import svg_root_of

logger = logging.getLogger(__name__)

__all__ = ["register", "render", "present", "level_colour"]

MAX_LEVEL_HEIGHT = 200
TANK_BOTTOM_Y = 250
HIGH_TEMPERATURE = 30
HIGH_PRESSURE = 1100

ALERT = "#F44336"
WARN = "#FF9800"
NORMAL = "#2196F3"
TEXT = "#000000"
TITLE = "Storage Tank"


def level_colour(level: float) -> str:
    if level < 25:
        return ALERT
    if level < 50:
        return WARN
    return NORMAL


def _level_of(record: Dict[str, str]):
    level = parse_number(record, "level")
    return level if level is not None else parse_number(record, "tankLevel")


def present(svg: ET._Element) -> bool:
    return find_part(svg, "tank-level", "tank-body", "tank-temp", "tank-press") is not None


def render(svg: ET._Element, record: Dict[str, str]) -> None:
    """Bring the tank drawing in line with *record*."""
    level = _level_of(record)
    level_rect = find_part(svg, "tank-level")
    if level_rect is not None and level is not None:
        height = MAX_LEVEL_HEIGHT * (level / 100)
        level_rect.set("height", format_number(height))
        level_rect.set("y", format_number(TANK_BOTTOM_Y - height))
        level_rect.set("fill", level_colour(level))

    temperature = parse_number(record, "temperature")
    temp_text = find_part(svg, "tank-temp")
    if temp_text is not None and temperature is not None:
        temp_text.text = f"Temperature: {temperature:.1f}°C"
        temp_text.set("fill", ALERT if temperature > HIGH_TEMPERATURE else TEXT)

    pressure = parse_number(record, "pressure")
    press_text = find_part(svg, "tank-press")
    if press_text is not None and pressure is not None:
        press_text.text = f"Pressure: {pressure:.0f} hPa"
        press_text.set("fill", ALERT if pressure > HIGH_PRESSURE else TEXT)

    body = find_part(svg, "tank-body")
    if body is not None:
        if record.get("status") == "warning":
            body.set("stroke", ALERT)
            body.set("stroke-width", "3")
        else:
            body.set("stroke", "#333")
            body.set("stroke-width", "2")


def register(handlers: HandlerRegistry, store: MetadataStore, key: str = "tank") -> None:
    """Register the tank init/update pair and its ``tank``/``tankHover`` scripts."""

    def init_tank(svg: ET._Element, record: Dict[str, str]) -> None:
        logger.debug("Initializing tank component %s", svg.get("id"))
        render(svg, record)
        body = find_part(svg, "tank-body")
        if body is not None:
            set_style(body, "cursor", "pointer")

    def update_tank(element: ET._Element, record: Dict[str, str]) -> None:
        render(svg_root_of(element), record)

    def on_click(element: ET._Element, event: DomEvent, data: Dict[str, str]) -> None:
        svg = svg_root_of(element)
        record = store.read(svg)
        logger.info("Tank status: level=%s%% temperature=%s°C pressure=%s hPa",
                    record.get("level", record.get("tankLevel")),
                    record.get("temperature"), record.get("pressure"))
        new_status = "warning" if record.get("status") == "normal" else "normal"
        store.write(svg, {"status": new_status})

    def on_hover(element: ET._Element, event: DomEvent, data: Dict[str, str]) -> None:
        svg = svg_root_of(element)
        title = find_part(svg, "tank-title")
        if title is None:
            return
        level = _level_of(store.read(svg))
        title.text = f"{TITLE} - {format_number(level)}% Full" if level is not None else TITLE

    handlers.register_component(key, init=init_tank, update=update_tank)
    handlers.register_script("tank", on_click)
    handlers.register_script("tankHover", on_hover)
