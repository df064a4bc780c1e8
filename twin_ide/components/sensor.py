from __future__ import annotations

"""Tank sensors (``sensor-top``, ``sensor-middle``, ``sensor-bottom``).

Top watches temperature, middle watches pressure, bottom watches the level.
A sensor whose reading crosses its threshold is activated: filled, thicker
stroke and a pulsing ``<animate>`` child.
"""

import logging
import random
from typing import Callable, Dict, NamedTuple, Optional

from lxml import etree as ET

from twin_ide.components.common import child_named, elements_with_id_prefix, format_number, parse_number
from twin_ide.core.models import DomEvent
from twin_ide.core.protocol.bindings import HandlerRegistry
from twin_ide.core.protocol.metadata_store import MetadataStore
from twin_ide.core.utils import make_svg_element, svg_root_of

logger = logging.getLogger(__name__)

__all__ = ["register", "render", "present", "SENSORS"]

PREFIX = "sensor-"


class SensorSpec(NamedTuple):
    key: str
    colour: str
    label: str
    unit: str
    tripped: Callable[[float], bool]
    # demo readings a click alternates between
    samples: tuple


SENSORS: Dict[str, SensorSpec] = {
    "top": SensorSpec("temperature", "#FF5722", "Temperature", "°C", lambda v: v > 30, (32.5, 25.5)),
    "middle": SensorSpec("pressure", "#4CAF50", "Pressure", " hPa", lambda v: v > 1100, (1150, 1013)),
    "bottom": SensorSpec("level", "#2196F3", "Level", "%", lambda v: v < 25, (15, 75)),
}


def _spec_for(sensor: ET._Element) -> Optional[SensorSpec]:
    position = (sensor.get("id") or "").split("-", 1)[-1]
    return SENSORS.get(position)


def activate(sensor: ET._Element, colour: str) -> None:
    sensor.set("data-active", "true")
    sensor.set("fill", colour)
    sensor.set("stroke-width", "2")
    if child_named(sensor, "animate") is None:
        animate = make_svg_element(sensor, "animate")
        animate.set("attributeName", "opacity")
        animate.set("values", "1;0.3;1")
        animate.set("dur", "2s")
        animate.set("repeatCount", "indefinite")


def deactivate(sensor: ET._Element, colour: str) -> None:
    sensor.set("data-active", "false")
    sensor.set("fill", colour)
    sensor.set("stroke-width", "1")
    animate = child_named(sensor, "animate")
    if animate is not None:
        sensor.remove(animate)


def present(svg: ET._Element) -> bool:
    return bool(elements_with_id_prefix(svg, PREFIX))


def render(svg: ET._Element, record: Dict[str, str]) -> None:
    for sensor in elements_with_id_prefix(svg, PREFIX):
        spec = _spec_for(sensor)
        if spec is None:
            continue
        value = parse_number(record, spec.key)
        if value is None:
            continue
        if spec.tripped(value):
            activate(sensor, spec.colour)
        else:
            deactivate(sensor, spec.colour)


def register(handlers: HandlerRegistry, store: MetadataStore, key: str = "sensor",
             rng: Optional[random.Random] = None) -> None:
    """Register the sensor init/update pair and the ``sensor`` click script.

    A click logs the current reading and writes a demo reading to the
    metadata, which makes the coordinator re-render the drawing.
    """
    rng = rng or random.Random()

    def init_sensor(svg: ET._Element, record: Dict[str, str]) -> None:
        for sensor in elements_with_id_prefix(svg, PREFIX):
            sensor.set("data-active", "false")
        render(svg, record)

    def update_sensor(element: ET._Element, record: Dict[str, str]) -> None:
        render(svg_root_of(element), record)

    def on_click(element: ET._Element, event: DomEvent, data: Dict[str, str]) -> None:
        spec = _spec_for(element)
        if spec is None:
            logger.warning("Clicked sensor %s has no known position", element.get("id"))
            return
        svg = svg_root_of(element)
        reading = parse_number(store.read(svg), spec.key)
        status = "WARNING" if reading is not None and spec.tripped(reading) else "Normal"
        logger.info("%s sensor reading: %s%s (%s)", spec.label, reading, spec.unit, status)
        sample = spec.samples[0] if rng.random() > 0.5 else spec.samples[1]
        store.write(svg, {spec.key: format_number(sample)})

    handlers.register_component(key, init=init_sensor, update=update_sensor)
    handlers.register_script("sensor", on_click)
