from __future__ import annotations

"""Example component library: tank, pump, valve and sensor handlers.

Every module exposes ``register(handlers, store)`` which registers its
init/update pair under its type key (``tank``, ``pump``...) and its click
scripts by name.  :func:`register_builtin_components` registers all of them
plus a generic fallback pair that runs every component found in a drawing,
so composite SVGs (a tank with valves and sensors) need no handlers of their
own.
"""

import logging
import random
from typing import Dict, Optional

from lxml import etree as ET

from twin_ide.components import pump, sensor, tank, valve
from twin_ide.core.protocol.bindings import HandlerRegistry
from twin_ide.core.protocol.metadata_store import MetadataStore
from twin_ide.core.utils import svg_root_of

logger = logging.getLogger(__name__)

__all__ = ["register_builtin_components", "BUILTIN_COMPONENTS"]

BUILTIN_COMPONENTS = {
    "tank": tank,
    "pump": pump,
    "valve": valve,
    "sensor": sensor,
}


def _run_present(handlers: HandlerRegistry, kind: str, element: ET._Element,
                 record: Dict[str, str]) -> None:
    svg = svg_root_of(element)
    registered = set(handlers.component_keys())
    for key, module in BUILTIN_COMPONENTS.items():
        if key not in registered or not module.present(svg):
            continue
        pair = handlers.component_handlers(None, key)
        callback = getattr(pair, kind, None) if pair is not None else None
        if callback is None:
            continue
        try:
            callback(element, record)
        except Exception:
            logger.exception("%s handler of '%s' failed on %s", kind, key, svg.get("id"))


def register_builtin_components(handlers: HandlerRegistry, store: MetadataStore, *,
                                rng: Optional[random.Random] = None,
                                register_fallback: bool = True) -> None:
    """Register the example components (and the generic fallback) in *handlers*."""
    tank.register(handlers, store)
    pump.register(handlers, store)
    valve.register(handlers, store)
    sensor.register(handlers, store, rng=rng)

    if register_fallback:
        handlers.register_component(
            HandlerRegistry.DEFAULT,
            init=lambda element, record: _run_present(handlers, "init", element, record),
            update=lambda element, record: _run_present(handlers, "update", element, record),
        )
    logger.info("Registered built-in components: %s", ", ".join(BUILTIN_COMPONENTS))
