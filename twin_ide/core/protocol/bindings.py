from __future__ import annotations

"""Binding registry for canvas components.

Two registries live here:

``HandlerRegistry``
    Explicit replacement for the ``init<Id>`` / ``update<Id>`` global
    function convention.  Component modules register typed callbacks under
    a component key; script handlers are registered under a script name.

``BindingRegistry``
    Reads and writes ``data-script`` / ``data-event`` attributes on
    component elements, resolves script identifiers to handlers and
    dispatches canvas events to them.
"""

import logging
import re
from threading import RLock
from typing import Callable, Dict, List, Optional

from lxml import etree as ET

from twin_ide.core.models import (
    DEFAULT_EVENT,
    Binding,
    ComponentHandlers,
    DomEvent,
    InitHandler,
    ScriptHandler,
    UpdateHandler,
)
from twin_ide.core.utils import iter_elements, strip_script_suffix

logger = logging.getLogger(__name__)

__all__ = ["HandlerRegistry", "BindingRegistry", "SCRIPT_ATTRIBUTE", "EVENT_ATTRIBUTE"]

SCRIPT_ATTRIBUTE = "data-script"
EVENT_ATTRIBUTE = "data-event"
COMPONENT_ATTRIBUTE = "data-component"

DataProvider = Callable[[], Dict[str, str]]


class HandlerRegistry:
    """Component and script handlers keyed by name.

    Lookups never raise: a miss returns ``None`` and is logged at debug
    level.  Registering a key twice replaces the previous entry and logs a
    warning so collisions are visible instead of silent.
    """

    DEFAULT = "*"

    def __init__(self) -> None:
        self._components: Dict[str, ComponentHandlers] = {}
        self._scripts: Dict[str, ScriptHandler] = {}
        self._lock = RLock()

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register_component(self, key: str, init: Optional[InitHandler] = None,
                           update: Optional[UpdateHandler] = None) -> None:
        """Register the init/update pair for component *key*.

        Use ``HandlerRegistry.DEFAULT`` for the generic fallback pair.
        """
        if not key:
            raise ValueError("Component key must not be empty")
        with self._lock:
            if key in self._components:
                logger.warning("Component handlers for '%s' replaced", key)
            self._components[key] = ComponentHandlers(init=init, update=update)
            logger.debug("Registered component handlers for '%s'", key)

    def register_script(self, name: str, handler: ScriptHandler) -> None:
        """Register an event handler under script *name* (extension ignored)."""
        base = strip_script_suffix(name)
        if not base:
            raise ValueError("Script name must not be empty")
        with self._lock:
            if base in self._scripts:
                logger.warning("Script handler '%s' replaced", base)
            self._scripts[base] = handler
            logger.debug("Registered script handler '%s'", base)

    def unregister_component(self, key: str) -> bool:
        with self._lock:
            return self._components.pop(key, None) is not None

    def unregister_script(self, name: str) -> bool:
        with self._lock:
            return self._scripts.pop(strip_script_suffix(name), None) is not None

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def script(self, name: str) -> Optional[ScriptHandler]:
        with self._lock:
            return self._scripts.get(name)

    def component_keys(self) -> List[str]:
        with self._lock:
            return list(self._components)

    def script_names(self) -> List[str]:
        with self._lock:
            return list(self._scripts)

    def component_handlers(self, element: Optional[ET._Element],
                           component_id: Optional[str]) -> Optional[ComponentHandlers]:
        """Return the handlers for a component.

        Lookup order: exact component id, component type tag, then the
        ``DEFAULT`` fallback.
        """
        candidates = []
        if component_id:
            candidates.append(component_id)
        type_tag = component_type(element, component_id)
        if type_tag and type_tag not in candidates:
            candidates.append(type_tag)
        candidates.append(self.DEFAULT)
        with self._lock:
            for key in candidates:
                handlers = self._components.get(key)
                if handlers is not None:
                    return handlers
        logger.debug("No component handlers for id=%s (tried %s)", component_id, candidates)
        return None


def component_type(element: Optional[ET._Element], component_id: Optional[str]) -> Optional[str]:
    """Return the type tag of a component.

    ``data-component="tank"`` wins; otherwise the id prefix before the first
    ``-`` or ``_`` (``tank-1`` -> ``tank``).
    """
    if element is not None:
        declared = element.get(COMPONENT_ATTRIBUTE)
        if declared:
            return declared
    if component_id:
        prefix = re.split(r"[-_]", component_id, maxsplit=1)[0]
        if prefix and prefix != component_id:
            return prefix
    return None


class BindingRegistry:
    """Element-to-script bindings and event dispatch for one canvas.

    Parameters
    ----------
    handlers : HandlerRegistry
        Registry used to resolve script identifiers.
    data_provider : callable, optional
        Returns the current simulation data passed to script handlers.
    """

    def __init__(self, handlers: HandlerRegistry,
                 data_provider: Optional[DataProvider] = None) -> None:
        self._handlers = handlers
        self._data_provider = data_provider or dict
        # element -> {event_type: script_id}; holding the element keeps its proxy identity stable
        self._listeners: Dict[ET._Element, Dict[str, str]] = {}
        self._lock = RLock()

    # -------------------------------------------------------------------------
    # Attributes
    # -------------------------------------------------------------------------

    def bind(self, element: ET._Element, event_type: Optional[str], script_id: str) -> Binding:
        """Bind *element* to *script_id* for *event_type* (default ``click``).

        Re-binding overwrites the previous attributes.  An already installed
        listener is updated in place.
        """
        event_type = (event_type or DEFAULT_EVENT).strip() or DEFAULT_EVENT
        script_id = (script_id or "").strip()
        if not script_id:
            raise ValueError("Script identifier must not be empty")
        element.set(SCRIPT_ATTRIBUTE, script_id)
        element.set(EVENT_ATTRIBUTE, event_type)
        with self._lock:
            if element in self._listeners:
                self._listeners[element] = {event_type: script_id}
        logger.debug("Bound element=%s event=%s script=%s", element.get("id"), event_type, script_id)
        return Binding(element_id=element.get("id"), event_type=event_type, script_id=script_id)

    def unbind(self, element: ET._Element) -> None:
        element.attrib.pop(SCRIPT_ATTRIBUTE, None)
        element.attrib.pop(EVENT_ATTRIBUTE, None)
        with self._lock:
            self._listeners.pop(element, None)

    @staticmethod
    def binding_for(element: ET._Element) -> Optional[Binding]:
        script_id = element.get(SCRIPT_ATTRIBUTE)
        if not script_id:
            return None
        event_type = element.get(EVENT_ATTRIBUTE) or DEFAULT_EVENT
        return Binding(element_id=element.get("id"), event_type=event_type, script_id=script_id)

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def resolve(self, script_id: str) -> Optional[ScriptHandler]:
        """Resolve *script_id* to a handler, or ``None`` when nothing matches.

        ``tank.js`` and ``tank`` resolve identically; ``tankHandler`` is tried
        after ``tank``.
        """
        base = strip_script_suffix(script_id)
        if not base:
            logger.warning("Cannot resolve empty script identifier")
            return None
        for name in (base, f"{base}Handler"):
            handler = self._handlers.script(name)
            if handler is not None:
                return handler
        logger.warning("No handler found for script '%s' (tried %s, %sHandler)", script_id, base, base)
        return None

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def install_listeners(self, root: ET._Element) -> int:
        """Install listeners for every bound element under *root*.

        Safe to call repeatedly; returns the number of newly installed
        listeners.
        """
        installed = 0
        with self._lock:
            for element in iter_elements(root):
                binding = self.binding_for(element)
                if binding is None or element in self._listeners:
                    continue
                self._listeners[element] = {binding.event_type: binding.script_id}
                installed += 1
        if installed:
            logger.info("Installed %d listener(s) under %s", installed, root.get("id"))
        return installed

    def uninstall_listeners(self, root: ET._Element) -> int:
        removed = 0
        with self._lock:
            for element in iter_elements(root):
                if self._listeners.pop(element, None) is not None:
                    removed += 1
        return removed

    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def dispatch(self, target: ET._Element, event_type: str = DEFAULT_EVENT,
                 detail: Optional[Dict[str, object]] = None) -> int:
        """Deliver an event to *target* and bubble it up to its ancestors.

        Each listening element calls its resolved handler as
        ``handler(element, event, data)``.  Unresolvable scripts and handler
        exceptions are logged; the return value counts successful calls.
        """
        event = DomEvent(type=event_type, target=target, detail=dict(detail or {}))
        invoked = 0
        node: Optional[ET._Element] = target
        while node is not None:
            with self._lock:
                script_id = self._listeners.get(node, {}).get(event_type)
            if script_id:
                handler = self.resolve(script_id)
                if handler is not None:
                    event.current_target = node
                    try:
                        handler(node, event, self._current_data())
                        invoked += 1
                    except Exception:
                        logger.exception("Script '%s' failed handling %s on %s",
                                         script_id, event_type, node.get("id"))
            node = node.getparent()
        return invoked

    def _current_data(self) -> Dict[str, str]:
        try:
            return dict(self._data_provider() or {})
        except Exception:
            logger.exception("Simulation data provider failed")
            return {}
