from __future__ import annotations

"""Update coordinator: metadata changes -> component update handlers.

Per SVG root the coordinator moves from ``UNINITIALIZED`` to ``OBSERVING``
on :meth:`UpdateCoordinator.attach`, which runs the root component's init
handler once and starts accepting change batches from the
:class:`~twin_ide.core.protocol.metadata_store.MetadataStore`.  Each batch
produces at most one update call per affected component.
"""

import logging
from enum import Enum
from threading import RLock
from typing import Dict, List, Optional

from lxml import etree as ET

from twin_ide.core.models import MetadataChange
from twin_ide.core.protocol.bindings import HandlerRegistry
from twin_ide.core.protocol.metadata_store import MetadataStore

logger = logging.getLogger(__name__)

__all__ = ["CoordinatorState", "UpdateCoordinator", "component_for"]


class CoordinatorState(Enum):
    """Observation state of one SVG root."""

    UNINITIALIZED = "uninitialized"
    OBSERVING = "observing"


def component_for(owner: Optional[ET._Element], root: ET._Element) -> ET._Element:
    """Return the nearest ancestor-or-self of *owner* carrying an ``id``.

    Falls back to *root* when no such element exists below it.
    """
    node = owner
    while node is not None:
        if node.get("id"):
            return node
        if node is root:
            break
        node = node.getparent()
    return root


class UpdateCoordinator:
    """Observe metadata changes and invoke component init/update handlers.

    Parameters
    ----------
    store : MetadataStore
        Store whose change batches are observed.
    handlers : HandlerRegistry
        Source of component handler pairs.
    """

    def __init__(self, store: MetadataStore, handlers: HandlerRegistry) -> None:
        self._store = store
        self._handlers = handlers
        self._roots: Dict[ET._Element, CoordinatorState] = {}
        self._lock = RLock()
        self._subscribed = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def attach(self, root: ET._Element) -> CoordinatorState:
        """Initialise *root* once and start observing its metadata."""
        with self._lock:
            if self._roots.get(root) is CoordinatorState.OBSERVING:
                return CoordinatorState.OBSERVING
            self._roots[root] = CoordinatorState.UNINITIALIZED
            if not self._subscribed:
                self._store.subscribe(self._on_changes)
                self._subscribed = True

        self._run_init(root)

        with self._lock:
            if root in self._roots:
                self._roots[root] = CoordinatorState.OBSERVING
        logger.info("Coordinator observing root id=%s", root.get("id"))
        return CoordinatorState.OBSERVING

    def detach(self, root: ET._Element) -> bool:
        """Stop observing *root*; returns False if it was never attached."""
        with self._lock:
            removed = self._roots.pop(root, None) is not None
            if not self._roots and self._subscribed:
                self._store.unsubscribe(self._on_changes)
                self._subscribed = False
        if removed:
            logger.info("Coordinator detached root id=%s", root.get("id"))
        return removed

    def shutdown(self) -> None:
        with self._lock:
            roots = list(self._roots)
        for root in roots:
            self.detach(root)

    def state_of(self, root: ET._Element) -> CoordinatorState:
        with self._lock:
            return self._roots.get(root, CoordinatorState.UNINITIALIZED)

    def observed_roots(self) -> List[ET._Element]:
        with self._lock:
            return [r for r, s in self._roots.items() if s is CoordinatorState.OBSERVING]

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _run_init(self, root: ET._Element) -> None:
        component_id = root.get("id")
        handlers = self._handlers.component_handlers(root, component_id)
        if handlers is None or handlers.init is None:
            return
        try:
            handlers.init(root, self._store.read(root))
        except Exception:
            logger.exception("Init handler failed for component %s", component_id)

    def _on_changes(self, changes: List[MetadataChange]) -> None:
        with self._lock:
            observed = {r for r, s in self._roots.items() if s is CoordinatorState.OBSERVING}

        # one update per component per batch, in first-change order
        affected: Dict[ET._Element, None] = {}
        for change in changes:
            if change.root not in observed:
                continue
            affected.setdefault(component_for(change.owner, change.root), None)

        for component in affected:
            self._run_update(component)

    def _run_update(self, component: ET._Element) -> None:
        component_id = component.get("id")
        handlers = self._handlers.component_handlers(component, component_id)
        if handlers is None or handlers.update is None:
            return
        try:
            handlers.update(component, self._store.read(component))
        except Exception:
            logger.exception("Update handler failed for component %s", component_id)
