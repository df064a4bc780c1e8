from __future__ import annotations

"""Shared data structures used across the IDE core.

This module is intentionally free of HTTP / I/O code so that the contained
objects can be reused in any context (unit-tests, the Flask surfaces, the
simulation feed thread).
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

from lxml import etree as ET

__all__ = [
    "DEFAULT_EVENT",
    "Binding",
    "ComponentHandlers",
    "DataSnapshot",
    "DomEvent",
    "MetadataChange",
    "InitHandler",
    "UpdateHandler",
    "ScriptHandler",
]

DEFAULT_EVENT = "click"

InitHandler = Callable[[ET._Element, Dict[str, str]], Any]
UpdateHandler = Callable[[ET._Element, Dict[str, str]], Any]
ScriptHandler = Callable[[ET._Element, "DomEvent", Dict[str, str]], Any]


@dataclass(frozen=True)
class Binding:
    """Declarative association of a DOM event on an element to a script."""

    element_id: Optional[str]
    event_type: str
    script_id: str

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"elementId": self.element_id, "event": self.event_type, "script": self.script_id}


@dataclass
class ComponentHandlers:
    """Init/update pair registered for one component key.

    Either callable may be absent; the coordinator skips missing ones.
    """

    init: Optional[InitHandler] = None
    update: Optional[UpdateHandler] = None


@dataclass
class DataSnapshot:
    """One data acquisition cycle's flat key/value result.

    Attributes
    ----------
    values
        Flat mapping of simulation keys to string values.
    fetched_at
        UTC time the snapshot was acquired.
    source
        Short name of the producing source (``mock``, ``http``...).
    """

    values: Dict[str, str] = field(default_factory=dict)
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "values": dict(self.values),
            "fetchedAt": self.fetched_at.isoformat(),
            "source": self.source,
        }


@dataclass
class DomEvent:
    """Minimal stand-in for a browser event delivered through the canvas."""

    type: str
    target: ET._Element
    detail: Dict[str, Any] = field(default_factory=dict)
    current_target: Optional[ET._Element] = None


@dataclass(frozen=True)
class MetadataChange:
    """Record of one metadata write, delivered to store subscribers.

    ``owner`` is the element whose ``<metadata>`` node was written (the SVG
    root itself for root-scoped records).
    """

    root: ET._Element
    owner: ET._Element
    keys: Tuple[str, ...]
