from __future__ import annotations

"""Metadata-driven component binding and live-update protocol.

Dependency order: metadata store, bindings, coordinator, feed.
"""

from .metadata_store import MetadataStore, decode_record, encode_record  # noqa: F401
from .bindings import BindingRegistry, HandlerRegistry  # noqa: F401
from .coordinator import CoordinatorState, UpdateCoordinator  # noqa: F401
from .feed import (  # noqa: F401
    HttpSnapshotSource,
    MockSnapshotSource,
    SimulationFeedAdapter,
)

__all__: list[str] = [
    "MetadataStore",
    "decode_record",
    "encode_record",
    "BindingRegistry",
    "HandlerRegistry",
    "CoordinatorState",
    "UpdateCoordinator",
    "HttpSnapshotSource",
    "MockSnapshotSource",
    "SimulationFeedAdapter",
]
