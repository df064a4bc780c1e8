from __future__ import annotations

"""High-level services (resources, document generation, simulation, session).

Services are instantiated directly and wired by the application factory.
"""

from .resource_service import ResourceStore  # noqa: F401
from .document_service import DocumentGenerator, GenerationRequest, GenerationResult  # noqa: F401
from .sensor_simulation import SensorSimulation  # noqa: F401
from .editor_session import EditorSession  # noqa: F401

__all__: list[str] = [
    "ResourceStore",
    "DocumentGenerator",
    "GenerationRequest",
    "GenerationResult",
    "SensorSimulation",
    "EditorSession",
]
