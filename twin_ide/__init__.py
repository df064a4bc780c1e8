"""Top-level package for the Digital Twin Interactions IDE.

The protocol core (metadata store, bindings, update coordinator, simulation
feed) lives in :mod:`twin_ide.core`; the HTTP surfaces in :mod:`twin_ide.web`
only depend on the public API re-exported here and in the sub-packages.
"""

from .core.models import Binding, DataSnapshot  # re-export for convenience

__all__: list[str] = [
    "Binding",
    "DataSnapshot",
]
