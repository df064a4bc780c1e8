from __future__ import annotations

"""IDE exception classes.

Covers resource storage, metadata encoding, binding, document generation and
simulation feed failures.  Nothing raised from here is fatal to a session:
routes translate these into HTTP status codes and the protocol core catches
them at its boundaries.
"""

from typing import Optional


class TwinIdeError(Exception):
    """Base exception for all IDE errors.

    Carries the offending resource (file name, element id, component name...)
    so log lines and HTTP error bodies can name it.
    """

    def __init__(self, message: str, resource: Optional[str] = None,
                 cause: Optional[Exception] = None) -> None:
        super().__init__(message)
        self.resource = resource
        self.cause = cause

    def __str__(self) -> str:
        if self.resource:
            return f"[{self.resource}] {super().__str__()}"
        return super().__str__()


class ResourceError(TwinIdeError):
    """Raised when a resource file cannot be listed, read or written."""
    pass


class InvalidResourceTypeError(ResourceError):
    """Raised when a resource type is neither ``svg`` nor ``script``."""

    def __init__(self, resource_type: str) -> None:
        super().__init__("Invalid resource type", resource=resource_type)
        self.resource_type = resource_type


class ResourceNotFoundError(ResourceError):
    """Raised when a requested resource file does not exist."""

    def __init__(self, filename: str, resource_type: Optional[str] = None) -> None:
        super().__init__("File not found", resource=filename)
        self.resource_type = resource_type


class InvalidFilenameError(ResourceError):
    """Raised for empty names, path traversal attempts or wrong extensions."""
    pass


class InvalidSvgError(ResourceError):
    """Raised when an SVG resource is not well-formed or has no ``<svg>`` root."""
    pass


class MetadataError(TwinIdeError):
    """Base class for metadata encoding problems."""
    pass


class MetadataKeyError(MetadataError):
    """Raised when a key cannot be encoded as a ``data-<key>`` attribute."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Metadata key {key!r} is not a valid attribute name", resource=key)
        self.key = key


class MetadataFormatError(MetadataError):
    """Raised when edited metadata (e.g. JSON text) cannot be turned into a record."""
    pass


class BindingError(TwinIdeError):
    """Raised when a binding request is incomplete (missing script or event)."""
    pass


class GenerationError(TwinIdeError):
    """Raised when a standalone document cannot be assembled."""
    pass


class SnapshotFetchError(TwinIdeError):
    """Raised when a simulation snapshot cannot be acquired.

    Includes network errors, timeouts, non-200 responses and invalid JSON.
    """

    def __init__(self, message: str, url: Optional[str] = None,
                 cause: Optional[Exception] = None) -> None:
        super().__init__(message, resource=url, cause=cause)
        self.url = url


class UnknownComponentError(TwinIdeError):
    """Raised when the mock sensor model has no component of that name."""

    def __init__(self, component: str) -> None:
        super().__init__(f"Component {component} not found", resource=component)
        self.component = component


class ElementNotFoundError(TwinIdeError):
    """Raised when no element on the canvas carries the requested id."""

    def __init__(self, element_id: str) -> None:
        super().__init__("Element not found", resource=element_id)
        self.element_id = element_id
