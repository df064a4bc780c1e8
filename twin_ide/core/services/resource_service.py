from __future__ import annotations

"""Filesystem storage for SVG and script resources.

Layout under the resources directory::

    resources/
      svg/        *.svg
      scripts/    *.js
      examples/   read-only example scripts

Generated documents are written to a separate output directory.  Every file
name coming from a request goes through :func:`werkzeug.utils.secure_filename`
and is checked to stay inside its folder.
"""

import logging
import mimetypes
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from werkzeug.utils import secure_filename

from twin_ide.core.exceptions import (
    InvalidFilenameError,
    InvalidResourceTypeError,
    ResourceError,
    ResourceNotFoundError,
)

logger = logging.getLogger(__name__)

__all__ = ["ResourceStore", "RESOURCE_TYPES", "detect_resource_type"]

# resource type -> (folder, accepted extensions)
RESOURCE_TYPES: Dict[str, Tuple[str, Tuple[str, ...]]] = {
    "svg": ("svg", (".svg",)),
    "script": ("scripts", (".js",)),
}
EXAMPLES_FOLDER = "examples"


def detect_resource_type(filename: str, mimetype: Optional[str] = None) -> Optional[str]:
    """Return ``svg`` / ``script`` for an upload, or None when unsupported.

    The MIME type reported by the client wins; the extension is the fallback
    because browsers often send ``application/octet-stream``.
    """
    mimetype = (mimetype or "").lower()
    if "svg" in mimetype:
        return "svg"
    if "javascript" in mimetype:
        return "script"
    guessed, _ = mimetypes.guess_type(filename or "")
    suffix = Path(filename or "").suffix.lower()
    if suffix == ".svg" or (guessed and "svg" in guessed):
        return "svg"
    if suffix == ".js" or (guessed and "javascript" in guessed):
        return "script"
    return None


class ResourceStore:
    """CRUD over the resource folders and the generated output folder.

    Parameters
    ----------
    base_dir : str | Path
        Root of the resources tree; missing folders are created.
    output_dir : str | Path
        Where generated documents are written.
    """

    def __init__(self, base_dir: str | Path, output_dir: str | Path) -> None:
        self.base_dir = Path(base_dir)
        self.output_dir = Path(output_dir)
        for folder, _ in RESOURCE_TYPES.values():
            (self.base_dir / folder).mkdir(parents=True, exist_ok=True)
        (self.base_dir / EXAMPLES_FOLDER).mkdir(parents=True, exist_ok=True)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def folder_for(self, resource_type: str) -> Path:
        try:
            folder, _ = RESOURCE_TYPES[resource_type]
        except KeyError:
            raise InvalidResourceTypeError(resource_type) from None
        return self.base_dir / folder

    @staticmethod
    def _safe_join(folder: Path, filename: str) -> Path:
        cleaned = secure_filename(filename or "")
        if not cleaned or cleaned != filename:
            raise InvalidFilenameError("Invalid file name", resource=filename)
        path = (folder / cleaned).resolve()
        if folder.resolve() not in path.parents:
            raise InvalidFilenameError("Path escapes resource folder", resource=filename)
        return path

    def resource_path(self, resource_type: str, filename: str) -> Path:
        return self._safe_join(self.folder_for(resource_type), filename)

    def output_path(self, filename: str) -> Path:
        return self._safe_join(self.output_dir, filename)

    # -------------------------------------------------------------------------
    # Listing / reading
    # -------------------------------------------------------------------------

    def list(self, resource_type: str) -> List[str]:
        folder = self.folder_for(resource_type)
        _, extensions = RESOURCE_TYPES[resource_type]
        return sorted(p.name for p in folder.iterdir()
                      if p.is_file() and p.suffix.lower() in extensions)

    def list_all(self) -> Dict[str, List[str]]:
        return {resource_type: self.list(resource_type) for resource_type in RESOURCE_TYPES}

    def read(self, resource_type: str, filename: str) -> str:
        path = self.resource_path(resource_type, filename)
        if not path.is_file():
            raise ResourceNotFoundError(filename, resource_type)
        return path.read_text(encoding="utf-8")

    def list_examples(self) -> List[str]:
        folder = self.base_dir / EXAMPLES_FOLDER
        return sorted(p.name for p in folder.iterdir() if p.is_file() and p.suffix.lower() == ".js")

    def read_example(self, filename: str) -> str:
        path = self._safe_join(self.base_dir / EXAMPLES_FOLDER, filename)
        if not path.is_file():
            raise ResourceNotFoundError(filename, "example")
        return path.read_text(encoding="utf-8")

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def save(self, resource_type: str, filename: str, content: str) -> Path:
        """Create or overwrite a resource file."""
        path = self.resource_path(resource_type, filename)
        _, extensions = RESOURCE_TYPES[resource_type]
        if path.suffix.lower() not in extensions:
            raise InvalidFilenameError(
                f"Expected extension {', '.join(extensions)}", resource=filename)
        try:
            path.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise ResourceError(f"Could not save file: {exc}", resource=filename, cause=exc)
        logger.info("Saved %s resource %s (%d chars)", resource_type, path.name, len(content))
        return path

    def store_upload(self, filename: str, data: bytes, mimetype: Optional[str] = None,
                     resource_type: Optional[str] = None) -> Tuple[str, str]:
        """Store uploaded bytes; returns ``(stored_name, resource_type)``.

        Without an explicit *resource_type* the destination is chosen from the
        MIME type or extension.  Unsupported files raise
        :class:`InvalidResourceTypeError`.
        """
        name = secure_filename(filename or "")
        if not name:
            raise InvalidFilenameError("Missing file name", resource=filename)
        detected = resource_type or detect_resource_type(name, mimetype)
        if detected is None:
            raise InvalidResourceTypeError(mimetype or Path(name).suffix or name)
        path = self.resource_path(detected, name)
        try:
            path.write_bytes(data)
        except OSError as exc:
            raise ResourceError(f"Could not store upload: {exc}", resource=name, cause=exc)
        logger.info("Uploaded %s resource %s (%d bytes)", detected, name, len(data))
        return name, detected

    def write_output(self, filename: str, content: str) -> Path:
        path = self.output_path(filename)
        path.write_text(content, encoding="utf-8")
        return path
