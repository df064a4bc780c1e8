from __future__ import annotations

"""Version string reported by ``GET /`` and stamped into generated pages."""

from functools import lru_cache
from importlib import metadata
from pathlib import Path

__all__ = ["get_app_version", "DISTRIBUTION"]

DISTRIBUTION = "digital-twin-ide"

_VERSION_FILE = Path(__file__).resolve().parent.parent / "version.txt"


def _prefixed(text: str) -> str:
    return text if text.startswith("v") else f"v{text}"


@lru_cache(maxsize=1)
def get_app_version() -> str:
    """Return the running version as ``v<major>.<minor>.<patch>``.

    A source checkout's ``version.txt`` wins over the installed
    distribution metadata; ``vdev`` is returned when neither is available.
    """
    try:
        text = _VERSION_FILE.read_text(encoding="ascii", errors="ignore").strip()
    except OSError:
        text = ""
    if text:
        return _prefixed(text)

    try:
        return _prefixed(metadata.version(DISTRIBUTION))
    except metadata.PackageNotFoundError:
        return "vdev"
