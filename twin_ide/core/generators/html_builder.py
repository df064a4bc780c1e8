from __future__ import annotations

"""Render the standalone HTML document from prepared SVG and script text.

The page embeds every SVG inline, every selected script verbatim and the
browser coordinator runtime (``runtime/coordinator.js``) configured through
``window.TWIN_RUNTIME_CONFIG``.
"""

import importlib.resources as pkg_resources
import logging
from functools import lru_cache
from typing import Any, Dict, Iterable, Tuple

from jinja2 import Environment, PackageLoader, select_autoescape

from twin_ide.version import get_app_version

logger = logging.getLogger(__name__)

__all__ = ["load_runtime", "render_interactive_document"]

TEMPLATE_NAME = "interactive.html.j2"

_env = Environment(
    loader=PackageLoader("twin_ide.core.generators", "templates"),
    autoescape=select_autoescape(enabled_extensions=("html", "j2")),
    trim_blocks=True,
    lstrip_blocks=True,
)


@lru_cache(maxsize=1)
def load_runtime() -> str:
    """Return the coordinator runtime script shipped with the package."""
    return pkg_resources.files(__package__).joinpath("runtime").joinpath("coordinator.js").read_text(encoding="utf-8")


def render_interactive_document(title: str, svgs: Iterable[Tuple[str, str]],
                                scripts: Iterable[Tuple[str, str]],
                                runtime_config: Dict[str, Any],
                                app_name: str = "Digital Twin Interactions IDE") -> str:
    """Render the document.

    Parameters
    ----------
    title : str
        Page title (escaped).
    svgs : iterable of (name, markup)
        Serialized SVG roots, embedded as-is.
    scripts : iterable of (file name, source)
        Script resources, embedded as-is before the runtime.
    runtime_config : dict
        Serialized into ``window.TWIN_RUNTIME_CONFIG``.
    """
    template = _env.get_template(TEMPLATE_NAME)
    return template.render(
        title=title,
        app_name=app_name,
        version=get_app_version(),
        svgs=[{"name": name, "markup": markup} for name, markup in svgs],
        scripts=[{"name": name, "content": content} for name, content in scripts],
        runtime_config=runtime_config,
        runtime=load_runtime(),
    )
