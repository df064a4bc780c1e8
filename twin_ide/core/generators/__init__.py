from __future__ import annotations

"""Modules responsible for generating standalone interactive documents."""

from .html_builder import load_runtime, render_interactive_document  # noqa: F401

__all__: list[str] = [
    "load_runtime",
    "render_interactive_document",
]
