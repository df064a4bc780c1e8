"""Small helpers shared by the example component handlers."""

from typing import Dict, List, Optional

from lxml import etree as ET

from twin_ide.core.utils import local_name

__all__ = [
    "parse_number",
    "format_number",
    "find_part",
    "elements_with_id_prefix",
    "set_style",
    "child_named",
]


def parse_number(record: Dict[str, str], key: str) -> Optional[float]:
    """Return ``record[key]`` as float, or None when absent or not numeric."""
    try:
        return float(record[key])
    except (KeyError, TypeError, ValueError):
        return None


def format_number(value: float) -> str:
    """Render an attribute number the way SVG authors write it (``90.4``, ``100``)."""
    value = round(value, 3)
    if value == int(value):
        return str(int(value))
    return f"{value:g}"


def find_part(scope: ET._Element, *names: str) -> Optional[ET._Element]:
    """Find a sub-element of *scope* by id or, failing that, by class token."""
    for name in names:
        if scope.get("id") == name:
            return scope
        matches = scope.xpath(".//*[@id=$v]", v=name)
        if matches:
            return matches[0]
    for name in names:
        matches = scope.xpath(
            ".//*[contains(concat(' ', normalize-space(@class), ' '), $v)]", v=f" {name} ")
        if matches:
            return matches[0]
    return None


def elements_with_id_prefix(scope: ET._Element, prefix: str) -> List[ET._Element]:
    found = [scope] if (scope.get("id") or "").startswith(prefix) else []
    found.extend(scope.xpath(".//*[starts-with(@id, $p)]", p=prefix))
    return found


def set_style(element: ET._Element, prop: str, value: str) -> None:
    """Set one inline CSS property, keeping the others."""
    rules = {}
    for chunk in (element.get("style") or "").split(";"):
        if ":" in chunk:
            key, _, val = chunk.partition(":")
            rules[key.strip()] = val.strip()
    rules[prop] = value
    element.set("style", "; ".join(f"{k}: {v}" for k, v in rules.items()))


def child_named(element: ET._Element, name: str) -> Optional[ET._Element]:
    for child in element:
        if local_name(child) == name:
            return child
    return None
