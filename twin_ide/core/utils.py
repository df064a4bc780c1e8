from __future__ import annotations

"""Simple reusable helper functions.

These helpers are side-effect-free and contain no HTTP or disk I/O; they can
be used across all layers of the IDE.
"""

from typing import Iterable, List, Optional
import logging
import re
import uuid

from lxml import etree as ET

__all__ = [
    "SVG_NS",
    "slugify",
    "generate_component_id",
    "local_name",
    "svg_root_of",
    "make_svg_element",
    "parse_svg",
    "serialize_svg",
    "is_valid_xml_name",
    "strip_script_suffix",
    "to_pascal_case",
    "iter_elements",
    "find_by_id",
]

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"

_SCRIPT_SUFFIX_RE = re.compile(r"\.(?:m?js|cjs|ts)$", re.IGNORECASE)


def slugify(text: str) -> str:
    """Return a file-system-safe slug version of *text*.

    Removes non-alphanumeric chars, converts whitespace/dashes to underscores,
    and lower-cases the result.
    """
    text = re.sub(r"[^\w\s-]", "", text).strip().lower()
    return re.sub(r"[-\s]+", "_", text)


def generate_component_id(prefix: str = "svg") -> str:
    """Generate a unique element id for assets loaded without one."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def local_name(element: ET._Element) -> str:
    """Return the tag of *element* without its namespace ('' for comments/PIs)."""
    tag = element.tag
    if not isinstance(tag, str):
        return ""
    return ET.QName(tag).localname


def svg_root_of(element: ET._Element) -> ET._Element:
    """Return the outermost ``<svg>`` ancestor-or-self of *element*.

    Falls back to the tree root when no ``<svg>`` element is found, so
    fragments built in tests still have an owner.
    """
    root = None
    node: Optional[ET._Element] = element
    while node is not None:
        if local_name(node) == "svg":
            root = node
        node = node.getparent()
    if root is not None:
        return root
    return element.getroottree().getroot()


def make_svg_element(parent: ET._Element, name: str, index: Optional[int] = None) -> ET._Element:
    """Create ``<name>`` in *parent*'s namespace, appended or inserted at *index*."""
    tag = name
    if isinstance(parent.tag, str):
        namespace = ET.QName(parent.tag).namespace
        if namespace:
            tag = f"{{{namespace}}}{name}"
    element = ET.Element(tag)
    if index is None:
        parent.append(element)
    else:
        parent.insert(index, element)
    return element


def parse_svg(content: str | bytes) -> ET._Element:
    """Parse SVG text into an element without resolving entities or fetching DTDs.

    Raises ``lxml.etree.XMLSyntaxError`` for malformed documents and
    ``ValueError`` when the root element is not ``<svg>``.
    """
    parser = ET.XMLParser(resolve_entities=False, no_network=True, remove_blank_text=False)
    if isinstance(content, str):
        content = content.encode("utf-8")
    root = ET.fromstring(content.strip(), parser=parser)
    if local_name(root) != "svg":
        raise ValueError(f"Root element is <{local_name(root)}>, expected <svg>")
    return root


def serialize_svg(root: ET._Element, *, pretty: bool = False) -> str:
    """Serialise *root* to a unicode string without XML declaration."""
    return ET.tostring(root, encoding="unicode", pretty_print=pretty)


def is_valid_xml_name(name: str) -> bool:
    """Return True when *name* can be used as an element or attribute name."""
    if not name or ":" in name:
        return False
    try:
        ET.QName(name)
    except ValueError:
        return False
    return True


def strip_script_suffix(script_id: str) -> str:
    """Reduce a script identifier to its base name.

    Tolerates presence or absence of a path and a ``.js``-like extension:

    >>> strip_script_suffix("scripts/tank.js")
    'tank'
    >>> strip_script_suffix("tank")
    'tank'
    """
    base = (script_id or "").strip().replace("\\", "/").rsplit("/", 1)[-1]
    return _SCRIPT_SUFFIX_RE.sub("", base)


def to_pascal_case(identifier: str) -> str:
    """Turn ``tank-1`` / ``main_pump`` into ``Tank1`` / ``MainPump``."""
    parts = re.split(r"[^0-9A-Za-z]+", identifier or "")
    return "".join(p[:1].upper() + p[1:] for p in parts if p)


def iter_elements(root: ET._Element) -> Iterable[ET._Element]:
    """Yield *root* and every descendant element, skipping comments and PIs."""
    for node in root.iter():
        if isinstance(node.tag, str):
            yield node


def find_by_id(roots: Iterable[ET._Element], element_id: str) -> Optional[ET._Element]:
    """Return the first element whose ``id`` equals *element_id* across *roots*."""
    for root in roots:
        if root.get("id") == element_id:
            return root
        matches: List[ET._Element] = root.xpath(".//*[@id=$eid]", eid=element_id)
        if matches:
            return matches[0]
    return None
