from __future__ import annotations

"""Metadata Store: key/value records embedded in SVG trees.

A metadata record is kept in memory as a plain ordered ``Dict[str, str]``.
On disk (inside the SVG) the same record is dual-encoded on a ``<metadata>``
node so that both the editor canvas and scripts in generated documents can
consult either form:

.. code-block:: xml

    <svg id="tank">
      <metadata data-temperature="25" data-status="normal">
        <temperature>25</temperature>
        <status>normal</status>
        <data key="1st-stage">open</data>
      </metadata>
      ...
    </svg>

``decode_record`` / ``encode_record`` are the only functions that touch the
encoding; ``MetadataStore`` builds read/write, batching and change
notification on top of them.

Change notification
-------------------
Every write produces a :class:`MetadataChange`.  Writes issued inside
``with store.batch():`` are delivered to subscribers together, once, when the
outermost batch exits; a write outside any batch is a batch of its own.
Writes made by subscribers while a delivery is in progress are queued and
delivered in a follow-up round (bounded by ``max_cascade``).
"""

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from lxml import etree as ET

from twin_ide.core.exceptions import MetadataKeyError
from twin_ide.core.models import MetadataChange
from twin_ide.core.utils import SVG_NS, is_valid_xml_name, local_name, make_svg_element, svg_root_of

logger = logging.getLogger(__name__)

__all__ = [
    "METADATA_TAG",
    "ATTRIBUTE_PREFIX",
    "MetadataStore",
    "decode_record",
    "encode_record",
    "find_metadata_node",
]

METADATA_TAG = "metadata"
ATTRIBUTE_PREFIX = "data-"
GENERIC_ENTRY_TAG = "data"

ChangeSubscriber = Callable[[List[MetadataChange]], None]


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

def _direct_metadata_child(element: ET._Element) -> Optional[ET._Element]:
    for child in element:
        if local_name(child) == METADATA_TAG:
            return child
    return None


def find_metadata_node(element: ET._Element) -> Optional[ET._Element]:
    """Return the nearest ``<metadata>`` node for *element*.

    The element's own direct child wins; otherwise the owning SVG root's
    direct child is used.  ``None`` when neither exists.
    """
    if local_name(element) == METADATA_TAG:
        return element
    node = _direct_metadata_child(element)
    if node is not None:
        return node
    root = svg_root_of(element)
    if root is element:
        return None
    return _direct_metadata_child(root)


def _entry_key(child: ET._Element, node_namespace: Optional[str]) -> Optional[str]:
    """Return the record key carried by *child*, or None if it is not an entry."""
    if not isinstance(child.tag, str) or len(child):
        return None
    namespace = ET.QName(child).namespace
    if namespace not in (None, node_namespace, SVG_NS):
        # foreign payloads such as Inkscape's rdf:RDF
        return None
    name = ET.QName(child).localname
    if name == GENERIC_ENTRY_TAG:
        return child.get("key") or None
    if name.startswith(ATTRIBUTE_PREFIX) and len(name) > len(ATTRIBUTE_PREFIX):
        return name[len(ATTRIBUTE_PREFIX):]
    return name


def _entry_children(node: ET._Element, key: str) -> List[ET._Element]:
    namespace = ET.QName(node).namespace
    return [child for child in node if _entry_key(child, namespace) == key]


def decode_record(node: Optional[ET._Element]) -> Dict[str, str]:
    """Deserialize a ``<metadata>`` node into a flat record.

    Child-element entries are read first, then ``data-*`` attributes, so the
    attribute value wins when both encodings disagree.  Anything that is not
    a recognisable entry is ignored.
    """
    record: Dict[str, str] = {}
    if node is None:
        return record
    namespace = ET.QName(node).namespace
    for child in node:
        key = _entry_key(child, namespace)
        if key is not None:
            record[key] = child.text or ""
    for name, value in node.attrib.items():
        if name.startswith("{"):
            continue
        if name.startswith(ATTRIBUTE_PREFIX) and len(name) > len(ATTRIBUTE_PREFIX):
            record[name[len(ATTRIBUTE_PREFIX):]] = value
    return record


def encode_record(node: ET._Element, record: Mapping[str, str],
                  removed: Sequence[str] = ()) -> None:
    """Serialize *record* onto *node* in both encodings.

    Keys in *removed* lose their attribute and every entry child.  For every
    key in *record* the ``data-<key>`` attribute is set and exactly one entry
    child is kept, created as ``<key>`` or, when *key* is not a valid element
    name or itself starts with ``data-``, as ``<data key="key">``.  A
    ``<data-key>`` child is only ever read, as the older spelling of ``<key>``.
    """
    for key in removed:
        node.attrib.pop(f"{ATTRIBUTE_PREFIX}{key}", None)
        for child in _entry_children(node, key):
            node.remove(child)

    for key, value in record.items():
        node.set(f"{ATTRIBUTE_PREFIX}{key}", value)
        children = _entry_children(node, key)
        if children:
            entry = children[0]
            for duplicate in children[1:]:
                node.remove(duplicate)
        elif _plain_entry_name(key):
            entry = make_svg_element(node, key)
        else:
            entry = make_svg_element(node, GENERIC_ENTRY_TAG)
            entry.set("key", key)
        entry.text = value


def _plain_entry_name(key: str) -> bool:
    return (key != GENERIC_ENTRY_TAG
            and not key.startswith(ATTRIBUTE_PREFIX)
            and is_valid_xml_name(key))


def _normalise(mapping: Mapping[str, object]) -> Dict[str, str]:
    record: Dict[str, str] = {}
    for key, value in mapping.items():
        key = str(key)
        if not key or not is_valid_xml_name(f"{ATTRIBUTE_PREFIX}{key}"):
            raise MetadataKeyError(key)
        record[key] = "" if value is None else str(value)
    return record


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

class MetadataStore:
    """Read/write metadata records and publish change batches.

    Parameters
    ----------
    max_cascade : int, default=10
        Maximum number of delivery rounds triggered by subscribers writing
        metadata while being notified.  Further rounds are dropped with a
        warning.
    """

    SCOPE_ROOT = "root"
    SCOPE_ELEMENT = "element"

    def __init__(self, *, max_cascade: int = 10) -> None:
        self._lock = threading.RLock()
        self._subscribers: List[ChangeSubscriber] = []
        self._pending: List[MetadataChange] = []
        self._depth = 0
        self._delivering = False
        self._max_cascade = max(1, int(max_cascade))

    # ------------------------------------------------------------------ read

    def read(self, element: ET._Element) -> Dict[str, str]:
        """Return the record for *element* (empty when no metadata exists)."""
        with self._lock:
            return decode_record(find_metadata_node(element))

    def get(self, element: ET._Element, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.read(element).get(key, default)

    # ----------------------------------------------------------------- write

    def write(self, element: ET._Element, mapping: Mapping[str, object], *,
              replace: bool = False, scope: str = SCOPE_ROOT) -> Dict[str, str]:
        """Write *mapping* into the record for *element* and return the result.

        ``replace=False`` merges (keys not in *mapping* are kept);
        ``replace=True`` removes keys absent from *mapping*.  With
        ``scope="element"`` a missing record is created on the element itself
        instead of on the owning SVG root.

        Raises
        ------
        MetadataKeyError
            If a key cannot form a ``data-<key>`` attribute.  Nothing is
            written in that case.
        """
        record = _normalise(mapping)
        with self._lock:
            root = svg_root_of(element)
            node = self._locate_for_write(element, root, scope)
            current = decode_record(node)
            removed = [key for key in current if key not in record] if replace else []
            changed = [key for key in record if current.get(key) != record[key]]
            encode_record(node, record, removed)

            owner = node.getparent()
            logger.debug("Metadata write owner=%s keys=%s removed=%s",
                         owner.get("id") if owner is not None else None, changed, removed)
            self._record_change(MetadataChange(root=root, owner=owner, keys=tuple(changed + removed)))
            return decode_record(node)

    @contextmanager
    def batch(self) -> Iterator["MetadataStore"]:
        """Group writes so subscribers receive them as a single delivery."""
        with self._lock:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
                if self._depth == 0 and not self._delivering:
                    self._flush()

    # ---------------------------------------------------------- subscription

    def subscribe(self, callback: ChangeSubscriber) -> None:
        with self._lock:
            if callback not in self._subscribers:
                self._subscribers.append(callback)

    def unsubscribe(self, callback: ChangeSubscriber) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    # ------------------------------------------------------------- internals

    def _locate_for_write(self, element: ET._Element, root: ET._Element, scope: str) -> ET._Element:
        if local_name(element) == METADATA_TAG:
            return element
        own = _direct_metadata_child(element)
        if own is not None:
            return own
        if scope == self.SCOPE_ELEMENT and element is not root:
            return make_svg_element(element, METADATA_TAG, index=0)
        node = _direct_metadata_child(root)
        if node is None:
            node = make_svg_element(root, METADATA_TAG, index=0)
        return node

    def _record_change(self, change: MetadataChange) -> None:
        self._pending.append(change)
        if self._depth == 0 and not self._delivering:
            self._flush()

    def _flush(self) -> None:
        self._delivering = True
        try:
            rounds = 0
            while self._pending:
                if rounds >= self._max_cascade:
                    logger.warning("Metadata change cascade exceeded %d rounds; dropping %d change(s)",
                                   self._max_cascade, len(self._pending))
                    self._pending.clear()
                    break
                changes, self._pending = self._pending, []
                rounds += 1
                for callback in list(self._subscribers):
                    try:
                        callback(list(changes))
                    except Exception:
                        logger.exception("Metadata subscriber %r failed", callback)
        finally:
            self._delivering = False
