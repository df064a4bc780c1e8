from __future__ import annotations

"""Simulation feed: acquire data snapshots and push them into metadata.

Snapshots come from a :class:`SnapshotSource` (the mock sensor API over HTTP
in the editor, or a local bounded-random generator when no API is
available).  :class:`SimulationFeedAdapter` merges each snapshot into every
SVG root of a canvas through the :class:`MetadataStore`; the resulting change
batch is what the :class:`UpdateCoordinator` reacts to.

Polling runs on a daemon thread while the feed is *running*.  Every
start/stop bumps a generation counter, and a snapshot fetched under an older
generation is discarded instead of being written late.
"""

import logging
import random
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Protocol, Sequence

import requests
from lxml import etree as ET

from twin_ide.core.exceptions import SnapshotFetchError, TwinIdeError
from twin_ide.core.models import DataSnapshot
from twin_ide.core.protocol.metadata_store import MetadataStore

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_FIELD_MAP",
    "DEFAULT_MOCK_RANGES",
    "SnapshotSource",
    "MockSnapshotSource",
    "HttpSnapshotSource",
    "SimulationFeedAdapter",
    "flatten_payload",
    "format_value",
]

DEFAULT_POLL_INTERVAL_MS = 3000

DEFAULT_MOCK_RANGES: Dict[str, Any] = {
    "temperature": [10, 40],
    "pressure": [900, 1000],
    "pressure_offset": 100,
    "tankLevel": [0, 100],
    "flow": [0, 100],
}

DEFAULT_FIELD_MAP: Dict[str, str] = {
    "temperature": "tank1.temperature",
    "pressure": "tank1.pressure",
    "tankLevel": "tank1.level",
    "level": "tank1.level",
    "status": "tank1.status",
    "flow": "pump1.flow",
    "power": "pump1.power",
    "rpm": "pump1.rpm",
    "pumpStatus": "pump1.status",
    "valvePosition": "valve1.position",
    "valve1Position": "valve1.position",
    "valve2Position": "valve2.position",
    "systemStatus": "system.status",
    "timestamp": "system.lastUpdated",
}


def format_value(value: Any) -> str:
    """Render a payload value as the string stored in metadata."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return f"{value:.1f}"
    if value is None:
        return ""
    return str(value)


def flatten_payload(payload: Mapping[str, Any], field_map: Mapping[str, str]) -> Dict[str, str]:
    """Pick dotted paths out of a nested API payload into a flat record.

    Paths missing from *payload* are skipped rather than reported, so a
    partial payload still yields a partial snapshot.
    """
    flat: Dict[str, str] = {}
    for key, path in field_map.items():
        node: Any = payload
        for part in path.split("."):
            if not isinstance(node, Mapping) or part not in node:
                node = None
                break
            node = node[part]
        if node is None or isinstance(node, (Mapping, list)):
            continue
        flat[key] = format_value(node)
    return flat


class SnapshotSource(Protocol):
    """Anything that can produce a :class:`DataSnapshot`."""

    def fetch_snapshot(self) -> DataSnapshot:
        ...


class MockSnapshotSource:
    """Bounded random values, the same ranges the generated documents use."""

    def __init__(self, ranges: Optional[Mapping[str, Any]] = None,
                 rng: Optional[random.Random] = None) -> None:
        self._ranges = dict(DEFAULT_MOCK_RANGES)
        self._ranges.update(ranges or {})
        self._rng = rng or random.Random()

    def _uniform(self, key: str) -> float:
        low, high = self._ranges[key]
        return self._rng.uniform(float(low), float(high))

    def fetch_snapshot(self) -> DataSnapshot:
        temperature = self._uniform("temperature")
        pressure = self._uniform("pressure") + self._rng.uniform(0, float(self._ranges["pressure_offset"]))
        level = self._uniform("tankLevel")
        flow = self._uniform("flow")
        status = "warning" if temperature > 30 or pressure > 1100 else "normal"
        now = datetime.now(timezone.utc)
        values = {
            "temperature": format_value(temperature),
            "pressure": str(int(round(pressure))),
            "tankLevel": format_value(level),
            "level": format_value(level),
            "flow": format_value(flow),
            "valvePosition": self._rng.choice(["open", "closed"]),
            "status": status,
            "timestamp": now.isoformat(),
        }
        return DataSnapshot(values=values, fetched_at=now, source="mock")


class HttpSnapshotSource:
    """Fetch snapshots from the mock sensor API (``GET <api_url>/api/data``)."""

    def __init__(self, api_url: str, *, timeout: float = 5,
                 field_map: Optional[Mapping[str, str]] = None,
                 session: Optional[requests.Session] = None) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.field_map = dict(field_map or DEFAULT_FIELD_MAP)
        self._session = session or requests.Session()

    @property
    def data_url(self) -> str:
        return f"{self.api_url}/api/data"

    def fetch_snapshot(self) -> DataSnapshot:
        url = self.data_url
        try:
            response = self._session.get(url, timeout=self.timeout)
        except requests.exceptions.Timeout as exc:
            raise SnapshotFetchError("Request timeout while fetching simulation data", url=url, cause=exc)
        except requests.exceptions.ConnectionError as exc:
            raise SnapshotFetchError("Connection error while fetching simulation data", url=url, cause=exc)
        except requests.exceptions.RequestException as exc:
            raise SnapshotFetchError(f"Request failed: {exc}", url=url, cause=exc)

        if response.status_code != 200:
            raise SnapshotFetchError(f"Failed to fetch simulation data: HTTP {response.status_code}", url=url)

        try:
            payload = response.json()
        except ValueError as exc:
            raise SnapshotFetchError("Invalid JSON in simulation data", url=url, cause=exc)
        if not isinstance(payload, Mapping):
            raise SnapshotFetchError("Simulation data is not a JSON object", url=url)

        return DataSnapshot(values=flatten_payload(payload, self.field_map), source="http")


class SimulationFeedAdapter:
    """Push simulation snapshots into the metadata of a set of SVG roots.

    Parameters
    ----------
    source : SnapshotSource
        Where snapshots come from.
    store : MetadataStore
        Store receiving the partial writes.
    roots_provider : callable
        Returns the SVG roots to update on each poll.
    interval_ms : int, default=3000
        Polling interval while running.
    """

    def __init__(self, source: SnapshotSource, store: MetadataStore,
                 roots_provider: Callable[[], Iterable[ET._Element]], *,
                 interval_ms: int = DEFAULT_POLL_INTERVAL_MS) -> None:
        self._source = source
        self._store = store
        self._roots_provider = roots_provider
        self._interval_ms = max(1, int(interval_ms))
        self._lock = threading.RLock()
        self._running = False
        self._generation = 0
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_snapshot: Optional[DataSnapshot] = None
        self._last_error: Optional[str] = None

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def last_snapshot(self) -> Optional[DataSnapshot]:
        return self._last_snapshot

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    def current_data(self) -> Dict[str, str]:
        """Values of the last applied snapshot (empty before the first one)."""
        snapshot = self._last_snapshot
        return dict(snapshot.values) if snapshot is not None else {}

    # -------------------------------------------------------------------------
    # Acquisition
    # -------------------------------------------------------------------------

    def fetch_snapshot(self) -> DataSnapshot:
        return self._source.fetch_snapshot()

    def apply_to_roots(self, snapshot: DataSnapshot, roots: Sequence[ET._Element]) -> int:
        """Merge *snapshot* into every root in one batch; returns roots written."""
        applied = 0
        with self._store.batch():
            for root in roots:
                try:
                    self._store.write(root, snapshot.values)
                    applied += 1
                except TwinIdeError as exc:
                    logger.error("Could not apply snapshot to %s: %s", root.get("id"), exc)
        logger.debug("Applied %s snapshot to %d root(s)", snapshot.source, applied)
        return applied

    def poll_once(self) -> bool:
        """Fetch one snapshot and apply it; False when skipped or discarded."""
        generation = self._generation
        try:
            snapshot = self.fetch_snapshot()
        except SnapshotFetchError as exc:
            self._last_error = str(exc)
            logger.warning("Simulation fetch failed, keeping previous values: %s", exc)
            return False

        roots = list(self._roots_provider())
        with self._store.batch():
            if generation != self._generation:
                logger.info("Discarding snapshot from stale poll generation %d (now %d)",
                            generation, self._generation)
                return False
            self._last_snapshot = snapshot
            self._last_error = None
            self.apply_to_roots(snapshot, roots)
        return True

    # -------------------------------------------------------------------------
    # Running / idle
    # -------------------------------------------------------------------------

    def start(self) -> bool:
        """Switch to running: poll immediately, then every ``interval_ms``."""
        with self._lock:
            if self._running:
                return False
            self._running = True
            self._generation += 1
            generation = self._generation
            wake = threading.Event()
            self._wake = wake
        logger.info("Simulation started (interval=%dms, generation=%d)", self._interval_ms, generation)

        try:
            self.poll_once()
        except Exception:
            # a source that cannot produce a first snapshot leaves the feed idle
            with self._lock:
                if self._generation == generation:
                    self._running = False
                    self._generation += 1
            logger.error("Simulation start aborted: first poll failed")
            raise

        thread = threading.Thread(target=self._run, args=(generation, wake),
                                  name="simulation-feed", daemon=True)
        self._thread = thread
        thread.start()
        return True

    def stop(self) -> bool:
        """Switch to idle; an in-flight fetch is left to finish and discarded."""
        with self._lock:
            if not self._running:
                return False
            self._running = False
            self._generation += 1
            wake = self._wake
        wake.set()
        logger.info("Simulation stopped (generation=%d)", self._generation)
        return True

    def toggle(self) -> bool:
        """Flip running/idle; returns the new running flag."""
        with self._lock:
            running = self._running
        if running:
            self.stop()
        else:
            self.start()
        with self._lock:
            return self._running

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _run(self, generation: int, wake: threading.Event) -> None:
        interval = self._interval_ms / 1000.0
        while not wake.wait(interval):
            if generation != self._generation:
                break
            try:
                self.poll_once()
            except Exception:
                # keep polling after unexpected source errors
                logger.exception("Simulation poll failed")
