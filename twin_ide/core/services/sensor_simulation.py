from __future__ import annotations

"""Stateful mock sensor model served by the simulation API.

The model holds one tank, one pump, two valves and a system record.  Each
read advances it one step: tank temperature and pressure drift randomly, the
level follows the valve positions and the pump flow follows its power and
the valves.
"""

import copy
import logging
import random
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from twin_ide.core.exceptions import UnknownComponentError

logger = logging.getLogger(__name__)

__all__ = ["SensorSimulation", "initial_state"]

LEVEL_STEP = 0.1


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _as_number(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def initial_state() -> Dict[str, Dict[str, Any]]:
    now = _now()
    return {
        "tank1": {"temperature": 25, "pressure": 1013, "level": 50, "status": "standby", "lastUpdated": now},
        "pump1": {"rpm": 0, "power": 0, "flow": 0, "status": "off", "lastUpdated": now},
        "valve1": {"position": "closed", "flow": 0, "status": "ok", "lastUpdated": now},
        "valve2": {"position": "closed", "flow": 0, "status": "ok", "lastUpdated": now},
        "system": {"status": "normal", "alarms": [], "notifications": [], "lastUpdated": now},
    }


class SensorSimulation:
    """Process model behind ``/api/data`` and ``/api/control``.

    All access goes through a lock; returned dictionaries are copies.
    """

    def __init__(self, rng: Optional[random.Random] = None,
                 state: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self._rng = rng or random.Random()
        self._state = state if state is not None else initial_state()
        self._lock = threading.Lock()

    def components(self) -> list[str]:
        with self._lock:
            return list(self._state)

    def update(self) -> None:
        """Advance the model by one step."""
        with self._lock:
            self._step()

    def snapshot(self, advance: bool = True) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            if advance:
                self._step()
            return copy.deepcopy(self._state)

    def component(self, name: str, advance: bool = True) -> Dict[str, Any]:
        with self._lock:
            if name not in self._state:
                raise UnknownComponentError(name)
            if advance:
                self._step()
            return copy.deepcopy(self._state[name])

    def apply_control(self, name: str, updates: Mapping[str, Any]) -> Dict[str, Any]:
        """Apply a control request to one component and return its new state.

        Only keys the component already has are written; ``lastUpdated`` is
        never taken from the request.  Switching the pump off zeroes its rpm
        and flow.
        """
        with self._lock:
            record = self._state.get(name)
            if record is None:
                raise UnknownComponentError(name)
            ignored = []
            for key, value in updates.items():
                if key in record and key != "lastUpdated":
                    record[key] = value
                else:
                    ignored.append(key)
            record["lastUpdated"] = _now()
            if name == "pump1" and "status" in updates and updates["status"] == "off":
                record["rpm"] = 0
                record["flow"] = 0
            if ignored:
                logger.debug("Ignored control keys for %s: %s", name, ignored)
            logger.info("Control applied to %s: %s", name, {k: v for k, v in updates.items() if k not in ignored})
            return copy.deepcopy(record)

    # ------------------------------------------------------------------
    # Model step (caller holds the lock)
    # ------------------------------------------------------------------
    def _step(self) -> None:
        tank = self._state["tank1"]
        pump = self._state["pump1"]
        valve1 = self._state["valve1"]
        valve2 = self._state["valve2"]

        tank["temperature"] = round(_as_number(tank["temperature"]) + (self._rng.random() - 0.5) * 0.2, 1)
        tank["pressure"] = int(round(_as_number(tank["pressure"]) + (self._rng.random() - 0.5) * 2))

        level = _as_number(tank["level"])
        v1_open = valve1["position"] == "open"
        v2_open = valve2["position"] == "open"
        v1_closed = valve1["position"] == "closed"
        v2_closed = valve2["position"] == "closed"
        if v1_open and v2_closed:
            level += LEVEL_STEP
        elif v1_closed and v2_open:
            level -= LEVEL_STEP
        tank["level"] = round(max(0.0, min(100.0, level)), 1)

        if pump["status"] == "on":
            flow = _as_number(pump["power"]) / 100 * 100
            if v1_closed and v2_closed:
                flow = 0.0
            elif v1_closed or v2_closed:
                flow *= 0.5
            pump["flow"] = round(flow, 1)
            valve1["flow"] = pump["flow"] if v1_open else 0
            valve2["flow"] = pump["flow"] if v2_open else 0
        else:
            pump["flow"] = 0
            valve1["flow"] = 0
            valve2["flow"] = 0

        now = _now()
        for record in self._state.values():
            record["lastUpdated"] = now
