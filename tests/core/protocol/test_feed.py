import random
from unittest.mock import Mock

import pytest
import requests

from twin_ide.core.exceptions import SnapshotFetchError
from twin_ide.core.models import DataSnapshot
from twin_ide.core.protocol.feed import (
    DEFAULT_FIELD_MAP,
    HttpSnapshotSource,
    MockSnapshotSource,
    SimulationFeedAdapter,
    flatten_payload,
    format_value,
)

API_PAYLOAD = {
    "tank1": {"temperature": 25.3, "pressure": 1013, "level": 50, "status": "standby"},
    "pump1": {"rpm": 0, "power": 0, "flow": 0, "status": "off"},
    "valve1": {"position": "closed", "flow": 0},
    "valve2": {"position": "open", "flow": 0},
    "system": {"status": "normal", "alarms": [], "lastUpdated": "2024-05-01T10:00:00.000Z"},
}


def _response(status=200, payload=None, json_error=None):
    response = Mock()
    response.status_code = status
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = payload
    return response


def _session(response=None, error=None):
    session = Mock()
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value = response
    return session


class FixedSource:
    def __init__(self, values):
        self.values = values
        self.calls = 0

    def fetch_snapshot(self):
        self.calls += 1
        return DataSnapshot(values=dict(self.values), source="fixed")


class FailingSource:
    def fetch_snapshot(self):
        raise SnapshotFetchError("Connection error while fetching simulation data", url="http://api")


class TestPayloadHelpers:
    def test_format_value(self):
        assert format_value(True) == "true"
        assert format_value(False) == "false"
        assert format_value(25.26) == "25.3"
        assert format_value(1013) == "1013"
        assert format_value(None) == ""
        assert format_value("open") == "open"

    def test_flatten_payload_uses_field_map(self):
        flat = flatten_payload(API_PAYLOAD, DEFAULT_FIELD_MAP)
        assert flat["temperature"] == "25.3"
        assert flat["pressure"] == "1013"
        assert flat["tankLevel"] == "50"
        assert flat["valve2Position"] == "open"
        assert flat["timestamp"] == "2024-05-01T10:00:00.000Z"

    def test_flatten_payload_skips_missing_and_nested(self):
        flat = flatten_payload({"tank1": {"temperature": 20}},
                               {"temperature": "tank1.temperature", "flow": "pump1.flow",
                                "tank": "tank1", "alarms": "system.alarms"})
        assert flat == {"temperature": "20"}


class TestMockSnapshotSource:
    def test_values_stay_in_range(self):
        source = MockSnapshotSource(rng=random.Random(7))
        for _ in range(50):
            values = source.fetch_snapshot().values
            assert 10 <= float(values["temperature"]) <= 40
            assert 900 <= int(values["pressure"]) <= 1100
            assert 0 <= float(values["tankLevel"]) <= 100
            assert values["level"] == values["tankLevel"]
            assert values["valvePosition"] in ("open", "closed")
            expected = "warning" if float(values["temperature"]) > 30 or int(values["pressure"]) > 1100 else "normal"
            # status is decided before rounding, so only check the clear-cut cases
            if abs(float(values["temperature"]) - 30) > 0.1:
                assert values["status"] == expected

    def test_snapshot_is_tagged_mock(self):
        snapshot = MockSnapshotSource(rng=random.Random(1)).fetch_snapshot()
        assert snapshot.source == "mock"
        assert "timestamp" in snapshot.values

    def test_custom_ranges(self):
        source = MockSnapshotSource({"temperature": [0, 1]}, rng=random.Random(3))
        assert float(source.fetch_snapshot().values["temperature"]) <= 1.0


class TestHttpSnapshotSource:
    """Every acquisition failure surfaces as SnapshotFetchError."""

    def test_success_flattens_payload(self):
        session = _session(_response(payload=API_PAYLOAD))
        source = HttpSnapshotSource("http://api:5011/", timeout=2, session=session)

        snapshot = source.fetch_snapshot()
        session.get.assert_called_once_with("http://api:5011/api/data", timeout=2)
        assert snapshot.source == "http"
        assert snapshot.values["temperature"] == "25.3"

    @pytest.mark.parametrize("error, message", [
        (requests.exceptions.Timeout("slow"), "timeout"),
        (requests.exceptions.ConnectionError("refused"), "Connection error"),
        (requests.exceptions.InvalidURL("bad"), "Request failed"),
    ])
    def test_transport_errors(self, error, message):
        source = HttpSnapshotSource("http://api", session=_session(error=error))
        with pytest.raises(SnapshotFetchError) as excinfo:
            source.fetch_snapshot()
        assert message in str(excinfo.value)
        assert excinfo.value.cause is error
        assert excinfo.value.url == "http://api/api/data"

    def test_non_200_status(self):
        source = HttpSnapshotSource("http://api", session=_session(_response(status=503)))
        with pytest.raises(SnapshotFetchError, match="HTTP 503"):
            source.fetch_snapshot()

    def test_invalid_json(self):
        source = HttpSnapshotSource("http://api", session=_session(_response(json_error=ValueError("bad"))))
        with pytest.raises(SnapshotFetchError, match="Invalid JSON"):
            source.fetch_snapshot()

    def test_non_object_payload(self):
        source = HttpSnapshotSource("http://api", session=_session(_response(payload=[1, 2])))
        with pytest.raises(SnapshotFetchError, match="not a JSON object"):
            source.fetch_snapshot()


class TestSimulationFeedAdapter:
    """Polling, running/idle transitions and stale-poll discard."""

    def test_poll_once_applies_to_every_root(self, store, tank_svg, pump_svg):
        adapter = SimulationFeedAdapter(FixedSource({"temperature": "31.0"}), store,
                                        lambda: [tank_svg, pump_svg])
        assert adapter.poll_once() is True
        assert store.get(tank_svg, "temperature") == "31.0"
        assert store.get(pump_svg, "temperature") == "31.0"
        assert store.get(tank_svg, "status") == "normal"
        assert adapter.current_data() == {"temperature": "31.0"}
        assert adapter.last_error is None

    def test_snapshot_is_one_batch(self, store, tank_svg, pump_svg):
        deliveries = []
        store.subscribe(deliveries.append)
        adapter = SimulationFeedAdapter(FixedSource({"level": "1"}), store,
                                        lambda: [tank_svg, pump_svg])
        adapter.poll_once()
        assert len(deliveries) == 1
        assert len(deliveries[0]) == 2

    def test_fetch_error_leaves_metadata_unchanged(self, store, tank_svg):
        before = store.read(tank_svg)
        adapter = SimulationFeedAdapter(FailingSource(), store, lambda: [tank_svg])

        assert adapter.poll_once() is False
        assert store.read(tank_svg) == before
        assert "Connection error" in adapter.last_error
        assert adapter.last_snapshot is None

    def test_error_is_cleared_by_next_success(self, store, tank_svg):
        source = Mock()
        source.fetch_snapshot.side_effect = [
            SnapshotFetchError("Request timeout while fetching simulation data"),
            DataSnapshot(values={"level": "20"}),
        ]
        adapter = SimulationFeedAdapter(source, store, lambda: [tank_svg])
        adapter.poll_once()
        assert adapter.last_error is not None
        adapter.poll_once()
        assert adapter.last_error is None
        assert store.get(tank_svg, "level") == "20"

    def test_stale_poll_is_discarded(self, store, tank_svg):
        adapter = None

        class StoppingSource:
            def fetch_snapshot(self):
                # the user stops the simulation while this fetch is in flight
                adapter.stop()
                return DataSnapshot(values={"temperature": "99.0"})

        adapter = SimulationFeedAdapter(StoppingSource(), store, lambda: [tank_svg], interval_ms=60000)
        adapter.start()
        adapter.join(timeout=2)

        assert adapter.is_running is False
        assert store.get(tank_svg, "temperature") == "25"
        assert adapter.last_snapshot is None

    def test_start_polls_immediately_and_stop_goes_idle(self, store, tank_svg):
        source = FixedSource({"level": "42"})
        adapter = SimulationFeedAdapter(source, store, lambda: [tank_svg], interval_ms=60000)

        assert adapter.start() is True
        assert adapter.start() is False
        assert adapter.is_running is True
        assert source.calls == 1
        assert store.get(tank_svg, "level") == "42"

        assert adapter.stop() is True
        assert adapter.stop() is False
        adapter.join(timeout=2)
        assert adapter.is_running is False
        assert adapter.generation == 2

    def test_toggle(self, store, tank_svg):
        adapter = SimulationFeedAdapter(FixedSource({"level": "1"}), store, lambda: [tank_svg],
                                        interval_ms=60000)
        assert adapter.toggle() is True
        assert adapter.toggle() is False
        adapter.join(timeout=2)

    def test_broken_source_leaves_feed_idle(self, store, tank_svg):
        source = Mock()
        source.fetch_snapshot.side_effect = KeyError("temperature")
        adapter = SimulationFeedAdapter(source, store, lambda: [tank_svg], interval_ms=60000)

        with pytest.raises(KeyError):
            adapter.start()
        assert adapter.is_running is False
        assert adapter.generation == 2

        source.fetch_snapshot.side_effect = None
        source.fetch_snapshot.return_value = DataSnapshot(values={"level": "5"})
        assert adapter.toggle() is True
        assert store.get(tank_svg, "level") == "5"
        adapter.stop()
        adapter.join(timeout=2)

    def test_background_polling(self, store, tank_svg):
        source = FixedSource({"level": "7"})
        adapter = SimulationFeedAdapter(source, store, lambda: [tank_svg], interval_ms=10)
        adapter.start()
        try:
            for _ in range(200):
                if source.calls >= 3:
                    break
                adapter.join(timeout=0.01)
        finally:
            adapter.stop()
            adapter.join(timeout=2)
        assert source.calls >= 3
