import random

import pytest

from twin_ide.core.protocol.feed import DEFAULT_FIELD_MAP, flatten_payload
from twin_ide.core.services.sensor_simulation import SensorSimulation
from twin_ide.web import create_api_app


@pytest.fixture
def simulation():
    return SensorSimulation(rng=random.Random(0))


@pytest.fixture
def api(simulation):
    app = create_api_app(simulation)
    app.config["TESTING"] = True
    return app.test_client()


class TestSensorApi:
    def test_all_data(self, api):
        response = api.get("/api/data")
        assert response.status_code == 200
        data = response.get_json()
        assert set(data) == {"tank1", "pump1", "valve1", "valve2", "system"}
        assert data["system"]["lastUpdated"].endswith("Z")

    def test_cors_headers(self, api):
        response = api.get("/api/data")
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_component_data(self, api):
        response = api.get("/api/data/valve1")
        assert response.get_json()["position"] == "closed"

    def test_unknown_component(self, api):
        response = api.get("/api/data/mixer")
        assert response.status_code == 404
        assert response.get_json()["error"] == "Component mixer not found"

    def test_control_updates_model(self, api, simulation):
        response = api.post("/api/control/valve1", json={"position": "open"})
        assert response.status_code == 200
        assert response.get_json()["position"] == "open"
        assert simulation.component("valve1", advance=False)["position"] == "open"

    def test_control_requires_object(self, api):
        assert api.post("/api/control/valve1", json=["open"]).status_code == 400

    def test_control_unknown_component(self, api):
        assert api.post("/api/control/mixer", json={"status": "on"}).status_code == 404

    def test_feed_reads_api_payload(self, api):
        values = flatten_payload(api.get("/api/data").get_json(), DEFAULT_FIELD_MAP)
        assert values["valvePosition"] == "closed"
        assert values["pumpStatus"] == "off"
        assert "temperature" in values
