"""Shared fixtures for the Digital Twin Interactions IDE test-suite.

Every test runs with an isolated configuration directory and without the
environment overrides a developer shell may carry, so ``ConfigManager``
always starts from the packaged YAML files.
"""

import shutil
from pathlib import Path

import pytest

from twin_ide.config import ConfigManager
from twin_ide.core.protocol.bindings import HandlerRegistry
from twin_ide.core.protocol.metadata_store import MetadataStore
from twin_ide.core.services.resource_service import ResourceStore
from twin_ide.core.utils import parse_svg
from twin_ide.web import create_app

SAMPLE_RESOURCES = Path(__file__).parent.parent / "resources"

_ENV_VARS = (
    "PORT", "HOST", "API_PORT", "APP_NAME", "NODE_ENV", "TWIN_IDE_ENV", "DEBUG_MODE",
    "RESOURCES_DIR", "OUTPUT_DIR", "SIMULATION_API_URL", "SIMULATION_SOURCE",
)

TANK_SVG = """<svg xmlns="http://www.w3.org/2000/svg" id="tank-1" width="250" height="300">
  <metadata data-temperature="25" data-level="50" data-status="normal">
    <temperature>25</temperature>
    <level>50</level>
    <status>normal</status>
  </metadata>
  <rect id="tank-body" x="50" y="50" width="150" height="200"/>
  <rect id="tank-level" x="52" y="150" width="146" height="100"/>
  <text id="tank-temp">Temperature</text>
  <text id="tank-press">Pressure</text>
  <text id="tank-title">Storage Tank</text>
</svg>"""

PUMP_SVG = """<svg xmlns="http://www.w3.org/2000/svg" id="pump-1" data-component="pump">
  <metadata>
    <data key="state">off</data>
  </metadata>
  <circle id="pumpBody" cx="80" cy="80" r="60"/>
  <path id="impeller" d="M80 35 L88 80 Z"/>
  <circle id="statusLight" cx="140" cy="20" r="8"/>
</svg>"""


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point user overrides at an empty folder and drop env overrides."""
    monkeypatch.setenv("TWIN_IDE_CONFIG_DIR", str(tmp_path / "user-config"))
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    ConfigManager.reset()
    yield
    ConfigManager.reset()


@pytest.fixture
def store():
    return MetadataStore()


@pytest.fixture
def handlers():
    return HandlerRegistry()


@pytest.fixture
def tank_svg():
    return parse_svg(TANK_SVG)


@pytest.fixture
def pump_svg():
    return parse_svg(PUMP_SVG)


@pytest.fixture
def resources_dir(tmp_path):
    """A writable copy of the sample resources shipped with the repository."""
    target = tmp_path / "resources"
    shutil.copytree(SAMPLE_RESOURCES, target)
    return target


@pytest.fixture
def resources(resources_dir, tmp_path):
    return ResourceStore(resources_dir, tmp_path / "generated")


@pytest.fixture
def app(resources_dir, tmp_path):
    """IDE application on the sample resources, fed by the local mock source."""
    app = create_app(
        server_overrides={"resources_dir": str(resources_dir), "output_dir": str(tmp_path / "generated")},
        simulation_overrides={"source": "mock", "poll_interval_ms": 60000},
    )
    app.config["TESTING"] = True
    yield app
    session = app.extensions["twin_ide"]["session"]
    session.close()
    session.feed.join(timeout=2)


@pytest.fixture
def client(app):
    return app.test_client()
