from unittest.mock import Mock

import pytest

from twin_ide.core.protocol.bindings import (
    EVENT_ATTRIBUTE,
    SCRIPT_ATTRIBUTE,
    BindingRegistry,
    HandlerRegistry,
    component_type,
)
from twin_ide.core.utils import find_by_id, parse_svg

VALVE_SVG = """<svg xmlns="http://www.w3.org/2000/svg" id="line">
  <g id="group" data-script="group" data-event="click">
    <rect id="valve-1" data-script="valve" data-event="click"/>
    <rect id="plain"/>
  </g>
</svg>"""


@pytest.fixture
def valve_svg():
    return parse_svg(VALVE_SVG)


class TestHandlerRegistry:
    def test_register_script_ignores_extension(self, handlers):
        handler = Mock()
        handlers.register_script("tank.js", handler)
        assert handlers.script("tank") is handler
        assert handlers.script_names() == ["tank"]

    def test_empty_names_are_rejected(self, handlers):
        with pytest.raises(ValueError):
            handlers.register_script(".js", Mock())
        with pytest.raises(ValueError):
            handlers.register_component("")

    def test_component_lookup_prefers_exact_id(self, handlers, tank_svg):
        exact, typed, fallback = Mock(), Mock(), Mock()
        handlers.register_component("tank-1", update=exact)
        handlers.register_component("tank", update=typed)
        handlers.register_component(HandlerRegistry.DEFAULT, update=fallback)
        assert handlers.component_handlers(tank_svg, "tank-1").update is exact

    def test_component_lookup_uses_type_then_default(self, handlers, tank_svg):
        typed, fallback = Mock(), Mock()
        handlers.register_component("tank", update=typed)
        handlers.register_component(HandlerRegistry.DEFAULT, update=fallback)
        assert handlers.component_handlers(tank_svg, "tank-1").update is typed
        assert handlers.component_handlers(None, "mixer").update is fallback

    def test_component_lookup_miss_returns_none(self, handlers):
        assert handlers.component_handlers(None, "mixer-3") is None

    def test_unregister(self, handlers):
        handlers.register_component("tank", init=Mock())
        handlers.register_script("tank", Mock())
        assert handlers.unregister_component("tank") is True
        assert handlers.unregister_script("tank.js") is True
        assert handlers.unregister_component("tank") is False
        assert handlers.component_keys() == []


class TestComponentType:
    def test_declared_type_wins(self, pump_svg):
        assert component_type(pump_svg, "pump-1") == "pump"

    def test_id_prefix(self):
        assert component_type(None, "tank-1") == "tank"
        assert component_type(None, "main_pump") == "main"

    def test_plain_id_has_no_type(self):
        assert component_type(None, "tank") is None
        assert component_type(None, None) is None


class TestBindingRegistry:
    """Binding attributes, script resolution and event dispatch."""

    def test_resolve_ignores_extension(self, handlers):
        handler = Mock()
        handlers.register_script("tank", handler)
        bindings = BindingRegistry(handlers)
        assert bindings.resolve("tank.js") is handlers.script("tank")
        assert bindings.resolve("tank.js") is bindings.resolve("tank")
        assert bindings.resolve("scripts/tank.js") is handler

    def test_resolve_falls_back_to_handler_suffix(self, handlers):
        handler = Mock()
        handlers.register_script("alarmHandler", handler)
        assert BindingRegistry(handlers).resolve("alarm.js") is handler

    def test_resolve_unknown_returns_none(self, handlers):
        bindings = BindingRegistry(handlers)
        assert bindings.resolve("missing") is None
        assert bindings.resolve("") is None

    def test_bind_sets_attributes_with_default_event(self, handlers, valve_svg):
        element = find_by_id([valve_svg], "plain")
        binding = BindingRegistry(handlers).bind(element, None, "valve.js")

        assert element.get(SCRIPT_ATTRIBUTE) == "valve.js"
        assert element.get(EVENT_ATTRIBUTE) == "click"
        assert binding.to_dict() == {"elementId": "plain", "event": "click", "script": "valve.js"}

    def test_bind_requires_script(self, handlers, valve_svg):
        with pytest.raises(ValueError):
            BindingRegistry(handlers).bind(valve_svg, "click", "  ")

    def test_binding_for_unbound_element(self, valve_svg):
        assert BindingRegistry.binding_for(find_by_id([valve_svg], "plain")) is None

    def test_unbind_removes_attributes_and_listener(self, handlers, valve_svg):
        handlers.register_script("valve", Mock())
        bindings = BindingRegistry(handlers)
        bindings.install_listeners(valve_svg)
        valve = find_by_id([valve_svg], "valve-1")

        bindings.unbind(valve)
        assert valve.get(SCRIPT_ATTRIBUTE) is None
        assert bindings.listener_count() == 1

    def test_install_listeners_is_idempotent(self, handlers, valve_svg):
        bindings = BindingRegistry(handlers)
        assert bindings.install_listeners(valve_svg) == 2
        assert bindings.install_listeners(valve_svg) == 0
        assert bindings.uninstall_listeners(valve_svg) == 2
        assert bindings.listener_count() == 0

    def test_valve_click_invokes_handler_once(self, handlers):
        root = parse_svg('<svg id="line"><rect id="valve-1" data-script="valve" data-event="click"/></svg>')
        handler = Mock()
        handlers.register_script("valve", handler)
        bindings = BindingRegistry(handlers)
        bindings.install_listeners(root)

        valve = find_by_id([root], "valve-1")
        assert bindings.dispatch(valve, "click") == 1
        handler.assert_called_once()
        element, event, data = handler.call_args[0]
        assert element is valve
        assert event.type == "click"
        assert event.target is valve
        assert data == {}

    def test_event_bubbles_to_bound_ancestors(self, handlers, valve_svg):
        seen = []
        handlers.register_script("valve", lambda el, ev, data: seen.append(("valve", el.get("id"))))
        handlers.register_script("group", lambda el, ev, data: seen.append(("group", ev.target.get("id"))))
        bindings = BindingRegistry(handlers)
        bindings.install_listeners(valve_svg)

        assert bindings.dispatch(find_by_id([valve_svg], "valve-1")) == 2
        assert seen == [("valve", "valve-1"), ("group", "valve-1")]

    def test_other_event_types_are_not_delivered(self, handlers, valve_svg):
        handler = Mock()
        handlers.register_script("valve", handler)
        bindings = BindingRegistry(handlers)
        bindings.install_listeners(valve_svg)
        bindings.dispatch(find_by_id([valve_svg], "valve-1"), "mouseover")
        handler.assert_not_called()

    def test_rebinding_updates_installed_listener(self, handlers, valve_svg):
        handler = Mock()
        handlers.register_script("alarm", handler)
        bindings = BindingRegistry(handlers)
        bindings.install_listeners(valve_svg)
        valve = find_by_id([valve_svg], "valve-1")

        bindings.bind(valve, "mouseover", "alarm")
        assert bindings.dispatch(valve, "mouseover") == 1
        handler.assert_called_once()

    def test_failing_handler_is_not_counted(self, handlers, valve_svg):
        handlers.register_script("valve", Mock(side_effect=RuntimeError("boom")))
        bindings = BindingRegistry(handlers)
        bindings.install_listeners(valve_svg)
        assert bindings.dispatch(find_by_id([valve_svg], "valve-1")) == 0

    def test_handlers_receive_current_data(self, handlers, valve_svg):
        handler = Mock()
        handlers.register_script("valve", handler)
        bindings = BindingRegistry(handlers, data_provider=lambda: {"temperature": "25.0"})
        bindings.install_listeners(valve_svg)
        bindings.dispatch(find_by_id([valve_svg], "valve-1"))
        assert handler.call_args[0][2] == {"temperature": "25.0"}
