import pytest
from lxml import etree as ET

from twin_ide.core.utils import (
    find_by_id,
    generate_component_id,
    is_valid_xml_name,
    parse_svg,
    serialize_svg,
    slugify,
    strip_script_suffix,
    svg_root_of,
    to_pascal_case,
)


class TestScriptNames:
    """Script identifiers tolerate paths and extensions."""

    def test_strip_script_suffix(self):
        assert strip_script_suffix("tank.js") == "tank"
        assert strip_script_suffix("tank") == "tank"
        assert strip_script_suffix("scripts/tank.js") == "tank"
        assert strip_script_suffix("scripts\\tank.mjs") == "tank"
        assert strip_script_suffix(" valve.JS ") == "valve"
        assert strip_script_suffix("") == ""

    def test_to_pascal_case(self):
        assert to_pascal_case("tank-1") == "Tank1"
        assert to_pascal_case("main_pump") == "MainPump"
        assert to_pascal_case("valve") == "Valve"


class TestNames:
    def test_slugify(self):
        assert slugify("Main Line (v2)") == "main_line_v2"
        assert slugify("tank-level") == "tank_level"

    def test_generate_component_id(self):
        first = generate_component_id("tank")
        assert first.startswith("tank-")
        assert len(first) == len("tank-") + 8
        assert first != generate_component_id("tank")

    def test_is_valid_xml_name(self):
        assert is_valid_xml_name("temperature")
        assert is_valid_xml_name("data-valve-1")
        assert not is_valid_xml_name("1st-stage")
        assert not is_valid_xml_name("bad key")
        assert not is_valid_xml_name("ns:key")
        assert not is_valid_xml_name("")


class TestSvgHelpers:
    def test_parse_svg_requires_svg_root(self):
        with pytest.raises(ValueError):
            parse_svg("<html/>")
        with pytest.raises(ET.XMLSyntaxError):
            parse_svg("<svg><g></svg>")

    def test_parse_svg_does_not_expand_entities(self):
        root = parse_svg('<!DOCTYPE svg [<!ENTITY x "expanded">]><svg><text>&x;</text></svg>')
        assert "expanded" not in serialize_svg(root)

    def test_svg_root_of_nested_svg(self):
        root = parse_svg('<svg id="outer"><svg id="inner"><rect id="r"/></svg></svg>')
        assert svg_root_of(find_by_id([root], "r")) is root

    def test_find_by_id_across_roots(self):
        first = parse_svg('<svg id="a"><rect id="x"/></svg>')
        second = parse_svg('<svg id="b"><rect id="y"/></svg>')
        assert find_by_id([first, second], "y").getparent() is second
        assert find_by_id([first, second], "b") is second
        assert find_by_id([first, second], "z") is None
