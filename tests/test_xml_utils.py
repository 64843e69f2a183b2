"""Tests for wrapping / unwrapping draw.io XML."""

import re
import xml.etree.ElementTree as ET

from drawio_chat.models import Diagram
from drawio_chat.xml_utils import (
    ROOT_CELLS,
    clean_llm_content,
    extract_cells,
    extract_graph_model,
    wrap_as_display_document,
    wrap_as_graph_model,
)

from conftest import CELL_START

CELLS = (
    CELL_START + "\n"
    '<mxCell id="3" value="End" style="ellipse;" vertex="1" parent="1">'
    '<mxGeometry x="40" y="200" width="120" height="60" as="geometry"/></mxCell>\n'
    '<mxCell id="4" edge="1" parent="1" source="2" target="3"/>'
)


def _ids(xml: str) -> list[str]:
    return re.findall(r'<mxCell id="([^"]+)"', xml)


def test_graph_model_wrapper() -> None:
    xml = wrap_as_graph_model(CELL_START)
    assert xml == f"<mxGraphModel><root>{ROOT_CELLS}{CELL_START}</root></mxGraphModel>"
    root = ET.fromstring(xml)
    assert root.tag == "mxGraphModel"
    assert [c.get("id") for c in root.iter("mxCell")] == ["0", "1", "2"]


def test_display_document_envelope() -> None:
    xml = wrap_as_display_document(CELL_START, modified="2024-01-01T00:00:00.000Z")
    assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert 'modified="2024-01-01T00:00:00.000Z"' in xml
    root = ET.fromstring(xml.split("\n", 1)[1])
    assert root.tag == "mxfile"
    assert root.get("version") == "1.0"
    diagram = root.find("diagram")
    assert diagram.get("name") == "Page-1"
    assert diagram.get("id") == "page1"
    model = diagram.find("mxGraphModel")
    assert model.get("pageWidth") == "1600"
    assert model.get("pageHeight") == "1200"
    assert model.get("grid") == "1"
    assert model.get("page") == "0"
    cells = model.find("root").findall("mxCell")
    assert [c.get("id") for c in cells] == ["0", "1", "2"]
    assert cells[1].get("parent") == "0"


def test_display_document_default_timestamp() -> None:
    xml = wrap_as_display_document("")
    assert re.search(r'modified="\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z"', xml)


def test_extract_cells_skips_root_cells() -> None:
    extracted = extract_cells(wrap_as_display_document(CELLS))
    assert _ids(extracted) == ["2", "3", "4"]


def test_extract_cells_handles_both_forms_in_order() -> None:
    model = (
        '<mxGraphModel><root><mxCell id="0" /><mxCell id="1" parent="0" />'
        '<mxCell id="7" parent="1" />'
        '<mxCell id="5" vertex="1" parent="1"><mxGeometry as="geometry" /></mxCell>'
        "</root></mxGraphModel>"
    )
    assert extract_cells(model).split("\n") == [
        '<mxCell id="7" parent="1" />',
        '<mxCell id="5" vertex="1" parent="1"><mxGeometry as="geometry" /></mxCell>',
    ]


def test_self_closing_root_cells_do_not_swallow_content() -> None:
    assert extract_cells(wrap_as_graph_model(CELL_START)) == CELL_START


def test_extract_cells_from_serialized_model() -> None:
    model = Diagram.from_xml(wrap_as_graph_model(CELLS)).to_xml()
    assert model.startswith("<mxGraphModel")
    assert '<mxCell id="0" />' in model
    assert _ids(extract_cells(model)) == ["2", "3", "4"]


def test_extract_cells_with_slash_in_attribute() -> None:
    cell = '<mxCell id="2" value="Yes/No" vertex="1" parent="1"><mxGeometry as="geometry"/></mxCell>'
    assert extract_cells(wrap_as_graph_model(cell)) == cell


def test_extract_cells_does_not_confuse_similar_ids() -> None:
    assert _ids(extract_cells('<mxCell id="10"/><mxCell id="11" parent="1"/>')) == ["10", "11"]


def test_extract_cells_empty() -> None:
    assert extract_cells("") == ""
    assert extract_cells("no xml here") == ""


def test_round_trip_graph_model() -> None:
    assert extract_cells(wrap_as_graph_model(CELLS)) == CELLS


def test_rewrap_is_idempotent() -> None:
    once = wrap_as_display_document(CELLS, modified="t")
    twice = wrap_as_display_document(extract_cells(once), modified="t")
    assert once == twice
    assert _ids(twice).count("0") == 1
    assert _ids(twice).count("1") == 1


def test_extract_graph_model_from_prose() -> None:
    model = wrap_as_graph_model(CELL_START)
    text = f"Current diagram XML:\n\n{model}\n\nUse edit_diagram to change it."
    assert extract_graph_model(text) == model


def test_extract_graph_model_absent() -> None:
    assert extract_graph_model("Current diagram XML: (none)") is None
    assert extract_graph_model("") is None


def test_clean_llm_content() -> None:
    assert clean_llm_content(None) == ""
    assert clean_llm_content('{"xml": "<mxCell/>"}') == ""
    assert clean_llm_content("  [1, 2]  ") == ""
    assert clean_llm_content("Here is your chart") == "Here is your chart"
