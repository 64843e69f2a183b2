"""Tests for the style map."""

from drawio_chat.styles import REQUIRED_EDGE_STYLE, StyleMap


def test_parse_and_build() -> None:
    assert StyleMap("rounded=1;whiteSpace=wrap;html=1;").build() == "rounded=1;whiteSpace=wrap;html=1;"


def test_bare_shape_token_kept() -> None:
    assert StyleMap("ellipse;fillColor=#dae8fc").build() == "ellipse;fillColor=#dae8fc;"


def test_last_write_wins() -> None:
    s = StyleMap("edgeStyle=none;rounded=0;edgeStyle=elbowEdgeStyle")
    assert s.build() == "edgeStyle=elbowEdgeStyle;rounded=0;"


def test_update_overrides_and_appends() -> None:
    s = StyleMap("rounded=0;dashed=1;").update(REQUIRED_EDGE_STYLE)
    assert s.build() == (
        "rounded=1;dashed=1;edgeStyle=orthogonalEdgeStyle;orthogonalLoop=1;jettySize=auto;html=1;"
    )


def test_value_with_equals_sign() -> None:
    assert StyleMap("image=data:image/png,abc==").build() == "image=data:image/png,abc==;"


def test_empty() -> None:
    assert StyleMap("").build() == ""
    assert StyleMap(" ; ;").build() == ""
    assert StyleMap("").update({"html": "1"}).build() == "html=1;"
