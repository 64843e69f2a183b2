"""
Edge cleanup applied to documents exported from the editor widget.
"""

from __future__ import annotations

import base64
import binascii
import html
import logging
import re
import xml.etree.ElementTree as ET
from typing import Optional

from drawio_chat.styles import REQUIRED_EDGE_STYLE, StyleMap

logger = logging.getLogger("drawio-chat")

SVG_DATA_PREFIX = "data:image/svg+xml;base64,"
_SVG_CONTENT_RE = re.compile(r'content="([^"]+)"')
_XML_DECL_RE = re.compile(r"^\s*<\?xml[^>]*\?>\s*")


def _sanitize_edge_cell(cell: ET.Element) -> None:
    geometry = cell.find("mxGeometry")
    if geometry is not None:
        for arr in geometry.findall("Array"):
            geometry.remove(arr)
    style = StyleMap(cell.get("style", "")).update(REQUIRED_EDGE_STYLE)
    cell.set("style", style.build())


def sanitize_diagram_xml(xml: str) -> str:
    """Force orthogonal routing on every connector and drop its waypoints.

    A cell counts as a connector when it has both ``source`` and ``target``.
    Input that does not parse is returned unchanged.
    """
    if not xml or not xml.strip():
        return xml
    declaration = _XML_DECL_RE.match(xml)
    try:
        root = ET.fromstring(xml[declaration.end():] if declaration else xml)
    except ET.ParseError as exc:
        logger.debug("Skipping sanitize, XML does not parse: %s", exc)
        return xml

    for cell in root.iter("mxCell"):
        if cell.get("source") and cell.get("target"):
            _sanitize_edge_cell(cell)

    body = ET.tostring(root, encoding="unicode")
    if declaration:
        return declaration.group(0).strip() + "\n" + body
    return body


def xml_from_svg_export(data_uri: str) -> Optional[str]:
    """Recover diagram XML from an ``xmlsvg`` export data URI.

    The editor embeds the document, entity-escaped, in the ``content``
    attribute of the root ``<svg>`` element.
    """
    if not data_uri.startswith(SVG_DATA_PREFIX):
        return None
    try:
        svg = base64.b64decode(data_uri[len(SVG_DATA_PREFIX):]).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        logger.warning("Could not decode SVG export: %s", exc)
        return None
    match = _SVG_CONTENT_RE.search(svg)
    if not match:
        return None
    return html.unescape(match.group(1))
