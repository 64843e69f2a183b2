"""
String-level wrapping and unwrapping of draw.io XML.

The model only ever emits a flat list of ``<mxCell>`` elements, and backend
responses embed their XML in free text, so these helpers work on text with
regular expressions instead of requiring a parseable document.
"""

from __future__ import annotations

import datetime
import re
from typing import Optional


ROOT_CELLS = '<mxCell id="0"/><mxCell id="1" parent="0"/>'

# Self-closing <mxCell .../> or <mxCell ...>...</mxCell>, non-greedy
_CELL_RE = re.compile(r"<mxCell\b[^>]*?(?:/>|>[\s\S]*?</mxCell>)")
_GRAPH_MODEL_RE = re.compile(r"<mxGraphModel[\s\S]*</mxGraphModel>")
_RESERVED_ID_MARKERS = ('id="0"', 'id="1"')

DISPLAY_HOST = "app.diagrams.net"
DISPLAY_AGENT = "DrawIO Chatbot"


def _timestamp() -> str:
    return datetime.datetime.now(datetime.timezone.utc).strftime(
        "%Y-%m-%dT%H:%M:%S.%f"
    )[:-3] + "Z"


def extract_cells(xml: str) -> str:
    """Return every ``<mxCell>`` except the structural ``0``/``1`` cells.

    Cells are joined by newlines in source order.
    """
    cells = [
        cell for cell in _CELL_RE.findall(xml or "")
        if not any(marker in cell for marker in _RESERVED_ID_MARKERS)
    ]
    return "\n".join(cells)


def wrap_as_graph_model(cells_xml: str) -> str:
    """Wrap bare cells as the minimal ``<mxGraphModel>`` the backend creates from."""
    return f"<mxGraphModel><root>{ROOT_CELLS}{cells_xml}</root></mxGraphModel>"


def wrap_as_display_document(cells_xml: str, *, modified: Optional[str] = None) -> str:
    """Wrap bare cells in the full ``<mxfile>`` envelope the editor widget loads."""
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<mxfile host="{DISPLAY_HOST}" modified="{modified or _timestamp()}" '
        f'agent="{DISPLAY_AGENT}" version="1.0">\n'
        '  <diagram name="Page-1" id="page1">\n'
        '    <mxGraphModel dx="0" dy="0" grid="1" gridSize="10" guides="1" '
        'tooltips="1" connect="1" arrows="1" fold="1" page="0" pageScale="1" '
        'pageWidth="1600" pageHeight="1200" background="none">\n'
        "      <root>\n"
        '        <mxCell id="0"/>\n'
        '        <mxCell id="1" parent="0"/>\n'
        f"        {cells_xml}\n"
        "      </root>\n"
        "    </mxGraphModel>\n"
        "  </diagram>\n"
        "</mxfile>"
    )


def extract_graph_model(text: str) -> Optional[str]:
    """Locate the ``<mxGraphModel>`` subtree inside arbitrary response text.

    Returns None when absent; callers fall back to the last known document.
    """
    if not text:
        return None
    match = _GRAPH_MODEL_RE.search(text)
    return match.group(0) if match else None


def clean_llm_content(content: Optional[str]) -> str:
    """Drop free text that is really a JSON object or array echoed by the model."""
    if not content:
        return ""
    trimmed = content.strip()
    if (trimmed.startswith("{") and trimmed.endswith("}")) or (
        trimmed.startswith("[") and trimmed.endswith("]")
    ):
        return ""
    return content
