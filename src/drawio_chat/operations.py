"""
Diagram create/edit operations against the editing backend.

``handle_display_diagram`` creates a diagram from a bare cell list;
``handle_edit_diagram`` applies add/update/delete operations keyed by cell id.
Neither raises for expected failures: both return a ``DiagramResult``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

from mcp.types import CallToolResult

from drawio_chat.backend_client import BackendCallFailed, ConnectionManager, result_text
from drawio_chat.validation import validate_cell_xml
from drawio_chat.xml_utils import (
    extract_cells,
    extract_graph_model,
    wrap_as_display_document,
    wrap_as_graph_model,
)

logger = logging.getLogger("drawio-chat")


class ErrorKind(Enum):
    REQUEST_MALFORMED = "request_malformed"
    XML_VALIDATION_FAILED = "xml_validation_failed"
    ARGUMENT_PARSE_ERROR = "argument_parse_error"
    NO_DIAGRAM_TO_EDIT = "no_diagram_to_edit"
    BACKEND_CALL_FAILED = "backend_call_failed"
    EDIT_FAILED = "edit_failed"
    INTERNAL = "internal"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    ErrorKind.REQUEST_MALFORMED: 400,
    ErrorKind.NO_DIAGRAM_TO_EDIT: 400,
    ErrorKind.XML_VALIDATION_FAILED: 422,
    ErrorKind.ARGUMENT_PARSE_ERROR: 502,
    ErrorKind.BACKEND_CALL_FAILED: 502,
    ErrorKind.EDIT_FAILED: 502,
    ErrorKind.INTERNAL: 500,
}


@dataclass
class DiagramResult:
    success: bool
    xml: Optional[str] = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    # Set when the updated state could not be recovered and the previous
    # document was returned instead.
    degraded: bool = False

    @classmethod
    def ok(cls, xml: str, *, degraded: bool = False) -> DiagramResult:
        return cls(True, xml=xml, degraded=degraded)

    @classmethod
    def fail(cls, kind: ErrorKind, error: str) -> DiagramResult:
        return cls(False, error=error, kind=kind)


def _error_text(result: CallToolResult) -> str:
    return result_text(result) or "Unknown error"


async def handle_display_diagram(backend: ConnectionManager, xml: str) -> DiagramResult:
    """Create a new diagram from a bare list of ``<mxCell>`` elements."""
    validation = validate_cell_xml(xml)
    if not validation.valid:
        logger.error("XML validation failed: %s", validation.error)
        return DiagramResult.fail(
            ErrorKind.XML_VALIDATION_FAILED,
            f"The generated XML is malformed: {validation.error} Please try again.",
        )

    try:
        await backend.ensure_session()
        result = await backend.call_tool(
            "create_new_diagram", {"xml": wrap_as_graph_model(xml)}
        )
    except BackendCallFailed as exc:
        logger.error("Backend call failed: %s", exc.message)
        return DiagramResult.fail(
            ErrorKind.BACKEND_CALL_FAILED, f"Backend call failed: {exc.message}"
        )

    if result.isError:
        error_text = _error_text(result)
        logger.error("Backend create_new_diagram error: %s", error_text)
        return DiagramResult.fail(
            ErrorKind.BACKEND_CALL_FAILED, f"Failed to create diagram: {error_text}"
        )
    return DiagramResult.ok(wrap_as_display_document(xml))


async def handle_edit_diagram(
    backend: ConnectionManager,
    operations: Sequence[dict[str, Any]],
    current_xml: Optional[str],
) -> DiagramResult:
    """Apply edit operations to the backend's current diagram.

    With no current document, a batch made only of ``add`` operations is
    treated as a fresh diagram built from their fragments. Any other batch
    fails with ``NO_DIAGRAM_TO_EDIT``.
    """
    if not current_xml:
        if operations and all(op.get("operation") == "add" for op in operations):
            combined = "\n".join(
                op.get("new_xml") or "" for op in operations
                if (op.get("new_xml") or "").strip()
            )
            if combined:
                logger.info(
                    "No existing diagram but all operations are 'add', creating a new diagram"
                )
                return await handle_display_diagram(backend, combined)
        return DiagramResult.fail(
            ErrorKind.NO_DIAGRAM_TO_EDIT,
            "No diagram to edit was found. Please create a diagram first.",
        )

    try:
        await backend.ensure_session()
        # Edits are relative to the backend's state, so refresh it first
        await backend.call_tool("get_diagram", {})
        result = await backend.call_tool("edit_diagram", {"operations": list(operations)})
        if result.isError:
            error_text = _error_text(result)
            logger.error("Backend edit_diagram error: %s", error_text)
            return DiagramResult.fail(
                ErrorKind.EDIT_FAILED, f"Failed to edit diagram: {error_text}"
            )
        fetched = await backend.call_tool("get_diagram", {})
    except BackendCallFailed as exc:
        logger.error("Backend call failed: %s", exc.message)
        return DiagramResult.fail(
            ErrorKind.BACKEND_CALL_FAILED, f"Backend call failed: {exc.message}"
        )

    model = None if fetched.isError else extract_graph_model(result_text(fetched))
    if model is None:
        logger.warning("Could not recover the edited diagram, returning the previous one")
        return DiagramResult.ok(current_xml, degraded=True)
    return DiagramResult.ok(wrap_as_display_document(extract_cells(model)))
