"""
Reference diagram-editing backend: an MCP server holding one live diagram.

Tools driven by the chat service over stdio:

  1. start_session       begin (or reset) the editing session
  2. create_new_diagram  replace the diagram with an mxGraphModel
  3. get_diagram         return the current mxGraphModel inside free text
  4. edit_diagram        apply add / update / delete operations by cell id

Errors are raised as ``ToolError`` so clients receive ``isError`` results
carrying the diagnostic text.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP
from mcp.server.fastmcp.exceptions import ToolError

from drawio_chat.models import Diagram, ModelError, MxCell
from drawio_chat.validation import ValidationError, validate_edit_operations

logging.getLogger("mcp.server").setLevel(logging.WARNING)
logger = logging.getLogger("drawio-chat.backend")


class DiagramStore:
    """The single in-memory diagram of an editing session."""

    def __init__(self) -> None:
        self._diagram: Optional[Diagram] = None
        self._lock = threading.Lock()
        self.session_active = False

    def start_session(self) -> None:
        """Begin a session with no diagram."""
        self.reset()
        with self._lock:
            self.session_active = True

    def reset(self) -> None:
        with self._lock:
            self._diagram = None
            self.session_active = False

    def create(self, xml: str) -> Diagram:
        diagram = Diagram.from_xml(xml)
        with self._lock:
            self._diagram = diagram
        return diagram

    def current(self) -> Diagram:
        if self._diagram is None:
            raise ModelError("No diagram has been created yet.")
        return self._diagram

    def apply(self, operations: list[dict[str, str]]) -> list[str]:
        """Apply operations in order; return one summary line per operation.

        Stops at the first failing operation. Operations before it stay
        applied.
        """
        with self._lock:
            diagram = self.current()
            summary: list[str] = []
            for i, op in enumerate(operations):
                kind, cell_id = op["operation"], op["cell_id"]
                try:
                    if kind == "add":
                        cell = MxCell.from_xml(op["new_xml"])
                        if cell.id != cell_id:
                            raise ModelError(
                                f"new_xml id '{cell.id}' does not match cell_id '{cell_id}'."
                            )
                        diagram.add_cell(cell)
                        summary.append(f"added {cell_id}")
                    elif kind == "update":
                        diagram.replace_cell(cell_id, MxCell.from_xml(op["new_xml"]))
                        summary.append(f"updated {cell_id}")
                    else:
                        removed = diagram.remove_cell(cell_id)
                        summary.append(f"deleted {', '.join(removed)}")
                except ModelError as exc:
                    raise ModelError(
                        f"Operation {i} ({kind} {cell_id}) failed: {exc.message}"
                    ) from exc
            return summary


_store = DiagramStore()


# ---------------------------------------------------------------------------
# MCP Server
# ---------------------------------------------------------------------------
mcp = FastMCP(
    "drawio-chat-backend",
    instructions=(
        "Holds one draw.io diagram and edits it by cell id.\n"
        "Call start_session first, then create_new_diagram with a full\n"
        "<mxGraphModel>, get_diagram to read it back, and edit_diagram with\n"
        "add/update/delete operations. Deleting a cell also deletes its\n"
        "children and every edge connected to it."
    ),
)


@mcp.tool()
def start_session() -> str:
    """Start the diagram editing session."""
    _store.start_session()
    logger.info("Session started")
    return "Session started."


@mcp.tool()
def create_new_diagram(xml: str) -> str:
    """Replace the current diagram.

    Args:
        xml: A complete <mxGraphModel> document (root cells 0 and 1 included).
    """
    if not isinstance(xml, str) or not xml.strip():
        raise ToolError("'xml' must be a non-empty string.")
    try:
        diagram = _store.create(xml)
    except ModelError as exc:
        raise ToolError(exc.message) from exc
    count = len(diagram.content_cells)
    logger.info("Created diagram with %d cells", count)
    return f"Diagram created with {count} cells."


@mcp.tool()
def get_diagram() -> str:
    """Return the current diagram XML."""
    try:
        diagram = _store.current()
    except ModelError as exc:
        raise ToolError(exc.message) from exc
    return f"Current diagram XML:\n\n{diagram.to_xml()}"


@mcp.tool()
def edit_diagram(operations: list[dict[str, Any]]) -> str:
    """Edit the current diagram by cell id.

    Args:
        operations: List of {operation: add|update|delete, cell_id, new_xml?}.
            update/add need a complete mxCell element in new_xml.
            delete cascades to children and connected edges.
    """
    try:
        ops = validate_edit_operations(operations)
        summary = _store.apply(ops)
    except (ValidationError, ModelError) as exc:
        logger.error("edit_diagram failed: %s", exc.message)
        raise ToolError(exc.message) from exc
    return "Applied operations: " + "; ".join(summary) if summary else "No operations applied."


# ===================================================================
# Entry point
# ===================================================================

def main() -> None:
    """Run the MCP server."""
    mcp.run()


if __name__ == "__main__":
    main()
