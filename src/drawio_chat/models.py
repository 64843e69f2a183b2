"""
Typed model of a draw.io graph model for the reference editing backend.

Parses an ``<mxGraphModel>`` (or a bare ``<mxCell>``) into composable
dataclasses and serializes it back, preserving attributes it does not
interpret so that round trips stay lossless for the renderer.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Optional


ROOT_ID = "0"
LAYER_ID = "1"
RESERVED_IDS = frozenset({ROOT_ID, LAYER_ID})


class ModelError(Exception):
    """Raised when a graph model or cell fragment cannot be interpreted."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

def _fmt(value: float) -> str:
    """Format a coordinate the way draw.io writes it (no trailing ``.0``)."""
    return str(int(value)) if float(value).is_integer() else str(value)


def _float(el: ET.Element, name: str) -> float:
    try:
        return float(el.get(name, "0"))
    except ValueError as exc:
        raise ModelError(f"Attribute '{name}' must be numeric, got '{el.get(name)}'.") from exc


@dataclass
class Point:
    """A 2-D coordinate."""
    x: float
    y: float

    def to_element(self, role: Optional[str] = None) -> ET.Element:
        el = ET.Element("mxPoint", attrib={"x": _fmt(self.x), "y": _fmt(self.y)})
        if role:
            el.set("as", role)
        return el

    @classmethod
    def from_element(cls, el: ET.Element) -> Point:
        return cls(_float(el, "x"), _float(el, "y"))


@dataclass
class Geometry:
    """Geometry of an mxCell (position + size for vertices, relative for edges)."""
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0
    relative: bool = False
    source_point: Optional[Point] = None
    target_point: Optional[Point] = None
    offset: Optional[Point] = None
    points: list[Point] = field(default_factory=list)

    def to_element(self) -> ET.Element:
        attrib: dict[str, str] = {}
        if self.relative:
            if self.x:
                attrib["x"] = _fmt(self.x)
            if self.y:
                attrib["y"] = _fmt(self.y)
            attrib["relative"] = "1"
        else:
            attrib["x"] = _fmt(self.x)
            attrib["y"] = _fmt(self.y)
            attrib["width"] = _fmt(self.width)
            attrib["height"] = _fmt(self.height)
        attrib["as"] = "geometry"
        el = ET.Element("mxGeometry", attrib=attrib)
        if self.source_point:
            el.append(self.source_point.to_element("sourcePoint"))
        if self.target_point:
            el.append(self.target_point.to_element("targetPoint"))
        if self.points:
            arr = ET.SubElement(el, "Array", attrib={"as": "points"})
            for pt in self.points:
                arr.append(pt.to_element())
        if self.offset:
            el.append(self.offset.to_element("offset"))
        return el

    @classmethod
    def from_element(cls, el: ET.Element) -> Geometry:
        geometry = cls(
            x=_float(el, "x"),
            y=_float(el, "y"),
            width=_float(el, "width"),
            height=_float(el, "height"),
            relative=el.get("relative", "0") == "1",
        )
        arr_el = el.find("Array[@as='points']")
        if arr_el is not None:
            geometry.points = [Point.from_element(p) for p in arr_el.findall("mxPoint")]
        for role, attr in (
            ("sourcePoint", "source_point"),
            ("targetPoint", "target_point"),
            ("offset", "offset"),
        ):
            pt_el = el.find(f"mxPoint[@as='{role}']")
            if pt_el is not None:
                setattr(geometry, attr, Point.from_element(pt_el))
        return geometry


# Attributes MxCell interprets; anything else is carried through in `extra`.
_CELL_ATTRS = {"id", "value", "style", "parent", "vertex", "edge", "source", "target"}


@dataclass
class MxCell:
    """A single mxCell element: a vertex, an edge or a structural cell."""
    id: str
    value: str = ""
    style: str = ""
    parent: str = LAYER_ID
    vertex: bool = False
    edge: bool = False
    source: Optional[str] = None
    target: Optional[str] = None
    geometry: Optional[Geometry] = None
    extra: dict[str, str] = field(default_factory=dict)

    def to_element(self) -> ET.Element:
        attrib: dict[str, str] = {"id": self.id}
        if self.value:
            attrib["value"] = self.value
        if self.style:
            attrib["style"] = self.style
        if self.parent:
            attrib["parent"] = self.parent
        if self.vertex:
            attrib["vertex"] = "1"
        if self.edge:
            attrib["edge"] = "1"
        if self.source:
            attrib["source"] = self.source
        if self.target:
            attrib["target"] = self.target
        attrib.update(self.extra)
        el = ET.Element("mxCell", attrib=attrib)
        if self.geometry:
            el.append(self.geometry.to_element())
        return el

    @classmethod
    def from_element(cls, el: ET.Element) -> MxCell:
        if el.tag != "mxCell":
            raise ModelError(f"Expected an <mxCell> element, got <{el.tag}>.")
        cid = el.get("id", "")
        if not cid:
            raise ModelError("mxCell is missing its 'id' attribute.")
        geom_el = el.find("mxGeometry")
        return cls(
            id=cid,
            value=el.get("value", ""),
            style=el.get("style", ""),
            parent=el.get("parent", ""),
            vertex=el.get("vertex", "0") == "1",
            edge=el.get("edge", "0") == "1",
            source=el.get("source"),
            target=el.get("target"),
            geometry=Geometry.from_element(geom_el) if geom_el is not None else None,
            extra={k: v for k, v in el.attrib.items() if k not in _CELL_ATTRS},
        )

    @classmethod
    def from_xml(cls, xml: str) -> MxCell:
        """Parse a single ``<mxCell>`` fragment."""
        try:
            el = ET.fromstring(xml.strip())
        except ET.ParseError as exc:
            raise ModelError(f"Error parsing mxCell XML: {exc}") from exc
        return cls.from_element(el)


@dataclass
class Diagram:
    """An mxGraphModel: the two structural cells plus the content cells."""
    cells: list[MxCell] | None = None
    grid: bool = True
    grid_size: int = 10
    page_width: int = 1600
    page_height: int = 1200
    background: str = "none"

    def __post_init__(self) -> None:
        # Ensure structural cells 0 and 1 always exist
        if self.cells is None:
            self.cells = [
                MxCell(id=ROOT_ID, parent=""),
                MxCell(id=LAYER_ID, parent=ROOT_ID),
            ]

    @property
    def content_cells(self) -> list[MxCell]:
        return [c for c in self.cells if c.id not in RESERVED_IDS]

    def find(self, cell_id: str) -> MxCell | None:
        for cell in self.cells:
            if cell.id == cell_id:
                return cell
        return None

    def index_of(self, cell_id: str) -> int:
        for i, cell in enumerate(self.cells):
            if cell.id == cell_id:
                return i
        return -1

    # ----- mutation -----

    def add_cell(self, cell: MxCell) -> None:
        if cell.id in RESERVED_IDS:
            raise ModelError(f"Cell id '{cell.id}' is reserved.")
        if self.find(cell.id) is not None:
            raise ModelError(f"Cell id '{cell.id}' already exists.")
        self.cells.append(cell)

    def replace_cell(self, cell_id: str, cell: MxCell) -> None:
        if cell_id in RESERVED_IDS:
            raise ModelError(f"Cell id '{cell_id}' is reserved.")
        idx = self.index_of(cell_id)
        if idx < 0:
            raise ModelError(f"Cell '{cell_id}' not found.")
        cell.id = cell_id
        self.cells[idx] = cell

    def cascade_ids(self, cell_id: str) -> list[str]:
        """Return the ids removed by deleting *cell_id*, in removal order.

        Order is bottom-up so no removal leaves a dangling reference: the
        connectors attached to the doomed subtree go first, then the
        descendants deepest first, then *cell_id* itself.
        """
        children: dict[str, list[str]] = {}
        for cell in self.cells:
            children.setdefault(cell.parent, []).append(cell.id)

        def _subtree(cid: str, skip: set[str]) -> list[str]:
            skip.add(cid)
            out: list[str] = []
            for child in children.get(cid, []):
                if child not in skip:
                    out.extend(_subtree(child, skip))
            out.append(cid)
            return out

        subtree = _subtree(cell_id, set())
        doomed = set(subtree)
        edges: list[str] = []
        # A connector may itself be the endpoint of another connector
        changed = True
        while changed:
            changed = False
            for cell in self.cells:
                if cell.id in doomed:
                    continue
                if cell.source in doomed or cell.target in doomed:
                    edges[:0] = _subtree(cell.id, doomed)
                    changed = True
        return edges + subtree

    def remove_cell(self, cell_id: str) -> list[str]:
        """Delete *cell_id* with cascade; return removed ids in removal order."""
        if cell_id in RESERVED_IDS:
            raise ModelError(f"Cell id '{cell_id}' is reserved.")
        if self.find(cell_id) is None:
            raise ModelError(f"Cell '{cell_id}' not found.")
        removed = self.cascade_ids(cell_id)
        for cid in removed:
            idx = self.index_of(cid)
            if idx >= 0:
                del self.cells[idx]
        return removed

    # ----- XML -----

    def to_element(self) -> ET.Element:
        graph_attrs: dict[str, str] = {
            "grid": "1" if self.grid else "0",
            "gridSize": str(self.grid_size),
            "pageWidth": str(self.page_width),
            "pageHeight": str(self.page_height),
            "background": self.background,
        }
        model = ET.Element("mxGraphModel", attrib=graph_attrs)
        root = ET.SubElement(model, "root")
        for cell in self.cells:
            root.append(cell.to_element())
        return model

    def to_xml(self) -> str:
        return ET.tostring(self.to_element(), encoding="unicode")

    @classmethod
    def from_xml(cls, xml: str) -> Diagram:
        """Parse an ``<mxGraphModel>``, or the first page of an ``<mxfile>``."""
        try:
            root_el = ET.fromstring(xml.strip())
        except ET.ParseError as exc:
            raise ModelError(f"Error parsing XML: {exc}") from exc

        if root_el.tag == "mxfile":
            model_el = root_el.find("diagram/mxGraphModel")
        elif root_el.tag == "mxGraphModel":
            model_el = root_el
        else:
            raise ModelError(f"Unrecognized root element <{root_el.tag}>.")
        if model_el is None:
            raise ModelError("No <mxGraphModel> found.")

        cells_el = model_el.find("root")
        if cells_el is None:
            raise ModelError("<mxGraphModel> has no <root> element.")

        d = cls(cells=[])
        d.grid = model_el.get("grid", "1") == "1"
        try:
            d.grid_size = int(model_el.get("gridSize", "10"))
            d.page_width = int(float(model_el.get("pageWidth", "1600")))
            d.page_height = int(float(model_el.get("pageHeight", "1200")))
        except ValueError as exc:
            raise ModelError(f"Invalid mxGraphModel attribute: {exc}") from exc
        d.background = model_el.get("background", "none")

        seen: set[str] = set()
        for child_el in cells_el:
            if child_el.tag != "mxCell":
                continue
            cell = MxCell.from_element(child_el)
            if cell.id in seen:
                raise ModelError(f"Duplicate cell id '{cell.id}'.")
            seen.add(cell.id)
            d.cells.append(cell)

        # Missing structural cells are restored in front
        if ROOT_ID not in seen:
            d.cells.insert(0, MxCell(id=ROOT_ID, parent=""))
        if LAYER_ID not in seen:
            d.cells.insert(1, MxCell(id=LAYER_ID, parent=ROOT_ID))
        return d
