"""
Style map for draw.io cells.

A draw.io ``style`` attribute is a semicolon-delimited list of ``key=value``
tokens, optionally led by a bare shape name (``ellipse;whiteSpace=wrap;``).
Keys are order-insensitive and the last write for a key wins.
"""

from __future__ import annotations

from typing import Mapping


# Keys forced onto connectors when a document is exported.
REQUIRED_EDGE_STYLE: dict[str, str] = {
    "edgeStyle": "orthogonalEdgeStyle",
    "rounded": "1",
    "orthogonalLoop": "1",
    "jettySize": "auto",
    "html": "1",
}


class StyleMap:
    """Mutable, ephemeral view over a cell's style string."""

    def __init__(self, raw: str = "") -> None:
        self._parts: dict[str, str | None] = {}
        if raw:
            self._parse(raw)

    def _parse(self, raw: str) -> None:
        for tok in (t.strip() for t in raw.split(";")):
            if not tok:
                continue
            key, sep, value = tok.partition("=")
            if not key:
                continue
            # Bare tokens (shape names) are kept as keys without a value
            self._parts[key] = value if sep else None

    def update(self, values: Mapping[str, str]) -> StyleMap:
        for key, value in values.items():
            self._parts[key] = value
        return self

    def build(self) -> str:
        """Serialize back into a style string (trailing ``;`` when non-empty)."""
        tokens = [
            key if value is None else f"{key}={value}"
            for key, value in self._parts.items()
        ]
        return ";".join(tokens) + (";" if tokens else "")
