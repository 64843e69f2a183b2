"""
Input validation for the diagram chat service.

Covers three gates: the approximate syntactic check applied to model-generated
``<mxCell>`` fragments, the shape of incoming chat requests, and the argument
payloads of the ``edit_diagram`` tool.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationError(Exception):
    """Raised when input validation fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


@dataclass
class XmlValidationResult:
    valid: bool
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Cell-set validator
# ---------------------------------------------------------------------------

# An opening tag is any <mxCell ...> that is not self-closing.
_OPEN_CELL_RE = re.compile(r"<mxCell\b[^>]*(?<!/)>")
_CLOSE_CELL_RE = re.compile(r"</mxCell>")
_ANY_TAG_RE = re.compile(r"</?[a-zA-Z][^>]*/?>")


def validate_cell_xml(xml: Optional[str]) -> XmlValidationResult:
    """Check that a bare list of ``<mxCell>`` elements is balanced and nested.

    This is a tag-balance check only. Attribute values, ``source``/``target``
    references and geometry are not inspected.
    """
    if not xml or not xml.strip():
        return XmlValidationResult(False, "XML content is empty.")

    open_tags = len(_OPEN_CELL_RE.findall(xml))
    close_tags = len(_CLOSE_CELL_RE.findall(xml))
    if open_tags != close_tags:
        return XmlValidationResult(
            False,
            f"mxCell tags are not closed properly: found {open_tags} opening "
            f"tag(s) and {close_tags} closing tag(s).",
        )

    depth = 0
    for match in _ANY_TAG_RE.finditer(f"<root>{xml}</root>"):
        tag = match.group(0)
        if tag.startswith("</"):
            depth -= 1
        elif not tag.endswith("/>"):
            depth += 1
        if depth < 0:
            return XmlValidationResult(False, "XML tags are nested incorrectly.")
    if depth != 0:
        return XmlValidationResult(
            False, f"XML tags are not closed properly, nesting depth: {depth}."
        )
    return XmlValidationResult(True)


# ---------------------------------------------------------------------------
# Primitive validators
# ---------------------------------------------------------------------------

def validate_string(
    value: Any,
    field_name: str,
    *,
    allow_empty: bool = True,
    max_length: int | None = None,
) -> str:
    """Ensure *value* is a string (optionally non-empty and bounded)."""
    if not isinstance(value, str):
        raise ValidationError(f"'{field_name}' must be a string, got {type(value).__name__}.")
    if not allow_empty and not value.strip():
        raise ValidationError(f"'{field_name}' must not be empty.")
    if max_length is not None and len(value) > max_length:
        raise ValidationError(
            f"'{field_name}' exceeds the length limit ({max_length} characters)."
        )
    return value


def validate_enum(value: Any, field_name: str, allowed: set[str]) -> str:
    """Validate that a string value is one of the allowed choices (case-insensitive)."""
    if not isinstance(value, str):
        raise ValidationError(
            f"'{field_name}' must be a string, got {type(value).__name__}."
        )
    normalized = value.strip().lower()
    if normalized not in allowed:
        choices = ", ".join(sorted(allowed))
        raise ValidationError(
            f"'{field_name}' must be one of [{choices}], got '{value}'."
        )
    return normalized


def validate_list(
    value: Any,
    field_name: str,
    *,
    min_length: int = 0,
    max_length: int | None = None,
) -> list:
    """Ensure *value* is a list with a length inside the given bounds."""
    if not isinstance(value, list):
        raise ValidationError(
            f"'{field_name}' must be a list, got {type(value).__name__}."
        )
    if len(value) < min_length:
        if min_length == 1:
            raise ValidationError(f"'{field_name}' must not be empty.")
        raise ValidationError(
            f"'{field_name}' must have at least {min_length} item(s), got {len(value)}."
        )
    if max_length is not None and len(value) > max_length:
        raise ValidationError(
            f"'{field_name}' exceeds the limit ({max_length} items max), got {len(value)}."
        )
    return value


def validate_dict(value: Any, field_name: str) -> dict:
    """Ensure *value* is a dict."""
    if not isinstance(value, dict):
        raise ValidationError(
            f"'{field_name}' must be a dict/object, got {type(value).__name__}."
        )
    return value


# ---------------------------------------------------------------------------
# Chat request gate
# ---------------------------------------------------------------------------

_VALID_ROLES = {"user", "assistant"}


def validate_chat_request(
    body: Any,
    *,
    max_messages: int = 50,
    max_message_length: int = 10000,
    max_xml_size: int = 1024 * 1024,
) -> tuple[list[dict[str, str]], str | None]:
    """Validate a chat request body; return ``(messages, current_xml)``."""
    body = validate_dict(body, "body")
    messages = validate_list(
        body.get("messages"), "messages", min_length=1, max_length=max_messages
    )
    cleaned: list[dict[str, str]] = []
    for i, msg in enumerate(messages):
        validate_dict(msg, f"messages[{i}]")
        role = msg.get("role")
        if not isinstance(role, str) or role not in _VALID_ROLES:
            raise ValidationError(
                f"'messages[{i}].role' is invalid, must be 'user' or 'assistant'."
            )
        content = validate_string(
            msg.get("content"), f"messages[{i}].content", max_length=max_message_length
        )
        cleaned.append({"role": role, "content": content})

    current_xml = body.get("currentXml")
    if current_xml is None or current_xml == "":
        return cleaned, None
    if not isinstance(current_xml, str):
        raise ValidationError("'currentXml' must be a string.")
    if len(current_xml) > max_xml_size:
        raise ValidationError(
            f"'currentXml' exceeds the size limit ({round(max_xml_size / 1024)}KB max)."
        )
    return cleaned, current_xml


# ---------------------------------------------------------------------------
# edit_diagram operations
# ---------------------------------------------------------------------------

EDIT_OPERATIONS = {"add", "update", "delete"}


def validate_edit_operation(op: Any, index: int) -> dict[str, str]:
    """Validate a single ``{operation, cell_id, new_xml?}`` dict."""
    if not isinstance(op, dict):
        raise ValidationError(f"operations[{index}] must be a dict/object, got {type(op).__name__}.")
    kind = validate_enum(op.get("operation"), f"operations[{index}].operation", EDIT_OPERATIONS)
    cell_id = op.get("cell_id")
    if not isinstance(cell_id, str) or not cell_id.strip():
        raise ValidationError(f"operations[{index}] requires a non-empty 'cell_id'.")
    result = {"operation": kind, "cell_id": cell_id.strip()}
    new_xml = op.get("new_xml")
    if kind == "delete":
        return result
    if not isinstance(new_xml, str) or not new_xml.strip():
        raise ValidationError(
            f"operations[{index}] ({kind}) requires 'new_xml' with a complete mxCell element."
        )
    result["new_xml"] = new_xml
    return result


def validate_edit_operations(value: Any) -> list[dict[str, str]]:
    """Validate the ``operations`` argument of ``edit_diagram``."""
    ops = validate_list(value, "operations")
    return [validate_edit_operation(op, i) for i, op in enumerate(ops)]
