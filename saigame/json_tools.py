"""
json_tools.py — Raw JSON helpers for opaque, caller-defined sub-documents.

  extract_field(): pull one field's raw JSON text out of a larger document
                    without parsing it, so blobs like game_data survive
                    byte-for-byte (no schema, no re-serialisation)
  format_json(): indent compact JSON for human display; never raises

Both are single left-to-right scans over the text.

  RawJson: pydantic field type for opaque sub-documents kept as text
"""
import json
import logging
from typing import Annotated, Any

from pydantic import BeforeValidator

logger = logging.getLogger(__name__)

EMPTY_OBJECT = "{}"
INDENT = "  "


def extract_field(json_text: str, field_name: str) -> str:
    """
    Return the raw value of the first "<field_name>" key in json_text.

    Only object values ({...}, returned with both braces) and string values
    ("...", returned with both quotes, backslash escapes honoured) are
    supported. The object scan counts braces without string awareness.
    Absent fields, other value types and unterminated values give "{}".
    """
    if not json_text:
        return EMPTY_OBJECT

    key_index = json_text.find(f'"{field_name}"')
    if key_index == -1:
        return EMPTY_OBJECT

    colon_index = json_text.find(":", key_index + len(field_name) + 2)
    if colon_index == -1:
        return EMPTY_OBJECT

    start = colon_index + 1
    length = len(json_text)
    while start < length and json_text[start].isspace():
        start += 1
    if start >= length:
        return EMPTY_OBJECT

    first = json_text[start]

    if first == "{":
        depth = 0
        for end in range(start, length):
            char = json_text[end]
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return json_text[start:end + 1]
        return EMPTY_OBJECT

    if first == '"':
        end = start + 1
        while end < length:
            char = json_text[end]
            if char == "\\":
                end += 2
                continue
            if char == '"':
                return json_text[start:end + 1]
            end += 1
        return EMPTY_OBJECT

    return EMPTY_OBJECT


def format_json(json_text: str) -> str:
    """
    Re-indent a JSON string (two spaces per level) for display.

    Whitespace outside strings is dropped and re-emitted, so formatting an
    already formatted document gives the same text back. Any internal fault
    returns the input unchanged.
    """
    if not json_text or json_text == EMPTY_OBJECT:
        return EMPTY_OBJECT

    try:
        out: list[str] = []
        indent = 0
        in_string = False
        escaped = False

        for char in json_text:
            if escaped:
                out.append(char)
                escaped = False
                continue
            if char == "\\" and in_string:
                out.append(char)
                escaped = True
                continue
            if char == '"':
                in_string = not in_string
                out.append(char)
                continue
            if in_string:
                out.append(char)
                continue

            if char in "{[":
                indent += 1
                out.append(char + "\n" + INDENT * indent)
            elif char in "}]":
                indent -= 1
                out.append("\n" + INDENT * indent + char)
            elif char == ",":
                out.append(",\n" + INDENT * indent)
            elif char == ":":
                out.append(": ")
            elif not char.isspace():
                out.append(char)

        return "".join(out)
    except Exception:  # cosmetic only, fall back to the input
        logger.debug("format_json fell back to raw input", exc_info=True)
        return json_text


# ---------------------------------------------------------------------------
# Pydantic field type for opaque sub-documents
# ---------------------------------------------------------------------------

def _to_raw_json(value: Any) -> str:
    """Keep strings as-is; compact-encode parsed objects/arrays; null → "{}"."""
    if value is None:
        return EMPTY_OBJECT
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


# Strings pass through untouched; dict/list values the server sends inline are
# re-encoded compactly (key order kept, spacing not).
RawJson = Annotated[str, BeforeValidator(_to_raw_json)]
