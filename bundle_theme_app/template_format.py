from __future__ import annotations

from enum import Enum
import json
import re
from typing import Any


class TemplateFormat(str, Enum):
    FLAT_TEXT = "flat-text"
    JSON_COMPOSITION = "json-composition"


# Shopify prepends an auto-generated /* ... */ banner to JSON templates saved by the editor.
_LEADING_BLOCK_COMMENT_RE = re.compile(r"\A\s*/\*.*?\*/\s*", re.DOTALL)


def split_leading_comment(content: str) -> tuple[str, str]:
    match = _LEADING_BLOCK_COMMENT_RE.match(content)
    if match is None:
        return "", content
    return content[: match.end()], content[match.end() :]


def load_json_composition(content: str) -> dict[str, Any] | None:
    """Parse content as a JSON template, or return None if it is not one."""
    _, body = split_leading_comment(content)
    try:
        document = json.loads(body)
    except ValueError:
        return None
    if not isinstance(document, dict):
        return None
    if not isinstance(document.get("sections"), dict):
        return None
    if not isinstance(document.get("order"), list):
        return None
    return document


def classify_template(content: str) -> TemplateFormat:
    if load_json_composition(content) is not None:
        return TemplateFormat.JSON_COMPOSITION
    return TemplateFormat.FLAT_TEXT
