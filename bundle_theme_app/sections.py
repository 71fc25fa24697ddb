from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass
import json
from typing import Any, Mapping

from bundle_theme_app.insertion import PatchOutcome
from bundle_theme_app.snippets import SECTION_ID, SECTION_TYPE
from bundle_theme_app.template_format import load_json_composition, split_leading_comment

MAIN_PRODUCT_SECTION_TYPES = frozenset({"main-product", "product-template", "main-product-template"})
MAIN_SECTION_ID = "main"


class SectionDocumentError(ValueError):
    pass


@dataclass(frozen=True)
class ComposeResult:
    outcome: PatchOutcome
    document: dict[str, Any]
    anchor_section_id: str | None = None


@dataclass(frozen=True)
class JsonTemplatePatch:
    outcome: PatchOutcome
    content: str
    anchor_section_id: str | None = None


def validate_section_document(document: Mapping[str, Any]) -> None:
    """Check that `order` and `sections` name exactly the same section ids."""
    sections = document.get("sections")
    order = document.get("order")
    if not isinstance(sections, dict):
        raise SectionDocumentError("Template sections must be a JSON object.")
    if not isinstance(order, list):
        raise SectionDocumentError("Template order must be a JSON array.")

    for section_id, section in sections.items():
        if not isinstance(section, dict):
            raise SectionDocumentError(f"Section {section_id!r} must be a JSON object.")

    seen: set[str] = set()
    for section_id in order:
        if not isinstance(section_id, str):
            raise SectionDocumentError(f"Template order entries must be strings, got {section_id!r}.")
        if section_id in seen:
            raise SectionDocumentError(f"Section {section_id!r} appears more than once in order.")
        if section_id not in sections:
            raise SectionDocumentError(f"Order references missing section {section_id!r}.")
        seen.add(section_id)

    orphans = sorted(set(sections) - seen)
    if orphans:
        raise SectionDocumentError(f"Sections missing from order: {', '.join(orphans)}.")


def _require_structure(document: Mapping[str, Any]) -> None:
    if not isinstance(document.get("sections"), dict):
        raise SectionDocumentError("Template sections must be a JSON object.")
    order = document.get("order")
    if not isinstance(order, list) or not all(isinstance(item, str) for item in order):
        raise SectionDocumentError("Template order must be a JSON array of section ids.")


def _find_main_section_id(document: Mapping[str, Any]) -> str | None:
    sections: dict[str, Any] = document["sections"]
    for section_id in document["order"]:
        section = sections.get(section_id)
        if not isinstance(section, dict):
            continue
        section_type = section.get("type")
        if section_type in MAIN_PRODUCT_SECTION_TYPES or section_id == MAIN_SECTION_ID:
            return section_id
    return None


def compose_section_document(
    document: Mapping[str, Any],
    *,
    section_id: str = SECTION_ID,
    section_type: str = SECTION_TYPE,
) -> ComposeResult:
    """
    Add a section right after the main product section.

    The input is left untouched; the returned document is a deep copy with the new id
    present in both `sections` and `order`, so a document satisfying
    validate_section_document still satisfies it afterwards.
    """
    _require_structure(document)
    if section_id in document["sections"] or section_id in document["order"]:
        return ComposeResult(outcome=PatchOutcome.ALREADY_INSTALLED, document=deepcopy(dict(document)))

    anchor_id = _find_main_section_id(document)
    if anchor_id is None:
        return ComposeResult(outcome=PatchOutcome.MANUAL_REQUIRED, document=deepcopy(dict(document)))

    composed = deepcopy(dict(document))
    order: list[str] = composed["order"]
    order.insert(order.index(anchor_id) + 1, section_id)
    composed["sections"][section_id] = {"type": section_type, "settings": {}}
    return ComposeResult(outcome=PatchOutcome.PATCHED, document=composed, anchor_section_id=anchor_id)


def render_json_template(document: Mapping[str, Any], *, header: str = "") -> str:
    return f"{header}{json.dumps(document, indent=2, ensure_ascii=False)}\n"


def patch_json_template(
    content: str,
    *,
    section_id: str = SECTION_ID,
    section_type: str = SECTION_TYPE,
) -> JsonTemplatePatch:
    document = load_json_composition(content)
    if document is None:
        raise SectionDocumentError("Template is not a JSON composition with sections and order.")

    result = compose_section_document(document, section_id=section_id, section_type=section_type)
    if result.outcome is not PatchOutcome.PATCHED:
        return JsonTemplatePatch(outcome=result.outcome, content=content)

    header, _ = split_leading_comment(content)
    return JsonTemplatePatch(
        outcome=PatchOutcome.PATCHED,
        content=render_json_template(result.document, header=header),
        anchor_section_id=result.anchor_section_id,
    )
