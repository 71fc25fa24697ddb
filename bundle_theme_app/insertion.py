from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import re
from typing import Sequence

from bundle_theme_app.markers import has_bundle_marker
from bundle_theme_app.snippets import TEMPLATE_INCLUDE_BLOCK


class InsertPosition(str, Enum):
    BEFORE = "before"
    AFTER = "after"


class MatchOccurrence(str, Enum):
    FIRST = "first"
    LAST = "last"


@dataclass(frozen=True)
class InsertionPattern:
    name: str
    matcher: re.Pattern[str]
    position: InsertPosition
    occurrence: MatchOccurrence = MatchOccurrence.FIRST

    def find(self, content: str) -> re.Match[str] | None:
        if self.occurrence is MatchOccurrence.FIRST:
            return self.matcher.search(content)
        last_match: re.Match[str] | None = None
        for last_match in self.matcher.finditer(content):
            pass
        return last_match


@dataclass(frozen=True)
class InsertionPlan:
    pattern: InsertionPattern
    start: int
    end: int

    @property
    def offset(self) -> int:
        if self.pattern.position is InsertPosition.AFTER:
            return self.end
        return self.start


def _pattern(
    name: str,
    regex: str,
    position: InsertPosition,
    occurrence: MatchOccurrence = MatchOccurrence.FIRST,
) -> InsertionPattern:
    return InsertionPattern(
        name=name,
        matcher=re.compile(regex, re.IGNORECASE),
        position=position,
        occurrence=occurrence,
    )


# Highest priority first; the first pattern with any match wins.
INSERTION_CATALOGUE: tuple[InsertionPattern, ...] = (
    _pattern(
        "price-container",
        r"<div[^>]*class=[\"'][^\"']*price[^\"']*[\"'][^>]*>[\s\S]*?</div>",
        InsertPosition.AFTER,
    ),
    _pattern(
        "price-inline",
        r"<span[^>]*class=[\"'][^\"']*price[^\"']*[\"'][^>]*>[\s\S]*?</span>",
        InsertPosition.AFTER,
    ),
    _pattern("price-render", r"\{%-?\s*render\s+['\"]price['\"][^%]*%\}", InsertPosition.AFTER),
    _pattern("product-title-heading", r"<h1[^>]*>.*?</h1>", InsertPosition.AFTER),
    _pattern("product-title-output", r"\{\{-?\s*product\.title\b[^}]*\}\}", InsertPosition.AFTER),
    _pattern(
        "variant-container",
        r"<div[^>]*class=[\"'][^\"']*variant[^\"']*[\"'][^>]*>",
        InsertPosition.BEFORE,
    ),
    _pattern(
        "variant-picker-render",
        r"\{%-?\s*render\s+['\"]product-variant-picker['\"][^%]*%\}",
        InsertPosition.BEFORE,
    ),
    _pattern("add-to-cart-button", r"<button[^>]*name=[\"']add[\"'][^>]*>", InsertPosition.BEFORE),
    _pattern("buy-buttons-render", r"\{%-?\s*render\s+['\"]buy-buttons['\"][^%]*%\}", InsertPosition.BEFORE),
    _pattern("cart-form-open", r"<form[^>]*action=[\"']/cart/add[\"'][^>]*>", InsertPosition.AFTER),
    _pattern("product-form-open", r"\{%-?\s*form\s+['\"]product['\"][^%]*%\}", InsertPosition.AFTER),
)

RESIDUAL_FALLBACKS: tuple[InsertionPattern, ...] = (
    _pattern(
        "product-form-close",
        r"\{%-?\s*endform\s*-?%\}",
        InsertPosition.BEFORE,
        MatchOccurrence.LAST,
    ),
    _pattern("form-close-tag", r"</form>", InsertPosition.BEFORE, MatchOccurrence.LAST),
)


def plan_insertion(
    content: str,
    catalogue: Sequence[InsertionPattern] = INSERTION_CATALOGUE,
) -> InsertionPlan | None:
    """Return a plan for the highest-ranked pattern that matches anywhere in content."""
    for pattern in catalogue:
        match = pattern.find(content)
        if match is not None:
            return InsertionPlan(pattern=pattern, start=match.start(), end=match.end())
    return None


def plan_fallback_insertion(content: str) -> InsertionPlan | None:
    return plan_insertion(content, RESIDUAL_FALLBACKS)


def apply_insertion(content: str, plan: InsertionPlan, block: str = TEMPLATE_INCLUDE_BLOCK) -> str:
    offset = plan.offset
    if plan.pattern.position is InsertPosition.AFTER:
        return f"{content[:offset]}\n{block}{content[offset:]}"
    return f"{content[:offset]}{block}\n{content[offset:]}"


class PatchOutcome(str, Enum):
    ALREADY_INSTALLED = "already_installed"
    PATCHED = "patched"
    MANUAL_REQUIRED = "manual_required"


@dataclass(frozen=True)
class TextPatchResult:
    outcome: PatchOutcome
    content: str
    plan: InsertionPlan | None = None


def patch_text_template(
    content: str,
    *,
    block: str = TEMPLATE_INCLUDE_BLOCK,
    catalogue: Sequence[InsertionPattern] = INSERTION_CATALOGUE,
) -> TextPatchResult:
    if has_bundle_marker(content):
        return TextPatchResult(outcome=PatchOutcome.ALREADY_INSTALLED, content=content)

    plan = plan_insertion(content, catalogue) or plan_fallback_insertion(content)
    if plan is None:
        return TextPatchResult(outcome=PatchOutcome.MANUAL_REQUIRED, content=content)
    return TextPatchResult(
        outcome=PatchOutcome.PATCHED,
        content=apply_insertion(content, plan, block),
        plan=plan,
    )
