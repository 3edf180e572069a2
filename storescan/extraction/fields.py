"""Field extraction from an item detail page.

Each field has its own ordered list of lookups; the first lookup that yields a
value wins and every lookup tried is recorded.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from ..errors import ErrorKind, Result
from ..strategies import Attempt, StrategyChain

LOGGER = logging.getLogger(__name__)

PRICE_PATTERN = re.compile(r"\$\d+\.?\d*")
VARIATION_SELECTOR = 'button[data-csa-c-slot-id*="PDPInfo_selectionslot_"]'
TEXT_SEARCH_TAGS = ["h2", "h3", "h4", "div", "section"]

NAME_SELECTORS = [
    "div.bds--heading-1.my-2.text-squid-ink",
    'div[class*="bds--heading-1"][class*="text-squid-ink"]',
    'h1[class*="bds--heading-1"]',
    'div[class*="heading-1"]',
    'h1[class*="product-title"]',
    'h1[class*="item-title"]',
    ".product-title h1",
    ".item-title h1",
    "h1",
    '[data-testid="product-title"]',
    '[data-testid="item-title"]',
    'div[class*="heading"][class*="squid-ink"]',
    'div[class*="product-name"]',
    'div[class*="item-name"]',
]

PRICE_SELECTORS = [
    "span.text-left.bds--heading-5",
    'span[class*="bds--heading-5"]',
    'span[class*="heading-5"]',
    'span[class*="price"]',
    ".price span",
    '[data-testid="price"]',
    '[class*="price"][class*="current"]',
    'span:-soup-contains("$")',
    'div[class*="price"] span',
    ".product-price span",
    ".item-price span",
    'div[class*="price"]',
    ".price-container",
    ".current-price",
]

ADD_TO_CART_SELECTORS = [
    'button[data-csa-c-type="addToCart"]',
    'button:-soup-contains("Add to Cart")',
    'button[class*="addToCart"]',
    'button[data-testid="add-to-cart"]',
    ".add-to-cart button",
    ".add-to-basket button",
    'button[aria-label*="Add to Cart"]',
    'button[title*="Add to Cart"]',
    'input[type="submit"][value*="Add to Cart"]',
]

NUTRITION_SELECTORS = ['[data-testid="nutrition-facts"]', ".nutrition-facts", ".nutritional-info"]
INGREDIENTS_SELECTORS = ['[data-testid="ingredients"]', ".ingredients", ".ingredient-list"]

Lookup = Callable[[BeautifulSoup], Result[Any]]


@dataclass
class FieldReport:
    """Extracted fields plus the audit trail per field."""

    fields: Dict[str, Any] = field(default_factory=dict)
    attempts: Dict[str, List[Attempt]] = field(default_factory=dict)
    winners: Dict[str, Optional[str]] = field(default_factory=dict)

    def audit(self) -> Dict[str, Any]:
        return {
            name: {
                "winner": self.winners.get(name),
                "attempts": [a.to_dict() for a in attempts],
            }
            for name, attempts in self.attempts.items()
        }


def _text(node: Tag) -> str:
    return re.sub(r"\s+", " ", node.get_text(" ", strip=True)).strip()


def _miss(message: str) -> Result[Any]:
    return Result.fail(ErrorKind.TASK_EXTRACTION, message)


def text_lookup(selector: str, pattern: Optional[re.Pattern] = None) -> Tuple[str, Lookup]:
    def lookup(soup: BeautifulSoup) -> Result[Any]:
        node = soup.select_one(selector)
        if node is None:
            return _miss("no match")
        value = _text(node)
        if pattern is not None:
            match = pattern.search(value)
            if not match:
                return _miss(f"text does not match {pattern.pattern}")
            value = match.group(0)
        return Result.ok(value) if value else _miss("empty text")

    return selector, lookup


def exists_lookup(selector: str) -> Tuple[str, Lookup]:
    def lookup(soup: BeautifulSoup) -> Result[Any]:
        return Result.ok(True) if soup.select_one(selector) is not None else _miss("no match")

    return selector, lookup


def phrase_lookup(phrase: str) -> Tuple[str, Lookup]:
    def lookup(soup: BeautifulSoup) -> Result[Any]:
        for node in soup.find_all(TEXT_SEARCH_TAGS):
            if phrase in node.get_text(" ").lower():
                return Result.ok(True, node.name)
        return _miss(f"no element mentions {phrase!r}")

    return f"text-search:{phrase}", lookup


def _chain(name: str, lookups: List[Tuple[str, Lookup]]) -> StrategyChain[Any]:
    return StrategyChain(name, lookups, error_kind=ErrorKind.TASK_EXTRACTION)


FIELD_CHAINS: Dict[str, StrategyChain[Any]] = {
    "name": _chain("name", [text_lookup(s) for s in NAME_SELECTORS]),
    "price": _chain("price", [text_lookup(s, PRICE_PATTERN) for s in PRICE_SELECTORS]),
    "has_add_to_cart": _chain("has_add_to_cart", [exists_lookup(s) for s in ADD_TO_CART_SELECTORS]),
    "has_nutrition_facts": _chain(
        "has_nutrition_facts",
        [exists_lookup(s) for s in NUTRITION_SELECTORS] + [phrase_lookup("nutrition facts")],
    ),
    "has_ingredients": _chain(
        "has_ingredients",
        [exists_lookup(s) for s in INGREDIENTS_SELECTORS] + [phrase_lookup("ingredients")],
    ),
}

FLAG_DEFAULTS = {"has_add_to_cart": False, "has_nutrition_facts": False, "has_ingredients": False}


def variations(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    """Size/flavour selection buttons."""
    found = []
    for index, button in enumerate(soup.select(VARIATION_SELECTOR), start=1):
        text = button.get_text("\n", strip=True)
        lines = [line.strip() for line in text.split("\n") if line.strip()]
        price = PRICE_PATTERN.search(text)
        found.append(
            {
                "index": index,
                "name": lines[0] if lines else button.get("data-csa-c-content-id"),
                "content_id": button.get("data-csa-c-content-id"),
                "slot_id": button.get("data-csa-c-slot-id"),
                "price": price.group(0) if price else None,
                "full_text": " ".join(lines),
            }
        )
    return found


def bundle_parts(soup: BeautifulSoup) -> Optional[List[Dict[str, Any]]]:
    """Buttons following a "What's included" heading, or None for non-bundles."""
    for heading in soup.select("h4.bds--heading-4"):
        if "what's included" not in heading.get_text(" ").lower().replace("’", "'"):
            continue
        container = heading.find_next_sibling()
        if container is None and heading.parent is not None:
            container = heading.parent.find_next_sibling()
        parts = []
        if container is not None:
            for index, button in enumerate(container.find_all("button"), start=1):
                parts.append(
                    {
                        "index": index,
                        "text": _text(button),
                        "class_name": " ".join(button.get("class", [])),
                        "id": button.get("id"),
                    }
                )
        return parts
    return None


def extract_fields(html: str) -> FieldReport:
    """Extract the item page fields.

    Parameters
    ----------
    html : str
        Item page document

    Returns
    -------
    FieldReport
        ``fields`` holds name, price, availability flags, variations and
        bundle parts; ``attempts`` holds the lookups tried per field
    """
    soup = BeautifulSoup(html or "", "html.parser")
    report = FieldReport()
    for name, chain in FIELD_CHAINS.items():
        outcome = chain.run(soup)
        report.attempts[name] = outcome.attempts
        report.winners[name] = outcome.winner
        report.fields[name] = outcome.value if outcome.ok else FLAG_DEFAULTS.get(name)

    report.fields["is_available"] = bool(report.fields["has_add_to_cart"])

    found = variations(soup)
    report.fields["variation_count"] = len(found)
    report.fields["variations"] = found

    parts = bundle_parts(soup)
    report.fields["is_bundle"] = parts is not None
    report.fields["bundle_parts_count"] = len(parts or [])
    report.fields["bundle_parts"] = parts or []
    LOGGER.debug(
        "Fields: name=%r price=%r available=%s variations=%d",
        report.fields["name"],
        report.fields["price"],
        report.fields["is_available"],
        len(found),
    )
    return report


__all__ = ["FieldReport", "extract_fields", "bundle_parts", "variations"]
