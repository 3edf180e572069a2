"""Item cards currently rendered on a merchandising page."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, Tag

from ..errors import ErrorKind, Result
from ..strategies import Attempt, StrategyChain

LOGGER = logging.getLogger(__name__)

CARD_SELECTOR = '[data-csa-c-type="item"][data-csa-c-item-type="asin"]'
EMPTY_CARD_SELECTOR = "li.a-carousel-card.a-carousel-card-empty"
SECTION_ATTRIBUTE = "data-cel-widget"
NAME_SELECTORS = [".a-truncate-full", ".a-truncate-cut"]
NO_NAME = "[No Name]"
UNKNOWN_SECTION = "Unknown"


@dataclass
class CardRecord:
    item_id: str
    name: str
    section: str
    attempts: List[Attempt] = field(default_factory=list, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {"item_id": self.item_id, "name": self.name, "section": self.section}


@dataclass
class CardReport:
    cards: List[CardRecord] = field(default_factory=list)
    empty_count: int = 0


def _name_lookup(selector: str):
    def lookup(card: Tag) -> Result[str]:
        node = card.select_one(selector)
        text = node.get_text(" ", strip=True) if node is not None else ""
        return Result.ok(text) if text else Result.fail(ErrorKind.TASK_EXTRACTION, "no match")

    return selector, lookup


NAME_CHAIN: StrategyChain[str] = StrategyChain(
    "card-name", [_name_lookup(s) for s in NAME_SELECTORS], error_kind=ErrorKind.TASK_EXTRACTION
)


def _section(card: Tag) -> Optional[str]:
    for parent in card.parents:
        if isinstance(parent, Tag) and parent.get(SECTION_ATTRIBUTE):
            return parent[SECTION_ATTRIBUTE]
    return None


def extract_cards(html: str) -> CardReport:
    """Visible item cards with their name and enclosing widget, plus the empty slot count."""
    soup = BeautifulSoup(html or "", "html.parser")
    report = CardReport(empty_count=len(soup.select(EMPTY_CARD_SELECTOR)))
    for card in soup.select(CARD_SELECTOR):
        outcome = NAME_CHAIN.run(card)
        report.cards.append(
            CardRecord(
                item_id=(card.get("data-csa-c-item-id") or "").strip(),
                name=outcome.value if outcome.ok else NO_NAME,
                section=_section(card) or UNKNOWN_SECTION,
                attempts=outcome.attempts,
            )
        )
    LOGGER.debug("Cards: %d visible, %d empty", len(report.cards), report.empty_count)
    return report


__all__ = ["CardRecord", "CardReport", "extract_cards"]
