"""Item ids of the merchandising carousels on a page.

Every element carrying ``data-a-carousel-options`` is one carousel. Its JSON
payload is searched by ordered strategies; the container's markup is the last
resort.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup, Tag

from ..errors import ErrorKind, Result
from ..strategies import Attempt, StrategyChain
from .identifiers import DETAIL_LINK_PATTERN, PRIMARY_PATTERN, MIN_PATTERN_MATCHES, clean_ids, first_item_id, is_item_id, pattern_ids, unique
from .tree import DEFAULT_MAX_DEPTH, iter_arrays

LOGGER = logging.getLogger(__name__)

PAYLOAD_ATTRIBUTE = "data-a-carousel-options"
HEADING_SELECTOR = 'h2, h3, h4, .heading, [class*="heading"], [class*="title"]'
HEADING_TAGS = ("h2", "h3", "h4")

_NESTED_PATHS: List[Iterable[str]] = [
    ("ajax", "params", "id_list"),
    ("ajax", "params", "asins"),
]
_TITLE_NOISE = re.compile(r"\s*\b(?:see\s+more|shop\s+all|view\s+all|show\s+all)\b\s*", re.IGNORECASE)

STRUCTURED_METHODS = ("direct-attribute", "nested-parameters")


@dataclass
class Payload:
    """Carousel options as found in the attribute, plus the parse result."""

    raw: str
    data: Any = None
    parse_error: Optional[str] = None

    @classmethod
    def parse(cls, raw: str) -> "Payload":
        try:
            return cls(raw=raw, data=json.loads(raw))
        except ValueError as exc:
            return cls(raw=raw, parse_error=str(exc))

    @property
    def parsed(self) -> bool:
        return self.parse_error is None


@dataclass
class IdExtraction:
    ids: List[str] = field(default_factory=list)
    method: Optional[str] = None
    attempts: List[Attempt] = field(default_factory=list)


@dataclass
class CarouselRecord:
    """One carousel and the item ids it advertises."""

    title: str
    carousel_id: str
    item_ids: List[str]
    method: str
    attempts: List[Attempt] = field(default_factory=list, repr=False)

    @property
    def item_count(self) -> int:
        return len(self.item_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "carousel_id": self.carousel_id,
            "item_ids": list(self.item_ids),
            "item_count": self.item_count,
            "method": self.method,
        }


def _fail(message: str) -> Result[List[str]]:
    return Result.fail(ErrorKind.TASK_EXTRACTION, message)


def _ids_or_fail(values: List[str], message: str, found: str = "") -> Result[List[str]]:
    return Result.ok(values, found) if values else _fail(message)


def _as_strings(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def direct_attribute(payload: Payload) -> Result[List[str]]:
    if not isinstance(payload.data, dict):
        return _fail("payload is not an object")
    return _ids_or_fail(_as_strings(payload.data.get("id_list")), "no id_list at root", "id_list")


def nested_parameters(payload: Payload) -> Result[List[str]]:
    for path in _NESTED_PATHS:
        current: Any = payload.data
        for key in path:
            if isinstance(current, dict):
                current = current.get(key)
            else:
                current = None
                break
        ids = _as_strings(current)
        if ids:
            return Result.ok(ids, ".".join(path))
    return _fail("no nested id list")


def score_array(array: List[Any]) -> List[str]:
    """Ids an array contributes: valid strings, or the first valid value of each object."""
    found: List[str] = []
    for item in array:
        if is_item_id(item):
            found.append(item.strip())
        elif isinstance(item, dict):
            candidate = first_item_id(item)
            if candidate:
                found.append(candidate)
    return found


def best_array(data: Any, max_depth: int = DEFAULT_MAX_DEPTH) -> Tuple[Optional[str], List[str]]:
    """Highest-scoring array in a payload; the first one wins ties."""
    best_path: Optional[str] = None
    best: List[str] = []
    for path, array in iter_arrays(data, max_depth=max_depth):
        found = score_array(array)
        if len(found) > len(best):
            best_path, best = path, found
    return best_path, best


def exhaustive_search(payload: Payload) -> Result[List[str]]:
    if not payload.parsed:
        return _fail("payload not parsed")
    path, ids = best_array(payload.data)
    return _ids_or_fail(ids, "no array holds ids", f"best array at {path or '<root>'}")


def serialized_text(payload: Payload) -> Result[List[str]]:
    if not payload.parsed:
        return _fail("payload not parsed")
    text = json.dumps(payload.data, separators=(",", ":"))
    return _ids_or_fail(pattern_ids(text), "too few pattern matches in serialized payload")


def raw_text(payload: Payload) -> Result[List[str]]:
    if payload.parsed:
        return _fail("payload parsed; raw scan skipped")
    found = unique(PRIMARY_PATTERN.findall(payload.raw))
    if len(found) >= MIN_PATTERN_MATCHES:
        return Result.ok(found)
    return _fail("too few pattern matches in raw payload")


PAYLOAD_CHAIN: StrategyChain[List[str]] = StrategyChain(
    "carousel-payload",
    [
        ("direct-attribute", direct_attribute),
        ("nested-parameters", nested_parameters),
        ("exhaustive-search", exhaustive_search),
        ("serialized-text", serialized_text),
        ("raw-text", raw_text),
    ],
    error_kind=ErrorKind.TASK_EXTRACTION,
)


def extract_ids(raw: str) -> IdExtraction:
    """Run the payload strategies over one attribute value.

    When a structured lookup wins, the exhaustive search is still run and
    replaces it if it finds strictly more valid ids.
    """
    payload = Payload.parse(raw or "")
    outcome = PAYLOAD_CHAIN.run(payload)
    result = IdExtraction(attempts=list(outcome.attempts))
    if not outcome.ok:
        return result

    ids, method = clean_ids(outcome.value), outcome.winner
    if method in STRUCTURED_METHODS:
        challenger = exhaustive_search(payload)
        challenger_ids = clean_ids(challenger.value or [])
        wins = len(challenger_ids) > len(ids)
        result.attempts.append(
            Attempt(
                strategy="exhaustive-challenger",
                ok=wins,
                message=f"{len(challenger_ids)} vs {len(ids)} ids",
                error=None if wins else ErrorKind.TASK_EXTRACTION,
            )
        )
        if wins:
            ids, method = challenger_ids, "exhaustive-search"
    result.ids, result.method = ids, method
    return result


def _from_markup(container: Tag) -> Tuple[List[str], Optional[str]]:
    ids = clean_ids(node.get("data-asin") for node in container.select("[data-asin]"))
    if ids:
        return ids, "dom-data-asin"
    links = []
    for anchor in container.select('a[href*="/dp/"]'):
        match = DETAIL_LINK_PATTERN.search(anchor.get("href", ""))
        if match:
            links.append(match.group(1))
    ids = clean_ids(links)
    return (ids, "dom-links") if ids else ([], None)


def clean_title(title: str) -> str:
    return re.sub(r"\s+", " ", _TITLE_NOISE.sub(" ", title)).strip()


def _heading_text(node: Optional[Tag]) -> str:
    return node.get_text(" ", strip=True) if node is not None else ""


def find_title(container: Tag) -> Optional[str]:
    """Nearest heading: previous siblings first, then ancestors."""
    for sibling in container.find_previous_siblings():
        if not isinstance(sibling, Tag):
            continue
        text = _heading_text(sibling.select_one(HEADING_SELECTOR))
        if text:
            return text
        if sibling.name in HEADING_TAGS and _heading_text(sibling):
            return _heading_text(sibling)
    for parent in container.parents:
        if parent.name in ("body", "html", "[document]"):
            break
        text = _heading_text(parent.select_one(HEADING_SELECTOR))
        if text:
            return text
    return None


def extract(html: str) -> List[CarouselRecord]:
    """Carousels with at least one valid item id, in document order.

    Parameters
    ----------
    html : str
        Document snapshot

    Returns
    -------
    list[CarouselRecord]
        One record per productive carousel
    """
    soup = BeautifulSoup(html or "", "html.parser")
    records: List[CarouselRecord] = []
    for index, container in enumerate(soup.select(f"[{PAYLOAD_ATTRIBUTE}]")):
        title = clean_title(find_title(container) or "") or f"Carousel {index + 1}"
        found = extract_ids(container.get(PAYLOAD_ATTRIBUTE, ""))
        ids, method = found.ids, found.method
        if not ids:
            ids, method = _from_markup(container)
        if not ids:
            LOGGER.debug("Carousel %d (%s): no item ids", index + 1, title)
            continue
        records.append(
            CarouselRecord(
                title=title,
                carousel_id=container.get("id") or f"carousel-{index}",
                item_ids=ids,
                method=method or "unknown",
                attempts=found.attempts,
            )
        )
    LOGGER.debug("Extracted %d carousels with %d ids", len(records), sum(r.item_count for r in records))
    return records


__all__ = ["CarouselRecord", "IdExtraction", "Payload", "best_array", "clean_title", "extract", "extract_ids", "find_title"]
