"""Item identifier patterns and the validity predicate."""
from __future__ import annotations

import re
from typing import Any, Iterable, List, Optional

ITEM_ID_MIN_LENGTH = 8
ITEM_ID_MAX_LENGTH = 15
PRIMARY_ID_LENGTH = 10
MIN_PATTERN_MATCHES = 5

PRIMARY_PATTERN = re.compile(r"\b[A-Z0-9]{%d}\b" % PRIMARY_ID_LENGTH)
WIDE_PATTERN = re.compile(r"\b[A-Z0-9]{%d,%d}\b" % (ITEM_ID_MIN_LENGTH, ITEM_ID_MAX_LENGTH))
DETAIL_LINK_PATTERN = re.compile(r"/dp/([A-Z0-9]{8,12})")
_ALNUM_UPPER = re.compile(r"^[A-Z0-9]+$")


def is_item_id(value: Any) -> bool:
    """Uppercase alphanumeric string of 8 to 15 characters."""
    if not isinstance(value, str):
        return False
    value = value.strip()
    return ITEM_ID_MIN_LENGTH <= len(value) <= ITEM_ID_MAX_LENGTH and bool(_ALNUM_UPPER.match(value))


def first_item_id(mapping: dict) -> Optional[str]:
    """First id-looking string value of an object, in key order."""
    for value in mapping.values():
        if is_item_id(value):
            return value.strip()
    return None


def unique(values: Iterable[str]) -> List[str]:
    """De-duplicate, keeping first occurrence order."""
    seen = set()
    out: List[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            out.append(value)
    return out


def clean_ids(values: Iterable[Any]) -> List[str]:
    """Strip, validate and de-duplicate candidate identifiers."""
    return unique(v.strip() for v in values if is_item_id(v))


def pattern_ids(text: str) -> List[str]:
    """Fixed-length matches, widened when fewer than five distinct ids turn up.

    Returns an empty list when neither pattern reaches the threshold.
    """
    found = unique(PRIMARY_PATTERN.findall(text))
    if len(found) >= MIN_PATTERN_MATCHES:
        return found
    found = unique(WIDE_PATTERN.findall(text))
    if len(found) >= MIN_PATTERN_MATCHES:
        return found
    return []
