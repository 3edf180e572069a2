"""HTML extraction: merchandising carousels, visible cards and item detail fields.

Everything here is pure: functions take a document string and never touch the
browser.
"""

from .cards import CardRecord, CardReport, extract_cards
from .carousel import CarouselRecord, extract, extract_ids
from .fields import FieldReport, extract_fields
from .identifiers import is_item_id

__all__ = [
    "CardRecord",
    "CardReport",
    "CarouselRecord",
    "FieldReport",
    "extract",
    "extract_cards",
    "extract_fields",
    "extract_ids",
    "is_item_id",
]
