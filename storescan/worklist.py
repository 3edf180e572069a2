"""CSV work lists: items per store and the store code to store id mapping."""
from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .models import ScanTask

LOGGER = logging.getLogger(__name__)

NAME_COLUMNS = ("name", "item_name", "title")
UNKNOWN_ITEM = "Unknown Item"


def _find_column(headers: Iterable[str], exact: Iterable[str], contains: Iterable[str] = ()) -> Optional[str]:
    headers = list(headers)
    lowered = {h: (h or "").strip().lower() for h in headers}
    for wanted in exact:
        for header in headers:
            if lowered[header] == wanted:
                return header
    for fragment in contains:
        for header in headers:
            if fragment in lowered[header]:
                return header
    return None


def load_store_mapping(path: str | Path) -> Dict[str, str]:
    """Read ``StoreCode``/``StoreId`` columns; codes are upper-cased.

    Raises
    ------
    ValueError
        If either column is missing
    """
    mapping: Dict[str, str] = {}
    with open(path, newline="", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        code_col = _find_column(reader.fieldnames or [], ("storecode",))
        id_col = _find_column(reader.fieldnames or [], ("storeid",))
        if code_col is None or id_col is None:
            raise ValueError('store mapping file must contain "StoreCode" and "StoreId" columns')
        for line_num, row in enumerate(reader, 2):
            code = (row.get(code_col) or "").strip().upper()
            store_id = (row.get(id_col) or "").strip()
            if not code or not store_id.isdigit():
                LOGGER.warning("Skipping store mapping line %d: %r", line_num, row)
                continue
            mapping[code] = store_id
    LOGGER.info("Loaded %d store mappings from %s", len(mapping), path)
    return mapping


def load_items(path: str | Path) -> List[ScanTask]:
    """Read the item list.

    The store column is ``store_tlc`` or any header mentioning store, tlc or
    code; the item column is any header mentioning asin. Rows missing either
    value are skipped.
    """
    tasks: List[ScanTask] = []
    with open(path, newline="", encoding="utf-8-sig") as f:
        reader = csv.DictReader(f)
        headers = reader.fieldnames or []
        store_col = _find_column(headers, ("store_tlc",), ("store", "tlc", "code"))
        item_col = _find_column(headers, (), ("asin",))
        name_col = _find_column(headers, NAME_COLUMNS)
        if store_col is None or item_col is None:
            raise ValueError("item list must contain store and asin columns")
        for row in reader:
            store = (row.get(store_col) or "").strip().upper()
            item = (row.get(item_col) or "").strip().upper()
            if not store or not item:
                continue
            name = (row.get(name_col) or "").strip() if name_col else ""
            tasks.append(ScanTask(location_code=store, item_id=item, item_name=name or UNKNOWN_ITEM))
    LOGGER.info(
        "Loaded %d items across %d stores from %s",
        len(tasks),
        len({t.location_code for t in tasks}),
        path,
    )
    return tasks


__all__ = ["load_items", "load_store_mapping"]
