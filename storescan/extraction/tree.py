"""Bounded walk over parsed JSON payloads."""
from __future__ import annotations

from typing import Any, Iterator, List, Optional, Set, Tuple

DEFAULT_MAX_DEPTH = 15


def iter_arrays(
    obj: Any,
    max_depth: int = DEFAULT_MAX_DEPTH,
    path: str = "",
    _depth: int = 0,
    _visited: Optional[Set[int]] = None,
) -> Iterator[Tuple[str, List[Any]]]:
    """Yield ``(path, array)`` for every list reachable from ``obj``.

    Paths use dots for keys and ``[i]`` for list positions; the root list, if
    any, has the empty path. Containers deeper than ``max_depth`` are not
    visited and each container is visited once even if referenced twice.

    Examples
    --------
    >>> list(iter_arrays({"a": {"b": [1, 2]}}))
    [('a.b', [1, 2])]
    """
    if _depth > max_depth or not isinstance(obj, (dict, list)):
        return
    visited = set() if _visited is None else _visited
    if id(obj) in visited:
        return
    visited.add(id(obj))

    if isinstance(obj, list):
        yield path, obj
        for index, item in enumerate(obj):
            yield from iter_arrays(item, max_depth, f"{path}[{index}]", _depth + 1, visited)
        return

    for key, value in obj.items():
        child = f"{path}.{key}" if path else str(key)
        yield from iter_arrays(value, max_depth, child, _depth + 1, visited)
