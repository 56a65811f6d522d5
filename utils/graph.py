"""
Object graph search utilities.

Payloads coming back from the payment gateway are arbitrary JSON-like trees
(and occasionally graphs, when callers stitch records together). These helpers
walk them depth-first without ever visiting the same container twice.
"""

from collections.abc import Mapping
from typing import Any, Callable, Optional, TypeVar

T = TypeVar("T")

PathKey = str | int
Matcher = Callable[[tuple[PathKey, ...], Any, Any], Optional[T]]

# Containers nested deeper than this are not descended into
MAX_DEPTH = 64


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def search_graph(root: Any, match: Matcher, max_depth: int = MAX_DEPTH) -> Optional[T]:
    """
    Depth-first search over mappings and lists.

    Args:
        root: Any JSON-like value
        match: Called as match(path, value, parent) for every reachable value
            (containers included). `path` is the tuple of keys/indices from the
            root, `parent` the container holding `value` (None for the root).
        max_depth: Containers deeper than this are matched but not descended into

    Returns:
        The first non-None value returned by `match`, or None.
    """
    visited: set[int] = set()
    stack: list[tuple[Any, tuple[PathKey, ...], Any]] = [(root, (), None)]

    while stack:
        value, path, parent = stack.pop()
        is_container = isinstance(value, Mapping) or _is_sequence(value)
        if is_container:
            if id(value) in visited:
                continue
            visited.add(id(value))

        result = match(path, value, parent)
        if result is not None:
            return result
        if not is_container or len(path) >= max_depth:
            continue

        items = value.items() if isinstance(value, Mapping) else enumerate(value)
        children = [(child, path + (key,), value) for key, child in items]
        # Reversed so the first child is popped first
        stack.extend(reversed(children))
    return None


def find_string(root: Any, predicate: Callable[[str], Optional[str]]) -> Optional[str]:
    """Return the first string anywhere in `root` accepted by `predicate`."""

    def match(path: tuple, value: Any, parent: Any) -> Optional[str]:
        if isinstance(value, str):
            return predicate(value)
        return None

    return search_graph(root, match)
