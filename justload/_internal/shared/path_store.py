"""Nested mapping addressed by an ordered sequence of arbitrary keys."""

from __future__ import annotations

from typing import Any
from collections.abc import Iterable, Iterator, Sequence


def key_handle(key: Any) -> Any:
    """Return the dict key a path segment is stored under.

    Hashable keys match by type and value, so ``1``, ``True`` and ``1.0`` stay
    distinct. Tuples and frozensets are handled element by element, which keeps
    that distinction inside them too. Unhashable keys match by object identity.
    """
    if isinstance(key, tuple):
        return (type(key), tuple(key_handle(item) for item in key))
    if isinstance(key, frozenset):
        return (type(key), frozenset(key_handle(item) for item in key))
    try:
        hash(key)
    except TypeError:
        return ("id", id(key))
    return (type(key), key)


class PathStore:
    """One interior node of the store.

    Children are either nested ``PathStore`` nodes or terminal payloads.
    Iteration yields the original keys in insertion order.
    """

    __slots__ = ("_children",)

    def __init__(self) -> None:
        # handle -> (original key, child)
        self._children: dict[Any, tuple[Any, Any]] = {}

    def __contains__(self, key: Any) -> bool:
        return key_handle(key) in self._children

    def __iter__(self) -> Iterator[Any]:
        return (key for key, _ in self._children.values())

    def __len__(self) -> int:
        return len(self._children)

    def __repr__(self) -> str:
        inner = ", ".join(f"{key!r}: {child!r}" for key, child in self.items())
        return f"PathStore({{{inner}}})"

    def get(self, key: Any, default: Any = None) -> Any:
        entry = self._children.get(key_handle(key))
        return default if entry is None else entry[1]

    def set(self, key: Any, value: Any) -> None:
        # The original key is held so identity handles stay valid.
        self._children[key_handle(key)] = (key, value)

    def items(self) -> list[tuple[Any, Any]]:
        return list(self._children.values())

    def values(self) -> list[Any]:
        return [child for _, child in self._children.values()]


def deep_set(root: PathStore, path: Sequence[Any], value: Any) -> None:
    """Write ``value`` at ``path``, creating interior nodes on the way down."""
    if not path:
        raise ValueError("deep_set requires a non-empty path")

    node = root
    for key in path[:-1]:
        child = node.get(key)
        if child is None:
            child = PathStore()
            node.set(key, child)
        elif not isinstance(child, PathStore):
            raise TypeError(
                f"Cannot descend through terminal value {child!r} at key {key!r}"
            )
        node = child

    node.set(path[-1], value)


def deep_get(root: Any, path: Sequence[Any], default: Any = None) -> Any:
    """Read the value at ``path``, or ``default`` if any segment is missing."""
    node = root
    for key in path:
        if not isinstance(node, PathStore) or key not in node:
            return default
        node = node.get(key)
    return node


def deep_get_with_wildcard(
    root: Any, path: Sequence[Any], wildcard: Any
) -> list[Any]:
    """Collect the values of every path matching ``path``.

    A segment that ``is`` ``wildcard`` matches every key present at that
    level. Segments with no match prune their branch instead of yielding a
    missing placeholder.
    """
    return _match([root], list(path), wildcard)


def _match(nodes: list[Any], path: list[Any], wildcard: Any) -> list[Any]:
    if not path:
        return nodes

    key, rest = path[0], path[1:]
    results: list[Any] = []
    for node in nodes:
        if not isinstance(node, PathStore):
            continue
        if key is wildcard:
            next_nodes = node.values()
        elif key in node:
            next_nodes = [node.get(key)]
        else:
            continue
        results.extend(_match(next_nodes, rest, wildcard))
    return results


def deep_get_all_terminals(nodes: Iterable[Any]) -> list[Any]:
    """Flatten interior nodes into the terminal payloads below them."""
    terminals: list[Any] = []
    for node in nodes:
        if isinstance(node, PathStore):
            terminals.extend(deep_get_all_terminals(node.values()))
        else:
            terminals.append(node)
    return terminals


def iter_terminals(
    root: PathStore, prefix: tuple[Any, ...] = ()
) -> Iterator[tuple[tuple[Any, ...], Any]]:
    """Yield ``(path, value)`` for every terminal below ``root``, depth-first."""
    for key, child in root.items():
        path = prefix + (key,)
        if isinstance(child, PathStore):
            yield from iter_terminals(child, path)
        else:
            yield path, child
