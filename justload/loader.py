"""Counting in-flight calls of tracked functions.

State layout, for ``add(a, b)`` called as ``add(1, 2)`` twice and ``add(2, 3)``
once::

    root
    └── add
        ├── 1
        │   └── 2: 2
        └── 2
            └── 3: 1

Each terminal counts the calls with those arguments that have not finished.
A function is only reported idle once every overlapping call is done.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import warnings
from typing import Any, TypeVar
from collections.abc import Awaitable, Callable, Iterable, Iterator, Sequence

from justload.types import (
    OMITTED,
    UNSET,
    WILDCARD,
    ArityError,
    ConsistencyError,
    StateContainer,
)
from justload._internal.shared.path_store import (
    PathStore,
    deep_get,
    deep_get_all_terminals,
    deep_get_with_wildcard,
    iter_terminals,
)
from justload._internal.shared.utils import bind_positional

logger = logging.getLogger("justload")

F = TypeVar("F", bound=Callable[..., Any])
T = TypeVar("T")

_MISSING = object()


def _canonical_args(
    state: StateContainer, identity: Any, args: Sequence[Any]
) -> tuple[Any, ...]:
    """Right-pad ``args`` with ``UNSET`` up to the declared arity.

    ``f(1)`` and ``f(1, UNSET)`` therefore address the same counter. For
    functions taking ``*args`` the values past the named parameters are folded
    into one trailing tuple, so every path under a function has the same depth.
    """
    args = tuple(args)
    arity = state.arity_of(identity)
    if arity is None:
        return args

    if state.is_variadic(identity):
        head, tail = args[:arity], args[arity:]
        head += (UNSET,) * (arity - len(head))
        if any(arg is WILDCARD for arg in tail):
            if len(tail) != 1:
                raise ValueError(
                    f"WILDCARD must stand alone to match the *args of {identity!r}"
                )
            return head + (WILDCARD,)
        return head + (tail,)

    if len(args) > arity:
        if state.strict_arity:
            raise ArityError(
                f"{identity!r} takes {arity} positional argument(s) "
                f"but {len(args)} were given"
            )
        warnings.warn(
            f"Truncating {len(args)} arguments to the declared arity {arity} "
            f"of {identity!r}",
            RuntimeWarning,
            stacklevel=3,
        )
        return args[:arity]

    return args + (UNSET,) * (arity - len(args))


def set_loader(
    state: StateContainer,
    fn: str | Callable[..., Any],
    args: Sequence[Any],
    is_loading: bool,
) -> int:
    """Record that ``fn`` called with ``args`` started or finished.

    Call once with ``is_loading=True`` when the call starts and exactly once
    with ``is_loading=False`` when it settles, whatever the outcome.

    Args:
        state: The container counters are persisted in
        fn: The tracked function, or its name
        args: Positional arguments of the call. Shorter tuples are padded
            with ``UNSET`` to the function's arity.
        is_loading: True when the call starts, False when it ends

    Returns:
        The number of calls with these arguments still running.

    Raises:
        ConsistencyError: If a finish is recorded without a matching start.
        ArityError: If ``args`` is longer than the declared arity.
    """
    if any(arg is WILDCARD for arg in args):
        raise ValueError("WILDCARD is only valid in queries, not in recorded calls")

    identity = state.identity_of(fn)
    if state.declare(fn) is None:
        state.declare(identity, len(args))
    path = (identity, *_canonical_args(state, identity, args))

    with state.transaction():
        count = deep_get(state.root, path, 0)
        if isinstance(count, PathStore):
            raise ConsistencyError(
                f"Counter path {path!r} resolves to an interior node"
            )

        new_count = count + 1 if is_loading else count - 1
        if new_count < 0:
            logger.error(
                "Unbalanced finish for %r with args %r", identity, path[1:]
            )
            raise ConsistencyError(
                f"{identity!r} with args {path[1:]!r} finished more times "
                "than it started"
            )

        state.write(path, new_count)

    logger.debug(
        "%s %r%r: %d -> %d",
        "start" if is_loading else "finish",
        identity,
        path[1:],
        count,
        new_count,
    )
    return new_count


def get_loader(
    state: StateContainer,
    fn: str | Callable[..., Any],
    args: Sequence[Any] = OMITTED,
) -> bool:
    """Return True if ``fn`` is currently running.

    Args:
        state: The container counters are persisted in
        fn: The tracked function, or its name
        args: Omit to ask about any call of ``fn``. Otherwise the positional
            arguments to match; put ``WILDCARD`` in a position to match any
            value there. For functions taking ``*args``, a lone ``WILDCARD``
            after the named parameters matches any extra arguments.

    Raises:
        ArityError: If ``args`` is longer than the declared arity.
    """
    identity = state.identity_of(fn)
    # Arity is metadata only; no counter is created for a query.
    state.declare(fn)
    if args is not OMITTED:
        padded = _canonical_args(state, identity, args)

    node = deep_get(state.root, (identity,), _MISSING)
    if node is _MISSING:
        return False

    if args is OMITTED:
        counts = deep_get_all_terminals([node])
    else:
        if any(arg is WILDCARD for arg in padded):
            counts = deep_get_with_wildcard(node, padded, WILDCARD)
        else:
            counts = [deep_get(node, padded, 0)]

    return sum(c for c in counts if isinstance(c, int)) > 0


def iter_running(
    state: StateContainer,
) -> Iterator[tuple[Any, tuple[Any, ...], int]]:
    """Yield ``(identity, args, count)`` for every call currently in flight."""
    for path, count in iter_terminals(state.root):
        if count <= 0:
            continue
        identity, args = path[0], path[1:]
        if state.is_variadic(identity):
            args = args[:-1] + tuple(args[-1])
        yield identity, args, count


def _track_future(
    state: StateContainer, fn: Any, args: tuple[Any, ...], source: asyncio.Future[T]
) -> asyncio.Future[T]:
    derived: asyncio.Future[T] = source.get_loop().create_future()

    def _settle(fut: asyncio.Future[T]) -> None:
        set_loader(state, fn, args, False)
        if derived.cancelled():
            return
        if fut.cancelled():
            derived.cancel()
            return
        error = fut.exception()
        if error is not None:
            derived.set_exception(error)
        else:
            derived.set_result(fut.result())

    def _propagate_cancel(fut: asyncio.Future[T]) -> None:
        if fut.cancelled() and not source.done():
            source.cancel()

    set_loader(state, fn, args, True)
    source.add_done_callback(_settle)
    derived.add_done_callback(_propagate_cancel)
    return derived


async def _track_awaitable(
    state: StateContainer, fn: Any, args: tuple[Any, ...], awaitable: Awaitable[T]
) -> T:
    try:
        return await awaitable
    finally:
        set_loader(state, fn, args, False)


def wrap_loader(state: StateContainer, fn: F) -> F:
    """Wrap ``fn`` so its asynchronous calls are counted in ``state``.

    The wrapper keeps ``fn``'s name, docstring and signature and is tracked
    under the same identity as ``fn``. Synchronous results pass straight
    through without touching the state. Failures of the wrapped call are
    re-raised unchanged after the call is marked finished.
    """
    state.declare(fn)

    @functools.wraps(fn)
    def wrapped(*args: Any, **kwargs: Any) -> Any:
        result = fn(*args, **kwargs)
        if not (asyncio.isfuture(result) or inspect.isawaitable(result)):
            return result

        call_args = bind_positional(fn, args, kwargs)
        if asyncio.isfuture(result):
            return _track_future(state, fn, call_args, result)

        try:
            set_loader(state, fn, call_args, True)
        except Exception:
            if inspect.iscoroutine(result):
                result.close()
            raise
        return _track_awaitable(state, fn, call_args, result)

    return wrapped  # type: ignore[return-value]


def register_loaders(
    state: StateContainer, obj: Any, members: Iterable[str]
) -> dict[str, Callable[..., Any]]:
    """Replace each listed member of ``obj`` with a tracked wrapper.

    Only the named members are touched; nothing is discovered by reflection.

    Returns:
        Mapping of member name to the installed wrapper.

    Raises:
        AttributeError: If a member does not exist on ``obj``.
        TypeError: If a member is not callable.
    """
    installed: dict[str, Callable[..., Any]] = {}
    for name in members:
        member = getattr(obj, name)
        if not callable(member):
            raise TypeError(f"Member '{name}' of {obj!r} is not callable")
        installed[name] = wrap_loader(state, member)
        setattr(obj, name, installed[name])
    return installed
