from __future__ import annotations

import inspect
import logging
from contextlib import contextmanager
from typing import Any
from collections.abc import Callable, Iterator

from justload.types import Change, Path, StateListener
from justload._internal.shared.path_store import (
    PathStore,
    deep_get,
    deep_set,
    key_handle,
)
from justload._internal.shared.utils import (
    _resolve_bool_flag,
    _resolve_name,
    accepts_varargs,
    positional_arity,
)

logger = logging.getLogger("justload.state")


class LoaderState:
    """In-memory container for loader counters.

    Owns the path store the counters live in, the declared arity of every
    tracked identity, and the listeners notified when a counter changes.
    Notifications are held back until the outermost ``transaction()`` exits,
    so listeners never observe an intermediate value.
    """

    def __init__(
        self,
        *,
        key_by_name: bool = False,
        strict_arity: bool = True,
        debug: bool | None = None,
    ):
        """Create an empty loader state.

        Args:
            key_by_name: Key callables by ``__name__`` instead of by reference.
            strict_arity: Reject argument tuples longer than the declared
                arity. When False, excess arguments are truncated with a
                warning.
            debug: Log every counter change at INFO. If None, uses the
                JUSTLOAD_DEBUG env var.
        """
        self.key_by_name = key_by_name
        self.strict_arity = strict_arity
        self._root = PathStore()
        self._arity: dict[Any, int] = {}
        self._variadic: set[Any] = set()
        self._listeners: list[StateListener] = []
        self._pending: list[Change] = []
        self._depth = 0

        if _resolve_bool_flag(debug, "JUSTLOAD_DEBUG"):
            from justload.observability.logger import TransitionLogger

            self.subscribe(TransitionLogger(level=logging.INFO))

    @property
    def root(self) -> PathStore:
        return self._root

    def identity_of(self, fn: Any) -> Any:
        """Resolve the key a function is tracked under."""
        if isinstance(fn, str):
            return fn
        if self.key_by_name:
            return _resolve_name(fn)
        return inspect.unwrap(fn)

    def arity_of(self, identity: Any) -> int | None:
        return self._arity.get(key_handle(identity))

    def is_variadic(self, identity: Any) -> bool:
        return key_handle(identity) in self._variadic

    def declare(
        self, fn: Any, arity: int | None = None, variadic: bool | None = None
    ) -> int | None:
        """Record the arity of ``fn`` if it is not known yet.

        Callables default to their positional parameter count and are variadic
        when they take ``*args``. Name strings need an explicit ``arity``;
        otherwise the first recorded call sets it.
        Returns the arity now on record.
        """
        identity = self.identity_of(fn)
        handle = key_handle(identity)
        if handle not in self._arity:
            if callable(fn):
                target = inspect.unwrap(fn)
                if arity is None:
                    arity = positional_arity(target)
                if variadic is None:
                    variadic = accepts_varargs(target)
            if arity is not None:
                if arity < 0:
                    raise ValueError(f"Arity must be non-negative, got {arity}")
                self._arity[handle] = arity
                if variadic:
                    self._variadic.add(handle)
        return self._arity.get(handle)

    def write(self, path: Path, value: int) -> None:
        previous = self._read_count(path)
        deep_set(self._root, path, value)
        change = Change(
            identity=path[0],
            args=tuple(path[1:]),
            previous=previous,
            current=value,
        )
        with self.transaction():
            self._pending.append(change)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register ``listener`` for committed changes.

        Returns a callable that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group writes so listeners are notified once the outermost scope exits."""
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._flush()

    def _read_count(self, path: Path) -> int:
        value = deep_get(self._root, path, 0)
        return value if isinstance(value, int) else 0

    def _flush(self) -> None:
        pending, self._pending = self._pending, []
        for change in pending:
            for listener in list(self._listeners):
                try:
                    listener(change)
                except Exception as e:
                    self._log_listener_error(listener, change, e)

    def _log_listener_error(
        self, listener: Any, change: Change, error: Exception
    ) -> None:
        """Safe logging of listener failures."""
        name = getattr(listener, "__name__", listener.__class__.__name__)
        logger.error(
            "Listener %s error on %r: %s",
            name,
            change,
            str(error),
            extra={"listener": name, "error_type": type(error).__name__},
            exc_info=True,
        )
