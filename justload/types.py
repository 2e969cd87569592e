from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable
from collections.abc import Callable


class LoaderError(Exception):
    """Base class for errors raised by justload."""

    pass


class ConsistencyError(LoaderError):
    """Raised when start/stop bookkeeping for a tracked function is unbalanced."""

    pass


class ArityError(LoaderError, ValueError):
    """Raised when an argument tuple is longer than the function's declared arity."""

    pass


class Marker(Enum):
    """Sentinel values used in argument positions.

    Members compare by identity only, so no real argument (``None``, ``"*"``,
    ``0``) can ever be mistaken for one of them.
    """

    WILDCARD = "wildcard"  # Query-only: match any argument at this position
    UNSET = "unset"  # Canonical padding for omitted trailing arguments

    def __repr__(self) -> str:
        return f"<{self.name}>"


WILDCARD = Marker.WILDCARD
UNSET = Marker.UNSET

# Omitted-argument sentinel for get_loader; distinct from an empty tuple.
OMITTED: Any = object()


Path = tuple[Any, ...]


@dataclass(frozen=True, slots=True)
class Change:
    """One committed counter update."""

    identity: Any
    args: tuple[Any, ...]
    previous: int
    current: int

    @property
    def started(self) -> bool:
        return self.current > self.previous

    @property
    def idle(self) -> bool:
        return self.current == 0


StateListener = Callable[[Change], None]


@runtime_checkable
class StateContainer(Protocol):
    """Structural contract for the mutable store loader counters live in."""

    strict_arity: bool

    def identity_of(self, fn: Any) -> Any: ...

    def arity_of(self, identity: Any) -> int | None: ...

    def is_variadic(self, identity: Any) -> bool: ...

    def declare(
        self, fn: Any, arity: int | None = None, variadic: bool | None = None
    ) -> int | None: ...

    @property
    def root(self) -> Any: ...

    def write(self, path: Path, value: int) -> None: ...

    def subscribe(self, listener: StateListener) -> Callable[[], None]: ...

    def transaction(self) -> AbstractContextManager[None]: ...
