import inspect
import os
from typing import Any
from collections.abc import Callable

from justload.types import UNSET

_POSITIONAL_KINDS = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


def _resolve_bool_flag(explicit: bool | None, env_var: str) -> bool:
    """Resolve a boolean flag from explicit value or environment variable."""
    if explicit is not None:
        return explicit

    raw = os.getenv(env_var)
    if raw is None:
        return False

    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _resolve_name(target: str | Callable[..., Any]) -> str:
    """Resolve a name string from a string or callable target."""
    if isinstance(target, str):
        return target

    if hasattr(target, "func") and hasattr(target.func, "__name__"):
        return str(target.func.__name__)

    if hasattr(target, "__name__"):
        return str(target.__name__)

    if callable(target):
        return str(type(target).__name__)

    raise ValueError(f"Cannot resolve name for {target}")


def _positional_parameters(
    fn: Callable[..., Any],
) -> list[inspect.Parameter] | None:
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        # Some builtins expose no signature
        return None
    return [p for p in signature.parameters.values() if p.kind in _POSITIONAL_KINDS]


def positional_arity(fn: Callable[..., Any]) -> int | None:
    """Number of positional parameters ``fn`` declares, defaults included.

    None when ``fn`` has no introspectable signature.
    """
    params = _positional_parameters(fn)
    return None if params is None else len(params)


def accepts_varargs(fn: Callable[..., Any]) -> bool:
    """True if ``fn`` collects extra positional arguments through ``*args``."""
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return False
    return any(
        p.kind is inspect.Parameter.VAR_POSITIONAL
        for p in signature.parameters.values()
    )


def bind_positional(
    fn: Callable[..., Any], args: tuple[Any, ...], kwargs: dict[str, Any]
) -> tuple[Any, ...]:
    """Map a call onto ``fn``'s positional parameters.

    ``f(1, b=2)`` and ``f(1, 2)`` produce the same tuple. Parameters the call
    leaves out become ``UNSET``; defaults are not applied. Values collected by
    ``*args`` follow the named parameters. Calls that do not bind (wrong
    argument count) fall back to the raw positional arguments so the wrapped
    function can raise its own ``TypeError``.
    """
    params = _positional_parameters(fn)
    if params is None:
        return tuple(args)
    try:
        bound = inspect.signature(fn).bind_partial(*args, **kwargs)
    except TypeError:
        return tuple(args)
    named = tuple(bound.arguments.get(p.name, UNSET) for p in params)
    extra = next(
        (
            bound.arguments.get(p.name, ())
            for p in bound.signature.parameters.values()
            if p.kind is inspect.Parameter.VAR_POSITIONAL
        ),
        (),
    )
    return named + tuple(extra)
