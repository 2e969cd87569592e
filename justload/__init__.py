from .loader import (
    get_loader,
    iter_running,
    register_loaders,
    set_loader,
    wrap_loader,
)
from .state import LoaderState
from .types import (
    UNSET,
    WILDCARD,
    ArityError,
    Change,
    ConsistencyError,
    LoaderError,
    Marker,
    StateContainer,
)

__all__ = [
    "LoaderState",
    "StateContainer",
    "Change",
    "set_loader",
    "get_loader",
    "wrap_loader",
    "register_loaders",
    "iter_running",
    "WILDCARD",
    "UNSET",
    "Marker",
    "LoaderError",
    "ConsistencyError",
    "ArityError",
]
