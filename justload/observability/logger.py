"""Logging listener for loader counter changes."""

from __future__ import annotations

import logging

from justload.types import Change


class TransitionLogger:
    """Listener that writes every committed counter change to a logger.

    Attach with ``state.subscribe(TransitionLogger())``. ``LoaderState`` adds
    one automatically when created with ``debug=True`` or ``JUSTLOAD_DEBUG=1``.
    """

    def __init__(
        self,
        level: int = logging.DEBUG,
        logger: logging.Logger | None = None,
    ):
        self.level = level
        self.logger = logger or logging.getLogger("justload.transitions")

    def __call__(self, change: Change) -> None:
        if not self.logger.isEnabledFor(self.level):
            return
        self.logger.log(self.level, self.format(change))

    @staticmethod
    def format(change: Change) -> str:
        name = getattr(change.identity, "__qualname__", None) or repr(change.identity)
        args = ", ".join(repr(arg) for arg in change.args)
        if change.started:
            verb = "started"
        elif change.idle:
            verb = "idle"
        else:
            verb = "finished"
        return f"{name}({args}) {verb}: {change.previous} -> {change.current}"
