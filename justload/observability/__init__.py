"""Observability helpers for loader state."""

from justload.observability.logger import TransitionLogger

__all__ = ["TransitionLogger"]
