import asyncio
from typing import Any

import pytest

from justload import LoaderState


class Gate:
    """Holds tracked coroutines until the test releases them."""

    def __init__(self) -> None:
        self._events: dict[Any, asyncio.Event] = {}

    def event(self, key: Any) -> asyncio.Event:
        return self._events.setdefault(key, asyncio.Event())

    async def wait(self, key: Any) -> None:
        await self.event(key).wait()

    def release(self, key: Any) -> None:
        self.event(key).set()


@pytest.fixture
def state() -> LoaderState:
    return LoaderState(debug=False)


@pytest.fixture
def gate() -> Gate:
    return Gate()
