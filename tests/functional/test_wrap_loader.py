import asyncio
import inspect
from typing import Any

import pytest

from justload import (
    UNSET,
    WILDCARD,
    ArityError,
    LoaderState,
    get_loader,
    iter_running,
    register_loaders,
    wrap_loader,
)


async def _idle() -> None:
    await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_async_call_is_loading_until_awaited(state: LoaderState) -> None:
    async def refresh() -> str:
        await asyncio.sleep(0)
        return "done"

    tracked = wrap_loader(state, refresh)

    pending = tracked()
    assert get_loader(state, refresh, [])
    assert get_loader(state, refresh)

    assert await pending == "done"
    assert not get_loader(state, refresh, [])


def test_sync_results_are_never_tracked(state: LoaderState) -> None:
    changes: list[Any] = []
    state.subscribe(changes.append)

    def add(a: int, b: int) -> int:
        return a + b

    tracked = wrap_loader(state, add)

    assert tracked(1, 2) == 3
    assert changes == []
    assert list(iter_running(state)) == []


@pytest.mark.asyncio
async def test_overlapping_calls_with_same_args(state: LoaderState, gate: Any) -> None:
    async def fetch(page: int, kind: str) -> int:
        await gate.wait(len(calls))
        return page

    calls: list[Any] = []
    tracked = wrap_loader(state, fetch)

    calls.append(asyncio.ensure_future(tracked(1, "a")))
    await _idle()
    calls.append(asyncio.ensure_future(tracked(1, "a")))
    await _idle()
    assert get_loader(state, fetch, [1, "a"])

    gate.release(1)
    await calls[0]
    assert get_loader(state, fetch, [1, "a"])

    gate.release(2)
    await calls[1]
    assert not get_loader(state, fetch, [1, "a"])


@pytest.mark.asyncio
async def test_failure_is_reraised_after_finish(state: LoaderState) -> None:
    class LoadFailed(Exception):
        pass

    error = LoadFailed("boom")

    async def explode(x: int) -> None:
        await asyncio.sleep(0)
        raise error

    tracked = wrap_loader(state, explode)
    pending = tracked(3)
    assert get_loader(state, explode, [3])

    with pytest.raises(LoadFailed) as exc_info:
        await pending

    assert exc_info.value is error
    assert not get_loader(state, explode, [3])


@pytest.mark.asyncio
async def test_cancellation_marks_call_finished(state: LoaderState, gate: Any) -> None:
    async def slow(x: int) -> None:
        await gate.wait("never")

    tracked = wrap_loader(state, slow)
    task = asyncio.ensure_future(tracked(1))
    await _idle()
    assert get_loader(state, slow, [1])

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert not get_loader(state, slow)


@pytest.mark.asyncio
async def test_keyword_and_positional_calls_share_counter(
    state: LoaderState, gate: Any
) -> None:
    async def search(query: str, limit: int = 10) -> None:
        await gate.wait("go")

    tracked = wrap_loader(state, search)
    task = asyncio.ensure_future(tracked(query="cats", limit=5))
    await _idle()

    assert get_loader(state, search, ["cats", 5])
    assert get_loader(state, search, [WILDCARD, 5])

    gate.release("go")
    await task
    assert not get_loader(state, search)


@pytest.mark.asyncio
async def test_omitted_trailing_args_are_unset(state: LoaderState, gate: Any) -> None:
    async def search(query: str, limit: int = 10) -> None:
        await gate.wait("go")

    tracked = wrap_loader(state, search)
    task = asyncio.ensure_future(tracked("cats"))
    await _idle()

    assert get_loader(state, search, ["cats"])
    assert get_loader(state, search, ["cats", UNSET])
    # Defaults are not applied
    assert not get_loader(state, search, ["cats", 10])

    gate.release("go")
    await task


@pytest.mark.asyncio
async def test_future_results_settle_through_derived_future(
    state: LoaderState,
) -> None:
    loop = asyncio.get_running_loop()
    source: asyncio.Future[int] = loop.create_future()

    def schedule(job_id: int) -> "asyncio.Future[int]":
        return source

    tracked = wrap_loader(state, schedule)
    derived = tracked(9)

    assert asyncio.isfuture(derived)
    assert derived is not source
    assert get_loader(state, schedule, [9])

    source.set_result(42)
    assert await derived == 42
    assert not get_loader(state, schedule, [9])


@pytest.mark.asyncio
async def test_future_failure_is_forwarded(state: LoaderState) -> None:
    loop = asyncio.get_running_loop()
    source: asyncio.Future[int] = loop.create_future()
    tracked = wrap_loader(state, lambda: source)

    derived = tracked()
    source.set_exception(KeyError("missing"))

    with pytest.raises(KeyError, match="missing"):
        await derived
    assert list(iter_running(state)) == []


@pytest.mark.asyncio
async def test_cancelling_derived_future_cancels_source(state: LoaderState) -> None:
    loop = asyncio.get_running_loop()
    source: asyncio.Future[int] = loop.create_future()

    def schedule() -> "asyncio.Future[int]":
        return source

    derived = wrap_loader(state, schedule)()
    derived.cancel()
    await _idle()
    await _idle()

    assert source.cancelled()
    assert not get_loader(state, schedule)


@pytest.mark.asyncio
async def test_wrapper_keeps_identity_and_metadata(state: LoaderState) -> None:
    async def load_profile(user_id: int) -> int:
        """Load a profile."""
        return user_id

    tracked = wrap_loader(state, load_profile)

    assert tracked.__name__ == "load_profile"
    assert tracked.__doc__ == "Load a profile."
    assert tracked.__wrapped__ is load_profile  # type: ignore[attr-defined]
    assert str(inspect.signature(tracked)) == "(user_id: int) -> int"

    pending = tracked(5)
    # The wrapper and the original address the same counters
    assert get_loader(state, tracked, [5])
    assert get_loader(state, load_profile, [5])
    await pending


@pytest.mark.asyncio
async def test_call_errors_raise_before_tracking(state: LoaderState) -> None:
    async def one(x: int) -> None:
        pass

    tracked = wrap_loader(state, one)
    with pytest.raises(TypeError):
        tracked(1, 2)
    assert not get_loader(state, one)


@pytest.mark.asyncio
async def test_register_loaders_wraps_listed_members(
    state: LoaderState, gate: Any
) -> None:
    class Api:
        async def users(self, page: int) -> int:
            await gate.wait("users")
            return page

        async def teams(self) -> None:
            await gate.wait("teams")

    api = Api()
    installed = register_loaders(state, api, ["users"])

    assert set(installed) == {"users"}
    task = asyncio.ensure_future(api.users(2))
    untracked = asyncio.ensure_future(api.teams())
    await _idle()

    assert get_loader(state, api.users, [2])
    assert get_loader(state, api.users)
    assert not get_loader(state, api.teams)

    gate.release("users")
    gate.release("teams")
    await asyncio.gather(task, untracked)
    assert not get_loader(state, api.users)


def test_register_loaders_validates_members(state: LoaderState) -> None:
    class Api:
        limit = 5

    with pytest.raises(AttributeError):
        register_loaders(state, Api(), ["missing"])
    with pytest.raises(TypeError, match="not callable"):
        register_loaders(state, Api(), ["limit"])


@pytest.mark.asyncio
async def test_listeners_see_start_and_finish(state: LoaderState) -> None:
    currents: list[int] = []
    state.subscribe(lambda change: currents.append(change.current))

    async def job() -> None:
        await asyncio.sleep(0)

    await wrap_loader(state, job)()

    assert currents == [1, 0]


@pytest.mark.asyncio
async def test_variadic_calls_keep_their_arguments(
    state: LoaderState, gate: Any
) -> None:
    async def fetch_many(*ids: int) -> None:
        await gate.wait(ids)

    tracked = wrap_loader(state, fetch_many)
    first = asyncio.ensure_future(tracked(1, 2))
    second = asyncio.ensure_future(tracked(3))
    await _idle()

    assert get_loader(state, fetch_many, [1, 2])
    assert get_loader(state, fetch_many, [3])
    assert not get_loader(state, fetch_many, [1])
    assert list(iter_running(state)) == [
        (fetch_many, (1, 2), 1),
        (fetch_many, (3,), 1),
    ]

    gate.release((1, 2))
    await first
    assert not get_loader(state, fetch_many, [1, 2])
    assert get_loader(state, fetch_many, [WILDCARD])

    gate.release((3,))
    await second
    assert not get_loader(state, fetch_many)


@pytest.mark.asyncio
async def test_rejected_start_closes_the_coroutine() -> None:
    state = LoaderState(key_by_name=True, debug=False)
    created: list[Any] = []

    async def job(a: int, b: int) -> None:
        pass

    def launch(a: int, b: int) -> Any:
        coro = job(a, b)
        created.append(coro)
        return coro

    # Arity on record is narrower than the call
    state.declare("launch", 1)
    tracked = wrap_loader(state, launch)

    with pytest.raises(ArityError):
        tracked(1, 2)

    assert inspect.getcoroutinestate(created[0]) == inspect.CORO_CLOSED
    assert not get_loader(state, "launch")
