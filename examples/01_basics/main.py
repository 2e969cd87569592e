import asyncio
import logging

from justload import WILDCARD, LoaderState, get_loader, iter_running, wrap_loader

state = LoaderState(debug=True)


async def load_page(section: str, page: int) -> list[str]:
    """Simulates a slow paginated fetch."""
    await asyncio.sleep(0.05 * page)
    return [f"{section}-{page}-{i}" for i in range(3)]


load_page_tracked = wrap_loader(state, load_page)


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s")

    tasks = [
        asyncio.ensure_future(load_page_tracked("news", 1)),
        asyncio.ensure_future(load_page_tracked("news", 2)),
        asyncio.ensure_future(load_page_tracked("sports", 1)),
    ]
    await asyncio.sleep(0)

    print("any page loading:", get_loader(state, load_page))
    print("news page 2 loading:", get_loader(state, load_page, ["news", 2]))
    print("any page 1 loading:", get_loader(state, load_page, [WILDCARD, 1]))
    for identity, args, count in iter_running(state):
        print(f"  in flight: {identity.__name__}{args} x{count}")

    await tasks[0]
    print("after news/1, any page 1 loading:", get_loader(state, load_page, [WILDCARD, 1]))

    await asyncio.gather(*tasks)
    print("all done, any page loading:", get_loader(state, load_page))


if __name__ == "__main__":
    asyncio.run(main())
