import asyncio
from typing import Optional

from .config import get_settings
from .collectors.refresh import Sources, build_sources, run_refresh_loop
from .collectors.symbols import resolve_instrument_universe
from .services.snapshot_store import get_store

_stop_event: Optional[asyncio.Event] = None
_task: Optional[asyncio.Task] = None
_sources: Optional[Sources] = None


async def _bootstrap(stop_event: asyncio.Event, sources: Sources) -> None:
    settings = get_settings()
    store = get_store()
    # Symbol discovery happens once per process, not per refresh
    store.universe = await resolve_instrument_universe(sources.coinalyze.client.future_markets)
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=settings.startup_delay_sec)
        return
    except asyncio.TimeoutError:
        pass
    await run_refresh_loop(store, sources, stop_event, settings)


async def on_startup():
    global _stop_event, _task, _sources
    _stop_event = asyncio.Event()
    _sources = build_sources(get_settings())
    _task = asyncio.create_task(_bootstrap(_stop_event, _sources))


async def on_shutdown():
    global _stop_event, _task, _sources
    if _stop_event is not None:
        _stop_event.set()
    if _task is not None:
        try:
            await asyncio.wait_for(_task, timeout=5)
        except asyncio.TimeoutError:
            _task.cancel()
    if _sources is not None:
        await _sources.close()
