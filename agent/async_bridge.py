"""Sync/async bridge for pluggable callables.

Tools, approval channels, summarizers and hook agent runners may be written
as plain functions or as coroutines. ``call_maybe_async`` lets the async
core treat them uniformly without blocking the event loop, and ``run_async``
goes the other way for synchronous entry points such as ``AgentLoop.chat``.

Dependency direction:
    run_agent.py ──> agent/async_bridge.py <── agent/tool_executor.py
    (This module imports nothing from the project.)
"""

import asyncio
import functools
import inspect
from typing import Any, Callable


def run_async(coro):
    """Run an async coroutine from a sync context.

    If the current thread already has a running event loop, we spin up a
    disposable thread so asyncio.run() can create its own loop without
    conflicting.
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if loop and loop.is_running():
        import concurrent.futures
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            future = pool.submit(asyncio.run, coro)
            return future.result()
    return asyncio.run(coro)


async def call_maybe_async(fn: Callable[..., Any], *args, **kwargs) -> Any:
    """Call fn and return its result, awaiting it if needed.

    Coroutine functions are awaited directly on the running loop. Plain
    callables run in the loop's default thread pool; if they hand back an
    awaitable, it is awaited as well.
    """
    if inspect.iscoroutinefunction(fn):
        return await fn(*args, **kwargs)
    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))
    if inspect.isawaitable(result):
        return await result
    return result
