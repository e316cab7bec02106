from __future__ import annotations

import asyncio
import functools
from typing import Callable, Coroutine, TypeVar

import anyio

T = TypeVar("T")


def run_async(coro: Coroutine[object, object, T], *, timeout: float | None = None) -> T:
    """
    Run an engine coroutine from synchronous code (CLI commands, scripts).

    Raises if called from an async context in the same thread (use await instead).
    """

    async def _runner() -> T:
        if timeout is not None:
            with anyio.fail_after(timeout):
                return await coro
        return await coro

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return anyio.run(_runner)
    raise RuntimeError("run_async called from async context; use await instead")


async def run_blocking(fn: Callable[..., T], *args, **kwargs) -> T:
    """Run a blocking call (smtplib, boto3) in a worker thread."""
    return await anyio.to_thread.run_sync(functools.partial(fn, *args, **kwargs))
