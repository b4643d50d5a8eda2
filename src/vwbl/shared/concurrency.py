"""Concurrency helpers with backpressure.

Blocking work (AES over whole buffers, boto3 calls, file reads) is pushed to
the default threadpool through a bounded semaphore so a large multi-file
token cannot flood it.
"""

from __future__ import annotations

import asyncio
import inspect
import os
from collections.abc import Awaitable, Callable, Iterable
from typing import ParamSpec, TypeVar

_P = ParamSpec("_P")
_T = TypeVar("_T")


def _default_to_thread_limit() -> int:
    cpu = os.cpu_count() or 4
    return max(4, min(32, cpu * 4))


_TO_THREAD_LIMIT = int(os.getenv("VWBL_TO_THREAD_LIMIT", str(_default_to_thread_limit())))
_TO_THREAD_SEMAPHORE = asyncio.Semaphore(_TO_THREAD_LIMIT)


async def to_thread_limited(func: Callable[_P, _T], /, *args: _P.args, **kwargs: _P.kwargs) -> _T:
    """Run a blocking function in a thread with bounded concurrency."""
    await _TO_THREAD_SEMAPHORE.acquire()
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    finally:
        _TO_THREAD_SEMAPHORE.release()


async def gather_settled(aws: Iterable[Awaitable[_T]]) -> list[_T | BaseException]:
    """Run awaitables concurrently and wait for all of them.

    A failing awaitable never cancels its siblings; its exception takes its
    slot in the returned list.
    """
    return await asyncio.gather(*aws, return_exceptions=True)


async def maybe_await(value: Awaitable[_T] | _T) -> _T:
    """Await `value` if it is awaitable (sync or async callbacks)."""
    if inspect.isawaitable(value):
        return await value
    return value
