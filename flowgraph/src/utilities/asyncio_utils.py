import asyncio
import functools
import inspect
from typing import Any, Callable


async def await_if_needed(call_result: Any):
    if inspect.isawaitable(call_result):
        return await call_result
    else:
        return call_result


async def call_maybe_async(fn: Callable, *args, **kwargs) -> Any:
    """
    Call ``fn`` whether it is a coroutine function or a plain one.

    Plain callables run in the default thread pool so a slow synchronous task
    body does not stall the other workers on the event loop.
    """
    if inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(getattr(fn, "__call__", None)):
        return await fn(*args, **kwargs)
    result = await asyncio.to_thread(functools.partial(fn, *args, **kwargs))
    return await await_if_needed(result)
