"""
Dual invocation-style adapter.

Wraps an ``async def`` operation so that it can be called either way:

    task = dispatcher.verify_payment("apple", payment)      # awaitable
    dispatcher.verify_payment("apple", payment, callback)   # callback(err, res)

Both styles schedule the SAME coroutine as a task on the running event
loop. The coroutine never starts before the call returns, so every
outcome, including failures detected from the arguments alone, is
delivered on a later loop turn. Callers may rely on the completion
callback never running before the call returns.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
from typing import Any, Awaitable, Callable, Optional, Set, TypeVar

T = TypeVar("T")

Completion = Callable[[Optional[BaseException], Any], None]

# Strong references to callback-style tasks; the loop only keeps weak ones.
_in_flight: Set["asyncio.Task[Any]"] = set()


def completion_style(
    operation: Callable[..., Awaitable[T]],
) -> Callable[..., Optional["asyncio.Task[T]"]]:
    """
    Offer ``operation`` in both the callback and the deferred-value style.

    The callback may be given as the ``callback`` keyword or as one extra
    trailing positional argument. When omitted, the returned task is the
    deferred value; when given, the call returns None and the callback is
    invoked exactly once with ``(error, None)`` or ``(None, result)``.
    """
    arity = len(inspect.signature(operation).parameters)

    @functools.wraps(operation)
    def entry(*args: Any, callback: Optional[Completion] = None):
        if len(args) > arity:
            if callback is not None or len(args) > arity + 1:
                raise TypeError(
                    f"{operation.__name__}() takes {arity} positional "
                    "arguments plus an optional callback"
                )
            *args, callback = args

        # Fails fast (RuntimeError) before the coroutine is created.
        loop = asyncio.get_running_loop()
        task = loop.create_task(operation(*args))

        if callback is None:
            return task

        _in_flight.add(task)
        task.add_done_callback(_in_flight.discard)
        task.add_done_callback(functools.partial(_settle, callback))
        return None

    return entry


def _settle(callback: Completion, task: "asyncio.Task[Any]") -> None:
    if task.cancelled():
        callback(asyncio.CancelledError(), None)
        return
    error = task.exception()
    if error is not None:
        callback(error, None)
    else:
        callback(None, task.result())
