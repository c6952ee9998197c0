"""Running spindle under trio

Spindle has no event loop of its own: Tasks are stepped by whoever calls their
continuations. Under trio, that's trio tasks. This module connects the two worlds:

- `wait` lets a trio task call a callback-completing operation (such as a bridged
  spindle coroutine function) and block until the callback is called;
- `run` is `wait` on a bridged coroutine function, the usual entry point;
- `TrioScheduler` gives spindle code deferred callbacks and timers, run by trio
  tasks in a nursery.

```
async def main() -> None:
    async with trio.open_nursery() as nursery:
        scheduler = TrioScheduler(nursery)
        async def work() -> int:
            await scheduler.sleep(1)
            return 42
        print(await run(work))
trio.run(main)
```

"""
from __future__ import annotations
from spindle.adapters import adapt, bridge
from spindle.core import outcome_of
from spindle.exceptions import ProtocolMisuse
from spindle.outcome import Outcome, peek
import functools
import logging
import trio
import typing as t

__all__ = [
    'wait',
    'run',
    'TrioScheduler',
]

logger = logging.getLogger(__name__)

T = t.TypeVar('T')

async def wait(op: t.Callable[..., None], *args: t.Any) -> t.Any:
    """Call this callback-completing operation from a trio task, and wait for the callback.

    If trio cancels us before the callback is called, we stop waiting, and the
    result is discarded when it eventually arrives; the operation itself can't be
    cancelled.

    """
    task = trio.lowlevel.current_task()
    on_stack = True
    called = False
    cancelled = False
    saved: t.Optional[Outcome] = None
    def cb(error: t.Any=None, *results: t.Any) -> None:
        nonlocal called, saved
        if called:
            raise ProtocolMisuse("callback called more than once by", op)
        called = True
        result = outcome_of(error, *results)
        if cancelled:
            logger.debug("wait(%s): discarding result after cancellation: %s", op, result)
        elif on_stack:
            saved = result
        else:
            logger.debug("wait(%s): rescheduling %s with %s", op, task, result)
            trio.lowlevel.reschedule(task, result)
    op(*args, cb)
    on_stack = False
    if saved is not None:
        await trio.lowlevel.checkpoint()
        return peek(saved)
    def abort(raise_cancel: t.Any) -> trio.lowlevel.Abort:
        nonlocal cancelled
        logger.debug("wait(%s): cancelled", op)
        cancelled = True
        return trio.lowlevel.Abort.SUCCEEDED
    return await trio.lowlevel.wait_task_rescheduled(abort)

async def run(body: t.Callable[..., t.Coroutine[t.Any, t.Any, T]], *args: t.Any, **kwargs: t.Any) -> T:
    "Run this coroutine function as a spindle Task, and wait for its result."
    return await wait(functools.partial(bridge(body), **kwargs), *args)

class TrioScheduler:
    "Deferred callbacks and timers for spindle code, run by trio tasks in a nursery"
    def __init__(self, nursery: trio.Nursery) -> None:
        self.nursery = nursery
        self.sleep = adapt(self.sleep_cb)

    @staticmethod
    async def _call(func: t.Callable[..., None], args: t.Tuple[t.Any, ...]) -> None:
        func(*args)

    def call_soon(self, func: t.Callable[..., None], *args: t.Any) -> None:
        "Call `func(*args)` from a fresh trio task, soon, and not on our stack."
        self.nursery.start_soon(self._call, func, args)

    def sleep_cb(self, seconds: float, cb: t.Callable[..., None]) -> None:
        async def sleeper() -> None:
            await trio.sleep(seconds)
            cb(None, None)
        self.nursery.start_soon(sleeper)

    def timeout_cb(self, seconds: float, cb: t.Callable[..., None]) -> None:
        "Call `cb` with trio.TooSlowError after this many seconds; for racing with `first`."
        async def timer() -> None:
            await trio.sleep(seconds)
            cb(trio.TooSlowError(seconds))
        self.nursery.start_soon(timer)

    async def timeout(self, seconds: float) -> t.NoReturn:
        await adapt(self.timeout_cb)(seconds)
        raise AssertionError("timeout_cb resumed us without an error")
