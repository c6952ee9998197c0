"""Futures, and a few other concurrent communication mechanisms built on `shift`"""
from __future__ import annotations
from collections import deque
from spindle.config import settings
from spindle.core import Continuation, Driver, Task, shift
from spindle.exceptions import ProtocolMisuse
from spindle.outcome import Outcome, peek
import logging
import outcome
import typing as t

__all__ = [
    'Future',
    'spin',
    'Event',
    'Funnel',
    'first',
    'make_n_in_parallel',
    'run_all',
]

logger = logging.getLogger(__name__)

T = t.TypeVar('T')

class Future(t.Generic[T]):
    """The result of a Task which was started eagerly with `spin`

    Awaiting a Future any number of times, from any number of Tasks, gives the same
    result or raises the same exception; the Task is only ever run once.

    """
    def __init__(self, task: Task[T]) -> None:
        self.task = task
        self._observed = False

    def done(self) -> bool:
        return self.task.done()

    def _settled(self, error: t.Optional[BaseException], value: t.Optional[T]) -> None:
        logger.debug("Future(%s): settled with %r", self.task, error or value)

    def _add_waiter(self, waiter: t.Callable[[Outcome[T]], None]) -> None:
        self._observed = True
        if self.task.outcome is not None:
            waiter(self.task.outcome)
            return
        if self.task.waiters and not settings.multiple_waiters:
            raise ProtocolMisuse("Future already has a waiter, and multiple waiters are disabled", self.task)
        self.task.waiters.append(waiter)

    def _wait_cb(self, cb: Continuation[T]) -> None:
        if cb.task is self.task:
            raise ProtocolMisuse("a Task can't wait for its own Future", self.task)
        self._add_waiter(cb.resume)

    async def get(self) -> T:
        if self.task.outcome is not None:
            self._observed = True
            return peek(self.task.outcome)
        return await shift(self._wait_cb)

    def __await__(self) -> t.Generator[t.Any, None, T]:
        return self.get().__await__()

    def get_cb(self, cb: t.Callable[..., None]) -> None:
        "Call `cb(error, result)` once the Task has finished; immediately, if it already has."
        def deliver(result: Outcome[T]) -> None:
            if isinstance(result, outcome.Error):
                cb(result.error, None)
            else:
                cb(None, result.value)
        self._add_waiter(deliver)

    def __del__(self) -> None:
        result = self.task.outcome
        if self._observed or not isinstance(result, outcome.Error):
            return
        hook = settings.unhandled_failure_hook
        if hook is None:
            logger.debug("Future(%s): dropping failure which was never awaited: %r", self.task, result.error)
        else:
            hook(result.error, self.task)

    def __repr__(self) -> str:
        return f"Future({self.task!r})"

def spin(coro: t.Coroutine[t.Any, t.Any, T], name: t.Optional[str]=None) -> Future[T]:
    """Start running this coroutine right away, and return a Future for its result.

    The coroutine runs until its first suspension before `spin` returns, and then
    continues concurrently with the caller, interleaving at suspension points.

    """
    task = Task(coro, name)
    future = Future(task)
    Driver(task, future._settled).start()
    return future

class Event:
    def __init__(self) -> None:
        self._waiting_cbs: t.List[Continuation[None]] = []
        self._is_set = False
        self._exc: t.Optional[BaseException] = None

    def is_set(self) -> bool:
        return self._is_set

    async def wait(self) -> None:
        if not self._is_set:
            await shift(self._waiting_cbs.append)
        if self._exc:
            raise self._exc

    def set(self) -> None:
        self._is_set = True
        waiting_cbs, self._waiting_cbs = self._waiting_cbs, []
        for cb in waiting_cbs:
            cb.send(None)

    def close(self, exc: BaseException) -> None:
        self._exc = exc
        self.set()

class Funnel:
    """Lets at most `limit` Tasks at a time through some section of code

    Tasks arriving when the funnel is full wait in order of arrival. A Task leaving
    hands its place directly to the longest-waiting Task, so nobody can jump the queue.

    ```
    async with funnel:
        await fetch(url)
    ```

    """
    def __init__(self, limit: int) -> None:
        if limit < 1:
            raise ValueError("funnel limit must be at least 1, not", limit)
        self.limit = limit
        self.active = 0
        self._waiting_cbs: t.Deque[Continuation[None]] = deque()

    async def acquire(self) -> None:
        if self.active < self.limit and not self._waiting_cbs:
            self.active += 1
            return
        logger.debug("Funnel: full with %d active, waiting behind %d", self.active, len(self._waiting_cbs))
        await shift(self._waiting_cbs.append)

    def release(self) -> None:
        if self.active == 0:
            raise ProtocolMisuse("released a Funnel which nobody holds", self)
        if self._waiting_cbs:
            self._waiting_cbs.popleft().send(None)
        else:
            self.active -= 1

    async def __aenter__(self) -> None:
        await self.acquire()

    async def __aexit__(self, *args: t.Any) -> None:
        self.release()

    async def run(self, func: t.Callable[[], t.Awaitable[T]]) -> T:
        async with self:
            return await func()

async def first(*futures: Future[T]) -> T:
    """Return the result, or raise the failure, of whichever future finishes first.

    The other futures keep running, and whatever they end up with is discarded.
    There's no timeout primitive; a timeout is just a race against a future which
    sleeps and then raises.

    """
    if not futures:
        raise ValueError("first needs at least one future")
    for fut in futures:
        if fut.done():
            fut._observed = True
            return peek(t.cast(Outcome, fut.task.outcome))
    def register(cb: Continuation[T]) -> None:
        won = False
        def settle(result: Outcome[T]) -> None:
            nonlocal won
            if not won:
                won = True
                cb.resume(result)
        for fut in futures:
            fut._add_waiter(settle)
    return await shift(register)

async def make_n_in_parallel(make: t.Callable[[], t.Awaitable[T]], count: int) -> t.List[T]:
    "Call `make` n times in parallel, and return all the results."
    return [await fut for fut in
            [spin(make()) for _ in range(count)]] # type: ignore

async def run_all(callables: t.List[t.Callable[[], t.Awaitable[T]]]) -> t.List[T]:
    "Call all the functions passed to it, and return all the results."
    return [await fut for fut in
            [spin(func()) for func in callables]] # type: ignore
