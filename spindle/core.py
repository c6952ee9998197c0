"""Tasks, and the Driver which steps them

A Task is a native coroutine which only ever suspends by calling `shift`. `shift`
takes a function, and calls it with the current continuation of the Task: an object
which, when called, resumes the Task right where it left off. The function is
expected to stash the continuation somewhere, typically by passing it as the
callback to some callback-completing operation.

```
data = await shift(functools.partial(file.read_cb, 4096))
```

There's no event loop here. A Task is stepped synchronously by whatever resumes
its continuation; that might be an event loop callback, or it might be another Task
which is itself being stepped. The Driver is the loop which does the stepping: it
sends a value into the coroutine, receives the suspension it yields, hands out the
continuation, and when the coroutine finally returns or raises, calls the Task's
callback exactly once.

Since stepping is synchronous, callbacks are run in the order their events happen,
and Tasks are resumed in the order their continuations are called. Steps of the
same Task never nest: if a continuation is resumed while the function it was handed
to is still running, we just note the value and keep going once that function
returns.

"""
from __future__ import annotations
from spindle import diagnostics
from spindle.cell import context
from spindle.config import settings
from spindle.exceptions import ProtocolMisuse, OperationFailure
from spindle.outcome import Outcome
import enum
import inspect
import logging
import outcome
import traceback
import types
import typing as t

__all__ = [
    'State',
    'Task',
    'Driver',
    'Continuation',
    'shift',
    'start',
    'current_task',
    'outcome_of',
]

logger = logging.getLogger(__name__)

T = t.TypeVar('T')
Callback = t.Callable[..., None]

class State(enum.Enum):
    CREATED = "created"
    RUNNING = "running"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAILED = "failed"

    def is_terminal(self) -> bool:
        return self in (State.COMPLETED, State.FAILED)

class Suspend:
    "The internal type we yield up to the Driver to implement `shift`"
    __slots__ = ('func',)
    def __init__(self, func: t.Callable[[Continuation], t.Any]) -> None:
        self.func = func

def outcome_of(error: t.Any=None, *results: t.Any) -> Outcome:
    """Turn the arguments of an `(error, *results)` callback into an outcome.

    A non-empty error which isn't an exception is wrapped in OperationFailure; several
    results are returned as a tuple.

    """
    if error:
        return outcome.Error(error if isinstance(error, BaseException) else OperationFailure(error))
    elif len(results) == 0:
        return outcome.Value(None)
    elif len(results) == 1:
        return outcome.Value(results[0])
    else:
        return outcome.Value(results)

# The Task whose step is on the stack right now, if any.
_current_task: t.Optional[Task] = None

def current_task() -> t.Optional[Task]:
    "Return the Task currently being stepped, or None if we're not inside any Task."
    return _current_task

@types.coroutine
def shift(func: t.Callable[[Continuation[T]], t.Any]) -> t.Generator[t.Any, t.Any, T]:
    """Call `func` with our current continuation and block until that continuation is resumed.

    This is a coroutine function, just implemented synchronously because this is the
    only place we actually yield from.

    """
    if _current_task is None:
        raise ProtocolMisuse(
            "shift called outside of any spindle Task; start one with bridge, spin, or trio_runner.run")
    return (yield Suspend(func))

class Continuation(t.Generic[T]):
    """The rest of a suspended Task, which can be resumed exactly once

    It can be passed directly as the callback of a callback-completing operation:
    `cont(error, *results)` raises `error` at the suspension point if it's non-empty,
    and otherwise resumes the Task with the result; several results arrive as a
    tuple.

    """
    __slots__ = ('_driver', '_used')
    def __init__(self, driver: Driver) -> None:
        self._driver = driver
        self._used = False

    @property
    def task(self) -> Task:
        return self._driver.task

    def resume(self, value: Outcome[T]) -> None:
        if self._used:
            raise ProtocolMisuse("continuation resumed more than once", self.task)
        self._used = True
        self._driver._resume(value)

    def send(self, value: T) -> None:
        self.resume(outcome.Value(value))

    def throw(self, exn: BaseException) -> None:
        self.resume(outcome.Error(exn))

    def __call__(self, error: t.Any=None, *results: t.Any) -> None:
        self.resume(outcome_of(error, *results))

    def __repr__(self) -> str:
        return f"Continuation({self.task!r}, used={self._used})"

class Task(t.Generic[T]):
    "A suspendable sequential computation"
    def __init__(self, coro: t.Coroutine[t.Any, t.Any, T], name: t.Optional[str]=None) -> None:
        if not (inspect.iscoroutine(coro) or inspect.isgenerator(coro)):
            raise ProtocolMisuse("a Task must be made from a coroutine, not", coro)
        self.coro: t.Optional[t.Coroutine[t.Any, t.Any, T]] = coro
        self.name = name or getattr(coro, '__qualname__', type(coro).__name__)
        self.state = State.CREATED
        self.outcome: t.Optional[Outcome[T]] = None
        # inherited from whoever is creating us
        self.context: t.Any = context.get()
        # called with our outcome once we finish; see spindle.concur.Future
        self.waiters: t.List[t.Callable[[Outcome[T]], None]] = []
        self.frames: t.List[traceback.FrameSummary] = []
        self.parent_frames: t.List[traceback.FrameSummary] = []
        if settings.diagnostics and _current_task is not None:
            self.parent_frames = diagnostics.chain_of(_current_task)

    def done(self) -> bool:
        return self.state.is_terminal()

    def __repr__(self) -> str:
        return f"Task({self.name}, {self.state.value})"

class Driver(t.Generic[T]):
    "Steps one Task to completion, then calls one callback, exactly once."
    def __init__(self, task: Task[T], callback: Callback) -> None:
        self.task = task
        self.callback: t.Optional[Callback] = callback
        # True while the function passed to shift is running, with our Task's continuation
        self._on_stack = False
        self._saved: t.Optional[Outcome] = None

    def start(self) -> None:
        if self.task.state is not State.CREATED:
            raise ProtocolMisuse("Task has already been started", self.task)
        logger.debug("Driver(%s): starting", self.task)
        self._step(outcome.Value(None))

    def _resume(self, value: Outcome) -> None:
        task = self.task
        if task.state.is_terminal():
            raise ProtocolMisuse("resumed a Task which has already finished", task)
        if self._on_stack:
            # The function passed to shift resumed us before returning. We're still
            # inside the step loop below, so it will pick up the value.
            logger.debug("Driver(%s): immediately resumed with %s", task, value)
            self._saved = value
            return
        if task.state is not State.SUSPENDED:
            raise ProtocolMisuse("resumed a Task which is already running", task)
        logger.debug("Driver(%s): resuming with %s", task, value)
        self._step(value)

    def _step(self, value: Outcome) -> None:
        global _current_task
        task = self.task
        coro = task.coro
        assert coro is not None
        previous_task, _current_task = _current_task, task
        outer_context = context._swap(task.context)
        try:
            while True:
                task.state = State.RUNNING
                try:
                    if isinstance(value, outcome.Value):
                        yielded = coro.send(value.value)
                    else:
                        yielded = coro.throw(value.error)
                except StopIteration as exn:
                    result: Outcome = outcome.Value(exn.value)
                    break
                except BaseException as exn:
                    result = outcome.Error(exn)
                    break
                if not isinstance(yielded, Suspend):
                    logger.debug("Driver(%s): yielded foreign object %s", task, yielded)
                    value = outcome.Error(ProtocolMisuse(
                        "spindle Tasks can only suspend through spindle operations, not by yielding", yielded))
                    continue
                task.state = State.SUSPENDED
                if settings.diagnostics:
                    diagnostics.record(task)
                cont: Continuation = Continuation(self)
                self._on_stack = True
                try:
                    yielded.func(cont)
                except BaseException as exn:
                    # couldn't register the pending operation; raise at the suspension point
                    logger.debug("Driver(%s): suspending function raised %r", task, exn)
                    cont._used = True
                    self._saved = None
                    value = outcome.Error(exn)
                    continue
                finally:
                    self._on_stack = False
                if self._saved is None:
                    return
                value, self._saved = self._saved, None
        finally:
            task.context = context._swap(outer_context)
            _current_task = previous_task
        self._finish(result)

    def _finish(self, result: Outcome) -> None:
        task = self.task
        task.outcome = result
        task.coro = None
        if isinstance(result, outcome.Error):
            task.state = State.FAILED
            if settings.diagnostics:
                diagnostics.attach(task, result.error)
            logger.debug("Driver(%s): raised %r", task, result.error)
            error, value = result.error, None
        else:
            task.state = State.COMPLETED
            logger.debug("Driver(%s): returned %r", task, result.value)
            error, value = None, result.value
        callback, self.callback = self.callback, None
        assert callback is not None
        waiters, task.waiters = task.waiters, []
        try:
            callback(error, value)
        finally:
            for waiter in waiters:
                waiter(result)

def start(coro: t.Coroutine[t.Any, t.Any, T], callback: Callback, name: t.Optional[str]=None) -> Task[T]:
    "Make a Task for this coroutine and step it until its first suspension."
    task = Task(coro, name)
    Driver(task, callback).start()
    return task
