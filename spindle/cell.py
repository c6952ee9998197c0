"""An ambient context value which follows Tasks across suspensions

Python's own `contextvars` are bound to whichever event loop callback happens to be
running, which for us is whatever object resumed a continuation. That's the wrong
scope: we want the value to belong to the logical sequence of steps making up a
Task, no matter who resumes it.

So the value lives on the Task. The Driver swaps a Task's saved value into the slot
before stepping it, and swaps it back out once the step suspends or finishes. Since
Task steps nest (a step can synchronously resume another Task, which is stepped
right there, on the same stack), the slot is restored to whatever it held before,
in stack order. At most one step runs at a time, so there's nothing to lock.

Code running outside of any step, such as a raw callback invoked by some event loop,
just sees the outermost value. Nothing restores a Task's value for it there.

"""
from __future__ import annotations
import typing as t

__all__ = [
    'ContextCell',
    'context',
]

class ContextCell:
    "A single slot holding the current context value; the default value is None."
    def __init__(self, default: t.Any=None) -> None:
        self._value: t.Any = default

    def get(self) -> t.Any:
        return self._value

    def set(self, value: t.Any) -> None:
        "Set the value; inside a Task, the value stays with that Task from now on."
        self._value = value

    @property
    def value(self) -> t.Any:
        return self._value

    @value.setter
    def value(self, value: t.Any) -> None:
        self._value = value

    def _swap(self, value: t.Any) -> t.Any:
        "Only called by the Driver; put this value in the slot and return the previous one."
        previous, self._value = self._value, value
        return previous

    def __repr__(self) -> str:
        return f"ContextCell({self._value!r})"

context = ContextCell()
