"""Reconstructing the logical call chain of a failed Task

The Python traceback of an exception raised inside a Task only goes back as far as
the Driver step that resumed the Task; before that, it shows whatever event source
called the continuation, not the Task that started us. That's accurate, but not
very useful.

When diagnostics are enabled (see `spindle.config.enable_diagnostics`), the Driver
records the chain of coroutine frames a Task is suspended in, every time it
suspends. A Task created while another Task is being stepped also remembers its
creator's chain. When a Task fails, those two chains are combined and attached to
the exception as `spindle_stack`, next to the ordinary traceback. The first chain
attached to an exception wins, since it's the one closest to where the failure
happened.

"""
from __future__ import annotations
import os
import traceback
import types
import typing as t

if t.TYPE_CHECKING:
    from spindle.core import Task

__all__ = [
    'record',
    'chain_of',
    'attach',
    'format_stack',
]

# frames inside spindle itself, such as `shift` and the adapters, are noise
_PACKAGE_DIR = os.path.dirname(os.path.abspath(__file__))

def _frame_summary(frame: types.FrameType) -> traceback.FrameSummary:
    code = frame.f_code
    return traceback.FrameSummary(code.co_filename, frame.f_lineno, code.co_name, lookup_line=False)

def _frames_of(coro: t.Any) -> t.List[traceback.FrameSummary]:
    "Walk down the chain of awaits starting at this coroutine, outermost first."
    frames: t.List[traceback.FrameSummary] = []
    while coro is not None:
        frame = getattr(coro, 'cr_frame', None) or getattr(coro, 'gi_frame', None)
        if frame is not None and os.path.dirname(os.path.abspath(frame.f_code.co_filename)) != _PACKAGE_DIR:
            frames.append(_frame_summary(frame))
        coro = getattr(coro, 'cr_await', None) or getattr(coro, 'gi_yieldfrom', None)
    return frames

def record(task: Task) -> None:
    "Called by the Driver each time this Task suspends."
    task.frames = _frames_of(task.coro)

def chain_of(task: Task) -> t.List[traceback.FrameSummary]:
    "The full logical call chain of this Task, as of its last suspension."
    from spindle.core import State
    if task.state is State.RUNNING:
        own = _frames_of(task.coro)
    else:
        own = task.frames
    return task.parent_frames + own

def attach(task: Task, exn: BaseException) -> None:
    if getattr(exn, 'spindle_stack', None) is not None:
        return
    stack = traceback.StackSummary.from_list(chain_of(task))
    exn.spindle_stack = stack # type: ignore
    if hasattr(exn, 'add_note'):
        exn.add_note(f"spindle call chain of {task.name} (most recent call last):\n"
                     + ''.join(stack.format()).rstrip('\n'))

def format_stack(exn: BaseException) -> str:
    "Render the reconstructed call chain attached to this exception, if any."
    stack = getattr(exn, 'spindle_stack', None)
    if stack is None:
        return ""
    return ''.join(stack.format())
