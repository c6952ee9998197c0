"""Sequential coroutines on top of callback-based concurrency

Callback-based code gets hard to follow quickly. Each operation takes a callback
`(error, result)`, and the logic that should run after it has to live in that
callback:

```
def count_lines_cb(path, cb):
    def on_read(error, data):
        if error:
            cb(error, None)
        else:
            cb(None, len(data.split('\\n')))
    read_file_cb(path, on_read)
```

With spindle, the same logic is written as an ordinary coroutine, and the callback
operations it uses are adapted so they can be awaited:

```
read_file = adapt(read_file_cb)

async def count_lines(path):
    return len((await read_file(path)).split('\\n'))
```

and the coroutine can itself be handed back to callback-based code with `bridge`.

Coroutines awaiting adapted operations run as Tasks. A Task suspends by giving its
continuation, as the callback, to the operation it's waiting for; when the operation
calls back, the Task is stepped right there, on the caller's stack, until its next
suspension. So there's no scheduler queue and no event loop in spindle; whatever
calls back drives the Tasks. It's single-threaded and cooperative: Tasks only
interleave at suspension points.

On top of that:

- `spin` starts a coroutine as a Task right away, and returns a Future to await its
  result later, possibly many times, from many Tasks;
- `context` holds a value which belongs to the Task that set it, and is put back in
  place whenever that Task is resumed;
- `spindle.streams` wraps push and pull sources and sinks for sequential reading and
  writing;
- `spindle.trio_runner` runs spindle Tasks from trio;
- `enable_diagnostics` makes failed Tasks carry a reconstructed logical call chain.

"""
from spindle.exceptions import SpindleError, OperationFailure, ConstructionFailure, ProtocolMisuse
from spindle.cell import context
from spindle.config import enable_diagnostics, allow_multiple_waiters, set_unhandled_failure_hook
from spindle.core import shift, Continuation, Task, State, current_task
from spindle.adapters import adapt, adapt_all, bridge, bridge_all, construct
from spindle.concur import Future, spin, Event, Funnel, first, make_n_in_parallel, run_all
from spindle.streams import wrap, Stream
