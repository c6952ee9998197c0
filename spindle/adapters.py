"""Converting between callback-completing operations and coroutines

`adapt` turns an operation which takes a callback `(error, result)` into a coroutine
function, which can be awaited inside a Task. `bridge` goes the other way, turning a
coroutine function into an operation which takes a callback; calling that operation
starts a new Task.

```
def read_file_cb(path, cb): ...
read_file = adapt(read_file_cb)

async def count_lines(path):
    return len((await read_file(path)).split('\\n'))

count_lines_cb = bridge(count_lines)
count_lines_cb("setup.py", lambda error, result: print(error, result))
```

The two are inverses: adapting a bridged coroutine function gives back the original
coroutine function, and vice versa, so going back and forth costs nothing.

"""
from __future__ import annotations
from spindle.core import Continuation, shift, start
from spindle.exceptions import ConstructionFailure, ProtocolMisuse
import functools
import inspect
import logging
import types
import typing as t

__all__ = [
    'adapt',
    'adapt_all',
    'bridge',
    'bridge_all',
    'construct',
]

logger = logging.getLogger(__name__)

T = t.TypeVar('T')
CallbackOp = t.Callable[..., None]
CoroutineOp = t.Callable[..., t.Awaitable[t.Any]]

def _insert_callback(args: t.Tuple[t.Any, ...], cb: t.Callable, index: t.Optional[int]) -> t.List[t.Any]:
    call_args = list(args)
    if index is None:
        call_args.append(cb)
    else:
        call_args.insert(index, cb)
    return call_args

def adapt(op: CallbackOp, callback_index: t.Optional[int]=None) -> CoroutineOp:
    """Make a coroutine function out of an operation which completes by calling a callback.

    The callback is appended to the positional arguments, or inserted at
    `callback_index` if that's passed.

    """
    original = getattr(op, '__spindle_coroutine__', None)
    if original is not None:
        return original
    @functools.wraps(op)
    async def adapted(*args: t.Any, **kwargs: t.Any) -> t.Any:
        def register(cont: Continuation) -> None:
            op(*_insert_callback(args, cont, callback_index), **kwargs)
        return await shift(register)
    adapted.__spindle_callback__ = op # type: ignore
    return adapted

def bridge(body: t.Callable[..., t.Coroutine[t.Any, t.Any, T]],
           callback_index: t.Optional[int]=None) -> CallbackOp:
    """Make an operation which completes by calling a callback out of a coroutine function.

    Calling the operation starts a new Task running `body`, and steps it until it first
    suspends; the callback is called with `(error, result)` once the Task finishes.
    The callback is the last positional argument, or the one at `callback_index`.

    """
    original = getattr(body, '__spindle_callback__', None)
    if original is not None:
        return original
    @functools.wraps(body)
    def bridged(*args: t.Any, **kwargs: t.Any) -> None:
        call_args = list(args)
        if not call_args:
            raise ProtocolMisuse("no callback passed to", body)
        if callback_index is None:
            callback = call_args.pop()
        else:
            callback = call_args.pop(callback_index)
        if not callable(callback):
            raise ProtocolMisuse("callback passed to", body, "isn't callable:", callback)
        coro = body(*call_args, **kwargs)
        if not inspect.iscoroutine(coro):
            raise ProtocolMisuse(body, "didn't return a coroutine, it returned", coro)
        start(coro, callback, getattr(body, '__qualname__', None))
    bridged.__spindle_coroutine__ = body # type: ignore
    return bridged

def _public_callables(namespace: t.Any, names: t.Optional[t.Iterable[str]]) -> t.Iterator[t.Tuple[str, t.Any]]:
    if names is None:
        names = [name for name in dir(namespace) if not name.startswith('_')]
    for name in names:
        value = getattr(namespace, name)
        if callable(value) and not inspect.isclass(value):
            yield name, value

def adapt_all(namespace: t.Any, callback_index: t.Optional[int]=None,
              names: t.Optional[t.Iterable[str]]=None) -> types.SimpleNamespace:
    """Adapt every callback-completing operation found on a module or object.

    If `names` is passed, only those attributes are adapted; otherwise, every public
    callable which isn't a class or already a coroutine function. The result is a new
    namespace; the original object is left alone.

    """
    adapted = types.SimpleNamespace()
    for name, value in _public_callables(namespace, names):
        if names is None and inspect.iscoroutinefunction(value):
            continue
        setattr(adapted, name, adapt(value, callback_index))
    logger.debug("adapt_all(%s): adapted %s", namespace, sorted(vars(adapted)))
    return adapted

def bridge_all(namespace: t.Any, callback_index: t.Optional[int]=None,
               names: t.Optional[t.Iterable[str]]=None) -> types.SimpleNamespace:
    "Bridge every coroutine function found on a module or object; see `adapt_all`."
    bridged = types.SimpleNamespace()
    for name, value in _public_callables(namespace, names):
        if names is None and not inspect.iscoroutinefunction(value):
            continue
        setattr(bridged, name, bridge(value, callback_index))
    logger.debug("bridge_all(%s): bridged %s", namespace, sorted(vars(bridged)))
    return bridged

C = t.TypeVar('C')

def construct(cls: t.Type[C]) -> t.Callable[..., t.Awaitable[C]]:
    """Make a coroutine function which builds an instance of `cls` asynchronously.

    The instance is allocated with `cls.__new__`, and initialized by awaiting its
    `__ainit__` coroutine method, which takes the place of `__init__`.

    ```
    class Connection:
        async def __ainit__(self, address):
            self.sock = await connect(address)

    conn = await construct(Connection)("localhost")
    ```

    """
    if not inspect.iscoroutinefunction(getattr(cls, '__ainit__', None)):
        raise ProtocolMisuse(cls, "has no async __ainit__ method to construct it with")
    async def construct_instance(*args: t.Any, **kwargs: t.Any) -> C:
        self = cls.__new__(cls)
        try:
            await self.__ainit__(*args, **kwargs) # type: ignore
        except Exception as e:
            raise ConstructionFailure(cls) from e
        return self
    construct_instance.__qualname__ = f"construct({cls.__qualname__})"
    return construct_instance
