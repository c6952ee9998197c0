"Exceptions raised by spindle itself, as opposed to those passed through it."
import typing as t

__all__ = [
    'SpindleError',
    'OperationFailure',
    'ConstructionFailure',
    'ProtocolMisuse',
]

class SpindleError(Exception):
    pass

class OperationFailure(SpindleError):
    """A callback-completing operation reported an error which isn't an exception.

    Callbacks which are passed an exception instance as their error have that exception
    raised directly at the suspension point; anything else (an error code, a message
    string) is wrapped in this class, and is available as `error`.

    """
    def __init__(self, error: t.Any) -> None:
        super().__init__(error)
        self.error = error

class ConstructionFailure(SpindleError):
    """The asynchronous initializer of an object being built with `construct` failed.

    The original exception is available as `__cause__`.

    """
    def __init__(self, cls: type) -> None:
        super().__init__("failed to construct", cls)
        self.cls = cls

class ProtocolMisuse(SpindleError, RuntimeError):
    """Spindle's scheduling protocol was violated.

    For example: suspending outside of any Task, resuming a continuation twice, or
    yielding some other library's primitive from a spindle coroutine.

    """
    pass
