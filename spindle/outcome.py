"Just the outcome library, plus a way to look at an outcome more than once"
from outcome import Value, Error
import outcome
import typing as t

__all__ = [
    'Outcome',
    'Value',
    'Error',
    'peek',
]

T = t.TypeVar('T')
Outcome = outcome.Outcome

def peek(result: Outcome[T]) -> T:
    """Return the value, or raise the error, of this outcome, without consuming it.

    `Outcome.unwrap` may only be called once; a cached outcome (such as the result of a
    spun Task) is observed by every waiter, so we look at it directly instead.

    """
    if isinstance(result, Value):
        return result.value
    elif isinstance(result, Error):
        raise result.error
    else:
        raise TypeError("not an outcome", result)
