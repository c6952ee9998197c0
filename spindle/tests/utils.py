import typing as t

class Results:
    "A terminal callback which records every call made to it."
    def __init__(self) -> None:
        self.calls: t.List[t.Tuple[t.Any, t.Any]] = []

    def __call__(self, error: t.Any, result: t.Any) -> None:
        self.calls.append((error, result))

class Deferred:
    "A callback-completing operation which only completes when the test says so."
    def __init__(self) -> None:
        self.pending: t.List[t.Tuple[t.Any, t.Callable[..., None]]] = []

    def op_cb(self, value: t.Any, cb: t.Callable[..., None]) -> None:
        self.pending.append((value, cb))

    def fire(self, index: int=0, error: t.Any=None) -> None:
        value, cb = self.pending.pop(index)
        if error:
            cb(error)
        else:
            cb(None, value)
