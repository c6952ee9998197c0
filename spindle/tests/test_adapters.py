from spindle.adapters import adapt, adapt_all, bridge, bridge_all, construct
from spindle.exceptions import ConstructionFailure, ProtocolMisuse
from spindle.tests.utils import Deferred, Results
import types
import unittest

def add_cb(x, y, cb):
    cb(None, x + y)

def first_cb(cb, x):
    cb(None, x)

class Calculator:
    def add_cb(self, x, y, cb):
        cb(None, x + y)

    def fail_cb(self, cb):
        cb("EINVAL")

    async def already_async(self):
        return 1

    def _private(self, cb):
        cb(None, "hidden")

    class Nested:
        pass

class TestAdapt(unittest.TestCase):
    def test_inverse(self) -> None:
        async def body():
            return 1
        self.assertIs(adapt(bridge(body)), body)
        self.assertIs(bridge(adapt(add_cb)), add_cb)

    def test_callback_index(self) -> None:
        async def body():
            return await adapt(first_cb, callback_index=0)("x")
        results = Results()
        bridge(body)(results)
        self.assertEqual(results.calls, [(None, "x")])

    def test_bridge_callback_index(self) -> None:
        async def body(x):
            return x
        results = Results()
        bridge(body, callback_index=0)(results, "y")
        self.assertEqual(results.calls, [(None, "y")])

    def test_kwargs(self) -> None:
        def greet_cb(name, cb, greeting="hello"):
            cb(None, f"{greeting} {name}")
        async def body():
            return await adapt(greet_cb)("world", greeting="hi")
        results = Results()
        bridge(body)(results)
        self.assertEqual(results.calls, [(None, "hi world")])

    def test_adapt_all(self) -> None:
        calc = Calculator()
        adapted = adapt_all(calc)
        self.assertEqual(sorted(vars(adapted)), ["add_cb", "fail_cb"])
        self.assertFalse(hasattr(calc.add_cb, "__spindle_callback__"))
        async def body():
            return await adapted.add_cb(1, 2)
        results = Results()
        bridge(body)(results)
        self.assertEqual(results.calls, [(None, 3)])

    def test_adapt_all_module(self) -> None:
        module = types.ModuleType("ops")
        module.add_cb = add_cb
        module.first_cb = first_cb
        adapted = adapt_all(module, names=["add_cb"])
        self.assertEqual(sorted(vars(adapted)), ["add_cb"])

    def test_bridge_all(self) -> None:
        namespace = types.SimpleNamespace()
        async def double(x):
            return x * 2
        namespace.double = double
        namespace.add_cb = add_cb
        bridged = bridge_all(namespace)
        self.assertEqual(sorted(vars(bridged)), ["double"])
        results = Results()
        bridged.double(21, results)
        self.assertEqual(results.calls, [(None, 42)])

class Connection:
    opened = Deferred()
    async def __ainit__(self, address):
        self.address = address
        self.handle = await adapt(self.opened.op_cb)(address)

class Broken:
    async def __ainit__(self):
        raise OSError("refused")

class TestConstruct(unittest.TestCase):
    def test_construct(self) -> None:
        async def body():
            return await construct(Connection)("localhost")
        results = Results()
        bridge(body)(results)
        self.assertEqual(results.calls, [])
        Connection.opened.fire()
        [(error, conn)] = results.calls
        self.assertIsNone(error)
        self.assertIsInstance(conn, Connection)
        self.assertEqual(conn.handle, "localhost")

    def test_failure(self) -> None:
        async def body():
            return await construct(Broken)()
        results = Results()
        bridge(body)(results)
        [(error, _)] = results.calls
        self.assertIsInstance(error, ConstructionFailure)
        self.assertIsInstance(error.__cause__, OSError)

    def test_no_ainit(self) -> None:
        with self.assertRaises(ProtocolMisuse):
            construct(Calculator)
