from spindle.adapters import adapt, bridge
from spindle.cell import context
from spindle.concur import Event, spin
from spindle.tests.trio_test_case import TrioTestCase
from spindle.tests.utils import Deferred, Results
from spindle.trio_runner import run
import unittest

class TestContext(unittest.TestCase):
    def setUp(self) -> None:
        context.set(None)
        self.deferred = Deferred()
        self.op = adapt(self.deferred.op_cb)

    def tearDown(self) -> None:
        context.set(None)

    def fire_named(self, name) -> None:
        index = [value for value, _ in self.deferred.pending].index(name)
        self.deferred.fire(index)

    def test_inherit(self) -> None:
        context.set("outer")
        seen = []
        async def body():
            seen.append(context.get())
            await self.op(1)
            seen.append(context.get())
        bridge(body)(Results())
        context.set("changed outside")
        self.deferred.fire()
        self.assertEqual(seen, ["outer", "outer"])
        self.assertEqual(context.get(), "changed outside")

    def test_interleaved_tasks(self) -> None:
        seen = {"t1": [], "t2": []}
        async def body(name, value):
            context.set(value)
            for _ in range(3):
                await self.op(name)
                seen[name].append(context.get())
        bridge(body)("t1", "c1", Results())
        bridge(body)("t2", "c2", Results())
        self.assertIsNone(context.get())
        for name in ["t2", "t1", "t2", "t2", "t1", "t1"]:
            self.fire_named(name)
            self.assertIsNone(context.get())
        self.assertEqual(seen, {"t1": ["c1"] * 3, "t2": ["c2"] * 3})

    def test_set_after_suspension(self) -> None:
        async def body():
            await self.op(1)
            context.value = "late"
            await self.op(2)
            return context.value
        results = Results()
        bridge(body)(results)
        self.deferred.fire()
        self.deferred.fire()
        self.assertEqual(results.calls, [(None, "late")])

    def test_nested_steps(self) -> None:
        event = Event()
        seen = []
        async def waiter():
            context.set("c2")
            await event.wait()
            seen.append(("waiter", context.get()))
        async def setter():
            context.set("c1")
            await self.op(1)
            # resumes the waiter right here, on our stack
            event.set()
            seen.append(("setter", context.get()))
        bridge(waiter)(Results())
        bridge(setter)(Results())
        self.deferred.fire()
        self.assertEqual(seen, [("waiter", "c2"), ("setter", "c1")])

    def test_child_inherits(self) -> None:
        seen = []
        async def child():
            seen.append(context.get())
            context.set("child")
            await self.op("child")
            seen.append(context.get())
        async def parent():
            context.set("parent")
            fut = spin(child())
            seen.append(context.get())
            await fut
            return context.get()
        results = Results()
        bridge(parent)(results)
        self.deferred.fire()
        self.assertEqual(seen, ["parent", "parent", "child"])
        self.assertEqual(results.calls, [(None, "parent")])

    def test_raw_callbacks_see_outer_value(self) -> None:
        observed = []
        later = []
        def raw_cb(cb):
            def call_later():
                observed.append(context.get())
                cb(None, None)
            later.append(call_later)
        async def body():
            context.set("task")
            await adapt(raw_cb)()
        context.set("outer")
        bridge(body)(Results())
        later[0]()
        self.assertEqual(observed, ["outer"])

class TestContextUnderTrio(TrioTestCase):
    async def test_sleeping_tasks(self) -> None:
        async def body(value, delay):
            context.set(value)
            seen = []
            for _ in range(3):
                await self.scheduler.sleep(delay)
                seen.append(context.get())
            return seen
        async def both():
            first = spin(body("a", 0.01))
            second = spin(body("b", 0.015))
            return [await first, await second]
        self.assertEqual(await run(both), [["a"] * 3, ["b"] * 3])
        self.assertIsNone(context.get())
