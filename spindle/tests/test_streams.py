from spindle.adapters import bridge
from spindle.concur import spin
from spindle.exceptions import ProtocolMisuse
from spindle.streams import IterableSource, MemoryPipe, PushSource, Receiver, Sink, Stream, wrap
from spindle.tests.trio_test_case import TrioTestCase
from spindle.tests.utils import Results
from spindle.trio_runner import run
import typing as t
import unittest

class TestStreams(TrioTestCase):
    async def asyncSetUp(self) -> None:
        self.pipe = MemoryPipe(self.scheduler.call_soon)
        self.stream = wrap(self.pipe)

    async def test_round_trip(self) -> None:
        async def body():
            for chunk in [b"hello", b" wor", b"ld"]:
                await self.stream.write(chunk)
            await self.stream.write(None)
            return [await self.stream.read(3), await self.stream.read(5),
                    await self.stream.read(100), await self.stream.read(1)]
        self.assertEqual(await run(body), [b"hel", b"lo wo", b"rld", None])

    async def test_unread(self) -> None:
        async def body():
            await self.stream.write(b"header:body")
            self.stream.end()
            peeked = await self.stream.read(7)
            self.stream.unread(peeked)
            again = await self.stream.read(len(peeked))
            return peeked, again, await self.stream.read()
        self.assertEqual(await run(body), (b"header:", b"header:", b"body"))

    async def test_chunks(self) -> None:
        async def body():
            await self.stream.write(b"ab")
            await self.stream.write(b"cd")
            self.stream.end()
            return [await self.stream.read(), await self.stream.read(), await self.stream.read()]
        self.assertEqual(await run(body), [b"ab", b"cd", None])

    async def test_read_zero(self) -> None:
        async def body():
            return await self.stream.read(0)
        self.assertEqual(await run(body), b"")

    async def test_read_line(self) -> None:
        async def body():
            await self.stream.write(b"one\ntw")
            await self.stream.write(b"o\nthree")
            self.stream.end()
            return [await self.stream.read_line() for _ in range(4)]
        self.assertEqual(await run(body), [b"one", b"two", b"three", None])

    async def test_encoding(self) -> None:
        stream = wrap(MemoryPipe(self.scheduler.call_soon), encoding="utf-8")
        async def body():
            # split in the middle of a multibyte character
            await stream.write(b"h\xc3")
            await stream.write(b"\xa9llo\n")
            await stream.write("wörld")
            stream.end()
            return [await stream.read(5), await stream.read_line(), await stream.read()]
        self.assertEqual(await run(body), ["héllo", "", "wörld"])

    async def test_error_after_data(self) -> None:
        async def body():
            await self.stream.write(b"abc")
            self.pipe.fail(ValueError("broken"))
            first = await self.stream.read(2)
            rest = await self.stream.read(5)
            try:
                await self.stream.read()
            except ValueError as e:
                return first, rest, str(e)
        self.assertEqual(await run(body), (b"ab", b"c", "broken"))

    async def test_backpressure(self) -> None:
        pipe = MemoryPipe(self.scheduler.call_soon, high_water_mark=4)
        stream = wrap(pipe, high_water_mark=4)
        log = []
        async def writer():
            for chunk in [b"aaaa", b"bbbb", b"cccc"]:
                log.append(("writing", chunk))
                await stream.write(chunk)
            stream.end()
        async def body():
            written = spin(writer())
            # the first write filled the pipe, so the writer is waiting for a drain
            log.append("reading")
            data = await stream.read(12)
            await written
            return data, await stream.read()
        self.assertEqual(await run(body), (b"aaaabbbbcccc", None))
        self.assertEqual(log[:2], [("writing", b"aaaa"), "reading"])

    async def test_pull_source(self) -> None:
        stream = wrap(IterableSource([b"ab", b"cd"], self.scheduler.call_soon))
        async def body():
            return [await stream.read(3), await stream.read(), await stream.read()]
        self.assertEqual(await run(body), [b"abc", b"d", None])

    async def test_pull_source_error(self) -> None:
        def chunks():
            yield b"ok"
            raise OSError("disk on fire")
        stream = wrap(IterableSource(chunks(), self.scheduler.call_soon))
        async def body():
            data = await stream.read(10)
            try:
                await stream.read()
            except OSError as e:
                return data, str(e)
        self.assertEqual(await run(body), (b"ok", "disk on fire"))

    async def test_concurrent_readers(self) -> None:
        async def reader():
            return await self.stream.read()
        async def body():
            spin(reader())
            try:
                await self.stream.read()
            except ProtocolMisuse:
                return "rejected"
        self.assertEqual(await run(body), "rejected")

    async def test_invalid_encoding(self) -> None:
        stream = wrap(MemoryPipe(self.scheduler.call_soon), encoding="utf-8")
        async def body():
            await stream.write(b"ok")
            await stream.write(b"\xff")
            stream.end()
            data = await stream.read()
            try:
                await stream.read()
            except UnicodeDecodeError:
                return data, "undecodable"
        self.assertEqual(await run(body), ("ok", "undecodable"))

    async def test_truncated_encoding(self) -> None:
        stream = wrap(MemoryPipe(self.scheduler.call_soon), encoding="utf-8")
        async def body():
            # the first byte of a two-byte character, then the end
            await stream.write(b"ok\xc3")
            stream.end()
            data = await stream.read()
            try:
                await stream.read()
            except UnicodeDecodeError:
                return data, "truncated"
        self.assertEqual(await run(body), ("ok", "truncated"))

class TestMisuse(unittest.TestCase):
    def test_wrap_nothing(self) -> None:
        with self.assertRaises(TypeError):
            wrap(object())

    def test_write_without_sink(self) -> None:
        stream = Stream(IterableSource([], lambda func, *args: func(*args)))
        with self.assertRaises(ProtocolMisuse):
            stream.end()

    def test_end_twice(self) -> None:
        stream = wrap(MemoryPipe(lambda func, *args: None))
        stream.end()
        with self.assertRaises(ProtocolMisuse):
            stream.end()

class RecordingSource(PushSource):
    def __init__(self) -> None:
        self.receiver: t.Optional[Receiver] = None
        self.calls: t.List[str] = []

    def subscribe(self, receiver: Receiver) -> None:
        self.receiver = receiver

    def pause(self) -> None:
        self.calls.append("pause")

    def resume(self) -> None:
        self.calls.append("resume")

class RecordingSink(Sink):
    def __init__(self) -> None:
        self.written: t.List[t.Any] = []
        self.ended = False

    def write(self, data: t.Any) -> bool:
        self.written.append(data)
        return True

    def on_drain(self, cb: t.Callable[..., None]) -> None:
        cb()

    def end(self) -> None:
        self.ended = True

class TestFlowControl(unittest.TestCase):
    def test_pause_and_resume(self) -> None:
        source = RecordingSource()
        stream = wrap(source, high_water_mark=4)
        source.receiver.on_data(b"ab")
        self.assertEqual(source.calls, [])
        source.receiver.on_data(b"cd")
        self.assertEqual(source.calls, ["pause"])
        # still paused, so no second pause
        source.receiver.on_data(b"ef")
        self.assertEqual(source.calls, ["pause"])
        async def body():
            return await stream.read(5)
        results = Results()
        bridge(body)(results)
        self.assertEqual(results.calls, [(None, b"abcde")])
        self.assertEqual(source.calls, ["pause", "resume"])

    def test_write_encoding(self) -> None:
        sink = RecordingSink()
        stream = wrap(sink)
        async def body():
            await stream.write("café", encoding="latin-1")
            await stream.write("café", encoding="utf-8")
            await stream.write("as is")
            await stream.write()
        results = Results()
        bridge(body)(results)
        self.assertEqual(results.calls, [(None, None)])
        self.assertEqual(sink.written, [b"caf\xe9", b"caf\xc3\xa9", "as is"])
        self.assertTrue(sink.ended)
