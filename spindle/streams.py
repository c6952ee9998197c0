"""Suspendable reads and writes over callback-driven streams

A `Stream` wraps one of three kinds of endpoint:

- a `PushSource`, which delivers data to us whenever it likes, and which we can ask
  to pause and resume;
- a `PullSource`, which delivers one chunk each time we ask for one;
- a `Sink`, which accepts data, tells us when it would like us to stop writing for a
  while, and calls us back when we can start again.

An endpoint may be both a source and a sink, like `MemoryPipe`.

Reading rebuffers the data, so it can be consumed in whatever sizes the reader needs,
regardless of how the source happened to chunk it. Data can be pushed back onto the
buffer with `unread`, for parsers that need lookahead. At the end of the data,
reads return None.

"""
from __future__ import annotations
from collections import deque
from spindle.core import Continuation, shift
from spindle.exceptions import ProtocolMisuse
import abc
import codecs
import functools
import logging
import typing as t

__all__ = [
    'PushSource',
    'PullSource',
    'Sink',
    'Receiver',
    'Stream',
    'wrap',
    'MemoryPipe',
    'IterableSource',
]

logger = logging.getLogger(__name__)

AnyStr = t.Union[bytes, str]
Schedule = t.Callable[..., None]
DEFAULT_HIGH_WATER_MARK = 16384

class Receiver(abc.ABC):
    "What a PushSource delivers its events to."
    @abc.abstractmethod
    def on_data(self, chunk: AnyStr) -> None: ...
    @abc.abstractmethod
    def on_end(self) -> None: ...
    @abc.abstractmethod
    def on_error(self, exn: BaseException) -> None: ...

class PushSource(abc.ABC):
    @abc.abstractmethod
    def subscribe(self, receiver: Receiver) -> None: ...
    @abc.abstractmethod
    def pause(self) -> None: ...
    @abc.abstractmethod
    def resume(self) -> None: ...

class PullSource(abc.ABC):
    @abc.abstractmethod
    def read_cb(self, size: t.Optional[int], cb: t.Callable[..., None]) -> None:
        "Call `cb(error, chunk)` with the next chunk; an empty or None chunk means the end."
        ...

class Sink(abc.ABC):
    @abc.abstractmethod
    def write(self, data: AnyStr) -> bool:
        "Accept this data; return False if the writer should wait for a drain before writing more."
        ...
    @abc.abstractmethod
    def on_drain(self, cb: t.Callable[..., None]) -> None:
        "Call `cb()` once, when the sink can accept more data, or `cb(exn)` if it never will."
        ...
    @abc.abstractmethod
    def end(self) -> None: ...

class Stream(Receiver):
    def __init__(self,
                 source: t.Union[PushSource, PullSource, None]=None,
                 sink: t.Optional[Sink]=None,
                 encoding: t.Optional[str]=None,
                 high_water_mark: int=DEFAULT_HIGH_WATER_MARK,
    ) -> None:
        self.source = source
        self.sink = sink
        self.encoding = encoding
        self.high_water_mark = high_water_mark
        self._decoder = codecs.getincrementaldecoder(encoding)() if encoding else None
        self._chunks: t.Deque[AnyStr] = deque()
        self._buffered = 0
        self._empty: AnyStr = "" if encoding else b""
        self._ended = False
        self._error: t.Optional[BaseException] = None
        self._reader_cb: t.Optional[Continuation[None]] = None
        self._paused = False
        self._write_ended = False
        if isinstance(source, PushSource):
            source.subscribe(self)

    def __repr__(self) -> str:
        return f"Stream({self.source!r}, {self.sink!r})"

    #### Receiving from a PushSource
    def _decode(self, chunk: AnyStr) -> AnyStr:
        if self._decoder is not None and isinstance(chunk, bytes):
            return self._decoder.decode(chunk)
        return chunk

    def _append(self, chunk: AnyStr) -> None:
        if chunk:
            self._empty = chunk[:0]
            self._chunks.append(chunk)
            self._buffered += len(chunk)

    def _wake_reader(self) -> None:
        if self._reader_cb is not None:
            reader_cb, self._reader_cb = self._reader_cb, None
            reader_cb.send(None)

    def on_data(self, chunk: AnyStr) -> None:
        if self._ended:
            logger.debug("Stream: dropping data which arrived after the end: %r", chunk)
            return
        try:
            self._append(self._decode(chunk))
        except UnicodeDecodeError as e:
            # raised at the next read, after the data already buffered
            self.on_error(e)
            return
        if (isinstance(self.source, PushSource)
            and not self._paused and self._buffered >= self.high_water_mark):
            logger.debug("Stream: %d buffered, pausing %s", self._buffered, self.source)
            self._paused = True
            self.source.pause()
        self._wake_reader()

    def _finish_decoding(self) -> None:
        if self._decoder is not None:
            self._append(self._decoder.decode(b"", final=True))

    def on_end(self) -> None:
        if self._ended:
            return
        try:
            self._finish_decoding()
        except UnicodeDecodeError as e:
            self.on_error(e)
            return
        self._ended = True
        self._wake_reader()

    def on_error(self, exn: BaseException) -> None:
        if self._ended:
            logger.debug("Stream: dropping error which arrived after the end: %r", exn)
            return
        self._error = exn
        self._ended = True
        self._wake_reader()

    #### Reading
    def _readable(self) -> t.Union[PushSource, PullSource]:
        if self.source is None:
            raise ProtocolMisuse("can't read from a stream with no source", self)
        return self.source

    def _maybe_resume(self, force: bool=False) -> None:
        if self._paused and (force or self._buffered < self.high_water_mark):
            self._paused = False
            t.cast(PushSource, self.source).resume()

    def _set_reader_cb(self, cb: Continuation[None]) -> None:
        if self._reader_cb is not None:
            raise ProtocolMisuse("two Tasks are reading from the same stream at once", self)
        self._reader_cb = cb

    async def _fill(self) -> bool:
        "Wait for more data to arrive; return False if no more ever will."
        source = self._readable()
        if self._ended:
            return False
        if isinstance(source, PushSource):
            # we want more, so we have to let the source keep going even past the high water mark
            buffered = self._buffered
            self._maybe_resume(force=True)
            if self._buffered == buffered and not self._ended:
                await shift(self._set_reader_cb)
        else:
            try:
                chunk = await shift(functools.partial(source.read_cb, None))
            except Exception as e:
                self._error = e
                self._ended = True
                return False
            if chunk:
                self._append(self._decode(chunk))
            else:
                self._finish_decoding()
                self._ended = True
        return True

    def _take(self, size: int) -> AnyStr:
        parts: t.List[AnyStr] = []
        needed = size
        while needed and self._chunks:
            chunk = self._chunks.popleft()
            if len(chunk) > needed:
                self._chunks.appendleft(chunk[needed:])
                chunk = chunk[:needed]
            parts.append(chunk)
            needed -= len(chunk)
        data = self._empty.join(parts) # type: ignore
        self._buffered -= len(data)
        self._maybe_resume()
        return data

    def _end_of_data(self) -> None:
        "Called when a read finds nothing buffered and the stream is over; raises a stored error."
        if self._error is not None:
            raise self._error

    async def read(self, size: t.Optional[int]=None) -> t.Optional[AnyStr]:
        """Read `size` units, or the next chunk if `size` is None.

        Returns fewer than `size` units only when the stream ends first, and None once
        there's nothing left at all.

        """
        if size is None:
            while not self._chunks:
                if not await self._fill():
                    self._end_of_data()
                    return None
            chunk = self._chunks.popleft()
            self._buffered -= len(chunk)
            self._maybe_resume()
            return chunk
        if size < 0:
            raise ValueError("negative read size", size)
        while self._buffered < size:
            if not await self._fill():
                break
        if self._buffered == 0 and size > 0:
            self._end_of_data()
            return None
        return self._take(size)

    def unread(self, data: t.Optional[AnyStr]) -> None:
        "Push this data back onto the front of the buffer, to be returned by the next read."
        if data:
            self._empty = data[:0]
            self._chunks.appendleft(data)
            self._buffered += len(data)

    async def read_until(self, delim: AnyStr) -> t.Optional[AnyStr]:
        """Read and return everything up to the delimiter, stripping the delimiter.

        At the end of the stream, return whatever is left without a delimiter, or None
        if nothing is.

        """
        while True:
            if len(self._chunks) > 1:
                joined = self._empty.join(self._chunks) # type: ignore
                self._chunks.clear()
                self._chunks.append(joined)
            if self._chunks:
                i = self._chunks[0].find(delim) # type: ignore
                if i >= 0:
                    section = self._take(i + len(delim))
                    return section[:i]
            if not await self._fill():
                if self._buffered:
                    return self._take(self._buffered)
                self._end_of_data()
                return None

    async def read_line(self) -> t.Optional[AnyStr]:
        "Read and return a line, stripping the newline character."
        return await self.read_until("\n" if isinstance(self._empty, str) else b"\n")

    #### Writing
    def _writable(self) -> Sink:
        if self.sink is None:
            raise ProtocolMisuse("can't write to a stream with no sink", self)
        if self._write_ended:
            raise ProtocolMisuse("stream has already been ended", self)
        return self.sink

    async def write(self, data: t.Optional[AnyStr]=None, encoding: t.Optional[str]=None) -> None:
        """Write this data, waiting for the sink to drain if it asks us to.

        Writing nothing, or None, ends the stream.

        """
        sink = self._writable()
        if not data:
            self.end()
            return
        if isinstance(data, str) and (encoding or self.encoding):
            data = data.encode(encoding or self.encoding) # type: ignore
        if not sink.write(data):
            logger.debug("Stream: %s is full, waiting for drain", sink)
            await shift(sink.on_drain)

    def end(self) -> None:
        sink = self._writable()
        self._write_ended = True
        sink.end()

def wrap(endpoint: t.Any, encoding: t.Optional[str]=None,
         high_water_mark: int=DEFAULT_HIGH_WATER_MARK) -> Stream:
    "Wrap a source, a sink, or something which is both, in a Stream."
    source = endpoint if isinstance(endpoint, (PushSource, PullSource)) else None
    sink = endpoint if isinstance(endpoint, Sink) else None
    if source is None and sink is None:
        raise TypeError("can only wrap a PushSource, PullSource, or Sink, not", endpoint)
    return Stream(source, sink, encoding, high_water_mark)

class MemoryPipe(PushSource, Sink):
    """An in-memory pipe; whatever is written to it is delivered to its subscriber

    Deliveries are made later, through `schedule(func, *args)`, never on the writer's
    stack; `TrioScheduler.call_soon` is a suitable `schedule`.

    """
    def __init__(self, schedule: Schedule, high_water_mark: int=DEFAULT_HIGH_WATER_MARK) -> None:
        self.schedule = schedule
        self.high_water_mark = high_water_mark
        self._queue: t.Deque[AnyStr] = deque()
        self._queued = 0
        self._receiver: t.Optional[Receiver] = None
        self._paused = False
        self._ended = False
        self._failure: t.Optional[BaseException] = None
        self._finished = False
        self._drain_cbs: t.List[t.Callable[..., None]] = []
        self._flush_scheduled = False

    def subscribe(self, receiver: Receiver) -> None:
        if self._receiver is not None:
            raise ProtocolMisuse("MemoryPipe already has a subscriber", self._receiver)
        self._receiver = receiver
        self._schedule_flush()

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False
        self._schedule_flush()

    def write(self, data: AnyStr) -> bool:
        if self._ended:
            raise ProtocolMisuse("write to a MemoryPipe which has been ended")
        self._queue.append(data)
        self._queued += len(data)
        self._schedule_flush()
        return self._queued < self.high_water_mark

    def on_drain(self, cb: t.Callable[..., None]) -> None:
        if self._queued < self.high_water_mark:
            self.schedule(cb)
        else:
            self._drain_cbs.append(cb)

    def end(self) -> None:
        self._ended = True
        self._schedule_flush()

    def fail(self, exn: BaseException) -> None:
        "End the pipe with an error, which the reader will see after the data already written."
        self._failure = exn
        self.end()

    def _schedule_flush(self) -> None:
        if not self._flush_scheduled:
            self._flush_scheduled = True
            self.schedule(self._flush)

    def _flush(self) -> None:
        self._flush_scheduled = False
        receiver = self._receiver
        if receiver is None:
            return
        while self._queue and not self._paused:
            chunk = self._queue.popleft()
            self._queued -= len(chunk)
            receiver.on_data(chunk)
        if self._drain_cbs and self._queued < self.high_water_mark:
            drain_cbs, self._drain_cbs = self._drain_cbs, []
            for cb in drain_cbs:
                cb()
        if self._ended and not self._queue and not self._finished:
            self._finished = True
            if self._failure is not None:
                receiver.on_error(self._failure)
            else:
                receiver.on_end()

class IterableSource(PullSource):
    "A pull source serving chunks from an iterable, one per request, through `schedule`."
    def __init__(self, chunks: t.Iterable[AnyStr], schedule: Schedule) -> None:
        self._chunks = iter(chunks)
        self.schedule = schedule

    def read_cb(self, size: t.Optional[int], cb: t.Callable[..., None]) -> None:
        try:
            chunk = next(self._chunks, None)
        except Exception as e:
            self.schedule(cb, e)
        else:
            self.schedule(cb, None, chunk)
