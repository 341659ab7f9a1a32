"""
Stream Glue
===========

Push-based input streams and pull-based output streams.

An ``InputStream`` is what callers feed into an adapter: they ``write`` chunks
as they are produced, then ``end`` it (or ``fail`` it when the upstream
producer breaks). Adapters consume it with ``async for``. Chunks may arrive at
any size; nothing here assumes word or audio-frame alignment.

An ``OutputStream`` is the reverse direction: subscribe it to an adapter and
iterate the audio or transcripts it emits.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from typing import (
    AsyncIterable,
    AsyncIterator,
    Deque,
    Generic,
    Iterable,
    List,
    Optional,
    Set,
    TypeVar,
    Union,
)

from voice_relay.core.errors import AdapterFailedError, InputStreamError, StreamClosedError

T = TypeVar("T")
O = TypeVar("O")

_pipes: Set[asyncio.Task] = set()


class InputStream(Generic[T]):
    """
    Push-based chunk channel with three signals: chunk, error, end.

    Reading never loses a chunk when the reader is cancelled while waiting,
    so a stream abandoned by one adapter can be handed to another one.
    """

    def __init__(self, chunks: Iterable[T] = ()):
        self._chunks: Deque[T] = deque(chunks)
        self._ended = False
        self._error: Optional[BaseException] = None
        self._readable = asyncio.Event()
        if self._chunks:
            self._readable.set()

    @classmethod
    def of(cls, chunks: Iterable[T]) -> "InputStream[T]":
        """Create a stream that already holds ``chunks`` and has ended."""
        stream = cls(chunks)
        stream.end()
        return stream

    @classmethod
    def pipe(cls, source: AsyncIterable[T]) -> "InputStream[T]":
        """Pump an async iterable into a new stream in the background."""
        stream: InputStream[T] = cls()

        async def pump() -> None:
            try:
                async for chunk in source:
                    stream.write(chunk)
            except asyncio.CancelledError:
                stream.end()
                raise
            except Exception as e:
                stream.fail(e)
            else:
                stream.end()

        task = asyncio.get_running_loop().create_task(pump())
        _pipes.add(task)
        task.add_done_callback(_pipes.discard)
        return stream

    @property
    def ended(self) -> bool:
        """True once ``end`` or ``fail`` was called."""
        return self._ended

    @property
    def exhausted(self) -> bool:
        """True once ended and every buffered chunk has been read."""
        return self._ended and not self._chunks

    def write(self, chunk: T) -> None:
        if self._ended:
            raise StreamClosedError()
        self._chunks.append(chunk)
        self._readable.set()

    def end(self) -> None:
        self._ended = True
        self._readable.set()

    def fail(self, error: BaseException) -> None:
        """Signal an upstream error; readers see it after buffered chunks."""
        if self._ended:
            return
        self._error = error
        self.end()

    def unread(self, chunks: Iterable[T]) -> None:
        """Put chunks back at the head of the stream, preserving their order."""
        chunks = list(chunks)
        self._chunks.extendleft(reversed(chunks))
        if chunks:
            self._readable.set()

    async def read(self) -> T:
        """
        Return the next chunk.

        Raises:
            StopAsyncIteration: The stream ended and is drained
            InputStreamError: The stream failed and is drained
        """
        while not self._chunks:
            if self._ended:
                if self._error is not None:
                    raise InputStreamError(str(self._error), cause=self._error)
                raise StopAsyncIteration
            self._readable.clear()
            await self._readable.wait()
        return self._chunks.popleft()

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        return await self.read()


TextStream = InputStream[str]
AudioStream = InputStream[bytes]


@dataclass
class AdapterFailure(Generic[T]):
    """
    Terminal failure report of an adapter.

    Attributes:
        pending: Input the provider never confirmed, in original order
        stream: The live input stream when it had not ended yet; its unread
            chunks follow ``pending``
        provider: Name of the adapter that gave up
    """
    pending: List[T] = field(default_factory=list)
    stream: Optional[InputStream[T]] = None
    provider: str = ""

    @property
    def has_input(self) -> bool:
        return bool(self.pending) or self.stream is not None


class OutputStream(Generic[O]):
    """
    Adapter listener that turns output callbacks into an async iterator.

    Iteration raises ``AdapterFailedError`` after the adapter reports Failed.
    Call ``close`` to finish iteration normally.

    Usage:
        output = OutputStream()
        tts.subscribe(output)
        tts.speak(InputStream.of(["Hello world."]))
        async for audio in output:
            play(audio)
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Union[O, AdapterFailure, None]] = asyncio.Queue()
        self._done = False

    def on_output(self, output: O) -> None:
        if not self._done:
            self._queue.put_nowait(output)

    def on_failed(self, failure: AdapterFailure) -> None:
        if not self._done:
            self._queue.put_nowait(failure)

    def close(self) -> None:
        self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[O]:
        return self

    async def __anext__(self) -> O:
        if self._done:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is None:
            self._done = True
            raise StopAsyncIteration
        if isinstance(item, AdapterFailure):
            self._done = True
            raise AdapterFailedError(item)
        return item


__all__ = [
    "InputStream",
    "TextStream",
    "AudioStream",
    "AdapterFailure",
    "OutputStream",
]
