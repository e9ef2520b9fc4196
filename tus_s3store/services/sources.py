"""Byte sources consumed by the ingestion pipeline.

Both entry points of the pipeline, a pull stream and a pushed chunk iterator,
are adapted to :class:`SliceSource` so they share one ingestion loop.
"""

from __future__ import annotations

import inspect
from typing import Any, AsyncIterable, AsyncIterator, Awaitable, Protocol


class ByteStream(Protocol):
    """Anything with a ``read(n)`` method, sync (``io.BytesIO``) or async
    (``asyncio.StreamReader``)."""

    def read(self, n: int = -1) -> bytes | Awaitable[bytes]: ...


class SliceSource(Protocol):
    async def read_slice(self, size: int) -> bytes:
        """Return up to ``size`` bytes; ``b""`` once the input is exhausted."""
        ...

    async def release(self) -> None: ...


class StreamSliceSource:
    """Pulls slices from a stream, reading until the slice is full or EOF.

    A short read from the stream does not end the slice. The stream belongs
    to the caller and is not closed on release.
    """

    def __init__(self, stream: ByteStream) -> None:
        self._stream = stream

    async def _read(self, n: int) -> bytes:
        result: Any = self._stream.read(n)
        if inspect.isawaitable(result):
            result = await result
        return bytes(result or b"")

    async def read_slice(self, size: int) -> bytes:
        buffer = bytearray()
        while len(buffer) < size:
            chunk = await self._read(size - len(buffer))
            if not chunk:
                break
            buffer += chunk
        return bytes(buffer)

    async def release(self) -> None:
        return None


class ChunkSliceSource:
    """Regroups pushed chunks of arbitrary size into slices.

    Releasing drops any buffered bytes and closes the chunk iterator when it
    supports ``aclose`` (async generators do).
    """

    def __init__(self, chunks: AsyncIterable[bytes]) -> None:
        self._iterator: AsyncIterator[bytes] = chunks.__aiter__()
        self._pending = bytearray()
        self._exhausted = False

    async def read_slice(self, size: int) -> bytes:
        while len(self._pending) < size and not self._exhausted:
            try:
                chunk = await self._iterator.__anext__()
            except StopAsyncIteration:
                self._exhausted = True
                break
            self._pending += chunk
        data = bytes(self._pending[:size])
        del self._pending[:size]
        return data

    async def release(self) -> None:
        self._pending.clear()
        aclose = getattr(self._iterator, "aclose", None)
        if aclose is not None:
            await aclose()
