from __future__ import annotations

import asyncio
import typing as t


class MemoryWriter:
    """Writer half of an in-process pipe that feeds a StreamReader directly."""

    def __init__(self, reader: asyncio.StreamReader) -> None:
        self._reader = reader
        self._closed = False

    def write(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionResetError("pipe is closed")
        self._reader.feed_data(data)

    async def drain(self) -> None:
        # yield so the reading side can run between writes
        await asyncio.sleep(0)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._reader.feed_eof()

    def is_closing(self) -> bool:
        return self._closed

    async def wait_closed(self) -> None:
        return None


Endpoint = t.Tuple[asyncio.StreamReader, MemoryWriter]


def create_memory_pipe() -> t.Tuple[Endpoint, Endpoint]:
    """Return two connected (reader, writer) endpoints.

    Bytes written on one endpoint's writer are read from the other endpoint's
    reader. Closing a writer signals end-of-stream to the opposite reader.
    """
    left_reader = asyncio.StreamReader()
    right_reader = asyncio.StreamReader()
    left = (left_reader, MemoryWriter(right_reader))
    right = (right_reader, MemoryWriter(left_reader))
    return left, right
