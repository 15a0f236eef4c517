from __future__ import annotations

import asyncio
import logging
import typing as t

from ..errors import FrameHeaderError, TransportError
from .framing import HEADER_TERMINATOR, decode_body, encode_frame, parse_content_length

_logger = logging.getLogger(__name__)


class StreamReaderLike(t.Protocol):
    async def readuntil(self, separator: bytes = ...) -> bytes: ...

    async def readexactly(self, n: int) -> bytes: ...


class StreamWriterLike(t.Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


class FramedStream:
    """One JSON value per Content-Length frame over a duplex byte stream.

    ``reader``/``writer`` follow asyncio's StreamReader/StreamWriter, which is
    what subprocess pipes and ``asyncio.open_connection`` provide. Writes are
    serialized by a lock so header and body of concurrent senders never
    interleave.
    """

    def __init__(self, reader: StreamReaderLike, writer: StreamWriterLike) -> None:
        self._reader = reader
        self._writer = writer
        self._write_lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def write_message(self, value: t.Any) -> None:
        frame = encode_frame(value)
        async with self._write_lock:
            if self._closed:
                raise TransportError("Stream is closed")
            try:
                self._writer.write(frame)
                await self._writer.drain()
            except (ConnectionError, OSError, RuntimeError) as exc:
                raise TransportError(f"Failed to write frame: {exc}") from exc
        _logger.debug("sent frame bytes=%d", len(frame))

    async def read_message(self) -> t.Any:
        """Read one frame and return its decoded JSON value.

        Returns None when the stream ends cleanly between frames. Raises
        FrameHeaderError for an unusable header, TransportError when the stream
        ends mid-frame, and FrameDecodeError for a body that is not JSON.
        """
        try:
            header = await self._reader.readuntil(HEADER_TERMINATOR)
        except asyncio.IncompleteReadError as exc:
            if not exc.partial.strip():
                return None
            raise TransportError("Stream closed inside a frame header") from exc
        except asyncio.LimitOverrunError as exc:
            raise FrameHeaderError("Frame header exceeds reader limit") from exc
        except (ConnectionError, OSError) as exc:
            raise TransportError(f"Failed to read frame header: {exc}") from exc

        length = parse_content_length(header)
        try:
            body = await self._reader.readexactly(length) if length else b""
        except asyncio.IncompleteReadError as exc:
            raise TransportError(
                f"Stream closed inside a frame body ({len(exc.partial)} of {length} bytes)"
            ) from exc
        except (ConnectionError, OSError) as exc:
            raise TransportError(f"Failed to read frame body: {exc}") from exc

        _logger.debug("received frame bytes=%d", length)
        return decode_body(body)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        close = getattr(self._writer, "close", None)
        if close is None:
            return
        try:
            close()
            wait_closed = getattr(self._writer, "wait_closed", None)
            if wait_closed is not None:
                await wait_closed()
        except (ConnectionError, OSError) as exc:
            _logger.debug("error while closing writer: %s", exc)
