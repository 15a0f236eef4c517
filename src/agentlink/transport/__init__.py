from .framing import (
    encode_frame,
    make_error_response,
    make_notification,
    make_request,
    make_response,
    parse_content_length,
)
from .memory import MemoryWriter, create_memory_pipe
from .stream import FramedStream

__all__ = [
    "FramedStream",
    "MemoryWriter",
    "create_memory_pipe",
    "encode_frame",
    "make_error_response",
    "make_notification",
    "make_request",
    "make_response",
    "parse_content_length",
]
