"""
Raw message stream reader.

Accumulates the transport's byte chunks into one string, decoding UTF-8
incrementally so multi-byte sequences split across chunks survive.
Malformed bytes become U+FFFD instead of failing the message.
"""

import codecs
from collections.abc import AsyncIterable

import structlog

from qemail.exceptions import StreamReadError

log = structlog.get_logger()


async def read_stream(stream: AsyncIterable[bytes]) -> str:
    """
    Read a raw RFC-2822 stream to end-of-stream.

    No timeout: runs until the transport finishes or fails.

    Raises:
        StreamReadError: If the transport fails mid-read
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    chunks: list[str] = []
    bytes_read = 0

    try:
        async for chunk in stream:
            bytes_read += len(chunk)
            chunks.append(decoder.decode(chunk))
    except Exception as e:
        log.error("raw_stream_read_failed", bytes_read=bytes_read, error=str(e))
        raise StreamReadError(bytes_read=bytes_read, error_message=str(e)) from e

    # Flush any pending partial sequence
    chunks.append(decoder.decode(b"", final=True))
    return "".join(chunks)
