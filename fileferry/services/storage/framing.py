"""
Envelope framing for stored files.

A stored object is laid out as::

    [8-byte big-endian filename length N][N bytes UTF-8 filename][content]

Streams are plain iterables of ``bytes`` chunks. Chunk boundaries carry no
meaning: the header may be split over any number of chunks and the first
content bytes may share a chunk with the end of the filename.
"""

from __future__ import annotations

import struct
from typing import Callable, Iterable, Iterator, Optional, Tuple

from .exceptions import ContentReadError, CorruptedError

LENGTH_PREFIX = struct.Struct('>Q')
PREFIX_SIZE = LENGTH_PREFIX.size

DEFAULT_CHUNK_SIZE = 64 * 1024


class ChunkReader:
    """Reads exact byte counts from a chunk iterator, then hands off the rest.

    Bytes pulled from the source beyond what ``read_exactly`` asked for are kept
    and replayed as the head of ``remainder()``.
    """

    def __init__(self, chunks: Iterable[bytes]):
        self._chunks = iter(chunks)
        self._buffer = bytearray()
        self.consumed = 0

    def read_exactly(self, size: int) -> bytes:
        while len(self._buffer) < size:
            try:
                chunk = next(self._chunks)
            except StopIteration:
                raise ContentReadError(
                    f"Stream ended after {self.consumed + len(self._buffer)} bytes, "
                    f"expected at least {self.consumed + size}"
                ) from None
            self._buffer += chunk
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        self.consumed += size
        return data

    def remainder(self) -> Iterator[bytes]:
        if self._buffer:
            head = bytes(self._buffer)
            self._buffer.clear()
            yield head
        for chunk in self._chunks:
            if chunk:
                yield chunk


def header_length(filename: str) -> int:
    """Number of bytes the envelope header occupies for ``filename``."""
    return PREFIX_SIZE + len(filename.encode('utf-8'))


def encode_header(filename: str) -> bytes:
    name_bytes = filename.encode('utf-8')
    return LENGTH_PREFIX.pack(len(name_bytes)) + name_bytes


def encode(filename: str, content: Iterable[bytes]) -> Iterator[bytes]:
    """Lazily frame ``content`` behind the filename header."""
    yield encode_header(filename)
    for chunk in content:
        if chunk:
            yield chunk


def read_header(reader: ChunkReader, available: Optional[int] = None) -> str:
    """Consume the envelope header from ``reader`` and return the filename.

    ``available`` is the total object size when known; a declared filename
    length that cannot fit is reported as corruption instead of draining the
    stream looking for it.
    """
    (name_length,) = LENGTH_PREFIX.unpack(reader.read_exactly(PREFIX_SIZE))
    if available is not None and name_length > available - PREFIX_SIZE:
        raise CorruptedError()
    name_bytes = reader.read_exactly(name_length)
    try:
        return name_bytes.decode('utf-8')
    except UnicodeDecodeError as exc:
        raise CorruptedError() from exc


def decode(chunks: Iterable[bytes], available: Optional[int] = None) -> Tuple[str, Iterator[bytes]]:
    """Split a framed stream into ``(filename, content_chunks)``."""
    reader = ChunkReader(chunks)
    filename = read_header(reader, available)
    return filename, reader.remainder()


def skip_and_take(chunks: Iterable[bytes], skip: int, take: Optional[int] = None) -> Iterator[bytes]:
    """Yield the ``take`` bytes that follow the first ``skip`` bytes of ``chunks``."""
    for chunk in chunks:
        if skip:
            if len(chunk) <= skip:
                skip -= len(chunk)
                continue
            chunk = chunk[skip:]
            skip = 0
        if take is not None:
            if take <= 0:
                return
            if len(chunk) >= take:
                yield chunk[:take]
                return
            take -= len(chunk)
        yield chunk


class ClosingStream:
    """Chunk iterator that releases its source once exhausted or closed."""

    def __init__(self, chunks: Iterator[bytes], close: Callable[[], None]):
        self._chunks = chunks
        self._close = close
        self._closed = False

    def __iter__(self):
        return self

    def __next__(self) -> bytes:
        try:
            return next(self._chunks)
        except StopIteration:
            self.close()
            raise

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._close()


def iter_fileobj(fileobj, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """Iterate a binary file object in chunks until EOF."""
    while True:
        chunk = fileobj.read(chunk_size)
        if not chunk:
            break
        yield chunk
