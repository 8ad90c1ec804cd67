"""Storage interfaces and shared dataclasses for file storage backends."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional
from uuid import UUID

from .exceptions import InvalidRangeError


@dataclass
class StoredFile:
    """Result of reading a framed file through a proxying backend."""

    file_id: UUID
    name: str
    length: Optional[int]  # None when the backend cannot tell
    stream: Iterator[bytes]
    byte_range: Optional[ByteRange] = None  # set when only a slice of content is streamed

    def close(self) -> None:
        close = getattr(self.stream, 'close', None)
        if close is not None:
            close()


@dataclass(frozen=True)
class UploadHandle:
    """Where and under which identifier a client should upload a file."""

    url: str
    uuid: UUID

    def to_dict(self) -> dict:
        return {'url': self.url, 'uuid': str(self.uuid)}


@dataclass(frozen=True)
class DownloadHandle:
    """Where a client can download a file from."""

    url: str

    def to_dict(self) -> dict:
        return {'url': self.url}


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte range within a file's content."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def content_range(self, total: int) -> str:
        return f"bytes {self.start}-{self.end}/{total}"


def resolve_range(range_request, length: Optional[int]) -> Optional[ByteRange]:
    """
    Resolve a parsed ``Range`` header against a content length.

    Args:
        range_request: ``werkzeug.datastructures.Range`` or None
        length: Total content length, None when unknown

    Returns:
        ByteRange for a single satisfiable range, or None when the whole
        content should be served (no header, unknown length, multiple ranges)

    Raises:
        InvalidRangeError: If a single range lies outside the content
    """
    if range_request is None or length is None or len(range_request.ranges) != 1:
        return None
    bounds = range_request.range_for_length(length)
    if bounds is None:
        start, stop = range_request.ranges[0]
        end = stop - 1 if stop is not None else length - 1
        raise InvalidRangeError(start, end, length)
    start, stop = bounds
    return ByteRange(start=start, end=stop - 1)
