"""Local filesystem storage backend."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Optional
from uuid import UUID, uuid4

from . import framing
from .exceptions import ContentReadError, CorruptedError, NotFoundError, StorageIOError
from .interfaces import StoredFile, resolve_range

logger = logging.getLogger(__name__)


class LocalStorageBackend:
    """Stores one framed file per identifier in a flat directory."""

    def __init__(self, root: str, chunk_size: int = framing.DEFAULT_CHUNK_SIZE):
        self.root = str(Path(root))
        self.chunk_size = chunk_size

    def _ensure_root(self) -> None:
        try:
            Path(self.root).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError() from exc

    def path_for(self, file_id: UUID) -> str:
        return os.path.join(self.root, str(file_id))

    def exists(self, file_id: UUID) -> bool:
        return os.path.exists(self.path_for(file_id))

    def write(self, name: str, content: Iterable[bytes], file_id: Optional[UUID] = None) -> UUID:
        """Write ``content`` framed behind ``name`` and return its identifier.

        A pre-minted ``file_id`` is used for signed uploads. Existing files are
        never overwritten. On any failure the partial file is removed.
        """
        self._ensure_root()
        file_id = file_id or uuid4()
        path = self.path_for(file_id)

        try:
            out_f = open(path, 'xb')
        except FileExistsError as exc:
            raise StorageIOError(f"A file with identifier {file_id} already exists.") from exc
        except OSError as exc:
            raise StorageIOError() from exc

        try:
            with out_f:
                for chunk in framing.encode(name, content):
                    out_f.write(chunk)
        except OSError as exc:
            self._discard(file_id)
            raise StorageIOError() from exc
        except Exception:
            self._discard(file_id)
            raise

        logger.debug(f"Stored {file_id} at {path}")
        return file_id

    def _discard(self, file_id: UUID) -> None:
        logger.warning(f"Discarding partially written file {file_id}")
        try:
            self.delete(file_id)
        except StorageIOError as exc:
            logger.error(f"Failed to remove partial file {file_id}: {exc.__cause__}")

    def read(self, file_id: UUID, range_request=None) -> StoredFile:
        """Open a stored file, decoding its header eagerly and streaming the rest.

        A ``range_request`` (parsed ``Range`` header) is resolved against the
        content length and served by seeking, so only that slice is read.
        """
        path = self.path_for(file_id)
        try:
            in_f = open(path, 'rb')
        except FileNotFoundError as exc:
            raise NotFoundError() from exc
        except OSError as exc:
            raise StorageIOError() from exc

        try:
            size = os.fstat(in_f.fileno()).st_size
            reader = framing.ChunkReader(framing.iter_fileobj(in_f, self.chunk_size))
            name = framing.read_header(reader, available=size)
            length = size - reader.consumed
            byte_range = resolve_range(range_request, length)
            if byte_range is None:
                chunks = reader.remainder()
            else:
                in_f.seek(reader.consumed + byte_range.start)
                chunks = framing.skip_and_take(framing.iter_fileobj(in_f, self.chunk_size), 0, byte_range.length)
        except ContentReadError as exc:
            in_f.close()
            raise CorruptedError() from exc
        except OSError as exc:
            in_f.close()
            raise StorageIOError() from exc
        except Exception:
            in_f.close()
            raise

        return StoredFile(file_id=file_id, name=name, length=length,
                          stream=framing.ClosingStream(chunks, in_f.close), byte_range=byte_range)

    def delete(self, file_id: UUID, missing_ok: bool = True) -> bool:
        path = self.path_for(file_id)
        if not os.path.exists(path):
            if not missing_ok:
                raise NotFoundError()
            return False
        try:
            os.remove(path)
        except OSError as exc:
            raise StorageIOError() from exc
        return True
