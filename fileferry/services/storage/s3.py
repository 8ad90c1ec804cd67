"""S3-compatible storage backend (AWS S3 / MinIO / R2)."""

from __future__ import annotations

import io
import logging
import threading
from typing import Iterable, Iterator, Optional
from uuid import UUID, uuid4

from . import framing
from .exceptions import AccessError, ContentReadError, CorruptedError, NotFoundError, StorageIOError, TransferError
from .interfaces import StoredFile, resolve_range

logger = logging.getLogger(__name__)

# S3 multipart limits
MIN_PART_SIZE = 8 * 1024 * 1024
MAX_PARTS = 10000


class _ChunkStreamIO(io.RawIOBase):
    """Read-only file object over a chunk iterator, for boto3 managed uploads."""

    def __init__(self, chunks: Iterable[bytes]):
        self._chunks = iter(chunks)
        self._pending = memoryview(b'')

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        while not self._pending:
            try:
                self._pending = memoryview(next(self._chunks))
            except StopIteration:
                return 0
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size


def part_size_for(total_length: Optional[int]) -> int:
    """Multipart part size that keeps an object of ``total_length`` under the part limit."""
    if not total_length:
        return MIN_PART_SIZE
    return max(MIN_PART_SIZE, -(-total_length // MAX_PARTS))


def _is_not_found(exc) -> bool:
    response = getattr(exc, 'response', {}) or {}
    status_code = (response.get('ResponseMetadata') or {}).get('HTTPStatusCode')
    error_code = str((response.get('Error') or {}).get('Code') or '')
    return status_code == 404 or error_code in ('404', 'NoSuchKey', 'NotFound')


class S3StorageBackend:
    """S3 storage backend with lazy boto3 initialization."""

    def __init__(self, *, bucket: str, region: Optional[str] = None, endpoint_url: Optional[str] = None,
                 access_key_id: Optional[str] = None, secret_access_key: Optional[str] = None,
                 session_token: Optional[str] = None, use_path_style: bool = False,
                 verify_ssl: bool = True, chunk_size: int = framing.DEFAULT_CHUNK_SIZE, client=None):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.session_token = session_token
        self.use_path_style = use_path_style
        self.verify_ssl = verify_ssl
        self.chunk_size = chunk_size
        self._client = client
        self._client_lock = threading.Lock()

    def _get_client(self):
        if self._client is not None:
            return self._client

        with self._client_lock:
            if self._client is not None:
                return self._client

            try:
                import boto3
                from botocore.config import Config
            except Exception as exc:
                raise RuntimeError('S3 backend requires boto3 and botocore installed') from exc

            client_kwargs = {
                'service_name': 's3',
                'verify': self.verify_ssl,
            }
            if self.region:
                client_kwargs['region_name'] = self.region
            if self.endpoint_url:
                client_kwargs['endpoint_url'] = self.endpoint_url
            if self.access_key_id:
                client_kwargs['aws_access_key_id'] = self.access_key_id
            if self.secret_access_key:
                client_kwargs['aws_secret_access_key'] = self.secret_access_key
            if self.session_token:
                client_kwargs['aws_session_token'] = self.session_token

            addressing_style = 'path' if self.use_path_style else 'auto'
            client_kwargs['config'] = Config(signature_version='s3v4', s3={'addressing_style': addressing_style})

            # Sessions are not thread-safe, clients are
            self._client = boto3.session.Session().client(**client_kwargs)
            return self._client

    # --- Proxy model ---

    def write(self, name: str, content: Iterable[bytes], length: Optional[int] = None) -> UUID:
        """Stream ``content`` framed behind ``name`` into a new object."""
        from boto3.exceptions import Boto3Error
        from boto3.s3.transfer import TransferConfig
        from botocore.exceptions import BotoCoreError, ClientError

        client = self._get_client()
        file_id = uuid4()
        total_length = None if length is None else length + framing.header_length(name)
        part_size = part_size_for(total_length)
        config = TransferConfig(
            multipart_threshold=part_size,
            multipart_chunksize=part_size,
            use_threads=False,
        )
        fileobj = io.BufferedReader(_ChunkStreamIO(framing.encode(name, content)), buffer_size=self.chunk_size)

        try:
            client.upload_fileobj(
                fileobj, self.bucket, str(file_id),
                ExtraArgs={'ContentType': 'application/octet-stream'},
                Config=config,
            )
        except TransferError:
            raise
        except (ClientError, BotoCoreError, Boto3Error) as exc:
            raise StorageIOError() from exc

        logger.debug(f"Stored {file_id} in bucket {self.bucket} ({total_length} bytes expected)")
        return file_id

    def _get_object(self, file_id: UUID, byte_range: Optional[str] = None) -> dict:
        from botocore.exceptions import BotoCoreError, ClientError

        params = {'Bucket': self.bucket, 'Key': str(file_id)}
        if byte_range:
            params['Range'] = byte_range
        try:
            return self._get_client().get_object(**params)
        except ClientError as exc:
            if _is_not_found(exc):
                raise NotFoundError() from exc
            raise StorageIOError() from exc
        except BotoCoreError as exc:
            raise StorageIOError() from exc

    def _iter_body(self, body) -> Iterator[bytes]:
        from botocore.exceptions import BotoCoreError

        try:
            for chunk in body.iter_chunks(self.chunk_size):
                yield chunk
        except BotoCoreError as exc:
            raise StorageIOError() from exc

    def read(self, file_id: UUID, range_request=None) -> StoredFile:
        """Open a streamed download, decoding the header off the front of it.

        With a ``range_request`` a second ranged request fetches only that slice,
        offset past the header whose size the first request revealed.
        """
        response = self._get_object(file_id)
        body = response['Body']
        total = response.get('ContentLength')

        try:
            reader = framing.ChunkReader(self._iter_body(body))
            name = framing.read_header(reader, available=total)
            length = total - reader.consumed if total is not None else None
            byte_range = resolve_range(range_request, length)
        except ContentReadError as exc:
            body.close()
            raise CorruptedError() from exc
        except Exception:
            body.close()
            raise

        if byte_range is None:
            return StoredFile(file_id=file_id, name=name, length=length,
                              stream=framing.ClosingStream(reader.remainder(), body.close))

        body.close()
        start = reader.consumed + byte_range.start
        end = reader.consumed + byte_range.end
        ranged = self._get_object(file_id, f"bytes={start}-{end}")
        ranged_body = ranged['Body']
        return StoredFile(file_id=file_id, name=name, length=length,
                          stream=framing.ClosingStream(self._iter_body(ranged_body), ranged_body.close),
                          byte_range=byte_range)

    # --- Issuance model ---

    def presign_upload_url(self, file_id: UUID, expires_seconds: int, content_length: Optional[int] = None) -> str:
        from botocore.exceptions import BotoCoreError, ClientError

        params = {'Bucket': self.bucket, 'Key': str(file_id)}
        if content_length is not None:
            params['ContentLength'] = int(content_length)
        try:
            return self._get_client().generate_presigned_url(
                'put_object',
                Params=params,
                ExpiresIn=int(expires_seconds),
            )
        except (ClientError, BotoCoreError) as exc:
            raise AccessError() from exc

    def presign_download_url(self, file_id: UUID, expires_seconds: int, response_content_type: Optional[str] = None,
                             response_content_disposition: Optional[str] = None) -> str:
        from botocore.exceptions import BotoCoreError, ClientError

        params = {'Bucket': self.bucket, 'Key': str(file_id)}
        if response_content_type:
            params['ResponseContentType'] = response_content_type
        if response_content_disposition:
            params['ResponseContentDisposition'] = response_content_disposition
        try:
            return self._get_client().generate_presigned_url(
                'get_object',
                Params=params,
                ExpiresIn=int(expires_seconds),
            )
        except (ClientError, BotoCoreError) as exc:
            raise AccessError() from exc
