"""
Transfer endpoints: upload and download initiation plus signed direct transfer.

In proxy mode ``/upload`` and ``/download/<uuid>`` move the bytes themselves.
In signed mode they only hand out URLs; with local storage those URLs point
back at ``/files/<uuid>``, which accepts or serves bytes when the signature
verifies.
"""

from typing import Iterator, Optional
from urllib.parse import quote, unquote

from flask import Blueprint, Response, current_app, jsonify, request
from werkzeug.exceptions import ClientDisconnected

from fileferry.context import get_context
from fileferry.services.storage.exceptions import ContentReadError, InvalidQueryError
from fileferry.services.storage.factory import MODE_SIGNED
from fileferry.services.storage.interfaces import StoredFile
from fileferry.utils.hints import attachment_disposition, parse_hints

transfers_bp = Blueprint('transfers', __name__)

UPLOAD_LENGTH_HEADER = 'X-Upload-Length'
FILE_NAME_HEADER = 'X-File-Name'
BODY_CHUNK_SIZE = 64 * 1024


def iter_request_body(stream, chunk_size: int = BODY_CHUNK_SIZE) -> Iterator[bytes]:
    """Iterate an inbound request body, reporting transport failures as ``ContentReadError``."""
    while True:
        try:
            chunk = stream.read(chunk_size)
        except (ClientDisconnected, OSError) as exc:
            raise ContentReadError() from exc
        if not chunk:
            break
        yield chunk


def _parse_size(value: Optional[str], source: str) -> int:
    if value is None or not value.strip().isdigit():
        raise InvalidQueryError(f"{source} must be a non-negative decimal integer")
    return int(value.strip())


def _declared_length() -> int:
    value = request.headers.get(UPLOAD_LENGTH_HEADER)
    if value is None and request.content_length is not None:
        return request.content_length
    return _parse_size(value, f"the {UPLOAD_LENGTH_HEADER} header")


def _file_name(required: bool) -> Optional[str]:
    value = request.headers.get(FILE_NAME_HEADER)
    if value is None:
        if required:
            raise InvalidQueryError(f"the {FILE_NAME_HEADER} header is required")
        return None
    return unquote(value)


def _base_url() -> Optional[str]:
    """Prefix for locally signed URLs; None defers to PUBLIC_BASE_URL."""
    if get_context().storage.settings.public_base_url:
        return None
    return request.url_root.rstrip('/')


def _stream_response(stored: StoredFile, type_hint: Optional[str], ext_hint: Optional[str]) -> Response:
    if type_hint:
        response = Response(stored.stream, content_type=type_hint, direct_passthrough=True)
    else:
        response = Response(stored.stream, mimetype='application/octet-stream', direct_passthrough=True)

    response.headers[FILE_NAME_HEADER] = quote(stored.name)
    if ext_hint:
        response.headers['Content-Disposition'] = attachment_disposition(f"{stored.file_id}{ext_hint}")

    if stored.length is not None:
        response.headers['Accept-Ranges'] = 'bytes'
    if stored.byte_range is not None:
        response.status_code = 206
        response.headers['Content-Range'] = stored.byte_range.content_range(stored.length)
        response.headers['Content-Length'] = str(stored.byte_range.length)
    elif stored.length is not None:
        response.headers['Content-Length'] = str(stored.length)
    return response


@transfers_bp.route('/upload', methods=['POST'])
def upload():
    """Start an upload: store the body (proxy) or issue an upload URL (signed)."""
    storage = get_context().storage
    size = _declared_length()

    if storage.mode == MODE_SIGNED:
        handle = storage.request_upload(size, base_url=_base_url())
        return jsonify(handle.to_dict()), 201

    name = _file_name(required=True)
    file_id = storage.write(name, iter_request_body(request.stream), size)
    current_app.logger.info(f"Upload complete: {file_id} from {request.remote_addr}")
    return Response(str(file_id), status=201, mimetype='text/plain')


@transfers_bp.route('/download/<uuid:file_id>', methods=['GET'])
def download(file_id):
    """Stream a file (proxy) or issue a download URL (signed)."""
    storage = get_context().storage
    type_hint, ext_hint = parse_hints(request.args)

    if storage.mode == MODE_SIGNED:
        handle = storage.request_download(file_id, type_hint, ext_hint, base_url=_base_url())
        return jsonify(handle.to_dict())

    stored = storage.read(file_id, request.range)
    return _stream_response(stored, type_hint, ext_hint)


@transfers_bp.route('/filename/<uuid:file_id>', methods=['GET'])
def file_name(file_id):
    """Return the original filename of a stored file."""
    name = get_context().storage.read_name(file_id)
    return Response(name, mimetype='text/plain')


@transfers_bp.route('/files/<uuid:file_id>', methods=['PUT'])
def signed_upload(file_id):
    """Accept the body of a signed upload URL."""
    storage = get_context().storage
    storage.verify_signed_request(request.path, request.args, method='PUT')

    size = _parse_size(request.args.get('size'), 'the size parameter')
    name = _file_name(required=False) or ''
    storage.accept_signed_upload(file_id, name, iter_request_body(request.stream), size)
    current_app.logger.info(f"Signed upload complete: {file_id} from {request.remote_addr}")
    return Response(str(file_id), status=201, mimetype='text/plain')


@transfers_bp.route('/files/<uuid:file_id>', methods=['GET'])
def signed_download(file_id):
    """Serve the content behind a signed download URL."""
    storage = get_context().storage
    storage.verify_signed_request(request.path, request.args, method='GET')

    type_hint, ext_hint = parse_hints(request.args)
    stored = storage.open_signed_download(file_id, request.range)
    return _stream_response(stored, type_hint, ext_hint)


@transfers_bp.route('/health', methods=['GET'])
def health():
    storage = get_context().storage
    return jsonify({'status': 'ok', 'backend': storage.kind, 'mode': storage.mode})
