"""
Custom exceptions for file transfer and storage operations.

Every error carries the HTTP status it maps to and a message that is safe to
show to the client.
"""


class TransferError(Exception):
    """Base exception for transfer errors."""

    status_code = 500
    message = 'An unexpected error occurred.'

    def __init__(self, message: str = None):
        super().__init__(message or self.message)

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class ConfigurationError(TransferError):
    """Configuration-related errors (missing or invalid config)."""
    pass


class NotFoundError(TransferError):
    """The identifier has no corresponding object."""

    status_code = 404
    message = 'The requested file does not exist.'


class StorageIOError(TransferError):
    """Disk or object-store failure other than absence."""

    message = 'The storage server failed to store or retrieve the file.'


class CorruptedError(TransferError):
    """Stored envelope header violates the framing format."""

    message = "The requested file was corrupted on the server and can't be retrieved."


class ContentReadError(TransferError):
    """Failure reading a byte stream (client disconnect, truncated data)."""

    status_code = 400
    message = 'There was an error transmitting your file over the internet.'


class TooLargeError(TransferError):
    """Upload size exceeds the configured maximum."""

    status_code = 413

    def __init__(self, given: int, maximum: int):
        self.given = given
        self.maximum = maximum
        super().__init__(
            f"The file you tried to upload was too large. The maximum file size is {maximum} bytes, "
            f"but you tried to upload {given} bytes."
        )


class DeclaredLengthExceededError(TooLargeError):
    """Upload body is longer than the length the client declared for it."""

    def __init__(self, given: int, declared: int):
        self.given = given
        self.declared = declared
        TransferError.__init__(
            self,
            f"The file you tried to upload was longer than its declared length of {declared} bytes; "
            f"received at least {given} bytes."
        )


class BlockedError(TransferError):
    """Requester's IP address is on the blocklist."""

    status_code = 403
    message = 'You are blocked from using this service.'


class IncompleteUploadError(ContentReadError):
    """Upload body ended before the declared length was received."""

    def __init__(self, given: int, declared: int):
        self.given = given
        self.declared = declared
        super().__init__(
            f"The upload ended after {given} bytes, but its declared length was {declared} bytes."
        )


class AccessError(TransferError):
    """Creating a signed access URL failed."""

    message = 'The server failed to create an access URL.'


class SignatureError(TransferError):
    """A signed URL was tampered with, malformed, or expired."""

    status_code = 403
    message = 'The link is invalid or has expired.'


class InvalidQueryError(TransferError):
    """User-supplied query parameter or header failed validation."""

    status_code = 400

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"The requested query parameters were invalid: {reason}.")


class InvalidRangeError(TransferError):
    """Requested byte range lies outside the file's content."""

    status_code = 416

    def __init__(self, start: int, end: int, length: int):
        self.start = start
        self.end = end
        self.length = length
        super().__init__(
            f"The requested range, {start}-{end} bytes, is invalid, as the file is only {length} bytes in size."
        )


class UnsupportedOperationError(TransferError):
    """Operation is not available for the configured backend or transfer mode."""

    status_code = 404
    message = 'This operation is not available on this server.'
