"""
Validation for user-supplied file extensions.

An extension is one or more groups of a dot followed by alphanumeric
characters, e.g. ``.gz`` or ``.tar.gz``, at most 32 characters long.
"""

from enum import Enum

from fileferry.services.storage.exceptions import InvalidQueryError

MAX_EXTENSION_LENGTH = 32


class ExtensionError(InvalidQueryError):
    """Base class for extension grammar violations."""
    pass


class NotAlphanumericError(ExtensionError):
    def __init__(self, char: str):
        self.char = char
        super().__init__(f"file extension must be alphanumeric, but got non-alphanumeric '{char}'")


class MissingLeadingDotError(ExtensionError):
    def __init__(self, char: str):
        self.char = char
        super().__init__(f"expected first character of file extension to be a dot, but got '{char}'")


class ConsecutiveDotsError(ExtensionError):
    def __init__(self):
        super().__init__("file extension contains multiple dots in a row, which isn't allowed")


class TrailingDotError(ExtensionError):
    def __init__(self):
        super().__init__('file extension must end with an alphanumeric character, not a dot')


class EmptyExtensionError(ExtensionError):
    def __init__(self):
        super().__init__('file extension must not be specified as empty')


class ExtensionTooLongError(ExtensionError):
    def __init__(self, length: int):
        self.length = length
        super().__init__(
            f"file extension must be limited to {MAX_EXTENSION_LENGTH} characters, but got {length}"
        )


class _State(Enum):
    WANT_DOT = 'want_dot'
    WANT_LETTERS = 'want_letters'
    WANT_LETTERS_OR_DOT = 'want_letters_or_dot'


class FileExtension(str):
    """A validated extension string, including its leading dot."""
    pass


def parse_extension(value: str) -> FileExtension:
    """
    Validate ``value`` against the extension grammar.

    Args:
        value: Raw extension, e.g. from the ``ext_hint`` query parameter

    Returns:
        FileExtension: The validated extension

    Raises:
        ExtensionError: Describing the first grammar violation found
    """
    if len(value) > MAX_EXTENSION_LENGTH:
        raise ExtensionTooLongError(len(value))

    state = _State.WANT_DOT
    for char in value:
        if state is _State.WANT_DOT:
            if char != '.':
                raise MissingLeadingDotError(char)
            state = _State.WANT_LETTERS
        elif state is _State.WANT_LETTERS:
            if char == '.':
                raise ConsecutiveDotsError()
            if not char.isalnum():
                raise NotAlphanumericError(char)
            state = _State.WANT_LETTERS_OR_DOT
        else:
            if char == '.':
                state = _State.WANT_LETTERS
            elif not char.isalnum():
                raise NotAlphanumericError(char)

    if state is _State.WANT_DOT:
        raise EmptyExtensionError()
    if state is _State.WANT_LETTERS:
        raise TrailingDotError()
    return FileExtension(value)


def parse_optional_extension(value):
    """Like ``parse_extension`` but passes ``None`` through."""
    if value is None:
        return None
    return parse_extension(value)
