"""Exceptions for the shared module."""


class BadRequestError(Exception):
    """Raised when a request is missing a required field or is malformed."""
    pass


class UnsupportedMediaTypeError(Exception):
    """Raised when an uploaded document is not of the accepted media type."""
    pass


class PayloadTooLargeError(Exception):
    """Raised when an uploaded document exceeds the size ceiling."""
    pass


class PathRejectedError(Exception):
    """Raised when a logical path escapes, or is not inside, the storage root."""
    pass


class DocumentNotFoundError(Exception):
    """Raised when a document is not found in storage."""
    pass


class StorageWriteError(Exception):
    """Raised when the storage backend fails to write or delete a document."""
    pass
