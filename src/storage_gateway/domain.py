import logging
from datetime import datetime

from pydantic import BaseModel

from src.shared.exceptions import (
    BadRequestError,
    DocumentNotFoundError,
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
)
from src.storage_gateway.config import DEFAULT_MAX_UPLOAD_BYTES
from src.storage_gateway.events import (
    DocumentDeletedEvent,
    DocumentEventPublisher,
    DocumentStoredEvent,
)
from src.storage_gateway.paths import PathResolver, ResolvedPath
from src.storage_gateway.storage import StorageBackend


logger = logging.getLogger(__name__)

MISSING_UPLOAD_FIELDS = "File and filePath are required"
MISSING_DELETE_PATH = "filePath is required"


class UploadPolicy(BaseModel):
    accepted_media_type: str = "application/pdf"
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES


class UploadPayload(BaseModel):
    content: bytes
    content_type: str | None = None
    declared_size: int | None = None


class UploadResult(BaseModel):
    path: str
    size: int
    persisted: bool


class DeleteResult(BaseModel):
    path: str
    persisted: bool
    pruned: list[str] = []


def _format_megabytes(size: int) -> str:
    megabytes = size / (1024 * 1024)
    return f"{megabytes:g}MB"


def _is_blank(value: object) -> bool:
    return not isinstance(value, str) or not value.strip()


def validate_upload_payload(payload: UploadPayload, policy: UploadPolicy) -> None:
    """Check the media type and size of an upload before anything is stored.

    The declared size comes from the client and is checked first, but the
    measured length of the content is what finally decides.

    Raises:
        BadRequestError: If the file is empty.
        UnsupportedMediaTypeError: If the media type is not the accepted one.
        PayloadTooLargeError: If declared or measured size exceeds the ceiling.
    """
    if payload.content_type != policy.accepted_media_type:
        raise UnsupportedMediaTypeError(
            f"Only {policy.accepted_media_type} files are allowed"
        )

    too_large = PayloadTooLargeError(
        f"File is too large. Maximum allowed size is "
        f"{_format_megabytes(policy.max_upload_bytes)}"
    )
    if payload.declared_size is not None and payload.declared_size > policy.max_upload_bytes:
        raise too_large
    if len(payload.content) > policy.max_upload_bytes:
        raise too_large

    if len(payload.content) == 0:
        raise BadRequestError("File is empty")


def handle_document_upload(
    storage_backend: StorageBackend,
    resolver: PathResolver,
    publisher: DocumentEventPublisher,
    file_path: str | None,
    payload: UploadPayload | None,
    policy: UploadPolicy | None = None,
) -> UploadResult:
    """
    Validate an uploaded document, store it under its logical path and publish an event.

    Args:
        storage_backend: Backend that persists the document.
        resolver: PathResolver confining the path to the storage root.
        publisher: DocumentEventPublisher notified once the document is stored.
        file_path: Caller-supplied logical path (untrusted).
        payload: The uploaded content with its declared media type and size.
        policy: Accepted media type and size ceiling.

    Returns:
        UploadResult carrying the normalized logical path.

    Raises:
        BadRequestError: If the file or the path is missing, or the file is empty.
        UnsupportedMediaTypeError, PayloadTooLargeError: On content policy violations.
        PathRejectedError: If the path escapes the storage root.
        Any exception from storage_backend or publisher (caller should handle as 500)
    """
    if payload is None or _is_blank(file_path):
        raise BadRequestError(MISSING_UPLOAD_FIELDS)

    validate_upload_payload(payload, policy or UploadPolicy())

    target = resolver.resolve(file_path)

    event = DocumentStoredEvent(
        path=target.logical,
        size=len(payload.content),
        content_type=payload.content_type,
        stored_at=datetime.now(),
    )
    try:
        # A failed publish puts back whatever was stored at the path before.
        with storage_backend.replacing(target, payload.content):
            publisher.publish_document_stored(event)
    except Exception:
        if not storage_backend.exists(target):
            prune_empty_directories(storage_backend, target)
        raise

    logger.info("Stored %s (%d bytes)", target.logical, len(payload.content))
    return UploadResult(
        path=target.logical,
        size=len(payload.content),
        persisted=storage_backend.persists,
    )


def prune_empty_directories(storage_backend: StorageBackend, target: ResolvedPath) -> list[str]:
    """Remove the now-empty directories above `target`, stopping at the storage root.

    Best-effort: stops at the first directory that cannot be removed, and
    never raises.

    Returns:
        Logical paths of the directories that were removed, innermost first.
    """
    pruned: list[str] = []
    directory = target.parent()
    while directory is not None:
        try:
            removed = storage_backend.remove_if_empty_dir(directory)
        except Exception:
            logger.debug("Could not prune %s", directory.logical, exc_info=True)
            break
        if not removed:
            break
        pruned.append(directory.logical)
        directory = directory.parent()
    return pruned


def handle_document_delete(
    storage_backend: StorageBackend,
    resolver: PathResolver,
    publisher: DocumentEventPublisher,
    file_path: str | None,
) -> DeleteResult:
    """
    Delete a stored document and prune the directories it leaves empty.

    Args:
        storage_backend: Backend holding the document.
        resolver: PathResolver confining the path to the storage root.
        publisher: DocumentEventPublisher notified once the document is gone.
        file_path: Caller-supplied logical path (untrusted).

    Returns:
        DeleteResult with the normalized logical path and pruned directories.

    Raises:
        BadRequestError: If the path is missing.
        PathRejectedError: If the path escapes the storage root.
        DocumentNotFoundError: If nothing is stored at the path.
        Any exception from storage_backend (caller should handle as 500)
    """
    if _is_blank(file_path):
        raise BadRequestError(MISSING_DELETE_PATH)

    target = resolver.resolve(file_path)

    if not storage_backend.exists(target):
        raise DocumentNotFoundError("File not found")

    storage_backend.delete(target)
    pruned = prune_empty_directories(storage_backend, target)

    # The document is already gone; a lost event must not turn that into a failure.
    try:
        publisher.publish_document_deleted(
            DocumentDeletedEvent(path=target.logical, deleted_at=datetime.now())
        )
    except Exception:
        logger.error("Deleted %s but could not publish the event", target.logical, exc_info=True)

    logger.info("Deleted %s", target.logical)
    return DeleteResult(
        path=target.logical,
        persisted=storage_backend.persists,
        pruned=pruned,
    )
