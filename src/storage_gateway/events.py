from datetime import datetime
from typing import Protocol

from pydantic import BaseModel


class DocumentStoredEvent(BaseModel):
    path: str
    size: int
    content_type: str
    stored_at: datetime


class DocumentDeletedEvent(BaseModel):
    path: str
    deleted_at: datetime


class DocumentEventPublisher(Protocol):
    def publish_document_stored(self, event: DocumentStoredEvent) -> None:
        ...

    def publish_document_deleted(self, event: DocumentDeletedEvent) -> None:
        ...


class NoOpDocumentEventPublisher:
    """Publisher used when no message broker is configured."""

    def publish_document_stored(self, event: DocumentStoredEvent) -> None:
        return

    def publish_document_deleted(self, event: DocumentDeletedEvent) -> None:
        return
