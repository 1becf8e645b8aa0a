import pytest

from src.storage_gateway.events import (
    DocumentDeletedEvent,
    DocumentEventPublisher,
    DocumentStoredEvent,
)


class FakeDocumentEventPublisher(DocumentEventPublisher):
    """Global fake publisher for storage gateway tests."""
    def __init__(self) -> None:
        self.stored: list[DocumentStoredEvent] = []
        self.deleted: list[DocumentDeletedEvent] = []

    def publish_document_stored(self, event: DocumentStoredEvent) -> None:
        self.stored.append(event)

    def publish_document_deleted(self, event: DocumentDeletedEvent) -> None:
        self.deleted.append(event)


@pytest.fixture
def fake_document_publisher() -> FakeDocumentEventPublisher:
    """Global fixture for FakeDocumentEventPublisher."""
    return FakeDocumentEventPublisher()


@pytest.fixture
def mock_channel(mocker):
    return mocker.MagicMock()


@pytest.fixture
def mock_connection(mocker, mock_channel):
    connection = mocker.MagicMock()
    connection.channel.return_value = mock_channel
    return connection
