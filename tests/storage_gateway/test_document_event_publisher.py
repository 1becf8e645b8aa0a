import json
from datetime import datetime

import pika
import pika.exceptions
import pytest

from src.storage_gateway.events import DocumentDeletedEvent, DocumentStoredEvent
from src.storage_gateway.rabbitmq_publisher import (
    RabbitMQConfig,
    RabbitMQDocumentEventPublisher,
)


# --- Fixtures ---


@pytest.fixture
def config() -> RabbitMQConfig:
    return RabbitMQConfig(
        host="rabbitmq",
        port=5672,
        username="guest",
        password="guest",
        stored_queue_name="document.stored",
        deleted_queue_name="document.deleted",
    )


@pytest.fixture
def stored_event() -> DocumentStoredEvent:
    return DocumentStoredEvent(
        path="clients/7/contract.pdf",
        size=5120,
        content_type="application/pdf",
        stored_at=datetime(2025, 12, 12, 12, 0, 0),
    )


@pytest.fixture
def deleted_event() -> DocumentDeletedEvent:
    return DocumentDeletedEvent(
        path="clients/7/contract.pdf",
        deleted_at=datetime(2025, 12, 12, 13, 0, 0),
    )


# --- Unit Tests ---


@pytest.mark.unit
def test_should_connect_with_correct_parameters(
    config: RabbitMQConfig,
    stored_event: DocumentStoredEvent,
    mocker,
    mock_connection,
):
    mock_pika = mocker.patch("pika.BlockingConnection", return_value=mock_connection)

    publisher = RabbitMQDocumentEventPublisher(config)
    publisher.publish_document_stored(stored_event)

    mock_pika.assert_called_once()
    params = mock_pika.call_args[0][0]
    assert isinstance(params, pika.ConnectionParameters)
    assert params.host == config.host
    assert params.port == config.port
    assert params.credentials.username == config.username
    assert params.credentials.password == config.password


@pytest.mark.unit
def test_should_publish_stored_event_as_json_to_stored_queue(
    config: RabbitMQConfig,
    stored_event: DocumentStoredEvent,
    mocker,
    mock_connection,
    mock_channel,
):
    mocker.patch("pika.BlockingConnection", return_value=mock_connection)

    publisher = RabbitMQDocumentEventPublisher(config)
    publisher.publish_document_stored(stored_event)

    mock_channel.queue_declare.assert_called_once_with(
        queue="document.stored",
        durable=True,
    )
    call_kwargs = mock_channel.basic_publish.call_args.kwargs
    assert call_kwargs.get("exchange") == ""
    assert call_kwargs.get("routing_key") == "document.stored"

    body_dict = json.loads(call_kwargs.get("body"))
    assert body_dict == {
        "path": "clients/7/contract.pdf",
        "size": 5120,
        "content_type": "application/pdf",
        "stored_at": "2025-12-12T12:00:00",
    }


@pytest.mark.unit
def test_should_publish_deleted_event_to_deleted_queue(
    config: RabbitMQConfig,
    deleted_event: DocumentDeletedEvent,
    mocker,
    mock_connection,
    mock_channel,
):
    mocker.patch("pika.BlockingConnection", return_value=mock_connection)

    publisher = RabbitMQDocumentEventPublisher(config)
    publisher.publish_document_deleted(deleted_event)

    call_kwargs = mock_channel.basic_publish.call_args.kwargs
    assert call_kwargs.get("routing_key") == "document.deleted"
    assert json.loads(call_kwargs.get("body"))["path"] == "clients/7/contract.pdf"


@pytest.mark.unit
def test_should_close_connection_even_when_publish_fails(
    config: RabbitMQConfig,
    stored_event: DocumentStoredEvent,
    mocker,
    mock_connection,
    mock_channel,
):
    mocker.patch("pika.BlockingConnection", return_value=mock_connection)
    mock_channel.basic_publish.side_effect = pika.exceptions.AMQPChannelError("closed")

    publisher = RabbitMQDocumentEventPublisher(config)

    with pytest.raises(pika.exceptions.AMQPChannelError):
        publisher.publish_document_stored(stored_event)

    mock_connection.close.assert_called_once()
