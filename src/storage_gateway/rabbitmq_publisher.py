import json

import pika
from pydantic import BaseModel

from src.storage_gateway.events import DocumentDeletedEvent, DocumentStoredEvent


class RabbitMQConfig(BaseModel):
    """Configuration for RabbitMQ connection."""

    host: str
    port: int
    username: str
    password: str
    stored_queue_name: str = "document.stored"
    deleted_queue_name: str = "document.deleted"


class RabbitMQDocumentEventPublisher:
    """RabbitMQ-backed publisher for document lifecycle events."""

    def __init__(self, config: RabbitMQConfig) -> None:
        self._config = config

    def publish_document_stored(self, event: DocumentStoredEvent) -> None:
        """Publish a DocumentStoredEvent to RabbitMQ."""
        self._publish(self._config.stored_queue_name, event)

    def publish_document_deleted(self, event: DocumentDeletedEvent) -> None:
        """Publish a DocumentDeletedEvent to RabbitMQ."""
        self._publish(self._config.deleted_queue_name, event)

    def _publish(self, queue_name: str, event: BaseModel) -> None:
        credentials = pika.PlainCredentials(
            self._config.username,
            self._config.password,
        )
        parameters = pika.ConnectionParameters(
            host=self._config.host,
            port=self._config.port,
            credentials=credentials,
        )

        connection = pika.BlockingConnection(parameters)
        try:
            channel = connection.channel()

            channel.queue_declare(queue=queue_name, durable=True)

            body = json.dumps(event.model_dump(mode="json")).encode("utf-8")

            channel.basic_publish(
                exchange="",
                routing_key=queue_name,
                body=body,
            )
        finally:
            connection.close()
