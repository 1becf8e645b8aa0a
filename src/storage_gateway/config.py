import logging
import os
from pathlib import Path

from pydantic import BaseModel

from src.storage_gateway.rabbitmq_publisher import RabbitMQConfig


DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024
LOG_FORMAT = "%(asctime)s - %(name)s - [%(levelname)s] - %(message)s"


class GatewayConfig(BaseModel):
    storage_root: Path
    storage_backend: str = "local"
    simulated_bucket: str = "case-documents"
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    accepted_media_type: str = "application/pdf"
    api_prefix: str = "/api"
    cors_origins: list[str] = ["*"]
    log_level: str = "INFO"
    rabbitmq: RabbitMQConfig | None = None


def get_rabbitmq_config() -> RabbitMQConfig | None:
    """Build the broker config, or None when RABBITMQ_HOST is not set."""
    host = os.getenv("RABBITMQ_HOST")
    if not host:
        return None

    port = int(os.getenv("RABBITMQ_PORT", "5672"))
    user = os.getenv("RABBITMQ_USER", "guest")
    password = os.getenv("RABBITMQ_PASS", "guest")
    stored_queue = os.getenv("DOCUMENT_STORED_QUEUE", "document.stored")
    deleted_queue = os.getenv("DOCUMENT_DELETED_QUEUE", "document.deleted")

    return RabbitMQConfig(
        host=host,
        port=port,
        username=user,
        password=password,
        stored_queue_name=stored_queue,
        deleted_queue_name=deleted_queue,
    )


def load_config() -> GatewayConfig:
    storage_root = Path(os.getenv("STORAGE_ROOT", "public/uploads"))
    storage_backend = os.getenv("STORAGE_BACKEND", "local").strip().lower()
    simulated_bucket = os.getenv("SIMULATED_BUCKET", "case-documents")
    max_upload_bytes = int(os.getenv("MAX_UPLOAD_BYTES", str(DEFAULT_MAX_UPLOAD_BYTES)))
    accepted_media_type = os.getenv("ACCEPTED_MEDIA_TYPE", "application/pdf")
    api_prefix = os.getenv("API_PREFIX", "/api").rstrip("/")
    cors_origins = [
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", "*").split(",")
        if origin.strip()
    ]
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()

    return GatewayConfig(
        storage_root=storage_root,
        storage_backend=storage_backend,
        simulated_bucket=simulated_bucket,
        max_upload_bytes=max_upload_bytes,
        accepted_media_type=accepted_media_type,
        api_prefix=api_prefix,
        cors_origins=cors_origins or ["*"],
        log_level=log_level,
        rabbitmq=get_rabbitmq_config(),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("pika").setLevel(logging.WARNING)
