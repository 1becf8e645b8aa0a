import json
import logging

from fastapi import APIRouter, FastAPI, File, Form, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from src.shared.exceptions import (
    BadRequestError,
    DocumentNotFoundError,
    PathRejectedError,
    PayloadTooLargeError,
    StorageWriteError,
    UnsupportedMediaTypeError,
)
from src.storage_gateway.config import GatewayConfig, configure_logging, load_config
from src.storage_gateway.domain import (
    MISSING_UPLOAD_FIELDS,
    UploadPayload,
    UploadPolicy,
    handle_document_delete,
    handle_document_upload,
)
from src.storage_gateway.events import DocumentEventPublisher, NoOpDocumentEventPublisher
from src.storage_gateway.paths import PathResolver
from src.storage_gateway.rabbitmq_publisher import RabbitMQDocumentEventPublisher
from src.storage_gateway.storage import (
    LocalDiskBackend,
    SimulatedRemoteBackend,
    StorageBackend,
)


logger = logging.getLogger(__name__)

# Room for multipart boundaries, headers and the filePath field.
MULTIPART_OVERHEAD_BYTES = 64 * 1024


class UploadResponse(BaseModel):
    success: bool = True
    message: str
    path: str


class DeleteResponse(BaseModel):
    success: bool = True
    message: str


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Rejects requests whose declared Content-Length is over the limit before reading the body."""

    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes
        self.max_file_bytes = max_bytes - MULTIPART_OVERHEAD_BYTES

    async def dispatch(self, request, call_next):
        length = request.headers.get("content-length")
        try:
            size = int(length) if length is not None else None
        except ValueError:
            size = None
        if size is not None and size > self.max_bytes:
            logger.warning("Rejected %s: body of %d bytes over the limit", request.url.path, size)
            return JSONResponse(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                content={
                    "error": f"File is too large. Maximum allowed size is "
                    f"{self.max_file_bytes / (1024 * 1024):g}MB"
                },
            )
        return await call_next(request)


def _error(status_code: int, message: str, details: str | None = None) -> JSONResponse:
    content = {"error": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _preflight() -> JSONResponse:
    return JSONResponse(
        content={},
        headers={
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Headers": "Content-Type",
            "Access-Control-Allow-Methods": "POST, DELETE, OPTIONS",
        },
    )


def build_storage_backend(config: GatewayConfig) -> StorageBackend:
    if config.storage_backend == "local":
        return LocalDiskBackend(config.storage_root)
    if config.storage_backend == "simulated":
        logger.warning(
            "Using the simulated storage backend: uploaded documents are NOT persisted"
        )
        return SimulatedRemoteBackend(bucket=config.simulated_bucket)
    raise ValueError(f"Unknown storage backend: {config.storage_backend!r}")


def build_event_publisher(config: GatewayConfig) -> DocumentEventPublisher:
    if config.rabbitmq is None:
        return NoOpDocumentEventPublisher()
    return RabbitMQDocumentEventPublisher(config.rabbitmq)


def create_production_app() -> FastAPI:
    config = load_config()
    configure_logging(config.log_level)
    resolver = PathResolver(config.storage_root)
    storage_backend = build_storage_backend(config)
    publisher = build_event_publisher(config)
    logger.info(
        "Storage gateway ready (backend=%s, max_upload_bytes=%d)",
        config.storage_backend,
        config.max_upload_bytes,
    )
    return create_app(
        storage_backend=storage_backend,
        resolver=resolver,
        publisher=publisher,
        config=config,
    )


def create_app(
    storage_backend: StorageBackend,
    resolver: PathResolver,
    publisher: DocumentEventPublisher | None = None,
    config: GatewayConfig | None = None,
) -> FastAPI:
    if publisher is None:
        publisher = NoOpDocumentEventPublisher()
    if config is None:
        config = GatewayConfig(storage_root=resolver.root)

    policy = UploadPolicy(
        accepted_media_type=config.accepted_media_type,
        max_upload_bytes=config.max_upload_bytes,
    )

    app = FastAPI(title="Document Storage Gateway")
    app.add_middleware(
        RequestSizeLimitMiddleware,
        max_bytes=config.max_upload_bytes + MULTIPART_OVERHEAD_BYTES,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid request")

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    router = APIRouter()

    @router.options("/upload")
    def upload_preflight():
        return _preflight()

    @router.post("/upload", response_model=UploadResponse)
    async def upload_document(
        file: UploadFile | None = File(None),
        file_path: str | None = Form(None, alias="filePath"),
    ):
        """Store an uploaded document at the caller's logical path."""
        try:
            if file is None:
                return _error(status.HTTP_400_BAD_REQUEST, MISSING_UPLOAD_FIELDS)

            # Never buffer more than one byte past the ceiling.
            content = await file.read(policy.max_upload_bytes + 1)
            payload = UploadPayload(
                content=content,
                content_type=file.content_type,
                declared_size=file.size,
            )
            result = await run_in_threadpool(
                handle_document_upload,
                storage_backend=storage_backend,
                resolver=resolver,
                publisher=publisher,
                file_path=file_path,
                payload=payload,
                policy=policy,
            )
        except BadRequestError as e:
            return _error(status.HTTP_400_BAD_REQUEST, str(e))
        except UnsupportedMediaTypeError as e:
            return _error(status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, str(e))
        except PayloadTooLargeError as e:
            return _error(status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, str(e))
        except PathRejectedError as e:
            logger.warning("Upload rejected: %s", e)
            return _error(status.HTTP_403_FORBIDDEN, "Access denied")
        except StorageWriteError as e:
            logger.error("Upload failed: %s", e, exc_info=True)
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to upload file", str(e))
        except Exception as e:
            logger.error("Upload failed", exc_info=True)
            return _error(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Failed to upload file",
                type(e).__name__,
            )
        finally:
            if file is not None:
                await file.close()

        message = (
            "File uploaded successfully"
            if result.persisted
            else "File upload simulated successfully"
        )
        return UploadResponse(message=message, path=result.path)

    @router.options("/delete")
    def delete_preflight():
        return _preflight()

    @router.delete("/delete", response_model=DeleteResponse)
    async def delete_document(request: Request):
        """Delete the document stored at the logical path in the JSON body."""
        try:
            body = json.loads(await request.body() or b"{}")
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        try:
            result = await run_in_threadpool(
                handle_document_delete,
                storage_backend=storage_backend,
                resolver=resolver,
                publisher=publisher,
                file_path=body.get("filePath"),
            )
        except BadRequestError as e:
            return _error(status.HTTP_400_BAD_REQUEST, str(e))
        except PathRejectedError as e:
            logger.warning("Delete rejected: %s", e)
            return _error(status.HTTP_403_FORBIDDEN, "Access denied")
        except DocumentNotFoundError:
            return _error(status.HTTP_404_NOT_FOUND, "File not found")
        except StorageWriteError as e:
            logger.error("Delete failed: %s", e, exc_info=True)
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to delete file", str(e))
        except Exception as e:
            logger.error("Delete failed", exc_info=True)
            return _error(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "Failed to delete file",
                type(e).__name__,
            )

        message = (
            "File deleted successfully"
            if result.persisted
            else "File deletion simulated successfully"
        )
        return DeleteResponse(message=message)

    app.include_router(router, prefix=config.api_prefix)

    return app
