from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from src.shared.exceptions import DocumentNotFoundError
from src.storage_gateway.app import create_app
from src.storage_gateway.config import GatewayConfig
from src.storage_gateway.paths import PathResolver, ResolvedPath
from src.storage_gateway.storage import LocalDiskBackend, StorageBackend


class FakeStorageBackend(StorageBackend):
    """In-memory backend that records every call."""
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.calls: list[tuple[str, str]] = []

    def write(self, target: ResolvedPath, content: bytes) -> None:
        self.calls.append(("write", target.logical))
        self.objects[target.logical] = content

    def delete(self, target: ResolvedPath) -> None:
        self.calls.append(("delete", target.logical))
        if target.logical not in self.objects:
            raise DocumentNotFoundError("File not found")
        del self.objects[target.logical]

    def exists(self, target: ResolvedPath) -> bool:
        self.calls.append(("exists", target.logical))
        return target.logical in self.objects

    def remove_if_empty_dir(self, directory: ResolvedPath) -> bool:
        self.calls.append(("remove_if_empty_dir", directory.logical))
        prefix = directory.logical + "/"
        return not any(key.startswith(prefix) for key in self.objects)


@pytest.fixture
def storage_root(tmp_path: Path) -> Path:
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture
def resolver(storage_root: Path) -> PathResolver:
    return PathResolver(storage_root)


@pytest.fixture
def local_backend(storage_root: Path) -> LocalDiskBackend:
    return LocalDiskBackend(storage_root)


@pytest.fixture
def fake_storage() -> FakeStorageBackend:
    """Fake storage backend for testing."""
    return FakeStorageBackend()


@pytest.fixture
def gateway_config(storage_root: Path) -> GatewayConfig:
    return GatewayConfig(storage_root=storage_root, max_upload_bytes=1024 * 1024)


@pytest.fixture
def pdf_content() -> bytes:
    return b"%PDF-1.4\n" + b"0" * 5 * 1024 + b"\n%%EOF"


@pytest.fixture
def client(
    local_backend: LocalDiskBackend,
    resolver: PathResolver,
    fake_document_publisher,
    gateway_config: GatewayConfig,
) -> TestClient:
    """Gateway client writing to a temporary storage root on disk."""
    app = create_app(
        storage_backend=local_backend,
        resolver=resolver,
        publisher=fake_document_publisher,
        config=gateway_config,
    )
    return TestClient(app)


@pytest.fixture
def fake_client(
    fake_storage: FakeStorageBackend,
    resolver: PathResolver,
    fake_document_publisher,
    gateway_config: GatewayConfig,
) -> TestClient:
    """Gateway client backed by the in-memory fake storage."""
    app = create_app(
        storage_backend=fake_storage,
        resolver=resolver,
        publisher=fake_document_publisher,
        config=gateway_config,
    )
    return TestClient(app)
