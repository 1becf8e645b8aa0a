import logging
import os
import shutil
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from src.shared.exceptions import DocumentNotFoundError, StorageWriteError
from src.storage_gateway.paths import ResolvedPath


logger = logging.getLogger(__name__)


def _describe_os_error(exc: OSError) -> str:
    # strerror omits the filename, which must not reach callers.
    return exc.strerror or type(exc).__name__


class StorageBackend(ABC):
    """Abstract interface for document storage (local disk, object store, etc.).

    Backends receive paths that PathResolver has already confined to the
    storage root; they never see raw caller input.
    """

    persists: bool = True

    @abstractmethod
    def write(self, target: ResolvedPath, content: bytes) -> None:
        """Write `content` at `target`, replacing any existing document.

        Raises:
            StorageWriteError: On I/O failure.
        """
        ...

    @abstractmethod
    def delete(self, target: ResolvedPath) -> None:
        """Delete the document at `target`.

        Raises:
            DocumentNotFoundError: If nothing is stored at `target`.
            StorageWriteError: On any other I/O failure.
        """
        ...

    @abstractmethod
    def exists(self, target: ResolvedPath) -> bool:
        ...

    @abstractmethod
    def remove_if_empty_dir(self, directory: ResolvedPath) -> bool:
        """Remove `directory` if it is empty. Returns True if it was removed."""
        ...

    @contextmanager
    def replacing(self, target: ResolvedPath, content: bytes) -> Iterator[None]:
        """Write `content` at `target`, undoing the write if the block raises.

        This version can only undo a write that created a new document: a
        document that existed before is left holding the new content, never
        deleted. Backends able to keep the previous version override it.
        """
        existed = self.exists(target)
        self.write(target, content)
        try:
            yield
        except Exception:
            if not existed:
                try:
                    self.delete(target)
                except (DocumentNotFoundError, StorageWriteError):
                    logger.error("Could not roll back %s", target.logical, exc_info=True)
            raise


class LocalDiskBackend(StorageBackend):
    """Stores documents as files under a root directory on a mounted filesystem.

    Concurrent writes to the same path are not serialized: the last completed
    write wins. Each write goes to a temporary sibling that is atomically
    renamed over the target, so readers never observe a partial document.
    """

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser().resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def write(self, target: ResolvedPath, content: bytes) -> None:
        destination = target.absolute
        for attempt in range(2):
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                self._write_atomically(destination, content)
                return
            except FileNotFoundError as exc:
                # A concurrent delete pruned the directory after we created it.
                if attempt == 0:
                    continue
                raise StorageWriteError(_describe_os_error(exc)) from exc
            except OSError as exc:
                raise StorageWriteError(_describe_os_error(exc)) from exc

    def _write_atomically(self, destination: Path, content: bytes) -> None:
        staging = destination.with_name(f".{destination.name}.{uuid.uuid4().hex}.part")
        try:
            staging.write_bytes(content)
            os.replace(staging, destination)
        finally:
            staging.unlink(missing_ok=True)

    @contextmanager
    def replacing(self, target: ResolvedPath, content: bytes) -> Iterator[None]:
        """Write `content` at `target`, restoring the previous file if the block raises.

        A restore can overwrite a concurrent peer's newer write to the same
        path; same-path writers are unserialized anyway.
        """
        destination = target.absolute
        previous = self._keep_previous(destination)
        try:
            self.write(target, content)
            try:
                yield
            except Exception:
                self._restore(target, previous)
                raise
        finally:
            if previous is not None:
                previous.unlink(missing_ok=True)

    def _keep_previous(self, destination: Path) -> Path | None:
        """Hard-link the current file aside so it survives the atomic replace."""
        previous = destination.with_name(f".{destination.name}.{uuid.uuid4().hex}.prev")
        try:
            os.link(destination, previous)
        except FileNotFoundError:
            return None
        except OSError:
            # No hard links on this filesystem.
            try:
                shutil.copy2(destination, previous)
            except FileNotFoundError:
                return None
            except OSError as exc:
                previous.unlink(missing_ok=True)
                raise StorageWriteError(_describe_os_error(exc)) from exc
        return previous

    def _restore(self, target: ResolvedPath, previous: Path | None) -> None:
        try:
            if previous is None:
                target.absolute.unlink(missing_ok=True)
            else:
                os.replace(previous, target.absolute)
        except OSError:
            logger.error("Could not roll back %s", target.logical, exc_info=True)

    def delete(self, target: ResolvedPath) -> None:
        try:
            target.absolute.unlink()
        except FileNotFoundError as exc:
            raise DocumentNotFoundError("File not found") from exc
        except OSError as exc:
            raise StorageWriteError(_describe_os_error(exc)) from exc

    def exists(self, target: ResolvedPath) -> bool:
        return target.absolute.is_file()

    def remove_if_empty_dir(self, directory: ResolvedPath) -> bool:
        if directory.absolute == self._root:
            return False
        try:
            directory.absolute.rmdir()
        except OSError:
            return False
        return True


class SimulatedRemoteBackend(StorageBackend):
    """Stand-in for an object-storage bucket that does NOT persist anything.

    Writes and deletes are accepted, logged and discarded, and every key is
    reported as present. Use it only where the gateway runs without storage
    (demos, edge deployments); responses built on it say "simulated".
    """

    persists = False

    def __init__(self, bucket: str = "case-documents") -> None:
        self.bucket = bucket

    def write(self, target: ResolvedPath, content: bytes) -> None:
        logger.info(
            "Simulated write of %d bytes to %s/%s (not persisted)",
            len(content),
            self.bucket,
            target.logical,
        )

    def delete(self, target: ResolvedPath) -> None:
        logger.info("Simulated delete of %s/%s (not persisted)", self.bucket, target.logical)

    def exists(self, target: ResolvedPath) -> bool:
        return True

    def remove_if_empty_dir(self, directory: ResolvedPath) -> bool:
        return False
