import logging
import re
import shutil
import tempfile
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterable, Optional, Set, Tuple, Union

CHUNK_SIZE_BYTES = 1024 * 1024  # 1 MB chunks for streaming
TEMP_DIR_PREFIX = "filerelay-"

# Extensions are 1-5 ASCII alphanumerics; anything else never reaches the disk.
EXTENSION_PATTERN = re.compile(r"[A-Za-z0-9]{1,5}")

logger = logging.getLogger("filerelay.storage")

ByteSource = Union[BinaryIO, Iterable[bytes]]


class StoreClosedError(RuntimeError):
    """Raised when the ephemeral directory is used after shutdown."""


def is_valid_extension(ext: Optional[str]) -> bool:
    return bool(ext) and EXTENSION_PATTERN.fullmatch(ext) is not None


@dataclass(frozen=True)
class Artifact:
    name: str
    ext: str
    size: int
    created_at: float
    path: Path

    @property
    def filename(self) -> str:
        return f"{self.name}.{self.ext}"


def _iter_chunks(source: ByteSource) -> Iterable[bytes]:
    if hasattr(source, "read"):
        return iter(lambda: source.read(CHUNK_SIZE_BYTES), b"")
    return source


class EphemeralStore:
    """Owns the process-scoped temporary directory that holds every artifact.

    The directory is created by :meth:`init` and removed, recursively, by
    :meth:`shutdown`. All path lookups go through one lock so that a reader
    can never observe a directory that is being torn down; once shut down the
    store refuses further lookups with :class:`StoreClosedError`.
    """

    def __init__(self, prefix: str = TEMP_DIR_PREFIX, parent: Optional[str] = None) -> None:
        self._prefix = prefix
        self._parent = parent
        self._lock = threading.Lock()
        self._directory: Optional[Path] = None
        self._closed = False
        self._claims: Set[str] = set()

    def init(self) -> Path:
        with self._lock:
            if self._closed:
                raise StoreClosedError("Store has already been shut down")
            if self._directory is None:
                self._directory = Path(tempfile.mkdtemp(prefix=self._prefix, dir=self._parent))
                logger.debug("storage_initialized path=%s", self._directory)
            return self._directory

    def path(self) -> Path:
        with self._lock:
            if self._directory is None:
                raise StoreClosedError("Storage directory is not available")
            return self._directory

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def artifact_path(self, filename: str) -> Path:
        return self.path() / filename

    def claim(self, filename: str) -> bool:
        """Reserve ``filename`` if no file or pending upload already uses it."""

        with self._lock:
            if self._directory is None:
                raise StoreClosedError("Storage directory is not available")
            if filename in self._claims or (self._directory / filename).exists():
                return False
            self._claims.add(filename)
            return True

    def release(self, filename: str) -> None:
        with self._lock:
            self._claims.discard(filename)

    def write(self, name: str, ext: str, source: ByteSource) -> Tuple[Artifact, int]:
        """Stream ``source`` into ``{dir}/{name}.{ext}``.

        The file is opened in exclusive-create mode so an existing artifact is
        never overwritten. A failure mid-stream leaves the partial file behind;
        reaping it is the retention scheduler's job.
        """

        if not is_valid_extension(ext):
            raise ValueError(f"Invalid extension: {ext!r}")

        filename = f"{name}.{ext}"
        target = self.artifact_path(filename)
        created_at = time.time()
        bytes_written = 0
        try:
            with target.open("xb") as handle:
                for chunk in _iter_chunks(source):
                    if not chunk:
                        continue
                    handle.write(chunk)
                    bytes_written += len(chunk)
                handle.flush()
        finally:
            self.release(filename)

        logger.debug("artifact_written filename=%s size=%d", filename, bytes_written)
        artifact = Artifact(
            name=name,
            ext=ext,
            size=bytes_written,
            created_at=created_at,
            path=target,
        )
        return artifact, bytes_written

    def shutdown(self) -> bool:
        """Take the directory exclusively and delete it. Returns False if already done."""

        with self._lock:
            if self._closed:
                return False
            self._closed = True
            directory, self._directory = self._directory, None
            self._claims.clear()

        if directory is None:
            return True

        try:
            shutil.rmtree(directory)
            logger.info("storage_removed path=%s", directory)
        except FileNotFoundError:
            logger.info("storage_already_removed path=%s", directory)
        except OSError as error:
            logger.warning("storage_cleanup_failed path=%s error=%s", directory, error)
        return True
