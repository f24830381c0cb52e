"""Storage service for file operations."""
import hashlib
import logging
import mimetypes
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Optional, Union
from urllib.parse import quote

from image_catalog.core.constants import MAX_FILE_SIZE, SUPPORTED_CONTENT_TYPES
from image_catalog.core.exceptions import StorageException

logger = logging.getLogger(__name__)

DEFAULT_URL_EXPIRY = 3600

EXTENSION_CONTENT_TYPES = {
    ".jpg": ("image/jpeg", "image/jpg"),
    ".jpeg": ("image/jpeg", "image/jpg"),
    ".png": ("image/png",),
    ".gif": ("image/gif",),
    ".webp": ("image/webp",),
}

MAGIC_NUMBERS = {
    "image/jpeg": (b"\xff\xd8\xff",),
    "image/jpg": (b"\xff\xd8\xff",),
    "image/png": (b"\x89PNG\r\n\x1a\n",),
    "image/gif": (b"GIF87a", b"GIF89a"),
    "image/webp": (b"RIFF",),
}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class FileInfo:
    """Metadata about a stored file."""

    path: str
    size: int
    content_type: str
    last_modified: int
    etag: str


class StorageBackend(ABC):
    """Contract for storing and retrieving image files."""

    @abstractmethod
    def store(
        self,
        filename: str,
        content_type: str,
        data: Union[bytes, BinaryIO],
        size: Optional[int] = None,
    ) -> str:
        """Store a file and return its storage path."""

    @abstractmethod
    def retrieve(self, path: str) -> BinaryIO:
        """Open a stored file for reading."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove a stored file. Missing files are not an error."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check whether ``path`` holds a file."""

    @abstractmethod
    def generate_url(self, path: str, expiry: int = DEFAULT_URL_EXPIRY) -> str:
        """URL under which the file can be fetched for ``expiry`` seconds."""

    @abstractmethod
    def get_file_info(self, path: str) -> FileInfo:
        """Size, type, modification time and etag of a stored file."""


def sanitize_filename(filename: str) -> str:
    """Reduce a user supplied name to a safe, bounded file stem."""
    stem = _UNSAFE_CHARS.sub("_", filename).replace("..", "_").strip("._")
    return stem[:100] or "image"


def check_magic_number(header: bytes, content_type: str) -> None:
    """
    Verify that the file signature matches the declared content type.

    Raises:
        StorageException: Signature missing or different
    """
    if len(header) < 4:
        raise StorageException("file too small to validate")

    for signature in MAGIC_NUMBERS.get(content_type, ()):
        if not header.startswith(signature):
            continue
        # RIFF is a generic container, WebP carries its own tag at offset 8
        if content_type == "image/webp" and header[8:12] != b"WEBP":
            continue
        return
    raise StorageException(f"file content does not match declared content type {content_type}")


class LocalStorageService(StorageBackend):
    """Store image files below a root directory on the local filesystem."""

    def __init__(self, root: Path, public_url: str, max_file_size: int = MAX_FILE_SIZE):
        """
        Initialize storage service with configured paths.

        Args:
            root: Directory holding every stored file
            public_url: Base URL the root directory is served under
            max_file_size: Largest accepted file in bytes
        """
        self.root = Path(root).resolve()
        self.public_url = public_url.rstrip("/")
        self.max_file_size = max_file_size
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        """Map a storage path to a file below root, refusing anything outside it."""
        if not path:
            raise StorageException("path cannot be empty")
        candidate = (self.root / path).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            raise StorageException(f"path escapes storage root: {path}")
        return candidate

    @staticmethod
    def _check_name(filename: str, content_type: str) -> str:
        if not filename:
            raise StorageException("filename cannot be empty")
        if "\x00" in filename or ".." in filename:
            raise StorageException(f"invalid filename: {filename!r}")
        if content_type not in SUPPORTED_CONTENT_TYPES:
            raise StorageException(f"unsupported content type: {content_type}")

        extension = PurePosixPath(filename.replace("\\", "/")).suffix.lower()
        if content_type not in EXTENSION_CONTENT_TYPES.get(extension, ()):
            raise StorageException(
                f"content type {content_type} does not match file extension {extension or '(none)'}"
            )
        return extension

    def _storage_path(self, filename: str, extension: str) -> str:
        """Hash-partitioned, collision-free relative path for a new file."""
        stem = sanitize_filename(PurePosixPath(filename.replace("\\", "/")).stem)
        digest = hashlib.sha256(f"{filename}{time.time_ns()}".encode("utf-8")).hexdigest()
        return f"{digest[:2]}/{digest[2:4]}/{stem}_{digest[4:16]}{extension}"

    def store(
        self,
        filename: str,
        content_type: str,
        data: Union[bytes, BinaryIO],
        size: Optional[int] = None,
    ) -> str:
        """
        Save a file.

        Args:
            filename: Original filename, used for the extension and a readable stem
            content_type: Declared MIME type
            data: File content
            size: Declared size, checked against what was actually written

        Returns:
            Storage path relative to the root

        Raises:
            StorageException: If the file is rejected or cannot be written
        """
        extension = self._check_name(filename, content_type)
        payload = data if isinstance(data, bytes) else data.read()

        if not payload:
            raise StorageException("file is empty")
        if len(payload) > self.max_file_size:
            raise StorageException(
                f"file too large: {len(payload)} bytes, maximum allowed: {self.max_file_size} bytes"
            )
        if size is not None and size != len(payload):
            raise StorageException(f"declared size {size} does not match content size {len(payload)}")
        check_magic_number(payload[:16], content_type)

        storage_path = self._storage_path(filename, extension)
        target = self._resolve(storage_path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, "wb") as f:
                f.write(payload)
        except OSError as e:
            raise StorageException(f"Failed to save file {storage_path}: {e}") from e

        logger.info(f"Stored {filename} at {storage_path} ({len(payload)} bytes)")
        return storage_path

    def retrieve(self, path: str) -> BinaryIO:
        """
        Open a stored file.

        Raises:
            StorageException: If the file does not exist or cannot be read
        """
        target = self._resolve(path)
        if not target.is_file():
            raise StorageException(f"File not found: {path}")
        try:
            return open(target, "rb")
        except OSError as e:
            raise StorageException(f"Failed to read file {path}: {e}") from e

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            raise StorageException(f"Failed to delete file {path}: {e}") from e

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def generate_url(self, path: str, expiry: int = DEFAULT_URL_EXPIRY) -> str:
        """
        Build a download URL for a stored file.

        Args:
            path: Storage path
            expiry: Lifetime in seconds, non-positive values mean one hour
        """
        self._resolve(path)
        if expiry <= 0:
            expiry = DEFAULT_URL_EXPIRY
        expires_at = int(time.time()) + expiry
        return f"{self.public_url}/{quote(path)}?expires={expires_at}"

    def get_file_info(self, path: str) -> FileInfo:
        target = self._resolve(path)
        if not target.is_file():
            raise StorageException(f"File not found: {path}")

        md5 = hashlib.md5()
        with open(target, "rb") as f:
            for chunk in iter(lambda: f.read(65536), b""):
                md5.update(chunk)
        stat = target.stat()
        content_type, _ = mimetypes.guess_type(target.name)
        return FileInfo(
            path=path,
            size=stat.st_size,
            content_type=content_type or "application/octet-stream",
            last_modified=int(stat.st_mtime),
            etag=md5.hexdigest(),
        )

