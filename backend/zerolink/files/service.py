"""Blob storage for media attached to chat messages.

Files are stored flat in ``uploads.upload_dir`` as {uuid}{ext} and served
back from GET /uploads/{filename}.
"""
import logging
import mimetypes
import uuid
from pathlib import Path
from typing import List, Optional

from zerolink.config import UploadSettings
from zerolink.errors import UploadFailure

from .schemas import get_media_kind

logger = logging.getLogger(__name__)


class BlobStorageService:
    """Service for storing uploaded media on local disk."""

    _instance: Optional["BlobStorageService"] = None

    def __init__(
        self,
        upload_dir: str = "uploads",
        max_file_size_bytes: int = 10 * 1024 * 1024,
        allowed_mime_types: Optional[List[str]] = None,
        public_base_url: Optional[str] = None,
    ) -> None:
        self._upload_dir = Path(upload_dir)
        self._max_file_size_bytes = max_file_size_bytes
        self._allowed_mime_types = list(allowed_mime_types or [])
        self._public_base_url = public_base_url
        self._upload_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(cls, settings: UploadSettings) -> "BlobStorageService":
        return cls(
            upload_dir=settings.upload_dir,
            max_file_size_bytes=settings.max_file_size_bytes,
            allowed_mime_types=settings.allowed_mime_types,
            public_base_url=settings.public_base_url,
        )

    @classmethod
    def get_instance(cls, settings: Optional[UploadSettings] = None) -> "BlobStorageService":
        """Get or create the singleton instance."""
        if cls._instance is None:
            cls._instance = cls.from_settings(settings or UploadSettings())
        return cls._instance

    @classmethod
    def set_instance(cls, service: Optional["BlobStorageService"]) -> None:
        """Install (or clear, with None) the singleton instance."""
        cls._instance = service

    @property
    def upload_dir(self) -> Path:
        return self._upload_dir

    def _stored_name(self, filename: str, mime_type: str) -> str:
        ext = Path(filename).suffix.lower() if filename else ""
        if not ext:
            ext = mimetypes.guess_extension(mime_type) or ""
        return f"{uuid.uuid4().hex}{ext}"

    async def upload_blob(
        self,
        content: bytes,
        mime_type: str,
        filename: str = "",
        base_url: str = "",
    ) -> str:
        """Store *content* and return its public URL.

        Args:
            content: File bytes.
            mime_type: Declared MIME type; must be in the allow-list.
            filename: Original filename, only its extension is kept.
            base_url: Request base URL, used when no public_base_url is set.

        Raises:
            UploadFailure: 400 for a disallowed type or empty file, 413 when
                over the size limit, 500 when the write fails.
        """
        if not content:
            raise UploadFailure("Empty file", status_code=400)
        if mime_type not in self._allowed_mime_types or get_media_kind(mime_type) is None:
            raise UploadFailure(
                "Only image and video files are allowed!", status_code=400
            )
        if len(content) > self._max_file_size_bytes:
            raise UploadFailure(
                f"File size ({len(content)} bytes) exceeds limit "
                f"({self._max_file_size_bytes} bytes)",
                status_code=413,
            )

        stored_name = self._stored_name(filename, mime_type)
        try:
            (self._upload_dir / stored_name).write_bytes(content)
        except OSError as exc:
            logger.error(f"Failed to store upload {stored_name}: {exc}")
            raise UploadFailure(f"Upload failed: {exc}") from exc

        logger.info(f"Stored upload: {stored_name} ({len(content)} bytes, {mime_type})")
        root = (self._public_base_url or base_url).rstrip("/")
        return f"{root}/uploads/{stored_name}"

    def get_path(self, filename: str) -> Optional[Path]:
        """Return the on-disk path for a stored blob, or None."""
        if not filename or Path(filename).name != filename:
            return None
        path = self._upload_dir / filename
        if not path.is_file():
            return None
        return path
