"""Image storage service.

Images are written to ``<directory>/image-<ms>-<random><ext>`` and served
back from ``<url_prefix>/<name>``. The chat core only ever sees the
returned URL; it never opens the file.
"""
import logging
import random
import time
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class ImageStorageService:
    """Service for storing uploaded chat images on disk."""

    _instance: Optional["ImageStorageService"] = None
    _upload_dir: str = "uploads"
    _url_prefix: str = "/uploads"
    _max_size_bytes: int = 5 * 1024 * 1024

    def __init__(
        self,
        upload_dir: Optional[str] = None,
        url_prefix: Optional[str] = None,
        max_size_bytes: Optional[int] = None,
    ) -> None:
        if upload_dir:
            self._upload_dir = upload_dir
        if url_prefix:
            self._url_prefix = url_prefix.rstrip("/")
        if max_size_bytes:
            self._max_size_bytes = max_size_bytes
        self._ensure_upload_dir()

    @classmethod
    def get_instance(cls, **kwargs) -> "ImageStorageService":
        """Get or create the singleton instance."""
        if cls._instance is None:
            cls._instance = cls(**kwargs)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (for testing)."""
        cls._instance = None

    @property
    def upload_dir(self) -> Path:
        return Path(self._upload_dir)

    @property
    def max_size_bytes(self) -> int:
        return self._max_size_bytes

    def _ensure_upload_dir(self) -> None:
        Path(self._upload_dir).mkdir(parents=True, exist_ok=True)

    def save_image(self, filename: str, content: bytes, mime_type: str) -> str:
        """Store an uploaded image and return its public URL.

        Args:
            filename: Original filename (only the extension is kept).
            content: Raw image bytes.
            mime_type: MIME type reported by the client.

        Raises:
            ValueError: If the file is not an image or is too large.
        """
        if not mime_type.startswith("image/"):
            raise ValueError("Only image files are allowed!")
        if len(content) > self._max_size_bytes:
            limit_mb = self._max_size_bytes // (1024 * 1024)
            raise ValueError(f"File too large. Maximum size is {limit_mb}MB.")

        ext = Path(filename).suffix.lower()
        unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9 - 1)}"
        stored_name = f"image-{unique_suffix}{ext}"

        self._ensure_upload_dir()
        (self.upload_dir / stored_name).write_bytes(content)
        logger.info(f"Saved image: {stored_name} ({len(content)} bytes)")

        return f"{self._url_prefix}/{stored_name}"
