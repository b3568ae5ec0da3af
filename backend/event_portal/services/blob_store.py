"""
Blob store for event images, backed by the local filesystem.

Files land under MEDIA_ROOT/event-images/ with random names and are served
by the app's static mount at MEDIA_URL.
"""

import secrets
from pathlib import Path

from starlette.concurrency import run_in_threadpool

from event_portal.core.config import get_settings
from event_portal.core.exceptions import InvalidImageError
from event_portal.core.logging import get_logger

logger = get_logger(__name__)

IMAGE_FOLDER = "event-images"

# The stored extension comes from this table only, never from the client filename
IMAGE_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


class LocalBlobStore:
    def __init__(self, root: str, base_url: str, max_bytes: int):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self.max_bytes = max_bytes

    async def save_image(self, data: bytes, filename: str | None, content_type: str | None) -> str:
        """Store an uploaded image and return its public URL."""
        extension = IMAGE_EXTENSIONS.get((content_type or "").split(";")[0].strip().lower())
        if extension is None:
            raise InvalidImageError(f"Expected a PNG, JPEG, GIF or WebP image, got {content_type or 'unknown type'}")
        if not data:
            raise InvalidImageError("Uploaded image is empty")
        if len(data) > self.max_bytes:
            raise InvalidImageError(f"Image exceeds {self.max_bytes} bytes")

        relative = f"{IMAGE_FOLDER}/{secrets.token_hex(8)}{extension}"
        target = self.root / relative

        await run_in_threadpool(self._write, target, data)
        logger.info("blob_stored", path=relative, size=len(data), filename=filename)
        return f"{self.base_url}/{relative}"

    @staticmethod
    def _write(target: Path, data: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)


def get_blob_store() -> LocalBlobStore:
    settings = get_settings()
    return LocalBlobStore(settings.MEDIA_ROOT, settings.MEDIA_URL, settings.MAX_IMAGE_BYTES)
