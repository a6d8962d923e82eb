"""Photo/document attachments for dispensation requests, stored on local disk."""

import asyncio
import logging
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from app.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".pdf"}
ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "application/pdf"}
UPLOADS_URL_PREFIX = "/uploads"
READ_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class StoredAttachment:
    path: Path
    public_path: str
    original_name: str


class AttachmentStorage:
    """Validates and writes uploads; files are served back under /uploads/."""

    def __init__(self, directory, max_bytes: int = 10 * 1024 * 1024) -> None:
        self.directory = Path(directory)
        self.max_bytes = max_bytes

    def _validate_type(self, filename: str, content_type: Optional[str]) -> str:
        ext = Path(filename).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS or (content_type or "").lower() not in ALLOWED_CONTENT_TYPES:
            raise ValidationError("Only image files (JPEG, PNG, GIF) or PDF are allowed")
        return ext

    async def save(self, upload) -> StoredAttachment:
        """
        Persist an uploaded file (anything with filename, content_type and async read()).

        Raises ValidationError for a disallowed type or a file above max_bytes;
        nothing is left on disk in that case.
        """
        filename = upload.filename or ""
        ext = self._validate_type(filename, upload.content_type)

        chunks = []
        size = 0
        while True:
            chunk = await upload.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            size += len(chunk)
            if size > self.max_bytes:
                raise ValidationError(f"File is larger than {self.max_bytes // (1024 * 1024)} MB")
            chunks.append(chunk)

        name = f"dispen_{int(time.time() * 1000)}_{secrets.token_hex(3)}{ext}"
        path = self.directory / name
        await asyncio.to_thread(self._write, path, b"".join(chunks))
        return StoredAttachment(path=path, public_path=f"{UPLOADS_URL_PREFIX}/{name}", original_name=filename)

    def _write(self, path: Path, content: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    async def discard(self, attachment: Optional[StoredAttachment]) -> None:
        if attachment is None:
            return
        try:
            await asyncio.to_thread(attachment.path.unlink, True)
        except OSError:
            logger.exception("Failed to remove attachment %s", attachment.path)
