"""Disk storage for uploaded listing images."""
import logging
import mimetypes
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence
from urllib.parse import urlparse

from fastapi import UploadFile

from app.config import get_settings
from app.shared.exceptions import UploadRejectedException

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}
UPLOADS_MOUNT = "/uploads"


@dataclass(frozen=True)
class StoredFile:
    filename: str
    url: str


class UploadService:

    def __init__(
        self,
        upload_dir: Optional[str] = None,
        max_bytes: Optional[int] = None,
        max_files: Optional[int] = None,
        public_base_url: Optional[str] = None,
    ):
        settings = get_settings()
        self.upload_dir = Path(upload_dir or settings.upload_dir)
        self.max_bytes = max_bytes or settings.max_upload_bytes
        self.max_files = max_files or settings.max_upload_files
        self.public_base_url = public_base_url or settings.public_base_url

    def _stored_name(self, upload: UploadFile) -> str:
        ext = Path(upload.filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            ext = mimetypes.guess_extension(upload.content_type or "") or ".bin"
        return f"{int(time.time() * 1000)}-{secrets.token_hex(3)}{ext}"

    def public_url(self, filename: str, request_base_url: str) -> str:
        base = (self.public_base_url or request_base_url).rstrip("/")
        return f"{base}{UPLOADS_MOUNT}/{filename}"

    async def save_images(self, uploads: Sequence[UploadFile], request_base_url: str) -> List[StoredFile]:
        """Validate every file first, then write them; nothing is written if any file is rejected."""
        if len(uploads) > self.max_files:
            raise UploadRejectedException("*", f"at most {self.max_files} files per request")

        payloads = []
        for upload in uploads:
            name = upload.filename or "upload"
            if not (upload.content_type or "").lower().startswith("image/"):
                raise UploadRejectedException(name, "only image uploads are allowed")
            raw = await upload.read()
            if not raw:
                raise UploadRejectedException(name, "empty file")
            if len(raw) > self.max_bytes:
                raise UploadRejectedException(name, f"larger than {self.max_bytes} bytes")
            payloads.append((self._stored_name(upload), raw))

        self.upload_dir.mkdir(parents=True, exist_ok=True)
        stored = []
        for filename, raw in payloads:
            (self.upload_dir / filename).write_bytes(raw)
            stored.append(StoredFile(filename=filename, url=self.public_url(filename, request_base_url)))
        logger.info(f"Stored {len(stored)} uploaded images in {self.upload_dir}")
        return stored

    def delete_files(self, filenames: Sequence[str]) -> None:
        """Best-effort removal; a missing or locked file is logged and skipped."""
        for filename in filenames:
            # Only bare names inside the upload directory
            path = self.upload_dir / Path(filename).name
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Failed to remove upload {path}: {e}")

    @staticmethod
    def filename_from_url(url: str) -> str:
        return Path(urlparse(url).path).name


def get_upload_service() -> UploadService:
    return UploadService()
