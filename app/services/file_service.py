import os
import time
from pathlib import Path

import structlog
from fastapi import UploadFile

from app.core.config import Settings
from app.core.exceptions import BadRequestError, NotFoundError
from app.models import UploadResult

logger = structlog.get_logger(__name__)


class FileService:
    """Local-disk storage for uploaded images and PDFs."""

    def __init__(self, settings: Settings):
        self.upload_dir = Path(settings.upload_dir)
        self.max_bytes = settings.max_upload_bytes
        self.allowed_extensions = {ext.lower() for ext in settings.allowed_upload_extensions}

    def _validate(self, file: UploadFile, content: bytes) -> str:
        if len(content) > self.max_bytes:
            raise BadRequestError(
                f"File size exceeds the limit of {self.max_bytes // (1024 * 1024)}MB"
            )

        ext = Path(file.filename or "").suffix.lower()
        if ext not in self.allowed_extensions:
            raise BadRequestError("File type not allowed")

        content_type = file.content_type or ""
        if "image" not in content_type and "pdf" not in content_type:
            raise BadRequestError("File must be an image or PDF")
        return ext

    async def save(self, file: UploadFile) -> UploadResult:
        content = await file.read()
        ext = self._validate(file, content)

        filename = f"{time.time_ns()}{ext}"
        os.makedirs(self.upload_dir, exist_ok=True)
        with open(self.upload_dir / filename, "wb") as f:
            f.write(content)

        logger.info("File uploaded", filename=filename, size=len(content))
        return UploadResult(filename=filename, size=len(content))

    def resolve(self, filename: str) -> Path:
        if not filename or Path(filename).name != filename or filename in (".", ".."):
            raise BadRequestError("Invalid filename")

        path = self.upload_dir / filename
        if not path.is_file():
            raise NotFoundError("File not found")
        return path
