"""Upload validation and storage for admin-uploaded files.

Each asset class gets its own :class:`UploadPolicy` (allowed MIME types,
byte ceiling, key prefix).  Validation happens entirely in-process and
before any storage call, so a rejected file never costs a transfer.
Accepted files are written to Supabase Storage under a key prefixed with
the upload time in milliseconds and served back by public URL.
"""

from __future__ import annotations

import logging
import time
from pathlib import PurePosixPath
from typing import Any, FrozenSet, Optional

from fastapi import HTTPException, UploadFile
from pydantic import BaseModel

logger = logging.getLogger(__name__)

MB = 1024 * 1024

IMAGE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "avif", "svg"})


class UploadPolicy(BaseModel):
    """Rules for one class of upload.

    An empty ``allowed_types`` accepts any declared MIME type; the size
    ceiling always applies and is inclusive.
    """

    name: str
    allowed_types: FrozenSet[str] = frozenset()
    max_bytes: int
    prefix: str
    type_error: str = "Invalid file type"

    @property
    def size_error(self) -> str:
        return f"File too large (max {self.max_bytes // MB}MB)"

    def read_validated(self, file: Optional[UploadFile]) -> bytes:
        """Return the file body, or raise a 400 describing the violation."""
        if file is None or not file.filename:
            raise HTTPException(status_code=400, detail="No file provided")
        if self.allowed_types and file.content_type not in self.allowed_types:
            logger.info(
                "upload_rejected policy=%s reason=type content_type=%s",
                self.name,
                file.content_type,
            )
            raise HTTPException(status_code=400, detail=self.type_error)
        if file.size is not None and file.size > self.max_bytes:
            logger.info("upload_rejected policy=%s reason=size size=%s", self.name, file.size)
            raise HTTPException(status_code=400, detail=self.size_error)
        # read one byte past the ceiling so an unknown size is still bounded
        data = file.file.read(self.max_bytes + 1)
        if len(data) > self.max_bytes:
            logger.info("upload_rejected policy=%s reason=size size>%s", self.name, self.max_bytes)
            raise HTTPException(status_code=400, detail=self.size_error)
        return data

    def key_for(self, filename: str, *parts: str) -> str:
        name = PurePosixPath(filename).name
        folder = "".join(f"{p}/" for p in parts)
        return f"{self.prefix}{folder}{int(time.time() * 1000)}-{name}"


LOGO_POLICY = UploadPolicy(
    name="logo",
    allowed_types=frozenset({"image/png", "image/jpeg", "image/webp", "image/svg+xml"}),
    max_bytes=2 * MB,
    prefix="logos/",
)

KNOWLEDGE_POLICY = UploadPolicy(
    name="knowledge",
    allowed_types=frozenset(
        {
            "text/plain",
            "text/markdown",
            "text/csv",
            "application/pdf",
            "application/msword",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        }
    ),
    max_bytes=10 * MB,
    prefix="knowledge/",
    type_error="Invalid file type. Accepted: .txt, .md, .csv, .pdf, .doc, .docx",
)

ASSET_POLICY = UploadPolicy(name="asset", max_bytes=50 * MB, prefix="assets/")

ASSET_SECTIONS = ("brand_kit", "content", "website")


def store_upload(db: Any, bucket: str, key: str, data: bytes, content_type: Optional[str]) -> str:
    """Write ``data`` to storage and return its public URL.

    Any storage failure is logged and reported as a 500 "Upload failed".
    """
    try:
        storage = db.storage.from_(bucket)
        storage.upload(
            path=key,
            file=data,
            file_options={"content-type": content_type or "application/octet-stream"},
        )
        url = storage.get_public_url(key)
    except Exception:
        logger.exception("upload_store_failed bucket=%s key=%s", bucket, key)
        raise HTTPException(status_code=500, detail="Upload failed")
    logger.info("upload_stored bucket=%s key=%s bytes=%s", bucket, key, len(data))
    return url


def file_extension(filename: str) -> str:
    suffix = PurePosixPath(filename).suffix.lower().lstrip(".")
    return suffix or "bin"
