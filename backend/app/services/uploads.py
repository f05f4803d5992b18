"""
Upload intake: validate an incoming image, store it, record its metadata
and kick off analysis.
"""

import logging
from typing import Optional

from pydantic import BaseModel

from ..core.config import Settings, get_settings
from ..core.state_machine import AnalysisStateMachine
from ..models.upload import Upload
from ..storage.memory_store import MemoryStore

log = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")
MAX_FILENAME_LENGTH = 255

JPEG_SIGNATURE = b"\xff\xd8\xff"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
GIF_SIGNATURE = b"GIF8"
RIFF_SIGNATURE = b"RIFF"
WEBP_SIGNATURE = b"WEBP"


class FileValidationError(ValueError):
    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.message = message
        self.code = code


def validate_file_signature(data: bytes) -> None:
    """Check the magic number, not the declared type."""
    if len(data) < 12:
        raise FileValidationError("File is too small to validate", "FILE_TOO_SMALL")

    if data.startswith((JPEG_SIGNATURE, PNG_SIGNATURE, GIF_SIGNATURE)):
        return
    if data[:4] == RIFF_SIGNATURE and data[8:12] == WEBP_SIGNATURE:
        return

    raise FileValidationError(
        "File signature does not match allowed image types (PNG, JPEG, WEBP, GIF)",
        "INVALID_FILE_SIGNATURE",
    )


def validate_file_upload(filename: str, size: int, content_type: str, max_size: int) -> None:
    if not filename or not filename.strip():
        raise FileValidationError("Filename is required", "MISSING_FILENAME")
    if len(filename) > MAX_FILENAME_LENGTH:
        raise FileValidationError(
            f"Filename too long (max {MAX_FILENAME_LENGTH} characters)", "FILENAME_TOO_LONG"
        )
    if size > max_size:
        raise FileValidationError(
            f"File size {size} bytes exceeds maximum {max_size} bytes", "FILE_TOO_LARGE"
        )
    if content_type not in ALLOWED_MIME_TYPES:
        raise FileValidationError(
            f'File type "{content_type}" is not allowed. Allowed: {", ".join(ALLOWED_MIME_TYPES)}',
            "INVALID_FILE_TYPE",
        )


class UploadReceipt(BaseModel):
    upload_id: str
    storage_id: str
    storage_url: Optional[str] = None
    filename: str
    size: int
    content_type: str
    analysis_id: Optional[str] = None


async def register_upload(
    store: MemoryStore,
    machine: AnalysisStateMachine,
    data: bytes,
    filename: str,
    content_type: str,
    upload_source: Optional[str] = None,
    settings: Settings | None = None,
) -> UploadReceipt:
    """Validate and store an image, then start its analysis.

    Raises FileValidationError before anything is stored. A failure to start
    the analysis is logged; the upload itself still succeeds.
    """
    settings = settings or get_settings()
    validate_file_upload(filename, len(data), content_type, settings.max_file_size)
    validate_file_signature(data)

    storage_id = await store.store_blob(data, content_type)
    upload = Upload(
        storage_id=storage_id,
        filename=filename,
        size=len(data),
        content_type=content_type,
        upload_source=upload_source,
    )
    await store.insert_upload(upload)
    log.info(f"📥 Stored upload {upload.id}: {filename} ({len(data)} bytes, {content_type})")

    analysis_id = None
    try:
        analysis_id = await machine.trigger_analysis(upload.id)
    except Exception:
        log.exception(f"Failed to trigger vision analysis for upload {upload.id}")

    return UploadReceipt(
        upload_id=upload.id,
        storage_id=storage_id,
        storage_url=await store.get_url(storage_id),
        filename=filename,
        size=len(data),
        content_type=content_type,
        analysis_id=analysis_id,
    )

