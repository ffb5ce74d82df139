"""
Upload validation: type and size policy checks applied before any network call.
"""

import logging
import mimetypes
from pathlib import Path
from typing import Optional

import aiofiles

from backend.app.config import ACCEPTED_MIME_TYPES, EXTENSION_MAPPING, MAX_UPLOAD_BYTES
from backend.app.models.workflow_models import UploadCandidate

logger = logging.getLogger(__name__)

INVALID_TYPE_MESSAGE = "Please select a valid file type (PDF, JPG, JPEG, PNG)"
TOO_LARGE_MESSAGE = "File size must be less than 10MB"


class UploadValidationError(Exception):
    """Raised when a candidate file violates the upload policy"""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def validate(
    candidate: UploadCandidate,
    accepted_mime_types=ACCEPTED_MIME_TYPES,
    max_size: int = MAX_UPLOAD_BYTES,
) -> None:
    """
    Check a candidate against the accepted types and the size limit.
    Raises UploadValidationError on the first violation.
    """
    if candidate.declared_mime_type not in accepted_mime_types:
        logger.info(
            f"Rejected upload '{candidate.file_name}': unsupported type {candidate.declared_mime_type!r}"
        )
        raise UploadValidationError("INVALID_FILE_TYPE", INVALID_TYPE_MESSAGE)

    if candidate.size_bytes > max_size:
        logger.info(
            f"Rejected upload '{candidate.file_name}': {candidate.size_bytes} bytes exceeds {max_size}"
        )
        raise UploadValidationError("FILE_TOO_LARGE", TOO_LARGE_MESSAGE)


def guess_mime_type(filename: str) -> str:
    file_ext = Path(filename).suffix.lower()
    if file_ext in EXTENSION_MAPPING:
        return EXTENSION_MAPPING[file_ext]
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


async def read_candidate(path: str, declared_mime_type: Optional[str] = None) -> UploadCandidate:
    """
    Read a file from disk into an UploadCandidate without blocking the event loop.
    The declared type is guessed from the extension when not given.
    """
    filepath = Path(path)
    async with aiofiles.open(filepath, "rb") as f:
        content = await f.read()
    return UploadCandidate(
        content=content,
        declared_mime_type=declared_mime_type or guess_mime_type(filepath.name),
        file_name=filepath.name,
    )
