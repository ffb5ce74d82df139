"""
Maps job-domain error codes and transport failures to stable, user-facing messages.
"""

from typing import Optional

from backend.app.services.job_client import TransportError

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred. Please try again."
JOB_FAILED_MESSAGE = "Job processing failed"

POLL_EXHAUSTED = "POLL_EXHAUSTED"

ERROR_MESSAGES = {
    "FILE_TOO_LARGE": "The uploaded file is too large. Please use a smaller file (max 10MB).",
    "INVALID_FILE_TYPE": "The uploaded file type is not supported. Please use PDF, JPG, JPEG, or PNG files.",
    "PROCESSING_TIMEOUT": "Processing timed out. Please try again with a smaller file or contact support.",
    "SERVER_ERROR": "Server error occurred. Please try again later or contact support.",
    "INSUFFICIENT_QUOTA": "Processing quota exceeded. Please try again later or upgrade your plan.",
    "FILE_CORRUPTED": "The uploaded file appears to be corrupted. Please try a different file.",
    "UNSUPPORTED_LANGUAGE": "The document language is not supported. Please use English documents.",
    POLL_EXHAUSTED: "Failed to check job status after multiple attempts. Please try again later.",
}

HTTP_FILE_TOO_LARGE = "File too large. Please use a smaller file (max 10MB)."
HTTP_UNSUPPORTED_TYPE = "Unsupported file type. Please use PDF, JPG, JPEG, or PNG files."
HTTP_UNAVAILABLE = "Transcripts service is temporarily unavailable. Please try again later."
HTTP_SERVER_ERROR = "Server error. Please try again later or contact support."
HTTP_BAD_REQUEST = "Invalid request. Please check your file and try again."
NETWORK_ERROR = "Network error. Please check your connection and try again."


def classify(code: Optional[str] = None, fallback_message: Optional[str] = None) -> str:
    if not code:
        return fallback_message or JOB_FAILED_MESSAGE
    if code in ERROR_MESSAGES:
        return ERROR_MESSAGES[code]
    return fallback_message or DEFAULT_ERROR_MESSAGE


def classify_transport_error(error: TransportError) -> str:
    """
    Classify an HTTP-level failure. A structured body wins over the bare status code when its
    code is known or it carries a message.
    """
    if error.error_code in ERROR_MESSAGES or (error.error_code and error.error_message):
        return classify(error.error_code, error.error_message)

    status = error.http_status
    if status is None:
        return NETWORK_ERROR
    if status == 413:
        return HTTP_FILE_TOO_LARGE
    if status == 415:
        return HTTP_UNSUPPORTED_TYPE
    if status == 503:
        return HTTP_UNAVAILABLE
    if status >= 500:
        return HTTP_SERVER_ERROR
    if status >= 400:
        return HTTP_BAD_REQUEST
    return DEFAULT_ERROR_MESSAGE
