"""
Configuration for the transcript analysis workflow, loaded from the environment.
"""

import os
from dataclasses import dataclass, field
from typing import FrozenSet

from dotenv import load_dotenv

MAX_UPLOAD_BYTES = 10 * 1024 * 1024  # 10MB

ACCEPTED_MIME_TYPES: FrozenSet[str] = frozenset(
    {
        "application/pdf",
        "image/jpeg",
        "image/jpg",
        "image/png",
    }
)

# Used when a candidate is read from disk without a declared type
EXTENSION_MAPPING = {
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}


@dataclass
class WorkflowConfig:
    """Configuration for job submission, polling and upload policy"""
    # Job API
    api_base_url: str = "http://localhost:8001/api/transcripts"
    request_timeout_seconds: float = 60
    token_type: str = "Bearer"

    # Polling
    poll_interval_seconds: float = 6
    retry_delay_seconds: float = 5
    max_poll_retries: int = 3

    # Console sessions with no activity for this long are closed
    session_ttl_seconds: float = 30 * 60

    # Progress estimate shown while processing (not reported by the server)
    initial_progress: int = 10
    progress_step: int = 15
    progress_cap: int = 90

    # Upload policy
    max_upload_bytes: int = MAX_UPLOAD_BYTES
    accepted_mime_types: FrozenSet[str] = field(default_factory=lambda: ACCEPTED_MIME_TYPES)

    @classmethod
    def from_env(cls) -> "WorkflowConfig":
        load_dotenv()
        defaults = cls()
        return cls(
            api_base_url=os.getenv("TRANSCRIPTS_API_BASE_URL", defaults.api_base_url).rstrip("/"),
            request_timeout_seconds=float(
                os.getenv("TRANSCRIPTS_API_TIMEOUT", defaults.request_timeout_seconds)
            ),
            token_type=os.getenv("TRANSCRIPTS_TOKEN_TYPE", defaults.token_type),
            poll_interval_seconds=float(
                os.getenv("TRANSCRIPTS_POLL_INTERVAL", defaults.poll_interval_seconds)
            ),
            retry_delay_seconds=float(
                os.getenv("TRANSCRIPTS_RETRY_DELAY", defaults.retry_delay_seconds)
            ),
            max_poll_retries=int(
                os.getenv("TRANSCRIPTS_MAX_POLL_RETRIES", defaults.max_poll_retries)
            ),
            session_ttl_seconds=float(
                os.getenv("TRANSCRIPTS_SESSION_TTL", defaults.session_ttl_seconds)
            ),
        )
