"""
Client-side models for the transcript analysis workflow: upload candidates,
normalized analysis results and the view state exposed to the console.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from backend.app.models.job_models import ProcessingMetadata


@dataclass
class UploadCandidate:
    content: bytes
    declared_mime_type: str
    file_name: str
    size_bytes: Optional[int] = None

    def __post_init__(self):
        if self.size_bytes is None:
            self.size_bytes = len(self.content)


class AnalysisResult(BaseModel):
    """Canonical two-pass result. Both passes are always dicts, never None."""

    first_pass: Dict[str, Any] = Field(default_factory=dict)
    final_pass: Dict[str, Any] = Field(default_factory=dict)


class WorkflowPhase(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkflowState(BaseModel):
    phase: WorkflowPhase = WorkflowPhase.IDLE
    job_id: Optional[str] = None
    progress_estimate: int = Field(0, ge=0, le=100)
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    status_message: Optional[str] = None
    retry_count: int = 0
    metadata: Optional[ProcessingMetadata] = None
