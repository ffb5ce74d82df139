"""
Pydantic models for the external job API: jobs, documents, errors and results.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DocumentStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.COMPLETED, DocumentStatus.FAILED)


def _coerce_id(value: Any) -> Any:
    # The job API has returned both integer and string ids
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    return value


class JobError(BaseModel):
    code: Optional[str] = None
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ProcessingMetadata(BaseModel):
    """Quality signals reported by the server. Missing values stay None."""

    first_pass_confidence: Optional[float] = None
    final_pass_confidence: Optional[float] = None
    improvement_score: Optional[float] = None
    extraction_quality_score: Optional[float] = None
    warnings: List[str] = Field(default_factory=list, alias="processing_warnings")

    model_config = ConfigDict(populate_by_name=True)


class DocumentResult(BaseModel):
    pass_1_extraction: Optional[Dict[str, Any]] = None
    pass_2_correction: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="allow")


class Document(BaseModel):
    id: str = ""
    document_type: Optional[str] = None
    status: DocumentStatus
    completed_at: Optional[str] = None
    result: Optional[DocumentResult] = None
    error: Optional[JobError] = None
    processing_metadata: Optional[ProcessingMetadata] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _coerce_id(value)


class Job(BaseModel):
    id: str = Field(..., alias="job_id")
    status: Optional[str] = Field(None, alias="overall_status")
    created_at: Optional[str] = Field(None, alias="created_timestamp")
    duration_seconds: Optional[float] = Field(None, alias="processing_duration_seconds")
    documents: List[Document] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _coerce_id(value)

    @property
    def is_terminal(self) -> bool:
        return self.status in (DocumentStatus.COMPLETED.value, DocumentStatus.FAILED.value)


class JobSubmission(BaseModel):
    job_id: str
    document_id: Optional[str] = None
    status: Optional[str] = None

    @field_validator("job_id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _coerce_id(value)


class DetailedResult(BaseModel):
    job_id: Optional[str] = None
    result: Optional[DocumentResult] = None
    processing_metadata: Optional[ProcessingMetadata] = None

    @field_validator("job_id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _coerce_id(value)


class JobSummary(BaseModel):
    """Row of the jobs list."""

    job_id: str
    status: str
    filename: Optional[str] = None
    upload_timestamp: Optional[str] = None
    processing_duration_seconds: Optional[float] = None

    @field_validator("job_id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        return _coerce_id(value)
