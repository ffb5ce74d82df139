"""
Async client for the external transcript job API: submit, status, detailed results.
Every payload is validated against the canonical models at this boundary.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError

from backend.app.config import WorkflowConfig
from backend.app.models.job_models import DetailedResult, Job, JobSubmission, JobSummary
from backend.app.models.workflow_models import UploadCandidate

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = {408, 429}


class TransportError(Exception):
    """Non-2xx response, or no response at all (http_status is None)"""

    def __init__(self, http_status: Optional[int] = None, body: Any = None, message: str = ""):
        super().__init__(message or f"Job API request failed (status={http_status})")
        self.http_status = http_status
        self.body = body

    @property
    def retryable(self) -> bool:
        if self.http_status is None:
            return True
        return self.http_status >= 500 or self.http_status in RETRYABLE_STATUSES

    @property
    def _error_body(self) -> Dict[str, Any]:
        if isinstance(self.body, dict) and isinstance(self.body.get("error"), dict):
            return self.body["error"]
        return {}

    @property
    def error_code(self) -> Optional[str]:
        return self._error_body.get("code")

    @property
    def error_message(self) -> Optional[str]:
        return self._error_body.get("message")


class ContractError(Exception):
    """The job API returned a payload that does not match the canonical shape"""
    pass


class JobClient:
    def __init__(
        self,
        config: Optional[WorkflowConfig] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
    ):
        self.config = config or WorkflowConfig()
        self.base_url = self.config.api_base_url.rstrip("/")
        self.token_provider = token_provider
        self.timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"{self.config.token_type} {token}"
        return headers

    async def _read_json(self, resp) -> Any:
        try:
            return await resp.json(content_type=None)
        except (aiohttp.ContentTypeError, ValueError):
            return None

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Issue one request and return the decoded JSON body.
        Cancelling the awaiting task aborts the request in flight.
        """
        url = f"{self.base_url}{path}"
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                request = getattr(session, method)
                async with request(url, headers=self._headers(), **kwargs) as resp:
                    body = await self._read_json(resp)
                    if resp.status < 200 or resp.status >= 300:
                        logger.warning(f"Job API {method.upper()} {path} returned {resp.status}: {body}")
                        raise TransportError(http_status=resp.status, body=body)
                    return body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Job API {method.upper()} {path} failed without a response: {e}")
            raise TransportError(http_status=None, message=str(e)) from e

    def _parse(self, model, data: Any, what: str):
        if not isinstance(data, dict):
            raise ContractError(f"{what}: expected a JSON object, got {type(data).__name__}")
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ContractError(f"{what}: {e}") from e

    async def submit(self, candidate: UploadCandidate, document_type: Optional[str] = None) -> str:
        """Upload a file as a multipart form and return the new job id."""
        form = aiohttp.FormData()
        form.add_field(
            "file",
            candidate.content,
            filename=candidate.file_name,
            content_type=candidate.declared_mime_type,
        )
        if document_type:
            form.add_field("document_type", document_type)

        data = await self._request("post", "/jobs", data=form)
        submission = self._parse(JobSubmission, data, "submit response")
        logger.info(f"Submitted '{candidate.file_name}' as job {submission.job_id}")
        return submission.job_id

    async def get_status(self, job_id: str) -> Job:
        data = await self._request("get", f"/jobs/{quote(job_id, safe='')}")
        return self._parse(Job, data, f"status of job {job_id}")

    async def get_detailed_results(self, job_id: str) -> DetailedResult:
        data = await self._request("get", f"/jobs/{quote(job_id, safe='')}/details")
        return self._parse(DetailedResult, data, f"details of job {job_id}")

    async def list_jobs(self) -> List[JobSummary]:
        data = await self._request("get", "/jobs")
        if not isinstance(data, list):
            raise ContractError(f"jobs list: expected a JSON array, got {type(data).__name__}")
        return [self._parse(JobSummary, item, "jobs list entry") for item in data]
