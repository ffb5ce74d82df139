"""
API router for the transcript analysis workflow. Each console session
(X-Session-Id header plus the caller's bearer token) drives its own
workflow controller.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Request, UploadFile

from backend.app.models.job_models import JobSummary
from backend.app.models.workflow_models import UploadCandidate, WorkflowState
from backend.app.services.error_classifier import classify_transport_error
from backend.app.services.job_client import ContractError, TransportError
from backend.app.services.job_workflow import (
    JobWorkflowController,
    PermissionDeniedError,
    WorkflowStateError,
)
from backend.app.services.upload_validator import guess_mime_type
from backend.app.services.workflow_registry import WorkflowRegistry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/transcripts", tags=["transcripts"])

MISSING_SESSION_MESSAGE = "X-Session-Id header is required"


class SessionRef:
    def __init__(self, registry: WorkflowRegistry, session_id: str, token: Optional[str]):
        self.registry = registry
        self.session_id = session_id
        self.token = token

    def lookup(self) -> Optional[JobWorkflowController]:
        return self.registry.get(self.session_id, self.token)

    def open(self) -> JobWorkflowController:
        return self.registry.open(self.session_id, self.token)


def get_registry(request: Request) -> WorkflowRegistry:
    return request.app.state.workflows


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    return token.strip() if token else scheme.strip()


def get_token(authorization: Optional[str] = Header(None)) -> Optional[str]:
    return _bearer_token(authorization)


def get_session(
    registry: WorkflowRegistry = Depends(get_registry),
    x_session_id: Optional[str] = Header(None),
    token: Optional[str] = Depends(get_token),
) -> SessionRef:
    if not x_session_id:
        raise HTTPException(status_code=400, detail=MISSING_SESSION_MESSAGE)
    return SessionRef(registry, x_session_id, token)


@router.post("/upload", response_model=WorkflowState, summary="Upload a transcript for analysis")
async def upload_transcript(
    request: Request,
    file: UploadFile = File(...),
    document_type: Optional[str] = Form(None),
    session: SessionRef = Depends(get_session),
):
    user_ip = request.client.host if request.client else "unknown"
    content = await file.read()
    filename = file.filename or "upload"
    candidate = UploadCandidate(
        content=content,
        declared_mime_type=file.content_type or guess_mime_type(filename),
        file_name=filename,
    )
    controller = session.open()
    try:
        state = await controller.submit(candidate, document_type=document_type)
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except WorkflowStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ContractError as e:
        logger.error(f"AUDIT: Upload from IP {user_ip} for file '{filename}' got a bad job API reply: {e}")
        raise HTTPException(status_code=502, detail=controller.state.error)

    logger.info(
        f"AUDIT: User IP {user_ip} uploaded '{filename}' ({candidate.size_bytes} bytes), "
        f"phase={state.phase.value} job={state.job_id}"
    )
    return state


@router.get("/state", response_model=WorkflowState, summary="Current workflow state")
async def get_state(session: SessionRef = Depends(get_session)):
    controller = session.lookup()
    return controller.state if controller else WorkflowState()


@router.post("/retry", response_model=WorkflowState, summary="Resubmit a failed transcript")
async def retry_transcript(session: SessionRef = Depends(get_session)):
    controller = session.lookup()
    if controller is None:
        raise HTTPException(status_code=409, detail="Cannot retry while idle")
    try:
        return await controller.retry()
    except PermissionDeniedError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except WorkflowStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ContractError:
        raise HTTPException(status_code=502, detail=controller.state.error)


@router.post("/clear", response_model=WorkflowState, summary="Reset the workflow")
async def clear_transcript(session: SessionRef = Depends(get_session)):
    controller = session.lookup()
    return controller.clear() if controller else WorkflowState()


@router.post("/details", response_model=WorkflowState, summary="Fetch detailed results")
async def fetch_details(session: SessionRef = Depends(get_session)):
    controller = session.lookup()
    if controller is None:
        return WorkflowState()
    return await controller.fetch_detailed_results()


@router.get("/jobs", response_model=List[JobSummary], summary="List processing jobs")
async def list_jobs(
    registry: WorkflowRegistry = Depends(get_registry),
    token: Optional[str] = Depends(get_token),
):
    try:
        return await registry.client_for(token).list_jobs()
    except TransportError as e:
        raise HTTPException(status_code=502, detail=classify_transport_error(e))
    except ContractError as e:
        logger.error(f"Jobs list returned an unexpected payload: {e}")
        raise HTTPException(status_code=502, detail="Unexpected response from the transcripts service.")


@router.delete("/session", summary="End the session's workflow")
async def end_session(session: SessionRef = Depends(get_session)):
    closed = session.registry.close(session.session_id, session.token)
    return {"closed": closed}
