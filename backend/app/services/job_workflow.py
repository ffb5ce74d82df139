"""
Job workflow controller: the state machine behind the transcript analysis screen.

idle -> processing -> completed | failed, with Retry (failed -> processing,
full resubmission) and Clear (any -> idle). The controller owns WorkflowState;
every change goes through _set_state and is emitted to subscribers.
"""

import logging
from typing import Callable, List, Optional

from backend.app.config import WorkflowConfig
from backend.app.models.job_models import Document, DocumentStatus
from backend.app.models.workflow_models import (
    AnalysisResult,
    UploadCandidate,
    WorkflowPhase,
    WorkflowState,
)
from backend.app.services.error_classifier import (
    DEFAULT_ERROR_MESSAGE,
    classify,
    classify_transport_error,
)
from backend.app.services.job_client import ContractError, TransportError
from backend.app.services.notifier import LoggingNotifier, Notifier
from backend.app.services.poll_scheduler import PollHandle, PollScheduler
from backend.app.services.result_normalizer import extract_metadata, merge_detailed, normalize
from backend.app.services.upload_validator import UploadValidationError, validate

logger = logging.getLogger(__name__)

COMPLETED_MESSAGE = "Transcript analysis completed."
PERMISSION_DENIED_MESSAGE = "You do not have permission to analyze transcripts."

StateListener = Callable[[WorkflowState], None]


class WorkflowStateError(Exception):
    """Operation not allowed from the current workflow phase"""
    pass


class PermissionDeniedError(Exception):
    pass


class JobWorkflowController:
    def __init__(
        self,
        client,
        config: Optional[WorkflowConfig] = None,
        notifier: Optional[Notifier] = None,
        scheduler: Optional[PollScheduler] = None,
        is_permitted: Optional[Callable[[], bool]] = None,
    ):
        self.client = client
        self.config = config or WorkflowConfig()
        self.notifier = notifier or LoggingNotifier()
        self.scheduler = scheduler or PollScheduler(client, self.config)
        self.is_permitted = is_permitted or (lambda: True)

        self._state = WorkflowState()
        self._listeners: List[StateListener] = []
        self._handle: Optional[PollHandle] = None
        self._candidate: Optional[UploadCandidate] = None
        self._document_type: Optional[str] = None
        # Bumped on every submit/retry/clear/close; stale callbacks compare against it
        self._generation = 0
        self._closed = False

    @property
    def state(self) -> WorkflowState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def candidate(self) -> Optional[UploadCandidate]:
        """The upload retained for Retry, if any."""
        return self._candidate

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, **changes) -> None:
        self._state = self._state.model_copy(update=changes)
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("State listener failed")

    def _reset_state(self) -> None:
        self._state = WorkflowState()
        for listener in list(self._listeners):
            try:
                listener(self._state)
            except Exception:
                logger.exception("State listener failed")

    def _ensure_open(self) -> None:
        if self._closed:
            raise WorkflowStateError("Workflow has been closed")

    def _ensure_permitted(self) -> None:
        if not self.is_permitted():
            self.notifier.on_error(PERMISSION_DENIED_MESSAGE)
            raise PermissionDeniedError(PERMISSION_DENIED_MESSAGE)

    def _cancel_poll(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    # ------------------------------------------------------------------
    # User events
    # ------------------------------------------------------------------

    async def submit(
        self, candidate: UploadCandidate, document_type: Optional[str] = None
    ) -> WorkflowState:
        """
        Validate a candidate, submit it and start polling.
        A rejected candidate leaves the workflow idle with the validation message.
        """
        self._ensure_open()
        if self._state.phase != WorkflowPhase.IDLE:
            raise WorkflowStateError(f"Cannot submit while {self._state.phase.value}")
        self._ensure_permitted()

        try:
            validate(candidate, self.config.accepted_mime_types, self.config.max_upload_bytes)
        except UploadValidationError as e:
            self._candidate = None
            self._set_state(error=e.message)
            self.notifier.on_error(e.message)
            return self._state

        self._candidate = candidate
        self._document_type = document_type
        await self._start_job()
        return self._state

    async def retry(self) -> WorkflowState:
        """Resubmit the last candidate from scratch after a failure."""
        self._ensure_open()
        if self._state.phase != WorkflowPhase.FAILED:
            raise WorkflowStateError(f"Cannot retry while {self._state.phase.value}")
        if self._candidate is None:
            raise WorkflowStateError("No file to resubmit")
        self._ensure_permitted()

        logger.info(f"Retrying '{self._candidate.file_name}' with a new job")
        await self._start_job()
        return self._state

    def clear(self) -> WorkflowState:
        self._cancel_poll()
        self._generation += 1
        self._candidate = None
        self._document_type = None
        self._reset_state()
        return self._state

    def close(self) -> None:
        """Hosting view teardown: stop polling and ignore anything still in flight."""
        if self._closed:
            return
        self._cancel_poll()
        self._generation += 1
        self._closed = True
        self._listeners.clear()

    async def wait(self) -> None:
        """Wait for the active poll to end; re-raises a contract error that stopped it."""
        if self._handle is not None:
            await self._handle.wait()

    async def fetch_detailed_results(self) -> WorkflowState:
        """
        Best-effort follow-up fetch for a completed job. Failures are logged and
        never change the displayed state.
        """
        if self._state.phase != WorkflowPhase.COMPLETED or not self._state.job_id:
            logger.info("Detailed results requested without a completed job; ignoring")
            return self._state

        generation = self._generation
        job_id = self._state.job_id
        try:
            detailed = await self.client.get_detailed_results(job_id)
        except Exception as e:
            logger.warning(f"Detailed results for job {job_id} unavailable: {e!r}")
            return self._state

        if generation != self._generation or self._state.phase != WorkflowPhase.COMPLETED:
            return self._state

        self._set_state(
            result=merge_detailed(self._state.result or AnalysisResult(), detailed),
            metadata=detailed.processing_metadata or self._state.metadata,
        )
        return self._state

    # ------------------------------------------------------------------
    # Job lifecycle
    # ------------------------------------------------------------------

    async def _start_job(self) -> None:
        self._cancel_poll()
        self._generation += 1
        generation = self._generation
        self._set_state(
            phase=WorkflowPhase.PROCESSING,
            job_id=None,
            progress_estimate=0,
            result=None,
            error=None,
            status_message=None,
            retry_count=0,
            metadata=None,
        )

        try:
            job_id = await self.client.submit(self._candidate, self._document_type)
        except TransportError as e:
            if generation == self._generation:
                logger.error(f"Job submission failed: status={e.http_status} body={e.body}")
                self._fail(classify_transport_error(e))
            return
        except ContractError:
            if generation == self._generation:
                logger.exception("Job submission returned an unexpected payload")
                self._fail(DEFAULT_ERROR_MESSAGE)
            raise

        if generation != self._generation:
            logger.info(f"Job {job_id} submitted after the workflow was reset; not polling")
            return

        self._set_state(job_id=job_id, progress_estimate=self.config.initial_progress)
        self._handle = self.scheduler.start(
            job_id,
            on_tick=lambda progress: self._on_tick(generation, progress),
            on_terminal=lambda document: self._on_terminal(generation, document),
            on_retry=lambda attempt, limit: self._on_retry(generation, attempt, limit),
            on_error=lambda error: self._on_poll_error(generation, error),
        )

    def _on_tick(self, generation: int, progress: int) -> None:
        if generation != self._generation:
            return
        self._set_state(progress_estimate=progress, status_message=None, retry_count=0)

    def _on_retry(self, generation: int, attempt: int, limit: int) -> None:
        if generation != self._generation:
            return
        self._set_state(
            retry_count=attempt,
            status_message=f"Network error. Retrying... ({attempt}/{limit})",
        )

    def _on_terminal(self, generation: int, document: Document) -> None:
        if generation != self._generation:
            return
        if document.status == DocumentStatus.COMPLETED:
            # Upload bytes are only kept for a Retry after failure
            self._candidate = None
            self._document_type = None
            self._set_state(
                phase=WorkflowPhase.COMPLETED,
                progress_estimate=100,
                result=normalize(document),
                metadata=extract_metadata(document),
                error=None,
                status_message=None,
                retry_count=0,
            )
            self.notifier.on_success(COMPLETED_MESSAGE)
            return

        error = document.error
        if error is not None:
            logger.warning(
                f"Job {self._state.job_id} failed: code={error.code} message={error.message} details={error.details}"
            )
        self._fail(classify(error.code if error else None, error.message if error else None))

    def _on_poll_error(self, generation: int, error: BaseException) -> None:
        if generation != self._generation:
            return
        logger.error(f"Polling job {self._state.job_id} stopped: {error!r}")
        self._fail(DEFAULT_ERROR_MESSAGE)

    def _fail(self, message: str) -> None:
        self._set_state(
            phase=WorkflowPhase.FAILED,
            progress_estimate=0,
            error=message,
            status_message=None,
        )
        self.notifier.on_error(message)
