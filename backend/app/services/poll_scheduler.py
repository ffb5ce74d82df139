"""
Timer-driven polling of job status with bounded fixed-delay retries.

A recurring timer fires every poll interval. Each firing starts one status
check unless a previous check (or its retries) is still in flight, in which
case the firing is skipped. The handle ends on a terminal document status,
on retry exhaustion, on a contract error, or on cancel().
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from backend.app.config import WorkflowConfig
from backend.app.models.job_models import Document, DocumentStatus, Job, JobError
from backend.app.services.error_classifier import POLL_EXHAUSTED, classify_transport_error
from backend.app.services.job_client import ContractError, TransportError

logger = logging.getLogger(__name__)

STATUS_CHECK_FAILED = "STATUS_CHECK_FAILED"

Callback = Callable[..., Union[None, Awaitable[None]]]


async def _maybe_await(result) -> None:
    if inspect.isawaitable(result):
        await result


class PollHandle:
    def __init__(
        self,
        job_id: str,
        client,
        config: WorkflowConfig,
        on_tick: Callback,
        on_terminal: Callback,
        on_retry: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
    ):
        self.job_id = job_id
        self._client = client
        self._config = config
        self._on_tick = on_tick
        self._on_terminal = on_terminal
        self._on_retry = on_retry
        self._on_error = on_error

        # UX approximation only; the server does not report progress
        self.progress = config.initial_progress
        self.failures = 0
        self.status_checks = 0

        self._in_flight = False
        self._done = False
        self._cancelled = False
        self._error: Optional[BaseException] = None
        self._finished = asyncio.Event()
        self._timer_task: Optional[asyncio.Task] = None
        self._check_task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return not self._done

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _start(self) -> None:
        self._timer_task = asyncio.create_task(self._run_timer())

    async def _run_timer(self) -> None:
        while not self._done:
            await asyncio.sleep(self._config.poll_interval_seconds)
            if self._done:
                return
            if self._in_flight:
                logger.debug(f"Job {self.job_id}: status check still in flight, skipping tick")
                continue
            self._in_flight = True
            self._check_task = asyncio.create_task(self._check())
            self._check_task.add_done_callback(self._on_check_done)

    async def _check(self) -> None:
        try:
            while not self._done:
                try:
                    self.status_checks += 1
                    job = await self._client.get_status(self.job_id)
                except TransportError as e:
                    if not e.retryable:
                        logger.error(f"Job {self.job_id}: status check rejected ({e.http_status})")
                        await self._finish(
                            self._synthetic_failure(STATUS_CHECK_FAILED, classify_transport_error(e))
                        )
                        return
                    if self.failures >= self._config.max_poll_retries:
                        logger.error(
                            f"Job {self.job_id}: status check failed after {self.failures} retries"
                        )
                        await self._finish(self._synthetic_failure(POLL_EXHAUSTED))
                        return
                    self.failures += 1
                    logger.warning(
                        f"Job {self.job_id}: status check failed ({e}). "
                        f"Retrying in {self._config.retry_delay_seconds}s "
                        f"({self.failures}/{self._config.max_poll_retries})"
                    )
                    if self._on_retry is not None:
                        await _maybe_await(self._on_retry(self.failures, self._config.max_poll_retries))
                    await asyncio.sleep(self._config.retry_delay_seconds)
                    continue

                self.failures = 0
                document = self._select_document(job)
                if document is None or not document.status.is_terminal:
                    self.progress = min(
                        self.progress + self._config.progress_step, self._config.progress_cap
                    )
                    logger.debug(f"Job {self.job_id}: processing, estimate {self.progress}%")
                    await _maybe_await(self._on_tick(self.progress))
                    return

                logger.info(f"Job {self.job_id}: document {document.id} {document.status.value}")
                await self._finish(document)
                return
        finally:
            self._in_flight = False

    def _select_document(self, job: Job) -> Optional[Document]:
        if job.documents:
            return job.documents[0]
        if job.is_terminal:
            raise ContractError(f"Job {job.id} is {job.status} but has no documents")
        return None

    def _synthetic_failure(self, code: str, message: Optional[str] = None) -> Document:
        return Document(
            status=DocumentStatus.FAILED,
            error=JobError(code=code, message=message, details={"job_id": self.job_id}),
        )

    async def _finish(self, document: Document) -> None:
        if self._done:
            return
        self._stop()
        try:
            await _maybe_await(self._on_terminal(document))
        finally:
            self._finished.set()

    def _on_check_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        logger.error(f"Job {self.job_id}: polling stopped on error: {error!r}")
        self._error = error
        already_done = self._done
        self._stop()
        if self._on_error is not None and not already_done:
            try:
                self._on_error(error)
            except Exception:
                logger.exception(f"Job {self.job_id}: error handler failed")
        self._finished.set()

    def _stop(self) -> None:
        self._done = True
        current = asyncio.current_task()
        for task in (self._timer_task, self._check_task):
            if task is not None and task is not current and not task.done():
                task.cancel()

    def cancel(self) -> None:
        """Stop polling. Safe to call repeatedly and after natural termination."""
        if self._done:
            return
        logger.info(f"Job {self.job_id}: polling cancelled")
        self._cancelled = True
        self._stop()
        self._finished.set()

    async def wait(self) -> None:
        """Wait until polling ends. Re-raises an error that stopped it."""
        await self._finished.wait()
        if self._error is not None:
            raise self._error


class PollScheduler:
    def __init__(self, client, config: Optional[WorkflowConfig] = None):
        self.client = client
        self.config = config or WorkflowConfig()

    def start(
        self,
        job_id: str,
        on_tick: Callback,
        on_terminal: Callback,
        on_retry: Optional[Callback] = None,
        on_error: Optional[Callback] = None,
    ) -> PollHandle:
        """Begin polling a job. Must be called from a running event loop."""
        handle = PollHandle(
            job_id,
            self.client,
            self.config,
            on_tick=on_tick,
            on_terminal=on_terminal,
            on_retry=on_retry,
            on_error=on_error,
        )
        handle._start()
        logger.info(f"Polling job {job_id} every {self.config.poll_interval_seconds}s")
        return handle
