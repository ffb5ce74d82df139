import asyncio

import pytest

from backend.app.config import WorkflowConfig
from backend.app.models.job_models import DocumentStatus
from backend.app.services.error_classifier import POLL_EXHAUSTED
from backend.app.services.job_client import ContractError, TransportError
from backend.app.services.poll_scheduler import STATUS_CHECK_FAILED, PollScheduler
from tests.fakes import ScriptedJobClient, completed_job, failed_job, make_job


class Recorder:
    def __init__(self):
        self.ticks = []
        self.terminals = []
        self.retries = []
        self.errors = []

    def on_tick(self, progress):
        self.ticks.append(progress)

    def on_terminal(self, document):
        self.terminals.append(document)

    def on_retry(self, attempt, limit):
        self.retries.append((attempt, limit))

    def on_error(self, error):
        self.errors.append(error)


def start(client, config, recorder):
    scheduler = PollScheduler(client, config)
    return scheduler.start(
        "42",
        on_tick=recorder.on_tick,
        on_terminal=recorder.on_terminal,
        on_retry=recorder.on_retry,
        on_error=recorder.on_error,
    )


@pytest.mark.asyncio
async def test_polls_until_terminal(fast_config):
    client = ScriptedJobClient([make_job(), make_job(), completed_job({"a": 1}, {"a": 2})])
    recorder = Recorder()
    handle = start(client, fast_config, recorder)

    await asyncio.wait_for(handle.wait(), timeout=2)

    assert client.status_calls == 3
    assert recorder.ticks == [25, 40]
    assert len(recorder.terminals) == 1
    assert recorder.terminals[0].status == DocumentStatus.COMPLETED
    assert not handle.active

    await asyncio.sleep(0.05)
    assert client.status_calls == 3


@pytest.mark.asyncio
async def test_failed_document_is_terminal(fast_config):
    client = ScriptedJobClient([make_job(), failed_job("OCR_FAILED", "bad scan")])
    recorder = Recorder()
    handle = start(client, fast_config, recorder)

    await asyncio.wait_for(handle.wait(), timeout=2)

    assert recorder.terminals[0].status == DocumentStatus.FAILED
    assert recorder.terminals[0].error.code == "OCR_FAILED"


@pytest.mark.asyncio
async def test_progress_estimate_is_capped(fast_config):
    client = ScriptedJobClient([make_job()] * 8 + [completed_job()])
    recorder = Recorder()
    handle = start(client, fast_config, recorder)

    await asyncio.wait_for(handle.wait(), timeout=2)

    assert recorder.ticks[:5] == [25, 40, 55, 70, 85]
    assert max(recorder.ticks) == 90
    assert recorder.ticks[-1] == 90


@pytest.mark.asyncio
async def test_retries_are_bounded(fast_config):
    client = ScriptedJobClient([TransportError(http_status=None, message="offline")])
    recorder = Recorder()
    handle = start(client, fast_config, recorder)

    await asyncio.wait_for(handle.wait(), timeout=2)

    # one initial attempt plus three retries
    assert client.status_calls == 4
    assert recorder.retries == [(1, 3), (2, 3), (3, 3)]
    assert len(recorder.terminals) == 1
    assert recorder.terminals[0].status == DocumentStatus.FAILED
    assert recorder.terminals[0].error.code == POLL_EXHAUSTED

    await asyncio.sleep(0.05)
    assert client.status_calls == 4


@pytest.mark.asyncio
async def test_recovers_after_transient_failure(fast_config):
    client = ScriptedJobClient(
        [
            TransportError(http_status=503),
            make_job(),
            TransportError(http_status=None),
            completed_job(),
        ]
    )
    recorder = Recorder()
    handle = start(client, fast_config, recorder)

    await asyncio.wait_for(handle.wait(), timeout=2)

    assert recorder.retries == [(1, 3), (1, 3)]
    assert recorder.ticks == [25]
    assert recorder.terminals[0].status == DocumentStatus.COMPLETED
    assert handle.failures == 0


@pytest.mark.asyncio
async def test_non_retryable_status_fails_immediately(fast_config):
    client = ScriptedJobClient([TransportError(http_status=404)])
    recorder = Recorder()
    handle = start(client, fast_config, recorder)

    await asyncio.wait_for(handle.wait(), timeout=2)

    assert client.status_calls == 1
    assert recorder.retries == []
    assert recorder.terminals[0].error.code == STATUS_CHECK_FAILED
    assert recorder.terminals[0].error.message


@pytest.mark.asyncio
async def test_cancel_before_first_tick(fast_config):
    client = ScriptedJobClient([make_job()])
    recorder = Recorder()
    handle = start(client, fast_config, recorder)

    handle.cancel()
    handle.cancel()
    await asyncio.sleep(0.05)

    assert client.status_calls == 0
    assert recorder.ticks == []
    assert recorder.terminals == []
    assert handle.cancelled
    await asyncio.wait_for(handle.wait(), timeout=1)


@pytest.mark.asyncio
async def test_cancel_while_polling_stops_checks(fast_config):
    client = ScriptedJobClient([make_job()])
    recorder = Recorder()
    handle = start(client, fast_config, recorder)

    await asyncio.sleep(0.05)
    handle.cancel()
    calls = client.status_calls
    await asyncio.sleep(0.05)

    assert calls >= 1
    assert client.status_calls == calls
    assert recorder.terminals == []


@pytest.mark.asyncio
async def test_cancel_after_termination_is_a_no_op(fast_config):
    client = ScriptedJobClient([completed_job()])
    recorder = Recorder()
    handle = start(client, fast_config, recorder)

    await asyncio.wait_for(handle.wait(), timeout=2)
    handle.cancel()

    assert not handle.cancelled
    assert len(recorder.terminals) == 1


@pytest.mark.asyncio
async def test_status_checks_never_overlap():
    config = WorkflowConfig(
        api_base_url="http://jobs.test", poll_interval_seconds=0.01, retry_delay_seconds=0.01
    )
    client = ScriptedJobClient([make_job()] * 4 + [completed_job()], status_delay=0.05)
    recorder = Recorder()
    handle = start(client, config, recorder)

    await asyncio.wait_for(handle.wait(), timeout=3)

    assert client.max_in_flight == 1
    assert client.status_calls == 5


@pytest.mark.asyncio
async def test_terminal_job_without_documents_is_a_contract_error(fast_config):
    client = ScriptedJobClient([make_job("completed", documents=[])])
    recorder = Recorder()
    handle = start(client, fast_config, recorder)

    with pytest.raises(ContractError):
        await asyncio.wait_for(handle.wait(), timeout=2)

    assert recorder.terminals == []
    assert len(recorder.errors) == 1
    assert isinstance(recorder.errors[0], ContractError)


@pytest.mark.asyncio
async def test_processing_job_without_documents_keeps_polling(fast_config):
    client = ScriptedJobClient([make_job("processing", documents=[]), completed_job()])
    recorder = Recorder()
    handle = start(client, fast_config, recorder)

    await asyncio.wait_for(handle.wait(), timeout=2)

    assert recorder.ticks == [25]
    assert len(recorder.terminals) == 1


@pytest.mark.asyncio
async def test_async_callbacks_are_awaited(fast_config):
    client = ScriptedJobClient([make_job(), completed_job()])
    seen = []

    async def on_tick(progress):
        await asyncio.sleep(0)
        seen.append(("tick", progress))

    async def on_terminal(document):
        await asyncio.sleep(0)
        seen.append(("terminal", document.status))

    handle = PollScheduler(client, fast_config).start("42", on_tick, on_terminal)
    await asyncio.wait_for(handle.wait(), timeout=2)

    assert seen == [("tick", 25), ("terminal", DocumentStatus.COMPLETED)]


@pytest.mark.asyncio
async def test_retries_wait_the_fixed_delay():
    config = WorkflowConfig(
        api_base_url="http://jobs.test", poll_interval_seconds=0.01, retry_delay_seconds=0.1
    )
    client = ScriptedJobClient([TransportError(http_status=503)])
    recorder = Recorder()
    loop = asyncio.get_running_loop()

    started = loop.time()
    handle = start(client, config, recorder)
    await asyncio.wait_for(handle.wait(), timeout=3)
    elapsed = loop.time() - started

    assert client.status_calls == 4
    assert elapsed >= 3 * config.retry_delay_seconds
    assert recorder.terminals[0].error.code == POLL_EXHAUSTED
