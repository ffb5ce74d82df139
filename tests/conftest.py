import pytest

from backend.app.config import WorkflowConfig


@pytest.fixture
def fast_config():
    return WorkflowConfig(
        api_base_url="http://jobs.test",
        poll_interval_seconds=0.01,
        retry_delay_seconds=0.01,
    )
