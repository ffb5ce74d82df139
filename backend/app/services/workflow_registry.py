"""
One workflow controller per console session.

A session is keyed by the caller's session id together with a fingerprint of
its bearer token, so a token is never attached to another caller's workflow.
Sessions are opened by an upload and evicted once idle for longer than the
configured TTL.
"""

import hashlib
import logging
import time
from typing import Callable, Dict, Optional, Tuple

from backend.app.config import WorkflowConfig
from backend.app.models.workflow_models import WorkflowPhase
from backend.app.services.job_client import JobClient
from backend.app.services.job_workflow import JobWorkflowController

logger = logging.getLogger(__name__)

ClientFactory = Callable[[WorkflowConfig, Callable[[], Optional[str]]], object]
PermissionFactory = Callable[[Optional[str]], Callable[[], bool]]

SessionKey = Tuple[str, str]


def token_fingerprint(token: Optional[str]) -> str:
    if not token:
        return "anonymous"
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]


class _Session:
    def __init__(self, key: SessionKey, controller: JobWorkflowController):
        self.key = key
        self.controller = controller
        self.last_seen = time.monotonic()

    def touch(self) -> None:
        self.last_seen = time.monotonic()


class WorkflowRegistry:
    def __init__(
        self,
        config: Optional[WorkflowConfig] = None,
        client_factory: Optional[ClientFactory] = None,
        permission_factory: Optional[PermissionFactory] = None,
    ):
        self.config = config or WorkflowConfig()
        self.client_factory = client_factory or (
            lambda config, token_provider: JobClient(config, token_provider=token_provider)
        )
        self.permission_factory = permission_factory
        self._sessions: Dict[SessionKey, _Session] = {}

    def _key(self, session_id: str, token: Optional[str]) -> SessionKey:
        return (session_id, token_fingerprint(token))

    def client_for(self, token: Optional[str]):
        """A job client bound to one caller's token, not tied to any session."""
        return self.client_factory(self.config, lambda: token)

    def get(self, session_id: str, token: Optional[str] = None) -> Optional[JobWorkflowController]:
        """Look up an existing session without creating one."""
        self.evict_idle()
        session = self._sessions.get(self._key(session_id, token))
        if session is None:
            return None
        session.touch()
        return session.controller

    def open(self, session_id: str, token: Optional[str] = None) -> JobWorkflowController:
        """Return the caller's session, creating it on first use."""
        controller = self.get(session_id, token)
        if controller is not None:
            return controller

        key = self._key(session_id, token)
        is_permitted = self.permission_factory(token) if self.permission_factory else None
        controller = JobWorkflowController(
            self.client_for(token), self.config, is_permitted=is_permitted
        )
        self._sessions[key] = _Session(key, controller)
        logger.info(f"Created workflow for session {session_id} ({len(self._sessions)} open)")
        return controller

    def close(self, session_id: str, token: Optional[str] = None) -> bool:
        return self._close_key(self._key(session_id, token))

    def _close_key(self, key: SessionKey) -> bool:
        session = self._sessions.pop(key, None)
        if session is None:
            return False
        session.controller.close()
        logger.info(f"Closed workflow for session {key[0]}")
        return True

    def evict_idle(self) -> int:
        """Close sessions unused for longer than the TTL, unless a job is still processing."""
        cutoff = time.monotonic() - self.config.session_ttl_seconds
        stale = [
            key
            for key, session in self._sessions.items()
            if session.last_seen < cutoff
            and session.controller.state.phase != WorkflowPhase.PROCESSING
        ]
        for key in stale:
            self._close_key(key)
        if stale:
            logger.info(f"Evicted {len(stale)} idle workflow(s)")
        return len(stale)

    def close_all(self) -> int:
        count = 0
        for key in list(self._sessions):
            if self._close_key(key):
                count += 1
        return count

    def __len__(self) -> int:
        return len(self._sessions)
