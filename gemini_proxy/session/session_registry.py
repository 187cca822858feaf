"""
Session Registry

Owns engine sessions and the policy for reusing them across requests.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Literal, Optional

from gemini_proxy.engine.base import EngineChat, EngineClient

logger = logging.getLogger(__name__)

SessionMode = Literal["per_request", "shared"]


@dataclass
class Session:
    """One engine chat plus the lock serializing its use."""

    id: str
    client: EngineChat
    model: str
    working_directory: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)


class SessionRegistry:
    """
    Session store.

    In `per_request` mode every acquisition gets a fresh session that is
    dropped afterwards. In `shared` mode a single session is created on first
    use and every acquisition holds its lock until released, so concurrent
    requests take turns.
    """

    def __init__(
        self,
        engine_client: EngineClient,
        mode: SessionMode = "per_request",
        default_model: str = "gemini-2.5-flash",
        working_directory: str = ".",
    ):
        self.engine_client = engine_client
        self.mode = mode
        self.default_model = default_model
        self.working_directory = working_directory
        self._sessions: dict[str, Session] = {}
        self._shared: Optional[Session] = None
        self._create_lock = asyncio.Lock()

    def _new_session(self, model: Optional[str], working_directory: Optional[str]) -> Session:
        session_id = str(uuid.uuid4())
        target_model = model or self.default_model
        target_dir = working_directory or self.working_directory
        session = Session(
            id=session_id,
            client=self.engine_client.create_chat(target_model, target_dir),
            model=target_model,
            working_directory=target_dir,
        )
        self._sessions[session_id] = session
        logger.debug("Session created: id=%s model=%s mode=%s", session_id, target_model, self.mode)
        return session

    async def get_or_create(
        self,
        model: Optional[str] = None,
        working_directory: Optional[str] = None,
    ) -> Session:
        """
        Return a session for the next request.

        Args:
            model: Model for a newly created session (DEFAULT_MODEL when None)
            working_directory: Directory attached to a newly created session

        Returns:
            Session: the shared session, or a fresh one in per_request mode
        """
        if self.mode == "per_request":
            return self._new_session(model, working_directory)

        if self._shared is None:
            async with self._create_lock:
                if self._shared is None:
                    self._shared = self._new_session(model, working_directory)
        return self._shared

    @asynccontextmanager
    async def acquire(
        self,
        model: Optional[str] = None,
        working_directory: Optional[str] = None,
    ) -> AsyncIterator[Session]:
        """Hold a session for the duration of one request."""
        session = await self.get_or_create(model, working_directory)
        if self.mode == "per_request":
            try:
                yield session
            finally:
                self.delete(session.id)
            return

        async with session.lock:
            yield session

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        if self._shared is session:
            self._shared = None
        return True

    def __len__(self) -> int:
        return len(self._sessions)

    async def close(self) -> None:
        self._sessions.clear()
        self._shared = None
        await self.engine_client.close()
