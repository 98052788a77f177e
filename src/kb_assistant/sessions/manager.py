"""
Session Manager

Ownership-checked, history-bounded access to chat sessions.

Every call that touches an existing session verifies that the requester owns
it: a foreign session is a permission failure, a missing one is not-found.
History is truncated at append time to the most recent `history_limit`
messages, so stored sessions stay bounded however long a conversation runs.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..core.errors import SessionNotFoundError, SessionPermissionError
from ..llm.base import ChatTurn
from .store import SessionRecord, SessionRepository

logger = logging.getLogger("kb.sessions")


class SessionManager:
    def __init__(self, repository: SessionRepository, history_limit: int = 10) -> None:
        self._repository = repository
        self.history_limit = history_limit

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def get(self, session_id: str, requester: str) -> SessionRecord:
        """
        Return a session owned by `requester`.

        Raises
        ------
        SessionNotFoundError
            If no session has this id.
        SessionPermissionError
            If the session belongs to someone else.
        """
        record = await self._repository.get(session_id)
        if record is None:
            raise SessionNotFoundError(f"Session {session_id} not found.")

        if record.owner != requester:
            logger.warning(
                "User %s attempted to access session %s owned by another user",
                requester,
                session_id,
            )
            raise SessionPermissionError(
                f"Session {session_id} does not belong to the requesting user."
            )
        return record

    async def create(self, owner: str) -> SessionRecord:
        record = await self._repository.create(owner)
        logger.info("Created session %s for %s", record.id, owner)
        return record

    async def get_or_create(self, session_id: Optional[str], owner: str) -> SessionRecord:
        if session_id:
            return await self.get(session_id, owner)
        return await self.create(owner)

    async def append(
        self,
        session_id: str,
        requester: str,
        turns: Sequence[ChatTurn],
    ) -> SessionRecord:
        """
        Append turns and keep only the most recent `history_limit` messages.
        """
        record = await self.get(session_id, requester)
        if not turns:
            return record

        history = list(record.history) + list(turns)
        if self.history_limit > 0:
            history = history[-self.history_limit:]

        return await self._repository.save_history(record.id, history)

    async def clear(self, session_id: str, requester: str) -> SessionRecord:
        record = await self.get(session_id, requester)
        return await self._repository.save_history(record.id, [])

    async def delete(self, session_id: str, requester: str) -> None:
        record = await self.get(session_id, requester)
        await self._repository.delete(record.id)
        logger.info("Deleted session %s", record.id)

    # ------------------------------------------------------------------
    # Utility operations
    # ------------------------------------------------------------------

    async def list_for_owner(self, owner: str) -> List[SessionRecord]:
        """Sessions of `owner`, most recently updated first."""
        return await self._repository.list_for_owner(owner)
