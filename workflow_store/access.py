"""Session access control."""

from __future__ import annotations

import logging

from .repositories.base import SessionRepository
from .values import SessionID, UserID

logger = logging.getLogger(__name__)


class SessionAccessService:
    """Decides whether a user may act on a session: only its owner may."""

    def __init__(self, sessions: SessionRepository) -> None:
        self._sessions = sessions

    async def can_access(self, user_id: UserID | str, session_id: SessionID | str) -> bool:
        """True iff the session exists and belongs to ``user_id``.

        Any failure to load the session (absent row, bad ID, backend error)
        denies access. Cancellation still propagates.
        """
        try:
            session = await self._sessions.find_by_id(session_id)
            return session.is_owned_by(user_id)
        except Exception as exc:
            logger.debug("access denied user=%s session=%s: %s", user_id, session_id, exc)
            return False
