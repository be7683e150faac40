"""
Out-of-band command routing.

Commands name their session explicitly (the `sessionId` query parameter on
POST /commands). A missing or unknown id is rejected; nothing is ever
broadcast. Accepted payloads go onto the session's inbox untouched and the
session worker forwards them; replies only travel back over the stream.
"""

import asyncio
import logging
from typing import Any, Optional

from errors import SessionBusyError, SessionNotFoundError
from models.session import Session, SessionState
from store import SessionRegistry

logger = logging.getLogger(__name__)


class MessageRouter:

    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    def resolve(self, session_id: Optional[str]) -> Session:
        if not session_id:
            logger.warning("Rejected command without a session id")
            raise SessionNotFoundError(session_id)

        try:
            session = self.registry.lookup(session_id)
        except SessionNotFoundError:
            logger.warning("Rejected command for unknown session %s", session_id)
            raise

        if session.state is not SessionState.OPEN:
            logger.warning("Rejected command for %s session %s", session.state.value, session_id)
            raise SessionNotFoundError(session_id)
        return session

    def route(self, session_id: Optional[str], payload: Any) -> Session:
        """Queue `payload` for the addressed session and return that session."""
        session = self.resolve(session_id)
        try:
            session.inbox.put_nowait(payload)
        except asyncio.QueueFull:
            logger.warning("Rejected command for session %s: inbox full", session_id)
            raise SessionBusyError(session.session_id) from None
        session.touch()
        logger.debug("Queued command for session %s", session_id)
        return session
