import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# Commands queued for one session before POST /commands answers 429
INBOX_LIMIT = 256


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class CloseReason(str, Enum):
    CLIENT_DISCONNECT = "client_disconnect"
    BACKEND_ERROR = "backend_error"
    IDLE_TIMEOUT = "idle_timeout"
    SHUTDOWN = "shutdown"


class Session(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    session_id: str
    state: SessionState = SessionState.CONNECTING
    created_at: datetime = Field(default_factory=_utcnow)
    last_activity: datetime = Field(default_factory=_utcnow)
    close_reason: Optional[CloseReason] = None

    # Handles owned by the broker; never serialised.
    stream: asyncio.Queue = Field(default_factory=asyncio.Queue, exclude=True)    # outbound frames
    # inbound commands
    inbox: asyncio.Queue = Field(default_factory=lambda: asyncio.Queue(maxsize=INBOX_LIMIT), exclude=True)
    connection: Any = Field(default=None, exclude=True)
    worker: Optional[asyncio.Task] = Field(default=None, exclude=True)
    stream_closed: bool = Field(default=False, exclude=True)

    @property
    def is_live(self) -> bool:
        return self.state in (SessionState.CONNECTING, SessionState.OPEN)

    def touch(self) -> None:
        self.last_activity = _utcnow()

    def idle_seconds(self, now: Optional[datetime] = None) -> float:
        return ((now or _utcnow()) - self.last_activity).total_seconds()

    def info(self) -> dict:
        return self.model_dump(mode="json")
