"""
Serialises outbound frames onto one client's event stream.

Each session owns its own asyncio.Queue, so frames for one session are
delivered strictly in send() order while sessions never wait on each other.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from models.frame import KEEPALIVE, Frame
from models.session import Session, SessionState

logger = logging.getLogger(__name__)

_END_OF_STREAM = object()


class StreamWriter:

    def __init__(self, keepalive_interval: float = 15.0, endpoint: str = "/commands"):
        self.keepalive_interval = keepalive_interval
        self.endpoint = endpoint

    def identity_frame(self, session: Session) -> Frame:
        return Frame(
            event="session",
            data={
                "sessionId": session.session_id,
                "endpoint": f"{self.endpoint}?sessionId={session.session_id}",
            },
        )

    async def open(self, session: Session) -> AsyncIterator[str]:
        """
        Yield encoded frames for one client: the identity frame first, then
        whatever send() queues, until close() is called. A keep-alive comment
        goes out whenever the stream has been silent for keepalive_interval.
        """
        yield self.identity_frame(session).encode()

        while True:
            try:
                item = await asyncio.wait_for(session.stream.get(), timeout=self.keepalive_interval)
            except asyncio.TimeoutError:
                yield KEEPALIVE
                continue

            if item is _END_OF_STREAM:
                return
            yield item.encode()

    def send(self, session: Session, frame: Frame) -> bool:
        """Queue one frame. Returns False once the session has stopped serving."""
        if session.state is not SessionState.OPEN:
            logger.debug("Dropping %s frame for %s session %s", frame.event, session.state.value, session.session_id)
            return False
        session.stream.put_nowait(frame)
        session.touch()
        return True

    def close(self, session: Session, frame: Optional[Frame] = None) -> None:
        """End the stream, optionally after a final frame. Idempotent."""
        if session.stream_closed:
            return
        session.stream_closed = True
        if frame is not None:
            session.stream.put_nowait(frame)
        session.stream.put_nowait(_END_OF_STREAM)
