"""
Session lifecycle: connecting -> open -> closing -> closed.

The manager is the only thing that moves sessions between states. Teardown
runs exactly once per session whatever triggers it (client disconnect,
backend failure, idle reap or shutdown), in a fixed order:

  1. deregister, so routing fails fast from here on
  2. close the stream
  3. stop the command worker
  4. release the automation connection
"""

import asyncio
import logging
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, Optional

from automation.factory import AutomationConnectionFactory
from broker.stream_writer import StreamWriter
from errors import AcquisitionError, ConnectionLostError, DuplicateSessionError, SessionNotFoundError
from models.frame import KEEPALIVE, Frame
from models.session import CloseReason, Session, SessionState
from store import SessionRegistry, new_session_id

logger = logging.getLogger(__name__)


class LifecycleManager:

    def __init__(
        self,
        factory: AutomationConnectionFactory,
        registry: Optional[SessionRegistry] = None,
        writer: Optional[StreamWriter] = None,
        idle_timeout: float = 900.0,
        reap_interval: float = 30.0,
    ):
        self.factory = factory
        self.registry = registry if registry is not None else SessionRegistry()
        self.writer = writer or StreamWriter()
        self.idle_timeout = idle_timeout
        self.reap_interval = reap_interval

        self._reaper: Optional[asyncio.Task] = None
        self._shutdown_task: Optional[asyncio.Task] = None
        self._teardowns: set[asyncio.Task] = set()

    @property
    def shutting_down(self) -> bool:
        return self._shutdown_task is not None

    def active_count(self) -> int:
        return self.registry.count()

    async def start(self) -> None:
        if self._reaper is None:
            self._reaper = asyncio.create_task(self._reap_loop(), name="session-reaper")
        logger.info(
            "Lifecycle manager started (idle_timeout=%.0fs, reap_interval=%.0fs)",
            self.idle_timeout, self.reap_interval,
        )

    # ─── Opening ──────────────────────────────────────────────────────

    async def open_session(self) -> Session:
        """
        Acquire a connection and register a new open session.

        On any failure the session never reaches OPEN, is never registered and
        holds no connection.
        """
        if self.shutting_down:
            raise AcquisitionError("broker is shutting down")

        session = Session(session_id=new_session_id())
        try:
            session.connection = await self.factory.acquire(label=session.session_id)
        except AcquisitionError:
            session.state = SessionState.CLOSED
            logger.exception("Session %s failed to acquire an automation connection", session.session_id)
            raise

        if self.shutting_down:
            await self.factory.release(session.connection)
            session.state = SessionState.CLOSED
            raise AcquisitionError("broker is shutting down")

        try:
            self.registry.register(session)
        except DuplicateSessionError:
            await self.factory.release(session.connection)
            session.state = SessionState.CLOSED
            raise

        session.state = SessionState.OPEN
        session.touch()
        session.worker = asyncio.create_task(self._pump(session), name=f"session-{session.session_id}")

        logger.info("Session %s opened (active: %d)", session.session_id, self.active_count())
        return session

    async def stream(
        self,
        session: Session,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> AsyncIterator[str]:
        """
        The response body for GET /stream.

        When the client goes away the response task is cancelled and this
        generator is closed; teardown then runs as its own task so that
        cancellation cannot cut the release short. Servers that never cancel
        the body are covered by polling `is_disconnected` on keep-alive ticks.
        """
        try:
            async for chunk in self.writer.open(session):
                if chunk == KEEPALIVE and is_disconnected is not None and await is_disconnected():
                    break
                yield chunk
        finally:
            if session.is_live:
                await asyncio.shield(self.close_session_soon(session, CloseReason.CLIENT_DISCONNECT))

    # ─── Closing ──────────────────────────────────────────────────────

    def close_session_soon(self, session: Session, reason: CloseReason) -> asyncio.Task:
        task = asyncio.ensure_future(self.close_session(session, reason))
        self._teardowns.add(task)
        task.add_done_callback(self._teardowns.discard)
        return task

    async def close_session(self, session: Session, reason: CloseReason) -> bool:
        """Tear a session down. Returns False if teardown already started."""
        if not session.is_live:
            return False
        session.state = SessionState.CLOSING
        session.close_reason = reason

        try:
            self.registry.remove(session.session_id)
        except SessionNotFoundError:
            pass  # never made it into the registry

        notice = None
        if reason is not CloseReason.CLIENT_DISCONNECT:
            notice = Frame(event="close", data={"sessionId": session.session_id, "reason": reason.value})
        self.writer.close(session, notice)

        worker = session.worker
        if worker is not None and not worker.done():
            worker.cancel()
            await asyncio.gather(worker, return_exceptions=True)

        try:
            if session.connection is not None:
                await self.factory.release(session.connection)
        except Exception:
            logger.exception("Releasing the connection of session %s failed", session.session_id)
        finally:
            session.state = SessionState.CLOSED

        logger.info(
            "Session %s closed (%s, active: %d)",
            session.session_id, reason.value, self.active_count(),
        )
        return True

    async def reap_idle(self, now: Optional[datetime] = None) -> int:
        reaped = 0
        for session in self.registry.snapshot():
            if session.idle_seconds(now) >= self.idle_timeout:
                logger.info("Reaping session %s idle for %.0fs", session.session_id, session.idle_seconds(now))
                # Shielded so stopping the reaper cannot interrupt a release
                if await asyncio.shield(self.close_session_soon(session, CloseReason.IDLE_TIMEOUT)):
                    reaped += 1
        return reaped

    async def shutdown(self) -> None:
        """Close every session, then the factory. Concurrent callers share one run."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self._shutdown())
        await asyncio.shield(self._shutdown_task)

    async def _shutdown(self) -> None:
        sessions = self.registry.snapshot()
        logger.info("Shutting down, closing %d session(s)", len(sessions))

        if self._reaper is not None:
            self._reaper.cancel()
            await asyncio.gather(self._reaper, return_exceptions=True)

        await asyncio.gather(*(self.close_session(s, CloseReason.SHUTDOWN) for s in sessions))
        if self._teardowns:
            await asyncio.gather(*list(self._teardowns), return_exceptions=True)
        await self.factory.close()

    # ─── Background tasks ─────────────────────────────────────────────

    async def _reap_loop(self) -> None:
        while True:
            await asyncio.sleep(self.reap_interval)
            try:
                await self.reap_idle()
            except Exception:
                logger.exception("Idle reap pass failed")

    async def _pump(self, session: Session) -> None:
        """Forward inbox payloads to the connection, one at a time, in order."""
        while True:
            payload = await session.inbox.get()
            lost: Optional[ConnectionLostError] = None
            try:
                items = payload if isinstance(payload, list) else [payload]
                for item in items:
                    reply = await session.connection.handle(item)
                    if reply is not None:
                        self.writer.send(session, Frame(event="message", data=reply))
            except ConnectionLostError as exc:
                lost = exc
            except Exception as exc:
                logger.exception("Forwarding a command to session %s failed", session.session_id)
                self.writer.send(session, Frame(event="error", data={"error": str(exc)}))
            finally:
                session.inbox.task_done()

            if lost is not None:
                logger.error("Session %s lost its automation connection: %s", session.session_id, lost)
                self.writer.send(session, Frame(event="error", data={"error": str(lost)}))
                # Detach first so the teardown does not cancel the task awaiting it
                session.worker = None
                await asyncio.shield(self.close_session_soon(session, CloseReason.BACKEND_ERROR))
                return
