"""
Message router: explicit session-id routing, no broadcast.
"""

import pytest

from broker.router import MessageRouter
from errors import SessionBusyError, SessionNotFoundError
from models.session import INBOX_LIMIT, Session, SessionState
from store import SessionRegistry


class TestMessageRouter:

    def setup_method(self):
        self.registry = SessionRegistry()
        self.router = MessageRouter(self.registry)
        self.a = Session(session_id="a", state=SessionState.OPEN)
        self.b = Session(session_id="b", state=SessionState.OPEN)
        self.registry.register(self.a)
        self.registry.register(self.b)

    @pytest.mark.parametrize("session_id", [None, ""])
    def test_missing_id_rejected(self, session_id):
        with pytest.raises(SessionNotFoundError) as excinfo:
            self.router.route(session_id, {"method": "ping"})
        assert excinfo.value.message == "no active session for supplied id"
        assert excinfo.value.status_code == 400
        assert self.a.inbox.empty() and self.b.inbox.empty()

    def test_unknown_id_rejected_without_side_effects(self):
        with pytest.raises(SessionNotFoundError):
            self.router.route("zzz", {"method": "ping"})
        assert self.a.inbox.empty() and self.b.inbox.empty()

    def test_payload_queued_verbatim_for_target_only(self):
        payload = {"jsonrpc": "2.0", "id": 3, "method": "browser_navigate", "params": {"url": "about:blank"}}

        session = self.router.route("a", payload)

        assert session is self.a
        assert self.a.inbox.get_nowait() is payload
        assert self.b.inbox.empty()

    def test_route_marks_activity(self):
        before = self.a.last_activity
        self.router.route("a", {"method": "ping"})
        assert self.a.last_activity >= before

    def test_session_being_torn_down_rejected(self):
        self.a.state = SessionState.CLOSING
        with pytest.raises(SessionNotFoundError):
            self.router.route("a", {"method": "ping"})
        assert self.a.inbox.empty()

    def test_full_inbox_rejected_with_429(self):
        for i in range(INBOX_LIMIT):
            self.router.route("a", {"id": i, "method": "ping"})

        with pytest.raises(SessionBusyError) as excinfo:
            self.router.route("a", {"id": "overflow", "method": "ping"})

        assert excinfo.value.status_code == 429
        assert self.a.inbox.qsize() == INBOX_LIMIT
        assert self.b.inbox.empty()
