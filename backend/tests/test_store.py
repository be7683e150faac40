"""
Session registry tests: contract, id generation and thread safety.
"""

import threading

import pytest

from errors import DuplicateSessionError, SessionNotFoundError
from models.session import Session
from store import SessionRegistry, new_session_id


def _session(session_id=None) -> Session:
    return Session(session_id=session_id or new_session_id())


class TestRegistryContract:

    def setup_method(self):
        self.registry = SessionRegistry()

    def test_register_then_lookup(self):
        session = _session()
        self.registry.register(session)
        assert self.registry.lookup(session.session_id) is session
        assert len(self.registry) == 1
        assert session.session_id in self.registry

    def test_duplicate_id_rejected(self):
        self.registry.register(_session("abc"))
        with pytest.raises(DuplicateSessionError):
            self.registry.register(_session("abc"))
        assert len(self.registry) == 1

    def test_lookup_unknown_raises(self):
        with pytest.raises(SessionNotFoundError):
            self.registry.lookup("missing")

    def test_remove_returns_session_once(self):
        session = _session()
        self.registry.register(session)
        assert self.registry.remove(session.session_id) is session
        with pytest.raises(SessionNotFoundError):
            self.registry.remove(session.session_id)
        with pytest.raises(SessionNotFoundError):
            self.registry.lookup(session.session_id)

    def test_snapshot_is_a_copy(self):
        sessions = [_session() for _ in range(3)]
        for s in sessions:
            self.registry.register(s)

        snap = self.registry.snapshot()
        self.registry.remove(sessions[0].session_id)

        assert len(snap) == 3
        assert len(self.registry) == 2

    def test_count_tracks_registrations(self):
        assert self.registry.count() == 0
        a, b = _session(), _session()
        self.registry.register(a)
        self.registry.register(b)
        assert self.registry.count() == 2

        self.registry.remove(a.session_id)
        assert self.registry.count() == len(self.registry) == 1

    def test_clear_returns_everything(self):
        for _ in range(4):
            self.registry.register(_session())
        removed = self.registry.clear()
        assert len(removed) == 4
        assert len(self.registry) == 0


class TestSessionIds:

    def test_ids_are_unique(self):
        ids = {new_session_id() for _ in range(10_000)}
        assert len(ids) == 10_000

    def test_ids_are_128_bit_hex(self):
        session_id = new_session_id()
        assert len(session_id) == 32
        int(session_id, 16)


class TestConcurrency:

    def test_parallel_register_and_remove(self):
        registry = SessionRegistry()
        sessions = [_session() for _ in range(400)]
        errors = []

        def worker(chunk):
            try:
                for s in chunk:
                    registry.register(s)
                for s in chunk[::2]:
                    registry.remove(s.session_id)
            except Exception as exc:  # surfaced by the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=worker, args=(sessions[i::8],)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(registry) == 200
        assert len({s.session_id for s in registry.snapshot()}) == 200
