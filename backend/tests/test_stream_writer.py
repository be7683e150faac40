"""
Stream writer and SSE frame encoding.
"""

import asyncio
import json

import pytest

from broker.stream_writer import StreamWriter
from models.frame import KEEPALIVE, Frame
from models.session import Session, SessionState


def _open_session() -> Session:
    return Session(session_id="s1", state=SessionState.OPEN)


def _data(chunk: str):
    lines = [line[len("data: "):] for line in chunk.splitlines() if line.startswith("data: ")]
    return json.loads("\n".join(lines))


class TestFrameEncoding:

    def test_json_data(self):
        encoded = Frame(event="message", data={"a": 1}).encode()
        assert encoded == 'event: message\ndata: {"a":1}\n\n'

    def test_multiline_string_split_into_data_fields(self):
        encoded = Frame(event="message", data="one\ntwo", id="7").encode()
        assert encoded == "id: 7\nevent: message\ndata: one\ndata: two\n\n"


class TestStreamWriter:

    def setup_method(self):
        self.writer = StreamWriter(keepalive_interval=5)

    @pytest.mark.asyncio
    async def test_identity_frame_first(self):
        session = _open_session()
        stream = self.writer.open(session)

        first = await stream.__anext__()
        assert first.startswith("event: session\n")
        assert _data(first) == {"sessionId": "s1", "endpoint": "/commands?sessionId=s1"}
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_frames_delivered_in_send_order(self):
        session = _open_session()
        for i in range(20):
            assert self.writer.send(session, Frame(event="message", data={"n": i}))
        self.writer.close(session)

        chunks = [chunk async for chunk in self.writer.open(session)]
        assert [_data(c)["n"] for c in chunks[1:]] == list(range(20))

    @pytest.mark.asyncio
    async def test_close_ends_stream_after_final_frame(self):
        session = _open_session()
        self.writer.close(session, Frame(event="close", data={"reason": "shutdown"}))

        chunks = [chunk async for chunk in self.writer.open(session)]
        assert len(chunks) == 2
        assert chunks[1].startswith("event: close\n")

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        session = _open_session()
        self.writer.close(session)
        self.writer.close(session, Frame(event="close"))
        assert session.stream.qsize() == 1

    def test_send_to_closing_session_is_refused(self):
        session = _open_session()
        session.state = SessionState.CLOSING
        assert self.writer.send(session, Frame(event="message", data={})) is False
        assert session.stream.empty()

    @pytest.mark.asyncio
    async def test_keepalive_on_silence(self):
        writer = StreamWriter(keepalive_interval=0.01)
        session = _open_session()
        stream = writer.open(session)

        await stream.__anext__()
        assert await stream.__anext__() == KEEPALIVE
        await stream.aclose()

    @pytest.mark.asyncio
    async def test_concurrent_senders_do_not_interleave_sessions(self):
        a, b = _open_session(), Session(session_id="s2", state=SessionState.OPEN)

        async def burst(session, tag):
            for i in range(50):
                self.writer.send(session, Frame(event="message", data={"tag": tag, "n": i}))
                await asyncio.sleep(0)

        await asyncio.gather(burst(a, "a"), burst(b, "b"))
        self.writer.close(a)

        chunks = [chunk async for chunk in self.writer.open(a)][1:]
        assert [_data(c)["tag"] for c in chunks] == ["a"] * 50
        assert [_data(c)["n"] for c in chunks] == list(range(50))
