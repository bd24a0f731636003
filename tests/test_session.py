"""Tests for orca.agents.session module.

Sessions run tests/fixtures/fake_droid.py in place of the droid CLI.
"""

import asyncio
import sys
from pathlib import Path

import pytest

from orca.agents.protocol import EventType
from orca.agents.session import DroidSession, SessionConfig, build_session_args
from orca.lib.errors import AgentProcessFailure, MalformedFrame, SessionClosed

FAKE_DROID = Path(__file__).parent / "fixtures" / "fake_droid.py"


def fake_config(mode: str) -> SessionConfig:
    return SessionConfig(model="test-model", command=(sys.executable, str(FAKE_DROID), mode))


async def collect_until(session, event_type, timeout=10):
    async def run():
        seen = []
        async for event in session.events(replay=True):
            seen.append(event)
            if event.type is event_type:
                break
        return seen
    return await asyncio.wait_for(run(), timeout)


class TestSessionArgs:
    """Tests for command line construction."""

    def test_stream_json_both_ways(self, tmp_path):
        args = build_session_args(SessionConfig(model="m"), tmp_path)
        assert args[:5] == ["exec", "--auto", "medium", "--model", "m"]
        assert args[args.index("--input-format") + 1] == "stream-json"
        assert args[args.index("--output-format") + 1] == "stream-json"
        assert args[args.index("--cwd") + 1] == str(tmp_path)
        assert "--session-id" not in args

    def test_resume_session(self, tmp_path):
        args = build_session_args(SessionConfig(model="m", session_id="abc"), tmp_path)
        assert args[-2:] == ["--session-id", "abc"]


class TestSessionLifecycle:
    """Tests against the fake droid."""

    @pytest.mark.asyncio
    async def test_send_and_receive(self, tmp_path):
        session = await DroidSession.open(fake_config("echo"), tmp_path)
        try:
            await session.send_message("hello")
            events = await collect_until(session, EventType.MESSAGE_STOP)
            assert events[0].type is EventType.STARTED
            assert events[-1].text == "echo: hello"
            assert session.session_id == "sess-fake"
            assert session.messages == ["echo: hello"]
            assert session.is_active()
        finally:
            await session.stop()

    @pytest.mark.asyncio
    async def test_stop_is_idempotent_with_single_close(self, tmp_path):
        session = await DroidSession.open(fake_config("echo"), tmp_path)
        await session.stop()
        await session.stop()
        await session.kill()

        closes = [e for e in session.transcript if e.type is EventType.CLOSE]
        assert len(closes) == 1
        assert closes[0].exit_code == 0
        assert session.transcript[-1].type is EventType.CLOSE
        assert not session.is_active()

    @pytest.mark.asyncio
    async def test_send_after_stop_raises(self, tmp_path):
        session = await DroidSession.open(fake_config("echo"), tmp_path)
        await session.stop()
        with pytest.raises(SessionClosed):
            await session.send_message("too late")

    @pytest.mark.asyncio
    async def test_nothing_delivered_after_close(self, tmp_path):
        session = await DroidSession.open(fake_config("echo"), tmp_path)
        await session.stop()
        count = len(session.transcript)
        await asyncio.sleep(0.1)
        assert len(session.transcript) == count

        replayed = [e async for e in session.events(replay=True)]
        assert replayed == session.transcript

    @pytest.mark.asyncio
    async def test_stop_terminates_after_grace(self, tmp_path):
        """A droid that ignores stdin closing is terminated after the grace period."""
        session = await DroidSession.open(fake_config("stubborn"), tmp_path, stop_grace=0.2)
        await collect_until(session, EventType.SESSION_ID)
        await asyncio.wait_for(session.stop(), 10)

        closes = [e for e in session.transcript if e.type is EventType.CLOSE]
        assert len(closes) == 1
        assert closes[0].exit_code != 0
        assert not session.is_active()

    @pytest.mark.asyncio
    async def test_kill_ends_observer(self, tmp_path):
        session = await DroidSession.open(fake_config("stubborn"), tmp_path)

        async def observe():
            return [e async for e in session.events(replay=True)]

        observer = asyncio.create_task(observe())
        await asyncio.sleep(0.05)
        await session.kill()
        events = await asyncio.wait_for(observer, 10)

        assert events[-1].type is EventType.CLOSE
        assert sum(1 for e in events if e.type is EventType.CLOSE) == 1

    @pytest.mark.asyncio
    async def test_new_observer_replaces_old(self, tmp_path):
        session = await DroidSession.open(fake_config("echo"), tmp_path)
        try:
            async def observe():
                return [e async for e in session.events()]

            first = asyncio.create_task(observe())
            await asyncio.sleep(0.05)
            await session.send_message("hi")
            events = await collect_until(session, EventType.MESSAGE_STOP)

            # The first observer was detached when the second one started
            await asyncio.wait_for(first, 5)
            assert events[-1].text == "echo: hi"
            assert session.is_active()
        finally:
            await session.stop()

    @pytest.mark.asyncio
    async def test_malformed_frames_and_exit(self, tmp_path):
        session = await DroidSession.open(fake_config("garbage"), tmp_path)
        events = await collect_until(session, EventType.CLOSE)

        errors = [e for e in events if e.type is EventType.ERROR]
        assert len(errors) == 2
        assert all(isinstance(e.error, MalformedFrame) for e in errors)
        assert "echo: still here" in [e.text for e in events if e.type is EventType.MESSAGE_STOP]
        assert "warning: noisy" in [e.text for e in events if e.type is EventType.STDERR]
        assert events[-1].exit_code == 3
        assert not session.is_active()
        await session.stop()
        assert sum(1 for e in session.transcript if e.type is EventType.CLOSE) == 1

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path):
        config = SessionConfig(model="m", command=(str(tmp_path / "no-such-droid"),))
        with pytest.raises(AgentProcessFailure):
            await DroidSession.open(config, tmp_path)
