"""
Long-lived droid sessions over the stream-json protocol.

A session owns one `droid exec` subprocess. Its stdout frames are decoded
into SessionEvents, appended to an in-memory transcript and forwarded to the
current observer, if there is one. Observers come and go without touching
the subprocess:

    session = await DroidSession.open(config, cwd)
    await session.send_message("Add a health check endpoint")
    async for event in session.events():
        if event.type is EventType.MESSAGE_STOP:
            break
    ...
    async for event in session.events(replay=True):  # re-attach, transcript first
        ...
    await session.stop()

After stop() or kill() returns, no more events are delivered and exactly one
CLOSE has been emitted. Both can be called any number of times.
"""

import asyncio
import codecs
import contextlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Sequence

from orca.agents.protocol import EventType, FrameDecoder, SessionEvent
from orca.lib.constants import STOP_GRACE_SECONDS
from orca.lib.errors import AgentProcessFailure, SessionClosed

logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 4096

# Marks the end of an observer's stream
_END = object()


@dataclass
class SessionConfig:
    model: str
    auto_level: str = "medium"
    session_id: str | None = None  # Resume an earlier droid session
    command: Sequence[str] = ("droid",)  # Executable plus any leading args


def build_session_args(config: SessionConfig, cwd: Path) -> list[str]:
    args = [
        "exec",
        "--auto", config.auto_level,
        "--model", config.model,
        "--input-format", "stream-json",
        "--output-format", "stream-json",
        "--cwd", str(cwd),
    ]
    if config.session_id:
        args += ["--session-id", config.session_id]
    return args


class DroidSession:
    """One interactive droid subprocess and its event transcript."""

    def __init__(self, config: SessionConfig, cwd: Path, stop_grace: float = STOP_GRACE_SECONDS):
        self.config = config
        self.cwd = cwd
        self.stop_grace = stop_grace
        self.session_id: str | None = config.session_id
        self.transcript: list[SessionEvent] = []

        self._proc: asyncio.subprocess.Process | None = None
        self._decoder = FrameDecoder()
        self._observer: asyncio.Queue | None = None
        self._readers: list[asyncio.Task] = []
        self._waiter: asyncio.Task | None = None
        self._closing: asyncio.Task | None = None
        self._close_emitted = False
        self._sealed = False

    @classmethod
    async def open(cls, config: SessionConfig, cwd: Path, **kwargs) -> "DroidSession":
        session = cls(config, cwd, **kwargs)
        await session.start()
        return session

    async def start(self) -> None:
        """Spawn the subprocess and start reading its output.

        Raises:
            AgentProcessFailure: If the droid executable can't be started
        """
        if self._proc is not None:
            return
        argv = list(self.config.command) + build_session_args(self.config, self.cwd)
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AgentProcessFailure(f"Could not start droid session: {e}") from e

        logger.info(f"[SESSION] started pid {self._proc.pid} in {self.cwd} (model {self.config.model})")
        self._emit(SessionEvent(EventType.STARTED))
        self._readers = [
            asyncio.create_task(self._read_stdout()),
            asyncio.create_task(self._read_stderr()),
        ]
        self._waiter = asyncio.create_task(self._wait_for_exit())

    def is_active(self) -> bool:
        """Whether the subprocess is still running."""
        return self._proc is not None and self._proc.returncode is None and not self._sealed

    @property
    def messages(self) -> list[str]:
        """Complete assistant messages so far."""
        return [e.text for e in self.transcript if e.type is EventType.MESSAGE_STOP]

    async def send_message(self, content: str) -> None:
        """Write a user message to the droid.

        Raises:
            SessionClosed: If the session isn't active
        """
        if not self.is_active() or self._closing is not None:
            raise SessionClosed("Cannot send a message to a closed session")
        frame = json.dumps({"role": "user", "content": content}) + "\n"
        try:
            self._proc.stdin.write(frame.encode())
            await self._proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise SessionClosed(f"Session input closed: {e}") from e

    async def events(self, *, replay: bool = False) -> AsyncIterator[SessionEvent]:
        """Observe events as they happen.

        With replay=True the transcript so far is delivered first. Starting a
        new observation replaces the previous observer. Leaving the loop
        early does not affect the subprocess.
        """
        queue: asyncio.Queue = asyncio.Queue()
        if replay:
            for event in self.transcript:
                queue.put_nowait(event)
        if self._sealed:
            queue.put_nowait(_END)
        elif self._observer is not None:
            self._observer.put_nowait(_END)
        self._observer = queue

        try:
            while True:
                item = await queue.get()
                if item is _END:
                    return
                yield item
        finally:
            if self._observer is queue:
                self._observer = None

    async def stop(self) -> None:
        """Close stdin, give the droid a moment to exit, then terminate it."""
        await self._shutdown(graceful=True)

    async def kill(self) -> None:
        """Kill the droid immediately."""
        proc = self._proc
        if proc is not None and proc.returncode is None:
            # Escalates a graceful stop that is still waiting
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
        await self._shutdown(graceful=False)

    async def _shutdown(self, graceful: bool) -> None:
        if self._closing is None:
            self._closing = asyncio.create_task(self._teardown(graceful))
        await asyncio.shield(self._closing)

    async def _teardown(self, graceful: bool) -> None:
        proc = self._proc
        if proc is not None and proc.returncode is None:
            if graceful:
                if proc.stdin and not proc.stdin.is_closing():
                    proc.stdin.close()
                try:
                    await asyncio.wait_for(proc.wait(), timeout=self.stop_grace)
                except asyncio.TimeoutError:
                    logger.debug(f"[SESSION] pid {proc.pid} still running after {self.stop_grace}s, terminating")
                    with contextlib.suppress(ProcessLookupError):
                        proc.terminate()
                    await proc.wait()
            else:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()

        for task in self._readers + ([self._waiter] if self._waiter else []):
            if not task.done():
                task.cancel()
        await asyncio.gather(*self._readers, *([self._waiter] if self._waiter else []), return_exceptions=True)

        self._finish(proc.returncode if proc else None)
        logger.info(f"[SESSION] {'stopped' if graceful else 'killed'} (exit {proc.returncode if proc else None})")

    async def _read_stdout(self) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            data = await self._proc.stdout.read(READ_CHUNK_BYTES)
            if not data:
                break
            for event in self._decoder.feed(decoder.decode(data)):
                self._emit(event)
        for event in self._decoder.feed(decoder.decode(b"", final=True)) + self._decoder.finish():
            self._emit(event)

    async def _read_stderr(self) -> None:
        while True:
            line = await self._proc.stderr.readline()
            if not line:
                return
            text = line.decode(errors="replace").rstrip("\n")
            if text:
                self._emit(SessionEvent(EventType.STDERR, text=text))

    async def _wait_for_exit(self) -> None:
        await asyncio.gather(*self._readers)
        exit_code = await self._proc.wait()
        logger.info(f"[SESSION] droid exited {exit_code}")
        self._finish(exit_code)

    def _emit(self, event: SessionEvent) -> None:
        if self._sealed:
            return
        if event.type is EventType.SESSION_ID:
            self.session_id = event.session_id
        self.transcript.append(event)
        if self._observer is not None:
            self._observer.put_nowait(event)

    def _finish(self, exit_code: int | None) -> None:
        """Emit the single CLOSE event and stop delivering anything else."""
        if not self._close_emitted:
            self._close_emitted = True
            self._emit(SessionEvent(EventType.CLOSE, exit_code=exit_code))
        self._sealed = True
        if self._observer is not None:
            self._observer.put_nowait(_END)
            self._observer = None
