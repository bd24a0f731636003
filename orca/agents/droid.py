"""One-shot droid invocation.

Runs `droid exec` with the prompt on stdin and streams stdout and stderr to
a callback as chunks arrive. Non-success comes back as a DroidResult; the
caller decides what a failed run means for the shard.
"""

import asyncio
import codecs
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from orca.agents.catalog import DROIDS_DIR, build_full_prompt, load_droid_prompt
from orca.lib.config import DroidSettings
from orca.lib.errors import AgentProcessFailure
from orca.lib.process import EXIT_SPAWN_FAILED

logger = logging.getLogger(__name__)

READ_CHUNK_BYTES = 4096


@dataclass
class DroidInvocation:
    droid: str
    prompt: str
    cwd: Path | None = None
    model: str | None = None  # Falls back to settings.model
    auto_level: str | None = None  # Falls back to settings.auto_level


@dataclass
class DroidResult:
    success: bool
    output: str
    exit_code: int

    def failure(self) -> AgentProcessFailure | None:
        if self.success:
            return None
        return AgentProcessFailure(
            f"droid exited with code {self.exit_code}", exit_code=self.exit_code, output=self.output,
        )


OnChunk = Callable[[str], None]


def build_exec_args(invocation: DroidInvocation, settings: DroidSettings) -> list[str]:
    args = [
        "exec",
        "--auto", invocation.auto_level or settings.auto_level,
        "--model", invocation.model or settings.model,
        "--output-format", "text",
    ]
    if invocation.cwd:
        args += ["--cwd", str(invocation.cwd)]
    return args


async def _pump(stream: asyncio.StreamReader, sink: list[str], on_chunk: OnChunk | None) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        data = await stream.read(READ_CHUNK_BYTES)
        text = decoder.decode(data, final=not data)
        if text:
            sink.append(text)
            if on_chunk:
                on_chunk(text)
        if not data:
            return


async def invoke_droid(
    invocation: DroidInvocation,
    settings: DroidSettings,
    on_chunk: OnChunk | None = None,
    *,
    command: Sequence[str] | None = None,
    droids_dir: Path = DROIDS_DIR,
) -> DroidResult:
    """
    Run a droid once and wait for it to exit.

    Args:
        invocation: Which droid, what prompt, where
        settings: Default model and autonomy level
        on_chunk: Called with each decoded chunk of stdout or stderr
        command: Executable prefix (defaults to settings.command)
        droids_dir: Where droid definitions live

    Returns:
        DroidResult with success = (exit code == 0) and the full output
    """
    full_prompt = build_full_prompt(invocation.droid, load_droid_prompt(invocation.droid, droids_dir), invocation.prompt)
    argv = list(command or shlex.split(settings.command)) + build_exec_args(invocation, settings)

    logger.info(
        f"[DROID] {invocation.droid}: model={invocation.model or settings.model} "
        f"cwd={invocation.cwd or '.'} prompt={len(full_prompt)} chars"
    )

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error(f"[DROID] Could not start {argv[0]}: {e}")
        return DroidResult(success=False, output=f"Could not start droid: {e}", exit_code=EXIT_SPAWN_FAILED)

    async def send_prompt() -> None:
        try:
            proc.stdin.write(full_prompt.encode())
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # Exited before reading its prompt; the exit code tells the story
            logger.debug(f"[DROID] {invocation.droid} closed stdin early")
        finally:
            proc.stdin.close()

    chunks: list[str] = []
    await asyncio.gather(
        send_prompt(),
        _pump(proc.stdout, chunks, on_chunk),
        _pump(proc.stderr, chunks, on_chunk),
    )
    exit_code = await proc.wait()

    logger.info(f"[DROID] {invocation.droid} exited {exit_code}")
    return DroidResult(success=exit_code == 0, output="".join(chunks), exit_code=exit_code)
