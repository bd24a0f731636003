"""Async subprocess execution shared by the git runner and build verification."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from orca.lib.constants import tail

logger = logging.getLogger(__name__)

# Exit code reported when the executable couldn't be started
EXIT_SPAWN_FAILED = 127


@dataclass
class ProcessResult:
    """Result of a finished subprocess."""
    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr combined, for diagnostics."""
        return "\n".join(part for part in (self.stdout.rstrip(), self.stderr.rstrip()) if part)

    def tail(self) -> str:
        return tail(self.output)


async def run_process(
    argv: list[str],
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
) -> ProcessResult:
    """
    Run a command to completion and capture its output.

    A missing executable or working directory is reported as a failed
    result with EXIT_SPAWN_FAILED rather than raised.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd) if cwd else None,
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.debug(f"Could not start {argv[0]}: {e}")
        return ProcessResult(returncode=EXIT_SPAWN_FAILED, stdout="", stderr=str(e))

    stdout, stderr = await proc.communicate()
    return ProcessResult(
        returncode=proc.returncode,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )
