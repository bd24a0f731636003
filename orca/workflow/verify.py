"""Build verification run inside the review worktree after each merge."""

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path

from orca.lib.constants import tail
from orca.lib.errors import BuildVerificationFailure
from orca.lib.process import run_process

logger = logging.getLogger(__name__)


@dataclass
class VerifyResult:
    ok: bool
    step: str = ""  # The command that failed
    output: str = ""  # Bounded tail of its output

    def failure(self, shard_id: str) -> BuildVerificationFailure | None:
        if self.ok:
            return None
        return BuildVerificationFailure(shard_id, self.step, self.output)


class BuildVerifier:
    """Runs the configured commands in order and stops at the first failure."""

    def __init__(self, commands: list[str]):
        self.commands = list(commands)

    async def verify(self, cwd: Path) -> VerifyResult:
        for command in self.commands:
            logger.info(f"[VERIFY] $ {command} (in {cwd})")
            result = await run_process(shlex.split(command), cwd=cwd)
            if not result.success:
                logger.warning(f"[VERIFY] '{command}' failed with exit {result.returncode}")
                return VerifyResult(ok=False, step=command, output=tail(result.output))
        return VerifyResult(ok=True)
