"""Git command runner with serialized access and failure classification."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from orca.lib.constants import tail
from orca.lib.errors import GitCommandFailure, GitConflict
from orca.lib.process import ProcessResult, run_process

# Substrings (lowercase) that mark a merge, rebase or cherry-pick collision
CONFLICT_MARKERS = (
    "conflict",
    "automatic merge failed",
    "could not apply",
)


class FailureKind(Enum):
    CONFLICT = "conflict"
    HARD = "hard"


def looks_like_conflict(output: str) -> bool:
    lowered = output.lower()
    if any(marker in lowered for marker in CONFLICT_MARKERS):
        return True
    # Unmerged paths in porcelain status output
    return any(line.startswith("UU ") for line in output.splitlines())


@dataclass
class GitResult(ProcessResult):
    """Result of a git command."""
    args: tuple[str, ...] = ()

    @property
    def message(self) -> str:
        """Last line of stderr (or stdout), the part git uses for the reason."""
        text = self.stderr.strip() or self.stdout.strip()
        return text.splitlines()[-1] if text else f"git exited {self.returncode}"

    @property
    def failure(self) -> FailureKind | None:
        """None on success, otherwise whether this was a conflict or a hard failure."""
        if self.success:
            return None
        if looks_like_conflict(self.stdout + "\n" + self.stderr):
            return FailureKind.CONFLICT
        return FailureKind.HARD

    @property
    def is_conflict(self) -> bool:
        return self.failure is FailureKind.CONFLICT

    def raise_for_status(self, step: str, shard_id: str | None = None) -> "GitResult":
        """Raise GitConflict or GitCommandFailure if the command failed."""
        kind = self.failure
        if kind is None:
            return self
        error_cls = GitConflict if kind is FailureKind.CONFLICT else GitCommandFailure
        raise error_cls(step, self.message, output=self.output, shard_id=shard_id)


@dataclass
class OpResult:
    """Outcome of a multi-command git operation.

    Expected failures (conflicts, refused commands) come back here instead of
    being raised, so a caller looping over shards can keep going.
    """
    ok: bool
    step: str = ""
    error: str = ""
    conflict: bool = False
    output: str = ""

    @classmethod
    def success(cls) -> "OpResult":
        return cls(ok=True)

    @classmethod
    def from_git(cls, step: str, result: GitResult) -> "OpResult":
        return cls(
            ok=False,
            step=step,
            error=result.message,
            conflict=result.is_conflict,
            output=result.tail(),
        )

    @classmethod
    def failed(cls, step: str, error: str, output: str = "") -> "OpResult":
        return cls(ok=False, step=step, error=error, output=tail(output))


class GitRunner:
    """Runs git commands for one repository.

    Every command goes through a single asyncio lock. Worktree registration
    lives in the shared .git directory, so commands against different
    worktrees still have to take turns.
    """

    def __init__(self, repo: Path, logger: logging.Logger | None = None, executable: str = "git"):
        self.repo = repo
        self.logger = logger or logging.getLogger(__name__)
        self.executable = executable
        self._lock = asyncio.Lock()

    async def run(self, args: list[str], cwd: Path | None = None) -> GitResult:
        """
        Run a git command.

        Args:
            args: Git command arguments (e.g., ["status", "--porcelain"])
            cwd: Worktree to run in (defaults to the main repository)

        Returns:
            GitResult with returncode, stdout and stderr
        """
        workdir = cwd or self.repo
        argv = [self.executable, "-C", str(workdir)] + list(args)

        async with self._lock:
            self.logger.debug(f"[GIT] $ git {' '.join(args)} (in {workdir})")
            proc = await run_process(argv)

        result = GitResult(
            returncode=proc.returncode,
            stdout=proc.stdout,
            stderr=proc.stderr,
            args=tuple(args),
        )
        if not result.success:
            self.logger.debug(f"[GIT] exit {result.returncode}: {result.stderr.strip()[:500]}")
        return result
