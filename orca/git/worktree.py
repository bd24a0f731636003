"""Worktree provisioning and cleanup."""

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from orca.git.branch import branch_exists
from orca.git.runner import GitResult, GitRunner, OpResult
from orca.lib.errors import WorktreeStateConflict

logger = logging.getLogger(__name__)


@dataclass
class WorktreeInfo:
    """One entry from `git worktree list --porcelain`."""
    path: Path
    head: str = ""
    branch: str | None = None  # Short name, None when detached
    bare: bool = False
    prunable: bool = False


def parse_worktree_porcelain(text: str) -> list[WorktreeInfo]:
    """Parse porcelain worktree listing into WorktreeInfo entries."""
    worktrees = []
    current: WorktreeInfo | None = None

    for line in text.splitlines():
        if not line.strip():
            if current:
                worktrees.append(current)
                current = None
            continue

        key, _, value = line.partition(" ")
        if key == "worktree":
            if current:
                worktrees.append(current)
            current = WorktreeInfo(path=Path(value))
        elif current is None:
            continue
        elif key == "HEAD":
            current.head = value
        elif key == "branch":
            current.branch = value.removeprefix("refs/heads/")
        elif key == "bare":
            current.bare = True
        elif key == "prunable":
            current.prunable = True

    if current:
        worktrees.append(current)
    return worktrees


def same_path(a: Path, b: Path) -> bool:
    return Path(a).resolve() == Path(b).resolve()


async def list_worktrees(git: GitRunner) -> list[WorktreeInfo]:
    """List registered worktrees, main repository first."""
    result = await git.run(["worktree", "list", "--porcelain"])
    if not result.success:
        return []
    return parse_worktree_porcelain(result.stdout)


async def prune_worktrees(git: GitRunner) -> GitResult:
    """Drop registrations for worktrees whose directories are gone."""
    return await git.run(["worktree", "prune"])


async def remove_worktree(git: GitRunner, path: Path) -> None:
    """Force-remove a worktree, its directory and any stale registration.

    Filesystem errors while deleting the directory propagate.
    """
    result = await git.run(["worktree", "remove", "--force", str(path)])
    if not result.success:
        logger.debug(f"[GIT] worktree remove {path}: {result.stderr.strip()}")
    if path.exists():
        await asyncio.to_thread(shutil.rmtree, path)
    await prune_worktrees(git)


async def ensure_worktree(
    git: GitRunner,
    path: Path,
    branch: str,
    base_branch: str | None = None,
) -> OpResult:
    """
    Give `branch` a fresh worktree at `path`.

    If the branch already exists the worktree is attached to it, keeping its
    commits. Otherwise the branch is created from base_branch (or HEAD).
    Whatever was at `path` before is removed first. Safe to call repeatedly.
    """
    if not path.is_absolute():
        path = git.repo / path

    for wt in await list_worktrees(git):
        if wt.branch != branch or same_path(wt.path, path):
            continue
        if same_path(wt.path, git.repo):
            conflict = WorktreeStateConflict(branch, str(wt.path), "branch is checked out in the main repository")
            return OpResult.failed("ensure-worktree", str(conflict))
        logger.info(f"[GIT] {branch} is checked out at {wt.path}, removing that worktree")
        await remove_worktree(git, wt.path)

    # Stale directory or registration at the target path. The branch survives.
    await remove_worktree(git, path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if await branch_exists(git, branch):
        result = await git.run(["worktree", "add", str(path), branch])
    else:
        args = ["worktree", "add", "-b", branch, str(path)]
        if base_branch:
            args.append(base_branch)
        result = await git.run(args)

    if not result.success:
        return OpResult.from_git("worktree-add", result)

    logger.info(f"[GIT] Worktree ready: {path} ({branch})")
    return OpResult.success()
