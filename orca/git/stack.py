"""Rebase a stack of branches onto an updated base."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from orca.git.branch import checkout, commit_count, current_branch, list_branches
from orca.git.remote import fetch
from orca.git.runner import GitRunner
from orca.git.worktree import list_worktrees, same_path

logger = logging.getLogger(__name__)


@dataclass
class StackRebaseResult:
    ok: bool
    rebased: list[str] = field(default_factory=list)
    failed_branch: str | None = None
    step: str = ""
    error: str = ""
    conflict: bool = False
    output: str = ""


async def stacked_branches(git: GitRunner, base: str) -> list[str]:
    """Local branches with commits beyond base, in discovery order."""
    ahead = []
    for branch in await list_branches(git):
        if branch == base:
            continue
        if await commit_count(git, base, branch) > 0:
            ahead.append(branch)
    return ahead


async def rebase_stack(git: GitRunner, base: str, remote: str = "origin") -> StackRebaseResult:
    """
    Rebase every branch ahead of base onto <remote>/<base>.

    Stops at the first branch that fails: its rebase is aborted, the
    original branch is checked out again and the failed branch is reported.
    A branch that is checked out in a worktree is rebased in place there.
    """
    branches = await stacked_branches(git, base)
    original = await current_branch(git)

    fetched = await fetch(git, remote)
    if not fetched.success:
        return StackRebaseResult(
            ok=False, step="fetch", error=fetched.message, output=fetched.tail()
        )

    onto = f"{remote}/{base}"
    worktree_for = {
        wt.branch: wt.path for wt in await list_worktrees(git)
        if wt.branch and not same_path(wt.path, git.repo)
    }
    rebased: list[str] = []

    for branch in branches:
        cwd: Path | None = worktree_for.get(branch)
        if cwd is None:
            switched = await checkout(git, branch)
            if not switched.success:
                await _restore(git, original)
                return StackRebaseResult(
                    ok=False, rebased=rebased, failed_branch=branch, step="checkout",
                    error=switched.message, output=switched.tail(),
                )

        result = await git.run(["rebase", onto], cwd)
        if not result.success:
            await git.run(["rebase", "--abort"], cwd)
            await _restore(git, original)
            logger.warning(f"[GIT] Rebase of {branch} onto {onto} failed, stack left as is")
            return StackRebaseResult(
                ok=False, rebased=rebased, failed_branch=branch, step="rebase",
                error=result.message,
                conflict=result.is_conflict, output=result.tail(),
            )
        rebased.append(branch)
        logger.info(f"[GIT] Rebased {branch} onto {onto}")

    await _restore(git, original)
    return StackRebaseResult(ok=True, rebased=rebased)


async def _restore(git: GitRunner, branch: str | None) -> None:
    if branch and await current_branch(git) != branch:
        await checkout(git, branch)
