"""Replay a branch's commits onto the current HEAD of a worktree."""

import logging
from pathlib import Path

from orca.git.branch import commits_between, merge_base, rev_parse
from orca.git.runner import GitRunner, OpResult
from orca.git.status import get_conflicted_files

logger = logging.getLogger(__name__)


async def applied_commits(git: GitRunner, branch: str, base: str, cwd: Path) -> set[str]:
    """Commits in base..branch whose patch is already on HEAD."""
    result = await git.run(["cherry", "HEAD", branch, base], cwd)
    if not result.success:
        logger.debug(f"[GIT] cherry HEAD {branch} failed: {result.stderr.strip()}")
        return set()
    applied = set()
    for line in result.stdout.splitlines():
        sign, _, sha = line.strip().partition(" ")
        if sign == "-" and sha:
            applied.add(sha)
    return applied


async def cherry_pick_branch(git: GitRunner, branch: str, cwd: Path) -> OpResult:
    """
    Cherry-pick the commits unique to `branch` onto HEAD in `cwd`.

    Commits are taken from merge-base(HEAD, branch)..branch, oldest first.
    Commits whose patch HEAD already carries are skipped, so picking the same
    branch twice is a no-op the second time. On failure the pick is aborted
    and HEAD is left where it was before the failing commit.
    """
    head = await rev_parse(git, "HEAD", cwd)
    if head is None:
        return OpResult.failed("rev-parse", f"Could not read HEAD in {cwd}")
    tip = await rev_parse(git, branch, cwd)
    if tip is None:
        return OpResult.failed("rev-parse", f"Unknown branch: {branch}")
    if head == tip:
        logger.debug(f"[GIT] {branch} is already HEAD, nothing to pick")
        return OpResult.success()

    base = await merge_base(git, "HEAD", branch, cwd)
    if base is None:
        return OpResult.failed("merge-base", f"No common ancestor between HEAD and {branch}")

    listing = await commits_between(git, base, branch, cwd)
    if not listing.success:
        return OpResult.from_git("rev-list", listing)

    shas = listing.stdout.split()
    if not shas:
        return OpResult.success()

    skip = await applied_commits(git, branch, base, cwd)
    picked = 0
    for sha in shas:
        if sha in skip:
            continue
        result = await git.run(["cherry-pick", sha], cwd)
        if not result.success:
            conflicted = await get_conflicted_files(git, cwd)
            await git.run(["cherry-pick", "--abort"], cwd)
            outcome = OpResult.from_git("cherry-pick", result)
            outcome.error = f"{sha[:8]}: {outcome.error}"
            if conflicted:
                outcome.conflict = True
                outcome.error += f" (conflicted: {', '.join(conflicted)})"
            return outcome
        picked += 1

    logger.info(f"[GIT] Cherry-picked {picked} commit(s) from {branch}")
    return OpResult.success()


async def branch_applied(git: GitRunner, branch: str, cwd: Path) -> bool:
    """Whether every commit unique to `branch` has its patch on HEAD in `cwd`."""
    base = await merge_base(git, "HEAD", branch, cwd)
    if base is None:
        return False
    listing = await commits_between(git, base, branch, cwd)
    if not listing.success:
        return False
    shas = listing.stdout.split()
    if not shas:
        return True
    return set(shas) <= await applied_commits(git, branch, base, cwd)
