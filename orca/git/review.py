"""Review lineage: an ephemeral `<sprint>-review` branch and worktree.

Completed shards are cherry-picked into the review worktree one at a time
and verified there. Finalizing promotes the review HEAD to the sprint branch.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from orca.git.branch import branch_exists, delete_branch, rev_parse, update_ref
from orca.git.remote import has_remote, push
from orca.git.runner import GitRunner, OpResult
from orca.git.worktree import list_worktrees, remove_worktree
from orca.lib.constants import REVIEW_BRANCH_SUFFIX

logger = logging.getLogger(__name__)


def review_branch_name(sprint_branch: str) -> str:
    return f"{sprint_branch}{REVIEW_BRANCH_SUFFIX}"


async def create_review_worktree(git: GitRunner, sprint_branch: str, review_path: Path) -> OpResult:
    """Create a fresh review branch and worktree from the sprint branch.

    Any previous review worktree or branch is deleted first.
    """
    review_branch = review_branch_name(sprint_branch)

    await remove_worktree(git, review_path)
    for wt in await list_worktrees(git):
        if wt.branch == review_branch:
            await remove_worktree(git, wt.path)

    if await branch_exists(git, review_branch):
        deleted = await delete_branch(git, review_branch, force=True)
        if not deleted.success:
            return OpResult.from_git("delete-review-branch", deleted)

    review_path.parent.mkdir(parents=True, exist_ok=True)
    result = await git.run(["worktree", "add", "-b", review_branch, str(review_path), sprint_branch])
    if not result.success:
        return OpResult.from_git("worktree-add", result)

    logger.info(f"[GIT] Review worktree ready: {review_path} ({review_branch} from {sprint_branch})")
    return OpResult.success()


@dataclass
class FinalizeResult:
    """Outcome of promoting the review lineage to the sprint branch.

    The sprint ref is updated locally before it is pushed. If that push
    fails, `ref_updated_without_push` is True: the local sprint branch is
    ahead of the remote until finalize is run again.
    """
    ok: bool
    step: str = ""
    error: str = ""
    output: str = ""
    head: str | None = None
    review_pushed: bool = False
    ref_updated: bool = False
    sprint_pushed: bool = False

    @property
    def ref_updated_without_push(self) -> bool:
        return self.ref_updated and not self.sprint_pushed


async def promote_review(
    git: GitRunner, sprint_branch: str, review_path: Path, remote: str = "origin"
) -> FinalizeResult:
    """Push the review branch, move the sprint ref to the review HEAD, push the sprint branch.

    Repeating this after a failed sprint push re-applies the same ref update
    and retries the push.
    """
    review_branch = review_branch_name(sprint_branch)

    if not await has_remote(git, remote):
        return FinalizeResult(ok=False, step="remote", error=f"Remote '{remote}' is not configured")

    pushed = await push(git, remote, review_branch, force_with_lease=True, set_upstream=True, cwd=review_path)
    if not pushed.success:
        logger.warning(f"[GIT] Could not push {review_branch} (continuing): {pushed.message}")

    head = await rev_parse(git, "HEAD", review_path)
    if head is None:
        return FinalizeResult(
            ok=False, step="read-review-head", error=f"Could not read HEAD in {review_path}",
            review_pushed=pushed.success,
        )

    updated = await update_ref(git, sprint_branch, head)
    if not updated.success:
        return FinalizeResult(
            ok=False, step="update-ref", error=updated.message, output=updated.tail(),
            head=head, review_pushed=pushed.success,
        )

    sprint_pushed = await push(git, remote, sprint_branch, force_with_lease=True)
    if not sprint_pushed.success:
        logger.error(
            f"[GIT] {sprint_branch} updated locally to {head[:8]} but push failed; "
            f"run finalize again to retry"
        )
        return FinalizeResult(
            ok=False, step="push-sprint", error=sprint_pushed.message, output=sprint_pushed.tail(),
            head=head, review_pushed=pushed.success, ref_updated=True,
        )

    return FinalizeResult(
        ok=True, head=head, review_pushed=pushed.success, ref_updated=True, sprint_pushed=True,
    )
