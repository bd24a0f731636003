"""Git side of the sprint workflow for one repository."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from orca.git.branch import branch_exists, commit_count, delete_branch, reset_hard, rev_parse
from orca.git.cherry_pick import branch_applied, cherry_pick_branch
from orca.git.review import FinalizeResult, create_review_worktree, promote_review, review_branch_name
from orca.git.runner import GitRunner, OpResult
from orca.git.stack import StackRebaseResult, rebase_stack
from orca.git.status import commit_all
from orca.git.worktree import WorktreeInfo, ensure_worktree, list_worktrees, remove_worktree


@dataclass
class ShardWork:
    """Whether a shard branch exists and how far it is ahead of its base."""
    branch_exists: bool
    commits: int = 0

    @property
    def has_work(self) -> bool:
        return self.branch_exists and self.commits > 0


class WorktreeOrchestrator:
    """Provisions shard worktrees, runs the review lineage and rebases stacks.

    All git calls go through one GitRunner, so they are serialized for the
    repository. The logger passed in receives every git command at DEBUG.
    """

    def __init__(
        self,
        repo: Path,
        worktrees_dir: Path,
        remote: str = "origin",
        logger: logging.Logger | None = None,
        git: GitRunner | None = None,
    ):
        self.repo = repo
        self.worktrees_dir = worktrees_dir if worktrees_dir.is_absolute() else repo / worktrees_dir
        self.remote = remote
        self.logger = logger or logging.getLogger(__name__)
        self.git = git or GitRunner(repo, logger=self.logger)

    def worktree_path(self, shard_id: str) -> Path:
        return self.worktrees_dir / shard_id

    def review_path(self, sprint_branch: str) -> Path:
        return self.worktrees_dir / review_branch_name(sprint_branch).replace("/", "-")

    async def ensure_worktree(self, path: Path, branch: str, base_branch: str | None = None) -> OpResult:
        return await ensure_worktree(self.git, path, branch, base_branch)

    async def list_worktrees(self) -> list[WorktreeInfo]:
        return await list_worktrees(self.git)

    async def shard_work(self, branch: str, base: str) -> ShardWork:
        """Report whether a shard branch exists and its commits beyond base."""
        if not await branch_exists(self.git, branch):
            return ShardWork(branch_exists=False)
        return ShardWork(branch_exists=True, commits=await commit_count(self.git, base, branch))

    async def commit_leftovers(self, cwd: Path, message: str) -> OpResult:
        """Commit anything a droid left uncommitted in its worktree."""
        result = await commit_all(self.git, message, cwd)
        if result is None or result.success:
            return OpResult.success()
        return OpResult.from_git("commit", result)

    async def create_review_worktree(self, sprint_branch: str) -> OpResult:
        return await create_review_worktree(self.git, sprint_branch, self.review_path(sprint_branch))

    async def cherry_pick(self, branch: str, cwd: Path) -> OpResult:
        return await cherry_pick_branch(self.git, branch, cwd)

    async def review_head(self, review_path: Path) -> str | None:
        return await rev_parse(self.git, "HEAD", review_path)

    async def reset_review(self, review_path: Path, sha: str | None) -> OpResult:
        """Move the review lineage back to sha, dropping anything picked since."""
        if sha is None:
            return OpResult.failed("reset", f"No review HEAD recorded for {review_path}")
        result = await reset_hard(self.git, sha, review_path)
        if not result.success:
            return OpResult.from_git("reset", result)
        self.logger.info(f"[GIT] Review lineage reset to {sha[:8]}")
        return OpResult.success()

    async def in_review_lineage(self, branch: str, review_path: Path) -> bool:
        """Whether the review HEAD carries all of branch's commits."""
        return await branch_applied(self.git, branch, review_path)

    async def finalize_review(
        self,
        sprint_branch: str,
        review_path: Path | None = None,
        merged_worktrees: Iterable[Path] = (),
    ) -> FinalizeResult:
        """Promote the review lineage, then clean up once the sprint push succeeded."""
        review_path = review_path or self.review_path(sprint_branch)
        result = await promote_review(self.git, sprint_branch, review_path, self.remote)
        if not result.ok:
            return result

        await self.cleanup_review(sprint_branch, review_path)
        await self.cleanup_shard_worktrees(merged_worktrees)
        self.logger.info(f"[GIT] Finalized {sprint_branch} at {result.head[:8]}")
        return result

    async def cleanup_review(self, sprint_branch: str, review_path: Path | None = None) -> None:
        await remove_worktree(self.git, review_path or self.review_path(sprint_branch))
        review_branch = review_branch_name(sprint_branch)
        if await branch_exists(self.git, review_branch):
            await delete_branch(self.git, review_branch, force=True)

    async def cleanup_shard_worktrees(self, paths: Iterable[Path]) -> None:
        for path in paths:
            await remove_worktree(self.git, path)

    async def rebase_stack(self, base: str) -> StackRebaseResult:
        return await rebase_stack(self.git, base, self.remote)
