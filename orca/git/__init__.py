"""Git operations for orca.

Small async functions grouped by concern, all running through a GitRunner,
plus the WorktreeOrchestrator that the engine drives.
"""

from orca.git.runner import FailureKind, GitResult, GitRunner, OpResult, looks_like_conflict
from orca.git.branch import (
    branch_exists,
    checkout,
    commit_count,
    commits_between,
    create_branch,
    current_branch,
    delete_branch,
    list_branches,
    merge_base,
    rev_parse,
    update_ref,
)
from orca.git.status import (
    commit_all,
    get_conflicted_files,
    get_status_porcelain,
    has_uncommitted_changes,
)
from orca.git.remote import fetch, has_remote, push
from orca.git.worktree import (
    WorktreeInfo,
    ensure_worktree,
    list_worktrees,
    parse_worktree_porcelain,
    prune_worktrees,
    remove_worktree,
)
from orca.git.cherry_pick import cherry_pick_branch
from orca.git.stack import StackRebaseResult, rebase_stack, stacked_branches
from orca.git.review import FinalizeResult, create_review_worktree, promote_review, review_branch_name
from orca.git.orchestrator import ShardWork, WorktreeOrchestrator

__all__ = [
    # runner
    "FailureKind",
    "GitResult",
    "GitRunner",
    "OpResult",
    "looks_like_conflict",
    # branch
    "branch_exists",
    "checkout",
    "commit_count",
    "commits_between",
    "create_branch",
    "current_branch",
    "delete_branch",
    "list_branches",
    "merge_base",
    "rev_parse",
    "update_ref",
    # status
    "commit_all",
    "get_conflicted_files",
    "get_status_porcelain",
    "has_uncommitted_changes",
    # remote
    "fetch",
    "has_remote",
    "push",
    # worktree
    "WorktreeInfo",
    "ensure_worktree",
    "list_worktrees",
    "parse_worktree_porcelain",
    "prune_worktrees",
    "remove_worktree",
    # cherry-pick
    "cherry_pick_branch",
    # stack
    "StackRebaseResult",
    "rebase_stack",
    "stacked_branches",
    # review
    "FinalizeResult",
    "create_review_worktree",
    "promote_review",
    "review_branch_name",
    # orchestrator
    "ShardWork",
    "WorktreeOrchestrator",
]
