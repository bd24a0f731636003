"""
Review merge pipeline.

Folds every Ready for Review shard, lowest id first, into a fresh review
worktree and verifies the build after each one:

- cherry-pick fails: pick aborted, shard kicked back, pipeline stops
  (later shards may be stacked on this one)
- build fails: review HEAD reset to before the pick, shard kicked back,
  pipeline continues
- both pass: shard moves to In Review

The review worktree is rebuilt from the sprint branch on every run, so
shards still In Review from an earlier run that was never finalized are
folded in again alongside the new ones.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from orca.git.orchestrator import WorktreeOrchestrator
from orca.git.runner import OpResult
from orca.lib.types import Column, Shard, Sprint
from orca.workflow.state_machine import transition
from orca.workflow.verify import BuildVerifier

logger = logging.getLogger(__name__)

STEP_CHERRY_PICK = "cherry-pick"

# In Review shards are carried over from an unfinalized run
LINEAGE_COLUMNS = (Column.READY_FOR_REVIEW, Column.IN_REVIEW)


@dataclass
class ShardReviewOutcome:
    """What happened to one shard in the pipeline."""
    shard_id: str
    branch: str
    merged: bool = False
    verified: bool = False
    step: str = ""  # Failing step: "cherry-pick" or the verify command
    error: str = ""
    conflict: bool = False
    output: str = ""  # Bounded tail of the failing command's output
    column: Column | None = None  # Column after the pipeline's transition

    @property
    def passed(self) -> bool:
        return self.merged and self.verified

    def describe(self) -> str:
        if self.passed:
            return f"{self.shard_id}: passed"
        kind = "conflict" if self.conflict else "failed"
        return f"{self.shard_id}: {kind} at {self.step}: {self.error}"


@dataclass
class ReviewReport:
    sprint_branch: str
    review_path: Path
    outcomes: list[ShardReviewOutcome] = field(default_factory=list)
    stopped_at: str | None = None  # Shard whose merge failure stopped the run
    not_attempted: list[str] = field(default_factory=list)
    setup: OpResult | None = None  # Set when the review worktree couldn't be created

    @property
    def ok(self) -> bool:
        return self.setup is None and self.stopped_at is None and all(o.passed for o in self.outcomes)

    @property
    def passed(self) -> list[str]:
        return [o.shard_id for o in self.outcomes if o.passed]

    @property
    def failed(self) -> list[str]:
        return [o.shard_id for o in self.outcomes if not o.passed]


def review_candidates(sprint: Sprint) -> list[Shard]:
    return sorted(
        (s for s in sprint.shards if s.status in LINEAGE_COLUMNS),
        key=lambda s: s.id,
    )


async def run_review_pipeline(
    sprint: Sprint,
    orchestrator: WorktreeOrchestrator,
    verifier: BuildVerifier,
    branch_for: Callable[[Shard], str],
) -> ReviewReport:
    """Merge and verify review candidates into the sprint's review lineage.

    Shard columns are updated in place as each shard finishes.
    """
    candidates = review_candidates(sprint)
    review_path = orchestrator.review_path(sprint.base_branch)
    report = ReviewReport(sprint_branch=sprint.base_branch, review_path=review_path)

    if not candidates:
        logger.info(f"[REVIEW] {sprint.name}: nothing ready for review")
        return report

    setup = await orchestrator.create_review_worktree(sprint.base_branch)
    if not setup.ok:
        logger.error(f"[REVIEW] {sprint.name}: could not create review worktree: {setup.error}")
        report.setup = setup
        report.not_attempted = [s.id for s in candidates]
        return report

    for index, shard in enumerate(candidates):
        branch = branch_for(shard)
        outcome = ShardReviewOutcome(shard_id=shard.id, branch=branch)
        report.outcomes.append(outcome)

        before = await orchestrator.review_head(review_path)
        picked = await orchestrator.cherry_pick(branch, review_path)
        if not picked.ok:
            outcome.step = STEP_CHERRY_PICK
            outcome.error = picked.error
            outcome.conflict = picked.conflict
            outcome.output = picked.output
            _kick_back(shard, outcome, f"{STEP_CHERRY_PICK} failed")
            report.stopped_at = shard.id
            report.not_attempted = [s.id for s in candidates[index + 1:]]
            logger.warning(f"[REVIEW] {outcome.describe()}; stopping pipeline")
            break

        outcome.merged = True
        verified = await verifier.verify(review_path)
        if not verified.ok:
            outcome.step = verified.step
            outcome.error = f"verification step '{verified.step}' failed"
            outcome.output = verified.output
            _kick_back(shard, outcome, "build verification failed")

            # Later shards are verified without this one's commits
            rewound = await orchestrator.reset_review(review_path, before)
            if not rewound.ok:
                report.stopped_at = shard.id
                report.not_attempted = [s.id for s in candidates[index + 1:]]
                logger.error(f"[REVIEW] {shard.id}: could not drop its commits from review ({rewound.error}); stopping pipeline")
                break
            logger.warning(f"[REVIEW] {outcome.describe()}; continuing")
            continue

        outcome.verified = True
        if shard.status is not Column.IN_REVIEW:
            transition(shard, Column.IN_REVIEW, reason="merged and verified")
        outcome.column = shard.status
        logger.info(f"[REVIEW] {outcome.describe()}")

    return report


def _kick_back(shard: Shard, outcome: ShardReviewOutcome, reason: str) -> None:
    transition(shard, Column.IN_PROGRESS, reason=reason)
    outcome.column = shard.status
