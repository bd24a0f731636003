"""
Sprint engine: readiness -> worktree -> droid -> transition.

The engine holds the in-memory sprint for one control loop. Shard runs are
awaited one at a time by `start_ready_shards`; callers that run shards
concurrently still get the per-shard guarantee that a shard never has two
runs at once (ShardBusy).
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable

from orca.agents.catalog import droid_for_kind
from orca.agents.droid import DroidInvocation, DroidResult, invoke_droid
from orca.git.orchestrator import WorktreeOrchestrator
from orca.git.review import FinalizeResult
from orca.git.stack import StackRebaseResult
from orca.lib.config import STACK_FROM_MAIN, DroidSettings, OrcaConfig
from orca.lib.constants import AUTO_COMMIT_PREFIX, tail
from orca.lib.errors import IssueTrackerError, ShardBusy
from orca.lib.github import GhIssueTracker
from orca.lib.interfaces import IssueTracker, ShardStore
from orca.lib.prompts import build_section, render_prompt
from orca.lib.shardfile import ShardDocument
from orca.lib.store import MarkdownChecklist, MarkdownShardStore, shard_from_document
from orca.lib.types import AgentStatus, Column, RunningAgent, Shard, Sprint, SprintStatus
from orca.workflow.dependencies import COMPLETED_FROM, build_graph, ready_shards
from orca.workflow.review_pipeline import ReviewReport, run_review_pipeline
from orca.workflow.state_machine import InvalidTransition, kickback, transition
from orca.workflow.status import collect_sources, derive, reset_on_edit, summarize
from orca.workflow.verify import BuildVerifier

logger = logging.getLogger(__name__)

STEP_PROVISION = "provision"
STEP_DROID = "droid"
STEP_COMMIT = "commit"

# Columns a shard can be (re)built from
BUILDABLE = (Column.READY_TO_BUILD, Column.IN_PROGRESS)

Invoker = Callable[[DroidInvocation, DroidSettings, Callable[[str], None]], Awaitable[DroidResult]]


@dataclass
class ShardRunResult:
    shard_id: str
    success: bool
    step: str = ""  # Failing step
    error: str = ""
    output: str = ""  # Bounded tail
    branch: str | None = None
    base_branch: str | None = None
    column: Column | None = None

    def describe(self) -> str:
        if self.success:
            return f"{self.shard_id}: built on {self.branch} (from {self.base_branch})"
        return f"{self.shard_id}: failed at {self.step}: {self.error}"


def build_shard_prompt(shard: Shard, doc: ShardDocument | None, sprint: Sprint, branch: str, base_branch: str) -> str:
    doc = doc or ShardDocument(title=shard.title)
    criteria = "\n".join(f"- [ ] {c.text}" for c in doc.acceptance_criteria) or "- (none listed)"
    deps = []
    if doc.depends_on:
        deps.append(f"- Builds on: {', '.join(doc.depends_on)}")
    if doc.creates:
        deps.append(f"- Creates: {', '.join(doc.creates)}")
    if doc.modifies:
        deps.append(f"- Modifies: {', '.join(doc.modifies)}")
    return render_prompt(
        "build_shard",
        shard_id=shard.id,
        title=doc.title or shard.title,
        sprint=sprint.name,
        branch=branch,
        base_branch=base_branch,
        reading_section=build_section("\n".join(f"- {p}" for p in doc.required_reading), "## Required Reading"),
        context_section=build_section(doc.context, "## Context"),
        task=doc.task or shard.title,
        criteria=criteria,
        dependencies_section=build_section("\n".join(deps), "## Dependencies"),
    )


class SprintEngine:
    """Drives one sprint's shards through build, review and finalize."""

    def __init__(
        self,
        config: OrcaConfig,
        sprint: Sprint,
        orchestrator: WorktreeOrchestrator,
        *,
        store: ShardStore | None = None,
        tracker: IssueTracker | None = None,
        checklist: MarkdownChecklist | None = None,
        invoker: Invoker = invoke_droid,
    ):
        self.config = config
        self.sprint = sprint
        self.orchestrator = orchestrator
        self.store = store
        self.tracker = tracker
        self.checklist = checklist
        self.invoker = invoker
        self.running: dict[str, RunningAgent] = {}
        self._active: set[str] = set()
        # Shard ids in the order they reached Ready for Review in this process
        self._completion_log: list[str] = []

    @classmethod
    def for_project(cls, config: OrcaConfig, sprint_name: str, tracker: IssueTracker | None = None) -> "SprintEngine":
        """Engine over the markdown store under the project's features directory.

        Uses the gh tracker when issue tracking is enabled and no tracker is given.
        """
        store = MarkdownShardStore(config.features_dir)
        if tracker is None and config.tracking.issues_enabled:
            tracker = GhIssueTracker(config.root)
        return cls(
            config,
            store.load_sprint(sprint_name, config),
            WorktreeOrchestrator(config.root, config.worktrees_dir, remote=config.branching.remote),
            store=store,
            tracker=tracker,
            checklist=MarkdownChecklist(config.features_dir),
        )

    # Readiness

    def branch_for(self, shard: Shard) -> str:
        return shard.branch_name or self.config.shard_branch(self.sprint.name, shard.id)

    def ready_shards(self) -> list[Shard]:
        return [s for s in ready_shards(self.sprint.shards) if s.id not in self._active]

    def select_base_branch(self, shard: Shard) -> str:
        """Branch of the most recently completed dependency, else the sprint branch."""
        if self.config.branching.stack_from == STACK_FROM_MAIN:
            return self.sprint.base_branch

        completed = [d for d in shard.depends_on if self.sprint.get(d).status >= COMPLETED_FROM]
        if not completed:
            return self.sprint.base_branch

        def recency(dep_id: str) -> tuple:
            # Completed in this process beats loaded-as-completed; later beats earlier
            if dep_id in self._completion_log:
                return (1, len(self._completion_log) - self._completion_log[::-1].index(dep_id))
            return (0, dep_id)

        latest = max(completed, key=recency)
        return self.branch_for(self.sprint.get(latest))

    @contextmanager
    def run_token(self, shard_id: str):
        """Hold the shard's single run slot for the duration of the block."""
        if shard_id in self._active:
            raise ShardBusy(shard_id)
        self._active.add(shard_id)
        try:
            yield
        finally:
            self._active.discard(shard_id)

    # Build

    async def run_shard(self, shard_id: str, on_chunk: Callable[[str], None] | None = None) -> ShardRunResult:
        """Provision a shard's worktree and run its droid there.

        Raises:
            ShardBusy: If the shard already has a run in flight
            InvalidTransition: If the shard is past the build phase
        """
        shard = self.sprint.get(shard_id)
        with self.run_token(shard_id):
            if shard.status not in BUILDABLE:
                raise InvalidTransition(shard.status, Column.IN_PROGRESS, shard.id)

            branch = self.branch_for(shard)
            base = self.select_base_branch(shard)
            path = self.orchestrator.worktree_path(shard.id)
            result = ShardRunResult(shard_id=shard.id, success=False, branch=branch, base_branch=base)

            provisioned = await self.orchestrator.ensure_worktree(path, branch, base)
            if not provisioned.ok:
                result.step, result.error, result.output = STEP_PROVISION, provisioned.error, provisioned.output
                result.column = shard.status
                logger.error(f"[ENGINE] {result.describe()}")
                return result

            shard.branch_name = branch
            shard.worktree_path = path
            self._move(shard, Column.IN_PROGRESS, "build started")

            droid = droid_for_kind(shard.kind)
            agent = RunningAgent(shard_id=shard.id, agent_name=droid)
            self.running[shard.id] = agent

            def sink(chunk: str) -> None:
                agent.append(chunk)
                if on_chunk:
                    on_chunk(chunk)

            invocation = DroidInvocation(
                droid=droid,
                prompt=build_shard_prompt(shard, self._read_document(shard), self.sprint, branch, base),
                cwd=path,
                model=shard.model_override,
            )
            droid_result = await self.invoker(invocation, self.config.droids, sink)

            if not droid_result.success:
                agent.status = AgentStatus.FAILED
                self._move(shard, Column.READY_TO_BUILD, "droid failed")
                result.step, result.error = STEP_DROID, str(droid_result.failure())
                result.output, result.column = tail(droid_result.output), shard.status
                logger.error(f"[ENGINE] {result.describe()}")
                return result

            committed = await self.orchestrator.commit_leftovers(path, f"{AUTO_COMMIT_PREFIX} {shard.id} {shard.title}")
            if not committed.ok:
                agent.status = AgentStatus.FAILED
                self._move(shard, Column.READY_TO_BUILD, "commit failed")
                result.step, result.error, result.output = STEP_COMMIT, committed.error, committed.output
                result.column = shard.status
                logger.error(f"[ENGINE] {result.describe()}")
                return result

            work = await self.orchestrator.shard_work(branch, base)
            if not work.has_work:
                logger.warning(f"[ENGINE] {shard.id}: droid finished but {branch} has no commits beyond {base}")

            agent.status = AgentStatus.COMPLETE
            self._move(shard, Column.READY_FOR_REVIEW, "droid finished")
            self._completion_log.append(shard.id)
            result.success, result.column = True, shard.status
            logger.info(f"[ENGINE] {result.describe()}")
            return result

    async def start_ready_shards(self, on_chunk: Callable[[str], None] | None = None) -> list[ShardRunResult]:
        """Run every currently ready shard, one after another, in id order.

        Each shard picks its base branch when it starts, so a shard can stack
        on a dependency that finished earlier in the same batch.
        """
        batch = [s.id for s in self.ready_shards()]
        logger.info(f"[ENGINE] {self.sprint.name}: starting {len(batch)} ready shard(s)")
        results = []
        for shard_id in batch:
            results.append(await self.run_shard(shard_id, on_chunk))
        return results

    # Review

    async def run_review(self, verifier: BuildVerifier | None = None) -> ReviewReport:
        verifier = verifier or BuildVerifier(self.config.verify.commands)
        report = await run_review_pipeline(self.sprint, self.orchestrator, verifier, self.branch_for)
        for outcome in report.outcomes:
            self._publish(self.sprint.get(outcome.shard_id))
        return report

    async def finalize_review(self) -> FinalizeResult:
        """Promote the review lineage and clean up merged shards' worktrees.

        Only In Review shards whose commits the review HEAD carries count as
        merged; the rest keep their worktrees for the next review run.
        """
        review_path = self.orchestrator.review_path(self.sprint.base_branch)
        merged = []
        for shard in self.sprint.shards:
            if shard.status is not Column.IN_REVIEW:
                continue
            if await self.orchestrator.in_review_lineage(self.branch_for(shard), review_path):
                merged.append(shard)
            else:
                logger.warning(f"[ENGINE] {shard.id}: In Review but not in the review lineage; run review again")
        paths = [s.worktree_path or self.orchestrator.worktree_path(s.id) for s in merged]
        result = await self.orchestrator.finalize_review(self.sprint.base_branch, merged_worktrees=paths)
        if result.ok:
            for shard in merged:
                shard.worktree_path = None
        return result

    async def rebase_stack(self) -> StackRebaseResult:
        return await self.orchestrator.rebase_stack(self.sprint.base_branch)

    # Manual moves

    def move(self, shard_id: str, column: Column, reason: str = "manual", force: bool = False) -> Column:
        """Move a shard by hand, e.g. through UAT and acceptance.

        Raises:
            ShardBusy: If the shard has a run in flight
            InvalidTransition: If the move isn't allowed and force is False
        """
        shard = self.sprint.get(shard_id)
        if shard_id in self._active:
            raise ShardBusy(shard_id)
        transition(shard, column, reason=reason, force=force)
        self._publish(shard)
        return shard.status

    def kickback(self, shard_id: str, reason: str = "") -> Column:
        """Send a shard back one phase after a failure found outside the pipeline."""
        shard = self.sprint.get(shard_id)
        if shard_id in self._active:
            raise ShardBusy(shard_id)
        target = kickback(shard, reason)
        self._publish(shard)
        return target

    # Status

    def status(self) -> SprintStatus:
        return summarize(self.sprint, self.running.values())

    def refresh(self) -> SprintStatus:
        """Reload shards from the store and re-derive every column from the sources."""
        previous = {s.id: s for s in self.sprint.shards}
        if isinstance(self.store, MarkdownShardStore):
            self.sprint = self.store.load_sprint(self.sprint.name, self.config)

        sources = collect_sources(self.sprint, self.config, self.tracker, self.checklist)
        snapshot = derive(self.sprint, sources, self.running.values())
        for shard in snapshot.sprint.shards:
            if shard.id in previous and shard.worktree_path is None:
                shard.worktree_path = previous[shard.id].worktree_path
        self.sprint = snapshot.sprint
        return snapshot

    def edit_shard(self, shard_id: str, document: ShardDocument) -> bool:
        """Save edited shard content. Changed task content resets the shard.

        Returns True if the shard was reset.

        Raises:
            ShardBusy: If the shard has a run in flight
            UnknownDependency: If the edit names a shard the sprint doesn't have;
                nothing is saved
        """
        shard = self.sprint.get(shard_id)
        if shard_id in self._active:
            raise ShardBusy(shard_id)

        updated = shard_from_document(shard.id, shard.file_ref, document, shard.branch_name)
        build_graph([updated if s.id == shard.id else s for s in self.sprint.shards])

        before = self._read_document(shard) or ShardDocument(title=shard.title, status=shard.status)
        document.status = shard.status
        changed = reset_on_edit(shard, before, document)

        if self.store and shard.file_ref:
            self.store.write(shard.file_ref, document)

        shard.title = updated.title
        shard.depends_on = updated.depends_on
        shard.creates = updated.creates
        shard.modifies = updated.modifies
        shard.kind = updated.kind
        shard.model_override = updated.model_override

        if changed:
            self._publish(shard, write_store=False)
        return changed

    # Internals

    def _read_document(self, shard: Shard) -> ShardDocument | None:
        if self.store is None or not shard.file_ref:
            return None
        return self.store.read(shard.file_ref)

    def _move(self, shard: Shard, column: Column, reason: str) -> None:
        transition(shard, column, reason=reason)
        self._publish(shard)

    def _publish(self, shard: Shard, write_store: bool = True) -> None:
        """Push a shard's column to the tracker, checklist and shard file."""
        tracking = self.config.tracking
        if self.tracker and tracking.issues_enabled and shard.issue_ref is not None:
            try:
                self.tracker.set_labels(shard.issue_ref, shard.status)
                # A closed issue is what reads back as Done
                if shard.status is Column.DONE:
                    self.tracker.close_issue(shard.issue_ref)
            except IssueTrackerError as e:
                logger.warning(f"[ENGINE] {shard.id}: could not update issue #{shard.issue_ref}: {e}")

        if self.checklist and tracking.checklist_enabled:
            self.checklist.mark(self.sprint.name, shard.id, shard.title, done=shard.status >= COMPLETED_FROM)

        if write_store and self.store and shard.file_ref:
            doc = self.store.read(shard.file_ref)
            if doc.status is not shard.status:
                doc.status = shard.status
                self.store.write(shard.file_ref, doc)
