"""
Status derivation for shards and sprints.

A shard's column is derived on every refresh from ordered sources:

1. Issue labels, when issue tracking is on and the shard links an issue.
   Closed means Done; otherwise the first label found in LABEL_PRECEDENCE.
2. The local checklist, when checklist tracking is on. A checked entry
   upgrades Ready to Build to Ready for Review and never downgrades.
3. Whatever the shard already carries (shard file status or a runtime
   transition), used when neither source applies.

`derive` is pure. `collect_sources` does the I/O that feeds it.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Mapping

from orca.lib.config import OrcaConfig
from orca.lib.errors import IssueTrackerError
from orca.lib.interfaces import ChecklistSource, IssueSnapshot, IssueTracker
from orca.lib.shardfile import ShardDocument, content_changed
from orca.lib.types import Column, Phase, RunningAgent, Shard, Sprint, SprintStatus
from orca.workflow.state_machine import transition

logger = logging.getLogger(__name__)

# Checked in order; the first label an issue carries decides its column
LABEL_PRECEDENCE = (
    Column.USER_ACCEPTANCE,
    Column.UAT_IN_PROGRESS,
    Column.READY_FOR_UAT,
    Column.IN_REVIEW,
    Column.READY_FOR_REVIEW,
    Column.IN_PROGRESS,
    Column.READY_TO_BUILD,
)

REVIEW_COLUMNS = (Column.READY_FOR_REVIEW, Column.IN_REVIEW)
UAT_COLUMNS = (Column.READY_FOR_UAT, Column.UAT_IN_PROGRESS)


def column_label(column: Column) -> str:
    """Tracker label for a column."""
    return column.label


@dataclass(frozen=True)
class StatusSources:
    """Inputs to a derivation pass, already fetched."""
    issues: Mapping[int, IssueSnapshot] = field(default_factory=dict)
    checklist: frozenset[str] = frozenset()
    use_issues: bool = False
    use_checklist: bool = False


def column_from_issue(issue: IssueSnapshot) -> Column:
    if issue.closed:
        return Column.DONE
    labels = {label.strip().lower() for label in issue.labels}
    for column in LABEL_PRECEDENCE:
        if column.label.lower() in labels:
            return column
    return Column.READY_TO_BUILD


def apply_checklist(column: Column, checked: bool) -> Column:
    if checked and column is Column.READY_TO_BUILD:
        return Column.READY_FOR_REVIEW
    return column


def derive_column(shard: Shard, sources: StatusSources) -> Column:
    column = shard.status
    if sources.use_issues and shard.issue_ref is not None and shard.issue_ref in sources.issues:
        column = column_from_issue(sources.issues[shard.issue_ref])
    if sources.use_checklist:
        column = apply_checklist(column, shard.id in sources.checklist)
    return column


def count_by_column(shards: Iterable[Shard]) -> dict[Column, int]:
    """Shards per column, recomputed by filtering. Every column is present."""
    shards = list(shards)
    return {column: sum(1 for s in shards if s.status is column) for column in Column}


def phase_from_counts(counts: Mapping[Column, int], total: int) -> Phase:
    if total > 0 and counts.get(Column.DONE, 0) == total:
        return Phase.DEPLOY
    if counts.get(Column.USER_ACCEPTANCE, 0) > 0:
        return Phase.USER_ACCEPTANCE
    if any(counts.get(c, 0) > 0 for c in UAT_COLUMNS):
        return Phase.UAT
    if any(counts.get(c, 0) > 0 for c in REVIEW_COLUMNS):
        return Phase.REVIEW
    return Phase.BUILD


def summarize(sprint: Sprint, running_agents: Iterable[RunningAgent] = ()) -> SprintStatus:
    """Snapshot of a sprint as it stands, without consulting any source."""
    counts = count_by_column(sprint.shards)
    snapshot = replace(sprint, phase=phase_from_counts(counts, len(sprint.shards)))
    return SprintStatus(sprint=snapshot, counts=counts, running_agents=list(running_agents))


def derive(
    sprint: Sprint,
    sources: StatusSources,
    running_agents: Iterable[RunningAgent] = (),
) -> SprintStatus:
    """Re-derive every shard's column from the sources.

    Returns a new snapshot. The input sprint and its shards are not modified.
    """
    shards = [replace(s, status=derive_column(s, sources)) for s in sprint.shards]
    return summarize(replace(sprint, shards=shards), running_agents)


def collect_sources(
    sprint: Sprint,
    config: OrcaConfig,
    tracker: IssueTracker | None = None,
    checklist: ChecklistSource | None = None,
) -> StatusSources:
    """Fetch issue snapshots and checklist state for a derivation pass.

    An issue that can't be fetched is left out, so that shard keeps its
    stored status for this pass.
    """
    use_issues = config.tracking.issues_enabled and tracker is not None
    use_checklist = config.tracking.checklist_enabled and checklist is not None

    issues: dict[int, IssueSnapshot] = {}
    if use_issues:
        for shard in sprint.shards:
            if shard.issue_ref is None:
                continue
            try:
                issues[shard.issue_ref] = tracker.get_issue(shard.issue_ref)
            except IssueTrackerError as e:
                logger.warning(f"[STATE] {shard.id}: could not fetch issue #{shard.issue_ref}: {e}")

    checked = frozenset(checklist.checked(sprint.name)) if use_checklist else frozenset()
    return StatusSources(
        issues=issues, checklist=checked, use_issues=use_issues, use_checklist=use_checklist,
    )


def reset_on_edit(shard: Shard, before: ShardDocument, after: ShardDocument) -> bool:
    """Send a shard back to Ready to Build when its task content changed.

    Returns True if the content changed.
    """
    if not content_changed(before, after):
        return False
    transition(shard, Column.READY_TO_BUILD, reason="content edited")
    after.status = shard.status
    return True
