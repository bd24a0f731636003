"""
Shared data types for orca.

This module contains the enums and dataclasses used across the resolver,
the git orchestrator, the state machine and the engine, so none of them
need to import each other for type definitions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import total_ordering
from pathlib import Path

from orca.lib.errors import ShardNotFound


@total_ordering
class Column(Enum):
    """Workflow column for a shard, ordered left to right.

    Values match FSM state strings. Display labels (used for tracker
    labels and shard files) come from `label`.
    """

    READY_TO_BUILD = "ready_to_build"
    IN_PROGRESS = "in_progress"
    READY_FOR_REVIEW = "ready_for_review"
    IN_REVIEW = "in_review"
    READY_FOR_UAT = "ready_for_uat"
    UAT_IN_PROGRESS = "uat_in_progress"
    USER_ACCEPTANCE = "user_acceptance"
    DONE = "done"

    @property
    def label(self) -> str:
        return COLUMN_LABELS[self]

    @property
    def rank(self) -> int:
        return list(Column).index(self)

    def __lt__(self, other):
        if not isinstance(other, Column):
            return NotImplemented
        return self.rank < other.rank

    @classmethod
    def from_label(cls, label: str) -> "Column | None":
        """Parse a display label (case-insensitive). Returns None if unknown."""
        wanted = label.strip().lower()
        for column, text in COLUMN_LABELS.items():
            if text.lower() == wanted:
                return column
        return None


COLUMN_LABELS = {
    Column.READY_TO_BUILD: "Ready to Build",
    Column.IN_PROGRESS: "In Progress",
    Column.READY_FOR_REVIEW: "Ready for Review",
    Column.IN_REVIEW: "In Review",
    Column.READY_FOR_UAT: "Ready for UAT",
    Column.UAT_IN_PROGRESS: "UAT in Progress",
    Column.USER_ACCEPTANCE: "User Acceptance",
    Column.DONE: "Done",
}


class ShardKind(Enum):
    BACKEND = "backend"
    FRONTEND = "frontend"
    FULLSTACK = "fullstack"
    DOCS = "docs"


class Phase(Enum):
    """Sprint-level summary of where the work is."""
    BUILD = "build"
    REVIEW = "review"
    UAT = "uat"
    USER_ACCEPTANCE = "user-acceptance"
    DEPLOY = "deploy"


class AgentStatus(Enum):
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class Shard:
    """A unit of work with explicit dependencies and an acceptance contract."""
    id: str
    title: str
    file_ref: str = ""  # Locator into the shard store (path for the markdown store)
    status: Column = Column.READY_TO_BUILD
    kind: ShardKind = ShardKind.FULLSTACK
    depends_on: set[str] = field(default_factory=set)
    creates: set[str] = field(default_factory=set)  # Advisory, for impact analysis
    modifies: set[str] = field(default_factory=set)  # Advisory
    issue_ref: int | None = None
    worktree_path: Path | None = None
    branch_name: str | None = None
    model_override: str | None = None


@dataclass
class Sprint:
    """A batch of shards sharing a base branch."""
    name: str
    base_branch: str
    shards: list[Shard] = field(default_factory=list)
    path: Path | None = None
    phase: Phase = Phase.BUILD

    def get(self, shard_id: str) -> Shard:
        for shard in self.shards:
            if shard.id == shard_id:
                return shard
        raise ShardNotFound(shard_id)

    @property
    def ids(self) -> list[str]:
        return [s.id for s in self.shards]


@dataclass
class RunningAgent:
    """In-memory record of a droid working on a shard. Never persisted."""
    shard_id: str
    agent_name: str
    status: AgentStatus = AgentStatus.RUNNING
    started_at: datetime = field(default_factory=datetime.now)
    output: list[str] = field(default_factory=list)

    def append(self, chunk: str) -> None:
        self.output.append(chunk)

    @property
    def text(self) -> str:
        return "".join(self.output)


@dataclass
class SprintStatus:
    """Derived snapshot of a sprint. Rebuilt on demand, never patched."""
    sprint: Sprint
    counts: dict[Column, int]
    running_agents: list[RunningAgent] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def phase(self) -> Phase:
        return self.sprint.phase
