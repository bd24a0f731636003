"""Collaborator interfaces consumed by the orchestration core.

The engine and status derivation only talk to these protocols. The markdown
store and the gh-backed tracker are the shipped implementations; tests use
in-memory fakes.
"""

from dataclasses import dataclass, field
from typing import Protocol

from orca.lib.shardfile import ShardDocument
from orca.lib.types import Column

ISSUE_OPEN = "open"
ISSUE_CLOSED = "closed"


@dataclass(frozen=True)
class IssueSnapshot:
    """What the state machine needs from an issue."""
    number: int
    state: str = ISSUE_OPEN
    labels: tuple[str, ...] = field(default_factory=tuple)
    title: str = ""
    url: str = ""

    @property
    def closed(self) -> bool:
        return self.state.lower() == ISSUE_CLOSED


class ShardStore(Protocol):
    def read(self, ref: str) -> ShardDocument: ...

    def write(self, ref: str, document: ShardDocument) -> None: ...


class IssueTracker(Protocol):
    def get_issue(self, ref: int) -> IssueSnapshot: ...

    def set_labels(self, ref: int, column: Column) -> None: ...

    def create_issue(self, title: str, body: str, labels: list[str]) -> int: ...

    def close_issue(self, ref: int) -> None: ...


class ChecklistSource(Protocol):
    def checked(self, sprint: str) -> set[str]: ...
