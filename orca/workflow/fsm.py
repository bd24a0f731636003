"""Shard column state machine using the transitions library.

Forward triggers move a shard one column right. Kickback triggers move it
left after a failure and never skip phases: review failures go back to
In Progress, UAT failures and rejected acceptance go back to Ready to Build.
`reset` handles content edits from any column.

Usage:
    from orca.workflow.fsm import ShardFSM

    fsm = ShardFSM(shard)
    fsm.start_build()  # Ready to Build -> In Progress
    fsm.submit()       # In Progress -> Ready for Review
"""

import logging
from typing import Callable

from transitions import Machine

from orca.lib.types import Column, Shard

logger = logging.getLogger(__name__)


# State values match Column enum values
STATES = [c.value for c in Column]

_ALL_BUT_FIRST = [c.value for c in Column if c is not Column.READY_TO_BUILD]

TRANSITIONS = [
    # Build
    {"trigger": "start_build", "source": "ready_to_build", "dest": "in_progress"},
    {"trigger": "submit", "source": "in_progress", "dest": "ready_for_review"},
    {"trigger": "abandon_build", "source": "in_progress", "dest": "ready_to_build"},

    # Review
    {"trigger": "start_review", "source": "ready_for_review", "dest": "in_review"},
    {"trigger": "pass_review", "source": "in_review", "dest": "ready_for_uat"},
    {"trigger": "kickback_review", "source": "ready_for_review", "dest": "in_progress"},
    {"trigger": "kickback_review", "source": "in_review", "dest": "in_progress"},

    # UAT
    {"trigger": "start_uat", "source": "ready_for_uat", "dest": "uat_in_progress"},
    {"trigger": "pass_uat", "source": "uat_in_progress", "dest": "user_acceptance"},
    {"trigger": "fail_uat", "source": "uat_in_progress", "dest": "ready_to_build"},
    {"trigger": "fail_uat", "source": "ready_for_uat", "dest": "ready_to_build"},

    # Acceptance
    {"trigger": "accept", "source": "user_acceptance", "dest": "done"},
    {"trigger": "reject", "source": "user_acceptance", "dest": "ready_to_build"},

    # Requirements changed
    {"trigger": "reset", "source": _ALL_BUT_FIRST, "dest": "ready_to_build"},
]


# Pre-computed lookup: (source, dest) -> trigger name
def _build_trigger_lookup() -> dict[tuple[str, str], str]:
    """Build lookup from (source, dest) -> trigger name."""
    lookup: dict[tuple[str, str], str] = {}
    for t in TRANSITIONS:
        sources = t["source"] if isinstance(t["source"], list) else [t["source"]]
        for source in sources:
            key = (source, t["dest"])
            if key not in lookup:  # First trigger wins for a given source->dest
                lookup[key] = t["trigger"]
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


def allowed_targets(column: Column) -> list[Column]:
    """Columns a shard in `column` can move to, left to right."""
    return sorted(Column(dest) for source, dest in TRIGGER_FOR if source == column.value)


class ShardFSM:
    """State machine for one shard's column.

    Starts from the shard's current status and writes every transition back
    to the shard object.
    """

    def __init__(self, shard: Shard, on_transition: Callable[[str, str, str], None] | None = None):
        """
        Args:
            shard: Shard whose status is driven
            on_transition: Optional callback(from_state, to_state, trigger) after transitions
        """
        self.shard = shard
        self.on_transition = on_transition

        self.machine = Machine(
            model=self,
            states=STATES,
            transitions=TRANSITIONS,
            initial=shard.status.value,
            auto_transitions=False,  # Only explicit transitions
            send_event=True,  # Pass EventData to callbacks
            after_state_change="on_state_change",
        )

    def on_state_change(self, event) -> None:
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name

        self.shard.status = Column(to_state)
        logger.info(f"[FSM] {self.shard.id}: {from_state} -> {to_state} ({trigger})")

        if self.on_transition:
            self.on_transition(from_state, to_state, trigger)

