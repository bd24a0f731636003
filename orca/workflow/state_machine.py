"""Column transitions with validation.

Thin destination-based wrapper around the trigger-based FSM in fsm.py:

    from orca.workflow.state_machine import transition
    from orca.lib.types import Column

    transition(shard, Column.IN_REVIEW, reason="build verified")
"""

import logging
from typing import Callable

from transitions import MachineError

from orca.lib.types import Column, Shard
from orca.workflow.fsm import TRIGGER_FOR, ShardFSM

logger = logging.getLogger(__name__)


class InvalidTransition(Exception):
    """Raised when attempting an invalid column transition."""

    def __init__(self, from_column: Column, to_column: Column, shard_id: str = ""):
        self.from_column = from_column
        self.to_column = to_column
        self.shard_id = shard_id
        super().__init__(
            f"Invalid transition: {from_column.value} -> {to_column.value}"
            + (f" (shard: {shard_id})" if shard_id else "")
        )


def parse_column(text: str | None) -> Column | None:
    """Parse a column value ("in_review") or label ("In Review").

    Returns None if unknown.
    """
    if text is None:
        return None
    for column in Column:
        if column.value == text:
            return column
    return Column.from_label(text)


def transition(
    shard: Shard,
    to_column: Column,
    reason: str = "",
    force: bool = False,
    on_transition: Callable[[str, str, str], None] | None = None,
) -> None:
    """Move a shard to a new column with validation.

    Args:
        shard: Shard to update in place
        to_column: Target column
        reason: Optional reason for the transition (for logging)
        force: If True, skip validation (external sources such as issue labels)
        on_transition: Optional callback passed through to the FSM

    Raises:
        InvalidTransition: If the transition is not allowed
    """
    current = shard.status
    reason_str = f" ({reason})" if reason else ""

    if force:
        logger.info(f"[STATE] {shard.id}: {current.value} -> {to_column.value}{reason_str} (forced)")
        shard.status = to_column
        return

    # Self-transition is a no-op
    if current is to_column:
        logger.debug(f"[STATE] {shard.id}: already in {to_column.value}, no-op")
        return

    trigger = TRIGGER_FOR.get((current.value, to_column.value))
    if trigger is None:
        raise InvalidTransition(current, to_column, shard.id)

    fsm = ShardFSM(shard, on_transition=on_transition)
    try:
        logger.info(f"[STATE] {shard.id}: {current.value} -> {to_column.value}{reason_str}")
        getattr(fsm, trigger)()
    except MachineError as e:
        raise InvalidTransition(current, to_column, shard.id) from e


def kickback_target(column: Column) -> Column:
    """Where a failure in `column` sends a shard. Never skips a phase."""
    if column in (Column.READY_FOR_REVIEW, Column.IN_REVIEW):
        return Column.IN_PROGRESS
    if column in (Column.READY_FOR_UAT, Column.UAT_IN_PROGRESS, Column.USER_ACCEPTANCE):
        return Column.READY_TO_BUILD
    if column is Column.IN_PROGRESS:
        return Column.READY_TO_BUILD
    return column


def kickback(shard: Shard, reason: str = "") -> Column:
    """Apply the failure transition for the shard's current column."""
    target = kickback_target(shard.status)
    transition(shard, target, reason=reason or "kickback")
    return target
