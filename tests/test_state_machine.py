"""Tests for orca.workflow.state_machine module."""

import pytest

from orca.lib.types import Column, Shard
from orca.workflow.state_machine import (
    InvalidTransition,
    kickback,
    kickback_target,
    parse_column,
    transition,
)


def make_shard(status=Column.READY_TO_BUILD):
    return Shard(id="shard-01", title="API", status=status)


class TestTransition:
    """Tests for destination-based transitions."""

    def test_valid_transition(self):
        shard = make_shard()
        transition(shard, Column.IN_PROGRESS, reason="build started")
        assert shard.status is Column.IN_PROGRESS

    def test_self_transition_is_noop(self):
        shard = make_shard(Column.IN_REVIEW)
        transition(shard, Column.IN_REVIEW)
        assert shard.status is Column.IN_REVIEW

    def test_invalid_transition_leaves_column_unchanged(self):
        shard = make_shard()
        with pytest.raises(InvalidTransition) as exc:
            transition(shard, Column.DONE)
        assert shard.status is Column.READY_TO_BUILD
        assert exc.value.from_column is Column.READY_TO_BUILD
        assert exc.value.to_column is Column.DONE
        assert "shard-01" in str(exc.value)

    def test_cannot_skip_forward(self):
        shard = make_shard(Column.IN_PROGRESS)
        with pytest.raises(InvalidTransition):
            transition(shard, Column.IN_REVIEW)

    def test_force_bypasses_validation(self):
        shard = make_shard()
        transition(shard, Column.DONE, force=True)
        assert shard.status is Column.DONE

    def test_reset_from_any_column(self):
        for column in Column:
            shard = make_shard(column)
            transition(shard, Column.READY_TO_BUILD, reason="content edited")
            assert shard.status is Column.READY_TO_BUILD

    def test_on_transition_callback(self):
        seen = []
        shard = make_shard(Column.READY_FOR_REVIEW)
        transition(shard, Column.IN_REVIEW, on_transition=lambda *a: seen.append(a))
        assert seen == [("ready_for_review", "in_review", "start_review")]


class TestKickback:
    """Tests for failure transitions."""

    @pytest.mark.parametrize("column,expected", [
        (Column.READY_FOR_REVIEW, Column.IN_PROGRESS),
        (Column.IN_REVIEW, Column.IN_PROGRESS),
        (Column.READY_FOR_UAT, Column.READY_TO_BUILD),
        (Column.UAT_IN_PROGRESS, Column.READY_TO_BUILD),
        (Column.USER_ACCEPTANCE, Column.READY_TO_BUILD),
        (Column.IN_PROGRESS, Column.READY_TO_BUILD),
    ])
    def test_kickback_target(self, column, expected):
        assert kickback_target(column) is expected

    def test_kickback_applies_transition(self):
        shard = make_shard(Column.IN_REVIEW)
        assert kickback(shard, "build failed") is Column.IN_PROGRESS
        assert shard.status is Column.IN_PROGRESS

    def test_kickback_at_start_is_noop(self):
        shard = make_shard()
        assert kickback(shard) is Column.READY_TO_BUILD


class TestParseColumn:
    """Tests for column parsing."""

    def test_value_and_label(self):
        assert parse_column("in_review") is Column.IN_REVIEW
        assert parse_column("Ready for UAT") is Column.READY_FOR_UAT
        assert parse_column("ready to build") is Column.READY_TO_BUILD

    def test_unknown(self):
        assert parse_column("Shipped") is None
        assert parse_column(None) is None
