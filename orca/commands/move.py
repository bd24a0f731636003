"""
orca move / orca kickback - Manual column changes (UAT, acceptance, fixes).
"""

from orca.lib.config import OrcaConfig
from orca.lib.constants import EXIT_ERROR, EXIT_NOT_FOUND, EXIT_SUCCESS
from orca.lib.store import MarkdownShardStore
from orca.workflow.engine import SprintEngine
from orca.workflow.fsm import allowed_targets
from orca.workflow.state_machine import InvalidTransition, parse_column


def _engine(args, config: OrcaConfig) -> SprintEngine | None:
    if args.sprint not in MarkdownShardStore(config.features_dir).list_sprints():
        print(f"ERROR: Sprint '{args.sprint}' not found under {config.features_dir}")
        return None
    engine = SprintEngine.for_project(config, args.sprint)
    engine.refresh()
    if args.shard not in engine.sprint.ids:
        print(f"ERROR: Shard '{args.shard}' not found in sprint '{args.sprint}'")
        return None
    return engine


def cmd_move(args, config: OrcaConfig) -> int:
    column = parse_column(args.column)
    if column is None:
        print(f"ERROR: Unknown column '{args.column}'")
        return EXIT_ERROR

    engine = _engine(args, config)
    if engine is None:
        return EXIT_NOT_FOUND

    before = engine.sprint.get(args.shard).status
    try:
        engine.move(args.shard, column, reason=args.reason or "manual", force=args.force)
    except InvalidTransition as e:
        print(f"ERROR: {e}")
        allowed = ", ".join(c.label for c in allowed_targets(before)) or "none"
        print(f"Allowed from {before.label}: {allowed}. Use --force to override.")
        return EXIT_ERROR

    print(f"{args.shard}: {before.label} -> {column.label}")
    return EXIT_SUCCESS


def cmd_kickback(args, config: OrcaConfig) -> int:
    engine = _engine(args, config)
    if engine is None:
        return EXIT_NOT_FOUND

    before = engine.sprint.get(args.shard).status
    try:
        after = engine.kickback(args.shard, reason=args.reason or "")
    except InvalidTransition as e:
        print(f"ERROR: {e}")
        return EXIT_ERROR

    print(f"{args.shard}: {before.label} -> {after.label}")
    return EXIT_SUCCESS
