"""
orca status / orca sprints - Show sprint progress.
"""

from orca.lib.config import OrcaConfig
from orca.lib.constants import EXIT_NOT_FOUND, EXIT_SUCCESS
from orca.lib.store import MarkdownShardStore
from orca.lib.types import Column, SprintStatus
from orca.workflow.engine import SprintEngine


def print_status(status: SprintStatus) -> None:
    sprint = status.sprint
    print(f"Sprint: {sprint.name}")
    print("=" * 60)
    print(f"Branch:  {sprint.base_branch}")
    print(f"Phase:   {sprint.phase.value}")
    print(f"Shards:  {status.total}")
    print()
    for column in Column:
        print(f"  {column.label:<18} {status.counts[column]}")
    print()

    for shard in sprint.shards:
        print(f"  {shard.id:<28} {shard.status.label:<18} {shard.title}")

    if status.running_agents:
        print()
        print("Running:")
        for agent in status.running_agents:
            print(f"  {agent.shard_id} ({agent.agent_name}) {agent.status.value}")


def cmd_status(args, config: OrcaConfig) -> int:
    """Show column counts and phase for one sprint, or all of them."""
    store = MarkdownShardStore(config.features_dir)
    known = store.list_sprints()

    if args.sprint:
        if args.sprint not in known:
            print(f"ERROR: Sprint '{args.sprint}' not found under {config.features_dir}")
            return EXIT_NOT_FOUND
        names = [args.sprint]
    else:
        names = known

    if not names:
        print(f"No sprints found under {config.features_dir}")
        return EXIT_SUCCESS

    for i, name in enumerate(names):
        if i:
            print()
        engine = SprintEngine.for_project(config, name)
        print_status(engine.refresh())
    return EXIT_SUCCESS


def cmd_sprints(args, config: OrcaConfig) -> int:
    """List sprints with their shard counts."""
    store = MarkdownShardStore(config.features_dir)
    names = store.list_sprints()
    if not names:
        print(f"No sprints found under {config.features_dir}")
        return EXIT_SUCCESS

    for name in names:
        print(f"  {name:<24} {len(store.shard_refs(name))} shard(s)  {config.sprint_branch(name)}")
    return EXIT_SUCCESS
