"""
orca graph / orca ready - Dependency analysis for a sprint.
"""

from orca.lib.config import OrcaConfig
from orca.lib.constants import EXIT_ERROR, EXIT_NOT_FOUND, EXIT_SUCCESS
from orca.lib.store import MarkdownShardStore
from orca.workflow.dependencies import (
    build_graph,
    execution_order,
    find_cycles,
    parallel_groups,
    visualize,
)
from orca.workflow.engine import SprintEngine


def _require_sprint(config: OrcaConfig, name: str) -> bool:
    if name in MarkdownShardStore(config.features_dir).list_sprints():
        return True
    print(f"ERROR: Sprint '{name}' not found under {config.features_dir}")
    return False


def cmd_graph(args, config: OrcaConfig) -> int:
    """Print the dependency tree, execution order, parallel groups and cycles."""
    if not _require_sprint(config, args.sprint):
        return EXIT_NOT_FOUND

    engine = SprintEngine.for_project(config, args.sprint)
    graph = build_graph(engine.sprint.shards)

    print(f"Dependencies: {args.sprint}")
    print("=" * 60)
    print(visualize(graph, {s.id: s.status for s in engine.sprint.shards}))
    print()

    print("Execution order:")
    for i, shard_id in enumerate(execution_order(graph), 1):
        print(f"  {i:>2}. {shard_id}")
    print()

    print("Parallel groups:")
    for level, group in enumerate(parallel_groups(graph)):
        print(f"  {level}: {', '.join(group)}")

    cycles = find_cycles(graph)
    if cycles:
        print()
        print("Cycles (these shards can never become ready):")
        for cycle in cycles:
            print(f"  {cycle}")
        return EXIT_ERROR
    return EXIT_SUCCESS


def cmd_ready(args, config: OrcaConfig) -> int:
    """List shards whose dependencies are all complete."""
    if not _require_sprint(config, args.sprint):
        return EXIT_NOT_FOUND

    engine = SprintEngine.for_project(config, args.sprint)
    engine.refresh()
    ready = engine.ready_shards()
    if not ready:
        print("No shards ready to build.")
        return EXIT_SUCCESS

    for shard in ready:
        print(f"  {shard.id:<28} base: {engine.select_base_branch(shard)}")
    return EXIT_SUCCESS
