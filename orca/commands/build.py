"""
orca build - Build ready shards (or one shard) with droids.
"""

import asyncio

from orca.lib.config import OrcaConfig
from orca.lib.constants import EXIT_AGENT_FAILED, EXIT_NOT_FOUND, EXIT_SUCCESS
from orca.lib.store import MarkdownShardStore
from orca.workflow.flows import SprintFlowInput, build_ready_flow


def cmd_build(args, config: OrcaConfig) -> int:
    store = MarkdownShardStore(config.features_dir)
    if args.sprint not in store.list_sprints():
        print(f"ERROR: Sprint '{args.sprint}' not found under {config.features_dir}")
        return EXIT_NOT_FOUND
    if args.shard and args.shard not in store.load_sprint(args.sprint, config).ids:
        print(f"ERROR: Shard '{args.shard}' not found in sprint '{args.sprint}'")
        return EXIT_NOT_FOUND

    params = SprintFlowInput(
        project_root=str(config.root),
        sprint=args.sprint,
        config_file=args.config,
        shard=args.shard,
    )
    result = asyncio.run(build_ready_flow(params))

    if not result["built"] and not result["failed"]:
        print("No shards ready to build.")
        return EXIT_SUCCESS

    for shard_id in result["built"]:
        print(f"  built   {shard_id}")
    for shard_id in result["failed"]:
        print(f"  FAILED  {shard_id}")
    return EXIT_AGENT_FAILED if result["failed"] else EXIT_SUCCESS
