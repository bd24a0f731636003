"""
orca rebase-stack - Rebase every shard branch onto the updated sprint branch.
"""

import asyncio

from orca.lib.config import OrcaConfig
from orca.lib.constants import EXIT_CONFLICT, EXIT_ERROR, EXIT_NOT_FOUND, EXIT_SUCCESS
from orca.lib.store import MarkdownShardStore
from orca.workflow.engine import SprintEngine


def cmd_rebase_stack(args, config: OrcaConfig) -> int:
    if args.sprint not in MarkdownShardStore(config.features_dir).list_sprints():
        print(f"ERROR: Sprint '{args.sprint}' not found under {config.features_dir}")
        return EXIT_NOT_FOUND

    engine = SprintEngine.for_project(config, args.sprint)
    result = asyncio.run(engine.rebase_stack())

    for branch in result.rebased:
        print(f"  rebased  {branch}")
    if result.ok:
        if not result.rebased:
            print("No stacked branches to rebase.")
        return EXIT_SUCCESS

    print(f"ERROR: {result.failed_branch} failed at {result.step}: {result.error}")
    return EXIT_CONFLICT if result.conflict else EXIT_ERROR
