"""
orca review / orca finalize - Review pipeline and promotion.
"""

import asyncio

from orca.lib.config import OrcaConfig
from orca.lib.constants import (
    EXIT_CONFLICT,
    EXIT_ERROR,
    EXIT_NOT_FOUND,
    EXIT_SUCCESS,
    EXIT_VERIFY_FAILED,
)
from orca.lib.store import MarkdownShardStore
from orca.workflow.flows import SprintFlowInput, finalize_flow, review_flow


def _params(args, config: OrcaConfig) -> SprintFlowInput | None:
    if args.sprint not in MarkdownShardStore(config.features_dir).list_sprints():
        print(f"ERROR: Sprint '{args.sprint}' not found under {config.features_dir}")
        return None
    return SprintFlowInput(project_root=str(config.root), sprint=args.sprint, config_file=args.config)


def cmd_review(args, config: OrcaConfig) -> int:
    """Merge Ready for Review shards into the review worktree and verify each."""
    params = _params(args, config)
    if params is None:
        return EXIT_NOT_FOUND

    result = asyncio.run(review_flow(params))
    if not result["passed"] and not result["failed"] and not result["not_attempted"]:
        print("Nothing ready for review.")
        return EXIT_SUCCESS

    for shard_id in result["passed"]:
        print(f"  passed         {shard_id}")
    for shard_id in result["failed"]:
        print(f"  kicked back    {shard_id}")
    for shard_id in result["not_attempted"]:
        print(f"  not attempted  {shard_id}")

    if result["stopped_at"]:
        print(f"\nStopped at {result['stopped_at']}: cherry-pick failed")
        return EXIT_CONFLICT
    if result["failed"]:
        return EXIT_VERIFY_FAILED
    if not result["ok"]:
        print("\nReview worktree could not be created")
        return EXIT_ERROR
    return EXIT_SUCCESS


def cmd_finalize(args, config: OrcaConfig) -> int:
    """Promote the review lineage to the sprint branch and clean up."""
    params = _params(args, config)
    if params is None:
        return EXIT_NOT_FOUND

    result = asyncio.run(finalize_flow(params))
    if not result["ok"]:
        print(f"ERROR: Finalize failed at {result['step']}: {result['error']}")
        if result["ref_updated_without_push"]:
            print("The local sprint branch was updated but not pushed. Run finalize again to retry the push.")
        return EXIT_ERROR

    print(f"Sprint branch updated to {result['head']}")
    return EXIT_SUCCESS
