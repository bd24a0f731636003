"""Prefect flows for sprint execution.

Each flow loads the project config and sprint, builds a SprintEngine and
runs one engine operation as a task. Business logic stays in the engine;
the flows add run tracking and structured logs when a Prefect server is
available.
"""

import logging
from pathlib import Path

from prefect import flow, get_run_logger, task
from pydantic import BaseModel

from orca.lib.config import load_config
from orca.lib.constants import CONFIG_FILE
from orca.workflow.engine import SprintEngine

logger = logging.getLogger(__name__)


class SprintFlowInput(BaseModel):
    """Parameters shared by every sprint flow."""
    project_root: str
    sprint: str
    config_file: str = CONFIG_FILE
    shard: str | None = None  # Restrict a build to one shard


def engine_for(params: SprintFlowInput) -> SprintEngine:
    config = load_config(Path(params.project_root), params.config_file)
    engine = SprintEngine.for_project(config, params.sprint)
    engine.refresh()
    return engine


@task(
    retries=0,
    name="build_shard",
    description="Provision a shard worktree and run its droid"
)
async def task_build_shard(engine: SprintEngine, shard_id: str):
    """Build one shard.

    No retries: a failed droid run already sends the shard back to
    Ready to Build, and re-running is a user decision.
    """
    return await engine.run_shard(shard_id)


@task(
    retries=0,
    name="review_pipeline",
    description="Cherry-pick and verify Ready for Review shards"
)
async def task_review(engine: SprintEngine):
    return await engine.run_review()


@task(
    retries=0,
    name="finalize_review",
    description="Promote the review lineage to the sprint branch"
)
async def task_finalize(engine: SprintEngine):
    return await engine.finalize_review()


@flow(name="sprint-build", retries=0)
async def build_ready_flow(params: SprintFlowInput) -> dict:
    """Build one named shard, or every shard that is ready right now.

    Returns:
        Dict with built and failed shard ids
    """
    log = get_run_logger()
    engine = engine_for(params)
    shard_ids = [params.shard] if params.shard else [s.id for s in engine.ready_shards()]
    log.info(f"Building {len(shard_ids)} shard(s) in sprint {params.sprint}")

    built, failed = [], []
    for shard_id in shard_ids:
        result = await task_build_shard(engine, shard_id)
        (built if result.success else failed).append(shard_id)
        log.info(result.describe())
    return {"built": built, "failed": failed}


@flow(name="sprint-review", retries=0)
async def review_flow(params: SprintFlowInput) -> dict:
    log = get_run_logger()
    engine = engine_for(params)
    report = await task_review(engine)
    for outcome in report.outcomes:
        log.info(outcome.describe())
    if report.setup is not None:
        log.error(f"Review worktree setup failed: {report.setup.error}")
    return {
        "ok": report.ok,
        "passed": report.passed,
        "failed": report.failed,
        "stopped_at": report.stopped_at,
        "not_attempted": report.not_attempted,
    }


@flow(name="sprint-finalize", retries=0)
async def finalize_flow(params: SprintFlowInput) -> dict:
    log = get_run_logger()
    engine = engine_for(params)
    result = await task_finalize(engine)
    if result.ok:
        log.info(f"Sprint branch now at {result.head}")
    else:
        log.error(f"Finalize failed at {result.step}: {result.error}")
    return {
        "ok": result.ok,
        "step": result.step,
        "error": result.error,
        "head": result.head,
        "ref_updated_without_push": result.ref_updated_without_push,
    }
