"""Review pipeline and finalize against real git repositories."""

import pytest

from orca.git.orchestrator import WorktreeOrchestrator
from orca.lib.config import TRACKING_LOCAL, OrcaConfig, TrackingConfig
from orca.lib.types import Column, Shard, Sprint
from orca.workflow.engine import SprintEngine
from orca.workflow.review_pipeline import run_review_pipeline
from orca.workflow.verify import BuildVerifier
from tests.conftest import commit_file, git

SPRINT = "feature/s1-base"

# Fails once any shard has added a file named "broken"
NO_BROKEN_FILE = ["test ! -e broken"]


@pytest.fixture
def orch(repo):
    return WorktreeOrchestrator(repo, repo / ".worktrees")


@pytest.fixture
def engine(repo, orch):
    config = OrcaConfig(root=repo, tracking=TrackingConfig(mode=TRACKING_LOCAL))
    return SprintEngine(config, Sprint(name="s1", base_branch=SPRINT), orch)


async def add_built_shard(engine, shard_id, files, status=Column.READY_FOR_REVIEW):
    """Shard with a branch carrying one commit per file."""
    branch = f"feature/s1-{shard_id}"
    path = engine.orchestrator.worktree_path(shard_id)
    assert (await engine.orchestrator.ensure_worktree(path, branch, SPRINT)).ok
    for name, content in files:
        commit_file(path, name, content)
    shard = Shard(id=shard_id, title=shard_id, status=status, branch_name=branch, worktree_path=path)
    engine.sprint.shards.append(shard)
    return shard


def sprint_files(repo):
    return git(repo, "ls-tree", "--name-only", SPRINT).splitlines()


class TestBuildFailureRewind:

    @pytest.mark.asyncio
    async def test_failed_build_is_dropped_from_lineage(self, repo, engine):
        await add_built_shard(engine, "shard-00", [("ok.txt", "ok\n")])
        await add_built_shard(engine, "shard-01", [("broken", "x\n")])
        await add_built_shard(engine, "shard-02", [("c.txt", "c\n")])

        report = await engine.run_review(BuildVerifier(NO_BROKEN_FILE))

        assert report.passed == ["shard-00", "shard-02"]
        assert report.failed == ["shard-01"]
        assert report.stopped_at is None
        review = engine.orchestrator.review_path(SPRINT)
        assert not (review / "broken").exists()
        assert (review / "c.txt").exists()
        assert engine.sprint.get("shard-01").status is Column.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_finalize_after_failed_build(self, repo, engine):
        await add_built_shard(engine, "shard-00", [("ok.txt", "ok\n")])
        await add_built_shard(engine, "shard-01", [("broken", "x\n")])

        await engine.run_review(BuildVerifier(NO_BROKEN_FILE))
        result = await engine.finalize_review()

        assert result.ok
        assert sprint_files(repo) == [".gitignore", "app.txt", "ok.txt"]
        # The kicked-back shard keeps its worktree for the rebuild
        assert engine.sprint.get("shard-01").worktree_path.is_dir()
        assert engine.sprint.get("shard-00").worktree_path is None

    @pytest.mark.asyncio
    async def test_rewind_to_pre_pick_head(self, repo, orch, engine):
        await add_built_shard(engine, "shard-01", [("broken", "x\n"), ("more.txt", "y\n")])

        report = await run_review_pipeline(engine.sprint, orch, BuildVerifier(NO_BROKEN_FILE), engine.branch_for)

        assert report.failed == ["shard-01"]
        assert report.outcomes[0].merged
        review = orch.review_path(SPRINT)
        assert git(review, "rev-parse", "HEAD") == git(repo, "rev-parse", SPRINT)
        assert git(review, "status", "--porcelain") == ""


class TestUnfinalizedRuns:

    @pytest.mark.asyncio
    async def test_second_review_carries_in_review_shards(self, repo, engine):
        verifier = BuildVerifier(NO_BROKEN_FILE)
        await add_built_shard(engine, "shard-00", [("a.txt", "a\n")])
        first = await engine.run_review(verifier)
        assert first.passed == ["shard-00"]

        await add_built_shard(engine, "shard-01", [("b.txt", "b\n")])
        second = await engine.run_review(verifier)
        assert second.passed == ["shard-00", "shard-01"]

        result = await engine.finalize_review()

        assert result.ok
        assert sprint_files(repo) == [".gitignore", "a.txt", "app.txt", "b.txt"]
        assert all(s.status is Column.IN_REVIEW for s in engine.sprint.shards)

    @pytest.mark.asyncio
    async def test_stopped_run_leaves_later_shard_unmerged(self, repo, engine):
        verifier = BuildVerifier(NO_BROKEN_FILE)
        await add_built_shard(engine, "shard-00", [("app.txt", "line one\nfrom shard zero\n")])
        await add_built_shard(engine, "shard-02", [("c.txt", "c\n")])
        assert (await engine.run_review(verifier)).passed == ["shard-00", "shard-02"]

        await add_built_shard(engine, "shard-01", [("app.txt", "line one\nfrom shard one\n")])
        second = await engine.run_review(verifier)
        assert second.stopped_at == "shard-01"
        assert second.not_attempted == ["shard-02"]

        result = await engine.finalize_review()

        assert result.ok
        assert "c.txt" not in sprint_files(repo)
        shard_02 = engine.sprint.get("shard-02")
        assert shard_02.status is Column.IN_REVIEW
        assert shard_02.worktree_path.is_dir()
        assert engine.sprint.get("shard-00").worktree_path is None
