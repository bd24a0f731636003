"""Integration tests for the worktree orchestrator against real git repositories."""

import pytest

from orca.git.branch import branch_exists, create_branch, current_branch, rev_parse
from orca.git.orchestrator import WorktreeOrchestrator
from orca.git.remote import has_remote
from orca.git.review import review_branch_name
from orca.git.status import get_conflicted_files
from tests.conftest import commit_file, git

SPRINT = "feature/s1-base"


@pytest.fixture
def orch(repo):
    return WorktreeOrchestrator(repo, repo / ".worktrees")


def count(cwd, revspec):
    return int(git(cwd, "rev-list", "--count", revspec))


class TestEnsureWorktree:
    """Tests for shard worktree provisioning."""

    @pytest.mark.asyncio
    async def test_new_branch_from_base(self, repo, orch):
        path = orch.worktree_path("shard-01")
        result = await orch.ensure_worktree(path, "feature/s1-shard-01", SPRINT)

        assert result.ok
        assert path.is_dir()
        assert git(path, "rev-parse", "--abbrev-ref", "HEAD") == "feature/s1-shard-01"
        assert git(path, "rev-parse", "HEAD") == git(repo, "rev-parse", SPRINT)

    @pytest.mark.asyncio
    async def test_reprovision_keeps_branch_commits(self, repo, orch):
        path = orch.worktree_path("shard-01")
        await orch.ensure_worktree(path, "feature/s1-shard-01", SPRINT)
        tip = commit_file(path, "api.txt", "api\n")
        (path / "scratch.txt").write_text("left behind")

        result = await orch.ensure_worktree(path, "feature/s1-shard-01", SPRINT)
        assert result.ok
        assert git(path, "rev-parse", "HEAD") == tip
        assert not (path / "scratch.txt").exists()

    @pytest.mark.asyncio
    async def test_branch_in_main_repo_is_refused(self, repo, orch):
        git(repo, "checkout", "-q", "-b", "feature/s1-shard-02")
        result = await orch.ensure_worktree(orch.worktree_path("shard-02"), "feature/s1-shard-02", SPRINT)
        assert not result.ok
        assert "checked out in the main repository" in result.error

    @pytest.mark.asyncio
    async def test_moves_branch_from_stray_worktree(self, repo, orch, tmp_path):
        stray = tmp_path / "elsewhere"
        git(repo, "worktree", "add", "-q", "-b", "feature/s1-shard-03", str(stray), SPRINT)

        path = orch.worktree_path("shard-03")
        result = await orch.ensure_worktree(path, "feature/s1-shard-03", SPRINT)
        assert result.ok
        assert not stray.exists()
        assert git(path, "rev-parse", "--abbrev-ref", "HEAD") == "feature/s1-shard-03"

    @pytest.mark.asyncio
    async def test_shard_work_and_leftovers(self, repo, orch):
        branch = "feature/s1-shard-01"
        assert not (await orch.shard_work(branch, SPRINT)).branch_exists

        path = orch.worktree_path("shard-01")
        await orch.ensure_worktree(path, branch, SPRINT)
        assert not (await orch.shard_work(branch, SPRINT)).has_work

        (path / "new.txt").write_text("droid output\n")
        assert (await orch.commit_leftovers(path, "orca: shard-01")).ok
        assert git(path, "status", "--porcelain") == ""

        work = await orch.shard_work(branch, SPRINT)
        assert work.has_work
        assert work.commits == 1

        # Nothing left to commit is fine
        assert (await orch.commit_leftovers(path, "orca: shard-01")).ok


class TestCherryPick:
    """Tests for folding shard branches into the review worktree."""

    async def shard_branch(self, orch, shard_id, files):
        path = orch.worktree_path(shard_id)
        await orch.ensure_worktree(path, f"feature/s1-{shard_id}", SPRINT)
        for name, content in files:
            commit_file(path, name, content)
        return f"feature/s1-{shard_id}"

    @pytest.mark.asyncio
    async def test_pick_is_idempotent(self, repo, orch):
        branch = await self.shard_branch(orch, "shard-01", [("a.txt", "a\n"), ("b.txt", "b\n")])
        assert (await orch.create_review_worktree(SPRINT)).ok
        review = orch.review_path(SPRINT)

        assert (await orch.cherry_pick(branch, review)).ok
        assert count(review, f"{SPRINT}..HEAD") == 2
        head = git(review, "rev-parse", "HEAD")

        assert (await orch.cherry_pick(branch, review)).ok
        assert git(review, "rev-parse", "HEAD") == head
        assert (review / "b.txt").read_text() == "b\n"

    @pytest.mark.asyncio
    async def test_pick_branch_at_head_is_noop(self, repo, orch):
        assert (await orch.create_review_worktree(SPRINT)).ok
        review = orch.review_path(SPRINT)
        head = git(review, "rev-parse", "HEAD")
        assert (await orch.cherry_pick(review_branch_name(SPRINT), review)).ok
        assert git(review, "rev-parse", "HEAD") == head

    @pytest.mark.asyncio
    async def test_conflict_aborts_and_keeps_head(self, repo, orch):
        first = await self.shard_branch(orch, "shard-01", [("app.txt", "line one\nfrom shard one\n")])
        second = await self.shard_branch(orch, "shard-02", [("app.txt", "line one\nfrom shard two\n")])
        assert (await orch.create_review_worktree(SPRINT)).ok
        review = orch.review_path(SPRINT)

        assert (await orch.cherry_pick(first, review)).ok
        head = git(review, "rev-parse", "HEAD")

        result = await orch.cherry_pick(second, review)
        assert not result.ok
        assert result.conflict
        assert result.step == "cherry-pick"
        assert git(review, "rev-parse", "HEAD") == head
        assert git(review, "status", "--porcelain") == ""
        assert "app.txt" in result.error

    @pytest.mark.asyncio
    async def test_unknown_branch(self, repo, orch):
        assert (await orch.create_review_worktree(SPRINT)).ok
        result = await orch.cherry_pick("feature/s1-nope", orch.review_path(SPRINT))
        assert not result.ok
        assert result.step == "rev-parse"

    @pytest.mark.asyncio
    async def test_review_worktree_starts_fresh(self, repo, orch):
        assert (await orch.create_review_worktree(SPRINT)).ok
        review = orch.review_path(SPRINT)
        commit_file(review, "stale.txt", "old review\n")

        assert (await orch.create_review_worktree(SPRINT)).ok
        assert git(review, "rev-parse", "HEAD") == git(repo, "rev-parse", SPRINT)
        assert not (review / "stale.txt").exists()


class TestFinalize:
    """Tests for promoting the review lineage."""

    @pytest.mark.asyncio
    async def test_finalize_promotes_and_cleans_up(self, repo, remote, orch):
        shard_path = orch.worktree_path("shard-01")
        await orch.ensure_worktree(shard_path, "feature/s1-shard-01", SPRINT)
        commit_file(shard_path, "a.txt", "a\n")
        await orch.create_review_worktree(SPRINT)
        review = orch.review_path(SPRINT)
        await orch.cherry_pick("feature/s1-shard-01", review)
        head = git(review, "rev-parse", "HEAD")

        result = await orch.finalize_review(SPRINT, merged_worktrees=[shard_path])

        assert result.ok
        assert result.head == head
        assert result.sprint_pushed
        assert git(repo, "rev-parse", SPRINT) == head
        assert git(remote, "rev-parse", SPRINT) == head
        assert not review.exists()
        assert not shard_path.exists()
        assert not await branch_exists(orch.git, review_branch_name(SPRINT))
        # The shard branch itself is kept
        assert await branch_exists(orch.git, "feature/s1-shard-01")

    @pytest.mark.asyncio
    async def test_failed_push_is_retryable(self, repo, remote, orch):
        await orch.create_review_worktree(SPRINT)
        review = orch.review_path(SPRINT)
        head = commit_file(review, "fix.txt", "fix\n")
        git(repo, "remote", "set-url", "origin", str(repo.parent / "missing.git"))

        failed = await orch.finalize_review(SPRINT)
        assert not failed.ok
        assert failed.step == "push-sprint"
        assert failed.ref_updated_without_push
        assert git(repo, "rev-parse", SPRINT) == head
        assert review.exists()

        git(repo, "remote", "set-url", "origin", str(remote))
        retried = await orch.finalize_review(SPRINT)
        assert retried.ok
        assert git(remote, "rev-parse", SPRINT) == head
        assert not review.exists()


class TestRebaseStack:
    """Tests for rebasing shard branches onto an updated sprint branch."""

    def advance_sprint(self, repo, tmp_path, name, content):
        """Commit on the sprint branch in a scratch worktree and push it."""
        scratch = tmp_path / "scratch"
        git(repo, "worktree", "add", "-q", str(scratch), SPRINT)
        tip = commit_file(scratch, name, content)
        git(scratch, "push", "-q", "origin", SPRINT)
        git(repo, "worktree", "remove", "--force", str(scratch))
        return tip

    @pytest.mark.asyncio
    async def test_rebases_branches_onto_remote_base(self, repo, orch, tmp_path):
        git(repo, "branch", "feature/s1-shard-01", SPRINT)
        git(repo, "checkout", "-q", "feature/s1-shard-01")
        commit_file(repo, "a.txt", "a\n")
        git(repo, "checkout", "-q", "main")

        in_worktree = orch.worktree_path("shard-02")
        await orch.ensure_worktree(in_worktree, "feature/s1-shard-02", SPRINT)
        commit_file(in_worktree, "b.txt", "b\n")

        tip = self.advance_sprint(repo, tmp_path, "base.txt", "base\n")
        result = await orch.rebase_stack(SPRINT)

        assert result.ok
        assert set(result.rebased) == {"feature/s1-shard-01", "feature/s1-shard-02"}
        for branch in result.rebased:
            assert git(repo, "merge-base", branch, tip) == tip
        assert (in_worktree / "base.txt").exists()
        assert await current_branch(orch.git) == "main"

    @pytest.mark.asyncio
    async def test_conflict_stops_and_restores(self, repo, orch, tmp_path):
        git(repo, "branch", "feature/s1-shard-01", SPRINT)
        git(repo, "checkout", "-q", "feature/s1-shard-01")
        before = commit_file(repo, "app.txt", "line one\nshard edit\n")
        git(repo, "checkout", "-q", "main")

        self.advance_sprint(repo, tmp_path, "app.txt", "line one\nbase edit\n")
        result = await orch.rebase_stack(SPRINT)

        assert not result.ok
        assert result.failed_branch == "feature/s1-shard-01"
        assert result.step == "rebase"
        assert result.conflict
        assert await rev_parse(orch.git, "feature/s1-shard-01") == before
        assert await current_branch(orch.git) == "main"
        assert git(repo, "status", "--porcelain") == ""


class TestHelpers:
    """Tests for the smaller git helpers."""

    @pytest.mark.asyncio
    async def test_create_branch_checks_it_out(self, repo, orch):
        result = await create_branch(orch.git, "feature/s1-scratch", SPRINT)
        assert result.success
        assert await current_branch(orch.git) == "feature/s1-scratch"

    @pytest.mark.asyncio
    async def test_has_remote(self, repo, orch):
        assert await has_remote(orch.git, "origin")
        assert not await has_remote(orch.git, "upstream")

    @pytest.mark.asyncio
    async def test_finalize_without_remote(self, repo, orch):
        git(repo, "remote", "remove", "origin")
        await orch.create_review_worktree(SPRINT)
        before = git(repo, "rev-parse", SPRINT)
        commit_file(orch.review_path(SPRINT), "fix.txt", "fix\n")

        result = await orch.finalize_review(SPRINT)

        assert not result.ok
        assert result.step == "remote"
        assert not result.ref_updated_without_push
        assert git(repo, "rev-parse", SPRINT) == before

    @pytest.mark.asyncio
    async def test_conflicted_files_during_merge(self, repo, orch):
        git(repo, "checkout", "-q", "-b", "feature/s1-other", SPRINT)
        commit_file(repo, "app.txt", "line one\nother\n")
        git(repo, "checkout", "-q", "main")
        commit_file(repo, "app.txt", "line one\nmain\n")

        merged = await orch.git.run(["merge", "feature/s1-other"])
        assert merged.is_conflict
        assert await get_conflicted_files(orch.git) == ["app.txt"]
        await orch.git.run(["merge", "--abort"])
        assert await get_conflicted_files(orch.git) == []
