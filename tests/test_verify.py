"""Tests for post-merge build verification."""

import shlex
import sys

import pytest

from orca.workflow.verify import BuildVerifier, VerifyResult

PY = shlex.quote(sys.executable)


def py(code):
    return f"{PY} -c {shlex.quote(code)}"


class TestBuildVerifier:

    @pytest.mark.asyncio
    async def test_all_commands_pass(self, tmp_path):
        verifier = BuildVerifier([py("print('build ok')"), py("print('tests ok')")])
        result = await verifier.verify(tmp_path)
        assert result.ok
        assert result.step == ""

    @pytest.mark.asyncio
    async def test_stops_at_first_failure(self, tmp_path):
        marker = tmp_path / "ran"
        failing = py("import sys; print('type error'); sys.exit(2)")
        verifier = BuildVerifier([
            failing,
            py(f"open({str(marker)!r}, 'w').close()"),
        ])

        result = await verifier.verify(tmp_path)

        assert not result.ok
        assert result.step == failing
        assert "type error" in result.output
        assert not marker.exists()

    @pytest.mark.asyncio
    async def test_runs_in_worktree(self, tmp_path):
        (tmp_path / "package.json").write_text("{}")
        verifier = BuildVerifier([py("import os, sys; sys.exit(0 if os.path.exists('package.json') else 1)")])
        assert (await verifier.verify(tmp_path)).ok

    @pytest.mark.asyncio
    async def test_missing_executable_fails(self, tmp_path):
        result = await BuildVerifier(["orca-no-such-tool --check"]).verify(tmp_path)
        assert not result.ok
        assert result.step == "orca-no-such-tool --check"

    @pytest.mark.asyncio
    async def test_no_commands(self, tmp_path):
        assert (await BuildVerifier([]).verify(tmp_path)).ok


class TestVerifyResult:

    def test_failure_error(self):
        error = VerifyResult(ok=False, step="bun test", output="1 failing").failure("shard-01")
        assert error.shard_id == "shard-01"
        assert error.step == "bun test"

    def test_no_failure_when_ok(self):
        assert VerifyResult(ok=True).failure("shard-01") is None
