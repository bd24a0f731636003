"""Working tree status operations."""

from pathlib import Path

from orca.git.runner import GitResult, GitRunner

# Porcelain XY codes for unmerged paths
UNMERGED_CODES = {"DD", "AU", "UD", "UA", "DU", "AA", "UU"}


async def get_status_porcelain(git: GitRunner, cwd: Path | None = None) -> str:
    """Get git status in porcelain format."""
    result = await git.run(["status", "--porcelain"], cwd)
    return result.stdout if result.success else ""


async def has_uncommitted_changes(git: GitRunner, cwd: Path | None = None) -> bool:
    """Check if a worktree has uncommitted changes (staged, unstaged or untracked)."""
    return bool((await get_status_porcelain(git, cwd)).strip())


def parse_conflicted_files(porcelain: str) -> list[str]:
    """Paths with unmerged status in porcelain output."""
    files = []
    for line in porcelain.splitlines():
        if len(line) > 3 and line[:2] in UNMERGED_CODES:
            files.append(line[3:])
    return files


async def get_conflicted_files(git: GitRunner, cwd: Path | None = None) -> list[str]:
    """Get files left unmerged by a conflicted operation."""
    return parse_conflicted_files(await get_status_porcelain(git, cwd))


async def commit_all(git: GitRunner, message: str, cwd: Path) -> GitResult | None:
    """Stage everything and commit. Returns None when there was nothing to commit."""
    if not await has_uncommitted_changes(git, cwd):
        return None
    result = await git.run(["add", "-A"], cwd)
    if not result.success:
        return result
    return await git.run(["commit", "-m", message], cwd)
