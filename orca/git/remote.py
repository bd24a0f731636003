"""Remote operations."""

from pathlib import Path

from orca.git.runner import GitResult, GitRunner


async def has_remote(git: GitRunner, remote: str = "origin") -> bool:
    """Check if a remote is configured."""
    result = await git.run(["remote", "get-url", remote])
    return result.success


async def fetch(git: GitRunner, remote: str = "origin", cwd: Path | None = None) -> GitResult:
    """Fetch from a remote."""
    return await git.run(["fetch", remote], cwd)


async def push(
    git: GitRunner,
    remote: str = "origin",
    branch: str | None = None,
    force_with_lease: bool = False,
    set_upstream: bool = False,
    cwd: Path | None = None,
) -> GitResult:
    """Push to a remote."""
    args = ["push"]
    if set_upstream:
        args.append("-u")
    args.append(remote)
    if branch:
        args.append(branch)
    if force_with_lease:
        args.append("--force-with-lease")
    return await git.run(args, cwd)
