"""Branch and ref operations."""

from pathlib import Path

from orca.git.runner import GitResult, GitRunner


async def current_branch(git: GitRunner, cwd: Path | None = None) -> str | None:
    """Get the checked-out branch name. Returns None when detached or on error."""
    result = await git.run(["rev-parse", "--abbrev-ref", "HEAD"], cwd)
    if not result.success:
        return None
    name = result.stdout.strip()
    return None if name == "HEAD" else name


async def rev_parse(git: GitRunner, ref: str, cwd: Path | None = None) -> str | None:
    """Resolve a ref to a full SHA. Returns None if it doesn't resolve."""
    result = await git.run(["rev-parse", ref], cwd)
    return result.stdout.strip() if result.success else None


async def branch_exists(git: GitRunner, branch: str, cwd: Path | None = None) -> bool:
    """Check if a branch (or any ref) exists."""
    result = await git.run(["rev-parse", "--verify", branch], cwd)
    return result.success


async def create_branch(
    git: GitRunner, name: str, from_ref: str | None = None, cwd: Path | None = None
) -> GitResult:
    """Create a branch and check it out."""
    args = ["checkout", "-b", name]
    if from_ref:
        args.append(from_ref)
    return await git.run(args, cwd)


async def checkout(git: GitRunner, branch: str, cwd: Path | None = None) -> GitResult:
    """Check out an existing branch."""
    return await git.run(["checkout", branch], cwd)


async def list_branches(git: GitRunner, cwd: Path | None = None) -> list[str]:
    """List local branch names in git's order."""
    result = await git.run(["branch", "--list", "--format=%(refname:short)"], cwd)
    if not result.success:
        return []
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


async def delete_branch(git: GitRunner, branch: str, force: bool = False) -> GitResult:
    """Delete a local branch (-D when force, else -d)."""
    return await git.run(["branch", "-D" if force else "-d", branch])


async def commit_count(git: GitRunner, base: str, branch: str, cwd: Path | None = None) -> int:
    """Count commits on branch that aren't on base. Returns 0 on error."""
    result = await git.run(["rev-list", "--count", f"{base}..{branch}"], cwd)
    if not result.success:
        return 0
    try:
        return int(result.stdout.strip())
    except ValueError:
        return 0


async def merge_base(git: GitRunner, a: str, b: str, cwd: Path | None = None) -> str | None:
    """Find the best common ancestor of two refs."""
    result = await git.run(["merge-base", a, b], cwd)
    return result.stdout.strip() if result.success else None


async def commits_between(git: GitRunner, base: str, branch: str, cwd: Path | None = None) -> GitResult:
    """List commits in base..branch, oldest first."""
    return await git.run(["rev-list", "--reverse", f"{base}..{branch}"], cwd)


async def update_ref(git: GitRunner, branch: str, sha: str) -> GitResult:
    """Point refs/heads/<branch> at sha in the main repository."""
    return await git.run(["update-ref", f"refs/heads/{branch}", sha])


async def reset_hard(git: GitRunner, ref: str, cwd: Path) -> GitResult:
    """Reset a worktree's branch, index and files to ref."""
    return await git.run(["reset", "--hard", ref], cwd)
