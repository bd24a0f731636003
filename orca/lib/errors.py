"""Error taxonomy for orca.

Expected, recoverable conditions (conflicts, failed builds, unsuccessful droid
runs) are returned as result values by the operations that produce them. The
exceptions here are raised at the points where a caller needs to stop, or are
carried inside those results to describe what went wrong.
"""

from orca.lib.constants import tail


class OrcaError(Exception):
    """Base class for orca errors."""
    pass


class ConfigError(OrcaError):
    """Project configuration could not be read or is invalid."""
    pass


class UnknownDependency(OrcaError):
    """One or more shards depend on ids that are not in the sprint."""

    def __init__(self, missing: list[tuple[str, str]]):
        # (shard_id, missing_dependency_id) pairs
        self.missing = missing
        detail = ", ".join(f"{shard} -> {dep}" for shard, dep in missing)
        super().__init__(f"Unknown dependencies: {detail}")


class GitError(OrcaError):
    """A git command exited nonzero."""

    def __init__(self, step: str, message: str, output: str = "", shard_id: str | None = None):
        self.step = step
        self.message = message
        self.output = tail(output)
        self.shard_id = shard_id
        prefix = f"[{shard_id}] " if shard_id else ""
        super().__init__(f"{prefix}{step}: {message}")


class GitConflict(GitError):
    """Merge, rebase or cherry-pick collision. Recoverable by resolving and retrying."""
    pass


class GitCommandFailure(GitError):
    """Any other nonzero git exit. Fatal to the current step."""
    pass


class WorktreeStateConflict(OrcaError):
    """Branch and worktree registration disagree in a way provisioning can't fix."""

    def __init__(self, branch: str, path: str, message: str):
        self.branch = branch
        self.path = path
        super().__init__(f"{branch} @ {path}: {message}")


class BuildVerificationFailure(OrcaError):
    """A post-merge verification command failed."""

    def __init__(self, shard_id: str, step: str, output: str = ""):
        self.shard_id = shard_id
        self.step = step
        self.output = tail(output)
        super().__init__(f"[{shard_id}] verification step '{step}' failed")


class AgentProcessFailure(OrcaError):
    """A droid subprocess exited nonzero or reported an error."""

    def __init__(self, message: str, exit_code: int | None = None, output: str = ""):
        self.exit_code = exit_code
        self.output = tail(output)
        super().__init__(message)


class MalformedFrame(AgentProcessFailure):
    """A line on the session's stdout was not a JSON object."""

    def __init__(self, line: str):
        self.line = line
        super().__init__(f"Malformed protocol frame: {line[:200]!r}")


class SessionClosed(OrcaError):
    """Operation requires an active session."""
    pass


class ShardBusy(OrcaError):
    """The shard already has an in-flight run."""

    def __init__(self, shard_id: str):
        self.shard_id = shard_id
        super().__init__(f"Shard {shard_id} already has an active run")


class ShardNotFound(OrcaError):
    """No shard with the given id in the sprint."""

    def __init__(self, shard_id: str):
        self.shard_id = shard_id
        super().__init__(f"Shard not found: {shard_id}")


class IssueTrackerError(OrcaError):
    """The issue tracker rejected or failed a request."""
    pass
