"""
GitHub issue tracking via the gh CLI.

Each shard can link to an issue. The issue's column label (or closed state)
feeds status derivation, and runtime transitions are pushed back as labels.
"""

import json
import logging
import re
import subprocess
from pathlib import Path

from orca.lib.errors import IssueTrackerError
from orca.lib.interfaces import IssueSnapshot
from orca.lib.types import COLUMN_LABELS, Column

logger = logging.getLogger(__name__)

# Timeout for GitHub CLI operations (seconds)
GH_TIMEOUT_SECONDS = 30

ISSUE_URL_RE = re.compile(r'/issues/(\d+)')


def check_gh_cli() -> bool:
    """Check if gh CLI is available and authenticated."""
    try:
        result = subprocess.run(
            ["gh", "auth", "status"],
            capture_output=True,
            text=True,
            timeout=GH_TIMEOUT_SECONDS,
        )
        return result.returncode == 0
    except (OSError, subprocess.SubprocessError):
        return False


class GhIssueTracker:
    """IssueTracker backed by `gh issue ...` commands run in the project repo."""

    def __init__(self, repo_path: Path, timeout: int = GH_TIMEOUT_SECONDS):
        self.repo_path = repo_path
        self.timeout = timeout

    def _gh(self, args: list[str]) -> str:
        cmd = ["gh"] + args
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                cwd=str(self.repo_path),
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise IssueTrackerError(f"gh {args[0]} {args[1]} timed out after {self.timeout}s") from None
        except OSError as e:
            raise IssueTrackerError(f"Could not run gh: {e}") from e

        if result.returncode != 0:
            raise IssueTrackerError(f"gh {' '.join(args[:2])} failed: {result.stderr.strip()}")
        return result.stdout

    def get_issue(self, ref: int) -> IssueSnapshot:
        out = self._gh([
            "issue", "view", str(ref),
            "--json", "number,title,body,state,labels,url",
        ])
        try:
            data = json.loads(out)
        except json.JSONDecodeError as e:
            raise IssueTrackerError(f"Unexpected gh output for issue #{ref}: {e}") from e

        return IssueSnapshot(
            number=data.get("number", ref),
            state=(data.get("state") or "open").lower(),
            labels=tuple(label.get("name", "") for label in data.get("labels") or []),
            title=data.get("title", ""),
            url=data.get("url", ""),
        )

    def set_labels(self, ref: int, column: Column) -> None:
        """Replace any column label on the issue with the label for `column`."""
        args = ["issue", "edit", str(ref)]
        for other, label in COLUMN_LABELS.items():
            if other is not column:
                args += ["--remove-label", label]
        args += ["--add-label", column.label]
        self._gh(args)
        logger.info(f"[GITHUB] #{ref} -> {column.label}")

    def create_issue(self, title: str, body: str, labels: list[str]) -> int:
        args = ["issue", "create", "--title", title, "--body", body]
        for label in labels:
            args += ["--label", label]
        out = self._gh(args)

        match = ISSUE_URL_RE.search(out)
        if not match:
            raise IssueTrackerError(f"Could not find issue number in gh output: {out.strip()}")
        number = int(match.group(1))
        logger.info(f"[GITHUB] Created issue #{number}: {title}")
        return number

    def close_issue(self, ref: int) -> None:
        self._gh(["issue", "close", str(ref)])
        logger.info(f"[GITHUB] Closed #{ref}")
