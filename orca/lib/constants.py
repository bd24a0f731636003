"""Shared constants for orca."""

import re

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_NOT_FOUND = 3
EXIT_CONFLICT = 4
EXIT_VERIFY_FAILED = 5
EXIT_AGENT_FAILED = 6

# Project config file, relative to the project root
CONFIG_FILE = ".orchestrator.yaml"

# Suffix appended to the sprint branch for the ephemeral review lineage
REVIEW_BRANCH_SUFFIX = "-review"

# Sprint base branch is feature/<sprint>-base
SPRINT_BRANCH_TEMPLATE = "feature/{sprint}-base"

# Bounded tail of subprocess output carried on user-visible failures
OUTPUT_TAIL_CHARS = 2000

# Grace period between closing a session's stdin and SIGTERM
STOP_GRACE_SECONDS = 1.0

# Shard files are features/<sprint>/shard-*.md
SHARD_FILE_GLOB = "shard-*.md"
SHARD_ID_PATTERN = re.compile(r'^shard-\d+[a-z0-9-]*$')

# Local checklist file inside a sprint directory
CHECKLIST_FILE = "checklist.md"

# Shared commit message prefix for leftover changes after a droid run
AUTO_COMMIT_PREFIX = "orca:"


def tail(text: str, limit: int = OUTPUT_TAIL_CHARS) -> str:
    """Return the last `limit` characters of text."""
    if len(text) <= limit:
        return text
    return text[-limit:]
