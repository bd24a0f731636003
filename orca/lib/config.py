"""
Configuration loader for orca.

Loads the project config from `.orchestrator.yaml` at the project root.
Each section in the file is merged over its defaults, so a config only
needs the keys it wants to change. A missing file means all defaults.
"""

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path

import yaml

from orca.lib import validate
from orca.lib.constants import CONFIG_FILE, SPRINT_BRANCH_TEMPLATE
from orca.lib.errors import ConfigError
from orca.lib.types import COLUMN_LABELS

logger = logging.getLogger(__name__)

TRACKING_GITHUB = "github"
TRACKING_LOCAL = "local"
TRACKING_BOTH = "both"

STACK_FROM_PREVIOUS = "previous"
STACK_FROM_MAIN = "main"

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"

# Install, typecheck, build - run in the review worktree after each merge
DEFAULT_VERIFY_COMMANDS = ["bun install", "bun run typecheck", "bun run build"]


@dataclass
class TrackingConfig:
    mode: str = TRACKING_GITHUB
    backlog_board: str = "Backlog"
    project_number: int | None = None

    @property
    def issues_enabled(self) -> bool:
        return self.mode in (TRACKING_GITHUB, TRACKING_BOTH)

    @property
    def checklist_enabled(self) -> bool:
        return self.mode in (TRACKING_LOCAL, TRACKING_BOTH)


@dataclass
class PathsConfig:
    features: str = "features/"
    docs: str = "docs/design/"
    worktrees: str = ".worktrees/"


@dataclass
class DroidSettings:
    model: str = DEFAULT_MODEL
    auto_level: str = "medium"
    command: str = "droid"


@dataclass
class BranchingConfig:
    pattern: str = "feature/{sprint}-{shard}"
    stack_from: str = STACK_FROM_PREVIOUS
    remote: str = "origin"


@dataclass
class VerifyConfig:
    commands: list[str] = field(default_factory=lambda: list(DEFAULT_VERIFY_COMMANDS))


@dataclass
class OrcaConfig:
    """Project-level configuration from .orchestrator.yaml"""
    root: Path
    project_name: str = "Unnamed Project"
    app_url: str = "http://localhost:3000"
    tracking: TrackingConfig = field(default_factory=TrackingConfig)
    columns: list[str] = field(default_factory=lambda: list(COLUMN_LABELS.values()))
    paths: PathsConfig = field(default_factory=PathsConfig)
    droids: DroidSettings = field(default_factory=DroidSettings)
    branching: BranchingConfig = field(default_factory=BranchingConfig)
    verify: VerifyConfig = field(default_factory=VerifyConfig)

    @property
    def features_dir(self) -> Path:
        return self.root / self.paths.features

    @property
    def worktrees_dir(self) -> Path:
        return self.root / self.paths.worktrees

    def sprint_branch(self, sprint: str) -> str:
        return SPRINT_BRANCH_TEMPLATE.format(sprint=sprint)

    def shard_branch(self, sprint: str, shard_id: str) -> str:
        return self.branching.pattern.format(sprint=sprint, shard=shard_id)


_SECTIONS = {
    "tracking": TrackingConfig,
    "paths": PathsConfig,
    "droids": DroidSettings,
    "branching": BranchingConfig,
    "verify": VerifyConfig,
}


def config_from_dict(data: dict, root: Path) -> OrcaConfig:
    """Merge a validated config mapping over the defaults."""
    kwargs = {}
    for key in ("project_name", "app_url"):
        if key in data:
            kwargs[key] = data[key]
    if "columns" in data:
        kwargs["columns"] = list(data["columns"])
    for key, section_cls in _SECTIONS.items():
        kwargs[key] = section_cls(**(data.get(key) or {}))
    return OrcaConfig(root=root, **kwargs)


def load_config(root: Path, config_file: str | Path = CONFIG_FILE) -> OrcaConfig:
    """Load project config, returning defaults when the file doesn't exist.

    Raises:
        ConfigError: If the file can't be parsed or fails schema validation
    """
    path = Path(config_file)
    if not path.is_absolute():
        path = root / path

    if not path.exists():
        logger.debug(f"No config at {path}, using defaults")
        return OrcaConfig(root=root)

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config {path} must be a mapping, got {type(data).__name__}")

    try:
        validate.validate(data, validate.SCHEMA_CONFIG)
    except validate.ValidationError as e:
        raise ConfigError(f"Invalid config {path}: {e}") from e

    return config_from_dict(data, root)


def config_to_dict(config: OrcaConfig) -> dict:
    data = asdict(config)
    data.pop("root")
    return data


def save_config(config: OrcaConfig, config_file: str | Path = CONFIG_FILE) -> Path:
    """Write config back as YAML. Returns the path written."""
    path = Path(config_file)
    if not path.is_absolute():
        path = config.root / path
    data = config_to_dict(config)
    validate.validate(data, validate.SCHEMA_CONFIG)
    path.write_text(yaml.safe_dump(data, sort_keys=False))
    return path
