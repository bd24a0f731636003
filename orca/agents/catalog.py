"""
Droid catalog and model registry.

Droid definitions are markdown files in ~/.factory/droids/<name>.md with an
optional YAML frontmatter block. The body is the droid's instructions.
Custom models come from the `customModels` list in ~/.factory/settings.json.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from orca.lib.types import ShardKind

logger = logging.getLogger(__name__)

FACTORY_DIR = Path.home() / ".factory"
DROIDS_DIR = FACTORY_DIR / "droids"
SETTINGS_PATH = FACTORY_DIR / "settings.json"

# Which droid builds which kind of shard
DROID_FOR_KIND = {
    ShardKind.BACKEND: "senior-backend-engineer",
    ShardKind.FRONTEND: "frontend-developer",
    ShardKind.FULLSTACK: "fullstack-developer",
    ShardKind.DOCS: "documentation-specialist",
}


@dataclass(frozen=True)
class ModelInfo:
    id: str
    display_name: str
    model: str
    provider: str | None = None


BUILTIN_MODELS = [
    ModelInfo("claude-sonnet-4-5-20250929", "Claude Sonnet 4.5", "claude-sonnet-4-5-20250929"),
    ModelInfo("claude-opus-4-20250514", "Claude Opus 4", "claude-opus-4-20250514"),
    ModelInfo("claude-3-5-haiku-20241022", "Claude 3.5 Haiku", "claude-3-5-haiku-20241022"),
]


@dataclass
class DroidDefinition:
    name: str
    prompt: str
    description: str = ""
    model: str | None = None


def parse_droid_file(name: str, text: str) -> DroidDefinition:
    """Split frontmatter from the instructions body."""
    meta: dict = {}
    body = text
    if text.startswith("---"):
        _, _, rest = text.partition("---")
        front, sep, after = rest.partition("\n---")
        if sep:
            try:
                loaded = yaml.safe_load(front)
            except yaml.YAMLError as e:
                logger.warning(f"[DROID] {name}: unreadable frontmatter ({e})")
                loaded = None
            meta = loaded if isinstance(loaded, dict) else {}
            body = after
    return DroidDefinition(
        name=name,
        prompt=body.strip(),
        description=str(meta.get("description", "")),
        model=meta.get("model"),
    )


def load_droid(name: str, droids_dir: Path = DROIDS_DIR) -> DroidDefinition | None:
    """Load a droid definition. Returns None if it isn't installed."""
    path = droids_dir / f"{name}.md"
    if not path.exists():
        return None
    return parse_droid_file(name, path.read_text())


def load_droid_prompt(name: str, droids_dir: Path = DROIDS_DIR) -> str | None:
    droid = load_droid(name, droids_dir)
    return droid.prompt if droid else None


def list_droids(droids_dir: Path = DROIDS_DIR) -> list[str]:
    if not droids_dir.is_dir():
        return []
    return sorted(p.stem for p in droids_dir.glob("*.md"))


def droid_for_kind(kind: ShardKind) -> str:
    return DROID_FOR_KIND[kind]


def build_full_prompt(droid: str, droid_prompt: str | None, task: str) -> str:
    """Wrap a task in the droid's instructions, when it has any."""
    if not droid_prompt:
        return task
    return (
        f"You are acting as the {droid} droid. Follow these instructions:\n\n"
        f"{droid_prompt}\n\n---\n\nTask:\n{task}"
    )


def load_custom_models(settings_path: Path = SETTINGS_PATH) -> list[ModelInfo]:
    """Custom models from Factory settings. Missing or unreadable settings mean none."""
    if not settings_path.exists():
        return []
    try:
        settings = json.loads(settings_path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"[DROID] Could not read {settings_path}: {e}")
        return []

    models = []
    for entry in settings.get("customModels") or []:
        if not isinstance(entry, dict) or "id" not in entry or "model" not in entry:
            continue
        models.append(ModelInfo(
            id=entry["id"],
            display_name=entry.get("displayName") or entry["model"],
            model=entry["model"],
            provider=entry.get("provider"),
        ))
    return models


def all_models(settings_path: Path = SETTINGS_PATH) -> list[ModelInfo]:
    return BUILTIN_MODELS + load_custom_models(settings_path)


def find_model(model_id: str, settings_path: Path = SETTINGS_PATH) -> ModelInfo | None:
    for model in all_models(settings_path):
        if model.id == model_id:
            return model
    return None

