"""
Markdown-backed shard store and local checklist.

Layout under the features directory:

    features/
      <sprint>/
        shard-00-setup.md
        shard-01-api.md
        checklist.md        (optional, local tracking)
"""

import logging
import re
from pathlib import Path

from orca.lib import validate
from orca.lib.config import OrcaConfig
from orca.lib.constants import CHECKLIST_FILE, SHARD_FILE_GLOB
from orca.lib.shardfile import ShardDocument, infer_kind, parse_shard, render_shard
from orca.lib.types import Shard, Sprint

logger = logging.getLogger(__name__)

CHECKLIST_RE = re.compile(r'^-\s+\[([ xX])\]\s+(shard-[A-Za-z0-9_-]+)')


class MarkdownShardStore:
    """Reads and writes shard files under the features directory."""

    def __init__(self, features_dir: Path):
        self.features_dir = features_dir

    def _resolve(self, ref: str) -> Path:
        path = Path(ref)
        return path if path.is_absolute() else self.features_dir / path

    def sprint_dir(self, sprint: str) -> Path:
        return self.features_dir / sprint

    def list_sprints(self) -> list[str]:
        """Sprint directories that contain at least one shard file."""
        if not self.features_dir.is_dir():
            return []
        return sorted(
            d.name for d in self.features_dir.iterdir()
            if d.is_dir() and any(d.glob(SHARD_FILE_GLOB))
        )

    def shard_refs(self, sprint: str) -> list[str]:
        directory = self.sprint_dir(sprint)
        return [
            str(path.relative_to(self.features_dir))
            for path in sorted(directory.glob(SHARD_FILE_GLOB))
        ]

    def read(self, ref: str) -> ShardDocument:
        return parse_shard(self._resolve(ref).read_text())

    def write(self, ref: str, document: ShardDocument) -> None:
        validate.validate(document.to_record(), validate.SCHEMA_SHARD)
        path = self._resolve(ref)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_shard(document))
        logger.debug(f"Wrote shard {path}")

    def create_shard(self, sprint: str, shard_id: str, document: ShardDocument) -> str:
        """Write a new shard file and return its ref."""
        ref = f"{sprint}/{shard_id}.md"
        self.write(ref, document)
        return ref

    def load_sprint(self, sprint: str, config: OrcaConfig) -> Sprint:
        """Build a Sprint from its shard files, sorted by id."""
        shards = []
        for ref in self.shard_refs(sprint):
            doc = self.read(ref)
            shard_id = Path(ref).stem
            shards.append(shard_from_document(shard_id, ref, doc, config.shard_branch(sprint, shard_id)))
        shards.sort(key=lambda s: s.id)
        return Sprint(
            name=sprint,
            base_branch=config.sprint_branch(sprint),
            shards=shards,
            path=self.sprint_dir(sprint),
        )


def shard_from_document(shard_id: str, ref: str, doc: ShardDocument, branch: str | None = None) -> Shard:
    return Shard(
        id=shard_id,
        title=doc.title or shard_id,
        file_ref=ref,
        status=doc.status,
        kind=infer_kind(doc),
        depends_on=set(doc.depends_on),
        creates=set(doc.creates),
        modifies=set(doc.modifies),
        issue_ref=doc.issue_ref,
        branch_name=branch,
        model_override=doc.model_override,
    )


class MarkdownChecklist:
    """Local tracking: `- [x] shard-id ...` lines in features/<sprint>/checklist.md."""

    def __init__(self, features_dir: Path):
        self.features_dir = features_dir

    def _path(self, sprint: str) -> Path:
        return self.features_dir / sprint / CHECKLIST_FILE

    def checked(self, sprint: str) -> set[str]:
        path = self._path(sprint)
        if not path.exists():
            return set()
        done = set()
        for line in path.read_text().splitlines():
            match = CHECKLIST_RE.match(line.strip())
            if match and match.group(1).lower() == "x":
                done.add(match.group(2))
        return done

    def mark(self, sprint: str, shard_id: str, title: str = "", done: bool = True) -> None:
        """Check or uncheck a shard's entry, appending one if missing."""
        path = self._path(sprint)
        lines = path.read_text().splitlines() if path.exists() else [f"# {sprint} checklist", ""]
        box = "x" if done else " "

        for i, line in enumerate(lines):
            match = CHECKLIST_RE.match(line.strip())
            if match and match.group(2) == shard_id:
                lines[i] = re.sub(r'\[[ xX]\]', f'[{box}]', line, count=1)
                break
        else:
            entry = f"- [{box}] {shard_id}" + (f" {title}" if title else "")
            lines.append(entry)

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n")
