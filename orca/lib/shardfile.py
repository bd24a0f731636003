"""
Shard markdown parser for orca.

A shard file is a markdown document with a `# Title` heading followed by
`## Section` blocks. Only the sections listed here are understood; anything
else is ignored on read and dropped on render.
"""

import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from orca.lib.types import Column, ShardKind

HEADING_RE = re.compile(r'^#\s+(.+?)\s*$')
SECTION_RE = re.compile(r'^##\s+(.+?)\s*$')
CRITERION_RE = re.compile(r'^-\s+\[([ xX])\]\s*(.*?)\s*$')
LINK_RE = re.compile(r'\[([^\]]+)\]\(([^)]+)\)')
ISSUE_RE = re.compile(r'#(\d+)')
DEPENDENCY_RE = re.compile(r'^-\s+(Creates|Depends on|Modifies):\s*(.*)$', re.IGNORECASE)

# Placeholders written for empty lists
EMPTY_VALUES = {"", "none", "n/a", "tbd", "-"}

REQUIRED_READING_NOTE = "> **IMPORTANT:** Read this entire shard and ALL linked documents before starting."


@dataclass
class Criterion:
    text: str
    done: bool = False


@dataclass
class ShardDocument:
    """Parsed shape of a shard file."""
    title: str
    status: Column = Column.READY_TO_BUILD
    context: str = ""
    task: str = ""
    required_reading: list[str] = field(default_factory=list)
    new_in_shard: list[str] = field(default_factory=list)
    acceptance_criteria: list[Criterion] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)
    creates: list[str] = field(default_factory=list)
    modifies: list[str] = field(default_factory=list)
    issue_ref: int | None = None
    model_override: str | None = None

    def content_key(self) -> tuple:
        """The parts of a shard that define the work. Status and links excluded."""
        return (
            self.title.strip(),
            self.context.strip(),
            self.task.strip(),
            tuple(c.text.strip() for c in self.acceptance_criteria),
        )

    def to_record(self) -> dict:
        """Plain dict form, checked against shard.schema.json before writes."""
        return {
            "title": self.title,
            "status": self.status.label,
            "context": self.context,
            "task": self.task,
            "acceptance_criteria": [{"text": c.text, "done": c.done} for c in self.acceptance_criteria],
            "depends_on": list(self.depends_on),
            "creates": list(self.creates),
            "modifies": list(self.modifies),
            "issue_ref": self.issue_ref,
            "model_override": self.model_override,
        }


def content_changed(old: ShardDocument, new: ShardDocument) -> bool:
    return old.content_key() != new.content_key()


def _parse_list(value: str) -> list[str]:
    if value.strip().lower() in EMPTY_VALUES:
        return []
    return [item.strip() for item in value.split(",") if item.strip().lower() not in EMPTY_VALUES]


def parse_shard(text: str) -> ShardDocument:
    """Parse shard markdown into a ShardDocument."""
    doc = ShardDocument(title="")
    section = ""
    context_lines: list[str] = []
    task_lines: list[str] = []
    in_comment = False

    for line in text.splitlines():
        # Skip HTML comment blocks
        if '<!--' in line:
            in_comment = '-->' not in line
            continue
        if in_comment:
            if '-->' in line:
                in_comment = False
            continue

        section_match = SECTION_RE.match(line)
        if section_match:
            section = section_match.group(1).strip().lower()
            continue

        heading_match = HEADING_RE.match(line)
        if heading_match and not doc.title:
            doc.title = heading_match.group(1)
            continue

        stripped = line.strip()

        if section == "status":
            if stripped:
                column = Column.from_label(stripped)
                if column is not None:
                    doc.status = column
        elif section == "required reading":
            if stripped.startswith("- "):
                link = LINK_RE.search(stripped)
                if link:
                    doc.required_reading.append(link.group(2))
        elif section == "context":
            context_lines.append(line)
        elif section == "task":
            task_lines.append(line)
        elif section == "new in this shard":
            if stripped.startswith("- "):
                item = stripped[2:].strip()
                if item.lower() not in EMPTY_VALUES:
                    doc.new_in_shard.append(item)
        elif section == "acceptance criteria":
            criterion = CRITERION_RE.match(stripped)
            if criterion:
                doc.acceptance_criteria.append(
                    Criterion(text=criterion.group(2), done=criterion.group(1).lower() == "x")
                )
        elif section == "dependencies":
            dep = DEPENDENCY_RE.match(stripped)
            if dep:
                kind = dep.group(1).lower()
                values = _parse_list(dep.group(2))
                if kind == "creates":
                    doc.creates.extend(values)
                elif kind == "depends on":
                    doc.depends_on.extend(values)
                else:
                    doc.modifies.extend(values)
        elif section == "linked issue":
            issue = ISSUE_RE.search(stripped)
            if issue:
                doc.issue_ref = int(issue.group(1))
        elif section == "model override":
            if stripped:
                doc.model_override = stripped

    doc.context = "\n".join(context_lines).strip()
    doc.task = "\n".join(task_lines).strip()
    return doc


def render_shard(doc: ShardDocument) -> str:
    """Render a ShardDocument back to markdown."""
    reading = "\n".join(
        f"- [{PurePosixPath(path).name or path}]({path})" for path in doc.required_reading
    ) or "- None"
    new_items = "\n".join(f"- {item}" for item in doc.new_in_shard) or "- N/A"
    criteria = "\n".join(
        f"- [{'x' if c.done else ' '}] {c.text}" for c in doc.acceptance_criteria
    )

    parts = [
        f"# {doc.title}",
        "",
        "## Status",
        doc.status.label,
        "",
        "## Required Reading",
        REQUIRED_READING_NOTE,
        "",
        reading,
        "",
        "## Context",
        doc.context,
        "",
        "## Task",
        doc.task,
        "",
        "## New in This Shard",
        new_items,
        "",
        "## Acceptance Criteria",
        criteria,
        "",
        "## Dependencies",
        f"- Creates: {', '.join(doc.creates) or 'N/A'}",
        f"- Depends on: {', '.join(doc.depends_on) or 'None'}",
        f"- Modifies: {', '.join(doc.modifies) or 'None'}",
        "",
        "## Linked Issue",
        f"GitHub: #{doc.issue_ref}" if doc.issue_ref else "GitHub: TBD",
    ]
    if doc.model_override:
        parts += ["", "## Model Override", doc.model_override]
    return "\n".join(parts) + "\n"


def infer_kind(doc: ShardDocument) -> ShardKind:
    """Guess which kind of droid a shard needs from the files it touches."""
    files = " ".join(doc.creates + doc.modifies).lower()
    content = f"{doc.title}\n{doc.context}\n{doc.task}".lower()

    has_backend = (
        any(word in files for word in ("api", "server", "convex", "schema"))
        or any(word in content for word in ("mutation", "query", "database"))
    )
    has_frontend = (
        any(word in files for word in ("component", ".tsx", "src/app", "src/components"))
        or "react" in content
        or re.search(r'\bui\b', content) is not None
    )
    has_docs = (
        any(word in files for word in ("docs/", ".md"))
        or "documentation" in content
    )

    if has_docs and not has_backend and not has_frontend:
        return ShardKind.DOCS
    if has_backend and has_frontend:
        return ShardKind.FULLSTACK
    if has_backend:
        return ShardKind.BACKEND
    if has_frontend:
        return ShardKind.FRONTEND
    return ShardKind.FULLSTACK
