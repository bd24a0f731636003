"""
Droid prompt templates.

Templates are markdown files in orca/prompts/, filled in with str.format()
fields ({shard_id}, {task}, ...). A leading HTML comment documents the
template's fields and is dropped before rendering. Literal braces are
written {{ and }}.
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from string import Formatter

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

_COMMENT_RE = re.compile(r'<!--.*?-->\s*', re.DOTALL)


class PromptError(Exception):
    """A template is missing or can't be filled in."""
    pass


@dataclass(frozen=True)
class PromptTemplate:
    name: str
    text: str

    @property
    def fields(self) -> frozenset[str]:
        """Names the template expects, from its {field} placeholders."""
        return frozenset(
            field.split(".")[0].split("[")[0]
            for _, field, _, _ in Formatter().parse(self.text)
            if field
        )

    def render(self, **values) -> str:
        missing = sorted(self.fields - values.keys())
        if missing:
            raise PromptError(
                f"Missing required variable(s) {', '.join(missing)} for prompt '{self.name}'"
            )
        return self.text.format(**values)


@lru_cache(maxsize=32)
def load_template(name: str) -> PromptTemplate:
    path = PROMPTS_DIR / f"{name}.md"
    if not path.exists():
        raise PromptError(f"Prompt template '{name}' not found at {path}")
    logger.debug(f"Loading prompt template: {name}")
    text = _COMMENT_RE.sub("", path.read_text()).lstrip()
    return PromptTemplate(name=name, text=text)


def load_prompt(name: str) -> str:
    """Template text with its comment header removed."""
    return load_template(name).text


def render_prompt(name: str, **values) -> str:
    """
    Fill in a template.

    Raises:
        PromptError: If the template doesn't exist or a field has no value
    """
    return load_template(name).render(**values)


def build_section(content: str | None, header: str, empty_msg: str | None = None) -> str:
    """A `header` + body block, or "" when there's no body and no empty_msg."""
    body = content or empty_msg
    if body is None or body == "":
        return ""
    return f"{header}\n\n{body}\n"


def clear_cache() -> None:
    load_template.cache_clear()
