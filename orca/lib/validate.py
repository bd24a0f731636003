"""
JSON schema checks for the records orca reads and writes.

Two schemas ship with the package, under orca/schemas/:

- config: the parsed .orchestrator.yaml mapping, checked on load and save
- shard:  a ShardDocument record, checked before a shard file is written

Every violation is collected; the error reports the first one by path
and how many others there were.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

from jsonschema import Draft7Validator

SCHEMAS_DIR = Path(__file__).resolve().parent.parent / "schemas"

SCHEMA_CONFIG = "config"
SCHEMA_SHARD = "shard"


class ValidationError(Exception):
    """A record doesn't match its schema."""

    def __init__(self, schema_name: str, message: str, path: str | None = None, others: int = 0):
        self.schema_name = schema_name
        self.path = path
        self.others = others
        text = f"[{schema_name}] {message}"
        if path:
            text += f" at {path}"
        if others:
            text += f" (and {others} more)"
        super().__init__(text)


@lru_cache(maxsize=None)
def validator_for(schema_name: str) -> Draft7Validator:
    schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
    if not schema_path.exists():
        raise ValidationError(schema_name, f"Schema file not found: {schema_path}")
    schema = json.loads(schema_path.read_text())
    Draft7Validator.check_schema(schema)
    return Draft7Validator(schema)


def _location(error) -> str:
    return ".".join(str(part) for part in error.absolute_path) or "(root)"


def validate(data: Any, schema_name: str) -> None:
    """
    Check data against a bundled schema.

    Raises:
        ValidationError: On the first violation (by path), counting the rest
    """
    errors = sorted(validator_for(schema_name).iter_errors(data), key=_location)
    if errors:
        first = errors[0]
        raise ValidationError(schema_name, first.message, _location(first), others=len(errors) - 1)


def is_valid(data: Any, schema_name: str) -> bool:
    return validator_for(schema_name).is_valid(data)
