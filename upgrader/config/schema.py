"""
Settings Schema.

This module provides the field declarations used to validate upgrader settings.

Key features:
- Every setting is a string naming a directory, a file suffix or a state path
- Each kind of setting carries its own shape rules
- Validation of a settings table against the schema
- Default settings generation
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Any


class SchemaError(Exception):
    """Base exception for schema-related errors."""

    pass


class ValidationError(SchemaError):
    """Raised when value validation fails."""

    pass


class FieldKind(Enum):
    """What a setting names."""

    DIRECTORY = "directory"  # one directory under the extension root
    SUFFIX = "suffix"  # file suffix without the leading dot
    STATE_PATH = "state_path"  # relative path of a state file


_KIND_RULES = {
    FieldKind.DIRECTORY: "single directory name",
    FieldKind.SUFFIX: "suffix without leading dot",
    FieldKind.STATE_PATH: "relative path, no '..'",
}


@dataclass
class ConfigField:
    """
    A string setting and the shape its value must have.

    Attributes:
        default: Default value for the field
        description: Human-readable description
        kind: What the value names
    """

    default: str
    description: str = ""
    kind: FieldKind = FieldKind.DIRECTORY

    def __post_init__(self):
        if not isinstance(self.kind, FieldKind):
            raise SchemaError(f"Unknown field kind {self.kind!r}")
        try:
            self.validate(self.default)
        except ValidationError as e:
            raise SchemaError(f"Invalid default {self.default!r}: {e}") from e

    @property
    def rule(self) -> str:
        return _KIND_RULES[self.kind]

    def validate(self, value: Any) -> None:
        """
        Validate a value against this field's kind.

        Raises:
            ValidationError: If validation fails
        """
        if not isinstance(value, str):
            raise ValidationError(f"Expected type str, got {type(value).__name__}")
        if not value.strip():
            raise ValidationError("Value must not be empty")
        if "\\" in value:
            raise ValidationError(f"Use '/' as separator in {value!r}")

        if self.kind is FieldKind.DIRECTORY:
            if "/" in value or value in (".", ".."):
                raise ValidationError(f"Expected a {self.rule}, got {value!r}")

        elif self.kind is FieldKind.SUFFIX:
            if value.startswith(".") or "/" in value:
                raise ValidationError(f"Expected a {self.rule}, got {value!r}")

        elif self.kind is FieldKind.STATE_PATH:
            path = PurePosixPath(value)
            if path.is_absolute() or ".." in path.parts:
                raise ValidationError(f"Expected a {self.rule}, got {value!r}")


def validate_config(config: dict[str, Any], schema: dict[str, ConfigField]) -> None:
    """
    Validate a settings table against a schema.

    Keys missing from the table are allowed; they fall back to defaults.

    Raises:
        ValidationError: If a key is unknown or a value has the wrong shape
    """
    for key, value in config.items():
        if key not in schema:
            raise ValidationError(f"Unknown configuration field: {key}")
        try:
            schema[key].validate(value)
        except ValidationError as e:
            raise ValidationError(f"Field '{key}': {e}") from e


def generate_default_config(schema: dict[str, ConfigField]) -> dict[str, str]:
    return {name: field.default for name, field in schema.items()}
