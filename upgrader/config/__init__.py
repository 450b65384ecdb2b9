"""
Upgrader Configuration - TOML-based settings.

This module provides:
- The settings schema (directory layout, template suffix, state file paths)
- Loading and validating the [upgrader] table of a TOML file
- Default settings generation with descriptive comments

Example usage:
    import upgrader.config

    settings = upgrader.config.load_settings(Path("upgrader.toml"))
    print(settings.sql_dir)  # "sql" unless overridden
"""

from dataclasses import dataclass
from pathlib import Path

from upgrader.config.schema import (
    ConfigField,
    FieldKind,
    SchemaError,
    generate_default_config,
    validate_config,
)
from upgrader.config.toml_handler import (
    TOMLError,
    generate_toml_from_schema,
    read_toml,
)

SECTION = "upgrader"

# Default settings file path
_config_file = Path("config/upgrader.toml")


class ConfigError(Exception):
    """Base exception for config API errors."""

    pass


def field(
    default: str, description: str = "", kind: FieldKind = FieldKind.DIRECTORY
) -> ConfigField:
    """
    Helper function to create a ConfigField.

    Example:
        field("sql", "Directory holding SQL files")
        field("state/queue.dill", "Queue file", FieldKind.STATE_PATH)
    """
    return ConfigField(default=default, description=description, kind=kind)


SCHEMA: dict[str, ConfigField] = {
    "sql_dir": field("sql", "Extension subdirectory holding SQL files"),
    "xml_dir": field("xml", "Extension subdirectory holding custom data XML files"),
    "template_suffix": field(
        "mysql.tpl", "Suffix of templated SQL files", FieldKind.SUFFIX
    ),
    "registry_file": field(
        "state/extensions.toml", "Primary store of applied revisions", FieldKind.STATE_PATH
    ),
    "settings_file": field(
        "state/settings.toml", "Generic settings store (legacy revisions)", FieldKind.STATE_PATH
    ),
    "queue_file": field("state/queue.dill", "Durable task queue file", FieldKind.STATE_PATH),
}


@dataclass(frozen=True)
class Settings:
    """
    Validated upgrader settings.

    Attributes:
        sql_dir: Extension subdirectory holding SQL files
        xml_dir: Extension subdirectory holding custom data XML files
        template_suffix: Suffix of templated SQL files
        registry_file: Path of the TOML primary revision store
        settings_file: Path of the TOML generic settings store
        queue_file: Path of the durable task queue
    """

    sql_dir: str = "sql"
    xml_dir: str = "xml"
    template_suffix: str = "mysql.tpl"
    registry_file: str = "state/extensions.toml"
    settings_file: str = "state/settings.toml"
    queue_file: str = "state/queue.dill"


def load_settings(config_file: Path | None = None) -> Settings:
    """
    Load settings from the [upgrader] table of a TOML file.

    A missing file or table yields the defaults. Keys absent from the table
    keep their default value.

    Args:
        config_file: Path to the TOML file (defaults to config/upgrader.toml)

    Returns:
        Settings instance

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values
    """
    path = config_file or _config_file
    if not path.exists():
        return Settings()

    try:
        data = read_toml(path)
    except TOMLError as e:
        raise ConfigError(f"Failed to load settings: {e}") from e

    table = data.get(SECTION, {})
    if not isinstance(table, dict):
        raise ConfigError(f"'{SECTION}' in {path} must be a table")

    try:
        validate_config(table, SCHEMA)
    except SchemaError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    return Settings(**table)


def render_default_settings() -> str:
    """Return a commented TOML document holding the default settings."""
    defaults = generate_default_config(SCHEMA)
    return generate_toml_from_schema(SECTION, SCHEMA, defaults)


__all__ = [
    "SCHEMA",
    "ConfigError",
    "FieldKind",
    "Settings",
    "field",
    "load_settings",
    "render_default_settings",
]
