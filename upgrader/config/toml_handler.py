"""
TOML File I/O Handler.

This module provides TOML parsing and writing for settings and state files.

Key features:
- Parse TOML files using tomllib (Python 3.11+)
- Write TOML files using tomlkit, replacing the target atomically
- Generate commented TOML from a settings schema
"""

import os
import tempfile
import tomllib
from pathlib import Path
from typing import Any

import tomlkit


class TOMLError(Exception):
    """Base exception for TOML-related errors."""

    pass


def read_toml(file_path: Path) -> dict[str, Any]:
    """
    Read and parse a TOML file.

    Args:
        file_path: Path to the TOML file

    Returns:
        Parsed TOML data as dictionary

    Raises:
        TOMLError: If file cannot be read or parsed
    """
    try:
        with open(file_path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise TOMLError(f"TOML file not found: {file_path}") from e
    except tomllib.TOMLDecodeError as e:
        raise TOMLError(f"Failed to parse TOML file {file_path}: {e}") from e
    except Exception as e:
        raise TOMLError(f"Failed to read TOML file {file_path}: {e}") from e


def write_toml(file_path: Path, data: dict[str, Any]) -> None:
    """
    Write data to a TOML file.

    The document is written to a sibling temporary file first and then
    renamed over the target, so readers never observe a partial file.

    Args:
        file_path: Path to the TOML file
        data: Data to write

    Raises:
        TOMLError: If file cannot be written
    """
    tmp_name = None
    try:
        file_path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
        )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            tomlkit.dump(data, f)
        os.replace(tmp_name, file_path)
        tmp_name = None
    except Exception as e:
        raise TOMLError(f"Failed to write TOML file {file_path}: {e}") from e
    finally:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)


def generate_toml_from_schema(
    section: str, schema: dict[str, Any], config_data: dict[str, Any]
) -> str:
    """
    Generate TOML content from schema with descriptive comments.

    Each key is preceded by its description and the shape its value must
    have.

    Args:
        section: Name of the table the fields are written under
        schema: Schema dictionary (field_name -> ConfigField)
        config_data: Configuration data (field_name -> value)

    Returns:
        TOML string with comments
    """
    doc = tomlkit.document()
    doc.add(tomlkit.comment(f"Configuration for {section}"))
    doc.add(tomlkit.nl())

    table = tomlkit.table()
    for field_name, field in schema.items():
        if field.description:
            table.add(tomlkit.comment(field.description))
        table.add(tomlkit.comment(f"Expected: {field.rule}"))
        table.add(field_name, config_data.get(field_name, field.default))
        table.add(tomlkit.nl())

    doc.add(section, table)
    return tomlkit.dumps(doc)
