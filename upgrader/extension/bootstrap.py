"""
Install/Uninstall Bootstrap Files.

This module discovers and runs the schema files an extension ships.

Key features:
- File discovery by glob pattern under the sql/ and xml/ directories
- Ascending filename order within each category
- Fail-fast execution through an external FileExecutor
- File kinds: raw SQL, templated SQL, custom data XML
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from upgrader.config import Settings

logger = logging.getLogger(__name__)


class BootstrapError(Exception):
    """Raised when a bootstrap file fails to execute."""

    pass


class FileKind(Enum):
    """Bootstrap file kind enumeration."""

    SQL = "sql"
    SQL_TEMPLATE = "sql_template"
    CUSTOM_DATA = "custom_data"


class FileExecutor(Protocol):
    """Runs schema files against the host platform."""

    def execute_sql_file(self, path: Path) -> None: ...

    def execute_sql_template(self, path: Path) -> None: ...

    def execute_custom_data_file(self, path: Path) -> None: ...


@dataclass(frozen=True)
class FileSet:
    """
    A category of bootstrap files.

    Attributes:
        kind: How matched files are executed
        directory: Subdirectory of the extension root
        pattern: Glob pattern matched within the directory
    """

    kind: FileKind
    directory: str
    pattern: str


def install_file_sets(settings: Settings) -> list[FileSet]:
    """File categories run on install, in execution order."""
    return [
        FileSet(FileKind.SQL, settings.sql_dir, "*_install.sql"),
        FileSet(
            FileKind.SQL_TEMPLATE, settings.sql_dir, f"*_install.{settings.template_suffix}"
        ),
        FileSet(FileKind.CUSTOM_DATA, settings.xml_dir, "*_install.xml"),
    ]


def uninstall_template_files(settings: Settings) -> FileSet:
    """Templated uninstall files, run before the handler's uninstall hook."""
    return FileSet(
        FileKind.SQL_TEMPLATE, settings.sql_dir, f"*_uninstall.{settings.template_suffix}"
    )


def uninstall_sql_files(settings: Settings) -> FileSet:
    """Raw uninstall files, run after the handler's uninstall hook."""
    return FileSet(FileKind.SQL, settings.sql_dir, "*_uninstall.sql")


def find_files(root: Path, file_set: FileSet) -> list[Path]:
    """
    Find the files of a category.

    Args:
        root: Extension root directory
        file_set: Category to match

    Returns:
        Matching files sorted by filename (empty if the directory is missing)
    """
    directory = root / file_set.directory
    if not directory.is_dir():
        return []

    return sorted(
        (p for p in directory.glob(file_set.pattern) if p.is_file()),
        key=lambda p: p.name,
    )


def execute_file(executor: FileExecutor, kind: FileKind, path: Path) -> None:
    """
    Execute one bootstrap file.

    Raises:
        BootstrapError: If the executor fails
    """
    logger.debug("Executing %s file %s", kind.value, path)
    try:
        if kind is FileKind.SQL:
            executor.execute_sql_file(path)
        elif kind is FileKind.SQL_TEMPLATE:
            executor.execute_sql_template(path)
        else:
            executor.execute_custom_data_file(path)
    except BootstrapError:
        raise
    except Exception as e:
        raise BootstrapError(f"Failed to execute {kind.value} file {path}: {e}") from e


def run_file_set(executor: FileExecutor, root: Path, file_set: FileSet) -> list[Path]:
    """
    Execute every file of a category, stopping at the first failure.

    Files already executed are not rolled back.

    Returns:
        The files executed

    Raises:
        BootstrapError: If a file fails
    """
    executed = []
    for path in find_files(root, file_set):
        execute_file(executor, file_set.kind, path)
        executed.append(path)
    return executed
