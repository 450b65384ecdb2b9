"""
Revision Store.

This module tracks which revision an installed extension is at.

Key features:
- Primary store: the host's structured extension registry
- Legacy store: a generic keyed settings store used by older releases
- Reads fall back to the legacy key and arm a migration
- The first successful primary write deletes the legacy key
- TOML-file and in-memory backends
"""

import logging
import threading
from pathlib import Path
from typing import Any, Protocol

from upgrader.config.toml_handler import TOMLError, read_toml, write_toml

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for revision store errors."""

    pass


class PrimaryStore(Protocol):
    """Structured extension registry holding one schema version per extension."""

    def get_schema_version(self, extension_name: str) -> int | None: ...

    def set_schema_version(self, extension_name: str, revision: int) -> None: ...


class LegacyStore(Protocol):
    """Generic keyed settings store."""

    def get(self, key: str) -> Any: ...

    def delete(self, key: str) -> None: ...


class MemoryPrimaryStore:
    """Primary store held in process memory."""

    def __init__(self, versions: dict[str, int] | None = None):
        self.versions: dict[str, int] = dict(versions or {})

    def get_schema_version(self, extension_name: str) -> int | None:
        return self.versions.get(extension_name)

    def set_schema_version(self, extension_name: str, revision: int) -> None:
        self.versions[extension_name] = revision


class MemoryLegacyStore:
    """Settings store held in process memory."""

    def __init__(self, values: dict[str, Any] | None = None):
        self.values: dict[str, Any] = dict(values or {})

    def get(self, key: str) -> Any:
        return self.values.get(key)

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value

    def delete(self, key: str) -> None:
        self.values.pop(key, None)


class TomlPrimaryStore:
    """
    Primary store backed by a TOML file.

    Layout:
        [extensions."org.example.membership"]
        schema_version = 1002
    """

    def __init__(self, file_path: Path):
        self.file_path = file_path
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        if not self.file_path.exists():
            return {}
        try:
            return read_toml(self.file_path)
        except TOMLError as e:
            raise StoreError(f"Failed to read extension registry: {e}") from e

    def get_schema_version(self, extension_name: str) -> int | None:
        entry = self._read().get("extensions", {}).get(extension_name, {})
        return entry.get("schema_version")

    def set_schema_version(self, extension_name: str, revision: int) -> None:
        with self._lock:
            data = self._read()
            extensions = data.setdefault("extensions", {})
            extensions.setdefault(extension_name, {})["schema_version"] = revision
            try:
                write_toml(self.file_path, data)
            except TOMLError as e:
                raise StoreError(f"Failed to write extension registry: {e}") from e


class TomlSettingsStore:
    """
    Generic settings store backed by a TOML file.

    Layout:
        [settings]
        "org.example.membership:version" = "1001"
    """

    def __init__(self, file_path: Path):
        self.file_path = file_path
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        if not self.file_path.exists():
            return {}
        try:
            return read_toml(self.file_path)
        except TOMLError as e:
            raise StoreError(f"Failed to read settings: {e}") from e

    def _flush(self, data: dict[str, Any]) -> None:
        try:
            write_toml(self.file_path, data)
        except TOMLError as e:
            raise StoreError(f"Failed to write settings: {e}") from e

    def get(self, key: str) -> Any:
        return self._read().get("settings", {}).get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data.setdefault("settings", {})[key] = value
            self._flush(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            settings = data.get("settings", {})
            if key not in settings:
                return
            del settings[key]
            self._flush(data)


def _coerce_revision(value: Any, source: str) -> int | None:
    """Normalize a stored revision; empty values mean 'not recorded'."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise StoreError(f"Invalid revision {value!r} in {source}")
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError as e:
        raise StoreError(f"Invalid revision {value!r} in {source}") from e


class RevisionStore:
    """
    Current-revision bookkeeping for one extension.

    The primary store is authoritative once it holds a value. Until then the
    legacy key is consulted; reading a legacy value arms a migration that the
    next set_current_revision() completes by deleting the legacy key.
    """

    def __init__(self, extension_name: str, primary: PrimaryStore, legacy: LegacyStore):
        self.extension_name = extension_name
        self.primary = primary
        self.legacy = legacy
        self._legacy_key = f"{extension_name}:version"
        self._migration_armed = False

    @property
    def migration_armed(self) -> bool:
        return self._migration_armed

    def get_current_revision(self) -> int | None:
        """
        Get the revision the extension is at.

        A stored 0 is a recorded revision; only a missing value falls back
        to the legacy key.

        Returns:
            The stored revision, or None if nothing is recorded

        Raises:
            StoreError: If a stored value is not a revision number
        """
        revision = _coerce_revision(
            self.primary.get_schema_version(self.extension_name), "extension registry"
        )
        if revision is not None:
            return revision

        revision = _coerce_revision(self.legacy.get(self._legacy_key), "settings")
        if revision is not None:
            self._migration_armed = True
        return revision

    def set_current_revision(self, revision: int) -> bool:
        """
        Record the revision the extension is at.

        Args:
            revision: Revision number

        Returns:
            True, so the call can serve as a queued task

        Raises:
            StoreError: If the primary store cannot be written; the legacy
                key is left in place
        """
        try:
            self.primary.set_schema_version(self.extension_name, revision)
        except StoreError:
            raise
        except Exception as e:
            raise StoreError(
                f"Failed to record revision {revision} for {self.extension_name}: {e}"
            ) from e

        if self._migration_armed:
            self.legacy.delete(self._legacy_key)
            logger.info(
                "Migrated extension schema revision ID for %s from settings "
                "(deprecated) to the extension registry",
                self.extension_name,
            )
            self._migration_armed = False
        return True
