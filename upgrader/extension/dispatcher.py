"""
Lifecycle Dispatcher.

This module responds to extension lifecycle events.

Key features:
- Install/uninstall bootstrap file sequencing around handler hooks
- Revision bookkeeping on post-install
- Pending-revision checks and enqueueing for upgrades
- Dispatch of queued task payloads to the handler
- Lifecycle state tracking with transition checks
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from upgrader.config import Settings
from upgrader.core.adapter import QueueAdapter
from upgrader.core.queue import QueueItem, TaskQueue
from upgrader.core.task import (
    ApplyRevision,
    CustomHook,
    Payload,
    PersistRevision,
    TaskError,
)
from upgrader.extension import registry
from upgrader.extension.bootstrap import (
    FileExecutor,
    FileKind,
    execute_file,
    install_file_sets,
    run_file_set,
    uninstall_sql_files,
    uninstall_template_files,
)
from upgrader.extension.handler import Extension, UpgradeHandler
from upgrader.extension.store import (
    LegacyStore,
    PrimaryStore,
    RevisionStore,
    TomlPrimaryStore,
    TomlSettingsStore,
)

logger = logging.getLogger(__name__)


class LifecycleError(Exception):
    """Base exception for lifecycle errors."""

    pass


class ConfigurationError(LifecycleError):
    """Raised when the orchestrator is used on something it cannot manage."""

    pass


class ExtensionState(Enum):
    """Extension lifecycle state enumeration."""

    UNINSTALLED = "uninstalled"
    INSTALLED = "installed"
    ENABLED = "enabled"
    DISABLED = "disabled"
    UPGRADING = "upgrading"


class LifecycleEvent(Enum):
    """Lifecycle event enumeration."""

    INSTALL = "install"
    POST_INSTALL = "post_install"
    UNINSTALL = "uninstall"
    ENABLE = "enable"
    DISABLE = "disable"
    UPGRADE = "upgrade"


_S = ExtensionState

# event -> (states the event is accepted in, state after success or None to keep)
_TRANSITIONS: dict[LifecycleEvent, tuple[frozenset[ExtensionState], ExtensionState | None]] = {
    LifecycleEvent.INSTALL: (frozenset({_S.UNINSTALLED}), _S.INSTALLED),
    LifecycleEvent.POST_INSTALL: (frozenset({_S.INSTALLED, _S.ENABLED}), None),
    LifecycleEvent.UNINSTALL: (frozenset({_S.INSTALLED, _S.DISABLED}), _S.UNINSTALLED),
    LifecycleEvent.ENABLE: (frozenset({_S.INSTALLED, _S.DISABLED, _S.ENABLED}), _S.ENABLED),
    LifecycleEvent.DISABLE: (frozenset({_S.INSTALLED, _S.ENABLED, _S.DISABLED}), _S.DISABLED),
    LifecycleEvent.UPGRADE: (
        frozenset({_S.INSTALLED, _S.ENABLED, _S.DISABLED, _S.UPGRADING}),
        None,
    ),
}


@dataclass
class Backends:
    """
    Collaborators available to the orchestrator in the current process.

    Attributes:
        primary: Structured extension registry
        legacy: Generic settings store holding pre-migration revisions
        executor: Runs SQL, SQL template and custom data files
        settings: Directory layout and file naming
    """

    primary: PrimaryStore
    legacy: LegacyStore
    executor: FileExecutor
    settings: Settings = field(default_factory=Settings)

    @classmethod
    def from_settings(
        cls, settings: Settings, executor: FileExecutor, base_dir: Path = Path(".")
    ) -> "Backends":
        """Build TOML-file backed stores from settings paths."""
        return cls(
            primary=TomlPrimaryStore(base_dir / settings.registry_file),
            legacy=TomlSettingsStore(base_dir / settings.settings_file),
            executor=executor,
            settings=settings,
        )


@dataclass
class OrchestratorContext:
    """
    Everything one invocation works with, passed to handler hooks and
    revision functions.

    Attributes:
        extension: The extension being managed
        handler: The handler instance for this invocation
        store: Current-revision bookkeeping
        backends: Collaborators of this process
        adapter: Enqueues operations of this handler
        queue: Queue bound to this invocation, if any
    """

    extension: Extension
    handler: UpgradeHandler
    store: RevisionStore
    backends: Backends
    adapter: QueueAdapter
    queue: TaskQueue | None = None

    def execute_sql_file(self, relative_path: str) -> None:
        """Run a raw SQL file located relative to the extension root."""
        execute_file(self.backends.executor, FileKind.SQL, self.extension.path / relative_path)

    def execute_sql_template(self, relative_path: str) -> None:
        """Run a templated SQL file located relative to the extension root."""
        execute_file(
            self.backends.executor, FileKind.SQL_TEMPLATE, self.extension.path / relative_path
        )

    def execute_custom_data_file(self, relative_path: str) -> None:
        """Load a custom data XML file located relative to the extension root."""
        execute_file(
            self.backends.executor, FileKind.CUSTOM_DATA, self.extension.path / relative_path
        )

    def add_task(self, title: str, name: str, *args: Any) -> QueueItem:
        """
        Queue a @task function ahead of default-weight items.

        Raises:
            LifecycleError: If no queue is bound to this context
        """
        if self.queue is None:
            raise LifecycleError(f"No queue is bound to the context of {self.extension.name}")
        return self.adapter.add_task(self.queue, title, name, *args)


class LifecycleDispatcher:
    """
    Lifecycle state machine for one extension.

    A dispatcher owns one handler instance and one context. It is not safe
    to run two dispatchers of the same extension at once; callers serialize
    lifecycle events and queue execution per extension.
    """

    def __init__(
        self,
        extension: Extension,
        handler: UpgradeHandler,
        backends: Backends,
        queue: TaskQueue | None = None,
        state: ExtensionState | None = None,
    ):
        """
        Initialize LifecycleDispatcher.

        Args:
            extension: The extension to manage
            handler: Handler instance for this invocation
            backends: Stores and executor of this process
            queue: Queue to bind to the context
            state: Known lifecycle state, or None if unknown

        Raises:
            ConfigurationError: If the extension type cannot be upgraded
        """
        if not extension.upgradeable:
            raise ConfigurationError(
                f"Wrong extension type for {extension.name}: {extension.type}"
            )
        if not isinstance(handler, UpgradeHandler):
            raise ConfigurationError(
                f"Handler for {extension.name} must be an UpgradeHandler, "
                f"got {type(handler).__name__}"
            )

        self.extension = extension
        self.handler = handler
        self.backends = backends
        self.store = RevisionStore(extension.name, backends.primary, backends.legacy)
        self.state = state
        self.context = OrchestratorContext(
            extension=extension,
            handler=handler,
            store=self.store,
            backends=backends,
            adapter=QueueAdapter(extension, type(handler)),
            queue=queue,
        )

    def _check(self, event: LifecycleEvent) -> None:
        allowed, _ = _TRANSITIONS[event]
        if self.state is not None and self.state not in allowed:
            raise LifecycleError(
                f"Cannot {event.value} {self.extension.name} while {self.state.value}"
            )

    def _advance(self, event: LifecycleEvent) -> None:
        _, target = _TRANSITIONS[event]
        if target is not None:
            self.state = target

    # ******** Revision tracking ********

    def get_revisions(self) -> list[int]:
        return self.handler.get_revisions()

    def get_current_revision(self) -> int | None:
        return self.store.get_current_revision()

    def set_current_revision(self, revision: int) -> bool:
        return self.store.set_current_revision(revision)

    def has_pending_revisions(self) -> bool:
        """
        Determine if there are any pending revisions.

        Returns:
            False if the handler has no revisions; True if no revision is
            recorded; otherwise whether the recorded revision is behind
        """
        revisions = self.get_revisions()
        if not revisions:
            return False

        current = self.get_current_revision()
        if current is None:
            return True
        return current < max(revisions)

    def enqueue_pending_revisions(self, queue: TaskQueue) -> list[QueueItem]:
        """
        Add every pending revision to the queue.

        Each revision gets two default-weight items: apply, then persist.
        If a runner stops between them the revision is applied again on the
        next pass, so revision functions must be safe to re-run.

        Returns:
            The created items in queue order
        """
        self.context.queue = queue
        current = self.get_current_revision()

        items = []
        for revision in self.get_revisions():
            if current is not None and revision <= current:
                continue

            title = f"Upgrade {self.extension.name} to revision {revision}"
            # add_task() would use priority weight and reorder revisions
            items.append(self.context.adapter.enqueue(queue, title, ApplyRevision(revision)))
            items.append(self.context.adapter.enqueue(queue, title, PersistRevision(revision)))

        if items:
            logger.info(
                "Queued %d revision(s) of %s starting after %s",
                len(items) // 2,
                self.extension.name,
                current,
            )
            self.state = ExtensionState.UPGRADING
        return items

    # ******** Task dispatch ********

    def run_task(self, payload: Payload) -> Any:
        """
        Execute a queued payload against this dispatcher's handler.

        Raises:
            TaskError: If the operation is unknown or reports failure
        """
        if isinstance(payload, ApplyRevision):
            return self._apply_revision(payload.revision)
        if isinstance(payload, PersistRevision):
            return self._persist_revision(payload.revision)
        if isinstance(payload, CustomHook):
            return self._run_custom_hook(payload.name, payload.args)
        raise TaskError(f"Unsupported task payload: {payload!r}")

    def _apply_revision(self, revision: int) -> bool:
        try:
            func = registry.revision_function(type(self.handler), revision)
        except registry.RegistrationError as e:
            raise TaskError(str(e)) from e

        logger.debug("Applying revision %d of %s", revision, self.extension.name)
        if func(self.handler, self.context) is False:
            raise TaskError(f"Upgrade of {self.extension.name} to revision {revision} failed")
        return True

    def _persist_revision(self, revision: int) -> bool:
        current = self.get_current_revision()
        if current is not None and revision < current:
            logger.warning(
                "Not lowering revision of %s from %d to %d",
                self.extension.name,
                current,
                revision,
            )
            return True

        self.set_current_revision(revision)
        revisions = self.get_revisions()
        if self.state is ExtensionState.UPGRADING and revisions and revision >= max(revisions):
            self.state = ExtensionState.INSTALLED
        return True

    def _run_custom_hook(self, name: str, args: tuple) -> Any:
        try:
            func = registry.task_function(type(self.handler), name)
        except registry.RegistrationError as e:
            raise TaskError(str(e)) from e

        result = func(self.handler, self.context, *args)
        if result is False:
            raise TaskError(f"Task '{name}' of {self.extension.name} failed")
        return result

    # ******** Hook delegates ********

    def on_install(self) -> None:
        """
        Run install files, then the handler's install hook.

        Categories run in order: raw SQL, templated SQL, custom data XML.

        Raises:
            BootstrapError: If a file fails; later files and the hook are skipped
        """
        self._check(LifecycleEvent.INSTALL)
        settings = self.backends.settings
        for file_set in install_file_sets(settings):
            run_file_set(self.backends.executor, self.extension.path, file_set)
        self.handler.install(self.context)
        self._advance(LifecycleEvent.INSTALL)

    def on_post_install(self) -> None:
        """Start a fresh install at the newest revision, then run post_install."""
        self._check(LifecycleEvent.POST_INSTALL)
        revisions = self.get_revisions()
        if revisions:
            self.set_current_revision(max(revisions))
        self.handler.post_install(self.context)
        self._advance(LifecycleEvent.POST_INSTALL)

    def on_uninstall(self) -> None:
        """
        Run templated uninstall files, the uninstall hook, then raw files.

        The hook runs between the two file categories, unlike install.
        """
        self._check(LifecycleEvent.UNINSTALL)
        settings = self.backends.settings
        run_file_set(
            self.backends.executor, self.extension.path, uninstall_template_files(settings)
        )
        self.handler.uninstall(self.context)
        run_file_set(self.backends.executor, self.extension.path, uninstall_sql_files(settings))
        self._advance(LifecycleEvent.UNINSTALL)

    def on_enable(self) -> None:
        self._check(LifecycleEvent.ENABLE)
        self.handler.enable(self.context)
        self._advance(LifecycleEvent.ENABLE)

    def on_disable(self) -> None:
        self._check(LifecycleEvent.DISABLE)
        self.handler.disable(self.context)
        self._advance(LifecycleEvent.DISABLE)

    def on_upgrade(self, op: str, queue: TaskQueue | None = None) -> Any:
        """
        Handle an upgrade event.

        Args:
            op: "check" or "enqueue"; other values are ignored
            queue: Destination queue for "enqueue"

        Returns:
            For "check", whether revisions are pending; for "enqueue", the
            created items; otherwise None

        Raises:
            ConfigurationError: If "enqueue" is requested without a queue
        """
        if op == "check":
            self._check(LifecycleEvent.UPGRADE)
            return self.has_pending_revisions()

        if op == "enqueue":
            self._check(LifecycleEvent.UPGRADE)
            if queue is None:
                raise ConfigurationError(
                    f"A queue is required to enqueue revisions of {self.extension.name}"
                )
            return self.enqueue_pending_revisions(queue)

        return None
