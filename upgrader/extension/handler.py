"""
Upgrade Handler base class.

Extensions subclass UpgradeHandler to declare their revisions and optional
lifecycle hooks. Every hook has a no-op default, so the dispatcher calls
them unconditionally.
"""

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from upgrader.extension import registry
from upgrader.extension.loader import register_handler_type

if TYPE_CHECKING:
    from upgrader.extension.dispatcher import OrchestratorContext

UPGRADEABLE_TYPES = ("module",)


@dataclass(frozen=True)
class Extension:
    """
    A deployable extension.

    Attributes:
        name: Unique extension key (e.g., "org.example.membership")
        path: Root directory of the extension's source tree
        type: Extension type from its info descriptor
    """

    name: str
    path: Path
    type: str = "module"

    @property
    def upgradeable(self) -> bool:
        return self.type in UPGRADEABLE_TYPES


class UpgradeHandler:
    """
    Base class for extension upgrade handlers.

    Subclasses register revisions with @revision(n) and queue-callable
    functions with @task. Registrations are validated when the subclass is
    created and the class is made resolvable by queued tasks.

    Example:
        class MembershipUpgrader(UpgradeHandler):
            def install(self, ctx):
                ctx.execute_sql_file("sql/seed.sql")

            @revision(1001)
            def add_renewal_column(self, ctx):
                ...
    """

    _revision_functions: dict[int, Callable] = {}
    _task_functions: dict[str, Callable] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls._revision_functions, cls._task_functions = registry.collect_registrations(
            cls, dict(cls.__dict__)
        )
        register_handler_type(cls)

    def __init__(self):
        self._revisions: list[int] | None = None

    def get_revisions(self) -> list[int]:
        """
        Get the revisions this handler offers, sorted numerically.

        Computed once per handler instance.
        """
        if self._revisions is None:
            self._revisions = registry.list_revisions(type(self))
        return self._revisions

    # Lifecycle hooks

    def install(self, ctx: "OrchestratorContext") -> None:
        """Called after the install files have run."""

    def post_install(self, ctx: "OrchestratorContext") -> None:
        """Called after the current revision is set on a fresh install."""

    def uninstall(self, ctx: "OrchestratorContext") -> None:
        """Called between the templated and raw uninstall files."""

    def enable(self, ctx: "OrchestratorContext") -> None:
        """Called when the extension is enabled."""

    def disable(self, ctx: "OrchestratorContext") -> None:
        """Called when the extension is disabled."""
