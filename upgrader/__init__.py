"""
Upgrader - Revision-tracking upgrade orchestrator for CRM extensions.

This is the main package that exports the public API.
"""

__version__ = "0.1.0"

from upgrader.config import Settings, load_settings
from upgrader.core.adapter import QueueAdapter, execute_task, run_next
from upgrader.core.queue import FileQueue, MemoryQueue, QueueItem, TaskQueue
from upgrader.core.task import ApplyRevision, CustomHook, PersistRevision, Task
from upgrader.extension.dispatcher import (
    Backends,
    ConfigurationError,
    ExtensionState,
    LifecycleDispatcher,
    LifecycleError,
    OrchestratorContext,
)
from upgrader.extension.handler import Extension, UpgradeHandler
from upgrader.extension.registry import revision, task

__all__ = [
    "__version__",
    "ApplyRevision",
    "Backends",
    "ConfigurationError",
    "CustomHook",
    "Extension",
    "ExtensionState",
    "FileQueue",
    "LifecycleDispatcher",
    "LifecycleError",
    "MemoryQueue",
    "OrchestratorContext",
    "PersistRevision",
    "QueueAdapter",
    "QueueItem",
    "Settings",
    "Task",
    "TaskQueue",
    "UpgradeHandler",
    "execute_task",
    "load_settings",
    "revision",
    "run_next",
    "task",
]
