"""
Task - Durable unit of queued upgrade work.

A Task names the handler class it targets and carries one payload variant:
1. ApplyRevision: run the handler's function for one revision
2. PersistRevision: record one revision as applied
3. CustomHook: run a function registered on the handler with @task

Tasks are serialized with dill so they can be stored in a durable queue and
executed by a later process. Every argument is checked for serializability
when the task is created, not when the queue is flushed.
"""

import pickle
from dataclasses import dataclass
from typing import Any

import dill


class TaskError(Exception):
    """Base exception for task-related errors."""

    pass


@dataclass(frozen=True)
class ApplyRevision:
    """Run the upgrade function registered for a revision."""

    revision: int


@dataclass(frozen=True)
class PersistRevision:
    """Record a revision as the extension's current revision."""

    revision: int


@dataclass(frozen=True)
class CustomHook:
    """Run a task function registered on the handler under `name`."""

    name: str
    args: tuple = ()


Payload = ApplyRevision | PersistRevision | CustomHook


@dataclass(frozen=True)
class Task:
    """
    A serializable queue entry.

    Attributes:
        target_type: Import path of the handler class ("module:QualName")
        extension_name: Name of the extension the task belongs to
        extension_dir: Root directory of the extension
        payload: The operation to perform
        title: Human-readable description shown by queue runners
        weight: Ordering weight (lower runs first)
    """

    target_type: str
    extension_name: str
    extension_dir: str
    payload: Payload
    title: str
    weight: int = 0

    def __post_init__(self):
        if not isinstance(self.payload, ApplyRevision | PersistRevision | CustomHook):
            raise TaskError(f"Unsupported task payload: {self.payload!r}")

        if isinstance(self.payload, CustomHook):
            for arg in self.payload.args:
                if not _is_serializable(arg):
                    raise TaskError(
                        f"Argument {arg!r} of task '{self.payload.name}' is not serializable"
                    )

    @property
    def method_name(self) -> str:
        """Name of the handler operation this task invokes."""
        if isinstance(self.payload, ApplyRevision):
            return f"upgrade_{self.payload.revision}"
        if isinstance(self.payload, PersistRevision):
            return "set_current_revision"
        return self.payload.name

    @property
    def arguments(self) -> tuple:
        """Arguments passed to the handler operation."""
        if isinstance(self.payload, ApplyRevision):
            return ()
        if isinstance(self.payload, PersistRevision):
            return (self.payload.revision,)
        return self.payload.args


def _is_serializable(obj: Any) -> bool:
    """Detect if object can be dill-serialized."""
    try:
        dill.dumps(obj)
        return True
    except (TypeError, AttributeError, pickle.PicklingError):
        return False


def encode_task(task: Task) -> bytes:
    """
    Serialize a task for durable storage.

    Raises:
        TaskError: If the task cannot be serialized
    """
    try:
        return dill.dumps(task)
    except (TypeError, AttributeError, pickle.PicklingError) as e:
        raise TaskError(f"Failed to serialize task '{task.title}': {e}") from e


def decode_task(data: bytes) -> Task:
    """
    Restore a task from its serialized form.

    Raises:
        TaskError: If the data does not hold a task
    """
    try:
        task = dill.loads(data)
    except Exception as e:
        raise TaskError(f"Failed to deserialize task: {e}") from e

    if not isinstance(task, Task):
        raise TaskError(f"Expected a Task, got {type(task).__name__}")
    return task
