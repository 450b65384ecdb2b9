"""
Queue Adapter.

This module turns handler operations into durable queue items and binds
queued items back to a fresh handler when they run.

Key features:
- Revision tasks at default weight, manual tasks at priority weight -1
- Execution builds a new handler and context per item (no shared instance)
- Single-step runner: claim, execute, delete on success, release on failure
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from upgrader.core.queue import QueueItem, TaskQueue
from upgrader.core.task import CustomHook, Payload, Task

if TYPE_CHECKING:
    from upgrader.extension.dispatcher import Backends
    from upgrader.extension.handler import Extension

logger = logging.getLogger(__name__)

DEFAULT_WEIGHT = 0
PRIORITY_WEIGHT = -1


class QueueAdapter:
    """
    Enqueues operations of one extension's handler.

    Example:
        adapter = QueueAdapter(extension, MembershipUpgrader)
        adapter.enqueue(queue, "Upgrade to 1002", ApplyRevision(1002))
    """

    def __init__(self, extension: "Extension", handler_type: type):
        from upgrader.extension.loader import handler_path

        self.extension = extension
        self.handler_type = handler_type
        self.target_type = handler_path(handler_type)

    def make_task(self, title: str, payload: Payload, weight: int = DEFAULT_WEIGHT) -> Task:
        """Build a task targeting this adapter's handler."""
        return Task(
            target_type=self.target_type,
            extension_name=self.extension.name,
            extension_dir=str(self.extension.path),
            payload=payload,
            title=title,
            weight=weight,
        )

    def enqueue(
        self,
        queue: TaskQueue,
        title: str,
        payload: Payload,
        weight: int = DEFAULT_WEIGHT,
    ) -> QueueItem:
        """
        Add an operation to a queue.

        Args:
            queue: Destination queue
            title: Human-readable description
            payload: Operation to perform
            weight: Ordering weight (lower runs first)

        Returns:
            The created QueueItem

        Raises:
            TaskError: If an argument cannot be serialized
        """
        item = queue.create_item(self.make_task(title, payload, weight))
        logger.debug("Queued %r as item %d in %r", title, item.id, queue)
        return item

    def add_task(self, queue: TaskQueue, title: str, name: str, *args: Any) -> QueueItem:
        """
        Queue a @task function of the handler ahead of default-weight items.

        Tasks added this way run before revision tasks already in the queue.
        Code that relies on strict revision order must account for that.

        Args:
            queue: Destination queue
            title: Human-readable description
            name: Name of the @task function
            *args: Serializable arguments for the function

        Returns:
            The created QueueItem
        """
        return self.enqueue(queue, title, CustomHook(name, tuple(args)), PRIORITY_WEIGHT)


def execute_task(task: Task, queue: TaskQueue | None, backends: "Backends") -> Any:
    """
    Run a queued task against a newly constructed handler.

    Args:
        task: The task to run
        queue: Queue the task came from; bound to the new context so the
            task can add further items
        backends: Stores and executor available in this process

    Returns:
        The operation's result

    Raises:
        LoaderError: If the handler class cannot be resolved
        TaskError: If the operation reports failure
    """
    from upgrader.extension.dispatcher import LifecycleDispatcher
    from upgrader.extension.handler import Extension
    from upgrader.extension.loader import resolve_handler_type

    handler_type = resolve_handler_type(task.target_type)
    extension = Extension(task.extension_name, Path(task.extension_dir))
    dispatcher = LifecycleDispatcher(extension, handler_type(), backends, queue=queue)

    logger.debug("Running task %r (%s)", task.title, task.method_name)
    return dispatcher.run_task(task.payload)


def run_next(queue: TaskQueue, backends: "Backends") -> QueueItem | None:
    """
    Run the next item of a queue.

    The item is deleted only after it succeeds. A failing item is released
    and the error re-raised so the caller stops before later items.

    Returns:
        The item that ran, or None if the queue is empty
    """
    item = queue.claim_item()
    if item is None:
        return None

    try:
        execute_task(item.task, queue, backends)
    except Exception:
        queue.release_item(item)
        raise

    queue.delete_item(item)
    return item
