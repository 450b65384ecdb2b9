"""
Task Queues.

This module provides the ordered queues that hold upgrade tasks.

Key features:
- Execution order: ascending weight, then insertion order
- Claim/release/delete protocol for queue runners
- In-memory queue for a single process
- File-backed queue that survives process restarts
"""

import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path

import dill

from upgrader.config import Settings
from upgrader.core.task import Task, TaskError, decode_task, encode_task


class QueueError(Exception):
    """Base exception for queue-related errors."""

    pass


@dataclass(frozen=True)
class QueueItem:
    """
    A task stored in a queue.

    Attributes:
        id: Insertion sequence number, unique within the queue
        weight: Ordering weight (lower runs first)
        task: The queued task
    """

    id: int
    weight: int
    task: Task

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.weight, self.id)


class TaskQueue:
    """
    Base class for task queues.

    Subclasses store items; ordering and claim bookkeeping live here.
    Claims are held in memory only: an item claimed by a process that dies
    is visible again to the next process.
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._claimed: set[int] = set()

    def create_item(self, task: Task) -> QueueItem:
        """
        Append a task, using the task's weight for ordering.

        Args:
            task: Task to store

        Returns:
            The stored QueueItem
        """
        with self._lock:
            return self._append(task)

    def claim_item(self) -> QueueItem | None:
        """
        Claim the next runnable item.

        Returns:
            The first unclaimed item in execution order, or None if empty
        """
        with self._lock:
            for item in sorted(self._load(), key=lambda i: i.sort_key):
                if item.id not in self._claimed:
                    self._claimed.add(item.id)
                    return item
            return None

    def release_item(self, item: QueueItem) -> None:
        """Give a claimed item back so it can be claimed again."""
        with self._lock:
            self._claimed.discard(item.id)

    def delete_item(self, item: QueueItem) -> None:
        """
        Remove a finished item.

        Raises:
            QueueError: If the item is not in the queue
        """
        with self._lock:
            self._remove(item.id)
            self._claimed.discard(item.id)

    def number_of_items(self) -> int:
        """Count stored items, claimed or not."""
        with self._lock:
            return len(self._load())

    def items(self) -> list[QueueItem]:
        """List stored items in execution order."""
        with self._lock:
            return sorted(self._load(), key=lambda i: i.sort_key)

    def _append(self, task: Task) -> QueueItem:
        raise NotImplementedError

    def _remove(self, item_id: int) -> None:
        raise NotImplementedError

    def _load(self) -> list[QueueItem]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class MemoryQueue(TaskQueue):
    """Queue held in process memory."""

    def __init__(self, name: str = "memory"):
        super().__init__(name)
        self._items: list[QueueItem] = []
        self._next_id = 1

    def _append(self, task: Task) -> QueueItem:
        item = QueueItem(id=self._next_id, weight=task.weight, task=task)
        self._next_id += 1
        self._items.append(item)
        return item

    def _remove(self, item_id: int) -> None:
        for idx, item in enumerate(self._items):
            if item.id == item_id:
                del self._items[idx]
                return
        raise QueueError(f"Item {item_id} not found in queue {self.name!r}")

    def _load(self) -> list[QueueItem]:
        return list(self._items)


class FileQueue(TaskQueue):
    """
    Queue persisted to a single dill file.

    Every mutation rewrites the file through a temporary sibling and an
    atomic rename. Tasks are stored in encoded form so that a corrupt entry
    is reported when read rather than breaking the whole file.
    """

    def __init__(self, path: Path, name: str | None = None):
        super().__init__(name or path.stem)
        self.path = path

    @classmethod
    def from_settings(cls, settings: Settings, base_dir: Path = Path(".")) -> "FileQueue":
        """Open the queue file named by settings, relative to base_dir."""
        return cls(base_dir / settings.queue_file)

    def _read_state(self) -> dict:
        if not self.path.exists():
            return {"next_id": 1, "items": []}

        try:
            with open(self.path, "rb") as f:
                state = dill.load(f)
        except Exception as e:
            raise QueueError(f"Failed to read queue file {self.path}: {e}") from e

        if not isinstance(state, dict) or "items" not in state:
            raise QueueError(f"Queue file {self.path} has an unexpected layout")
        return state

    def _write_state(self, state: dict) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "wb") as f:
                dill.dump(state, f)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except Exception as e:
            raise QueueError(f"Failed to write queue file {self.path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

    def _append(self, task: Task) -> QueueItem:
        try:
            blob = encode_task(task)
        except TaskError as e:
            raise QueueError(f"Cannot store task in queue {self.name!r}: {e}") from e

        state = self._read_state()
        item_id = state["next_id"]
        state["items"].append((item_id, task.weight, blob))
        state["next_id"] = item_id + 1
        self._write_state(state)
        return QueueItem(id=item_id, weight=task.weight, task=task)

    def _remove(self, item_id: int) -> None:
        state = self._read_state()
        remaining = [entry for entry in state["items"] if entry[0] != item_id]
        if len(remaining) == len(state["items"]):
            raise QueueError(f"Item {item_id} not found in queue {self.name!r}")
        state["items"] = remaining
        self._write_state(state)

    def _load(self) -> list[QueueItem]:
        items = []
        for item_id, weight, blob in self._read_state()["items"]:
            try:
                task = decode_task(blob)
            except TaskError as e:
                raise QueueError(f"Corrupt item {item_id} in queue {self.name!r}: {e}") from e
            items.append(QueueItem(id=item_id, weight=weight, task=task))
        return items
