"""
Tests for Tasks and Queues.

This test suite covers:
1. Task payload variants and derived method names
2. Serializability checks
3. Queue ordering (weight, then insertion)
4. Claim/release/delete protocol
5. File-backed queue durability
6. Adapter weights (default vs priority)
"""

import socket
import tempfile
from pathlib import Path

import pytest

from upgrader.config import Settings
from upgrader.core.adapter import PRIORITY_WEIGHT, QueueAdapter
from upgrader.core.queue import FileQueue, MemoryQueue, QueueError
from upgrader.core.task import (
    ApplyRevision,
    CustomHook,
    PersistRevision,
    Task,
    TaskError,
    _is_serializable,
    decode_task,
    encode_task,
)
from upgrader.extension.handler import Extension, UpgradeHandler
from upgrader.extension.registry import revision


class QueueHandler(UpgradeHandler):
    @revision(1)
    def upgrade_1(self, ctx):
        return True


def make_task(payload, title="task", weight=0):
    return Task(
        target_type="tests:QueueHandler",
        extension_name="org.example.queue",
        extension_dir="/srv/ext/queue",
        payload=payload,
        title=title,
        weight=weight,
    )


class TestTask:
    """Test task construction."""

    def test_method_names(self):
        """Payload variants should map to handler operations."""
        assert make_task(ApplyRevision(5)).method_name == "upgrade_5"
        assert make_task(ApplyRevision(5)).arguments == ()
        assert make_task(PersistRevision(5)).method_name == "set_current_revision"
        assert make_task(PersistRevision(5)).arguments == (5,)
        assert make_task(CustomHook("rebuild", ("civicrm_contact",))).method_name == "rebuild"
        assert make_task(CustomHook("rebuild", ("civicrm_contact",))).arguments == (
            "civicrm_contact",
        )

    def test_unsupported_payload(self):
        """Unknown payloads should be rejected."""
        with pytest.raises(TaskError, match="Unsupported task payload"):
            make_task(("upgrade_5",))

    def test_unserializable_argument(self):
        """Arguments that cannot be serialized should be rejected up front."""
        sock = socket.socket()
        try:
            assert not _is_serializable(sock)
            with pytest.raises(TaskError, match="not serializable"):
                make_task(CustomHook("rebuild", (sock,)))
        finally:
            sock.close()

    def test_encode_decode(self):
        """Encoded tasks should restore equal tasks."""
        task = make_task(CustomHook("rebuild", ("civicrm_contact", 3)), weight=-1)
        assert decode_task(encode_task(task)) == task

    def test_decode_non_task(self):
        """Decoding something that is not a task should fail."""
        import dill

        with pytest.raises(TaskError, match="Expected a Task"):
            decode_task(dill.dumps({"not": "a task"}))

        with pytest.raises(TaskError, match="Failed to deserialize"):
            decode_task(b"garbage")


class QueueContract:
    """Behavior shared by every queue implementation."""

    def make_queue(self, tmpdir: Path):
        raise NotImplementedError

    def test_order_by_weight_then_insertion(self):
        """Lower weight first; equal weights keep insertion order."""
        with tempfile.TemporaryDirectory() as tmpdir:
            queue = self.make_queue(Path(tmpdir))
            queue.create_item(make_task(ApplyRevision(1), "a"))
            queue.create_item(make_task(PersistRevision(1), "b"))
            queue.create_item(make_task(CustomHook("x"), "c", weight=-1))
            queue.create_item(make_task(ApplyRevision(2), "d"))
            queue.create_item(make_task(CustomHook("y"), "e", weight=-1))

            assert [item.task.title for item in queue.items()] == ["c", "e", "a", "b", "d"]
            assert queue.number_of_items() == 5

    def test_claim_release_delete(self):
        """Claimed items are skipped until released or deleted."""
        with tempfile.TemporaryDirectory() as tmpdir:
            queue = self.make_queue(Path(tmpdir))
            queue.create_item(make_task(ApplyRevision(1), "first"))
            queue.create_item(make_task(ApplyRevision(2), "second"))

            first = queue.claim_item()
            assert first.task.title == "first"
            assert queue.claim_item().task.title == "second"
            assert queue.claim_item() is None

            queue.release_item(first)
            assert queue.claim_item().task.title == "first"

            queue.delete_item(first)
            assert [item.task.title for item in queue.items()] == ["second"]

    def test_delete_missing_item(self):
        """Deleting an item twice should fail."""
        with tempfile.TemporaryDirectory() as tmpdir:
            queue = self.make_queue(Path(tmpdir))
            item = queue.create_item(make_task(ApplyRevision(1)))
            queue.delete_item(item)

            with pytest.raises(QueueError, match="not found"):
                queue.delete_item(item)

    def test_empty_queue(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            queue = self.make_queue(Path(tmpdir))
            assert queue.claim_item() is None
            assert queue.number_of_items() == 0


class TestMemoryQueue(QueueContract):
    """Test the in-memory queue."""

    def make_queue(self, tmpdir):
        return MemoryQueue()


class TestFileQueue(QueueContract):
    """Test the file-backed queue."""

    def make_queue(self, tmpdir):
        return FileQueue(tmpdir / "state" / "queue.dill")

    def test_survives_reopen(self):
        """Items should be visible to a new queue object on the same file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "queue.dill"
            FileQueue(path).create_item(make_task(ApplyRevision(3), "apply"))
            FileQueue(path).create_item(make_task(PersistRevision(3), "persist"))

            reopened = FileQueue(path)
            assert [item.task for item in reopened.items()] == [
                make_task(ApplyRevision(3), "apply"),
                make_task(PersistRevision(3), "persist"),
            ]

    def test_claims_do_not_persist(self):
        """An item claimed by a crashed process is claimable again."""
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "queue.dill"
            crashed = FileQueue(path)
            crashed.create_item(make_task(ApplyRevision(3), "apply"))
            assert crashed.claim_item() is not None

            assert FileQueue(path).claim_item().task.title == "apply"

    def test_ids_keep_increasing(self):
        """Ids should not be reused after deletion."""
        with tempfile.TemporaryDirectory() as tmpdir:
            queue = FileQueue(Path(tmpdir) / "queue.dill")
            first = queue.create_item(make_task(ApplyRevision(1)))
            queue.delete_item(first)
            second = queue.create_item(make_task(ApplyRevision(2)))

            assert second.id > first.id

    def test_corrupt_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "queue.dill"
            path.write_bytes(b"not a queue")

            with pytest.raises(QueueError, match="Failed to read queue file"):
                FileQueue(path).items()

    def test_from_settings(self):
        """Should open the queue file named by settings under base_dir."""
        with tempfile.TemporaryDirectory() as tmpdir:
            settings = Settings(queue_file="var/upgrades.dill")
            queue = FileQueue.from_settings(settings, base_dir=Path(tmpdir))
            queue.create_item(make_task(ApplyRevision(1), "apply"))

            assert queue.path == Path(tmpdir) / "var" / "upgrades.dill"
            assert queue.path.exists()
            assert FileQueue.from_settings(settings, Path(tmpdir)).number_of_items() == 1


class TestQueueAdapter:
    """Test enqueueing through the adapter."""

    def test_enqueue_default_weight(self, tmp_path):
        """Enqueued operations should target the handler at weight 0."""
        adapter = QueueAdapter(Extension("org.example.queue", tmp_path), QueueHandler)
        queue = MemoryQueue()

        item = adapter.enqueue(queue, "Upgrade", ApplyRevision(1))

        assert item.weight == 0
        assert item.task.target_type.endswith(":QueueHandler")
        assert item.task.extension_name == "org.example.queue"
        assert item.task.extension_dir == str(tmp_path)

    def test_add_task_runs_first(self, tmp_path):
        """Manually added tasks should jump ahead of queued revisions."""
        adapter = QueueAdapter(Extension("org.example.queue", tmp_path), QueueHandler)
        queue = MemoryQueue()
        adapter.enqueue(queue, "apply", ApplyRevision(1))
        adapter.enqueue(queue, "persist", PersistRevision(1))

        item = adapter.add_task(queue, "manual", "rebuild", "civicrm_contact")

        assert item.weight == PRIORITY_WEIGHT
        assert item.task.payload == CustomHook("rebuild", ("civicrm_contact",))
        assert queue.claim_item().task.title == "manual"
