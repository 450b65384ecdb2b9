"""
Upgrader Core - Durable task plumbing.

This module contains:
- Task: Serializable payloads for queued upgrade work
- Queue: Ordered task queues (in-memory and file-backed)
- Adapter: Enqueueing and re-binding queued tasks to handlers
"""

__all__ = []
