"""
Revision Registry.

This module provides static registration and discovery of upgrade revisions.

Key features:
- @revision(n) marks a handler method as the upgrade to revision n
- @task marks a handler method as callable from a queued CustomHook task
- Registrations are collected and validated when the handler class is created
- Revisions are listed in ascending numeric order
"""

from collections.abc import Callable
from typing import Any

_REVISION_ATTR = "__upgrader_revision__"
_TASK_ATTR = "__upgrader_task__"


class RegistrationError(Exception):
    """Raised when a handler declares invalid revisions or tasks."""

    pass


def revision(number: int):
    """
    Decorator to register a handler method as the upgrade to a revision.

    The method receives the orchestrator context and must be safe to run
    again: a crash between applying and persisting a revision re-runs it.
    Returning False marks the upgrade as failed.

    Example:
        class Upgrader(UpgradeHandler):
            @revision(4200)
            def add_contact_index(self, ctx):
                ctx.execute_sql_file("sql/upgrade_4200.sql")
    """
    if isinstance(number, bool) or not isinstance(number, int) or number < 0:
        raise RegistrationError(
            f"Revision must be a non-negative integer, got {number!r}"
        )

    def decorator(func: Callable) -> Callable:
        setattr(func, _REVISION_ATTR, number)
        return func

    return decorator


def task(func: Callable) -> Callable:
    """
    Decorator to make a handler method callable from a queued task.

    Example:
        class Upgrader(UpgradeHandler):
            @task
            def rebuild_cache(self, ctx, table):
                ...
    """
    setattr(func, _TASK_ATTR, func.__name__)
    return func


def collect_registrations(
    cls: type, namespace: dict[str, Any]
) -> tuple[dict[int, Callable], dict[str, Callable]]:
    """
    Build the revision and task tables for a newly created handler class.

    Tables inherited from base classes are extended with the functions
    declared in `namespace`. An inherited entry whose method is redefined
    in `namespace` is dropped, whether or not the new definition is
    registered again.

    Args:
        cls: The handler class being created
        namespace: The class body (cls.__dict__)

    Returns:
        Tuple of (revision -> function, task name -> function)

    Raises:
        RegistrationError: If two functions claim the same revision
    """
    revisions: dict[int, Callable] = {}
    tasks: dict[str, Callable] = {}
    for base in reversed(cls.__mro__[1:]):
        revisions.update(base.__dict__.get("_revision_functions", {}))
        tasks.update(base.__dict__.get("_task_functions", {}))

    revisions = {n: f for n, f in revisions.items() if f.__name__ not in namespace}
    tasks = {name: f for name, f in tasks.items() if name not in namespace}

    declared: dict[int, str] = {}
    for attr_name, value in namespace.items():
        func = value.__func__ if isinstance(value, staticmethod | classmethod) else value
        if not callable(func):
            continue

        number = getattr(func, _REVISION_ATTR, None)
        if number is not None:
            if number in declared:
                raise RegistrationError(
                    f"{cls.__qualname__}: revision {number} is claimed by both "
                    f"'{declared[number]}' and '{attr_name}'"
                )
            declared[number] = attr_name
            revisions[number] = func

        if hasattr(func, _TASK_ATTR):
            tasks[attr_name] = func

    return revisions, tasks


def list_revisions(handler_type: type) -> list[int]:
    """
    List the revisions a handler class offers.

    Args:
        handler_type: An UpgradeHandler subclass

    Returns:
        Revision numbers, ascending and unique (empty if none)
    """
    return sorted(set(getattr(handler_type, "_revision_functions", {})))


def revision_function(handler_type: type, number: int) -> Callable:
    """
    Get the function registered for a revision.

    Raises:
        RegistrationError: If the handler has no such revision
    """
    functions = getattr(handler_type, "_revision_functions", {})
    if number not in functions:
        raise RegistrationError(
            f"{handler_type.__qualname__} has no upgrade for revision {number}"
        )
    return functions[number]


def task_function(handler_type: type, name: str) -> Callable:
    """
    Get the function registered as a task under `name`.

    Raises:
        RegistrationError: If the handler has no such task
    """
    functions = getattr(handler_type, "_task_functions", {})
    if name not in functions:
        raise RegistrationError(
            f"{handler_type.__qualname__} has no task named '{name}'"
        )
    return functions[name]
