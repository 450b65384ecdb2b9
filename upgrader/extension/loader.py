"""
Handler Type Loader.

This module maps queued tasks back to their handler classes.

Key features:
- Handler classes register themselves under "module:QualName" when defined
- Unknown paths are imported with importlib and cached
- Resolved classes are checked to be upgrade handlers
"""

import importlib

_handler_cache: dict[str, type] = {}


class LoaderError(Exception):
    """Base exception for loader-related errors."""

    pass


def handler_path(handler_type: type) -> str:
    """Return the import path stored in tasks for a handler class."""
    return f"{handler_type.__module__}:{handler_type.__qualname__}"


def register_handler_type(handler_type: type) -> None:
    """Cache a handler class under its import path."""
    _handler_cache[handler_path(handler_type)] = handler_type


def resolve_handler_type(path: str) -> type:
    """
    Resolve a handler class from its import path.

    Args:
        path: "module:QualName" as produced by handler_path()

    Returns:
        The handler class

    Raises:
        LoaderError: If the path is malformed, cannot be imported, or does
            not name an upgrade handler
    """
    if path in _handler_cache:
        return _handler_cache[path]

    module_name, sep, qualname = path.partition(":")
    if not sep or not module_name or not qualname:
        raise LoaderError(f"Invalid handler path: {path!r}")

    try:
        obj = importlib.import_module(module_name)
    except ImportError as e:
        raise LoaderError(f"Failed to import handler module {module_name}: {e}") from e

    for part in qualname.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise LoaderError(f"Handler {qualname} not found in {module_name}") from e

    from upgrader.extension.handler import UpgradeHandler

    if not isinstance(obj, type) or not issubclass(obj, UpgradeHandler):
        raise LoaderError(f"{path} is not an UpgradeHandler subclass")

    _handler_cache[path] = obj
    return obj
