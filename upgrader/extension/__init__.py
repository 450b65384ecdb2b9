"""
Upgrader Extension System - Revision tracking and lifecycle handling.

This module handles:
- Revision registration and discovery
- Current-revision storage with legacy migration
- Install/uninstall bootstrap files
- Lifecycle event dispatch
"""

__all__ = []
