"""
Juan Note - a personal note and kanban task manager backed by SQLite.

The package exposes one command surface (``services.note_service``) that is
shared by the desktop bridge, the local REST facade and the MCP tool server.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("juan-note")
except PackageNotFoundError:
    __version__ = "1.0.0"
