"""Local REST facade for Juan Note."""

from juan_note.api.app import create_app
from juan_note.api.server import find_available_port, run_http_server

__all__ = ["create_app", "find_available_port", "run_http_server"]
