"""Port selection and the uvicorn runner for the REST facade."""
import logging
import socket
from typing import Optional

import uvicorn

from juan_note.api.app import create_app
from juan_note.config import JuanNoteConfig, config
from juan_note.exceptions import ConfigurationError, ErrorCode
from juan_note.services.note_service import NoteService

logger = logging.getLogger(__name__)


def is_port_free(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def find_available_port(host: str, start: int, end: int) -> int:
    """Return the first port in ``[start, end]`` that can be bound.

    Raises:
        ConfigurationError: If every port in the range is taken.
    """
    for port in range(start, end + 1):
        if is_port_free(host, port):
            return port
        logger.debug(f"Port {port} on {host} is in use")
    raise ConfigurationError(
        f"No available port between {start} and {end}",
        config_key="http_port",
        code=ErrorCode.NO_AVAILABLE_PORT,
    )


def run_http_server(
    service: NoteService,
    app_config: Optional[JuanNoteConfig] = None,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> None:
    """Serve the REST facade until interrupted.

    An explicit port is used as-is; otherwise the configured range is probed.
    """
    app_config = app_config or config
    host = host or app_config.http_host
    if port is None:
        port = find_available_port(host, app_config.http_port, app_config.http_port_max)
    app = create_app(service, app_config)
    logger.info(f"HTTP API listening on http://{host}:{port}")
    uvicorn.run(app, host=host, port=port, log_level=app_config.log_level.lower())
