#!/usr/bin/env python
"""Main entry point for Juan Note."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from juan_note import __version__
from juan_note.config import config
from juan_note.exceptions import JuanNoteError
from juan_note.observability import configure_logging, metrics
from juan_note.storage.database import Database


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Juan Note - notes and kanban tasks")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("JUAN_NOTE_DATABASE_PATH")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("JUAN_NOTE_LOG_LEVEL", "INFO").upper()
    )
    parser.add_argument(
        "--log-dir",
        help="Directory for rotating log files",
        type=str,
        default=os.environ.get("JUAN_NOTE_LOG_DIR")
    )

    subparsers = parser.add_subparsers(dest="command")
    serve = subparsers.add_parser("serve", help="Run the local REST API (default)")
    serve.add_argument("--host", type=str, default=None, help="Interface to bind")
    serve.add_argument(
        "--port", type=int, default=None,
        help="Port to bind; without it the configured range is probed",
    )
    subparsers.add_parser("mcp", help="Run the MCP server over stdio")
    subparsers.add_parser("migrate", help="Apply pending schema migrations and exit")

    args = parser.parse_args(argv)
    if args.command is None:
        args.command = "serve"
        args.host = None
        args.port = None
    return args


def update_config(args: argparse.Namespace) -> None:
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.log_dir:
        config.log_dir = Path(args.log_dir)
    config.log_level = args.log_level


def _save_metrics_on_exit():
    """Save metrics to disk on shutdown."""
    try:
        if metrics.save_metrics():
            logging.getLogger(__name__).info("Metrics saved to disk on shutdown")
    except OSError as e:
        logging.getLogger(__name__).warning(f"Failed to save metrics on shutdown: {e}")


def main(argv: Optional[List[str]] = None) -> None:
    """Run the selected Juan Note surface."""
    args = parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(log_dir=config.log_dir, level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        metrics.set_metrics_file(log_dir / "metrics.json")
        atexit.register(_save_metrics_on_exit)

    # The schema must be current before any surface starts
    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        database = Database()
        applied = database.initialize()
    except (JuanNoteError, OSError) as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)

    if args.command == "migrate":
        logger.info(f"Migrations applied: {applied or 'none (schema up to date)'}")
        database.dispose()
        return

    from juan_note.services.note_service import NoteService

    service = NoteService(database)
    try:
        if args.command == "mcp":
            from juan_note.server.mcp_server import JuanNoteMcpServer

            logger.info("Starting Juan Note MCP server")
            JuanNoteMcpServer(service).run()
        else:
            from juan_note.api.server import run_http_server

            logger.info("Starting Juan Note HTTP API")
            run_http_server(service, host=args.host, port=args.port)
    except JuanNoteError as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)
    finally:
        database.dispose()


if __name__ == "__main__":
    main()
