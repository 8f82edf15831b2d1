"""Tests for the command line entry point."""
import logging

import pytest
from sqlalchemy import text

from juan_note import main as main_module
from juan_note.config import config
from juan_note.main import main, parse_args
from juan_note.storage.database import Database


@pytest.fixture
def isolated_cli(monkeypatch):
    """Keep main() from leaking config, handlers or exit hooks into other tests."""
    for name in ("database_path", "log_dir", "log_level"):
        monkeypatch.setattr(config, name, getattr(config, name))
    monkeypatch.setattr(main_module.atexit, "register", lambda func: None)
    monkeypatch.setattr(main_module.metrics, "set_metrics_file", lambda path: None)
    package_logger = logging.getLogger("juan_note")
    saved_handlers = list(package_logger.handlers)
    saved_level = package_logger.level
    yield
    for handler in package_logger.handlers:
        if handler not in saved_handlers:
            handler.close()
    package_logger.handlers = saved_handlers
    package_logger.setLevel(saved_level)


class TestParseArgs:
    """Tests for argument parsing."""

    def test_defaults_to_serve(self):
        args = parse_args([])
        assert args.command == "serve"
        assert args.host is None
        assert args.port is None

    def test_serve_options(self):
        args = parse_args(["serve", "--host", "0.0.0.0", "--port", "4000"])
        assert args.host == "0.0.0.0"
        assert args.port == 4000

    def test_global_options(self):
        args = parse_args(["--database-path", "/tmp/x.db", "--log-level", "DEBUG", "mcp"])
        assert args.command == "mcp"
        assert args.database_path == "/tmp/x.db"
        assert args.log_level == "DEBUG"

    def test_bad_log_level(self):
        with pytest.raises(SystemExit):
            parse_args(["--log-level", "LOUD"])


class TestMain:
    """Tests for running main()."""

    def test_migrate_creates_schema(self, isolated_cli, tmp_path):
        db_path = tmp_path / "cli" / "notes.db"
        main([
            "--database-path", str(db_path),
            "--log-dir", str(tmp_path / "logs"),
            "migrate",
        ])
        assert config.database_path == db_path
        db = Database(database_path=db_path)
        try:
            with db.connection() as conn:
                versions = [
                    r[0] for r in conn.execute(text("SELECT version FROM schema_migrations"))
                ]
            assert versions == [1, 2, 3, 4, 5, 6, 7]
        finally:
            db.dispose()
        assert (tmp_path / "logs" / "juan-note.log").exists()

    def test_unopenable_database_exits(self, isolated_cli, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        with pytest.raises(SystemExit) as excinfo:
            main([
                "--database-path", str(blocker / "notes.db"),
                "--log-dir", str(tmp_path / "logs"),
                "migrate",
            ])
        assert excinfo.value.code == 1

    def test_serve_hands_service_to_http_server(self, isolated_cli, tmp_path, monkeypatch):
        calls = []

        def fake_run_http_server(service, host=None, port=None):
            calls.append((service.get_all_states().success, host, port))

        monkeypatch.setattr("juan_note.api.server.run_http_server", fake_run_http_server)
        main([
            "--database-path", str(tmp_path / "serve.db"),
            "--log-dir", str(tmp_path / "logs"),
            "serve", "--port", "4321",
        ])
        assert calls == [(True, None, 4321)]
