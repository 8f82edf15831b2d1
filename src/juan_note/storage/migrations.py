"""Versioned schema migrations for the note store.

Each migration is a numbered, idempotent step. Applied versions are logged in
``schema_migrations``; a run applies, in order, every registered step above
the highest logged version. Steps probe the live schema before creating or
altering anything, so they are safe to re-run against a database that an
older build already partly migrated.
"""
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import insert, select, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from juan_note.exceptions import MigrationError
from juan_note.models.db_models import DBSchemaMigration
from juan_note.models.schema import to_epoch, utc_now

if TYPE_CHECKING:
    from juan_note.storage.database import Database

logger = logging.getLogger(__name__)

# Columns seeded into a fresh board: (name, color, position)
DEFAULT_STATES = (
    ("To Do", "#75715E", 0),
    ("In Progress", "#66D9EF", 1),
    ("Done", "#A6E22E", 2),
)

# Timestamp columns normalised to integer epoch seconds by migration 6
TIMESTAMP_COLUMNS = (
    ("notes", "created_at"),
    ("notes", "updated_at"),
    ("notes", "deadline"),
    ("states", "created_at"),
    ("states", "updated_at"),
)


@dataclass(frozen=True)
class Migration:
    """One schema step."""
    version: int
    description: str
    apply: Callable[[Connection], None]


# ----------------------------------------------------------------------
# Schema probes
# ----------------------------------------------------------------------

def _table_exists(conn: Connection, table: str) -> bool:
    row = conn.execute(
        text("SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = :name"),
        {"name": table},
    ).first()
    return row is not None


def _column_types(conn: Connection, table: str) -> Dict[str, str]:
    """Map column name to declared type for a table."""
    rows = conn.execute(text(f'PRAGMA table_info("{table}")')).fetchall()
    return {row[1]: (row[2] or "").upper() for row in rows}


def _add_column(conn: Connection, table: str, column: str, ddl: str) -> bool:
    """Add a column unless it already exists. Returns True if it was added."""
    if column in _column_types(conn, table):
        return False
    conn.execute(text(f'ALTER TABLE "{table}" ADD COLUMN "{column}" {ddl}'))
    logger.info(f"Added column {table}.{column}")
    return True


def _indexes_on_column(conn: Connection, table: str, column: str) -> List[Tuple[str, str]]:
    """Return (name, create_sql) for explicit indexes covering a column."""
    indexes = []
    for row in conn.execute(text(f'PRAGMA index_list("{table}")')).fetchall():
        name = row[1]
        columns = [
            info[2] for info in conn.execute(text(f'PRAGMA index_info("{name}")')).fetchall()
        ]
        if column not in columns:
            continue
        sql = conn.execute(
            text("SELECT sql FROM sqlite_master WHERE type = 'index' AND name = :name"),
            {"name": name},
        ).scalar()
        # Auto-indexes backing constraints have no SQL and cannot be recreated
        if sql:
            indexes.append((name, sql))
    return indexes


def _trigger_sql(conn: Connection, name: str) -> Optional[str]:
    return conn.execute(
        text("SELECT sql FROM sqlite_master WHERE type = 'trigger' AND name = :name"),
        {"name": name},
    ).scalar()


# ----------------------------------------------------------------------
# Steps
# ----------------------------------------------------------------------

_FTS_TRIGGERS = {
    "notes_fts_insert": """
        CREATE TRIGGER notes_fts_insert AFTER INSERT ON notes BEGIN
            INSERT INTO notes_fts(rowid, title, content)
            VALUES (new.id, new.title, new.content);
        END
    """,
    "notes_fts_delete": """
        CREATE TRIGGER notes_fts_delete AFTER DELETE ON notes BEGIN
            INSERT INTO notes_fts(notes_fts, rowid, title, content)
            VALUES ('delete', old.id, old.title, old.content);
        END
    """,
    "notes_fts_update": """
        CREATE TRIGGER notes_fts_update AFTER UPDATE OF title, content ON notes BEGIN
            INSERT INTO notes_fts(notes_fts, rowid, title, content)
            VALUES ('delete', old.id, old.title, old.content);
            INSERT INTO notes_fts(rowid, title, content)
            VALUES (new.id, new.title, new.content);
        END
    """,
}


def _ensure_fts_triggers(conn: Connection) -> bool:
    """Create the index-sync triggers, replacing any that lack the 'delete' form.

    An external-content index cannot be maintained with plain UPDATE or
    DELETE statements against it, so older triggers written that way are
    dropped and recreated. Returns True if an existing trigger was replaced.
    """
    replaced = False
    for name, ddl in _FTS_TRIGGERS.items():
        existing = _trigger_sql(conn, name)
        if existing is not None:
            if name == "notes_fts_insert" or "'delete'" in existing:
                continue
            conn.execute(text(f"DROP TRIGGER {name}"))
            logger.warning(f"Replacing out-of-date full-text trigger {name}")
            replaced = True
        conn.execute(text(ddl))
    return replaced


def _create_notes_and_fts(conn: Connection) -> None:
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS notes (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            created_at INTEGER DEFAULT (strftime('%s', 'now')),
            updated_at INTEGER DEFAULT (strftime('%s', 'now')),
            priority INTEGER DEFAULT 0,
            labels TEXT DEFAULT '[]'
        )
    """))
    conn.execute(text("CREATE INDEX IF NOT EXISTS idx_notes_created_at ON notes(created_at)"))
    conn.execute(text("CREATE INDEX IF NOT EXISTS idx_notes_priority ON notes(priority)"))

    fts_existed = _table_exists(conn, "notes_fts")
    conn.execute(text("""
        CREATE VIRTUAL TABLE IF NOT EXISTS notes_fts USING fts5(
            title,
            content,
            content='notes',
            content_rowid='id'
        )
    """))
    replaced = _ensure_fts_triggers(conn)
    if not fts_existed or replaced:
        # Index rows the triggers never saw
        conn.execute(text("INSERT INTO notes_fts(notes_fts) VALUES ('rebuild')"))


def _add_deadline_and_reminder(conn: Connection) -> None:
    _add_column(conn, "notes", "deadline", "INTEGER")
    _add_column(conn, "notes", "reminder_minutes", "INTEGER DEFAULT 0")


def _add_done(conn: Connection) -> None:
    _add_column(conn, "notes", "done", "INTEGER DEFAULT 0")
    conn.execute(text("CREATE INDEX IF NOT EXISTS idx_notes_done ON notes(done)"))


def _create_states(conn: Connection) -> None:
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS states (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            color TEXT,
            position INTEGER NOT NULL DEFAULT 0,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
    """))
    _add_column(conn, "notes", "state_id", "INTEGER REFERENCES states(id)")
    conn.execute(text("CREATE INDEX IF NOT EXISTS idx_states_position ON states(position)"))
    conn.execute(text("CREATE INDEX IF NOT EXISTS idx_notes_state_id ON notes(state_id)"))

    count = conn.execute(text("SELECT COUNT(*) FROM states")).scalar()
    if count == 0:
        for name, color, position in DEFAULT_STATES:
            conn.execute(
                text("INSERT INTO states (name, color, position) VALUES (:name, :color, :position)"),
                {"name": name, "color": color, "position": position},
            )
        logger.info(f"Seeded {len(DEFAULT_STATES)} default states")


def _add_order(conn: Connection) -> None:
    added = _add_column(conn, "notes", "order", "INTEGER DEFAULT 0")
    conn.execute(text('CREATE INDEX IF NOT EXISTS idx_notes_order ON notes("order")'))
    if added:
        # Existing notes keep their most-recently-updated-first order
        conn.execute(text("""
            WITH ranked AS (
                SELECT id, ROW_NUMBER() OVER (ORDER BY updated_at DESC) - 1 AS position
                FROM notes
            )
            UPDATE notes
            SET "order" = (SELECT position FROM ranked WHERE ranked.id = notes.id)
        """))


def _convert_timestamp_column(conn: Connection, table: str, column: str) -> None:
    """Convert one timestamp column from text to integer epoch seconds."""
    if not _table_exists(conn, table):
        return
    columns = _column_types(conn, table)
    temp = f"{column}_epoch"

    if column not in columns:
        # A previous run stopped between DROP and RENAME
        if temp in columns:
            conn.execute(text(f'ALTER TABLE "{table}" RENAME COLUMN "{temp}" TO "{column}"'))
        return

    if columns[column] == "INTEGER":
        conn.execute(text(
            f'UPDATE "{table}" SET "{column}" = CAST(strftime(\'%s\', "{column}") AS INTEGER) '
            f"WHERE typeof(\"{column}\") = 'text'"
        ))
        return

    # Column declared with another type: rebuild it as INTEGER
    indexes = _indexes_on_column(conn, table, column)
    for name, _ in indexes:
        conn.execute(text(f'DROP INDEX IF EXISTS "{name}"'))
    if temp not in columns:
        conn.execute(text(f'ALTER TABLE "{table}" ADD COLUMN "{temp}" INTEGER'))
    conn.execute(text(
        f'UPDATE "{table}" SET "{temp}" = CASE '
        f"WHEN typeof(\"{column}\") = 'text' "
        f'THEN CAST(strftime(\'%s\', "{column}") AS INTEGER) '
        f'ELSE "{column}" END'
    ))
    conn.execute(text(f'ALTER TABLE "{table}" DROP COLUMN "{column}"'))
    conn.execute(text(f'ALTER TABLE "{table}" RENAME COLUMN "{temp}" TO "{column}"'))
    for _, sql in indexes:
        conn.exec_driver_sql(sql)
    logger.info(f"Converted {table}.{column} to integer timestamps")


def _convert_timestamps(conn: Connection) -> None:
    for table, column in TIMESTAMP_COLUMNS:
        _convert_timestamp_column(conn, table, column)


def _add_section(conn: Connection) -> None:
    _add_column(conn, "notes", "section", "TEXT DEFAULT 'unset'")
    conn.execute(text("CREATE INDEX IF NOT EXISTS idx_notes_section ON notes(section)"))


MIGRATIONS: Tuple[Migration, ...] = (
    Migration(1, "Create notes table and full-text index", _create_notes_and_fts),
    Migration(2, "Add deadline and reminder columns", _add_deadline_and_reminder),
    Migration(3, "Add done flag", _add_done),
    Migration(4, "Create kanban states", _create_states),
    Migration(5, "Add manual note order", _add_order),
    Migration(6, "Store timestamps as integer epoch seconds", _convert_timestamps),
    Migration(7, "Add note section", _add_section),
)


def validate_registry(migrations: Sequence[Migration]) -> None:
    """Check versions run 1..N with no gaps or duplicates."""
    versions = [m.version for m in migrations]
    expected = list(range(1, len(migrations) + 1))
    if versions != expected:
        raise ValueError(
            f"Migration versions must be consecutive from 1, got {versions}"
        )


validate_registry(MIGRATIONS)


class MigrationRunner:
    """Apply pending migrations against a ``Database``.

    Args:
        database: The store to migrate.
        migrations: Registry to apply; defaults to ``MIGRATIONS``.
    """

    def __init__(
        self,
        database: "Database",
        migrations: Sequence[Migration] = MIGRATIONS,
    ) -> None:
        validate_registry(migrations)
        self.database = database
        self.migrations = tuple(migrations)

    @staticmethod
    def _ensure_log_table(conn: Connection) -> None:
        conn.execute(text("""
            CREATE TABLE IF NOT EXISTS schema_migrations (
                version INTEGER PRIMARY KEY,
                description TEXT,
                applied_at INTEGER
            )
        """))

    def applied_versions(self) -> List[int]:
        """Versions recorded in the migration log, ascending."""
        with self.database.connection() as conn:
            self._ensure_log_table(conn)
            versions = conn.execute(
                select(DBSchemaMigration.version).order_by(DBSchemaMigration.version)
            ).scalars().all()
        return list(versions)

    def current_version(self) -> int:
        """Highest recorded version, 0 for a fresh database."""
        applied = self.applied_versions()
        return applied[-1] if applied else 0

    def pending(self) -> List[Migration]:
        current = self.current_version()
        return [m for m in self.migrations if m.version > current]

    def run(self) -> List[int]:
        """Apply every pending migration in version order.

        Returns:
            The versions applied by this call.

        Raises:
            MigrationError: On the first failing step. The failing version is
                not recorded and later steps are not attempted.
        """
        applied: List[int] = []
        with self.database.lock:
            pending = self.pending()
            if not pending:
                logger.debug("Schema is up to date")
                return applied

            for migration in pending:
                logger.info(
                    f"Applying migration {migration.version}: {migration.description}"
                )
                try:
                    with self.database.connection() as conn:
                        migration.apply(conn)
                        conn.execute(
                            insert(DBSchemaMigration).values(
                                version=migration.version,
                                description=migration.description,
                                applied_at=to_epoch(utc_now()),
                            )
                        )
                except SQLAlchemyError as e:
                    logger.error(f"Migration {migration.version} failed: {e}")
                    raise MigrationError(
                        f"Migration {migration.version} ({migration.description}) failed",
                        version=migration.version,
                        original_error=e,
                    ) from e
                applied.append(migration.version)

        logger.info(f"Applied migrations {applied}")
        return applied
