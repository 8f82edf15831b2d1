"""SQLAlchemy database models for Juan Note.

The models mirror the schema produced by the migration engine. They are
never used to create tables: ``juan_note.storage.migrations`` owns DDL.
Timestamps are stored as integer seconds since the Unix epoch.
"""
from sqlalchemy import Boolean, Column, ForeignKey, Integer, Text
from sqlalchemy.orm import declarative_base

# Create base class for SQLAlchemy models
Base = declarative_base()


class DBState(Base):
    """Database model for a kanban column."""
    __tablename__ = "states"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(Text, nullable=False)
    color = Column(Text, nullable=True)
    position = Column(Integer, nullable=False, default=0)
    created_at = Column(Integer)
    updated_at = Column(Integer)

    def __repr__(self) -> str:
        """Return string representation of state."""
        return f"<State(id={self.id}, name='{self.name}')>"


class DBNote(Base):
    """Database model for a note."""
    __tablename__ = "notes"
    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(Text, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(Integer)
    updated_at = Column(Integer)
    priority = Column(Integer, default=0)
    labels = Column(Text, default="[]")
    deadline = Column(Integer, nullable=True)
    reminder_minutes = Column(Integer, default=0)
    done = Column(Boolean, default=False)
    state_id = Column(Integer, ForeignKey("states.id"), nullable=True)
    # "order" is an SQL keyword; the column name is quoted by SQLAlchemy
    order = Column("order", Integer, default=0)
    # Present in the schema but not exposed through the note API yet
    section = Column(Text, default="unset")

    def __repr__(self) -> str:
        """Return string representation of note."""
        return f"<Note(id={self.id}, title='{self.title}')>"


class DBSchemaMigration(Base):
    """One applied entry in the migration log."""
    __tablename__ = "schema_migrations"
    version = Column(Integer, primary_key=True)
    description = Column(Text)
    applied_at = Column(Integer)
