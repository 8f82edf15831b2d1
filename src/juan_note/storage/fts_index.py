"""FTS5 full-text search index for notes.

Encapsulates query classification, MATCH expression building, graceful
degradation to substring search and index maintenance.
"""
import logging
import re
import sqlite3
from typing import TYPE_CHECKING, List, Optional, Tuple

from sqlalchemy import and_, or_, select, text
from sqlalchemy.exc import DatabaseError as SQLAlchemyDatabaseError
from sqlalchemy.exc import OperationalError as SQLAlchemyOperationalError

from juan_note.exceptions import ErrorCode, SearchError
from juan_note.models.db_models import DBNote
from juan_note.utils import escape_like_pattern

if TYPE_CHECKING:
    from juan_note.storage.database import Database

logger = logging.getLogger(__name__)

FTS5_KEYWORDS = frozenset({"AND", "OR", "NOT", "NEAR"})
FTS5_OPERATOR_CHARS = frozenset('"*():^-+')
# Plain queries with more terms than this go to the full-text engine
MAX_PLAIN_TERMS = 3

SEARCH_MODE_FTS = "fts"
SEARCH_MODE_FALLBACK = "fallback"
SEARCH_MODE_SUBSTRING = "substring"

_TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


def is_structured_query(query: str) -> bool:
    """Decide whether a query should go to the full-text engine.

    A query is structured when it uses FTS operator characters, an
    upper-case FTS keyword, or has more than three terms. Anything else is a
    short plain phrase and is served by substring match.
    """
    if any(ch in FTS5_OPERATOR_CHARS for ch in query):
        return True
    terms = query.split()
    if any(term in FTS5_KEYWORDS for term in terms):
        return True
    return len(terms) > MAX_PLAIN_TERMS


def search_terms(query: str) -> List[str]:
    """Split a query into the plain words the index and fallback match on.

    Operator characters and keywords are discarded. Negated words (after
    ``NOT`` or with a leading ``-``) are dropped rather than excluded, so a
    negation never turns into a positive match on the negated word.
    """
    terms: List[str] = []
    skip_next = False
    for raw in query.split():
        if skip_next:
            skip_next = False
            continue
        if raw == "NOT":
            skip_next = True
            continue
        if raw in FTS5_KEYWORDS or raw.startswith("-"):
            continue
        terms.extend(_TOKEN_PATTERN.findall(raw))
    return terms


def build_match_expression(query: str) -> Optional[str]:
    """Build a safe FTS5 MATCH expression from free text.

    Each word from ``search_terms`` is prefix-matched against title or
    content and all words must match.

    Returns:
        The expression, or None if the query holds no usable terms.
    """
    terms = search_terms(query)
    if not terms:
        return None
    return " AND ".join(f'{{title content}}: "{term}"*' for term in terms)


class FtsIndex:
    """FTS5 full-text search index with graceful degradation.

    Args:
        database: The store holding ``notes`` and ``notes_fts``.
    """

    def __init__(self, database: "Database") -> None:
        self.database = database

    # ------------------------------------------------------------------
    # Public query API
    # ------------------------------------------------------------------

    def search(self, query: str, limit: int, offset: int = 0) -> Tuple[List[DBNote], str]:
        """Search notes by title and content.

        Args:
            query: Non-empty search text.
            limit: Maximum rows to return.
            offset: Rows to skip.

        Returns:
            Matching rows and the search mode that produced them.
        """
        # Hold the lock across both tiers so a fallback sees the same data
        with self.database.lock:
            if not is_structured_query(query):
                return self._substring_search(query, limit, offset), SEARCH_MODE_SUBSTRING

            expression = build_match_expression(query)
            if expression is None:
                return self._substring_search(query, limit, offset), SEARCH_MODE_SUBSTRING

            try:
                return self._match_search(expression, limit, offset), SEARCH_MODE_FTS
            except (sqlite3.OperationalError, SQLAlchemyOperationalError) as e:
                logger.warning(
                    f"FTS5 query failed for '{query}': {e}. Using fallback search."
                )
                return self._fallback_search(query, limit, offset), SEARCH_MODE_FALLBACK
            except (sqlite3.DatabaseError, SQLAlchemyDatabaseError) as e:
                error_msg = str(e).lower()
                if "malformed" in error_msg or "corrupt" in error_msg:
                    logger.error(f"FTS5 corruption detected: {e}. Attempting auto-rebuild...")
                    self._attempt_recovery()
                else:
                    logger.error(f"FTS5 database error: {e}. Using fallback search.")
                return self._fallback_search(query, limit, offset), SEARCH_MODE_FALLBACK

    def rebuild(self) -> int:
        """Rebuild the index from the notes table.

        Returns:
            Number of notes indexed.
        """
        with self.database.connection() as conn:
            conn.execute(text("INSERT INTO notes_fts(notes_fts) VALUES ('rebuild')"))
            count = conn.execute(text("SELECT COUNT(*) FROM notes")).scalar()
        logger.info(f"Rebuilt full-text index with {count} notes")
        return count

    def integrity_check(self) -> bool:
        """Run FTS5's integrity check. Returns False if the index is damaged."""
        try:
            with self.database.connection() as conn:
                conn.execute(
                    text("INSERT INTO notes_fts(notes_fts) VALUES ('integrity-check')")
                )
            return True
        except (sqlite3.DatabaseError, SQLAlchemyDatabaseError) as e:
            logger.error(f"FTS5 integrity check failed: {e}")
            return False

    # ------------------------------------------------------------------
    # Query tiers
    # ------------------------------------------------------------------

    def _match_search(self, expression: str, limit: int, offset: int) -> List[DBNote]:
        sql = text("""
            SELECT notes.*
            FROM notes
            JOIN notes_fts ON notes_fts.rowid = notes.id
            WHERE notes_fts MATCH :expression
            ORDER BY notes_fts.rank, notes."order" ASC, notes.updated_at DESC
            LIMIT :limit OFFSET :offset
        """)
        with self.database.session() as session:
            rows = session.execute(
                select(DBNote).from_statement(sql),
                {"expression": expression, "limit": limit, "offset": offset},
            ).scalars().all()
        logger.debug(f"FTS5 search '{expression}' returned {len(rows)} rows")
        return list(rows)

    @staticmethod
    def _contains(term: str):
        pattern = f"%{escape_like_pattern(term)}%"
        return or_(
            DBNote.title.like(pattern, escape="\\"),
            DBNote.content.like(pattern, escape="\\"),
        )

    def _fallback_search(self, query: str, limit: int, offset: int) -> List[DBNote]:
        """Substring search on the query's words when the index is unusable.

        Every word must appear in the title or the content. A query with no
        usable words is matched as literal text.
        """
        terms = search_terms(query)
        if not terms:
            return self._substring_search(query, limit, offset)
        return self._run_like(and_(*(self._contains(t) for t in terms)), query, limit, offset)

    def _substring_search(self, query: str, limit: int, offset: int) -> List[DBNote]:
        """LIKE search for the literal query over title and content.

        SQLite's LIKE folds case for ASCII letters only, so "CAFÉ" does not
        match "Café".
        """
        return self._run_like(self._contains(query), query, limit, offset)

    def _run_like(self, condition, query: str, limit: int, offset: int) -> List[DBNote]:
        stmt = (
            select(DBNote)
            .where(condition)
            .order_by(DBNote.order.asc(), DBNote.updated_at.desc(), DBNote.id.desc())
            .limit(limit)
            .offset(offset)
        )
        try:
            with self.database.session() as session:
                rows = session.execute(stmt).scalars().all()
        except SQLAlchemyDatabaseError as e:
            raise SearchError(
                f"Fallback text search failed: {e}",
                query=query,
                code=ErrorCode.SEARCH_FAILED,
            ) from e
        logger.debug(f"Substring search returned {len(rows)} rows for query '{query}'")
        return list(rows)

    def _attempt_recovery(self) -> bool:
        """Attempt to recover the index by rebuilding it."""
        try:
            self.rebuild()
            return True
        except SQLAlchemyDatabaseError as e:
            logger.error(f"FTS5 rebuild failed: {e}")
            return False
