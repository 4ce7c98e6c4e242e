"""
SQLite-based state store implementation.

Tables:
- entities: Entity cache (canonical payee names, ledger ids, aliases)
- transaction_corrections: Learned corrections from user edits
- ai_usage: Per-call AI categorization usage and cost
"""

import re
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

# Corrections falling below this confidence are discarded
MIN_RETAINED_CONFIDENCE = 0.3
# Confidence increment when the same correction is saved again
CONFIDENCE_STEP = 0.1


class CorrectionMatchType(str, Enum):
    """How a correction pattern is compared with a description."""

    EXACT = "exact"
    CONTAINS = "contains"


def normalize_description(description: str) -> str:
    """Normalize a description for correction pattern matching.

    Uppercased, digits removed, whitespace collapsed. Store numbers and
    card suffixes therefore do not defeat a learned correction.
    """
    text = re.sub(r"\d+", "", description.upper())
    return re.sub(r"\s+", " ", text).strip()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class CorrectionRecord:
    """A learned correction."""

    id: int
    description_pattern: str
    match_type: CorrectionMatchType
    entity_id: str | None
    entity_name: str | None
    location: str | None
    online: bool | None
    transaction_type: str | None
    confidence: float
    times_applied: int
    created_at: str
    last_used_at: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CorrectionRecord":
        """Create from database row."""
        return cls(
            id=row["id"],
            description_pattern=row["description_pattern"],
            match_type=CorrectionMatchType(row["match_type"]),
            entity_id=row["entity_id"],
            entity_name=row["entity_name"],
            location=row["location"],
            online=bool(row["online"]) if row["online"] is not None else None,
            transaction_type=row["transaction_type"],
            confidence=row["confidence"],
            times_applied=row["times_applied"],
            created_at=row["created_at"],
            last_used_at=row["last_used_at"],
        )


@dataclass
class EntityRecord:
    """Cached ledger entity."""

    notion_id: str
    name: str
    aliases: list[str]
    last_edited_time: str | None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "EntityRecord":
        aliases = [a.strip() for a in (row["aliases"] or "").split(",") if a.strip()]
        return cls(
            notion_id=row["notion_id"],
            name=row["name"],
            aliases=aliases,
            last_edited_time=row["last_edited_time"],
        )


class StateStore:
    """
    SQLite-based state store for the pipeline.

    Provides persistent tracking of:
    - Entity cache (read by the matcher, written by entity creation)
    - Learned corrections
    - AI usage (audit and cost analytics)

    Every call opens its own connection, so one store may be shared by
    background import threads.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """
            )

            # Entity cache (refreshed from the ledger by the sync job)
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS entities (
                    notion_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    aliases TEXT,  -- comma-separated
                    last_edited_time TEXT
                )
            """
            )

            # Learned corrections
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transaction_corrections (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    description_pattern TEXT NOT NULL,
                    match_type TEXT NOT NULL DEFAULT 'exact',
                    entity_id TEXT,
                    entity_name TEXT,
                    location TEXT,
                    online INTEGER,
                    transaction_type TEXT,
                    confidence REAL NOT NULL DEFAULT 0.7,
                    times_applied INTEGER NOT NULL DEFAULT 1,
                    created_at TEXT NOT NULL,
                    last_used_at TEXT,
                    UNIQUE (description_pattern, match_type)
                )
            """
            )

            # AI usage
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS ai_usage (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    description TEXT NOT NULL,
                    entity_name TEXT,
                    category TEXT,
                    input_tokens INTEGER NOT NULL DEFAULT 0,
                    output_tokens INTEGER NOT NULL DEFAULT 0,
                    cost_usd REAL NOT NULL DEFAULT 0,
                    cached INTEGER NOT NULL DEFAULT 0,
                    import_batch_id TEXT,
                    created_at TEXT NOT NULL
                )
            """
            )

            conn.execute("CREATE INDEX IF NOT EXISTS idx_entities_name ON entities(name)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_ai_usage_batch ON ai_usage(import_batch_id)"
            )

            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,)
            )

    # Entity cache methods

    def upsert_entity(
        self,
        notion_id: str,
        name: str,
        aliases: list[str] | str | None = None,
        last_edited_time: str | None = None,
    ) -> None:
        """Insert or replace a cached entity."""
        if isinstance(aliases, list):
            aliases = ", ".join(aliases)
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO entities (notion_id, name, aliases, last_edited_time)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(notion_id) DO UPDATE SET
                    name = excluded.name,
                    aliases = excluded.aliases,
                    last_edited_time = excluded.last_edited_time
            """,
                (notion_id, name, aliases or None, last_edited_time or _now()),
            )

    def get_entity(self, notion_id: str) -> EntityRecord | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM entities WHERE notion_id = ?", (notion_id,)
            ).fetchone()
            return EntityRecord.from_row(row) if row else None

    def load_entity_lookup(self) -> dict[str, str]:
        """Load the canonical name → ledger id table."""
        with self._transaction() as conn:
            rows = conn.execute("SELECT name, notion_id FROM entities").fetchall()
            return {row["name"]: row["notion_id"] for row in rows}

    def load_aliases(self) -> dict[str, str]:
        """Load the alias → canonical name table.

        Aliases are stored comma-separated; each is trimmed and blanks are
        dropped.
        """
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT name, aliases FROM entities WHERE aliases IS NOT NULL"
            ).fetchall()

        alias_map: dict[str, str] = {}
        for row in rows:
            for alias in row["aliases"].split(","):
                alias = alias.strip()
                if alias:
                    alias_map[alias] = row["name"]
        return alias_map

    # Correction methods

    def find_matching_correction(
        self,
        description: str,
        min_confidence: float = 0.7,
    ) -> CorrectionRecord | None:
        """
        Find the best correction for a description.

        Exact-pattern corrections are tried before contains-pattern ones;
        within each, the highest confidence (then most applied) wins.

        Args:
            description: Raw transaction description
            min_confidence: Minimum stored confidence

        Returns:
            Best correction or None
        """
        normalized = normalize_description(description)
        if not normalized:
            return None

        with self._transaction() as conn:
            row = conn.execute(
                """
                SELECT * FROM transaction_corrections
                WHERE match_type = 'exact'
                  AND description_pattern = ?
                  AND confidence >= ?
                ORDER BY confidence DESC, times_applied DESC
                LIMIT 1
            """,
                (normalized, min_confidence),
            ).fetchone()
            if row:
                return CorrectionRecord.from_row(row)

            row = conn.execute(
                """
                SELECT * FROM transaction_corrections
                WHERE match_type = 'contains'
                  AND description_pattern != ''
                  AND instr(?, description_pattern) > 0
                  AND confidence >= ?
                ORDER BY confidence DESC, times_applied DESC
                LIMIT 1
            """,
                (normalized, min_confidence),
            ).fetchone()
            return CorrectionRecord.from_row(row) if row else None

    def save_correction(
        self,
        description_pattern: str,
        match_type: CorrectionMatchType = CorrectionMatchType.EXACT,
        entity_id: str | None = None,
        entity_name: str | None = None,
        location: str | None = None,
        online: bool | None = None,
        transaction_type: str | None = None,
    ) -> CorrectionRecord:
        """
        Create a correction, or reinforce an existing one.

        Saving the same (pattern, match type) again raises its confidence by
        0.1 (capped at 1.0) and keeps previously stored values for any field
        passed as None.
        """
        normalized = normalize_description(description_pattern)
        online_value = None if online is None else int(online)
        now = _now()

        with self._transaction() as conn:
            existing = conn.execute(
                """
                SELECT * FROM transaction_corrections
                WHERE description_pattern = ? AND match_type = ?
            """,
                (normalized, match_type.value),
            ).fetchone()

            if existing:
                conn.execute(
                    """
                    UPDATE transaction_corrections
                    SET confidence = ROUND(MIN(confidence + ?, 1.0), 4),
                        times_applied = times_applied + 1,
                        last_used_at = ?,
                        entity_id = COALESCE(?, entity_id),
                        entity_name = COALESCE(?, entity_name),
                        location = COALESCE(?, location),
                        online = COALESCE(?, online),
                        transaction_type = COALESCE(?, transaction_type)
                    WHERE id = ?
                """,
                    (
                        CONFIDENCE_STEP,
                        now,
                        entity_id,
                        entity_name,
                        location,
                        online_value,
                        transaction_type,
                        existing["id"],
                    ),
                )
                correction_id = existing["id"]
            else:
                cursor = conn.execute(
                    """
                    INSERT INTO transaction_corrections
                    (description_pattern, match_type, entity_id, entity_name,
                     location, online, transaction_type, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    (
                        normalized,
                        match_type.value,
                        entity_id,
                        entity_name,
                        location,
                        online_value,
                        transaction_type,
                        now,
                    ),
                )
                correction_id = cursor.lastrowid

        correction = self.get_correction(correction_id)
        if correction is None:
            raise RuntimeError(f"Correction {correction_id} not found after save")
        return correction

    def get_correction(self, correction_id: int) -> CorrectionRecord | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM transaction_corrections WHERE id = ?", (correction_id,)
            ).fetchone()
            return CorrectionRecord.from_row(row) if row else None

    def list_corrections(
        self,
        min_confidence: float | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[CorrectionRecord]:
        """List corrections, best first."""
        where = "WHERE confidence >= ?" if min_confidence is not None else ""
        params: list[Any] = [min_confidence] if min_confidence is not None else []
        with self._transaction() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM transaction_corrections
                {where}
                ORDER BY confidence DESC, times_applied DESC
                LIMIT ? OFFSET ?
            """,
                (*params, limit, offset),
            ).fetchall()
            return [CorrectionRecord.from_row(row) for row in rows]

    def delete_correction(self, correction_id: int) -> bool:
        """Delete a correction. Returns True if a row was removed."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM transaction_corrections WHERE id = ?", (correction_id,)
            )
            return cursor.rowcount > 0

    def increment_correction_usage(self, correction_id: int) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                UPDATE transaction_corrections
                SET times_applied = times_applied + 1, last_used_at = ?
                WHERE id = ?
            """,
                (_now(), correction_id),
            )

    def adjust_confidence(self, correction_id: int, delta: float) -> float | None:
        """
        Shift a correction's confidence by delta (clamped to 0..1).

        Corrections that drop below 0.3 are deleted.

        Returns:
            New confidence, or None if the correction was deleted or missing
        """
        correction = self.get_correction(correction_id)
        if correction is None:
            return None

        confidence = round(max(0.0, min(1.0, correction.confidence + delta)), 4)
        if confidence < MIN_RETAINED_CONFIDENCE:
            self.delete_correction(correction_id)
            return None

        with self._transaction() as conn:
            conn.execute(
                "UPDATE transaction_corrections SET confidence = ? WHERE id = ?",
                (confidence, correction_id),
            )
        return confidence

    # === AI Usage Methods ===

    def record_ai_usage(
        self,
        description: str,
        entity_name: str | None,
        category: str | None,
        input_tokens: int = 0,
        output_tokens: int = 0,
        cost_usd: float = 0.0,
        cached: bool = False,
        import_batch_id: str | None = None,
    ) -> None:
        """Record one categorization (live call or cache hit)."""
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO ai_usage
                (description, entity_name, category, input_tokens, output_tokens,
                 cost_usd, cached, import_batch_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    description,
                    entity_name,
                    category,
                    input_tokens,
                    output_tokens,
                    cost_usd,
                    int(cached),
                    import_batch_id,
                    _now(),
                ),
            )

    def get_ai_usage_stats(self, import_batch_id: str | None = None) -> dict[str, Any]:
        """Aggregate AI usage overall or for one import batch."""
        where = "WHERE import_batch_id = ?" if import_batch_id else ""
        params = (import_batch_id,) if import_batch_id else ()
        with self._transaction() as conn:
            row = conn.execute(
                f"""
                SELECT
                    SUM(CASE WHEN cached = 0 THEN 1 ELSE 0 END) AS api_calls,
                    SUM(CASE WHEN cached = 1 THEN 1 ELSE 0 END) AS cache_hits,
                    SUM(CASE WHEN cached = 0 THEN input_tokens ELSE 0 END) AS input_tokens,
                    SUM(CASE WHEN cached = 0 THEN output_tokens ELSE 0 END) AS output_tokens,
                    SUM(CASE WHEN cached = 0 THEN cost_usd ELSE 0 END) AS cost_usd
                FROM ai_usage
                {where}
            """,
                params,
            ).fetchone()

        api_calls = row["api_calls"] or 0
        cache_hits = row["cache_hits"] or 0
        cost = row["cost_usd"] or 0.0
        total = api_calls + cache_hits
        return {
            "api_calls": api_calls,
            "cache_hits": cache_hits,
            "input_tokens": row["input_tokens"] or 0,
            "output_tokens": row["output_tokens"] or 0,
            "total_cost_usd": cost,
            "avg_cost_per_call": cost / api_calls if api_calls else 0.0,
            "cache_hit_rate": cache_hits / total if total else 0.0,
        }
