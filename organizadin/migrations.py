"""
OrganizaDin Schema & Migration Engine
Creates the schema, applies additive column migrations, repairs historical
data defects and seeds default data. Every step is idempotent.
"""

import logging
import re
from typing import Dict, List, Tuple

from organizadin.connection_manager import ConnectionManager, DatabaseError
from organizadin.schema import (
    COLUMN_MIGRATIONS,
    CREATE_TABLES_SQL,
    DEFAULT_CARD_COLOR,
    DEFAULT_CATEGORIES,
    INSERT_DEFAULT_SETTINGS_SQL,
)

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"[a-z_][a-z0-9_]*")
_COLUMN_TYPES = ("INTEGER", "REAL", "TEXT", "BLOB", "NUMERIC")


class MigrationError(DatabaseError):
    """Raised when any startup schema step fails"""
    pass


class SchemaMigrator:
    """
    Brings any database (empty, partially or fully migrated) to the current schema.

    Order:
        ensure_schema -> apply_column_migrations -> repair_legacy_data -> seed_defaults
    """

    def __init__(self, manager: ConnectionManager):
        self.manager = manager

    def ensure_schema(self) -> None:
        """Create all tables and indexes that do not exist yet."""
        self.manager.run(lambda conn: conn.executescript(CREATE_TABLES_SQL))

    def column_exists(self, table: str, column: str) -> bool:
        """Schema check: recomputed on every call, never cached or persisted."""
        if not _IDENTIFIER.fullmatch(table):
            raise MigrationError(f"Invalid table name in migration: {table!r}")
        rows = self.manager.run(
            lambda conn: conn.execute(f"PRAGMA table_info({table})").fetchall()
        )
        return any(row["name"] == column for row in rows)

    def apply_column_migrations(self) -> List[Tuple[str, str]]:
        """
        Add every column of COLUMN_MIGRATIONS that is missing.

        Returns:
            (table, column) pairs actually added on this run
        """
        added = []
        for table, column, col_type, default in COLUMN_MIGRATIONS:
            if not _IDENTIFIER.fullmatch(column) or col_type not in _COLUMN_TYPES:
                raise MigrationError(f"Invalid column migration: {table}.{column} {col_type}")
            if self.column_exists(table, column):
                continue

            ddl = f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"
            if default is not None:
                ddl += f" DEFAULT {default}"
            self.manager.run(lambda conn: conn.execute(ddl))
            logger.info("Added column %s.%s", table, column)
            added.append((table, column))
        return added

    def repair_legacy_data(self) -> Dict[str, int]:
        """
        Fix known historical data defects in one transaction.

        - cards without a color get DEFAULT_CARD_COLOR
        - categories sharing a name are merged into the lowest id; purchases
          pointing at a discarded duplicate are re-pointed first, so no
          purchase ever references a deleted category

        Returns:
            {"cards_recolored": n, "categories_merged": m}
        """
        with self.manager.transaction() as conn:
            cursor = conn.execute(
                "UPDATE credit_cards SET color = ? WHERE color IS NULL OR TRIM(color) = ''",
                (DEFAULT_CARD_COLOR,)
            )
            recolored = max(cursor.rowcount, 0)

            groups = conn.execute(
                """
                SELECT name, MIN(id) AS keep_id, COALESCE(MAX(is_default), 0) AS any_default
                FROM categories
                GROUP BY name
                HAVING COUNT(*) > 1
                """
            ).fetchall()

            merged = 0
            for group in groups:
                keep_id = group["keep_id"]
                duplicate_ids = [
                    row["id"] for row in conn.execute(
                        "SELECT id FROM categories WHERE name = ? AND id <> ?",
                        (group["name"], keep_id)
                    ).fetchall()
                ]
                if not duplicate_ids:
                    continue

                placeholders = ", ".join("?" for _ in duplicate_ids)
                conn.execute(
                    f"UPDATE credit_purchases SET category_id = ? WHERE category_id IN ({placeholders})",
                    (keep_id, *duplicate_ids)
                )
                conn.execute(
                    "UPDATE categories SET is_default = ? WHERE id = ?",
                    (1 if group["any_default"] else 0, keep_id)
                )
                conn.execute(
                    f"DELETE FROM categories WHERE id IN ({placeholders})",
                    tuple(duplicate_ids)
                )
                merged += len(duplicate_ids)

        if recolored or merged:
            logger.info(
                "Repaired legacy data: %d card(s) recolored, %d duplicate categor(ies) merged",
                recolored, merged
            )
        return {"cards_recolored": recolored, "categories_merged": merged}

    def seed_defaults(self) -> bool:
        """
        Insert default categories (only if none is flagged default) and the
        settings row (only if absent).

        Returns:
            True if default categories were inserted on this call
        """
        with self.manager.transaction() as conn:
            count = conn.execute(
                "SELECT COUNT(*) FROM categories WHERE is_default = 1"
            ).fetchone()[0]

            seeded = False
            if count == 0:
                conn.executemany(
                    "INSERT INTO categories (name, icon, color, is_default) VALUES (?, ?, ?, 1)",
                    DEFAULT_CATEGORIES
                )
                seeded = True

            conn.execute(INSERT_DEFAULT_SETTINGS_SQL)

        if seeded:
            logger.info("Seeded %d default categories", len(DEFAULT_CATEGORIES))
        return seeded

    def run(self) -> None:
        """
        Run every startup step in order.

        Raises:
            MigrationError: wrapping the first failure; later steps are skipped
        """
        steps = (
            ("ensure_schema", self.ensure_schema),
            ("apply_column_migrations", self.apply_column_migrations),
            ("repair_legacy_data", self.repair_legacy_data),
            ("seed_defaults", self.seed_defaults),
        )
        for name, step in steps:
            try:
                step()
            except MigrationError:
                raise
            except Exception as e:
                raise MigrationError(f"Migration step '{name}' failed: {e}") from e
        logger.info("Database schema ready at %s", self.manager.db_path)
