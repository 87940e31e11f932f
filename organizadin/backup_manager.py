"""
OrganizaDin Backup Manager
Exports the nine data tables to a JSON backup and restores a validated
backup, remapping foreign keys to the ids generated on insert.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from organizadin.backup_validation import (
    REQUIRED_TABLES,
    IdRemap,
    SanitizedBackup,
    validate_and_sanitize,
    validate_backup_size,
    validate_structure,
)
from organizadin.config import BACKUP_VERSION, MAX_BACKUP_SIZE
from organizadin.connection_manager import DatabaseError
from organizadin.schema import FALLBACK_CATEGORY_NAME
from organizadin.secure_database import SecureDatabase

logger = logging.getLogger(__name__)

# Children first: the order rows are removed before a restore
CLEAR_ORDER = (
    "piggy_transactions",
    "piggies",
    "installments",
    "purchase_items",
    "credit_purchases",
    "balance_transactions",
    "credit_cards",
    "categories",
)


class BackupError(Exception):
    """Base exception for backup operations"""
    pass


class BackupStructureError(BackupError):
    """Backup is too large, unparsable or missing required collections"""
    pass


class BackupValidationError(BackupError):
    """One or more records failed validation; nothing was imported"""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__(f"Backup failed validation with {len(self.errors)} error(s)")


class BackupImportError(BackupError):
    """The database rejected the import; the transaction was rolled back"""
    pass


@dataclass
class ImportSummary:
    imported: Dict[str, int] = field(default_factory=lambda: {t: 0 for t in REQUIRED_TABLES})
    skipped: Dict[str, int] = field(default_factory=lambda: {t: 0 for t in REQUIRED_TABLES})

    @property
    def total_imported(self) -> int:
        return sum(self.imported.values())

    @property
    def total_skipped(self) -> int:
        return sum(self.skipped.values())


class BackupManager:

    def __init__(self, db: SecureDatabase):
        """
        Args:
            db: Initialized SecureDatabase used for every read and write
        """
        self.db = db

    # ---------------------------------------------------------------- export

    def generate_backup(self) -> Dict:
        """Snapshot every table into the backup envelope."""
        return {
            "version": BACKUP_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": {
                table: self.db.query_many(f"SELECT * FROM {table} ORDER BY id")
                for table in REQUIRED_TABLES
            },
        }

    def create_backup(self, filename: str) -> int:
        """
        Write the backup envelope to a JSON file.

        Returns:
            Number of exported records
        """
        backup = self.generate_backup()
        payload = json.dumps(backup, indent=2, ensure_ascii=False).encode("utf-8")
        if len(payload) > MAX_BACKUP_SIZE:
            raise BackupError("Backup exceeds maximum allowed size and could not be restored.")

        directory = os.path.dirname(os.path.abspath(filename))
        os.makedirs(directory, exist_ok=True)
        with open(filename, "wb") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())

        count = sum(len(rows) for rows in backup["data"].values())
        logger.info("Exported %d record(s) to %s", count, filename)
        return count

    # ---------------------------------------------------------------- import

    def load_backup(self, filename: str) -> Dict:
        """
        Read and parse a backup file, enforcing the size ceiling first.

        Raises:
            BackupStructureError: too large, unreadable or not JSON
        """
        try:
            if os.path.getsize(filename) > MAX_BACKUP_SIZE:
                raise BackupStructureError("Backup file exceeds maximum allowed size.")
            with open(filename, "r", encoding="utf-8") as f:
                return json.load(f)
        except OSError as e:
            raise BackupStructureError(f"Could not access backup file: {e}") from e
        except ValueError as e:
            raise BackupStructureError(f"Backup file is not valid JSON: {e}") from e

    def restore_from_file(self, filename: str) -> ImportSummary:
        return self.restore_backup(self.load_backup(filename))

    def restore_backup(self, document: Dict) -> ImportSummary:
        """
        Replace the current data with a validated backup, atomically.

        Raises:
            BackupStructureError: size ceiling or missing collections
            BackupValidationError: any record failed validation
            BackupImportError: the database rejected a write (rolled back)
        """
        if not validate_backup_size(document):
            raise BackupStructureError("Backup exceeds maximum allowed size.")
        if not validate_structure(document):
            raise BackupStructureError("Invalid backup structure.")

        result = validate_and_sanitize(document)
        if not result.is_importable:
            logger.warning("Backup rejected with %d validation error(s)", len(result.errors))
            raise BackupValidationError(result.errors)

        try:
            with self.db.transaction():
                summary = self._replay(result.sanitized)
        except DatabaseError as e:
            raise BackupImportError(f"Restore failed, no data was changed: {e}") from e

        logger.info(
            "Restored %d record(s), skipped %d orphan(s)",
            summary.total_imported, summary.total_skipped
        )
        return summary

    def _replay(self, backup: SanitizedBackup) -> ImportSummary:
        summary = ImportSummary()
        remap = IdRemap()

        for table in CLEAR_ORDER:
            self.db.clear_table(table, keep_defaults=True)

        for settings in backup.records("user_settings"):
            self.db.execute(
                "UPDATE user_settings SET theme = ?, monthly_income = ?, "
                "updated_at = datetime('now') WHERE id = 1",
                [settings.theme, settings.monthly_income]
            )
            summary.imported["user_settings"] += 1

        for category in backup.records("categories"):
            existing = None
            if category.is_default:
                existing = self.db.query_one(
                    "SELECT id FROM categories WHERE name = ? AND is_default = 1",
                    [category.name]
                )
            if existing is not None:
                remap.record("categories", category.id, existing["id"])
                continue
            row = category.to_row()
            row["is_default"] = 0
            remap.record("categories", category.id, self.db.insert("categories", row))
            summary.imported["categories"] += 1

        for card in backup.records("credit_cards"):
            remap.record("credit_cards", card.id, self.db.insert("credit_cards", card.to_row()))
            summary.imported["credit_cards"] += 1

        for transaction in backup.records("balance_transactions"):
            self.db.insert("balance_transactions", transaction.to_row())
            summary.imported["balance_transactions"] += 1

        fallback_category = self._fallback_category_id()
        for purchase in backup.records("credit_purchases"):
            card_id = remap.resolve("credit_cards", purchase.card_id)
            category_id = remap.resolve("categories", purchase.category_id) or fallback_category
            if card_id is None or category_id is None:
                summary.skipped["credit_purchases"] += 1
                continue
            row = purchase.to_row()
            row.update(card_id=card_id, category_id=category_id)
            remap.record("credit_purchases", purchase.id, self.db.insert("credit_purchases", row))
            summary.imported["credit_purchases"] += 1

        for table in ("purchase_items", "installments"):
            for child in backup.records(table):
                purchase_id = remap.resolve("credit_purchases", child.purchase_id)
                if purchase_id is None:
                    summary.skipped[table] += 1
                    continue
                row = child.to_row()
                row["purchase_id"] = purchase_id
                self.db.insert(table, row)
                summary.imported[table] += 1

        for piggy in backup.records("piggies"):
            remap.record("piggies", piggy.id, self.db.insert("piggies", piggy.to_row()))
            summary.imported["piggies"] += 1

        for movement in backup.records("piggy_transactions"):
            piggy_id = remap.resolve("piggies", movement.piggy_id)
            if piggy_id is None:
                summary.skipped["piggy_transactions"] += 1
                continue
            row = movement.to_row()
            row.update(
                piggy_id=piggy_id,
                related_piggy_id=remap.resolve("piggies", movement.related_piggy_id),
            )
            self.db.insert("piggy_transactions", row)
            summary.imported["piggy_transactions"] += 1

        return summary

    def _fallback_category_id(self) -> Optional[int]:
        row = self.db.query_one(
            "SELECT id FROM categories WHERE name = ? ORDER BY is_default DESC, id LIMIT 1",
            [FALLBACK_CATEGORY_NAME]
        )
        if row is None:
            row = self.db.query_one("SELECT id FROM categories ORDER BY id LIMIT 1")
        return row["id"] if row else None
