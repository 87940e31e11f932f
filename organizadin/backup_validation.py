"""
OrganizaDin Backup Validation
Structural and per-record validation of backup documents before import.

A backup document on the wire:
    {"version": "1.0.0", "timestamp": "<ISO-8601>", "data": {<nine tables>: [rows]}}

Invalid records are dropped and reported one error each; an import is only
allowed when the error list is empty.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Type

from organizadin.config import BACKUP_VERSION, MAX_BACKUP_SIZE
from organizadin.input_validation import (
    MAX_AMOUNT,
    sanitize_id,
    sanitize_text,
    validate_amount,
    validate_date,
)

REQUIRED_TABLES = (
    "user_settings",
    "categories",
    "credit_cards",
    "balance_transactions",
    "credit_purchases",
    "purchase_items",
    "installments",
    "piggies",
    "piggy_transactions",
)

MAX_INSTALLMENTS = 999
MAX_INCOME = 999_999_999


class InvalidRecordError(ValueError):
    """A single backup record failed validation (caught per record)"""
    pass


# ============ Field helpers ============

def _text(raw: Mapping, key: str, max_length: int, required: bool = False) -> Optional[str]:
    value = raw.get(key)
    if value is None or value == "":
        if required:
            raise InvalidRecordError(f"missing {key}")
        return None
    if not isinstance(value, str):
        raise InvalidRecordError(f"invalid {key}")
    cleaned = sanitize_text(value, max_length)
    if required and not cleaned:
        raise InvalidRecordError(f"invalid {key}")
    return cleaned


def _description(raw: Mapping, key: str = "description") -> str:
    return _text(raw, key, 200) or ""


def _amount(raw: Mapping, key: str, min_value: float = 0.01, max_value: float = MAX_AMOUNT) -> float:
    result = validate_amount(raw.get(key), min_value, max_value)
    if not result.valid:
        raise InvalidRecordError(f"invalid {key}")
    return result.value


def _record_id(raw: Mapping, key: str = "id", required: bool = False) -> Optional[int]:
    value = raw.get(key)
    if value is None:
        if required:
            raise InvalidRecordError(f"missing {key}")
        return None
    result = sanitize_id(value)
    if not result.valid:
        raise InvalidRecordError(f"invalid {key}")
    return result.value


def _date(raw: Mapping, key: str) -> str:
    value = raw.get(key)
    if not validate_date(value):
        raise InvalidRecordError(f"invalid {key}")
    return value


def _choice(raw: Mapping, key: str, allowed: tuple, default: Optional[str] = None) -> str:
    value = raw.get(key)
    if value is None and default is not None:
        return default
    if value not in allowed:
        raise InvalidRecordError(f"invalid {key}")
    return value


def _flag(raw: Mapping, key: str) -> int:
    return 1 if raw.get(key) else 0


# ============ Record variants (one per table) ============

@dataclass(frozen=True)
class BackupRecord(ABC):
    TABLE: ClassVar[str] = ""

    @classmethod
    @abstractmethod
    def from_raw(cls, raw: Mapping) -> "BackupRecord":
        """Sanitize one raw record; raises InvalidRecordError."""

    def to_row(self) -> Dict[str, Any]:
        """Columns to insert (the old id is never inserted)."""
        row = asdict(self)
        row.pop("id", None)
        return row


@dataclass(frozen=True)
class SettingsRecord(BackupRecord):
    TABLE: ClassVar[str] = "user_settings"
    theme: str = "dark"
    monthly_income: float = 0

    @classmethod
    def from_raw(cls, raw):
        income = raw.get("monthly_income")
        return cls(
            theme=_choice(raw, "theme", ("dark", "light"), default="dark"),
            monthly_income=0 if income is None else _amount(raw, "monthly_income", 0, MAX_INCOME),
        )


@dataclass(frozen=True)
class CategoryRecord(BackupRecord):
    TABLE: ClassVar[str] = "categories"
    id: Optional[int]
    name: str
    icon: Optional[str] = None
    color: Optional[str] = None
    is_default: int = 0

    @classmethod
    def from_raw(cls, raw):
        return cls(
            id=_record_id(raw),
            name=_text(raw, "name", 50, required=True),
            icon=_text(raw, "icon", 10),
            color=_text(raw, "color", 20),
            is_default=_flag(raw, "is_default"),
        )


@dataclass(frozen=True)
class CardRecord(BackupRecord):
    TABLE: ClassVar[str] = "credit_cards"
    id: Optional[int]
    name: str
    color: Optional[str] = None

    @classmethod
    def from_raw(cls, raw):
        return cls(
            id=_record_id(raw),
            name=_text(raw, "name", 50, required=True),
            color=_text(raw, "color", 20),
        )


@dataclass(frozen=True)
class BalanceTransactionRecord(BackupRecord):
    TABLE: ClassVar[str] = "balance_transactions"
    id: Optional[int]
    amount: float
    description: str
    date: str
    type: str
    method: str
    notes: Optional[str] = None

    @classmethod
    def from_raw(cls, raw):
        return cls(
            id=_record_id(raw),
            amount=_amount(raw, "amount"),
            description=_description(raw),
            date=_date(raw, "date"),
            type=_choice(raw, "type", ("income", "expense")),
            method=_choice(raw, "method", ("pix", "debit", "cash")),
            notes=_text(raw, "notes", 500),
        )


@dataclass(frozen=True)
class PurchaseRecord(BackupRecord):
    TABLE: ClassVar[str] = "credit_purchases"
    id: Optional[int]
    total_amount: float
    description: str
    date: str
    card_id: int
    category_id: int
    installments: int = 1
    is_recurring: int = 0
    has_multiple_items: int = 0
    image_uri: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_raw(cls, raw):
        count = sanitize_id(raw.get("installments"))
        return cls(
            id=_record_id(raw),
            total_amount=_amount(raw, "total_amount"),
            description=_description(raw),
            date=_date(raw, "date"),
            card_id=_record_id(raw, "card_id", required=True),
            category_id=_record_id(raw, "category_id", required=True),
            installments=min(MAX_INSTALLMENTS, count.value) if count.valid else 1,
            is_recurring=_flag(raw, "is_recurring"),
            has_multiple_items=_flag(raw, "has_multiple_items"),
            image_uri=_text(raw, "image_uri", 500),
            notes=_text(raw, "notes", 500),
        )


@dataclass(frozen=True)
class PurchaseItemRecord(BackupRecord):
    TABLE: ClassVar[str] = "purchase_items"
    id: Optional[int]
    purchase_id: int
    name: str
    amount: float
    image_uri: Optional[str] = None

    @classmethod
    def from_raw(cls, raw):
        return cls(
            id=_record_id(raw),
            purchase_id=_record_id(raw, "purchase_id", required=True),
            name=_text(raw, "name", 200, required=True),
            amount=_amount(raw, "amount"),
            image_uri=_text(raw, "image_uri", 500),
        )


@dataclass(frozen=True)
class InstallmentRecord(BackupRecord):
    TABLE: ClassVar[str] = "installments"
    id: Optional[int]
    purchase_id: int
    installment_number: int
    amount: float
    due_date: str
    status: str = "pending"
    paid_at: Optional[str] = None

    @classmethod
    def from_raw(cls, raw):
        return cls(
            id=_record_id(raw),
            purchase_id=_record_id(raw, "purchase_id", required=True),
            installment_number=_record_id(raw, "installment_number", required=True),
            amount=_amount(raw, "amount"),
            due_date=_date(raw, "due_date"),
            status=_choice(raw, "status", ("pending", "paid")),
            paid_at=_text(raw, "paid_at", 40),
        )


@dataclass(frozen=True)
class PiggyRecord(BackupRecord):
    TABLE: ClassVar[str] = "piggies"
    id: Optional[int]
    name: str
    balance: float = 0

    @classmethod
    def from_raw(cls, raw):
        balance = raw.get("balance")
        return cls(
            id=_record_id(raw),
            name=_text(raw, "name", 50, required=True),
            balance=0 if balance is None else _amount(raw, "balance", 0),
        )


@dataclass(frozen=True)
class PiggyTransactionRecord(BackupRecord):
    TABLE: ClassVar[str] = "piggy_transactions"
    id: Optional[int]
    piggy_id: int
    amount: float
    type: str
    description: str
    date: str
    related_piggy_id: Optional[int] = None

    @classmethod
    def from_raw(cls, raw):
        return cls(
            id=_record_id(raw),
            piggy_id=_record_id(raw, "piggy_id", required=True),
            amount=_amount(raw, "amount"),
            type=_choice(raw, "type", ("deposit", "withdraw", "transfer_in", "transfer_out")),
            description=_description(raw),
            date=_date(raw, "date"),
            related_piggy_id=_record_id(raw, "related_piggy_id"),
        )


RECORD_TYPES: Dict[str, Type[BackupRecord]] = {
    record_type.TABLE: record_type
    for record_type in (
        SettingsRecord,
        CategoryRecord,
        CardRecord,
        BalanceTransactionRecord,
        PurchaseRecord,
        PurchaseItemRecord,
        InstallmentRecord,
        PiggyRecord,
        PiggyTransactionRecord,
    )
}


# ============ Envelope / result ============

@dataclass
class SanitizedBackup:
    version: str
    timestamp: str
    tables: Dict[str, List[BackupRecord]] = field(
        default_factory=lambda: {name: [] for name in REQUIRED_TABLES}
    )

    def records(self, table: str) -> List[BackupRecord]:
        return self.tables[table]

    def record_count(self) -> int:
        return sum(len(rows) for rows in self.tables.values())


@dataclass
class ValidationResult:
    errors: List[str]
    sanitized: Optional[SanitizedBackup]

    @property
    def is_importable(self) -> bool:
        return not self.errors and self.sanitized is not None


class IdRemap:
    """
    Transient old-id -> new-id tables, one per entity kind, used while
    replaying an import so dependents point at the freshly inserted parents.
    """

    def __init__(self):
        self._maps: Dict[str, Dict[int, int]] = {}

    def record(self, kind: str, old_id: Optional[int], new_id: int) -> None:
        if old_id is None:
            return
        self._maps.setdefault(kind, {})[old_id] = new_id

    def resolve(self, kind: str, old_id: Optional[int]) -> Optional[int]:
        if old_id is None:
            return None
        return self._maps.get(kind, {}).get(old_id)

    def __len__(self) -> int:
        return sum(len(m) for m in self._maps.values())


# ============ Validation entry points ============

def validate_backup_size(document: Any, max_size: int = MAX_BACKUP_SIZE) -> bool:
    """
    Check the serialized size against the ceiling before any deeper work.
    Accepts raw text/bytes or an already parsed document.
    """
    if isinstance(document, bytes):
        size = len(document)
    elif isinstance(document, str):
        size = len(document.encode("utf-8"))
    else:
        try:
            size = len(json.dumps(document, ensure_ascii=False).encode("utf-8"))
        except (TypeError, ValueError):
            return False
    return size <= max_size


def validate_structure(document: Any) -> bool:
    """All nine collections must be present and be lists (possibly empty)."""
    if not isinstance(document, dict):
        return False
    if not document.get("version") or not isinstance(document.get("version"), str):
        return False
    if not document.get("timestamp") or not isinstance(document.get("timestamp"), str):
        return False

    data = document.get("data")
    if not isinstance(data, dict):
        return False
    return all(isinstance(data.get(table), list) for table in REQUIRED_TABLES)


def validate_and_sanitize(document: Any) -> ValidationResult:
    """
    Sanitize every field of every record.

    Returns:
        ValidationResult(errors, sanitized). sanitized is None only on a
        structural failure; otherwise it holds every record that passed.
        The import is allowed only when errors is empty.
    """
    if not validate_structure(document):
        return ValidationResult(errors=["Invalid backup structure"], sanitized=None)

    errors: List[str] = []
    version = document["version"]
    timestamp = document["timestamp"]

    if version != BACKUP_VERSION:
        errors.append(f"Backup version ({version}) may be incompatible")
    if not validate_date(timestamp.split("T")[0]):
        errors.append("Invalid backup timestamp")

    sanitized = SanitizedBackup(version=version, timestamp=timestamp)

    for table in REQUIRED_TABLES:
        record_type = RECORD_TYPES[table]
        rows = document["data"][table]
        if table == "user_settings":
            rows = rows[:1]

        for index, raw in enumerate(rows):
            if not isinstance(raw, dict):
                errors.append(f"{table}[{index}]: record is not an object")
                continue
            try:
                sanitized.tables[table].append(record_type.from_raw(raw))
            except InvalidRecordError as e:
                errors.append(f"{table}[{index}]: {e}")

    return ValidationResult(errors=errors, sanitized=sanitized)
