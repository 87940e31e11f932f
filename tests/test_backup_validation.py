"""
tests/test_backup_validation.py
Structural and per-record validation of backup documents.
"""

import copy
import json

import pytest

from organizadin.backup_validation import (
    RECORD_TYPES,
    REQUIRED_TABLES,
    BackupRecord,
    CategoryRecord,
    IdRemap,
    PurchaseRecord,
    SettingsRecord,
    validate_and_sanitize,
    validate_backup_size,
    validate_structure,
)


def empty_backup(**data):
    document = {
        "version": "1.0.0",
        "timestamp": "2024-05-01T12:00:00.000Z",
        "data": {table: [] for table in REQUIRED_TABLES},
    }
    document["data"].update(data)
    return document


def balance(amount=10.0, **overrides):
    row = {
        "id": 1,
        "amount": amount,
        "description": "Salário",
        "date": "2024-05-01",
        "type": "income",
        "method": "pix",
    }
    row.update(overrides)
    return row


# ---------------------------------------------------------------------------
# Size / structure
# ---------------------------------------------------------------------------

class TestSizeAndStructure:
    def test_size_of_bytes_text_and_document(self):
        assert validate_backup_size(b"x" * 10, max_size=10) is True
        assert validate_backup_size(b"x" * 11, max_size=10) is False
        assert validate_backup_size("ç" * 6, max_size=10) is False
        assert validate_backup_size(empty_backup()) is True

    def test_document_over_ceiling(self):
        document = empty_backup(categories=[{"name": "x" * 1000}])
        assert validate_backup_size(document, max_size=500) is False

    def test_complete_structure(self):
        assert validate_structure(empty_backup()) is True

    @pytest.mark.parametrize("table", REQUIRED_TABLES)
    def test_missing_table(self, table):
        document = empty_backup()
        del document["data"][table]
        assert validate_structure(document) is False

    def test_table_must_be_list(self):
        assert validate_structure(empty_backup(piggies={"0": {}})) is False

    @pytest.mark.parametrize("document", [
        None, [], "backup",
        {"version": "1.0.0", "timestamp": "2024-01-01"},
        {"version": "", "timestamp": "2024-01-01", "data": {}},
    ])
    def test_malformed_envelopes(self, document):
        assert validate_structure(document) is False

    def test_structure_failure_result(self):
        result = validate_and_sanitize({"data": {}})
        assert result.errors == ["Invalid backup structure"]
        assert result.sanitized is None
        assert result.is_importable is False


# ---------------------------------------------------------------------------
# Record validation
# ---------------------------------------------------------------------------

class TestRecordValidation:
    def test_clean_backup_is_importable(self):
        result = validate_and_sanitize(empty_backup(balance_transactions=[balance()]))
        assert result.errors == []
        assert result.is_importable

    def test_one_bad_record_among_valid_ones(self):
        rows = [balance(amount=10 + i, id=i + 1) for i in range(10)]
        rows.append(balance(amount=-5, id=11))

        result = validate_and_sanitize(empty_backup(balance_transactions=rows))

        assert len(result.errors) == 1
        assert result.errors[0].startswith("balance_transactions[10]")
        assert len(result.sanitized.records("balance_transactions")) == 10
        assert result.is_importable is False

    def test_errors_are_per_record_across_tables(self):
        document = empty_backup(
            balance_transactions=[balance(date="2023-02-29")],
            piggies=[{"id": 1, "name": ""}],
            categories=["not a dict"],
        )
        result = validate_and_sanitize(document)
        assert len(result.errors) == 3
        assert any("categories[0]" in e for e in result.errors)
        assert any("piggies[0]" in e for e in result.errors)

    def test_version_mismatch_reported(self):
        document = empty_backup()
        document["version"] = "0.9.0"
        result = validate_and_sanitize(document)
        assert any("version" in e for e in result.errors)
        assert result.sanitized is not None

    def test_bad_timestamp_reported(self):
        document = empty_backup()
        document["timestamp"] = "yesterday"
        assert "Invalid backup timestamp" in validate_and_sanitize(document).errors

    def test_text_fields_sanitized(self):
        document = empty_backup(categories=[{"id": 1, "name": "Pets'; DROP TABLE categories;--", "icon": "🐶"}])
        record = validate_and_sanitize(document).sanitized.records("categories")[0]
        assert isinstance(record, CategoryRecord)
        assert "DROP" not in record.name
        assert ";" not in record.name

    def test_only_first_settings_row_used(self):
        document = empty_backup(user_settings=[
            {"theme": "light", "monthly_income": 5000},
            {"theme": "bogus"},
        ])
        result = validate_and_sanitize(document)
        assert result.errors == []
        assert result.sanitized.records("user_settings") == [SettingsRecord(theme="light", monthly_income=5000)]

    def test_installment_count_clamped(self):
        document = empty_backup(credit_purchases=[{
            "id": 1, "total_amount": 100, "description": "TV", "date": "2024-01-10",
            "card_id": 1, "category_id": 2, "installments": 5000,
        }])
        record = validate_and_sanitize(document).sanitized.records("credit_purchases")[0]
        assert isinstance(record, PurchaseRecord)
        assert record.installments == 999
        assert "id" not in record.to_row()

    def test_purchase_requires_parents(self):
        document = empty_backup(credit_purchases=[{
            "id": 1, "total_amount": 100, "description": "TV", "date": "2024-01-10",
        }])
        result = validate_and_sanitize(document)
        assert result.errors == ["credit_purchases[0]: missing card_id"]

    def test_original_document_untouched(self):
        document = empty_backup(categories=[{"id": 1, "name": "  Casa  "}])
        snapshot = copy.deepcopy(document)
        validate_and_sanitize(document)
        assert document == snapshot

    def test_parsed_json_roundtrip(self):
        text = json.dumps(empty_backup(piggies=[{"id": 4, "name": "Viagem", "balance": "150,00"}]))
        result = validate_and_sanitize(json.loads(text))
        assert result.sanitized.records("piggies")[0].balance == 150.0


# ---------------------------------------------------------------------------
# Record types
# ---------------------------------------------------------------------------

class TestRecordTypes:
    def test_base_record_is_abstract(self):
        with pytest.raises(TypeError):
            BackupRecord()

    def test_one_concrete_record_per_table(self):
        assert set(RECORD_TYPES) == set(REQUIRED_TABLES)
        for table, record_type in RECORD_TYPES.items():
            assert issubclass(record_type, BackupRecord)
            assert record_type.TABLE == table
            assert not getattr(record_type, "__abstractmethods__", None)


# ---------------------------------------------------------------------------
# IdRemap
# ---------------------------------------------------------------------------

class TestIdRemap:
    def test_record_and_resolve(self):
        remap = IdRemap()
        remap.record("credit_cards", 7, 1)
        assert remap.resolve("credit_cards", 7) == 1
        assert remap.resolve("credit_cards", 8) is None
        assert remap.resolve("piggies", 7) is None
        assert len(remap) == 1

    def test_none_ids_ignored(self):
        remap = IdRemap()
        remap.record("piggies", None, 3)
        assert len(remap) == 0
        assert remap.resolve("piggies", None) is None
