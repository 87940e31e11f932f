"""
OrganizaDin Vault Controller
PIN-gated savings vaults ("piggies"): balances, deposits, withdrawals and
transfers between vaults and the main balance.
"""

import logging
import threading
from typing import Dict, List

from organizadin.input_validation import (
    sanitize_id,
    sanitize_text,
    validate_amount,
    validate_description,
    validate_name,
)
from organizadin.pin_security import PinSecurity
from organizadin.secure_database import SecureDatabase

logger = logging.getLogger(__name__)

MAX_HISTORY = 500

_INSERT_MOVEMENT = (
    "INSERT INTO piggy_transactions (piggy_id, amount, type, description, date, related_piggy_id) "
    "VALUES (?, ?, ?, ?, date('now'), ?)"
)
_INSERT_BALANCE = (
    "INSERT INTO balance_transactions (amount, description, date, type, method) "
    "VALUES (?, ?, date('now'), ?, 'cash')"
)
_ADD_TO_VAULT = "UPDATE piggies SET balance = balance + ?, updated_at = datetime('now') WHERE id = ?"
_TAKE_FROM_VAULT = "UPDATE piggies SET balance = balance - ?, updated_at = datetime('now') WHERE id = ?"


class VaultError(Exception):
    """Base exception for vault operations"""
    pass


class VaultLockedError(VaultError):
    """Raised when trying to access vaults while locked"""
    pass


class InsufficientFundsError(VaultError):
    """Raised when a withdrawal or transfer exceeds the available amount"""
    pass


class VaultController:
    """
    Savings vault access behind the PIN.

    State Machine:
        - LOCKED: only unlock() allowed
        - UNLOCKED: all operations allowed
        - lock(): back to LOCKED

    Every multi-statement operation runs inside one transaction.
    """

    def __init__(self, db: SecureDatabase, pin_security: PinSecurity):
        self.db = db
        self.pin_security = pin_security
        self.is_unlocked = False
        self._state_lock = threading.RLock()

    def _check_unlocked(self) -> None:
        with self._state_lock:
            if not self.is_unlocked:
                raise VaultLockedError("Vault is locked. Call unlock() first.")

    # ---------------------------------------------------------------- lock state

    def unlock(self, pin: str) -> bool:
        """
        Returns:
            True if the PIN matched

        Raises:
            VaultError: no PIN configured yet
            PinLockedError: too many failed attempts
        """
        with self._state_lock:
            if self.is_unlocked:
                return True
            if not self.pin_security.has_credential():
                raise VaultError("No vault PIN configured. Set one before unlocking.")

            self.is_unlocked = self.pin_security.verify(pin)
            return self.is_unlocked

    def lock(self) -> None:
        with self._state_lock:
            self.is_unlocked = False

    # ---------------------------------------------------------------- helpers

    @staticmethod
    def _amount(amount) -> float:
        result = validate_amount(amount)
        if not result.valid:
            raise VaultError("Amount must be a positive number")
        return result.value

    @staticmethod
    def _vault_id(vault_id) -> int:
        result = sanitize_id(vault_id)
        if not result.valid:
            raise VaultError(f"Invalid vault id: {vault_id!r}")
        return result.value

    def _get_vault(self, vault_id) -> Dict:
        row = self.db.query_one(
            "SELECT id, name, balance FROM piggies WHERE id = ?",
            [self._vault_id(vault_id)]
        )
        if row is None:
            raise VaultError(f"Vault {vault_id} not found")
        return row

    # ---------------------------------------------------------------- queries

    def list_vaults(self) -> List[Dict]:
        self._check_unlocked()
        return self.db.query_many("SELECT id, name, balance FROM piggies ORDER BY name")

    def total_saved(self) -> float:
        return sum(vault["balance"] or 0 for vault in self.list_vaults())

    def available_balance(self) -> float:
        """Main balance: income minus expenses over all balance transactions."""
        self._check_unlocked()
        row = self.db.query_one(
            """
            SELECT COALESCE(SUM(CASE WHEN type = 'income' THEN amount ELSE -amount END), 0)
                AS total_balance
            FROM balance_transactions
            """
        )
        return row["total_balance"] if row else 0

    def history(self, vault_id, limit: int = 50) -> List[Dict]:
        self._check_unlocked()
        result = sanitize_id(limit)
        if not result.valid:
            raise VaultError(f"Invalid history limit: {limit!r}")
        limit = min(MAX_HISTORY, result.value)
        return self.db.query_many(
            "SELECT * FROM piggy_transactions WHERE piggy_id = ? ORDER BY date DESC, id DESC LIMIT ?",
            [self._vault_id(vault_id), limit]
        )

    # ---------------------------------------------------------------- vault crud

    def create_vault(self, name: str) -> int:
        self._check_unlocked()
        if not validate_name(name):
            raise VaultError("Vault name must be 1-50 characters")
        vault_id = self.db.insert("piggies", {"name": sanitize_text(name, 50), "balance": 0})
        logger.info("Created vault %d", vault_id)
        return vault_id

    def rename_vault(self, vault_id, name: str) -> None:
        self._check_unlocked()
        if not validate_name(name):
            raise VaultError("Vault name must be 1-50 characters")
        vault = self._get_vault(vault_id)
        self.db.execute(
            "UPDATE piggies SET name = ?, updated_at = datetime('now') WHERE id = ?",
            [sanitize_text(name, 50), vault["id"]]
        )

    def delete_vault(self, vault_id) -> bool:
        """Deletes the vault and (by cascade) its movements."""
        self._check_unlocked()
        return self.db.delete("piggies", self._vault_id(vault_id)) > 0

    # ---------------------------------------------------------------- movements

    def deposit(self, vault_id, amount, description: str) -> None:
        self._check_unlocked()
        value = self._amount(amount)
        if not validate_description(description):
            raise VaultError("Description must be 1-200 characters")

        with self.db.transaction():
            vault = self._get_vault(vault_id)
            self.db.execute(_ADD_TO_VAULT, [value, vault["id"]])
            self.db.execute(_INSERT_MOVEMENT, [vault["id"], value, "deposit", description, None])

    def withdraw(self, vault_id, amount, description: str) -> None:
        self._check_unlocked()
        value = self._amount(amount)
        if not validate_description(description):
            raise VaultError("Description must be 1-200 characters")

        with self.db.transaction():
            vault = self._get_vault(vault_id)
            if value > (vault["balance"] or 0):
                raise InsufficientFundsError("Withdrawal exceeds vault balance")
            self.db.execute(_TAKE_FROM_VAULT, [value, vault["id"]])
            self.db.execute(_INSERT_MOVEMENT, [vault["id"], value, "withdraw", description, None])

    def transfer(self, from_id, to_id, amount) -> None:
        """Move money between two vaults, recording both sides."""
        self._check_unlocked()
        value = self._amount(amount)

        with self.db.transaction():
            source = self._get_vault(from_id)
            target = self._get_vault(to_id)
            if source["id"] == target["id"]:
                raise VaultError("Cannot transfer a vault to itself")
            if value > (source["balance"] or 0):
                raise InsufficientFundsError("Transfer exceeds vault balance")

            self.db.execute(_TAKE_FROM_VAULT, [value, source["id"]])
            self.db.execute(_ADD_TO_VAULT, [value, target["id"]])
            self.db.execute(_INSERT_MOVEMENT, [
                source["id"], value, "transfer_out", f"Transferência para {target['name']}", target["id"]
            ])
            self.db.execute(_INSERT_MOVEMENT, [
                target["id"], value, "transfer_in", f"Transferência de {source['name']}", source["id"]
            ])

    def transfer_from_balance(self, vault_id, amount) -> None:
        """Move money from the main balance into a vault."""
        self._check_unlocked()
        value = self._amount(amount)

        with self.db.transaction():
            vault = self._get_vault(vault_id)
            if value > self.available_balance():
                raise InsufficientFundsError("Transfer exceeds available balance")

            self.db.execute(_ADD_TO_VAULT, [value, vault["id"]])
            self.db.execute(_INSERT_BALANCE, [
                value, f"Transferência para porquinho: {vault['name']}", "expense"
            ])
            self.db.execute(_INSERT_MOVEMENT, [vault["id"], value, "deposit", "Transferência do saldo", None])

    def transfer_to_balance(self, vault_id, amount) -> None:
        """Move money from a vault back to the main balance."""
        self._check_unlocked()
        value = self._amount(amount)

        with self.db.transaction():
            vault = self._get_vault(vault_id)
            if value > (vault["balance"] or 0):
                raise InsufficientFundsError("Transfer exceeds vault balance")

            self.db.execute(_TAKE_FROM_VAULT, [value, vault["id"]])
            self.db.execute(_INSERT_BALANCE, [
                value, f"Transferência do porquinho: {vault['name']}", "income"
            ])
            self.db.execute(_INSERT_MOVEMENT, [vault["id"], value, "withdraw", "Transferência para o saldo", None])
