"""
OrganizaDin PIN Security
Hashes and verifies the 4-digit PIN guarding the savings vault, with
attempt counting and a timed lockout.

State Machine:
    NO_CREDENTIAL -> SET -> (failures) -> LOCKED(until) -> SET
"""

import logging
from enum import Enum

from organizadin.crypto_engine import digests_match, hash_pin
from organizadin.input_validation import validate_pin
from organizadin.lockout import CredentialError, PinLockedError, PinLockout

logger = logging.getLogger(__name__)

PIN_HASH_KEY = "piggy_password_hash"
LEGACY_PIN_KEY = "piggy_password"


class InvalidPinError(CredentialError):
    """Raised when a PIN to be stored is not exactly 4 digits"""
    pass


class NoCredentialError(CredentialError):
    """Raised when verifying while no PIN has been configured"""
    pass


class CredentialState(Enum):
    NO_CREDENTIAL = "no_credential"
    SET = "set"
    LOCKED = "locked"


class PinSecurity:
    """
    Single PIN record per installation, kept in the secure store.

    Security:
        - Digest only (Argon2id, constant salt), compared in constant time
        - Lockout is a rate limiter for a soft partition, it never blocks
          anything outside the vault
        - A legacy plaintext PIN is accepted once, then migrated to a digest
    """

    def __init__(self, store, lockout: PinLockout = None):
        """
        Args:
            store: Secure key-value store (get/set/delete)
            lockout: Optional PinLockout sharing the same store
        """
        self.store = store
        self.lockout = lockout if lockout is not None else PinLockout(store)

    def has_credential(self) -> bool:
        return bool(self.store.get(PIN_HASH_KEY) or self.store.get(LEGACY_PIN_KEY))

    def state(self) -> CredentialState:
        if not self.has_credential():
            return CredentialState.NO_CREDENTIAL
        if not self.lockout.get_status()["allowed"]:
            return CredentialState.LOCKED
        return CredentialState.SET

    def set_credential(self, pin: str) -> None:
        """
        Store (or overwrite) the PIN digest and clear the attempt ledger.

        Raises:
            InvalidPinError: if pin is not exactly 4 ASCII digits
        """
        if not validate_pin(pin):
            raise InvalidPinError("PIN must be exactly 4 digits")

        self.store.set(PIN_HASH_KEY, hash_pin(pin).hex())
        self.store.delete(LEGACY_PIN_KEY)
        self.lockout.reset()
        logger.info("Vault PIN set")

    def verify(self, pin: str) -> bool:
        """
        Check a PIN against the stored credential.

        Returns:
            True on match (ledger cleared), False on mismatch (attempt counted)

        Raises:
            PinLockedError: while locked; no attempt is consumed
            NoCredentialError: when no PIN is configured
        """
        self.lockout.check()

        stored_hex = self.store.get(PIN_HASH_KEY)
        if stored_hex is None:
            legacy = self.store.get(LEGACY_PIN_KEY)
            if legacy is None:
                raise NoCredentialError("No vault PIN configured")
            return self._verify_legacy(pin, legacy)

        try:
            stored = bytes.fromhex(stored_hex)
        except ValueError as e:
            raise CredentialError("Stored PIN digest is corrupt") from e

        # Malformed input is hashed anyway so every path does the same work
        candidate = pin if isinstance(pin, str) else ""
        matched = digests_match(hash_pin(candidate), stored) and validate_pin(pin)

        if matched:
            self.lockout.reset()
            return True

        self.lockout.record_failure()
        return False

    def _verify_legacy(self, pin: str, legacy: str) -> bool:
        candidate = pin if isinstance(pin, str) else ""
        if validate_pin(pin) and digests_match(candidate.encode("utf-8"), legacy.encode("utf-8")):
            logger.info("Migrating legacy plaintext PIN to a digest")
            self.set_credential(pin)
            return True

        self.lockout.record_failure()
        return False

    def remove_credential(self) -> None:
        """Clear the PIN record and the ledger (back to NO_CREDENTIAL)."""
        self.store.delete(PIN_HASH_KEY)
        self.store.delete(LEGACY_PIN_KEY)
        self.lockout.reset()
        logger.info("Vault PIN removed")

    def remaining_attempts(self) -> int:
        return self.lockout.remaining_attempts()

    def get_status(self) -> dict:
        status = self.lockout.get_status()
        status["state"] = self.state().value
        status["remaining_attempts"] = self.remaining_attempts()
        return status
