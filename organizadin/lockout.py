"""
PIN Lockout Manager
Counts failed PIN attempts and enforces a timed lockout once the limit is hit.
Expiry is evaluated lazily on the next check; there is no background timer.
"""

import json
import logging
import math
import time
from dataclasses import asdict, dataclass
from typing import Optional

from organizadin.config import LOCKOUT_DURATION_SECONDS, MAX_PIN_ATTEMPTS

logger = logging.getLogger(__name__)

LEDGER_KEY = "piggy_attempt_ledger"


class CredentialError(Exception):
    """Base exception for PIN credential operations"""
    pass


class PinLockedError(CredentialError):
    """Raised while verification is refused after too many failures"""

    def __init__(self, remaining_seconds: int):
        self.remaining_seconds = max(0, int(remaining_seconds))
        minutes = max(1, math.ceil(self.remaining_seconds / 60))
        super().__init__(f"Too many attempts. Try again in {minutes} minute(s).")


@dataclass
class AttemptLedger:
    failed_count: int = 0
    lockout_until: Optional[float] = None

    def is_locked(self, now: float) -> bool:
        return self.lockout_until is not None and now < self.lockout_until


class PinLockout:

    def __init__(
            self,
            store,
            max_attempts: int = MAX_PIN_ATTEMPTS,
            lockout_seconds: int = LOCKOUT_DURATION_SECONDS
    ):
        """
        Args:
            store: Secure key-value store (get/set/delete)
            max_attempts: Failures that trigger a lockout
            lockout_seconds: Lockout length
        """
        if not isinstance(max_attempts, int) or not isinstance(lockout_seconds, int):
            raise ValueError("PinLockout config values must be integers")
        if max_attempts <= 0 or lockout_seconds <= 0:
            raise ValueError("PinLockout config values must be positive")

        self.store = store
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds

    def load(self) -> AttemptLedger:
        raw = self.store.get(LEDGER_KEY)
        if raw is None:
            return AttemptLedger()
        try:
            data = json.loads(raw)
            ledger = AttemptLedger(
                failed_count=max(0, int(data.get("failed_count", 0))),
                lockout_until=(
                    float(data["lockout_until"])
                    if data.get("lockout_until") is not None else None
                ),
            )
        except (ValueError, TypeError, AttributeError, KeyError):
            # Unreadable ledger is treated as exhausted, never as a free reset
            logger.warning("Attempt ledger unreadable, enforcing lockout")
            ledger = AttemptLedger(self.max_attempts, time.time() + self.lockout_seconds)
            self._save(ledger)
        return ledger

    def _save(self, ledger: AttemptLedger) -> None:
        self.store.set(LEDGER_KEY, json.dumps(asdict(ledger)))

    def check(self) -> None:
        """
        Refuse while locked; clear an expired lockout.

        Raises:
            PinLockedError: with the remaining wait, without consuming an attempt
        """
        ledger = self.load()
        if ledger.lockout_until is None:
            return

        now = time.time()
        if ledger.is_locked(now):
            raise PinLockedError(math.ceil(ledger.lockout_until - now))

        logger.info("PIN lockout expired, clearing attempt ledger")
        self.reset()

    def record_failure(self) -> AttemptLedger:
        """
        Count one failed attempt; reaching max_attempts starts the lockout.
        """
        ledger = self.load()
        ledger.failed_count += 1
        if ledger.failed_count >= self.max_attempts:
            ledger.lockout_until = time.time() + self.lockout_seconds
            logger.warning(
                "PIN locked for %d seconds after %d failed attempts",
                self.lockout_seconds, ledger.failed_count
            )
        self._save(ledger)
        return ledger

    def reset(self) -> None:
        self.store.delete(LEDGER_KEY)

    def remaining_attempts(self) -> int:
        return max(0, self.max_attempts - self.load().failed_count)

    def get_status(self) -> dict:
        """
        Summary for callers deciding what to show.
        """
        ledger = self.load()
        now = time.time()
        locked = ledger.is_locked(now)
        return {
            "allowed": not locked,
            "delay": math.ceil(ledger.lockout_until - now) if locked else 0,
            "failures": ledger.failed_count,
        }
