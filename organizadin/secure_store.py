"""
OrganizaDin Secure Store
Small encrypted key-value store used only by the PIN credential module.

Values are encrypted with ChaCha20-Poly1305 under a key derived (HKDF) from a
per-installation device key. The device key lives in a 0600 file beside the
store; the store file itself only ever holds ciphertext.
"""

import base64
import json
import logging
import os
import threading
from typing import Dict, Optional

from cryptography.exceptions import InvalidTag

from organizadin.config import STORE_PATH
from organizadin.crypto_engine import (
    KEY_LENGTH,
    decrypt_value,
    derive_hkdf_key,
    encrypt_value,
    generate_key,
)

logger = logging.getLogger(__name__)

STORE_KDF_SALT = b"organizadin-secure-store-v1"


class SecureStoreError(Exception):
    """Raised when the store or its device key is unreadable or tampered"""
    pass


class SecureStore:
    """
    get/set/delete by string key with device-backed confidentiality.

    Writes are atomic: temp file + fsync + os.replace.
    """

    def __init__(self, path: str = STORE_PATH, key_path: Optional[str] = None):
        self.path = str(path)
        self.key_path = str(key_path) if key_path else self.path + ".key"
        self._lock = threading.RLock()
        self._device_key: Optional[bytes] = None

    # ---------------------------------------------------------------- device key

    def _load_device_key(self) -> bytes:
        if self._device_key is not None:
            return self._device_key

        directory = os.path.dirname(os.path.abspath(self.key_path))
        os.makedirs(directory, exist_ok=True)

        if os.path.exists(self.key_path):
            with open(self.key_path, "rb") as f:
                key = f.read()
            if len(key) != KEY_LENGTH:
                raise SecureStoreError("Device key file is corrupt")
        else:
            key = generate_key(KEY_LENGTH)
            fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(key)
                f.flush()
                os.fsync(f.fileno())
            logger.info("Created secure store device key at %s", self.key_path)

        self._device_key = key
        return key

    def _entry_key(self, name: str) -> bytes:
        return derive_hkdf_key(
            master_key=self._load_device_key(),
            info=b"secure-store-entry-" + name.encode("utf-8"),
            salt=STORE_KDF_SALT
        )

    # ---------------------------------------------------------------- file io

    def _read_all(self) -> Dict[str, Dict[str, str]]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise SecureStoreError(f"Secure store unreadable: {e}") from e
        if not isinstance(data, dict):
            raise SecureStoreError("Secure store has an invalid layout")
        return data

    def _write_all(self, data: Dict[str, Dict[str, str]]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        tmp_path = self.path + ".tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, sort_keys=True)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, self.path)

    @staticmethod
    def _check_key(key: str) -> None:
        if not isinstance(key, str) or not key:
            raise ValueError("Secure store keys must be non-empty strings")

    # ---------------------------------------------------------------- public api

    def get(self, key: str) -> Optional[str]:
        self._check_key(key)
        with self._lock:
            item = self._read_all().get(key)
            if item is None:
                return None
            try:
                return decrypt_value(
                    base64.b64decode(item["nonce"]),
                    base64.b64decode(item["ciphertext"]),
                    self._entry_key(key),
                    associated_data=key.encode("utf-8")
                )
            except (InvalidTag, KeyError, TypeError, ValueError) as e:
                raise SecureStoreError(f"Secure store entry '{key}' is corrupt or tampered") from e

    def set(self, key: str, value: str) -> None:
        self._check_key(key)
        if not isinstance(value, str):
            raise TypeError("Secure store values must be strings")
        with self._lock:
            data = self._read_all()
            nonce, ciphertext = encrypt_value(
                value, self._entry_key(key), associated_data=key.encode("utf-8")
            )
            data[key] = {
                "nonce": base64.b64encode(nonce).decode("ascii"),
                "ciphertext": base64.b64encode(ciphertext).decode("ascii"),
            }
            self._write_all(data)

    def delete(self, key: str) -> None:
        self._check_key(key)
        with self._lock:
            data = self._read_all()
            if key in data:
                del data[key]
                self._write_all(data)
