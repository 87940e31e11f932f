"""
OrganizaDin Crypto Engine
Handles: PIN digests (Argon2id), secure-store value encryption
(ChaCha20-Poly1305) and per-entry key derivation (HKDF).
"""
import hmac
import secrets
from typing import Tuple

from argon2 import low_level
from argon2.exceptions import HashingError
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

# One PIN record per installation: the salt is a fixed application constant.
PIN_DIGEST_SALT = b"organizadin_salt_2024"
PIN_TIME_COST = 2
PIN_MEMORY_COST = 19 * 1024     # KB (19 MB)
PIN_PARALLELISM = 1
PIN_HASH_LEN = 32

KEY_LENGTH = 32
NONCE_LENGTH = 12


def generate_key(length: int = KEY_LENGTH) -> bytes:
    """
    Generate secure random key.

    Security:
        - Used for the per-installation device key of the secure store
        - 256 bits = industry standard for symmetric encryption
    """
    return secrets.token_bytes(length)


def generate_nonce(length: int = NONCE_LENGTH) -> bytes:
    # ChaCha20-Poly1305 requires a unique 96-bit nonce per encryption
    return secrets.token_bytes(length)


def hash_pin(pin: str, salt: bytes = PIN_DIGEST_SALT) -> bytes:
    """
    Compute the fixed-length digest stored for the vault PIN.

    Args:
        pin: 4-digit PIN (already validated by the caller)
        salt: Constant application salt

    Returns:
        32-byte Argon2id digest

    Security:
        - A 4-digit PIN has only 10,000 values; the memory-hard hash slows
          offline guessing, the attempt lockout limits online guessing
    """
    try:
        return low_level.hash_secret_raw(
            secret=pin.encode("utf-8"),
            salt=salt,
            time_cost=PIN_TIME_COST,
            memory_cost=PIN_MEMORY_COST,
            parallelism=PIN_PARALLELISM,
            hash_len=PIN_HASH_LEN,
            type=low_level.Type.ID
        )
    except HashingError as e:
        raise RuntimeError(f"Argon2id PIN hashing failed: {e}") from e


def digests_match(computed: bytes, stored: bytes) -> bool:
    """Constant-time comparison (no early exit on partial match)."""
    return hmac.compare_digest(computed, stored)


def derive_hkdf_key(
    master_key: bytes,
    info: bytes,
    salt: bytes,
    length: int = KEY_LENGTH
) -> bytes:
    if not isinstance(master_key, (bytes, bytearray)):
        raise TypeError("Master key must be bytes")

    if not salt or not isinstance(salt, (bytes, bytearray)):
        raise ValueError("HKDF requires an explicit, non-empty salt")

    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=info
    )
    return hkdf.derive(bytes(master_key))


def encrypt_value(
        plaintext: str,
        key: bytes,
        associated_data: bytes
) -> Tuple[bytes, bytes]:
    """
    Encrypt a UTF-8 string with ChaCha20-Poly1305.

    Returns:
        (nonce, ciphertext_with_tag)
    """
    if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
        raise ValueError("ChaCha20-Poly1305 key must be 32 bytes")
    if not isinstance(plaintext, str):
        raise TypeError("Encryption Failed: Plaintext must be a UTF-8 string")

    nonce = generate_nonce()
    cipher = ChaCha20Poly1305(bytes(key))
    return nonce, cipher.encrypt(nonce, plaintext.encode("utf-8"), associated_data)


def decrypt_value(
        nonce: bytes,
        ciphertext: bytes,
        key: bytes,
        associated_data: bytes
) -> str:
    """
    Raises:
        InvalidTag: wrong key, wrong associated data or tampered ciphertext
    """
    cipher = ChaCha20Poly1305(bytes(key))
    try:
        plaintext_bytes = cipher.decrypt(nonce, ciphertext, associated_data)
    except InvalidTag as e:
        raise InvalidTag("Authentication failed: wrong key or data corrupted") from e
    return plaintext_bytes.decode("utf-8")
