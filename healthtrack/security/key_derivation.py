"""Password-based key derivation for the credential cipher.

Turns a password and a random 32-byte salt into a 256-bit symmetric key with
PBKDF2-HMAC-SHA512. The derived key is never persisted; it is recomputed from
(password, salt) on every verification, so derivation must be deterministic
for identical inputs.

Security Note:
    Never log passwords or derived keys. Only lengths and iteration counts.
"""

import logging
import os

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from healthtrack.exceptions import InvalidSaltLength

logger = logging.getLogger(__name__)

SALT_LENGTH = 32  # 256-bit salt
IV_LENGTH = 16  # AES block size
KEY_LENGTH = 32  # AES-256
MIN_ITERATIONS = 100_000
DEFAULT_ITERATIONS = 100_000


def generate_salt() -> bytes:
    """Return a fresh 32-byte salt from the OS CSPRNG."""
    return os.urandom(SALT_LENGTH)


def generate_iv() -> bytes:
    """Return a fresh 16-byte CBC initialization vector from the OS CSPRNG."""
    return os.urandom(IV_LENGTH)


def derive_key(password: str, salt: bytes, iterations: int = DEFAULT_ITERATIONS) -> bytes:
    """Derive a 32-byte key from a password using PBKDF2-HMAC-SHA512.

    Args:
        password: Plain text password (UTF-8 encoded before hashing).
        salt: Exactly 32 random bytes.
        iterations: PBKDF2 iteration count, at least 100,000.

    Returns:
        32-byte derived key.

    Raises:
        InvalidSaltLength: If salt is not 32 bytes long.
        ValueError: If iterations is below the minimum.
    """
    if not isinstance(salt, (bytes, bytearray)) or len(salt) != SALT_LENGTH:
        actual = len(salt) if isinstance(salt, (bytes, bytearray)) else None
        raise InvalidSaltLength(
            message=f"Salt must be exactly {SALT_LENGTH} bytes",
            details={"expected": SALT_LENGTH, "actual": actual},
        )
    if iterations < MIN_ITERATIONS:
        raise ValueError(
            f"PBKDF2 iteration count must be at least {MIN_ITERATIONS}, got {iterations}"
        )

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA512(),
        length=KEY_LENGTH,
        salt=bytes(salt),
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))
