"""Credential Cipher: reversible password-at-rest envelopes.

Passwords are stored as an encrypted envelope rather than a one-way digest:

    envelope = base64( salt[32] | iv[16] | AES-256-CBC(PBKDF2(password, salt), iv, password) )

Verification re-derives the key from the candidate password and the stored
salt, decrypts, and compares the plaintext with the candidate. A wrong
password yields a wrong key, which almost always surfaces as a padding error
and otherwise as a plaintext mismatch; both are reported as ``False``.

The envelope format is fixed for compatibility with credentials that are
already stored: 32-byte salt, 16-byte IV, PKCS7-padded CBC ciphertext,
standard base64 with padding.

Security Note:
    Never log plaintext passwords or envelopes. Salt and IV are fresh per
    ``hash`` call, so the same password never produces the same envelope.
"""

import asyncio
import base64
import hmac
import logging
import re
import secrets
import string

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from healthtrack.exceptions import EncryptionError

from .key_derivation import (
    DEFAULT_ITERATIONS,
    IV_LENGTH,
    SALT_LENGTH,
    derive_key,
    generate_iv,
    generate_salt,
)

logger = logging.getLogger(__name__)

UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
DIGITS = string.digits
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"
ALPHABET = UPPERCASE + LOWERCASE + DIGITS + SYMBOLS

MIN_PASSWORD_LENGTH = 8
MIN_GENERATED_LENGTH = 4

COMMON_PATTERNS = ("123456", "password", "qwerty", "abc123", "111111", "000000", "admin", "login")

_SYMBOL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{}|;:,.<>?]")


class StrengthCriteria(BaseModel):
    """Individual pass/fail checks behind a strength score."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    min_length: bool = False
    has_uppercase: bool = False
    has_lowercase: bool = False
    has_numbers: bool = False
    has_symbols: bool = False
    no_common_patterns: bool = True


class PasswordStrength(BaseModel):
    """Result of :meth:`CredentialCipher.validate_strength`.

    Serializes with camelCase keys (``isValid``, ``noCommonPatterns``...) when
    dumped with ``by_alias=True``, matching the registration API payload.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_valid: bool = False
    strength: str = Field(default="weak", description="weak, medium or strong")
    score: int = Field(default=0, ge=0, le=5)
    suggestions: list[str] = Field(default_factory=list)
    criteria: StrengthCriteria = Field(default_factory=StrengthCriteria)


class CredentialCipher:
    """Encrypts, verifies, generates and scores passwords.

    Args:
        iterations: PBKDF2 iteration count used for every derivation. Must
            match the value used when existing envelopes were created.
    """

    def __init__(self, iterations: int = DEFAULT_ITERATIONS):
        self.iterations = iterations

    # ------------------------------------------------------------------
    # Envelope encryption
    # ------------------------------------------------------------------

    def hash(self, password: str) -> str:
        """Encrypt a password into a base64 envelope.

        Args:
            password: Plain text password.

        Returns:
            base64(salt | iv | ciphertext) as an ASCII string.

        Raises:
            EncryptionError: If the cipher primitive rejects the key or input.
        """
        try:
            salt = generate_salt()
            iv = generate_iv()
            key = derive_key(password, salt, self.iterations)

            padder = padding.PKCS7(algorithms.AES.block_size).padder()
            padded = padder.update(password.encode("utf-8")) + padder.finalize()

            encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
            ciphertext = encryptor.update(padded) + encryptor.finalize()
        except (ValueError, TypeError, AttributeError) as e:
            logger.error(f"Password encryption failed: {type(e).__name__}")
            raise EncryptionError(
                message="Password encryption failed",
                details={"iterations": self.iterations},
                original_exception=e,
            ) from e

        return base64.b64encode(salt + iv + ciphertext).decode("ascii")

    def compare(self, candidate: str, envelope: str) -> bool:
        """Check a candidate password against a stored envelope.

        Never raises: any decode, derivation or decryption failure means the
        candidate does not match.

        Args:
            candidate: Plain text password to check.
            envelope: Stored envelope from :meth:`hash`.

        Returns:
            True if the envelope decrypts to exactly ``candidate``.
        """
        try:
            combined = base64.b64decode(envelope, validate=True)
            header = SALT_LENGTH + IV_LENGTH
            ciphertext = combined[header:]
            if not ciphertext or len(ciphertext) % (algorithms.AES.block_size // 8):
                logger.debug("Password comparison failed (malformed envelope)")
                return False

            salt = combined[:SALT_LENGTH]
            iv = combined[SALT_LENGTH:header]
            key = derive_key(candidate, salt, self.iterations)

            decryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()

            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()

            is_match = hmac.compare_digest(plaintext, candidate.encode("utf-8"))
        except Exception as e:
            logger.debug(f"Password comparison failed ({type(e).__name__})")
            return False

        if not is_match:
            logger.debug("Password comparison failed (passwords don't match)")
        return is_match

    # ------------------------------------------------------------------
    # Generation and scoring
    # ------------------------------------------------------------------

    def generate_secure_password(self, length: int = 16) -> str:
        """Generate a random password containing every character class.

        Args:
            length: Desired password length, at least 4.

        Returns:
            Password with at least one uppercase letter, lowercase letter,
            digit and symbol, in uniformly random order.

        Raises:
            ValueError: If length is below 4.
        """
        if length < MIN_GENERATED_LENGTH:
            raise ValueError(
                f"Password length must be at least {MIN_GENERATED_LENGTH}, got {length}"
            )

        chars = [secrets.choice(pool) for pool in (UPPERCASE, LOWERCASE, DIGITS, SYMBOLS)]
        chars.extend(secrets.choice(ALPHABET) for _ in range(length - len(chars)))
        secrets.SystemRandom().shuffle(chars)
        return "".join(chars)

    def validate_strength(self, password: str) -> PasswordStrength:
        """Score a password against five criteria and a common-pattern deny-list.

        Score is the number of satisfied criteria, minus one (floored at zero)
        if the lower-cased password contains a common pattern.

        Returns:
            PasswordStrength with strength weak (<3), medium (3) or strong (>=4).
        """
        criteria = StrengthCriteria()
        suggestions: list[str] = []
        score = 0

        checks = (
            ("min_length", len(password) >= MIN_PASSWORD_LENGTH,
             f"Use at least {MIN_PASSWORD_LENGTH} characters"),
            ("has_uppercase", any(c in UPPERCASE for c in password), "Include uppercase letters"),
            ("has_lowercase", any(c in LOWERCASE for c in password), "Include lowercase letters"),
            ("has_numbers", any(c in DIGITS for c in password), "Include numbers"),
            ("has_symbols", bool(_SYMBOL_RE.search(password)), "Include special characters"),
        )
        for name, passed, suggestion in checks:
            if passed:
                setattr(criteria, name, True)
                score += 1
            else:
                suggestions.append(suggestion)

        lowered = password.lower()
        if any(pattern in lowered for pattern in COMMON_PATTERNS):
            criteria.no_common_patterns = False
            score = max(0, score - 1)
            suggestions.append("Avoid common patterns")

        if score >= 4:
            strength = "strong"
        elif score == 3:
            strength = "medium"
        else:
            strength = "weak"

        return PasswordStrength(
            is_valid=score >= 3,
            strength=strength,
            score=score,
            suggestions=suggestions,
            criteria=criteria,
        )


# Default instance for the module-level helpers
_default_cipher = CredentialCipher()


async def hash_password(password: str, cipher: CredentialCipher | None = None) -> str:
    """Encrypt a password without blocking the event loop.

    Raises:
        EncryptionError: If encryption fails.
    """
    return await asyncio.to_thread((cipher or _default_cipher).hash, password)


async def compare_password(
    candidate: str, envelope: str, cipher: CredentialCipher | None = None
) -> bool:
    """Verify a password without blocking the event loop. Never raises."""
    return await asyncio.to_thread((cipher or _default_cipher).compare, candidate, envelope)


def generate_secure_password(length: int = 16) -> str:
    return _default_cipher.generate_secure_password(length)


def validate_password_strength(password: str) -> PasswordStrength:
    return _default_cipher.validate_strength(password)
