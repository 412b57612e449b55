"""Credential security for healthtrack.

Password-at-rest envelope encryption (PBKDF2-HMAC-SHA512 + AES-256-CBC),
secure password generation and strength scoring.

Security Note (Threat Model):
    The envelope is reversible by anyone who knows the password; verification
    works by decrypting it. It does not defend against an attacker who
    holds the envelope and can brute-force a low-entropy password offline;
    the iterated derivation only raises the cost of each guess.
"""

from .credential_cipher import (
    CredentialCipher,
    PasswordStrength,
    StrengthCriteria,
    compare_password,
    generate_secure_password,
    hash_password,
    validate_password_strength,
)
from .key_derivation import derive_key, generate_iv, generate_salt

__all__ = [
    "CredentialCipher",
    "PasswordStrength",
    "StrengthCriteria",
    "compare_password",
    "derive_key",
    "generate_iv",
    "generate_salt",
    "generate_secure_password",
    "hash_password",
    "validate_password_strength",
]
