"""Exception hierarchy for the healthtrack credential and cache layers.

Only a small part of the system is allowed to fail loudly. Credential
derivation and encryption faults are programming or environment errors and
propagate to the caller as a hashing failure. Everything else is absorbed at
the boundary where it happens:

- Password verification mismatches are a boolean ``False``, never an error.
- Cache faults (Redis unreachable, timeouts, malformed payloads) become a
  cache miss or a no-op and are only logged.
- Invalidation is best-effort; one failed delete never aborts the others.

All project exceptions inherit from :class:`HealthTrackError`, which carries a
machine-readable ``error_code``, structured ``details`` and an HTTP status
code so an API layer can render them consistently.

Usage Example:
--------------
```python
try:
    envelope = cipher.hash(password)
except EncryptionError as e:
    logger.error(f"Registration failed: {e}")
    raise
```
"""

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

# =============================================================================
# BASE EXCEPTION CLASS
# =============================================================================


@dataclass(eq=False)
class HealthTrackError(Exception):
    """Base exception for all healthtrack errors.

    Attributes:
    -----------
    message : str
        Human-readable error description for developers and logs
    error_code : str
        Machine-readable error identifier (e.g., "ENCRYPTION_FAILED")
    details : dict
        Additional context about the error. Never includes passwords,
        tokens or ciphertexts.
    timestamp : str
        ISO 8601 timestamp when the error occurred
    request_id : str
        Unique identifier for this operation
    http_status_code : int
        HTTP status code for API responses
    original_exception : Optional[Exception]
        The underlying exception that caused this error

    Example:
    --------
    >>> raise HealthTrackError(
    ...     message="Unexpected failure",
    ...     error_code="INTERNAL_ERROR",
    ...     details={"component": "cipher"},
    ... )
    """

    message: str
    error_code: str = "HEALTHTRACK_ERROR"
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    request_id: str = field(default_factory=lambda: str(uuid4()))
    http_status_code: int = 500
    original_exception: Exception | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def __str__(self) -> str:
        """Human-readable error representation for logs."""
        error_msg = f"[{self.error_code}] {self.message}"
        if self.details:
            error_msg += f" | Details: {self.details}"
        if self.original_exception:
            error_msg += (
                f" | Caused by: {type(self.original_exception).__name__}: {self.original_exception}"
            )
        return error_msg

    def __repr__(self) -> str:
        """Developer-friendly representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"error_code='{self.error_code}', "
            f"message='{self.message}', "
            f"request_id='{self.request_id}', "
            f"timestamp='{self.timestamp}'"
            f")"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for JSON serialization.

        Returns:
        --------
        dict with keys: error, error_code, details, timestamp, request_id,
        http_status_code and, when chained, original_error
        """
        error_dict = {
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details,
            "timestamp": self.timestamp,
            "request_id": self.request_id,
            "http_status_code": self.http_status_code,
        }

        if self.original_exception:
            error_dict["original_error"] = {
                "type": type(self.original_exception).__name__,
                "message": str(self.original_exception),
                "traceback": traceback.format_exception(
                    type(self.original_exception),
                    self.original_exception,
                    self.original_exception.__traceback__,
                ),
            }

        return error_dict


# =============================================================================
# CREDENTIAL EXCEPTIONS
# =============================================================================
# These are the only faults allowed to reach a user. They indicate misuse of
# the cryptographic primitives and should not occur with the fixed parameters.


@dataclass(eq=False, repr=False)
class CredentialError(HealthTrackError):
    """Base class for password hashing failures."""

    error_code: str = "CREDENTIAL_ERROR"
    http_status_code: int = 500


@dataclass(eq=False, repr=False)
class InvalidSaltLength(CredentialError):
    """Salt passed to key derivation is not exactly 32 bytes.

    Example:
    --------
    >>> raise InvalidSaltLength(
    ...     message="Salt must be 32 bytes",
    ...     details={"expected": 32, "actual": 16},
    ... )
    """

    error_code: str = "INVALID_SALT_LENGTH"


@dataclass(eq=False, repr=False)
class EncryptionError(CredentialError):
    """The symmetric cipher rejected the derived key or the plaintext."""

    error_code: str = "ENCRYPTION_FAILED"


# =============================================================================
# CONFIGURATION EXCEPTIONS
# =============================================================================


@dataclass(eq=False, repr=False)
class ConfigurationError(HealthTrackError):
    """Settings are inconsistent or unusable at startup.

    Example:
    --------
    >>> raise ConfigurationError(
    ...     message="REDIS_URL must use the redis:// or rediss:// scheme",
    ...     details={"redis_url": "http://cache:6379"},
    ... )
    """

    error_code: str = "CONFIGURATION_ERROR"
    http_status_code: int = 500
