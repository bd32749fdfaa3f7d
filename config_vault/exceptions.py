"""
Vault Exceptions: Error taxonomy for the configuration vault.

Storage read/write failures are not wrapped: they surface as the builtin
``OSError`` raised by the storage backend.
"""
from typing import Any, Optional


class VaultError(Exception):
    """Base exception for all vault errors.

    Args:
        message: Human readable description. Never contains secret values.
        details: Optional structured context (domain, key, location...).
    """

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            ctx = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} ({ctx})"
        return self.message


class TypeMismatch(VaultError):
    """A stored value was read with an accessor for a different type."""

    def __init__(
        self,
        expected: Any,
        actual: Any,
        domain: Optional[str] = None,
        key: Optional[str] = None,
    ):
        self.expected = expected
        self.actual = actual
        self.domain = domain
        self.key = key
        details: dict[str, Any] = {}
        if domain is not None:
            details["domain"] = domain
        if key is not None:
            details["key"] = key
        super().__init__(
            f"Stored value has type {actual.name}, requested {expected.name}",
            details,
        )


class CorruptionError(VaultError):
    """The persisted vault failed authentication or is malformed.

    Fatal for the vault instance that raised it.
    """


class ConcurrentModificationError(VaultError):
    """The storage lock could not be acquired within the configured timeout."""


class VaultStateError(VaultError):
    """An operation was attempted on a vault that is not open."""
