"""
Vault Configuration: Master secret loading and validated settings.

Reads the master secret from the environment:
    VAULT_MASTER_SECRET = <secret>
    VAULT_MASTER_SECRET_FILE = <path to a file holding the secret>

Security Note:
    Never log the master secret. The secret is not part of VaultConfig.
"""
import os
import base64
import secrets
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .crypto import CIPHERS, DEFAULT_ITERATIONS
from .storage import DEFAULT_LOCK_TIMEOUT

logger = logging.getLogger("config_vault")

_TRUE_VALUES = ("1", "true", "yes", "on")


def load_master_secret() -> bytes:
    """Load the master secret from VAULT_MASTER_SECRET or VAULT_MASTER_SECRET_FILE.

    The inline variable wins when both are set. A single trailing newline
    is stripped from secret files.

    Returns:
        Raw secret bytes.

    Raises:
        RuntimeError: If neither variable is set or the secret is empty.
    """
    inline = os.environ.get("VAULT_MASTER_SECRET")
    if inline:
        logger.debug("Master secret taken from VAULT_MASTER_SECRET")
        return inline.encode("utf-8")
    path = os.environ.get("VAULT_MASTER_SECRET_FILE")
    if path:
        secret = Path(path).read_bytes()
        if secret.endswith(b"\n"):
            secret = secret[:-1]
            if secret.endswith(b"\r"):
                secret = secret[:-1]
        if not secret:
            raise RuntimeError(f"Master secret file {path} is empty")
        logger.debug("Master secret read from file %s", path)
        return secret
    raise RuntimeError(
        "No vault master secret found in environment. "
        "Set VAULT_MASTER_SECRET or VAULT_MASTER_SECRET_FILE"
    )


def get_vault_path() -> Path:
    """Read the vault file location from VAULT_PATH.

    Raises:
        RuntimeError: If VAULT_PATH is not set.
    """
    raw = os.environ.get("VAULT_PATH")
    if not raw:
        raise RuntimeError("VAULT_PATH environment variable is not set")
    return Path(raw)


def generate_master_secret() -> str:
    """Generate a random 32-byte master secret and return as base64 string.

    This is a utility for operators to generate new secrets.
    """
    return base64.b64encode(secrets.token_bytes(32)).decode("ascii")


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    cipher_backend: str = Field(default="aesgcm")
    kdf: str = Field(default="pbkdf2")
    kdf_iterations: int = Field(default=DEFAULT_ITERATIONS, ge=1)
    lock_timeout: float = Field(default=DEFAULT_LOCK_TIMEOUT, ge=0)
    file_mode: int = Field(default=0o600, ge=0, le=0o777)
    refresh_on_read: bool = True

    model_config = {"frozen": True}

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        if v not in CIPHERS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @field_validator("kdf")
    @classmethod
    def validate_kdf(cls, v: str) -> str:
        """Validate key derivation function is supported."""
        if v not in ("pbkdf2", "hkdf"):
            raise ValueError(f"Unsupported key derivation function: {v}")
        return v

    @classmethod
    def from_env(cls, **overrides) -> "VaultConfig":
        """Create VaultConfig by loading values from environment.

        Unset variables keep their defaults; keyword overrides win.
        """
        values: dict = {}
        env = os.environ
        if "VAULT_CIPHER_BACKEND" in env:
            values["cipher_backend"] = env["VAULT_CIPHER_BACKEND"].lower()
        if "VAULT_KDF" in env:
            values["kdf"] = env["VAULT_KDF"].lower()
        if "VAULT_KDF_ITERATIONS" in env:
            values["kdf_iterations"] = int(env["VAULT_KDF_ITERATIONS"])
        if "VAULT_LOCK_TIMEOUT" in env:
            values["lock_timeout"] = float(env["VAULT_LOCK_TIMEOUT"])
        if "VAULT_REFRESH_ON_READ" in env:
            values["refresh_on_read"] = (
                env["VAULT_REFRESH_ON_READ"].strip().lower() in _TRUE_VALUES
            )
        values.update(overrides)
        return cls(**values)


def resolve_config(config: Optional[VaultConfig] = None) -> VaultConfig:
    """Return ``config`` or the built-in defaults.

    The environment is only consulted through an explicit
    ``VaultConfig.from_env()``.
    """
    return config if config is not None else VaultConfig()
