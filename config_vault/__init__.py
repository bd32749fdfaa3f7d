"""Config Vault: Encrypted key-value storage for sensitive configuration.

Security Note (Threat Model):
    Values are decrypted in process memory while a vault is open.
    A memory dump of the application process could expose them together
    with the derived working key. This is an accepted limitation;
    mitigation requires HSM/secure enclave integration which is out of scope.
"""

from .codec import ValueType, VaultValue
from .config import (
    VaultConfig,
    load_master_secret,
    get_vault_path,
    generate_master_secret,
)
from .exceptions import (
    VaultError,
    TypeMismatch,
    CorruptionError,
    ConcurrentModificationError,
    VaultStateError,
)
from .storage import VaultStorage, FileStorage, MemoryStorage
from .vault import ConfigVault, VaultState
from .key_rotation import rotate_master_secret
from .legacy import GenericConfigVault
from .version import __version__

__all__ = [
    "ConfigVault",
    "VaultState",
    "ValueType",
    "VaultValue",
    "VaultConfig",
    "load_master_secret",
    "get_vault_path",
    "generate_master_secret",
    "VaultError",
    "TypeMismatch",
    "CorruptionError",
    "ConcurrentModificationError",
    "VaultStateError",
    "VaultStorage",
    "FileStorage",
    "MemoryStorage",
    "rotate_master_secret",
    "GenericConfigVault",
    "__version__",
]
