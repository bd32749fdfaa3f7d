"""
Vault Key Rotation: Re-encrypt a vault under a new master secret.

The vault is re-sealed with a new random salt and a key derived from the new
secret in a single atomic save: readers see either the old blob or the new
one. Rotation is caller-initiated; nothing here schedules it.

Security Note:
    Other open handles on the same vault fail with CorruptionError on their
    next access (the salt changed) and must be re-opened with the new secret.
    Never log secrets or values.
"""
import os
import hmac
import logging
from typing import Optional, Union

from .config import VaultConfig
from .storage import VaultStorage
from .vault import ConfigVault, Secret

logger = logging.getLogger("config_vault")


def _as_bytes(secret: Secret) -> bytes:
    if isinstance(secret, str):
        return secret.encode("utf-8")
    return bytes(secret)


def rotate_master_secret(
    location: Union[VaultStorage, str, os.PathLike],
    old_secret: Secret,
    new_secret: Secret,
    config: Optional[VaultConfig] = None,
) -> dict:
    """Re-encrypt the vault at ``location`` from ``old_secret`` to ``new_secret``.

    Args:
        location: Vault file path or storage backend.
        old_secret: Secret the vault is currently sealed with.
        new_secret: Secret to seal the vault with from now on.
        config: Optional vault configuration.

    Returns:
        Stats dict with keys: domains, keys.

    Raises:
        ValueError: If both secrets are identical (``str`` secrets compare
            by their UTF-8 encoding).
        CorruptionError: If ``old_secret`` does not open the vault.
    """
    if hmac.compare_digest(_as_bytes(old_secret), _as_bytes(new_secret)):
        raise ValueError("New master secret must differ from the old one")

    with ConfigVault.load(old_secret, location, config=config) as vault:
        logger.info("Starting master secret rotation for %s", vault.storage.location)
        vault.rekey(new_secret)
        domains = vault.domains()
        stats = {
            "domains": len(domains),
            "keys": sum(len(vault.keys(domain)) for domain in domains),
        }

    logger.info("Master secret rotation complete: %s", stats)
    return stats
