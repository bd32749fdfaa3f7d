"""
Generic ConfigVault adapter: untyped get/put/unset over the typed vault.

Reproduces the original single-method interface, where ``key=None`` means
"the whole domain". Type tags are inferred from the Python values at this
boundary; all storage goes through the typed ``ConfigVault``.
"""
from collections.abc import Mapping
from typing import Any, Optional

from .codec import VaultValue
from .vault import ConfigVault


class GenericConfigVault:
    """Untyped view of a :class:`ConfigVault`.

    Args:
        vault: An open ConfigVault handle; the adapter does not own it.
    """

    def __init__(self, vault: ConfigVault):
        self.vault = vault

    def __repr__(self) -> str:
        return f'<GenericConfigVault vault={self.vault!r}>'

    def get_value(self, domain: str, key: Optional[str] = None) -> Any:
        """Return the value under a key, or all pairs of the domain.

        Args:
            domain: The name of the domain.
            key: The key. If None all key-value pairs in the domain are
                returned as a plain dict.

        Returns:
            A bool/int/float/str, None for a missing key, or a dict.
        """
        if key is None:
            return {
                name: value.value
                for name, value in self.vault.get_domain(domain).items()
            }
        value = self.vault.get_value(domain, key)
        return None if value is None else value.value

    def put_value(self, domain: str, key: Optional[str], value: Any) -> None:
        """Store a value under a key, or replace a whole domain.

        Args:
            domain: The name of the domain.
            key: The key. If None the value must be a mapping that replaces
                all key-value pairs in the domain.
            value: The value (bool, int, float or str).

        Raises:
            TypeError: If the value type is not supported, or ``key`` is None
                and ``value`` is not a mapping.
        """
        if key is None:
            if not isinstance(value, Mapping):
                raise TypeError(
                    "A mapping is required to replace a whole domain"
                )
            self.vault.put_domain(
                domain,
                {name: VaultValue.infer(item) for name, item in value.items()},
            )
            return
        self.vault.put_value(domain, key, VaultValue.infer(value))

    def unset(self, domain: str, key: Optional[str] = None) -> None:
        """Remove a key from a domain, or the whole domain when key is None."""
        if key is None:
            self.vault.unset_domain(domain)
        else:
            self.vault.unset_key(domain, key)
