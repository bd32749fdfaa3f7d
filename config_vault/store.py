"""
DomainStore: In-memory working copy of the vault.

Maps domain name → (key → VaultValue). Every operation is total: type checks
and name validation happen in the vault service, not here.
"""
from collections.abc import Iterator, Mapping
from typing import Optional

from .codec import VaultValue


class DomainStore(Mapping[str, Mapping[str, VaultValue]]):
    """Read-only mapping view over the vault domains, plus mutators.

    Item access returns a copy of the domain, so callers never hold a
    reference into the live store.
    """

    def __init__(
        self, data: Optional[Mapping[str, Mapping[str, VaultValue]]] = None
    ) -> None:
        self._domains: dict[str, dict[str, VaultValue]] = {}
        if data:
            self.load(data)

    def __repr__(self) -> str:
        return (
            f'<DomainStore domains={len(self._domains)} '
            f'keys={sum(len(k) for k in self._domains.values())}>'
        )

    # --- Mapping protocol ---

    def __getitem__(self, domain: str) -> dict[str, VaultValue]:
        return dict(self._domains[domain])

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._domains))

    def __len__(self) -> int:
        return len(self._domains)

    def __contains__(self, domain: object) -> bool:
        return domain in self._domains

    # --- Reads ---

    def get_value(self, domain: str, key: str) -> Optional[VaultValue]:
        """Return the value under ``key`` in ``domain``, or None."""
        keys = self._domains.get(domain)
        if keys is None:
            return None
        return keys.get(key)

    def get_domain_snapshot(self, domain: str) -> dict[str, VaultValue]:
        """Return a copy of a domain; empty when the domain is absent."""
        return dict(self._domains.get(domain, {}))

    def domains(self) -> list[str]:
        return list(self._domains)

    def key_names(self, domain: str) -> list[str]:
        """List the key names of ``domain``; empty when it is absent."""
        return list(self._domains.get(domain, {}))

    def snapshot(self) -> dict[str, dict[str, VaultValue]]:
        """Deep copy of the whole store."""
        return {name: dict(keys) for name, keys in self._domains.items()}

    # --- Mutations ---

    def put(self, domain: str, key: str, value: VaultValue) -> None:
        """Store a value, creating the domain when needed."""
        self._domains.setdefault(domain, {})[key] = value

    def replace_domain(
        self, domain: str, mapping: Mapping[str, VaultValue]
    ) -> None:
        """Discard a domain's contents and install ``mapping`` in one step.

        An empty mapping removes the domain.
        """
        replacement = dict(mapping)
        if replacement:
            self._domains[domain] = replacement
        else:
            self._domains.pop(domain, None)

    def remove_key(self, domain: str, key: str) -> None:
        """Remove a key; the domain goes away with its last key."""
        keys = self._domains.get(domain)
        if keys is None:
            return
        keys.pop(key, None)
        if not keys:
            del self._domains[domain]

    def remove_domain(self, domain: str) -> None:
        self._domains.pop(domain, None)

    def load(self, data: Mapping[str, Mapping[str, VaultValue]]) -> None:
        """Replace the whole store with ``data`` (empty domains are dropped)."""
        self._domains = {
            name: dict(keys) for name, keys in data.items() if keys
        }

    def clear(self) -> None:
        self._domains = {}
