"""
ConfigVault: Encrypted, domain-grouped key-value configuration store.

Provides the public API of the vault:
- ``get_bool/get_int/get_float/get_string(domain, key)``: typed reads
- ``get_domain(domain)``: all key-value pairs of a domain
- ``put_bool/put_int/put_float/put_string(domain, key, value)``: typed writes
- ``put_domain(domain, mapping)``: atomic replace of a whole domain
- ``unset_key(domain, key)`` / ``unset_domain(domain)``: removals
- ``load(master_secret, location)``: factory that opens a vault

Every mutation re-encodes the whole vault, seals it and atomically replaces
the persisted blob before returning. A failed save keeps the change pending
(state ``DIRTY``); retrying the mutation or calling ``flush()`` replays it on
top of the latest persisted blob and commits it. Reads in that state see the
persisted blob with the pending changes applied.

Security Note:
    Never log values or key material. Only log domain/key names, counts and
    the storage location. Decrypted values live in process memory while the
    vault is open.
"""
import os
import enum
import logging
import threading
from collections.abc import Callable, Mapping
from typing import Any, Optional, Union

from .codec import (
    ValueType,
    VaultValue,
    check_type,
    encode_payload,
    decode_payload,
)
from .config import VaultConfig, resolve_config
from .crypto import CryptoEngine, blob_fingerprint, read_salt
from .exceptions import CorruptionError, VaultStateError
from .storage import FileStorage, VaultStorage
from .store import DomainStore

logger = logging.getLogger("config_vault")

Secret = Union[str, bytes, bytearray]


class VaultState(str, enum.Enum):
    """Lifecycle of a vault handle."""

    UNOPENED = "unopened"
    LOADED = "loaded"
    CLEAN = "clean"
    DIRTY = "dirty"
    CLOSED = "closed"
    CORRUPTED = "corrupted"


def _validate_name(kind: str, name: Any) -> None:
    """Validate a domain or key name.

    Raises:
        TypeError: If name is not a string.
        ValueError: If name is empty or not UTF-8 encodable.
    """
    if not isinstance(name, str):
        raise TypeError(f"Vault {kind} must be str, not {type(name).__name__}")
    if not name:
        raise ValueError(f"Vault {kind} cannot be empty")
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError(f"Vault {kind} is not UTF-8 encodable") from None


class ConfigVault:
    """Encrypted configuration vault bound to one storage location.

    All public operations are synchronous and serialized by an in-process
    lock; the storage lock serializes them across processes.
    """

    def __init__(
        self,
        storage: Union[VaultStorage, str, os.PathLike],
        config: Optional[VaultConfig] = None,
    ):
        self._config = resolve_config(config)
        if not isinstance(storage, VaultStorage):
            storage = FileStorage(
                storage,
                lock_timeout=self._config.lock_timeout,
                file_mode=self._config.file_mode,
            )
        self._storage = storage
        self._store = DomainStore()
        self._crypto: Optional[CryptoEngine] = None
        self._fingerprint: Optional[bytes] = None
        # mutations applied in memory but not yet persisted
        self._pending: list[Callable[[DomainStore], Optional[bool]]] = []
        self._state = VaultState.UNOPENED
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return (
            f'<ConfigVault [{self._state.value}] '
            f'location={self._storage.location!r}>'
        )

    def __enter__(self) -> "ConfigVault":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def state(self) -> VaultState:
        return self._state

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def storage(self) -> VaultStorage:
        return self._storage

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    def load(
        cls,
        master_secret: Secret,
        location: Union[VaultStorage, str, os.PathLike],
        config: Optional[VaultConfig] = None,
    ) -> "ConfigVault":
        """Construct a vault for ``location`` and open it.

        This is the primary constructor used by host applications.

        Raises:
            CorruptionError: If the stored blob is malformed or the secret
                is wrong.
            ConcurrentModificationError: If the storage lock times out.
        """
        vault = cls(location, config=config)
        vault.open(master_secret)
        return vault

    def _derive(self, master_secret: Secret, salt: Optional[bytes]) -> CryptoEngine:
        return CryptoEngine.derive(
            master_secret,
            salt,
            kdf=self._config.kdf,
            iterations=self._config.kdf_iterations,
            cipher_backend=self._config.cipher_backend,
        )

    def open(self, master_secret: Secret) -> None:
        """Derive the working key and load the persisted vault.

        Creates and persists an empty vault (with a fresh salt) when the
        storage holds nothing yet.
        """
        with self._lock:
            if self._state is not VaultState.UNOPENED:
                raise VaultStateError(
                    f"Vault is already {self._state.value}",
                    {"location": self._storage.location},
                )
            with self._storage.lock():
                blob = self._storage.load()
                if blob is None:
                    crypto = self._derive(master_secret, None)
                    data: dict = {}
                    blob = crypto.seal_blob(encode_payload(data))
                    self._storage.save(blob)
                    logger.info("Created empty vault at %s", self._storage.location)
                else:
                    try:
                        crypto = self._derive(master_secret, read_salt(blob))
                        data = decode_payload(crypto.open_blob(blob))
                    except CorruptionError:
                        self._state = VaultState.CORRUPTED
                        logger.error(
                            "Vault at %s failed to open: corrupted or wrong secret",
                            self._storage.location,
                        )
                        raise
            self._crypto = crypto
            self._store.load(data)
            self._fingerprint = blob_fingerprint(blob)
            self._state = VaultState.LOADED
            logger.info(
                "Vault loaded from %s: %d domain(s)",
                self._storage.location, len(self._store),
            )

    def close(self) -> None:
        """Drop the working key and the decrypted contents."""
        with self._lock:
            if self._state is VaultState.CLOSED:
                return
            if self._state is VaultState.DIRTY:
                logger.warning(
                    "Closing vault at %s with uncommitted changes",
                    self._storage.location,
                )
            self._discard()
            self._state = VaultState.CLOSED
            logger.info("Vault at %s closed", self._storage.location)

    def _discard(self) -> None:
        if self._crypto is not None:
            self._crypto.wipe()
        self._crypto = None
        self._store.clear()
        self._fingerprint = None
        self._pending.clear()

    def _ensure_usable(self) -> None:
        if self._state is VaultState.CORRUPTED:
            raise CorruptionError(
                "Vault instance is unusable after a corruption error",
                {"location": self._storage.location},
            )
        if self._state in (VaultState.UNOPENED, VaultState.CLOSED):
            raise VaultStateError(
                f"Vault is {self._state.value}",
                {"location": self._storage.location},
            )

    # ------------------------------------------------------------------
    # Persistence pipeline
    # ------------------------------------------------------------------

    def _refresh(self) -> None:
        """Pick up a blob committed by another handle or process.

        Must be called with the storage lock held. Uncommitted mutations are
        replayed on top of the freshly loaded state.
        """
        blob = self._storage.load()
        if blob is None:
            if self._fingerprint is None:
                return
            logger.warning(
                "Vault blob at %s disappeared; continuing with an empty vault",
                self._storage.location,
            )
            data: dict = {}
            fingerprint = None
        else:
            fingerprint = blob_fingerprint(blob)
            if fingerprint == self._fingerprint:
                return
            try:
                data = decode_payload(self._crypto.open_blob(blob))
            except CorruptionError:
                self._discard()
                self._state = VaultState.CORRUPTED
                logger.error(
                    "Vault at %s failed authentication on refresh",
                    self._storage.location,
                )
                raise
        self._store.load(data)
        for mutator in self._pending:
            mutator(self._store)
        self._fingerprint = fingerprint
        logger.debug(
            "Vault refreshed from %s (%d pending change(s))",
            self._storage.location, len(self._pending),
        )

    def _commit(self) -> None:
        """Encode, seal and persist the store. Storage lock must be held."""
        blob = self._crypto.seal_blob(encode_payload(self._store.snapshot()))
        self._storage.save(blob)
        self._fingerprint = blob_fingerprint(blob)
        self._pending.clear()
        self._state = VaultState.CLEAN

    def _read(self, reader: Callable[[DomainStore], Any]) -> Any:
        with self._lock:
            self._ensure_usable()
            if self._config.refresh_on_read:
                with self._storage.lock():
                    self._refresh()
            return reader(self._store)

    def _mutate(self, mutator: Callable[[DomainStore], Optional[bool]]) -> None:
        """Run a load-modify-save cycle.

        ``mutator`` returns False when it changed nothing; the save is then
        skipped unless earlier changes are still uncommitted. A mutation whose
        save fails stays pending and is replayed over the latest persisted
        state on the next refresh, so a retry never drops writes committed
        elsewhere in the meantime.
        """
        with self._lock:
            self._ensure_usable()
            with self._storage.lock():
                self._refresh()
                changed = mutator(self._store)
                if changed is False and not self._pending:
                    return
                if changed is not False:
                    self._pending.append(mutator)
                self._state = VaultState.DIRTY
                self._commit()

    def flush(self) -> None:
        """Persist uncommitted changes left by a failed save."""
        with self._lock:
            self._ensure_usable()
            if self._state is not VaultState.DIRTY:
                return
            with self._storage.lock():
                self._refresh()
                self._commit()
            logger.debug("Vault at %s flushed", self._storage.location)

    def reload(self) -> None:
        """Reload from storage, discarding uncommitted changes."""
        with self._lock:
            self._ensure_usable()
            with self._storage.lock():
                self._pending.clear()
                self._state = VaultState.CLEAN
                self._fingerprint = None
                self._refresh()

    def rekey(self, new_master_secret: Secret) -> None:
        """Re-encrypt the vault under a new master secret and salt.

        The old key stays in use if the save fails.
        """
        with self._lock:
            self._ensure_usable()
            with self._storage.lock():
                self._refresh()
                crypto = self._derive(new_master_secret, None)
                blob = crypto.seal_blob(encode_payload(self._store.snapshot()))
                self._storage.save(blob)
                self._crypto.wipe()
                self._crypto = crypto
                self._fingerprint = blob_fingerprint(blob)
                self._pending.clear()
                self._state = VaultState.CLEAN
            logger.info("Vault at %s re-keyed", self._storage.location)


    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_value(self, domain: str, key: str) -> Optional[VaultValue]:
        """Return the tagged value under ``key``, or None if absent."""
        _validate_name("domain", domain)
        _validate_name("key", key)
        return self._read(lambda store: store.get_value(domain, key))

    def _get_typed(self, domain: str, key: str, expected: ValueType) -> Any:
        value = self.get_value(domain, key)
        if value is None:
            return None
        return check_type(value, expected, domain=domain, key=key).value

    def get_bool(self, domain: str, key: str) -> Optional[bool]:
        return self._get_typed(domain, key, ValueType.BOOL)

    def get_int(self, domain: str, key: str) -> Optional[int]:
        return self._get_typed(domain, key, ValueType.INT)

    def get_float(self, domain: str, key: str) -> Optional[float]:
        return self._get_typed(domain, key, ValueType.FLOAT)

    def get_string(self, domain: str, key: str) -> Optional[str]:
        """Return a STRING value.

        Raises:
            TypeMismatch: If the key holds a value of another type.
        """
        return self._get_typed(domain, key, ValueType.STRING)

    def get_domain(self, domain: str) -> dict[str, VaultValue]:
        """Return a copy of all key-value pairs in a domain (empty if absent)."""
        _validate_name("domain", domain)
        return self._read(lambda store: store.get_domain_snapshot(domain))

    def domains(self) -> list[str]:
        return self._read(lambda store: store.domains())

    def keys(self, domain: str) -> list[str]:
        _validate_name("domain", domain)
        return self._read(lambda store: store.key_names(domain))

    def exists(self, domain: str, key: str) -> bool:
        return self.get_value(domain, key) is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put_value(self, domain: str, key: str, value: VaultValue) -> None:
        """Store a tagged value and persist the vault.

        Raises:
            TypeError/ValueError: On invalid names or value.
            OSError: If the storage write fails (state stays DIRTY).
        """
        _validate_name("domain", domain)
        _validate_name("key", key)
        if not isinstance(value, VaultValue):
            raise TypeError("value must be a VaultValue")
        self._mutate(lambda store: store.put(domain, key, value))
        logger.debug(
            "Vault put: domain=%s key=%s type=%s",
            domain, key, ValueType(value.type).name,
        )

    def put_bool(self, domain: str, key: str, value: bool) -> None:
        self.put_value(domain, key, VaultValue.of_bool(value))

    def put_int(self, domain: str, key: str, value: int) -> None:
        self.put_value(domain, key, VaultValue.of_int(value))

    def put_float(self, domain: str, key: str, value: float) -> None:
        self.put_value(domain, key, VaultValue.of_float(value))

    def put_string(self, domain: str, key: str, value: str) -> None:
        self.put_value(domain, key, VaultValue.of_string(value))

    def put_domain(self, domain: str, mapping: Mapping[str, VaultValue]) -> None:
        """Replace every key of ``domain`` with ``mapping`` in one commit.

        An empty mapping removes the domain.
        """
        _validate_name("domain", domain)
        if not isinstance(mapping, Mapping):
            raise TypeError("mapping must be a Mapping of key to VaultValue")
        replacement = dict(mapping)
        for key, value in replacement.items():
            _validate_name("key", key)
            if not isinstance(value, VaultValue):
                raise TypeError(f"value for key {key!r} must be a VaultValue")
        self._mutate(lambda store: store.replace_domain(domain, replacement))
        logger.debug(
            "Vault put_domain: domain=%s keys=%d", domain, len(replacement),
        )

    def unset_key(self, domain: str, key: str) -> None:
        """Remove a key; a missing key is a no-op."""
        _validate_name("domain", domain)
        _validate_name("key", key)

        def remove(store: DomainStore) -> bool:
            if store.get_value(domain, key) is None:
                return False
            store.remove_key(domain, key)
            return True

        self._mutate(remove)
        logger.debug("Vault unset: domain=%s key=%s", domain, key)

    def unset_domain(self, domain: str) -> None:
        """Remove a whole domain; a missing domain is a no-op."""
        _validate_name("domain", domain)

        def remove(store: DomainStore) -> bool:
            if domain not in store:
                return False
            store.remove_domain(domain)
            return True

        self._mutate(remove)
        logger.debug("Vault unset: domain=%s", domain)
