"""
Vault Crypto Core: Key derivation, sealing/opening, and blob framing.

Persisted blob format:
    [magic 4B "CVLT"][version 1B][salt 16B][nonce 12B][ciphertext][tag 16B]

The header (magic|version|salt) is authenticated as associated data, so
tampering with any byte of the blob is detected on open.

Security Note:
    Never log key material, plaintext or ciphertext values.
    Nonces are random 96-bit and generated on every seal.
"""
import os
import hmac
import logging
from typing import Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from .exceptions import CorruptionError

logger = logging.getLogger("config_vault")

MAGIC = b"CVLT"
FORMAT_VERSION = 1
SALT_SIZE = 16
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_LENGTH = 32  # 256-bit key
HEADER_SIZE = len(MAGIC) + 1 + SALT_SIZE
MIN_BLOB_SIZE = HEADER_SIZE + NONCE_SIZE + TAG_SIZE

DEFAULT_ITERATIONS = 600_000  # OWASP 2023 recommendation for PBKDF2-SHA256

_HKDF_INFO = b"config-vault-v1"

CIPHERS = {
    "aesgcm": AESGCM,
    "chacha20": ChaCha20Poly1305,
}

# Single message for every open failure: tampering and a wrong key must look
# the same to the caller.
_OPEN_FAILED = "Unable to decrypt vault: authentication failed"


def generate_salt() -> bytes:
    """Generate a random per-vault salt."""
    return os.urandom(SALT_SIZE)


def _secret_bytes(master_secret: Union[str, bytes, bytearray]) -> bytearray:
    if isinstance(master_secret, str):
        return bytearray(master_secret.encode("utf-8"))
    if isinstance(master_secret, (bytes, bytearray, memoryview)):
        return bytearray(master_secret)
    raise TypeError("Master secret must be str or bytes")


def derive_key(
    master_secret: Union[str, bytes, bytearray],
    salt: bytes,
    kdf: str = "pbkdf2",
    iterations: int = DEFAULT_ITERATIONS,
) -> bytes:
    """Derive a 32-byte encryption key from the master secret.

    Args:
        master_secret: Caller-supplied secret (passphrase or raw key bytes).
        salt: Per-vault random salt stored in the blob header.
        kdf: ``"pbkdf2"`` (PBKDF2-HMAC-SHA256, for passphrases) or
            ``"hkdf"`` (HKDF-SHA256, for high-entropy key material).
        iterations: PBKDF2 iteration count; ignored by HKDF.

    Returns:
        32-byte derived key.
    """
    secret = _secret_bytes(master_secret)
    if not secret:
        raise ValueError("Master secret cannot be empty")
    try:
        if kdf == "pbkdf2":
            derivation = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=KEY_LENGTH,
                salt=salt,
                iterations=iterations,
            )
        elif kdf == "hkdf":
            derivation = HKDF(
                algorithm=hashes.SHA256(),
                length=KEY_LENGTH,
                salt=salt,
                info=_HKDF_INFO,
            )
        else:
            raise ValueError(f"Unsupported key derivation function: {kdf}")
        return derivation.derive(bytes(secret))
    finally:
        # best effort: wipe our mutable copy of the secret
        for i in range(len(secret)):
            secret[i] = 0


def read_salt(blob: bytes) -> bytes:
    """Parse the blob header and return its salt.

    Raises:
        CorruptionError: On bad magic, unsupported version or truncation.
    """
    if len(blob) < MIN_BLOB_SIZE:
        raise CorruptionError(
            f"Vault blob too short: {len(blob)} bytes (minimum {MIN_BLOB_SIZE})"
        )
    if blob[:len(MAGIC)] != MAGIC:
        raise CorruptionError("Not a vault blob: bad magic")
    version = blob[len(MAGIC)]
    if version != FORMAT_VERSION:
        raise CorruptionError(f"Unsupported vault format version {version}")
    return bytes(blob[len(MAGIC) + 1:HEADER_SIZE])


def blob_fingerprint(blob: bytes) -> bytes:
    """Return nonce and tag of a blob; unique per seal."""
    return bytes(blob[HEADER_SIZE:HEADER_SIZE + NONCE_SIZE]) + bytes(blob[-TAG_SIZE:])


class CryptoEngine:
    """Authenticated encryption bound to one derived key and salt.

    Build it with :meth:`derive`; the master secret is used once and never
    stored on the engine.
    """

    def __init__(self, key: bytes, salt: bytes, cipher_backend: str = "aesgcm"):
        if len(key) != KEY_LENGTH:
            raise ValueError(f"Key must be {KEY_LENGTH} bytes")
        if len(salt) != SALT_SIZE:
            raise ValueError(f"Salt must be {SALT_SIZE} bytes")
        try:
            cipher_cls = CIPHERS[cipher_backend]
        except KeyError:
            raise ValueError(f"Unsupported cipher backend: {cipher_backend}") from None
        self._cipher: Optional[object] = cipher_cls(key)
        self._salt = salt
        self.cipher_backend = cipher_backend

    @classmethod
    def derive(
        cls,
        master_secret: Union[str, bytes, bytearray],
        salt: Optional[bytes] = None,
        kdf: str = "pbkdf2",
        iterations: int = DEFAULT_ITERATIONS,
        cipher_backend: str = "aesgcm",
    ) -> "CryptoEngine":
        """Derive the working key and return an engine for it.

        A new random salt is generated when ``salt`` is None (vault creation).
        """
        if salt is None:
            salt = generate_salt()
        key = derive_key(master_secret, salt, kdf=kdf, iterations=iterations)
        logger.debug("Derived vault key (kdf=%s, cipher=%s)", kdf, cipher_backend)
        return cls(key, salt, cipher_backend=cipher_backend)

    @property
    def salt(self) -> bytes:
        return self._salt

    @property
    def header(self) -> bytes:
        return MAGIC + bytes([FORMAT_VERSION]) + self._salt

    def _require_cipher(self):
        if self._cipher is None:
            raise RuntimeError("CryptoEngine has been wiped")
        return self._cipher

    def wipe(self) -> None:
        """Drop the working key; the engine is unusable afterwards."""
        self._cipher = None

    # ------------------------------------------------------------------
    # AEAD primitives
    # ------------------------------------------------------------------

    def seal(
        self, plaintext: bytes, associated_data: bytes = b""
    ) -> tuple[bytes, bytes, bytes]:
        """Encrypt with a fresh random nonce.

        Returns:
            Tuple of (nonce, ciphertext, tag).
        """
        cipher = self._require_cipher()
        nonce = os.urandom(NONCE_SIZE)
        sealed = cipher.encrypt(nonce, plaintext, associated_data or None)
        return nonce, sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]

    def open(
        self,
        nonce: bytes,
        ciphertext: bytes,
        tag: bytes,
        associated_data: bytes = b"",
    ) -> bytes:
        """Decrypt and verify.

        Raises:
            CorruptionError: If authentication fails for any reason.
        """
        cipher = self._require_cipher()
        if len(nonce) != NONCE_SIZE or len(tag) != TAG_SIZE:
            raise CorruptionError(_OPEN_FAILED)
        try:
            return cipher.decrypt(nonce, ciphertext + tag, associated_data or None)
        except InvalidTag:
            raise CorruptionError(_OPEN_FAILED) from None

    # ------------------------------------------------------------------
    # Blob framing
    # ------------------------------------------------------------------

    def seal_blob(self, plaintext: bytes) -> bytes:
        """Seal a payload into the persisted blob format."""
        header = self.header
        nonce, ciphertext, tag = self.seal(plaintext, header)
        return header + nonce + ciphertext + tag

    def open_blob(self, blob: bytes) -> bytes:
        """Verify and decrypt a persisted blob.

        Raises:
            CorruptionError: If the blob is malformed, was sealed under a
                different salt, or fails authentication.
        """
        salt = read_salt(blob)
        if not hmac.compare_digest(salt, self._salt):
            logger.debug(
                "Vault salt differs from the derived key's; "
                "the vault was replaced or re-keyed"
            )
            raise CorruptionError(_OPEN_FAILED)
        header = bytes(blob[:HEADER_SIZE])
        nonce = bytes(blob[HEADER_SIZE:HEADER_SIZE + NONCE_SIZE])
        ciphertext = bytes(blob[HEADER_SIZE + NONCE_SIZE:-TAG_SIZE])
        tag = bytes(blob[-TAG_SIZE:])
        return self.open(nonce, ciphertext, tag, header)
