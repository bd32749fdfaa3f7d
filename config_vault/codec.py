"""
Vault Codec: Tagged values and the binary plaintext payload.

Value encoding: [type_tag 1B][value_bytes]
    BOOL   → 1 byte (0x00 / 0x01)
    INT    → 8 bytes signed big-endian
    FLOAT  → 8 bytes IEEE-754 double big-endian
    STRING → [varint length][utf-8 bytes]

Payload encoding (before sealing):
    [domain_count varint]
    per domain: [name_len varint][name][key_count varint]
    per key:    [key_len varint][key][encoded value]

Domains and keys are written in sorted order, so the same vault contents
always produce the same payload bytes.
"""
import enum
import struct
from dataclasses import dataclass
from collections.abc import Mapping
from typing import Any, Optional, Union

from .exceptions import CorruptionError, TypeMismatch

INT_MIN = -(2 ** 63)
INT_MAX = 2 ** 63 - 1

_INT = struct.Struct("!q")
_FLOAT = struct.Struct("!d")


class ValueType(enum.IntEnum):
    """Persisted type tag of a vault value."""

    BOOL = 1
    INT = 2
    FLOAT = 3
    STRING = 4


_PY_TYPES = {
    ValueType.BOOL: bool,
    ValueType.INT: int,
    ValueType.FLOAT: float,
    ValueType.STRING: str,
}


@dataclass(frozen=True)
class VaultValue:
    """A value carrying its type tag.

    Build instances with the ``of_*`` constructors, which validate the
    Python type strictly (a ``bool`` is never accepted as an integer).
    """

    type: ValueType
    value: Union[bool, int, float, str]

    def __post_init__(self) -> None:
        expected = _PY_TYPES[ValueType(self.type)]
        # bool is a subclass of int, so check it explicitly both ways
        if (
            not isinstance(self.value, expected)
            or isinstance(self.value, bool) != (expected is bool)
        ):
            raise TypeError(
                f"{ValueType(self.type).name} value cannot be "
                f"{type(self.value).__name__}"
            )
        if expected is int and not INT_MIN <= self.value <= INT_MAX:
            raise ValueError("INT value out of signed 64-bit range")
        if expected is str:
            _utf8(self.value)

    @classmethod
    def of_bool(cls, value: bool) -> "VaultValue":
        return cls(ValueType.BOOL, value)

    @classmethod
    def of_int(cls, value: int) -> "VaultValue":
        return cls(ValueType.INT, value)

    @classmethod
    def of_float(cls, value: float) -> "VaultValue":
        """Build a FLOAT value; plain integers are widened to float."""
        if isinstance(value, int) and not isinstance(value, bool):
            value = float(value)
        return cls(ValueType.FLOAT, value)

    @classmethod
    def of_string(cls, value: str) -> "VaultValue":
        return cls(ValueType.STRING, value)

    @classmethod
    def infer(cls, value: Any) -> "VaultValue":
        """Pick the type tag from a plain Python value.

        Raises:
            TypeError: If the value is not a bool, int, float or str.
        """
        if isinstance(value, bool):
            return cls.of_bool(value)
        if isinstance(value, int):
            return cls.of_int(value)
        if isinstance(value, float):
            return cls.of_float(value)
        if isinstance(value, str):
            return cls.of_string(value)
        raise TypeError(
            f"Unsupported vault value type: {type(value).__name__}"
        )


def _utf8(text: str) -> bytes:
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as err:
        raise ValueError(f"Text is not UTF-8 encodable: {err.reason}") from err


# ---------------------------------------------------------------------------
# Varints (unsigned LEB128)
# ---------------------------------------------------------------------------

def encode_varint(number: int) -> bytes:
    if number < 0:
        raise ValueError("varint cannot encode negative numbers")
    out = bytearray()
    while True:
        byte = number & 0x7F
        number >>= 7
        if number:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


class _Reader:
    """Cursor over a payload; every short read is a CorruptionError."""

    def __init__(self, data: bytes):
        self._data = memoryview(data)
        self._pos = 0

    @property
    def exhausted(self) -> bool:
        return self._pos >= len(self._data)

    def take(self, size: int) -> bytes:
        end = self._pos + size
        if end > len(self._data):
            raise CorruptionError("Vault payload is truncated")
        chunk = bytes(self._data[self._pos:end])
        self._pos = end
        return chunk

    def varint(self) -> int:
        number = 0
        shift = 0
        while True:
            byte = self.take(1)[0]
            number |= (byte & 0x7F) << shift
            if not byte & 0x80:
                return number
            shift += 7
            if shift > 63:
                raise CorruptionError("Vault payload has an oversized varint")

    def text(self) -> str:
        raw = self.take(self.varint())
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as err:
            raise CorruptionError("Vault payload has invalid UTF-8 text") from err


def _encode_text(text: str) -> bytes:
    raw = _utf8(text)
    return encode_varint(len(raw)) + raw


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------

def encode_value(value: VaultValue) -> bytes:
    """Serialize a tagged value to ``[tag][value_bytes]``."""
    tag = ValueType(value.type)
    if tag is ValueType.BOOL:
        body = b"\x01" if value.value else b"\x00"
    elif tag is ValueType.INT:
        body = _INT.pack(value.value)
    elif tag is ValueType.FLOAT:
        body = _FLOAT.pack(value.value)
    else:
        body = _encode_text(value.value)
    return bytes([tag]) + body


def _read_value(reader: _Reader) -> VaultValue:
    raw_tag = reader.take(1)[0]
    try:
        tag = ValueType(raw_tag)
    except ValueError:
        raise CorruptionError(f"Unknown value type tag {raw_tag:#04x}") from None
    if tag is ValueType.BOOL:
        flag = reader.take(1)[0]
        if flag not in (0, 1):
            raise CorruptionError("Invalid BOOL encoding")
        return VaultValue(tag, flag == 1)
    if tag is ValueType.INT:
        return VaultValue(tag, _INT.unpack(reader.take(_INT.size))[0])
    if tag is ValueType.FLOAT:
        return VaultValue(tag, _FLOAT.unpack(reader.take(_FLOAT.size))[0])
    return VaultValue(tag, reader.text())


def check_type(
    value: VaultValue,
    expected: ValueType,
    domain: Optional[str] = None,
    key: Optional[str] = None,
) -> VaultValue:
    """Return ``value`` if it carries ``expected`` as its tag.

    Raises:
        TypeMismatch: If the stored tag differs.
    """
    if value.type != expected:
        raise TypeMismatch(
            ValueType(expected), ValueType(value.type), domain=domain, key=key,
        )
    return value


def decode_value(data: bytes, expected: ValueType) -> VaultValue:
    """Deserialize bytes produced by :func:`encode_value`.

    Raises:
        TypeMismatch: If the stored tag is not ``expected``.
        CorruptionError: If the bytes are malformed.
    """
    reader = _Reader(data)
    value = _read_value(reader)
    if not reader.exhausted:
        raise CorruptionError("Trailing bytes after encoded value")
    return check_type(value, expected)


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------

def encode_payload(vault: Mapping[str, Mapping[str, VaultValue]]) -> bytes:
    """Serialize the whole vault into the plaintext payload."""
    domains = sorted(name for name, keys in vault.items() if keys)
    out = bytearray(encode_varint(len(domains)))
    for name in domains:
        keys = vault[name]
        out += _encode_text(name)
        out += encode_varint(len(keys))
        for key in sorted(keys):
            out += _encode_text(key)
            out += encode_value(keys[key])
    return bytes(out)


def decode_payload(data: bytes) -> dict[str, dict[str, VaultValue]]:
    """Deserialize the plaintext payload.

    Raises:
        CorruptionError: On truncation, trailing bytes, empty or duplicate
            names, empty domains or unknown type tags.
    """
    reader = _Reader(data)
    vault: dict[str, dict[str, VaultValue]] = {}
    for _ in range(reader.varint()):
        name = reader.text()
        if not name or name in vault:
            raise CorruptionError("Invalid or duplicate domain name in payload")
        count = reader.varint()
        if count == 0:
            raise CorruptionError("Empty domain in payload")
        keys: dict[str, VaultValue] = {}
        for _ in range(count):
            key = reader.text()
            if not key or key in keys:
                raise CorruptionError("Invalid or duplicate key in payload")
            keys[key] = _read_value(reader)
        vault[name] = keys
    if not reader.exhausted:
        raise CorruptionError("Trailing bytes after vault payload")
    return vault
