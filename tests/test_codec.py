"""
Tests for the value and payload codec.

Tests cover:
- Tagged value construction and strict type validation
- Value byte layout and decoding with tag validation
- Payload layout, determinism and malformed payload detection
"""
import math
import pytest

from config_vault.codec import (
    ValueType,
    VaultValue,
    check_type,
    decode_payload,
    decode_value,
    encode_payload,
    encode_value,
    encode_varint,
)
from config_vault.exceptions import CorruptionError, TypeMismatch


# --- Test VaultValue ---

class TestVaultValue:
    """Tests for tagged value construction."""

    def test_constructors_set_tags(self):
        """Test that each constructor sets the matching tag."""
        assert VaultValue.of_bool(True).type is ValueType.BOOL
        assert VaultValue.of_int(5).type is ValueType.INT
        assert VaultValue.of_float(1.5).type is ValueType.FLOAT
        assert VaultValue.of_string("x").type is ValueType.STRING

    def test_bool_is_not_an_int(self):
        """Test that booleans are rejected by the integer constructor."""
        with pytest.raises(TypeError):
            VaultValue.of_int(True)

    def test_int_is_not_a_bool(self):
        """Test that integers are rejected by the boolean constructor."""
        with pytest.raises(TypeError):
            VaultValue.of_bool(1)

    def test_none_is_rejected(self):
        """Test that no constructor accepts None."""
        for factory in (
            VaultValue.of_bool,
            VaultValue.of_int,
            VaultValue.of_float,
            VaultValue.of_string,
        ):
            with pytest.raises(TypeError):
                factory(None)

    def test_float_widens_int(self):
        """Test that of_float stores an int as a float."""
        value = VaultValue.of_float(3)
        assert value.value == 3.0
        assert isinstance(value.value, float)

    def test_float_rejects_bool(self):
        """Test that booleans are rejected by the float constructor."""
        with pytest.raises(TypeError):
            VaultValue.of_float(False)

    def test_int_range(self):
        """Test that INT values are limited to signed 64 bits."""
        VaultValue.of_int(2 ** 63 - 1)
        VaultValue.of_int(-(2 ** 63))
        with pytest.raises(ValueError):
            VaultValue.of_int(2 ** 63)

    def test_string_must_be_utf8(self):
        """Test that strings must be encodable as UTF-8."""
        with pytest.raises(ValueError):
            VaultValue.of_string("\ud800")

    def test_infer(self):
        """Test that infer picks the tag from the Python type."""
        assert VaultValue.infer(False) == VaultValue.of_bool(False)
        assert VaultValue.infer(7) == VaultValue.of_int(7)
        assert VaultValue.infer(0.25) == VaultValue.of_float(0.25)
        assert VaultValue.infer("s") == VaultValue.of_string("s")
        with pytest.raises(TypeError):
            VaultValue.infer([1, 2])

    def test_values_are_immutable(self):
        """Test that a VaultValue cannot be modified."""
        value = VaultValue.of_int(1)
        with pytest.raises(AttributeError):
            value.value = 2


# --- Test value encoding ---

class TestValueEncoding:
    """Tests for encode_value / decode_value."""

    @pytest.mark.parametrize("value", [
        VaultValue.of_bool(True),
        VaultValue.of_bool(False),
        VaultValue.of_int(0),
        VaultValue.of_int(-(2 ** 63)),
        VaultValue.of_int(2 ** 63 - 1),
        VaultValue.of_float(-0.5),
        VaultValue.of_float(math.inf),
        VaultValue.of_string(""),
        VaultValue.of_string("sécret ✓"),
    ])
    def test_roundtrip(self, value):
        """Test that a value decodes back to itself."""
        assert decode_value(encode_value(value), value.type) == value

    def test_nan_roundtrip(self):
        """Test that NaN survives encoding."""
        decoded = decode_value(encode_value(VaultValue.of_float(math.nan)), ValueType.FLOAT)
        assert math.isnan(decoded.value)

    def test_layout(self):
        """Test the exact byte layout of each value type."""
        assert encode_value(VaultValue.of_bool(True)) == b"\x01\x01"
        assert encode_value(VaultValue.of_int(5)) == b"\x02" + (5).to_bytes(8, "big")
        assert encode_value(VaultValue.of_int(-1)) == b"\x02" + b"\xff" * 8
        assert encode_value(VaultValue.of_float(1.0)) == b"\x03?\xf0\x00\x00\x00\x00\x00\x00"
        assert encode_value(VaultValue.of_string("abc")) == b"\x04\x03abc"

    def test_decode_type_mismatch(self):
        """Test that decoding with the wrong tag raises TypeMismatch."""
        data = encode_value(VaultValue.of_int(5))
        with pytest.raises(TypeMismatch) as exc:
            decode_value(data, ValueType.FLOAT)
        assert exc.value.expected is ValueType.FLOAT
        assert exc.value.actual is ValueType.INT

    def test_unknown_tag(self):
        """Test that an unknown tag byte is corruption."""
        with pytest.raises(CorruptionError):
            decode_value(b"\x09\x00", ValueType.BOOL)

    def test_invalid_bool_byte(self):
        """Test that a bool byte other than 0 or 1 is corruption."""
        with pytest.raises(CorruptionError):
            decode_value(b"\x01\x02", ValueType.BOOL)

    def test_truncated(self):
        """Test that a short value is corruption."""
        with pytest.raises(CorruptionError):
            decode_value(b"\x02\x00\x00", ValueType.INT)

    def test_trailing_bytes(self):
        """Test that bytes after a value are corruption."""
        with pytest.raises(CorruptionError):
            decode_value(b"\x01\x01\x00", ValueType.BOOL)

    def test_check_type_carries_location(self):
        """Test that TypeMismatch names the domain and key."""
        with pytest.raises(TypeMismatch) as exc:
            check_type(VaultValue.of_string("x"), ValueType.BOOL, "api", "token")
        assert exc.value.domain == "api"
        assert exc.value.key == "token"
        assert "token" in str(exc.value)


# --- Test payload encoding ---

class TestPayload:
    """Tests for the whole-vault plaintext payload."""

    def test_varint(self):
        """Test LEB128 varint encoding."""
        assert encode_varint(0) == b"\x00"
        assert encode_varint(127) == b"\x7f"
        assert encode_varint(300) == b"\xac\x02"
        with pytest.raises(ValueError):
            encode_varint(-1)

    def test_empty_vault(self):
        """Test that an empty vault is a single zero count."""
        assert encode_payload({}) == b"\x00"
        assert decode_payload(b"\x00") == {}

    def test_layout(self):
        """Test the exact byte layout of a one-key payload."""
        payload = encode_payload({"a": {"k": VaultValue.of_bool(True)}})
        assert payload == b"\x01" + b"\x01a" + b"\x01" + b"\x01k" + b"\x01\x01"

    def test_roundtrip(self):
        """Test that a payload decodes back to the same vault."""
        vault = {
            "api": {
                "token": VaultValue.of_string("secret123"),
                "enabled": VaultValue.of_bool(True),
            },
            "limits": {
                "maxRetries": VaultValue.of_int(5),
                "ratio": VaultValue.of_float(0.75),
            },
        }
        assert decode_payload(encode_payload(vault)) == vault

    def test_deterministic_regardless_of_order(self):
        """Test that insertion order does not change the payload."""
        first = {"b": {"y": VaultValue.of_int(1), "x": VaultValue.of_int(2)},
                 "a": {"z": VaultValue.of_bool(False)}}
        second = {"a": {"z": VaultValue.of_bool(False)},
                  "b": {"x": VaultValue.of_int(2), "y": VaultValue.of_int(1)}}
        assert encode_payload(first) == encode_payload(second)

    def test_empty_domains_are_skipped(self):
        """Test that empty domains are not written."""
        assert encode_payload({"empty": {}}) == b"\x00"

    def test_rejects_empty_domain(self):
        """Test that a domain with no keys is corruption."""
        with pytest.raises(CorruptionError):
            decode_payload(b"\x01\x01a\x00")

    def test_rejects_duplicate_domain(self):
        """Test that a repeated domain name is corruption."""
        domain = b"\x01a\x01\x01k\x01\x01"
        with pytest.raises(CorruptionError):
            decode_payload(b"\x02" + domain + domain)

    def test_rejects_duplicate_key(self):
        """Test that a repeated key name is corruption."""
        key = b"\x01k\x01\x01"
        with pytest.raises(CorruptionError):
            decode_payload(b"\x01\x01a\x02" + key + key)

    def test_rejects_truncated(self):
        """Test that a truncated payload is corruption."""
        payload = encode_payload({"api": {"token": VaultValue.of_string("abc")}})
        with pytest.raises(CorruptionError):
            decode_payload(payload[:-1])

    def test_rejects_trailing_bytes(self):
        """Test that bytes after the payload are corruption."""
        with pytest.raises(CorruptionError):
            decode_payload(b"\x00\x00")

    def test_rejects_invalid_utf8(self):
        """Test that a name that is not UTF-8 is corruption."""
        with pytest.raises(CorruptionError):
            decode_payload(b"\x01\x01\xff\x01\x01k\x01\x01")
