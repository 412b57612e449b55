"""Unit tests for PBKDF2 key derivation."""

import pytest

from healthtrack.exceptions import InvalidSaltLength
from healthtrack.security.key_derivation import (
    IV_LENGTH,
    KEY_LENGTH,
    SALT_LENGTH,
    derive_key,
    generate_iv,
    generate_salt,
)


@pytest.mark.unit
class TestRandomMaterial:
    def test_salt_and_iv_lengths(self):
        assert len(generate_salt()) == SALT_LENGTH == 32
        assert len(generate_iv()) == IV_LENGTH == 16

    def test_salts_are_fresh(self):
        assert generate_salt() != generate_salt()


@pytest.mark.unit
class TestDeriveKey:
    def test_derivation_is_deterministic(self):
        """Same password and salt always produce the same key."""
        salt = generate_salt()

        assert derive_key("s3cret!", salt) == derive_key("s3cret!", salt)

    def test_key_length(self):
        assert len(derive_key("s3cret!", generate_salt())) == KEY_LENGTH == 32

    def test_different_salt_gives_different_key(self):
        assert derive_key("s3cret!", generate_salt()) != derive_key("s3cret!", generate_salt())

    def test_different_password_gives_different_key(self):
        salt = generate_salt()

        assert derive_key("alpha", salt) != derive_key("bravo", salt)

    @pytest.mark.parametrize("length", [0, 16, 31, 33])
    def test_rejects_wrong_salt_length(self, length):
        with pytest.raises(InvalidSaltLength) as exc_info:
            derive_key("pw", b"\x00" * length)

        assert exc_info.value.details == {"expected": 32, "actual": length}

    def test_rejects_non_bytes_salt(self):
        with pytest.raises(InvalidSaltLength):
            derive_key("pw", "a" * 32)

    def test_rejects_low_iteration_count(self):
        with pytest.raises(ValueError, match="at least 100000"):
            derive_key("pw", generate_salt(), iterations=1000)
