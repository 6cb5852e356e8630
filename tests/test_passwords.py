"""
Tests for password hashing.
"""

import pytest

from warden.auth.passwords import ALGORITHM, hash_password, verify_password
from warden.core.errors import ValidationError


class TestHashPassword:
    def test_round_trip(self):
        hashed = hash_password("secret1", iterations=1_000)

        assert verify_password("secret1", hashed)
        assert not verify_password("secret2", hashed)

    def test_format_carries_work_factor(self):
        hashed = hash_password("secret1", iterations=1_234)
        algorithm, iterations, salt, digest = hashed.split("$")

        assert algorithm == ALGORITHM
        assert iterations == "1234"
        assert salt and digest

    def test_salted(self):
        assert hash_password("secret1", iterations=1_000) != hash_password("secret1", iterations=1_000)

    def test_empty_password_rejected(self):
        with pytest.raises(ValidationError):
            hash_password("")


class TestVerifyPassword:
    @pytest.mark.parametrize(
        "password,stored",
        [
            ("", "pbkdf2_sha256$1000$abc$def"),
            ("secret1", ""),
            ("secret1", None),
            ("secret1", "not-a-hash"),
            ("secret1", "md5$1000$abc$def"),
            ("secret1", "pbkdf2_sha256$zero$abc$def"),
            ("secret1", "pbkdf2_sha256$-5$abc$def"),
        ],
    )
    def test_never_raises(self, password, stored):
        assert verify_password(password, stored) is False

    def test_plaintext_is_not_a_hash(self):
        # A stored plaintext must not verify against itself
        assert verify_password("secret1", "secret1") is False
