"""
Password hashing.

PBKDF2-HMAC-SHA256 with a random salt per password. The work factor is
stored alongside the hash so it can be raised later without invalidating
existing credentials:

    pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>
"""

from __future__ import annotations

import hashlib
import secrets

from warden.core.errors import ValidationError

ALGORITHM = "pbkdf2_sha256"
DEFAULT_ITERATIONS = 100_000
SALT_BYTES = 32


def _digest(password: str, salt: str, iterations: int) -> str:
    return hashlib.pbkdf2_hmac(
        "sha256",
        password.encode("utf-8"),
        salt.encode("utf-8"),
        iterations=iterations,
    ).hex()


def hash_password(password: str, iterations: int = DEFAULT_ITERATIONS) -> str:
    """
    Hash a password.

    Raises:
        ValidationError: The password is empty
    """
    if not password:
        raise ValidationError("Password must not be empty")
    salt = secrets.token_hex(SALT_BYTES)
    return f"{ALGORITHM}${iterations}${salt}${_digest(password, salt, iterations)}"


def verify_password(password: str, password_hash: str | None) -> bool:
    """Verify a password against its hash. Never raises."""
    if not password or not password_hash:
        return False
    try:
        algorithm, iterations, salt, stored = password_hash.split("$")
        if algorithm != ALGORITHM:
            return False
        rounds = int(iterations)
        if rounds <= 0:
            return False
        return secrets.compare_digest(_digest(password, salt, rounds), stored)
    except (ValueError, AttributeError):
        return False


# Used to spend the same time on unknown users as on wrong passwords
DUMMY_HASH = hash_password(secrets.token_hex(8), iterations=DEFAULT_ITERATIONS)
