"""Room password hashing for the relay."""

import hashlib
import secrets


def hash_password(password: str) -> str:
    """Hash a room password for storage/comparison. Returns full SHA-256."""
    return hashlib.sha256(password.encode()).hexdigest()


def verify_password(password: str, expected_hash: str) -> bool:
    """Verify a room password against its stored hash."""
    return secrets.compare_digest(hash_password(password), expected_hash)
