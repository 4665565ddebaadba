"""
Crypto utilities - bcrypt password hashing for staff accounts.
"""

import bcrypt
from flask import current_app, has_app_context

BCRYPT_ROUNDS = 12


def _rounds() -> int:
    if has_app_context():
        return current_app.config.get("BCRYPT_ROUNDS", BCRYPT_ROUNDS)
    return BCRYPT_ROUNDS


def hash_password(plain_password: str, rounds: int | None = None) -> str:
    """Hash a plain-text password with bcrypt.

    The work factor comes from ``BCRYPT_ROUNDS`` in the app config unless
    *rounds* is given.
    """
    salt = bcrypt.gensalt(rounds=rounds or _rounds())
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain-text password against its bcrypt hash."""
    if not password_hash or not plain_password:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )
    except ValueError:
        # Not a bcrypt hash
        return False
