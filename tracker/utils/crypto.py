"""
Crypto utilities — bcrypt password hashing.

Accounts registered before hashing was introduced may still carry a
plain-text password; ``verify_password`` accepts those once so the login
flow can rehash them (see ``user_service.login``).
"""

import hmac

import bcrypt


def hash_password(plain_password: str, rounds: int = 12) -> str:
    """Hash a plain-text password with bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def is_bcrypt_hash(password_hash: str | None) -> bool:
    return bool(password_hash) and password_hash.startswith(("$2b$", "$2a$", "$2y$"))


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """Verify a plain-text password against its stored hash."""
    if not password_hash:
        return False

    if is_bcrypt_hash(password_hash):
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )

    # Legacy plain-text record
    return hmac.compare_digest(plain_password.encode("utf-8"), password_hash.encode("utf-8"))
