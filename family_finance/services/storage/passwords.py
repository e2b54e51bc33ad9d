"""Password hashing shared by the identity providers."""

import bcrypt


def hash_password(password: str) -> str:
    """Hash a password with bcrypt; the salt is embedded in the result."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against a stored bcrypt hash. Empty or garbled hashes never match."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False
