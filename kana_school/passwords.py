"""Salted password digests (PBKDF2-HMAC-SHA256, 100000 rounds)."""

from werkzeug.security import check_password_hash, generate_password_hash

HASH_METHOD = "pbkdf2:sha256:100000"
SALT_LENGTH = 16


def hash_password(password: str) -> str:
    """Return ``method$salt$hexdigest`` for ``password`` with a fresh random salt."""
    return generate_password_hash(password, method=HASH_METHOD, salt_length=SALT_LENGTH)


def verify_password(password: str, digest: str) -> bool:
    """Check ``password`` against a stored digest. Malformed digests never match."""
    if not digest or digest.count("$") < 2:
        return False
    try:
        return check_password_hash(digest, password)
    except (ValueError, TypeError):
        return False
