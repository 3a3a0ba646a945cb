"""Password hashing."""

import bcrypt

_DEFAULT_COST = 10
_MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    """Return a bcrypt hash of the password.

    Raises ValueError for passwords longer than bcrypt can take.
    """
    raw = password.encode("utf-8")
    if len(raw) > _MAX_PASSWORD_BYTES:
        raise ValueError("password length exceeds 72 bytes")
    return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=_DEFAULT_COST)).decode("ascii")


def check_password_hash(password: str, hashed: str) -> bool:
    """Tell whether the password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False