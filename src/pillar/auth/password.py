"""bcrypt helpers for the settings password change.

Learn: Only PATCH /api/settings/password ever touches a plaintext
password; sign-in itself belongs to the web auth provider. Hashes are
stored in users.password_hash in bcrypt's "$2b$..." format, so rows
written by the provider verify here unchanged.
"""

import bcrypt

# bcrypt silently ignores everything past 72 bytes; we truncate explicitly
# so hash and verify always agree on the input.
_BCRYPT_MAX_BYTES = 72
DEFAULT_ROUNDS = 12


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int = DEFAULT_ROUNDS) -> str:
    return bcrypt.hashpw(_encode(password), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(password: str, password_hash: str) -> bool:
    """True when `password` matches; a malformed stored hash never matches."""
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("ascii"))
    except (ValueError, TypeError, UnicodeEncodeError):
        return False
