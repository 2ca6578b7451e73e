"""Personal access tokens.

Learn: Tokens look like "pat_<random>". Only the sha256 hash is stored,
plus a short prefix so the settings page can tell tokens apart.
"""

import hashlib
import secrets

TOKEN_PREFIX = "pat_"


def generate_token() -> str:
    return f"{TOKEN_PREFIX}{secrets.token_urlsafe(32)}"


def hash_token(raw: str) -> str:
    return hashlib.sha256(raw.encode()).hexdigest()
