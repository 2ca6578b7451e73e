"""Session token (HS256 JWT) minting and checking.

Learn: Browsers sign in through the web auth provider, which mints the
session JWT with the shared PILLAR_JWT_SECRET and drops it into the
session cookie. The API never sees a password on that path; it only has
to check the signature, the expiry and the subject.

Claims we rely on:
    sub    user id (UUID string), required
    email  optional, carried through to CurrentIdentity
    type   "session"; tokens minted for anything else are refused

create_access_token mints the same shape for the CLI and the tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from pillar.config import settings

SESSION_TOKEN_TYPE = "session"


class TokenError(Exception):
    """The session token is missing a claim, expired or forged."""


def create_access_token(
    user_id: str,
    email: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    lifetime = timedelta(minutes=expires_minutes or settings.access_token_expire_minutes)
    issued_at = datetime.now(timezone.utc)
    claims = {"sub": user_id, "type": SESSION_TOKEN_TYPE, "iat": issued_at, "exp": issued_at + lifetime}
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Decode a session token and return its claims, or raise TokenError."""
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Session expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Malformed session token: {e}")

    # Provider-minted tokens may omit the type; anything else typed is refused.
    token_type = claims.get("type", SESSION_TOKEN_TYPE)
    if token_type != SESSION_TOKEN_TYPE:
        raise TokenError(f"Not a session token: {token_type}")
    return claims
