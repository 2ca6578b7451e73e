"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract
and validate the current identity from the request.

Three places a credential can come from:
1. Authorization: Bearer <JWT>
2. The session cookie (same JWT) — browsers can't add headers to EventSource
3. X-API-Key: <personal access token>

Every failure is the same 401 {"error": "Unauthorized"}; the reason only
goes to the log.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pillar.auth.jwt import TokenError, verify_token
from pillar.auth.tokens import hash_token
from pillar.config import settings
from pillar.db.engine import get_db
from pillar.db.models import AccessToken

logger = structlog.get_logger()


class CurrentIdentity:
    """Represents the authenticated user making the request.

    Learn: This is the unified auth context. Could come from a session
    JWT or a personal access token. All downstream code uses user_id
    to scope queries to the owner's records.
    """

    def __init__(
        self,
        user_id: str,
        email: Optional[str] = None,
        identity_type: str = "user",  # "user" or "access_token"
    ):
        self.user_id = user_id
        self.email = email
        self.identity_type = identity_type

    @property
    def user_uuid(self) -> uuid.UUID:
        return uuid.UUID(self.user_id)


def unauthorized() -> HTTPException:
    return HTTPException(
        status_code=401,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_optional(
    request: Request,
    authorization: Optional[str] = Header(None),
    x_api_key: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Optional[CurrentIdentity]:
    """Extract current identity (optional — returns None if no credential).

    Learn: This is the "soft" auth dependency. A credential that is
    present but invalid still raises 401 — only a missing one yields None.
    """
    if x_api_key:
        return await _authenticate_access_token(x_api_key, db)

    if authorization and authorization.startswith("Bearer "):
        return _authenticate_jwt(authorization[7:])

    cookie = request.cookies.get(settings.session_cookie_name)
    if cookie:
        return _authenticate_jwt(cookie)

    return None


async def get_current_user(
    identity: Optional[CurrentIdentity] = Depends(get_current_user_optional),
) -> CurrentIdentity:
    """Extract current identity (required — 401 if no auth)."""
    if not identity:
        raise unauthorized()
    return identity


def _authenticate_jwt(token: str) -> CurrentIdentity:
    """Authenticate via JWT session token."""
    try:
        payload = verify_token(token)
        user_id = str(uuid.UUID(payload["sub"]))
    except (TokenError, ValueError) as e:
        logger.info("auth.jwt_rejected", reason=str(e))
        raise unauthorized()
    return CurrentIdentity(
        user_id=user_id,
        email=payload.get("email"),
        identity_type="user",
    )


async def _authenticate_access_token(
    raw: str, db: AsyncSession
) -> CurrentIdentity:
    """Authenticate via personal access token."""
    q = select(AccessToken).where(AccessToken.token_hash == hash_token(raw))
    result = await db.execute(q)
    token = result.scalars().first()

    if not token:
        logger.info("auth.access_token_rejected", reason="unknown")
        raise unauthorized()

    now = datetime.now(timezone.utc)
    if token.expires_at and token.expires_at < now:
        logger.info("auth.access_token_rejected", reason="expired", token_id=str(token.id))
        raise unauthorized()

    token.last_used_at = now
    await db.commit()

    return CurrentIdentity(
        user_id=str(token.user_id),
        identity_type="access_token",
    )
