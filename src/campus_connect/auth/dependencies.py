"""Bearer-token authentication for API routes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from campus_connect.auth.jwt import verify_token
from campus_connect.database import get_session
from campus_connect.db.models import User

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    """Whoever presented the bearer token: a user, or a backend service."""

    user: User | None = None
    service: str | None = None

    @property
    def is_service(self) -> bool:
        return self.service is not None

    def may_act_for(self, user_id: int) -> bool:
        return self.is_service or (self.user is not None and self.user.id == user_id)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def _claims(credentials: HTTPAuthorizationCredentials | None, token_types: tuple[str, ...]) -> dict[str, Any]:
    if credentials is None:
        raise _unauthorized("Not authenticated")
    try:
        claims = verify_token(credentials.credentials, expected_type=token_types)
        if claims.get("type", "access") == "access":
            claims["sub"] = int(claims["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        raise _unauthorized(f"Invalid access token: {e}") from e
    return claims


async def _load_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise _unauthorized("User not found")
    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """The user named by the access token's ``sub``.

    Missing, malformed, expired or foreign tokens and deleted users are
    all a 401.
    """
    claims = _claims(credentials, ("access",))
    return await _load_user(db, claims["sub"])


async def get_caller(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> Caller:
    """A user (access token) or a backend service (service token)."""
    claims = _claims(credentials, ("access", "service"))
    if claims.get("type") == "service":
        return Caller(service=str(claims["sub"]))
    return Caller(user=await _load_user(db, claims["sub"]))


async def require_service(caller: Caller = Depends(get_caller)) -> Caller:
    if not caller.is_service:
        raise HTTPException(status_code=403, detail="Service token required")
    return caller
