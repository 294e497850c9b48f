"""Access token verification.

Tokens are issued by the Campus Connect accounts service and signed
with the shared secret; this service only verifies them. Access tokens
carry the user id in ``sub``. Service tokens (``type: service``) carry
the calling backend's name there instead.
"""

from __future__ import annotations

from typing import Any

import jwt

from campus_connect.config import get_settings


def verify_token(token: str, expected_type: str | tuple[str, ...] = "access") -> dict[str, Any]:
    """
    Decode and validate a token whose ``type`` is one of ``expected_type``.

    Raises:
        jwt.InvalidTokenError: Bad signature, expired, wrong issuer or wrong type.
    """
    settings = get_settings()
    payload: dict[str, Any] = jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        issuer=settings.jwt_issuer,
        options={"require": ["sub", "exp", "iss"]},
    )
    allowed = (expected_type,) if isinstance(expected_type, str) else expected_type
    if payload.get("type", "access") not in allowed:
        msg = f"Expected {' or '.join(allowed)} token"
        raise jwt.InvalidTokenError(msg)
    return payload
