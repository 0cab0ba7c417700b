"""
JWT Service — access token generation and verification.

Access token:  1 hour (configurable via JWT_ACCESS_EXPIRES)
Algorithm:     HS256

Token payload (issued here):
{
    "sub": <user_id>,
    "email": <email>,
    "name": <display name>,
    "role": "client" | "admin" | "super_user",
    "type": "access",
    "iss": <JWT_ISSUER>,
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

Tokens signed by the external identity provider with the same secret are
accepted too; they carry ``user_metadata`` instead of ``type``/``role`` and
are told apart by their ``iss``.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from tracker.core.types import AppUser


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 3600      # 1 hour
DEFAULT_ISSUER = "change-request-tracker"
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


def get_issuer() -> str:
    return current_app.config.get("JWT_ISSUER", DEFAULT_ISSUER)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(user: AppUser) -> dict:
    """Generate a short-lived access token for an approved user."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role.value,
        "type": "access",
        "iss": get_issuer(),
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    return {
        "access_token": jwt.encode(payload, _get_secret(), algorithm=ALGORITHM),
        "token_type": "Bearer",
        "expires_in": _get_access_expires(),
    }


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_access_token(token: str) -> dict:
    """
    Decode and verify an access token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    audience = current_app.config.get("JWT_AUDIENCE") or None
    payload = jwt.decode(
        token,
        _get_secret(),
        algorithms=[ALGORITHM],
        audience=audience,
        options={"require": ["sub", "exp"], "verify_aud": audience is not None},
    )

    # Our own tokens must be access tokens
    if payload.get("iss") == get_issuer() and payload.get("type") != "access":
        raise jwt.InvalidTokenError(f"Expected access token, got {payload.get('type')}")

    return payload
