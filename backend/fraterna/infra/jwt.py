"""Access token helpers.

Tokens are minted by the hosted identity provider; the API only verifies
them. HS256 with the shared secret, fixed issuer and audience.
"""

from __future__ import annotations

import time
from typing import Any, Dict

import jwt
from jwt import InvalidTokenError

from fraterna.settings import settings


ISSUER = "fraterna-auth"
AUDIENCE = "fraterna-app"


def encode_access(payload: dict[str, object], *, ttl_seconds: int = 3600) -> str:
    """Encode an access token. Used by tests and local tooling."""
    now = int(time.time())
    body: Dict[str, Any] = {"iss": ISSUER, "aud": AUDIENCE, "iat": now, "exp": now + ttl_seconds}
    body.update(payload)
    return jwt.encode(body, settings.secret_key, algorithm="HS256")


def decode_access(token: str) -> dict[str, object]:
    """Decode and validate an access token.

    Raises jwt.InvalidTokenError subclasses on failure.
    """
    payload = jwt.decode(
        token,
        settings.secret_key,
        algorithms=["HS256"],
        audience=AUDIENCE,
        issuer=ISSUER,
        leeway=5,
        options={"require": ["exp", "iat", "iss", "aud", "sub"]},
    )
    if not str(payload.get("sub") or "").strip():
        raise InvalidTokenError("missing_claim:sub")
    return payload  # type: ignore[return-value]
