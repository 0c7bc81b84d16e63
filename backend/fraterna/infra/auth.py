"""Authentication helpers for HTTP endpoints and socket connections.

Identity is issued by the hosted auth provider. The API only verifies the
bearer token. In development, X-User-* headers are accepted for local tools.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from fraterna.infra import jwt as jwt_helper
from fraterna.settings import settings


@dataclass(slots=True)
class AuthenticatedUser:
	id: str
	display_name: Optional[str] = None
	roles: Tuple[str, ...] = ()
	session_id: Optional[str] = None

	def has_role(self, role: str) -> bool:
		return role in self.roles


class InvalidToken(Exception):
	reason = "invalid_token"


_bearer_scheme = HTTPBearer(auto_error=False)


def _roles_from_claim(claim: Any) -> Tuple[str, ...]:
	if isinstance(claim, (list, tuple)):
		return tuple(str(r).strip() for r in claim if str(r).strip())
	if isinstance(claim, str):
		return tuple(part.strip() for part in claim.split(",") if part.strip())
	return ()


def decode_user(token: str) -> AuthenticatedUser:
	"""Decode an access token into an AuthenticatedUser or raise InvalidToken."""
	try:
		payload = jwt_helper.decode_access(token)
	except Exception:
		raise InvalidToken() from None
	display_name = payload.get("name") or payload.get("display_name")
	session_id = payload.get("sid")
	return AuthenticatedUser(
		id=str(payload["sub"]).strip(),
		display_name=str(display_name) if display_name is not None else None,
		roles=_roles_from_claim(payload.get("roles") or payload.get("role")),
		session_id=str(session_id) if session_id is not None else None,
	)


def verify_access_jwt(token: str) -> AuthenticatedUser:
	try:
		return decode_user(token)
	except InvalidToken:
		raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token") from None


async def get_current_user(
	x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
	x_user_roles: Optional[str] = Header(default=None, alias="X-User-Roles"),
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthenticatedUser:
	"""Resolve the authenticated user from a bearer token (or dev headers)."""
	if credentials and credentials.scheme.lower() == "bearer":
		return verify_access_jwt(credentials.credentials)
	if settings.is_dev() and x_user_id:
		return AuthenticatedUser(id=x_user_id, roles=_roles_from_claim(x_user_roles))
	raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token")


def _header(scope: Mapping[str, Any], name: str) -> Optional[str]:
	target = name.encode().lower()
	for key, value in scope.get("headers", []):
		if key.lower() == target:
			return value.decode()
	return None


def authenticate_socket(environ: Mapping[str, Any], auth: Optional[Mapping[str, Any]] = None) -> AuthenticatedUser:
	"""Authenticate a Socket.IO connection from its auth payload or headers."""
	scope = environ.get("asgi.scope", environ)
	payload = auth or {}
	token = payload.get("token")
	if not token:
		header = _header(scope, "authorization")
		if header and header.lower().startswith("bearer "):
			token = header.split(" ", 1)[1].strip()
	if token:
		return decode_user(str(token))
	if settings.is_dev():
		user_id = payload.get("userId") or _header(scope, "x-user-id")
		if user_id:
			return AuthenticatedUser(id=str(user_id), roles=_roles_from_claim(_header(scope, "x-user-roles")))
	raise InvalidToken()
