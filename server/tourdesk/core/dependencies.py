"""FastAPI dependencies for authentication and role checks."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError

from .config import settings
from .exceptions import AuthenticationError, AuthorizationError


class Role(str, Enum):
    """Roles supplied by the identity provider."""
    USER = "USER"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


STAFF_ROLES = frozenset({Role.MANAGER, Role.ADMIN})


@dataclass(frozen=True)
class Principal:
    """Authenticated caller as seen by the booking engine."""

    user_id: int
    role: Role
    email: Optional[str] = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def issue_token(user_id: int, role: Role | str = Role.USER, email: Optional[str] = None) -> str:
    """Sign a bearer token for ``user_id``; used by tooling and tests."""
    payload = {"sub": str(user_id), "role": Role(role).value}
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.bearer_token_secret, algorithm="HS256")


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> Principal:
    """
    Authentication dependency that validates Bearer tokens.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        Principal: Caller identity and role from the validated token

    Raises:
        AuthenticationError: If token is invalid or missing
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format")

    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    try:
        # exp is verified by PyJWT when present
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {str(e)}")

    try:
        user_id = int(payload["sub"])
        role = Role(str(payload.get("role", Role.USER.value)).upper())
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError(detail="Invalid token payload")

    return Principal(user_id=user_id, role=role, email=payload.get("email"))


async def require_staff(user: Principal = Depends(get_current_user)) -> Principal:
    """Allow only MANAGER and ADMIN callers through."""
    if not user.is_staff:
        raise AuthorizationError(
            detail="This operation is restricted to managers and administrators",
            required_roles=sorted(role.value for role in STAFF_ROLES),
        )
    return user


RequiredAuth = Depends(get_current_user)
StaffAuth = Depends(require_staff)
