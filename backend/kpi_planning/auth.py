"""Authenticated actor resolution.

Access tokens are issued by the identity service; this service only verifies
them and reads the actor id (``sub``), ``role`` and display ``name``.
"""
from dataclasses import dataclass
from typing import Optional
import time
from uuid import UUID
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from .config import settings

# Bearer token scheme
security = HTTPBearer()

PLANNER_ROLES = ("admin", "leader")


@dataclass(frozen=True)
class Actor:
    """Caller identity supplied by the identity service."""
    id: UUID
    role: str
    name: Optional[str] = None

    @property
    def label(self) -> str:
        if not self.name:
            return "System"
        if self.role in PLANNER_ROLES:
            return f"{self.role.capitalize()} {self.name}"
        return self.name


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str) -> dict:
    """Decode JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        raise _credentials_error()

    now = int(time.time())
    exp = payload.get("exp")
    if exp is None:
        raise _credentials_error()
    try:
        exp_int = int(exp)
    except (TypeError, ValueError):
        raise _credentials_error()
    if now > exp_int + int(settings.JWT_LEEWAY_SECONDS):
        raise _credentials_error("Token expired")
    return payload


def actor_from_payload(payload: dict) -> Actor:
    """Build the actor from verified token claims."""
    if payload.get("type") != "access":
        raise _credentials_error("Invalid token type")

    sub = payload.get("sub")
    if not sub:
        raise _credentials_error()
    try:
        actor_id = UUID(str(sub))
    except ValueError:
        raise _credentials_error()

    role = payload.get("role")
    if not isinstance(role, str) or not role:
        raise _credentials_error()

    name = payload.get("name")
    return Actor(id=actor_id, role=role, name=name if isinstance(name, str) else None)


def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Actor:
    """Get current authenticated actor."""
    return actor_from_payload(decode_token(credentials.credentials))


# Permission checks
class RoleChecker:
    """Allow only the listed roles."""

    def __init__(self, allowed_roles: tuple[str, ...] = PLANNER_ROLES):
        self.allowed_roles = allowed_roles

    def __call__(self, current_actor: Actor = Depends(get_current_actor)) -> Actor:
        """Check if actor has an allowed role."""
        if current_actor.role not in self.allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: one of {', '.join(self.allowed_roles)} required"
            )
        return current_actor


require_planner = RoleChecker(PLANNER_ROLES)
require_admin = RoleChecker(("admin",))
