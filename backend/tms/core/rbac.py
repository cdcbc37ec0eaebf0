"""
Session verification and role seeding
"""
from typing import Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from tms.config import settings
from tms.database import get_db
from tms.models import User, Role
from tms.core.auth import verify_token, get_user_by_id
from tms.core.errors import Unauthorized, PermissionDenied

security = HTTPBearer(auto_error=False)


def _session_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """Session cookie first, bearer header as a fallback for API clients."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token
    if credentials:
        return credentials.credentials
    return None


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from the session token."""
    token = _session_token(request, credentials)
    if not token:
        raise Unauthorized()

    payload = verify_token(token)
    if not payload:
        raise Unauthorized("Invalid or expired session")

    user = get_user_by_id(db, payload.sub)
    if not user:
        raise Unauthorized("User not found")

    if not user.is_active:
        raise Unauthorized("User account is disabled")

    return user


def require_permission(permission_name: str):
    """Dependency factory requiring one role permission flag."""
    async def checker(current_user: User = Depends(get_current_user)) -> User:
        if not current_user.has_permission(permission_name):
            raise PermissionDenied(f"Permission '{permission_name}' required")
        return current_user
    return checker


DEFAULT_ROLES = [
    {
        "name": "admin",
        "display_name": "Administrator",
        "description": "Full access including connection management",
        "permissions": {"connections": True, "monitoring": True, "tuning": True},
    },
    {
        "name": "tuner",
        "display_name": "Tuner",
        "description": "Monitoring and tuning operations",
        "permissions": {"connections": False, "monitoring": True, "tuning": True},
    },
    {
        "name": "viewer",
        "display_name": "Viewer",
        "description": "Read-only monitoring",
        "permissions": {"connections": False, "monitoring": True, "tuning": False},
    },
]

DEFAULT_SIGNUP_ROLE = "viewer"
# The first account registered on an empty store administers it
BOOTSTRAP_ROLE = "admin"


def initialize_rbac(db: Session) -> None:
    """Seed the built-in roles."""
    for role_data in DEFAULT_ROLES:
        existing = db.query(Role).filter(Role.name == role_data["name"]).first()
        if not existing:
            db.add(Role(is_system=True, **role_data))

    db.commit()
