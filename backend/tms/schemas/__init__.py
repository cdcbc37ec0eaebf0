"""
Schemas Package
"""
from tms.schemas.user import (
    RoleResponse, UserResponse, Token, TokenPayload,
    SignupRequest, LoginRequest, ProfileUpdate, PasswordChange
)

__all__ = [
    "RoleResponse", "UserResponse", "Token", "TokenPayload",
    "SignupRequest", "LoginRequest", "ProfileUpdate", "PasswordChange",
]
