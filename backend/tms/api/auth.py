"""
Authentication API Routes
"""
from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session
from datetime import datetime

from tms.config import settings
from tms.database import get_db
from tms.schemas import SignupRequest, LoginRequest, UserResponse
from tms.models import User, Role, AuditActionType
from tms.core.auth import authenticate_user, create_token, get_user_by_email
from tms.core.rbac import get_current_user, DEFAULT_SIGNUP_ROLE, BOOTSTRAP_ROLE
from tms.core.audit import AuditLogger
from tms.core.errors import InvalidRequest, Unauthorized
from tms.api.common import ok

router = APIRouter()


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(user_data: SignupRequest, request: Request, db: Session = Depends(get_db)):
    """Register a new user; the very first account gets the admin role."""
    if get_user_by_email(db, user_data.email):
        raise InvalidRequest("Email already registered")

    role_name = BOOTSTRAP_ROLE if db.query(User.id).first() is None else DEFAULT_SIGNUP_ROLE

    user = User(
        email=user_data.email,
        full_name=user_data.full_name,
        hashed_password=User.hash_password(user_data.password),
        role=db.query(Role).filter(Role.name == role_name).first()
    )
    db.add(user)
    db.commit()
    db.refresh(user)

    AuditLogger(db, request).log(
        action=AuditActionType.USER_SIGNUP.value,
        user=user,
        resource_type="user",
        resource_id=str(user.id)
    )

    return ok(UserResponse.model_validate(user).model_dump(mode="json"))


@router.post("/login")
async def login(credentials: LoginRequest, request: Request, response: Response, db: Session = Depends(get_db)):
    """Login, set the session cookie and return the token."""
    auditor = AuditLogger(db, request)
    user = authenticate_user(db, credentials.email, credentials.password)

    if not user:
        auditor.log(
            action=AuditActionType.USER_LOGIN_FAILED.value,
            resource_type="auth",
            status="failure",
            user_email=credentials.email
        )
        raise Unauthorized("Incorrect email or password")

    user.last_login = datetime.utcnow()
    db.commit()

    token = create_token(user)
    _set_session_cookie(response, token.access_token)

    auditor.log(action=AuditActionType.USER_LOGIN.value, user=user, resource_type="auth")

    return ok(token.model_dump())


@router.post("/logout")
async def logout(response: Response, current_user: User = Depends(get_current_user)):
    """Clear the session cookie."""
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return ok({"message": "Logged out"})


@router.get("/session")
async def get_session(current_user: User = Depends(get_current_user)):
    """Current authenticated user."""
    return ok(UserResponse.model_validate(current_user).model_dump(mode="json"))
