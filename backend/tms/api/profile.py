"""
Profile API Routes
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from tms.database import get_db
from tms.schemas import UserResponse, ProfileUpdate, PasswordChange
from tms.models import User, AuditActionType
from tms.core.rbac import get_current_user
from tms.core.audit import AuditLogger
from tms.core.errors import InvalidRequest
from tms.api.common import ok

router = APIRouter()


@router.get("")
async def get_profile(current_user: User = Depends(get_current_user)):
    return ok(UserResponse.model_validate(current_user).model_dump(mode="json"))


@router.patch("")
async def update_profile(
    profile: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Update the caller's display name."""
    if profile.full_name is not None:
        current_user.full_name = profile.full_name
        db.commit()
        db.refresh(current_user)

    return ok(UserResponse.model_validate(current_user).model_dump(mode="json"))


@router.patch("/password")
async def change_password(
    change: PasswordChange,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Change password; the current password must match."""
    auditor = AuditLogger(db, request)

    if not current_user.verify_password(change.current_password):
        auditor.log(
            action=AuditActionType.PASSWORD_CHANGE.value,
            user=current_user,
            resource_type="user",
            resource_id=str(current_user.id),
            status="failure",
            error_message="Current password is incorrect"
        )
        raise InvalidRequest("Current password is incorrect")

    current_user.hashed_password = User.hash_password(change.new_password)
    db.commit()

    auditor.log(
        action=AuditActionType.PASSWORD_CHANGE.value,
        user=current_user,
        resource_type="user",
        resource_id=str(current_user.id)
    )

    return ok({"message": "Password updated"})
