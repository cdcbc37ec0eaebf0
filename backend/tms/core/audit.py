"""
Audit Logging Service
"""
from typing import Optional, Dict, Any
from fastapi import Request
from sqlalchemy.orm import Session
import structlog

from tms.models import AuditLog, User

logger = structlog.get_logger()


class AuditLogger:
    """Centralized audit logging service."""

    def __init__(self, db: Session, request: Optional[Request] = None):
        self.db = db
        self.ip_address = request.client.host if request is not None and request.client else None

    def log(
        self,
        action: str,
        user: Optional[User] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status: str = "success",
        error_message: Optional[str] = None,
        connection_id: Optional[str] = None,
        user_email: Optional[str] = None
    ) -> AuditLog:
        """Create an audit log entry."""
        audit = AuditLog(
            user_id=user.id if user else None,
            user_email=user.email if user else user_email,
            ip_address=self.ip_address,
            action=action,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id else None,
            details=details,
            status=status,
            error_message=error_message,
            oracle_connection_id=connection_id
        )

        self.db.add(audit)
        self.db.commit()

        log_method = logger.info if status == "success" else logger.warning
        log_method(
            "audit_event",
            action=action,
            user_email=audit.user_email,
            resource_type=resource_type,
            resource_id=resource_id,
            status=status,
            connection_id=connection_id
        )

        return audit
