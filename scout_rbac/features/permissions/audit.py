"""
Audit logging for administrative access-control changes.
"""
from typing import Any, Dict, Optional
from fastapi import Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from scout_rbac.features.permissions.models import AuditLog
from scout_rbac.utils import get_logger


log = get_logger(__name__)


async def create_audit_log(
    db: AsyncSession,
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> AuditLog:
    """
    Create an audit log entry.

    Args:
        db: Database session
        user_id: User performing the action
        action: Action performed (e.g., "create", "delete", "grant", "assign")
        resource_type: Type of resource (e.g., "role", "form_permission", "member")
        resource_id: ID of the resource
        organization_id: Organization context
        details: Additional details
        request: Incoming request, for client IP and user agent

    Returns:
        Created AuditLog object
    """
    audit_log = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        organization_id=organization_id,
        details=details,
        ip_address=request.client.host if request and request.client else None,
        user_agent=request.headers.get("user-agent") if request else None,
    )

    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)

    log.info(
        f"Audit: user={user_id} action={action} resource={resource_type}:{resource_id} org={organization_id}"
    )

    return audit_log


async def list_audit_logs(
    db: AsyncSession,
    organization_id: str,
    skip: int = 0,
    limit: int = 100,
) -> list[AuditLog]:
    result = await db.execute(
        select(AuditLog)
        .where(AuditLog.organization_id == organization_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all())
