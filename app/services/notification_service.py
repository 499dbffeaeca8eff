from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import true
from sqlmodel import Session, select

from app.core.clock import Clock, utc_now
from app.core.enums import MembershipStatus, TenantRole
from app.models import Notification, User, UserTenantMembership

logger = logging.getLogger(__name__)


class NotificationService:
    """In-app notifications for tenant users."""

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock

    def create_notification(
        self,
        *,
        session: Session,
        tenant_id: UUID,
        user_id: UUID | None,
        type: str,
        title: str,
        message: str,
        meta: dict[str, Any] | None = None,
    ) -> Notification:
        notification = Notification(
            tenant_id=tenant_id,
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            meta=meta,
            created_at=self._clock(),
        )
        session.add(notification)
        session.commit()
        session.refresh(notification)
        return notification

    def tenant_owner_emails(self, *, session: Session, tenant_id: UUID) -> list[str]:
        rows = session.exec(
            select(User.email)
            .join(UserTenantMembership, UserTenantMembership.user_id == User.id)
            .where(
                UserTenantMembership.tenant_id == tenant_id,
                UserTenantMembership.role == TenantRole.TENANT_OWNER.value,
                UserTenantMembership.status == MembershipStatus.ACTIVE.value,
                User.is_active == true(),
            )
            .order_by(User.email.asc())
        ).all()
        return [email for email in rows if email]
