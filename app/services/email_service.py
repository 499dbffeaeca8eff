from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlmodel import Session

from app.core.clock import Clock, utc_now
from app.models import EmailLog

logger = logging.getLogger(__name__)


class EmailService:
    """Queues outbound email; delivery is handled by the platform's mailer."""

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock

    def send_notification_email(
        self,
        *,
        session: Session,
        tenant_id: UUID,
        recipients: list[str],
        template_id: str,
        subject: str,
        context: dict[str, Any] | None = None,
    ) -> EmailLog | None:
        recipients = sorted({r.strip() for r in recipients if r and r.strip()})
        if not recipients:
            logger.info(f"No recipients for {template_id} email in tenant {tenant_id}")
            return None

        email = EmailLog(
            tenant_id=tenant_id,
            to=recipients,
            template_id=template_id,
            subject=subject,
            status="pending",
            context=context,
            created_at=self._clock(),
        )
        session.add(email)
        session.commit()
        session.refresh(email)
        logger.info(f"Queued {template_id} email to {len(recipients)} recipient(s)")
        return email
