from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlmodel import Session

from app.core.clock import utc_now
from app.core.enums import SyncLogLevel
from app.models import IntegrationSyncLog

MAX_LOGGED_ERRORS = 10


def write_sync_log(
    *,
    session: Session,
    tenant_id: UUID,
    tenant_integration_id: UUID,
    level: SyncLogLevel,
    message: str,
    context: dict[str, Any] | None = None,
    commit: bool = True,
) -> IntegrationSyncLog:
    entry = IntegrationSyncLog(
        tenant_id=tenant_id,
        tenant_integration_id=tenant_integration_id,
        level=level.value,
        message=message,
        context=context,
        created_at=utc_now(),
    )
    session.add(entry)
    if commit:
        session.commit()
    return entry


def truncate_errors(errors: list[Any], limit: int = MAX_LOGGED_ERRORS) -> list[Any]:
    return list(errors[:limit])
