"""Persistence and state machine for integration sync jobs.

Every status change goes through a conditional UPDATE keyed on the current
status, so two workers can never both move the same job along the same edge.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlmodel import Session, select

from app.core.clock import utc_now
from app.core.config import settings
from app.core.enums import SyncJobStatus, SyncJobType
from app.models import IntegrationSyncJob, TenantIntegration
from app.services.redis_lock import acquire_sync_lock, release_sync_lock
from app.services.sync_errors import InvalidJobTransition

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[SyncJobStatus, frozenset[SyncJobStatus]] = {
    SyncJobStatus.PENDING: frozenset({SyncJobStatus.IN_PROGRESS}),
    SyncJobStatus.IN_PROGRESS: frozenset(
        {SyncJobStatus.SUCCESS, SyncJobStatus.FAILED, SyncJobStatus.RETRY}
    ),
    SyncJobStatus.RETRY: frozenset({SyncJobStatus.PENDING}),
    SyncJobStatus.SUCCESS: frozenset(),
    SyncJobStatus.FAILED: frozenset(),
}

ACTIVE_JOB_STATUSES = (
    SyncJobStatus.PENDING.value,
    SyncJobStatus.IN_PROGRESS.value,
    SyncJobStatus.RETRY.value,
)
PROCESSABLE_JOB_STATUSES = (SyncJobStatus.PENDING.value, SyncJobStatus.RETRY.value)


def can_transition(current: SyncJobStatus | str, target: SyncJobStatus | str) -> bool:
    return SyncJobStatus(target) in ALLOWED_TRANSITIONS[SyncJobStatus(current)]


def get_job(session: Session, job_id: UUID) -> IntegrationSyncJob | None:
    return session.exec(
        select(IntegrationSyncJob).where(IntegrationSyncJob.id == job_id)
    ).first()


def transition_job(
    session: Session,
    *,
    job_id: UUID,
    from_status: SyncJobStatus,
    to_status: SyncJobStatus,
    values: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> bool:
    """Move a job along one edge of the state machine.

    Returns False when the job is no longer in ``from_status`` (someone else
    moved it first). Raises InvalidJobTransition for edges that do not exist.
    """
    if not can_transition(from_status, to_status):
        raise InvalidJobTransition(
            f"Illegal sync job transition {from_status.value} -> {to_status.value}"
        )

    data = dict(values or {})
    data["status"] = to_status.value
    data["updated_at"] = now or utc_now()

    result = session.exec(
        update(IntegrationSyncJob)
        .where(
            IntegrationSyncJob.id == job_id,
            IntegrationSyncJob.status == from_status.value,
        )
        .values(**data)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    return result.rowcount == 1


def claim_job(session: Session, *, job_id: UUID, now: datetime) -> bool:
    return transition_job(
        session,
        job_id=job_id,
        from_status=SyncJobStatus.PENDING,
        to_status=SyncJobStatus.IN_PROGRESS,
        values={"started_at": now},
        now=now,
    )


def release_due_retry_job(
    session: Session, *, job_id: UUID, now: datetime, only_if_due: bool = True
) -> bool:
    """Return a ``retry`` job to the pending pool."""
    if only_if_due:
        job = get_job(session, job_id)
        if job is None or (job.scheduled_for is not None and job.scheduled_for > now):
            return False
    return transition_job(
        session,
        job_id=job_id,
        from_status=SyncJobStatus.RETRY,
        to_status=SyncJobStatus.PENDING,
        now=now,
    )


def list_pending_job_ids(session: Session, *, limit: int) -> list[UUID]:
    return list(
        session.exec(
            select(IntegrationSyncJob.id)
            .where(IntegrationSyncJob.status == SyncJobStatus.PENDING.value)
            .order_by(IntegrationSyncJob.created_at.asc())
            .limit(limit)
        ).all()
    )


def list_due_retry_job_ids(session: Session, *, now: datetime, limit: int) -> list[UUID]:
    return list(
        session.exec(
            select(IntegrationSyncJob.id)
            .where(
                IntegrationSyncJob.status == SyncJobStatus.RETRY.value,
                IntegrationSyncJob.scheduled_for <= now,
            )
            .order_by(IntegrationSyncJob.scheduled_for.asc())
            .limit(limit)
        ).all()
    )


def find_active_job(
    session: Session, *, tenant_integration_id: UUID, job_type: SyncJobType
) -> IntegrationSyncJob | None:
    return session.exec(
        select(IntegrationSyncJob).where(
            IntegrationSyncJob.tenant_integration_id == tenant_integration_id,
            IntegrationSyncJob.job_type == job_type.value,
            IntegrationSyncJob.status.in_(ACTIVE_JOB_STATUSES),
        )
    ).first()


def create_sync_job_if_idle(
    session: Session,
    *,
    integration: TenantIntegration,
    job_type: SyncJobType,
    now: datetime,
    max_retries: int | None = None,
) -> IntegrationSyncJob | None:
    """Create a pending job unless one is already active for the same work.

    Returns None when an active job exists or another worker holds the
    scheduling lock for this (integration, job type).
    """
    lock_name = f"{integration.id}:{job_type.value}"
    if not acquire_sync_lock(name=lock_name):
        logger.info(f"Scheduling lock busy for {lock_name}, skipping")
        return None

    try:
        if find_active_job(
            session, tenant_integration_id=integration.id, job_type=job_type
        ) is not None:
            return None

        job = IntegrationSyncJob(
            tenant_id=integration.tenant_id,
            tenant_integration_id=integration.id,
            client_company_id=integration.client_company_id,
            job_type=job_type.value,
            status=SyncJobStatus.PENDING.value,
            retry_count=0,
            max_retries=max_retries if max_retries is not None else settings.integration_sync_max_retries,
            created_at=now,
            updated_at=now,
        )
        session.add(job)
        session.commit()
        session.refresh(job)
        return job
    finally:
        release_sync_lock(name=lock_name)
