from __future__ import annotations

import logging
from uuid import UUID

from sqlmodel import Session, select

from app.core.clock import Clock, utc_now
from app.core.enums import IntegrationStatus, SyncJobStatus, SyncJobType
from app.models import IntegrationSyncJob, IntegrationSyncLog, TenantIntegration
from app.providers.connectors.normalized import ConnectionTestResult
from app.providers.connectors.registry import ConnectorRegistry
from app.services.sync_errors import (
    IntegrationNotConnectedError,
    IntegrationNotFoundError,
    SyncJobConflictError,
    SyncJobNotFoundError,
)
from app.services.sync_job_store import create_sync_job_if_idle

logger = logging.getLogger(__name__)


class TenantIntegrationService:
    """Tenant-scoped operations behind the integrations API.

    Every lookup is filtered by tenant, so an id from another tenant behaves
    exactly like an unknown id.
    """

    def __init__(self, *, registry: ConnectorRegistry, clock: Clock = utc_now):
        self._registry = registry
        self._clock = clock

    def list_integrations(self, session: Session, *, tenant_id: UUID) -> list[TenantIntegration]:
        return list(
            session.exec(
                select(TenantIntegration)
                .where(TenantIntegration.tenant_id == tenant_id)
                .order_by(TenantIntegration.created_at.asc())
            ).all()
        )

    def get_integration(
        self, session: Session, *, tenant_id: UUID, integration_id: UUID
    ) -> TenantIntegration:
        integration = session.exec(
            select(TenantIntegration).where(
                TenantIntegration.id == integration_id,
                TenantIntegration.tenant_id == tenant_id,
            )
        ).first()
        if integration is None:
            raise IntegrationNotFoundError(integration_id)
        return integration

    async def test_connection(
        self, session: Session, *, tenant_id: UUID, integration_id: UUID
    ) -> ConnectionTestResult:
        integration = self.get_integration(
            session, tenant_id=tenant_id, integration_id=integration_id
        )
        provider = integration.provider
        connector = self._registry.resolve(provider.code, provider.type)
        if connector is None:
            return ConnectionTestResult(
                success=False,
                message=f"Connector not found for provider {provider.code} ({provider.type})",
            )

        try:
            return await connector.test_connection(dict(integration.config or {}))
        except Exception as e:
            logger.warning(f"Connection test for integration {integration.id} raised: {e}")
            return ConnectionTestResult(success=False, message=str(e) or type(e).__name__)

    def trigger_sync(
        self,
        session: Session,
        *,
        tenant_id: UUID,
        integration_id: UUID,
        job_type: SyncJobType | None = None,
    ) -> IntegrationSyncJob:
        integration = self.get_integration(
            session, tenant_id=tenant_id, integration_id=integration_id
        )
        if integration.status != IntegrationStatus.CONNECTED.value:
            raise IntegrationNotConnectedError(
                f"Integration {integration.id} is {integration.status}"
            )

        provider_type = integration.provider.type
        if job_type is None:
            job_type = SyncJobType.pull_for(provider_type)
        elif job_type.provider_type.value != provider_type:
            raise SyncJobConflictError(
                f"Job type {job_type.value} does not match a {provider_type} provider"
            )

        job = create_sync_job_if_idle(
            session, integration=integration, job_type=job_type, now=self._clock()
        )
        if job is None:
            raise SyncJobConflictError(
                f"A {job_type.value} job is already active for integration {integration.id}"
            )
        logger.info(f"Manual {job_type.value} job {job.id} queued for integration {integration.id}")
        return job

    def disconnect(
        self, session: Session, *, tenant_id: UUID, integration_id: UUID
    ) -> TenantIntegration:
        integration = self.get_integration(
            session, tenant_id=tenant_id, integration_id=integration_id
        )
        integration.status = IntegrationStatus.DISCONNECTED.value
        integration.updated_at = self._clock()
        session.add(integration)
        session.commit()
        session.refresh(integration)
        return integration

    def list_jobs(
        self,
        session: Session,
        *,
        tenant_id: UUID,
        integration_id: UUID,
        status: SyncJobStatus | None = None,
        limit: int = 50,
    ) -> list[IntegrationSyncJob]:
        self.get_integration(session, tenant_id=tenant_id, integration_id=integration_id)
        query = select(IntegrationSyncJob).where(
            IntegrationSyncJob.tenant_id == tenant_id,
            IntegrationSyncJob.tenant_integration_id == integration_id,
        )
        if status is not None:
            query = query.where(IntegrationSyncJob.status == status.value)
        return list(
            session.exec(query.order_by(IntegrationSyncJob.created_at.desc()).limit(limit)).all()
        )

    def list_logs(
        self,
        session: Session,
        *,
        tenant_id: UUID,
        integration_id: UUID,
        limit: int = 100,
    ) -> list[IntegrationSyncLog]:
        self.get_integration(session, tenant_id=tenant_id, integration_id=integration_id)
        return list(
            session.exec(
                select(IntegrationSyncLog)
                .where(
                    IntegrationSyncLog.tenant_id == tenant_id,
                    IntegrationSyncLog.tenant_integration_id == integration_id,
                )
                .order_by(IntegrationSyncLog.created_at.desc())
                .limit(limit)
            ).all()
        )

    def retry_job(self, session: Session, *, tenant_id: UUID, job_id: UUID) -> IntegrationSyncJob:
        """Queue a fresh pending job for a failed one; the failed job stays as history."""
        failed = session.exec(
            select(IntegrationSyncJob).where(
                IntegrationSyncJob.id == job_id,
                IntegrationSyncJob.tenant_id == tenant_id,
            )
        ).first()
        if failed is None:
            raise SyncJobNotFoundError(job_id)
        if failed.status != SyncJobStatus.FAILED.value:
            raise SyncJobConflictError(f"Only failed jobs can be retried (job is {failed.status})")

        return self.trigger_sync(
            session,
            tenant_id=tenant_id,
            integration_id=failed.tenant_integration_id,
            job_type=SyncJobType(failed.job_type),
        )
