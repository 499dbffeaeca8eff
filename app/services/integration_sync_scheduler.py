from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable

from sqlmodel import Session, select

from app.core.clock import Clock, utc_now
from app.core.config import Settings, settings
from app.core.enums import IntegrationStatus, PushSyncFrequency, SyncJobType
from app.models import IntegrationProvider, TenantIntegration
from app.providers.connectors.base import supports_push
from app.providers.connectors.registry import ConnectorRegistry
from app.services.integration_config import (
    last_push_sync_at,
    push_sync_enabled,
    push_sync_frequency,
)
from app.services.sync_job_store import create_sync_job_if_idle

logger = logging.getLogger(__name__)

PUSH_INTERVALS = {
    PushSyncFrequency.HOURLY: timedelta(hours=1),
    PushSyncFrequency.DAILY: timedelta(days=1),
    PushSyncFrequency.WEEKLY: timedelta(weeks=1),
    PushSyncFrequency.MONTHLY: timedelta(days=30),
}


def push_interval(config: dict[str, Any]) -> timedelta:
    """Interval between push jobs; unknown or missing frequency means daily."""
    raw = push_sync_frequency(config)
    try:
        frequency = PushSyncFrequency(str(raw).lower()) if raw else PushSyncFrequency.DAILY
    except ValueError:
        frequency = PushSyncFrequency.DAILY
    return PUSH_INTERVALS[frequency]


def last_push_at(integration: TenantIntegration) -> datetime | None:
    return last_push_sync_at(integration.config) or integration.last_sync_at


class IntegrationSyncScheduler:
    """Creates pull and push jobs for connected integrations on a timer."""

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session],
        registry: ConnectorRegistry,
        clock: Clock = utc_now,
        config: Settings = settings,
    ):
        self._session_factory = session_factory
        self._registry = registry
        self._clock = clock
        self._config = config

    def _connected(self, session: Session) -> list[tuple[TenantIntegration, IntegrationProvider]]:
        return list(
            session.exec(
                select(TenantIntegration, IntegrationProvider)
                .join(IntegrationProvider, IntegrationProvider.id == TenantIntegration.provider_id)
                .where(TenantIntegration.status == IntegrationStatus.CONNECTED.value)
                .order_by(TenantIntegration.tenant_id, TenantIntegration.created_at)
            ).all()
        )

    def schedule_recurring_syncs(self) -> int:
        """Create pull jobs for integrations not synced within the pull interval."""
        now = self._clock()
        cutoff = now - timedelta(hours=self._config.integration_pull_interval_hours)
        created = 0

        with self._session_factory() as session:
            for integration, provider in self._connected(session):
                try:
                    if integration.last_sync_at is not None and integration.last_sync_at >= cutoff:
                        continue

                    job = create_sync_job_if_idle(
                        session,
                        integration=integration,
                        job_type=SyncJobType.pull_for(provider.type),
                        now=now,
                    )
                    if job is not None:
                        created += 1
                        logger.info(
                            f"Scheduled {job.job_type} for integration {integration.id} "
                            f"(tenant {integration.tenant_id})"
                        )
                except Exception:
                    session.rollback()
                    logger.exception(
                        f"Pull scheduling failed for integration {integration.id} "
                        f"(tenant {integration.tenant_id})"
                    )

        return created

    def schedule_push_syncs(self) -> int:
        """Create push jobs for push-capable integrations whose interval elapsed."""
        now = self._clock()
        created = 0

        with self._session_factory() as session:
            for integration, provider in self._connected(session):
                try:
                    job_type = SyncJobType.push_for(provider.type)
                    connector = self._registry.resolve(provider.code, provider.type)
                    if connector is None or not supports_push(connector, job_type):
                        continue

                    config = integration.config or {}
                    if not push_sync_enabled(config):
                        continue

                    last = last_push_at(integration)
                    if last is not None and now - last < push_interval(config):
                        continue

                    job = create_sync_job_if_idle(
                        session, integration=integration, job_type=job_type, now=now
                    )
                    if job is not None:
                        created += 1
                        logger.info(
                            f"Scheduled {job.job_type} for integration {integration.id} "
                            f"(tenant {integration.tenant_id})"
                        )
                except Exception:
                    session.rollback()
                    logger.exception(
                        f"Push scheduling failed for integration {integration.id} "
                        f"(tenant {integration.tenant_id})"
                    )

        return created
