from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel

from app.core.enums import SyncJobType
from app.models import TenantIntegration
from app.services.integration_config import push_sync_enabled, push_sync_frequency


class IntegrationResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    provider_code: str
    provider_type: str
    provider_name: str
    display_name: str | None = None
    client_company_id: UUID | None = None
    status: str
    last_sync_at: datetime | None = None
    last_sync_status: str | None = None
    push_sync_enabled: bool = True
    push_sync_frequency: str | None = None
    created_at: datetime

    @classmethod
    def from_integration(cls, integration: TenantIntegration) -> "IntegrationResponse":
        provider = integration.provider
        config = integration.config or {}
        return cls(
            id=integration.id,
            tenant_id=integration.tenant_id,
            provider_code=provider.code,
            provider_type=provider.type,
            provider_name=provider.name,
            display_name=integration.display_name,
            client_company_id=integration.client_company_id,
            status=integration.status,
            last_sync_at=integration.last_sync_at,
            last_sync_status=integration.last_sync_status,
            push_sync_enabled=push_sync_enabled(config),
            push_sync_frequency=push_sync_frequency(config),
            created_at=integration.created_at,
        )


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str | None = None


class TriggerSyncRequest(BaseModel):
    job_type: SyncJobType | None = None


class SyncJobResponse(BaseModel):
    id: UUID
    tenant_integration_id: UUID
    client_company_id: UUID | None = None
    job_type: str
    status: str
    retry_count: int
    max_retries: int
    scheduled_for: datetime | None = None
    error_message: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    result_json: dict[str, Any] | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class SyncLogResponse(BaseModel):
    id: UUID
    level: str
    message: str
    context: dict[str, Any] | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
