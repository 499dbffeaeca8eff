from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlmodel import Session

from app.api.deps import get_current_tenant_id, get_sync_services
from app.core.enums import SyncJobStatus
from app.db.session import get_session
from app.schemas import (
    ConnectionTestResponse,
    IntegrationResponse,
    SyncJobResponse,
    SyncLogResponse,
    TriggerSyncRequest,
)
from app.services.container import SyncServices
from app.services.sync_errors import (
    IntegrationNotConnectedError,
    IntegrationNotFoundError,
    SyncJobConflictError,
    SyncJobNotFoundError,
)

router = APIRouter(prefix="/integrations", tags=["integrations"])


@router.get("", response_model=list[IntegrationResponse])
def list_integrations(
    tenant_id: UUID = Depends(get_current_tenant_id),
    session: Session = Depends(get_session),
    services: SyncServices = Depends(get_sync_services),
):
    integrations = services.integrations.list_integrations(session, tenant_id=tenant_id)
    return [IntegrationResponse.from_integration(i) for i in integrations]


@router.get("/{integration_id}", response_model=IntegrationResponse)
def get_integration(
    integration_id: UUID,
    tenant_id: UUID = Depends(get_current_tenant_id),
    session: Session = Depends(get_session),
    services: SyncServices = Depends(get_sync_services),
):
    try:
        integration = services.integrations.get_integration(
            session, tenant_id=tenant_id, integration_id=integration_id
        )
    except IntegrationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return IntegrationResponse.from_integration(integration)


@router.post("/{integration_id}/test", response_model=ConnectionTestResponse)
async def test_connection(
    integration_id: UUID,
    tenant_id: UUID = Depends(get_current_tenant_id),
    session: Session = Depends(get_session),
    services: SyncServices = Depends(get_sync_services),
):
    try:
        result = await services.integrations.test_connection(
            session, tenant_id=tenant_id, integration_id=integration_id
        )
    except IntegrationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return ConnectionTestResponse(success=result.success, message=result.message)


@router.post(
    "/{integration_id}/sync",
    response_model=SyncJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def trigger_sync(
    integration_id: UUID,
    payload: TriggerSyncRequest | None = None,
    tenant_id: UUID = Depends(get_current_tenant_id),
    session: Session = Depends(get_session),
    services: SyncServices = Depends(get_sync_services),
):
    try:
        return services.integrations.trigger_sync(
            session,
            tenant_id=tenant_id,
            integration_id=integration_id,
            job_type=payload.job_type if payload else None,
        )
    except IntegrationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except IntegrationNotConnectedError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except SyncJobConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e


@router.post("/{integration_id}/disconnect", response_model=IntegrationResponse)
def disconnect(
    integration_id: UUID,
    tenant_id: UUID = Depends(get_current_tenant_id),
    session: Session = Depends(get_session),
    services: SyncServices = Depends(get_sync_services),
):
    try:
        integration = services.integrations.disconnect(
            session, tenant_id=tenant_id, integration_id=integration_id
        )
    except IntegrationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return IntegrationResponse.from_integration(integration)


@router.get("/{integration_id}/jobs", response_model=list[SyncJobResponse])
def list_jobs(
    integration_id: UUID,
    job_status: SyncJobStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    tenant_id: UUID = Depends(get_current_tenant_id),
    session: Session = Depends(get_session),
    services: SyncServices = Depends(get_sync_services),
):
    try:
        return services.integrations.list_jobs(
            session,
            tenant_id=tenant_id,
            integration_id=integration_id,
            status=job_status,
            limit=limit,
        )
    except IntegrationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


@router.get("/{integration_id}/logs", response_model=list[SyncLogResponse])
def list_logs(
    integration_id: UUID,
    limit: int = Query(default=100, ge=1, le=500),
    tenant_id: UUID = Depends(get_current_tenant_id),
    session: Session = Depends(get_session),
    services: SyncServices = Depends(get_sync_services),
):
    try:
        return services.integrations.list_logs(
            session, tenant_id=tenant_id, integration_id=integration_id, limit=limit
        )
    except IntegrationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


@router.post(
    "/jobs/{job_id}/retry",
    response_model=SyncJobResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def retry_job(
    job_id: UUID,
    tenant_id: UUID = Depends(get_current_tenant_id),
    session: Session = Depends(get_session),
    services: SyncServices = Depends(get_sync_services),
):
    try:
        return services.integrations.retry_job(session, tenant_id=tenant_id, job_id=job_id)
    except (SyncJobNotFoundError, IntegrationNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except IntegrationNotConnectedError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except SyncJobConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
