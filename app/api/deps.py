from __future__ import annotations

from uuid import UUID

from fastapi import Header, HTTPException, Request, status

from app.services.container import SyncServices, build_sync_services


def get_current_tenant_id(x_tenant_id: str | None = Header(default=None)) -> UUID:
    """Tenant scope, set by the gateway after authentication."""
    if not x_tenant_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing tenant context",
        )
    try:
        return UUID(x_tenant_id)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid tenant id",
        ) from e


def get_sync_services(request: Request) -> SyncServices:
    services = getattr(request.app.state, "sync_services", None)
    if services is None:
        services = build_sync_services()
        request.app.state.sync_services = services
    return services
