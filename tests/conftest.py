from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from app.models import (
    ClientCompany,
    IntegrationProvider,
    Tenant,
    TenantIntegration,
    User,
    UserTenantMembership,
)

FIXED_NOW = datetime(2024, 3, 1, 12, 0, 0)


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session_factory(engine):
    return lambda: Session(engine)


@pytest.fixture(autouse=True)
def no_redis_locks(monkeypatch):
    # Scheduling locks are advisory; tests run without Redis.
    monkeypatch.setattr("app.services.sync_job_store.acquire_sync_lock", lambda **kwargs: True)
    monkeypatch.setattr("app.services.sync_job_store.release_sync_lock", lambda **kwargs: None)


@pytest.fixture
def tenant(engine) -> Tenant:
    with Session(engine) as session:
        tenant = Tenant(name="Acme Accounting", slug="acme")
        session.add(tenant)
        session.commit()
        session.refresh(tenant)
        return tenant


@pytest.fixture
def make_integration(engine):
    """Create a provider (reused by code) and a tenant integration for it."""

    def _make(
        tenant_id,
        *,
        code: str = "MOCK_ACCOUNTING",
        provider_type: str = "accounting",
        status: str = "connected",
        config: dict | None = None,
        last_sync_at: datetime | None = None,
        client_company_id=None,
        display_name: str | None = "Main books",
    ) -> TenantIntegration:
        with Session(engine) as session:
            provider = session.exec(
                select(IntegrationProvider).where(IntegrationProvider.code == code)
            ).first()
            if provider is None:
                provider = IntegrationProvider(
                    code=code, type=provider_type, name=code.replace("_", " ").title()
                )
                session.add(provider)
                session.commit()
                session.refresh(provider)

            integration = TenantIntegration(
                tenant_id=tenant_id,
                provider_id=provider.id,
                client_company_id=client_company_id,
                display_name=display_name,
                config=config if config is not None else {"api_key": "secret"},
                status=status,
                last_sync_at=last_sync_at,
                created_at=FIXED_NOW,
                updated_at=FIXED_NOW,
            )
            session.add(integration)
            session.commit()
            session.refresh(integration)
            return integration

    return _make


@pytest.fixture
def make_company(engine):
    def _make(tenant_id, *, name: str, tax_number: str, created_at: datetime | None = None) -> ClientCompany:
        with Session(engine) as session:
            company = ClientCompany(
                tenant_id=tenant_id,
                name=name,
                tax_number=tax_number,
                created_at=created_at or FIXED_NOW,
            )
            session.add(company)
            session.commit()
            session.refresh(company)
            return company

    return _make


@pytest.fixture
def make_member(engine):
    def _make(
        tenant_id,
        *,
        email: str | None,
        role: str = "tenant_owner",
        status: str = "active",
        is_active: bool = True,
    ) -> User:
        with Session(engine) as session:
            user = User(email=email, name=email or "No email", is_active=is_active)
            session.add(user)
            session.commit()
            session.refresh(user)
            session.add(
                UserTenantMembership(user_id=user.id, tenant_id=tenant_id, role=role, status=status)
            )
            session.commit()
            session.refresh(user)
            return user

    return _make
