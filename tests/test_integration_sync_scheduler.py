from datetime import timedelta

import pytest
from sqlmodel import Session, select

from app.core.config import settings
from app.models import IntegrationSyncJob
from app.providers.connectors.base import AccountingConnector
from app.providers.connectors.mock_provider import (
    MOCK_ACCOUNTING_CODE,
    MOCK_BANK_CODE,
    MockAccountingConnector,
    MockBankConnector,
)
from app.providers.connectors.normalized import ConnectionTestResult
from app.providers.connectors.registry import ConnectorRegistry
from app.services import integration_sync_scheduler
from app.services.integration_sync_scheduler import IntegrationSyncScheduler, push_interval
from app.services.sync_job_store import create_sync_job_if_idle
from conftest import FIXED_NOW, fixed_clock


class PullOnlyConnector(AccountingConnector):
    async def test_connection(self, config):
        return ConnectionTestResult(success=True)

    async def fetch_invoices(self, since, until, options=None):
        return []


@pytest.fixture
def registry():
    registry = ConnectorRegistry()
    registry.register(MOCK_ACCOUNTING_CODE, MockAccountingConnector())
    registry.register(MOCK_BANK_CODE, MockBankConnector())
    registry.register("PULL_ONLY", PullOnlyConnector())
    return registry


@pytest.fixture
def scheduler(session_factory, registry):
    return IntegrationSyncScheduler(
        session_factory=session_factory,
        registry=registry,
        clock=fixed_clock,
        config=settings,
    )


def _jobs(engine):
    with Session(engine) as session:
        return session.exec(select(IntegrationSyncJob).order_by(IntegrationSyncJob.job_type)).all()


def test_push_interval_defaults_to_daily():
    assert push_interval({}) == timedelta(days=1)
    assert push_interval({"pushSyncFrequency": "HOURLY"}) == timedelta(hours=1)
    assert push_interval({"pushSyncFrequency": "weekly"}) == timedelta(weeks=1)
    assert push_interval({"pushSyncFrequency": "monthly"}) == timedelta(days=30)
    assert push_interval({"pushSyncFrequency": "fortnightly"}) == timedelta(days=1)


def test_pull_jobs_for_stale_or_never_synced(engine, tenant, make_integration, scheduler):
    never = make_integration(tenant.id)
    stale = make_integration(
        tenant.id, code=MOCK_BANK_CODE, provider_type="bank",
        last_sync_at=FIXED_NOW - timedelta(hours=25),
    )
    make_integration(tenant.id, last_sync_at=FIXED_NOW - timedelta(hours=1))
    make_integration(tenant.id, status="disconnected")

    created = scheduler.schedule_recurring_syncs()

    jobs = _jobs(engine)
    assert created == 2
    assert {(j.tenant_integration_id, j.job_type) for j in jobs} == {
        (never.id, "pull_invoices"),
        (stale.id, "pull_bank_transactions"),
    }
    assert all(j.status == "pending" for j in jobs)


def test_pull_scheduling_is_deduplicated(engine, tenant, make_integration, scheduler):
    make_integration(tenant.id)

    assert scheduler.schedule_recurring_syncs() == 1
    assert scheduler.schedule_recurring_syncs() == 0
    assert len(_jobs(engine)) == 1


def test_push_job_created_when_never_pushed(engine, tenant, make_integration, scheduler):
    integration = make_integration(tenant.id)

    assert scheduler.schedule_push_syncs() == 1

    (job,) = _jobs(engine)
    assert job.tenant_integration_id == integration.id
    assert job.job_type == "push_invoices"


def test_push_respects_frequency(engine, tenant, make_integration, scheduler):
    hourly_due = make_integration(
        tenant.id,
        config={"pushSyncFrequency": "hourly",
                "lastPushSyncAt": (FIXED_NOW - timedelta(hours=2)).isoformat() + "Z"},
    )
    make_integration(
        tenant.id,
        config={"push_sync_frequency": "weekly",
                "last_push_sync_at": (FIXED_NOW - timedelta(days=2)).isoformat()},
    )
    make_integration(tenant.id, last_sync_at=FIXED_NOW - timedelta(hours=3))

    assert scheduler.schedule_push_syncs() == 1
    assert [j.tenant_integration_id for j in _jobs(engine)] == [hourly_due.id]


def test_push_skipped_when_disabled_or_unsupported(engine, tenant, make_integration, scheduler):
    make_integration(tenant.id, config={"pushSyncEnabled": False})
    make_integration(tenant.id, config={"pushSyncEnabled": "false"})
    make_integration(tenant.id, config={"push_sync_enabled": False})
    make_integration(tenant.id, code="PULL_ONLY")
    make_integration(tenant.id, code="NOT_REGISTERED")
    make_integration(tenant.id, status="error")

    assert scheduler.schedule_push_syncs() == 0
    assert _jobs(engine) == []


def test_push_not_duplicated_while_in_flight(engine, tenant, make_integration, scheduler):
    make_integration(tenant.id, code=MOCK_BANK_CODE, provider_type="bank")

    assert scheduler.schedule_push_syncs() == 1
    assert scheduler.schedule_push_syncs() == 0
    assert [j.job_type for j in _jobs(engine)] == ["push_bank_transactions"]


def test_one_tenant_failure_does_not_stop_sweep(engine, make_integration, scheduler, monkeypatch):
    from app.models import Tenant

    with Session(engine) as session:
        broken = Tenant(name="Broken", slug="broken")
        healthy = Tenant(name="Healthy", slug="healthy")
        session.add(broken)
        session.add(healthy)
        session.commit()
        session.refresh(broken)
        session.refresh(healthy)

    make_integration(broken.id)
    good = make_integration(healthy.id)

    def flaky_create(session, *, integration, job_type, now, max_retries=None):
        if integration.tenant_id == broken.id:
            raise RuntimeError("tenant database unavailable")
        return create_sync_job_if_idle(
            session, integration=integration, job_type=job_type, now=now, max_retries=max_retries
        )

    monkeypatch.setattr(integration_sync_scheduler, "create_sync_job_if_idle", flaky_create)

    assert scheduler.schedule_recurring_syncs() == 1
    assert [j.tenant_integration_id for j in _jobs(engine)] == [good.id]


def test_push_interval_accepts_legacy_key():
    assert push_interval({"push_sync_frequency": "weekly"}) == timedelta(weeks=1)
    assert push_interval({"pushSyncFrequency": "hourly", "push_sync_frequency": "weekly"}) == timedelta(hours=1)


def test_last_push_read_from_either_key(engine, tenant, make_integration, scheduler):
    make_integration(
        tenant.id,
        config={"pushSyncFrequency": "daily",
                "lastPushSyncAt": (FIXED_NOW - timedelta(hours=5)).isoformat() + "Z"},
    )
    make_integration(
        tenant.id,
        config={"push_sync_frequency": "daily",
                "last_push_sync_at": (FIXED_NOW - timedelta(hours=5)).isoformat()},
    )
    due = make_integration(
        tenant.id,
        config={"pushSyncEnabled": "true",
                "lastPushSyncAt": (FIXED_NOW - timedelta(days=2)).isoformat() + "Z"},
    )

    assert scheduler.schedule_push_syncs() == 1
    assert [j.tenant_integration_id for j in _jobs(engine)] == [due.id]
