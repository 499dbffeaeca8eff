from datetime import timedelta

import pytest
from sqlmodel import Session

from app.core.enums import SyncJobStatus, SyncJobType
from app.models import IntegrationSyncJob
from app.services import sync_job_store
from app.services.sync_errors import InvalidJobTransition
from app.services.sync_job_store import (
    can_transition,
    claim_job,
    create_sync_job_if_idle,
    get_job,
    list_due_retry_job_ids,
    list_pending_job_ids,
    release_due_retry_job,
    transition_job,
)
from conftest import FIXED_NOW


@pytest.fixture
def integration(tenant, make_integration):
    return make_integration(tenant.id)


def _add_job(engine, integration, *, status="pending", scheduled_for=None, created_at=FIXED_NOW):
    with Session(engine) as session:
        job = IntegrationSyncJob(
            tenant_id=integration.tenant_id,
            tenant_integration_id=integration.id,
            job_type=SyncJobType.PULL_INVOICES.value,
            status=status,
            scheduled_for=scheduled_for,
            created_at=created_at,
            updated_at=created_at,
        )
        session.add(job)
        session.commit()
        session.refresh(job)
        return job


def test_transition_graph():
    assert can_transition("pending", "in_progress")
    assert can_transition("in_progress", "success")
    assert can_transition("in_progress", "failed")
    assert can_transition("in_progress", "retry")
    assert can_transition("retry", "pending")

    assert not can_transition("pending", "success")
    assert not can_transition("retry", "in_progress")
    assert not can_transition("success", "pending")
    assert not can_transition("failed", "retry")


def test_illegal_transition_raises(engine, integration):
    job = _add_job(engine, integration)

    with Session(engine) as session:
        with pytest.raises(InvalidJobTransition):
            transition_job(
                session,
                job_id=job.id,
                from_status=SyncJobStatus.PENDING,
                to_status=SyncJobStatus.SUCCESS,
            )


def test_claim_is_exclusive(engine, integration):
    job = _add_job(engine, integration)

    with Session(engine) as session:
        assert claim_job(session, job_id=job.id, now=FIXED_NOW) is True
        assert claim_job(session, job_id=job.id, now=FIXED_NOW) is False

        claimed = get_job(session, job.id)
        session.refresh(claimed)
        assert claimed.status == "in_progress"
        assert claimed.started_at == FIXED_NOW


def test_release_due_retry_job_respects_schedule(engine, integration):
    later = _add_job(engine, integration, status="retry", scheduled_for=FIXED_NOW + timedelta(minutes=5))
    due = _add_job(engine, integration, status="retry", scheduled_for=FIXED_NOW - timedelta(seconds=1))

    with Session(engine) as session:
        assert list_due_retry_job_ids(session, now=FIXED_NOW, limit=10) == [due.id]
        assert release_due_retry_job(session, job_id=later.id, now=FIXED_NOW) is False
        assert release_due_retry_job(session, job_id=due.id, now=FIXED_NOW) is True
        assert list_pending_job_ids(session, limit=10) == [due.id]


def test_pending_jobs_listed_oldest_first(engine, integration):
    newer = _add_job(engine, integration, created_at=FIXED_NOW)
    older = _add_job(engine, integration, created_at=FIXED_NOW - timedelta(hours=1))

    with Session(engine) as session:
        assert list_pending_job_ids(session, limit=10) == [older.id, newer.id]
        assert list_pending_job_ids(session, limit=1) == [older.id]


def test_create_sync_job_if_idle_deduplicates(engine, integration):
    with Session(engine) as session:
        first = create_sync_job_if_idle(
            session, integration=integration, job_type=SyncJobType.PULL_INVOICES, now=FIXED_NOW
        )
        second = create_sync_job_if_idle(
            session, integration=integration, job_type=SyncJobType.PULL_INVOICES, now=FIXED_NOW
        )
        other_type = create_sync_job_if_idle(
            session, integration=integration, job_type=SyncJobType.PUSH_INVOICES, now=FIXED_NOW
        )

        assert first is not None
        assert first.status == "pending"
        assert first.retry_count == 0
        assert first.max_retries == 3
        assert second is None
        assert other_type is not None
        assert other_type.job_type == "push_invoices"


@pytest.mark.parametrize("active_status", ["pending", "in_progress", "retry"])
def test_active_job_blocks_new_job(engine, integration, active_status):
    _add_job(engine, integration, status=active_status)

    with Session(engine) as session:
        job = create_sync_job_if_idle(
            session, integration=integration, job_type=SyncJobType.PULL_INVOICES, now=FIXED_NOW
        )
    assert job is None


@pytest.mark.parametrize("finished_status", ["success", "failed"])
def test_finished_job_does_not_block(engine, integration, finished_status):
    _add_job(engine, integration, status=finished_status)

    with Session(engine) as session:
        job = create_sync_job_if_idle(
            session, integration=integration, job_type=SyncJobType.PULL_INVOICES, now=FIXED_NOW
        )
    assert job is not None


def test_busy_lock_skips_creation(engine, integration, monkeypatch):
    monkeypatch.setattr(sync_job_store, "acquire_sync_lock", lambda **kwargs: False)

    with Session(engine) as session:
        job = create_sync_job_if_idle(
            session, integration=integration, job_type=SyncJobType.PULL_INVOICES, now=FIXED_NOW
        )
    assert job is None
