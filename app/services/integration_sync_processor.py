"""Runs one integration sync job end to end.

A job is claimed, its connector resolved, the pull or push executed, and the
job left in a terminal or retry state before control returns to the caller.
"""
from __future__ import annotations

import asyncio
import logging
import traceback
from datetime import datetime, timedelta
from typing import Any, Callable
from uuid import UUID

from sqlalchemy import or_, update
from sqlmodel import Session, select

from app.core.clock import Clock, utc_now
from app.core.config import Settings, settings
from app.core.enums import (
    InvoiceStatus,
    InvoiceType,
    SyncJobStatus,
    SyncJobType,
    SyncLogLevel,
    SyncStatus,
)
from app.models import (
    ClientCompany,
    IntegrationSyncJob,
    Invoice,
    InvoiceLine,
    TenantIntegration,
    Transaction,
    TransactionLine,
)
from app.providers.connectors.base import (
    AccountingConnector,
    BankConnector,
    IntegrationConnector,
    supports_push,
)
from app.providers.connectors.normalized import (
    FetchOptions,
    NormalizedInvoiceLine,
    PushInvoiceInput,
    PushResult,
    PushTransactionInput,
)
from app.providers.connectors.registry import ConnectorRegistry
from app.services.circuit_breaker import CircuitBreaker
from app.services.email_service import EmailService
from app.services.importers.bank_transaction_importer import BankTransactionImporter
from app.services.importers.invoice_importer import InvoiceImporter
from app.services.integration_config import with_last_push_sync_at
from app.services.notification_service import NotificationService
from app.services.sync_errors import (
    ConnectorTimeoutError,
    IntegrationSyncError,
    SyncJobNotFoundError,
    UnsupportedCapabilityError,
    is_retryable_error,
)
from app.services.sync_job_store import (
    PROCESSABLE_JOB_STATUSES,
    claim_job,
    get_job,
    list_due_retry_job_ids,
    release_due_retry_job,
    transition_job,
)
from app.services.sync_log import truncate_errors, write_sync_log

logger = logging.getLogger(__name__)

FAILURE_NOTIFICATION_TYPE = "integration_sync"
FAILURE_EMAIL_TEMPLATE = "integration_sync_failure"
MAX_ERROR_MESSAGE_LENGTH = 500


def _truncate(text: str, limit: int = MAX_ERROR_MESSAGE_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


def integration_name(integration: TenantIntegration) -> str:
    if integration.display_name:
        return integration.display_name
    if integration.provider is not None:
        return integration.provider.name
    return str(integration.id)


class IntegrationSyncProcessor:
    def __init__(
        self,
        *,
        session_factory: Callable[[], Session],
        registry: ConnectorRegistry,
        notification_service: NotificationService,
        email_service: EmailService,
        invoice_importer: InvoiceImporter | None = None,
        bank_transaction_importer: BankTransactionImporter | None = None,
        clock: Clock = utc_now,
        config: Settings = settings,
    ):
        self._session_factory = session_factory
        self._registry = registry
        self._notifications = notification_service
        self._emails = email_service
        self._invoice_importer = invoice_importer or InvoiceImporter(clock=clock)
        self._bank_importer = bank_transaction_importer or BankTransactionImporter(clock=clock)
        self._clock = clock
        self._config = config
        self._breakers: dict[str, CircuitBreaker] = {}

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    async def process_sync_job(self, job_id: UUID) -> IntegrationSyncJob | None:
        """Process one job.

        Returns the finished job, or None when the job was not in a
        processable state (or another worker claimed it first). Raises
        SyncJobNotFoundError for unknown ids, and re-raises the sync error
        after the job has been moved to ``retry`` or ``failed``.
        """
        with self._session_factory() as session:
            job = get_job(session, job_id)
            if job is None:
                raise SyncJobNotFoundError(job_id)

            if job.status not in PROCESSABLE_JOB_STATUSES:
                logger.info(f"Sync job {job_id} is {job.status}, nothing to do")
                return None

            now = self._clock()
            if job.status == SyncJobStatus.RETRY.value:
                if not release_due_retry_job(session, job_id=job_id, now=now, only_if_due=False):
                    logger.info(f"Sync job {job_id} left retry before it could be released")
                    return None

            if not claim_job(session, job_id=job_id, now=now):
                logger.info(f"Sync job {job_id} already claimed by another worker")
                return None

            session.refresh(job)
            job_type = SyncJobType(job.job_type)
            tenant_id = job.tenant_id
            integration_id = job.tenant_integration_id

            try:
                integration = session.get(TenantIntegration, integration_id)
                if integration is None:
                    raise IntegrationSyncError(
                        f"Tenant integration {integration_id} not found", retryable=False
                    )

                integration.last_sync_status = SyncStatus.IN_PROGRESS.value
                integration.updated_at = now
                session.add(integration)
                session.commit()

                write_sync_log(
                    session=session,
                    tenant_id=tenant_id,
                    tenant_integration_id=integration_id,
                    level=SyncLogLevel.INFO,
                    message=f"{job_type.label} started",
                    context={"job_id": str(job_id), "job_type": job_type.value},
                )

                result = await self._run(session, job, integration, job_type, now)
                self._complete(session, job, integration, job_type, result, now)
            except Exception as e:
                session.rollback()
                self._handle_failure(session, job_id, e)
                raise

            session.refresh(job)
            return job

    async def process_retry_jobs(self) -> int:
        """Release due retry jobs back to pending and process them."""
        now = self._clock()
        with self._session_factory() as session:
            job_ids = list_due_retry_job_ids(
                session, now=now, limit=self._config.integration_retry_batch_size
            )
            released = [
                job_id
                for job_id in job_ids
                if release_due_retry_job(session, job_id=job_id, now=now)
            ]

        processed = 0
        for job_id in released:
            try:
                if await self.process_sync_job(job_id) is not None:
                    processed += 1
            except Exception as e:
                logger.error(f"Retry of sync job {job_id} failed: {e}")
        return processed

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #

    async def _run(
        self,
        session: Session,
        job: IntegrationSyncJob,
        integration: TenantIntegration,
        job_type: SyncJobType,
        now: datetime,
    ) -> dict[str, Any]:
        provider = integration.provider
        connector = self._registry.get(provider.code, provider.type)

        since = integration.last_sync_at or (
            now - timedelta(days=self._config.integration_default_lookback_days)
        )
        until = now
        config = dict(integration.config or {})

        if job_type is SyncJobType.PULL_INVOICES:
            return await self._pull_invoices(session, job, provider.code, connector, since, until, config)
        if job_type is SyncJobType.PULL_BANK_TRANSACTIONS:
            return await self._pull_transactions(session, job, provider.code, connector, since, until, config)

        if not supports_push(connector, job_type):
            noun = "invoices" if job_type is SyncJobType.PUSH_INVOICES else "bank transactions"
            raise UnsupportedCapabilityError(f"Connector does not support push {noun}")

        if job_type is SyncJobType.PUSH_INVOICES:
            return await self._push_invoices(session, job, provider.code, connector, since, config)
        return await self._push_transactions(session, job, provider.code, connector, since, config)

    async def _call_connector(self, provider_code: str, func, *args):
        breaker = self._breakers.get(provider_code)
        if breaker is None:
            breaker = CircuitBreaker(
                name=provider_code,
                fail_threshold=self._config.integration_circuit_fail_threshold,
                recovery_timeout=self._config.integration_circuit_recovery_seconds,
            )
            self._breakers[provider_code] = breaker

        timeout = self._config.integration_connector_timeout_seconds

        # The timeout runs inside the breaker so a hanging provider counts as a failure.
        async def _call_with_timeout():
            try:
                return await asyncio.wait_for(func(*args), timeout=timeout)
            except asyncio.TimeoutError:
                raise ConnectorTimeoutError(
                    f"Connector {provider_code} timed out after {timeout}s"
                ) from None

        return await breaker.call(_call_with_timeout)

    async def _pull_invoices(
        self,
        session: Session,
        job: IntegrationSyncJob,
        provider_code: str,
        connector: IntegrationConnector,
        since: datetime,
        until: datetime,
        config: dict[str, Any],
    ) -> dict[str, Any]:
        if not isinstance(connector, AccountingConnector):
            raise UnsupportedCapabilityError("Connector does not support invoice pull")

        options = FetchOptions(limit=self._config.integration_fetch_page_size, config=config)
        invoices = await self._call_connector(
            provider_code, connector.fetch_invoices, since, until, options
        )
        summary = self._invoice_importer.import_invoices(
            session=session,
            tenant_id=job.tenant_id,
            invoices=invoices,
            tenant_integration_id=job.tenant_integration_id,
        )
        return self._log_pull(session, job, len(invoices), summary)

    async def _pull_transactions(
        self,
        session: Session,
        job: IntegrationSyncJob,
        provider_code: str,
        connector: IntegrationConnector,
        since: datetime,
        until: datetime,
        config: dict[str, Any],
    ) -> dict[str, Any]:
        if not isinstance(connector, BankConnector):
            raise UnsupportedCapabilityError("Connector does not support bank transaction pull")

        options = FetchOptions(limit=self._config.integration_fetch_page_size, config=config)
        transactions = await self._call_connector(
            provider_code, connector.fetch_transactions, since, until, options
        )
        summary = self._bank_importer.import_transactions(
            session=session,
            tenant_id=job.tenant_id,
            transactions=transactions,
            tenant_integration_id=job.tenant_integration_id,
        )
        return self._log_pull(session, job, len(transactions), summary)

    def _log_pull(self, session: Session, job: IntegrationSyncJob, fetched: int, summary) -> dict[str, Any]:
        job_type = SyncJobType(job.job_type)
        result = {"fetched": fetched, **summary.to_dict(error_limit=10)}
        result["errors"] = truncate_errors(result["errors"])

        write_sync_log(
            session=session,
            tenant_id=job.tenant_id,
            tenant_integration_id=job.tenant_integration_id,
            level=SyncLogLevel.WARNING if summary.errors else SyncLogLevel.INFO,
            message=(
                f"{job_type.label} finished: {summary.created} created, "
                f"{summary.updated} updated, {summary.unchanged} unchanged, "
                f"{summary.skipped} skipped"
            ),
            context={"job_id": str(job.id), **result},
        )
        return result

    async def _push_invoices(
        self,
        session: Session,
        job: IntegrationSyncJob,
        provider_code: str,
        connector,
        since: datetime,
        config: dict[str, Any],
    ) -> dict[str, Any]:
        candidates = self._invoices_to_push(session, job, since)
        if not candidates:
            return self._log_nothing_to_push(session, job, "No invoices to push")

        results = await self._call_connector(
            provider_code, connector.push_invoices, candidates, config
        )
        pushed_ids = self._successful_ids(
            [c.invoice_id for c in candidates], results
        )
        if pushed_ids:
            session.exec(
                update(Invoice)
                .where(Invoice.tenant_id == job.tenant_id, Invoice.id.in_(pushed_ids))
                .values(pushed_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            session.commit()

        return self._log_push(
            session, job, [c.external_id for c in candidates], results
        )

    async def _push_transactions(
        self,
        session: Session,
        job: IntegrationSyncJob,
        provider_code: str,
        connector,
        since: datetime,
        config: dict[str, Any],
    ) -> dict[str, Any]:
        candidates = self._transactions_to_push(session, job, since)
        if not candidates:
            return self._log_nothing_to_push(session, job, "No bank transactions to push")

        results = await self._call_connector(
            provider_code, connector.push_transactions, candidates, config
        )
        pushed_ids = self._successful_ids(
            [c.transaction_id for c in candidates], results
        )
        if pushed_ids:
            session.exec(
                update(Transaction)
                .where(Transaction.tenant_id == job.tenant_id, Transaction.id.in_(pushed_ids))
                .values(pushed_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            session.commit()

        return self._log_push(
            session, job, [c.external_id for c in candidates], results
        )

    @staticmethod
    def _successful_ids(ids: list[UUID], results: list[PushResult]) -> list[UUID]:
        # A missing result counts as a failure.
        return [
            record_id
            for index, record_id in enumerate(ids)
            if index < len(results) and results[index].success
        ]

    def _log_nothing_to_push(
        self, session: Session, job: IntegrationSyncJob, message: str
    ) -> dict[str, Any]:
        write_sync_log(
            session=session,
            tenant_id=job.tenant_id,
            tenant_integration_id=job.tenant_integration_id,
            level=SyncLogLevel.INFO,
            message=message,
            context={"job_id": str(job.id)},
        )
        return {"selected": 0, "pushed": 0, "failed": 0, "errors": []}

    def _log_push(
        self,
        session: Session,
        job: IntegrationSyncJob,
        external_ids: list[str],
        results: list[PushResult],
    ) -> dict[str, Any]:
        job_type = SyncJobType(job.job_type)
        errors = []
        pushed = 0
        for index, external_id in enumerate(external_ids):
            outcome = results[index] if index < len(results) else None
            if outcome is not None and outcome.success:
                pushed += 1
            else:
                errors.append(
                    {
                        "external_id": external_id,
                        "error": (outcome.error if outcome else None) or "No result returned",
                    }
                )

        result = {
            "selected": len(external_ids),
            "pushed": pushed,
            "failed": len(errors),
            "errors": truncate_errors(errors),
        }
        write_sync_log(
            session=session,
            tenant_id=job.tenant_id,
            tenant_integration_id=job.tenant_integration_id,
            level=SyncLogLevel.WARNING if errors else SyncLogLevel.INFO,
            message=f"{job_type.label} finished: {pushed} pushed, {len(errors)} failed",
            context={"job_id": str(job.id), **result},
        )
        return result

    # ------------------------------------------------------------------ #
    # Push selection
    # ------------------------------------------------------------------ #

    def _invoices_to_push(
        self, session: Session, job: IntegrationSyncJob, since: datetime
    ) -> list[PushInvoiceInput]:
        query = (
            select(Invoice)
            .where(
                Invoice.tenant_id == job.tenant_id,
                Invoice.status == InvoiceStatus.FINALIZED.value,
                Invoice.issue_date >= since,
                or_(Invoice.pushed_at.is_(None), Invoice.pushed_at < since),
            )
            .order_by(Invoice.issue_date.asc())
            .limit(self._config.integration_push_batch_size)
        )
        if job.client_company_id is not None:
            query = query.where(Invoice.client_company_id == job.client_company_id)

        candidates = []
        for invoice in session.exec(query).all():
            company = session.get(ClientCompany, invoice.client_company_id)
            lines = session.exec(
                select(InvoiceLine)
                .where(InvoiceLine.invoice_id == invoice.id)
                .order_by(InvoiceLine.line_number.asc())
            ).all()
            candidates.append(
                PushInvoiceInput(
                    invoice_id=invoice.id,
                    external_id=invoice.external_id or str(invoice.id),
                    client_company_name=(company.name if company else None)
                    or invoice.counterparty_name,
                    client_company_tax_number=(company.tax_number if company else None)
                    or invoice.counterparty_tax_number,
                    issue_date=invoice.issue_date,
                    due_date=invoice.due_date,
                    total_amount=invoice.total_amount,
                    tax_amount=invoice.tax_amount,
                    net_amount=invoice.net_amount,
                    currency=invoice.currency,
                    counterparty_name=invoice.counterparty_name,
                    counterparty_tax_number=invoice.counterparty_tax_number,
                    status=invoice.status,
                    type=InvoiceType(invoice.type),
                    lines=[
                        NormalizedInvoiceLine(
                            line_number=line.line_number,
                            description=line.description,
                            quantity=line.quantity,
                            unit_price=line.unit_price,
                            line_total=line.line_total,
                            vat_rate=line.vat_rate,
                            vat_amount=line.vat_amount,
                        )
                        for line in lines
                    ],
                )
            )
        return candidates

    def _transactions_to_push(
        self, session: Session, job: IntegrationSyncJob, since: datetime
    ) -> list[PushTransactionInput]:
        query = (
            select(Transaction)
            .where(
                Transaction.tenant_id == job.tenant_id,
                Transaction.date >= since,
                or_(Transaction.pushed_at.is_(None), Transaction.pushed_at < since),
            )
            .order_by(Transaction.date.asc())
            .limit(self._config.integration_push_batch_size)
        )
        if job.client_company_id is not None:
            query = query.where(Transaction.client_company_id == job.client_company_id)

        candidates = []
        for txn in session.exec(query).all():
            lines = session.exec(
                select(TransactionLine).where(TransactionLine.transaction_id == txn.id)
            ).all()
            amount = sum((line.credit_amount - line.debit_amount for line in lines), 0)
            candidates.append(
                PushTransactionInput(
                    transaction_id=txn.id,
                    external_id=txn.external_id or str(txn.id),
                    account_identifier=txn.reference_no or str(txn.id)[:20],
                    booking_date=txn.date,
                    value_date=txn.date,
                    description=txn.description or "",
                    amount=amount,
                    currency=txn.currency,
                )
            )
        return candidates

    # ------------------------------------------------------------------ #
    # Outcome handling
    # ------------------------------------------------------------------ #

    def _complete(
        self,
        session: Session,
        job: IntegrationSyncJob,
        integration: TenantIntegration,
        job_type: SyncJobType,
        result: dict[str, Any],
        now: datetime,
    ) -> None:
        finished_at = self._clock()

        integration = session.get(TenantIntegration, integration.id)
        # The window closed at ``now``; the next sync picks up from there.
        integration.last_sync_at = now
        integration.last_sync_status = SyncStatus.SUCCESS.value
        if job_type.is_push:
            integration.config = with_last_push_sync_at(integration.config, now)
        integration.updated_at = finished_at
        session.add(integration)

        # Integration and job commit together; on error the job is still in_progress.
        transition_job(
            session,
            job_id=job.id,
            from_status=SyncJobStatus.IN_PROGRESS,
            to_status=SyncJobStatus.SUCCESS,
            values={"finished_at": finished_at, "result_json": result, "error_message": None},
            now=finished_at,
        )
        logger.info(f"Sync job {job.id} ({job_type.value}) succeeded")

    def _handle_failure(self, session: Session, job_id: UUID, error: Exception) -> None:
        job = get_job(session, job_id)
        if job is None:
            return

        message = _truncate(_error_message(error))
        retryable = is_retryable_error(error)
        will_retry = retryable and job.retry_count < job.max_retries
        now = self._clock()

        integration = session.get(TenantIntegration, job.tenant_integration_id)
        if integration is not None:
            write_sync_log(
                session=session,
                tenant_id=job.tenant_id,
                tenant_integration_id=job.tenant_integration_id,
                level=SyncLogLevel.ERROR,
                message=f"Sync failed: {message}",
                context={
                    "job_id": str(job.id),
                    "job_type": job.job_type,
                    "error": message,
                    "stack": "".join(
                        traceback.format_exception(type(error), error, error.__traceback__)
                    ),
                    "retry_count": job.retry_count,
                    "retryable": retryable,
                    "will_retry": will_retry,
                },
            )

        if will_retry:
            delay = self._config.integration_retry_base_seconds * (2 ** job.retry_count)
            scheduled_for = now + timedelta(seconds=delay)
            transition_job(
                session,
                job_id=job.id,
                from_status=SyncJobStatus.IN_PROGRESS,
                to_status=SyncJobStatus.RETRY,
                values={
                    "retry_count": job.retry_count + 1,
                    "scheduled_for": scheduled_for,
                    "error_message": message,
                },
                now=now,
            )
            logger.warning(f"Sync job {job.id} scheduled for retry at {scheduled_for.isoformat()}")
            return

        transition_job(
            session,
            job_id=job.id,
            from_status=SyncJobStatus.IN_PROGRESS,
            to_status=SyncJobStatus.FAILED,
            values={"finished_at": now, "error_message": message},
            now=now,
        )
        logger.error(f"Sync job {job.id} failed: {message}")

        if integration is None:
            return

        integration.last_sync_status = SyncStatus.ERROR.value
        integration.updated_at = now
        session.add(integration)
        session.commit()

        self._notify_failure(
            tenant_id=job.tenant_id,
            integration_id=integration.id,
            job_id=job.id,
            job_type=SyncJobType(job.job_type),
            name=integration_name(integration),
            message=message,
        )

    def _notify_failure(
        self,
        *,
        tenant_id: UUID,
        integration_id: UUID,
        job_id: UUID,
        job_type: SyncJobType,
        name: str,
        message: str,
    ) -> None:
        try:
            with self._session_factory() as session:
                self._notifications.create_notification(
                    session=session,
                    tenant_id=tenant_id,
                    user_id=None,
                    type=FAILURE_NOTIFICATION_TYPE,
                    title="Integration sync failed",
                    message=f"{job_type.label} for {name} failed: {message}",
                    meta={
                        "integration_id": str(integration_id),
                        "job_id": str(job_id),
                        "error": message,
                    },
                )
        except Exception:
            logger.exception(f"Failed to create failure notification for sync job {job_id}")

        try:
            with self._session_factory() as session:
                recipients = self._notifications.tenant_owner_emails(
                    session=session, tenant_id=tenant_id
                )
                self._emails.send_notification_email(
                    session=session,
                    tenant_id=tenant_id,
                    recipients=recipients,
                    template_id=FAILURE_EMAIL_TEMPLATE,
                    subject="Integration sync failure",
                    context={
                        "integration_name": name,
                        "job_type": job_type.label,
                        "error_message": message,
                    },
                )
        except Exception:
            logger.exception(f"Failed to queue failure email for sync job {job_id}")
