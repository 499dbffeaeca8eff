"""Builds the integration sync service graph once per process."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from sqlmodel import Session

from app.core.clock import Clock, utc_now
from app.core.config import Settings, settings
from app.providers.connectors.mock_provider import (
    MOCK_ACCOUNTING_CODE,
    MOCK_BANK_CODE,
    MockAccountingConnector,
    MockBankConnector,
)
from app.providers.connectors.registry import ConnectorRegistry
from app.providers.connectors.rest_provider import (
    REST_ACCOUNTING_CODE,
    REST_BANK_CODE,
    RestAccountingConnector,
    RestBankConnector,
)
from app.services.email_service import EmailService
from app.services.importers.bank_transaction_importer import BankTransactionImporter
from app.services.importers.invoice_importer import InvoiceImporter
from app.services.integration_sync_processor import IntegrationSyncProcessor
from app.services.integration_sync_scheduler import IntegrationSyncScheduler
from app.services.notification_service import NotificationService
from app.services.tenant_integration_service import TenantIntegrationService


@dataclass
class SyncServices:
    session_factory: Callable[[], Session]
    registry: ConnectorRegistry
    processor: IntegrationSyncProcessor
    scheduler: IntegrationSyncScheduler
    integrations: TenantIntegrationService


def build_default_registry() -> ConnectorRegistry:
    registry = ConnectorRegistry()
    registry.register(MOCK_ACCOUNTING_CODE, MockAccountingConnector())
    registry.register(MOCK_BANK_CODE, MockBankConnector())
    registry.register(REST_ACCOUNTING_CODE, RestAccountingConnector())
    registry.register(REST_BANK_CODE, RestBankConnector())
    return registry


def build_sync_services(
    *,
    session_factory: Callable[[], Session] | None = None,
    registry: ConnectorRegistry | None = None,
    clock: Clock = utc_now,
    config: Settings = settings,
) -> SyncServices:
    if session_factory is None:
        from app.db.session import session_factory as default_session_factory

        session_factory = default_session_factory
    registry = registry or build_default_registry()

    processor = IntegrationSyncProcessor(
        session_factory=session_factory,
        registry=registry,
        notification_service=NotificationService(clock=clock),
        email_service=EmailService(clock=clock),
        invoice_importer=InvoiceImporter(clock=clock),
        bank_transaction_importer=BankTransactionImporter(clock=clock),
        clock=clock,
        config=config,
    )
    scheduler = IntegrationSyncScheduler(
        session_factory=session_factory, registry=registry, clock=clock, config=config
    )
    return SyncServices(
        session_factory=session_factory,
        registry=registry,
        processor=processor,
        scheduler=scheduler,
        integrations=TenantIntegrationService(registry=registry, clock=clock),
    )
