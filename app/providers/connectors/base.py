from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from app.core.enums import ProviderType, SyncJobType
from app.providers.connectors.normalized import (
    ConnectionTestResult,
    FetchOptions,
    NormalizedBankTransaction,
    NormalizedInvoice,
    PushInvoiceInput,
    PushResult,
    PushTransactionInput,
)


class IntegrationConnector(ABC):
    """Base class for external accounting and banking providers."""

    provider_type: ClassVar[ProviderType]

    @abstractmethod
    async def test_connection(self, config: Dict[str, Any]) -> ConnectionTestResult:
        """Check that the given credentials reach the provider."""
        pass


class AccountingConnector(IntegrationConnector):
    provider_type = ProviderType.ACCOUNTING

    @abstractmethod
    async def fetch_invoices(
        self,
        since: datetime,
        until: datetime,
        options: Optional[FetchOptions] = None,
    ) -> List[NormalizedInvoice]:
        """Fetch invoices changed inside the [since, until] window."""
        pass


class BankConnector(IntegrationConnector):
    provider_type = ProviderType.BANK

    @abstractmethod
    async def fetch_transactions(
        self,
        since: datetime,
        until: datetime,
        options: Optional[FetchOptions] = None,
    ) -> List[NormalizedBankTransaction]:
        """Fetch account transactions booked inside the [since, until] window."""
        pass


class InvoicePushCapable(ABC):
    """Optional capability: accept platform invoices."""

    @abstractmethod
    async def push_invoices(
        self, invoices: List[PushInvoiceInput], config: Dict[str, Any]
    ) -> List[PushResult]:
        """Return one result per invoice, in input order. Failures are per item."""
        pass


class TransactionPushCapable(ABC):
    """Optional capability: accept platform bank transactions."""

    @abstractmethod
    async def push_transactions(
        self, transactions: List[PushTransactionInput], config: Dict[str, Any]
    ) -> List[PushResult]:
        """Return one result per transaction, in input order. Failures are per item."""
        pass


def supports_push(connector: IntegrationConnector, job_type: SyncJobType) -> bool:
    if job_type is SyncJobType.PUSH_INVOICES:
        return isinstance(connector, AccountingConnector) and isinstance(
            connector, InvoicePushCapable
        )
    if job_type is SyncJobType.PUSH_BANK_TRANSACTIONS:
        return isinstance(connector, BankConnector) and isinstance(
            connector, TransactionPushCapable
        )
    return False
