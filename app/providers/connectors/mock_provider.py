import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.providers.connectors.base import (
    AccountingConnector,
    BankConnector,
    InvoicePushCapable,
    TransactionPushCapable,
)
from app.providers.connectors.normalized import (
    ConnectionTestResult,
    FetchOptions,
    NormalizedBankTransaction,
    NormalizedInvoice,
    NormalizedInvoiceLine,
    PushInvoiceInput,
    PushResult,
    PushTransactionInput,
)

logger = logging.getLogger(__name__)

MOCK_ACCOUNTING_CODE = "MOCK_ACCOUNTING"
MOCK_BANK_CODE = "MOCK_BANK"

MOCK_IBAN = "TR330006100519786457841326"


def _has_api_key(config: Dict[str, Any]) -> bool:
    api_key = config.get("api_key")
    return isinstance(api_key, str) and bool(api_key.strip())


def _invoice(
    external_id: str,
    company: str,
    tax_number: str,
    issued: str,
    due: str,
    net: str,
    status: str,
    invoice_type: str,
    description: str,
    quantity: str,
) -> NormalizedInvoice:
    net_amount = Decimal(net)
    vat = (net_amount * Decimal("0.18")).quantize(Decimal("0.01"))
    qty = Decimal(quantity)
    return NormalizedInvoice(
        external_id=external_id,
        client_company_name=company,
        client_company_tax_number=tax_number,
        issue_date=datetime.fromisoformat(issued),
        due_date=datetime.fromisoformat(due),
        total_amount=net_amount + vat,
        tax_amount=vat,
        net_amount=net_amount,
        currency="TRY",
        counterparty_name=company,
        counterparty_tax_number=tax_number,
        status=status,
        type=invoice_type,
        lines=[
            NormalizedInvoiceLine(
                line_number=1,
                description=description,
                quantity=qty,
                unit_price=net_amount / qty,
                line_total=net_amount,
                vat_rate=Decimal("0.18"),
                vat_amount=vat,
            )
        ],
    )


class MockAccountingConnector(AccountingConnector, InvoicePushCapable):
    """Deterministic accounting provider for demos and tests."""

    def __init__(self):
        self.pushed: List[PushInvoiceInput] = []

    async def test_connection(self, config: Dict[str, Any]) -> ConnectionTestResult:
        if _has_api_key(config):
            return ConnectionTestResult(success=True, message="Connection successful.")
        return ConnectionTestResult(success=False, message="API key is required.")

    async def fetch_invoices(
        self,
        since: datetime,
        until: datetime,
        options: Optional[FetchOptions] = None,
    ) -> List[NormalizedInvoice]:
        invoices = [
            _invoice("INV-2024-001", "Example Customer Inc.", "1234567890",
                     "2024-01-15", "2024-02-15", "10000.00", "finalized", "sale",
                     "Service fee", "1"),
            _invoice("INV-2024-002", "Test Company Ltd.", "9876543210",
                     "2024-01-20", "2024-02-20", "5000.00", "finalized", "sale",
                     "Consulting", "1"),
            _invoice("INV-2024-003", "Demo Firm", "5555555555",
                     "2024-01-25", "2024-02-25", "20000.00", "draft", "purchase",
                     "Goods purchase", "10"),
            _invoice("INV-2024-004", "Example Customer Inc.", "1234567890",
                     "2024-02-01", "2024-03-01", "30000.00", "finalized", "sale",
                     "Product sale", "5"),
            _invoice("INV-2024-005", "Test Company Ltd.", "9876543210",
                     "2024-02-10", "2024-03-10", "10000.00", "finalized", "sale",
                     "Software license", "1"),
        ]
        limit = options.limit if options else None
        return invoices[:limit] if limit else invoices

    async def push_invoices(
        self, invoices: List[PushInvoiceInput], config: Dict[str, Any]
    ) -> List[PushResult]:
        self.pushed.extend(invoices)
        logger.info(f"Mock accounting accepted {len(invoices)} invoice(s)")
        return [
            PushResult(success=True, external_id=f"MOCK-{inv.external_id}")
            for inv in invoices
        ]


class MockBankConnector(BankConnector, TransactionPushCapable):
    """Deterministic bank provider for demos and tests."""

    def __init__(self, iban: str = MOCK_IBAN):
        self.iban = iban
        self.pushed: List[PushTransactionInput] = []

    async def test_connection(self, config: Dict[str, Any]) -> ConnectionTestResult:
        if _has_api_key(config):
            return ConnectionTestResult(success=True, message="Connection successful.")
        return ConnectionTestResult(success=False, message="API key is required.")

    async def fetch_transactions(
        self,
        since: datetime,
        until: datetime,
        options: Optional[FetchOptions] = None,
    ) -> List[NormalizedBankTransaction]:
        rows = [
            ("TX-2024-001", "2024-01-15", "Customer payment INV-2024-001", "11800.00", "61800.00"),
            ("TX-2024-002", "2024-01-18", "Office rent", "-7500.00", "54300.00"),
            ("TX-2024-003", "2024-01-22", "Customer payment INV-2024-002", "5900.00", "60200.00"),
            ("TX-2024-004", "2024-01-31", "Payroll", "-25000.00", "35200.00"),
        ]
        transactions = [
            NormalizedBankTransaction(
                external_id=external_id,
                account_identifier=self.iban,
                booking_date=datetime.fromisoformat(booked),
                value_date=datetime.fromisoformat(booked),
                description=description,
                amount=Decimal(amount),
                currency="TRY",
                balance_after=Decimal(balance),
            )
            for external_id, booked, description, amount, balance in rows
        ]
        limit = options.limit if options else None
        return transactions[:limit] if limit else transactions

    async def push_transactions(
        self, transactions: List[PushTransactionInput], config: Dict[str, Any]
    ) -> List[PushResult]:
        self.pushed.extend(transactions)
        return [
            PushResult(success=True, external_id=f"MOCK-{txn.external_id}")
            for txn in transactions
        ]
