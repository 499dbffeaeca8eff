"""Provider-agnostic records exchanged with connectors.

Connectors translate their vendor payloads into these models on pull and
receive them on push; nothing vendor-specific crosses this boundary.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.core.clock import as_naive_utc
from app.core.enums import InvoiceType


class _NormalizedModel(BaseModel):
    model_config = {"str_strip_whitespace": True}

    @field_validator("*", mode="after")
    @classmethod
    def _datetimes_as_naive_utc(cls, v: Any):
        if isinstance(v, datetime):
            return as_naive_utc(v)
        return v


class NormalizedInvoiceLine(_NormalizedModel):
    line_number: int
    description: str
    quantity: Decimal = Decimal("1")
    unit_price: Decimal = Decimal("0")
    line_total: Decimal = Decimal("0")
    vat_rate: Decimal = Decimal("0")
    vat_amount: Decimal = Decimal("0")


class NormalizedInvoice(_NormalizedModel):
    external_id: str = Field(min_length=1)

    # Hints used to resolve the owning client company.
    client_company_name: str | None = None
    client_company_tax_number: str | None = None
    client_company_external_id: str | None = None

    issue_date: datetime
    due_date: datetime | None = None
    total_amount: Decimal
    tax_amount: Decimal = Decimal("0")
    net_amount: Decimal | None = None
    currency: str = "TRY"

    counterparty_name: str | None = None
    counterparty_tax_number: str | None = None

    status: str | None = None
    type: InvoiceType = InvoiceType.SALE
    lines: list[NormalizedInvoiceLine] = Field(default_factory=list)


class NormalizedBankTransaction(_NormalizedModel):
    external_id: str = Field(min_length=1)
    account_identifier: str = Field(min_length=1)  # IBAN or bank account number
    booking_date: datetime
    value_date: datetime | None = None
    description: str = ""
    amount: Decimal  # signed: negative is money leaving the account
    currency: str = "TRY"
    balance_after: Decimal | None = None


class PushInvoiceInput(NormalizedInvoice):
    invoice_id: UUID


class PushTransactionInput(NormalizedBankTransaction):
    transaction_id: UUID


class PushResult(BaseModel):
    """Outcome of pushing one record; results mirror the input order."""

    success: bool
    external_id: str | None = None
    error: str | None = None


class ConnectionTestResult(BaseModel):
    success: bool
    message: str | None = None


class FetchOptions(BaseModel):
    limit: int | None = None
    config: dict[str, Any] = Field(default_factory=dict)
