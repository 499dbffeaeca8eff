from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, Index, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from app.core.clock import utc_now


class Tenant(SQLModel, table=True):
    __tablename__ = "tenants"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    name: str
    slug: str = Field(unique=True, index=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    email: str | None = Field(default=None, unique=True, index=True)
    name: str
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)

    memberships: List["UserTenantMembership"] = Relationship(back_populates="user")


class UserTenantMembership(SQLModel, table=True):
    __tablename__ = "user_tenant_memberships"
    __table_args__ = (UniqueConstraint("user_id", "tenant_id"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    user_id: UUID = Field(foreign_key="users.id", index=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    role: str = Field(default="staff", index=True)
    status: str = Field(default="active", index=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)

    user: "User" = Relationship(back_populates="memberships")


class IntegrationProvider(SQLModel, table=True):
    __tablename__ = "integration_providers"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    code: str = Field(unique=True, index=True)
    type: str = Field(index=True)  # accounting | bank
    name: str
    is_active: bool = Field(default=True)


class TenantIntegration(SQLModel, table=True):
    __tablename__ = "tenant_integrations"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    provider_id: UUID = Field(foreign_key="integration_providers.id", index=True)
    client_company_id: UUID | None = Field(
        default=None, foreign_key="client_companies.id", index=True
    )
    display_name: str | None = None
    # Connector credentials plus sync preferences (pushSyncEnabled, ...)
    config: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    status: str = Field(default="connected", index=True)  # connected|disconnected|error
    last_sync_at: datetime | None = Field(default=None, sa_type=DateTime)
    last_sync_status: str | None = None  # success|error|in_progress
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)

    provider: "IntegrationProvider" = Relationship()


class IntegrationSyncJob(SQLModel, table=True):
    __tablename__ = "integration_sync_jobs"
    __table_args__ = (
        Index("ix_integration_sync_jobs_integration_type_status",
              "tenant_integration_id", "job_type", "status"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    tenant_integration_id: UUID = Field(foreign_key="tenant_integrations.id", index=True)
    client_company_id: UUID | None = Field(default=None, index=True)

    job_type: str = Field(index=True)
    status: str = Field(default="pending", index=True)
    retry_count: int = Field(default=0)
    max_retries: int = Field(default=3)
    scheduled_for: datetime | None = Field(default=None, index=True, sa_type=DateTime)
    error_message: str | None = None
    started_at: datetime | None = Field(default=None, sa_type=DateTime)
    finished_at: datetime | None = Field(default=None, sa_type=DateTime)
    result_json: dict | None = Field(default=None, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utc_now, index=True, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)

    tenant_integration: "TenantIntegration" = Relationship()


class IntegrationSyncLog(SQLModel, table=True):
    __tablename__ = "integration_sync_logs"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    tenant_integration_id: UUID = Field(foreign_key="tenant_integrations.id", index=True)
    level: str = Field(index=True)  # info|warning|error
    message: str
    context: dict | None = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now, index=True, sa_type=DateTime)


class ClientCompany(SQLModel, table=True):
    __tablename__ = "client_companies"
    __table_args__ = (UniqueConstraint("tenant_id", "tax_number"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    name: str = Field(index=True)
    legal_type: str = Field(default="limited")
    tax_number: str = Field(index=True)
    external_id: str | None = Field(default=None, index=True)
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=utc_now, index=True, sa_type=DateTime)


class ClientCompanyBankAccount(SQLModel, table=True):
    __tablename__ = "client_company_bank_accounts"
    __table_args__ = (UniqueConstraint("tenant_id", "iban"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    client_company_id: UUID = Field(foreign_key="client_companies.id", index=True)
    bank_name: str
    iban: str = Field(index=True)
    currency: str = Field(default="TRY")
    is_primary: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)


class LedgerAccount(SQLModel, table=True):
    __tablename__ = "ledger_accounts"
    __table_args__ = (UniqueConstraint("tenant_id", "code"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    code: str = Field(index=True)
    name: str
    type: str = Field(default="asset")
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)


class Invoice(SQLModel, table=True):
    __tablename__ = "invoices"
    __table_args__ = (
        Index("ix_invoices_tenant_external_company",
              "tenant_id", "external_id", "client_company_id"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    client_company_id: UUID = Field(foreign_key="client_companies.id", index=True)
    external_id: str | None = Field(default=None, index=True)
    type: str = Field(default="sale")  # sale|purchase
    issue_date: datetime = Field(index=True, sa_type=DateTime)
    due_date: datetime | None = Field(default=None, sa_type=DateTime)
    total_amount: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=2)
    tax_amount: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=2)
    net_amount: Decimal | None = Field(default=None, max_digits=18, decimal_places=2)
    currency: str = Field(default="TRY")
    counterparty_name: str | None = None
    counterparty_tax_number: str | None = None
    status: str = Field(default="draft", index=True)  # draft|finalized|cancelled
    source: str = Field(default="manual")
    pushed_at: datetime | None = Field(default=None, index=True, sa_type=DateTime)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)

    client_company: Optional["ClientCompany"] = Relationship()
    lines: List["InvoiceLine"] = Relationship(
        back_populates="invoice",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "passive_deletes": True,
            "order_by": "InvoiceLine.line_number",
        },
    )


class InvoiceLine(SQLModel, table=True):
    __tablename__ = "invoice_lines"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    invoice_id: UUID = Field(foreign_key="invoices.id", index=True, ondelete="CASCADE")
    line_number: int
    description: str
    quantity: Decimal = Field(default=Decimal("1"), max_digits=18, decimal_places=4)
    unit_price: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=4)
    line_total: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=2)
    vat_rate: Decimal = Field(default=Decimal("0"), max_digits=6, decimal_places=4)
    vat_amount: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=2)

    invoice: "Invoice" = Relationship(back_populates="lines")


class Transaction(SQLModel, table=True):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_tenant_external_company",
              "tenant_id", "external_id", "client_company_id"),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    client_company_id: UUID = Field(foreign_key="client_companies.id", index=True)
    external_id: str | None = Field(default=None, index=True)
    date: datetime = Field(index=True, sa_type=DateTime)
    description: str | None = None
    reference_no: str | None = None
    currency: str = Field(default="TRY")
    source: str = Field(default="manual")
    pushed_at: datetime | None = Field(default=None, index=True, sa_type=DateTime)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime)

    lines: List["TransactionLine"] = Relationship(
        back_populates="transaction",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "passive_deletes": True,
        },
    )


class TransactionLine(SQLModel, table=True):
    __tablename__ = "transaction_lines"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    transaction_id: UUID = Field(foreign_key="transactions.id", index=True, ondelete="CASCADE")
    ledger_account_id: UUID = Field(foreign_key="ledger_accounts.id", index=True)
    debit_amount: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=2)
    credit_amount: Decimal = Field(default=Decimal("0"), max_digits=18, decimal_places=2)
    description: str | None = None

    transaction: "Transaction" = Relationship(back_populates="lines")


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    user_id: UUID | None = Field(default=None, foreign_key="users.id", index=True)
    type: str = Field(index=True)
    title: str
    message: str
    meta: dict | None = Field(default=None, sa_column=Column(JSON))
    is_read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now, index=True, sa_type=DateTime)


class EmailLog(SQLModel, table=True):
    __tablename__ = "email_logs"

    id: UUID = Field(default_factory=uuid4, primary_key=True, index=True)
    tenant_id: UUID = Field(foreign_key="tenants.id", index=True)
    to: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    template_id: str | None = Field(default=None, index=True)
    subject: str
    status: str = Field(default="pending", index=True)  # pending|sent|failed
    context: dict | None = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now, index=True, sa_type=DateTime)
