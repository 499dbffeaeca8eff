from __future__ import annotations

import logging
from decimal import Decimal
from typing import Iterable
from uuid import UUID, uuid4

from sqlalchemy import delete, func
from sqlmodel import Session, select

from app.core.clock import Clock, utc_now
from app.core.enums import InvoiceStatus, RecordSource
from app.models import ClientCompany, Invoice, InvoiceLine, TenantIntegration
from app.providers.connectors.normalized import NormalizedInvoice, NormalizedInvoiceLine
from app.services.importers.summary import ImportSummary

logger = logging.getLogger(__name__)

UNKNOWN_CLIENT_NAME = "Unknown client"


def _line_key(
    line_number: int,
    description: str,
    quantity: Decimal,
    unit_price: Decimal,
    line_total: Decimal,
    vat_rate: Decimal,
    vat_amount: Decimal,
) -> tuple:
    return (
        line_number,
        description,
        Decimal(quantity),
        Decimal(unit_price),
        Decimal(line_total),
        Decimal(vat_rate),
        Decimal(vat_amount),
    )


def _stored_lines_key(lines: Iterable[InvoiceLine]) -> list[tuple]:
    return sorted(
        _line_key(
            line.line_number,
            line.description,
            line.quantity,
            line.unit_price,
            line.line_total,
            line.vat_rate,
            line.vat_amount,
        )
        for line in lines
    )


def _incoming_lines_key(lines: Iterable[NormalizedInvoiceLine]) -> list[tuple]:
    return sorted(
        _line_key(
            line.line_number,
            line.description,
            line.quantity,
            line.unit_price,
            line.line_total,
            line.vat_rate,
            line.vat_amount,
        )
        for line in lines
    )


class InvoiceImporter:
    """Reconciles normalized invoices into the tenant's ledger.

    Matching key is (tenant, external id, client company). A matched invoice
    has its header overwritten and its lines replaced wholesale, so importing
    a corrected invoice converges instead of accumulating lines. Each record
    commits on its own; a failing record is rolled back and reported.
    """

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock

    def import_invoices(
        self,
        *,
        session: Session,
        tenant_id: UUID,
        invoices: list[NormalizedInvoice],
        tenant_integration_id: UUID | None = None,
    ) -> ImportSummary:
        summary = ImportSummary()
        fallback_company_id = self._integration_company_id(session, tenant_integration_id)

        for normalized in invoices:
            try:
                company_id = self._resolve_client_company(
                    session, tenant_id, normalized, fallback_company_id
                )
                outcome = self._upsert_invoice(session, tenant_id, company_id, normalized)
                session.commit()
            except Exception as e:
                session.rollback()
                logger.warning(f"Invoice {normalized.external_id} skipped: {e}")
                summary.record_error(normalized.external_id, e)
                continue

            if outcome == "created":
                summary.created += 1
            elif outcome == "updated":
                summary.updated += 1
            else:
                summary.unchanged += 1

        return summary

    def _integration_company_id(
        self, session: Session, tenant_integration_id: UUID | None
    ) -> UUID | None:
        if tenant_integration_id is None:
            return None
        integration = session.get(TenantIntegration, tenant_integration_id)
        return integration.client_company_id if integration else None

    def _resolve_client_company(
        self,
        session: Session,
        tenant_id: UUID,
        normalized: NormalizedInvoice,
        fallback_company_id: UUID | None,
    ) -> UUID:
        tax_number = normalized.client_company_tax_number
        if tax_number:
            by_tax = session.exec(
                select(ClientCompany.id).where(
                    ClientCompany.tenant_id == tenant_id,
                    ClientCompany.tax_number == tax_number,
                )
            ).first()
            if by_tax is not None:
                return by_tax

        name = normalized.client_company_name
        if name:
            by_name = session.exec(
                select(ClientCompany.id)
                .where(
                    ClientCompany.tenant_id == tenant_id,
                    func.lower(ClientCompany.name) == name.lower(),
                )
                .order_by(ClientCompany.created_at.asc())
            ).first()
            if by_name is not None:
                return by_name

        if fallback_company_id is not None:
            return fallback_company_id

        if not name:
            # Re-imports of anonymous invoices must land on the same placeholder.
            placeholder = session.exec(
                select(ClientCompany.id).where(
                    ClientCompany.tenant_id == tenant_id,
                    ClientCompany.name == UNKNOWN_CLIENT_NAME,
                )
            ).first()
            if placeholder is not None:
                return placeholder

        company = ClientCompany(
            tenant_id=tenant_id,
            name=name or UNKNOWN_CLIENT_NAME,
            legal_type="limited",
            tax_number=tax_number or f"TEMP-{uuid4().hex[:12]}",
            external_id=normalized.client_company_external_id,
            is_active=True,
            created_at=self._clock(),
        )
        session.add(company)
        session.flush()
        logger.info(f"Created client company {company.id} for tenant {tenant_id}")
        return company.id

    def _header_values(self, normalized: NormalizedInvoice) -> dict:
        return {
            "type": normalized.type.value,
            "issue_date": normalized.issue_date,
            "due_date": normalized.due_date,
            "total_amount": normalized.total_amount,
            "tax_amount": normalized.tax_amount,
            "net_amount": normalized.net_amount,
            "currency": normalized.currency,
            "counterparty_name": normalized.counterparty_name,
            "counterparty_tax_number": normalized.counterparty_tax_number,
            "status": normalized.status or InvoiceStatus.DRAFT.value,
            "source": RecordSource.INTEGRATION.value,
        }

    def _new_lines(
        self, tenant_id: UUID, invoice_id: UUID, normalized: NormalizedInvoice
    ) -> list[InvoiceLine]:
        return [
            InvoiceLine(
                tenant_id=tenant_id,
                invoice_id=invoice_id,
                line_number=line.line_number,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_total=line.line_total,
                vat_rate=line.vat_rate,
                vat_amount=line.vat_amount,
            )
            for line in normalized.lines
        ]

    def _upsert_invoice(
        self,
        session: Session,
        tenant_id: UUID,
        company_id: UUID,
        normalized: NormalizedInvoice,
    ) -> str:
        existing = session.exec(
            select(Invoice).where(
                Invoice.tenant_id == tenant_id,
                Invoice.external_id == normalized.external_id,
                Invoice.client_company_id == company_id,
            )
        ).first()

        values = self._header_values(normalized)
        now = self._clock()

        if existing is None:
            invoice = Invoice(
                tenant_id=tenant_id,
                client_company_id=company_id,
                external_id=normalized.external_id,
                created_at=now,
                updated_at=now,
                **values,
            )
            session.add(invoice)
            session.flush()
            session.add_all(self._new_lines(tenant_id, invoice.id, normalized))
            session.flush()
            return "created"

        header_changed = any(
            getattr(existing, key) != value for key, value in values.items()
        )
        stored_lines = session.exec(
            select(InvoiceLine).where(InvoiceLine.invoice_id == existing.id)
        ).all()
        lines_changed = _stored_lines_key(stored_lines) != _incoming_lines_key(normalized.lines)

        if not header_changed and not lines_changed:
            return "unchanged"

        for key, value in values.items():
            setattr(existing, key, value)
        existing.updated_at = now
        session.add(existing)

        session.exec(delete(InvoiceLine).where(InvoiceLine.invoice_id == existing.id))
        session.add_all(self._new_lines(tenant_id, existing.id, normalized))
        session.flush()
        return "updated"
