from datetime import datetime
from decimal import Decimal

from sqlmodel import Session, select

from app.models import ClientCompany, Invoice, InvoiceLine
from app.providers.connectors.normalized import NormalizedInvoice, NormalizedInvoiceLine
from app.services.importers.invoice_importer import UNKNOWN_CLIENT_NAME, InvoiceImporter
from conftest import fixed_clock


def _invoice(external_id="INV-1", *, company="Example Customer Inc.", tax="1234567890",
             total="1180.00", lines=None, **overrides) -> NormalizedInvoice:
    data = dict(
        external_id=external_id,
        client_company_name=company,
        client_company_tax_number=tax,
        issue_date=datetime(2024, 1, 15),
        due_date=datetime(2024, 2, 15),
        total_amount=Decimal(total),
        tax_amount=Decimal("180.00"),
        net_amount=Decimal("1000.00"),
        status="finalized",
        type="sale",
        lines=lines
        if lines is not None
        else [
            NormalizedInvoiceLine(
                line_number=1,
                description="Service fee",
                quantity=Decimal("1"),
                unit_price=Decimal("1000"),
                line_total=Decimal("1000.00"),
                vat_rate=Decimal("0.18"),
                vat_amount=Decimal("180.00"),
            )
        ],
    )
    data.update(overrides)
    return NormalizedInvoice(**data)


def _snapshot(session, tenant_id):
    invoices = session.exec(
        select(Invoice).where(Invoice.tenant_id == tenant_id).order_by(Invoice.external_id)
    ).all()
    lines = session.exec(
        select(InvoiceLine).where(InvoiceLine.tenant_id == tenant_id).order_by(InvoiceLine.id)
    ).all()
    return (
        [inv.model_dump() for inv in invoices],
        [line.model_dump() for line in lines],
    )


def test_import_is_idempotent(engine, tenant):
    importer = InvoiceImporter(clock=fixed_clock)
    batch = [_invoice("INV-1"), _invoice("INV-2", company="Test Company Ltd.", tax="9876543210")]

    with Session(engine) as session:
        first = importer.import_invoices(session=session, tenant_id=tenant.id, invoices=batch)
        before = _snapshot(session, tenant.id)

    with Session(engine) as session:
        second = importer.import_invoices(session=session, tenant_id=tenant.id, invoices=batch)
        after = _snapshot(session, tenant.id)

    assert (first.created, first.updated, first.unchanged) == (2, 0, 0)
    assert (second.created, second.updated, second.unchanged) == (0, 0, 2)
    assert before == after


def test_changed_invoice_is_updated_and_lines_replaced(engine, tenant):
    importer = InvoiceImporter(clock=fixed_clock)

    with Session(engine) as session:
        importer.import_invoices(session=session, tenant_id=tenant.id, invoices=[_invoice()])

    corrected = _invoice(
        total="2360.00",
        lines=[
            NormalizedInvoiceLine(line_number=1, description="Service fee", line_total=Decimal("1000.00")),
            NormalizedInvoiceLine(line_number=2, description="Travel", line_total=Decimal("1000.00")),
        ],
    )
    with Session(engine) as session:
        summary = importer.import_invoices(session=session, tenant_id=tenant.id, invoices=[corrected])

    with Session(engine) as session:
        invoices = session.exec(select(Invoice)).all()
        lines = session.exec(select(InvoiceLine).order_by(InvoiceLine.line_number)).all()

    assert summary.updated == 1
    assert len(invoices) == 1
    assert invoices[0].total_amount == Decimal("2360.00")
    assert invoices[0].source == "integration"
    assert [line.description for line in lines] == ["Service fee", "Travel"]


def test_company_resolved_by_tax_number_before_name(engine, tenant, make_company):
    by_tax = make_company(tenant.id, name="Registered Name", tax_number="1234567890")
    make_company(tenant.id, name="Example Customer Inc.", tax_number="1111111111")
    importer = InvoiceImporter(clock=fixed_clock)

    with Session(engine) as session:
        importer.import_invoices(session=session, tenant_id=tenant.id, invoices=[_invoice()])
        invoice = session.exec(select(Invoice)).one()

    assert invoice.client_company_id == by_tax.id


def test_company_resolved_by_case_insensitive_name(engine, tenant, make_company):
    company = make_company(tenant.id, name="EXAMPLE customer inc.", tax_number="2222222222")
    importer = InvoiceImporter(clock=fixed_clock)

    with Session(engine) as session:
        importer.import_invoices(
            session=session, tenant_id=tenant.id, invoices=[_invoice(tax=None)]
        )
        invoice = session.exec(select(Invoice)).one()
        company_count = len(session.exec(select(ClientCompany)).all())

    assert invoice.client_company_id == company.id
    assert company_count == 1


def test_integration_company_used_as_fallback(engine, tenant, make_company, make_integration):
    company = make_company(tenant.id, name="Books Owner", tax_number="3333333333")
    integration = make_integration(tenant.id, client_company_id=company.id)
    importer = InvoiceImporter(clock=fixed_clock)

    with Session(engine) as session:
        importer.import_invoices(
            session=session,
            tenant_id=tenant.id,
            invoices=[_invoice(company=None, tax=None)],
            tenant_integration_id=integration.id,
        )
        invoice = session.exec(select(Invoice)).one()

    assert invoice.client_company_id == company.id


def test_anonymous_invoices_share_placeholder_company(engine, tenant):
    importer = InvoiceImporter(clock=fixed_clock)
    batch = [_invoice("INV-A", company=None, tax=None), _invoice("INV-B", company=None, tax=None)]

    with Session(engine) as session:
        importer.import_invoices(session=session, tenant_id=tenant.id, invoices=batch)
        second = importer.import_invoices(session=session, tenant_id=tenant.id, invoices=batch)
        companies = session.exec(select(ClientCompany)).all()

    assert [c.name for c in companies] == [UNKNOWN_CLIENT_NAME]
    assert companies[0].tax_number.startswith("TEMP-")
    assert second.unchanged == 2


def test_new_company_created_with_hints(engine, tenant):
    importer = InvoiceImporter(clock=fixed_clock)

    with Session(engine) as session:
        importer.import_invoices(
            session=session,
            tenant_id=tenant.id,
            invoices=[_invoice(client_company_external_id="CUST-9")],
        )
        company = session.exec(select(ClientCompany)).one()

    assert company.name == "Example Customer Inc."
    assert company.tax_number == "1234567890"
    assert company.external_id == "CUST-9"


def test_failing_record_does_not_abort_batch(engine, tenant):
    class FlakyImporter(InvoiceImporter):
        def _upsert_invoice(self, session, tenant_id, company_id, normalized):
            if normalized.external_id == "INV-BAD":
                raise ValueError("broken totals")
            return super()._upsert_invoice(session, tenant_id, company_id, normalized)

    importer = FlakyImporter(clock=fixed_clock)
    batch = [_invoice("INV-1"), _invoice("INV-BAD"), _invoice("INV-3")]

    with Session(engine) as session:
        summary = importer.import_invoices(session=session, tenant_id=tenant.id, invoices=batch)
        stored = session.exec(select(Invoice.external_id).order_by(Invoice.external_id)).all()

    assert summary.created == 2
    assert summary.skipped == 1
    assert [(e.external_id, e.error) for e in summary.errors] == [("INV-BAD", "broken totals")]
    assert stored == ["INV-1", "INV-3"]


def test_imports_are_tenant_scoped(engine, tenant):
    from app.models import Tenant

    with Session(engine) as session:
        other = Tenant(name="Other", slug="other")
        session.add(other)
        session.commit()
        session.refresh(other)

    importer = InvoiceImporter(clock=fixed_clock)
    with Session(engine) as session:
        importer.import_invoices(session=session, tenant_id=tenant.id, invoices=[_invoice()])
        summary = importer.import_invoices(session=session, tenant_id=other.id, invoices=[_invoice()])
        companies = session.exec(select(ClientCompany)).all()

    assert summary.created == 1
    assert {c.tenant_id for c in companies} == {tenant.id, other.id}
