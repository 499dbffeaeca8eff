from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import true
from sqlmodel import Session, select

from app.core.clock import Clock, utc_now
from app.core.enums import RecordSource
from app.models import (
    ClientCompany,
    ClientCompanyBankAccount,
    LedgerAccount,
    Transaction,
    TransactionLine,
)
from app.providers.connectors.normalized import NormalizedBankTransaction
from app.services.importers.summary import ImportSummary

logger = logging.getLogger(__name__)

BANK_LEDGER_PREFIX = "102.01"
PLACEHOLDER_COMPANY_NAME = "Bank transactions"

# Turkish IBANs carry a five digit bank code right after the check digits.
TR_BANK_CODES = {
    "00010": "T.C. Ziraat Bankası",
    "00012": "Türkiye Halk Bankası",
    "00015": "Türkiye Vakıflar Bankası",
    "00032": "Türk Ekonomi Bankası",
    "00046": "Akbank",
    "00059": "Şekerbank",
    "00062": "Türkiye Garanti Bankası",
    "00064": "Türkiye İş Bankası",
    "00067": "Yapı ve Kredi Bankası",
    "00111": "QNB Finansbank",
    "00134": "Denizbank",
}

COUNTRY_BANK_NAMES = {
    "TR": "Turkish bank",
    "DE": "German bank",
    "GB": "UK bank",
    "NL": "Dutch bank",
}


def bank_name_from_iban(iban: str) -> str:
    compact = iban.replace(" ", "").upper()
    if compact.startswith("TR") and len(compact) >= 9:
        name = TR_BANK_CODES.get(compact[4:9])
        if name:
            return name
    return COUNTRY_BANK_NAMES.get(compact[:2], "Unknown bank")


def split_amount(amount: Decimal) -> tuple[Decimal, Decimal]:
    """Return (debit, credit) for a signed bank amount.

    Money in (non-negative) is booked as credit, money out as debit.
    """
    if amount >= 0:
        return Decimal("0"), amount
    return abs(amount), Decimal("0")


def ledger_code_for_bank_account(bank_account_id: UUID) -> str:
    return f"{BANK_LEDGER_PREFIX}.{bank_account_id.hex[:8]}"


class BankTransactionImporter:
    """Reconciles normalized bank transactions into single-line ledger entries."""

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock

    def import_transactions(
        self,
        *,
        session: Session,
        tenant_id: UUID,
        transactions: list[NormalizedBankTransaction],
        tenant_integration_id: UUID | None = None,
    ) -> ImportSummary:
        summary = ImportSummary()

        for normalized in transactions:
            try:
                bank_account = self._resolve_bank_account(
                    session, tenant_id, normalized.account_identifier, normalized.currency
                )
                ledger_account = self._resolve_ledger_account(session, tenant_id, bank_account)
                outcome = self._upsert_transaction(
                    session, tenant_id, bank_account, ledger_account, normalized
                )
                session.commit()
            except Exception as e:
                session.rollback()
                logger.warning(f"Bank transaction {normalized.external_id} skipped: {e}")
                summary.record_error(normalized.external_id, e)
                continue

            if outcome == "created":
                summary.created += 1
            elif outcome == "updated":
                summary.updated += 1
            else:
                summary.unchanged += 1

        return summary

    def _resolve_bank_account(
        self, session: Session, tenant_id: UUID, iban: str, currency: str
    ) -> ClientCompanyBankAccount:
        existing = session.exec(
            select(ClientCompanyBankAccount).where(
                ClientCompanyBankAccount.tenant_id == tenant_id,
                ClientCompanyBankAccount.iban == iban,
            )
        ).first()
        if existing is not None:
            return existing

        company = session.exec(
            select(ClientCompany)
            .where(ClientCompany.tenant_id == tenant_id, ClientCompany.is_active == true())
            .order_by(ClientCompany.created_at.asc())
        ).first()
        if company is None:
            company = ClientCompany(
                tenant_id=tenant_id,
                name=PLACEHOLDER_COMPANY_NAME,
                legal_type="limited",
                tax_number=f"BANK-{uuid4().hex[:12]}",
                is_active=True,
                created_at=self._clock(),
            )
            session.add(company)
            session.flush()

        bank_account = ClientCompanyBankAccount(
            tenant_id=tenant_id,
            client_company_id=company.id,
            bank_name=bank_name_from_iban(iban),
            iban=iban,
            currency=currency,
            is_primary=False,
            created_at=self._clock(),
        )
        session.add(bank_account)
        session.flush()
        logger.info(f"Registered bank account {iban[-4:]} for tenant {tenant_id}")
        return bank_account

    def _resolve_ledger_account(
        self, session: Session, tenant_id: UUID, bank_account: ClientCompanyBankAccount
    ) -> LedgerAccount:
        code = ledger_code_for_bank_account(bank_account.id)
        ledger_account = session.exec(
            select(LedgerAccount).where(
                LedgerAccount.tenant_id == tenant_id,
                LedgerAccount.code == code,
            )
        ).first()
        if ledger_account is not None:
            return ledger_account

        ledger_account = LedgerAccount(
            tenant_id=tenant_id,
            code=code,
            name=f"{bank_account.bank_name} - {bank_account.iban[-4:]}",
            type="asset",
            is_active=True,
            created_at=self._clock(),
        )
        session.add(ledger_account)
        session.flush()
        return ledger_account

    def _upsert_transaction(
        self,
        session: Session,
        tenant_id: UUID,
        bank_account: ClientCompanyBankAccount,
        ledger_account: LedgerAccount,
        normalized: NormalizedBankTransaction,
    ) -> str:
        debit, credit = split_amount(normalized.amount)
        header = {
            "date": normalized.booking_date,
            "description": normalized.description,
            "reference_no": normalized.account_identifier,
            "currency": normalized.currency,
            "source": RecordSource.INTEGRATION.value,
        }
        line_values = {
            "ledger_account_id": ledger_account.id,
            "debit_amount": debit,
            "credit_amount": credit,
            "description": normalized.description,
        }
        now = self._clock()

        existing = session.exec(
            select(Transaction).where(
                Transaction.tenant_id == tenant_id,
                Transaction.external_id == normalized.external_id,
                Transaction.client_company_id == bank_account.client_company_id,
            )
        ).first()

        if existing is None:
            transaction = Transaction(
                tenant_id=tenant_id,
                client_company_id=bank_account.client_company_id,
                external_id=normalized.external_id,
                created_at=now,
                updated_at=now,
                **header,
            )
            session.add(transaction)
            session.flush()
            session.add(
                TransactionLine(tenant_id=tenant_id, transaction_id=transaction.id, **line_values)
            )
            session.flush()
            return "created"

        line = session.exec(
            select(TransactionLine).where(TransactionLine.transaction_id == existing.id)
        ).first()

        header_changed = any(getattr(existing, k) != v for k, v in header.items())
        line_changed = line is None or any(getattr(line, k) != v for k, v in line_values.items())
        if not header_changed and not line_changed:
            return "unchanged"

        for key, value in header.items():
            setattr(existing, key, value)
        existing.updated_at = now
        session.add(existing)

        if line is None:
            line = TransactionLine(tenant_id=tenant_id, transaction_id=existing.id)
        for key, value in line_values.items():
            setattr(line, key, value)
        session.add(line)
        session.flush()
        return "updated"
