from enum import Enum


class ProviderType(str, Enum):
    """Kind of external system a provider represents."""
    ACCOUNTING = "accounting"
    BANK = "bank"


class IntegrationStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


class SyncStatus(str, Enum):
    """Outcome of the most recent sync for a tenant integration."""
    SUCCESS = "success"
    ERROR = "error"
    IN_PROGRESS = "in_progress"


class SyncJobType(str, Enum):
    PULL_INVOICES = "pull_invoices"
    PULL_BANK_TRANSACTIONS = "pull_bank_transactions"
    PUSH_INVOICES = "push_invoices"
    PUSH_BANK_TRANSACTIONS = "push_bank_transactions"

    @property
    def is_push(self) -> bool:
        return self in (SyncJobType.PUSH_INVOICES, SyncJobType.PUSH_BANK_TRANSACTIONS)

    @property
    def provider_type(self) -> ProviderType:
        if self in (SyncJobType.PULL_INVOICES, SyncJobType.PUSH_INVOICES):
            return ProviderType.ACCOUNTING
        return ProviderType.BANK

    @property
    def label(self) -> str:
        return JOB_TYPE_LABELS[self]

    @classmethod
    def pull_for(cls, provider_type: ProviderType | str) -> "SyncJobType":
        if ProviderType(provider_type) is ProviderType.ACCOUNTING:
            return cls.PULL_INVOICES
        return cls.PULL_BANK_TRANSACTIONS

    @classmethod
    def push_for(cls, provider_type: ProviderType | str) -> "SyncJobType":
        if ProviderType(provider_type) is ProviderType.ACCOUNTING:
            return cls.PUSH_INVOICES
        return cls.PUSH_BANK_TRANSACTIONS


JOB_TYPE_LABELS = {
    SyncJobType.PULL_INVOICES: "Invoice pull",
    SyncJobType.PULL_BANK_TRANSACTIONS: "Bank transaction pull",
    SyncJobType.PUSH_INVOICES: "Invoice push",
    SyncJobType.PUSH_BANK_TRANSACTIONS: "Bank transaction push",
}


class SyncJobStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILED = "failed"
    RETRY = "retry"


class SyncLogLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class PushSyncFrequency(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class InvoiceType(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"
    CANCELLED = "cancelled"


class RecordSource(str, Enum):
    MANUAL = "manual"
    DOCUMENT = "document"
    INTEGRATION = "integration"


class TenantRole(str, Enum):
    TENANT_OWNER = "tenant_owner"
    ACCOUNTANT = "accountant"
    STAFF = "staff"
    READ_ONLY = "read_only"


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    INVITED = "invited"
    SUSPENDED = "suspended"
