from __future__ import annotations

from uuid import UUID

# Substrings that mark an error as permanent; retrying cannot fix these.
NON_RETRYABLE_PATTERNS = (
    "authentication failed",
    "invalid credentials",
    "permission denied",
    "not found",
    "does not support",
    "invalid configuration",
)


class IntegrationSyncError(Exception):
    """Base error for the integration sync engine.

    ``retryable`` is an explicit classification; ``None`` defers to the
    message patterns.
    """

    retryable: bool | None = None

    def __init__(self, message: str, *, retryable: bool | None = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class SyncJobNotFoundError(IntegrationSyncError):
    retryable = False

    def __init__(self, job_id: UUID | str):
        super().__init__(f"Sync job {job_id} not found")
        self.job_id = job_id


class ConnectorNotFoundError(IntegrationSyncError):
    retryable = False

    def __init__(self, code: str, provider_type: str):
        super().__init__(f"Connector not found for provider {code} ({provider_type})")
        self.code = code
        self.provider_type = provider_type


class UnsupportedCapabilityError(IntegrationSyncError):
    retryable = False


class ConnectorTimeoutError(IntegrationSyncError):
    retryable = True


class CircuitOpenError(IntegrationSyncError):
    retryable = True


class ConnectorError(IntegrationSyncError):
    """Raised by connectors for provider-side failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        retryable: bool | None = None,
    ):
        super().__init__(message, retryable=retryable)
        self.status_code = status_code


class InvalidJobTransition(IntegrationSyncError):
    retryable = False


class IntegrationNotFoundError(IntegrationSyncError):
    retryable = False

    def __init__(self, integration_id: UUID | str):
        super().__init__(f"Integration {integration_id} not found")
        self.integration_id = integration_id


class IntegrationNotConnectedError(IntegrationSyncError):
    retryable = False


class SyncJobConflictError(IntegrationSyncError):
    """An equivalent job is already active, or the job cannot be retried."""

    retryable = False


def is_retryable_error(error: BaseException) -> bool:
    message = str(error).lower()
    if any(pattern in message for pattern in NON_RETRYABLE_PATTERNS):
        return False

    explicit = getattr(error, "retryable", None)
    if explicit is not None:
        return bool(explicit)
    return True
