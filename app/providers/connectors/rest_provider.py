"""Generic JSON/REST connectors.

Configuration keys (stored in ``TenantIntegration.config``):

- ``base_url`` (required)
- ``api_key`` and optional ``api_secret``; or ``username`` / ``password``
- ``company_id`` sent as ``X-Company-Id``
- ``page_size`` (default 100)

The remote API is expected to expose ``GET /invoices`` / ``GET /transactions``
returning ``{"data": [...], "has_more": bool}`` with records shaped like the
normalized models, and ``POST`` on the same paths for push.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

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
    PushResult,
)
from app.services.sync_errors import ConnectorError

logger = logging.getLogger(__name__)

REST_ACCOUNTING_CODE = "REST_ACCOUNTING"
REST_BANK_CODE = "REST_BANK"

DEFAULT_PAGE_SIZE = 100
MAX_PAGES = 50

RecordT = TypeVar("RecordT", bound=BaseModel)


def _error_for_status(response: httpx.Response) -> ConnectorError:
    code = response.status_code
    if code == 401:
        return ConnectorError("Authentication failed", status_code=code)
    if code == 403:
        return ConnectorError("Permission denied", status_code=code)
    if code == 404:
        return ConnectorError(f"Not found: {response.request.url.path}", status_code=code)
    if code == 429 or code >= 500:
        return ConnectorError(f"Provider returned HTTP {code}", status_code=code, retryable=True)
    return ConnectorError(f"Provider rejected request with HTTP {code}", status_code=code)


class RestConnectorBase:
    """Shared HTTP plumbing for the REST connectors."""

    resource: str = ""

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None, timeout: float = 30.0):
        self._transport = transport
        self._timeout = timeout

    def _base_url(self, config: Dict[str, Any]) -> str:
        base_url = str(config.get("base_url") or "").strip()
        if not base_url:
            raise ConnectorError("Invalid configuration: base_url is required")
        return base_url.rstrip("/")

    def _auth(self, config: Dict[str, Any]) -> httpx.Auth | None:
        if config.get("api_key") and config.get("api_secret"):
            return httpx.BasicAuth(str(config["api_key"]), str(config["api_secret"]))
        if config.get("username") and config.get("password"):
            return httpx.BasicAuth(str(config["username"]), str(config["password"]))
        return None

    def _headers(self, config: Dict[str, Any]) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if config.get("api_key") and not config.get("api_secret"):
            headers["X-API-Key"] = str(config["api_key"])
        if config.get("company_id"):
            headers["X-Company-Id"] = str(config["company_id"])
        return headers

    def _client(self, config: Dict[str, Any]) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url(config),
            headers=self._headers(config),
            auth=self._auth(config),
            timeout=self._timeout,
            transport=self._transport,
        )

    async def _request(
        self, client: httpx.AsyncClient, method: str, path: str, **kwargs: Any
    ) -> httpx.Response:
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise ConnectorError(f"Provider request timed out: {e}", retryable=True) from e
        except httpx.TransportError as e:
            raise ConnectorError(f"Provider unreachable: {e}", retryable=True) from e
        if response.status_code >= 400:
            raise _error_for_status(response)
        return response

    async def test_connection(self, config: Dict[str, Any]) -> ConnectionTestResult:
        try:
            async with self._client(config) as client:
                await self._request(client, "GET", f"/{self.resource}", params={"page_size": 1})
        except ConnectorError as e:
            return ConnectionTestResult(success=False, message=str(e))
        return ConnectionTestResult(success=True, message="Connection successful.")

    async def _fetch_all(
        self,
        model: Type[RecordT],
        since: datetime,
        until: datetime,
        options: Optional[FetchOptions],
    ) -> List[RecordT]:
        options = options or FetchOptions()
        config = options.config
        page_size = int(config.get("page_size") or DEFAULT_PAGE_SIZE)
        if options.limit:
            page_size = min(page_size, options.limit)

        records: List[RecordT] = []
        async with self._client(config) as client:
            for page in range(1, MAX_PAGES + 1):
                response = await self._request(
                    client,
                    "GET",
                    f"/{self.resource}",
                    params={
                        "since": since.isoformat(),
                        "until": until.isoformat(),
                        "page": page,
                        "page_size": page_size,
                    },
                )
                body = response.json()
                for item in body.get("data") or []:
                    try:
                        records.append(model.model_validate(item))
                    except ValidationError as e:
                        logger.warning(
                            f"Skipping malformed {self.resource} record "
                            f"{item.get('external_id') if isinstance(item, dict) else item!r}: {e}"
                        )
                    if options.limit and len(records) >= options.limit:
                        return records
                if not body.get("has_more"):
                    break
        return records

    async def _push_all(self, items: List[BaseModel], config: Dict[str, Any]) -> List[PushResult]:
        results: List[PushResult] = []
        async with self._client(config) as client:
            for item in items:
                try:
                    response = await self._request(
                        client, "POST", f"/{self.resource}", json=item.model_dump(mode="json")
                    )
                    payload = response.json() if response.content else {}
                    results.append(PushResult(success=True, external_id=payload.get("id")))
                except ConnectorError as e:
                    if e.status_code in (401, 403):
                        # Credentials are wrong for every item; fail the whole job.
                        raise
                    results.append(PushResult(success=False, error=str(e)))
        return results


class RestAccountingConnector(RestConnectorBase, AccountingConnector, InvoicePushCapable):
    resource = "invoices"

    async def fetch_invoices(
        self,
        since: datetime,
        until: datetime,
        options: Optional[FetchOptions] = None,
    ) -> List[NormalizedInvoice]:
        return await self._fetch_all(NormalizedInvoice, since, until, options)

    async def push_invoices(self, invoices, config):
        return await self._push_all(list(invoices), config)


class RestBankConnector(RestConnectorBase, BankConnector, TransactionPushCapable):
    resource = "transactions"

    async def fetch_transactions(
        self,
        since: datetime,
        until: datetime,
        options: Optional[FetchOptions] = None,
    ) -> List[NormalizedBankTransaction]:
        return await self._fetch_all(NormalizedBankTransaction, since, until, options)

    async def push_transactions(self, transactions, config):
        return await self._push_all(list(transactions), config)
