import json
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

import httpx
import pytest

from app.providers.connectors.normalized import (
    FetchOptions,
    PushInvoiceInput,
    PushTransactionInput,
)
from app.providers.connectors.rest_provider import RestAccountingConnector, RestBankConnector
from app.services.sync_errors import ConnectorError, is_retryable_error

CONFIG = {"base_url": "https://books.example.com/api/", "api_key": "k-123", "company_id": "42"}


def _invoice_payload(external_id, **overrides):
    payload = {
        "external_id": external_id,
        "client_company_name": "Example Customer Inc.",
        "issue_date": "2024-01-15T10:00:00+03:00",
        "total_amount": "1180.00",
        "tax_amount": "180.00",
        "lines": [{"line_number": 1, "description": "Service", "line_total": "1000.00"}],
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_fetch_invoices_paginates_and_sends_credentials():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        page = int(request.url.params["page"])
        if page == 1:
            return httpx.Response(200, json={"data": [_invoice_payload("INV-1")], "has_more": True})
        return httpx.Response(200, json={"data": [_invoice_payload("INV-2")], "has_more": False})

    connector = RestAccountingConnector(transport=httpx.MockTransport(handler))
    invoices = await connector.fetch_invoices(
        datetime(2024, 1, 1), datetime(2024, 2, 1), FetchOptions(config=CONFIG)
    )

    assert [inv.external_id for inv in invoices] == ["INV-1", "INV-2"]
    # Offsets are normalized to naive UTC.
    assert invoices[0].issue_date == datetime(2024, 1, 15, 7, 0)
    assert invoices[0].total_amount == Decimal("1180.00")
    assert requests[0].url.path == "/api/invoices"
    assert requests[0].headers["X-API-Key"] == "k-123"
    assert requests[0].headers["X-Company-Id"] == "42"
    assert requests[0].url.params["since"] == "2024-01-01T00:00:00"
    assert len(requests) == 2


@pytest.mark.asyncio
async def test_fetch_skips_malformed_records_and_honours_limit():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "data": [
                    _invoice_payload("INV-1"),
                    {"external_id": "", "total_amount": "x"},
                    _invoice_payload("INV-3"),
                    _invoice_payload("INV-4"),
                ],
                "has_more": True,
            },
        )

    connector = RestAccountingConnector(transport=httpx.MockTransport(handler))
    invoices = await connector.fetch_invoices(
        datetime(2024, 1, 1), datetime(2024, 2, 1), FetchOptions(limit=2, config=CONFIG)
    )

    assert [inv.external_id for inv in invoices] == ["INV-1", "INV-3"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status_code, message, retryable",
    [
        (401, "Authentication failed", False),
        (403, "Permission denied", False),
        (404, "Not found: /api/invoices", False),
        (503, "Provider returned HTTP 503", True),
        (429, "Provider returned HTTP 429", True),
    ],
)
async def test_http_errors_map_to_taxonomy(status_code, message, retryable):
    connector = RestAccountingConnector(
        transport=httpx.MockTransport(lambda request: httpx.Response(status_code))
    )

    with pytest.raises(ConnectorError) as exc_info:
        await connector.fetch_invoices(
            datetime(2024, 1, 1), datetime(2024, 2, 1), FetchOptions(config=CONFIG)
        )

    assert str(exc_info.value) == message
    assert exc_info.value.status_code == status_code
    assert is_retryable_error(exc_info.value) is retryable


@pytest.mark.asyncio
async def test_transport_errors_are_retryable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    connector = RestBankConnector(transport=httpx.MockTransport(handler))

    with pytest.raises(ConnectorError) as exc_info:
        await connector.fetch_transactions(
            datetime(2024, 1, 1), datetime(2024, 2, 1), FetchOptions(config=CONFIG)
        )

    assert is_retryable_error(exc_info.value) is True


@pytest.mark.asyncio
async def test_missing_base_url_is_invalid_configuration():
    connector = RestBankConnector()

    with pytest.raises(ConnectorError) as exc_info:
        await connector.fetch_transactions(datetime(2024, 1, 1), datetime(2024, 2, 1), FetchOptions())

    assert is_retryable_error(exc_info.value) is False


@pytest.mark.asyncio
async def test_push_reports_per_item_results():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        bodies.append(body)
        if body["external_id"] == "TX-2":
            return httpx.Response(422, json={"error": "duplicate"})
        return httpx.Response(201, json={"id": f"remote-{body['external_id']}"})

    def _txn(external_id, amount):
        return PushTransactionInput(
            transaction_id=uuid4(),
            external_id=external_id,
            account_identifier="TR330006100519786457841326",
            booking_date=datetime(2024, 1, 15),
            amount=Decimal(amount),
        )

    connector = RestBankConnector(transport=httpx.MockTransport(handler))
    results = await connector.push_transactions([_txn("TX-1", "-10.50"), _txn("TX-2", "5")], CONFIG)

    assert [r.success for r in results] == [True, False]
    assert results[0].external_id == "remote-TX-1"
    assert results[1].error == "Provider rejected request with HTTP 422"
    assert bodies[0]["amount"] == "-10.50"


@pytest.mark.asyncio
async def test_push_auth_failure_fails_whole_batch():
    connector = RestAccountingConnector(
        transport=httpx.MockTransport(lambda request: httpx.Response(401))
    )

    invoice = PushInvoiceInput(
        invoice_id=uuid4(),
        **_invoice_payload("INV-1"),
    )

    with pytest.raises(ConnectorError, match="Authentication failed"):
        await connector.push_invoices([invoice], CONFIG)


@pytest.mark.asyncio
async def test_connection_check_reports_failure_message():
    ok = RestAccountingConnector(
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"data": []}))
    )
    denied = RestAccountingConnector(
        transport=httpx.MockTransport(lambda request: httpx.Response(403))
    )

    assert (await ok.test_connection(CONFIG)).success is True
    result = await denied.test_connection(CONFIG)
    assert result.success is False
    assert result.message == "Permission denied"
