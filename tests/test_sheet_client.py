"""Tests for the spreadsheet script client, with ``urlopen`` patched out."""

from __future__ import annotations

import json
import urllib.error
from decimal import Decimal
from urllib.parse import parse_qs, urlparse

import pytest

from jeongsim_erp import sheet_client
from jeongsim_erp.constants import TransactionType
from jeongsim_erp.models import Transaction, TransactionItem

from conftest import SCRIPT_URL, FakeResponse


def _query(request) -> dict:
    return {key: values[0] for key, values in parse_qs(urlparse(request.full_url).query).items()}


def test_fetch_rows_requests_sheet_by_name(fake_sheet):
    requests = fake_sheet({"info": [["볼트", "M8", "개", 100]]})

    rows = sheet_client.fetch_rows(SCRIPT_URL, "info", timeout=3)

    assert rows == [["볼트", "M8", "개", 100]]
    assert _query(requests[0]) == {"sheetName": "info"}
    assert requests[0].get_method() == "GET"


def test_build_url_appends_to_existing_query():
    url = sheet_client._build_url("https://x.example/exec?key=1", {"sheetName": "매출"})

    assert url.startswith("https://x.example/exec?key=1&sheetName=")
    assert parse_qs(urlparse(url).query)["sheetName"] == ["매출"]


def test_fetch_rows_non_array_payload_is_empty(fake_sheet):
    fake_sheet({"info": {"error": "no such sheet"}})

    assert sheet_client.fetch_rows(SCRIPT_URL, "info") == []


def test_fetch_rows_http_error_raises_service_error(fake_sheet):
    fake_sheet({"info": urllib.error.HTTPError(SCRIPT_URL, 500, "Internal Error", {}, None)})

    with pytest.raises(sheet_client.SheetServiceError, match="500"):
        sheet_client.fetch_rows(SCRIPT_URL, "info")


def test_fetch_rows_network_error_raises_service_error(fake_sheet):
    fake_sheet({"info": urllib.error.URLError("connection refused")})

    with pytest.raises(sheet_client.SheetServiceError, match="unreachable"):
        sheet_client.fetch_rows(SCRIPT_URL, "info")


def test_fetch_rows_invalid_json_raises_service_error(monkeypatch):
    monkeypatch.setattr("urllib.request.urlopen", lambda req, timeout=None: FakeResponse(b"<html>login</html>"))

    with pytest.raises(sheet_client.SheetServiceError, match="invalid JSON"):
        sheet_client.fetch_rows(SCRIPT_URL, "info")


@pytest.mark.parametrize(
    ("payload", "expected"),
    [({"status": "success"}, True), ({"status": "error"}, False), ([], False)],
)
def test_check_connection_requires_success_status(monkeypatch, payload, expected):
    body = json.dumps(payload).encode("utf-8")
    monkeypatch.setattr("urllib.request.urlopen", lambda req, timeout=None: FakeResponse(body))

    assert sheet_client.check_connection(SCRIPT_URL) is expected


def test_check_connection_swallows_transport_errors(monkeypatch):
    def refuse(req, timeout=None):
        raise urllib.error.URLError("down")

    monkeypatch.setattr("urllib.request.urlopen", refuse)

    assert sheet_client.check_connection(SCRIPT_URL) is False


def test_empty_script_url_short_circuits(fake_sheet):
    requests = fake_sheet({})

    assert sheet_client.check_connection("") is False
    assert sheet_client.fetch_products("") == []
    assert sheet_client.fetch_clients("") == []
    assert sheet_client.fetch_employees("") == []
    assert sheet_client.fetch_company_info("") is None
    assert sheet_client.fetch_transactions("") == []
    assert requests == []


def test_fetch_master_data_parses_rows(fake_sheet):
    fake_sheet(
        {
            "info": [["볼트", "M8", "개", "1,500"]],
            "company": [["(주)한국정밀", "101-81-12345"]],
            "employee": [["홍길동", "팀장"]],
            "office": [["정심작업장", "313-82-67320"]],
        }
    )

    [product] = sheet_client.fetch_products(SCRIPT_URL)
    [client] = sheet_client.fetch_clients(SCRIPT_URL)
    [employee] = sheet_client.fetch_employees(SCRIPT_URL)
    info = sheet_client.fetch_company_info(SCRIPT_URL)

    assert product.unit_price == Decimal("1500")
    assert client.registration_number == "101-81-12345"
    assert employee.position == "팀장"
    assert info.name == "정심작업장"


def test_fetch_transactions_reconciles_rows(fake_sheet, make_row):
    fake_sheet(
        {
            "estimate": [
                make_row(id="E1", doc_type="견적서", date="2023-10-15T15:00:00.000Z"),
                make_row(id="E1", doc_type="견적서", date="2023-10-15T15:00:00.000Z", item="부품 B"),
            ]
        }
    )

    [estimate] = sheet_client.fetch_transactions(SCRIPT_URL, "estimate")

    assert estimate.type is TransactionType.QUOTATION
    assert estimate.date == "2023-10-16"
    assert len(estimate.items) == 2
    assert estimate.total_amount == Decimal("330000")


def test_transaction_to_payload_uses_camel_case_numbers():
    transaction = Transaction(
        id="T1",
        date="2023-10-15",
        type=TransactionType.STATEMENT,
        client_id="c1",
        client_name="A",
        items=(
            TransactionItem(
                product_id="p1",
                name="볼트",
                quantity=Decimal("3"),
                unit_price=Decimal("12.5"),
                supply_price=Decimal("37.5"),
                tax=Decimal("3.75"),
            ),
        ),
        total_supply_price=Decimal("37.5"),
        total_tax=Decimal("3.75"),
        total_amount=Decimal("41.25"),
    )

    payload = sheet_client.transaction_to_payload(transaction)

    assert payload["clientName"] == "A"
    assert payload["type"] == "STATEMENT"
    assert payload["isPaid"] is False
    assert payload["items"][0]["productId"] == "p1"
    assert payload["items"][0]["quantity"] == 3
    assert isinstance(payload["items"][0]["quantity"], int)
    assert payload["items"][0]["unitPrice"] == 12.5
    assert payload["totalAmount"] == 41.25


def test_append_transaction_posts_plain_text_json(fake_sheet):
    requests = fake_sheet({})
    transaction = Transaction(id="T1", date="2023-10-15", type=TransactionType.QUOTATION, client_name="성수디자인")

    sheet_client.append_transaction(SCRIPT_URL, transaction)

    [request] = requests
    assert request.get_method() == "POST"
    assert request.full_url == SCRIPT_URL
    assert request.get_header("Content-type") == "text/plain"
    body = json.loads(request.data.decode("utf-8"))
    assert body["clientName"] == "성수디자인"
    assert "성수디자인" in request.data.decode("utf-8")


def test_append_transaction_http_error_raises(monkeypatch):
    def fail(req, timeout=None):
        raise urllib.error.HTTPError(SCRIPT_URL, 403, "Forbidden", {}, None)

    monkeypatch.setattr("urllib.request.urlopen", fail)
    transaction = Transaction(id="T1", date="2023-10-15", type=TransactionType.STATEMENT)

    with pytest.raises(sheet_client.SheetServiceError, match="403"):
        sheet_client.append_transaction(SCRIPT_URL, transaction)
