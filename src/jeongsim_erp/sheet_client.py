"""Thin client for the spreadsheet web-app script acting as the remote backend.

``GET <script>?sheetName=<name>`` returns the data rows of a sheet as a JSON 2D
array (header already removed), ``GET <script>?action=test`` answers
``{"status": "success"}``, and a ``POST`` with a JSON transaction body appends
it to the sales sheet.

Transport problems surface as :class:`SheetServiceError`; parsing of the rows
is delegated to :mod:`jeongsim_erp.sheet_parser` and
:mod:`jeongsim_erp.reconciler`.
"""

from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from decimal import Decimal
from typing import Any, Dict, List, Optional

from . import log
from .constants import RemoteSheet
from .data_manager import DEFAULT_TIMEOUT_SECONDS
from .models import Client, CompanyInfo, Employee, ProductItem, Transaction
from .reconciler import reconcile_transactions
from .sheet_parser import RawRow, parse_clients, parse_company_info, parse_employees, parse_products


class SheetServiceError(RuntimeError):
    """Raised when the spreadsheet script cannot be reached or answers garbage."""


def _build_url(script_url: str, params: Dict[str, str]) -> str:
    separator = "&" if "?" in script_url else "?"
    return f"{script_url}{separator}{urllib.parse.urlencode(params)}"


def _get_json(url: str, *, timeout: float) -> Any:
    req = urllib.request.Request(url, method="GET")
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            body = resp.read()
    except urllib.error.HTTPError as e:
        raise SheetServiceError(f"Sheet script error: {e.code} {e.reason}") from e
    except (urllib.error.URLError, OSError) as e:
        raise SheetServiceError(f"Sheet script unreachable: {e}") from e

    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SheetServiceError("Sheet script returned invalid JSON") from e


def fetch_rows(script_url: str, sheet_name: str, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> List[RawRow]:
    """Fetch the data rows of ``sheet_name``.

    Args:
        script_url (str): Deployed web-app URL of the sheet script.
        sheet_name (str): Name of the sheet to read.
        timeout (float): Socket timeout in seconds.

    Returns:
        list[Sequence[object]]: Raw rows; an empty list when the script answers
            with anything other than a JSON array.

    Raises:
        SheetServiceError: On network, HTTP, or decoding failures.
    """

    payload = _get_json(_build_url(script_url, {"sheetName": sheet_name}), timeout=timeout)
    if not isinstance(payload, list):
        log.warning("Sheet '%s' did not return a row array; treating as empty", sheet_name)
        return []
    log.info("Fetched %d rows from sheet '%s'", len(payload), sheet_name)
    return payload


def check_connection(script_url: str, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> bool:
    """Probe the script with ``?action=test``; ``True`` only on a success status."""

    if not script_url:
        return False
    try:
        payload = _get_json(_build_url(script_url, {"action": "test"}), timeout=timeout)
    except SheetServiceError as exc:
        log.warning("Connection test failed: %s", exc)
        return False
    return isinstance(payload, dict) and payload.get("status") == "success"


def fetch_products(
    script_url: str, sheet_name: str = RemoteSheet.PRODUCTS.value, *, timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> List[ProductItem]:
    if not script_url:
        return []
    return parse_products(fetch_rows(script_url, sheet_name, timeout=timeout))


def fetch_clients(
    script_url: str, sheet_name: str = RemoteSheet.CLIENTS.value, *, timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> List[Client]:
    if not script_url:
        return []
    return parse_clients(fetch_rows(script_url, sheet_name, timeout=timeout))


def fetch_employees(
    script_url: str, sheet_name: str = RemoteSheet.EMPLOYEES.value, *, timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> List[Employee]:
    if not script_url:
        return []
    return parse_employees(fetch_rows(script_url, sheet_name, timeout=timeout))


def fetch_company_info(
    script_url: str, sheet_name: str = RemoteSheet.OFFICE.value, *, timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> Optional[CompanyInfo]:
    if not script_url:
        return None
    return parse_company_info(fetch_rows(script_url, sheet_name, timeout=timeout))


def fetch_transactions(
    script_url: str, sheet_name: str = RemoteSheet.SALES.value, *, timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> List[Transaction]:
    """Fetch a transaction sheet and reconcile its rows into transactions."""

    if not script_url:
        return []
    return reconcile_transactions(fetch_rows(script_url, sheet_name, timeout=timeout))


def _json_number(value: Decimal) -> int | float:
    return int(value) if value == value.to_integral_value() else float(value)


def transaction_to_payload(transaction: Transaction) -> Dict[str, Any]:
    """Serialise a transaction with the camelCase keys the sheet script reads."""

    return {
        "id": transaction.id,
        "date": transaction.date,
        "type": transaction.type.value,
        "clientId": transaction.client_id,
        "clientName": transaction.client_name,
        "contactPerson": transaction.contact_person,
        "floor": transaction.floor,
        "items": [
            {
                "productId": item.product_id,
                "name": item.name,
                "spec": item.spec,
                "unit": item.unit,
                "quantity": _json_number(item.quantity),
                "unitPrice": _json_number(item.unit_price),
                "supplyPrice": _json_number(item.supply_price),
                "tax": _json_number(item.tax),
            }
            for item in transaction.items
        ],
        "totalSupplyPrice": _json_number(transaction.total_supply_price),
        "totalTax": _json_number(transaction.total_tax),
        "totalAmount": _json_number(transaction.total_amount),
        "isPaid": transaction.is_paid,
        "memo": transaction.memo,
    }


def append_transaction(script_url: str, transaction: Transaction, *, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
    """Append ``transaction`` to the remote sales sheet.

    The script parses the raw request body, which is sent as ``text/plain``.

    Raises:
        SheetServiceError: If the request fails.
    """

    data = json.dumps(transaction_to_payload(transaction), ensure_ascii=False).encode("utf-8")
    req = urllib.request.Request(script_url, data=data, method="POST")
    req.add_header("Content-Type", "text/plain")

    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            resp.read()
    except urllib.error.HTTPError as e:
        raise SheetServiceError(f"Sheet script error: {e.code} {e.reason}") from e
    except (urllib.error.URLError, OSError) as e:
        raise SheetServiceError(f"Sheet script unreachable: {e}") from e
    log.info("Appended transaction '%s' to the remote sheet", transaction.id)
