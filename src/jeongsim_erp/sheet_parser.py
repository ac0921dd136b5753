"""Row parsing for data pulled from the remote spreadsheet.

The sheet script hands back untyped 2D arrays: cells may be strings, numbers,
booleans, or missing entirely. Everything in this module reads those rows
through the named field layouts declared in :mod:`jeongsim_erp.constants` and
turns them into the immutable records from :mod:`jeongsim_erp.models`.

None of the helpers raise on bad cell content. Malformed numbers degrade to
zero and empty rows are reported as :class:`RowError` values so callers can
decide how loudly to skip them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Sequence, Union

from . import log
from .constants import (
    BUSINESS_UTC_OFFSET,
    CLIENT_ROW_FIELDS,
    EMPLOYEE_ROW_FIELDS,
    OFFICE_ROW_FIELDS,
    PRODUCT_ROW_FIELDS,
    QUOTATION_LABEL,
    TRANSACTION_ROW_FIELDS,
    FloorLabel,
    TransactionType,
)
from .models import ZERO, Client, CompanyInfo, Employee, ProductItem, TransactionItem


_WHITESPACE = re.compile(r"\s+")
_IMAGE_SUFFIX = re.compile(r"\.(jpeg|jpg|gif|png|svg|webp)$", re.IGNORECASE)
_DRIVE_PATH_ID = re.compile(r"/d/([a-zA-Z0-9_-]+)")
_DRIVE_QUERY_ID = re.compile(r"[?&]id=([a-zA-Z0-9_-]+)")
_PLAIN_NUMBER = re.compile(r"[+-]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
DRIVE_THUMBNAIL_URL = "https://drive.google.com/thumbnail?id={file_id}&sz=w1000"

RawRow = Sequence[object]


@dataclass(frozen=True)
class ParsedRow:
    """A transaction-sheet row after validation and per-row normalization."""

    index: int
    id: str
    client_name: str
    date: str
    floor: str
    type: TransactionType
    memo: str
    item: Optional[TransactionItem]


@dataclass(frozen=True)
class RowError:
    """A transaction-sheet row that carries nothing usable."""

    index: int
    reason: str


def cell_text(value: object) -> str:
    """Render a raw cell as text.

    Falsy cells (``None``, ``""``, ``0``, ``False``) become the empty string.
    Whole-number floats drop their ``.0`` suffix so numeric ids survive the
    JSON round trip unchanged.
    """

    if not value:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def parse_number(value: object) -> Decimal:
    """Parse a numeric cell, tolerating thousands separators.

    Args:
        value (object): Raw cell value, typically ``"1,500"``, ``1500`` or
            ``None``.

    Returns:
        Decimal: The parsed amount, or zero when the cell is empty,
            non-numeric, or not finite. Only ASCII decimal notation counts as
            numeric; forms such as ``"1_000"`` or full-width digits do not.
    """

    if value is None or isinstance(value, bool):
        return ZERO
    text = str(value).replace(",", "").strip()
    if not _PLAIN_NUMBER.fullmatch(text):
        return ZERO
    try:
        number = Decimal(text)
    except InvalidOperation:
        return ZERO
    if not number.is_finite():
        return ZERO
    return number


def row_values(raw: RawRow, fields: Sequence[str]) -> Dict[str, object]:
    """Map a positional row onto named fields, padding short rows with ``None``."""

    if not isinstance(raw, (list, tuple)):
        raw = ()
    return {name: (raw[idx] if idx < len(raw) else None) for idx, name in enumerate(fields)}


def normalize_date(raw: object) -> str:
    """Convert a raw date cell into a ``YYYY-MM-DD`` business date.

    The sheet script serialises date-typed cells as UTC instants
    (``2023-10-15T15:00:00.000Z``) even though the operator typed a KST
    calendar date. Such values are shifted by the fixed business offset before
    being truncated to the day. A ``T`` without the ``Z`` marker is truncated
    as-is, and anything else passes through unchanged.

    Args:
        raw (object): Raw cell value, possibly missing.

    Returns:
        str: Canonical date string, or ``""`` when the cell is empty.
    """

    text = cell_text(raw)
    if "T" not in text:
        return text

    day_part = text.split("T", 1)[0]
    if not text.endswith("Z"):
        return day_part

    try:
        instant = datetime.fromisoformat(text)
        shifted = instant.astimezone(timezone.utc) + BUSINESS_UTC_OFFSET
    except (ValueError, OverflowError):
        log.debug("Unparseable timestamp '%s'; keeping date prefix", text)
        return day_part
    return f"{shifted.year:04d}-{shifted.month:02d}-{shifted.day:02d}"


def normalize_floor(raw: object) -> str:
    """Canonicalize a free-text floor designator.

    ``"1"``, ``"1F"``, ``"1 층"`` and friends collapse to ``1층`` (likewise for
    the second floor). Unknown labels are returned trimmed with their original
    casing.
    """

    floor = cell_text(raw).strip()
    key = _WHITESPACE.sub("", floor).upper()
    if key in ("1", "1F") or FloorLabel.FIRST.value in key:
        return FloorLabel.FIRST.value
    if key in ("2", "2F") or FloorLabel.SECOND.value in key:
        return FloorLabel.SECOND.value
    return floor


def parse_transaction_type(raw: object) -> TransactionType:
    """Map the sheet's doc-type label onto :class:`TransactionType`."""

    if cell_text(raw) == QUOTATION_LABEL:
        return TransactionType.QUOTATION
    return TransactionType.STATEMENT


def convert_to_direct_link(url: object) -> str:
    """Turn a Google Drive sharing link into an embeddable thumbnail URL.

    Direct image links and non-Drive URLs are returned trimmed. Drive links
    are matched on either the ``/d/<id>`` path form or the ``id=<id>`` query
    form.
    """

    clean = cell_text(url).strip()
    if not clean or _IMAGE_SUFFIX.search(clean):
        return clean

    if "drive.google.com" in clean or "docs.google.com" in clean:
        match = _DRIVE_PATH_ID.search(clean) or _DRIVE_QUERY_ID.search(clean)
        if match:
            return DRIVE_THUMBNAIL_URL.format(file_id=match.group(1))
    return clean


def parse_products(rows: Sequence[RawRow]) -> List[ProductItem]:
    """Build catalogue entries from the product sheet, dropping unnamed rows."""

    products = []
    for index, raw in enumerate(rows):
        cols = row_values(raw, PRODUCT_ROW_FIELDS)
        product = ProductItem(
            id=f"sheet-prod-{index}",
            name=cell_text(cols["name"]),
            spec=cell_text(cols["spec"]),
            unit=cell_text(cols["unit"]),
            unit_price=parse_number(cols["unit_price"]),
        )
        if product.name:
            products.append(product)
    return products


def parse_clients(rows: Sequence[RawRow]) -> List[Client]:
    """Build client records from the company sheet, dropping unnamed rows."""

    clients = []
    for index, raw in enumerate(rows):
        cols = row_values(raw, CLIENT_ROW_FIELDS)
        client = Client(id=f"sheet-client-{index}", **{name: cell_text(cols[name]) for name in CLIENT_ROW_FIELDS})
        if client.name:
            clients.append(client)
    return clients


def parse_employees(rows: Sequence[RawRow]) -> List[Employee]:
    """Build employee records from the employee sheet, dropping unnamed rows."""

    employees = []
    for index, raw in enumerate(rows):
        cols = row_values(raw, EMPLOYEE_ROW_FIELDS)
        employee = Employee(
            id=f"sheet-emp-{index}",
            name=cell_text(cols["name"]),
            position=cell_text(cols["position"]),
            email=cell_text(cols["email"]),
            phone=cell_text(cols["phone"]),
            signature_image=convert_to_direct_link(cols["signature_image"]),
        )
        if employee.name:
            employees.append(employee)
    return employees


def parse_company_info(rows: Sequence[RawRow]) -> Optional[CompanyInfo]:
    """Read the business's own details from the first row of the office sheet."""

    if not rows:
        return None
    cols = row_values(rows[0], OFFICE_ROW_FIELDS)
    values = {name: cell_text(cols[name]) for name in OFFICE_ROW_FIELDS}
    values["stamp_image"] = convert_to_direct_link(cols["stamp_image"])
    return CompanyInfo(**values)


def parse_transaction_row(raw: RawRow, index: int) -> Union[ParsedRow, RowError]:
    """Validate one transaction-sheet row and normalize its per-row fields.

    Args:
        raw (Sequence[object]): Positional cells in the transaction layout.
        index (int): Position of the row in the fetched array, used for
            synthetic ids.

    Returns:
        ParsedRow | RowError: The typed row, or an error value when both the
            id and client name cells are blank.
    """

    cols = row_values(raw, TRANSACTION_ROW_FIELDS)
    row_id = cell_text(cols["id"]).strip()
    client_name = cell_text(cols["client_name"]).strip()

    if not row_id and not client_name:
        return RowError(index=index, reason="missing id and client name")
    if not row_id:
        row_id = f"gen-id-{index}"

    item = None
    if cols["item_name"]:
        item = TransactionItem(
            product_id="",
            name=cell_text(cols["item_name"]),
            spec=cell_text(cols["spec"]),
            unit=cell_text(cols["unit"]),
            quantity=parse_number(cols["quantity"]),
            unit_price=parse_number(cols["unit_price"]),
            supply_price=parse_number(cols["supply_price"]),
            tax=parse_number(cols["tax"]),
        )

    return ParsedRow(
        index=index,
        id=row_id,
        client_name=client_name,
        date=normalize_date(cols["date"]),
        floor=normalize_floor(cols["floor"]),
        type=parse_transaction_type(cols["doc_type"]),
        memo=cell_text(cols["memo"]),
        item=item,
    )
