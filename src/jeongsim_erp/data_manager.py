"""Data access layer for Jeongsim ERP.

This module provides low-level helpers that read from and write to the local
``jeongsim_data.xlsx`` workbook, which caches everything pulled from the
remote spreadsheet. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Entity operations: loading and saving clients, products, employees,
   transactions, and the company profile.

Bulk saves replace a sheet wholesale; every sync pull rebuilds the local copy
from scratch, so no incremental diffing happens here.
"""


from __future__ import annotations

import configparser
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE, Cell
from openpyxl.styles import Font
from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet
import openpyxl

from . import log
from .constants import RemoteSheet, SheetName, TransactionType
from .models import ZERO, Client, CompanyInfo, Employee, ProductItem, Transaction, TransactionItem


CONFIG_FILE_NAME = "config.ini"
DEFAULT_TIMEOUT_SECONDS = 30.0
# Excel keeps 15 significant digits in a numeric cell.
EXCEL_NUMBER_DIGITS = 15

CLIENTS_SHEET = SheetName.CLIENTS.value
PRODUCTS_SHEET = SheetName.PRODUCTS.value
EMPLOYEES_SHEET = SheetName.EMPLOYEES.value
TRANSACTIONS_SHEET = SheetName.TRANSACTIONS.value
TRANSACTION_ITEMS_SHEET = SheetName.TRANSACTION_ITEMS.value
COMPANY_INFO_SHEET = SheetName.COMPANY_INFO.value

# Header rows of the local workbook. ``Seq`` ties item rows to the transaction
# row they were written with, since transaction ids may repeat across sheets.
SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    CLIENTS_SHEET: [
        "ClientID",
        "Name",
        "RegistrationNumber",
        "OwnerName",
        "Address",
        "ContactPerson",
        "Email",
        "Phone",
        "Note",
    ],
    PRODUCTS_SHEET: ["ProductID", "Name", "Spec", "Unit", "UnitPrice"],
    EMPLOYEES_SHEET: ["EmployeeID", "Name", "Position", "Email", "Phone", "SignatureImage"],
    TRANSACTIONS_SHEET: [
        "Seq",
        "TransactionID",
        "Date",
        "Type",
        "ClientID",
        "ClientName",
        "ContactPerson",
        "Floor",
        "TotalSupplyPrice",
        "TotalTax",
        "TotalAmount",
        "IsPaid",
        "Memo",
    ],
    TRANSACTION_ITEMS_SHEET: [
        "Seq",
        "TransactionID",
        "ProductID",
        "Name",
        "Spec",
        "Unit",
        "Quantity",
        "UnitPrice",
        "SupplyPrice",
        "Tax",
    ],
    COMPANY_INFO_SHEET: [
        "Name",
        "RegistrationNumber",
        "OwnerName",
        "Address",
        "Phone",
        "Email",
        "Fax",
        "BankInfo",
        "StampImage",
    ],
}


@dataclass(frozen=True)
class SheetSettings:
    """Where the remote spreadsheet script lives and which sheets to read."""

    script_url: str = ""
    product_sheet: str = RemoteSheet.PRODUCTS.value
    company_sheet: str = RemoteSheet.CLIENTS.value
    employee_sheet: str = RemoteSheet.EMPLOYEES.value
    office_sheet: str = RemoteSheet.OFFICE.value
    sales_sheet: str = RemoteSheet.SALES.value
    estimate_sheet: str = RemoteSheet.ESTIMATES.value
    timeout: float = DEFAULT_TIMEOUT_SECONDS


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    schema_version: str
    sheets: SheetSettings = SheetSettings()


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no parent directory contains ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_sheet_settings(parser: configparser.ConfigParser) -> SheetSettings:
    """Read the optional ``[Sheets]`` section, defaulting every entry."""

    defaults = SheetSettings()
    return SheetSettings(
        script_url=parser.get("Sheets", "ScriptUrl", fallback=defaults.script_url).strip(),
        product_sheet=parser.get("Sheets", "ProductSheet", fallback=defaults.product_sheet),
        company_sheet=parser.get("Sheets", "CompanySheet", fallback=defaults.company_sheet),
        employee_sheet=parser.get("Sheets", "EmployeeSheet", fallback=defaults.employee_sheet),
        office_sheet=parser.get("Sheets", "OfficeSheet", fallback=defaults.office_sheet),
        sales_sheet=parser.get("Sheets", "SalesSheet", fallback=defaults.sales_sheet),
        estimate_sheet=parser.get("Sheets", "EstimateSheet", fallback=defaults.estimate_sheet),
        timeout=parser.getfloat("Sheets", "Timeout", fallback=defaults.timeout),
    )


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    Relative ``DataFile`` entries are expanded against ``base_path`` when
    provided, or against the current working directory as a fallback.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory to anchor relative ``DataFile``
            entries.

    Returns:
        ConfigSettings: Immutable settings with the resolved workbook path,
            schema version, and remote sheet settings.

    Raises:
        KeyError: If a required ``[System]`` entry is missing.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        schema_version=schema_version,
        sheets=parse_sheet_settings(parser),
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the local workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk, creating parent directories on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def write_header(sheet: Worksheet, columns: Sequence[str]) -> None:
    """Write a bold header row into the first row of ``sheet``."""

    bold_font = Font(bold=True)
    for column_index, column_name in enumerate(columns, start=1):
        cell = sheet.cell(row=1, column=column_index)
        cell.value = column_name
        cell.font = bold_font


def _reset_sheet(workbook: Workbook, sheet_name: str) -> Worksheet:
    """Replace ``sheet_name`` with an empty sheet holding only its header row.

    The new sheet keeps the position of the old one so workbook tab order is
    stable across syncs.
    """

    old = workbook[sheet_name]
    position = workbook.index(old)
    workbook.remove(old)
    sheet = workbook.create_sheet(title=sheet_name, index=position)
    write_header(sheet, SHEET_COLUMNS[sheet_name])
    return sheet


def _iter_rows(workbook: Workbook, sheet_name: str) -> Iterable[tuple]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def _cell_value(value: object) -> object:
    """Make a serialized value safe to store in a worksheet cell.

    Control characters openpyxl refuses are dropped from text, and amounts
    too long for an Excel number are kept as text so they read back exactly.
    """

    if isinstance(value, str):
        return ILLEGAL_CHARACTERS_RE.sub("", value)
    if isinstance(value, Decimal) and len(value.as_tuple().digits) > EXCEL_NUMBER_DIGITS:
        return str(value)
    return value


def _pin_text(cell: Cell) -> None:
    # openpyxl treats any text starting with "=" as a formula
    if isinstance(cell.value, str) and cell.value.startswith("="):
        cell.data_type = "s"


def _append_row(sheet: Worksheet, values: Sequence[object]) -> None:
    sheet.append([_cell_value(value) for value in values])
    for cell in sheet[sheet.max_row]:
        _pin_text(cell)


def _replace_rows(workbook: Workbook, sheet_name: str, rows: Iterable[Sequence[object]]) -> int:
    sheet = _reset_sheet(workbook, sheet_name)
    count = 0
    for row in rows:
        _append_row(sheet, row)
        count += 1
    return count


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        key_column (str): Header title identifying the lookup column.
        key_value (str): Value to match within the key column.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_cells = list(sheet[1])
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(header_cells)}
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value is not None and str(cell_value) == key_value:
            return row_idx

    return None


def _text(value: object) -> str:
    return "" if value is None else str(value)


def _decimal(value: object) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        return Decimal(str(value))
    except InvalidOperation:
        log.warning("Non-numeric value '%s' in workbook; reading as 0", value)
        return ZERO


def _padded(raw: Sequence[object], width: int) -> List[object]:
    values = list(raw[:width])
    return values + [None] * (width - len(values))


# ---------------------------------------------------------------------------
# Row (de)serialization
# ---------------------------------------------------------------------------


def serialize_client(record: Client) -> list[object]:
    """Arrange a client in the ``Clients`` column order."""

    return [
        record.id,
        record.name,
        record.registration_number,
        record.owner_name,
        record.address,
        record.contact_person,
        record.email,
        record.phone,
        record.note,
    ]


def deserialize_client(raw_row: Sequence[object]) -> Client:
    values = [_text(value) for value in _padded(raw_row, 9)]
    return Client(*values)


def serialize_product(record: ProductItem) -> list[object]:
    return [record.id, record.name, record.spec, record.unit, record.unit_price]


def deserialize_product(raw_row: Sequence[object]) -> ProductItem:
    product_id, name, spec, unit, unit_price = _padded(raw_row, 5)
    return ProductItem(
        id=_text(product_id),
        name=_text(name),
        spec=_text(spec),
        unit=_text(unit),
        unit_price=_decimal(unit_price),
    )


def serialize_employee(record: Employee) -> list[object]:
    return [record.id, record.name, record.position, record.email, record.phone, record.signature_image]


def deserialize_employee(raw_row: Sequence[object]) -> Employee:
    values = [_text(value) for value in _padded(raw_row, 6)]
    return Employee(*values)


def serialize_company_info(record: CompanyInfo) -> list[object]:
    return [
        record.name,
        record.registration_number,
        record.owner_name,
        record.address,
        record.phone,
        record.email,
        record.fax,
        record.bank_info,
        record.stamp_image,
    ]


def deserialize_company_info(raw_row: Sequence[object]) -> CompanyInfo:
    values = [_text(value) for value in _padded(raw_row, 9)]
    return CompanyInfo(*values)


def serialize_transaction(record: Transaction, *, seq: int) -> list[object]:
    """Convert a transaction header into the ``Transactions`` column order.

    Args:
        record (Transaction): Transaction to persist; its items are written
            separately by :func:`serialize_transaction_items`.
        seq (int): Position of the row in this write, used to reattach items.

    Returns:
        list[object]: Values ready for worksheet insertion, with monetary
            amounts kept as :class:`~decimal.Decimal`.
    """

    return [
        seq,
        record.id,
        record.date,
        record.type.value,
        record.client_id,
        record.client_name,
        record.contact_person,
        record.floor,
        record.total_supply_price,
        record.total_tax,
        record.total_amount,
        record.is_paid,
        record.memo,
    ]


def serialize_transaction_items(record: Transaction, *, seq: int) -> List[list[object]]:
    return [
        [
            seq,
            record.id,
            item.product_id,
            item.name,
            item.spec,
            item.unit,
            item.quantity,
            item.unit_price,
            item.supply_price,
            item.tax,
        ]
        for item in record.items
    ]


def deserialize_transaction_item(raw_row: Sequence[object]) -> TransactionItem:
    _seq, _transaction_id, product_id, name, spec, unit, quantity, unit_price, supply, tax = _padded(raw_row, 10)
    return TransactionItem(
        product_id=_text(product_id),
        name=_text(name),
        spec=_text(spec),
        unit=_text(unit),
        quantity=_decimal(quantity),
        unit_price=_decimal(unit_price),
        supply_price=_decimal(supply),
        tax=_decimal(tax),
    )


def deserialize_transaction(raw_row: Sequence[object], items: Sequence[TransactionItem] = ()) -> Transaction:
    """Convert a raw ``Transactions`` row plus its item rows into a record.

    Unknown type labels are read as statements so a hand-edited workbook never
    prevents loading.
    """

    (
        _seq,
        transaction_id,
        date,
        type_raw,
        client_id,
        client_name,
        contact_person,
        floor,
        total_supply_raw,
        total_tax_raw,
        total_amount_raw,
        is_paid,
        memo,
    ) = _padded(raw_row, 13)

    try:
        transaction_type = TransactionType(_text(type_raw))
    except ValueError:
        log.warning("Unknown transaction type '%s' for '%s'; reading as STATEMENT", type_raw, transaction_id)
        transaction_type = TransactionType.STATEMENT

    return Transaction(
        id=_text(transaction_id),
        date=_text(date),
        type=transaction_type,
        client_id=_text(client_id),
        client_name=_text(client_name),
        items=tuple(items),
        total_supply_price=_decimal(total_supply_raw),
        total_tax=_decimal(total_tax_raw),
        total_amount=_decimal(total_amount_raw),
        is_paid=bool(is_paid),
        memo=_text(memo),
        floor=_text(floor),
        contact_person=_text(contact_person),
    )


# ---------------------------------------------------------------------------
# Entity operations
# ---------------------------------------------------------------------------


def get_clients(workbook: Workbook) -> List[Client]:
    """Return every stored client in sheet order."""

    return [deserialize_client(raw) for raw in _iter_rows(workbook, CLIENTS_SHEET)]


def save_clients(workbook: Workbook, clients: Iterable[Client]) -> None:
    """Replace the stored client list wholesale."""

    count = _replace_rows(workbook, CLIENTS_SHEET, (serialize_client(client) for client in clients))
    log.debug("Stored %d clients", count)


def save_client(workbook: Workbook, client: Client) -> None:
    """Update the client row sharing ``client.id``, or append a new one."""

    row_index = locate_row(workbook, CLIENTS_SHEET, "ClientID", client.id)
    sheet = workbook[CLIENTS_SHEET]
    if row_index is None:
        _append_row(sheet, serialize_client(client))
        return
    for column, value in enumerate(serialize_client(client), start=1):
        _pin_text(sheet.cell(row=row_index, column=column, value=_cell_value(value)))


def delete_client(workbook: Workbook, client_id: str) -> bool:
    """Remove a client by id.

    Returns:
        bool: ``True`` when a row was removed.
    """

    clients = get_clients(workbook)
    remaining = [client for client in clients if client.id != client_id]
    if len(remaining) == len(clients):
        return False
    save_clients(workbook, remaining)
    return True


def get_products(workbook: Workbook) -> List[ProductItem]:
    return [deserialize_product(raw) for raw in _iter_rows(workbook, PRODUCTS_SHEET)]


def save_products(workbook: Workbook, products: Iterable[ProductItem]) -> None:
    _replace_rows(workbook, PRODUCTS_SHEET, (serialize_product(product) for product in products))


def get_employees(workbook: Workbook) -> List[Employee]:
    return [deserialize_employee(raw) for raw in _iter_rows(workbook, EMPLOYEES_SHEET)]


def save_employees(workbook: Workbook, employees: Iterable[Employee]) -> None:
    _replace_rows(workbook, EMPLOYEES_SHEET, (serialize_employee(employee) for employee in employees))


def get_company_info(workbook: Workbook) -> CompanyInfo:
    """Return the stored company profile, or an empty one when none is saved."""

    for raw in _iter_rows(workbook, COMPANY_INFO_SHEET):
        return deserialize_company_info(raw)
    return CompanyInfo()


def save_company_info(workbook: Workbook, info: CompanyInfo) -> None:
    _replace_rows(workbook, COMPANY_INFO_SHEET, [serialize_company_info(info)])


def sort_by_date_desc(transactions: Iterable[Transaction]) -> List[Transaction]:
    """Order transactions newest first; ties keep their incoming order."""

    return sorted(transactions, key=lambda transaction: transaction.date, reverse=True)


def get_transactions(workbook: Workbook) -> List[Transaction]:
    """Load stored transactions with their items, newest first."""

    items_by_seq: Dict[object, List[TransactionItem]] = defaultdict(list)
    for raw in _iter_rows(workbook, TRANSACTION_ITEMS_SHEET):
        items_by_seq[raw[0]].append(deserialize_transaction_item(raw))

    transactions = [
        deserialize_transaction(raw, items_by_seq.get(raw[0], ()))
        for raw in _iter_rows(workbook, TRANSACTIONS_SHEET)
    ]
    return sort_by_date_desc(transactions)


def save_transactions(workbook: Workbook, transactions: Iterable[Transaction]) -> None:
    """Replace every stored transaction, writing them newest first."""

    ordered = sort_by_date_desc(transactions)
    header_rows: List[list[Any]] = []
    item_rows: List[list[Any]] = []
    for seq, transaction in enumerate(ordered, start=1):
        header_rows.append(serialize_transaction(transaction, seq=seq))
        item_rows.extend(serialize_transaction_items(transaction, seq=seq))

    _replace_rows(workbook, TRANSACTIONS_SHEET, header_rows)
    _replace_rows(workbook, TRANSACTION_ITEMS_SHEET, item_rows)
    log.debug("Stored %d transactions with %d items", len(header_rows), len(item_rows))


def save_transaction(workbook: Workbook, transaction: Transaction) -> None:
    """Insert ``transaction`` or replace the stored one with the same id."""

    transactions = get_transactions(workbook)
    for idx, existing in enumerate(transactions):
        if existing.id == transaction.id:
            transactions[idx] = transaction
            break
    else:
        transactions.append(transaction)
    save_transactions(workbook, transactions)


def delete_transaction(workbook: Workbook, transaction_id: str) -> bool:
    """Remove a transaction and its items.

    Returns:
        bool: ``True`` when something was removed.
    """

    transactions = get_transactions(workbook)
    remaining = [transaction for transaction in transactions if transaction.id != transaction_id]
    if len(remaining) == len(transactions):
        return False
    save_transactions(workbook, remaining)
    return True
