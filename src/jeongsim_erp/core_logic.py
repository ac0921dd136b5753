"""Business logic layer for Jeongsim ERP.

This module orchestrates the local workbook (via :mod:`data_manager`) and the
remote spreadsheet (via :mod:`sheet_client`). It owns the sync workflow that
pulls master data and transactions, links transactions to clients, and
reports the outcome to whoever asked for the sync.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field, replace
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from openpyxl.workbook import Workbook

from . import data_manager, log, sheet_client
from .constants import EXPECTED_SCHEMA_VERSION, TransactionType
from .models import ZERO, Client, Employee, ProductItem, Transaction
from .reconciler import recompute_totals, sum_amounts


MONTHLY_BUCKETS = 6
TOP_CLIENTS = 5


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced client or transaction is unknown."""


class SyncNotConfigured(BusinessRuleViolation):
    """Raised when a sync is requested without a configured script URL."""


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one pull from the remote spreadsheet."""

    clients: int = 0
    products: int = 0
    employees: int = 0
    transactions: int = 0
    company_info_updated: bool = False
    failed_sheets: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failed_sheets


SyncListener = Callable[[SyncResult], None]


@dataclass(frozen=True)
class DashboardStats:
    """Sales figures summarised over statements."""

    total_sales: Decimal
    monthly_sales: List[Tuple[str, Decimal]] = field(default_factory=list)
    top_clients: List[Tuple[str, Decimal]] = field(default_factory=list)
    client_count: int = 0


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer searches upward from the current
            working directory.

    Returns:
        RuntimeContext: Fully populated context ready for orchestration
            functions.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Persist any in-memory workbook changes to the configured data file."""
    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook)


# ---------------------------------------------------------------------------
# Client linkage and sync
# ---------------------------------------------------------------------------


def link_clients(transactions: Iterable[Transaction], clients: Sequence[Client]) -> List[Transaction]:
    """Attach client ids to transactions by exact client-name match.

    Transactions that already carry a ``client_id`` are left alone. When a
    match is found the client's contact person is copied over unless the
    client has none on file.

    Args:
        transactions (Iterable[Transaction]): Transactions to link.
        clients (Sequence[Client]): Candidate clients; the first one with a
            matching name wins.

    Returns:
        list[Transaction]: Transactions in input order, linked where possible.
    """
    by_name: Dict[str, Client] = {}
    for client in clients:
        by_name.setdefault(client.name, client)

    linked = []
    for transaction in transactions:
        client = None if transaction.client_id else by_name.get(transaction.client_name)
        if client is None:
            linked.append(transaction)
            continue
        linked.append(
            replace(
                transaction,
                client_id=client.id,
                contact_person=client.contact_person or transaction.contact_person,
            )
        )
    return linked


def _pull(label: str, failed: List[str], fetch: Callable[[], object], empty: object) -> object:
    """Run one sheet fetch, recording the sheet as failed instead of aborting."""
    try:
        return fetch()
    except sheet_client.SheetServiceError as exc:
        log.warning("Sync of sheet '%s' failed: %s", label, exc)
        failed.append(label)
        return empty


def sync_from_sheet(
    context: RuntimeContext,
    *,
    listeners: Sequence[SyncListener] = (),
) -> SyncResult:
    """Pull master data and transactions from the remote spreadsheet.

    Every non-empty pull replaces its local counterpart wholesale. A sheet
    that fails to load is logged and reported in
    :attr:`SyncResult.failed_sheets`; the remaining sheets still sync.
    Transactions from the sales and estimate sheets are linked to the freshly
    pulled clients, falling back to the stored clients when the pull returned
    none.

    Args:
        context (RuntimeContext): Runtime context whose workbook is updated
            in memory. Call :func:`persist_context` to write it to disk.
        listeners (Sequence[Callable[[SyncResult], None]]): Callbacks invoked
            with the result once the sync completes.

    Returns:
        SyncResult: Counts of what was stored and which sheets failed.

    Raises:
        SyncNotConfigured: If no script URL is configured.
    """
    sheets = context.settings.sheets
    url = sheets.script_url
    if not url:
        raise SyncNotConfigured("No spreadsheet script URL configured under [Sheets] ScriptUrl")

    timeout = sheets.timeout
    failed: List[str] = []
    log.info("Starting sync from '%s'", url)

    clients = _pull(sheets.company_sheet, failed, lambda: sheet_client.fetch_clients(url, sheets.company_sheet, timeout=timeout), [])
    products = _pull(sheets.product_sheet, failed, lambda: sheet_client.fetch_products(url, sheets.product_sheet, timeout=timeout), [])
    employees = _pull(sheets.employee_sheet, failed, lambda: sheet_client.fetch_employees(url, sheets.employee_sheet, timeout=timeout), [])
    office = _pull(sheets.office_sheet, failed, lambda: sheet_client.fetch_company_info(url, sheets.office_sheet, timeout=timeout), None)
    sales = _pull(sheets.sales_sheet, failed, lambda: sheet_client.fetch_transactions(url, sheets.sales_sheet, timeout=timeout), [])
    estimates = _pull(sheets.estimate_sheet, failed, lambda: sheet_client.fetch_transactions(url, sheets.estimate_sheet, timeout=timeout), [])

    workbook = context.workbook
    if clients:
        data_manager.save_clients(workbook, clients)
    if products:
        data_manager.save_products(workbook, products)
    if employees:
        data_manager.save_employees(workbook, employees)
    if office is not None:
        data_manager.save_company_info(workbook, office)

    transactions = [*sales, *estimates]
    if transactions:
        known_clients = clients or data_manager.get_clients(workbook)
        data_manager.save_transactions(workbook, link_clients(transactions, known_clients))

    result = SyncResult(
        clients=len(clients),
        products=len(products),
        employees=len(employees),
        transactions=len(transactions),
        company_info_updated=office is not None,
        failed_sheets=tuple(failed),
    )
    log.info(
        "Sync finished: %d clients, %d products, %d employees, %d transactions, %d failed sheets",
        result.clients,
        result.products,
        result.employees,
        result.transactions,
        len(result.failed_sheets),
    )
    for listener in listeners:
        listener(result)
    return result


def check_connection(context: RuntimeContext) -> bool:
    """Probe the configured spreadsheet script."""
    sheets = context.settings.sheets
    return sheet_client.check_connection(sheets.script_url, timeout=sheets.timeout)


# ---------------------------------------------------------------------------
# Clients
# ---------------------------------------------------------------------------


def list_clients(context: RuntimeContext) -> List[Client]:
    return data_manager.get_clients(context.workbook)


def list_products(context: RuntimeContext) -> List[ProductItem]:
    return data_manager.get_products(context.workbook)


def list_employees(context: RuntimeContext) -> List[Employee]:
    return data_manager.get_employees(context.workbook)


def get_client(context: RuntimeContext, client_id: str) -> Client:
    """Resolve a stored client by id.

    Raises:
        MissingReferenceError: If ``client_id`` is unknown.
    """
    for client in data_manager.get_clients(context.workbook):
        if client.id == client_id:
            return client
    log.warning("Client lookup failed for id '%s'", client_id)
    raise MissingReferenceError(f"Unknown client id: {client_id}")


def add_client(context: RuntimeContext, client: Client) -> Client:
    """Store a new client or update the one sharing its id."""
    if not client.name.strip():
        raise BusinessRuleViolation("Client name must not be empty")
    data_manager.save_client(context.workbook, client)
    log.info("Saved client '%s' (%s)", client.id, client.name)
    return client


def remove_client(context: RuntimeContext, client_id: str) -> None:
    """Delete a client.

    Raises:
        MissingReferenceError: If ``client_id`` is unknown.
    """
    if not data_manager.delete_client(context.workbook, client_id):
        log.warning("Client deletion failed for id '%s'", client_id)
        raise MissingReferenceError(f"Unknown client id: {client_id}")
    log.info("Deleted client '%s'", client_id)


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


def list_transactions(
    context: RuntimeContext,
    *,
    transaction_type: Optional[TransactionType] = None,
    floor: Optional[str] = None,
) -> List[Transaction]:
    """Return stored transactions newest first, optionally filtered.

    Args:
        context (RuntimeContext): Runtime context providing workbook access.
        transaction_type (TransactionType | None): Keep only this document
            type.
        floor (str | None): Keep only transactions tagged with this floor.

    Returns:
        list[Transaction]: Matching transactions sorted by date descending.
    """
    transactions = data_manager.get_transactions(context.workbook)
    if transaction_type is not None:
        transactions = [t for t in transactions if t.type == transaction_type]
    if floor is not None:
        transactions = [t for t in transactions if t.floor == floor]
    return transactions


def get_transaction(context: RuntimeContext, transaction_id: str) -> Transaction:
    """Resolve a stored transaction by id.

    Raises:
        MissingReferenceError: If ``transaction_id`` is unknown.
    """
    for transaction in data_manager.get_transactions(context.workbook):
        if transaction.id == transaction_id:
            return transaction
    log.warning("Transaction lookup failed for id '%s'", transaction_id)
    raise MissingReferenceError(f"Unknown transaction id: {transaction_id}")


def record_transaction(context: RuntimeContext, transaction: Transaction, *, push: bool = False) -> Transaction:
    """Store a transaction locally, optionally appending it to the remote sheet.

    Totals are recomputed from the items before anything is written.

    Raises:
        SyncNotConfigured: If ``push`` is requested without a script URL.
        SheetServiceError: If the remote append fails. The local copy is
            already updated in that case.
    """
    transaction = recompute_totals(transaction)
    data_manager.save_transaction(context.workbook, transaction)
    log.info("Recorded transaction '%s' for '%s'", transaction.id, transaction.client_name)
    if push:
        push_transaction(context, transaction)
    return transaction


def push_transaction(context: RuntimeContext, transaction: Transaction) -> None:
    """Append a transaction to the remote sales sheet."""
    sheets = context.settings.sheets
    if not sheets.script_url:
        raise SyncNotConfigured("No spreadsheet script URL configured under [Sheets] ScriptUrl")
    sheet_client.append_transaction(sheets.script_url, transaction, timeout=sheets.timeout)


def remove_transaction(context: RuntimeContext, transaction_id: str) -> None:
    """Delete a transaction and its items.

    Raises:
        MissingReferenceError: If ``transaction_id`` is unknown.
    """
    if not data_manager.delete_transaction(context.workbook, transaction_id):
        log.warning("Transaction deletion failed for id '%s'", transaction_id)
        raise MissingReferenceError(f"Unknown transaction id: {transaction_id}")
    log.info("Deleted transaction '%s'", transaction_id)


def mark_paid(context: RuntimeContext, transaction_id: str, *, paid: bool = True) -> Transaction:
    """Flag a statement as paid (or unpaid).

    Raises:
        MissingReferenceError: If ``transaction_id`` is unknown.
        BusinessRuleViolation: If the transaction is a quotation.
    """
    transaction = get_transaction(context, transaction_id)
    if transaction.type != TransactionType.STATEMENT:
        raise BusinessRuleViolation("Only statements can be marked as paid")
    updated = replace(transaction, is_paid=paid)
    data_manager.save_transaction(context.workbook, updated)
    log.info("Marked transaction '%s' paid=%s", transaction_id, paid)
    return updated


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


def calculate_dashboard_stats(context: RuntimeContext) -> DashboardStats:
    """Summarise statement sales for the dashboard.

    Quotations are ignored. Monthly figures cover the most recent
    ``MONTHLY_BUCKETS`` months that have sales, oldest first; the client
    ranking lists the ``TOP_CLIENTS`` best clients by amount.
    """
    statements = [
        t for t in data_manager.get_transactions(context.workbook) if t.type == TransactionType.STATEMENT
    ]

    monthly: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    by_client: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for transaction in statements:
        monthly[transaction.date[:7]] += transaction.total_amount
        by_client[transaction.client_name] += transaction.total_amount

    monthly_sales = sorted(monthly.items())[-MONTHLY_BUCKETS:]
    top_clients = sorted(by_client.items(), key=lambda pair: pair[1], reverse=True)[:TOP_CLIENTS]

    return DashboardStats(
        total_sales=sum_amounts(statements),
        monthly_sales=monthly_sales,
        top_clients=top_clients,
        client_count=len(by_client),
    )
