"""Fold flat transaction-sheet rows into transaction aggregates.

The sales and estimate sheets store one row per line item. Rows belonging to
the same document share an id, but ids are only unique per append batch on the
sheet side, so two unrelated documents entered close together can collide.
The reconciler uses the client name, business date, and floor as a
fingerprint: a row whose id is already known but whose fingerprint disagrees
is moved to a split id of its own.

The fingerprint is a heuristic about the sheet script's append behaviour, not
a documented guarantee. It will split a genuine multi-row document whose rows
straddle midnight or carry different floors.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Dict, Iterable, List, Sequence

from . import log
from .models import ZERO, Transaction
from .sheet_parser import ParsedRow, RawRow, RowError, parse_transaction_row


def recompute_totals(transaction: Transaction) -> Transaction:
    """Return a copy of ``transaction`` whose totals are derived from its items.

    Whatever totals the source implied are discarded; the items are the single
    source of truth.
    """

    supply = sum((item.supply_price for item in transaction.items), ZERO)
    tax = sum((item.tax for item in transaction.items), ZERO)
    return replace(
        transaction,
        total_supply_price=supply,
        total_tax=tax,
        total_amount=supply + tax,
    )


def _conflicts(existing: Transaction, row: ParsedRow) -> bool:
    """Tell whether ``row`` reuses the id of an unrelated transaction."""

    if existing.client_name != row.client_name:
        return True
    if existing.date != row.date:
        return True
    return bool(row.floor and existing.floor and row.floor != existing.floor)


@dataclass
class TransactionAccumulator:
    """Working state of a single reconciliation pass.

    Transactions are kept in first-seen order. The accumulator is owned by one
    :func:`reconcile_transactions` call and discarded afterwards.
    """

    transactions: Dict[str, Transaction] = field(default_factory=dict)
    skipped: int = 0
    splits: int = 0

    def add(self, row: ParsedRow) -> None:
        """Fold one validated row into the accumulated transactions."""

        working_id = row.id
        existing = self.transactions.get(working_id)
        if existing is not None and _conflicts(existing, row):
            working_id = f"{row.id}_split_{row.index}"
            self.splits += 1
            log.debug("Row %d collides with transaction '%s'; using '%s'", row.index, row.id, working_id)
            existing = self.transactions.get(working_id)

        if existing is None:
            existing = Transaction(
                id=working_id,
                date=row.date,
                type=row.type,
                client_name=row.client_name,
                memo=row.memo,
                floor=row.floor,
            )
        elif not existing.floor and row.floor:
            existing = replace(existing, floor=row.floor)

        if row.item is not None:
            item = replace(row.item, product_id=f"sheet-item-{working_id}-{len(existing.items)}")
            existing = replace(existing, items=existing.items + (item,))

        self.transactions[working_id] = existing

    def skip(self, error: RowError) -> None:
        self.skipped += 1
        log.debug("Skipping row %d: %s", error.index, error.reason)

    def finish(self) -> List[Transaction]:
        """Return every transaction with totals recomputed from its items."""

        return [recompute_totals(transaction) for transaction in self.transactions.values()]


def reconcile_rows(rows: Iterable[ParsedRow | RowError]) -> List[Transaction]:
    """Fold already-validated rows, in order, into transactions."""

    accumulator = TransactionAccumulator()
    for row in rows:
        if isinstance(row, RowError):
            accumulator.skip(row)
        else:
            accumulator.add(row)

    result = accumulator.finish()
    log.debug(
        "Reconciled %d transactions (%d rows skipped, %d id splits)",
        len(result),
        accumulator.skipped,
        accumulator.splits,
    )
    return result


def reconcile_transactions(rows: Sequence[RawRow]) -> List[Transaction]:
    """Turn raw transaction-sheet rows into transaction aggregates.

    Args:
        rows (Sequence[Sequence[object]]): Data rows in sheet order, header
            already removed.

    Returns:
        list[Transaction]: Transactions in first-seen order with items grouped
            and totals recomputed. Never raises on malformed cells; blank rows
            are skipped.
    """

    return reconcile_rows(parse_transaction_row(raw, index) for index, raw in enumerate(rows))


def sum_amounts(transactions: Iterable[Transaction]) -> Decimal:
    """Total the ``total_amount`` of the given transactions."""

    return sum((transaction.total_amount for transaction in transactions), ZERO)
