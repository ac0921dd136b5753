"""Immutable records shared by the workbook layer, sheet client, and reconciler."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Tuple

from .constants import TransactionType


ZERO = Decimal("0")


@dataclass(frozen=True)
class Client:
    """A customer company the business issues documents to."""

    id: str
    name: str
    registration_number: str = ""
    owner_name: str = ""
    address: str = ""
    contact_person: str = ""
    email: str = ""
    phone: str = ""
    note: str = ""


@dataclass(frozen=True)
class ProductItem:
    """A catalogue entry offered on quotations and statements."""

    id: str
    name: str
    spec: str = ""
    unit: str = ""
    unit_price: Decimal = ZERO


@dataclass(frozen=True)
class Employee:
    """Staff member who may sign off documents."""

    id: str
    name: str
    position: str = ""
    email: str = ""
    phone: str = ""
    signature_image: str = ""


@dataclass(frozen=True)
class CompanyInfo:
    """The operating business printed on every document header."""

    name: str = ""
    registration_number: str = ""
    owner_name: str = ""
    address: str = ""
    phone: str = ""
    email: str = ""
    fax: str = ""
    bank_info: str = ""
    stamp_image: str = ""


@dataclass(frozen=True)
class TransactionItem:
    """One line of a quotation or statement.

    ``supply_price`` and ``tax`` are carried as reported by the source; they
    are never recomputed from ``quantity`` and ``unit_price``.
    """

    product_id: str
    name: str
    spec: str = ""
    unit: str = ""
    quantity: Decimal = ZERO
    unit_price: Decimal = ZERO
    supply_price: Decimal = ZERO
    tax: Decimal = ZERO


@dataclass(frozen=True)
class Transaction:
    """A quotation or statement with its ordered line items."""

    id: str
    date: str
    type: TransactionType
    client_id: str = ""
    client_name: str = ""
    items: Tuple[TransactionItem, ...] = field(default_factory=tuple)
    total_supply_price: Decimal = ZERO
    total_tax: Decimal = ZERO
    total_amount: Decimal = ZERO
    is_paid: bool = False
    memo: str = ""
    floor: str = ""
    contact_person: str = ""


__all__ = [
    "ZERO",
    "Client",
    "ProductItem",
    "Employee",
    "CompanyInfo",
    "TransactionItem",
    "Transaction",
]
