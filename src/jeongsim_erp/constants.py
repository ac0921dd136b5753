"""Enumerations and fixed contracts shared across Jeongsim ERP modules.

Centralises domain constants so that the local workbook layer, the remote
sheet client, and the reconciliation logic agree on identifiers, sheet names,
and the column layout of every sheet kind.
"""

from __future__ import annotations

from datetime import timedelta
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Business dates are entered in KST; the sheet script serialises them as UTC.
BUSINESS_UTC_OFFSET = timedelta(hours=9)

# Doc-type label the sheet uses for quotations; every other label is a statement.
QUOTATION_LABEL = "견적서"


class TransactionType(str, Enum):
    """Enumerate the two business documents a transaction can represent."""

    QUOTATION = "QUOTATION"
    STATEMENT = "STATEMENT"


class FloorLabel(str, Enum):
    """Canonical floor tags attached to transactions."""

    FIRST = "1층"
    SECOND = "2층"


class SheetName(str, Enum):
    """Enumerate the local workbook sheet names managed by the data layer."""

    CLIENTS = "Clients"
    PRODUCTS = "Products"
    EMPLOYEES = "Employees"
    TRANSACTIONS = "Transactions"
    TRANSACTION_ITEMS = "TransactionItems"
    COMPANY_INFO = "CompanyInfo"


class RemoteSheet(str, Enum):
    """Default sheet names exposed by the remote spreadsheet script."""

    PRODUCTS = "info"
    CLIENTS = "company"
    EMPLOYEES = "employee"
    OFFICE = "office"
    SALES = "data"
    ESTIMATES = "estimate"


# Column layouts of the remote sheets. Positions are a contract with the sheet
# script; the header row is stripped before rows reach us.
PRODUCT_ROW_FIELDS: tuple[str, ...] = ("name", "spec", "unit", "unit_price")

CLIENT_ROW_FIELDS: tuple[str, ...] = (
    "name",
    "registration_number",
    "owner_name",
    "address",
    "contact_person",
    "email",
    "phone",
    "note",
)

EMPLOYEE_ROW_FIELDS: tuple[str, ...] = (
    "name",
    "position",
    "email",
    "phone",
    "signature_image",
)

OFFICE_ROW_FIELDS: tuple[str, ...] = (
    "name",
    "registration_number",
    "owner_name",
    "address",
    "phone",
    "email",
    "fax",
    "bank_info",
    "stamp_image",
)

TRANSACTION_ROW_FIELDS: tuple[str, ...] = (
    "id",
    "date",
    "doc_type",
    "floor",
    "client_name",
    "item_name",
    "spec",
    "unit",
    "quantity",
    "unit_price",
    "supply_price",
    "tax",
    "total",
    "memo",
    "timestamp",
)


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "BUSINESS_UTC_OFFSET",
    "QUOTATION_LABEL",
    "TransactionType",
    "FloorLabel",
    "SheetName",
    "RemoteSheet",
    "PRODUCT_ROW_FIELDS",
    "CLIENT_ROW_FIELDS",
    "EMPLOYEE_ROW_FIELDS",
    "OFFICE_ROW_FIELDS",
    "TRANSACTION_ROW_FIELDS",
]
