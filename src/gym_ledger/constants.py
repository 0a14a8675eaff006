"""Enumerations shared across Gym Ledger modules.

Centralises domain constants so that the data access layer (DAL), business
logic layer (BLL), and the command-line front-end rely on a single source of
truth for membership tiers, ledger labels, and collection names.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"


class MembershipType(str, Enum):
    """Enumerate the membership tiers sold at the front desk."""

    DAY_PASS = "Day Pass"
    WARRIOR_PASS = "Warrior Pass"
    GLADIATOR_PASS = "Gladiator Pass"
    ALPHA_ELITE_PASS = "Alpha Elite Pass"


class MemberStatus(str, Enum):
    """Enumerate the derived membership states."""

    ACTIVE = "Active"
    EXPIRED = "Expired"


class PaymentMethod(str, Enum):
    """Enumerate supported payment mechanisms."""

    CASH = "Cash"
    GCASH = "GCash"
    BANK_TRANSFER = "Bank Transfer"
    CREDIT_CARD = "Credit Card"


class CashflowType(str, Enum):
    """Enumerate the two sides of the cashflow ledger."""

    INCOME = "income"
    EXPENSE = "expense"


class ExpenseSource(str, Enum):
    """Enumerate the expense categories staff can book."""

    RENT = "Rent"
    UTILITIES = "Utilities"
    SALARIES = "Salaries"
    MAINTENANCE = "Maintenance"
    EQUIPMENT = "Equipment"
    MARKETING = "Marketing"
    OTHER = "Other"


class LinkedType(str, Enum):
    """Enumerate the primary entities a ledger entry can point back to."""

    MEMBER = "member"
    WALK_IN = "walkin"
    SALE = "sale"
    RENEWAL = "renewal"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    MEMBERS = "Members"
    WALK_INS = "WalkIns"
    INVENTORY = "Inventory"
    SALES = "Sales"
    CASHFLOW = "Cashflow"
    RENEWAL_PAYMENTS = "RenewalPayments"


# Income source labels written by the ledger writer.
WALK_IN_SOURCE = MembershipType.DAY_PASS.value
PRODUCT_SALE_SOURCE = "Product Sale"
DEFAULT_WALK_IN_NAME = "Guest"

# Prices used when config.ini does not override them in [Pricing].
DEFAULT_TIER_PRICES: dict[MembershipType, Decimal] = {
    MembershipType.DAY_PASS: Decimal("100"),
    MembershipType.WARRIOR_PASS: Decimal("799"),
    MembershipType.GLADIATOR_PASS: Decimal("999"),
    MembershipType.ALPHA_ELITE_PASS: Decimal("2199"),
}

# Renewal period labels used by bulk renewals, one per tier.
DEFAULT_RENEWAL_PERIODS: dict[MembershipType, str] = {
    MembershipType.DAY_PASS: "1 day",
    MembershipType.WARRIOR_PASS: "1 month",
    MembershipType.GLADIATOR_PASS: "30 days",
    MembershipType.ALPHA_ELITE_PASS: "3 months",
}


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "MembershipType",
    "MemberStatus",
    "PaymentMethod",
    "CashflowType",
    "ExpenseSource",
    "LinkedType",
    "SheetName",
    "WALK_IN_SOURCE",
    "PRODUCT_SALE_SOURCE",
    "DEFAULT_WALK_IN_NAME",
    "DEFAULT_TIER_PRICES",
    "DEFAULT_RENEWAL_PERIODS",
]
