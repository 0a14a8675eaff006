"""Business logic layer for Gym Ledger.

This module owns the domain rules for members, walk-ins, inventory, sales,
renewals, and the cashflow ledger. Every income-producing action goes through
a ledger writer function that stores the primary document and exactly one
linked ``Cashflow`` entry in a single :class:`~gym_ledger.data_manager.WriteBatch`.
Deletions and drift repair live in :mod:`gym_ledger.reconciliation`.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from openpyxl.workbook import Workbook

from . import data_manager, log
from .constants import (
    DEFAULT_RENEWAL_PERIODS,
    DEFAULT_TIER_PRICES,
    DEFAULT_WALK_IN_NAME,
    EXPECTED_SCHEMA_VERSION,
    PRODUCT_SALE_SOURCE,
    WALK_IN_SOURCE,
    CashflowType,
    ExpenseSource,
    LinkedType,
    MembershipType,
    MemberStatus,
    PaymentMethod,
)


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced member, item, sale, or entry is unknown."""


class OperatorRequiredError(BusinessRuleViolation):
    """Raised when a mutation is attempted without a signed-in operator."""


class ValidationError(ValueError):
    """Raised when user input fails validation before any write happens.

    ``errors`` maps each offending field name to a human-readable message so
    front-ends can surface them next to the matching input.
    """

    def __init__(self, errors: Mapping[str, str]):
        self.errors: Dict[str, str] = dict(errors)
        super().__init__("; ".join(f"{name}: {message}" for name, message in self.errors.items()))


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, workbook, and operator used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    operator: Optional[str] = None
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class EnrollMemberCommand:
    """User intent for enrolling a new member."""

    name: str
    contact: str
    membership_type: MembershipType
    start_date: date
    expiry_date: Optional[date] = None
    amount: Optional[Decimal] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class UpdateMemberCommand:
    """User intent for editing an existing member."""

    member_id: str
    name: str
    contact: str
    membership_type: MembershipType
    start_date: date
    expiry_date: Optional[date] = None


@dataclass(frozen=True)
class WalkInCommand:
    """User intent for recording a single walk-in visit."""

    payment: Decimal
    method: PaymentMethod
    name: Optional[str] = None
    visit_date: Optional[date] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class BulkWalkInCommand:
    """User intent for recording several identical walk-ins at once."""

    count: int
    payment: Decimal
    method: PaymentMethod
    visit_date: Optional[date] = None


@dataclass(frozen=True)
class SaleLineCommand:
    """One requested product line of a sale."""

    item_id: str
    quantity: int


@dataclass(frozen=True)
class SaleCommand:
    """User intent for selling inventory items."""

    lines: Sequence[SaleLineCommand]
    payment_method: PaymentMethod
    customer_name: Optional[str] = None
    sale_date: Optional[date] = None


@dataclass(frozen=True)
class RenewalCommand:
    """User intent for extending one membership."""

    member_id: str
    renewal_period: str
    amount: Decimal
    payment_method: PaymentMethod
    payment_date: Optional[date] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class BulkRenewalCommand:
    """User intent for renewing several members with their tier defaults."""

    member_ids: Sequence[str]
    payment_method: PaymentMethod
    payment_date: Optional[date] = None


@dataclass(frozen=True)
class ExpenseCommand:
    """User intent for booking an expense."""

    source: ExpenseSource
    amount: Decimal
    expense_date: Optional[date] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class LedgerWrite:
    """Outcome of a ledger writer call: the primary document and its entry."""

    primary: Any
    entry: data_manager.CashflowRow


@dataclass(frozen=True)
class RenewalResult:
    """Outcome of one renewal: updated member, audit row, and ledger entry."""

    member: data_manager.MemberRow
    renewal: data_manager.RenewalPaymentRow
    entry: data_manager.CashflowRow


# ---------------------------------------------------------------------------
# Clock and identifiers
# ---------------------------------------------------------------------------


def _resolve_now() -> datetime:
    return datetime.now(UTC)


def _resolve_today(candidate: Optional[date] = None) -> date:
    """Return ``candidate`` or the current UTC calendar date."""

    return candidate if candidate is not None else _resolve_now().date()


def generate_id(prefix: str, *, when: Optional[datetime] = None) -> str:
    """Generate a sortable document identifier.

    Identifiers are formed as ``{prefix}{YYYYMMDDHHMMSSffffff}{suffix}`` where
    the suffix is six random hex digits. The timestamp keeps ids roughly
    chronological while the suffix prevents collisions inside bulk batches
    that run within the same microsecond.
    """

    when = when or _resolve_now()
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}{uuid.uuid4().hex[:6]}"


# ---------------------------------------------------------------------------
# Expiry calculator
# ---------------------------------------------------------------------------


def add_months(start: date, months: int) -> date:
    """Add months while keeping the day in range (Jan 31 + 1 month => Feb 28/29)."""

    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    if m == 12:
        next_month = date(y + 1, 1, 1)
    else:
        next_month = date(y, m + 1, 1)
    last_day = next_month - timedelta(days=1)
    return date(y, m, min(start.day, last_day.day))


def calculate_expiry_date(membership_type: MembershipType | str, start_date: date) -> date:
    """Map a membership tier and start date onto the default expiry date.

    Args:
        membership_type (MembershipType | str): Tier sold to the member. Plain
            strings are accepted so stored rows can be passed straight in.
        start_date (date): First day of the membership.

    Returns:
        date: ``start + 1 day`` for Day Pass, ``+1 month`` for Warrior Pass,
            ``+30 days`` for Gladiator Pass, ``+3 months`` for Alpha Elite
            Pass, and ``+1 month`` for anything unrecognised.
    """

    tier = membership_type.value if isinstance(membership_type, MembershipType) else str(membership_type)
    if tier == MembershipType.DAY_PASS.value:
        return start_date + timedelta(days=1)
    if tier == MembershipType.WARRIOR_PASS.value:
        return add_months(start_date, 1)
    if tier == MembershipType.GLADIATOR_PASS.value:
        return start_date + timedelta(days=30)
    if tier == MembershipType.ALPHA_ELITE_PASS.value:
        return add_months(start_date, 3)
    return add_months(start_date, 1)


def calculate_status(expiry_date: date, *, today: Optional[date] = None) -> MemberStatus:
    """Return ``Active`` when ``expiry_date`` is strictly after today."""

    return MemberStatus.ACTIVE if expiry_date > _resolve_today(today) else MemberStatus.EXPIRED


def with_current_status(member: data_manager.MemberRow, *, today: Optional[date] = None) -> data_manager.MemberRow:
    """Return ``member`` with its status recomputed instead of trusting storage."""

    status = calculate_status(member.expiry_date, today=today).value
    if status == member.status:
        return member
    return replace(member, status=status)


_PERIOD_PATTERN = re.compile(r"^\s*(\d+)\s*(day|week|month|year)s?\s*$", re.IGNORECASE)


def parse_renewal_period(period: str) -> tuple[int, str]:
    """Parse labels like ``"1 month"`` or ``"30 days"`` into ``(count, unit)``.

    Raises:
        ValidationError: If the label is not ``<positive int> <day|week|month|year>[s]``.
    """

    match = _PERIOD_PATTERN.match(period or "")
    if match is None or int(match.group(1)) <= 0:
        raise ValidationError({"renewal_period": f"Unsupported renewal period: {period!r}"})
    return int(match.group(1)), match.group(2).lower()


def add_renewal_period(start: date, period: str) -> date:
    count, unit = parse_renewal_period(period)
    if unit == "day":
        return start + timedelta(days=count)
    if unit == "week":
        return start + timedelta(weeks=count)
    if unit == "month":
        return add_months(start, count)
    return add_months(start, 12 * count)


# ---------------------------------------------------------------------------
# Runtime context and caches
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None, *, operator: Optional[str] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer searches upward from the current
            working directory.
        operator (str | None): Signed-in operator identity. Defaults to the
            ``[Defaults] Operator`` entry of ``config.ini``.

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
    return RuntimeContext(settings=settings, workbook=workbook, operator=operator or settings.operator)


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


def require_operator(context: RuntimeContext) -> str:
    """Return the current operator or refuse the mutation.

    Raises:
        OperatorRequiredError: If the context carries no operator identity.
    """
    if not context.operator or not context.operator.strip():
        log.warning("Rejected write: no operator signed in")
        raise OperatorRequiredError("An operator must be signed in to modify records")
    return context.operator


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict cache buckets after mutating workbook state.

    Missing buckets are ignored. Calling without names clears everything.
    """

    if not names:
        context._cache.clear()
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))
    for name in names:
        context._cache.pop(name, None)


def _ensure_cache(
    context: RuntimeContext,
    name: str,
    loader: Callable[[Workbook], Any],
    key: Callable[[Any], str],
) -> Dict[str, Any]:
    bucket = _get_cache_bucket(context, name)
    if "all" not in bucket:
        rows = list(loader(context.workbook))
        bucket["all"] = rows
        bucket["by_id"] = {key(row): row for row in rows}
        log.debug("Populated %s cache with %d entries", name, len(rows))
    return bucket


def _members_cache(context: RuntimeContext) -> Dict[str, Any]:
    return _ensure_cache(context, "members", data_manager.iter_members, lambda row: row.member_id)


def _walk_ins_cache(context: RuntimeContext) -> Dict[str, Any]:
    return _ensure_cache(context, "walk_ins", data_manager.iter_walk_ins, lambda row: row.walk_in_id)


def _inventory_cache(context: RuntimeContext) -> Dict[str, Any]:
    return _ensure_cache(context, "inventory", data_manager.iter_inventory, lambda row: row.item_id)


def _sales_cache(context: RuntimeContext) -> Dict[str, Any]:
    return _ensure_cache(context, "sales", data_manager.iter_sales, lambda row: row.sale_id)


def _cashflow_cache(context: RuntimeContext) -> Dict[str, Any]:
    return _ensure_cache(context, "cashflow", data_manager.iter_cashflow, lambda row: row.entry_id)


def _renewals_cache(context: RuntimeContext) -> Dict[str, Any]:
    return _ensure_cache(context, "renewals", data_manager.iter_renewal_payments, lambda row: row.renewal_id)


def commit_batch(context: RuntimeContext, batch: data_manager.WriteBatch, *buckets: str) -> None:
    """Commit ``batch`` to the context workbook and drop affected caches.

    Raises:
        ValidationError: If a value holds characters the workbook cannot store.
    """

    try:
        batch.commit(context.workbook)
    except data_manager.IllegalCellValueError as exc:
        log.warning("Write rejected: %s", exc)
        raise ValidationError({exc.field_name: "Contains control characters that cannot be stored"}) from exc
    finally:
        invalidate_cache(context, *buckets)


# ---------------------------------------------------------------------------
# Lookups and listings
# ---------------------------------------------------------------------------


def _lookup(bucket: Dict[str, Any], key: str, label: str) -> Any:
    try:
        return bucket["by_id"][key]
    except KeyError as exc:
        log.warning("%s lookup failed for id '%s'", label, key)
        raise MissingReferenceError(f"Unknown {label.lower()} id: {key}") from exc


def get_member(context: RuntimeContext, member_id: str, *, today: Optional[date] = None) -> data_manager.MemberRow:
    """Resolve a member by id with its status recomputed for ``today``.

    Raises:
        MissingReferenceError: If ``member_id`` is absent from the workbook.
    """
    return with_current_status(_lookup(_members_cache(context), member_id, "Member"), today=today)


def get_walk_in(context: RuntimeContext, walk_in_id: str) -> data_manager.WalkInRow:
    return _lookup(_walk_ins_cache(context), walk_in_id, "Walk-in")


def get_inventory_item(context: RuntimeContext, item_id: str) -> data_manager.InventoryItemRow:
    return _lookup(_inventory_cache(context), item_id, "Item")


def get_sale(context: RuntimeContext, sale_id: str) -> data_manager.SaleRow:
    return _lookup(_sales_cache(context), sale_id, "Sale")


def get_cashflow_entry(context: RuntimeContext, entry_id: str) -> data_manager.CashflowRow:
    return _lookup(_cashflow_cache(context), entry_id, "Entry")


def find_inventory_item_by_name(context: RuntimeContext, product_name: str) -> Optional[data_manager.InventoryItemRow]:
    """Return the first inventory item whose name matches, ignoring case."""

    wanted = product_name.strip().casefold()
    for item in _inventory_cache(context)["all"]:
        if item.product_name.strip().casefold() == wanted:
            return item
    return None


def list_members(
    context: RuntimeContext,
    *,
    status: Optional[MemberStatus] = None,
    membership_type: Optional[MembershipType] = None,
    today: Optional[date] = None,
) -> List[data_manager.MemberRow]:
    """Return members with freshly derived status, optionally filtered.

    The stored ``Status`` column may be stale because nothing is written when
    a membership lapses, so it is recomputed here on every call.
    """
    members = [with_current_status(member, today=today) for member in _members_cache(context)["all"]]
    if status is not None:
        members = [member for member in members if member.status == status.value]
    if membership_type is not None:
        members = [member for member in members if member.membership_type == membership_type.value]
    return members


def list_expiring_members(context: RuntimeContext, *, days: int = 7, today: Optional[date] = None) -> List[data_manager.MemberRow]:
    """Return active members whose membership ends within ``days`` days."""

    today = _resolve_today(today)
    cutoff = today + timedelta(days=days)
    return [
        member
        for member in list_members(context, status=MemberStatus.ACTIVE, today=today)
        if member.expiry_date <= cutoff
    ]


def list_walk_ins(context: RuntimeContext, *, on_date: Optional[date] = None) -> List[data_manager.WalkInRow]:
    walk_ins = list(_walk_ins_cache(context)["all"])
    if on_date is not None:
        walk_ins = [walk_in for walk_in in walk_ins if walk_in.date == on_date]
    return walk_ins


def list_inventory(context: RuntimeContext) -> List[data_manager.InventoryItemRow]:
    return list(_inventory_cache(context)["all"])


def list_sales(context: RuntimeContext) -> List[data_manager.SaleRow]:
    return list(_sales_cache(context)["all"])


def list_cashflow(
    context: RuntimeContext,
    *,
    entry_type: Optional[CashflowType] = None,
    source: Optional[str] = None,
    linked_id: Optional[str] = None,
) -> List[data_manager.CashflowRow]:
    """Return ledger entries in workbook order, optionally filtered."""

    entries = list(_cashflow_cache(context)["all"])
    if entry_type is not None:
        entries = [entry for entry in entries if entry.entry_type == entry_type.value]
    if source is not None:
        entries = [entry for entry in entries if entry.source == source]
    if linked_id is not None:
        entries = [entry for entry in entries if entry.linked_id == linked_id]
    return entries


def list_renewal_payments(context: RuntimeContext, *, member_id: Optional[str] = None) -> List[data_manager.RenewalPaymentRow]:
    renewals = list(_renewals_cache(context)["all"])
    if member_id is not None:
        renewals = [renewal for renewal in renewals if renewal.member_id == member_id]
    return renewals


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_member_data(
    *,
    name: str,
    contact: str,
    start_date: Optional[date],
    expiry_date: Optional[date],
) -> Dict[str, str]:
    """Collect field errors for a member form without raising.

    Contact numbers must contain 10 to 15 digits once separators are removed.
    """
    errors: Dict[str, str] = {}

    if not (name or "").strip():
        errors["name"] = "Name is required"

    if not (contact or "").strip():
        errors["contact"] = "Contact is required"
    elif not re.fullmatch(r"\d{10,15}", re.sub(r"\D", "", contact)):
        errors["contact"] = "Please enter a valid contact number"

    if start_date is None:
        errors["start_date"] = "Start date is required"

    if expiry_date is None:
        errors["expiry_date"] = "Expiry date is required"
    elif start_date is not None and expiry_date <= start_date:
        errors["expiry_date"] = "Expiry date must be after start date"

    return errors


def require_positive_amount(amount: Optional[Decimal], *, field_name: str = "amount") -> Decimal:
    """Validate that a monetary amount is present and strictly positive.

    Raises:
        ValidationError: If ``amount`` is missing, zero, or negative.
    """
    if amount is None or Decimal(amount) <= Decimal("0"):
        log.error("Amount validation failed for %s: %s", field_name, amount)
        raise ValidationError({field_name: "Amount must be greater than zero"})
    return Decimal(amount)


def require_positive_quantity(quantity: int, *, field_name: str = "quantity") -> int:
    """Validate that a quantity is a strictly positive integer.

    Raises:
        ValidationError: If ``quantity`` is zero, negative, or not integral.
    """
    if isinstance(quantity, bool) or int(quantity) != quantity or quantity <= 0:
        log.error("Quantity validation failed for %s: %s", field_name, quantity)
        raise ValidationError({field_name: "Quantity must be a whole number greater than zero"})
    return int(quantity)


def _coerce_enum(enum_cls, value: Any, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationError({field_name: f"Unsupported value: {value!r}"}) from exc


def tier_price(context: RuntimeContext, membership_type: MembershipType) -> Decimal:
    """Return the configured price for a tier, falling back to the defaults."""

    configured = context.settings.tier_prices.get(membership_type.value)
    return configured if configured is not None else DEFAULT_TIER_PRICES[membership_type]


def _resolve_member_expiry(
    membership_type: MembershipType,
    start_date: Optional[date],
    expiry_date: Optional[date],
) -> Optional[date]:
    if start_date is None:
        return expiry_date
    default_expiry = calculate_expiry_date(membership_type, start_date)
    if expiry_date is None or expiry_date == default_expiry:
        return default_expiry
    if membership_type is not MembershipType.GLADIATOR_PASS:
        raise ValidationError({"expiry_date": "A custom expiry date is only allowed for Gladiator Pass"})
    return expiry_date


# ---------------------------------------------------------------------------
# Ledger writer
# ---------------------------------------------------------------------------


def build_income_entry(
    *,
    linked_id: str,
    linked_type: LinkedType,
    source: str,
    amount: Decimal,
    entry_date: date,
    notes: str,
    timestamp: datetime,
) -> data_manager.CashflowRow:
    """Materialize the auto-generated income entry paired with a primary document."""

    return data_manager.CashflowRow(
        entry_id=generate_id("C", when=timestamp),
        entry_type=CashflowType.INCOME.value,
        source=source,
        amount=amount,
        date=entry_date,
        notes=notes,
        linked_id=linked_id,
        linked_type=linked_type.value,
        auto_generated=True,
        created_at=timestamp.isoformat(),
        updated_at=timestamp.isoformat(),
    )


def enroll_member(context: RuntimeContext, command: EnrollMemberCommand) -> LedgerWrite:
    """Create a member and its membership income entry in one batch.

    The member id is generated before the batch is built so the cashflow entry
    can carry it as ``linked_id``. When ``command.amount`` is omitted the
    configured tier price is charged.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        command (EnrollMemberCommand): Structured enrollment intent.

    Returns:
        LedgerWrite: The stored member and its linked income entry.

    Raises:
        OperatorRequiredError: If no operator is signed in.
        ValidationError: If any member field or the amount is invalid.
    """
    require_operator(context)
    membership_type = _coerce_enum(MembershipType, command.membership_type, "membership_type")
    expiry_date = _resolve_member_expiry(membership_type, command.start_date, command.expiry_date)
    errors = validate_member_data(
        name=command.name,
        contact=command.contact,
        start_date=command.start_date,
        expiry_date=expiry_date,
    )
    if errors:
        log.warning("Member enrollment rejected: %s", errors)
        raise ValidationError(errors)
    amount = require_positive_amount(
        command.amount if command.amount is not None else tier_price(context, membership_type)
    )

    timestamp = _resolve_now()
    member = data_manager.MemberRow(
        member_id=generate_id("M", when=timestamp),
        name=command.name.strip(),
        contact=command.contact.strip(),
        membership_type=membership_type.value,
        start_date=command.start_date,
        expiry_date=expiry_date,
        status=calculate_status(expiry_date, today=timestamp.date()).value,
        created_at=timestamp.isoformat(),
        updated_at=timestamp.isoformat(),
    )
    entry = build_income_entry(
        linked_id=member.member_id,
        linked_type=LinkedType.MEMBER,
        source=membership_type.value,
        amount=amount,
        entry_date=command.start_date,
        notes=command.notes or f"Membership: {member.name}",
        timestamp=timestamp,
    )

    batch = data_manager.WriteBatch().insert(member).insert(entry)
    commit_batch(context, batch, "members", "cashflow")
    log.info(
        "Enrolled member '%s' (%s, expires %s) with entry '%s' amount=%s",
        member.member_id,
        member.membership_type,
        member.expiry_date,
        entry.entry_id,
        amount,
    )
    return LedgerWrite(primary=member, entry=entry)


def update_member(context: RuntimeContext, command: UpdateMemberCommand) -> data_manager.MemberRow:
    """Edit a member's details, recalculating expiry and status.

    The stored expiry is kept when the command repeats it, or omits it while
    leaving tier and start date untouched. Otherwise it is recomputed from the
    tier. Ledger entries are left alone: the enrollment payment already
    happened.

    Raises:
        MissingReferenceError: If the member is unknown.
        ValidationError: If any field is invalid.
    """
    require_operator(context)
    current = get_member(context, command.member_id)
    membership_type = _coerce_enum(MembershipType, command.membership_type, "membership_type")
    same_term = membership_type.value == current.membership_type and command.start_date == current.start_date
    if command.expiry_date == current.expiry_date or (command.expiry_date is None and same_term):
        # Keeps renewal extensions already paid for.
        expiry_date = current.expiry_date
    else:
        expiry_date = _resolve_member_expiry(membership_type, command.start_date, command.expiry_date)
    errors = validate_member_data(
        name=command.name,
        contact=command.contact,
        start_date=command.start_date,
        expiry_date=expiry_date,
    )
    if errors:
        log.warning("Member update rejected for '%s': %s", command.member_id, errors)
        raise ValidationError(errors)

    timestamp = _resolve_now()
    updated = replace(
        current,
        name=command.name.strip(),
        contact=command.contact.strip(),
        membership_type=membership_type.value,
        start_date=command.start_date,
        expiry_date=expiry_date,
        status=calculate_status(expiry_date, today=timestamp.date()).value,
        updated_at=timestamp.isoformat(),
    )
    batch = data_manager.WriteBatch().update(
        data_manager.MEMBERS_SHEET,
        current.member_id,
        {
            "Name": updated.name,
            "Contact": updated.contact,
            "MembershipType": updated.membership_type,
            "StartDate": updated.start_date,
            "ExpiryDate": updated.expiry_date,
            "Status": updated.status,
            "UpdatedAt": updated.updated_at,
        },
    )
    commit_batch(context, batch, "members")
    log.info("Updated member '%s'", current.member_id)
    return updated


def _build_walk_in(
    *,
    name: Optional[str],
    visit_date: date,
    payment: Decimal,
    method: PaymentMethod,
    notes: Optional[str],
    timestamp: datetime,
) -> tuple[data_manager.WalkInRow, data_manager.CashflowRow]:
    walk_in = data_manager.WalkInRow(
        walk_in_id=generate_id("W", when=timestamp),
        name=(name or "").strip() or DEFAULT_WALK_IN_NAME,
        date=visit_date,
        payment=payment,
        method=method.value,
        created_at=timestamp.isoformat(),
    )
    entry = build_income_entry(
        linked_id=walk_in.walk_in_id,
        linked_type=LinkedType.WALK_IN,
        source=WALK_IN_SOURCE,
        amount=payment,
        entry_date=visit_date,
        notes=notes or f"Walk-in: {walk_in.name}",
        timestamp=timestamp,
    )
    return walk_in, entry


def record_walk_in(context: RuntimeContext, command: WalkInCommand) -> LedgerWrite:
    """Store a walk-in visit and its Day Pass income entry atomically.

    Raises:
        OperatorRequiredError: If no operator is signed in.
        ValidationError: If the payment is not positive or the method unknown.
    """
    require_operator(context)
    payment = require_positive_amount(command.payment, field_name="payment")
    method = _coerce_enum(PaymentMethod, command.method, "method")

    timestamp = _resolve_now()
    walk_in, entry = _build_walk_in(
        name=command.name,
        visit_date=_resolve_today(command.visit_date),
        payment=payment,
        method=method,
        notes=command.notes,
        timestamp=timestamp,
    )
    batch = data_manager.WriteBatch().insert(walk_in).insert(entry)
    commit_batch(context, batch, "walk_ins", "cashflow")
    log.info("Recorded walk-in '%s' (%s) amount=%s", walk_in.walk_in_id, walk_in.name, payment)
    return LedgerWrite(primary=walk_in, entry=entry)


def record_walk_ins_bulk(context: RuntimeContext, command: BulkWalkInCommand) -> List[LedgerWrite]:
    """Store ``command.count`` guest walk-ins, each with its own entry, in one batch."""

    require_operator(context)
    count = require_positive_quantity(command.count, field_name="count")
    payment = require_positive_amount(command.payment, field_name="payment")
    method = _coerce_enum(PaymentMethod, command.method, "method")
    visit_date = _resolve_today(command.visit_date)

    timestamp = _resolve_now()
    batch = data_manager.WriteBatch()
    results: List[LedgerWrite] = []
    for _ in range(count):
        walk_in, entry = _build_walk_in(
            name=None,
            visit_date=visit_date,
            payment=payment,
            method=method,
            notes=None,
            timestamp=timestamp,
        )
        batch.insert(walk_in).insert(entry)
        results.append(LedgerWrite(primary=walk_in, entry=entry))

    commit_batch(context, batch, "walk_ins", "cashflow")
    log.info("Recorded %d walk-ins for %s (amount=%s each)", count, visit_date, payment)
    return results


def record_sale(context: RuntimeContext, command: SaleCommand) -> LedgerWrite:
    """Sell inventory: store the sale, decrement stock, and book the income.

    Lines naming the same item are merged before stock is checked. The sale,
    every stock update, and the ``Product Sale`` entry share one batch, so a
    failure leaves stock untouched.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        command (SaleCommand): Structured sale intent.

    Returns:
        LedgerWrite: The stored sale and its linked income entry.

    Raises:
        OperatorRequiredError: If no operator is signed in.
        ValidationError: If there are no lines or a quantity is not positive.
        MissingReferenceError: If a line references an unknown item.
        BusinessRuleViolation: If an item lacks the requested stock.
    """
    require_operator(context)
    if not command.lines:
        raise ValidationError({"lines": "A sale needs at least one item"})
    method = _coerce_enum(PaymentMethod, command.payment_method, "payment_method")

    quantities: Dict[str, int] = {}
    for line in command.lines:
        quantity = require_positive_quantity(line.quantity)
        quantities[line.item_id] = quantities.get(line.item_id, 0) + quantity

    line_items: List[data_manager.SaleLineItem] = []
    for item_id, quantity in quantities.items():
        item = get_inventory_item(context, item_id)
        if item.stock < quantity:
            log.warning(
                "Insufficient stock for '%s': requested %d, available %d",
                item.product_name,
                quantity,
                item.stock,
            )
            raise BusinessRuleViolation(
                f"Insufficient stock for '{item.product_name}': requested {quantity}, available {item.stock}"
            )
        line_items.append(
            data_manager.SaleLineItem(
                product_id=item.item_id,
                product_name=item.product_name,
                price=item.price,
                quantity=quantity,
                subtotal=item.price * quantity,
            )
        )

    total = sum((line.subtotal for line in line_items), Decimal("0"))
    require_positive_amount(total, field_name="total_amount")

    timestamp = _resolve_now()
    sale_date = _resolve_today(command.sale_date)
    customer = (command.customer_name or "").strip()
    sale = data_manager.SaleRow(
        sale_id=generate_id("S", when=timestamp),
        items=tuple(line_items),
        total_amount=total,
        payment_method=method.value,
        customer_name=customer,
        date=sale_date,
        created_at=timestamp.isoformat(),
    )
    summary = ", ".join(f"{line.product_name} x{line.quantity}" for line in line_items)
    entry = build_income_entry(
        linked_id=sale.sale_id,
        linked_type=LinkedType.SALE,
        source=PRODUCT_SALE_SOURCE,
        amount=total,
        entry_date=sale_date,
        notes=f"Sale: {customer} - {summary}" if customer else f"Sale: {summary}",
        timestamp=timestamp,
    )

    batch = data_manager.WriteBatch().insert(sale)
    for line in line_items:
        item = get_inventory_item(context, line.product_id)
        batch.update(
            data_manager.INVENTORY_SHEET,
            item.item_id,
            {"Stock": item.stock - line.quantity, "UpdatedAt": timestamp.isoformat()},
        )
    batch.insert(entry)
    commit_batch(context, batch, "sales", "inventory", "cashflow")
    log.info("Recorded sale '%s' total=%s (%s)", sale.sale_id, total, summary)
    return LedgerWrite(primary=sale, entry=entry)


def _stage_renewal(
    batch: data_manager.WriteBatch,
    member: data_manager.MemberRow,
    *,
    renewal_period: str,
    amount: Decimal,
    payment_method: PaymentMethod,
    payment_date: date,
    notes: Optional[str],
    timestamp: datetime,
) -> RenewalResult:
    previous_expiry = member.expiry_date
    base = max(previous_expiry, payment_date)
    new_expiry = add_renewal_period(base, renewal_period)
    status = calculate_status(new_expiry, today=payment_date).value

    renewal = data_manager.RenewalPaymentRow(
        renewal_id=generate_id("R", when=timestamp),
        member_id=member.member_id,
        member_name=member.name,
        amount=amount,
        payment_method=payment_method.value,
        payment_date=payment_date,
        renewal_period=renewal_period,
        previous_expiry_date=previous_expiry,
        new_expiry_date=new_expiry,
        notes=notes or "",
        created_at=timestamp.isoformat(),
    )
    entry = build_income_entry(
        linked_id=member.member_id,
        linked_type=LinkedType.RENEWAL,
        source=member.membership_type,
        amount=amount,
        entry_date=payment_date,
        notes=notes or f"Renewal: {member.name} ({renewal_period})",
        timestamp=timestamp,
    )
    batch.update(
        data_manager.MEMBERS_SHEET,
        member.member_id,
        {"ExpiryDate": new_expiry, "Status": status, "UpdatedAt": timestamp.isoformat()},
    )
    batch.insert(renewal).insert(entry)
    updated = replace(member, expiry_date=new_expiry, status=status, updated_at=timestamp.isoformat())
    return RenewalResult(member=updated, renewal=renewal, entry=entry)


def renew_member(context: RuntimeContext, command: RenewalCommand) -> RenewalResult:
    """Extend a membership with an audit row and a linked income entry.

    The new expiry is ``max(current expiry, payment date) + period`` so an
    early renewal stacks on the remaining time while a lapsed member restarts
    from the payment date.

    Raises:
        OperatorRequiredError: If no operator is signed in.
        MissingReferenceError: If the member is unknown.
        ValidationError: If the amount or renewal period is invalid.
    """
    require_operator(context)
    member = get_member(context, command.member_id)
    amount = require_positive_amount(command.amount)
    method = _coerce_enum(PaymentMethod, command.payment_method, "payment_method")
    parse_renewal_period(command.renewal_period)

    timestamp = _resolve_now()
    batch = data_manager.WriteBatch()
    result = _stage_renewal(
        batch,
        member,
        renewal_period=command.renewal_period,
        amount=amount,
        payment_method=method,
        payment_date=_resolve_today(command.payment_date),
        notes=command.notes,
        timestamp=timestamp,
    )
    commit_batch(context, batch, "members", "renewals", "cashflow")
    log.info(
        "Renewed member '%s' from %s to %s (amount=%s)",
        member.member_id,
        result.renewal.previous_expiry_date,
        result.renewal.new_expiry_date,
        amount,
    )
    return result


def renew_members_bulk(context: RuntimeContext, command: BulkRenewalCommand) -> List[RenewalResult]:
    """Renew several members using each one's tier default period and price.

    Every member contributes its own update/audit/entry triple; all of them
    are committed together. Duplicate ids are renewed once.

    Raises:
        OperatorRequiredError: If no operator is signed in.
        MissingReferenceError: If any member id is unknown (nothing is written).
        ValidationError: If no member ids are supplied.
    """
    require_operator(context)
    member_ids = list(dict.fromkeys(command.member_ids))
    if not member_ids:
        raise ValidationError({"member_ids": "Select at least one member to renew"})
    method = _coerce_enum(PaymentMethod, command.payment_method, "payment_method")
    payment_date = _resolve_today(command.payment_date)

    members = [get_member(context, member_id) for member_id in member_ids]
    timestamp = _resolve_now()
    batch = data_manager.WriteBatch()
    results: List[RenewalResult] = []
    for member in members:
        tier = _coerce_enum(MembershipType, member.membership_type, "membership_type")
        results.append(
            _stage_renewal(
                batch,
                member,
                renewal_period=DEFAULT_RENEWAL_PERIODS[tier],
                amount=tier_price(context, tier),
                payment_method=method,
                payment_date=payment_date,
                notes=None,
                timestamp=timestamp,
            )
        )

    commit_batch(context, batch, "members", "renewals", "cashflow")
    log.info("Bulk renewed %d members", len(results))
    return results


def record_expense(context: RuntimeContext, command: ExpenseCommand) -> data_manager.CashflowRow:
    """Book a manual expense entry; expenses never link to a primary document."""

    require_operator(context)
    source = _coerce_enum(ExpenseSource, command.source, "source")
    amount = require_positive_amount(command.amount)

    timestamp = _resolve_now()
    entry = data_manager.CashflowRow(
        entry_id=generate_id("C", when=timestamp),
        entry_type=CashflowType.EXPENSE.value,
        source=source.value,
        amount=amount,
        date=_resolve_today(command.expense_date),
        notes=command.notes or "",
        linked_id=None,
        linked_type=None,
        auto_generated=False,
        created_at=timestamp.isoformat(),
        updated_at=timestamp.isoformat(),
    )
    commit_batch(context, data_manager.WriteBatch().insert(entry), "cashflow")
    log.info("Recorded %s expense '%s' amount=%s", source.value, entry.entry_id, amount)
    return entry


def delete_cashflow_entry(context: RuntimeContext, entry_id: str) -> None:
    """Delete a manually booked ledger entry.

    Raises:
        MissingReferenceError: If the entry is unknown.
        BusinessRuleViolation: If the entry was generated for a primary
            document that still owns it; delete that document instead.
    """
    require_operator(context)
    entry = get_cashflow_entry(context, entry_id)
    if entry.auto_generated and entry.linked_id:
        log.warning("Refused direct deletion of linked entry '%s'", entry_id)
        raise BusinessRuleViolation(
            f"Entry '{entry_id}' belongs to {entry.linked_type} '{entry.linked_id}'; delete the source record instead"
        )
    commit_batch(context, data_manager.WriteBatch().delete(data_manager.CASHFLOW_SHEET, entry_id), "cashflow")
    log.info("Deleted ledger entry '%s'", entry_id)


# ---------------------------------------------------------------------------
# Inventory maintenance
# ---------------------------------------------------------------------------


def _validate_item_fields(product_name: Optional[str], price: Optional[Decimal], stock: Optional[int]) -> None:
    errors: Dict[str, str] = {}
    if product_name is not None and not product_name.strip():
        errors["product_name"] = "Product name is required"
    if price is not None and Decimal(price) <= Decimal("0"):
        errors["price"] = "Price must be greater than zero"
    if stock is not None and (isinstance(stock, bool) or int(stock) != stock or stock < 0):
        errors["stock"] = "Stock must be a whole number of zero or more"
    if errors:
        log.warning("Inventory validation failed: %s", errors)
        raise ValidationError(errors)


def add_inventory_item(
    context: RuntimeContext,
    *,
    product_name: str,
    price: Decimal,
    stock: int,
) -> data_manager.InventoryItemRow:
    """Register a retail product with its opening stock."""

    require_operator(context)
    _validate_item_fields(product_name, price, stock)
    if find_inventory_item_by_name(context, product_name) is not None:
        raise BusinessRuleViolation(f"Product '{product_name.strip()}' already exists")

    timestamp = _resolve_now()
    item = data_manager.InventoryItemRow(
        item_id=generate_id("I", when=timestamp),
        product_name=product_name.strip(),
        price=Decimal(price),
        stock=int(stock),
        created_at=timestamp.isoformat(),
        updated_at=timestamp.isoformat(),
    )
    commit_batch(context, data_manager.WriteBatch().insert(item), "inventory")
    log.info("Added inventory item '%s' (%s) stock=%d", item.item_id, item.product_name, item.stock)
    return item


def update_inventory_item(
    context: RuntimeContext,
    item_id: str,
    *,
    product_name: Optional[str] = None,
    price: Optional[Decimal] = None,
    stock: Optional[int] = None,
) -> data_manager.InventoryItemRow:
    """Change name, price, or stock of an item; omitted fields stay as they are."""

    require_operator(context)
    current = get_inventory_item(context, item_id)
    _validate_item_fields(product_name, price, stock)
    if product_name is not None:
        clash = find_inventory_item_by_name(context, product_name)
        if clash is not None and clash.item_id != current.item_id:
            log.warning("Rename of '%s' rejected: '%s' is taken by '%s'", item_id, product_name, clash.item_id)
            raise BusinessRuleViolation(f"Product '{product_name.strip()}' already exists")

    timestamp = _resolve_now()
    updated = replace(
        current,
        product_name=product_name.strip() if product_name is not None else current.product_name,
        price=Decimal(price) if price is not None else current.price,
        stock=int(stock) if stock is not None else current.stock,
        updated_at=timestamp.isoformat(),
    )
    batch = data_manager.WriteBatch().update(
        data_manager.INVENTORY_SHEET,
        item_id,
        {
            "ProductName": updated.product_name,
            "Price": updated.price,
            "Stock": updated.stock,
            "UpdatedAt": updated.updated_at,
        },
    )
    commit_batch(context, batch, "inventory")
    log.info("Updated inventory item '%s'", item_id)
    return updated


def delete_inventory_item(context: RuntimeContext, item_id: str) -> None:
    """Remove an item from the catalogue; past sales keep their line items."""

    require_operator(context)
    get_inventory_item(context, item_id)
    commit_batch(context, data_manager.WriteBatch().delete(data_manager.INVENTORY_SHEET, item_id), "inventory")
    log.info("Deleted inventory item '%s'", item_id)


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
    return RuntimeContext(settings=context.settings, workbook=workbook, operator=context.operator)
