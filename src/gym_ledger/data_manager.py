"""Data access layer for Gym Ledger.

This module provides low-level helpers that read from and write to the gym
master workbook. Each worksheet plays the role of a document collection and
each row is one document. Business logic belongs elsewhere.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: loading structured records and locating rows by id.
4. Atomic writes: staging inserts, updates, and deletes in a
   :class:`WriteBatch` that either applies completely or not at all.
"""


from __future__ import annotations

import configparser
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import DEFAULT_TIER_PRICES, PaymentMethod, SheetName


CONFIG_FILE_NAME = "config.ini"
MEMBERS_SHEET = SheetName.MEMBERS.value
WALK_INS_SHEET = SheetName.WALK_INS.value
INVENTORY_SHEET = SheetName.INVENTORY.value
SALES_SHEET = SheetName.SALES.value
CASHFLOW_SHEET = SheetName.CASHFLOW.value
RENEWAL_PAYMENTS_SHEET = SheetName.RENEWAL_PAYMENTS.value

# Primary key column for every collection sheet.
KEY_COLUMNS: Mapping[str, str] = {
    MEMBERS_SHEET: "MemberID",
    WALK_INS_SHEET: "WalkInID",
    INVENTORY_SHEET: "ItemID",
    SALES_SHEET: "SaleID",
    CASHFLOW_SHEET: "EntryID",
    RENEWAL_PAYMENTS_SHEET: "RenewalID",
}


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    gym_name: str
    schema_version: str
    operator: Optional[str] = None
    default_payment_method: str = PaymentMethod.CASH.value
    tier_prices: Mapping[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class MemberRow:
    """In-memory view of a row from the ``Members`` sheet."""

    member_id: str
    name: str
    contact: str
    membership_type: str
    start_date: date
    expiry_date: date
    status: str
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class WalkInRow:
    """In-memory view of a row from the ``WalkIns`` sheet."""

    walk_in_id: str
    name: str
    date: date
    payment: Decimal
    method: str
    created_at: str


@dataclass(frozen=True)
class InventoryItemRow:
    """In-memory view of a row from the ``Inventory`` sheet."""

    item_id: str
    product_name: str
    price: Decimal
    stock: int
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class SaleLineItem:
    """One product line embedded in a sale document."""

    product_id: str
    product_name: str
    price: Decimal
    quantity: int
    subtotal: Decimal


@dataclass(frozen=True)
class SaleRow:
    """In-memory view of a row from the ``Sales`` sheet."""

    sale_id: str
    items: Tuple[SaleLineItem, ...]
    total_amount: Decimal
    payment_method: str
    customer_name: str
    date: date
    created_at: str


@dataclass(frozen=True)
class CashflowRow:
    """In-memory view of a row from the ``Cashflow`` sheet."""

    entry_id: str
    entry_type: str
    source: str
    amount: Decimal
    date: date
    notes: str
    linked_id: Optional[str]
    linked_type: Optional[str]
    auto_generated: bool
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class RenewalPaymentRow:
    """In-memory view of a row from the ``RenewalPayments`` sheet."""

    renewal_id: str
    member_id: str
    member_name: str
    amount: Decimal
    payment_method: str
    payment_date: date
    renewal_period: str
    previous_expiry_date: date
    new_expiry_date: date
    notes: str
    created_at: str


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``. The first match that exists on disk wins.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no ``CONFIG_FILE_NAME`` exists in the current
            directory or any of its parents.
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

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    # Option names double as tier labels ("Warrior Pass"), keep their case.
    parser = configparser.ConfigParser()
    parser.optionxform = str  # type: ignore[assignment]
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` entries are mandatory. ``[Defaults]`` and ``[Pricing]`` are
    optional: a missing operator leaves the context anonymous (mutations will
    then be refused by the business layer) and missing prices fall back to
    :data:`~gym_ledger.constants.DEFAULT_TIER_PRICES`. Relative ``DataFile``
    paths are anchored at ``base_path`` or the current working directory.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to resolve a relative
            ``DataFile`` entry.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If a required ``[System]`` option is missing.
        ValueError: If a ``[Pricing]`` entry is not a decimal number.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        gym_name = parser.get("System", "GymName")
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    operator = parser.get("Defaults", "Operator", fallback=None) or None
    payment_method = parser.get("Defaults", "PaymentMethod", fallback=PaymentMethod.CASH.value)

    tier_prices: Dict[str, Decimal] = {tier.value: price for tier, price in DEFAULT_TIER_PRICES.items()}
    if parser.has_section("Pricing"):
        for tier_name, raw_price in parser.items("Pricing"):
            try:
                tier_prices[tier_name] = Decimal(raw_price.strip())
            except ArithmeticError as exc:
                raise ValueError(f"Invalid price for '{tier_name}': {raw_price}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        gym_name=gym_name,
        schema_version=schema_version,
        operator=operator,
        default_payment_method=payment_method,
        tier_prices=tier_prices,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the master workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk, creating parent folders on demand."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def _iter_raw_rows(workbook: Workbook, sheet_name: str) -> Iterable[Sequence[object]]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_members(workbook: Workbook) -> Iterable[MemberRow]:
    """Iterate over member documents stored on the ``Members`` worksheet.

    The stored ``Status`` column is returned as-is; the business layer
    recomputes it against the current date before exposing members.
    """

    for raw in _iter_raw_rows(workbook, MEMBERS_SHEET):
        yield deserialize_member(raw)


def iter_walk_ins(workbook: Workbook) -> Iterable[WalkInRow]:
    """Iterate over the ``WalkIns`` worksheet and yield typed records."""

    for raw in _iter_raw_rows(workbook, WALK_INS_SHEET):
        yield deserialize_walk_in(raw)


def iter_inventory(workbook: Workbook) -> Iterable[InventoryItemRow]:
    """Iterate over the ``Inventory`` worksheet and yield typed records."""

    for raw in _iter_raw_rows(workbook, INVENTORY_SHEET):
        yield deserialize_inventory_item(raw)


def iter_sales(workbook: Workbook) -> Iterable[SaleRow]:
    """Iterate over the ``Sales`` worksheet, decoding embedded line items."""

    for raw in _iter_raw_rows(workbook, SALES_SHEET):
        yield deserialize_sale(raw)


def iter_cashflow(workbook: Workbook) -> Iterable[CashflowRow]:
    """Stream ledger entries from the ``Cashflow`` worksheet.

    Blank ``LinkedID``/``LinkedType`` cells come back as ``None`` so callers
    can tell legacy, unlinked entries apart from linked ones.
    """

    for raw in _iter_raw_rows(workbook, CASHFLOW_SHEET):
        yield deserialize_cashflow(raw)


def iter_renewal_payments(workbook: Workbook) -> Iterable[RenewalPaymentRow]:
    """Iterate over the ``RenewalPayments`` audit worksheet."""

    for raw in _iter_raw_rows(workbook, RENEWAL_PAYMENTS_SHEET):
        yield deserialize_renewal_payment(raw)


def header_map(workbook: Workbook, sheet_name: str) -> Dict[str, int]:
    """Return a mapping of header titles to 1-based column indices."""

    sheet = workbook[sheet_name]
    return {cell.value: idx + 1 for idx, cell in enumerate(sheet[1]) if cell.value is not None}


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

    headers = header_map(workbook, sheet_name)
    if key_column not in headers:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = headers[key_column]
    sheet = workbook[sheet_name]
    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value is not None and str(cell_value) == key_value:
            return row_idx

    return None


# ---------------------------------------------------------------------------
# Atomic batches
# ---------------------------------------------------------------------------


class IllegalCellValueError(ValueError):
    """Raised when a value holds characters an Excel cell cannot store."""

    def __init__(self, sheet_name: str, field_name: str) -> None:
        super().__init__(f"Illegal characters in '{sheet_name}'.{field_name}")
        self.sheet_name = sheet_name
        self.field_name = field_name


def check_cell_value(sheet_name: str, field_name: str, value: object) -> object:
    """Return ``value`` unchanged, rejecting control characters openpyxl refuses.

    Raises:
        IllegalCellValueError: If ``value`` is text containing such characters.
    """

    if isinstance(value, str) and ILLEGAL_CHARACTERS_RE.search(value):
        raise IllegalCellValueError(sheet_name, field_name)
    return value


@dataclass(frozen=True)
class _Operation:
    action: str
    sheet_name: str
    key_value: Optional[str] = None
    values: Optional[Sequence[object]] = None
    field_values: Optional[Mapping[str, Any]] = None


class WriteBatch:
    """Stage multi-document writes and apply them as a single unit.

    Operations are recorded in call order and nothing touches the workbook
    until :meth:`commit`. Commit runs in two phases: every target row is
    located, every field name checked, and every value serialized and checked
    for characters a cell cannot hold first; only when all of that succeeds
    are cells written. A missing document, unknown column, or illegal value
    therefore raises before the workbook changes. Should writing still fail,
    updated cells are restored and appended rows removed before re-raising.

    Within the apply phase updates run first, then inserts are appended, then
    deletes run bottom-up so earlier row indices stay valid.
    """

    def __init__(self) -> None:
        self._operations: List[_Operation] = []
        self._committed = False

    def __len__(self) -> int:
        return len(self._operations)

    def insert(self, record: object) -> "WriteBatch":
        sheet_name, serializer = _serializer_for(record)
        self._operations.append(_Operation("insert", sheet_name, values=serializer(record)))
        return self

    def update(self, sheet_name: str, key_value: str, field_values: Mapping[str, Any]) -> "WriteBatch":
        self._operations.append(
            _Operation("update", sheet_name, key_value=key_value, field_values=dict(field_values))
        )
        return self

    def delete(self, sheet_name: str, key_value: str) -> "WriteBatch":
        self._operations.append(_Operation("delete", sheet_name, key_value=key_value))
        return self

    def commit(self, workbook: Workbook) -> None:
        """Apply every staged operation to ``workbook`` or none of them.

        Raises:
            KeyError: If an update or delete targets a missing document or an
                unknown column.
            IllegalCellValueError: If a text value holds control characters.
            ValueError: If the same document is deleted twice, an insert does
                not match the sheet layout, or the batch was already committed.
        """

        if self._committed:
            raise ValueError("Write batch already committed")

        updates: List[Tuple[str, int, Dict[int, object]]] = []
        inserts: List[Tuple[str, Sequence[object]]] = []
        deletes: Dict[Tuple[str, int], str] = {}

        for operation in self._operations:
            headers = header_map(workbook, operation.sheet_name)
            if operation.action == "insert":
                assert operation.values is not None
                if len(operation.values) != len(headers):
                    raise ValueError(
                        f"Row for '{operation.sheet_name}' has {len(operation.values)} values, "
                        f"expected {len(headers)}"
                    )
                names = sorted(headers, key=headers.__getitem__)
                inserts.append(
                    (
                        operation.sheet_name,
                        [
                            check_cell_value(operation.sheet_name, name, value)
                            for name, value in zip(names, operation.values)
                        ],
                    )
                )
                continue

            key_column = KEY_COLUMNS[operation.sheet_name]
            assert operation.key_value is not None
            row_index = locate_row(workbook, operation.sheet_name, key_column, operation.key_value)
            if row_index is None:
                raise KeyError(f"Document not found in '{operation.sheet_name}': {operation.key_value}")

            if operation.action == "delete":
                slot = (operation.sheet_name, row_index)
                if slot in deletes:
                    raise ValueError(
                        f"Document deleted twice in one batch: {operation.sheet_name}/{operation.key_value}"
                    )
                deletes[slot] = operation.key_value
                continue

            cells: Dict[int, object] = {}
            for name, value in (operation.field_values or {}).items():
                if name not in headers:
                    raise KeyError(f"Unknown field '{name}' in '{operation.sheet_name}'")
                cells[headers[name]] = check_cell_value(operation.sheet_name, name, to_cell_value(value))
            updates.append((operation.sheet_name, row_index, cells))

        previous: List[Tuple[str, int, int, object]] = []
        appended: List[Tuple[str, int]] = []
        try:
            for sheet_name, row_index, cells in updates:
                sheet = workbook[sheet_name]
                for column, value in cells.items():
                    cell = sheet.cell(row=row_index, column=column)
                    previous.append((sheet_name, row_index, column, cell.value))
                    cell.value = value

            for sheet_name, values in inserts:
                sheet = workbook[sheet_name]
                last_row = sheet.max_row
                try:
                    sheet.append(list(values))
                finally:
                    # a failed append can still leave part of its row behind
                    if sheet.max_row > last_row:
                        appended.append((sheet_name, sheet.max_row))
        except Exception:
            log.error("Write batch failed while applying; restoring %d cells and %d rows", len(previous), len(appended))
            for sheet_name, row_index in reversed(appended):
                workbook[sheet_name].delete_rows(row_index)
            for sheet_name, row_index, column, value in reversed(previous):
                workbook[sheet_name].cell(row=row_index, column=column).value = value
            raise

        for sheet_name, row_index in sorted(deletes, key=lambda slot: slot[1], reverse=True):
            workbook[sheet_name].delete_rows(row_index)

        self._committed = True
        log.debug(
            "Committed batch: %d updates, %d inserts, %d deletes",
            len(updates),
            len(inserts),
            len(deletes),
        )


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def to_cell_value(value: Any) -> object:
    """Convert a Python value into something ``openpyxl`` stores faithfully."""

    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def _to_date(raw: object) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw)[:10])


def _to_decimal(raw: object, default: str = "0") -> Decimal:
    return Decimal(str(raw)) if raw not in (None, "") else Decimal(default)


def _to_text(raw: object) -> str:
    return str(raw) if raw is not None else ""


def _to_optional_text(raw: object) -> Optional[str]:
    return str(raw) if raw not in (None, "") else None


def _to_bool(raw: object) -> bool:
    if isinstance(raw, str):
        return raw.strip().casefold() in {"true", "yes", "1"}
    return bool(raw)


def serialize_member(record: MemberRow) -> list[object]:
    return [
        record.member_id,
        record.name,
        record.contact,
        record.membership_type,
        record.start_date.isoformat(),
        record.expiry_date.isoformat(),
        record.status,
        record.created_at,
        record.updated_at,
    ]


def serialize_walk_in(record: WalkInRow) -> list[object]:
    return [
        record.walk_in_id,
        record.name,
        record.date.isoformat(),
        record.payment,
        record.method,
        record.created_at,
    ]


def serialize_inventory_item(record: InventoryItemRow) -> list[object]:
    return [
        record.item_id,
        record.product_name,
        record.price,
        record.stock,
        record.created_at,
        record.updated_at,
    ]


def serialize_sale(record: SaleRow) -> list[object]:
    """Convert a sale into sheet order, embedding line items as JSON text.

    Prices are encoded as strings inside the JSON document so decimal values
    survive the round trip without float rounding.
    """

    items = [
        {
            "productId": item.product_id,
            "productName": item.product_name,
            "price": str(item.price),
            "quantity": item.quantity,
            "subtotal": str(item.subtotal),
        }
        for item in record.items
    ]
    return [
        record.sale_id,
        json.dumps(items),
        record.total_amount,
        record.payment_method,
        record.customer_name,
        record.date.isoformat(),
        record.created_at,
    ]


def serialize_cashflow(record: CashflowRow) -> list[object]:
    return [
        record.entry_id,
        record.entry_type,
        record.source,
        record.amount,
        record.date.isoformat(),
        record.notes,
        record.linked_id,
        record.linked_type,
        record.auto_generated,
        record.created_at,
        record.updated_at,
    ]


def serialize_renewal_payment(record: RenewalPaymentRow) -> list[object]:
    return [
        record.renewal_id,
        record.member_id,
        record.member_name,
        record.amount,
        record.payment_method,
        record.payment_date.isoformat(),
        record.renewal_period,
        record.previous_expiry_date.isoformat(),
        record.new_expiry_date.isoformat(),
        record.notes,
        record.created_at,
    ]


_SERIALIZERS = {
    MemberRow: (MEMBERS_SHEET, serialize_member),
    WalkInRow: (WALK_INS_SHEET, serialize_walk_in),
    InventoryItemRow: (INVENTORY_SHEET, serialize_inventory_item),
    SaleRow: (SALES_SHEET, serialize_sale),
    CashflowRow: (CASHFLOW_SHEET, serialize_cashflow),
    RenewalPaymentRow: (RENEWAL_PAYMENTS_SHEET, serialize_renewal_payment),
}


def _serializer_for(record: object):
    try:
        return _SERIALIZERS[type(record)]
    except KeyError as exc:
        raise TypeError(f"Unsupported record type: {type(record).__name__}") from exc


def deserialize_member(raw_row: Sequence[object]) -> MemberRow:
    (member_id, name, contact, membership_type, start_raw, expiry_raw, status, created_at, updated_at) = raw_row[:9]
    return MemberRow(
        member_id=str(member_id),
        name=_to_text(name),
        contact=_to_text(contact),
        membership_type=_to_text(membership_type),
        start_date=_to_date(start_raw),
        expiry_date=_to_date(expiry_raw),
        status=_to_text(status),
        created_at=_to_text(created_at),
        updated_at=_to_text(updated_at),
    )


def deserialize_walk_in(raw_row: Sequence[object]) -> WalkInRow:
    (walk_in_id, name, date_raw, payment_raw, method, created_at) = raw_row[:6]
    return WalkInRow(
        walk_in_id=str(walk_in_id),
        name=_to_text(name),
        date=_to_date(date_raw),
        payment=_to_decimal(payment_raw),
        method=_to_text(method),
        created_at=_to_text(created_at),
    )


def deserialize_inventory_item(raw_row: Sequence[object]) -> InventoryItemRow:
    (item_id, product_name, price_raw, stock_raw, created_at, updated_at) = raw_row[:6]
    return InventoryItemRow(
        item_id=str(item_id),
        product_name=_to_text(product_name),
        price=_to_decimal(price_raw),
        stock=int(stock_raw) if stock_raw is not None else 0,
        created_at=_to_text(created_at),
        updated_at=_to_text(updated_at),
    )


def deserialize_sale(raw_row: Sequence[object]) -> SaleRow:
    (sale_id, items_raw, total_raw, payment_method, customer_name, date_raw, created_at) = raw_row[:7]
    decoded = json.loads(items_raw) if items_raw else []
    items = tuple(
        SaleLineItem(
            product_id=str(item.get("productId", "")),
            product_name=str(item.get("productName", "")),
            price=_to_decimal(item.get("price")),
            quantity=int(item.get("quantity", 0)),
            subtotal=_to_decimal(item.get("subtotal")),
        )
        for item in decoded
    )
    return SaleRow(
        sale_id=str(sale_id),
        items=items,
        total_amount=_to_decimal(total_raw),
        payment_method=_to_text(payment_method),
        customer_name=_to_text(customer_name),
        date=_to_date(date_raw),
        created_at=_to_text(created_at),
    )


def deserialize_cashflow(raw_row: Sequence[object]) -> CashflowRow:
    (
        entry_id,
        entry_type,
        source,
        amount_raw,
        date_raw,
        notes,
        linked_id,
        linked_type,
        auto_generated,
        created_at,
        updated_at,
    ) = raw_row[:11]
    return CashflowRow(
        entry_id=str(entry_id),
        entry_type=_to_text(entry_type),
        source=_to_text(source),
        amount=_to_decimal(amount_raw),
        date=_to_date(date_raw),
        notes=_to_text(notes),
        linked_id=_to_optional_text(linked_id),
        linked_type=_to_optional_text(linked_type),
        auto_generated=_to_bool(auto_generated),
        created_at=_to_text(created_at),
        updated_at=_to_text(updated_at),
    )


def deserialize_renewal_payment(raw_row: Sequence[object]) -> RenewalPaymentRow:
    (
        renewal_id,
        member_id,
        member_name,
        amount_raw,
        payment_method,
        payment_date_raw,
        renewal_period,
        previous_raw,
        new_raw,
        notes,
        created_at,
    ) = raw_row[:11]
    return RenewalPaymentRow(
        renewal_id=str(renewal_id),
        member_id=_to_text(member_id),
        member_name=_to_text(member_name),
        amount=_to_decimal(amount_raw),
        payment_method=_to_text(payment_method),
        payment_date=_to_date(payment_date_raw),
        renewal_period=_to_text(renewal_period),
        previous_expiry_date=_to_date(previous_raw),
        new_expiry_date=_to_date(new_raw),
        notes=_to_text(notes),
        created_at=_to_text(created_at),
    )
