"""Cascading deletes and ledger drift repair for Gym Ledger.

The workbook has no foreign keys, so removing a member, walk-in, or sale
must also remove the cashflow entries that point back at it (and, for
sales, put the sold units back on the shelf). Entries written before
back-references existed are found by an exact match on source, date, and
amount where one is recorded, with the name in the entry notes breaking ties.

:func:`cleanup_orphaned_entries` is the operator-triggered counterpart: it
walks the ledger for one kind of primary document, deletes entries whose
target is gone, and relinks legacy entries that match exactly one document.
Heuristic matches that hit several documents are logged and reported rather
than resolved.

Lookups run before the delete batch is committed and are not part of it, so
two operators deleting the same record at once can still race.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Set, Tuple

from . import core_logic, data_manager, log
from .constants import PRODUCT_SALE_SOURCE, WALK_IN_SOURCE, CashflowType, LinkedType, MembershipType


@dataclass(frozen=True)
class ReconciliationResult:
    """Summary of everything a cascading delete removed or restored."""

    kind: LinkedType
    primary_id: str
    removed_entry_ids: Tuple[str, ...]
    removed_renewal_ids: Tuple[str, ...] = ()
    restored_stock: Mapping[str, int] = field(default_factory=dict)
    recreated_items: Tuple[str, ...] = ()
    ambiguous_entry_ids: Tuple[str, ...] = ()
    used_fallback: bool = False


@dataclass(frozen=True)
class CleanupReport:
    """Counts and ids produced by one cleanup scan."""

    kind: LinkedType
    scanned: int
    deleted_orphans: Tuple[str, ...]
    relinked: Tuple[str, ...]
    ambiguous: Tuple[str, ...]

    @property
    def changed(self) -> bool:
        return bool(self.deleted_orphans or self.relinked)


class _Candidate(NamedTuple):
    linked_id: str
    linked_type: LinkedType
    name: str


KIND_SOURCES: Mapping[LinkedType, frozenset] = {
    LinkedType.MEMBER: frozenset(tier.value for tier in MembershipType),
    LinkedType.WALK_IN: frozenset({WALK_IN_SOURCE}),
    LinkedType.SALE: frozenset({PRODUCT_SALE_SOURCE}),
}

KIND_LINK_TYPES: Mapping[LinkedType, frozenset] = {
    LinkedType.MEMBER: frozenset({LinkedType.MEMBER.value, LinkedType.RENEWAL.value}),
    LinkedType.WALK_IN: frozenset({LinkedType.WALK_IN.value}),
    LinkedType.SALE: frozenset({LinkedType.SALE.value}),
}


def _mentions(entry: data_manager.CashflowRow, name: str) -> bool:
    name = (name or "").strip().casefold()
    return bool(name) and name in entry.notes.casefold()


def _pick_single(candidates: Sequence, name_of, entry_or_name) -> Tuple[Optional[object], bool]:
    """Reduce candidates to a single winner.

    Returns ``(winner, ambiguous)``. With several candidates the ones whose
    name appears in the notes are preferred; a tie that survives narrowing is
    ambiguous and yields no winner.
    """

    if not candidates:
        return None, False
    if len(candidates) == 1:
        return candidates[0], False
    narrowed = [candidate for candidate in candidates if name_of(candidate, entry_or_name)]
    if len(narrowed) == 1:
        return narrowed[0], False
    return None, True


def _unlinked_income(context: core_logic.RuntimeContext, source: str) -> List[data_manager.CashflowRow]:
    return [
        entry
        for entry in core_logic.list_cashflow(context, entry_type=CashflowType.INCOME, source=source)
        if not entry.linked_id
    ]


def find_fallback_entry(
    context: core_logic.RuntimeContext,
    *,
    source: str,
    entry_date,
    amount: Optional[Decimal] = None,
    name: Optional[str] = None,
) -> Tuple[Optional[data_manager.CashflowRow], Tuple[str, ...]]:
    """Find the single legacy entry that matches a primary document.

    Only unlinked income entries are considered, so entries that belong to
    another document through ``linked_id`` are never touched.

    Args:
        context (core_logic.RuntimeContext): Runtime context.
        source (str): Ledger source label the entry must carry.
        entry_date (date): Date the entry must carry.
        amount (Decimal | None): Exact amount to match, when the primary
            document records one.
        name (str | None): Member, guest, or customer name expected in the
            entry notes; used to break ties.

    Returns:
        tuple: ``(entry, ())`` for a unique match, ``(None, ids)`` when the
            candidates with ``ids`` tie, and ``(None, ())`` when nothing
            matches.
    """

    candidates = [
        entry
        for entry in _unlinked_income(context, source)
        if entry.date == entry_date and (amount is None or entry.amount == amount)
    ]
    winner, ambiguous = _pick_single(candidates, lambda entry, wanted: _mentions(entry, wanted or ""), name)
    if ambiguous:
        ids = tuple(entry.entry_id for entry in candidates)
        log.warning(
            "Ambiguous fallback match for %s on %s (amount=%s, name=%s): %s",
            source,
            entry_date,
            amount,
            name,
            ", ".join(ids),
        )
        return None, ids
    return winner, ()


# ---------------------------------------------------------------------------
# Ledger reconciler
# ---------------------------------------------------------------------------


def delete_member(context: core_logic.RuntimeContext, member_id: str) -> ReconciliationResult:
    """Delete a member with every entry and renewal record that belongs to it.

    Entries linked to the member id (enrollment and renewals) are removed.
    When none are linked, a legacy enrollment entry is located by tier and
    start date, with the member's name in its notes breaking ties. An entry
    that does not name the member and could equally belong to another member
    or walk-in is reported as ambiguous instead of being removed.

    Raises:
        OperatorRequiredError: If no operator is signed in.
        MissingReferenceError: If the member is unknown.
    """
    core_logic.require_operator(context)
    member = core_logic.get_member(context, member_id)
    linked = core_logic.list_cashflow(context, linked_id=member_id)
    renewals = core_logic.list_renewal_payments(context, member_id=member_id)

    removed = [entry.entry_id for entry in linked]
    ambiguous: Tuple[str, ...] = ()
    used_fallback = False
    if not linked:
        used_fallback = True
        match, ambiguous = find_fallback_entry(
            context,
            source=member.membership_type,
            entry_date=member.start_date,
            name=member.name,
        )
        if match is not None and not _mentions(match, member.name) and _owned_by_another(context, member, match):
            log.warning("Legacy entry '%s' could belong to another document; leaving it", match.entry_id)
            match, ambiguous = None, (match.entry_id,)
        if match is not None:
            removed.append(match.entry_id)

    batch = data_manager.WriteBatch().delete(data_manager.MEMBERS_SHEET, member_id)
    for entry_id in removed:
        batch.delete(data_manager.CASHFLOW_SHEET, entry_id)
    for renewal in renewals:
        batch.delete(data_manager.RENEWAL_PAYMENTS_SHEET, renewal.renewal_id)
    core_logic.commit_batch(context, batch, "members", "cashflow", "renewals")

    log.info(
        "Deleted member '%s' with %d entries and %d renewals%s",
        member_id,
        len(removed),
        len(renewals),
        " (fallback match)" if used_fallback and removed else "",
    )
    return ReconciliationResult(
        kind=LinkedType.MEMBER,
        primary_id=member_id,
        removed_entry_ids=tuple(removed),
        removed_renewal_ids=tuple(renewal.renewal_id for renewal in renewals),
        ambiguous_entry_ids=ambiguous,
        used_fallback=used_fallback,
    )


def delete_walk_in(context: core_logic.RuntimeContext, walk_in_id: str) -> ReconciliationResult:
    """Delete a walk-in and its Day Pass entry.

    Raises:
        OperatorRequiredError: If no operator is signed in.
        MissingReferenceError: If the walk-in is unknown.
    """
    core_logic.require_operator(context)
    walk_in = core_logic.get_walk_in(context, walk_in_id)
    linked = core_logic.list_cashflow(context, linked_id=walk_in_id)

    removed = [entry.entry_id for entry in linked]
    ambiguous: Tuple[str, ...] = ()
    if not linked:
        match, ambiguous = find_fallback_entry(
            context,
            source=WALK_IN_SOURCE,
            entry_date=walk_in.date,
            amount=walk_in.payment,
            name=walk_in.name,
        )
        if match is not None:
            removed.append(match.entry_id)

    batch = data_manager.WriteBatch().delete(data_manager.WALK_INS_SHEET, walk_in_id)
    for entry_id in removed:
        batch.delete(data_manager.CASHFLOW_SHEET, entry_id)
    core_logic.commit_batch(context, batch, "walk_ins", "cashflow")

    log.info("Deleted walk-in '%s' with %d entries", walk_in_id, len(removed))
    return ReconciliationResult(
        kind=LinkedType.WALK_IN,
        primary_id=walk_in_id,
        removed_entry_ids=tuple(removed),
        ambiguous_entry_ids=ambiguous,
        used_fallback=not linked,
    )


def delete_sale(context: core_logic.RuntimeContext, sale_id: str) -> ReconciliationResult:
    """Reverse a sale: restore stock, remove its entry, delete the sale.

    Stock is looked up by product name. An item deleted since the sale is
    recreated with the sold quantity as stock and the price recorded on the
    sale line.

    Raises:
        OperatorRequiredError: If no operator is signed in.
        MissingReferenceError: If the sale is unknown.
    """
    core_logic.require_operator(context)
    sale = core_logic.get_sale(context, sale_id)
    linked = core_logic.list_cashflow(context, linked_id=sale_id)

    removed = [entry.entry_id for entry in linked]
    ambiguous: Tuple[str, ...] = ()
    if not linked:
        match, ambiguous = find_fallback_entry(
            context,
            source=PRODUCT_SALE_SOURCE,
            entry_date=sale.date,
            amount=sale.total_amount,
            name=sale.customer_name,
        )
        if match is not None:
            removed.append(match.entry_id)

    # Merge lines that share a product so each item is written once.
    returned: Dict[str, Tuple[data_manager.SaleLineItem, int]] = {}
    for line in sale.items:
        key = line.product_name.strip().casefold()
        first, quantity = returned.get(key, (line, 0))
        returned[key] = (first, quantity + line.quantity)

    timestamp = core_logic._resolve_now().isoformat()
    batch = data_manager.WriteBatch().delete(data_manager.SALES_SHEET, sale_id)
    restored: Dict[str, int] = {}
    recreated: List[str] = []
    for line, quantity in returned.values():
        item = core_logic.find_inventory_item_by_name(context, line.product_name)
        if item is not None:
            batch.update(
                data_manager.INVENTORY_SHEET,
                item.item_id,
                {"Stock": item.stock + quantity, "UpdatedAt": timestamp},
            )
            restored[item.item_id] = quantity
            continue
        replacement = data_manager.InventoryItemRow(
            item_id=core_logic.generate_id("I"),
            product_name=line.product_name,
            price=line.price,
            stock=quantity,
            created_at=timestamp,
            updated_at=timestamp,
        )
        batch.insert(replacement)
        restored[replacement.item_id] = quantity
        recreated.append(replacement.item_id)
        log.warning("Recreated missing inventory item '%s' from sale '%s'", line.product_name, sale_id)

    for entry_id in removed:
        batch.delete(data_manager.CASHFLOW_SHEET, entry_id)
    core_logic.commit_batch(context, batch, "sales", "inventory", "cashflow")

    log.info(
        "Deleted sale '%s' (total=%s): restored %d items, removed %d entries",
        sale_id,
        sale.total_amount,
        len(restored),
        len(removed),
    )
    return ReconciliationResult(
        kind=LinkedType.SALE,
        primary_id=sale_id,
        removed_entry_ids=tuple(removed),
        restored_stock=restored,
        recreated_items=tuple(recreated),
        ambiguous_entry_ids=ambiguous,
        used_fallback=not linked,
    )


# ---------------------------------------------------------------------------
# Cleanup scanner
# ---------------------------------------------------------------------------


def _primary_ids(context: core_logic.RuntimeContext, kind: LinkedType) -> Set[str]:
    if kind is LinkedType.MEMBER:
        return {member.member_id for member in core_logic.list_members(context)}
    if kind is LinkedType.WALK_IN:
        return {walk_in.walk_in_id for walk_in in core_logic.list_walk_ins(context)}
    return {sale.sale_id for sale in core_logic.list_sales(context)}


def _candidates(context: core_logic.RuntimeContext, kind: LinkedType, entry: data_manager.CashflowRow) -> List[_Candidate]:
    """Primary documents of ``kind`` that an unlinked entry could belong to."""

    if kind is LinkedType.WALK_IN:
        return [
            _Candidate(walk_in.walk_in_id, LinkedType.WALK_IN, walk_in.name)
            for walk_in in core_logic.list_walk_ins(context, on_date=entry.date)
            if walk_in.payment == entry.amount
        ]
    if kind is LinkedType.SALE:
        return [
            _Candidate(sale.sale_id, LinkedType.SALE, sale.customer_name)
            for sale in core_logic.list_sales(context)
            if sale.date == entry.date and sale.total_amount == entry.amount
        ]

    members = {member.member_id: member for member in core_logic.list_members(context)}
    found = [
        _Candidate(member.member_id, LinkedType.MEMBER, member.name)
        for member in members.values()
        if member.membership_type == entry.source
        and member.start_date == entry.date
    ]
    for renewal in core_logic.list_renewal_payments(context):
        member = members.get(renewal.member_id)
        if (
            member is not None
            and member.membership_type == entry.source
            and renewal.payment_date == entry.date
            and renewal.amount == entry.amount
        ):
            found.append(_Candidate(member.member_id, LinkedType.RENEWAL, renewal.member_name))
    return found


def _kinds_sharing(source: str, kind: LinkedType) -> Iterable[LinkedType]:
    return [other for other, sources in KIND_SOURCES.items() if other is not kind and source in sources]


def _claimed_elsewhere(context: core_logic.RuntimeContext, kind: LinkedType, entry: data_manager.CashflowRow) -> bool:
    """True when another kind using the same source label owns or matches ``entry``."""

    for other in _kinds_sharing(entry.source, kind):
        if entry.linked_id and entry.linked_id in _primary_ids(context, other):
            return True
        if not entry.linked_id and _candidates(context, other, entry):
            return True
    return False


def _owned_by_another(
    context: core_logic.RuntimeContext,
    member: data_manager.MemberRow,
    entry: data_manager.CashflowRow,
) -> bool:
    rivals = [
        candidate
        for candidate in _candidates(context, LinkedType.MEMBER, entry)
        if candidate.linked_id != member.member_id
    ]
    return bool(rivals) or _claimed_elsewhere(context, LinkedType.MEMBER, entry)


def cleanup_orphaned_entries(context: core_logic.RuntimeContext, kind: LinkedType) -> CleanupReport:
    """Repair drift between one kind of primary document and the ledger.

    For every income entry whose source belongs to ``kind``:

    * a ``linked_id`` that no longer resolves makes the entry an orphan and it
      is deleted;
    * a ``linked_id`` without ``linked_type`` that resolves is relinked with
      the proper type;
    * an unlinked entry matching exactly one document is relinked, one
      matching several is reported as ambiguous and left alone, and one
      matching nothing is deleted. Members match on tier and start date;
      names in the notes only break ties.

    Entries linked to, or matching, another kind that shares the source label
    (``Day Pass`` is both a tier and the walk-in source) are never deleted,
    and a match they share that does not name its document is reported as
    ambiguous. All changes are committed in one batch, so a second run with
    no intervening writes reports no changes.

    Args:
        context (core_logic.RuntimeContext): Runtime context.
        kind (LinkedType): ``MEMBER``, ``WALK_IN``, or ``SALE``.

    Returns:
        CleanupReport: Ids of deleted, relinked, and ambiguous entries.

    Raises:
        OperatorRequiredError: If no operator is signed in.
        ValidationError: If ``kind`` is not a scannable primary kind.
    """
    core_logic.require_operator(context)
    if kind not in KIND_SOURCES:
        raise core_logic.ValidationError({"kind": f"Cannot scan ledger entries for '{kind.value}'"})

    sources = KIND_SOURCES[kind]
    link_types = KIND_LINK_TYPES[kind]
    live_ids = _primary_ids(context, kind)
    entries = [
        entry
        for entry in core_logic.list_cashflow(context, entry_type=CashflowType.INCOME)
        if entry.source in sources
    ]

    # Walk-ins, sales, and enrollments own a single entry each; renewals may repeat.
    claimed = {(entry.linked_id, entry.linked_type) for entry in entries if entry.linked_id}

    timestamp = core_logic._resolve_now().isoformat()
    batch = data_manager.WriteBatch()
    deleted: List[str] = []
    relinked: List[str] = []
    ambiguous: List[str] = []

    for entry in entries:
        if entry.linked_type and entry.linked_type not in link_types:
            continue

        if entry.linked_id:
            if entry.linked_id in live_ids:
                if not entry.linked_type:
                    default_type = LinkedType.MEMBER if kind is LinkedType.MEMBER else kind
                    batch.update(
                        data_manager.CASHFLOW_SHEET,
                        entry.entry_id,
                        {"LinkedType": default_type.value, "UpdatedAt": timestamp},
                    )
                    relinked.append(entry.entry_id)
                continue
            if not entry.linked_type and _claimed_elsewhere(context, kind, entry):
                continue
            batch.delete(data_manager.CASHFLOW_SHEET, entry.entry_id)
            deleted.append(entry.entry_id)
            continue

        candidates = [
            candidate
            for candidate in _candidates(context, kind, entry)
            if candidate.linked_type is LinkedType.RENEWAL
            or (candidate.linked_id, candidate.linked_type.value) not in claimed
        ]
        winner, tie = _pick_single(candidates, lambda candidate, row: _mentions(row, candidate.name), entry)
        if winner is not None and not _mentions(entry, winner.name) and _claimed_elsewhere(context, kind, entry):
            tie = True
        if tie:
            log.warning(
                "Ambiguous %s match for entry '%s': %s",
                kind.value,
                entry.entry_id,
                ", ".join(candidate.linked_id for candidate in candidates),
            )
            ambiguous.append(entry.entry_id)
            continue
        if winner is not None:
            batch.update(
                data_manager.CASHFLOW_SHEET,
                entry.entry_id,
                {
                    "LinkedID": winner.linked_id,
                    "LinkedType": winner.linked_type.value,
                    "AutoGenerated": True,
                    "UpdatedAt": timestamp,
                },
            )
            relinked.append(entry.entry_id)
            claimed.add((winner.linked_id, winner.linked_type.value))
            continue
        if _claimed_elsewhere(context, kind, entry):
            continue
        batch.delete(data_manager.CASHFLOW_SHEET, entry.entry_id)
        deleted.append(entry.entry_id)

    if len(batch):
        core_logic.commit_batch(context, batch, "cashflow")

    log.info(
        "Cleanup for %s scanned %d entries: %d orphans deleted, %d relinked, %d ambiguous",
        kind.value,
        len(entries),
        len(deleted),
        len(relinked),
        len(ambiguous),
    )
    return CleanupReport(
        kind=kind,
        scanned=len(entries),
        deleted_orphans=tuple(deleted),
        relinked=tuple(relinked),
        ambiguous=tuple(ambiguous),
    )


def cleanup_all(context: core_logic.RuntimeContext) -> List[CleanupReport]:
    """Run the cleanup scanner for members, walk-ins, and sales in turn."""

    return [cleanup_orphaned_entries(context, kind) for kind in KIND_SOURCES]
