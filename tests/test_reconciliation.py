"""Tests for cascading deletes and the ledger cleanup scanner.

These run against a real temporary workbook so that the batch semantics of
the data access layer are exercised together with the reconciliation rules.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from gym_ledger import core_logic, data_manager, reconciliation
from gym_ledger.constants import LinkedType, MembershipType, PaymentMethod


def _enroll(context, name: str, *, tier: MembershipType = MembershipType.WARRIOR_PASS, start: date = date(2024, 1, 1)):
    return core_logic.enroll_member(
        context,
        core_logic.EnrollMemberCommand(
            name=name,
            contact="09171234567",
            membership_type=tier,
            start_date=start,
        ),
    )


def _stage(context, *records) -> None:
    """Write rows directly, bypassing the ledger writer, to simulate legacy data."""

    batch = data_manager.WriteBatch()
    for record in records:
        batch.insert(record)
    core_logic.commit_batch(context, batch, "members", "walk_ins", "sales", "cashflow")


def _legacy_entry(
    entry_id: str,
    *,
    source: str,
    amount: str,
    on: date,
    notes: str,
    linked_id: str | None = None,
    linked_type: str | None = None,
) -> data_manager.CashflowRow:
    return data_manager.CashflowRow(
        entry_id=entry_id,
        entry_type="income",
        source=source,
        amount=Decimal(amount),
        date=on,
        notes=notes,
        linked_id=linked_id,
        linked_type=linked_type,
        auto_generated=False,
        created_at="",
        updated_at="",
    )


def _member_row(member_id: str, name: str, *, tier: MembershipType = MembershipType.WARRIOR_PASS, start=date(2024, 1, 1)):
    return data_manager.MemberRow(
        member_id, name, "09171234567", tier.value, start,
        core_logic.calculate_expiry_date(tier, start), "Active", "", "",
    )


def _walk_in_row(walk_in_id: str, name: str, *, on: date, payment: str = "100"):
    return data_manager.WalkInRow(walk_in_id, name, on, Decimal(payment), "Cash", "")


def _entry_ids(context) -> set[str]:
    return {entry.entry_id for entry in core_logic.list_cashflow(context)}


# ---------------------------------------------------------------------------
# Member deletion
# ---------------------------------------------------------------------------


def test_delete_member_removes_enrollment_and_renewals(runtime_context):
    context = runtime_context
    juan = _enroll(context, "Juan")
    ana = _enroll(context, "Ana")
    renewal = core_logic.renew_member(
        context,
        core_logic.RenewalCommand(juan.primary.member_id, "1 month", Decimal("799"), PaymentMethod.CASH, date(2024, 1, 25)),
    )

    result = reconciliation.delete_member(context, juan.primary.member_id)

    assert set(result.removed_entry_ids) == {juan.entry.entry_id, renewal.entry.entry_id}
    assert result.removed_renewal_ids == (renewal.renewal.renewal_id,)
    assert result.used_fallback is False
    assert _entry_ids(context) == {ana.entry.entry_id}
    assert [member.member_id for member in core_logic.list_members(context)] == [ana.primary.member_id]
    assert core_logic.list_renewal_payments(context) == []


def test_delete_member_falls_back_to_legacy_entry_by_name(runtime_context):
    context = runtime_context
    _stage(
        context,
        _member_row("M-legacy", "Ana Santos"),
        _legacy_entry("C-ana", source="Warrior Pass", amount="799", on=date(2024, 1, 1), notes="Membership: Ana Santos"),
        _legacy_entry("C-ben", source="Warrior Pass", amount="799", on=date(2024, 1, 1), notes="Membership: Ben Reyes"),
    )

    result = reconciliation.delete_member(context, "M-legacy")

    assert result.used_fallback is True
    assert result.removed_entry_ids == ("C-ana",)
    assert _entry_ids(context) == {"C-ben"}


def test_delete_member_fallback_matches_tier_and_start_without_name(runtime_context):
    context = runtime_context
    _stage(
        context,
        _member_row("M-legacy", "Ana Santos"),
        _legacy_entry("C-anon", source="Warrior Pass", amount="799", on=date(2024, 1, 1), notes=""),
    )

    result = reconciliation.delete_member(context, "M-legacy")

    assert result.removed_entry_ids == ("C-anon",)
    assert _entry_ids(context) == set()
    assert core_logic.list_members(context) == []


def test_delete_member_fallback_reports_entry_another_member_could_own(runtime_context):
    context = runtime_context
    _stage(
        context,
        _member_row("M-ana", "Ana Santos"),
        _member_row("M-ben", "Ben Reyes"),
        _legacy_entry("C-anon", source="Warrior Pass", amount="799", on=date(2024, 1, 1), notes=""),
    )

    result = reconciliation.delete_member(context, "M-ana")

    assert result.removed_entry_ids == ()
    assert result.ambiguous_entry_ids == ("C-anon",)
    assert _entry_ids(context) == {"C-anon"}
    assert [member.member_id for member in core_logic.list_members(context)] == ["M-ben"]


def test_delete_member_fallback_never_touches_linked_entries(runtime_context):
    context = runtime_context
    other = _enroll(context, "Ana Santos")
    _stage(context, _member_row("M-legacy", "Ana Santos"))

    result = reconciliation.delete_member(context, "M-legacy")

    assert result.removed_entry_ids == ()
    assert _entry_ids(context) == {other.entry.entry_id}


def test_delete_unknown_member_raises(runtime_context):
    with pytest.raises(core_logic.MissingReferenceError):
        reconciliation.delete_member(runtime_context, "M404")


# ---------------------------------------------------------------------------
# Walk-in deletion
# ---------------------------------------------------------------------------


def test_delete_walk_in_removes_linked_entry(runtime_context):
    context = runtime_context
    written = core_logic.record_walk_in(
        context,
        core_logic.WalkInCommand(payment=Decimal("100"), method=PaymentMethod.CASH, visit_date=date(2024, 1, 5)),
    )

    result = reconciliation.delete_walk_in(context, written.primary.walk_in_id)

    assert result.removed_entry_ids == (written.entry.entry_id,)
    assert core_logic.list_walk_ins(context) == []
    assert core_logic.list_cashflow(context) == []


def test_delete_walk_in_reports_ambiguous_legacy_entries(runtime_context):
    """Two indistinguishable legacy entries are reported, not guessed at."""

    context = runtime_context
    _stage(
        context,
        _walk_in_row("W-legacy", "Guest", on=date(2024, 1, 5)),
        _legacy_entry("C-1", source="Day Pass", amount="100", on=date(2024, 1, 5), notes="Walk-in: Guest"),
        _legacy_entry("C-2", source="Day Pass", amount="100", on=date(2024, 1, 5), notes="Walk-in: Guest"),
    )

    result = reconciliation.delete_walk_in(context, "W-legacy")

    assert result.removed_entry_ids == ()
    assert set(result.ambiguous_entry_ids) == {"C-1", "C-2"}
    assert _entry_ids(context) == {"C-1", "C-2"}
    assert core_logic.list_walk_ins(context) == []


def test_delete_walk_in_fallback_breaks_ties_by_name(runtime_context):
    context = runtime_context
    _stage(
        context,
        _walk_in_row("W-legacy", "Carlo", on=date(2024, 1, 5)),
        _legacy_entry("C-1", source="Day Pass", amount="100", on=date(2024, 1, 5), notes="Walk-in: Guest"),
        _legacy_entry("C-2", source="Day Pass", amount="100", on=date(2024, 1, 5), notes="Walk-in: Carlo"),
    )

    result = reconciliation.delete_walk_in(context, "W-legacy")

    assert result.removed_entry_ids == ("C-2",)
    assert _entry_ids(context) == {"C-1"}


# ---------------------------------------------------------------------------
# Sale deletion
# ---------------------------------------------------------------------------


def test_delete_sale_restores_stock(runtime_context):
    context = runtime_context
    item = core_logic.add_inventory_item(context, product_name="Protein Bar", price=Decimal("50"), stock=10)
    sale = core_logic.record_sale(
        context,
        core_logic.SaleCommand(lines=[core_logic.SaleLineCommand(item.item_id, 2)], payment_method="Cash"),
    )
    assert core_logic.get_inventory_item(context, item.item_id).stock == 8

    result = reconciliation.delete_sale(context, sale.primary.sale_id)

    assert result.restored_stock == {item.item_id: 2}
    assert result.removed_entry_ids == (sale.entry.entry_id,)
    assert core_logic.get_inventory_item(context, item.item_id).stock == 10
    assert core_logic.list_sales(context) == []
    assert core_logic.list_cashflow(context) == []


def test_delete_sale_recreates_missing_item(runtime_context):
    context = runtime_context
    item = core_logic.add_inventory_item(context, product_name="Shaker", price=Decimal("250"), stock=3)
    sale = core_logic.record_sale(
        context,
        core_logic.SaleCommand(lines=[core_logic.SaleLineCommand(item.item_id, 3)], payment_method="GCash"),
    )
    core_logic.delete_inventory_item(context, item.item_id)

    result = reconciliation.delete_sale(context, sale.primary.sale_id)

    (recreated_id,) = result.recreated_items
    recreated = core_logic.get_inventory_item(context, recreated_id)
    assert recreated.product_name == "Shaker"
    assert recreated.price == Decimal("250")
    assert recreated.stock == 3


# ---------------------------------------------------------------------------
# Cleanup scanner
# ---------------------------------------------------------------------------


def test_cleanup_deletes_orphans_and_relinks_legacy_entries(runtime_context):
    context = runtime_context
    _stage(
        context,
        _walk_in_row("W-legacy", "Ben", on=date(2024, 1, 5)),
        _legacy_entry("C-orphan", source="Day Pass", amount="100", on=date(2024, 1, 4), notes="", linked_id="W-gone", linked_type="walkin"),
        _legacy_entry("C-ben", source="Day Pass", amount="100", on=date(2024, 1, 5), notes="Walk-in: Ben"),
        _legacy_entry("C-stray", source="Day Pass", amount="100", on=date(2024, 1, 9), notes="Walk-in: Guest"),
    )

    report = reconciliation.cleanup_orphaned_entries(context, LinkedType.WALK_IN)

    assert set(report.deleted_orphans) == {"C-orphan", "C-stray"}
    assert report.relinked == ("C-ben",)
    relinked = core_logic.get_cashflow_entry(context, "C-ben")
    assert (relinked.linked_id, relinked.linked_type) == ("W-legacy", "walkin")

    second = reconciliation.cleanup_orphaned_entries(context, LinkedType.WALK_IN)
    assert second.changed is False


def test_cleanup_does_not_steal_entries_from_other_kinds(runtime_context):
    """Day Pass is both a walk-in source and a membership tier."""

    context = runtime_context
    member = _enroll(context, "Dina", tier=MembershipType.DAY_PASS, start=date(2024, 1, 5))
    _stage(
        context,
        _member_row("M-legacy", "Eli", tier=MembershipType.DAY_PASS, start=date(2024, 1, 6)),
        _legacy_entry("C-eli", source="Day Pass", amount="100", on=date(2024, 1, 6), notes="Membership: Eli"),
    )

    report = reconciliation.cleanup_orphaned_entries(context, LinkedType.WALK_IN)

    assert report.deleted_orphans == ()
    assert _entry_ids(context) == {member.entry.entry_id, "C-eli"}


def test_cleanup_types_legacy_linked_ids(runtime_context):
    context = runtime_context
    _stage(
        context,
        _member_row("M-legacy", "Fe"),
        _legacy_entry("C-fe", source="Warrior Pass", amount="799", on=date(2024, 1, 1), notes="", linked_id="M-legacy"),
    )

    report = reconciliation.cleanup_orphaned_entries(context, LinkedType.MEMBER)

    assert report.relinked == ("C-fe",)
    assert core_logic.get_cashflow_entry(context, "C-fe").linked_type == "member"


def test_cleanup_reports_ambiguous_matches(runtime_context):
    context = runtime_context
    _stage(
        context,
        _walk_in_row("W-1", "Guest", on=date(2024, 1, 5)),
        _walk_in_row("W-2", "Guest", on=date(2024, 1, 5)),
        _legacy_entry("C-x", source="Day Pass", amount="100", on=date(2024, 1, 5), notes="Walk-in: Guest"),
    )

    report = reconciliation.cleanup_orphaned_entries(context, LinkedType.WALK_IN)

    assert report.ambiguous == ("C-x",)
    assert report.changed is False
    assert core_logic.get_cashflow_entry(context, "C-x").linked_id is None


def test_cleanup_leaves_expenses_alone(runtime_context):
    context = runtime_context
    expense = core_logic.record_expense(
        context, core_logic.ExpenseCommand(source="Rent", amount=Decimal("15000"), expense_date=date(2024, 1, 1))
    )

    reports = reconciliation.cleanup_all(context)

    assert all(not report.changed for report in reports)
    assert _entry_ids(context) == {expense.entry_id}


def test_cleanup_rejects_renewal_kind(runtime_context):
    with pytest.raises(core_logic.ValidationError):
        reconciliation.cleanup_orphaned_entries(runtime_context, LinkedType.RENEWAL)


def test_cleanup_relinks_unnamed_membership_entry(runtime_context):
    context = runtime_context
    _stage(
        context,
        _member_row("M-1", "Ana Santos"),
        _legacy_entry("C-1", source="Warrior Pass", amount="799", on=date(2024, 1, 1), notes=""),
    )

    report = reconciliation.cleanup_orphaned_entries(context, LinkedType.MEMBER)

    assert report.deleted_orphans == ()
    assert report.relinked == ("C-1",)
    entry = core_logic.get_cashflow_entry(context, "C-1")
    assert (entry.linked_id, entry.linked_type) == ("M-1", "member")


def test_cleanup_reports_unnamed_entry_shared_by_two_members(runtime_context):
    context = runtime_context
    _stage(
        context,
        _member_row("M-1", "Ana Santos"),
        _member_row("M-2", "Ben Reyes"),
        _legacy_entry("C-1", source="Warrior Pass", amount="799", on=date(2024, 1, 1), notes=""),
    )

    report = reconciliation.cleanup_orphaned_entries(context, LinkedType.MEMBER)

    assert report.ambiguous == ("C-1",)
    assert report.changed is False
    assert _entry_ids(context) == {"C-1"}


def test_cleanup_uses_names_to_split_members_sharing_a_start(runtime_context):
    context = runtime_context
    _stage(
        context,
        _member_row("M-1", "Ana Santos"),
        _member_row("M-2", "Ben Reyes"),
        _legacy_entry("C-ben", source="Warrior Pass", amount="799", on=date(2024, 1, 1), notes="Membership: Ben Reyes"),
    )

    report = reconciliation.cleanup_orphaned_entries(context, LinkedType.MEMBER)

    assert report.relinked == ("C-ben",)
    assert core_logic.get_cashflow_entry(context, "C-ben").linked_id == "M-2"


def test_cleanup_does_not_hand_day_pass_entry_to_member_when_a_walk_in_matches(runtime_context):
    context = runtime_context
    _stage(
        context,
        _member_row("M-day", "Dina", tier=MembershipType.DAY_PASS, start=date(2024, 1, 5)),
        _walk_in_row("W-1", "Guest", on=date(2024, 1, 5)),
        _legacy_entry("C-x", source="Day Pass", amount="100", on=date(2024, 1, 5), notes=""),
    )

    report = reconciliation.cleanup_orphaned_entries(context, LinkedType.MEMBER)

    assert report.ambiguous == ("C-x",)
    assert core_logic.get_cashflow_entry(context, "C-x").linked_id is None
