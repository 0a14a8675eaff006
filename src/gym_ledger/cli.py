"""Command-line entry points for the Gym Ledger toolkit.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into the command objects consumed by the business
layer. Keeping the CLI thin ensures the same parser configuration can be
reused by tests, scripts, or any alternative front-end.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, export, log, reconciliation
from .constants import (
    CashflowType,
    ExpenseSource,
    LinkedType,
    MembershipType,
    MemberStatus,
    PaymentMethod,
    SheetName,
)


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]
    mutates: bool = True


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Expected a YYYY-MM-DD date, got {value!r}") from exc


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"Expected a number, got {value!r}") from exc


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="gym-cli",
        description="Command-line tools for the Gym Ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to ./config.ini).",
    )
    parser.add_argument(
        "--operator",
        default=None,
        help="Operator identity recorded for this session (overrides config.ini).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def _simple_spec(
    name: str,
    help_text: str,
    arguments: Callable[[argparse.ArgumentParser], None],
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int],
    *,
    mutates: bool = True,
) -> CommandSpec:
    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute, mutates=mutates)


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as enrollments and sales."""
    specs = {
        "enroll": register_enroll_command(subparsers),
        "edit-member": register_edit_member_command(subparsers),
        "renew": register_renew_command(subparsers),
        "bulk-renew": register_bulk_renew_command(subparsers),
        "delete-member": register_delete_member_command(subparsers),
        "walk-in": register_walk_in_command(subparsers),
        "bulk-walk-in": register_bulk_walk_in_command(subparsers),
        "delete-walk-in": register_delete_walk_in_command(subparsers),
        "add-item": register_add_item_command(subparsers),
        "update-item": register_update_item_command(subparsers),
        "delete-item": register_delete_item_command(subparsers),
        "sale": register_sale_command(subparsers),
        "delete-sale": register_delete_sale_command(subparsers),
        "expense": register_expense_command(subparsers),
        "delete-entry": register_delete_entry_command(subparsers),
        "cleanup": register_cleanup_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as listings and exports."""
    specs = {
        "members": register_members_command(subparsers),
        "expiring": register_expiring_command(subparsers),
        "walk-ins": register_walk_ins_command(subparsers),
        "inventory": register_inventory_command(subparsers),
        "sales": register_sales_command(subparsers),
        "cashflow": register_cashflow_command(subparsers),
        "export": register_export_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


# ---------------------------------------------------------------------------
# Write command registrations
# ---------------------------------------------------------------------------


def _member_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", required=True)
    parser.add_argument("--contact", required=True)
    parser.add_argument(
        "--membership-type",
        choices=[member.value for member in MembershipType],
        required=True,
    )
    parser.add_argument("--start-date", type=_iso_date, required=True)
    parser.add_argument(
        "--expiry-date",
        type=_iso_date,
        default=None,
        help="Custom expiry (Gladiator Pass only); computed from the tier otherwise.",
    )


def _payment_method_argument(parser: argparse.ArgumentParser, flag: str = "--payment-method") -> None:
    parser.add_argument(
        flag,
        choices=[member.value for member in PaymentMethod],
        default=PaymentMethod.CASH.value,
    )


def register_enroll_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``enroll``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        _member_arguments(parser)
        parser.add_argument("--amount", type=_decimal, default=None, help="Defaults to the tier price.")
        parser.add_argument("--notes", default=None)

    return _simple_spec("enroll", "Enroll a member and book the membership payment.", arguments, run_enroll)


def register_edit_member_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``edit-member``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--member-id", required=True)
        _member_arguments(parser)

    return _simple_spec("edit-member", "Edit a member's details.", arguments, run_edit_member)


def register_renew_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``renew``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--member-id", required=True)
        parser.add_argument("--period", required=True, help='For example "1 month" or "30 days".')
        parser.add_argument("--amount", type=_decimal, required=True)
        _payment_method_argument(parser)
        parser.add_argument("--payment-date", type=_iso_date, default=None)
        parser.add_argument("--notes", default=None)

    return _simple_spec("renew", "Renew a membership.", arguments, run_renew)


def register_bulk_renew_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``bulk-renew``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--member-id", dest="member_ids", action="append", required=True)
        _payment_method_argument(parser)
        parser.add_argument("--payment-date", type=_iso_date, default=None)

    return _simple_spec(
        "bulk-renew",
        "Renew several members with their tier defaults.",
        arguments,
        run_bulk_renew,
    )


def register_delete_member_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-member``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--member-id", required=True)

    return _simple_spec(
        "delete-member",
        "Delete a member with its ledger entries.",
        arguments,
        run_delete_member,
    )


def register_walk_in_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``walk-in``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", default=None)
        parser.add_argument("--payment", type=_decimal, required=True)
        _payment_method_argument(parser, "--method")
        parser.add_argument("--date", dest="visit_date", type=_iso_date, default=None)
        parser.add_argument("--notes", default=None)

    return _simple_spec("walk-in", "Record a walk-in visit.", arguments, run_walk_in)


def register_bulk_walk_in_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``bulk-walk-in``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--count", type=int, required=True)
        parser.add_argument("--payment", type=_decimal, required=True)
        _payment_method_argument(parser, "--method")
        parser.add_argument("--date", dest="visit_date", type=_iso_date, default=None)

    return _simple_spec("bulk-walk-in", "Record several guest walk-ins.", arguments, run_bulk_walk_in)


def register_delete_walk_in_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-walk-in``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--walk-in-id", required=True)

    return _simple_spec(
        "delete-walk-in",
        "Delete a walk-in with its ledger entry.",
        arguments,
        run_delete_walk_in,
    )


def register_add_item_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-item``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-name", required=True)
        parser.add_argument("--price", type=_decimal, required=True)
        parser.add_argument("--stock", type=int, required=True)

    return _simple_spec("add-item", "Add a retail product to inventory.", arguments, run_add_item)


def register_update_item_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-item``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--item-id", required=True)
        parser.add_argument("--product-name", default=None)
        parser.add_argument("--price", type=_decimal, default=None)
        parser.add_argument("--stock", type=int, default=None)

    return _simple_spec("update-item", "Change an inventory item.", arguments, run_update_item)


def register_delete_item_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-item``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--item-id", required=True)

    return _simple_spec("delete-item", "Remove an inventory item.", arguments, run_delete_item)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--item",
            dest="items",
            action="append",
            required=True,
            help="ITEM_ID:QUANTITY, repeat for several products.",
        )
        _payment_method_argument(parser)
        parser.add_argument("--customer-name", default=None)
        parser.add_argument("--date", dest="sale_date", type=_iso_date, default=None)

    return _simple_spec("sale", "Sell inventory items.", arguments, run_sale)


def register_delete_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-sale``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--sale-id", required=True)

    return _simple_spec(
        "delete-sale",
        "Reverse a sale, restoring stock and removing its entry.",
        arguments,
        run_delete_sale,
    )


def register_expense_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``expense``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--source", choices=[member.value for member in ExpenseSource], required=True)
        parser.add_argument("--amount", type=_decimal, required=True)
        parser.add_argument("--date", dest="expense_date", type=_iso_date, default=None)
        parser.add_argument("--notes", default=None)

    return _simple_spec("expense", "Book an expense.", arguments, run_expense)


def register_delete_entry_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-entry``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--entry-id", required=True)

    return _simple_spec("delete-entry", "Delete a manually booked ledger entry.", arguments, run_delete_entry)


CLEANUP_KINDS = {
    "member": [LinkedType.MEMBER],
    "walkin": [LinkedType.WALK_IN],
    "sale": [LinkedType.SALE],
    "all": [LinkedType.MEMBER, LinkedType.WALK_IN, LinkedType.SALE],
}


def register_cleanup_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cleanup``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--kind", choices=sorted(CLEANUP_KINDS), default="all")

    return _simple_spec(
        "cleanup",
        "Delete orphaned ledger entries and relink legacy ones.",
        arguments,
        run_cleanup,
    )


# ---------------------------------------------------------------------------
# Read command registrations
# ---------------------------------------------------------------------------


def register_members_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``members``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--status", choices=[member.value for member in MemberStatus], default=None)
        parser.add_argument(
            "--membership-type",
            choices=[member.value for member in MembershipType],
            default=None,
        )

    return _simple_spec("members", "List members.", arguments, run_members_report, mutates=False)


def register_expiring_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``expiring``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--days", type=int, default=7)

    return _simple_spec(
        "expiring",
        "List active memberships that end soon.",
        arguments,
        run_expiring_report,
        mutates=False,
    )


def register_walk_ins_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``walk-ins``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--date", dest="on_date", type=_iso_date, default=None)

    return _simple_spec("walk-ins", "List walk-in visits.", arguments, run_walk_ins_report, mutates=False)


def register_inventory_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``inventory``."""

    return _simple_spec("inventory", "Display stock levels.", lambda parser: None, run_inventory_report, mutates=False)


def register_sales_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sales``."""

    return _simple_spec("sales", "List recorded sales.", lambda parser: None, run_sales_report, mutates=False)


def register_cashflow_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``cashflow``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--type", dest="entry_type", choices=["income", "expense"], default=None)
        parser.add_argument("--source", default=None)

    return _simple_spec("cashflow", "Display the cashflow ledger.", arguments, run_cashflow_report, mutates=False)


def register_export_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``export``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--collection", choices=[member.value for member in SheetName], required=True)
        parser.add_argument("--output", type=Path, required=True)
        parser.add_argument("--start", type=_iso_date, default=None)
        parser.add_argument("--end", type=_iso_date, default=None)

    return _simple_spec("export", "Export a collection to CSV.", arguments, run_export, mutates=False)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def load_runtime_context(
    config_path: Optional[Path] = None,
    operator: Optional[str] = None,
) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    target = Path(config_path) if config_path is not None else Path.cwd() / "config.ini"
    context = core_logic.load_runtime_context(target, operator=operator)
    core_logic.ensure_schema_version(context)
    return context


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def translate_enroll(args: argparse.Namespace) -> core_logic.EnrollMemberCommand:
    """Translate CLI args into an enrollment command object."""
    return core_logic.EnrollMemberCommand(
        name=args.name,
        contact=args.contact,
        membership_type=MembershipType(args.membership_type),
        start_date=args.start_date,
        expiry_date=args.expiry_date,
        amount=args.amount,
        notes=args.notes,
    )


def translate_edit_member(args: argparse.Namespace) -> core_logic.UpdateMemberCommand:
    """Translate CLI args into a member update command object."""
    return core_logic.UpdateMemberCommand(
        member_id=args.member_id,
        name=args.name,
        contact=args.contact,
        membership_type=MembershipType(args.membership_type),
        start_date=args.start_date,
        expiry_date=args.expiry_date,
    )


def translate_renew(args: argparse.Namespace) -> core_logic.RenewalCommand:
    """Translate CLI args into a renewal command object."""
    return core_logic.RenewalCommand(
        member_id=args.member_id,
        renewal_period=args.period,
        amount=args.amount,
        payment_method=PaymentMethod(args.payment_method),
        payment_date=args.payment_date,
        notes=args.notes,
    )


def translate_bulk_renew(args: argparse.Namespace) -> core_logic.BulkRenewalCommand:
    return core_logic.BulkRenewalCommand(
        member_ids=list(args.member_ids),
        payment_method=PaymentMethod(args.payment_method),
        payment_date=args.payment_date,
    )


def translate_walk_in(args: argparse.Namespace) -> core_logic.WalkInCommand:
    """Translate CLI args into a walk-in command object."""
    return core_logic.WalkInCommand(
        payment=args.payment,
        method=PaymentMethod(args.method),
        name=args.name,
        visit_date=args.visit_date,
        notes=args.notes,
    )


def translate_bulk_walk_in(args: argparse.Namespace) -> core_logic.BulkWalkInCommand:
    return core_logic.BulkWalkInCommand(
        count=args.count,
        payment=args.payment,
        method=PaymentMethod(args.method),
        visit_date=args.visit_date,
    )


def translate_sale(args: argparse.Namespace) -> core_logic.SaleCommand:
    """Translate CLI args into a sale command object.

    Each ``--item`` value is split on its last colon so item ids may contain
    colons themselves.

    Raises:
        ValidationError: If an ``--item`` value is not ``ITEM_ID:QUANTITY``.
    """
    lines: List[core_logic.SaleLineCommand] = []
    for raw in args.items:
        item_id, sep, quantity = raw.rpartition(":")
        if not sep or not item_id or not quantity.strip().isdigit():
            raise core_logic.ValidationError({"item": f"Expected ITEM_ID:QUANTITY, got {raw!r}"})
        lines.append(core_logic.SaleLineCommand(item_id=item_id, quantity=int(quantity)))
    return core_logic.SaleCommand(
        lines=lines,
        payment_method=PaymentMethod(args.payment_method),
        customer_name=args.customer_name,
        sale_date=args.sale_date,
    )


def translate_expense(args: argparse.Namespace) -> core_logic.ExpenseCommand:
    """Translate CLI args into an expense command object."""
    return core_logic.ExpenseCommand(
        source=ExpenseSource(args.source),
        amount=args.amount,
        expense_date=args.expense_date,
        notes=args.notes,
    )


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def run_enroll(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the enrollment workflow via the BLL."""
    result = core_logic.enroll_member(context, translate_enroll(args))
    print(f"Enrolled {result.primary.member_id} (expires {result.primary.expiry_date})")
    return 0


def run_edit_member(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    member = core_logic.update_member(context, translate_edit_member(args))
    print(f"Updated {member.member_id} (expires {member.expiry_date})")
    return 0


def run_renew(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the renewal workflow via the BLL."""
    result = core_logic.renew_member(context, translate_renew(args))
    print(f"Renewed {result.member.member_id} until {result.member.expiry_date}")
    return 0


def run_bulk_renew(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    results = core_logic.renew_members_bulk(context, translate_bulk_renew(args))
    for result in results:
        print(f"Renewed {result.member.member_id} until {result.member.expiry_date}")
    return 0


def run_delete_member(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the cascading member deletion."""
    result = reconciliation.delete_member(context, args.member_id)
    _report_reconciliation(result)
    return 0


def run_walk_in(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = core_logic.record_walk_in(context, translate_walk_in(args))
    print(f"Recorded walk-in {result.primary.walk_in_id}")
    return 0


def run_bulk_walk_in(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    results = core_logic.record_walk_ins_bulk(context, translate_bulk_walk_in(args))
    print(f"Recorded {len(results)} walk-ins")
    return 0


def run_delete_walk_in(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    result = reconciliation.delete_walk_in(context, args.walk_in_id)
    _report_reconciliation(result)
    return 0


def run_add_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    item = core_logic.add_inventory_item(
        context,
        product_name=args.product_name,
        price=args.price,
        stock=args.stock,
    )
    print(f"Added item {item.item_id}")
    return 0


def run_update_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.update_inventory_item(
        context,
        args.item_id,
        product_name=args.product_name,
        price=args.price,
        stock=args.stock,
    )
    return 0


def run_delete_item(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_inventory_item(context, args.item_id)
    return 0


def run_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale workflow via the BLL."""
    result = core_logic.record_sale(context, translate_sale(args))
    print(f"Recorded sale {result.primary.sale_id} total {result.primary.total_amount}")
    return 0


def run_delete_sale(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the sale reversal via the reconciler."""
    result = reconciliation.delete_sale(context, args.sale_id)
    _report_reconciliation(result)
    return 0


def run_expense(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    entry = core_logic.record_expense(context, translate_expense(args))
    print(f"Recorded expense {entry.entry_id}")
    return 0


def run_delete_entry(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    core_logic.delete_cashflow_entry(context, args.entry_id)
    return 0


def run_cleanup(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the cleanup scanner for the requested kinds."""
    for kind in CLEANUP_KINDS[args.kind]:
        report = reconciliation.cleanup_orphaned_entries(context, kind)
        print(
            f"{kind.value}: scanned {report.scanned}, deleted {len(report.deleted_orphans)}, "
            f"relinked {len(report.relinked)}, ambiguous {len(report.ambiguous)}"
        )
        for entry_id in report.ambiguous:
            print(f"  ambiguous: {entry_id}")
    return 0


def _report_reconciliation(result: reconciliation.ReconciliationResult) -> None:
    print(f"Deleted {result.kind.value} {result.primary_id}; removed entries: {len(result.removed_entry_ids)}")
    for item_id, quantity in result.restored_stock.items():
        print(f"  restored {quantity} to {item_id}")
    for entry_id in result.ambiguous_entry_ids:
        print(f"  ambiguous legacy entry left in place: {entry_id}")


def run_members_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    members = core_logic.list_members(
        context,
        status=MemberStatus(args.status) if args.status else None,
        membership_type=MembershipType(args.membership_type) if args.membership_type else None,
    )
    for member in members:
        print(f"{member.member_id}\t{member.name}\t{member.membership_type}\t{member.expiry_date}\t{member.status}")
    return 0


def run_expiring_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for member in core_logic.list_expiring_members(context, days=args.days):
        print(f"{member.member_id}\t{member.name}\t{member.expiry_date}")
    return 0


def run_walk_ins_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for walk_in in core_logic.list_walk_ins(context, on_date=args.on_date):
        print(f"{walk_in.walk_in_id}\t{walk_in.date}\t{walk_in.name}\t{walk_in.payment}\t{walk_in.method}")
    return 0


def run_inventory_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the stock reporting workflow."""
    for item in core_logic.list_inventory(context):
        print(f"{item.item_id}\t{item.product_name}\t{item.price}\t{item.stock}")
    return 0


def run_sales_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for sale in core_logic.list_sales(context):
        print(f"{sale.sale_id}\t{sale.date}\t{sale.total_amount}\t{sale.customer_name}")
    return 0


def run_cashflow_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the ledger listing workflow."""
    entry_type = CashflowType(args.entry_type) if args.entry_type else None
    for entry in core_logic.list_cashflow(context, entry_type=entry_type, source=args.source):
        print(
            f"{entry.entry_id}\t{entry.date}\t{entry.entry_type}\t{entry.source}\t{entry.amount}\t"
            f"{entry.linked_type or '-'}:{entry.linked_id or '-'}"
        )
    return 0


def run_export(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    path = export.export_collection(
        context,
        SheetName(args.collection),
        args.output,
        start=args.start,
        end=args.end,
    )
    print(f"Exported to {path}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, core_logic.BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    if isinstance(error, core_logic.ValidationError):
        log.error("Validation failed: %s", error)
        return 4
    log.error("%s", error)
    return 1


def persist_workbook(context: core_logic.RuntimeContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        core_logic.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None), getattr(args, "operator", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].mutates:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
