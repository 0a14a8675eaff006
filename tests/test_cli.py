"""Unit tests describing the CLI presentation layer contract."""

from __future__ import annotations

import argparse
from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest

from gym_ledger import cli, core_logic, data_manager, reconciliation


WRITE_COMMANDS = {
    "enroll",
    "edit-member",
    "renew",
    "bulk-renew",
    "delete-member",
    "walk-in",
    "bulk-walk-in",
    "delete-walk-in",
    "add-item",
    "update-item",
    "delete-item",
    "sale",
    "delete-sale",
    "expense",
    "delete-entry",
    "cleanup",
}

READ_COMMANDS = {
    "members",
    "expiring",
    "walk-ins",
    "inventory",
    "sales",
    "cashflow",
    "export",
}


def _registered_choices(parser: argparse.ArgumentParser) -> set[str]:
    for action in parser._actions:
        if isinstance(action, argparse._SubParsersAction):
            return set(action.choices)
    return set()


# ---------------------------------------------------------------------------
# Parser construction
# ---------------------------------------------------------------------------


def test_build_parser_sets_program_metadata():
    parser = cli.build_parser()
    assert parser.prog == "gym-cli"
    assert "Gym Ledger" in (parser.description or "")


def test_configure_subcommands_registers_every_command(cli_parser):
    command_table = cli.configure_subcommands(cli_parser)

    assert set(command_table) == WRITE_COMMANDS | READ_COMMANDS
    assert _registered_choices(cli_parser) == WRITE_COMMANDS | READ_COMMANDS


def test_read_commands_do_not_mutate(subparsers_action):
    specs = cli.register_read_commands(subparsers_action)
    assert set(specs) == READ_COMMANDS
    assert not any(spec.mutates for spec in specs.values())


def test_write_commands_mutate(subparsers_action):
    specs = cli.register_write_commands(subparsers_action)
    assert set(specs) == WRITE_COMMANDS
    assert all(spec.mutates for spec in specs.values())


def test_build_command_table_rejects_duplicates(command_spec_iterable):
    table = cli.build_command_table(command_spec_iterable)
    assert list(table) == ["alpha", "beta", "gamma"]
    with pytest.raises(ValueError):
        cli.build_command_table([*command_spec_iterable, command_spec_iterable[0]])


def test_dispatch_command_unknown_raises(context):
    with pytest.raises(KeyError):
        cli.dispatch_command(context, argparse.Namespace(command="nope"), {})


def test_invalid_date_is_rejected_by_the_parser():
    parser = cli.build_parser()
    cli.configure_subcommands(parser)
    with pytest.raises(SystemExit):
        parser.parse_args(["walk-in", "--payment", "100", "--date", "01/05/2024"])


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def _parse(*argv: str) -> argparse.Namespace:
    parser = cli.build_parser()
    cli.configure_subcommands(parser)
    return parser.parse_args(list(argv))


def test_translate_enroll_builds_command():
    args = _parse(
        "enroll",
        "--name", "Juan",
        "--contact", "09171234567",
        "--membership-type", "Warrior Pass",
        "--start-date", "2024-01-01",
    )

    command = cli.translate_enroll(args)

    assert command.membership_type is core_logic.MembershipType.WARRIOR_PASS
    assert command.start_date == date(2024, 1, 1)
    assert command.expiry_date is None
    assert command.amount is None


def test_translate_sale_parses_item_pairs():
    args = _parse("sale", "--item", "I1:2", "--item", "I2:1", "--payment-method", "GCash")

    command = cli.translate_sale(args)

    assert [(line.item_id, line.quantity) for line in command.lines] == [("I1", 2), ("I2", 1)]
    assert command.payment_method.value == "GCash"


@pytest.mark.parametrize("raw", ["I1", "I1:", ":2", "I1:two"])
def test_translate_sale_rejects_malformed_items(raw):
    args = _parse("sale", "--item", raw)
    with pytest.raises(core_logic.ValidationError):
        cli.translate_sale(args)


def test_translate_renew_uses_decimal_amount():
    args = _parse("renew", "--member-id", "M1", "--period", "1 month", "--amount", "799.50")

    command = cli.translate_renew(args)

    assert command.amount == Decimal("799.50")
    assert command.payment_method.value == "Cash"


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (core_logic.BusinessRuleViolation("stock"), 2),
        (core_logic.MissingReferenceError("missing"), 2),
        (core_logic.OperatorRequiredError("who"), 2),
        (FileNotFoundError("config.ini"), 3),
        (core_logic.ValidationError({"amount": "bad"}), 4),
        (RuntimeError("schema"), 1),
    ],
)
def test_handle_cli_error_maps_exit_codes(error, expected):
    assert cli.handle_cli_error(error) == expected


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def test_main_enroll_persists_workbook(config_factory, capsys):
    bundle = config_factory()

    exit_code = cli.main(
        [
            "--config", str(bundle.config_path),
            "enroll",
            "--name", "Juan",
            "--contact", "09171234567",
            "--membership-type", "Warrior Pass",
            "--start-date", "2024-01-01",
        ]
    )

    assert exit_code == 0
    assert "Enrolled" in capsys.readouterr().out
    reloaded = data_manager.open_workbook(bundle.workbook_path)
    (member,) = data_manager.iter_members(reloaded)
    (entry,) = data_manager.iter_cashflow(reloaded)
    assert member.expiry_date == date(2024, 2, 1)
    assert entry.amount == Decimal("799")
    assert entry.linked_id == member.member_id


def test_main_failure_does_not_persist(config_factory, monkeypatch):
    bundle = config_factory()
    persist = Mock()
    monkeypatch.setattr(cli, "persist_workbook", persist)

    exit_code = cli.main(
        ["--config", str(bundle.config_path), "sale", "--item", "I404:1"]
    )

    assert exit_code == 2
    persist.assert_not_called()


def test_main_read_command_skips_persistence(config_factory, monkeypatch):
    bundle = config_factory()
    persist = Mock()
    monkeypatch.setattr(cli, "persist_workbook", persist)

    assert cli.main(["--config", str(bundle.config_path), "members"]) == 0
    persist.assert_not_called()


def test_main_requires_an_operator(config_factory):
    bundle = config_factory(operator="")

    exit_code = cli.main(
        ["--config", str(bundle.config_path), "walk-in", "--payment", "100"]
    )

    assert exit_code == 2


def test_main_operator_flag_overrides_config(config_factory):
    bundle = config_factory(operator="")

    exit_code = cli.main(
        ["--config", str(bundle.config_path), "--operator", "coach", "walk-in", "--payment", "100"]
    )

    assert exit_code == 0
    assert len(list(data_manager.iter_walk_ins(data_manager.open_workbook(bundle.workbook_path)))) == 1


def test_main_missing_config_returns_file_not_found_code(tmp_path):
    assert cli.main(["--config", str(tmp_path / "missing.ini"), "members"]) == 3


def test_main_cleanup_reports_each_kind(config_factory, monkeypatch, capsys):
    bundle = config_factory()
    report = reconciliation.CleanupReport(core_logic.LinkedType.SALE, 0, (), (), ())
    scan = Mock(return_value=report)
    monkeypatch.setattr(reconciliation, "cleanup_orphaned_entries", scan)

    assert cli.main(["--config", str(bundle.config_path), "cleanup", "--kind", "sale"]) == 0
    scan.assert_called_once()
    assert "scanned 0" in capsys.readouterr().out


def test_translate_edit_member_leaves_expiry_unset_by_default():
    args = _parse(
        "edit-member",
        "--member-id", "M1",
        "--name", "Juan",
        "--contact", "09171234567",
        "--membership-type", "Warrior Pass",
        "--start-date", "2024-01-01",
    )

    command = cli.translate_edit_member(args)

    assert command.expiry_date is None
    assert command.membership_type is core_logic.MembershipType.WARRIOR_PASS


def test_main_edit_member_after_renewal_keeps_expiry(config_factory, capsys):
    bundle = config_factory()
    config = ["--config", str(bundle.config_path)]
    cli.main(
        [
            *config,
            "enroll",
            "--name", "Juan",
            "--contact", "09171234567",
            "--membership-type", "Warrior Pass",
            "--start-date", "2024-01-01",
        ]
    )
    (member,) = data_manager.iter_members(data_manager.open_workbook(bundle.workbook_path))
    assert cli.main(
        [*config, "renew", "--member-id", member.member_id, "--period", "1 month", "--amount", "799",
         "--payment-date", "2024-01-25"]
    ) == 0

    exit_code = cli.main(
        [
            *config,
            "edit-member",
            "--member-id", member.member_id,
            "--name", "Juan Dela Cruz",
            "--contact", "09171234567",
            "--membership-type", "Warrior Pass",
            "--start-date", "2024-01-01",
        ]
    )

    assert exit_code == 0
    assert "expires 2024-03-01" in capsys.readouterr().out
    (edited,) = data_manager.iter_members(data_manager.open_workbook(bundle.workbook_path))
    assert edited.name == "Juan Dela Cruz"
    assert edited.expiry_date == date(2024, 3, 1)


def test_main_rejects_control_characters_with_validation_code(config_factory):
    bundle = config_factory()

    exit_code = cli.main(
        ["--config", str(bundle.config_path), "walk-in", "--payment", "100", "--name", "Bo\x01"]
    )

    assert exit_code == 4
    assert list(data_manager.iter_walk_ins(data_manager.open_workbook(bundle.workbook_path))) == []
