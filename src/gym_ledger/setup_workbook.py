"""Utility for initializing the Gym Ledger master workbook.

The module doubles as a script (``python -m gym_ledger.setup_workbook``) and
as a library used by tests or other tooling, so the bootstrap logic stays the
same regardless of the execution path.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Mapping, Sequence

import openpyxl
from openpyxl.styles import Font

from . import data_manager, log
from .constants import SheetName

# One worksheet per collection; the first column is always the document id.
SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.MEMBERS.value: [
        "MemberID",
        "Name",
        "Contact",
        "MembershipType",
        "StartDate",
        "ExpiryDate",
        "Status",
        "CreatedAt",
        "UpdatedAt",
    ],
    SheetName.WALK_INS.value: [
        "WalkInID",
        "Name",
        "Date",
        "Payment",
        "Method",
        "CreatedAt",
    ],
    SheetName.INVENTORY.value: [
        "ItemID",
        "ProductName",
        "Price",
        "Stock",
        "CreatedAt",
        "UpdatedAt",
    ],
    SheetName.SALES.value: [
        "SaleID",
        "Items",
        "TotalAmount",
        "PaymentMethod",
        "CustomerName",
        "Date",
        "CreatedAt",
    ],
    SheetName.CASHFLOW.value: [
        "EntryID",
        "Type",
        "Source",
        "Amount",
        "Date",
        "Notes",
        "LinkedID",
        "LinkedType",
        "AutoGenerated",
        "CreatedAt",
        "UpdatedAt",
    ],
    SheetName.RENEWAL_PAYMENTS.value: [
        "RenewalID",
        "MemberID",
        "MemberName",
        "Amount",
        "PaymentMethod",
        "PaymentDate",
        "RenewalPeriod",
        "PreviousExpiryDate",
        "NewExpiryDate",
        "Notes",
        "CreatedAt",
    ],
}

CONFIG_FILE = data_manager.CONFIG_FILE_NAME


def create_master_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Create the Gym Ledger master workbook at ``destination``.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing master workbook: {destination}"
        )

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)

    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    workbook.save(destination)
    log.info("Created master workbook '%s'", destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the workbook named by ``DataFile`` in ``config_path``."""

    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.expanduser().resolve().parent)
    return create_master_workbook(settings.data_file, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize the Gym Ledger data file")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Gym Ledger Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created master workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
