"""CSV export of workbook collections.

Exports are one-way snapshots of what the business layer currently returns,
so member status is the freshly derived value and sale line items are
flattened into a readable summary column.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import date
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pandas as pd

from . import core_logic, log
from .constants import SheetName


def _sale_record(sale) -> dict:
    record = asdict(sale)
    record["items"] = "; ".join(
        f"{item.product_name} x{item.quantity} @ {item.price}" for item in sale.items
    )
    return record


_EXPORTERS: Dict[SheetName, Callable[[core_logic.RuntimeContext], List[dict]]] = {
    SheetName.MEMBERS: lambda context: [asdict(row) for row in core_logic.list_members(context)],
    SheetName.WALK_INS: lambda context: [asdict(row) for row in core_logic.list_walk_ins(context)],
    SheetName.INVENTORY: lambda context: [asdict(row) for row in core_logic.list_inventory(context)],
    SheetName.SALES: lambda context: [_sale_record(row) for row in core_logic.list_sales(context)],
    SheetName.CASHFLOW: lambda context: [asdict(row) for row in core_logic.list_cashflow(context)],
    SheetName.RENEWAL_PAYMENTS: lambda context: [
        asdict(row) for row in core_logic.list_renewal_payments(context)
    ],
}


def collection_frame(
    context: core_logic.RuntimeContext,
    collection: SheetName,
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> pd.DataFrame:
    """Return a collection as a DataFrame, optionally limited to a date range.

    The range applies to the collection's own date column (``date``,
    ``start_date``, ``payment_date``) and is inclusive on both ends.
    """

    frame = pd.DataFrame(_EXPORTERS[collection](context))
    date_column = next((name for name in ("date", "payment_date", "start_date") if name in frame.columns), None)
    if date_column is not None and (start is not None or end is not None):
        mask = pd.Series(True, index=frame.index)
        if start is not None:
            mask &= frame[date_column] >= start
        if end is not None:
            mask &= frame[date_column] <= end
        frame = frame[mask]
    return frame


def export_collection(
    context: core_logic.RuntimeContext,
    collection: SheetName,
    destination: Path,
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Path:
    """Write a collection to ``destination`` as UTF-8 CSV and return the path."""

    frame = collection_frame(context, collection, start=start, end=end)
    destination = Path(destination).expanduser().resolve()
    destination.parent.mkdir(parents=True, exist_ok=True)
    frame.to_csv(destination, index=False, encoding="utf-8")
    log.info("Exported %d %s rows to '%s'", len(frame), collection.value, destination)
    return destination
