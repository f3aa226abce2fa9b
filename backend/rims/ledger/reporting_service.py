"""
Read-only reports over ledger state.

Reports never mutate. History may reference items that have since been
deleted; those rows show "Unknown" / "N/A" instead of failing. Sales value
is reconstructed at CURRENT prices (transactions carry no price snapshot).
"""
from __future__ import annotations

import csv
import io
from datetime import datetime, timedelta
from typing import Iterable, Optional

from rims.time_utils import parse_iso_datetime, to_utc_z, utcnow

from .entities import Transaction, TransactionType


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _parse_range(start, end) -> tuple[datetime | None, datetime | None]:
    start_dt = parse_iso_datetime(start) if isinstance(start, str) else start
    end_dt = parse_iso_datetime(end) if isinstance(end, str) else end
    if start_dt and end_dt and start_dt > end_dt:
        raise ReportError("start must be before end")
    return start_dt, end_dt


def _sale_value_cents(ledger, tx: Transaction) -> int:
    item = ledger.inventory.get(tx.item_id)
    return tx.quantity * item.price_at(tx.location_id) if item else 0


def dashboard_stats(ledger) -> dict:
    items = list(ledger.inventory.values())
    return {
        "total_items": sum(item.stock_quantity for item in items),
        "total_value_cents": sum(item.stock_quantity * item.selling_price_cents for item in items),
        "low_stock_count": sum(1 for item in items if item.is_low_stock),
        "categories": len({item.category for item in items}),
    }


def low_stock_items(ledger, *, limit: Optional[int] = None) -> list:
    """Items at or below their threshold, lowest stock first."""
    items = sorted(
        (item for item in ledger.inventory.values() if item.is_low_stock),
        key=lambda item: (item.stock_quantity, item.name),
    )
    return items[:limit] if limit is not None else items


def category_valuation(ledger) -> list[dict]:
    """Stock value per category at cost and retail, highest retail first."""
    data: dict[str, dict] = {}
    for item in ledger.inventory.values():
        row = data.setdefault(item.category, {
            "category": item.category,
            "item_count": 0,
            "stock_quantity": 0,
            "cost_value_cents": 0,
            "retail_value_cents": 0,
        })
        row["item_count"] += 1
        row["stock_quantity"] += item.stock_quantity
        row["cost_value_cents"] += item.stock_quantity * item.cost_price_cents
        row["retail_value_cents"] += item.stock_quantity * item.selling_price_cents

    for row in data.values():
        row["margin_cents"] = row["retail_value_cents"] - row["cost_value_cents"]
    return sorted(data.values(), key=lambda r: r["retail_value_cents"], reverse=True)


def sales_trend(ledger, *, days: int = 7, today=None) -> list[dict]:
    """Daily SALE value for the last `days` days, oldest first, at current prices."""
    if days < 1:
        raise ReportError("days must be >= 1")
    today = today or utcnow().date()
    dates = [today - timedelta(days=offset) for offset in range(days - 1, -1, -1)]
    totals = {d: 0 for d in dates}
    for tx in ledger.transactions:
        if tx.type == TransactionType.SALE and tx.timestamp.date() in totals:
            totals[tx.timestamp.date()] += _sale_value_cents(ledger, tx)
    return [{"date": d.isoformat(), "value_cents": totals[d]} for d in dates]


def profit_and_loss(ledger, *, start=None, end=None, location_id: Optional[str] = None) -> dict:
    """
    Revenue and COGS from SALE minus REFUND transactions, less expenses.

    Both use current item prices; deleted items contribute nothing.
    """
    start_dt, end_dt = _parse_range(start, end)

    def _in_range(ts: datetime) -> bool:
        return (start_dt is None or ts >= start_dt) and (end_dt is None or ts <= end_dt)

    revenue = cogs = 0
    for tx in ledger.transactions:
        if tx.type not in (TransactionType.SALE, TransactionType.REFUND):
            continue
        if location_id and tx.location_id != location_id:
            continue
        if not _in_range(tx.timestamp):
            continue
        item = ledger.inventory.get(tx.item_id)
        if item is None:
            continue
        sign = 1 if tx.type == TransactionType.SALE else -1
        revenue += sign * tx.quantity * item.price_at(tx.location_id)
        cogs += sign * tx.quantity * item.cost_price_cents

    expenses = sum(
        e.amount_cents for e in ledger.expenses.values()
        if (not location_id or e.location_id == location_id) and _in_range(e.date)
    )
    gross = revenue - cogs
    return {
        "revenue_cents": revenue,
        "cogs_cents": cogs,
        "gross_profit_cents": gross,
        "expenses_cents": expenses,
        "net_profit_cents": gross - expenses,
    }


def filter_transactions(
    ledger,
    *,
    search: str = "",
    type: Optional[str] = None,
    user_name: Optional[str] = None,
    location_id: Optional[str] = None,
) -> list[Transaction]:
    """Activity log filter, newest first. search matches item name/SKU, tx id and reason."""
    needle = (search or "").strip().lower()
    tx_type = TransactionType(type) if type and type != "ALL" else None

    results = []
    for tx in reversed(ledger.transactions):
        if tx_type and tx.type != tx_type:
            continue
        if user_name and user_name != "ALL" and tx.user_name != user_name:
            continue
        if location_id and tx.location_id != location_id:
            continue
        if needle:
            item = ledger.inventory.get(tx.item_id)
            haystack = [
                item.name.lower() if item else "deleted item",
                item.sku.lower() if item else "",
                tx.id.lower(),
                (tx.reason or "").lower(),
            ]
            if not any(needle in field for field in haystack):
                continue
        results.append(tx)
    return results


def _to_csv(headers: list[str], rows: Iterable[list]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue()


def _cents(value: int) -> str:
    return f"{value / 100:.2f}"


def export_inventory_csv(ledger) -> str:
    headers = ["SKU", "Name", "Category", "Cost Price", "Selling Price", "Total Stock", "Supplier", "Last Updated"]
    rows = [
        [
            item.sku,
            item.name,
            item.category,
            _cents(item.cost_price_cents),
            _cents(item.selling_price_cents),
            item.stock_quantity,
            item.supplier,
            to_utc_z(item.last_updated) or "",
        ]
        for item in ledger.inventory.values()
    ]
    return _to_csv(headers, rows)


def export_activity_csv(ledger, transactions: Optional[Iterable[Transaction]] = None) -> str:
    headers = ["Transaction ID", "Date", "Type", "Product", "SKU", "Quantity", "Location", "User", "Reason"]
    if transactions is None:
        transactions = filter_transactions(ledger)
    rows = []
    for tx in transactions:
        item = ledger.inventory.get(tx.item_id)
        location = ledger.locations.get(tx.location_id)
        rows.append([
            tx.id,
            to_utc_z(tx.timestamp),
            tx.type.value,
            item.name if item else "Unknown",
            item.sku if item else "N/A",
            tx.quantity,
            location.name if location else "N/A",
            tx.user_name,
            tx.reason or "",
        ])
    return _to_csv(headers, rows)
