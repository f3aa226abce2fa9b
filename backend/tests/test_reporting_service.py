import csv
import io
from datetime import timedelta

import pytest

from rims.ledger import LineItem
from rims.ledger import expense_service, inventory_service, reporting_service, return_service, sales_service
from rims.ledger.reporting_service import ReportError
from rims.time_utils import utcnow


def _rows(content):
    return list(csv.reader(io.StringIO(content)))


def test_dashboard_stats(ledger, item_a, item_b):
    inventory_service.adjust_stock(ledger, item_b.id, "loc-2", -4)

    stats = reporting_service.dashboard_stats(ledger)

    assert stats == {
        "total_items": 11,
        "total_value_cents": 10 * 1000 + 1 * 2000,
        "low_stock_count": 1,
        "categories": 2,
    }


def test_low_stock_items_lowest_first(ledger, item_a, item_b):
    inventory_service.adjust_stock(ledger, item_a.id, "loc-2", -9)
    inventory_service.adjust_stock(ledger, item_b.id, "loc-2", -5)

    assert reporting_service.low_stock_items(ledger) == [item_b, item_a]
    assert reporting_service.low_stock_items(ledger, limit=1) == [item_b]


def test_category_valuation(ledger, item_a, item_b):
    rows = {row["category"]: row for row in reporting_service.category_valuation(ledger)}
    assert rows["Electronics"]["cost_value_cents"] == 4000
    assert rows["Electronics"]["retail_value_cents"] == 10000
    assert rows["Electronics"]["margin_cents"] == 6000
    assert rows["Home"]["stock_quantity"] == 5


def test_sales_trend_today(ledger, item_a):
    sales_service.process_sale(ledger, location_id="loc-2", lines=[LineItem(item_a.id, 3)])

    trend = reporting_service.sales_trend(ledger, days=3)

    assert len(trend) == 3
    assert trend[-1] == {"date": utcnow().date().isoformat(), "value_cents": 3000}
    assert trend[0]["value_cents"] == 0


def test_sales_trend_rejects_zero_days(ledger):
    with pytest.raises(ReportError):
        reporting_service.sales_trend(ledger, days=0)


def test_profit_and_loss(ledger, item_a, item_b):
    sale = sales_service.process_sale(
        ledger, location_id="loc-2", lines=[LineItem(item_a.id, 2), LineItem(item_b.id, 1)]
    )
    return_service.process_refund(
        ledger, original_transaction_id=sale.id, location_id="loc-2", lines=[LineItem(item_a.id, 1)]
    )
    expense_service.add_expense(ledger, description="Window cleaning", amount_cents=500, location_id="loc-2")

    report = reporting_service.profit_and_loss(ledger)

    assert report == {
        "revenue_cents": 3000,
        "cogs_cents": 1300,
        "gross_profit_cents": 1700,
        "expenses_cents": 500,
        "net_profit_cents": 1200,
    }
    assert reporting_service.profit_and_loss(ledger, location_id="loc-3")["revenue_cents"] == 0


def test_profit_and_loss_range(ledger, item_a):
    sales_service.process_sale(ledger, location_id="loc-2", lines=[LineItem(item_a.id, 1)])
    tomorrow = utcnow() + timedelta(days=1)

    assert reporting_service.profit_and_loss(ledger, start=tomorrow)["revenue_cents"] == 0
    with pytest.raises(ReportError):
        reporting_service.profit_and_loss(ledger, start=tomorrow, end=utcnow())


def test_filter_transactions(ledger, item_a, item_b):
    inventory_service.adjust_stock(ledger, item_a.id, "loc-2", -1, reason="Damaged in transit")
    sales_service.process_sale(ledger, location_id="loc-2", lines=[LineItem(item_b.id, 1)])

    newest_first = reporting_service.filter_transactions(ledger)
    assert newest_first[0].item_id == item_b.id

    assert len(reporting_service.filter_transactions(ledger, type="SALE")) == 1
    assert len(reporting_service.filter_transactions(ledger, search="damaged")) == 1
    assert len(reporting_service.filter_transactions(ledger, search="mug")) == 2
    assert reporting_service.filter_transactions(ledger, location_id="loc-1") == []


def test_filter_matches_deleted_items(ledger, item_a):
    inventory_service.delete_item(ledger, item_a.id)
    assert len(reporting_service.filter_transactions(ledger, search="deleted")) == 1


def test_export_inventory_csv(ledger, item_a):
    rows = _rows(reporting_service.export_inventory_csv(ledger))
    assert rows[0] == [
        "SKU", "Name", "Category", "Cost Price", "Selling Price", "Total Stock", "Supplier", "Last Updated"
    ]
    assert rows[1][:7] == ["ELEC-001", "Wireless Barcode Scanner", "Electronics", "4.00", "10.00", "10", "TechSupply Co"]
    assert rows[1][7].endswith("Z")


def test_export_activity_csv_tolerates_deleted_items(ledger, item_a):
    inventory_service.delete_item(ledger, item_a.id)
    rows = _rows(reporting_service.export_activity_csv(ledger))
    assert rows[1][3:7] == ["Unknown", "N/A", "10", "Downtown Store"]
