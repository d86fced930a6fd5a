from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sharpcrm.crm.stats import deal_stats, directory_stats, lead_stats, product_stats, quote_stats, task_stats


NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def _days_ago(days: int) -> str:
    return (NOW - timedelta(days=days)).isoformat().replace("+00:00", "Z")


def test_deal_stats_groups_and_totals() -> None:
    deals = [
        {"stage": "Prospecting", "leadSource": "Web", "amount": 100, "createdAt": _days_ago(1)},
        {"stage": "Prospecting", "leadSource": "Referral", "amount": "250.50", "createdAt": _days_ago(45)},
        {"stage": "Closed Won", "amount": None, "createdAt": "not-a-date"},
    ]

    stats = deal_stats(deals, NOW)

    assert stats["total"] == 3
    assert stats["byStage"] == {"Prospecting": 2, "Closed Won": 1}
    assert stats["bySource"] == {"Web": 1, "Referral": 1, "Unknown": 1}
    assert stats["totalValue"] == Decimal("350.50")
    assert stats["avgValue"] == Decimal("116.83")
    assert stats["recentCount"] == 1


def test_recent_window_is_configurable() -> None:
    deals = [{"createdAt": _days_ago(45)}, {"createdAt": _days_ago(10)}]

    assert deal_stats(deals, NOW, recent_days=60)["recentCount"] == 2
    assert lead_stats(deals, NOW, recent_days=7)["recentCount"] == 0


def test_empty_record_set_has_zero_averages() -> None:
    stats = deal_stats([], NOW)

    assert stats["total"] == 0
    assert stats["avgValue"] == 0
    assert directory_stats([], NOW) == {"total": 0, "recentCount": 0}


def test_product_stock_levels() -> None:
    products = [
        {"category": "Hardware", "activeStatus": True, "unitPrice": 10, "quantityInStock": 0, "reorderLevel": 5},
        {"category": "Hardware", "activeStatus": True, "unitPrice": 20, "quantityInStock": 3, "reorderLevel": 5},
        {"activeStatus": False, "unitPrice": 30, "quantityInStock": 3, "reorderLevel": 0},
        {"category": "", "unitPrice": 40, "quantityInStock": 50, "reorderLevel": 5},
    ]

    stats = product_stats(products, NOW)

    assert stats["byCategory"] == {"Hardware": 2, "Uncategorized": 2}
    assert stats["byStatus"] == {"Active": 2, "Inactive": 2}
    assert stats["totalValue"] == Decimal("100")
    assert stats["avgPrice"] == Decimal("25.00")
    assert (stats["outOfStock"], stats["lowStock"], stats["inStock"]) == (1, 1, 2)


def test_quote_validity_and_activity() -> None:
    quotes = [
        {"status": "Draft", "totalAmount": 500, "validUntil": (NOW + timedelta(days=3)).isoformat(), "activeStatus": True},
        {"status": "Sent", "totalAmount": 300, "validUntil": _days_ago(1), "activeStatus": False},
        {"status": "Sent", "totalAmount": 200},
    ]

    stats = quote_stats(quotes, NOW)

    assert stats["byStatus"] == {"Draft": 1, "Sent": 2}
    assert stats["totalValue"] == Decimal("1000")
    assert (stats["validQuotes"], stats["expiredQuotes"]) == (1, 2)
    assert (stats["activeQuotes"], stats["inactiveQuotes"]) == (1, 2)


def test_task_stats_by_status_and_priority() -> None:
    tasks = [
        {"status": "Open", "priority": "High", "createdAt": _days_ago(2)},
        {"status": "Done", "priority": "High"},
    ]

    stats = task_stats(tasks, NOW)

    assert stats["byStatus"] == {"Open": 1, "Done": 1}
    assert stats["byPriority"] == {"High": 2}
    assert stats["recentCount"] == 1
