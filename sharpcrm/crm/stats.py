from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any


UNCATEGORIZED = "Uncategorized"
UNKNOWN = "Unknown"


def to_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def count_by(records: list[dict[str, Any]], attribute: str, default: str = UNKNOWN) -> dict[str, int]:
    counter: Counter[str] = Counter()
    for record in records:
        value = record.get(attribute)
        counter[str(value) if value not in (None, "") else default] += 1
    return dict(counter)


def money_totals(records: list[dict[str, Any]], attribute: str) -> tuple[Decimal, Decimal]:
    total = sum((to_decimal(record.get(attribute)) for record in records), Decimal("0"))
    average = (total / len(records)).quantize(Decimal("0.01")) if records else Decimal("0")
    return total, average


def recent_count(records: list[dict[str, Any]], now: datetime, days: int) -> int:
    cutoff = now - timedelta(days=days)
    count = 0
    for record in records:
        created_at = parse_timestamp(record.get("createdAt"))
        if created_at is not None and created_at >= cutoff:
            count += 1
    return count


def deal_stats(records: list[dict[str, Any]], now: datetime, *, recent_days: int = 30) -> dict[str, Any]:
    total_value, avg_value = money_totals(records, "amount")
    return {
        "total": len(records),
        "byStage": count_by(records, "stage"),
        "bySource": count_by(records, "leadSource"),
        "totalValue": total_value,
        "avgValue": avg_value,
        "recentCount": recent_count(records, now, recent_days),
    }


def product_stats(records: list[dict[str, Any]], now: datetime, *, recent_days: int = 30) -> dict[str, Any]:
    total_value, avg_price = money_totals(records, "unitPrice")
    in_stock = out_of_stock = low_stock = 0
    for record in records:
        quantity = to_decimal(record.get("quantityInStock"))
        reorder_level = to_decimal(record.get("reorderLevel"))
        if quantity == 0:
            out_of_stock += 1
        elif reorder_level > 0 and quantity <= reorder_level:
            low_stock += 1
        else:
            in_stock += 1

    by_status: Counter[str] = Counter("Active" if record.get("activeStatus") else "Inactive" for record in records)
    return {
        "total": len(records),
        "byCategory": count_by(records, "category", default=UNCATEGORIZED),
        "byStatus": dict(by_status),
        "totalValue": total_value,
        "avgPrice": avg_price,
        "inStock": in_stock,
        "outOfStock": out_of_stock,
        "lowStock": low_stock,
    }


def quote_stats(records: list[dict[str, Any]], now: datetime, *, recent_days: int = 30) -> dict[str, Any]:
    total_value, avg_value = money_totals(records, "totalAmount")
    valid = 0
    for record in records:
        valid_until = parse_timestamp(record.get("validUntil"))
        if valid_until is not None and valid_until > now:
            valid += 1
    active = sum(1 for record in records if record.get("activeStatus"))
    return {
        "total": len(records),
        "byStatus": count_by(records, "status"),
        "totalValue": total_value,
        "avgValue": avg_value,
        "validQuotes": valid,
        "expiredQuotes": len(records) - valid,
        "activeQuotes": active,
        "inactiveQuotes": len(records) - active,
    }


def lead_stats(records: list[dict[str, Any]], now: datetime, *, recent_days: int = 30) -> dict[str, Any]:
    total_value, avg_value = money_totals(records, "value")
    return {
        "total": len(records),
        "byStatus": count_by(records, "leadStatus"),
        "bySource": count_by(records, "leadSource"),
        "totalValue": total_value,
        "avgValue": avg_value,
        "recentCount": recent_count(records, now, recent_days),
    }


def contact_stats(records: list[dict[str, Any]], now: datetime, *, recent_days: int = 30) -> dict[str, Any]:
    return {
        "total": len(records),
        "byStatus": count_by(records, "status"),
        "bySource": count_by(records, "leadSource"),
        "recentCount": recent_count(records, now, recent_days),
    }


def task_stats(records: list[dict[str, Any]], now: datetime, *, recent_days: int = 30) -> dict[str, Any]:
    return {
        "total": len(records),
        "byStatus": count_by(records, "status"),
        "byPriority": count_by(records, "priority"),
        "recentCount": recent_count(records, now, recent_days),
    }


def directory_stats(records: list[dict[str, Any]], now: datetime, *, recent_days: int = 30) -> dict[str, Any]:
    """Dealers and subsidiaries only carry totals."""

    return {
        "total": len(records),
        "recentCount": recent_count(records, now, recent_days),
    }
