"""Order statistics and dashboard charts, computed with aggregation pipelines."""

from datetime import datetime, timedelta
from typing import Any

from storefront.models.order import ORDER_STATUSES, Order

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")
DAYS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


def year_bounds(now: datetime) -> tuple[datetime, datetime]:
    """[Jan 1 of now's year, Jan 1 of the next year)."""
    start = datetime(now.year, 1, 1)
    return start, datetime(now.year + 1, 1, 1)


def week_bounds(now: datetime) -> tuple[datetime, datetime]:
    """[Sunday 00:00 of now's week, the following Sunday 00:00)."""
    days_since_sunday = (now.weekday() + 1) % 7
    start = datetime(now.year, now.month, now.day) - timedelta(days=days_since_sunday)
    return start, start + timedelta(days=7)


def fill_months(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """rows: [{_id: month 1-12, revenue}] -> 12 buckets, zero where absent."""
    by_month = {row["_id"]: row["revenue"] for row in rows}
    return [{"month": name, "revenue": by_month.get(i, 0)} for i, name in enumerate(MONTHS, start=1)]


def fill_days(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """rows: [{_id: $dayOfWeek 1=Sun..7=Sat, orders}] -> 7 buckets, zero where absent."""
    by_day = {row["_id"]: row["orders"] for row in rows}
    return [{"day": name, "orders": by_day.get(i, 0)} for i, name in enumerate(DAYS, start=1)]


async def order_stats() -> dict[str, int]:
    counts = await Order.aggregate([
        {"$group": {"_id": "$order_status", "count": {"$sum": 1}}},
    ]).to_list()
    by_status = {row["_id"]: row["count"] for row in counts}
    revenue = await Order.aggregate([
        {"$match": {"payment.status": "completed"}},
        {"$group": {"_id": None, "total": {"$sum": "$total_amount"}}},
    ]).to_list()
    out = {"totalOrders": sum(by_status.values())}
    for status in ORDER_STATUSES:
        out[f"{status}Orders"] = by_status.get(status, 0)
    out["totalRevenue"] = revenue[0]["total"] if revenue else 0
    return out


async def revenue_chart(now: datetime | None = None) -> list[dict[str, Any]]:
    """Completed-payment revenue per month of the current year."""
    start, end = year_bounds(now or datetime.utcnow())
    rows = await Order.aggregate([
        {"$match": {"payment.status": "completed", "created_at": {"$gte": start, "$lt": end}}},
        {"$group": {"_id": {"$month": "$created_at"}, "revenue": {"$sum": "$total_amount"}}},
        {"$sort": {"_id": 1}},
    ]).to_list()
    return fill_months(rows)


async def weekly_chart(now: datetime | None = None) -> list[dict[str, Any]]:
    """Orders created per day of the current Sunday-Saturday week."""
    start, end = week_bounds(now or datetime.utcnow())
    rows = await Order.aggregate([
        {"$match": {"created_at": {"$gte": start, "$lt": end}}},
        {"$group": {"_id": {"$dayOfWeek": "$created_at"}, "orders": {"$sum": 1}}},
        {"$sort": {"_id": 1}},
    ]).to_list()
    return fill_days(rows)
