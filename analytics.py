"""
Sales reporting. Read-only aggregations over the order collection,
recomputed on every request.
"""
from datetime import datetime, timedelta
from typing import Optional

from database import db, utcnow

# Orders that count as realised revenue
REVENUE_STATUSES = ["shipped", "delivered"]

PERIODS = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}
GRANULARITIES = ("day", "week", "month")
TOP_PRODUCTS_LIMIT = 5
RECENT_ORDERS_LIMIT = 5


def _totals(match: dict) -> tuple:
    rows = list(db["order"].aggregate([
        {"$match": match},
        {"$group": {"_id": None, "total": {"$sum": "$total_price"}, "count": {"$sum": 1}}},
    ]))
    if not rows:
        return 0.0, 0
    return round(float(rows[0]["total"] or 0), 2), int(rows[0]["count"])


def percent_change(current: float, previous: float) -> float:
    if not previous:
        return 100.0 if current else 0.0
    return round((current - previous) / previous * 100, 1)


def window_stats(days: int, now: Optional[datetime] = None) -> dict:
    """Revenue and order count for the last ``days`` days against the window before it."""
    now = now or utcnow()
    start = now - timedelta(days=days)
    previous_start = start - timedelta(days=days)
    revenue, orders = _totals({"status": {"$in": REVENUE_STATUSES}, "created_at": {"$gte": start, "$lt": now}})
    prev_revenue, prev_orders = _totals(
        {"status": {"$in": REVENUE_STATUSES}, "created_at": {"$gte": previous_start, "$lt": start}}
    )
    return {
        "revenue": revenue,
        "orders": orders,
        "revenue_trend": percent_change(revenue, prev_revenue),
        "orders_trend": percent_change(orders, prev_orders),
    }


def top_products(limit: int = TOP_PRODUCTS_LIMIT) -> list:
    rows = db["order"].aggregate([
        {"$match": {"status": {"$ne": "cancelled"}}},
        {"$unwind": "$products"},
        {"$group": {
            "_id": "$products.product_id",
            "total_qty": {"$sum": "$products.quantity"},
            "total_revenue": {"$sum": {"$multiply": ["$products.quantity", "$products.price"]}},
            "title": {"$first": "$products.title"},
        }},
        {"$sort": {"total_qty": -1}},
        {"$limit": limit},
        {"$lookup": {"from": "product", "localField": "_id", "foreignField": "_id", "as": "product"}},
    ])
    result = []
    for row in rows:
        product = row["product"][0] if row.get("product") else None
        result.append({
            "product_id": str(row["_id"]),
            "total_qty": int(row["total_qty"]),
            "total_revenue": round(float(row["total_revenue"]), 2),
            # current title when the product still exists, the purchase-time title otherwise
            "name": product["title"] if product else row.get("title"),
            "price": float(product["price"]) if product else None,
        })
    return result


def monthly_series() -> list:
    rows = db["order"].aggregate([
        {"$match": {"status": {"$in": REVENUE_STATUSES}}},
        {"$group": {
            "_id": {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}},
            "revenue": {"$sum": "$total_price"},
            "order_count": {"$sum": 1},
        }},
        {"$sort": {"_id.year": 1, "_id.month": 1}},
    ])
    return [
        {
            "year": row["_id"]["year"],
            "month": row["_id"]["month"],
            "revenue": round(float(row["revenue"]), 2),
            "order_count": int(row["order_count"]),
        }
        for row in rows
    ]


def summary(now: Optional[datetime] = None) -> dict:
    now = now or utcnow()
    total_sales, orders_count = _totals({"status": {"$in": REVENUE_STATUSES}})
    start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    return {
        "total_sales": total_sales,
        "orders_count": orders_count,
        "pending_orders": db["order"].count_documents({"status": "pending"}),
        "average_order_value": round(total_sales / orders_count, 2) if orders_count else 0.0,
        "total_customers": db["user"].count_documents({"role": "customer"}),
        "total_products": db["product"].count_documents({"is_active": True}),
        "new_customers_this_month": db["user"].count_documents(
            {"role": "customer", "created_at": {"$gte": start_of_month}}
        ),
        "weekly": window_stats(7, now),
        "monthly_window": window_stats(30, now),
        "top_products": top_products(),
        "monthly": monthly_series(),
    }


def choose_granularity(days: int) -> str:
    if days <= 31:
        return "day"
    if days <= 120:
        return "week"
    return "month"


def bucket_key(moment: datetime, granularity: str) -> str:
    if granularity == "day":
        return moment.strftime("%Y-%m-%d")
    if granularity == "week":
        # %U matches MongoDB's $week: Sunday-started weeks, 00-53
        return f"{moment.year}-W{int(moment.strftime('%U')):02d}"
    return moment.strftime("%Y-%m")


def _group_id(granularity: str) -> dict:
    if granularity == "day":
        return {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"},
                "day": {"$dayOfMonth": "$created_at"}}
    if granularity == "week":
        return {"year": {"$year": "$created_at"}, "week": {"$week": "$created_at"}}
    return {"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}}


def _row_key(group: dict, granularity: str) -> str:
    if granularity == "day":
        return f"{group['year']}-{group['month']:02d}-{group['day']:02d}"
    if granularity == "week":
        return f"{group['year']}-W{group['week']:02d}"
    return f"{group['year']}-{group['month']:02d}"


def sales_series(period: str = "30d", granularity: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    """
    Revenue and order counts bucketed for charting.

    ``granularity`` defaults to one derived from the period length. Buckets
    with no orders are present with zeros so the series has no gaps.
    """
    now = now or utcnow()
    days = PERIODS[period]
    granularity = granularity or choose_granularity(days)
    start = (now - timedelta(days=days - 1)).replace(hour=0, minute=0, second=0, microsecond=0)

    rows = db["order"].aggregate([
        {"$match": {"status": {"$ne": "cancelled"}, "created_at": {"$gte": start, "$lte": now}}},
        {"$group": {"_id": _group_id(granularity), "revenue": {"$sum": "$total_price"}, "orders": {"$sum": 1}}},
    ])
    found = {_row_key(row["_id"], granularity): row for row in rows}

    buckets = []
    seen = set()
    cursor = start
    while cursor <= now:
        key = bucket_key(cursor, granularity)
        if key not in seen:
            seen.add(key)
            row = found.get(key)
            buckets.append({
                "bucket": key,
                "revenue": round(float(row["revenue"]), 2) if row else 0.0,
                "orders": int(row["orders"]) if row else 0,
            })
        cursor += timedelta(days=1)

    return {
        "period": period,
        "granularity": granularity,
        "start": start.isoformat(),
        "end": now.isoformat(),
        "series": buckets,
        "total_revenue": round(sum(b["revenue"] for b in buckets), 2),
        "total_orders": sum(b["orders"] for b in buckets),
    }


def admin_dashboard() -> dict:
    revenue, _ = _totals({"status": {"$ne": "cancelled"}})
    recent = list(db["order"].find().sort("created_at", -1).limit(RECENT_ORDERS_LIMIT))
    return {
        "total_customers": db["user"].count_documents({"role": "customer"}),
        "total_products": db["product"].count_documents({"is_active": True}),
        "total_orders": db["order"].count_documents({}),
        "revenue": revenue,
        "recent_orders": recent,
    }


def customer_dashboard(user_id) -> dict:
    total_spent, _ = _totals({"user_id": user_id, "status": {"$ne": "cancelled"}})
    recent = list(db["order"].find({"user_id": user_id}).sort("created_at", -1).limit(RECENT_ORDERS_LIMIT))
    return {
        "total_orders": db["order"].count_documents({"user_id": user_id}),
        "total_spent": total_spent,
        "cart_count": db["cart"].count_documents({"user_id": user_id}),
        "wishlist_count": db["wishlist"].count_documents({"user_id": user_id}),
        "recent_orders": recent,
    }
