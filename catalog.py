import math
import re
from datetime import datetime
from typing import Optional

from database import db, serialize_doc, to_object_id, utcnow
from pricing import price_fields

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100


def product_out(product: dict, now: Optional[datetime] = None) -> dict:
    out = serialize_doc(product)
    out.update(price_fields(product, now or utcnow()))
    return out


def build_query(search: Optional[str] = None, category: Optional[str] = None, min_price: Optional[float] = None,
                max_price: Optional[float] = None, in_stock_only: bool = True) -> dict:
    query = {"is_active": True}
    if in_stock_only:
        query["stock"] = {"$gt": 0}
    if search and search.strip():
        pattern = re.escape(search.strip())
        query["$or"] = [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"tags": {"$regex": pattern, "$options": "i"}},
        ]
    if category and category.lower() != "all":
        query["category"] = category.lower()
    if min_price is not None or max_price is not None:
        query["price"] = {}
        if min_price is not None:
            query["price"]["$gte"] = float(min_price)
        if max_price is not None:
            query["price"]["$lte"] = float(max_price)
    return query


def list_products(query: dict, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> dict:
    page = max(1, page)
    limit = min(max(1, limit), MAX_PAGE_SIZE)
    total = db["product"].count_documents(query)
    cursor = db["product"].find(query).sort("created_at", -1).skip((page - 1) * limit).limit(limit)
    now = utcnow()
    return {
        "products": [product_out(p, now) for p in cursor],
        "pagination": {
            "current": page,
            "total": math.ceil(total / limit) if total else 0,
            "total_products": total,
        },
    }


def get_active_product(product_id: str) -> Optional[dict]:
    return db["product"].find_one({"_id": to_object_id(product_id), "is_active": True})
