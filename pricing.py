"""
Price computation for products and coupons.

Everything here is pure: callers pass the stored document and the current
time, nothing touches the database.
"""
from datetime import datetime
from typing import Optional

from database import as_utc
from errors import CouponRejected


def _money(value: float) -> float:
    return round(float(value), 2)


def is_discount_active(product: dict, now: datetime) -> bool:
    discount = product.get("discount") or {}
    if not discount.get("type") or not discount.get("value"):
        return False
    start = as_utc(discount.get("start_date"))
    end = as_utc(discount.get("end_date"))
    if start and now < start:
        return False
    if end and now > end:
        return False
    return True


def final_price(product: dict, now: datetime) -> float:
    price = float(product.get("price") or 0)
    if not is_discount_active(product, now):
        return price
    discount = product["discount"]
    value = float(discount["value"])
    if discount["type"] == "percentage":
        reduction = price * value / 100
        cap = discount.get("max_discount")
        if cap:
            reduction = min(reduction, float(cap))
    else:
        reduction = value
    return _money(max(0.0, price - reduction))


def price_fields(product: dict, now: datetime) -> dict:
    """Derived pricing attached to every product we hand out."""
    price = float(product.get("price") or 0)
    final = final_price(product, now)
    amount = _money(price - final)
    return {
        "final_price": final,
        "discount_amount": amount,
        "discount_percentage": round(amount / price * 100) if price else 0,
        "is_discount_active": is_discount_active(product, now),
    }


def check_coupon(coupon: Optional[dict], now: datetime) -> dict:
    """Reject unusable coupons regardless of the order they are applied to."""
    if not coupon:
        raise CouponRejected("not-found")
    if not coupon.get("is_active", True):
        raise CouponRejected("inactive")
    expiry = as_utc(coupon.get("expiry_date"))
    if expiry and expiry < now:
        raise CouponRejected("expired")
    limit = coupon.get("usage_limit")
    if limit and coupon.get("used_count", 0) >= limit:
        raise CouponRejected("usage-exceeded")
    return coupon


def coupon_discount(coupon: Optional[dict], subtotal: float, now: datetime) -> float:
    """Return the discount ``coupon`` grants on ``subtotal`` or raise CouponRejected."""
    check_coupon(coupon, now)
    min_amount = float(coupon.get("min_amount") or 0)
    if min_amount and subtotal < min_amount:
        raise CouponRejected("below-minimum", f"Minimum order amount {min_amount:.2f} required")
    value = float(coupon["discount"])
    if coupon["type"] == "percentage":
        amount = subtotal * value / 100
        cap = coupon.get("max_discount")
        if cap and amount > float(cap):
            amount = float(cap)
    else:
        amount = min(value, subtotal)
    return _money(amount)


def order_total(subtotal: float, discount: float) -> float:
    return _money(max(0.0, subtotal - discount))
