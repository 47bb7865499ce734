"""
Order placement.

The flow validates everything it can before touching shared state, then
applies its mutations one atomic conditional update at a time:

1. merge repeated products, load each one, reject missing/inactive ones
   and short stock against the merged quantity
2. price the lines with the product's current final price
3. validate the coupon and reserve one use of it
4. decrement stock per line, guarded by ``stock >= qty``
5. mint the order number and insert the order snapshot

If a later step fails, the mutations already applied (coupon reservation,
stock decrements) are undone before the error propagates.
"""
import logging
from typing import List, Optional, Union

from pydantic import ValidationError
from pymongo import ReturnDocument

from database import db, next_sequence, to_object_id, utcnow
from errors import BadRequest, CouponRejected, InsufficientStock, InvalidItem, StockConflict
from notifications import notify
from pricing import coupon_discount, final_price, order_total
from schemas import Address, AppliedCoupon, CheckoutCustomer, CustomerInfo, Order, OrderItem

logger = logging.getLogger(__name__)

ORDER_SEQUENCE = "order"


def format_order_number(number: int) -> str:
    return f"ORD-{number:06d}"


def find_coupon(code: Optional[str]) -> Optional[dict]:
    normalized = (code or "").strip().upper()
    if not normalized:
        return None
    return db["coupon"].find_one({"code": normalized})


def normalize_customer_info(info: Union[CheckoutCustomer, dict, None]) -> CustomerInfo:
    if info is None:
        raise BadRequest("Please provide complete customer information")
    if isinstance(info, dict):
        try:
            info = CheckoutCustomer.model_validate(info)
        except ValidationError:
            raise BadRequest("Please provide complete customer information")
    address = info.address
    return CustomerInfo(
        name=info.name,
        email=info.email.lower(),
        phone=info.phone,
        address=Address(
            street=address.street,
            city=address.city,
            state=address.state,
            zip_code=address.zip_code,
            country=address.country or "USA",
        ),
    )


def _merge_lines(lines: List[dict]) -> List[tuple]:
    """Collapse repeated products into one (product_id, qty) line, first-seen order."""
    merged = {}
    for line in lines:
        oid = to_object_id(line["product_id"])
        merged[oid] = merged.get(oid, 0) + int(line["qty"])
    return list(merged.items())


def _price_lines(lines: List[dict], now) -> tuple:
    items = []
    subtotal = 0.0
    for product_id, qty in _merge_lines(lines):
        product = db["product"].find_one({"_id": product_id})
        if not product or not product.get("is_active", True):
            raise InvalidItem(f"Product {product_id} not found or inactive")
        if product.get("stock", 0) < qty:
            raise InsufficientStock(product["title"], product.get("stock", 0), qty)
        price = final_price(product, now)
        subtotal += price * qty
        items.append({
            "product": product,
            "item": OrderItem(
                product_id=str(product["_id"]),
                title=product["title"],
                price=price,
                original_price=float(product.get("price", 0)),
                quantity=qty,
                image_url=product.get("image_url") or None,
            ),
        })
    return items, round(subtotal, 2)


def _reserve_coupon(coupon: dict) -> None:
    query = {"_id": coupon["_id"], "is_active": True}
    if coupon.get("usage_limit"):
        query["used_count"] = {"$lt": coupon["usage_limit"]}
    reserved = db["coupon"].find_one_and_update(
        query,
        {"$inc": {"used_count": 1}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if reserved is None:
        raise CouponRejected("usage-exceeded")


def _release_coupon(coupon_id) -> None:
    db["coupon"].update_one({"_id": coupon_id, "used_count": {"$gt": 0}}, {"$inc": {"used_count": -1}})


def _decrement_stock(product_id, qty: int) -> bool:
    result = db["product"].update_one(
        {"_id": product_id, "stock": {"$gte": qty}},
        {"$inc": {"stock": -qty}, "$set": {"updated_at": utcnow()}},
    )
    return result.modified_count == 1


def _restore_stock(applied: List[tuple]) -> None:
    for product_id, qty in applied:
        db["product"].update_one({"_id": product_id}, {"$inc": {"stock": qty}})


def place_order(user: dict, lines: List[dict], customer_info: Union[CheckoutCustomer, dict, None],
                coupon_code: Optional[str] = None, payment_method: str = "credit_card") -> dict:
    """Validate, price and persist an order for ``user``; returns the stored order document."""
    if not lines:
        raise BadRequest("No products to purchase")
    info = normalize_customer_info(customer_info)
    now = utcnow()

    priced, subtotal = _price_lines(lines, now)

    discount = 0.0
    coupon = None
    applied_coupon = None
    if coupon_code and coupon_code.strip():
        coupon = find_coupon(coupon_code)
        discount = coupon_discount(coupon, subtotal, now)
        applied_coupon = AppliedCoupon(
            code=coupon["code"], type=coupon["type"], discount=float(coupon["discount"]), applied_discount=discount
        )
        _reserve_coupon(coupon)

    applied = []
    try:
        for entry in priced:
            product = entry["product"]
            qty = entry["item"].quantity
            if not _decrement_stock(product["_id"], qty):
                logger.warning("Stock changed during checkout for %s (wanted %s)", product["title"], qty)
                raise StockConflict(product["title"])
            applied.append((product["_id"], qty))

        order = Order(
            order_number=next_sequence(ORDER_SEQUENCE),
            user_id=str(user["_id"]),
            products=[entry["item"] for entry in priced],
            subtotal=subtotal,
            discount=discount,
            total_price=order_total(subtotal, discount),
            coupon=applied_coupon,
            status="pending",
            customer_info=info,
            payment_method=payment_method,
            payment_status="completed",
        )
        doc = order.model_dump()
        doc["user_id"] = user["_id"]
        for item in doc["products"]:
            item["product_id"] = to_object_id(item["product_id"])
        doc["created_at"] = now
        doc["updated_at"] = now
        doc["_id"] = db["order"].insert_one(doc).inserted_id
    except Exception:
        _restore_stock(applied)
        if coupon is not None:
            _release_coupon(coupon["_id"])
        raise

    logger.info(
        "Order %s placed by %s: subtotal=%.2f discount=%.2f total=%.2f",
        format_order_number(doc["order_number"]), user.get("email"), subtotal, discount, doc["total_price"],
    )
    notify(
        f"New order {format_order_number(doc['order_number'])} placed by {info.name} ({doc['total_price']:.2f})",
        type="order",
        related_id=str(doc["_id"]),
        related_model="Order",
    )
    return doc


def update_status(order_id: str, status: str) -> Optional[dict]:
    """Set any status from any status; the admin is trusted with the lifecycle."""
    oid = to_object_id(order_id)
    order = db["order"].find_one_and_update(
        {"_id": oid},
        {"$set": {"status": status, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if order is None:
        return None
    label = format_order_number(order["order_number"]) if order.get("order_number") else str(oid)
    if status == "cancelled":
        message = f"Order {label} has been cancelled by admin"
    elif status == "processing":
        message = f"Order {label} has been approved and is being processed"
    else:
        message = f"Order {label} marked {status}"
    notify(message, type="order", related_id=str(oid), related_model="Order")
    return order
