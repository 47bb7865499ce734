"""
Per-user cart and wishlist entries, one document per (user, product) pair.
"""
from pymongo.errors import DuplicateKeyError

from catalog import get_active_product, product_out
from database import db, serialize_doc, to_object_id, utcnow
from errors import BadRequest, Conflict, NotFound


def _with_product(entry: dict, product: dict) -> dict:
    out = serialize_doc(entry)
    out["product"] = product_out(product)
    return out


def _entries(collection: str, user_id, in_stock_only: bool) -> list:
    entries = list(db[collection].find({"user_id": user_id}).sort("created_at", -1))
    product_ids = [e["product_id"] for e in entries]
    products = {p["_id"]: p for p in db["product"].find({"_id": {"$in": product_ids}})}
    result = []
    for entry in entries:
        product = products.get(entry["product_id"])
        # entries whose product was removed or deactivated are hidden, not deleted
        if not product or not product.get("is_active", True):
            continue
        if in_stock_only and product.get("stock", 0) <= 0:
            continue
        result.append(_with_product(entry, product))
    return result


# Cart
def list_cart(user_id) -> list:
    return _entries("cart", user_id, in_stock_only=True)


def add_to_cart(user_id, product_id: str, quantity: int = 1) -> tuple:
    """Add ``quantity`` of a product; returns (entry, created)."""
    product = get_active_product(product_id)
    if not product:
        raise NotFound("Product not found")
    existing = db["cart"].find_one({"user_id": user_id, "product_id": product["_id"]})
    new_quantity = quantity + (existing["quantity"] if existing else 0)
    if product.get("stock", 0) < new_quantity:
        raise BadRequest("Insufficient stock")

    now = utcnow()
    if existing:
        db["cart"].update_one({"_id": existing["_id"]}, {"$set": {"quantity": new_quantity, "updated_at": now}})
        entry = db["cart"].find_one({"_id": existing["_id"]})
        return _with_product(entry, product), False

    entry = {"user_id": user_id, "product_id": product["_id"], "quantity": quantity,
             "created_at": now, "updated_at": now}
    entry["_id"] = db["cart"].insert_one(entry).inserted_id
    return _with_product(entry, product), True


def set_cart_quantity(user_id, product_id: str, quantity: int) -> dict:
    if quantity < 1:
        raise BadRequest("Quantity must be at least 1")
    pid = to_object_id(product_id)
    entry = db["cart"].find_one({"user_id": user_id, "product_id": pid})
    if not entry:
        raise NotFound("Item not found in cart")
    product = get_active_product(product_id)
    if not product:
        raise NotFound("Product not found")
    if product.get("stock", 0) < quantity:
        raise BadRequest("Insufficient stock")
    db["cart"].update_one({"_id": entry["_id"]}, {"$set": {"quantity": quantity, "updated_at": utcnow()}})
    entry["quantity"] = quantity
    return _with_product(entry, product)


def remove_from_cart(user_id, product_id: str) -> None:
    result = db["cart"].delete_one({"user_id": user_id, "product_id": to_object_id(product_id)})
    if result.deleted_count == 0:
        raise NotFound("Item not found in cart")


def clear_cart(user_id) -> int:
    return db["cart"].delete_many({"user_id": user_id}).deleted_count


# Wishlist
def list_wishlist(user_id) -> list:
    return _entries("wishlist", user_id, in_stock_only=False)


def add_to_wishlist(user_id, product_id: str) -> dict:
    product = get_active_product(product_id)
    if not product:
        raise NotFound("Product not found")
    if db["wishlist"].find_one({"user_id": user_id, "product_id": product["_id"]}):
        raise Conflict("Product already in wishlist")
    now = utcnow()
    entry = {"user_id": user_id, "product_id": product["_id"], "created_at": now, "updated_at": now}
    try:
        entry["_id"] = db["wishlist"].insert_one(entry).inserted_id
    except DuplicateKeyError:
        raise Conflict("Product already in wishlist")
    return _with_product(entry, product)


def remove_from_wishlist(user_id, product_id: str) -> None:
    result = db["wishlist"].delete_one({"user_id": user_id, "product_id": to_object_id(product_id)})
    if result.deleted_count == 0:
        raise NotFound("Item not found in wishlist")
