import logging
from datetime import timedelta
from typing import Optional

from fastapi import Depends, FastAPI, File, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

import analytics
import cart
import catalog
import config
import notifications
import orders
import store_settings
from database import as_utc, db, ensure_indexes, serialize_doc, to_object_id, utcnow
from errors import BadRequest, Conflict, CouponRejected, NotFound, ShopError, Unauthorized
from imagehost import allowed_image, upload_image
from mailer import send_reset_code
from pricing import check_coupon, coupon_discount
from schemas import (
    CartQuantityRequest, CouponRequest, ForgotPasswordRequest, LoginRequest, OrderStatusRequest,
    PasswordChangeRequest, ProductCreateRequest, ProductDiscount, ProductUpdateRequest, PurchaseRequest,
    ResetPasswordRequest, SaleRequest, SettingsUpdateRequest, SignupRequest, VerifyCodeRequest,
)
from security import (
    create_reset_token, create_token, ensure_admin, generate_reset_code, get_current_user, hash_password,
    normalize_email, public_user, require_admin, require_customer, validate_password,
    verify_password, verify_reset_token,
)

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# App init
app = FastAPI(title="SnapShop API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Error handling
@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    message = first.get("msg", "Invalid request")
    return JSONResponse(status_code=400, content={"detail": f"{location}: {message}" if location else message})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.on_event("startup")
def prepare_database():
    if db is None:
        logger.warning("DATABASE_URL is not set; running without a database")
        return
    ensure_indexes()
    ensure_admin()


# Utils
def order_out(order: dict) -> dict:
    out = serialize_doc(order)
    if order.get("order_number"):
        out["display_order_number"] = orders.format_order_number(order["order_number"])
    return out


def discount_doc(discount: Optional[ProductDiscount]) -> Optional[dict]:
    if discount is None:
        return None
    doc = discount.model_dump()
    doc["start_date"] = as_utc(doc.get("start_date"))
    doc["end_date"] = as_utc(doc.get("end_date"))
    if doc["type"] != "percentage":
        doc["max_discount"] = None
    return doc


def coupon_doc(body: CouponRequest) -> dict:
    return {
        "code": body.code,
        "discount": float(body.discount),
        "type": body.type,
        "min_amount": float(body.min_amount or 0),
        "max_discount": float(body.max_discount) if body.type == "percentage" and body.max_discount else None,
        "usage_limit": body.usage_limit,
        "expiry_date": as_utc(body.expiry_date),
    }


def announce_sale(product: dict):
    discount = product.get("discount") or {}
    if not discount:
        return
    label = f"{discount['value']:g}%" if discount["type"] == "percentage" else f"{discount['value']:.2f} off"
    notifications.notify(
        f'Product "{product["title"]}" is on sale ({label})',
        type="sale",
        related_id=str(product["_id"]),
        related_model="Product",
    )


# Routes
@app.get("/")
def root():
    return {"message": "SnapShop API running"}


@app.get("/health")
def health():
    response = {
        "status": "ok",
        "database": "not configured",
        "collections": [],
        "timestamp": utcnow().isoformat(),
    }
    if db is not None:
        try:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "connected"
        except Exception as exc:
            logger.warning("Health check could not reach the database: %s", exc)
            response["database"] = "error"
            response["status"] = "degraded"
    return response


# ----------------------- Auth -----------------------
@app.post("/auth/signup", status_code=201)
def signup(req: SignupRequest):
    name = req.name.strip()
    email = normalize_email(req.email)
    if len(name) < 2:
        raise BadRequest("Name must be at least 2 characters long")
    validate_password(req.password)
    if config.ADMIN_EMAIL and email == config.ADMIN_EMAIL:
        raise BadRequest("This email is reserved")
    if db["user"].find_one({"email": email}):
        raise Conflict("User with this email already exists")

    now = utcnow()
    user = {
        "name": name,
        "email": email,
        "password_hash": hash_password(req.password),
        "role": "customer",
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }
    try:
        user["_id"] = db["user"].insert_one(user).inserted_id
    except DuplicateKeyError:
        raise Conflict("User with this email already exists")
    logger.info("Customer account created for %s", email)
    return {"message": "Account created successfully", "token": create_token(user), "user": public_user(user)}


@app.post("/auth/login")
def login(req: LoginRequest):
    email = normalize_email(req.email)
    user = db["user"].find_one({"email": email, "is_active": {"$ne": False}})
    if not user or not verify_password(req.password, user.get("password_hash", "")):
        logger.info("Failed login for %s", email)
        raise Unauthorized("Invalid credentials")
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"last_login": utcnow()}})
    return {
        "message": f"Welcome back, {user['name']}!",
        "token": create_token(user),
        "user": public_user(user),
        "redirect_to": "/admin/dashboard" if user.get("role") == "admin" else "/customer/dashboard",
    }


@app.post("/auth/forgot-password")
def forgot_password(req: ForgotPasswordRequest):
    email = normalize_email(req.email)
    user = db["user"].find_one({"email": email, "is_active": {"$ne": False}})
    if not user:
        raise NotFound("No account found with this email address")

    code = generate_reset_code()
    expires_at = utcnow() + timedelta(minutes=config.RESET_CODE_MINUTES)
    db["user"].update_one(
        {"_id": user["_id"]},
        {"$set": {"reset_code": code, "reset_code_expiry": expires_at}, "$unset": {"reset_token": ""}},
    )
    delivery = send_reset_code(email, code, user.get("name") or "User")
    response = {"method": delivery["method"]}
    if delivery["sent"]:
        response["message"] = f"Password reset code sent to {email}. Please check your inbox and spam folder."
    else:
        response["message"] = "Email service temporarily unavailable. The reset code was written to the server log."
        if not config.is_production():
            response["dev_code"] = code
    return response


@app.post("/auth/verify-code")
def verify_code(req: VerifyCodeRequest):
    email = normalize_email(req.email)
    user = db["user"].find_one({"email": email, "is_active": {"$ne": False}})
    expiry = as_utc(user.get("reset_code_expiry")) if user else None
    if not user or not user.get("reset_code") or user["reset_code"] != req.code.strip() \
            or not expiry or expiry < utcnow():
        raise BadRequest("Invalid or expired verification code")

    reset_token = create_reset_token(user, user["reset_code"])
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"reset_token": reset_token}})
    return {"message": "Code verified successfully", "reset_token": reset_token}


@app.post("/auth/reset-password")
def reset_password(req: ResetPasswordRequest):
    validate_password(req.new_password)
    email = normalize_email(req.email)
    user = db["user"].find_one(
        {"email": email, "reset_token": req.reset_token, "is_active": {"$ne": False}}
    )
    if not user:
        raise BadRequest("Invalid reset token")
    if not verify_reset_token(user, req.reset_token):
        raise BadRequest("Invalid or expired reset token")

    db["user"].update_one(
        {"_id": user["_id"]},
        {
            "$set": {"password_hash": hash_password(req.new_password), "updated_at": utcnow()},
            "$unset": {"reset_code": "", "reset_code_expiry": "", "reset_token": ""},
        },
    )
    logger.info("Password reset for %s", email)
    return {"message": "Password reset successfully. You can now login with your new password."}


@app.get("/auth/me")
def me(user=Depends(get_current_user)):
    return {"user": public_user(user)}


# ----------------------- Public -----------------------
@app.get("/public/products")
def public_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    limit: int = Query(catalog.DEFAULT_PAGE_SIZE, ge=1, le=catalog.MAX_PAGE_SIZE),
):
    query = catalog.build_query(search, category, min_price, max_price)
    return catalog.list_products(query, page, limit)


@app.get("/public/products/{product_id}")
def public_product(product_id: str):
    product = catalog.get_active_product(product_id)
    if not product:
        raise NotFound("Product not found")
    return catalog.product_out(product)


@app.get("/public/settings")
def public_settings():
    return store_settings.public_settings(store_settings.get_settings())


# ----------------------- Customer -----------------------
@app.get("/customer/dashboard")
def customer_dashboard(user=Depends(require_customer)):
    data = analytics.customer_dashboard(user["_id"])
    data["recent_orders"] = [order_out(o) for o in data["recent_orders"]]
    return data


@app.get("/customer/products")
def customer_products(
    search: Optional[str] = None,
    category: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    page: int = Query(1, ge=1),
    limit: int = Query(catalog.DEFAULT_PAGE_SIZE, ge=1, le=catalog.MAX_PAGE_SIZE),
    user=Depends(require_customer),
):
    query = catalog.build_query(search, category, min_price, max_price)
    return catalog.list_products(query, page, limit)


@app.get("/customer/products/{product_id}")
def customer_product(product_id: str, user=Depends(require_customer)):
    product = catalog.get_active_product(product_id)
    if not product:
        raise NotFound("Product not found")
    return catalog.product_out(product)


@app.post("/customer/purchase", status_code=201)
def purchase(req: PurchaseRequest, user=Depends(require_customer)):
    order = orders.place_order(
        user,
        [line.model_dump() for line in req.products],
        req.customer_info,
        coupon_code=req.coupon.code if req.coupon else None,
        payment_method=req.payment_method,
    )
    out = order_out(order)
    return {
        "message": "Order placed successfully! Thank you for your purchase.",
        "order_id": out["id"],
        "order_number": out["display_order_number"],
        "subtotal": out["subtotal"],
        "discount": out["discount"],
        "total_price": out["total_price"],
        "products": out["products"],
        "customer_info": out["customer_info"],
        "status": out["status"],
    }


@app.get("/customer/orders")
def customer_orders(user=Depends(require_customer)):
    found = db["order"].find({"user_id": user["_id"]}).sort("created_at", -1)
    return [order_out(o) for o in found]


@app.put("/customer/password")
def change_password(req: PasswordChangeRequest, user=Depends(require_customer)):
    validate_password(req.new_password)
    stored = db["user"].find_one({"_id": user["_id"]})
    if not stored:
        raise NotFound("User not found")
    if not verify_password(req.current_password, stored.get("password_hash", "")):
        raise BadRequest("Current password is incorrect")
    db["user"].update_one(
        {"_id": stored["_id"]},
        {
            "$set": {"password_hash": hash_password(req.new_password), "updated_at": utcnow()},
            "$unset": {"reset_code": "", "reset_code_expiry": "", "reset_token": ""},
        },
    )
    logger.info("Password updated for %s", stored["email"])
    return {"message": "Password updated successfully"}


@app.get("/customer/wishlist")
def get_wishlist(user=Depends(require_customer)):
    return cart.list_wishlist(user["_id"])


@app.post("/customer/wishlist/{product_id}", status_code=201)
def add_wishlist(product_id: str, user=Depends(require_customer)):
    return {"message": "Added to wishlist", "item": cart.add_to_wishlist(user["_id"], product_id)}


@app.delete("/customer/wishlist/{product_id}")
def remove_wishlist(product_id: str, user=Depends(require_customer)):
    cart.remove_from_wishlist(user["_id"], product_id)
    return {"message": "Removed from wishlist"}


@app.get("/customer/coupons/validate/{code}")
def customer_validate_coupon(code: str, subtotal: Optional[float] = Query(None, ge=0),
                             user=Depends(require_customer)):
    return validate_coupon_code(code, subtotal)


@app.get("/customer/cart")
def get_cart(user=Depends(require_customer)):
    return cart.list_cart(user["_id"])


@app.post("/customer/cart/{product_id}")
def add_cart(product_id: str, req: Optional[CartQuantityRequest] = None, user=Depends(require_customer)):
    quantity = req.quantity if req else 1
    item, created = cart.add_to_cart(user["_id"], product_id, quantity)
    body = {"message": "Added to cart" if created else "Cart updated", "item": item}
    return JSONResponse(status_code=201 if created else 200, content=body)


@app.put("/customer/cart/{product_id}")
def update_cart(product_id: str, req: CartQuantityRequest, user=Depends(require_customer)):
    return {"message": "Cart updated", "item": cart.set_cart_quantity(user["_id"], product_id, req.quantity)}


@app.delete("/customer/cart/{product_id}")
def remove_cart(product_id: str, user=Depends(require_customer)):
    cart.remove_from_cart(user["_id"], product_id)
    return {"message": "Removed from cart"}


@app.delete("/customer/cart")
def clear_cart(user=Depends(require_customer)):
    removed = cart.clear_cart(user["_id"])
    return {"message": "Cart cleared", "removed": removed}


# ----------------------- Admin -----------------------
@app.get("/admin/dashboard")
def admin_dashboard(admin=Depends(require_admin)):
    data = analytics.admin_dashboard()
    data["recent_orders"] = [order_out(o) for o in data["recent_orders"]]
    return data


# Products
@app.get("/admin/products")
def admin_list_products(search: Optional[str] = None, admin=Depends(require_admin)):
    query = {}
    if search and search.strip():
        query = catalog.build_query(search, in_stock_only=False)
        query.pop("is_active", None)
    now = utcnow()
    return [catalog.product_out(p, now) for p in db["product"].find(query).sort("created_at", -1)]


@app.post("/admin/products", status_code=201)
def admin_create_product(req: ProductCreateRequest, admin=Depends(require_admin)):
    now = utcnow()
    product = req.model_dump()
    product["discount"] = discount_doc(req.discount)
    product["tags"] = [t.strip() for t in req.tags if t.strip()]
    product["created_by"] = str(admin["_id"])
    product["created_at"] = now
    product["updated_at"] = now
    product["_id"] = db["product"].insert_one(product).inserted_id
    if product["discount"]:
        announce_sale(product)
    return catalog.product_out(product, now)


@app.put("/admin/products/{product_id}")
def admin_update_product(product_id: str, req: ProductUpdateRequest, admin=Depends(require_admin)):
    oid = to_object_id(product_id)
    updates = req.model_dump(exclude_none=True, exclude={"discount", "remove_discount"})
    if "tags" in updates:
        updates["tags"] = [t.strip() for t in updates["tags"] if t.strip()]
    if req.discount is not None:
        updates["discount"] = discount_doc(req.discount)
    updates["updated_at"] = utcnow()
    operation = {"$set": updates}
    if req.remove_discount and req.discount is None:
        operation["$unset"] = {"discount": ""}
    product = db["product"].find_one_and_update({"_id": oid}, operation, return_document=ReturnDocument.AFTER)
    if not product:
        raise NotFound("Product not found")
    if req.discount is not None:
        announce_sale(product)
    return catalog.product_out(product)


@app.delete("/admin/products/{product_id}")
def admin_delete_product(product_id: str, admin=Depends(require_admin)):
    result = db["product"].delete_one({"_id": to_object_id(product_id)})
    if result.deleted_count == 0:
        raise NotFound("Product not found")
    return {"message": "Product deleted successfully"}


@app.post("/admin/products/{product_id}/image")
def admin_upload_image(product_id: str, image: UploadFile = File(...), admin=Depends(require_admin)):
    oid = to_object_id(product_id)
    if not db["product"].find_one({"_id": oid}):
        raise NotFound("Product not found")
    if not allowed_image(image.filename):
        raise BadRequest("Unsupported image type")
    image_url = upload_image(image.file.read(), image.filename or "product-image")
    product = db["product"].find_one_and_update(
        {"_id": oid},
        {"$set": {"image_url": image_url, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    logger.info("Image uploaded for product %s: %s", product_id, image_url)
    return catalog.product_out(product)


@app.put("/admin/products/{product_id}/sale")
def admin_put_sale(product_id: str, req: SaleRequest, admin=Depends(require_admin)):
    discount = ProductDiscount(
        type="percentage",
        value=req.discount_percent,
        max_discount=req.max_discount,
        start_date=req.sale_start,
        end_date=req.sale_end,
    )
    product = db["product"].find_one_and_update(
        {"_id": to_object_id(product_id)},
        {"$set": {"discount": discount_doc(discount), "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not product:
        raise NotFound("Product not found")
    announce_sale(product)
    return catalog.product_out(product)


@app.delete("/admin/products/{product_id}/sale")
def admin_remove_sale(product_id: str, admin=Depends(require_admin)):
    product = db["product"].find_one_and_update(
        {"_id": to_object_id(product_id)},
        {"$unset": {"discount": ""}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not product:
        raise NotFound("Product not found")
    return catalog.product_out(product)


# Orders
@app.get("/admin/orders")
def admin_list_orders(status: Optional[str] = None, admin=Depends(require_admin)):
    query = {"status": status} if status else {}
    return [order_out(o) for o in db["order"].find(query).sort("created_at", -1)]


@app.get("/admin/orders/{order_id}")
def admin_get_order(order_id: str, admin=Depends(require_admin)):
    order = db["order"].find_one({"_id": to_object_id(order_id)})
    if not order:
        raise NotFound("Order not found")
    return order_out(order)


@app.put("/admin/orders/{order_id}/status")
def admin_update_order_status(order_id: str, req: OrderStatusRequest, admin=Depends(require_admin)):
    order = orders.update_status(order_id, req.status)
    if not order:
        raise NotFound("Order not found")
    return {"message": f"Order status updated to {req.status}", "order": order_out(order)}


@app.delete("/admin/orders/{order_id}")
def admin_delete_order(order_id: str, admin=Depends(require_admin)):
    result = db["order"].delete_one({"_id": to_object_id(order_id)})
    if result.deleted_count == 0:
        raise NotFound("Order not found")
    return {"message": "Order deleted"}


# Users
@app.get("/admin/users")
def admin_list_users(admin=Depends(require_admin)):
    found = db["user"].find(
        {"role": "customer"},
        {"password_hash": 0, "reset_code": 0, "reset_code_expiry": 0, "reset_token": 0},
    ).sort("created_at", -1)
    return [serialize_doc(u) for u in found]


# Settings
@app.get("/admin/settings")
def admin_get_settings(admin=Depends(require_admin)):
    return serialize_doc(store_settings.admin_settings(store_settings.get_settings()))


@app.put("/admin/settings")
def admin_update_settings(req: SettingsUpdateRequest, admin=Depends(require_admin)):
    settings = store_settings.update_settings(
        req.store_name, req.store_description, req.currency, req.tax_rate, req.shipping_fee,
        req.free_shipping_threshold,
    )
    return {"message": "Settings updated successfully",
            "settings": serialize_doc(store_settings.admin_settings(settings))}


@app.post("/admin/settings/reset")
def admin_reset_settings(admin=Depends(require_admin)):
    settings = store_settings.reset_settings()
    return {"message": "Settings reset to default values",
            "settings": serialize_doc(store_settings.admin_settings(settings))}


# Coupons
def validate_coupon_code(code: str, subtotal: Optional[float] = None) -> dict:
    now = utcnow()
    coupon = orders.find_coupon(code)
    try:
        if subtotal is None:
            check_coupon(coupon, now)
            discount = None
        else:
            discount = coupon_discount(coupon, subtotal, now)
    except CouponRejected as exc:
        if exc.reason in ("not-found", "inactive", "expired"):
            raise NotFound(exc.message)
        raise
    out = serialize_doc(coupon)
    if discount is not None:
        out["applied_discount"] = discount
    return out


@app.get("/admin/coupons")
def admin_list_coupons(admin=Depends(require_admin)):
    return [serialize_doc(c) for c in db["coupon"].find().sort("created_at", -1)]


@app.post("/admin/coupons", status_code=201)
def admin_create_coupon(req: CouponRequest, admin=Depends(require_admin)):
    if db["coupon"].find_one({"code": req.code}):
        raise Conflict("Coupon code already exists")
    now = utcnow()
    coupon = coupon_doc(req)
    coupon.update({"used_count": 0, "is_active": True, "created_at": now, "updated_at": now})
    try:
        coupon["_id"] = db["coupon"].insert_one(coupon).inserted_id
    except DuplicateKeyError:
        raise Conflict("Coupon code already exists")
    return serialize_doc(coupon)


@app.put("/admin/coupons/{coupon_id}")
def admin_update_coupon(coupon_id: str, req: CouponRequest, admin=Depends(require_admin)):
    oid = to_object_id(coupon_id)
    if not db["coupon"].find_one({"_id": oid}):
        raise NotFound("Coupon not found")
    if db["coupon"].find_one({"code": req.code, "_id": {"$ne": oid}}):
        raise Conflict("Coupon code already exists")
    updates = coupon_doc(req)
    updates["updated_at"] = utcnow()
    coupon = db["coupon"].find_one_and_update({"_id": oid}, {"$set": updates}, return_document=ReturnDocument.AFTER)
    return serialize_doc(coupon)


@app.put("/admin/coupons/{coupon_id}/toggle")
def admin_toggle_coupon(coupon_id: str, admin=Depends(require_admin)):
    oid = to_object_id(coupon_id)
    coupon = db["coupon"].find_one({"_id": oid})
    if not coupon:
        raise NotFound("Coupon not found")
    coupon = db["coupon"].find_one_and_update(
        {"_id": oid},
        {"$set": {"is_active": not coupon.get("is_active", True), "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(coupon)


@app.delete("/admin/coupons/{coupon_id}")
def admin_delete_coupon(coupon_id: str, admin=Depends(require_admin)):
    result = db["coupon"].delete_one({"_id": to_object_id(coupon_id)})
    if result.deleted_count == 0:
        raise NotFound("Coupon not found")
    return {"message": "Coupon deleted successfully"}


@app.get("/admin/coupons/validate/{code}")
def admin_validate_coupon(code: str, subtotal: Optional[float] = Query(None, ge=0), admin=Depends(require_admin)):
    return validate_coupon_code(code, subtotal)


# Analytics
@app.get("/admin/analytics/summary")
def admin_analytics_summary(admin=Depends(require_admin)):
    return analytics.summary()


@app.get("/admin/analytics/sales")
def admin_analytics_sales(period: str = "30d", granularity: Optional[str] = None, admin=Depends(require_admin)):
    if period not in analytics.PERIODS:
        raise BadRequest(f"period must be one of {', '.join(analytics.PERIODS)}")
    if granularity is not None and granularity not in analytics.GRANULARITIES:
        raise BadRequest(f"granularity must be one of {', '.join(analytics.GRANULARITIES)}")
    return analytics.sales_series(period, granularity)


# Notifications
@app.get("/admin/notifications")
def admin_list_notifications(admin=Depends(require_admin)):
    return [serialize_doc(n) for n in notifications.list_notifications()]


@app.put("/admin/notifications/{notification_id}/read")
def admin_mark_notification(notification_id: str, admin=Depends(require_admin)):
    return serialize_doc(notifications.mark_read(notification_id))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
