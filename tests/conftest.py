import os

import mongomock
import pymongo
import pytest

# The app binds its Mongo client at import time, so the in-memory client
# and test settings have to be in place before main is imported.
os.environ["DATABASE_URL"] = "mongodb://localhost:27017"
os.environ["DATABASE_NAME"] = "snapshop_test"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["APP_ENV"] = "test"
os.environ["RESEND_API_KEY"] = ""
os.environ["IMGBB_API_KEY"] = ""
pymongo.MongoClient = mongomock.MongoClient

from fastapi.testclient import TestClient  # noqa: E402

import config  # noqa: E402
import database  # noqa: E402
import main  # noqa: E402
import security  # noqa: E402

CUSTOMER_PASSWORD = "Secret123!"
ADMIN_PASSWORD = "Admin123!"

CUSTOMER_INFO = {
    "name": "Jane Buyer",
    "email": "Jane@Example.com",
    "phone": "555-0100",
    "address": {"street": "1 Main St", "city": "Springfield", "zipCode": "12345"},
}


@pytest.fixture(autouse=True)
def clean_db():
    for name in database.db.list_collection_names():
        database.db.drop_collection(name)
    yield


@pytest.fixture
def client():
    return TestClient(main.app)


def auth_headers(user):
    return {"Authorization": f"Bearer {security.create_token(user)}"}


@pytest.fixture
def make_customer():
    def _make(email="jane@example.com", name="Jane Buyer", password=CUSTOMER_PASSWORD, **extra):
        now = database.utcnow()
        user = {
            "name": name,
            "email": email,
            "password_hash": security.hash_password(password),
            "role": "customer",
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }
        user.update(extra)
        user["_id"] = database.db["user"].insert_one(user).inserted_id
        return user
    return _make


@pytest.fixture
def customer(make_customer):
    return make_customer()


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture
def admin(monkeypatch):
    monkeypatch.setattr(config, "ADMIN_EMAIL", "admin@example.com")
    monkeypatch.setattr(config, "ADMIN_PASSWORD", ADMIN_PASSWORD)
    return security.ensure_admin()


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def make_product():
    def _make(**overrides):
        now = database.utcnow()
        product = {
            "title": "Test Product",
            "description": "A product for testing",
            "price": 100.0,
            "category": "electronics",
            "stock": 10,
            "image_url": "",
            "tags": [],
            "discount": None,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }
        product.update(overrides)
        product["_id"] = database.db["product"].insert_one(product).inserted_id
        return product
    return _make


@pytest.fixture
def make_coupon():
    def _make(code="SAVE", discount=10.0, type="percentage", **overrides):
        now = database.utcnow()
        coupon = {
            "code": code,
            "discount": discount,
            "type": type,
            "min_amount": 0.0,
            "max_discount": None,
            "usage_limit": None,
            "used_count": 0,
            "expiry_date": None,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        }
        coupon.update(overrides)
        coupon["_id"] = database.db["coupon"].insert_one(coupon).inserted_id
        return coupon
    return _make


@pytest.fixture
def purchase(client, customer_headers):
    def _purchase(lines, coupon=None, headers=None, customer_info=CUSTOMER_INFO):
        body = {
            "products": [{"product_id": str(pid), "qty": qty} for pid, qty in lines],
            "customer_info": customer_info,
        }
        if coupon:
            body["coupon"] = {"code": coupon}
        return client.post("/customer/purchase", json=body, headers=headers or customer_headers)
    return _purchase
