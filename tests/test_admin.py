import pytest

import database
import imagehost
import main
from errors import UploadFailed

PHONE = {
    "title": "Phone",
    "description": "Smart phone",
    "price": 299.99,
    "category": "electronics",
    "stock": 5,
    "tags": [" mobile ", ""],
}


def test_create_update_delete_product(client, admin, admin_headers):
    res = client.post("/admin/products", json=PHONE, headers=admin_headers)
    assert res.status_code == 201
    product = res.json()
    assert product["final_price"] == 299.99
    assert product["tags"] == ["mobile"]
    assert product["created_by"] == str(admin["_id"])

    res = client.put(f"/admin/products/{product['id']}", json={"price": 249.0, "stock": 0}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["price"] == 249.0
    assert res.json()["title"] == "Phone"

    listed = client.get("/admin/products", headers=admin_headers).json()
    assert [p["id"] for p in listed] == [product["id"]]

    assert client.delete(f"/admin/products/{product['id']}", headers=admin_headers).status_code == 200
    assert client.delete(f"/admin/products/{product['id']}", headers=admin_headers).status_code == 404


def test_product_validation(client, admin_headers):
    bad_category = dict(PHONE, category="toys")
    negative_price = dict(PHONE, price=-1)
    assert client.post("/admin/products", json=bad_category, headers=admin_headers).status_code == 400
    assert client.post("/admin/products", json=negative_price, headers=admin_headers).status_code == 400
    assert client.put("/admin/products/bad-id", json={"price": 1}, headers=admin_headers).status_code == 400


def test_discount_on_create_and_removal(client, admin_headers):
    body = dict(PHONE, discount={"type": "percentage", "value": 10})
    product = client.post("/admin/products", json=body, headers=admin_headers).json()
    assert product["final_price"] == 269.99
    assert product["is_discount_active"] is True
    assert database.db["notification"].count_documents({"type": "sale"}) == 1

    res = client.put(f"/admin/products/{product['id']}", json={"remove_discount": True}, headers=admin_headers)
    assert res.json()["final_price"] == 299.99
    assert "discount" not in res.json()


def test_sale_endpoints(client, admin_headers, make_product):
    product = make_product(title="Jacket", price=120.0, category="clothing")
    res = client.put(f"/admin/products/{product['_id']}/sale", json={"discount_percent": 25, "max_discount": 20},
                     headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["final_price"] == 100.0
    assert res.json()["discount"]["type"] == "percentage"
    note = database.db["notification"].find_one({"type": "sale"})
    assert "Jacket" in note["message"]

    res = client.delete(f"/admin/products/{product['_id']}/sale", headers=admin_headers)
    assert res.json()["final_price"] == 120.0
    assert client.put(f"/admin/products/{product['_id']}/sale", json={"discount_percent": 0},
                      headers=admin_headers).status_code == 400


def test_image_upload(client, admin_headers, make_product, monkeypatch):
    product = make_product()
    uploads = []

    def fake_upload(content, name):
        uploads.append((content, name))
        return "https://i.ibb.co/abc/shoe.png"

    monkeypatch.setattr(main, "upload_image", fake_upload)
    res = client.post(f"/admin/products/{product['_id']}/image", headers=admin_headers,
                      files={"image": ("shoe.png", b"\x89PNG data", "image/png")})
    assert res.status_code == 200
    assert res.json()["image_url"] == "https://i.ibb.co/abc/shoe.png"
    assert uploads == [(b"\x89PNG data", "shoe.png")]

    res = client.post(f"/admin/products/{product['_id']}/image", headers=admin_headers,
                      files={"image": ("notes.txt", b"hello", "text/plain")})
    assert res.status_code == 400
    assert res.json()["detail"] == "Unsupported image type"


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self.reason = "Bad Request" if status_code >= 400 else "OK"
        self._body = body

    def json(self):
        return self._body


def test_imagehost_upload(monkeypatch):
    with pytest.raises(UploadFailed):
        imagehost.upload_image(b"data", "a.png")

    monkeypatch.setattr(imagehost.config, "IMGBB_API_KEY", "key")
    posted = {}

    def fake_post(url, data, timeout):
        posted.update(data)
        return FakeResponse(200, {"success": True, "data": {"display_url": "https://i.ibb.co/x/a.png"}})

    monkeypatch.setattr(imagehost.requests, "post", fake_post)
    assert imagehost.upload_image(b"data", "a.png") == "https://i.ibb.co/x/a.png"
    assert posted["image"] == "ZGF0YQ=="

    monkeypatch.setattr(imagehost.requests, "post",
                        lambda url, data, timeout: FakeResponse(400, {"error": {"message": "Invalid API key"}}))
    with pytest.raises(UploadFailed) as exc_info:
        imagehost.upload_image(b"data", "a.png")
    assert exc_info.value.message == "ImgBB API error: Invalid API key"


def test_order_management(client, admin_headers, purchase, make_product):
    product = make_product(stock=5)
    order_id = purchase([(product["_id"], 1)]).json()["order_id"]

    orders = client.get("/admin/orders", headers=admin_headers).json()
    assert [o["id"] for o in orders] == [order_id]
    assert client.get("/admin/orders", params={"status": "shipped"}, headers=admin_headers).json() == []

    detail = client.get(f"/admin/orders/{order_id}", headers=admin_headers).json()
    assert detail["display_order_number"] == "ORD-000001"

    res = client.put(f"/admin/orders/{order_id}/status", json={"status": "processing"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["order"]["status"] == "processing"
    assert database.db["notification"].find_one({"message": {"$regex": "being processed"}})

    bad = client.put(f"/admin/orders/{order_id}/status", json={"status": "lost"}, headers=admin_headers)
    assert bad.status_code == 400

    assert client.delete(f"/admin/orders/{order_id}", headers=admin_headers).status_code == 200
    assert client.get(f"/admin/orders/{order_id}", headers=admin_headers).status_code == 404
    missing = client.put(f"/admin/orders/{order_id}/status", json={"status": "shipped"}, headers=admin_headers)
    assert missing.status_code == 404


def test_users_lists_customers_only(client, admin_headers, customer):
    users = client.get("/admin/users", headers=admin_headers).json()
    assert [u["email"] for u in users] == ["jane@example.com"]
    assert "password_hash" not in users[0]


def test_settings(client, admin_headers):
    current = client.get("/admin/settings", headers=admin_headers).json()
    assert current["currency_symbol"] == "$"

    update = {"store_name": "Snap", "store_description": "Gadgets", "currency": "EUR", "tax_rate": 20,
              "shipping_fee": 4.5, "free_shipping_threshold": 75}
    res = client.put("/admin/settings", json=update, headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["settings"]["currency"] == {"code": "EUR", "symbol": "€", "rate": 0.85}

    public = client.get("/public/settings").json()
    assert public["store_name"] == "Snap"
    assert public["tax_rate"] == 20.0

    assert client.put("/admin/settings", json=dict(update, tax_rate=150), headers=admin_headers).status_code == 400
    assert client.put("/admin/settings", json=dict(update, currency="XYZ"), headers=admin_headers).status_code == 400

    reset = client.post("/admin/settings/reset", headers=admin_headers).json()
    assert reset["settings"]["store_name"] == "My Ecommerce Store"


def test_coupon_crud(client, admin_headers):
    body = {"code": " save10 ", "discount": 10, "type": "percentage", "max_discount": 5}
    res = client.post("/admin/coupons", json=body, headers=admin_headers)
    assert res.status_code == 201
    coupon = res.json()
    assert coupon["code"] == "SAVE10"
    assert coupon["max_discount"] == 5.0
    assert coupon["used_count"] == 0
    assert coupon["is_active"] is True

    duplicate = client.post("/admin/coupons", json=body, headers=admin_headers)
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Coupon code already exists"

    updated = client.put(f"/admin/coupons/{coupon['id']}", headers=admin_headers,
                         json={"code": "FLAT5", "discount": 5, "type": "fixed", "max_discount": 3})
    assert updated.json()["code"] == "FLAT5"
    assert updated.json()["max_discount"] is None

    toggled = client.put(f"/admin/coupons/{coupon['id']}/toggle", headers=admin_headers).json()
    assert toggled["is_active"] is False
    assert len(client.get("/admin/coupons", headers=admin_headers).json()) == 1

    assert client.delete(f"/admin/coupons/{coupon['id']}", headers=admin_headers).status_code == 200
    assert client.delete(f"/admin/coupons/{coupon['id']}", headers=admin_headers).status_code == 404


def test_coupon_update_rejects_taken_code(client, admin_headers, make_coupon):
    make_coupon(code="TAKEN")
    other = make_coupon(code="MINE")
    res = client.put(f"/admin/coupons/{other['_id']}", headers=admin_headers,
                     json={"code": "taken", "discount": 5, "type": "fixed"})
    assert res.status_code == 400


def test_coupon_validation(client, admin_headers, customer_headers, make_coupon):
    make_coupon(code="HALF", discount=50, max_discount=20)
    make_coupon(code="USEDUP", usage_limit=2, used_count=2)
    make_coupon(code="OFF", is_active=False)

    res = client.get("/customer/coupons/validate/half", params={"subtotal": 100}, headers=customer_headers)
    assert res.status_code == 200
    assert res.json()["applied_discount"] == 20.0
    assert "applied_discount" not in client.get("/admin/coupons/validate/HALF", headers=admin_headers).json()

    assert client.get("/customer/coupons/validate/GHOST", headers=customer_headers).status_code == 404
    assert client.get("/customer/coupons/validate/OFF", headers=customer_headers).status_code == 404
    used = client.get("/customer/coupons/validate/USEDUP", headers=customer_headers)
    assert used.status_code == 400
    assert used.json()["detail"] == "Coupon usage limit exceeded"


def test_notifications(client, admin_headers, make_product):
    product = make_product()
    client.put(f"/admin/products/{product['_id']}/sale", json={"discount_percent": 10}, headers=admin_headers)
    notes = client.get("/admin/notifications", headers=admin_headers).json()
    assert len(notes) == 1
    assert notes[0]["is_read"] is False
    assert notes[0]["related_id"] == str(product["_id"])

    res = client.put(f"/admin/notifications/{notes[0]['id']}/read", headers=admin_headers)
    assert res.json()["is_read"] is True
    missing = client.put("/admin/notifications/0123456789abcdef01234567/read", headers=admin_headers)
    assert missing.status_code == 404
