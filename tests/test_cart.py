import database


def test_add_to_cart_accumulates_quantity(client, customer_headers, make_product):
    product = make_product(stock=5)
    first = client.post(f"/customer/cart/{product['_id']}", json={"quantity": 2}, headers=customer_headers)
    assert first.status_code == 201
    assert first.json()["item"]["quantity"] == 2

    second = client.post(f"/customer/cart/{product['_id']}", json={"quantity": 3}, headers=customer_headers)
    assert second.status_code == 200
    assert second.json()["item"]["quantity"] == 5

    over = client.post(f"/customer/cart/{product['_id']}", json={"quantity": 1}, headers=customer_headers)
    assert over.status_code == 400
    assert over.json()["detail"] == "Insufficient stock"
    assert database.db["cart"].count_documents({}) == 1


def test_add_without_body_adds_one(client, customer_headers, make_product):
    product = make_product()
    res = client.post(f"/customer/cart/{product['_id']}", headers=customer_headers)
    assert res.status_code == 201
    assert res.json()["item"]["quantity"] == 1


def test_cannot_add_inactive_product(client, customer_headers, make_product):
    product = make_product(is_active=False)
    res = client.post(f"/customer/cart/{product['_id']}", headers=customer_headers)
    assert res.status_code == 404


def test_update_remove_and_clear(client, customer_headers, make_product):
    lamp = make_product(title="Lamp", stock=4)
    rug = make_product(title="Rug")
    client.post(f"/customer/cart/{lamp['_id']}", headers=customer_headers)
    client.post(f"/customer/cart/{rug['_id']}", headers=customer_headers)

    res = client.put(f"/customer/cart/{lamp['_id']}", json={"quantity": 4}, headers=customer_headers)
    assert res.status_code == 200
    assert res.json()["item"]["quantity"] == 4
    assert client.put(f"/customer/cart/{lamp['_id']}", json={"quantity": 5},
                      headers=customer_headers).status_code == 400
    assert client.put(f"/customer/cart/{lamp['_id']}", json={"quantity": 0},
                      headers=customer_headers).status_code == 400

    assert client.delete(f"/customer/cart/{rug['_id']}", headers=customer_headers).status_code == 200
    missing = client.delete(f"/customer/cart/{rug['_id']}", headers=customer_headers)
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Item not found in cart"

    items = client.get("/customer/cart", headers=customer_headers).json()
    assert [i["product"]["title"] for i in items] == ["Lamp"]

    res = client.delete("/customer/cart", headers=customer_headers)
    assert res.json()["removed"] == 1
    assert client.get("/customer/cart", headers=customer_headers).json() == []


def test_cart_hides_unavailable_products(client, customer_headers, make_product):
    product = make_product()
    client.post(f"/customer/cart/{product['_id']}", headers=customer_headers)
    database.db["product"].update_one({"_id": product["_id"]}, {"$set": {"is_active": False}})
    assert client.get("/customer/cart", headers=customer_headers).json() == []
    assert database.db["cart"].count_documents({}) == 1


def test_carts_are_per_customer(client, customer_headers, make_customer, make_product):
    from conftest import auth_headers

    other = auth_headers(make_customer(email="other@example.com"))
    product = make_product()
    client.post(f"/customer/cart/{product['_id']}", headers=customer_headers)
    assert client.get("/customer/cart", headers=other).json() == []


def test_wishlist(client, customer_headers, make_product):
    product = make_product(title="Watch", stock=0)
    res = client.post(f"/customer/wishlist/{product['_id']}", headers=customer_headers)
    assert res.status_code == 201
    duplicate = client.post(f"/customer/wishlist/{product['_id']}", headers=customer_headers)
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"] == "Product already in wishlist"

    items = client.get("/customer/wishlist", headers=customer_headers).json()
    assert [i["product"]["title"] for i in items] == ["Watch"]

    assert client.delete(f"/customer/wishlist/{product['_id']}", headers=customer_headers).status_code == 200
    assert client.delete(f"/customer/wishlist/{product['_id']}", headers=customer_headers).status_code == 404


def test_customer_dashboard_counts(client, customer_headers, make_product):
    product = make_product()
    client.post(f"/customer/cart/{product['_id']}", headers=customer_headers)
    client.post(f"/customer/wishlist/{product['_id']}", headers=customer_headers)
    body = client.get("/customer/dashboard", headers=customer_headers).json()
    assert body["cart_count"] == 1
    assert body["wishlist_count"] == 1
    assert body["total_orders"] == 0
    assert body["total_spent"] == 0.0
    assert body["recent_orders"] == []
