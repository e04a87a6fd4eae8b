from decimal import Decimal

import pytest


@pytest.fixture
async def shop(client, login):
    """A vendor with two products and a synced customer."""
    vendor = await login("vendor-1", role="vendor")
    customer = await login("cust-1")
    products = []
    for name, price in (("Eclair", "10.00"), ("Cannoli", "5.00")):
        r = await client.post("/api/products", data={"name": name, "price": price, "stock": "5"},
                              headers=vendor)
        assert r.status_code == 201, r.text
        products.append(r.json())
    return vendor, customer, products


def order_body(address, items, total="30.00"):
    return {
        "orderData": {
            "vendorId": "vendor-1",
            "subtotal": "25.00",
            "tax": "2.00",
            "deliveryFee": "3.00",
            "total": total,
            "deliveryAddress": address,
        },
        "orderItems": items,
    }


def two_lines(products):
    eclair, cannoli = products
    return [
        {"productId": eclair["id"], "quantity": 2, "unitPrice": "10.00"},
        {"productId": cannoli["id"], "quantity": 1, "unitPrice": "5.00"},
    ]


# ---------------------------------------------------------------- cart

async def test_adding_same_product_twice_merges(client, shop):
    _, customer, (eclair, _) = shop
    r1 = await client.post("/api/cart", json={"productId": eclair["id"], "quantity": 2}, headers=customer)
    r2 = await client.post("/api/cart", json={"productId": eclair["id"], "quantity": 3}, headers=customer)
    assert r1.status_code == r2.status_code == 201
    assert r1.json()["id"] == r2.json()["id"]

    cart = (await client.get("/api/cart", headers=customer)).json()
    assert len(cart) == 1
    assert cart[0]["quantity"] == 5
    assert cart[0]["product"]["name"] == "Eclair"


async def test_cart_rejects_bad_input(client, shop):
    _, customer, (eclair, _) = shop
    r = await client.post("/api/cart", json={"productId": 9999}, headers=customer)
    assert r.status_code == 404

    r = await client.post("/api/cart", json={"productId": eclair["id"], "quantity": 0}, headers=customer)
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "quantity"


async def test_cart_item_belongs_to_its_customer(client, login, shop):
    _, customer, (eclair, _) = shop
    item = (await client.post("/api/cart", json={"productId": eclair["id"]}, headers=customer)).json()
    intruder = await login("cust-2")

    r = await client.put(f"/api/cart/{item['id']}", json={"quantity": 9}, headers=intruder)
    assert r.status_code == 404
    r = await client.delete(f"/api/cart/{item['id']}", headers=intruder)
    assert r.status_code == 404

    r = await client.put(f"/api/cart/{item['id']}", json={"quantity": 4}, headers=customer)
    assert r.status_code == 200
    assert r.json()["quantity"] == 4


async def test_remove_and_clear_cart(client, shop):
    _, customer, (eclair, cannoli) = shop
    first = (await client.post("/api/cart", json={"productId": eclair["id"]}, headers=customer)).json()
    await client.post("/api/cart", json={"productId": cannoli["id"]}, headers=customer)

    assert (await client.delete(f"/api/cart/{first['id']}", headers=customer)).status_code == 204
    cart = (await client.get("/api/cart", headers=customer)).json()
    assert [i["productId"] for i in cart] == [cannoli["id"]]

    assert (await client.delete("/api/cart", headers=customer)).status_code == 204
    assert (await client.get("/api/cart", headers=customer)).json() == []


# ---------------------------------------------------------------- favorites

async def test_favorites_roundtrip(client, shop):
    _, customer, (eclair, _) = shop
    check = f"/api/favorites/{eclair['id']}/check"
    assert (await client.get(check, headers=customer)).json() == {"isFavorite": False}

    r = await client.post("/api/favorites", json={"productId": eclair["id"]}, headers=customer)
    assert r.status_code == 201
    again = await client.post("/api/favorites", json={"productId": eclair["id"]}, headers=customer)
    assert again.json()["id"] == r.json()["id"]
    assert (await client.get(check, headers=customer)).json() == {"isFavorite": True}

    favs = (await client.get("/api/favorites", headers=customer)).json()
    assert [f["product"]["name"] for f in favs] == ["Eclair"]

    assert (await client.delete(f"/api/favorites/{eclair['id']}", headers=customer)).status_code == 204
    assert (await client.get(check, headers=customer)).json() == {"isFavorite": False}


# ---------------------------------------------------------------- orders

async def test_place_order_creates_items_and_clears_cart(client, shop, address):
    _, customer, products = shop
    for p in products:
        await client.post("/api/cart", json={"productId": p["id"]}, headers=customer)

    r = await client.post("/api/orders", json=order_body(address, two_lines(products)), headers=customer)
    assert r.status_code == 201, r.text
    order = r.json()
    assert order["customerId"] == "cust-1"
    assert order["status"] == "pending"
    assert Decimal(order["total"]) == Decimal("30.00")
    assert order["deliveryAddress"]["zipCode"] == "97201"

    assert (await client.get("/api/cart", headers=customer)).json() == []

    full = (await client.get(f"/api/orders/{order['id']}", headers=customer)).json()
    assert [(i["product"]["name"], i["quantity"]) for i in full["orderItems"]] == [("Eclair", 2), ("Cannoli", 1)]
    assert [Decimal(i["totalPrice"]) for i in full["orderItems"]] == [Decimal("20.00"), Decimal("5.00")]


async def test_order_total_must_add_up(client, shop, address):
    _, customer, products = shop
    r = await client.post("/api/orders", json=order_body(address, two_lines(products), total="31.00"),
                          headers=customer)
    assert r.status_code == 400
    assert (await client.get("/api/orders", headers=customer)).json() == []


async def test_order_needs_items_from_that_vendor(client, login, shop, address):
    _, customer, products = shop
    r = await client.post("/api/orders", json=order_body(address, []), headers=customer)
    assert r.status_code == 400

    other = await login("vendor-2", role="vendor")
    foreign = (await client.post("/api/products", data={"name": "Pie", "price": "5.00"},
                                 headers=other)).json()
    lines = [{"productId": foreign["id"], "quantity": 1, "unitPrice": "5.00"}]
    r = await client.post("/api/orders", json=order_body(address, lines), headers=customer)
    assert r.status_code == 400


async def test_orders_are_scoped_by_role(client, login, shop, address):
    vendor, customer, products = shop
    other_customer = await login("cust-2")
    placed = (await client.post("/api/orders", json=order_body(address, two_lines(products)),
                                headers=customer)).json()

    assert [o["id"] for o in (await client.get("/api/orders", headers=customer)).json()] == [placed["id"]]
    assert [o["id"] for o in (await client.get("/api/orders", headers=vendor)).json()] == [placed["id"]]
    assert (await client.get("/api/orders", headers=other_customer)).json() == []
    assert (await client.get(f"/api/orders/{placed['id']}", headers=other_customer)).status_code == 403
    assert (await client.get("/api/orders/9999", headers=customer)).status_code == 404


async def test_only_the_vendor_updates_status(client, login, shop, address):
    vendor, customer, products = shop
    other_vendor = await login("vendor-2", role="vendor")
    placed = (await client.post("/api/orders", json=order_body(address, two_lines(products)),
                                headers=customer)).json()
    url = f"/api/orders/{placed['id']}/status"

    r = await client.put(url, json={"status": "ready"}, headers=other_vendor)
    assert r.status_code == 403
    assert r.json()["detail"] == "You can only update your own orders"
    r = await client.put(url, json={"status": "ready"}, headers=customer)
    assert r.status_code == 403
    r = await client.put(url, json={"status": "shipped"}, headers=vendor)
    assert r.status_code == 400

    order = (await client.get(f"/api/orders/{placed['id']}", headers=customer)).json()
    assert order["status"] == "pending"

    r = await client.put(url, json={"status": "confirmed"}, headers=vendor)
    assert r.status_code == 200
    assert r.json()["status"] == "confirmed"

    r = await client.get("/api/orders", params={"status": "confirmed"}, headers=vendor)
    assert [o["id"] for o in r.json()] == [placed["id"]]

    stats = (await client.get("/api/vendor/stats", headers=vendor)).json()
    assert stats["totalOrders"] == 1
    assert stats["totalSales"] == 30.0


async def test_ordered_product_cannot_be_deleted(client, shop, address):
    vendor, customer, products = shop
    await client.post("/api/orders", json=order_body(address, two_lines(products)), headers=customer)
    r = await client.delete(f"/api/products/{products[0]['id']}", headers=vendor)
    assert r.status_code == 400
    assert (await client.get(f"/api/products/{products[0]['id']}")).status_code == 200
