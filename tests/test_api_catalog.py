from decimal import Decimal

import pytest

from sweetspot.uploads import UPLOAD_DIR


@pytest.fixture
async def vendor(login):
    return await login("vendor-1", role="vendor", first_name="Bea")


@pytest.fixture
def create_product(client):
    async def _create(headers, name="Brownie", price="4.50", **fields):
        data = {"name": name, "price": price, "stock": "10", **fields}
        r = await client.post("/api/products", data=data, headers=headers)
        assert r.status_code == 201, r.text
        return r.json()
    return _create


async def test_listing_hides_inactive_by_default(client, vendor, create_product):
    live = await create_product(vendor, name="Lemon Tart")
    hidden = await create_product(vendor, name="Old Scone", isActive="false")

    r = await client.get("/api/products")
    assert [p["id"] for p in r.json()] == [live["id"]]

    r = await client.get("/api/products", params={"isActive": "false"})
    assert [p["id"] for p in r.json()] == [hidden["id"]]

    r = await client.get("/api/vendor/products", headers=vendor)
    assert {p["id"] for p in r.json()} == {live["id"], hidden["id"]}


async def test_create_product_parses_form_fields(client, vendor, create_product):
    p = await create_product(vendor, name="Vegan Brownie", tags="chocolate, fudge",
                             dietary="vegan", prepTimeMinutes="20")
    assert p["vendorId"] == "vendor-1"
    assert Decimal(p["price"]) == Decimal("4.50")
    assert p["tags"] == ["chocolate", "fudge"]
    assert p["dietary"] == ["vegan"]
    assert p["prepTimeMinutes"] == 20
    assert p["isActive"] is True
    assert p["imageUrl"] is None


async def test_create_product_with_image(client, vendor):
    files = {"image": ("cake.png", b"\x89PNG fake bytes", "image/png")}
    r = await client.post("/api/products", data={"name": "Cake", "price": "30"},
                          files=files, headers=vendor)
    assert r.status_code == 201, r.text
    url = r.json()["imageUrl"]
    assert url.startswith("/uploads/") and url.endswith(".png")
    assert (UPLOAD_DIR / url.rsplit("/", 1)[1]).read_bytes() == b"\x89PNG fake bytes"


async def test_create_product_rejects_non_image(client, vendor):
    files = {"image": ("notes.txt", b"hello", "text/plain")}
    r = await client.post("/api/products", data={"name": "Cake", "price": "30"},
                          files=files, headers=vendor)
    assert r.status_code == 400
    assert r.json()["detail"] == "Only image files are allowed"


async def test_create_product_validates_price(client, vendor):
    r = await client.post("/api/products", data={"name": "Cake", "price": "-1"}, headers=vendor)
    assert r.status_code == 400
    assert [e["field"] for e in r.json()["errors"]] == ["price"]


async def test_customer_cannot_create_product(client, login):
    headers = await login("cust-1")
    r = await client.post("/api/products", data={"name": "Cake", "price": "3"}, headers=headers)
    assert r.status_code == 403


async def test_get_product_and_missing_product(client, vendor, create_product):
    p = await create_product(vendor)
    r = await client.get(f"/api/products/{p['id']}")
    assert r.status_code == 200
    assert r.json()["name"] == "Brownie"

    r = await client.get("/api/products/9999")
    assert r.status_code == 404


async def test_filters_by_search_and_dietary(client, vendor, create_product):
    a = await create_product(vendor, name="Chocolate Cake", dietary="vegan")
    await create_product(vendor, name="Vanilla Flan", description="silky")
    b = await create_product(vendor, name="Macaron", description="Dark chocolate shell",
                             dietary="gluten-free")

    r = await client.get("/api/products", params={"search": "CHOCOLATE"})
    assert {p["id"] for p in r.json()} == {a["id"], b["id"]}

    r = await client.get("/api/products", params={"dietary": "gluten-free,nut-free"})
    assert [p["id"] for p in r.json()] == [b["id"]]

    r = await client.get("/api/products", params={"vendorId": "somebody-else"})
    assert r.json() == []


async def test_owner_updates_product(client, vendor, create_product):
    p = await create_product(vendor)
    r = await client.put(f"/api/products/{p['id']}", json={"price": "5.25", "isActive": False},
                         headers=vendor)
    assert r.status_code == 200
    body = r.json()
    assert Decimal(body["price"]) == Decimal("5.25")
    assert body["isActive"] is False
    assert body["name"] == "Brownie"


async def test_update_cannot_move_product_to_another_vendor(client, vendor, create_product):
    p = await create_product(vendor)
    r = await client.put(f"/api/products/{p['id']}", json={"vendorId": "thief"}, headers=vendor)
    assert r.status_code == 400
    r = await client.get(f"/api/products/{p['id']}")
    assert r.json()["vendorId"] == "vendor-1"


async def test_non_owner_cannot_update_or_delete(client, login, vendor, create_product):
    p = await create_product(vendor)
    other = await login("vendor-2", role="vendor")

    r = await client.put(f"/api/products/{p['id']}", json={"name": "Mine now"}, headers=other)
    assert r.status_code == 403
    assert r.json()["detail"] == "You can only edit your own products"

    r = await client.delete(f"/api/products/{p['id']}", headers=other)
    assert r.status_code == 403

    r = await client.get(f"/api/products/{p['id']}")
    assert r.json()["name"] == "Brownie"


async def test_owner_deletes_product(client, vendor, create_product):
    p = await create_product(vendor)
    r = await client.delete(f"/api/products/{p['id']}", headers=vendor)
    assert r.status_code == 204
    assert (await client.get(f"/api/products/{p['id']}")).status_code == 404

    r = await client.delete(f"/api/products/{p['id']}", headers=vendor)
    assert r.status_code == 404


async def test_categories_listing(client):
    r = await client.get("/api/categories")
    assert r.status_code == 200
    assert r.json() == []


async def test_reviews_and_vendor_stats(client, login, vendor, create_product):
    p = await create_product(vendor)
    customer = await login("cust-1", first_name="Cora")

    r = await client.post(f"/api/products/{p['id']}/reviews",
                          json={"rating": 4, "comment": "rich"}, headers=customer)
    assert r.status_code == 201
    assert r.json()["customerId"] == "cust-1"

    r = await client.post(f"/api/products/{p['id']}/reviews", json={"rating": 6}, headers=customer)
    assert r.status_code == 400

    r = await client.post(f"/api/products/{p['id']}/reviews",
                          json={"rating": 5, "orderId": 12345}, headers=customer)
    assert r.status_code == 400

    r = await client.get(f"/api/products/{p['id']}/reviews")
    reviews = r.json()
    assert len(reviews) == 1
    assert reviews[0]["customer"]["firstName"] == "Cora"

    r = await client.get("/api/vendor/stats", headers=vendor)
    assert r.json() == {"totalSales": 0.0, "totalOrders": 0, "activeProducts": 1, "averageRating": 4.0}


async def test_edit_form_updates_fields_and_replaces_image(client, vendor, create_product):
    p = await create_product(vendor, name="Cake", price="30")
    files = {"image": ("new-cake.webp", b"RIFF fake webp", "image/webp")}
    form = {"name": "Birthday Cake", "price": "32.50", "dietary": "vegan,nut-free",
            "isActive": "false", "description": ""}
    r = await client.put(f"/api/products/{p['id']}", data=form, files=files, headers=vendor)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["name"] == "Birthday Cake"
    assert Decimal(body["price"]) == Decimal("32.50")
    assert body["dietary"] == ["vegan", "nut-free"]
    assert body["isActive"] is False
    assert body["imageUrl"].startswith("/uploads/") and body["imageUrl"].endswith(".webp")
    assert (UPLOAD_DIR / body["imageUrl"].rsplit("/", 1)[1]).read_bytes() == b"RIFF fake webp"


async def test_edit_form_without_image_keeps_the_old_one(client, vendor):
    files = {"image": ("cake.png", b"png bytes", "image/png")}
    created = (await client.post("/api/products", data={"name": "Cake", "price": "30"},
                                 files=files, headers=vendor)).json()
    r = await client.put(f"/api/products/{created['id']}", data={"stock": "3"}, headers=vendor)
    assert r.status_code == 200, r.text
    assert r.json()["stock"] == 3
    assert r.json()["imageUrl"] == created["imageUrl"]


async def test_edit_form_rejects_vendor_id(client, vendor, create_product):
    p = await create_product(vendor)
    r = await client.put(f"/api/products/{p['id']}", data={"vendorId": "thief"}, headers=vendor)
    assert r.status_code == 400
    assert r.json()["errors"][0]["field"] == "vendorId"


@pytest.mark.parametrize("field", ["name", "price", "stock", "isActive", "tags", "dietary"])
async def test_update_rejects_null_for_required_columns(client, vendor, create_product, field):
    p = await create_product(vendor)
    r = await client.put(f"/api/products/{p['id']}", json={field: None}, headers=vendor)
    assert r.status_code == 400
    assert [e["field"] for e in r.json()["errors"]] == [field]


async def test_update_allows_clearing_optional_columns(client, vendor, create_product):
    p = await create_product(vendor, description="fudgy", prepTimeMinutes="15")
    r = await client.put(f"/api/products/{p['id']}", json={"description": None, "prepTimeMinutes": None},
                         headers=vendor)
    assert r.status_code == 200
    assert r.json()["description"] is None
    assert r.json()["prepTimeMinutes"] is None


async def test_update_with_unreadable_body(client, vendor, create_product):
    p = await create_product(vendor)
    r = await client.put(f"/api/products/{p['id']}", content=b"{not json",
                         headers={**vendor, "Content-Type": "application/json"})
    assert r.status_code == 400
