def test_cart_requires_login(client):
    r = client.get("/api/cart")
    assert r.status_code == 401
    assert r.get_json()["error"] == "Authentication required"
    assert client.post("/api/cart", json={"productId": 1}).status_code == 401


def test_add_merges_same_product_and_size(client, login, make_product):
    login()
    pid = make_product(name="Tote", price=1500)

    r = client.post("/api/cart", json={"productId": pid, "quantity": 1})
    assert r.status_code == 201
    item_id = r.get_json()["cartItemId"]

    r = client.post("/api/cart", json={"productId": pid, "quantity": 2})
    assert r.status_code == 200
    assert r.get_json() == {"message": "Cart updated", "cartItemId": item_id}

    r = client.post("/api/cart", json={"productId": pid, "size": "M"})
    assert r.status_code == 201

    items = client.get("/api/cart").get_json()["cartItems"]
    assert len(items) == 2
    plain = next(i for i in items if i["size"] is None)
    assert plain["quantity"] == 3
    assert plain["name"] == "Tote"
    assert plain["price"] == 1500.0


def test_add_validation(client, login, make_product):
    login()
    assert client.post("/api/cart", json={}).status_code == 400
    assert client.post("/api/cart", json={"productId": 42}).status_code == 404

    sold_out = make_product(name="Gone", in_stock=False)
    r = client.post("/api/cart", json={"productId": sold_out})
    assert r.status_code == 400
    assert r.get_json()["error"] == "Product is out of stock"

    pid = make_product()
    assert client.post("/api/cart", json={"productId": pid, "quantity": 0}).status_code == 400


def test_update_and_remove_only_own_items(app, client, login, make_product):
    login(email="owner@example.com")
    pid = make_product()
    item_id = client.post("/api/cart", json={"productId": pid}).get_json()["cartItemId"]

    assert client.put(f"/api/cart/{item_id}", json={"quantity": 0}).status_code == 400
    assert client.put(f"/api/cart/{item_id}", json={"quantity": 5}).status_code == 200
    assert client.get("/api/cart").get_json()["cartItems"][0]["quantity"] == 5

    other = app.test_client()
    other.post("/api/auth/register", json={"email": "other@example.com", "password": "pw"})
    from .conftest import verify_user
    verify_user(app, "other@example.com")
    other.post("/api/auth/login", json={"email": "other@example.com", "password": "pw"})
    assert other.put(f"/api/cart/{item_id}", json={"quantity": 1}).status_code == 404
    assert other.delete(f"/api/cart/{item_id}").status_code == 404

    assert client.delete(f"/api/cart/{item_id}").status_code == 200
    assert client.get("/api/cart").get_json()["cartItems"] == []
    assert client.delete(f"/api/cart/{item_id}").status_code == 404


def test_clear_cart(client, login, make_product):
    login()
    client.post("/api/cart", json={"productId": make_product(name="A")})
    client.post("/api/cart", json={"productId": make_product(name="B")})
    assert len(client.get("/api/cart").get_json()["cartItems"]) == 2
    assert client.delete("/api/cart").get_json() == {"message": "Cart cleared"}
    assert client.get("/api/cart").get_json()["cartItems"] == []
