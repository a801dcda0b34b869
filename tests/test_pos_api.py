from __future__ import annotations


def _mk_table(client, name="Table 1", category="regular") -> dict:
    r = client.post("/tables", json={"name": name, "category": category})
    assert r.status_code == 201, r.text
    return r.json()


def _mk_menu(client) -> dict:
    coll = client.post("/menu-collections", json={"name": "Main menu", "description": "all day"}).json()
    coffee = client.post(
        "/menu-items", json={"name": "Iced milk coffee", "price": 15000, "category": "Drinks"}
    ).json()
    rolls = client.post(
        "/menu-items",
        json={"name": "Fresh spring rolls", "price": 18000, "category": "Food", "menu_collection_id": coll["id"]},
    ).json()
    return {"collection": coll, "coffee": coffee, "rolls": rolls}


def test_table_crud_and_empty_active_order(client):
    t = _mk_table(client)
    assert t["status"] == "available"
    assert client.get(f"/tables/{t['id']}").json()["name"] == "Table 1"

    r = client.get(f"/tables/{t['id']}/active-order")
    assert r.status_code == 200
    assert r.json() is None
    assert client.get("/tables/999/active-order").status_code == 404

    r = client.post("/tables", json={"name": "Sofa", "category": "lounge"})
    assert r.status_code == 400

    r = client.post(f"/tables/{t['id']}/status", json={"status": "reserved"})
    assert r.json()["status"] == "reserved"

    assert client.delete(f"/tables/{t['id']}").json() == {"ok": True}
    assert client.get(f"/tables/{t['id']}").status_code == 404


def test_menu_collections_and_items(client):
    m = _mk_menu(client)
    # items created without a collection fall into the default one
    assert m["coffee"]["menu_collection_id"] == m["collection"]["id"]

    dup = client.post("/menu-collections", json={"name": "main MENU"})
    assert dup.status_code == 409

    r = client.post(f"/menu-collections/{m['collection']['id']}", json={"description": None})
    assert r.status_code == 200
    assert r.json()["description"] is None
    assert r.json()["name"] == "Main menu"

    assert client.delete(f"/menu-collections/{m['collection']['id']}").status_code == 409

    names = [it["name"] for it in client.get("/menu-items", params={"category": "drinks"}).json()]
    assert names == ["Iced milk coffee"]
    names = [it["name"] for it in client.get("/menu-items", params={"q": "ROLL"}).json()]
    assert names == ["Fresh spring rolls"]

    r = client.post(f"/menu-items/{m['rolls']['id']}", json={"available": False})
    assert r.json()["available"] is False
    ids = [it["id"] for it in client.get("/menu-items", params={"available_only": "true"}).json()]
    assert ids == [m["coffee"]["id"]]

    assert client.delete(f"/menu-items/{m['rolls']['id']}").json() == {"ok": True}
    assert client.get(f"/menu-items/{m['rolls']['id']}").status_code == 404

    r = client.post("/menu-items", json={"name": "Tea", "price": 5000, "category": "Drinks", "menu_collection_id": 77})
    assert r.status_code == 404


def test_menu_item_needs_a_collection(client):
    r = client.post("/menu-items", json={"name": "Tea", "price": 5000, "category": "Drinks"})
    assert r.status_code == 400


def test_order_flow_over_http(client):
    t = _mk_table(client)
    m = _mk_menu(client)

    r = client.post("/orders", json={"table_id": t["id"]})
    assert r.status_code == 201
    order = r.json()
    assert client.post("/orders", json={"table_id": t["id"]}).status_code == 409
    assert client.get(f"/tables/{t['id']}").json()["status"] == "occupied"

    r = client.post(f"/orders/{order['id']}/items", json={"menu_item_id": m["coffee"]["id"], "quantity": 2})
    assert r.status_code == 201
    r = client.post(
        f"/orders/{order['id']}/items", json={"menu_item_id": m["rolls"]["id"], "note": "no chili"}
    )
    body = r.json()
    assert body["total"] == 48000
    assert [it["note"] for it in body["items"]] == [None, "no chili"]

    coffee_line = body["items"][0]
    assert client.post(f"/order-items/{coffee_line['id']}", json={"quantity": 0}).status_code == 422
    r = client.post(f"/order-items/{coffee_line['id']}", json={"quantity": 1})
    assert r.json()["total_price"] == 15000

    active = client.get(f"/tables/{t['id']}/active-order").json()
    assert active["id"] == order["id"]
    assert active["total"] == 33000
    assert len(client.get(f"/orders/{order['id']}/items").json()) == 2

    r = client.post(f"/orders/{order['id']}/complete", json={"payment_method": "cash", "discount": 3000})
    assert r.status_code == 200
    bill = r.json()["bill"]
    assert bill["total_amount"] == 30000
    assert client.get(f"/bills/{bill['id']}").json()["subtotal"] == 33000
    assert client.get(f"/tables/{t['id']}/active-order").json() is None

    r = client.get("/orders", params={"status": "completed", "table_id": t["id"]})
    assert [o["id"] for o in r.json()] == [order["id"]]


def test_conflict_and_not_found_bodies_carry_request_id(client):
    t = _mk_table(client)
    client.post("/orders", json={"table_id": t["id"]})

    r = client.delete(f"/tables/{t['id']}", headers={"X-Request-ID": "req-42"})
    assert r.status_code == 409
    assert r.json()["detail"] == "table has an active order"
    assert r.json()["request_id"] == "req-42"
    assert r.headers["X-Request-ID"] == "req-42"

    r = client.get("/orders/123")
    assert r.status_code == 404
    assert r.json()["detail"] == "order not found"
    assert r.headers.get("X-Request-ID")


def test_partial_payment_and_cancel_over_http(client):
    t = _mk_table(client, name="VIP Room 1", category="vip")
    m = _mk_menu(client)
    order = client.post("/orders", json={"table_id": t["id"]}).json()
    client.post(f"/orders/{order['id']}/items", json={"menu_item_id": m["coffee"]["id"]})
    body = client.post(f"/orders/{order['id']}/items", json={"menu_item_id": m["rolls"]["id"]}).json()

    r = client.post(
        f"/orders/{order['id']}/pay-items",
        json={"item_ids": [body["items"][0]["id"]], "payment_method": "transfer"},
    )
    assert r.status_code == 200
    assert r.json()["order"]["total"] == 18000

    r = client.post(f"/orders/{order['id']}/cancel")
    assert r.json()["status"] == "cancelled"
    assert client.get(f"/tables/{t['id']}").json()["status"] == "available"
    assert len(client.get(f"/orders/{order['id']}/bills").json()) == 1
    assert client.post(f"/orders/{order['id']}/cancel").status_code == 409


def test_health_reports_db_component(client):
    r = client.get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["service"] == "POS API"
    assert body["components"] == {"db": "ok"}


def test_oversized_catalog_text_is_rejected(client):
    m = _mk_menu(client)
    long_text = "d" * 401
    cid, iid = m["collection"]["id"], m["coffee"]["id"]

    r = client.post("/menu-collections", json={"name": "Brunch", "description": long_text})
    assert r.status_code == 422
    r = client.post(f"/menu-collections/{cid}", json={"description": long_text})
    assert r.status_code == 422
    r = client.post(
        "/menu-items", json={"name": "Tea", "price": 5000, "category": "Drinks", "image_url": long_text}
    )
    assert r.status_code == 422
    r = client.post(f"/menu-items/{iid}", json={"image_url": long_text})
    assert r.status_code == 422

    # exactly at the column width is fine
    r = client.post(f"/menu-collections/{cid}", json={"description": "d" * 400})
    assert r.status_code == 200


def test_menu_search_treats_wildcards_literally(client):
    m = _mk_menu(client)
    client.post("/menu-items", json={"name": "100% orange juice", "price": 30000, "category": "Drinks"})
    client.post("/menu-items", json={"name": "Tea_set", "price": 40000, "category": "Drinks"})

    names = [it["name"] for it in client.get("/menu-items", params={"q": "%"}).json()]
    assert names == ["100% orange juice"]
    names = [it["name"] for it in client.get("/menu-items", params={"q": "_"}).json()]
    assert names == ["Tea_set"]
    assert len(client.get("/menu-items", params={"q": "coffee"}).json()) == 1
    assert m["coffee"]["name"] == "Iced milk coffee"
