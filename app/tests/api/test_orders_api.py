def _create(client, headers, **overrides):
    body = {"stateKey": "karnataka", "areaKey": "whitefield", "quantity": 2}
    body.update(overrides)
    return client.post("/api/v1/orders", json=body, headers=headers)


def test_create_and_read_order(client, make_user, make_units, auth_headers):
    buyer = make_user()
    make_units(count=3)
    headers = auth_headers(buyer)

    r = _create(client, headers)
    assert r.status_code == 201, r.text
    order = r.json()
    assert order["status"] == "PENDING"
    assert order["unitIds"] == ["karnataka_whitefield_001", "karnataka_whitefield_002"]
    # default price is 8 USDT per unit
    assert order["payment"]["expectedAmountUSDT"] == "16.000000"
    assert order["referral"]["referrerId"] is None

    got = client.get(f"/api/v1/orders/{order['orderId']}", headers=headers)
    assert got.status_code == 200
    assert got.json()["orderId"] == order["orderId"]

    mine = client.get("/api/v1/orders/mine", headers=headers)
    assert [o["orderId"] for o in mine.json()["orders"]] == [order["orderId"]]


def test_other_buyers_cannot_see_order(client, make_user, make_units, auth_headers):
    owner, stranger = make_user(), make_user(name="Bob")
    make_units(count=2)

    order = _create(client, auth_headers(owner)).json()
    r = client.get(f"/api/v1/orders/{order['orderId']}", headers=auth_headers(stranger))
    assert r.status_code == 404


def test_quantity_must_match_unit_ids(client, make_user, make_units, auth_headers):
    buyer = make_user()
    make_units(count=3)

    r = _create(client, auth_headers(buyer), quantity=3, unitIds=["karnataka_whitefield_001"])
    assert r.status_code == 422


def test_taken_units_conflict(client, make_user, make_units, auth_headers):
    alice, bob = make_user(), make_user(name="Bob")
    make_units(count=2)
    units = ["karnataka_whitefield_001", "karnataka_whitefield_002"]

    assert _create(client, auth_headers(alice), quantity=1, unitIds=units[1:]).status_code == 201
    r = _create(client, auth_headers(bob), unitIds=units)
    assert r.status_code == 409
    assert r.json()["detail"]["error"] == "ConflictError"


def test_unknown_unit_is_404(client, make_user, make_units, auth_headers):
    buyer = make_user()
    make_units(count=1)

    r = _create(client, auth_headers(buyer), quantity=1, unitIds=["karnataka_whitefield_999"])
    assert r.status_code == 404


def test_inventory_listing(client, make_user, make_units, auth_headers):
    buyer = make_user()
    make_units(count=3)

    r = client.get(
        "/api/v1/inventory/available",
        params={"stateKey": "karnataka", "areaKey": "whitefield", "limit": 2},
        headers=auth_headers(buyer),
    )
    assert r.status_code == 200
    assert [u["slotNumber"] for u in r.json()["units"]] == [1, 2]
