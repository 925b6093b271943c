def _register(client, **overrides):
    body = {"name": "Asha Rao", "email": "asha@example.com", "password": "password-1"}
    body.update(overrides)
    return client.post("/api/v1/auth/register", json=body)


def test_register_then_me(client):
    r = _register(client, walletAddress="0x" + "cd" * 20)
    assert r.status_code == 201, r.text
    token = r.json()["access_token"]

    me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    body = me.json()
    assert body["email"] == "asha@example.com"
    assert body["role"] == "USER"
    assert body["referralCode"].startswith("WT-ASHA")
    assert body["totalEarningsUSDT"] == "0.000000"


def test_login(client):
    _register(client)

    ok = client.post("/api/v1/auth/login", json={"email": "asha@example.com", "password": "password-1"})
    assert ok.status_code == 200
    assert ok.json()["token_type"] == "bearer"

    bad = client.post("/api/v1/auth/login", json={"email": "asha@example.com", "password": "wrong-pass"})
    assert bad.status_code == 401


def test_duplicate_email_and_bad_wallet(client):
    assert _register(client).status_code == 201
    assert _register(client).status_code == 400
    assert _register(client, email="other@example.com", walletAddress="not-a-wallet").status_code == 422


def test_me_requires_token(client):
    assert client.get("/api/v1/auth/me").status_code in (401, 403)
