from conftest import fetch_token, login


def test_check_auth_anonymous(client):
    res = client.get("/api/admin/check-auth")
    assert res.status_code == 200
    assert res.json() == {"authenticated": False, "username": None, "csrfValid": True}
    assert res.headers["cache-control"] == "no-store"


def test_login_rejects_bad_credentials(client):
    for username, password in [("admin", "wrong"), ("nobody", "s3cret"), ("", "")]:
        res = login(client, username, password)
        assert res.status_code == 401
        assert res.json() == {"error": "Invalid credentials", "authenticated": False}


def test_login_then_check_auth(client):
    res = login(client)
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["expires"]

    res = client.get("/api/admin/check-auth")
    assert res.json() == {"authenticated": True, "username": "admin", "csrfValid": True}


def test_login_accepts_form_body(client):
    res = client.post("/api/admin/login", data={"username": "admin", "password": "s3cret"})
    assert res.status_code == 200


def test_login_regenerates_session(client):
    token = fetch_token(client)
    before = client.cookies.get("sid")
    assert before

    assert login(client).status_code == 200
    after = client.cookies.get("sid")
    assert after and after != before
    assert client.app.state.session_store.get(before) is None

    # the pre-login token belonged to the discarded session
    res = client.post("/api/admin/messages/missing/mark-read", headers={"X-CSRF-Token": token})
    assert res.status_code == 403


def test_admin_routes_require_login(client):
    for path in ["/api/admin/bookings", "/api/admin/bookings/abc", "/api/admin/messages", "/api/admin/bookings/export"]:
        res = client.get(path)
        assert res.status_code == 401
        assert res.json() == {"error": "Authentication required", "authenticated": False}


def test_guard_runs_before_csrf_check(client):
    res = client.post("/api/admin/bookings/abc/confirm")
    assert res.status_code == 401


def test_logout_destroys_session(admin):
    sid = admin.cookies.get("sid")
    res = admin.post("/api/admin/logout")
    assert res.status_code == 200
    assert res.json() == {"success": True}
    assert admin.cookies.get("sid") is None
    assert admin.app.state.session_store.get(sid) is None

    assert admin.get("/api/admin/bookings").status_code == 401
    assert admin.get("/api/admin/check-auth").json()["authenticated"] is False


def test_logout_requires_login(client):
    assert client.post("/api/admin/logout").status_code == 401


def test_health_is_public(client):
    res = client.get("/api/admin/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "healthy"
    assert body["database"] == "disconnected"
    assert body["sessionStore"] == "active"
    assert body["uptime"] >= 0
    assert body["timestamp"]


def test_login_compares_exact_values(client):
    for username, password in [("admin", " s3cret "), (" admin", "s3cret")]:
        res = login(client, username, password)
        assert res.status_code == 401
    assert client.get("/api/admin/check-auth").json()["authenticated"] is False
