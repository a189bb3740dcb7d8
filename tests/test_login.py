import pytest


@pytest.mark.usefixtures("db")
def test_login_success(client, admin_user):
    resp = client.post("/auth/login", data={"username": "admin", "password": "pass"})
    assert resp.status_code == 302
    assert "/dashboard" in resp.headers["Location"]


def test_login_redirects_to_safe_next(client, admin_user):
    resp = client.post(
        "/auth/login?next=/orders/",
        data={"username": "admin", "password": "pass"},
    )
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/orders/")


def test_login_ignores_external_next(client, admin_user):
    resp = client.post(
        "/auth/login?next=https://evil.example/",
        data={"username": "admin", "password": "pass"},
    )
    assert "/dashboard" in resp.headers["Location"]


@pytest.mark.usefixtures("db")
def test_login_error(client, admin_user):
    resp = client.post("/auth/login", data={"username": "admin", "password": "wrong"})
    assert resp.status_code == 401
    assert "Usuario o contraseña incorrectos" in resp.get_data(as_text=True)


def test_login_requires_fields(client):
    resp = client.post("/auth/login", data={"username": "", "password": ""})
    assert resp.status_code == 400


def test_login_bruteforce_limit(client):
    for _ in range(5):
        resp = client.post(
            "/auth/login", data={"username": "intruso", "password": "wrong"}
        )
        assert resp.status_code == 401
    resp = client.post(
        "/auth/login",
        data={"username": "intruso", "password": "wrong"},
        headers={"X-Requested-With": "XMLHttpRequest"},
    )
    assert resp.status_code == 429


def test_pages_require_login(client):
    resp = client.get("/fabrics/")
    assert resp.status_code == 302
    assert "/auth/login" in resp.headers["Location"]


def test_api_requires_login(client):
    resp = client.get("/api/v1/fabrics")
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Se requiere iniciar sesión"


def test_logout(admin_client):
    resp = admin_client.get("/auth/logout")
    assert resp.status_code == 302
    assert "/auth/login" in resp.headers["Location"]
    assert admin_client.get("/dashboard").status_code == 302


def test_healthz(client):
    assert client.get("/healthz").get_data(as_text=True) == "OK"
