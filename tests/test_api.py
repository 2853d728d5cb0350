from datetime import date

import pytest

import main
from database import ACTIVITIES


def _add_item(client, headers, name="Apples", stock=10, **extra):
    resp = client.post("/api/items", json={"name": name, "stock": stock, **extra}, headers=headers)
    assert resp.status_code == 200
    return resp.json()["item"]


def test_health(client):
    assert client.get("/api/health").json()["status"] == "ok"


def test_register_and_login(client, registered):
    user_id, _ = registered
    resp = client.post("/api/login", json={"email": "ada@cornershop.com", "password": "Strong@123"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["user"]["id"] == user_id
    assert body["user"]["businessName"] == "Corner Shop"
    assert "password" not in body["user"]


def test_register_duplicate_email_is_400(client, registered):
    resp = client.post("/api/register", json={"email": "ada@cornershop.com", "password": "x"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "User already exists"}


def test_login_with_wrong_password_is_401(client, registered):
    resp = client.post("/api/login", json={"email": "ada@cornershop.com", "password": "nope"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "Invalid credentials"


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer"}, {"Authorization": "Token abc"}, {"Authorization": "Bearer unknown"}])
def test_protected_routes_require_a_known_token(client, registered, headers):
    resp = client.get("/api/items", headers=headers)
    assert resp.status_code == 401
    assert "error" in resp.json()


def test_profile_is_self_only(client, registered):
    user_id, headers = registered
    assert client.get(f"/api/user/{user_id}", headers=headers).json()["email"] == "ada@cornershop.com"
    other = client.post("/api/register", json={"email": "bob@cornershop.com"}).json()["user"]["id"]
    resp = client.get(f"/api/user/{other}", headers=headers)
    assert resp.status_code == 403
    assert resp.json() == {"error": "Insufficient permissions"}
    assert client.put(f"/api/user/{other}", json={"name": "x"}, headers=headers).status_code == 403
    assert client.delete(f"/api/user/{other}", headers=headers).status_code == 403


def test_update_profile(client, registered):
    user_id, headers = registered
    resp = client.put(f"/api/user/{user_id}", json={"businessType": "Grocery", "city": "Leeds"}, headers=headers)
    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["businessType"] == "Grocery"
    assert user["name"] == "Ada"
    assert user["metadata"] == {"city": "Leeds"}


def test_item_crud(client, registered):
    _, headers = registered
    item = _add_item(client, headers, price=2.5)
    assert client.get("/api/items", headers=headers).json()[0]["id"] == item["id"]
    assert client.get(f"/api/items/{item['id']}", headers=headers).json()["price"] == 2.5

    resp = client.put(f"/api/items/{item['id']}", json={"stock": 12}, headers=headers)
    assert resp.json()["item"]["stock"] == 12
    assert resp.json()["item"]["name"] == "Apples"

    assert client.delete(f"/api/items/{item['id']}", headers=headers).json() == {"success": True}
    assert client.get(f"/api/items/{item['id']}", headers=headers).status_code == 404


def test_items_of_other_users_are_hidden(client, registered):
    _, headers = registered
    item = _add_item(client, headers)
    other = client.post("/api/register", json={"email": "bob@cornershop.com"}).json()["user"]["id"]
    other_headers = {"Authorization": f"Bearer {other}"}
    assert client.get("/api/items", headers=other_headers).json() == []
    assert client.get(f"/api/items/{item['id']}", headers=other_headers).status_code == 404
    assert client.put(f"/api/items/{item['id']}", json={"stock": 0}, headers=other_headers).status_code == 404


def test_sale_and_loss_flow_feeds_reports(client, registered):
    _, headers = registered
    item = _add_item(client, headers)

    sale = client.post("/api/sales", json={"itemId": item["id"], "quantity": 3, "amount": 30}, headers=headers)
    assert sale.status_code == 200
    assert sale.json()["sale"]["quantity"] == 3

    loss = client.post(
        "/api/losses", json={"itemId": item["id"], "quantity": 2, "amount": 10, "type": "damaged"}, headers=headers
    )
    assert loss.status_code == 200
    assert loss.json()["loss"]["type"] == "damaged"

    dashboard = client.get("/api/dashboard", headers=headers).json()
    assert dashboard["totalStock"] == 5
    assert dashboard["monthlyRevenue"] == 30
    assert dashboard["monthlyLosses"] == 10
    assert sorted(a["type"] for a in dashboard["recentActivities"]) == ["loss", "sale"]

    report = client.get("/api/analysis", headers=headers).json()
    assert report["totalRevenue"] == 30
    assert report["totalLosses"] == 10
    assert report["itemsSold"] == 3
    assert report["itemsLost"] == 2
    assert report["topItems"] == {"labels": ["Apples"], "data": [3]}
    assert report["lossTypes"] == {"labels": ["damaged"], "data": [2]}
    assert len(report["monthlySales"]["labels"]) == 6
    assert report["monthlySales"]["labels"][-1] == date.today().replace(day=1).strftime("%b")
    assert report["monthlySales"]["data"][-1] == 30


def test_oversold_sale_is_rejected_without_side_effects(client, registered, store):
    _, headers = registered
    item = _add_item(client, headers, stock=2)
    resp = client.post("/api/sales", json={"itemId": item["id"], "quantity": 5, "amount": 50}, headers=headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "Not enough stock available"}
    assert client.get(f"/api/items/{item['id']}", headers=headers).json()["stock"] == 2
    assert store.load(ACTIVITIES) == []


def test_invalid_sale_payload_is_400(client, registered):
    _, headers = registered
    item = _add_item(client, headers)
    resp = client.post("/api/sales", json={"itemId": item["id"], "quantity": 0}, headers=headers)
    assert resp.status_code == 400
    assert "quantity" in resp.json()["error"]


def test_sale_for_unknown_item_is_404(client, registered):
    _, headers = registered
    resp = client.post("/api/sales", json={"itemId": "nope", "quantity": 1}, headers=headers)
    assert resp.status_code == 404


def test_analysis_for_new_user_is_zero_filled(client, registered):
    _, headers = registered
    report = client.get("/api/analysis", headers=headers).json()
    assert report["totalRevenue"] == 0
    assert report["monthlySales"]["data"] == [0] * 6
    assert len(report["monthlyLosses"]["labels"]) == 6


def test_deleted_account_token_stops_working(client, registered):
    user_id, headers = registered
    _add_item(client, headers)
    assert client.delete(f"/api/user/{user_id}", headers=headers).json() == {"success": True}
    resp = client.get("/api/dashboard", headers=headers)
    assert resp.status_code == 401


def test_admin_routes(client, registered, monkeypatch):
    user_id, _ = registered
    users = client.get("/api/admin/users").json()
    assert [u["id"] for u in users] == [user_id]
    assert client.get("/api/admin/users/missing").status_code == 404

    monkeypatch.setattr(main.settings, "ADMIN_TOKEN", "s3cret")
    resp = client.get("/api/admin/users")
    assert resp.status_code == 403
    assert resp.json() == {"error": "Admin access required"}
    assert client.get(f"/api/admin/users/{user_id}", headers={"X-Admin-Token": "s3cret"}).json()["id"] == user_id
    assert client.delete(f"/api/admin/users/{user_id}", headers={"X-Admin-Token": "s3cret"}).json() == {"success": True}
    assert client.get("/api/admin/users", headers={"X-Admin-Token": "s3cret"}).json() == []


def test_oversized_body_is_rejected(client, registered, monkeypatch):
    _, headers = registered
    monkeypatch.setattr(main.settings, "MAX_BODY_BYTES", 64)
    resp = client.post("/api/items", json={"name": "x" * 200, "stock": 1}, headers=headers)
    assert resp.status_code == 413


def test_item_image_is_materialized(client, registered, images):
    _, headers = registered
    item = _add_item(client, headers, itemImage="data:image/png;base64,aGVsbG8=")
    assert item["itemImage"] == f"/uploads/items/{item['id']}.png"
    assert (images.upload_dir / "items" / f"{item['id']}.png").read_bytes() == b"hello"
