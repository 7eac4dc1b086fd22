import pytest

WATCHER = {"x-user-email": "watcher@example.com"}


@pytest.fixture
def deal(client, admin_headers, charger):
    resp = client.post("/admin/deals", json=charger, headers=admin_headers)
    return resp.json()["deal"]


def test_create_and_list_alerts(client, deal):
    resp = client.post("/alerts", json={"dealId": deal["id"], "targetPrice": 15}, headers=WATCHER)
    assert resp.status_code == 200
    alert = resp.json()["alert"]
    assert alert["userId"] == "watcher@example.com"
    assert alert["active"] is True
    assert alert["triggeredAt"] is None

    listed = client.get("/alerts", headers=WATCHER).json()["alerts"]
    assert [a["id"] for a in listed] == [alert["id"]]
    assert client.get("/alerts", headers={"x-user-email": "someone@example.com"}).json()["alerts"] == []


def test_alerts_require_login(client, deal):
    resp = client.post("/alerts", json={"dealId": deal["id"], "targetPrice": 15})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Login required"
    assert client.get("/alerts").status_code == 401


def test_duplicate_active_alert_is_rejected(client, deal):
    body = {"dealId": deal["id"], "targetPrice": 15}
    client.post("/alerts", json=body, headers=WATCHER)
    resp = client.post("/alerts", json=dict(body, targetPrice=12), headers=WATCHER)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Alert already exists for this deal"


def test_alert_validation(client, deal):
    assert client.post("/alerts", json={"dealId": deal["id"]}, headers=WATCHER).status_code == 400
    assert client.post("/alerts", json={"dealId": "missing", "targetPrice": 5}, headers=WATCHER).status_code == 404


def test_alerts_are_per_country(client, deal):
    resp = client.post("/alerts", json={"dealId": deal["id"], "targetPrice": 5, "country": "US"}, headers=WATCHER)
    assert resp.status_code == 404


def test_delete_alert(client, deal):
    alert = client.post("/alerts", json={"dealId": deal["id"], "targetPrice": 15}, headers=WATCHER).json()["alert"]

    assert client.delete(f"/alerts/{alert['id']}", headers={"x-user-email": "other@example.com"}).status_code == 404
    assert client.delete(f"/alerts/{alert['id']}", headers=WATCHER).json() == {"ok": True}
    assert client.get("/alerts", headers=WATCHER).json()["alerts"] == []
    assert client.delete(f"/alerts/{alert['id']}", headers=WATCHER).status_code == 404
