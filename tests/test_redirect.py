from urllib.parse import parse_qs, urlsplit

from fastapi.testclient import TestClient

from dealsignal.main import create_app

ASIN = "B0ABCDEFGH"


def seed(client, admin_headers, country="CA"):
    payload = {
        "country": country,
        "deals": [{
            "sourceKey": f"amazon:{ASIN}",
            "title": "Air Fryer",
            "price": 79.99,
            "url": f"https://www.amazon.ca/dp/{ASIN}",
            "retailer": "Amazon",
        }],
    }
    resp = client.post("/admin/deals/bulk", json=payload, headers=admin_headers)
    assert resp.status_code == 200, resp.text
    deals = client.get("/admin/deals", params={"country": country}, headers=admin_headers).json()["deals"]
    return deals[0]


def test_amazon_redirect_carries_tag_and_counts_click(client, admin_headers):
    deal = seed(client, admin_headers)

    resp = client.get(f"/go/amazon/{ASIN}", follow_redirects=False)

    assert resp.status_code == 302
    assert resp.headers["location"] == f"https://www.amazon.ca/dp/{ASIN}?tag=dealsca-20"
    stored = client.get(f"/deals/{deal['id']}").json()
    assert stored["clicks"] == 1


def test_us_amazon_redirect_uses_us_tag(client):
    resp = client.get(f"/go/amazon/{ASIN}", params={"country": "US"}, follow_redirects=False)
    assert resp.headers["location"] == f"https://www.amazon.com/dp/{ASIN}?tag=dealsus-20"


def test_ebay_redirect_parameters(client):
    resp = client.get("/go/ebay/123456789012", follow_redirects=False)

    assert resp.status_code == 302
    location = urlsplit(resp.headers["location"])
    assert location.netloc == "www.ebay.ca"
    assert location.path == "/itm/123456789012"
    assert parse_qs(location.query) == {
        "mkevt": ["1"],
        "mkcid": ["1"],
        "mkrid": ["706-53473-19255-0"],
        "campid": ["5339134577"],
        "customid": ["dealsignal"],
    }


def test_invalid_redirect_requests(client):
    for path in ("/go/amazon/not-an-asin", "/go/ebay/12", "/go/walmart/123456789"):
        resp = client.get(path, follow_redirects=False)
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Invalid redirect request"


def test_missing_affiliate_config_fails_closed(settings):
    app = create_app(settings.model_copy(update={"AMAZON_TAG_CA": "", "EBAY_CAMPAIGN_ID": ""}))
    with TestClient(app) as client:
        assert client.get(f"/go/amazon/{ASIN}", follow_redirects=False).status_code == 503
        assert client.get("/go/ebay/123456789012", follow_redirects=False).status_code == 503
        assert client.get(f"/go/amazon/{ASIN}?country=US", follow_redirects=False).status_code == 302


def test_deal_id_redirect_goes_through_source_route(client, admin_headers):
    deal = seed(client, admin_headers, country="US")

    resp = client.get(f"/go/{deal['id']}", params={"country": "US"}, follow_redirects=False)

    assert resp.status_code == 302
    assert resp.headers["location"] == f"/go/amazon/{ASIN}?country=US"
    assert client.get("/go/unknown-deal", follow_redirects=False).status_code == 404


def test_deal_without_source_key_falls_back_to_asin(client, admin_headers):
    resp = client.post(
        "/admin/deals",
        json={"title": "Kettle", "price": 30, "url": f"https://www.amazon.ca/dp/{ASIN}", "retailer": "Amazon"},
        headers=admin_headers,
    )
    deal = resp.json()["deal"]
    resp = client.get(f"/go/{deal['id']}", follow_redirects=False)
    assert resp.headers["location"] == f"/go/amazon/{ASIN}?country=CA"


def test_legacy_redirect(client):
    resp = client.get("/redirect", params={"id": ASIN}, follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == f"/go/amazon/{ASIN}?country=CA"

    resp = client.get("/redirect", follow_redirects=False)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Missing id"
