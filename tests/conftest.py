import pytest
from fastapi.testclient import TestClient

from dealsignal.core.config import Settings
from dealsignal.main import create_app

ADMIN_KEY = "test-admin-key"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        ADMIN_KEY=ADMIN_KEY,
        DATA_DIR=str(tmp_path / "data"),
        AMAZON_TAG_CA="dealsca-20",
        AMAZON_TAG_US="dealsus-20",
        EBAY_CAMPAIGN_ID="5339134577",
        EBAY_CUSTOM_ID="dealsignal",
        SUBMIT_RATE_LIMIT=100,
    )


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers():
    return {"x-admin-key": ADMIN_KEY}


@pytest.fixture
def charger():
    return {
        "title": "USB-C Charger",
        "price": 19.99,
        "url": "https://www.amazon.ca/dp/B000000000",
        "retailer": "Amazon",
    }
