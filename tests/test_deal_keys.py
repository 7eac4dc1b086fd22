import hashlib

from dealsignal.services.deal_keys import get_deal_key


def test_source_key_wins_over_everything():
    deal = {"sourceKey": "amazon:B000000000", "asin": "B111111111", "url": "https://x.com/a", "title": "T"}
    assert get_deal_key(deal) == "source:amazon:B000000000"


def test_source_key_is_independent_of_other_fields_and_their_order():
    a = {"sourceKey": "ebay:123456789", "title": "Lamp", "price": 10, "url": "https://ebay.ca/itm/1"}
    b = {"price": 99, "url": "https://other.example/", "title": "Different", "sourceKey": "ebay:123456789"}
    assert get_deal_key(a) == get_deal_key(b)


def test_asin_before_url():
    assert get_deal_key({"asin": "B000000000", "url": "https://www.amazon.ca/dp/B000000000"}) == "asin:B000000000"


def test_url_is_stripped_of_query_and_fragment_and_lowercased():
    deal = {"url": "https://Shop.Example.com/Item/42?utm=1#top", "title": "Ignored"}
    assert get_deal_key(deal) == "url:https://shop.example.com/item/42"


def test_bare_host_url_gets_root_path():
    assert get_deal_key({"url": "https://example.com"}) == "url:https://example.com/"


def test_unparseable_url_falls_back_to_title():
    assert get_deal_key({"url": "not a url", "title": "USB-C Charger (2-Pack)!"}) == "title:usbccharger2pack"


def test_content_hash_is_last_resort_and_deterministic():
    deal = {"price": 5, "notes": "no identity"}
    expected = hashlib.sha1(b'{"price":5,"notes":"no identity"}').hexdigest()
    assert get_deal_key(deal) == expected
    assert get_deal_key(dict(deal)) == expected


def test_total_on_missing_record():
    assert get_deal_key(None) == hashlib.sha1(b"{}").hexdigest()
