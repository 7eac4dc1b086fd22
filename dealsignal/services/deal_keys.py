import hashlib
import json
import re
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def normalize_title(title: Any) -> str:
    return _NON_ALNUM_RE.sub("", str(title or "").lower())


def normalize_key_url(url: Any) -> Optional[str]:
    """Absolute URL without query or fragment, lowercased. None when it does not parse."""
    if not url or not isinstance(url, str):
        return None
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", "", "")).lower()


def content_hash(deal: Any) -> str:
    payload = json.dumps(deal, separators=(",", ":"), ensure_ascii=False, default=str)
    return hashlib.sha1(payload.encode("utf-8")).hexdigest()


def get_deal_key(deal: Optional[Dict[str, Any]]) -> str:
    """
    Dedup key of a deal record, first match wins:
    source:<sourceKey>, asin:<ASIN>, url:<normalized url>, title:<normalized title>,
    then a sha1 of the serialized record. Changing this order changes the
    identity of deals already on disk.
    """
    deal = deal if isinstance(deal, dict) else {}

    if deal.get("sourceKey"):
        return f"source:{deal['sourceKey']}"
    if deal.get("asin"):
        return f"asin:{deal['asin']}"

    url = normalize_key_url(deal.get("url"))
    if url:
        return f"url:{url}"

    if deal.get("title"):
        return f"title:{normalize_title(deal['title'])}"

    return content_hash(deal)
