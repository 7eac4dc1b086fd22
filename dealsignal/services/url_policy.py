import ipaddress
import re
import socket
from typing import Any, Dict, Optional, Union
from urllib.parse import urlencode, urlsplit, urlunsplit, parse_qs

MAX_URL_LENGTH = 2048

# Keys match the "retailer" label sent by the submission form.
RETAILER_ALLOWLIST = {
    "Amazon": ["amazon.ca", "amazon.com"],
    "BestBuy": ["bestbuy.ca"],
    "Walmart": ["walmart.ca"],
    "CanadianTire": ["canadiantire.ca"],
    "Costco": ["costco.ca"],
    "Staples": ["staples.ca"],
    "Newegg": ["newegg.ca"],
}

# Only checked for retailers without an allowlist ("Other").
SHORTENER_HOSTS = {
    "bit.ly",
    "t.co",
    "tinyurl.com",
    "goo.gl",
    "ow.ly",
    "buff.ly",
    "is.gd",
    "cutt.ly",
    "rebrand.ly",
    "shorturl.at",
}

BLOCKED_EXTENSIONS = (
    ".exe", ".msi", ".bat", ".cmd", ".scr", ".ps1",
    ".jar", ".apk", ".dmg", ".pkg", ".iso",
)

_IPV4_CANDIDATE_RE = re.compile(r"^[0-9a-fx.]+$")
_NUMERIC_LABEL_RE = re.compile(r"^(0x[0-9a-f]*|[0-9]+)$")
_ASIN_PATH_RE = re.compile(r"/(?:dp|gp/product)/([A-Z0-9]{10})", re.IGNORECASE)

PRIVATE_NETWORKS = [
    ipaddress.ip_network(cidr)
    for cidr in ("0.0.0.0/8", "10.0.0.0/8", "127.0.0.0/8", "169.254.0.0/16", "172.16.0.0/12", "192.168.0.0/16")
]


def _fail(reason: str) -> Dict[str, Any]:
    return {"ok": False, "reason": reason}


def canonical_ipv4(host: str) -> Optional[ipaddress.IPv4Address]:
    """
    Reads a host whose last label is a number as an IPv4 address, the way
    browsers do: 127.1, 2130706433, 0x7f000001 and 0177.0.0.1 are all
    127.0.0.1. Raises ValueError when such a host is not a valid address.
    """
    bare = host.rstrip(".")
    if not bare or not _IPV4_CANDIDATE_RE.match(bare):
        return None
    if not _NUMERIC_LABEL_RE.match(bare.rsplit(".", 1)[-1]):
        return None
    try:
        return ipaddress.IPv4Address(socket.inet_aton(bare))
    except OSError:
        raise ValueError(f"Invalid IPv4 host '{host}'")


def is_private_address(address: Union[ipaddress.IPv4Address, ipaddress.IPv6Address]) -> bool:
    if isinstance(address, ipaddress.IPv6Address):
        if address.ipv4_mapped is not None:
            return is_private_address(address.ipv4_mapped)
        return address.is_loopback
    return any(address in network for network in PRIVATE_NETWORKS)


def host_matches(host: str, domain: str) -> bool:
    host, domain = host.lower(), domain.lower()
    return host == domain or host.endswith("." + domain)


def validate_deal_link(url: Any, retailer: Optional[str] = None) -> Dict[str, Any]:
    """
    Checks a submitted link against the safety rules and the retailer allowlist.

    Returns {"ok": True, "normalized_url", "host"} or {"ok": False, "reason"}.
    Checks run in a fixed order and stop at the first failure. On success the
    trimmed input is returned as-is, it is not re-encoded.
    """
    if not isinstance(url, str) or not url.strip():
        return _fail("URL is required.")

    raw = url.strip()
    if len(raw) > MAX_URL_LENGTH:
        return _fail("URL is too long.")

    try:
        parts = urlsplit(raw)
        port = parts.port
    except ValueError:
        return _fail("Invalid URL format.")
    if not parts.scheme or not parts.netloc:
        return _fail("Invalid URL format.")

    if parts.scheme.lower() != "https":
        return _fail("Only HTTPS links are allowed.")

    if parts.username or parts.password:
        return _fail("URL cannot contain credentials.")

    host = (parts.hostname or "").lower()
    if not host:
        return _fail("Invalid URL format.")

    if not host.isascii():
        return _fail("Non-ASCII domains are not allowed.")

    bare_host = host.rstrip(".")
    if bare_host == "localhost" or bare_host.endswith(".local"):
        return _fail("Localhost/internal links are not allowed.")

    try:
        address = ipaddress.IPv6Address(host) if ":" in host else canonical_ipv4(host)
    except ValueError:
        return _fail("Invalid URL format.")
    if address is not None:
        if is_private_address(address):
            return _fail("Private-network IP links are not allowed.")
        return _fail("IP address links are not allowed.")

    if port is not None:
        return _fail("Links with custom ports are not allowed.")

    path = parts.path.lower()
    for ext in BLOCKED_EXTENSIONS:
        if path.endswith(ext):
            return _fail(f"Links ending with {ext} are not allowed.")

    label = (retailer or "").strip()
    allowed = RETAILER_ALLOWLIST.get(label)
    if allowed:
        if not any(host_matches(host, domain) for domain in allowed):
            return _fail(f"Link domain does not match allowed domains for retailer '{label}'.")
        return {"ok": True, "normalized_url": raw, "host": host}

    if host in SHORTENER_HOSTS:
        return _fail("Shortened links are not allowed for 'Other'.")

    return {"ok": True, "normalized_url": raw, "host": host}


def extract_asin(url: Any) -> Optional[str]:
    """Returns the upper-cased ASIN of an Amazon product URL, if any."""
    try:
        parts = urlsplit(str(url or "").strip())
    except ValueError:
        return None
    if "amazon." not in (parts.hostname or ""):
        return None
    match = _ASIN_PATH_RE.search(parts.path)
    return match.group(1).upper() if match else None


def normalize_product_url(url: Any) -> Optional[str]:
    """
    Canonicalizes a product link for storage.

    Amazon product pages collapse to https://www.amazon.<tld>/dp/<ASIN>, keeping
    only an existing affiliate tag. Other links just lose their fragment.
    """
    raw = str(url or "").strip()
    if not raw:
        return None
    if not raw.lower().startswith(("http://", "https://")):
        raw = f"https://{raw}"
    try:
        parts = urlsplit(raw)
    except ValueError:
        return None
    host = (parts.hostname or "").lower()
    if not host:
        return None

    asin = extract_asin(raw)
    if not asin:
        return urlunsplit((parts.scheme, parts.netloc, parts.path, parts.query, ""))

    marketplace = "www.amazon.com"
    if "amazon.ca" in host:
        marketplace = "www.amazon.ca"
    elif "amazon.co.uk" in host:
        marketplace = "www.amazon.co.uk"

    query = ""
    tag = parse_qs(parts.query).get("tag")
    if tag:
        query = urlencode({"tag": tag[0]})
    return urlunsplit(("https", marketplace, f"/dp/{asin}", query, ""))
